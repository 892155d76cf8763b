"""Sandbox options and environment name resolution."""

import os
import sys
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from pyisolate.errors import ConfigError
from pyisolate.types import Installer

DEFAULT_PATH = "tmp/isolate"
DEFAULT_ENVIRONMENT = "development"

# Checked in order; the first one set wins.
ENVIRONMENT_VARIABLES = ("ISOLATE_ENV", "APP_ENV", "FLASK_ENV")

BOOLEAN_OPTIONS = ("install", "cleanup", "verbose", "system", "multiruntime")


def runtime_tag() -> str:
    """Interpreter tag used to keep isolation paths apart, e.g. ``cpython-3.12``."""
    return f"{sys.implementation.name}-{sys.version_info.major}.{sys.version_info.minor}"


def resolve_environment(
    environment: Optional[str] = None, environ: Optional[Mapping[str, str]] = None
) -> str:
    """Explicit name, else the first environment variable set, else the default."""
    if environment:
        return str(environment)
    environ = os.environ if environ is None else environ
    for var in ENVIRONMENT_VARIABLES:
        if environ.get(var):
            return environ[var]
    return DEFAULT_ENVIRONMENT


@dataclass
class Options:
    path: str = DEFAULT_PATH
    install: bool = True
    cleanup: bool = True
    verbose: bool = True
    system: bool = True
    multiruntime: bool = True
    file: Union[str, bool, None] = None
    installer: Installer = Installer.PIP
    root: Path = field(default_factory=Path.cwd)

    @classmethod
    def resolve(cls, options: Optional[Mapping[str, Any]] = None) -> "Options":
        resolved = cls()
        if options:
            resolved.merge(options)
        return resolved

    def merge(self, options: Mapping[str, Any]) -> "Options":
        known = {f.name for f in fields(self)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise ConfigError(f"Unknown options: {', '.join(unknown)}")

        for key, value in options.items():
            if key in BOOLEAN_OPTIONS and not isinstance(value, bool):
                raise ConfigError(f"Option '{key}' must be a boolean, got {value!r}")
            if key == "installer":
                value = _installer(value)
            elif key == "root":
                value = Path(value)
            elif key == "path":
                value = os.fspath(value)
            elif key == "file" and value not in (None, False):
                if value is True:
                    raise ConfigError("Option 'file' must be a path, None or False")
                value = os.fspath(value)
            setattr(self, key, value)
        return self

    @property
    def cleanup_enabled(self) -> bool:
        return self.install and self.cleanup

    def isolation_path(self) -> Path:
        """Absolute isolation directory, suffixed with the runtime tag when multiruntime."""
        base = self.path
        if self.multiruntime:
            suffix = runtime_tag()
            if suffix not in base:
                base = os.path.join(base, suffix)
        return Path(os.path.abspath(os.path.join(self.root, os.path.expanduser(base))))

    def as_dict(self) -> dict:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["installer"] = self.installer.value
        data["root"] = str(self.root)
        return data


def _installer(value: Any) -> Installer:
    if isinstance(value, Installer):
        return value
    try:
        return Installer(str(value).lower())
    except ValueError:
        raise ConfigError(f"Unsupported installer: {value}")
