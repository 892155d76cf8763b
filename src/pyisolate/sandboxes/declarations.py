"""Declaration sources.

A TOML file is the default format::

    [options]
    system = false

    [[package]]
    name = "requests"
    version = ">=2.31,<3"

    [[package]]
    name = "pytest"
    version = [">=8", "!=8.1.0"]
    environments = ["test"]

Python scripts are only loaded when passed explicitly as the ``file`` option.
They run with ``package``, ``environment``/``env``, ``configure`` and
``sandbox`` in scope and have the full power of the interpreter.
"""

from pathlib import Path
from typing import TYPE_CHECKING, Any, List, Optional

import tomli

from pyisolate.errors import ConfigError, IsolateError
from pyisolate.logging import get_logger

if TYPE_CHECKING:
    from pyisolate.sandboxes.sandbox import Sandbox

logger = get_logger(__name__)

DISCOVERY_CANDIDATES = ("isolate.toml", "config/isolate.toml")
LOCAL_SUFFIX = ".local"

PACKAGE_KEYS = {"name", "version", "environments", "source", "args"}


def discover(root: Path) -> Optional[Path]:
    """First declaration file present under ``root``."""
    for candidate in DISCOVERY_CANDIDATES:
        path = root / candidate
        if path.is_file():
            return path
    return None


def local_override(file: Path) -> Path:
    return file.with_name(file.name + LOCAL_SUFFIX)


def is_script(file: Path) -> bool:
    name = file.name[: -len(LOCAL_SUFFIX)] if file.name.endswith(LOCAL_SUFFIX) else file.name
    return name.endswith(".py")


def load(sandbox: "Sandbox", file: Path) -> None:
    """Run the declarations in ``file`` against ``sandbox``."""
    logger.debug({"event": "loading_declarations", "file": str(file)})
    try:
        text = file.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Can't read {file}: {e}", file=str(file))

    if is_script(file):
        load_script(sandbox, text, file)
    else:
        load_toml(sandbox, text, file)


def load_toml(sandbox: "Sandbox", text: str, file: Path) -> None:
    try:
        data = tomli.loads(text)
    except tomli.TOMLDecodeError as e:
        raise ConfigError(f"Can't parse {file}: {e}", file=str(file))

    unknown = sorted(set(data) - {"options", "package"})
    if unknown:
        raise ConfigError(f"Unknown sections in {file}: {', '.join(unknown)}", file=str(file))

    options = data.get("options", {})
    if not isinstance(options, dict):
        raise ConfigError(f"[options] in {file} must be a table", file=str(file))
    for key in ("file", "root"):
        if key in options:
            raise ConfigError(f"Option '{key}' can't be set from {file}", file=str(file))
    if options:
        sandbox.configure(**options)

    packages = data.get("package", [])
    if not isinstance(packages, list):
        raise ConfigError(f"'package' in {file} must be an array of tables", file=str(file))
    for record in packages:
        _declare(sandbox, record, file)


def _declare(sandbox: "Sandbox", record: Any, file: Path) -> None:
    if not isinstance(record, dict) or "name" not in record:
        raise ConfigError(f"Package records in {file} need a name", file=str(file))
    unknown = sorted(set(record) - PACKAGE_KEYS)
    if unknown:
        raise ConfigError(
            f"Unknown keys for {record['name']} in {file}: {', '.join(unknown)}",
            file=str(file),
        )

    version = record.get("version", [])
    constraints: List[str] = (
        [version] if isinstance(version, str) else [str(v) for v in version]
    )
    environments = record.get("environments", [])
    if isinstance(environments, str):
        environments = [environments]
    options = {k: record[k] for k in ("source", "args") if k in record}

    with sandbox.environment(*environments):
        sandbox.package(record["name"], *constraints, **options)


def load_script(sandbox: "Sandbox", text: str, file: Path) -> None:
    namespace = {
        "__file__": str(file),
        "__name__": "__isolate__",
        "sandbox": sandbox,
        "package": sandbox.package,
        "environment": sandbox.environment,
        "env": sandbox.environment,
        "configure": sandbox.configure,
    }
    try:
        code = compile(text, str(file), "exec")
        exec(code, namespace)
    except IsolateError:
        raise
    except Exception as e:
        raise ConfigError(f"Error in {file}: {e.__class__.__name__}: {e}", file=str(file)) from e
