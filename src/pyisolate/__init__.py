"""Isolated, reproducible package environments for a single project."""

from typing import Any, Callable, Optional

from pyisolate.entries.entry import Entry
from pyisolate.environments.process import ProcessEnvironment
from pyisolate.errors import (
    ActivationError,
    ConfigError,
    ConflictError,
    InstallError,
    IsolateError,
    UninstallError,
)
from pyisolate.events import EVENTS, EventHub, Observer, watch
from pyisolate.options import Options, resolve_environment
from pyisolate.packages.index import PackageIndex, Spec
from pyisolate.packages.manager import PackageManager
from pyisolate.sandboxes.sandbox import Sandbox
from pyisolate.types import Installer

__version__ = "0.1.0"

_SANDBOX: Optional[Sandbox] = None


def now(block: Optional[Callable[[Sandbox], Any]] = None, **options: Any) -> Sandbox:
    """Build a sandbox for the current project and activate it right away.

    A sandbox made by an earlier call is disabled first.
    """
    global _SANDBOX
    if _SANDBOX is not None:
        _SANDBOX.disable()
    _SANDBOX = Sandbox(block, **options)
    return _SANDBOX.activate()


def sandbox() -> Optional[Sandbox]:
    """The sandbox made by :func:`now`, if any."""
    return _SANDBOX


def env(environment: Optional[str] = None) -> str:
    """Environment name the next activation would use."""
    return resolve_environment(environment)


def disable(block: Optional[Callable[[], Any]] = None) -> Any:
    """Disable the sandbox made by :func:`now` (see :meth:`Sandbox.disable`)."""
    if _SANDBOX is None:
        return block() if block is not None else None
    return _SANDBOX.disable(block)


def refresh() -> None:
    if _SANDBOX is not None:
        _SANDBOX.refresh()


__all__ = [
    # Lifecycle
    "Sandbox",
    "Entry",
    "Options",
    "Installer",
    "now",
    "sandbox",
    "env",
    "disable",
    "refresh",
    "resolve_environment",

    # Events
    "EVENTS",
    "EventHub",
    "Observer",
    "watch",

    # Collaborators
    "ProcessEnvironment",
    "PackageIndex",
    "PackageManager",
    "Spec",

    # Error types
    "IsolateError",
    "ConfigError",
    "ConflictError",
    "InstallError",
    "ActivationError",
    "UninstallError",
]
