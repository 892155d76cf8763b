"""Isolated package environment lifecycle."""

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, List, Optional, TypeVar

from fuuid import b58_fuuid
from packaging.utils import canonicalize_name

from pyisolate.entries.entry import Entry
from pyisolate.environments.process import ProcessEnvironment
from pyisolate.errors import ConfigError, IsolateError, UninstallError, log_error
from pyisolate.events import GLOBAL_HUB, EventHub, Observer
from pyisolate.logging import get_logger
from pyisolate.options import Options, resolve_environment
from pyisolate.packages.index import PackageIndex, Spec
from pyisolate.packages.manager import PackageManager
from pyisolate.sandboxes import declarations
from pyisolate.sandboxes.cleanup import extraneous, legitimize
from pyisolate.types import Snapshot

logger = get_logger(__name__)

T = TypeVar("T")


class Sandbox:
    """An isolated set of packages for one project.

    Construction runs the declaration sources: the ``file`` option (or a
    discovered ``isolate.toml``), then ``block``, then ``<file>.local`` when it
    exists. :meth:`activate` points the process at the isolation path,
    installs what is missing, activates the declared packages and removes
    anything no longer declared.

    The process environment is shared by the whole interpreter, so only one
    sandbox should be enabled at a time.
    """

    # Sandbox currently enabled in this process, if any.
    _current: Optional["Sandbox"] = None

    def __init__(
        self,
        block: Optional[Callable[["Sandbox"], Any]] = None,
        *,
        process: Optional[ProcessEnvironment] = None,
        manager: Optional[PackageManager] = None,
        observers: Iterable[Observer] = (),
        **options: Any,
    ):
        self.id = b58_fuuid()
        self.entries: List[Entry] = []
        self.environments: List[str] = []
        self.files: List[str] = []
        self.activated: List[Spec] = []
        self.options = Options.resolve(options)
        self.process = process or ProcessEnvironment()
        self.events = EventHub()
        for observer in observers:
            self.events.register(observer)

        self._manager = manager
        self._owns_manager = manager is None
        self._enabled = False
        self._saved: Optional[Snapshot] = None

        self.fire("initializing")

        file = local = None
        if self.options.file is not False:
            if self.options.file:
                file = self.options.root / self.options.file
                if not file.is_file():
                    raise ConfigError(f"Declaration file not found: {file}", file=str(file))
            else:
                file = declarations.discover(self.options.root)
            if file is not None:
                local = declarations.local_override(file)

        if file is not None:
            self.load(file)

        if block is not None:
            code = getattr(block, "__code__", None)
            self.files.append(code.co_filename if code else "inline block")
            try:
                block(self)
            except IsolateError:
                raise
            except Exception as e:
                raise ConfigError(f"Error in inline declarations: {e}") from e

        if local is not None and local.is_file():
            self.load(local)

        self.fire("initialized")

    def __repr__(self) -> str:
        state = "enabled" if self._enabled else "disabled"
        return f"<Sandbox {self.id} {self.path} {state} entries={len(self.entries)}>"

    @property
    def logger(self):
        return logger.bind(sandbox_id=self.id)

    def __enter__(self) -> "Sandbox":
        return self.enable()

    def __exit__(self, *exc_info) -> None:
        self.disable()

    # Declarations

    def load(self, file: Path) -> None:
        self.files.append(str(file))
        declarations.load(self, Path(file))

    def entry(self, name: str) -> Optional[Entry]:
        key = canonicalize_name(name)
        return next((e for e in self.entries if e.key == key), None)

    def package(self, name: str, *constraints: str, **options: Any) -> Entry:
        """Declare a package. Declaring a name again merges into its entry."""
        if not isinstance(name, str) or not name:
            raise ConfigError(f"Invalid package name: {name!r}")
        entry = self.entry(name)
        if entry is not None:
            return entry.update(*constraints, **options)

        entry = Entry(self, name, *constraints, **options)
        self.entries.append(entry)
        return entry

    @contextmanager
    def environment(self, *environments: str) -> Iterator["Sandbox"]:
        """Restrict packages declared inside the block to ``environments``."""
        old = self.environments
        self.environments = [*old, *(str(e) for e in environments)]
        try:
            yield self
        finally:
            self.environments = old

    env = environment

    def configure(self, **options: Any) -> Options:
        self.options.merge(options)
        if self._owns_manager:
            self._manager = None
        return self.options

    # Collaborators

    @property
    def path(self) -> Path:
        return self.options.isolation_path()

    @property
    def manager(self) -> PackageManager:
        if self._manager is None:
            self._manager = PackageManager(
                self.path,
                self.options.installer,
                ambient_paths=self.process.ambient_paths,
                path=self.process.path,
            )
        return self._manager

    @property
    def index(self) -> PackageIndex:
        return self.manager.index

    def refresh(self) -> None:
        self.manager.refresh()

    def fire(self, name: str) -> None:
        GLOBAL_HUB.fire(name, self)
        self.events.fire(name, self)

    def log(self, message: str) -> None:
        if self.options.verbose:
            self.logger.info(message)

    # Lifecycle

    @property
    def enabled(self) -> bool:
        return self._enabled

    def enable(self) -> "Sandbox":
        if self._enabled:
            return self
        self.fire("enabling")

        current = Sandbox._current
        if current is not None and current is not self and current.enabled:
            self.logger.warning(
                {
                    "event": "nested_enable",
                    "enabled_sandbox": current.id,
                    "message": "another sandbox is already enabled in this process",
                }
            )

        env = self.process
        self._saved = env.snapshot()

        path = self.path
        path.mkdir(parents=True, exist_ok=True)
        env.set("PIP_TARGET", str(path))

        if not self.options.system:
            env.prune_ambient()
            env.set("PYTHONPATH", str(path))
        else:
            env.prepend("PYTHONPATH", str(path))

        env.put_first(str(path))
        env.prepend("PATH", str(path / "bin"))
        env.set("ISOLATED", str(path))

        self.refresh()
        self._enabled = True
        Sandbox._current = self
        self.logger.debug(
            {"event": "sandbox_enabled", "path": str(path), "system": self.options.system}
        )
        self.fire("enabled")
        return self

    def disable(self, block: Optional[Callable[[], T]] = None) -> Any:
        """Restore the process state saved by :meth:`enable`.

        With ``block``, runs it while disabled, enables again afterwards
        (whatever happens) and returns the block's result.
        """
        if not self._enabled:
            return block() if block is not None else self
        self.fire("disabling")

        self.process.restore(self._saved)
        self._saved = None
        self._enabled = False
        if Sandbox._current is self:
            Sandbox._current = None

        self.refresh()
        self.logger.debug({"event": "sandbox_disabled", "path": str(self.path)})
        self.fire("disabled")

        if block is not None:
            try:
                return block()
            finally:
                self.enable()
        return self

    @contextmanager
    def disabled(self) -> Iterator["Sandbox"]:
        was_enabled = self._enabled
        self.disable()
        try:
            yield self
        finally:
            if was_enabled:
                self.enable()

    def activate(self, environment: Optional[str] = None) -> "Sandbox":
        """Enable, install, activate and clean up for ``environment``."""
        self.enable()
        self.fire("activating")

        env = resolve_environment(environment, self.process.environ)
        self.logger.debug({"event": "activating", "environment": env})

        if self.options.install:
            self.install(env)

        self.activated = []
        for entry in self.entries:
            if entry.matches(env):
                self.activated.append(entry.activate())

        if self.options.cleanup_enabled:
            self.cleanup()

        self.fire("activated")
        return self

    def available(self, entry: Entry) -> bool:
        return (
            self.manager.find(
                entry.name, entry.requirement, include_ambient=self.options.system
            )
            is not None
        )

    def install(self, environment: str) -> List[Entry]:
        """Install missing entries that apply to ``environment``."""
        self.fire("installing")

        installable = [
            e for e in self.entries if e.matches(environment) and not self.available(e)
        ]

        if installable:
            total = len(installable)
            width = len(str(total))
            for i, entry in enumerate(installable, 1):
                self.log(f"[{i:0{width}d}/{total}] Isolating {entry.name} ({entry.constraint}).")
                entry.install()
            self.refresh()

        self.fire("installed")
        return installable

    def legitimize(self) -> List[Spec]:
        """Installed specs reachable from the declared entries."""
        return legitimize(
            [(e.name, e.requirement) for e in self.entries], self.manager.index.find
        )

    def cleanup(self) -> List[Spec]:
        """Uninstall everything in the isolation path that isn't reachable."""
        self.fire("cleaning")

        installed = self.manager.all_installed()
        extra = extraneous(installed, self.legitimize())
        removed: List[Spec] = []

        if extra:
            total = len(extra)
            width = len(str(total))
            for i, spec in enumerate(extra, 1):
                self.log(f"[{i:0{width}d}/{total}] Nuking {spec.full_name}.")
                try:
                    self.manager.uninstall(spec, self.path)
                except UninstallError as e:
                    log_error(e, {"path": str(self.path)}, logger=self.logger)
                    continue
                removed.append(spec)
            self.refresh()

        self.fire("cleaned")
        return removed
