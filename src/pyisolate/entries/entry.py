"""A declared dependency."""

from typing import TYPE_CHECKING, Any, Iterable, List, Optional, Set

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.utils import canonicalize_name

from pyisolate.errors import ActivationError, ConfigError, ConflictError
from pyisolate.logging import get_logger
from pyisolate.packages.manager import parse_specifier

if TYPE_CHECKING:
    from pyisolate.sandboxes.sandbox import Sandbox

logger = get_logger(__name__)

ENTRY_OPTIONS = ("source", "args")


class Entry:
    """A package declared in a sandbox: name, version constraints and the
    environments it applies to.

    Entries are only ever created through :meth:`Sandbox.package`, which
    merges repeated declarations of the same name into a single entry.
    """

    def __init__(self, sandbox: "Sandbox", name: str, *constraints: str, **options: Any):
        if not name or not isinstance(name, str):
            raise ConfigError(f"Invalid package name: {name!r}")
        self.sandbox = sandbox
        self.name = name
        self.key = canonicalize_name(name)
        self.requirement = SpecifierSet()
        self.environments: Set[str] = set(sandbox.environments)
        self.source: Optional[str] = None
        self.args: List[str] = []
        self.update(*constraints, **options)

    def __repr__(self) -> str:
        return f"<Entry {self.name} ({self.constraint}) {sorted(self.environments)}>"

    @property
    def constraint(self) -> str:
        return str(self.requirement) or "*"

    def matches(self, environment: str) -> bool:
        return not self.environments or environment in self.environments

    def update(self, *constraints: str, **options: Any) -> "Entry":
        """Merge more constraints and options into this entry."""
        unknown = sorted(set(options) - set(ENTRY_OPTIONS))
        if unknown:
            raise ConfigError(f"Unknown options for {self.name}: {', '.join(unknown)}")

        try:
            merged = self.requirement & parse_specifier(constraints)
        except InvalidSpecifier as e:
            raise ConfigError(f"Invalid version constraint for {self.name}: {e}")

        if not self.sandbox.manager.satisfiable(merged):
            raise ConflictError(self.name, str(merged))
        self.requirement = merged

        if self.environments and self.sandbox.environments:
            self.environments.update(self.sandbox.environments)

        if options.get("source") is not None:
            self.source = str(options["source"])
        if options.get("args"):
            self.args.extend(_as_list(options["args"]))
        return self

    def install(self) -> None:
        self.sandbox.manager.install(
            self.name,
            self.requirement,
            self.sandbox.path,
            source=self.source,
            args=self.args,
        )

    def activate(self):
        spec = self.sandbox.manager.find(
            self.name, self.requirement, include_ambient=self.sandbox.options.system
        )
        if spec is None:
            raise ActivationError(self.name, str(self.requirement))
        self.sandbox.manager.activate(spec)
        logger.debug({"event": "entry_activated", "name": self.name, "dist": spec.full_name})
        return spec


def _as_list(value: Any) -> Iterable[str]:
    if isinstance(value, str):
        return value.split()
    return [str(v) for v in value]
