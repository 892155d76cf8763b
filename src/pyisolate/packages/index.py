"""Installed distributions, read through importlib.metadata."""

import importlib.metadata
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from packaging.requirements import InvalidRequirement, Requirement
from packaging.specifiers import SpecifierSet
from packaging.utils import canonicalize_name
from packaging.version import InvalidVersion, Version

from pyisolate.logging import get_logger

logger = get_logger(__name__)

Dependency = Tuple[str, SpecifierSet]


@dataclass(frozen=True, order=True)
class Spec:
    """An installed distribution."""

    key: str
    version: Version
    name: str = field(compare=False)
    location: Path = field(compare=False)
    requires: Tuple[Requirement, ...] = field(default=(), compare=False, repr=False)
    dist: Optional[importlib.metadata.Distribution] = field(
        default=None, compare=False, repr=False
    )

    @classmethod
    def create(
        cls,
        name: str,
        version: str,
        location: Path,
        requires: Iterable[str] = (),
        dist: Optional[importlib.metadata.Distribution] = None,
    ) -> "Spec":
        parsed = []
        for line in requires:
            try:
                parsed.append(Requirement(line))
            except InvalidRequirement:
                logger.warning(
                    {"event": "invalid_requirement", "dist": name, "requirement": line}
                )
        return cls(
            key=canonicalize_name(name),
            version=Version(version),
            name=name,
            location=Path(location),
            requires=tuple(parsed),
            dist=dist,
        )

    @classmethod
    def from_distribution(
        cls, dist: importlib.metadata.Distribution, location: Path
    ) -> "Spec":
        return cls.create(
            dist.metadata["Name"],
            dist.version,
            location,
            dist.requires or (),
            dist=dist,
        )

    @property
    def full_name(self) -> str:
        return f"{self.name}-{self.version}"

    @property
    def runtime_dependencies(self) -> List[Dependency]:
        """Requirements that apply without extras on this interpreter."""
        deps = []
        for req in self.requires:
            if req.marker is not None and not req.marker.evaluate({"extra": ""}):
                continue
            deps.append((req.name, req.specifier))
        return deps

    def satisfies(self, specifier: SpecifierSet) -> bool:
        return specifier.contains(self.version, prereleases=True)

    def __str__(self) -> str:
        return self.full_name


class PackageIndex:
    """Distributions found in a set of directories.

    The scan is cached until :meth:`refresh` is called.
    """

    def __init__(self, paths: Sequence[Path]):
        self.paths = [Path(p) for p in paths]
        self._specs: Optional[Dict[str, List[Spec]]] = None

    def refresh(self) -> None:
        self._specs = None

    def _load(self) -> Dict[str, List[Spec]]:
        if self._specs is None:
            specs: Dict[str, List[Spec]] = {}
            for path in self.paths:
                if not path.is_dir():
                    continue
                for dist in importlib.metadata.distributions(path=[str(path)]):
                    try:
                        spec = Spec.from_distribution(dist, path)
                    except (InvalidVersion, TypeError, KeyError) as e:
                        logger.warning(
                            {
                                "event": "unreadable_distribution",
                                "path": str(path),
                                "error": str(e),
                            }
                        )
                        continue
                    versions = specs.setdefault(spec.key, [])
                    if spec not in versions:
                        versions.append(spec)
            for versions in specs.values():
                versions.sort()
            self._specs = specs
            logger.debug(
                {
                    "event": "index_loaded",
                    "paths": [str(p) for p in self.paths],
                    "count": sum(len(v) for v in specs.values()),
                }
            )
        return self._specs

    def all_installed(self) -> List[Spec]:
        return sorted(spec for versions in self._load().values() for spec in versions)

    def find_all(self, name: str, specifier: Optional[SpecifierSet] = None) -> List[Spec]:
        specifier = specifier or SpecifierSet()
        return [
            spec
            for spec in self._load().get(canonicalize_name(name), [])
            if spec.satisfies(specifier)
        ]

    def find(self, name: str, specifier: Optional[SpecifierSet] = None) -> Optional[Spec]:
        """Highest installed version of ``name`` satisfying ``specifier``."""
        matches = self.find_all(name, specifier)
        return matches[-1] if matches else None
