"""Package manager facade used by sandboxes and entries."""

import importlib
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from packaging.specifiers import SpecifierSet
from packaging.version import InvalidVersion, Version

from pyisolate.environments.process import get_ambient_paths
from pyisolate.errors import ActivationError
from pyisolate.logging import get_logger
from pyisolate.packages import commands
from pyisolate.packages.index import PackageIndex, Spec
from pyisolate.types import Installer

logger = get_logger(__name__)


def _successors(version: Version) -> List[str]:
    """Versions just above ``version``, within its release and past it."""
    epoch = f"{version.epoch}!" if version.epoch else ""
    release = epoch + ".".join(str(part) for part in version.release)
    pre = f"{version.pre[0]}{version.pre[1]}" if version.pre is not None else ""
    post = f".post{version.post}" if version.post is not None else ""

    successors = [f"{version.base_version}.0.0.1"]
    if version.dev is not None:
        successors.append(f"{release}{pre}{post}.dev{version.dev + 1}")
    if version.post is not None:
        successors.append(f"{release}{pre}.post{version.post + 1}")
    else:
        successors.append(f"{release}{pre}.post0")
    if version.pre is not None:
        successors.append(f"{release}{version.pre[0]}{version.pre[1] + 1}")
    return successors


def _candidates(specifier: SpecifierSet) -> List[Version]:
    versions = [Version("0")]
    for spec in specifier:
        text = spec.version[:-2] if spec.version.endswith(".*") else spec.version
        try:
            version = Version(text)
        except InvalidVersion:
            continue
        versions.append(version)
        for successor in _successors(version):
            try:
                versions.append(Version(successor))
            except InvalidVersion:
                continue
    return versions


def is_satisfiable(specifier: SpecifierSet) -> bool:
    """Whether any version could satisfy ``specifier``.

    Probes the versions named in the specifier, a version just above each of
    them, and ``0``; this covers pins, ranges and exclusions.
    """
    if not len(specifier):
        return True
    return any(specifier.contains(v, prereleases=True) for v in _candidates(specifier))


def parse_specifier(constraints: Sequence[str]) -> SpecifierSet:
    """Combine constraint strings (``">=1.0"``, ``"<2,!=1.5"``) into one set.

    ``"*"`` and empty strings mean any version. Raises InvalidSpecifier.
    """
    merged = SpecifierSet()
    for constraint in constraints:
        text = str(constraint).strip()
        if text in ("", "*"):
            continue
        merged &= SpecifierSet(text)
    return merged


class PackageManager:
    """Index, installer, uninstaller and activator for one isolation path.

    ``index`` covers the isolation path only; ``ambient`` covers the site
    directories of the interpreter running the sandbox.
    """

    def __init__(
        self,
        target: Path,
        installer: Installer = Installer.PIP,
        ambient_paths: Optional[Sequence[str]] = None,
        path: Optional[List[str]] = None,
    ):
        self.target = Path(target)
        self.installer = installer
        self.index = PackageIndex([self.target])
        self.ambient = PackageIndex(
            [Path(p) for p in (ambient_paths if ambient_paths is not None else get_ambient_paths())]
        )
        self.path = sys.path if path is None else path
        self.activated: Dict[str, Spec] = {}

    def find(
        self, name: str, specifier: SpecifierSet, include_ambient: bool = False
    ) -> Optional[Spec]:
        spec = self.index.find(name, specifier)
        if spec is None and include_ambient:
            spec = self.ambient.find(name, specifier)
        return spec

    def all_installed(self) -> List[Spec]:
        return self.index.all_installed()

    def refresh(self) -> None:
        self.index.refresh()
        self.ambient.refresh()
        importlib.invalidate_caches()

    def install(
        self,
        name: str,
        specifier: SpecifierSet,
        target: Path,
        source: Optional[str] = None,
        args: Sequence[str] = (),
    ) -> None:
        commands.install_package(self.installer, name, specifier, Path(target), source, args)

    def uninstall(self, spec: Spec, target: Path) -> None:
        commands.uninstall_package(spec, Path(target))
        self.activated.pop(spec.key, None)

    def activate(self, spec: Spec) -> None:
        current = self.activated.get(spec.key)
        if current is not None and current.version != spec.version:
            raise ActivationError(
                spec.name,
                f"=={spec.version}",
                reason=f"Can't activate {spec.full_name}, already activated {current.full_name}",
            )

        location = str(spec.location)
        if location not in self.path:
            self.path.insert(0, location)
            importlib.invalidate_caches()
        self.activated[spec.key] = spec
        logger.debug({"event": "package_activated", "dist": spec.full_name, "location": location})

    def satisfiable(self, specifier: SpecifierSet) -> bool:
        return is_satisfiable(specifier)
