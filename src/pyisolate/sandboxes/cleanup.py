"""Reachability of installed distributions from declared entries."""

from typing import Callable, Iterable, List, Optional, Set

from packaging.specifiers import SpecifierSet

from pyisolate.packages.index import Dependency, Spec

Finder = Callable[[str, SpecifierSet], Optional[Spec]]


def legitimize(dependencies: Iterable[Dependency], find: Finder) -> List[Spec]:
    """Installed specs reachable from ``dependencies``, dependencies first.

    Each dependency resolves to the best installed match; its own runtime
    dependencies are walked before it is appended. A spec reached through
    several paths appears once, and dependency cycles terminate.
    """
    legit: List[Spec] = []
    seen: Set[Spec] = set()

    def visit(deps: Iterable[Dependency]) -> None:
        for name, specifier in deps:
            spec = find(name, specifier)
            if spec is None or spec in seen:
                continue
            seen.add(spec)
            visit(spec.runtime_dependencies)
            legit.append(spec)

    visit(dependencies)
    return legit


def extraneous(installed: Iterable[Spec], legit: Iterable[Spec]) -> List[Spec]:
    """Installed specs not in ``legit``, in sorted order."""
    keep = set(legit)
    return sorted(spec for spec in installed if spec not in keep)
