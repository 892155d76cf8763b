"""Process-global state a sandbox mutates while enabled."""

import os
import site
import sys
from pathlib import Path
from typing import List, MutableMapping, MutableSequence, Optional, Sequence

from pyisolate.logging import get_logger
from pyisolate.types import Snapshot

logger = get_logger(__name__)

TRACKED_VARIABLES = ("PYTHONPATH", "PIP_TARGET", "ISOLATED", "PATH")

# Directory pyisolate is imported from; it survives pruning unless it is a
# site directory of the ambient installation. When pyisolate is installed into
# site-packages, non-system mode therefore hides it and its dependencies from
# later imports; modules already imported keep working.
PACKAGE_ROOT = str(Path(__file__).resolve().parent.parent.parent)


def get_ambient_paths() -> List[str]:
    """Site directories of the ambient (non-isolated) installation."""
    paths = []
    try:
        paths.extend(site.getsitepackages())
    except AttributeError:
        pass
    user_site = site.getusersitepackages()
    if user_site:
        paths.append(user_site)
    return [os.path.abspath(p) for p in paths]


def _within(path: str, root: str) -> bool:
    path = os.path.abspath(path)
    return path == root or path.startswith(root.rstrip(os.sep) + os.sep)


class ProcessEnvironment:
    """Environment variables and module search path of a process.

    Defaults to the real ``os.environ`` and ``sys.path``; tests pass plain
    dicts and lists instead.
    """

    def __init__(
        self,
        environ: Optional[MutableMapping[str, str]] = None,
        path: Optional[MutableSequence[str]] = None,
        ambient_paths: Optional[Sequence[str]] = None,
        keep: Sequence[str] = (PACKAGE_ROOT,),
    ):
        if environ is None:
            environ = os.environ
        if path is None:
            path = sys.path
        self.environ = environ
        self.path = path
        self._ambient_paths = (
            [os.path.abspath(p) for p in ambient_paths]
            if ambient_paths is not None
            else None
        )
        self.keep = [os.path.abspath(p) for p in keep]

    @property
    def ambient_paths(self) -> List[str]:
        if self._ambient_paths is None:
            self._ambient_paths = get_ambient_paths()
        return self._ambient_paths

    def snapshot(self) -> Snapshot:
        return Snapshot(
            variables={var: self.environ.get(var) for var in TRACKED_VARIABLES},
            path=tuple(self.path),
        )

    def restore(self, snapshot: Snapshot) -> None:
        for var, value in snapshot.variables.items():
            if value is None:
                self.environ.pop(var, None)
            else:
                self.environ[var] = value
        self.path[:] = list(snapshot.path)

    def set(self, var: str, value: str) -> None:
        self.environ[var] = value

    def prepend(self, var: str, entry: str) -> None:
        """Put ``entry`` first in a path-list variable unless it is already there."""
        current = self.environ.get(var)
        parts = current.split(os.pathsep) if current else []
        if entry in parts:
            return
        self.environ[var] = os.pathsep.join([entry, *parts])

    def is_ambient(self, entry: str) -> bool:
        if not entry or not any(_within(entry, root) for root in self.ambient_paths):
            return False
        # An ambient site directory itself is never kept, even if pyisolate lives there.
        entry = os.path.abspath(entry)
        return entry in self.ambient_paths or entry not in self.keep

    def prune_ambient(self) -> List[str]:
        """Drop ambient site directories from the module search path."""
        removed = [p for p in self.path if self.is_ambient(p)]
        if removed:
            self.path[:] = [p for p in self.path if not self.is_ambient(p)]
            logger.debug({"event": "pruned_module_path", "removed": removed})
        return removed

    def put_first(self, entry: str) -> None:
        if entry in self.path:
            self.path.remove(entry)
        self.path.insert(0, entry)
