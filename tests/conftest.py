from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pytest
from structlog.testing import capture_logs
from packaging.specifiers import SpecifierSet
from packaging.utils import canonicalize_name

from pyisolate.environments.process import ProcessEnvironment
from pyisolate.errors import InstallError, UninstallError
from pyisolate.events import GLOBAL_HUB
from pyisolate.packages.index import Spec
from pyisolate.packages.manager import is_satisfiable
from pyisolate.sandboxes.sandbox import Sandbox

AMBIENT = "/usr/lib/python3/site-packages"


def make_spec(name: str, version: str = "1.0", requires: Iterable[str] = (), location="/isolated") -> Spec:
    return Spec.create(name, version, Path(location), requires)


class FakeIndex:
    """In-memory stand-in for PackageIndex."""

    def __init__(self, specs: Iterable[Spec] = ()):
        self.specs: List[Spec] = list(specs)
        self.refreshes = 0

    def add(self, spec: Spec) -> Spec:
        self.specs.append(spec)
        return spec

    def remove(self, spec: Spec) -> None:
        self.specs.remove(spec)

    def refresh(self) -> None:
        self.refreshes += 1

    def all_installed(self) -> List[Spec]:
        return sorted(self.specs)

    def find(self, name: str, specifier: Optional[SpecifierSet] = None) -> Optional[Spec]:
        specifier = specifier or SpecifierSet()
        matches = sorted(
            s for s in self.specs if s.key == canonicalize_name(name) and s.satisfies(specifier)
        )
        return matches[-1] if matches else None


class FakeManager:
    """Records installer, uninstaller and activator calls."""

    def __init__(self):
        self.index = FakeIndex()
        self.ambient = FakeIndex()
        self.installs: List[str] = []
        self.uninstalls: List[str] = []
        self.activations: List[Spec] = []
        self.refreshes = 0
        self.fail_install: set = set()
        self.fail_uninstall: set = set()
        # name -> version an install puts into the index
        self.provides: Dict[str, str] = {}

    def find(self, name, specifier, include_ambient=False):
        spec = self.index.find(name, specifier)
        if spec is None and include_ambient:
            spec = self.ambient.find(name, specifier)
        return spec

    def all_installed(self):
        return self.index.all_installed()

    def refresh(self):
        self.refreshes += 1

    def install(self, name, specifier, target, source=None, args=()):
        self.installs.append(name)
        if name in self.fail_install:
            raise InstallError(name, str(specifier), returncode=1)
        self.index.add(make_spec(name, self.provides.get(name, "1.0"), location=target))

    def uninstall(self, spec, target):
        if spec.name in self.fail_uninstall:
            raise UninstallError(spec.full_name, "permission denied")
        self.uninstalls.append(spec.name)
        self.index.remove(spec)

    def activate(self, spec):
        self.activations.append(spec)

    def satisfiable(self, specifier):
        return is_satisfiable(specifier)


def write_dist(
    root: Path,
    name: str,
    version: str = "1.0",
    requires: Iterable[str] = (),
    scripts: Iterable[str] = (),
) -> Path:
    """Lay out an installed distribution the way ``pip install --target`` does."""
    module = name.replace("-", "_").lower()
    dist_info = root / f"{module}-{version}.dist-info"
    dist_info.mkdir(parents=True)
    (root / module).mkdir(exist_ok=True)
    (root / module / "__init__.py").write_text(f"__version__ = {version!r}\n")

    metadata = [f"Metadata-Version: 2.1", f"Name: {name}", f"Version: {version}"]
    metadata += [f"Requires-Dist: {r}" for r in requires]
    (dist_info / "METADATA").write_text("\n".join(metadata) + "\n")

    record = [f"{module}/__init__.py,,", f"{dist_info.name}/METADATA,,", f"{dist_info.name}/RECORD,,"]
    scripts = list(scripts)
    if scripts:
        entry_points = ["[console_scripts]"] + [f"{s} = {module}:main" for s in scripts]
        (dist_info / "entry_points.txt").write_text("\n".join(entry_points) + "\n")
        record.append(f"{dist_info.name}/entry_points.txt,,")
        (root / "bin").mkdir(exist_ok=True)
        for script in scripts:
            (root / "bin" / script).write_text("#!/bin/sh\n")
    (dist_info / "RECORD").write_text("\n".join(record) + "\n")
    return dist_info


def refuse_to_unlink(monkeypatch, name: str) -> None:
    """Make Path.unlink fail with a permission error for files called ``name``"""
    real_unlink = Path.unlink

    def unlink(self, *args, **kwargs):
        if self.name == name:
            raise PermissionError(13, "Permission denied", str(self))
        return real_unlink(self, *args, **kwargs)

    monkeypatch.setattr(Path, "unlink", unlink)


@pytest.fixture(autouse=True)
def reset_globals():
    yield
    GLOBAL_HUB.clear()
    Sandbox._current = None


@pytest.fixture
def process():
    """Fake process state: plain dict and list instead of os.environ and sys.path"""
    return ProcessEnvironment(
        environ={"PATH": "/usr/bin:/bin", "HOME": "/home/dev"},
        path=["", "/usr/lib/python3.12", AMBIENT, f"{AMBIENT}/extra", "/home/dev/project"],
        ambient_paths=[AMBIENT],
    )


@pytest.fixture
def manager():
    return FakeManager()


@pytest.fixture
def make_sandbox(tmp_path: Path, process: ProcessEnvironment, manager: FakeManager):
    def make(block=None, **options):
        options.setdefault("root", tmp_path)
        options.setdefault("file", False)
        return Sandbox(block, process=process, manager=manager, **options)

    return make


@pytest.fixture
def captured_logs():
    with capture_logs() as logs:
        yield logs
