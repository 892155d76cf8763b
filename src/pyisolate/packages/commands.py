"""Installer and uninstaller commands."""

import os
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from packaging.specifiers import SpecifierSet

from pyisolate.errors import InstallError, UninstallError
from pyisolate.logging import get_logger
from pyisolate.packages.index import Spec
from pyisolate.types import Installer

logger = get_logger(__name__)

SCRIPT_GROUPS = ("console_scripts", "gui_scripts")


def get_installer_binary(installer: Installer) -> List[str]:
    if installer == Installer.PIP:
        return [sys.executable, "-m", "pip"]

    binary = shutil.which(installer.value)
    if not binary:
        raise InstallError(installer.value, "", output=f"{installer.value} not found in PATH")
    return [binary, "pip"]


def build_install_command(
    installer: Installer,
    requirement: str,
    target: Path,
    source: Optional[str] = None,
    args: Sequence[str] = (),
) -> List[str]:
    cmd = get_installer_binary(installer) + ["install", "--target", str(target)]

    match installer:
        case Installer.PIP:
            cmd += ["--upgrade", "--no-input", "--disable-pip-version-check"]
        case Installer.UV:
            cmd += ["--upgrade", "--python", sys.executable]

    if source:
        cmd += ["--index-url", source]
    cmd += list(args)
    cmd.append(requirement)
    return cmd


def prepare_env_vars(installer: Installer, base_env: Dict[str, str]) -> Dict[str, str]:
    env = dict(base_env)
    # --target is explicit; a PIP_TARGET left by an enabled sandbox must not leak in.
    env.pop("PIP_TARGET", None)

    if installer == Installer.PIP:
        env.update({"PIP_NO_INPUT": "1", "PIP_DISABLE_PIP_VERSION_CHECK": "1"})
    elif installer == Installer.UV:
        env.update({"UV_NO_PROGRESS": "1"})

    return env


def install_package(
    installer: Installer,
    name: str,
    specifier: SpecifierSet,
    target: Path,
    source: Optional[str] = None,
    args: Sequence[str] = (),
) -> None:
    """Install ``name`` at ``specifier`` (and its dependencies) into ``target``."""
    requirement = f"{name}{specifier}"
    cmd = build_install_command(installer, requirement, target, source, args)
    target.mkdir(parents=True, exist_ok=True)

    logger.debug({"event": "install_cmd_exec", "cmd": cmd})
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            env=prepare_env_vars(installer, dict(os.environ)),
        )
    except OSError as e:
        raise InstallError(name, str(specifier), output=str(e)) from e

    if result.stdout:
        logger.debug({"event": "install_cmd_stdout", "output": result.stdout})
    if result.stderr:
        logger.debug({"event": "install_cmd_stderr", "output": result.stderr})

    if result.returncode != 0:
        raise InstallError(
            name,
            str(specifier),
            returncode=result.returncode,
            output=f"stdout: {result.stdout}\nstderr: {result.stderr}",
        )

    logger.info({"event": "package_installed", "requirement": requirement, "target": str(target)})


def _executables(spec: Spec) -> List[str]:
    if spec.dist is None:
        return []
    return [ep.name for ep in spec.dist.entry_points if ep.group in SCRIPT_GROUPS]


def _prune_empty_dirs(start: Path, stop: Path) -> None:
    current = start
    while current != stop and current.is_relative_to(stop):
        if current.exists():
            try:
                current.rmdir()
            except OSError:
                return
        current = current.parent


def uninstall_package(spec: Spec, target: Path) -> List[Path]:
    """Remove ``spec`` from ``target``, executables included.

    Only files inside ``target`` are touched. Returns the removed paths.
    """
    target = Path(os.path.abspath(target))
    location = Path(os.path.abspath(spec.location))
    if not location.is_relative_to(target):
        raise UninstallError(spec.full_name, f"{location} is outside {target}")
    if spec.dist is None or spec.dist.files is None:
        raise UninstallError(spec.full_name, "no RECORD of installed files")

    removed: List[Path] = []
    dirs = set()
    for file in spec.dist.files:
        path = Path(os.path.abspath(spec.dist.locate_file(file)))
        if not path.is_relative_to(target):
            logger.warning(
                {"event": "uninstall_skip_outside", "dist": spec.full_name, "path": str(path)}
            )
            continue
        try:
            path.unlink()
        except FileNotFoundError:
            continue
        except OSError as e:
            raise UninstallError(spec.full_name, str(e)) from e
        removed.append(path)
        dirs.add(path.parent)

    bin_dir = target / "bin"
    for name in _executables(spec):
        for candidate in (bin_dir / name, bin_dir / f"{name}.exe"):
            try:
                candidate.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                raise UninstallError(spec.full_name, str(e)) from e
            removed.append(candidate)

    # Deepest first so parents empty out after their children.
    for directory in sorted(dirs, key=lambda d: len(d.parts), reverse=True):
        if directory.name.endswith(".dist-info") and directory != target:
            shutil.rmtree(directory, ignore_errors=True)
        else:
            shutil.rmtree(directory / "__pycache__", ignore_errors=True)
        _prune_empty_dirs(directory, target)

    logger.debug(
        {"event": "package_uninstalled", "dist": spec.full_name, "files": len(removed)}
    )
    return removed
