from pathlib import Path

import pytest

from pyisolate.errors import ConfigError
from pyisolate.options import (
    DEFAULT_ENVIRONMENT,
    Options,
    resolve_environment,
    runtime_tag,
)
from pyisolate.types import Installer


def test_defaults():
    options = Options(root=Path("/srv/app"))
    assert options.install and options.cleanup and options.verbose
    assert options.system and options.multiruntime
    assert options.installer is Installer.PIP
    assert options.isolation_path() == Path("/srv/app/tmp/isolate") / runtime_tag()


def test_isolation_path_without_multiruntime():
    options = Options.resolve({"root": "/srv/app", "path": "vendor", "multiruntime": False})
    assert options.isolation_path() == Path("/srv/app/vendor")


def test_isolation_path_absolute():
    options = Options.resolve({"root": "/srv/app", "path": "/opt/isolated"})
    assert options.isolation_path() == Path("/opt/isolated") / runtime_tag()


def test_runtime_tag_not_repeated():
    path = f"vendor/{runtime_tag()}"
    options = Options.resolve({"root": "/srv/app", "path": path})
    assert options.isolation_path() == Path("/srv/app") / path


def test_cleanup_requires_install():
    assert Options.resolve({"cleanup": True}).cleanup_enabled
    assert not Options.resolve({"install": False, "cleanup": True}).cleanup_enabled
    assert not Options.resolve({"cleanup": False}).cleanup_enabled


@pytest.mark.parametrize(
    "options",
    [
        {"speed": "fast"},
        {"system": "yes"},
        {"installer": "conda"},
        {"file": True},
    ],
)
def test_invalid_options(options):
    with pytest.raises(ConfigError):
        Options.resolve(options)


def test_installer_names():
    assert Options.resolve({"installer": "UV"}).installer is Installer.UV
    assert Options.resolve({"installer": Installer.PIP}).installer is Installer.PIP


def test_as_dict():
    data = Options.resolve({"root": "/srv/app", "installer": "uv"}).as_dict()
    assert data["installer"] == "uv"
    assert data["root"] == "/srv/app"
    assert data["path"] == "tmp/isolate"


@pytest.mark.parametrize(
    "environ,expected",
    [
        ({}, DEFAULT_ENVIRONMENT),
        ({"FLASK_ENV": "production"}, "production"),
        ({"APP_ENV": "staging", "FLASK_ENV": "production"}, "staging"),
        ({"ISOLATE_ENV": "test", "APP_ENV": "staging"}, "test"),
        ({"ISOLATE_ENV": "", "APP_ENV": "staging"}, "staging"),
    ],
)
def test_resolve_environment(environ, expected):
    assert resolve_environment(None, environ) == expected


def test_explicit_environment_wins():
    assert resolve_environment("ci", {"ISOLATE_ENV": "test"}) == "ci"
