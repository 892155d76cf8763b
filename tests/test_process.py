import os

from pyisolate.environments.process import ProcessEnvironment, get_ambient_paths

from conftest import AMBIENT


def test_snapshot_restore_round_trip(process):
    before = process.snapshot()

    process.set("PIP_TARGET", "/tmp/x")
    process.prepend("PATH", "/tmp/x/bin")
    process.environ.pop("PYTHONPATH", None)
    process.put_first("/tmp/x")
    process.prune_ambient()

    process.restore(before)

    assert process.snapshot() == before
    assert "PIP_TARGET" not in process.environ
    assert process.environ["PATH"] == "/usr/bin:/bin"


def test_restore_keeps_list_identity(process):
    path = process.path
    snapshot = process.snapshot()
    process.put_first("/tmp/x")
    process.restore(snapshot)
    assert process.path is path


def test_prepend_is_idempotent(process):
    process.prepend("PATH", "/opt/bin")
    process.prepend("PATH", "/opt/bin")
    assert process.environ["PATH"] == os.pathsep.join(["/opt/bin", "/usr/bin", "/bin"])

    process.prepend("PYTHONPATH", "/opt/lib")
    assert process.environ["PYTHONPATH"] == "/opt/lib"


def test_put_first_moves_existing_entry(process):
    process.put_first("/home/dev/project")
    assert process.path[0] == "/home/dev/project"
    assert process.path.count("/home/dev/project") == 1


def test_prune_ambient(process, captured_logs):
    removed = process.prune_ambient()

    assert removed == [AMBIENT, f"{AMBIENT}/extra"]
    assert process.path == ["", "/usr/lib/python3.12", "/home/dev/project"]
    assert captured_logs[0]["event"]["event"] == "pruned_module_path"


def test_prune_keeps_listed_entries():
    keep = f"{AMBIENT}/pyisolate-src"
    process = ProcessEnvironment(
        environ={},
        path=[AMBIENT, keep, "/elsewhere"],
        ambient_paths=[AMBIENT],
        keep=[keep, AMBIENT],
    )
    process.prune_ambient()
    assert process.path == [keep, "/elsewhere"]


def test_defaults_to_real_process():
    import sys

    process = ProcessEnvironment()
    assert process.environ is os.environ
    assert process.path is sys.path


def test_get_ambient_paths_are_absolute():
    assert all(os.path.isabs(p) for p in get_ambient_paths())


def test_site_packages_install_is_still_pruned():
    """pyisolate living in site-packages does not keep that directory"""
    process = ProcessEnvironment(
        environ={},
        path=["/home/dev/project", AMBIENT],
        ambient_paths=[AMBIENT],
        keep=[AMBIENT],
    )

    assert process.prune_ambient() == [AMBIENT]
    assert process.path == ["/home/dev/project"]
