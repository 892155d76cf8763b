import pytest

from pyisolate.events import EVENTS, GLOBAL_HUB, EventHub, watch


class Recorder:
    def __init__(self, label, calls):
        self.label = label
        self.calls = calls

    def on_event(self, name, sandbox):
        self.calls.append((self.label, name, sandbox))


def test_observers_fire_in_registration_order():
    calls = []
    hub = EventHub()
    hub.register(Recorder("first", calls))
    hub.register(Recorder("second", calls))

    hub.fire("enabled", "sb")

    assert calls == [("first", "enabled", "sb"), ("second", "enabled", "sb")]


def test_watch_filters_by_name():
    seen = []
    hub = EventHub()
    hub.watch("cleaned", seen.append)

    hub.fire("cleaning", "sb")
    hub.fire("cleaned", "sb")

    assert seen == ["sb"]


def test_unregister():
    calls = []
    hub = EventHub()
    recorder = hub.register(Recorder("r", calls))
    hub.unregister(recorder)
    hub.fire("enabled", None)
    assert calls == []
    assert len(hub) == 0


def test_unknown_event_names():
    hub = EventHub()
    with pytest.raises(ValueError):
        hub.watch("exploded", print)
    with pytest.raises(ValueError):
        hub.fire("exploded", None)


def test_register_requires_on_event():
    with pytest.raises(TypeError):
        EventHub().register(object())


def test_callback_errors_propagate():
    hub = EventHub()

    def boom(sandbox):
        raise RuntimeError("hook failed")

    hub.watch("installing", boom)
    with pytest.raises(RuntimeError, match="hook failed"):
        hub.fire("installing", None)


def test_module_level_watch_uses_global_hub():
    seen = []
    watch("initialized", seen.append)
    GLOBAL_HUB.fire("initialized", "sb")
    assert seen == ["sb"]


def test_event_names():
    assert len(EVENTS) == 12
    assert EVENTS[:2] == ("initializing", "initialized")
