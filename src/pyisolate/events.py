"""Lifecycle hooks.

Observers implement ``on_event(name, sandbox)``; plain callables can be
attached to a single hook with :meth:`EventHub.watch`. Hooks fire
synchronously, in registration order, and exceptions raised by a callback
propagate to whoever triggered the lifecycle step.

Hooks registered with the module-level :func:`watch` apply to every sandbox
and run before the sandbox's own observers.
"""

from typing import Any, Callable, List, Protocol, Tuple

EVENTS: Tuple[str, ...] = (
    "initializing",
    "initialized",
    "enabling",
    "enabled",
    "activating",
    "activated",
    "installing",
    "installed",
    "cleaning",
    "cleaned",
    "disabling",
    "disabled",
)


class Observer(Protocol):
    def on_event(self, name: str, sandbox: Any) -> None: ...


class _Hook:
    """Adapts a callback watching a single hook to the observer interface."""

    def __init__(self, name: str, callback: Callable[[Any], None]):
        self.name = name
        self.callback = callback

    def on_event(self, name: str, sandbox: Any) -> None:
        if name == self.name:
            self.callback(sandbox)


def _check(name: str) -> None:
    if name not in EVENTS:
        raise ValueError(f"Unknown event: {name}")


class EventHub:
    """Synchronous dispatch list."""

    def __init__(self) -> None:
        self._observers: List[Observer] = []

    def __len__(self) -> int:
        return len(self._observers)

    def register(self, observer: Observer) -> Observer:
        if not callable(getattr(observer, "on_event", None)):
            raise TypeError(f"{observer!r} does not implement on_event")
        self._observers.append(observer)
        return observer

    def unregister(self, observer: Observer) -> None:
        self._observers.remove(observer)

    def watch(self, name: str, callback: Callable[[Any], None]) -> Observer:
        """Call ``callback(sandbox)`` whenever ``name`` fires."""
        _check(name)
        return self.register(_Hook(name, callback))

    def fire(self, name: str, sandbox: Any) -> None:
        _check(name)
        for observer in list(self._observers):
            observer.on_event(name, sandbox)

    def clear(self) -> None:
        self._observers.clear()


GLOBAL_HUB = EventHub()


def watch(name: str, callback: Callable[[Any], None]) -> Observer:
    """Watch ``name`` on every sandbox in this process."""
    return GLOBAL_HUB.watch(name, callback)
