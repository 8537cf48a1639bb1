"""Event names and listener bookkeeping for the request emulator."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

_LOGGER = logging.getLogger(__name__)


class XHREvent(str, Enum):
    """Events emitted by an exchange."""

    READYSTATECHANGE = "readystatechange"
    LOADSTART = "loadstart"
    LOAD = "load"
    LOADEND = "loadend"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class Event:
    """Argument passed to every event callback."""

    type: str
    target: Any


Listener = Callable[[Event], Any]


@dataclass(slots=True)
class _EventSlot:
    """One ``on<event>`` handler plus the listeners added for that event."""

    handler: Listener | None = None
    listeners: list[Listener] = field(default_factory=list)


def _coerce_event(name: XHREvent | str) -> XHREvent:
    """Map a raw event name onto the fixed event table."""

    try:
        return XHREvent(name)
    except ValueError as exc:
        raise ValueError(f"Unsupported event type {name!r}") from exc


class EventTable:
    """Fixed table of event slots owned by a single emulator."""

    def __init__(self) -> None:
        """Create an empty slot for every known event."""

        self._slots: dict[XHREvent, _EventSlot] = {
            event: _EventSlot() for event in XHREvent
        }

    def get_handler(self, name: XHREvent | str) -> Listener | None:
        """Return the ``on<event>`` handler for ``name``."""

        return self._slots[_coerce_event(name)].handler

    def set_handler(self, name: XHREvent | str, handler: Listener | None) -> None:
        """Replace the ``on<event>`` handler for ``name``."""

        self._slots[_coerce_event(name)].handler = handler

    def add(self, name: XHREvent | str, listener: Listener) -> None:
        """Append ``listener``; duplicates are kept and called twice."""

        self._slots[_coerce_event(name)].listeners.append(listener)

    def remove(self, name: XHREvent | str, listener: Listener) -> None:
        """Drop every registration of ``listener`` for ``name``."""

        slot = self._slots[_coerce_event(name)]
        slot.listeners = [item for item in slot.listeners if item is not listener]

    def listeners(self, name: XHREvent | str) -> list[Listener]:
        """Return a copy of the listeners registered for ``name``."""

        return list(self._slots[_coerce_event(name)].listeners)

    def dispatch(self, name: XHREvent | str, target: Any) -> None:
        """Invoke the handler, then each listener in registration order.

        A failing callback is logged and does not stop the remaining ones.
        """

        event_type = _coerce_event(name)
        slot = self._slots[event_type]
        callbacks = [slot.handler] if slot.handler is not None else []
        callbacks.extend(slot.listeners)
        event = Event(type=event_type.value, target=target)
        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                _LOGGER.exception("Listener for %s event failed", event_type.value)
