# statechart/core/events.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional, Union

from statechart.core.types import EventPayload

INIT_EVENT_TYPE = "statechart.init"
DONE_STATE_PREFIX = "done.state."
DONE_INVOKE_PREFIX = "done.invoke."
ERROR_PREFIX = "error.platform."
AFTER_PREFIX = "statechart.after"
WILDCARD = "*"


class Event:
    """
    Represents a signal processed by a statechart. An event has a type, an
    optional payload and, when it was emitted by an invoked actor, the id of
    that actor as its origin. Raised (internal) events have exactly the same
    shape as events sent from outside.
    """

    __slots__ = ("_type", "_data", "_origin")

    def __init__(self, type: str, data: Optional[EventPayload] = None, origin: Optional[str] = None) -> None:
        """
        :param type: A non-empty string identifying the event.
        :param data: Optional payload.
        :param origin: Id of the actor that emitted the event, if any.
        """
        if not type or not isinstance(type, str):
            raise ValueError("Event type must be a non-empty string")
        self._type = type
        self._data = MappingProxyType(dict(data or {}))
        self._origin = origin

    @property
    def type(self) -> str:
        """The type of the event."""
        return self._type

    @property
    def data(self) -> Mapping[str, Any]:
        """Read-only payload of the event."""
        return self._data

    @property
    def origin(self) -> Optional[str]:
        """Id of the actor that emitted this event, or None for external events."""
        return self._origin

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def with_origin(self, origin: Optional[str]) -> "Event":
        """Return a copy of this event tagged with the given origin."""
        return Event(self._type, self._data, origin)

    def to_dict(self) -> dict:
        return {"type": self._type, **self._data}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Event):
            return NotImplemented
        return self._type == other._type and dict(self._data) == dict(other._data) and self._origin == other._origin

    def __hash__(self) -> int:
        return hash(self._type)

    def __repr__(self) -> str:
        payload = f", data={dict(self._data)!r}" if self._data else ""
        origin = f", origin={self._origin!r}" if self._origin else ""
        return f"Event({self._type!r}{payload}{origin})"


EventLike = Union[Event, str, Mapping[str, Any]]


def to_event(event: EventLike, **payload: Any) -> Event:
    """
    Normalize a string, a mapping with a ``type`` key or an Event into an
    Event. Keyword arguments are merged into the payload.
    """
    if isinstance(event, Event):
        if not payload:
            return event
        return Event(event.type, {**event.data, **payload}, event.origin)
    if isinstance(event, str):
        return Event(event, payload)
    if isinstance(event, Mapping):
        data = dict(event)
        event_type = data.pop("type", None)
        if event_type is None:
            raise ValueError(f"Event mapping must contain a 'type' key: {event!r}")
        data.update(payload)
        return Event(event_type, data)
    raise TypeError(f"Cannot convert {type(event).__name__} to an Event")


def init_event() -> Event:
    return Event(INIT_EVENT_TYPE)


def done_state_event(node_id: str, output: Any = None) -> Event:
    """Event raised when a compound or parallel node reaches its final configuration."""
    return Event(DONE_STATE_PREFIX + node_id, {"output": output})


def done_invoke_event(invoke_id: str, output: Any = None) -> Event:
    """Event sent to the parent when an invoked actor completes."""
    return Event(DONE_INVOKE_PREFIX + invoke_id, {"output": output}, origin=invoke_id)


def error_event(invoke_id: str, error: BaseException) -> Event:
    """Event sent to the parent when an invoked actor fails."""
    return Event(ERROR_PREFIX + invoke_id, {"error": error}, origin=invoke_id)


def after_event_type(delay: Union[float, str], node_id: str) -> str:
    """Event type used for the delayed transition of ``node_id``."""
    return f"{AFTER_PREFIX}({delay})#{node_id}"
