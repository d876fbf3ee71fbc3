# statechart/graph/options.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import itertools
import json
from dataclasses import dataclass, field, replace
from typing import Any, Callable, List, Mapping, Optional, Sequence, Union

from statechart.core.events import Event, EventLike, to_event
from statechart.core.snapshot import State

EventSource = Union[Sequence[EventLike], Callable[[State], Sequence[EventLike]]]


def serialize_state(state: State) -> str:
    """Default state fingerprint: the state value as canonical JSON."""
    return json.dumps(state.value, sort_keys=True)


def serialize_event(event: Event) -> str:
    """
    Default event key: the event type, or canonical JSON of the whole event
    when it carries a payload, so that event cases stay distinct.
    """
    if not event.data:
        return event.type
    return json.dumps(event.to_dict(), sort_keys=True, default=repr)


@dataclass(frozen=True)
class TraversalOptions:
    """
    Options for plan search.

    :param events: Candidate events for every state, or a callable returning
                   them for a given state. Defaults to the state's
                   ``next_events`` expanded by ``event_cases``.
    :param event_cases: Event type to payloads. Either a sequence of payload
                        mappings (one event each) or a mapping of field to
                        values (one event per combination).
    :param serialize_event: Event key used to deduplicate candidates.
    :param serialize_state: State fingerprint used to deduplicate states. It
                            must be deterministic.
    :param filter: States for which this returns False are not visited.
    :param limit: Maximum number of distinct states to visit.
    :param from_state: Start state instead of the machine's initial state.
    """

    events: Optional[EventSource] = None
    event_cases: Mapping[str, Any] = field(default_factory=dict)
    serialize_event: Callable[[Event], str] = serialize_event
    serialize_state: Callable[[State], str] = serialize_state
    filter: Optional[Callable[[State], bool]] = None
    limit: Optional[int] = None
    from_state: Optional[State] = None

    def candidate_events(self, state: State) -> List[Event]:
        """Distinct candidate events for ``state``, in enumeration order."""
        if self.events is None:
            candidates: List[Event] = []
            for event_type in state.next_events:
                candidates.extend(self._expand(event_type))
        else:
            source = self.events(state) if callable(self.events) else self.events
            candidates = [to_event(e) for e in source]

        seen = set()
        result = []
        for event in candidates:
            key = self.serialize_event(event)
            if key not in seen:
                seen.add(key)
                result.append(event)
        return result

    def _expand(self, event_type: str) -> List[Event]:
        cases = self.event_cases.get(event_type)
        if not cases:
            return [Event(event_type)]
        if isinstance(cases, Mapping):
            keys = list(cases)
            return [Event(event_type, dict(zip(keys, values))) for values in itertools.product(*cases.values())]
        return [Event(event_type, case) for case in cases]

    def accepts(self, state: State) -> bool:
        return self.filter is None or self.filter(state)


def resolve_options(options: Optional[TraversalOptions] = None, **kwargs: Any) -> TraversalOptions:
    """Accept options, keyword overrides, or both."""
    options = options or TraversalOptions()
    if kwargs:
        options = replace(options, **kwargs)
    return options