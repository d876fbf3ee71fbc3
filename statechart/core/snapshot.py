# statechart/core/snapshot.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from dataclasses import dataclass, field
from functools import cached_property
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, FrozenSet, Mapping, Optional, Tuple

from statechart.core.events import WILDCARD, Event, EventLike, to_event
from statechart.core.transitions import Transition
from statechart.core.types import StateValue

if TYPE_CHECKING:
    from statechart.core.machine import Machine


@dataclass(frozen=True)
class State:
    """
    Immutable snapshot of a machine after a macrostep.

    :param configuration: Active node ids (leaves and all their ancestors)
                          in document order.
    :param context: Extended state data, replaced (never mutated) by assign.
    :param history_value: History node id to the node ids it remembers.
    :param event: The event that produced this snapshot.
    :param done: True once the root reached a final configuration.
    :param changed: True if at least one transition was taken.
    :param output: Output of the final state when ``done``.
    :param transitions: Transitions taken during the macrostep, in order.
    """

    configuration: Tuple[str, ...]
    context: Any
    event: Event
    machine: "Machine" = field(compare=False, repr=False)
    history_value: Mapping[str, Tuple[str, ...]] = field(default_factory=lambda: MappingProxyType({}))
    done: bool = False
    changed: bool = False
    output: Any = None
    transitions: Tuple[Transition, ...] = field(default=(), compare=False, repr=False)

    @cached_property
    def value(self) -> StateValue:
        """Nested state value, e.g. ``"green"`` or ``{"red": "walk"}``."""
        return self.machine.tree.value(self.configuration)

    def matches(self, value: StateValue) -> bool:
        """
        True when this snapshot is in the given (partial) state value.

        :param value: ``"red"``, ``"red.walk"`` or ``{"red": "walk"}``.
        """
        return self.machine.tree.matches(self.configuration, value)

    @cached_property
    def tags(self) -> FrozenSet[str]:
        tree = self.machine.tree
        return frozenset(tag for node_id in self.configuration for tag in tree.get(node_id).tags)

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags

    def can(self, event: EventLike, **payload: Any) -> bool:
        """True if sending the event would select at least one transition."""
        if self.done:
            return False
        return bool(self.machine.select(self, to_event(event, **payload)))

    @cached_property
    def next_events(self) -> Tuple[str, ...]:
        """
        Event types any active node declares transitions for, wildcards
        excluded, in document order of their first declaration.
        """
        seen = []
        tree = self.machine.tree
        for node_id in self.configuration:
            for descriptor in tree.get(node_id).events:
                if descriptor == WILDCARD or descriptor.endswith(".*") or descriptor in seen:
                    continue
                seen.append(descriptor)
        return tuple(seen)

    def active_nodes(self) -> Tuple[Any, ...]:
        tree = self.machine.tree
        return tuple(tree.get(node_id) for node_id in self.configuration)

    def to_dict(self) -> dict:
        return {
            "value": self.value,
            "context": self.context,
            "configuration": list(self.configuration),
            "done": self.done,
            "changed": self.changed,
            "output": self.output,
            "event": self.event.to_dict(),
        }

    def __repr__(self) -> str:
        return f"State(value={self.value!r}, context={self.context!r}, done={self.done})"


def freeze_history(history: Mapping[str, Any]) -> Mapping[str, Tuple[str, ...]]:
    return MappingProxyType({k: tuple(v) for k, v in history.items()})


def empty_state(machine: "Machine", context: Any, event: Event, output: Optional[Any] = None) -> State:
    """A snapshot with nothing active, used once a machine has been torn down."""
    return State(configuration=(), context=context, event=event, machine=machine, output=output)
