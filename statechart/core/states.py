# statechart/core/states.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, FrozenSet, Mapping, Optional, Tuple

from statechart.core.actions import Action
from statechart.core.transitions import Transition
from statechart.core.types import HistoryMode, StateType


@dataclass(frozen=True)
class InvokeDefinition:
    """
    An actor started when its node is entered and stopped when it is exited.

    :param id: Actor id, unique within the machine; used as event origin.
    :param src: Actor logic (callback, coroutine or Machine).
    :param input: Value or callable ``(context, event)`` given to the actor.
    :param node_id: Id of the node owning the invocation.
    """

    id: str
    src: Any
    node_id: str
    input: Any = None


@dataclass(frozen=True)
class AfterDefinition:
    """A delayed transition: ``event_type`` is scheduled ``delay`` seconds after entry."""

    delay: Any
    event_type: str
    node_id: str

    @property
    def send_id(self) -> str:
        return self.event_type


@dataclass(frozen=True)
class StateNode:
    """
    Immutable node of a StateTree. Hierarchy is stored as ids; the parent is
    resolved through the tree that owns the node.
    """

    id: str
    key: str
    kind: StateType
    path: Tuple[str, ...] = ()
    parent_id: Optional[str] = None
    children: Tuple[str, ...] = ()
    initial: Optional[str] = None
    history: Optional[HistoryMode] = None
    history_target: Tuple[str, ...] = ()
    entry: Tuple[Action, ...] = ()
    exit: Tuple[Action, ...] = ()
    on: Mapping[str, Tuple[Transition, ...]] = field(default_factory=lambda: MappingProxyType({}))
    always: Tuple[Transition, ...] = ()
    invoke: Tuple[InvokeDefinition, ...] = ()
    after: Tuple[AfterDefinition, ...] = ()
    tags: FrozenSet[str] = frozenset()
    output: Any = None
    description: Optional[str] = None
    order: int = 0
    depth: int = 0

    @property
    def is_atomic(self) -> bool:
        """Atomic and final nodes are leaves of a configuration."""
        return self.kind in (StateType.ATOMIC, StateType.FINAL)

    @property
    def is_compound(self) -> bool:
        return self.kind is StateType.COMPOUND

    @property
    def is_parallel(self) -> bool:
        return self.kind is StateType.PARALLEL

    @property
    def is_final(self) -> bool:
        return self.kind is StateType.FINAL

    @property
    def is_history(self) -> bool:
        return self.kind is StateType.HISTORY

    @property
    def events(self) -> Tuple[str, ...]:
        """Event descriptors this node declares transitions for."""
        return tuple(self.on)

    @property
    def transitions(self) -> Tuple[Transition, ...]:
        """All transitions of this node, eventless ones last, in document order."""
        flat = [t for candidates in self.on.values() for t in candidates]
        flat.sort(key=lambda t: t.order)
        return tuple(flat) + self.always

    def __repr__(self) -> str:
        return f"StateNode({self.id!r}, {self.kind.value})"
