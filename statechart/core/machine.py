# statechart/core/machine.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import copy
import logging
from typing import Any, List, Mapping, Optional, Tuple

from statechart.core.definition import build_tree
from statechart.core.events import EventLike, to_event
from statechart.core.implementations import Implementations, to_implementations
from statechart.core.snapshot import State
from statechart.core.states import StateNode
from statechart.core.transitions import Transition
from statechart.core.tree import StateTree

logger = logging.getLogger(__name__)


class Machine:
    """
    A validated, immutable machine definition. The machine itself holds no
    running state: ``initial_state`` and ``transition`` are pure functions
    from snapshots to snapshots, and an Interpreter adds the live parts
    (custom actions, timers, actors).
    """

    def __init__(
        self,
        config: Mapping[str, Any],
        implementations: Optional[Implementations] = None,
        max_microsteps: int = 1000,
    ) -> None:
        """
        :param config: Machine definition mapping.
        :param implementations: Named actions, guards, delays and actors.
        :param max_microsteps: Upper bound on microsteps per macrostep.
        :raises ConfigurationError: If the definition is invalid.
        """
        from statechart.runtime.executor import MicrostepExecutor

        self._config = config
        self._implementations = implementations or Implementations()
        self._tree = build_tree(config, self._implementations)
        self._executor = MicrostepExecutor(self, max_microsteps=max_microsteps)
        self._max_microsteps = max_microsteps

    @property
    def id(self) -> str:
        return self._tree.root.id

    @property
    def tree(self) -> StateTree:
        return self._tree

    @property
    def root(self) -> StateNode:
        return self._tree.root

    @property
    def config(self) -> Mapping[str, Any]:
        return self._config

    @property
    def implementations(self) -> Implementations:
        return self._implementations

    @property
    def executor(self) -> Any:
        return self._executor

    @property
    def context(self) -> Any:
        """A fresh copy of the initial context."""
        context = self._config.get("context")
        if callable(context):
            return context()
        return copy.deepcopy(context)

    @property
    def events(self) -> Tuple[str, ...]:
        """Every event descriptor declared anywhere in the machine, in document order."""
        seen: List[str] = []
        for node in self._tree:
            for descriptor in node.events:
                if descriptor not in seen:
                    seen.append(descriptor)
        return tuple(seen)

    def get_node(self, node_id: str) -> StateNode:
        """
        Look up a node by id; a leading ``#`` is accepted.

        :raises StateNotFoundError: If no such node exists.
        """
        return self._tree.get(node_id[1:] if node_id.startswith("#") else node_id)

    @property
    def initial_state(self) -> State:
        """The start snapshot, computed without running custom actions."""
        return self._executor.enter_initial(self.context).state

    def get_initial_state(self, context: Any = None) -> State:
        """Start snapshot for an explicit initial context."""
        return self._executor.enter_initial(self.context if context is None else context).state

    def transition(self, state: State, event: EventLike, **payload: Any) -> State:
        """
        Compute the next snapshot without side effects: custom actions,
        logs, delayed events and actors are skipped; ``assign`` and
        undelayed ``raise_event`` are evaluated.

        :param state: The current snapshot.
        :param event: Event type, mapping with ``type`` or Event.
        :return: The next snapshot; ``changed`` is False for unhandled events.
        """
        return self._executor.macrostep(state, to_event(event, **payload)).state

    def select(self, state: State, event: EventLike) -> List[Transition]:
        """Transitions the given event would take from ``state``."""
        return self._executor.select(state, to_event(event))

    def provide(
        self,
        implementations: Optional[Any] = None,
        *,
        actions: Optional[Mapping[str, Any]] = None,
        guards: Optional[Mapping[str, Any]] = None,
        delays: Optional[Mapping[str, Any]] = None,
        actors: Optional[Mapping[str, Any]] = None,
    ) -> "Machine":
        """Return a new machine whose implementations are overridden by the given ones."""
        extra = to_implementations(
            implementations,
            **{
                k: v
                for k, v in (("actions", actions), ("guards", guards), ("delays", delays), ("actors", actors))
                if v
            },
        )
        return Machine(self._config, self._implementations.merge(extra), self._max_microsteps)

    def with_context(self, context: Any) -> "Machine":
        """Return a new machine with a different initial context."""
        return Machine({**self._config, "context": context}, self._implementations, self._max_microsteps)

    def __repr__(self) -> str:
        return f"Machine({self.id!r})"


def create_machine(
    config: Mapping[str, Any], implementations: Optional[Any] = None, max_microsteps: int = 1000, **kwargs: Any
) -> Machine:
    """
    Build a Machine from a definition.

    :param config: Machine definition mapping.
    :param implementations: An Implementations object or a mapping with any of
                            ``actions``, ``guards``, ``delays``, ``actors``.
    :param kwargs: Same kinds given as keyword arguments.
    :raises ConfigurationError: If the definition is invalid.
    """
    return Machine(config, to_implementations(implementations, **kwargs), max_microsteps=max_microsteps)
