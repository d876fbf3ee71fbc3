# statechart/runtime/selector.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
from typing import Any, Callable, Collection, Iterable, List, Mapping, Optional, Sequence

from statechart.core.events import Event
from statechart.core.states import StateNode
from statechart.core.transitions import Transition, candidate_descriptors
from statechart.core.tree import StateTree

logger = logging.getLogger(__name__)


class TransitionSelector:
    """
    Chooses the transitions enabled by an event in a configuration. Each
    active leaf walks up through its ancestors; the first node with an
    enabled candidate wins for that leaf, so deeper nodes shadow their
    ancestors. Nodes whose candidates are all disabled do not stop the walk.
    """

    def __init__(self, tree: StateTree) -> None:
        self._tree = tree

    def select(
        self,
        configuration: Collection[str],
        context: Any,
        event: Event,
        history: Optional[Mapping[str, Sequence[str]]] = None,
    ) -> List[Transition]:
        """
        Transitions enabled by ``event``, in document order of the leaves that
        selected them, with conflicting transitions removed.

        :param configuration: Active node ids.
        :param context: Current context, passed to guards.
        :param event: The event being processed.
        :param history: Recorded history, used to compute exit sets.
        """
        descriptors = candidate_descriptors(event.type)

        def candidates(node: StateNode) -> Iterable[Transition]:
            for descriptor in descriptors:
                yield from node.on.get(descriptor, ())

        return self._select(configuration, context, event, candidates, history or {})

    def select_eventless(
        self,
        configuration: Collection[str],
        context: Any,
        event: Event,
        history: Optional[Mapping[str, Sequence[str]]] = None,
    ) -> List[Transition]:
        """
        Enabled ``always`` transitions. Their guards see the event of the
        current macrostep.
        """
        return self._select(configuration, context, event, lambda node: node.always, history or {})

    def _select(
        self,
        configuration: Collection[str],
        context: Any,
        event: Event,
        candidates: Callable[[StateNode], Iterable[Transition]],
        history: Mapping[str, Sequence[str]],
    ) -> List[Transition]:
        selected: List[Transition] = []
        seen = set()
        for leaf_id in self._tree.leaves(configuration):
            leaf = self._tree.get(leaf_id)
            for node in [leaf] + self._tree.ancestors(leaf_id):
                found = next((t for t in candidates(node) if t.enabled(context, event, configuration)), None)
                if found is not None:
                    if found.key not in seen:
                        seen.add(found.key)
                        selected.append(found)
                    break
        if selected:
            logger.debug("Event '%s' selected %s", event.type, selected)
        return self.remove_conflicts(selected, configuration, history)

    def remove_conflicts(
        self,
        transitions: List[Transition],
        configuration: Collection[str],
        history: Mapping[str, Sequence[str]],
    ) -> List[Transition]:
        """
        Drop transitions whose exit sets intersect an earlier one. A
        transition from a descendant source preempts the earlier one;
        otherwise the earlier one (document order) is kept.
        """
        if len(transitions) < 2:
            return transitions
        tree = self._tree

        def exit_set(t: Transition) -> set:
            return set(tree.exit_set(t.source, t.targets, t.internal, configuration, history))

        filtered: List[Transition] = []
        for candidate in transitions:
            candidate_exits = exit_set(candidate)
            preempted = False
            displaced = []
            for kept in filtered:
                if candidate_exits & exit_set(kept):
                    if tree.is_descendant(candidate.source, kept.source):
                        displaced.append(kept)
                    else:
                        preempted = True
                        break
            if not preempted:
                for kept in displaced:
                    filtered.remove(kept)
                filtered.append(candidate)
        return filtered
