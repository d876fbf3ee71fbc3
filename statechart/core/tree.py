# statechart/core/tree.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Collection, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from statechart.core.errors import StateNotFoundError
from statechart.core.states import StateNode
from statechart.core.types import StateValue


class StateTree:
    """
    Immutable arena of StateNodes. Nodes refer to their parent and children
    by id; every hierarchy query goes through the tree. Built once by the
    definition parser and shared by every snapshot of a machine.
    """

    def __init__(self, nodes: Iterable[StateNode], root_id: str) -> None:
        ordered = sorted(nodes, key=lambda n: n.order)
        self._nodes: Mapping[str, StateNode] = MappingProxyType({n.id: n for n in ordered})
        if root_id not in self._nodes:
            raise StateNotFoundError(root_id)
        self._root_id = root_id
        self._by_path: Dict[Tuple[str, ...], str] = {n.path: n.id for n in ordered}

    @property
    def root(self) -> StateNode:
        return self._nodes[self._root_id]

    @property
    def nodes(self) -> Mapping[str, StateNode]:
        return self._nodes

    def get(self, node_id: str) -> StateNode:
        """
        Return the node with the given id.

        :raises StateNotFoundError: If no such node exists.
        """
        try:
            return self._nodes[node_id]
        except KeyError:
            raise StateNotFoundError(node_id) from None

    def find(self, path: Sequence[str]) -> Optional[StateNode]:
        """Return the node at a key path relative to the root, if any."""
        node_id = self._by_path.get(tuple(path))
        return self._nodes[node_id] if node_id is not None else None

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __iter__(self) -> Iterator[StateNode]:
        return iter(self._nodes.values())

    def __len__(self) -> int:
        return len(self._nodes)

    # ----------------------------------------------------------------------
    # Hierarchy
    # ----------------------------------------------------------------------

    def parent(self, node_id: str) -> Optional[StateNode]:
        parent_id = self.get(node_id).parent_id
        return self._nodes[parent_id] if parent_id is not None else None

    def children(self, node_id: str) -> List[StateNode]:
        """Children in document order, history pseudo-states included."""
        return [self._nodes[c] for c in self.get(node_id).children]

    def state_children(self, node_id: str) -> List[StateNode]:
        """Children that can become active, i.e. without history pseudo-states."""
        return [c for c in self.children(node_id) if not c.is_history]

    def ancestors(self, node_id: str, stop_at: Optional[str] = None) -> List[StateNode]:
        """
        Proper ancestors of a node, nearest first.

        :param stop_at: If given, the walk ends before reaching this node.
        """
        result = []
        current = self.get(node_id).parent_id
        while current is not None and current != stop_at:
            node = self._nodes[current]
            result.append(node)
            current = node.parent_id
        return result

    def is_descendant(self, node_id: str, ancestor_id: str) -> bool:
        """True if ``node_id`` is a proper descendant of ``ancestor_id``."""
        current = self.get(node_id).parent_id
        while current is not None:
            if current == ancestor_id:
                return True
            current = self._nodes[current].parent_id
        return False

    def descendants(self, node_id: str) -> List[StateNode]:
        """Proper descendants in document order."""
        result: List[StateNode] = []
        for child in self.children(node_id):
            result.append(child)
            result.extend(self.descendants(child.id))
        return result

    def document_order(self, node_ids: Iterable[str]) -> Tuple[str, ...]:
        return tuple(sorted(set(node_ids), key=lambda i: self._nodes[i].order))

    def reverse_document_order(self, node_ids: Iterable[str]) -> Tuple[str, ...]:
        return tuple(sorted(set(node_ids), key=lambda i: self._nodes[i].order, reverse=True))

    def domain(self, source_id: str, target_ids: Sequence[str], internal: bool = False) -> Optional[str]:
        """
        The node a transition is scoped to: nothing outside it is exited or
        entered. None for targetless transitions.

        Internal transitions whose targets all lie inside a compound or
        parallel source are scoped to the source. Otherwise the domain is the
        nearest proper ancestor of the source that is a proper ancestor of
        every target.
        """
        if not target_ids:
            return None
        source = self.get(source_id)
        if (
            internal
            and (source.is_compound or source.is_parallel)
            and all(self.is_descendant(t, source_id) for t in target_ids)
        ):
            return source_id
        for ancestor in self.ancestors(source_id):
            if all(self.is_descendant(t, ancestor.id) for t in target_ids):
                return ancestor.id
        if source.parent_id is None and all(self.is_descendant(t, source_id) for t in target_ids):
            return source_id
        # Targets include the root itself: everything is exited and re-entered.
        return None

    def effective_targets(self, target_ids: Sequence[str], history: Mapping[str, Sequence[str]]) -> Tuple[str, ...]:
        """
        Replace history pseudo-states by what they stand for: the recorded
        nodes, else the history node's default target, else the parent's
        initial child (all regions for a parallel parent).
        """
        result: List[str] = []
        for target_id in target_ids:
            node = self.get(target_id)
            if not node.is_history:
                result.append(target_id)
            elif target_id in history:
                result.extend(history[target_id])
            elif node.history_target:
                result.extend(self.effective_targets(node.history_target, history))
            else:
                result.extend(self.default_children(node.parent_id))
        return tuple(result)

    def default_children(self, node_id: str) -> Tuple[str, ...]:
        """Children entered when a node is entered without an explicit target below it."""
        node = self.get(node_id)
        if node.is_compound:
            return (node.initial,)
        if node.is_parallel:
            return tuple(c.id for c in self.state_children(node_id))
        return ()

    def exit_set(
        self,
        source_id: str,
        target_ids: Sequence[str],
        internal: bool,
        configuration: Collection[str],
        history: Mapping[str, Sequence[str]],
    ) -> Tuple[str, ...]:
        """
        Active nodes a transition exits, deepest first: the active proper
        descendants of its domain, except proper ancestors of its targets.
        """
        if not target_ids:
            return ()
        effective = self.effective_targets(target_ids, history)
        domain = self.domain(source_id, effective, internal)
        kept = {a.id for t in effective for a in self.ancestors(t)}
        if domain is None:
            candidates: Iterable[str] = configuration
        else:
            candidates = (c for c in configuration if self.is_descendant(c, domain))
        return self.reverse_document_order(c for c in candidates if c not in kept)

    # ----------------------------------------------------------------------
    # Configurations
    # ----------------------------------------------------------------------

    def leaves(self, configuration: Collection[str]) -> Tuple[str, ...]:
        """Active atomic and final nodes, in document order."""
        return self.document_order(i for i in configuration if self._nodes[i].is_atomic)

    def is_in_final_state(self, node_id: str, configuration: Collection[str]) -> bool:
        """
        True when a compound node's active child is final, or when every
        region of a parallel node is in a final state.
        """
        node = self.get(node_id)
        if node.is_compound:
            return any(c.is_final and c.id in configuration for c in self.state_children(node_id))
        if node.is_parallel:
            return all(self.is_in_final_state(c.id, configuration) for c in self.state_children(node_id))
        return node.is_final

    def value(self, configuration: Collection[str]) -> StateValue:
        """
        Nested state value of a configuration, e.g. ``"green"`` or
        ``{"red": "walk"}``; parallel nodes map every region key.
        """
        return self._node_value(self._root_id, configuration)

    def _node_value(self, node_id: str, configuration: Collection[str]) -> Any:
        node = self._nodes[node_id]
        if node.is_parallel:
            return {c.key: self._node_value(c.id, configuration) for c in self.state_children(node_id)}
        if node.is_compound:
            for child in self.state_children(node_id):
                if child.id in configuration:
                    if child.is_atomic:
                        return child.key
                    return {child.key: self._node_value(child.id, configuration)}
        return {}

    def matches(self, configuration: Collection[str], value: StateValue) -> bool:
        """
        True when the configuration contains the given (partial) state value.
        Strings may be dotted key paths: ``"red.walk"``.
        """
        return self._matches(self._root_id, configuration, value)

    def _matches(self, node_id: str, configuration: Collection[str], value: Any) -> bool:
        if isinstance(value, str):
            path = value.split(".")
            return self._matches(node_id, configuration, _nest(path))
        if isinstance(value, Mapping):
            node = self._nodes[node_id]
            for key, sub_value in value.items():
                child = self._child_by_key(node, key)
                if child is None or child.id not in configuration:
                    return False
                if sub_value is None or sub_value == {}:
                    continue
                if not self._matches(child.id, configuration, sub_value):
                    return False
            return True
        return False

    def _child_by_key(self, node: StateNode, key: str) -> Optional[StateNode]:
        child_id = self._by_path.get(node.path + (key,))
        return self._nodes[child_id] if child_id is not None else None


def _nest(path: Sequence[str]) -> Any:
    if len(path) == 1:
        return {path[0]: None}
    return {path[0]: _nest(path[1:])}
