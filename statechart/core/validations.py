# statechart/core/validations.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from itertools import combinations
from typing import TYPE_CHECKING

from statechart.core.errors import ConfigurationError, StateNotFoundError
from statechart.core.transitions import Transition

if TYPE_CHECKING:
    from statechart.core.tree import StateTree


class Validator:
    """
    Performs construction-time validation of a state tree, ensuring nodes and
    transitions describe configurations the engine can actually enter.
    """

    def __init__(self) -> None:
        self._rules_engine = _ValidationRulesEngine()

    def validate_tree(self, tree: "StateTree") -> None:
        """
        Check the tree's nodes and transitions for consistency.

        :param tree: The tree to validate.
        :raises ConfigurationError: If validation fails.
        """
        self._rules_engine.validate_tree(tree)

    def validate_transition(self, tree: "StateTree", transition: Transition) -> None:
        """
        Check that a given transition is well-formed within the tree.

        :raises ConfigurationError: If validation fails.
        """
        self._rules_engine.validate_transition(tree, transition)


class _ValidationRulesEngine:
    """
    Internal engine applying the validation rules to nodes and transitions.
    """

    def __init__(self) -> None:
        self._default_rules = _DefaultValidationRules

    def validate_tree(self, tree: "StateTree") -> None:
        self._default_rules.validate_root(tree)
        for node in tree:
            self._default_rules.validate_node(tree, node.id)
            for transition in node.transitions:
                self.validate_transition(tree, transition)

    def validate_transition(self, tree: "StateTree", transition: Transition) -> None:
        self._default_rules.validate_transition(tree, transition)


class _DefaultValidationRules:
    """
    Built-in rules: a sensible root, well-placed history nodes, and
    transitions whose targets can be active at the same time.
    """

    @staticmethod
    def validate_root(tree: "StateTree") -> None:
        root = tree.root
        if root.is_history or root.is_final:
            raise ConfigurationError(f"The root state cannot be of type '{root.kind.value}'", root.id)

    @staticmethod
    def validate_node(tree: "StateTree", node_id: str) -> None:
        node = tree.get(node_id)
        if node.is_history:
            parent = tree.parent(node_id)
            if parent is None or not (parent.is_compound or parent.is_parallel):
                raise ConfigurationError("History states must be children of compound or parallel states", node_id)
            for target in node.history_target:
                if not tree.is_descendant(target, parent.id):
                    raise ConfigurationError(
                        f"History default '{target}' must be a descendant of '{parent.id}'", node_id
                    )
            if node.transitions or node.entry or node.exit or node.invoke:
                raise ConfigurationError("History states cannot have transitions, actions or actors", node_id)
        if node.is_compound and node.initial is not None and tree.get(node.initial).is_history:
            raise ConfigurationError("The initial state cannot be a history state", node_id)

    @staticmethod
    def validate_transition(tree: "StateTree", transition: Transition) -> None:
        """
        Every target must exist, ``in_state`` guards must name existing nodes,
        and multiple targets must lie in different regions of a parallel node.
        """
        for target in transition.targets:
            if target not in tree:
                raise StateNotFoundError(target, transition.source)
        if transition.guard is not None:
            for reference in transition.guard.references():
                if reference not in tree:
                    raise StateNotFoundError(reference, transition.source)
        for first, second in combinations(transition.targets, 2):
            if first == second or tree.is_descendant(first, second) or tree.is_descendant(second, first):
                raise ConfigurationError(
                    f"Targets '{first}' and '{second}' cannot be entered together", transition.source
                )
            common = next(a for a in tree.ancestors(first) if tree.is_descendant(second, a.id))
            if not common.is_parallel:
                raise ConfigurationError(
                    f"Targets '{first}' and '{second}' must be in different regions of a parallel state",
                    transition.source,
                )
