# statechart/core/definition.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

"""
Builds a StateTree from a machine definition.

A definition is a nested mapping in the familiar statechart shape::

    {
        "id": "light",
        "initial": "green",
        "states": {
            "green": {"on": {"TIMER": "yellow"}},
            "yellow": {"on": {"TIMER": "red"}},
            "red": {"after": {2: "green"}},
        },
    }

Parsing happens in two passes. The first pass assigns ids, kinds and
document order to every node; the second resolves transition targets,
guards, actions, delays and actors against the finished id table. Nothing
is resolved lazily, so a definition either builds completely or raises
ConfigurationError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from statechart.core.actions import to_actions
from statechart.core.errors import ConfigurationError, StateNotFoundError
from statechart.core.events import DONE_INVOKE_PREFIX, ERROR_PREFIX, after_event_type
from statechart.core.guards import to_guard
from statechart.core.implementations import Implementations
from statechart.core.states import AfterDefinition, InvokeDefinition, StateNode
from statechart.core.transitions import Transition
from statechart.core.tree import StateTree
from statechart.core.types import HistoryMode, StateType
from statechart.core.validations import Validator

logger = logging.getLogger(__name__)

DEFAULT_MACHINE_ID = "(machine)"

_NODE_KEYS = frozenset(
    {
        "id",
        "type",
        "initial",
        "states",
        "on",
        "always",
        "entry",
        "exit",
        "after",
        "invoke",
        "tags",
        "output",
        "history",
        "target",
        "description",
        "meta",
    }
)
_ROOT_KEYS = _NODE_KEYS | {"context"}
_TRANSITION_KEYS = frozenset({"target", "guard", "actions", "internal", "description"})
_INVOKE_KEYS = frozenset({"src", "id", "input", "on_done", "on_error"})


@dataclass
class _Draft:
    """Mutable node record used while the definition is being parsed."""

    id: str
    key: str
    path: Tuple[str, ...]
    kind: StateType
    config: Mapping[str, Any]
    order: int
    depth: int
    parent_id: Optional[str] = None
    children: List[str] = field(default_factory=list)


class _DefinitionParser:
    def __init__(self, config: Mapping[str, Any], implementations: Implementations) -> None:
        self._config = config
        self._implementations = implementations
        self._drafts: Dict[str, _Draft] = {}
        self._by_path: Dict[Tuple[str, ...], str] = {}
        self._order = 0
        self._transition_order = 0

    def parse(self) -> StateTree:
        if not isinstance(self._config, Mapping):
            raise ConfigurationError("Machine definition must be a mapping")
        unknown = set(self._config) - _ROOT_KEYS
        if unknown:
            raise ConfigurationError(f"Unknown keys in machine definition: {sorted(unknown)}")
        root_id = self._config.get("id") or DEFAULT_MACHINE_ID
        self._collect(root_id, root_id, (), self._config, None, 0)
        nodes = [self._build(draft) for draft in self._drafts.values()]
        return StateTree(nodes, root_id)

    # ----------------------------------------------------------------------
    # Pass 1: ids, kinds and document order
    # ----------------------------------------------------------------------

    def _collect(
        self,
        node_id: str,
        key: str,
        path: Tuple[str, ...],
        config: Mapping[str, Any],
        parent_id: Optional[str],
        depth: int,
    ) -> None:
        if node_id in self._drafts:
            raise ConfigurationError(f"Duplicate state id '{node_id}'", node_id)
        kind = self._kind(node_id, config)
        draft = _Draft(node_id, key, path, kind, config, self._order, depth, parent_id)
        self._order += 1
        self._drafts[node_id] = draft
        self._by_path[path] = node_id

        root_id = self._config.get("id") or DEFAULT_MACHINE_ID
        for child_key, child_config in (config.get("states") or {}).items():
            if not isinstance(child_key, str) or not child_key or "." in child_key:
                raise ConfigurationError(f"Invalid state key {child_key!r}", node_id)
            if child_config is None:
                child_config = {}
            if not isinstance(child_config, Mapping):
                raise ConfigurationError(f"State '{child_key}' must be defined by a mapping", node_id)
            unknown = set(child_config) - _NODE_KEYS
            if unknown:
                raise ConfigurationError(f"Unknown keys in state '{child_key}': {sorted(unknown)}", node_id)
            child_path = path + (child_key,)
            child_id = child_config.get("id") or ".".join((root_id,) + child_path)
            draft.children.append(child_id)
            self._collect(child_id, child_key, child_path, child_config, node_id, depth + 1)

    @staticmethod
    def _kind(node_id: str, config: Mapping[str, Any]) -> StateType:
        declared = config.get("type")
        has_states = bool(config.get("states"))
        if declared is None:
            return StateType.COMPOUND if has_states else StateType.ATOMIC
        try:
            kind = StateType(declared)
        except ValueError:
            raise ConfigurationError(f"Unknown state type {declared!r}", node_id) from None
        if kind in (StateType.ATOMIC, StateType.FINAL, StateType.HISTORY) and has_states:
            raise ConfigurationError(f"A {kind.value} state cannot have child states", node_id)
        if kind is StateType.PARALLEL and not has_states:
            raise ConfigurationError("A parallel state needs at least one region", node_id)
        if kind is StateType.COMPOUND and not has_states:
            raise ConfigurationError("A compound state needs child states", node_id)
        return kind

    # ----------------------------------------------------------------------
    # Pass 2: resolution
    # ----------------------------------------------------------------------

    def _build(self, draft: _Draft) -> StateNode:
        config = draft.config
        impl = self._implementations

        on: Dict[str, List[Transition]] = {}
        for event_type, spec in (config.get("on") or {}).items():
            if not isinstance(event_type, str) or not event_type:
                raise ConfigurationError(f"Invalid event descriptor {event_type!r}", draft.id)
            on.setdefault(event_type, []).extend(self._transitions(draft, event_type, spec))

        after = []
        for delay_key, spec in (config.get("after") or {}).items():
            delay = self._delay(draft, delay_key)
            event_type = after_event_type(delay_key, draft.id)
            after.append(AfterDefinition(delay, event_type, draft.id))
            on.setdefault(event_type, []).extend(self._transitions(draft, event_type, spec))

        invoke = []
        for index, spec in enumerate(_as_list(config.get("invoke"))):
            if not isinstance(spec, Mapping):
                spec = {"src": spec}
            definition = self._invoke(draft, index, spec)
            invoke.append(definition)
            if "on_done" in spec:
                event_type = DONE_INVOKE_PREFIX + definition.id
                on.setdefault(event_type, []).extend(self._transitions(draft, event_type, spec["on_done"]))
            if "on_error" in spec:
                event_type = ERROR_PREFIX + definition.id
                on.setdefault(event_type, []).extend(self._transitions(draft, event_type, spec["on_error"]))

        always = self._transitions(draft, None, config.get("always")) if "always" in config else []

        history = None
        history_target: Tuple[str, ...] = ()
        if draft.kind is StateType.HISTORY:
            try:
                history = HistoryMode(config.get("history", "shallow"))
            except ValueError:
                raise ConfigurationError(f"Unknown history mode {config.get('history')!r}", draft.id) from None
            if config.get("target") is not None:
                history_target = tuple(self._resolve(draft, t) for t in _as_list(config["target"]))
        elif "history" in config:
            raise ConfigurationError("'history' is only valid on history states", draft.id)

        tags = config.get("tags") or ()
        if isinstance(tags, str):
            tags = (tags,)

        return StateNode(
            id=draft.id,
            key=draft.key,
            kind=draft.kind,
            path=draft.path,
            parent_id=draft.parent_id,
            children=tuple(draft.children),
            initial=self._initial(draft),
            history=history,
            history_target=history_target,
            entry=to_actions(config.get("entry"), impl),
            exit=to_actions(config.get("exit"), impl),
            on=MappingProxyType({k: tuple(v) for k, v in on.items()}),
            always=tuple(always),
            invoke=tuple(invoke),
            after=tuple(after),
            tags=frozenset(tags),
            output=config.get("output"),
            description=config.get("description"),
            order=draft.order,
            depth=draft.depth,
        )

    def _initial(self, draft: _Draft) -> Optional[str]:
        initial = draft.config.get("initial")
        if draft.kind is not StateType.COMPOUND:
            if initial is not None:
                raise ConfigurationError(f"A {draft.kind.value} state cannot declare 'initial'", draft.id)
            return None
        if initial is None:
            candidates = [c for c in draft.children if self._drafts[c].kind is not StateType.HISTORY]
            if not candidates:
                raise ConfigurationError("A compound state needs a non-history child", draft.id)
            return candidates[0]
        child_id = self._by_path.get(draft.path + (initial,)) if isinstance(initial, str) else None
        if child_id is None or self._drafts[child_id].parent_id != draft.id:
            raise ConfigurationError(f"Initial state '{initial}' is not a child of '{draft.id}'", draft.id)
        return child_id

    def _transitions(self, draft: _Draft, event_type: Optional[str], spec: Any) -> List[Transition]:
        if isinstance(spec, (list, tuple)):
            if spec and all(isinstance(item, str) for item in spec):
                candidates: Sequence[Any] = [{"target": list(spec)}]
            else:
                candidates = spec
        else:
            candidates = [spec]

        result = []
        for candidate in candidates:
            if candidate is None:
                candidate = {}
            elif isinstance(candidate, str):
                candidate = {"target": candidate}
            elif not isinstance(candidate, Mapping):
                raise ConfigurationError(f"Invalid transition {candidate!r}", draft.id)
            unknown = set(candidate) - _TRANSITION_KEYS
            if unknown:
                raise ConfigurationError(f"Unknown keys in transition: {sorted(unknown)}", draft.id)

            references = _as_list(candidate.get("target"))
            targets = tuple(self._resolve(draft, ref) for ref in references)
            internal = candidate.get("internal")
            if internal is None:
                internal = bool(references) and all(ref.startswith(".") for ref in references)
            guard = candidate.get("guard")

            result.append(
                Transition(
                    source=draft.id,
                    event_type=event_type,
                    targets=targets,
                    guard=to_guard(guard, self._implementations.guards) if guard is not None else None,
                    actions=to_actions(candidate.get("actions"), self._implementations),
                    internal=bool(internal),
                    order=self._transition_order,
                )
            )
            self._transition_order += 1
        return result

    def _resolve(self, draft: _Draft, reference: Any) -> str:
        """
        Resolve a target reference: ``#id``, ``#id.child``, ``.child``
        (relative to the node itself) or ``sibling.child`` (relative to the
        parent).
        """
        if not isinstance(reference, str) or not reference:
            raise ConfigurationError(f"Invalid target {reference!r}", draft.id)
        if reference.startswith("#"):
            return self._resolve_by_id(draft, reference)
        if reference.startswith("."):
            base = draft.path
            keys = reference[1:].split(".")
        else:
            parent = self._drafts.get(draft.parent_id) if draft.parent_id else None
            base = parent.path if parent else draft.path
            keys = reference.split(".")
        node_id = self._by_path.get(base + tuple(keys))
        if node_id is None:
            raise StateNotFoundError(reference, draft.id)
        return node_id

    def _resolve_by_id(self, draft: _Draft, reference: str) -> str:
        body = reference[1:]
        if body in self._drafts:
            return body
        parts = body.split(".")
        for split in range(len(parts) - 1, 0, -1):
            head = ".".join(parts[:split])
            if head in self._drafts:
                node_id = self._by_path.get(self._drafts[head].path + tuple(parts[split:]))
                if node_id is not None:
                    return node_id
        raise StateNotFoundError(reference, draft.id)

    def _delay(self, draft: _Draft, key: Any) -> Any:
        if isinstance(key, bool):
            raise ConfigurationError(f"Invalid delay {key!r}", draft.id)
        if isinstance(key, (int, float)):
            delay: Any = float(key)
        else:
            try:
                delay = float(key)
            except (TypeError, ValueError):
                delay = self._implementations.delay(key)
        if isinstance(delay, (int, float)) and delay < 0:
            raise ConfigurationError(f"Delay {key!r} must not be negative", draft.id)
        return delay

    def _invoke(self, draft: _Draft, index: int, spec: Mapping[str, Any]) -> InvokeDefinition:
        unknown = set(spec) - _INVOKE_KEYS
        if unknown:
            raise ConfigurationError(f"Unknown keys in invoke: {sorted(unknown)}", draft.id)
        src = spec.get("src")
        if src is None:
            raise ConfigurationError("An invoke definition needs a 'src'", draft.id)
        if isinstance(src, str):
            src = self._implementations.actor(src)
        invoke_id = spec.get("id") or f"{draft.id}:invocation[{index}]"
        return InvokeDefinition(id=invoke_id, src=src, node_id=draft.id, input=spec.get("input"))


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def build_tree(config: Mapping[str, Any], implementations: Optional[Implementations] = None) -> StateTree:
    """
    Parse and validate a machine definition.

    :param config: The definition mapping.
    :param implementations: Named actions, guards, delays and actors.
    :raises ConfigurationError: If the definition is invalid.
    """
    tree = _DefinitionParser(config, implementations or Implementations()).parse()
    Validator().validate_tree(tree)
    logger.debug("Built state tree '%s' with %d nodes", tree.root.id, len(tree))
    return tree
