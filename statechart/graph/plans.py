# statechart/graph/plans.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

"""
Plan search over the reachable state graph of a machine.

States are synthesized with the machine's pure ``transition`` function, so
no interpreter, timer or actor is ever involved. States are deduplicated by
fingerprint (``serialize_state``), never by path, which keeps self-loops and
delayed transitions from producing unbounded traversals.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Set, Tuple

from statechart.core.errors import InvalidPathError, TraversalLimitError
from statechart.core.events import Event, EventLike, to_event
from statechart.core.machine import Machine
from statechart.core.snapshot import State
from statechart.graph.options import TraversalOptions, resolve_options

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Step:
    """One event of a plan and the state it leads to."""

    event: Event
    state: State
    key: str


@dataclass(frozen=True)
class Plan:
    """
    Ordered events leading from the start state to ``state``.

    :param state: The state the plan reaches.
    :param key: Fingerprint of ``state``.
    :param steps: The steps taken, in order.
    """

    state: State
    key: str
    steps: Tuple[Step, ...] = ()

    @property
    def events(self) -> Tuple[Event, ...]:
        return tuple(step.event for step in self.steps)

    @property
    def weight(self) -> int:
        return len(self.steps)

    def __len__(self) -> int:
        return len(self.steps)

    def extend(self, step: Step) -> "Plan":
        return Plan(step.state, step.key, self.steps + (step,))

    def __repr__(self) -> str:
        return f"Plan({self.key}, events={[e.type for e in self.events]})"


def _start(machine: Machine, options: TraversalOptions) -> Plan:
    state = options.from_state if options.from_state is not None else machine.initial_state
    return Plan(state, options.serialize_state(state))


def _successors(machine: Machine, plan: Plan, options: TraversalOptions) -> Iterable[Step]:
    state = plan.state
    for event in options.candidate_events(state):
        next_state = machine.transition(state, event)
        if not options.accepts(next_state):
            continue
        yield Step(event, next_state, options.serialize_state(next_state))


def get_shortest_plans(
    machine: Machine, options: Optional[TraversalOptions] = None, **kwargs: Any
) -> Dict[str, Plan]:
    """
    Breadth-first search from the start state.

    :return: Fingerprint to the shortest plan reaching it. The start state
             maps to an empty plan. Among plans of equal length the one found
             first, in candidate-event order, wins.
    :raises TraversalLimitError: If more than ``options.limit`` states are visited.
    """
    options = resolve_options(options, **kwargs)
    start = _start(machine, options)
    plans: Dict[str, Plan] = {start.key: start}
    frontier: Deque[Plan] = deque([start])

    while frontier:
        plan = frontier.popleft()
        if plan.state.done:
            continue
        for step in _successors(machine, plan, options):
            if step.key in plans:
                continue
            if options.limit is not None and len(plans) >= options.limit:
                raise TraversalLimitError(options.limit)
            extended = plan.extend(step)
            plans[step.key] = extended
            frontier.append(extended)

    logger.debug("Shortest plan search on '%s' visited %d states", machine.id, len(plans))
    return plans


def get_shortest_plans_to(
    machine: Machine,
    predicate: Callable[[State], bool],
    options: Optional[TraversalOptions] = None,
    **kwargs: Any,
) -> List[Plan]:
    """
    Shortest plans to every reachable state satisfying ``predicate``,
    shortest first. Empty when no such state is reachable.
    """
    plans = get_shortest_plans(machine, options, **kwargs)
    return [plan for plan in plans.values() if predicate(plan.state)]


def get_simple_plans(
    machine: Machine, options: Optional[TraversalOptions] = None, **kwargs: Any
) -> Dict[str, List[Plan]]:
    """
    Every simple plan (no fingerprint visited twice) from the start state.

    :return: Fingerprint to all simple plans reaching it, in depth-first order.
    :raises TraversalLimitError: If more than ``options.limit`` plans are found.
    """
    options = resolve_options(options, **kwargs)
    start = _start(machine, options)
    result: Dict[str, List[Plan]] = {}
    on_path: Set[str] = set()
    count = 0

    def visit(plan: Plan) -> None:
        nonlocal count
        count += 1
        if options.limit is not None and count > options.limit:
            raise TraversalLimitError(options.limit)
        result.setdefault(plan.key, []).append(plan)
        if plan.state.done:
            return
        on_path.add(plan.key)
        for step in _successors(machine, plan, options):
            if step.key not in on_path:
                visit(plan.extend(step))
        on_path.discard(plan.key)

    visit(start)
    return result


def get_adjacency_map(
    machine: Machine, options: Optional[TraversalOptions] = None, **kwargs: Any
) -> Dict[str, Dict[str, Step]]:
    """
    Every reachable state and where each candidate event takes it.

    :return: Fingerprint to a mapping of event key to the resulting step.
    """
    options = resolve_options(options, **kwargs)
    start = _start(machine, options)
    adjacency: Dict[str, Dict[str, Step]] = {}
    frontier: Deque[Plan] = deque([start])
    seen = {start.key}

    while frontier:
        plan = frontier.popleft()
        edges = adjacency.setdefault(plan.key, {})
        if plan.state.done:
            continue
        for step in _successors(machine, plan, options):
            edges[options.serialize_event(step.event)] = step
            if step.key not in seen:
                if options.limit is not None and len(seen) >= options.limit:
                    raise TraversalLimitError(options.limit)
                seen.add(step.key)
                frontier.append(Plan(step.state, step.key))
    return adjacency


def get_path_from_events(
    machine: Machine, events: Iterable[EventLike], options: Optional[TraversalOptions] = None, **kwargs: Any
) -> Plan:
    """
    Replay events from the start state.

    :raises InvalidPathError: If an event is not handled by the state it is sent in.
    """
    options = resolve_options(options, **kwargs)
    plan = _start(machine, options)
    for event_like in events:
        event = to_event(event_like)
        next_state = machine.transition(plan.state, event)
        if not next_state.changed:
            raise InvalidPathError(plan.key, options.serialize_event(event))
        plan = plan.extend(Step(event, next_state, options.serialize_state(next_state)))
    return plan
