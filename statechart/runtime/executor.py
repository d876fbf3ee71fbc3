# statechart/runtime/executor.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import itertools
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Deque, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from statechart.core.actions import Action
from statechart.core.errors import TransitionCycleError
from statechart.core.events import Event, done_state_event, init_event
from statechart.core.snapshot import State, empty_state, freeze_history
from statechart.core.states import StateNode
from statechart.core.transitions import Transition
from statechart.core.types import HistoryMode
from statechart.runtime.selector import TransitionSelector

if TYPE_CHECKING:
    from statechart.core.machine import Machine

logger = logging.getLogger(__name__)

_send_ids = itertools.count(1)


# ----------------------------------------------------------------------
# Effects: runtime work applied by the interpreter after a macrostep
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class StartActor:
    invoke_id: str
    src: Any
    input: Any
    node_id: str


@dataclass(frozen=True)
class StopActor:
    invoke_id: str


@dataclass(frozen=True)
class ScheduleEvent:
    send_id: str
    delay: float
    event: Event
    to: Optional[str] = None


@dataclass(frozen=True)
class CancelEvent:
    send_id: str


@dataclass(frozen=True)
class SendEvent:
    to: str
    event: Event


Effect = Union[StartActor, StopActor, ScheduleEvent, CancelEvent, SendEvent]


def collapse_effects(effects: Sequence[Effect]) -> Tuple[Effect, ...]:
    """
    Drop start/stop and schedule/cancel pairs that happened within the same
    macrostep: an actor started and stopped again, or a timer scheduled and
    cancelled again, is never applied at all.
    """
    starts: Dict[str, int] = {}
    schedules: Dict[str, int] = {}
    dropped: Set[int] = set()
    for index, effect in enumerate(effects):
        if isinstance(effect, StartActor):
            starts[effect.invoke_id] = index
        elif isinstance(effect, StopActor) and effect.invoke_id in starts:
            dropped.update((starts.pop(effect.invoke_id), index))
        elif isinstance(effect, ScheduleEvent):
            schedules[effect.send_id] = index
        elif isinstance(effect, CancelEvent) and effect.send_id in schedules:
            dropped.update((schedules.pop(effect.send_id), index))
    return tuple(e for i, e in enumerate(effects) if i not in dropped)


@dataclass(frozen=True)
class MacrostepResult:
    """The snapshot produced by a macrostep and the effects it requested."""

    state: State
    effects: Tuple[Effect, ...] = ()


# ----------------------------------------------------------------------
# Action execution
# ----------------------------------------------------------------------


class _ActionScope:
    """What an action sees while it runs."""

    def __init__(self, runner: "ActionRunner", event: Event) -> None:
        self._runner = runner
        self.event = event

    @property
    def context(self) -> Any:
        return self._runner.context

    @context.setter
    def context(self, value: Any) -> None:
        self._runner.context = value

    def raise_event(self, event: Event) -> None:
        self._runner.internal_queue.append(event)

    def schedule(self, event: Event, delay: float, send_id: Optional[str] = None, to: Optional[str] = None) -> str:
        send_id = send_id or f"send.{next(_send_ids)}"
        self._runner.effects.append(ScheduleEvent(send_id, delay, event, to))
        return send_id

    def cancel(self, send_id: str) -> None:
        self._runner.effects.append(CancelEvent(send_id))

    def send_to(self, to: str, event: Event) -> None:
        self._runner.effects.append(SendEvent(to, event))


class ActionRunner:
    """
    Runs actions inline and collects what they request. In pure mode only
    actions marked ``pure`` (assign, undelayed raise) are executed.
    """

    def __init__(self, context: Any, live: bool = False) -> None:
        self.context = context
        self.live = live
        self.halted = False
        self.internal_queue: Deque[Event] = deque()
        self.effects: List[Effect] = []

    def run(self, actions: Iterable[Action], event: Event) -> None:
        scope = _ActionScope(self, event)
        for action in actions:
            if self.halted:
                return
            if self.live or action.pure:
                action.execute(scope)


@dataclass
class _Work:
    """Mutable configuration while a macrostep is in progress."""

    configuration: Set[str]
    history: Dict[str, Tuple[str, ...]]
    done: bool = False
    output: Any = None
    taken: List[Transition] = field(default_factory=list)


class MacrostepProgress:
    """
    Live view of a macrostep while it runs. An interpreter stopped from
    inside one of its own actions uses :meth:`snapshot` to exit exactly the
    nodes that are still active, and :meth:`halt` to skip every action the
    discarded macrostep has not run yet.
    """

    def __init__(self) -> None:
        self._executor: Optional["MicrostepExecutor"] = None
        self._thread: Optional[int] = None
        self._work: Optional[_Work] = None
        self._runner: Optional[ActionRunner] = None
        self._event: Optional[Event] = None

    def track(
        self, executor: "MicrostepExecutor", work: _Work, runner: ActionRunner, event: Event
    ) -> "MacrostepProgress":
        self._executor = executor
        self._work = work
        self._runner = runner
        self._event = event
        self._thread = threading.get_ident()
        return self

    def __enter__(self) -> "MacrostepProgress":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self._executor = self._work = self._runner = self._event = self._thread = None

    @property
    def running(self) -> bool:
        return self._work is not None

    def snapshot(self) -> Optional[State]:
        """
        The configuration and context reached so far. None when no macrostep
        is running, or when called from a thread other than the one running it.
        """
        if self._work is None or threading.get_ident() != self._thread:
            return None
        return self._executor._result(self._work, self._runner, self._event).state

    def halt(self) -> None:
        if self._runner is not None:
            self._runner.halted = True


# ----------------------------------------------------------------------
# Executor
# ----------------------------------------------------------------------


class MicrostepExecutor:
    """
    Applies selected transitions to configurations. One microstep exits,
    runs transition actions and enters; a macrostep runs microsteps until
    no eventless transition is enabled and no internal event is pending.
    """

    def __init__(self, machine: "Machine", max_microsteps: int = 1000) -> None:
        self._machine = machine
        self._tree = machine.tree
        self._selector = TransitionSelector(machine.tree)
        self.max_microsteps = max_microsteps

    @property
    def selector(self) -> TransitionSelector:
        return self._selector

    def select(self, state: State, event: Event) -> List[Transition]:
        return self._selector.select(state.configuration, state.context, event, state.history_value)

    # ------------------------------------------------------------------
    # Public steps
    # ------------------------------------------------------------------

    def enter_initial(
        self,
        context: Any,
        live: bool = False,
        max_microsteps: Optional[int] = None,
        progress: Optional[MacrostepProgress] = None,
    ) -> MacrostepResult:
        """
        Build the start snapshot: enter the root and its default
        descendants, then take eventless and raised transitions until stable.

        :param progress: Optional live view updated while the step runs.
        """
        event = init_event()
        runner = ActionRunner(context, live)
        work = _Work(configuration=set(), history={})
        with (progress or MacrostepProgress()).track(self, work, runner, event):
            entry: Set[str] = set()
            self._add_descendants(self._tree.root.id, entry, work)
            self._enter(entry, work, runner, event)
            self._stabilize(work, runner, event, max_microsteps or self.max_microsteps, microsteps=0)
        return self._result(work, runner, event)

    def macrostep(
        self,
        state: State,
        event: Event,
        live: bool = False,
        max_microsteps: Optional[int] = None,
        progress: Optional[MacrostepProgress] = None,
    ) -> MacrostepResult:
        """
        Process one external event to completion.

        :param progress: Optional live view updated while the step runs.
        :raises TransitionCycleError: If the machine never stabilizes.
        """
        runner = ActionRunner(state.context, live)
        work = _Work(
            configuration=set(state.configuration),
            history=dict(state.history_value),
            done=state.done,
            output=state.output,
        )
        if state.done:
            return self._result(work, runner, event)
        with (progress or MacrostepProgress()).track(self, work, runner, event):
            transitions = self._selector.select(work.configuration, runner.context, event, work.history)
            microsteps = 0
            if transitions:
                self._microstep(work, runner, transitions, event)
                microsteps = 1
            else:
                logger.debug("Event '%s' not handled in %s", event.type, state.value)
            self._stabilize(work, runner, event, max_microsteps or self.max_microsteps, microsteps)
        return self._result(work, runner, event)

    def microstep(self, state: State, transitions: Sequence[Transition], event: Event, live: bool = False) -> State:
        """Apply one set of non-conflicting transitions, without stabilizing."""
        runner = ActionRunner(state.context, live)
        work = _Work(configuration=set(state.configuration), history=dict(state.history_value))
        self._microstep(work, runner, list(transitions), event)
        return self._result(work, runner, event).state

    def exit_all(self, state: State, live: bool = True) -> MacrostepResult:
        """Exit every active node, deepest first, e.g. when an interpreter stops."""
        runner = ActionRunner(state.context, live)
        for node_id in self._tree.reverse_document_order(state.configuration):
            node = self._tree.get(node_id)
            runner.run(node.exit, state.event)
            if live:
                self._exit_effects(node, runner)
        final = empty_state(self._machine, runner.context, state.event, state.output)
        return MacrostepResult(final, collapse_effects(runner.effects))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _stabilize(self, work: _Work, runner: ActionRunner, event: Event, limit: int, microsteps: int) -> None:
        seen: Dict[Tuple[frozenset, Tuple[str, ...]], List[Any]] = {}
        current = event
        while not work.done and not runner.halted:
            transitions = self._selector.select_eventless(work.configuration, runner.context, current, work.history)
            if not transitions:
                if not runner.internal_queue:
                    break
                current = runner.internal_queue.popleft()
                logger.debug("Processing internal event '%s'", current.type)
                transitions = self._selector.select(work.configuration, runner.context, current, work.history)
                if not transitions:
                    continue
            microsteps += 1
            keys = tuple(t.key for t in transitions)
            if microsteps > limit:
                raise TransitionCycleError(
                    f"Machine did not stabilize within {limit} microsteps", keys, microsteps
                )
            if not runner.internal_queue:
                signature = (frozenset(work.configuration), keys)
                contexts = seen.setdefault(signature, [])
                if any(previous == runner.context for previous in contexts):
                    raise TransitionCycleError(
                        f"Transitions {list(keys)} repeat without changing the machine", keys, microsteps
                    )
                contexts.append(runner.context)
            self._microstep(work, runner, transitions, current)

    def _microstep(self, work: _Work, runner: ActionRunner, transitions: List[Transition], event: Event) -> None:
        tree = self._tree
        configuration = work.configuration

        exits: Set[str] = set()
        for t in transitions:
            exits.update(tree.exit_set(t.source, t.targets, t.internal, configuration, work.history))
        exit_order = tree.reverse_document_order(exits)

        for node_id in exit_order:
            for child in tree.children(node_id):
                if child.is_history:
                    work.history[child.id] = self._record_history(child, node_id, configuration)

        for node_id in exit_order:
            node = tree.get(node_id)
            runner.run(node.exit, event)
            if runner.live:
                self._exit_effects(node, runner)
            configuration.discard(node_id)

        for t in transitions:
            runner.run(t.actions, event)
        work.taken.extend(transitions)

        entry: Set[str] = set()
        for t in transitions:
            if t.targetless:
                continue
            effective = tree.effective_targets(t.targets, work.history)
            domain = tree.domain(t.source, effective, t.internal)
            for target in t.targets:
                self._add_descendants(target, entry, work)
            for target in effective:
                self._add_ancestors(target, domain, entry, work)
            if domain is not None and tree.get(domain).is_parallel:
                self._complete_regions(domain, entry, work)

        logger.debug(
            "Microstep on '%s': exit %s, enter %s", event.type, list(exit_order), list(tree.document_order(entry))
        )
        self._enter(entry, work, runner, event)

    def _record_history(self, history_node: StateNode, parent_id: str, configuration: Set[str]) -> Tuple[str, ...]:
        tree = self._tree
        if history_node.history is HistoryMode.DEEP:
            recorded = [c for c in configuration if tree.get(c).is_atomic and tree.is_descendant(c, parent_id)]
        else:
            recorded = [c.id for c in tree.state_children(parent_id) if c.id in configuration]
        return tree.document_order(recorded)

    def _add_descendants(self, node_id: str, entry: Set[str], work: _Work) -> None:
        node = self._tree.get(node_id)
        if node.is_history:
            resolved = self._tree.effective_targets((node_id,), work.history)
            for target in resolved:
                self._add_descendants(target, entry, work)
            for target in resolved:
                self._add_ancestors(target, node.parent_id, entry, work)
            return
        entry.add(node_id)
        if node.is_compound:
            self._add_descendants(node.initial, entry, work)
        elif node.is_parallel:
            self._complete_regions(node_id, entry, work)

    def _add_ancestors(self, node_id: str, stop_at: Optional[str], entry: Set[str], work: _Work) -> None:
        for ancestor in self._tree.ancestors(node_id, stop_at=stop_at):
            entry.add(ancestor.id)
            if ancestor.is_parallel:
                self._complete_regions(ancestor.id, entry, work)

    def _complete_regions(self, parallel_id: str, entry: Set[str], work: _Work) -> None:
        tree = self._tree
        for region in tree.state_children(parallel_id):
            if region.id in work.configuration:
                continue
            if any(e == region.id or tree.is_descendant(e, region.id) for e in entry):
                continue
            self._add_descendants(region.id, entry, work)

    def _enter(self, entry: Set[str], work: _Work, runner: ActionRunner, event: Event) -> None:
        tree = self._tree
        for node_id in tree.document_order(entry - work.configuration):
            node = tree.get(node_id)
            work.configuration.add(node_id)
            runner.run(node.entry, event)
            if runner.live:
                self._entry_effects(node, runner, event)
            if node.is_final:
                self._on_final(node, work, runner, event)
        work.done = tree.is_in_final_state(tree.root.id, work.configuration)

    def _on_final(self, node: StateNode, work: _Work, runner: ActionRunner, event: Event) -> None:
        tree = self._tree
        parent = tree.parent(node.id)
        if parent is None:
            return
        output = node.output(runner.context, event) if callable(node.output) else node.output
        if parent.parent_id is None:
            work.output = output
            return
        runner.internal_queue.append(done_state_event(parent.id, output))
        grandparent = tree.parent(parent.id)
        if (
            grandparent is not None
            and grandparent.is_parallel
            and grandparent.parent_id is not None
            and tree.is_in_final_state(grandparent.id, work.configuration)
        ):
            runner.internal_queue.append(done_state_event(grandparent.id))

    def _entry_effects(self, node: StateNode, runner: ActionRunner, event: Event) -> None:
        for after in node.after:
            delay = after.delay(runner.context, event) if callable(after.delay) else after.delay
            runner.effects.append(ScheduleEvent(after.send_id, float(delay), Event(after.event_type)))
        for definition in node.invoke:
            value = definition.input
            if callable(value):
                value = value(runner.context, event)
            runner.effects.append(StartActor(definition.id, definition.src, value, node.id))

    @staticmethod
    def _exit_effects(node: StateNode, runner: ActionRunner) -> None:
        for definition in node.invoke:
            runner.effects.append(StopActor(definition.id))
        for after in node.after:
            runner.effects.append(CancelEvent(after.send_id))

    def _result(self, work: _Work, runner: ActionRunner, event: Event) -> MacrostepResult:
        state = State(
            configuration=self._tree.document_order(work.configuration),
            context=runner.context,
            event=event,
            machine=self._machine,
            history_value=freeze_history(work.history),
            done=work.done,
            changed=bool(work.taken),
            output=work.output if work.done else None,
            transitions=tuple(work.taken),
        )
        return MacrostepResult(state, collapse_effects(runner.effects))
