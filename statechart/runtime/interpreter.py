# statechart/runtime/interpreter.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from statechart.core.actions import PARENT
from statechart.core.events import Event, EventLike, done_invoke_event, to_event
from statechart.core.machine import Machine
from statechart.core.snapshot import State
from statechart.runtime.actors import ActorRef, create_actor
from statechart.runtime.event_queue import EventQueue
from statechart.runtime.executor import (
    CancelEvent,
    Effect,
    MacrostepProgress,
    MacrostepResult,
    ScheduleEvent,
    SendEvent,
    StartActor,
    StopActor,
)
from statechart.runtime.timers import Clock, ThreadingClock, TimerHandle

logger = logging.getLogger(__name__)

Listener = Callable[[State], None]


class InterpreterStatus(Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass(frozen=True)
class InterpreterOptions:
    """
    Runtime options of an interpreter.

    :param clock: Time source for delayed events.
    :param max_microsteps: Upper bound on microsteps per macrostep.
    :param id: Interpreter id; defaults to the machine id. Used as the origin
               of events sent to a parent.
    """

    clock: Clock = field(default_factory=ThreadingClock)
    max_microsteps: int = 1000
    id: Optional[str] = None


class Interpreter:
    """
    Runs a machine: owns the current snapshot, the external event queue,
    pending timers and invoked actors. Events are processed one macrostep at
    a time; events sent while a macrostep is running (from actions, actors
    or timer threads) are queued and processed by whoever is draining.
    """

    def __init__(
        self,
        machine: Machine,
        options: Optional[InterpreterOptions] = None,
        parent: Optional["Interpreter"] = None,
        **kwargs: Any,
    ) -> None:
        """
        :param machine: The machine to run.
        :param options: Runtime options; keyword arguments override fields.
        :param parent: Interpreter that invoked this one, if any.
        """
        options = options or InterpreterOptions()
        if kwargs:
            options = replace(options, **kwargs)
        self._machine = machine
        self._options = options
        self._id = options.id or machine.id
        self._parent = parent
        self._status = InterpreterStatus.NOT_STARTED
        self._state: Optional[State] = None
        self._pending: Optional[State] = None
        self._progress = MacrostepProgress()
        self._queue = EventQueue()
        self._listeners: List[Listener] = []
        self._timers: Dict[str, TimerHandle] = {}
        self._timers_lock = threading.Lock()
        self._children: Dict[str, ActorRef] = {}

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def id(self) -> str:
        return self._id

    @property
    def machine(self) -> Machine:
        return self._machine

    @property
    def options(self) -> InterpreterOptions:
        return self._options

    @property
    def parent(self) -> Optional["Interpreter"]:
        return self._parent

    @property
    def status(self) -> InterpreterStatus:
        return self._status

    @property
    def state(self) -> Optional[State]:
        """The latest published snapshot, or None before start()."""
        return self._state

    @property
    def children(self) -> Mapping[str, ActorRef]:
        return MappingProxyType(dict(self._children))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> "Interpreter":
        """
        Enter the initial configuration, publish it, then process events sent
        before start.

        :raises TransitionCycleError: If the initial configuration never stabilizes.
        """
        if self._status is InterpreterStatus.RUNNING:
            return self
        if self._status is InterpreterStatus.STOPPED:
            logger.warning("Interpreter '%s' has been stopped and cannot be restarted", self._id)
            return self
        self._queue.claim()
        self._status = InterpreterStatus.RUNNING
        logger.info("Starting interpreter '%s'", self._id)
        try:
            result = self._machine.executor.enter_initial(
                self._machine.context,
                live=True,
                max_microsteps=self._options.max_microsteps,
                progress=self._progress,
            )
        except Exception:
            self._status = InterpreterStatus.NOT_STARTED
            self._queue.release()
            raise
        if self._status is not InterpreterStatus.RUNNING:
            self._queue.release()
            return self
        try:
            self._commit(result)
        except Exception:
            if self._state is None and self._status is InterpreterStatus.RUNNING:
                self._status = InterpreterStatus.NOT_STARTED
            self._queue.release()
            raise
        self._drain()
        return self

    def stop(self) -> None:
        """
        Exit every active node, cancel every pending timer, stop every child
        actor and drop queued events. Idempotent; safe to call from inside
        an action, in which case the running macrostep is discarded.
        """
        if self._status is InterpreterStatus.STOPPED:
            return
        was_running = self._status is InterpreterStatus.RUNNING
        self._status = InterpreterStatus.STOPPED
        errors: List[Exception] = []

        # Nodes already exited by a running macrostep must not be exited twice.
        active = self._progress.snapshot() or self._pending or self._state
        self._progress.halt()
        if was_running and active is not None:
            try:
                self._machine.executor.exit_all(active, live=True)
            except Exception as e:
                logger.exception("Exit actions failed while stopping '%s'", self._id)
                errors.append(e)

        with self._timers_lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for handle in timers:
            handle.cancel()

        while self._children:
            actor_id, actor = self._children.popitem()
            try:
                actor.stop()
            except Exception as e:
                logger.exception("Actor '%s' failed to stop", actor_id)
                errors.append(e)

        self._queue.clear()
        logger.info("Interpreter '%s' stopped", self._id)
        if errors:
            raise errors[0]

    def __enter__(self) -> "Interpreter":
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def send(self, event: EventLike, **payload: Any) -> None:
        """
        Queue an event and, unless a macrostep is already being processed,
        process the queue. Events sent before start() are kept until start.

        :param event: Event type, mapping with ``type`` or Event.
        :param payload: Extra payload merged into the event.
        """
        event = to_event(event, **payload)
        if self._status is InterpreterStatus.STOPPED:
            logger.warning("Event '%s' sent to stopped interpreter '%s' is ignored", event.type, self._id)
            return
        self._queue.enqueue(event)
        if self._status is InterpreterStatus.NOT_STARTED:
            return
        if self._queue.claim():
            self._drain()

    def _drain(self) -> None:
        while True:
            event = self._queue.next_or_release()
            if event is None:
                return
            if self._status is not InterpreterStatus.RUNNING:
                self._queue.release()
                return
            logger.debug("Interpreter '%s' processing '%s'", self._id, event.type)
            try:
                result = self._machine.executor.macrostep(
                    self._state,
                    event,
                    live=True,
                    max_microsteps=self._options.max_microsteps,
                    progress=self._progress,
                )
                if self._status is not InterpreterStatus.RUNNING:
                    self._queue.release()
                    return
                self._commit(result)
            except Exception:
                self._queue.release()
                raise

    def _commit(self, result: MacrostepResult) -> None:
        """
        Apply the effects of a macrostep, then publish its snapshot. If an
        effect fails, the timers and actors it already started are torn down
        again and the previous snapshot stays current.
        """
        self._pending = result.state
        try:
            self._apply_effects(result.effects)
        finally:
            self._pending = None
        self._state = result.state
        for listener in list(self._listeners):
            listener(result.state)
        if result.state.done and self._status is InterpreterStatus.RUNNING:
            self.stop()
            if self._parent is not None:
                self._parent.send(done_invoke_event(self._id, result.state.output))

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Call ``listener(state)`` after every processed macrostep.

        :return: A function removing the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Effects
    # ------------------------------------------------------------------

    def _apply_effects(self, effects: Sequence[Effect]) -> None:
        started: List[str] = []
        scheduled: List[str] = []
        try:
            for effect in effects:
                if self._status is not InterpreterStatus.RUNNING:
                    return
                if isinstance(effect, StartActor):
                    actor = create_actor(effect.invoke_id, effect.src, self, effect.input)
                    self._children[effect.invoke_id] = actor
                    started.append(effect.invoke_id)
                    logger.debug("Starting actor '%s'", effect.invoke_id)
                    actor.start()
                elif isinstance(effect, StopActor):
                    actor = self._children.pop(effect.invoke_id, None)
                    if actor is not None:
                        logger.debug("Stopping actor '%s'", effect.invoke_id)
                        actor.stop()
                elif isinstance(effect, ScheduleEvent):
                    self._schedule(effect)
                    scheduled.append(effect.send_id)
                elif isinstance(effect, CancelEvent):
                    self._cancel(effect.send_id)
                elif isinstance(effect, SendEvent):
                    self._deliver(effect.to, effect.event)
        except Exception:
            self._rollback(started, scheduled)
            raise

    def _rollback(self, started: Sequence[str], scheduled: Sequence[str]) -> None:
        logger.debug("Rolling back %d actors and %d timers of '%s'", len(started), len(scheduled), self._id)
        for send_id in scheduled:
            self._cancel(send_id)
        for actor_id in reversed(started):
            actor = self._children.pop(actor_id, None)
            if actor is None:
                continue
            try:
                actor.stop()
            except Exception:
                logger.exception("Actor '%s' failed to stop during rollback", actor_id)

    def _schedule(self, effect: ScheduleEvent) -> None:
        self._cancel(effect.send_id)

        def fire() -> None:
            with self._timers_lock:
                handle = self._timers.pop(effect.send_id, None)
            if handle is None:
                return
            logger.debug("Delayed event '%s' fired", effect.event.type)
            if effect.to is None:
                self.send(effect.event)
            else:
                self._deliver(effect.to, effect.event)

        with self._timers_lock:
            self._timers[effect.send_id] = self._options.clock.schedule(effect.delay, fire)
        logger.debug("Scheduled '%s' in %ss (id '%s')", effect.event.type, effect.delay, effect.send_id)

    def _cancel(self, send_id: str) -> None:
        with self._timers_lock:
            handle = self._timers.pop(send_id, None)
        if handle is not None:
            logger.debug("Cancelled delayed event '%s'", send_id)
            handle.cancel()

    def _deliver(self, to: str, event: Event) -> None:
        if to == PARENT:
            if self._parent is None:
                logger.warning("Interpreter '%s' has no parent to send '%s' to", self._id, event.type)
                return
            self._parent.send(event.with_origin(self._id))
        elif to in self._children:
            self._children[to].send(event)
        elif to == self._id:
            self.send(event)
        else:
            logger.warning("No actor '%s' to send '%s' to", to, event.type)

    @property
    def pending_timers(self) -> List[str]:
        """Send ids of delayed events not yet fired or cancelled."""
        with self._timers_lock:
            return list(self._timers)

    def __repr__(self) -> str:
        return f"Interpreter({self._id!r}, {self._status.value})"


def interpret(machine: Machine, options: Optional[InterpreterOptions] = None, **kwargs: Any) -> Interpreter:
    """
    Create an interpreter for a machine without starting it::

        with interpret(machine) as service:
            service.send("TIMER")
    """
    return Interpreter(machine, options, **kwargs)
