# statechart/runtime/actors.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

"""
Invoked actors.

An actor is started when the node invoking it is entered and stopped when
that node is exited. Actors talk to the invoking interpreter only through
events: everything they emit is tagged with their id as ``origin`` and goes
through the parent's regular queue.

Three kinds of logic are supported:

- ``from_callback(fn)``: ``fn(send_back, receive, input)`` may return a
  cleanup callable, called on stop.
- ``from_coroutine(fn)``: ``fn(input)`` is awaited in an asyncio task;
  its result becomes ``done.invoke.<id>``, an exception ``error.platform.<id>``.
- a Machine: runs in a child interpreter; its final output becomes
  ``done.invoke.<id>``.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, List, Mapping, Optional

from statechart.core.errors import ConfigurationError
from statechart.core.events import Event, EventLike, done_invoke_event, error_event, to_event
from statechart.core.machine import Machine

if TYPE_CHECKING:
    from statechart.runtime.interpreter import Interpreter

logger = logging.getLogger(__name__)


class CallbackLogic:
    def __init__(self, fn: Callable[..., Optional[Callable[[], None]]]) -> None:
        self.fn = fn

    def __repr__(self) -> str:
        return f"CallbackLogic({getattr(self.fn, '__name__', self.fn)!r})"


class CoroutineLogic:
    def __init__(self, fn: Callable[[Any], Awaitable[Any]]) -> None:
        self.fn = fn

    def __repr__(self) -> str:
        return f"CoroutineLogic({getattr(self.fn, '__name__', self.fn)!r})"


def from_callback(fn: Callable[..., Optional[Callable[[], None]]]) -> CallbackLogic:
    """Actor logic from ``fn(send_back, receive, input)``."""
    return CallbackLogic(fn)


def from_coroutine(fn: Callable[[Any], Awaitable[Any]]) -> CoroutineLogic:
    """Actor logic from an async function of ``input``."""
    return CoroutineLogic(fn)


class ActorRef:
    """
    Handle to a running actor, owned by the interpreter that invoked it.
    """

    def __init__(self, actor_id: str, parent: "Interpreter", input: Any = None) -> None:
        self.id = actor_id
        self.parent = parent
        self.input = input
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        raise NotImplementedError()

    def stop(self) -> None:
        raise NotImplementedError()

    def send(self, event: EventLike, **payload: Any) -> None:
        raise NotImplementedError()

    def _emit(self, event: Event) -> None:
        """Send an event to the parent, tagged with this actor's id."""
        if self._running:
            self.parent.send(event.with_origin(self.id))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.id!r})"


class CallbackActor(ActorRef):
    def __init__(self, actor_id: str, parent: "Interpreter", logic: CallbackLogic, input: Any = None) -> None:
        super().__init__(actor_id, parent, input)
        self._logic = logic
        self._listeners: List[Callable[[Event], None]] = []
        self._cleanup: Optional[Callable[[], None]] = None

    def start(self) -> None:
        self._running = True
        try:
            cleanup = self._logic.fn(self._send_back, self._listeners.append, self.input)
        except Exception as e:
            logger.exception("Callback actor '%s' failed to start", self.id)
            self._emit(error_event(self.id, e))
            self._running = False
            return
        self._cleanup = cleanup if callable(cleanup) else None

    def _send_back(self, event: EventLike, **payload: Any) -> None:
        self._emit(to_event(event, **payload))

    def send(self, event: EventLike, **payload: Any) -> None:
        if not self._running:
            return
        event = to_event(event, **payload)
        for listener in list(self._listeners):
            listener(event)

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self._listeners.clear()
        cleanup, self._cleanup = self._cleanup, None
        if cleanup is not None:
            cleanup()


class CoroutineActor(ActorRef):
    def __init__(self, actor_id: str, parent: "Interpreter", logic: CoroutineLogic, input: Any = None) -> None:
        super().__init__(actor_id, parent, input)
        self._logic = logic
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        loop = asyncio.get_running_loop()
        self._running = True
        self._task = loop.create_task(self._logic.fn(self.input))
        self._task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        if task.cancelled() or not self._running:
            return
        error = task.exception()
        if error is not None:
            event = error_event(self.id, error)
        else:
            event = done_invoke_event(self.id, task.result())
        self.parent.send(event)
        self._running = False

    def send(self, event: EventLike, **payload: Any) -> None:
        logger.debug("Coroutine actor '%s' ignores event %s", self.id, event)

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()


class MachineActor(ActorRef):
    """Runs a machine in a child interpreter."""

    def __init__(self, actor_id: str, parent: "Interpreter", machine: Machine, input: Any = None) -> None:
        super().__init__(actor_id, parent, input)
        if input is not None:
            base = machine.context
            if isinstance(base, Mapping) and isinstance(input, Mapping):
                machine = machine.with_context({**base, **input})
            else:
                machine = machine.with_context(input)
        self._machine = machine
        self.interpreter: Optional["Interpreter"] = None

    def start(self) -> None:
        from statechart.runtime.interpreter import Interpreter, InterpreterOptions

        options = InterpreterOptions(
            clock=self.parent.options.clock,
            max_microsteps=self.parent.options.max_microsteps,
            id=self.id,
        )
        self.interpreter = Interpreter(self._machine, options, parent=self.parent)
        self._running = True
        self.interpreter.start()

    def send(self, event: EventLike, **payload: Any) -> None:
        if self.interpreter is not None:
            self.interpreter.send(event, **payload)

    def stop(self) -> None:
        self._running = False
        if self.interpreter is not None:
            self.interpreter.stop()

    @property
    def state(self) -> Any:
        return self.interpreter.state if self.interpreter is not None else None


def create_actor(actor_id: str, src: Any, parent: "Interpreter", input: Any = None) -> ActorRef:
    """
    Create an actor handle for the given logic. Plain async functions are
    treated as coroutine logic and plain callables as callback logic.

    :raises ConfigurationError: If ``src`` is not actor logic.
    """
    if isinstance(src, Machine):
        return MachineActor(actor_id, parent, src, input)
    if isinstance(src, CallbackLogic):
        return CallbackActor(actor_id, parent, src, input)
    if isinstance(src, CoroutineLogic):
        return CoroutineActor(actor_id, parent, src, input)
    if inspect.iscoroutinefunction(src):
        return CoroutineActor(actor_id, parent, CoroutineLogic(src), input)
    if callable(src):
        return CallbackActor(actor_id, parent, CallbackLogic(src), input)
    raise ConfigurationError(f"Cannot invoke {src!r}: not an actor logic")
