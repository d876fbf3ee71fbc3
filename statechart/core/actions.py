# statechart/core/actions.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping, Optional, Tuple, Union

from statechart.core.errors import ConfigurationError
from statechart.core.events import Event, EventLike, to_event
from statechart.core.types import ActionFunction, DelayFunction

if TYPE_CHECKING:
    from statechart.core.implementations import Implementations

logger = logging.getLogger(__name__)


class Action:
    """
    Base class for everything that can run on entry, on exit or while a
    transition is taken. ``pure`` actions are evaluated even when a machine
    is stepped without an interpreter (plan search); all others only run in
    a live interpreter.
    """

    name: str = "action"
    pure: bool = False

    def execute(self, scope: Any) -> None:
        """
        Run the action.

        :param scope: The executor's action scope, exposing ``context``,
                      ``event``, ``raise_event``, ``schedule``, ``cancel``
                      and ``send_to``.
        """
        raise NotImplementedError()

    def resolve(self, implementations: "Implementations") -> "Action":
        return self

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name})"


class _ActionAdapter(Action):
    """
    Internal adapter that wraps a user-defined callable ``fn(context, event)``
    into an Action.
    """

    def __init__(self, action_fn: ActionFunction, name: Optional[str] = None) -> None:
        self._action_fn = action_fn
        self.name = name or getattr(action_fn, "__name__", "action")

    def execute(self, scope: Any) -> None:
        self._action_fn(scope.context, scope.event)


class _NamedAction(Action):
    def __init__(self, name: str) -> None:
        self.name = name

    def execute(self, scope: Any) -> None:
        raise ConfigurationError(f"Action '{self.name}' was never resolved")

    def resolve(self, implementations: "Implementations") -> Action:
        if self.name not in implementations.actions:
            raise ConfigurationError(f"Action '{self.name}' is not provided by the implementations")
        return to_action(implementations.actions[self.name], implementations, name=self.name)


class Assign(Action):
    """
    Produces a new context. ``assignment`` is either a mapping of keys to
    values (callables are called with ``(context, event)``) or a callable
    returning such a mapping. All values are computed from the context as it
    was before this action ran.
    """

    name = "assign"
    pure = True

    def __init__(self, assignment: Union[Mapping[str, Any], Callable[[Any, Event], Mapping[str, Any]]]) -> None:
        if not callable(assignment) and not isinstance(assignment, Mapping):
            raise ConfigurationError("assign() expects a mapping or a callable")
        self.assignment = assignment

    def apply(self, context: Any, event: Event) -> dict:
        if callable(self.assignment):
            updates = self.assignment(context, event)
        else:
            updates = {
                key: value(context, event) if callable(value) else value for key, value in self.assignment.items()
            }
        return {**(context or {}), **updates}

    def execute(self, scope: Any) -> None:
        scope.context = self.apply(scope.context, scope.event)


class Raise(Action):
    """
    Raises an event on the machine itself. Without a delay the event goes to
    the internal queue and is processed within the current macrostep; with a
    delay it is scheduled through the interpreter's clock.
    """

    name = "raise"

    def __init__(
        self,
        event: Union[EventLike, Callable[[Any, Event], EventLike]],
        delay: Union[float, str, DelayFunction, None] = None,
        id: Optional[str] = None,
    ) -> None:
        self.event = event
        self.delay = delay
        self.id = id
        self.pure = delay is None

    def resolve(self, implementations: "Implementations") -> Action:
        if isinstance(self.delay, str):
            return Raise(self.event, implementations.delay(self.delay), self.id)
        return self

    def execute(self, scope: Any) -> None:
        event = _evaluate_event(self.event, scope)
        if self.delay is None:
            scope.raise_event(event)
        else:
            scope.schedule(event, _evaluate_delay(self.delay, scope), self.id)


class SendTo(Action):
    """Sends an event to an invoked actor (by id) or to the parent machine."""

    name = "send_to"

    def __init__(
        self,
        to: Union[str, Callable[[Any, Event], str]],
        event: Union[EventLike, Callable[[Any, Event], EventLike]],
        delay: Union[float, str, DelayFunction, None] = None,
        id: Optional[str] = None,
    ) -> None:
        self.to = to
        self.event = event
        self.delay = delay
        self.id = id

    def resolve(self, implementations: "Implementations") -> Action:
        if isinstance(self.delay, str):
            return SendTo(self.to, self.event, implementations.delay(self.delay), self.id)
        return self

    def execute(self, scope: Any) -> None:
        target = self.to(scope.context, scope.event) if callable(self.to) else self.to
        event = _evaluate_event(self.event, scope)
        if self.delay is None:
            scope.send_to(target, event)
        else:
            scope.schedule(event, _evaluate_delay(self.delay, scope), self.id, to=target)


class Cancel(Action):
    """Cancels a delayed event previously scheduled with the given id."""

    name = "cancel"

    def __init__(self, send_id: str) -> None:
        self.send_id = send_id

    def execute(self, scope: Any) -> None:
        scope.cancel(self.send_id)


class Log(Action):
    """Writes a message computed from the context and event to the log."""

    name = "log"

    def __init__(
        self,
        message: Union[str, Callable[[Any, Event], Any], None] = None,
        label: Optional[str] = None,
        level: int = logging.INFO,
    ) -> None:
        self.message = message
        self.label = label
        self.level = level

    def execute(self, scope: Any) -> None:
        if self.message is None:
            value: Any = {"context": scope.context, "event": scope.event}
        elif callable(self.message):
            value = self.message(scope.context, scope.event)
        else:
            value = self.message
        if self.label:
            logger.log(self.level, "%s: %s", self.label, value)
        else:
            logger.log(self.level, "%s", value)


def _evaluate_event(spec: Any, scope: Any) -> Event:
    if callable(spec) and not isinstance(spec, Event):
        spec = spec(scope.context, scope.event)
    return to_event(spec)


def _evaluate_delay(spec: Any, scope: Any) -> float:
    delay = spec(scope.context, scope.event) if callable(spec) else spec
    return float(delay)


def assign(assignment: Union[Mapping[str, Any], Callable[[Any, Event], Mapping[str, Any]]]) -> Action:
    return Assign(assignment)


def raise_event(event: Any, delay: Any = None, id: Optional[str] = None) -> Action:
    return Raise(event, delay, id)


def send_to(to: Any, event: Any, delay: Any = None, id: Optional[str] = None) -> Action:
    return SendTo(to, event, delay, id)


def send_parent(event: Any, delay: Any = None, id: Optional[str] = None) -> Action:
    return SendTo(PARENT, event, delay, id)


def cancel(send_id: str) -> Action:
    return Cancel(send_id)


def log(message: Any = None, label: Optional[str] = None, level: int = logging.INFO) -> Action:
    return Log(message, label, level)


PARENT = "#parent"


def to_action(spec: Any, implementations: "Implementations", name: Optional[str] = None) -> Action:
    """
    Resolve one action specification: an Action, a callable
    ``(context, event)`` or the name of an action in the implementations.
    """
    if isinstance(spec, str):
        return _NamedAction(spec).resolve(implementations)
    if isinstance(spec, Action):
        return spec.resolve(implementations)
    if callable(spec):
        return _ActionAdapter(spec, name)
    raise ConfigurationError(f"Action must be callable, an Action or a name, got {spec!r}")


def to_actions(spec: Any, implementations: "Implementations") -> Tuple[Action, ...]:
    """Resolve a single action specification or a list of them, keeping order."""
    if spec is None:
        return ()
    if isinstance(spec, (list, tuple)):
        items: Iterable[Any] = spec
    else:
        items = (spec,)
    return tuple(to_action(item, implementations) for item in items)
