# statechart/core/guards.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from typing import Any, Collection, Iterator, Mapping, Optional, Tuple, Union

from statechart.core.errors import ConfigurationError
from statechart.core.events import Event
from statechart.core.types import GuardFunction


class Guard:
    """
    A pure predicate deciding whether a transition is enabled. Guards must not
    have side effects: the engine may evaluate them any number of times, and
    plan search evaluates them for hypothetical states.
    """

    name: str = "guard"

    def check(self, context: Any, event: Event, configuration: Collection[str]) -> bool:
        """
        Evaluate the guard.

        :param context: Current machine context.
        :param event: Event being processed.
        :param configuration: Ids of the currently active state nodes.
        """
        raise NotImplementedError()

    def resolve(self, registry: Mapping[str, Any]) -> "Guard":
        """Return a guard whose named references are looked up in ``registry``."""
        return self

    def references(self) -> Iterator[str]:
        """State ids this guard depends on, checked when the machine is built."""
        return iter(())


class _GuardAdapter(Guard):
    """
    Internal class adapting a simple callable ``fn(context, event) -> bool``
    to the Guard interface.
    """

    def __init__(self, guard_fn: GuardFunction, name: Optional[str] = None) -> None:
        self._guard_fn = guard_fn
        self.name = name or getattr(guard_fn, "__name__", "guard")

    def check(self, context: Any, event: Event, configuration: Collection[str]) -> bool:
        return bool(self._guard_fn(context, event))

    def __repr__(self) -> str:
        return f"Guard({self.name})"


class _NamedGuard(Guard):
    """Placeholder for a guard referenced by name, replaced on resolve()."""

    def __init__(self, name: str) -> None:
        self.name = name

    def check(self, context: Any, event: Event, configuration: Collection[str]) -> bool:
        raise ConfigurationError(f"Guard '{self.name}' was never resolved")

    def resolve(self, registry: Mapping[str, Any]) -> Guard:
        if self.name not in registry:
            raise ConfigurationError(f"Guard '{self.name}' is not provided by the implementations")
        return to_guard(registry[self.name], registry, name=self.name)


class InState(Guard):
    """Passes when the given state node is active."""

    def __init__(self, state_id: str) -> None:
        self.state_id = state_id[1:] if state_id.startswith("#") else state_id
        self.name = f"in({self.state_id})"

    def check(self, context: Any, event: Event, configuration: Collection[str]) -> bool:
        return self.state_id in configuration

    def references(self) -> Iterator[str]:
        yield self.state_id


class _Combinator(Guard):
    def __init__(self, *guards: Any) -> None:
        self.guards: Tuple[Any, ...] = guards

    def resolve(self, registry: Mapping[str, Any]) -> Guard:
        return type(self)(*(to_guard(g, registry) for g in self.guards))

    def references(self) -> Iterator[str]:
        for guard in self.guards:
            if isinstance(guard, Guard):
                yield from guard.references()


class And(_Combinator):
    name = "and"

    def check(self, context: Any, event: Event, configuration: Collection[str]) -> bool:
        return all(g.check(context, event, configuration) for g in self.guards)


class Or(_Combinator):
    name = "or"

    def check(self, context: Any, event: Event, configuration: Collection[str]) -> bool:
        return any(g.check(context, event, configuration) for g in self.guards)


class Not(_Combinator):
    name = "not"

    def check(self, context: Any, event: Event, configuration: Collection[str]) -> bool:
        return not self.guards[0].check(context, event, configuration)


GuardSpec = Union[Guard, str, GuardFunction]


def in_state(state_id: str) -> Guard:
    return InState(state_id)


def and_(*guards: GuardSpec) -> Guard:
    return And(*guards)


def or_(*guards: GuardSpec) -> Guard:
    return Or(*guards)


def not_(guard: GuardSpec) -> Guard:
    return Not(guard)


def to_guard(spec: GuardSpec, registry: Mapping[str, Any], name: Optional[str] = None) -> Guard:
    """
    Resolve a guard specification from a machine definition.

    :param spec: A Guard, a callable ``(context, event) -> bool`` or the name
                 of a guard in ``registry``.
    :param registry: Named guards supplied with the machine implementations.
    :raises ConfigurationError: If a name is unknown or the value is not usable.
    """
    if isinstance(spec, str):
        return _NamedGuard(spec).resolve(registry)
    if isinstance(spec, Guard):
        return spec.resolve(registry)
    if callable(spec):
        return _GuardAdapter(spec, name)
    raise ConfigurationError(f"Guard must be callable, a Guard or a name, got {spec!r}")
