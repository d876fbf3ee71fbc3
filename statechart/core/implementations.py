# statechart/core/implementations.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional

from statechart.core.errors import ConfigurationError


def _frozen(mapping: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class Implementations:
    """
    Named actions, guards, delays and actor logic referenced by a machine
    definition. Names are resolved once, when the machine is built.
    """

    actions: Mapping[str, Any] = field(default_factory=dict)
    guards: Mapping[str, Any] = field(default_factory=dict)
    delays: Mapping[str, Any] = field(default_factory=dict)
    actors: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name in ("actions", "guards", "delays", "actors"):
            object.__setattr__(self, name, _frozen(getattr(self, name)))

    def merge(self, other: "Implementations") -> "Implementations":
        """Return new implementations where entries of ``other`` override ours."""
        return Implementations(
            actions={**self.actions, **other.actions},
            guards={**self.guards, **other.guards},
            delays={**self.delays, **other.delays},
            actors={**self.actors, **other.actors},
        )

    def delay(self, name: str) -> Any:
        """
        Look up a named delay: a number of seconds or a callable
        ``(context, event) -> seconds``.
        """
        if name not in self.delays:
            raise ConfigurationError(f"Delay '{name}' is not provided by the implementations")
        value = self.delays[name]
        if not callable(value) and not isinstance(value, (int, float)):
            raise ConfigurationError(f"Delay '{name}' must be a number or a callable, got {value!r}")
        return value

    def actor(self, name: str) -> Any:
        if name not in self.actors:
            raise ConfigurationError(f"Actor '{name}' is not provided by the implementations")
        return self.actors[name]


def to_implementations(value: Any = None, **kwargs: Any) -> Implementations:
    """Accept an Implementations object, a plain mapping or keyword arguments."""
    if isinstance(value, Implementations):
        base = value
    elif value is None:
        base = Implementations()
    elif isinstance(value, Mapping):
        unknown = set(value) - {"actions", "guards", "delays", "actors"}
        if unknown:
            raise ConfigurationError(f"Unknown implementation kinds: {sorted(unknown)}")
        base = Implementations(**value)
    else:
        raise ConfigurationError(f"Cannot use {value!r} as implementations")
    if kwargs:
        base = base.merge(to_implementations(kwargs))
    return base
