# statechart/core/transitions.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Collection, Optional, Tuple

from statechart.core.actions import Action
from statechart.core.events import WILDCARD, Event
from statechart.core.guards import Guard


@dataclass(frozen=True)
class Transition:
    """
    Defines a possible path from a source node to zero or more targets,
    optionally guarded, performing actions when taken. Transitions refer to
    nodes by id only; the StateTree resolves those ids.
    """

    source: str
    event_type: Optional[str]
    targets: Tuple[str, ...] = ()
    guard: Optional[Guard] = None
    actions: Tuple[Action, ...] = ()
    internal: bool = False
    order: int = 0

    @property
    def eventless(self) -> bool:
        return self.event_type is None

    @property
    def targetless(self) -> bool:
        """A targetless transition only runs its actions; nothing is exited or entered."""
        return not self.targets

    def enabled(self, context: Any, event: Event, configuration: Collection[str]) -> bool:
        """
        Evaluate the guard, if any.

        :param context: Current machine context.
        :param event: The triggering event.
        :param configuration: Active node ids, for ``in_state`` guards.
        :return: True if there is no guard or the guard passes.
        """
        if self.guard is None:
            return True
        return self.guard.check(context, event, configuration)

    @property
    def key(self) -> str:
        """Stable identity used when detecting repeated microsteps."""
        return f"{self.source}:{self.event_type or ''}:{self.order}"

    def __repr__(self) -> str:
        targets = ",".join(self.targets) or "-"
        return f"Transition({self.source} --{self.event_type or 'always'}--> {targets})"


def candidate_descriptors(event_type: str) -> Tuple[str, ...]:
    """
    Descriptors that can match ``event_type``, most specific first: the exact
    type, then each wildcard prefix from longest to shortest, then ``*``.
    """
    parts = event_type.split(".")
    prefixes = tuple(".".join(parts[:i]) + ".*" for i in range(len(parts), 0, -1))
    return (event_type,) + prefixes + (WILDCARD,)
