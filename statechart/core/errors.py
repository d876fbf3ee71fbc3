# statechart/core/errors.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from typing import Any, Dict, Optional, Sequence


class StatechartError(Exception):
    """
    Base exception class for errors within the statechart library.
    """


class ConfigurationError(StatechartError):
    """
    Raised when a machine definition is invalid. The machine is never built
    from a definition that raises this error.
    """

    def __init__(self, message: str, node_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.node_id = node_id


class StateNotFoundError(ConfigurationError):
    """
    Raised when a transition target, an initial child or a node lookup refers
    to a state that does not exist in the machine.
    """

    def __init__(self, reference: str, node_id: Optional[str] = None) -> None:
        where = f" (referenced from '{node_id}')" if node_id else ""
        super().__init__(f"State '{reference}' does not exist{where}", node_id)
        self.reference = reference


class TransitionCycleError(StatechartError):
    """
    Raised when a macrostep keeps selecting transitions without ever becoming
    stable. This points at a defect in the machine definition, not at the
    data being processed.
    """

    def __init__(self, message: str, transitions: Sequence[str] = (), microsteps: int = 0) -> None:
        super().__init__(message)
        self.transitions = tuple(transitions)
        self.microsteps = microsteps

    @property
    def details(self) -> Dict[str, Any]:
        return {"transitions": self.transitions, "microsteps": self.microsteps}


class TraversalLimitError(StatechartError):
    """
    Raised when a plan search visits more states than its configured limit.
    """

    def __init__(self, limit: int) -> None:
        super().__init__(f"Traversal limit exceeded: more than {limit} states visited")
        self.limit = limit


class InvalidPathError(StatechartError):
    """
    Raised when replaying an event sequence hits an event that the current
    state does not handle.
    """

    def __init__(self, state_key: str, event_key: str) -> None:
        super().__init__(f"Invalid transition from state {state_key} with event {event_key}")
        self.state_key = state_key
        self.event_key = event_key
