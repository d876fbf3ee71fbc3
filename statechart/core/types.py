# statechart/core/types.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

"""
Type definitions and enums for the statechart.

This module contains shared type definitions and enums used across
the package. It breaks circular dependencies between the state node,
transition and snapshot modules.

Design:
- No runtime dependencies on other modules
- Only contains type definitions and enums
- Provides type hints for static analysis
"""

from enum import Enum
from typing import Any, Callable, Dict, Mapping, Union


class StateType(Enum):
    """Defines the kinds of state nodes in a statechart.

    The value is the string used for ``type`` in a machine definition.
    """

    ATOMIC = "atomic"  # Leaf state with no substates
    COMPOUND = "compound"  # Exactly one child active at a time
    PARALLEL = "parallel"  # All children active at the same time
    FINAL = "final"  # Completes its parent
    HISTORY = "history"  # Pseudo-state remembering a previous configuration


class HistoryMode(Enum):
    """Defines how much of a configuration a history node remembers."""

    SHALLOW = "shallow"  # Direct children only
    DEEP = "deep"  # Full descendant configuration


# Type aliases for common types
Context = Any
StateValue = Union[str, Dict[str, Any]]
EventPayload = Mapping[str, Any]
GuardFunction = Callable[[Context, Any], bool]
ActionFunction = Callable[[Context, Any], None]
DelayFunction = Callable[[Context, Any], float]
