"""statechart: deterministic hierarchical state-machine interpreter with plan search

This package provides a statechart interpreter (compound, parallel, final and
history states, guarded and eventless transitions, delayed events and
invoked actors) and a search over a machine's reachable states that produces
shortest event sequences for test-plan generation.

Responsibilities:
    - Machine definition parsing and construction-time validation
    - Transition selection with nearest-ancestor precedence
    - Microstep/macrostep execution with exit-before-entry ordering
    - Live interpretation: event queue, timers, actors
    - Shortest and simple plan search over the pure transition function

Interactions:
    - Client code through create_machine, interpret and the graph functions
    - Clock implementations for delayed events
    - asyncio for coroutine actors
    - Logging system for diagnostics

Cross-cutting Concerns:
    Thread Safety:
        - One macrostep at a time per interpreter
        - send() may be called from any thread; it only enqueues while
          another caller is processing

    Error Handling:
        - StatechartError hierarchy in statechart.core.errors
        - Guard and action exceptions propagate unchanged

    Logging:
        - Standard logging, one logger per module
"""

from statechart.core.actions import assign, cancel, log, raise_event, send_parent, send_to
from statechart.core.errors import (
    ConfigurationError,
    InvalidPathError,
    StatechartError,
    StateNotFoundError,
    TransitionCycleError,
    TraversalLimitError,
)
from statechart.core.events import Event
from statechart.core.guards import and_, in_state, not_, or_
from statechart.core.implementations import Implementations
from statechart.core.machine import Machine, create_machine
from statechart.core.snapshot import State
from statechart.graph.options import TraversalOptions
from statechart.graph.plans import (
    Plan,
    Step,
    get_adjacency_map,
    get_path_from_events,
    get_shortest_plans,
    get_shortest_plans_to,
    get_simple_plans,
)
from statechart.runtime.actors import from_callback, from_coroutine
from statechart.runtime.interpreter import Interpreter, InterpreterOptions, InterpreterStatus, interpret
from statechart.runtime.timers import AsyncioClock, Clock, SimulatedClock, ThreadingClock

__version__ = "0.1.0"

__all__ = [
    # Machines
    "Machine",
    "create_machine",
    "Implementations",
    "State",
    "Event",
    # Actions and guards
    "assign",
    "raise_event",
    "send_to",
    "send_parent",
    "cancel",
    "log",
    "in_state",
    "and_",
    "or_",
    "not_",
    # Runtime
    "Interpreter",
    "InterpreterOptions",
    "InterpreterStatus",
    "interpret",
    "from_callback",
    "from_coroutine",
    "Clock",
    "ThreadingClock",
    "SimulatedClock",
    "AsyncioClock",
    # Plan search
    "TraversalOptions",
    "Plan",
    "Step",
    "get_shortest_plans",
    "get_shortest_plans_to",
    "get_simple_plans",
    "get_adjacency_map",
    "get_path_from_events",
    # Errors
    "StatechartError",
    "ConfigurationError",
    "StateNotFoundError",
    "TransitionCycleError",
    "TraversalLimitError",
    "InvalidPathError",
]
