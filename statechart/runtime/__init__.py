"""
Runtime package: transition selection, microstep execution and live interpretation.

Architecture:
- TransitionSelector and MicrostepExecutor are pure over snapshots
- Interpreter owns the event queue, timers and invoked actors and applies
  the effects of each macrostep only after it succeeds
"""
