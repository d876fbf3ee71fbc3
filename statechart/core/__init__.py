"""
Core package: machine definitions and the immutable values the engine works on.

Architecture:
- StateTree arena of immutable StateNodes, built from a definition mapping
- Transitions, guards and actions resolved against Implementations at build time
- State snapshots produced by the executor, never mutated
"""
