"""
Graph package: plan search over the reachable states of a machine.
"""
