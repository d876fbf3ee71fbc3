# tests/conftest.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from unittest.mock import MagicMock

import pytest


@pytest.fixture
def light_config():
    """Traffic light with a pedestrian sub-machine in red."""
    return {
        "id": "light",
        "initial": "green",
        "context": {"elapsed": 0},
        "states": {
            "green": {"id": "green", "on": {"TIMER": "yellow", "POWER_OUTAGE": "red"}},
            "yellow": {"on": {"TIMER": "red", "POWER_OUTAGE": "red"}},
            "red": {
                "initial": "walk",
                "on": {"TIMER": "green", "POWER_OUTAGE": "red"},
                "states": {
                    "walk": {"on": {"PED_COUNTDOWN": "wait"}},
                    "wait": {
                        "on": {
                            "PED_COUNTDOWN": {
                                "target": "stop",
                                "guard": lambda ctx, e: e.get("duration") == 0 and ctx["elapsed"] > 0,
                            }
                        }
                    },
                    "stop": {},
                },
            },
        },
    }


@pytest.fixture
def light_machine(light_config):
    from statechart import create_machine

    return create_machine(light_config)


@pytest.fixture
def parallel_machine():
    """Regions foo, bar and baz; only baz reacts to E."""
    from statechart import create_machine

    return create_machine(
        {
            "id": "p",
            "type": "parallel",
            "states": {
                "foo": {},
                "bar": {},
                "baz": {"initial": "one", "states": {"one": {"on": {"E": "two"}}, "two": {}}},
            },
        }
    )


@pytest.fixture
def greeting_config():
    """Raises the first greeting whose guard passes, in declared order."""
    from statechart import raise_event

    return {
        "id": "greeting",
        "initial": "pending",
        "context": {"hour": 10},
        "states": {
            "pending": {
                "on": {
                    "DECIDE": [
                        {"actions": raise_event("ALOHA"), "guard": lambda ctx, e: bool(e.get("aloha"))},
                        {"actions": raise_event("MORNING"), "guard": lambda ctx, e: ctx["hour"] < 12},
                        {"actions": raise_event("AFTERNOON"), "guard": lambda ctx, e: ctx["hour"] < 18},
                        {"actions": raise_event("EVENING"), "guard": lambda ctx, e: ctx["hour"] < 22},
                    ]
                }
            },
            "morning": {},
            "lunchTime": {},
            "afternoon": {},
            "evening": {},
            "night": {},
            "aloha": {},
        },
        "on": {
            "MORNING": ".morning",
            "LUNCH_TIME": ".lunchTime",
            "AFTERNOON": ".afternoon",
            "EVENING": ".evening",
            "NIGHT": ".night",
            "ALOHA": ".aloha",
        },
    }


@pytest.fixture
def greeting_machine(greeting_config):
    from statechart import create_machine

    return create_machine(greeting_config)


@pytest.fixture
def clock():
    """A manually advanced clock."""
    from statechart.runtime.timers import SimulatedClock

    return SimulatedClock()


@pytest.fixture
def recorder():
    """Collects labels in call order; ``recorder.action(label)`` builds a recording action."""

    class _Recorder(list):
        def action(self, label):
            def _record(ctx, event):
                self.append(label)

            _record.__name__ = f"record_{label}"
            return _record

    return _Recorder()


@pytest.fixture
def mock_listener():
    """A mock subscriber for interpreter snapshots."""
    return MagicMock()


@pytest.fixture
def mock_parent():
    """Stands in for a parent interpreter receiving events from actors."""
    parent = MagicMock()
    parent.options.max_microsteps = 1000
    return parent
