# tests/unit/core/test_machine.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import pytest

from statechart import Implementations, Machine, assign, create_machine
from statechart.core.errors import ConfigurationError, StateNotFoundError


@pytest.fixture
def counter_config():
    return {
        "id": "counter",
        "initial": "active",
        "context": {"count": 0},
        "states": {
            "active": {
                "entry": "record",
                "on": {
                    "INC": {"actions": assign({"count": lambda ctx, e: ctx["count"] + e.get("by", 1)})},
                    "STOP": "stopped",
                },
            },
            "stopped": {"type": "final", "output": lambda ctx, e: ctx["count"]},
        },
    }


def test_create_machine_with_mapping_implementations(counter_config, recorder):
    machine = create_machine(counter_config, {"actions": {"record": recorder.action("entry")}})
    assert isinstance(machine, Machine)
    assert machine.id == "counter"
    assert machine.root.id == "counter"
    assert "record" in machine.implementations.actions


def test_create_machine_with_keyword_implementations(counter_config, recorder):
    machine = create_machine(counter_config, actions={"record": recorder.action("entry")})
    assert machine.implementations.actions["record"].__name__ == "record_entry"


def test_missing_implementation_fails_construction(counter_config):
    with pytest.raises(ConfigurationError):
        create_machine(counter_config)


def test_transition_is_pure(counter_config, recorder):
    machine = create_machine(counter_config, actions={"record": recorder.action("entry")})
    start = machine.initial_state
    after = machine.transition(start, "INC", by=5)

    assert after.context == {"count": 5}
    assert start.context == {"count": 0}
    assert after.changed
    # Custom actions never run in a pure transition.
    assert recorder == []


def test_transition_is_deterministic(counter_config, recorder):
    machine = create_machine(counter_config, actions={"record": recorder.action("entry")})
    start = machine.initial_state
    assert machine.transition(start, "INC") == machine.transition(start, "INC")


def test_unhandled_event_leaves_state_unchanged(counter_config, recorder):
    machine = create_machine(counter_config, actions={"record": recorder.action("entry")})
    start = machine.initial_state
    after = machine.transition(start, "UNKNOWN")
    assert not after.changed
    assert after.configuration == start.configuration
    assert after.context == start.context


def test_final_state_output(counter_config, recorder):
    machine = create_machine(counter_config, actions={"record": recorder.action("entry")})
    state = machine.transition(machine.initial_state, "INC", by=2)
    state = machine.transition(state, "STOP")
    assert state.done
    assert state.output == 2
    assert not state.can("INC")

    # A finished machine ignores further events.
    assert machine.transition(state, "INC") is not state
    assert machine.transition(state, "INC").context == {"count": 2}


def test_provide_overrides_implementations(counter_config, recorder):
    machine = create_machine(counter_config, actions={"record": recorder.action("first")})
    provided = machine.provide(actions={"record": recorder.action("second")})
    assert provided is not machine
    assert provided.implementations.actions["record"].__name__ == "record_second"
    assert machine.implementations.actions["record"].__name__ == "record_first"

    merged = machine.provide(Implementations(guards={"ok": lambda ctx, e: True}))
    assert set(merged.implementations.guards) == {"ok"}
    assert "record" in merged.implementations.actions


def test_with_context(light_machine):
    machine = light_machine.with_context({"elapsed": 5})
    assert machine.initial_state.context == {"elapsed": 5}
    assert light_machine.initial_state.context == {"elapsed": 0}


def test_context_is_copied_per_snapshot(light_machine):
    light_machine.context["elapsed"] = 99
    assert light_machine.initial_state.context == {"elapsed": 0}


def test_context_factory():
    machine = create_machine({"id": "f", "context": lambda: {"items": []}})
    assert machine.context == {"items": []}
    assert machine.context is not machine.context


def test_events_and_get_node(light_machine):
    assert light_machine.events == ("TIMER", "POWER_OUTAGE", "PED_COUNTDOWN")
    assert light_machine.get_node("#green").key == "green"
    assert light_machine.get_node("light.red.walk").path == ("red", "walk")
    with pytest.raises(StateNotFoundError):
        light_machine.get_node("#blue")


def test_select(light_machine):
    (transition,) = light_machine.select(light_machine.initial_state, "TIMER")
    assert transition.source == "green"
    assert transition.targets == ("light.yellow",)
    assert light_machine.select(light_machine.initial_state, "PED_COUNTDOWN") == []
