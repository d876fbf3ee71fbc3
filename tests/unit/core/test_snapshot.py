# tests/unit/core/test_snapshot.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import pytest

from statechart import create_machine
from statechart.core.events import INIT_EVENT_TYPE


def test_initial_snapshot(light_machine):
    state = light_machine.initial_state
    assert state.value == "green"
    assert state.configuration == ("light", "green")
    assert state.context == {"elapsed": 0}
    assert state.event.type == INIT_EVENT_TYPE
    assert not state.done
    assert not state.changed
    assert state.output is None


def test_matches_and_can(light_machine):
    state = light_machine.transition(light_machine.initial_state, "POWER_OUTAGE")
    assert state.matches("red")
    assert state.matches({"red": "walk"})
    assert not state.matches("green")
    assert state.can("PED_COUNTDOWN")
    assert state.can("TIMER")
    assert not state.can("UNKNOWN")


def test_can_respects_guards(light_machine):
    state = light_machine.transition(light_machine.initial_state, "POWER_OUTAGE")
    state = light_machine.transition(state, "PED_COUNTDOWN")
    assert state.matches("red.wait")
    # elapsed is 0 in the initial context, so the guard rejects the event.
    assert not state.can({"type": "PED_COUNTDOWN", "duration": 0})


def test_next_events(light_machine):
    state = light_machine.transition(light_machine.initial_state, "POWER_OUTAGE")
    assert state.next_events == ("TIMER", "POWER_OUTAGE", "PED_COUNTDOWN")


def test_next_events_skip_wildcards():
    machine = create_machine(
        {"id": "w", "initial": "x", "states": {"x": {}}, "on": {"*": None, "a.*": None, "PING": None}}
    )
    assert machine.initial_state.next_events == ("PING",)


def test_tags():
    machine = create_machine(
        {
            "id": "t",
            "initial": "loading",
            "states": {"loading": {"tags": ["busy", "visible"]}, "idle": {"tags": "visible"}},
        }
    )
    state = machine.initial_state
    assert state.tags == frozenset({"busy", "visible"})
    assert state.has_tag("busy")
    assert not state.has_tag("error")


def test_snapshots_compare_by_value(light_machine):
    first = light_machine.initial_state
    second = light_machine.get_initial_state({"elapsed": 0})
    assert first == second
    assert first != light_machine.get_initial_state({"elapsed": 1})


def test_snapshot_is_immutable(light_machine):
    state = light_machine.initial_state
    with pytest.raises(AttributeError):
        state.context = {}


def test_to_dict_and_repr(light_machine):
    state = light_machine.initial_state
    data = state.to_dict()
    assert data["value"] == "green"
    assert data["configuration"] == ["light", "green"]
    assert data["event"] == {"type": INIT_EVENT_TYPE}
    assert repr(state) == "State(value='green', context={'elapsed': 0}, done=False)"


def test_active_nodes(light_machine):
    state = light_machine.initial_state
    assert [n.id for n in state.active_nodes()] == ["light", "green"]
