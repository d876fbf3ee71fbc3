# tests/integration/test_scenarios.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import logging

import pytest

from statechart import assign, create_machine, interpret, log, raise_event


def test_pedestrian_countdown(light_machine):
    machine = light_machine.with_context({"elapsed": 5})
    state = machine.transition(machine.initial_state, "POWER_OUTAGE")
    state = machine.transition(state, "PED_COUNTDOWN")
    assert state.value == {"red": "wait"}

    waiting = machine.transition(state, "PED_COUNTDOWN", duration=1)
    assert waiting.value == {"red": "wait"}
    assert not waiting.changed

    stopped = machine.transition(state, "PED_COUNTDOWN", duration=0)
    assert stopped.value == {"red": "stop"}


def test_pedestrian_stop_jumps_back_to_green(light_config):
    light_config["context"] = {"elapsed": 5}
    light_config["states"]["red"]["states"]["stop"] = {"always": "#green"}
    machine = create_machine(light_config)
    state = machine.transition(machine.initial_state, "POWER_OUTAGE")
    state = machine.transition(state, "PED_COUNTDOWN")
    state = machine.transition(state, "PED_COUNTDOWN", duration=0)
    assert state.value == "green"
    assert [t.source for t in state.transitions] == ["light.red.wait", "light.red.stop"]


def test_parallel_event_only_changes_its_region(parallel_machine):
    start = parallel_machine.initial_state
    assert start.value == {"foo": {}, "bar": {}, "baz": "one"}
    state = parallel_machine.transition(start, "E")
    assert state.value == {"foo": {}, "bar": {}, "baz": "two"}
    assert {"p.foo", "p.bar"} <= set(state.configuration)


def test_greeting_picks_first_passing_guard(greeting_machine):
    state = greeting_machine.transition(greeting_machine.initial_state, "DECIDE")
    assert state.value == "morning"

    aloha = greeting_machine.transition(greeting_machine.initial_state, "DECIDE", aloha=True)
    assert aloha.value == "aloha"

    evening = greeting_machine.with_context({"hour": 20})
    assert evening.transition(evening.initial_state, "DECIDE").value == "evening"

    night = greeting_machine.with_context({"hour": 23})
    assert night.transition(night.initial_state, "DECIDE").value == "pending"


@pytest.mark.parametrize("event", ["UNKNOWN", "PED_COUNTDOWN"])
def test_unhandled_events_never_change_anything(light_machine, event):
    start = light_machine.initial_state
    state = light_machine.transition(start, event)
    assert state.configuration == start.configuration
    assert state.context == start.context
    assert not state.changed


def test_configuration_is_always_closed_under_ancestors(light_machine, parallel_machine):
    for machine, events in ((light_machine, ["TIMER", "TIMER", "PED_COUNTDOWN", "TIMER"]), (parallel_machine, ["E"])):
        state = machine.initial_state
        for event in events:
            state = machine.transition(state, event)
            active = set(state.configuration)
            for node_id in active:
                assert all(a.id in active for a in machine.tree.ancestors(node_id))
                node = machine.tree.get(node_id)
                if node.is_compound:
                    assert sum(c.id in active for c in machine.tree.state_children(node_id)) == 1
                if node.is_parallel:
                    assert all(c.id in active for c in machine.tree.state_children(node_id))


def test_interpreter_matches_pure_transitions(light_machine):
    events = ["TIMER", "TIMER", {"type": "PED_COUNTDOWN", "duration": 3}, "TIMER"]
    state = light_machine.initial_state
    with interpret(light_machine) as service:
        for event in events:
            service.send(event)
            state = light_machine.transition(state, event)
            assert service.state == state


def test_media_player_with_history_and_logging(caplog, recorder):
    machine = create_machine(
        {
            "id": "player",
            "initial": "off",
            "context": {"volume": 5, "plays": 0},
            "states": {
                "off": {"on": {"POWER": "on.hist"}},
                "on": {
                    "initial": "stopped",
                    "entry": recorder.action("on"),
                    "exit": recorder.action("off"),
                    "on": {
                        "POWER": "off",
                        "VOLUME": {"actions": [assign({"volume": lambda c, e: e["level"]}), log(label="volume")]},
                    },
                    "states": {
                        "stopped": {"on": {"PLAY": "playing"}},
                        "playing": {
                            "entry": assign({"plays": lambda c, e: c["plays"] + 1}),
                            "on": {"STOP": "stopped", "PAUSE": "paused"},
                        },
                        "paused": {"on": {"PLAY": "playing", "STOP": "stopped"}},
                        "hist": {"type": "history"},
                    },
                },
            },
        }
    )
    with caplog.at_level(logging.INFO, logger="statechart.core.actions"), interpret(machine) as service:
        service.send("POWER")
        assert service.state.value == {"on": "stopped"}
        service.send("PLAY")
        service.send("PAUSE")
        service.send("VOLUME", level=8)
        service.send("POWER")
        assert service.state.value == "off"
        service.send("POWER")
        assert service.state.value == {"on": "paused"}
        assert service.state.context == {"volume": 8, "plays": 1}
    assert recorder == ["on", "off", "on", "off"]
    assert "volume" in caplog.text


def test_internal_events_are_processed_before_external_ones():
    machine = create_machine(
        {
            "id": "m",
            "initial": "a",
            "context": {"order": ()},
            "states": {
                "a": {
                    "on": {
                        "START": {"target": "b", "actions": raise_event("INTERNAL")},
                    }
                },
                "b": {
                    "on": {
                        "INTERNAL": {"actions": assign({"order": lambda c, e: c["order"] + ("internal",)})},
                        "EXTERNAL": {"actions": assign({"order": lambda c, e: c["order"] + ("external",)})},
                    }
                },
            },
        }
    )
    with interpret(machine) as service:
        service.send("START")
        service.send("EXTERNAL")
        assert service.state.context == {"order": ("internal", "external")}
