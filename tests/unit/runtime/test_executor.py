# tests/unit/runtime/test_executor.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import pytest

from statechart import assign, create_machine, raise_event
from statechart.core.errors import TransitionCycleError
from statechart.core.events import Event
from statechart.runtime.executor import (
    CancelEvent,
    MacrostepProgress,
    ScheduleEvent,
    SendEvent,
    StartActor,
    StopActor,
    collapse_effects,
)


def test_collapse_effects_drops_matching_pairs():
    tick = Event("TICK")
    effects = [
        StartActor("a", None, None, "m.x"),
        ScheduleEvent("t1", 1.0, tick),
        StopActor("a"),
        CancelEvent("t1"),
        ScheduleEvent("t2", 2.0, tick),
        StopActor("b"),
        CancelEvent("t3"),
        SendEvent("child", tick),
    ]
    assert collapse_effects(effects) == (
        ScheduleEvent("t2", 2.0, tick),
        StopActor("b"),
        CancelEvent("t3"),
        SendEvent("child", tick),
    )


def test_exit_order_then_transition_actions_then_entry_order(recorder):
    machine = create_machine(
        {
            "id": "m",
            "initial": "a",
            "states": {
                "a": {
                    "initial": "a1",
                    "exit": recorder.action("exit a"),
                    "on": {"GO": {"target": "#m.b.b1", "actions": recorder.action("transition")}},
                    "states": {"a1": {"exit": recorder.action("exit a1")}},
                },
                "b": {
                    "initial": "b0",
                    "entry": recorder.action("enter b"),
                    "states": {"b0": {}, "b1": {"entry": recorder.action("enter b1")}},
                },
            },
        }
    )
    executor = machine.executor
    start = executor.enter_initial(machine.context, live=True).state
    result = executor.macrostep(start, Event("GO"), live=True)
    assert recorder == ["exit a1", "exit a", "transition", "enter b", "enter b1"]
    assert result.state.value == {"b": "b1"}


def test_pure_mode_only_runs_assign_and_raise(recorder):
    machine = create_machine(
        {
            "id": "m",
            "initial": "a",
            "context": {"n": 0},
            "states": {
                "a": {
                    "on": {
                        "GO": {
                            "target": "b",
                            "actions": [assign({"n": 1}), recorder.action("custom"), raise_event("NEXT")],
                        }
                    }
                },
                "b": {"on": {"NEXT": "c"}},
                "c": {},
            },
        }
    )
    result = machine.executor.macrostep(machine.initial_state, Event("GO"))
    assert recorder == []
    assert result.state.context == {"n": 1}
    assert result.state.value == "c"
    assert [t.event_type for t in result.state.transitions] == ["GO", "NEXT"]


def test_raised_events_are_processed_before_returning():
    machine = create_machine(
        {
            "id": "m",
            "initial": "a",
            "states": {
                "a": {"entry": [raise_event("FIRST"), raise_event("SECOND")], "on": {"FIRST": "b"}},
                "b": {"on": {"SECOND": "c"}},
                "c": {},
            },
        }
    )
    assert machine.initial_state.value == "c"


def test_eventless_transitions_run_before_internal_events():
    machine = create_machine(
        {
            "id": "m",
            "initial": "a",
            "context": {"trail": ()},
            "states": {
                "a": {
                    "entry": raise_event("LATER"),
                    "always": {"target": "b", "actions": assign({"trail": lambda c, e: c["trail"] + ("always",)})},
                },
                "b": {
                    "on": {
                        "LATER": {"target": "c", "actions": assign({"trail": lambda c, e: c["trail"] + ("later",)})}
                    }
                },
                "c": {},
            },
        }
    )
    state = machine.initial_state
    assert state.value == "c"
    assert state.context == {"trail": ("always", "later")}


def test_eventless_loop_raises_cycle_error():
    machine = create_machine(
        {
            "id": "m",
            "initial": "idle",
            "states": {"idle": {"on": {"GO": "a"}}, "a": {"always": "b"}, "b": {"always": "a"}},
        }
    )
    with pytest.raises(TransitionCycleError) as exc_info:
        machine.transition(machine.initial_state, "GO")
    assert exc_info.value.transitions


def test_microstep_limit():
    machine = create_machine(
        {
            "id": "m",
            "initial": "idle",
            "context": {"n": 0},
            "states": {
                "idle": {"on": {"GO": "counting"}},
                "counting": {"always": {"target": "counting", "actions": assign({"n": lambda c, e: c["n"] + 1})}},
            },
        },
        max_microsteps=50,
    )
    with pytest.raises(TransitionCycleError) as exc_info:
        machine.transition(machine.initial_state, "GO")
    assert exc_info.value.microsteps == 51


def test_history_restores_last_child():
    machine = create_machine(
        {
            "id": "player",
            "initial": "on",
            "states": {
                "on": {
                    "initial": "playing",
                    "on": {"POWER": "off"},
                    "states": {
                        "playing": {"on": {"PAUSE": "paused"}},
                        "paused": {},
                        "hist": {"type": "history"},
                    },
                },
                "off": {"on": {"POWER": "on.hist"}},
            },
        }
    )
    state = machine.initial_state
    state = machine.transition(state, "PAUSE")
    state = machine.transition(state, "POWER")
    assert state.value == "off"
    assert state.history_value == {"player.on.hist": ("player.on.paused",)}
    state = machine.transition(state, "POWER")
    assert state.value == {"on": "paused"}


def test_deep_history():
    machine = create_machine(
        {
            "id": "d",
            "initial": "on",
            "states": {
                "on": {
                    "initial": "a",
                    "on": {"OFF": "off"},
                    "states": {
                        "a": {"initial": "a1", "states": {"a1": {"on": {"NEXT": "a2"}}, "a2": {}}},
                        "shallow": {"type": "history"},
                        "deep": {"type": "history", "history": "deep"},
                    },
                },
                "off": {"on": {"SHALLOW": "on.shallow", "DEEP": "on.deep"}},
            },
        }
    )
    state = machine.transition(machine.initial_state, "NEXT")
    off = machine.transition(state, "OFF")
    assert machine.transition(off, "DEEP").value == {"on": {"a": "a2"}}
    assert machine.transition(off, "SHALLOW").value == {"on": {"a": "a1"}}


def test_done_state_event_and_output():
    machine = create_machine(
        {
            "id": "job",
            "initial": "work",
            "context": {"result": None},
            "states": {
                "work": {
                    "initial": "step",
                    "on": {
                        "done.state.job.work": {
                            "target": "finished",
                            "actions": assign({"result": lambda c, e: e["output"]}),
                        }
                    },
                    "states": {"step": {"on": {"FINISH": "end"}}, "end": {"type": "final", "output": 42}},
                },
                "finished": {"type": "final", "output": lambda c, e: c["result"] * 2},
            },
        }
    )
    state = machine.transition(machine.initial_state, "FINISH")
    assert state.value == "finished"
    assert state.context == {"result": 42}
    assert state.done
    assert state.output == 84


def test_parallel_done_when_all_regions_final():
    machine = create_machine(
        {
            "id": "m",
            "initial": "both",
            "states": {
                "both": {
                    "type": "parallel",
                    "on": {"done.state.m.both": "complete"},
                    "states": {
                        "r1": {"initial": "a", "states": {"a": {"on": {"A": "end"}}, "end": {"type": "final"}}},
                        "r2": {"initial": "b", "states": {"b": {"on": {"B": "end"}}, "end": {"type": "final"}}},
                    },
                },
                "complete": {},
            },
        }
    )
    state = machine.transition(machine.initial_state, "A")
    assert state.value == {"both": {"r1": "end", "r2": "b"}}
    state = machine.transition(state, "B")
    assert state.value == "complete"


def test_live_mode_collects_effects():
    def ticker(send_back, receive, input):
        return None

    machine = create_machine(
        {
            "id": "m",
            "initial": "a",
            "states": {
                "a": {"after": {2: "b"}, "invoke": {"src": ticker, "id": "tick", "input": {"rate": 1}}},
                "b": {},
            },
        }
    )
    executor = machine.executor
    start = executor.enter_initial(machine.context, live=True)
    assert start.effects == (
        ScheduleEvent("statechart.after(2)#m.a", 2.0, Event("statechart.after(2)#m.a")),
        StartActor("tick", ticker, {"rate": 1}, "m.a"),
    )
    leave = executor.macrostep(start.state, Event("statechart.after(2)#m.a"), live=True)
    assert leave.effects == (StopActor("tick"), CancelEvent("statechart.after(2)#m.a"))
    assert leave.state.value == "b"


def test_pure_mode_collects_no_effects():
    machine = create_machine({"id": "m", "initial": "a", "states": {"a": {"after": {2: "b"}}, "b": {}}})
    assert machine.executor.enter_initial(machine.context).effects == ()


def test_targetless_transition_exits_nothing(recorder):
    machine = create_machine(
        {
            "id": "m",
            "initial": "a",
            "context": {"n": 0},
            "states": {
                "a": {
                    "exit": recorder.action("exit"),
                    "on": {"INC": {"actions": assign({"n": lambda c, e: c["n"] + 1})}},
                }
            },
        }
    )
    executor = machine.executor
    start = executor.enter_initial(machine.context, live=True).state
    state = executor.macrostep(start, Event("INC"), live=True).state
    assert state.changed
    assert state.context == {"n": 1}
    assert recorder == []


def test_exit_all_runs_exit_actions_deepest_first(recorder, light_config):
    light_config["exit"] = recorder.action("light")
    light_config["states"]["red"]["exit"] = recorder.action("red")
    light_config["states"]["red"]["states"]["walk"]["exit"] = recorder.action("walk")
    machine = create_machine(light_config)
    state = machine.transition(machine.initial_state, "POWER_OUTAGE")
    result = machine.executor.exit_all(state)
    assert recorder == ["walk", "red", "light"]
    assert result.state.configuration == ()


def test_cross_region_transition_reenters_sibling_region_by_default(recorder):
    machine = create_machine(
        {
            "id": "p",
            "type": "parallel",
            "states": {
                "a": {
                    "initial": "x",
                    "entry": recorder.action("enter a"),
                    "exit": recorder.action("exit a"),
                    "states": {"x": {"on": {"NEXT": "y"}}, "y": {"on": {"GO": "#p.b.w"}}},
                },
                "b": {"initial": "v", "states": {"v": {}, "w": {}}},
            },
        }
    )
    executor = machine.executor
    state = executor.enter_initial(machine.context, live=True).state
    state = executor.macrostep(state, Event("NEXT"), live=True).state
    assert state.value == {"a": "y", "b": "v"}
    state = executor.macrostep(state, Event("GO"), live=True).state
    assert state.value == {"a": "x", "b": "w"}
    assert recorder == ["enter a", "exit a", "enter a"]


def test_deep_history_restores_every_region_of_a_parallel_node():
    machine = create_machine(
        {
            "id": "h",
            "initial": "on",
            "states": {
                "on": {
                    "type": "parallel",
                    "on": {"OFF": "off"},
                    "states": {
                        "left": {"initial": "l1", "states": {"l1": {"on": {"L": "l2"}}, "l2": {}}},
                        "right": {"initial": "r1", "states": {"r1": {"on": {"R": "r2"}}, "r2": {}}},
                        "hist": {"type": "history", "history": "deep"},
                    },
                },
                "off": {"on": {"BACK": "on.hist"}},
            },
        }
    )
    state = machine.transition(machine.initial_state, "L")
    state = machine.transition(state, "R")
    off = machine.transition(state, "OFF")
    assert off.value == "off"
    assert set(off.history_value["h.on.hist"]) == {"h.on.left.l2", "h.on.right.r2"}
    assert machine.transition(off, "BACK").value == {"on": {"left": "l2", "right": "r2"}}


def test_progress_exposes_and_halts_running_macrostep(recorder):
    progress = MacrostepProgress()
    seen = []

    def peek(ctx, event):
        seen.append(progress.snapshot().value)
        progress.halt()

    machine = create_machine(
        {
            "id": "m",
            "initial": "a",
            "states": {
                "a": {"on": {"GO": "b"}},
                "b": {"entry": [peek, recorder.action("late")], "always": "c"},
                "c": {"entry": recorder.action("enter c")},
            },
        }
    )
    executor = machine.executor
    start = executor.enter_initial(machine.context, live=True).state
    assert not progress.running
    executor.macrostep(start, Event("GO"), live=True, progress=progress)
    assert seen == ["b"]
    assert recorder == []
    assert not progress.running
    assert progress.snapshot() is None
