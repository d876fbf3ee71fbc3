# tests/unit/core/test_guards.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import pytest

from statechart.core.errors import ConfigurationError
from statechart.core.events import Event
from statechart.core.guards import Guard, and_, in_state, not_, or_, to_guard


def test_callable_guard():
    guard = to_guard(lambda ctx, e: ctx["n"] > e["limit"], {})
    assert guard.check({"n": 5}, Event("E", {"limit": 3}), ())
    assert not guard.check({"n": 1}, Event("E", {"limit": 3}), ())


def test_named_guard_is_resolved_from_registry():
    def is_positive(ctx, event):
        return ctx > 0

    guard = to_guard("isPositive", {"isPositive": is_positive})
    assert guard.name == "isPositive"
    assert guard.check(1, Event("E"), ())
    assert not guard.check(-1, Event("E"), ())


def test_unknown_guard_name():
    with pytest.raises(ConfigurationError):
        to_guard("missing", {})


def test_invalid_guard_spec():
    with pytest.raises(ConfigurationError):
        to_guard(42, {})


def test_in_state_guard_sees_configuration():
    guard = in_state("#light.red")
    assert guard.state_id == "light.red"
    assert guard.check(None, Event("E"), {"light", "light.red"})
    assert not guard.check(None, Event("E"), {"light", "green"})
    assert list(guard.references()) == ["light.red"]


def test_combinators_resolve_names():
    registry = {"big": lambda ctx, e: ctx > 10, "even": lambda ctx, e: ctx % 2 == 0}
    both = to_guard(and_("big", "even"), registry)
    either = to_guard(or_("big", "even"), registry)
    neither = to_guard(not_(or_("big", "even")), registry)

    assert both.check(12, Event("E"), ())
    assert not both.check(11, Event("E"), ())
    assert either.check(4, Event("E"), ())
    assert not either.check(3, Event("E"), ())
    assert neither.check(3, Event("E"), ())


def test_combinator_references_nested_in_state():
    guard = and_(in_state("a"), not_(in_state("b")))
    assert sorted(guard.references()) == ["a", "b"]


def test_guard_base_is_abstract():
    with pytest.raises(NotImplementedError):
        Guard().check(None, Event("E"), ())
