"""Tests for the Condition Evaluator."""

import pytest

from wsc_kernel.conditions.evaluator import (
    AND_SPLIT,
    ConditionEvaluator,
    compare,
    evaluate,
    split_keyword,
    split_sustained,
)
from wsc_kernel.entities.store import EntityStore
from wsc_kernel.errors import EvaluationError


def _make_store(influence=0.95, control=True):
    return EntityStore.from_records([
        {
            "id": "presence.a.b",
            "type": "presence",
            "name": "A at B",
            "attrs": {"influence": influence, "control": control},
        },
        {
            "id": "polity.red",
            "type": "polity",
            "name": "Red Concord",
            "attrs": {"stance": "hostile", "economy": {"gdp": 120}},
        },
    ])


class TestTick:
    def test_tick_comparison(self):
        store = _make_store()
        assert evaluate("tick > 1500", store, {"tick": 1600}).result is True
        assert evaluate("tick > 1500", store, {"tick": 1400}).result is False

    def test_tick_recorded_in_trace(self):
        result = evaluate("tick >= 10", _make_store(), {"tick": 10})
        assert result.result
        assert result.trace["values"]["tick"] == 10

    def test_missing_tick_unresolved(self):
        result = evaluate("tick > 5", _make_store(), {})
        assert result.result is False
        assert result.trace["unresolved"] == ["tick"]


class TestConjunction:
    EXPRESSION = "presence.a.b.influence >= 0.9 AND presence.a.b.control == true"

    def test_both_hold(self):
        assert evaluate(self.EXPRESSION, _make_store(), {"tick": 0}).result is True

    def test_first_false(self):
        assert evaluate(self.EXPRESSION, _make_store(influence=0.5), {"tick": 0}).result is False

    def test_second_false(self):
        assert evaluate(self.EXPRESSION, _make_store(control=False), {"tick": 0}).result is False

    def test_values_traced(self):
        trace = evaluate(self.EXPRESSION, _make_store(), {"tick": 0}).trace
        assert trace["values"]["presence.a.b.influence"] == 0.95
        assert trace["values"]["presence.a.b.control"] is True
        assert len(trace["terms"]) == 2

    def test_or_group(self):
        expression = "presence.a.b.influence > 0.99 OR polity.red.stance == 'hostile'"
        assert evaluate(expression, _make_store(), {"tick": 0}).result is True

    def test_and_binds_looser_than_or(self):
        expression = "tick > 5 OR tick < 0 AND presence.a.b.influence < 0.5"
        assert evaluate(expression, _make_store(), {"tick": 10}).result is False

    def test_keyword_inside_quotes_does_not_split(self):
        result = evaluate("polity.red.name == 'Red AND Blue'", _make_store(), {"tick": 0})
        assert result.result is False
        assert [t["term"] for t in result.trace["terms"]] == ["polity.red.name == 'Red AND Blue'"]
        assert result.trace["errors"] == []

    def test_or_inside_double_quotes(self):
        expression = "polity.red.name != \"Red OR Blue\" AND tick > 1"
        result = evaluate(expression, _make_store(), {"tick": 2})
        assert result.result is True
        assert len(result.trace["terms"]) == 2

    def test_split_keyword(self):
        assert split_keyword("a == 'x AND y' AND b > 1", AND_SPLIT) == ["a == 'x AND y'", "b > 1"]


class TestValueResolution:
    def setup_method(self):
        self.evaluator = ConditionEvaluator(_make_store())

    def test_nested_attribute(self):
        assert self.evaluator.resolve_path("polity.red.economy.gdp") == 120

    def test_top_level_field(self):
        assert self.evaluator.resolve_path("polity.red.name") == "Red Concord"

    def test_unresolved_path_is_false(self):
        result = self.evaluator.evaluate("polity.green.stance == 'hostile'", {"tick": 0})
        assert result.result is False
        assert result.trace["unresolved"] == ["polity.green.stance"]

    def test_string_inequality(self):
        assert self.evaluator.evaluate("polity.red.stance != \"neutral\"", {"tick": 0}).result

    def test_unparsable_term_recorded(self):
        result = self.evaluator.evaluate("tick ~ 5 OR tick > 1", {"tick": 3})
        assert result.result is True
        assert any("Unparsable" in e for e in result.trace["errors"])

    def test_ordering_strings_recorded(self):
        result = self.evaluator.evaluate("polity.red.stance > 'a'", {"tick": 0})
        assert result.result is False
        assert result.trace["errors"]

    def test_empty_expression(self):
        assert self.evaluator.evaluate("", {"tick": 0}).result is False


class TestSustained:
    def test_split(self):
        assert split_sustained("tick > 5 for 3 ticks") == ("tick > 5", 3)
        assert split_sustained("tick > 5") == ("tick > 5", None)

    def test_reported_not_enforced(self):
        result = evaluate("tick > 5 for 10 ticks", _make_store(), {"tick": 6})
        assert result.result is True
        assert result.requires_sustained == 10
        assert result.trace["requires_sustained"] == 10


class TestCompare:
    def test_numeric_strings(self):
        assert compare("10", ">", 9)

    def test_bool_as_number(self):
        assert compare(True, "==", 1)

    def test_non_numeric_ordering(self):
        with pytest.raises(EvaluationError):
            compare("abc", "<", "abd")
