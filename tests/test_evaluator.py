"""Tests for signalforge.rules.evaluator — inequalities, groups, strategies."""

import logging

import pytest

from signalforge.errors import (
    InsufficientHistoryError,
    MissingSeriesError,
    UnsupportedIndicatorError,
)
from signalforge.indicators.engine import calculate_indicator
from signalforge.market.cache import IndicatorCache
from signalforge.market.models import OHLCVSeries
from signalforge.rules.evaluator import (
    RuleEvaluator,
    StrategySignal,
    evaluate_inequality,
    evaluate_rule_group,
    evaluate_strategy,
)
from signalforge.rules.models import Inequality, Logic, RuleGroup


# ── Helpers ──────────────────────────────────────────────────────────────


def _make_series(closes, key=None):
    closes = [float(c) for c in closes]
    return OHLCVSeries(
        close=closes,
        open=list(closes),
        high=[c + 1 for c in closes],
        low=[c - 1 for c in closes],
        volume=[1000.0] * len(closes),
        key=key,
    )


def _value(v):
    return {"type": "VALUE", "value": v}


def _price(field="close"):
    return {"type": "PRICE", "indicator": field}


def _indicator(name, valueType=None, **parameters):
    operand = {"type": "INDICATOR", "indicator": name, "parameters": parameters}
    if valueType:
        operand["valueType"] = valueType
    return operand


def _make_inequality(left, condition, right, id=1):
    return Inequality.from_dict(
        {"id": id, "left": left, "condition": condition, "right": right}
    )


def _make_group(inequalities, logic="AND", required=1, id=1):
    return RuleGroup(
        id=id, logic=Logic(logic), inequalities=tuple(inequalities),
        required_conditions=required,
    )


def _true(id=1):
    return _make_inequality(_value("2"), "GREATER_THAN", _value("1"), id=id)


def _false(id=1):
    return _make_inequality(_value("1"), "GREATER_THAN", _value("2"), id=id)


SERIES = _make_series([10, 20])


# ── Inequalities ─────────────────────────────────────────────────────────


class TestComparisons:
    @pytest.mark.parametrize(
        "condition, expected",
        [
            ("GREATER_THAN", True),
            ("LESS_THAN", False),
            ("GREATER_THAN_OR_EQUAL", True),
            ("LESS_THAN_OR_EQUAL", False),
            ("EQUAL", False),
            ("NOT_EQUAL", True),
            (">", True),
            ("<=", False),
        ],
    )
    def test_price_against_value(self, condition, expected):
        ineq = _make_inequality(_price(), condition, _value("15"))
        result = evaluate_inequality(ineq, SERIES)
        assert result.result is expected
        assert result.left_value == 20.0
        assert result.right_value == 15.0

    def test_equal_uses_tolerance(self):
        ineq = _make_inequality(_price(), "EQUAL", _value("20.00005"))
        assert evaluate_inequality(ineq, SERIES).result is True

    def test_custom_tolerance(self):
        ineq = _make_inequality(_price(), "EQUAL", _value("20.5"))
        assert RuleEvaluator(equal_tolerance=1.0).evaluate_inequality(ineq, SERIES).result

    def test_price_field_selection(self):
        ineq = _make_inequality(_price("high"), "EQUAL", _value("21"))
        assert evaluate_inequality(ineq, SERIES).result is True

    def test_indicator_against_value(self):
        series = _make_series(range(1, 21))
        ineq = _make_inequality(_indicator("RSI", period=14), "GREATER_THAN", _value("70"))
        result = evaluate_inequality(ineq, series)
        assert result.result is True
        assert result.left_value == 100.0

    def test_indicator_value_type_selects_line(self):
        series = _make_series([100 + (i % 5) * 1.5 + i * 0.2 for i in range(60)])
        ineq = _make_inequality(
            _indicator("MACD", valueType="Signal Value"), "LESS_THAN", _value("1000"),
        )
        result = evaluate_inequality(ineq, series)
        expected = calculate_indicator("MACD", series).latest("signal")
        assert result.left_value == pytest.approx(expected)


class TestCrossings:
    def test_crosses_above(self):
        ineq = _make_inequality(_price(), "CROSSES_ABOVE", _value("15"))
        result = evaluate_inequality(ineq, SERIES)
        assert result.result is True
        assert (result.previous_left, result.previous_right) == (10.0, 15.0)

    def test_crosses_below_is_false(self):
        ineq = _make_inequality(_price(), "CROSSES_BELOW", _value("15"))
        assert evaluate_inequality(ineq, SERIES).result is False

    def test_crosses_below(self):
        ineq = _make_inequality(_price(), "CROSSES_BELOW", _value("15"))
        assert evaluate_inequality(ineq, _make_series([20, 10])).result is True

    def test_touching_from_below_counts(self):
        ineq = _make_inequality(_price(), "CROSSES_ABOVE", _value("10"))
        assert evaluate_inequality(ineq, SERIES).result is True

    def test_staying_above_is_not_a_cross(self):
        ineq = _make_inequality(_price(), "CROSSES_ABOVE", _value("5"))
        assert evaluate_inequality(ineq, SERIES).result is False

    def test_single_bar_raises(self):
        ineq = _make_inequality(_price(), "CROSSES_ABOVE", _value("15"))
        with pytest.raises(InsufficientHistoryError):
            evaluate_inequality(ineq, _make_series([20]))

    def test_indicator_crossing_needs_two_values(self):
        ineq = _make_inequality(_indicator("SMA", period=3), "CROSSES_ABOVE", _value("1"))
        with pytest.raises(InsufficientHistoryError):
            evaluate_inequality(ineq, _make_series([1, 2, 3]))
        assert evaluate_inequality(ineq, _make_series([0, 0, 0, 9])).result is True


class TestNotMet:
    def test_missing_condition(self):
        ineq = _make_inequality(_price(), None, _value("15"))
        result = evaluate_inequality(ineq, SERIES)
        assert result.result is False
        assert result.reason == "incomplete"

    def test_indicator_without_name(self):
        ineq = _make_inequality({"type": "INDICATOR"}, ">", _value("15"))
        assert evaluate_inequality(ineq, SERIES).result is False

    def test_incomplete_logs_warning(self, caplog):
        ineq = _make_inequality({}, ">", _value("15"), id=42)
        with caplog.at_level(logging.WARNING, logger="signalforge"):
            evaluate_inequality(ineq, SERIES)
        assert "42" in caplog.text

    def test_non_numeric_literal(self):
        ineq = _make_inequality(_price(), "LESS_THAN", _value("Stop Loss"))
        result = evaluate_inequality(ineq, SERIES)
        assert result.result is False
        assert result.left_value == 20.0
        assert result.right_value is None
        assert result.reason == "unresolved right operand"


class TestErrors:
    def test_unknown_indicator_propagates(self):
        ineq = _make_inequality(_indicator("Ichimoku"), ">", _value("1"))
        with pytest.raises(UnsupportedIndicatorError):
            evaluate_inequality(ineq, SERIES)

    def test_short_history_propagates(self):
        ineq = _make_inequality(_indicator("RSI"), ">", _value("50"))
        with pytest.raises(InsufficientHistoryError):
            evaluate_inequality(ineq, SERIES)

    def test_missing_column_propagates(self):
        ineq = _make_inequality(_price("open"), ">", _value("1"))
        with pytest.raises(MissingSeriesError):
            evaluate_inequality(ineq, OHLCVSeries(close=[1.0, 2.0]))


# ── Groups ───────────────────────────────────────────────────────────────


class TestRuleGroups:
    def test_and_all_true(self):
        result = evaluate_rule_group(_make_group([_true(1), _true(2)]), SERIES)
        assert result.group_result is True
        assert result.summary == "AND Group: 2/2 conditions met"

    def test_and_one_false(self):
        result = evaluate_rule_group(_make_group([_true(1), _false(2)]), SERIES)
        assert result.group_result is False
        assert result.conditions_met == 1

    def test_and_vacuous_truth(self):
        assert evaluate_rule_group(_make_group([]), SERIES).group_result is True

    def test_or_empty_is_false(self):
        assert evaluate_rule_group(_make_group([], logic="OR"), SERIES).group_result is False

    @pytest.mark.parametrize("required, expected", [(1, True), (2, True), (3, False)])
    def test_or_threshold(self, required, expected):
        group = _make_group([_true(1), _false(2), _true(3)], logic="OR", required=required)
        result = evaluate_rule_group(group, SERIES)
        assert result.group_result is expected
        assert len(result.per_inequality_results) == 3

    def test_or_threshold_clamped(self):
        group = _make_group([_true(1), _true(2)], logic="OR", required=10)
        result = evaluate_rule_group(group, SERIES)
        assert result.required == 2
        assert result.group_result is True

    def test_or_summary(self):
        group = _make_group([_true(1), _false(2)], logic="OR", required=1)
        result = evaluate_rule_group(group, SERIES)
        assert result.summary == "OR Group: 1/2 conditions met (required: 1)"

    def test_incomplete_rule_does_not_abort_group(self):
        incomplete = _make_inequality({}, ">", _value("1"), id=2)
        group = _make_group([_true(1), incomplete], logic="OR")
        assert evaluate_rule_group(group, SERIES).group_result is True


# ── Strategies ───────────────────────────────────────────────────────────


class TestStrategy:
    def test_independent_signals(self):
        signal = evaluate_strategy(
            [_make_group([_true()])], [_make_group([_true()])], SERIES,
        )
        assert signal.entry_signal is True
        assert signal.exit_signal is True

    def test_any_group_triggers(self):
        entry = [_make_group([_false()], id=1), _make_group([_true()], id=2)]
        assert evaluate_strategy(entry, [], SERIES).entry_signal is True

    def test_no_groups_no_signal(self):
        signal = evaluate_strategy([], [], SERIES)
        assert signal.entry_signal is False
        assert signal.exit_signal is False
        assert signal.action() is None

    def test_empty_groups_are_ignored(self):
        entry = [_make_group([]), _make_group([_false()], logic="OR")]
        assert evaluate_strategy(entry, [], SERIES).entry_signal is False

    def test_matched_conditions_and_details(self):
        signal = evaluate_strategy([_make_group([_true(1), _false(2)])], [], SERIES)
        assert signal.matched_conditions == ["2 GREATER_THAN 1"]
        assert signal.details[0] == "Entry AND Group: 1/2 conditions met"
        assert signal.details[1].startswith("  ✓")
        assert signal.details[2].startswith("  ✗")

    def test_to_dict(self):
        signal = evaluate_strategy([_make_group([_true()])], [], SERIES)
        data = signal.to_dict()
        assert data["entry_signal"] is True
        assert data["entry_groups"][0]["inequalities"][0]["result"] is True


class TestAction:
    def test_exit_preferred_by_default(self):
        assert StrategySignal(True, True).action() == "exit"

    def test_entry_preferred(self):
        assert StrategySignal(True, True).action(prefer_exit=False) == "entry"

    def test_single_signals(self):
        assert StrategySignal(True, False).action() == "entry"
        assert StrategySignal(False, True).action() == "exit"


# ── Caching ──────────────────────────────────────────────────────────────


class TestCaching:
    def test_keyed_series_populates_cache(self):
        cache = IndicatorCache()
        evaluator = RuleEvaluator(cache=cache)
        ineq = _make_inequality(_indicator("SMA", period=3), ">", _value("1"))
        evaluator.evaluate_inequality(ineq, _make_series(range(10), key="EURUSD:1d"))
        assert len(cache) == 1

    def test_unkeyed_series_bypasses_cache(self):
        cache = IndicatorCache()
        ineq = _make_inequality(_indicator("SMA", period=3), ">", _value("1"))
        RuleEvaluator(cache=cache).evaluate_inequality(ineq, _make_series(range(10)))
        assert len(cache) == 0

    def test_windows_do_not_share_entries(self):
        cache = IndicatorCache()
        evaluator = RuleEvaluator(cache=cache)
        series = _make_series(range(10), key="EURUSD:1d")
        ineq = _make_inequality(_indicator("SMA", period=3), ">", _value("1"))
        first = evaluator.evaluate_inequality(ineq, series.window(5))
        second = evaluator.evaluate_inequality(ineq, series)
        assert first.left_value == pytest.approx(3.0)
        assert second.left_value == pytest.approx(8.0)
        assert len(cache) == 2

    def test_shared_indicator_computed_once_per_evaluation(self):
        cache = IndicatorCache()
        evaluator = RuleEvaluator(cache=cache)
        series = _make_series(range(10), key="EURUSD:1d")
        sma = _indicator("SMA", period=3)
        group = _make_group([
            _make_inequality(sma, ">", _value("1"), id=1),
            _make_inequality(sma, "<", _value("100"), id=2),
        ])
        assert evaluator.evaluate_rule_group(group, series).group_result is True
        assert len(cache) == 1

    def test_refetched_data_with_same_key_and_length_is_recomputed(self):
        cache = IndicatorCache()
        evaluator = RuleEvaluator(cache=cache)
        ineq = _make_inequality(_indicator("SMA", period=3), ">", _value("50"))

        stale = evaluator.evaluate_inequality(ineq, _make_series([10] * 5, key="BTC/1h"))
        fresh = evaluator.evaluate_inequality(ineq, _make_series([100] * 5, key="BTC/1h"))

        assert stale.result is False
        assert fresh.left_value == pytest.approx(100.0)
        assert fresh.result is True
        assert len(cache) == 2

    def test_identical_data_hits_cache(self, monkeypatch):
        import signalforge.rules.evaluator as evaluator_module

        calls = []
        real = evaluator_module.calculate_indicator

        def _counting(*args, **kwargs):
            calls.append(args[0])
            return real(*args, **kwargs)

        monkeypatch.setattr(evaluator_module, "calculate_indicator", _counting)
        evaluator = RuleEvaluator(cache=IndicatorCache())
        ineq = _make_inequality(_indicator("SMA", period=3), ">", _value("1"))
        evaluator.evaluate_inequality(ineq, _make_series(range(10), key="EURUSD:1d"))
        evaluator.evaluate_inequality(ineq, _make_series(range(10), key="EURUSD:1d"))
        assert len(calls) == 1
