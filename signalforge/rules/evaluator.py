"""Rule evaluation — resolves operands and folds inequality results.

Pure functions of the rule tree and an ``OHLCVSeries``; no I/O.

Failure policy:
    * Indicator-level problems (unknown indicator, missing OHLCV column,
      malformed parameter, too little history) raise.
    * An incomplete inequality, or an operand that cannot be resolved to a
      number (e.g. the literal ``"Stop Loss"``), evaluates to *not met* so
      one half-configured rule never aborts its siblings.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Union

from signalforge.errors import InsufficientHistoryError, MissingSeriesError
from signalforge.indicators.engine import (
    IndicatorResult,
    calculate_indicator,
    minimum_bars,
)
from signalforge.indicators.registry import INDICATOR_REGISTRY, normalize_indicator
from signalforge.market.cache import IndicatorCache, make_key
from signalforge.market.models import OHLCVSeries
from signalforge.rules.models import (
    Condition,
    Inequality,
    Logic,
    Operand,
    OperandType,
    RuleGroup,
    StrategyRules,
)

logger = logging.getLogger("signalforge")

DEFAULT_EQUAL_TOLERANCE = 1e-4


# ── Result types ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class InequalityResult:
    """Outcome of one inequality, with the resolved operand values.

    ``previous_left``/``previous_right`` are only set for crossing
    conditions.  ``reason`` explains a not-met result that was not a
    comparison (incomplete rule, unresolved operand).
    """

    inequality_id: Union[int, str, None]
    result: bool
    left_value: Optional[float]
    right_value: Optional[float]
    description: str
    previous_left: Optional[float] = None
    previous_right: Optional[float] = None
    reason: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.inequality_id,
            "result": self.result,
            "left_value": self.left_value,
            "right_value": self.right_value,
            "previous_left": self.previous_left,
            "previous_right": self.previous_right,
            "description": self.description,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class GroupResult:
    """Outcome of one rule group."""

    group_id: Union[int, str, None]
    logic: Logic
    group_result: bool
    results: tuple[InequalityResult, ...]
    conditions_met: int
    required: int

    @property
    def per_inequality_results(self) -> tuple[InequalityResult, ...]:
        return self.results

    @property
    def summary(self) -> str:
        total = len(self.results)
        if self.logic is Logic.OR:
            return (
                f"OR Group: {self.conditions_met}/{total} conditions met "
                f"(required: {self.required})"
            )
        return f"AND Group: {self.conditions_met}/{total} conditions met"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.group_id,
            "logic": self.logic.value,
            "group_result": self.group_result,
            "conditions_met": self.conditions_met,
            "required": self.required,
            "summary": self.summary,
            "inequalities": [r.to_dict() for r in self.results],
        }


@dataclass(frozen=True)
class StrategySignal:
    """Entry and exit signals of one evaluation, computed independently."""

    entry_signal: bool
    exit_signal: bool
    entry_results: tuple[GroupResult, ...] = ()
    exit_results: tuple[GroupResult, ...] = ()

    @property
    def matched_conditions(self) -> list[str]:
        return [
            r.description
            for group in (*self.entry_results, *self.exit_results)
            for r in group.results
            if r.result
        ]

    @property
    def details(self) -> list[str]:
        """Human-readable trace of why each signal did or did not fire."""
        lines: list[str] = []
        for side, groups in (("Entry", self.entry_results), ("Exit", self.exit_results)):
            for group in groups:
                lines.append(f"{side} {group.summary}")
                for r in group.results:
                    mark = "✓" if r.result else "✗"
                    suffix = f" [{r.reason}]" if r.reason else ""
                    lines.append(f"  {mark} {r.description}{suffix}")
        return lines

    def action(self, prefer_exit: bool = True) -> Optional[str]:
        """Collapse both signals into ``"entry"``, ``"exit"`` or ``None``.

        Which side wins when both fire is a caller policy; *prefer_exit*
        selects it.
        """
        if self.entry_signal and self.exit_signal:
            return "exit" if prefer_exit else "entry"
        if self.exit_signal:
            return "exit"
        if self.entry_signal:
            return "entry"
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "entry_signal": self.entry_signal,
            "exit_signal": self.exit_signal,
            "matched_conditions": self.matched_conditions,
            "details": self.details,
            "entry_groups": [g.to_dict() for g in self.entry_results],
            "exit_groups": [g.to_dict() for g in self.exit_results],
        }


# ── Evaluator ────────────────────────────────────────────────────────────


class RuleEvaluator:
    """Evaluates inequalities, rule groups and strategies against a series.

    Args:
        cache: Optional shared ``IndicatorCache``; only consulted for
            series that carry a ``key``.
        equal_tolerance: Absolute tolerance for ``EQUAL``/``NOT_EQUAL``.
    """

    def __init__(
        self,
        cache: Optional[IndicatorCache] = None,
        equal_tolerance: float = DEFAULT_EQUAL_TOLERANCE,
    ) -> None:
        self._cache = cache
        self._tolerance = equal_tolerance

    # ── Public API ───────────────────────────────────────────────────────

    def evaluate_inequality(
        self, inequality: Inequality, market: OHLCVSeries,
    ) -> InequalityResult:
        return self._evaluate_inequality(inequality, market, {})

    def evaluate_rule_group(self, group: RuleGroup, market: OHLCVSeries) -> GroupResult:
        return self._evaluate_group(group, market, {})

    def evaluate_strategy(
        self,
        entry_groups: Sequence[RuleGroup],
        exit_groups: Sequence[RuleGroup],
        market: OHLCVSeries,
    ) -> StrategySignal:
        """Evaluate entry and exit groups against the same series.

        Groups without inequalities carry no opinion and are ignored when
        combining; a side with no non-empty groups never signals.
        """
        memo: dict = {}
        entry = tuple(self._evaluate_group(g, market, memo) for g in entry_groups)
        exit_ = tuple(self._evaluate_group(g, market, memo) for g in exit_groups)
        return StrategySignal(
            entry_signal=_any_fired(entry),
            exit_signal=_any_fired(exit_),
            entry_results=entry,
            exit_results=exit_,
        )

    def evaluate_rules(self, rules: StrategyRules, market: OHLCVSeries) -> StrategySignal:
        return self.evaluate_strategy(rules.entry_groups, rules.exit_groups, market)

    # ── Groups and inequalities ──────────────────────────────────────────

    def _evaluate_group(
        self, group: RuleGroup, market: OHLCVSeries, memo: dict,
    ) -> GroupResult:
        results = tuple(
            self._evaluate_inequality(ineq, market, memo)
            for ineq in group.inequalities
        )
        met = sum(1 for r in results if r.result)

        if group.logic is Logic.OR:
            required = group.threshold
            group_result = bool(results) and met >= required
        else:
            required = len(results)
            group_result = met == required

        return GroupResult(
            group_id=group.id,
            logic=group.logic,
            group_result=group_result,
            results=results,
            conditions_met=met,
            required=required,
        )

    def _evaluate_inequality(
        self, inequality: Inequality, market: OHLCVSeries, memo: dict,
    ) -> InequalityResult:
        description = inequality.describe()

        if not inequality.is_complete():
            logger.warning(
                "Rule %s is incomplete and counts as not met: %s",
                inequality.id, description,
            )
            return InequalityResult(
                inequality.id, False, None, None, description, reason="incomplete",
            )

        condition = inequality.condition
        depth = 2 if condition.is_crossing else 1
        left = self._resolve(inequality.left, market, memo, depth)
        right = self._resolve(inequality.right, market, memo, depth)

        if left is None or right is None:
            side = "left" if left is None else "right"
            logger.warning(
                "Rule %s has an unresolved %s operand: %s",
                inequality.id, side, description,
            )
            return InequalityResult(
                inequality.id,
                False,
                left[-1] if left else None,
                right[-1] if right else None,
                description,
                reason=f"unresolved {side} operand",
            )

        previous_left = previous_right = None
        if condition.is_crossing:
            available = min(len(left), len(right))
            if available < 2:
                raise InsufficientHistoryError(
                    f"{condition.value} on '{description}'", 2, available,
                )
            previous_left, previous_right = left[-2], right[-2]

        met = self._compare(condition, left[-1], right[-1], previous_left, previous_right)
        logger.debug(
            "Rule %s: %s → %s (left=%s, right=%s)",
            inequality.id, description, met, left[-1], right[-1],
        )
        return InequalityResult(
            inequality.id,
            met,
            left[-1],
            right[-1],
            description,
            previous_left=previous_left,
            previous_right=previous_right,
        )

    def _compare(
        self,
        condition: Condition,
        left: float,
        right: float,
        previous_left: Optional[float],
        previous_right: Optional[float],
    ) -> bool:
        if condition is Condition.GREATER_THAN:
            return left > right
        if condition is Condition.LESS_THAN:
            return left < right
        if condition is Condition.GREATER_THAN_OR_EQUAL:
            return left >= right
        if condition is Condition.LESS_THAN_OR_EQUAL:
            return left <= right
        if condition is Condition.EQUAL:
            return abs(left - right) < self._tolerance
        if condition is Condition.NOT_EQUAL:
            return abs(left - right) >= self._tolerance

        # Crossings: sign change of (left - right) between the two bars.
        before = previous_left - previous_right
        now = left - right
        if condition is Condition.CROSSES_ABOVE:
            return before <= 0 < now
        return before >= 0 > now

    # ── Operand resolution ───────────────────────────────────────────────

    def _resolve(
        self, operand: Operand, market: OHLCVSeries, memo: dict, depth: int,
    ) -> Optional[list[float]]:
        """Trailing *depth* values of *operand*, oldest first.

        Returns ``None`` when the operand cannot be turned into a number.
        """
        if operand.type is OperandType.VALUE:
            try:
                number = float(operand.value)
            except (TypeError, ValueError):
                return None
            if not math.isfinite(number):
                return None
            return [number] * depth

        if operand.type is OperandType.PRICE:
            field = operand.price_field()
            if field is None:
                return None
            column = market.column(field)
            if column is None:
                raise MissingSeriesError("PRICE", field)
            if not column:
                raise InsufficientHistoryError(f"PRICE {field}", 1, 0)
            return column[-depth:]

        result = self._indicator(operand, market, memo)
        line = result.select_line(operand.value_type)
        values = result.series(line)
        if not values:
            spec = INDICATOR_REGISTRY[result.indicator]
            raise InsufficientHistoryError(
                f"{spec.display_name} {line}",
                minimum_bars(result.indicator, result.parameters, line),
                len(market),
            )
        return values[-depth:]

    def _indicator(
        self, operand: Operand, market: OHLCVSeries, memo: dict,
    ) -> IndicatorResult:
        indicator = normalize_indicator(operand.indicator)
        key = make_key(
            market.key or "", market.fingerprint, indicator.value, operand.parameters,
        )
        if key in memo:
            return memo[key]

        cached = None
        if self._cache is not None and market.key:
            cached = self._cache.get(key)
        if cached is not None:
            memo[key] = cached
            return cached

        result = calculate_indicator(
            indicator, market, operand.parameters, require_history=True,
        )
        memo[key] = result
        if self._cache is not None and market.key:
            self._cache.put(key, result)
        return result


def _any_fired(results: tuple[GroupResult, ...]) -> bool:
    return any(r.group_result for r in results if r.results)


# ── Module-level convenience ─────────────────────────────────────────────


def evaluate_inequality(inequality: Inequality, market: OHLCVSeries) -> InequalityResult:
    return RuleEvaluator().evaluate_inequality(inequality, market)


def evaluate_rule_group(group: RuleGroup, market: OHLCVSeries) -> GroupResult:
    return RuleEvaluator().evaluate_rule_group(group, market)


def evaluate_strategy(
    entry_groups: Sequence[RuleGroup],
    exit_groups: Sequence[RuleGroup],
    market: OHLCVSeries,
) -> StrategySignal:
    return RuleEvaluator().evaluate_strategy(entry_groups, exit_groups, market)
