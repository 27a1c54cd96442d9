"""Static checks on a strategy's rule groups before it is saved or run.

Nothing here touches market data.  Findings are split into errors (the
strategy can never behave sensibly), warnings and suggestions.
"""

from dataclasses import dataclass, field
from typing import Optional, Sequence

from signalforge.errors import UnsupportedIndicatorError
from signalforge.indicators.registry import Indicator, normalize_indicator
from signalforge.rules.models import (
    Condition,
    Inequality,
    Logic,
    OperandType,
    RuleGroup,
)

OVERBOUGHT = 60.0
OVERSOLD = 40.0
ENTRY_OVERBOUGHT_LIMIT = 70.0
EXIT_OVERSOLD_LIMIT = 30.0

_OR_SINGLE_SUGGESTION = (
    "OR groups work best with at least 2 conditions for confirmation. "
    "Consider adding another indicator or condition."
)
_RSI_CYCLE_SUGGESTION = (
    'Consider setting exit condition to "RSI > 70" when entry is "RSI < 30" '
    "for a complete oversold-to-overbought cycle."
)


@dataclass
class RuleValidationResult:
    is_valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)

    def error(self, message: str) -> None:
        self.errors.append(message)
        self.is_valid = False

    def suggest(self, message: str) -> None:
        if message not in self.suggestions:
            self.suggestions.append(message)

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "suggestions": list(self.suggestions),
        }


def validate_trading_rules(
    entry_groups: Sequence[RuleGroup], exit_groups: Sequence[RuleGroup],
) -> RuleValidationResult:
    result = RuleValidationResult()
    _validate_groups(entry_groups, "entry", result)
    _validate_groups(exit_groups, "exit", result)
    _validate_rsi_cycle(entry_groups, exit_groups, result)
    return result


def recommended_fixes(result: RuleValidationResult) -> list[str]:
    """Flatten a validation result into display lines, most severe first."""
    fixes: list[str] = []
    for title, messages in (
        ("Critical Issues Found:", result.errors),
        ("Warnings:", result.warnings),
        ("Suggestions:", result.suggestions),
    ):
        if messages:
            fixes.append(title)
            fixes.extend(f"  • {message}" for message in messages)
    return fixes


# ── Helpers ──────────────────────────────────────────────────────────────


def _rsi_threshold(inequality: Inequality) -> Optional[tuple[Condition, float]]:
    """``(condition, threshold)`` for an ``RSI <cond> <number>`` inequality."""
    left, right = inequality.left, inequality.right
    if left.type is not OperandType.INDICATOR or right.type is not OperandType.VALUE:
        return None
    if inequality.condition is None or _indicator_of(left.indicator) is not Indicator.RSI:
        return None
    try:
        return inequality.condition, float(right.value)
    except (TypeError, ValueError):
        return None


def _indicator_of(name: Optional[str]) -> Optional[Indicator]:
    if not name:
        return None
    try:
        return normalize_indicator(name)
    except UnsupportedIndicatorError:
        return None


def _is_overbought(rule: tuple[Condition, float]) -> bool:
    return rule[0] is Condition.GREATER_THAN and rule[1] > OVERBOUGHT


def _is_oversold(rule: tuple[Condition, float]) -> bool:
    return rule[0] is Condition.LESS_THAN and rule[1] < OVERSOLD


def _validate_groups(
    groups: Sequence[RuleGroup], side: str, result: RuleValidationResult,
) -> None:
    for group in groups:
        rsi_rules = []
        for inequality in group.inequalities:
            if not inequality.is_complete():
                result.warnings.append(
                    f"{side} rule {inequality.id} is incomplete and will never be met: "
                    f"{inequality.describe()}"
                )
            for operand in (inequality.left, inequality.right):
                if (
                    operand.type is OperandType.INDICATOR
                    and operand.indicator
                    and _indicator_of(operand.indicator) is None
                ):
                    result.error(
                        f"{side} rule {inequality.id} uses unsupported indicator "
                        f"'{operand.indicator}'."
                    )
            rsi = _rsi_threshold(inequality)
            if rsi is not None:
                rsi_rules.append(rsi)
                _validate_rsi_threshold(rsi, side, result)

        if any(map(_is_overbought, rsi_rules)) and any(map(_is_oversold, rsi_rules)):
            if group.logic is Logic.AND:
                result.error(
                    f"{side} rules contain contradictory RSI conditions in AND group: "
                    f"both overbought (RSI > {OVERBOUGHT:g}) and oversold "
                    f"(RSI < {OVERSOLD:g}) conditions cannot be true simultaneously."
                )
            else:
                result.warnings.append(
                    f"{side} rules contain both overbought and oversold RSI conditions "
                    "in OR group. This may create conflicting signals."
                )

        if group.logic is Logic.OR:
            _validate_or_group(group, result)


def _validate_rsi_threshold(
    rule: tuple[Condition, float], side: str, result: RuleValidationResult,
) -> None:
    condition, threshold = rule
    if side == "entry" and condition is Condition.GREATER_THAN \
            and threshold > ENTRY_OVERBOUGHT_LIMIT:
        result.warnings.append(
            f'Entry condition "RSI > {threshold:g}" may generate buy signals in '
            'overbought conditions. Consider using "RSI < 30" for oversold entries instead.'
        )
    if side == "exit" and condition is Condition.LESS_THAN \
            and threshold < EXIT_OVERSOLD_LIMIT:
        result.warnings.append(
            f'Exit condition "RSI < {threshold:g}" may generate sell signals in '
            "oversold conditions, potentially missing recovery opportunities."
        )


def _validate_or_group(group: RuleGroup, result: RuleValidationResult) -> None:
    count = len(group.inequalities)
    if count == 1:
        result.suggest(_OR_SINGLE_SUGGESTION)
    if count > 1 and group.required_conditions >= count:
        result.warnings.append(
            f"OR group requires {group.required_conditions} out of {count} conditions, "
            "which means all conditions must be met. Consider using AND logic instead."
        )


def _first_rsi_rule(groups: Sequence[RuleGroup]) -> Optional[tuple[Condition, float]]:
    for group in groups:
        for inequality in group.inequalities:
            rsi = _rsi_threshold(inequality)
            if rsi is not None:
                return rsi
    return None


def _validate_rsi_cycle(
    entry_groups: Sequence[RuleGroup],
    exit_groups: Sequence[RuleGroup],
    result: RuleValidationResult,
) -> None:
    """An oversold RSI entry should be paired with an overbought RSI exit."""
    entry = _first_rsi_rule(entry_groups)
    exit_ = _first_rsi_rule(exit_groups)
    if entry is None or exit_ is None:
        return
    if _is_oversold(entry) and not _is_overbought(exit_):
        result.suggest(_RSI_CYCLE_SUGGESTION)
