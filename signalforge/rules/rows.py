"""Adapters from persisted rule rows to rule models.

Stored strategies are denormalized: one row per rule group with its rule
rows nested under ``trading_rules``, and each operand flattened into
``left_*``/``right_*`` columns.
"""

import json
import logging
from typing import Any, Iterable, Mapping

from signalforge.rules.models import (
    Condition,
    Inequality,
    Logic,
    Operand,
    OperandType,
    RuleGroup,
    StrategyRules,
    _to_int,
)

logger = logging.getLogger("signalforge")


def _parameters(raw: Any) -> dict[str, Any]:
    """Parameters column: a dict, a JSON object string, or nothing."""
    if isinstance(raw, Mapping):
        return dict(raw)
    if isinstance(raw, str) and raw.strip():
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring malformed rule parameters: %r", raw)
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


def _operand(row: Mapping[str, Any], side: str) -> Operand:
    value = row.get(f"{side}_value")
    return Operand(
        type=OperandType.parse(row.get(f"{side}_type")),
        indicator=row.get(f"{side}_indicator") or None,
        parameters=_parameters(row.get(f"{side}_parameters")),
        value=None if value is None else str(value),
        value_type=row.get(f"{side}_value_type") or None,
    )


def inequality_from_row(row: Mapping[str, Any]) -> Inequality:
    return Inequality(
        id=row.get("id"),
        left=_operand(row, "left"),
        condition=Condition.parse(row.get("condition")),
        right=_operand(row, "right"),
        explanation=row.get("explanation") or None,
    )


def group_from_row(row: Mapping[str, Any]) -> RuleGroup:
    return RuleGroup(
        id=row.get("id"),
        logic=Logic.parse(row.get("logic")),
        inequalities=tuple(
            inequality_from_row(rule) for rule in row.get("trading_rules") or []
        ),
        required_conditions=_to_int(row.get("required_conditions"), default=1),
    )


def strategy_from_rows(rows: Iterable[Mapping[str, Any]]) -> StrategyRules:
    """Split stored group rows into entry and exit groups by ``rule_type``.

    Rows with any other ``rule_type`` are skipped.
    """
    entry: list[RuleGroup] = []
    exit_: list[RuleGroup] = []
    for row in rows:
        rule_type = str(row.get("rule_type") or "").strip().lower()
        if rule_type == "entry":
            entry.append(group_from_row(row))
        elif rule_type == "exit":
            exit_.append(group_from_row(row))
        else:
            logger.warning(
                "Skipping rule group %s with unknown rule_type %r",
                row.get("id"), row.get("rule_type"),
            )
    return StrategyRules(entry_groups=tuple(entry), exit_groups=tuple(exit_))


def strategy_from_dict(data: Mapping[str, Any]) -> StrategyRules:
    """Load either stored ``rule_groups`` rows or the editor JSON shape."""
    if "rule_groups" in data:
        return strategy_from_rows(data.get("rule_groups") or [])
    return StrategyRules.from_dict(data)
