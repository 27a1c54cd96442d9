"""Rule data models — inequalities, rule groups and strategy rule sets.

These mirror the JSON the strategy editor produces.  ``from_dict``
constructors are lenient: a half-filled inequality still loads, and
``Inequality.is_complete`` reports whether it can be evaluated.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Union

from signalforge.market.models import PRICE_FIELDS


class OperandType(str, Enum):
    INDICATOR = "INDICATOR"
    PRICE = "PRICE"
    VALUE = "VALUE"

    @classmethod
    def parse(cls, raw: Any) -> Optional["OperandType"]:
        if not raw:
            return None
        try:
            return cls(str(raw).strip().upper())
        except ValueError:
            return None


class Condition(str, Enum):
    GREATER_THAN = "GREATER_THAN"
    LESS_THAN = "LESS_THAN"
    EQUAL = "EQUAL"
    NOT_EQUAL = "NOT_EQUAL"
    GREATER_THAN_OR_EQUAL = "GREATER_THAN_OR_EQUAL"
    LESS_THAN_OR_EQUAL = "LESS_THAN_OR_EQUAL"
    CROSSES_ABOVE = "CROSSES_ABOVE"
    CROSSES_BELOW = "CROSSES_BELOW"

    @property
    def is_crossing(self) -> bool:
        return self in (Condition.CROSSES_ABOVE, Condition.CROSSES_BELOW)

    @classmethod
    def parse(cls, raw: Any) -> Optional["Condition"]:
        """Accept enum names or the symbolic forms used by older rules."""
        if not raw:
            return None
        text = str(raw).strip()
        if text in _CONDITION_SYMBOLS:
            return _CONDITION_SYMBOLS[text]
        try:
            return cls(text.upper())
        except ValueError:
            return None


_CONDITION_SYMBOLS: dict[str, Condition] = {
    ">": Condition.GREATER_THAN,
    "<": Condition.LESS_THAN,
    "==": Condition.EQUAL,
    "=": Condition.EQUAL,
    "!=": Condition.NOT_EQUAL,
    ">=": Condition.GREATER_THAN_OR_EQUAL,
    "<=": Condition.LESS_THAN_OR_EQUAL,
}


class Logic(str, Enum):
    AND = "AND"
    OR = "OR"

    @classmethod
    def parse(cls, raw: Any) -> "Logic":
        """Anything other than ``OR`` is treated as ``AND``."""
        return cls.OR if str(raw or "").strip().upper() == "OR" else cls.AND


@dataclass(frozen=True)
class Operand:
    """One side of an inequality.

    PRICE operands name their field in ``indicator`` or ``value``
    (``"close"`` when neither is set).
    """

    type: Optional[OperandType] = None
    indicator: Optional[str] = None
    parameters: dict[str, Any] = field(default_factory=dict)
    value: Optional[str] = None
    value_type: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Operand":
        data = data or {}
        value = data.get("value")
        return cls(
            type=OperandType.parse(data.get("type")),
            indicator=data.get("indicator") or None,
            parameters=dict(data.get("parameters") or {}),
            value=None if value is None else str(value),
            value_type=data.get("valueType") or data.get("value_type") or None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value if self.type else None,
            "indicator": self.indicator,
            "parameters": dict(self.parameters),
            "value": self.value,
            "valueType": self.value_type,
        }

    def price_field(self) -> Optional[str]:
        """The OHLC field a PRICE operand reads, ``None`` if unrecognized."""
        name = (self.indicator or self.value or "close").strip().lower()
        if name == "price":
            return "close"
        return name if name in PRICE_FIELDS else None

    def is_complete(self) -> bool:
        if self.type is OperandType.INDICATOR:
            return bool(self.indicator)
        if self.type is OperandType.VALUE:
            return self.value is not None and self.value.strip() != ""
        return self.type is OperandType.PRICE

    def label(self) -> str:
        if self.type is OperandType.INDICATOR:
            name = self.indicator or "?"
            return f"{name} ({self.value_type})" if self.value_type else name
        if self.type is OperandType.PRICE:
            return (self.price_field() or "?").capitalize()
        if self.type is OperandType.VALUE:
            return self.value if self.value is not None else "?"
        return "?"


@dataclass(frozen=True)
class Inequality:
    """A single ``left <condition> right`` comparison."""

    id: Union[int, str, None]
    left: Operand
    condition: Optional[Condition]
    right: Operand
    explanation: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Inequality":
        return cls(
            id=data.get("id"),
            left=Operand.from_dict(data.get("left")),
            condition=Condition.parse(data.get("condition")),
            right=Operand.from_dict(data.get("right")),
            explanation=data.get("explanation") or None,
        )

    def is_complete(self) -> bool:
        """Both operands resolvable in principle and a condition set."""
        return (
            self.condition is not None
            and self.left.is_complete()
            and self.right.is_complete()
        )

    def describe(self) -> str:
        condition = self.condition.value if self.condition else "?"
        return f"{self.left.label()} {condition} {self.right.label()}"


@dataclass(frozen=True)
class RuleGroup:
    """Inequalities combined with AND (all) or OR (at least N)."""

    id: Union[int, str, None]
    logic: Logic
    inequalities: tuple[Inequality, ...] = ()
    required_conditions: int = 1

    @property
    def threshold(self) -> int:
        """``required_conditions`` clamped to ``[1, len(inequalities)]``."""
        return max(1, min(self.required_conditions, len(self.inequalities)))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RuleGroup":
        required = data.get("requiredConditions", data.get("required_conditions"))
        return cls(
            id=data.get("id"),
            logic=Logic.parse(data.get("logic")),
            inequalities=tuple(
                Inequality.from_dict(item) for item in data.get("inequalities") or []
            ),
            required_conditions=_to_int(required, default=1),
        )


@dataclass(frozen=True)
class StrategyRules:
    """Entry and exit rule groups of one strategy, evaluated independently."""

    entry_groups: tuple[RuleGroup, ...] = ()
    exit_groups: tuple[RuleGroup, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StrategyRules":
        """Load the editor shape ``{entry_rules: [...], exit_rules: [...]}``.

        camelCase ``entryRules``/``exitRules`` are accepted too.
        """
        entry = data.get("entry_rules", data.get("entryRules")) or []
        exit_ = data.get("exit_rules", data.get("exitRules")) or []
        return cls(
            entry_groups=tuple(RuleGroup.from_dict(g) for g in entry),
            exit_groups=tuple(RuleGroup.from_dict(g) for g in exit_),
        )


def _to_int(raw: Any, default: int) -> int:
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default
