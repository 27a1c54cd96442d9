"""Indicator registry — maps indicator names to their specifications.

Names arrive from stored rules in many spellings ("RSI", "Moving Average",
"Bollinger Bands", "willr").  They are normalized once, here, into the
closed ``Indicator`` enum; anything unrecognized is rejected.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from signalforge.errors import UnsupportedIndicatorError


class Indicator(str, Enum):
    SMA = "sma"
    EMA = "ema"
    RSI = "rsi"
    MACD = "macd"
    BBANDS = "bbands"
    STOCH = "stoch"
    ATR = "atr"
    CCI = "cci"
    WILLR = "willr"
    MFI = "mfi"


def normalize_name(name: str) -> str:
    """Lowercase and strip all whitespace: ``"Williams %R"`` → ``"williams%r"``."""
    return "".join(name.split()).lower()


@dataclass(frozen=True)
class IndicatorSpec:
    """Static description of one indicator.

    ``required_fields`` lists the OHLCV columns needed besides ``close``.
    ``value_types`` maps the editor's sub-value labels to result lines;
    ``line_aliases`` holds the short forms found in stored rules.
    """

    indicator: Indicator
    display_name: str
    spellings: tuple[str, ...]
    required_fields: tuple[str, ...] = ()
    lines: tuple[str, ...] = ("value",)
    primary: str = "value"
    value_types: dict[str, str] = field(default_factory=dict)
    line_aliases: dict[str, str] = field(default_factory=dict)

    def resolve_line(self, value_type: Optional[str]) -> str:
        """Map a valueType label to a result line; unknown labels → primary."""
        if not value_type:
            return self.primary
        key = normalize_name(value_type)
        for label, line in self.value_types.items():
            if normalize_name(label) == key:
                return line
        if key in self.line_aliases:
            return self.line_aliases[key]
        if key in self.lines:
            return key
        return self.primary


INDICATOR_REGISTRY: dict[Indicator, IndicatorSpec] = {
    Indicator.SMA: IndicatorSpec(
        Indicator.SMA, "SMA",
        spellings=("sma", "movingaverage", "simplemovingaverage", "ma"),
    ),
    Indicator.EMA: IndicatorSpec(
        Indicator.EMA, "EMA",
        spellings=("ema", "exponentialmovingaverage"),
    ),
    Indicator.RSI: IndicatorSpec(
        Indicator.RSI, "RSI",
        spellings=("rsi", "relativestrengthindex"),
    ),
    Indicator.MACD: IndicatorSpec(
        Indicator.MACD, "MACD",
        spellings=("macd", "movingaverageconvergencedivergence"),
        lines=("macd", "signal", "histogram"),
        primary="macd",
        value_types={
            "MACD Value": "macd",
            "Signal Value": "signal",
            "Histogram Value": "histogram",
        },
        line_aliases={
            "line": "macd",
            "macdline": "macd",
            "signalline": "signal",
            "hist": "histogram",
        },
    ),
    Indicator.BBANDS: IndicatorSpec(
        Indicator.BBANDS, "Bollinger Bands",
        spellings=("bollingerbands", "bbands", "bollinger", "bb"),
        required_fields=("high", "low"),
        lines=("upper", "middle", "lower"),
        primary="middle",
        value_types={
            "Upper Band": "upper",
            "Middle Band": "middle",
            "Lower Band": "lower",
        },
    ),
    Indicator.STOCH: IndicatorSpec(
        Indicator.STOCH, "Stochastic",
        spellings=("stochastic", "stoch", "stochasticoscillator"),
        required_fields=("high", "low"),
        lines=("k", "d"),
        primary="k",
        value_types={"K Value": "k", "D Value": "d"},
        line_aliases={"%k": "k", "%d": "d"},
    ),
    Indicator.ATR: IndicatorSpec(
        Indicator.ATR, "ATR",
        spellings=("atr", "averagetruerange"),
        required_fields=("high", "low"),
    ),
    Indicator.CCI: IndicatorSpec(
        Indicator.CCI, "CCI",
        spellings=("cci", "commoditychannelindex"),
        required_fields=("high", "low"),
    ),
    Indicator.WILLR: IndicatorSpec(
        Indicator.WILLR, "Williams %R",
        spellings=("williams%r", "williamsr", "willr", "williamspercentr"),
        required_fields=("high", "low"),
    ),
    Indicator.MFI: IndicatorSpec(
        Indicator.MFI, "MFI",
        spellings=("mfi", "moneyflowindex"),
        required_fields=("high", "low", "volume"),
    ),
}

_NAME_LOOKUP: dict[str, Indicator] = {
    spelling: spec.indicator
    for spec in INDICATOR_REGISTRY.values()
    for spelling in spec.spellings
}


def normalize_indicator(name: Union[str, Indicator]) -> Indicator:
    """Resolve an indicator name in any supported spelling.

    Raises ``UnsupportedIndicatorError`` if the name is not recognized.
    """
    if isinstance(name, Indicator):
        return name
    indicator = _NAME_LOOKUP.get(normalize_name(str(name)))
    if indicator is None:
        raise UnsupportedIndicatorError(str(name))
    return indicator


def get_spec(name: Union[str, Indicator]) -> IndicatorSpec:
    """Look up the ``IndicatorSpec`` for *name*."""
    return INDICATOR_REGISTRY[normalize_indicator(name)]


def supported_indicators() -> list[str]:
    """Display names of every supported indicator, in registry order."""
    return [spec.display_name for spec in INDICATOR_REGISTRY.values()]
