"""Indicator parameter resolution.

Stored rules spell the same parameter several ways (``period``,
``rsiPeriod``, ``optInTimePeriod`` …).  The accepted spellings live in one
table, ordered by priority, and a single helper walks it.
"""

import math
from typing import Any, Mapping, Optional, Union

from signalforge.errors import InvalidParameterError
from signalforge.indicators.registry import INDICATOR_REGISTRY, Indicator
from signalforge.market.models import DERIVED_SOURCES, SERIES_FIELDS

ParamValue = Union[int, float, str]

_PERIOD = ("period", "optInTimePeriod", "length", "timePeriod")
_OSCILLATOR_PERIOD = ("period", "rsiPeriod", "optInTimePeriod", "length")
_SOURCE = ("source", "series")

PARAMETER_ALIASES: dict[Indicator, dict[str, tuple[str, ...]]] = {
    Indicator.SMA: {"period": _PERIOD, "source": _SOURCE},
    Indicator.EMA: {"period": _PERIOD, "source": _SOURCE},
    Indicator.RSI: {"period": _OSCILLATOR_PERIOD, "source": _SOURCE},
    Indicator.MACD: {
        "fast": ("fast", "fastPeriod", "optInFastPeriod"),
        "slow": ("slow", "slowPeriod", "optInSlowPeriod"),
        "signal": ("signal", "signalPeriod", "optInSignalPeriod"),
        "source": _SOURCE,
    },
    Indicator.BBANDS: {
        "period": _PERIOD,
        "deviation": ("deviation", "nbDevUp", "nbDevDn", "stdDev"),
        "source": _SOURCE,
    },
    Indicator.STOCH: {
        "kPeriod": ("kPeriod", "k", "fastK", "fastKPeriod"),
        "dPeriod": ("dPeriod", "d", "fastD", "slowD"),
    },
    Indicator.ATR: {"period": _OSCILLATOR_PERIOD},
    Indicator.CCI: {"period": _OSCILLATOR_PERIOD},
    Indicator.WILLR: {"period": _OSCILLATOR_PERIOD},
    Indicator.MFI: {"period": _OSCILLATOR_PERIOD},
}

PARAMETER_DEFAULTS: dict[Indicator, dict[str, ParamValue]] = {
    Indicator.SMA: {"period": 14, "source": "close"},
    Indicator.EMA: {"period": 14, "source": "close"},
    Indicator.RSI: {"period": 14, "source": "close"},
    Indicator.MACD: {"fast": 12, "slow": 26, "signal": 9, "source": "close"},
    Indicator.BBANDS: {"period": 20, "deviation": 2.0, "source": "close"},
    Indicator.STOCH: {"kPeriod": 14, "dPeriod": 3},
    Indicator.ATR: {"period": 14},
    Indicator.CCI: {"period": 14},
    Indicator.WILLR: {"period": 14},
    Indicator.MFI: {"period": 14},
}

# Parameters parsed as floats; ``source`` is a column or an averaged price
# (hl2, hlc3, ohlc4); the rest are periods.
_FLOAT_PARAMS = {"deviation"}


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse(indicator: Indicator, name: str, value: Any) -> ParamValue:
    label = INDICATOR_REGISTRY[indicator].display_name

    if name == "source":
        field = str(value).strip().lower()
        if field not in SERIES_FIELDS and field not in DERIVED_SOURCES:
            raise InvalidParameterError(label, name, value)
        return field

    if isinstance(value, bool):
        raise InvalidParameterError(label, name, value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidParameterError(label, name, value) from None
    if not math.isfinite(number) or number <= 0:
        raise InvalidParameterError(label, name, value)

    if name in _FLOAT_PARAMS:
        return number
    if not number.is_integer():
        raise InvalidParameterError(label, name, value)
    return int(number)


def resolve_parameter(
    indicator: Indicator,
    name: str,
    raw: Mapping[str, Any],
    aliases: tuple[str, ...],
    default: ParamValue,
) -> ParamValue:
    """Return the first non-blank alias value in *raw*, parsed, else *default*.

    Raises ``InvalidParameterError`` when the first present value is
    malformed; a later alias never masks a bad earlier one.
    """
    for alias in aliases:
        value = raw.get(alias)
        if _is_blank(value):
            continue
        return _parse(indicator, name, value)
    return default


def resolve_parameters(
    indicator: Indicator, raw: Optional[Mapping[str, Any]] = None,
) -> dict[str, ParamValue]:
    """Resolve every canonical parameter of *indicator* from *raw*."""
    raw = raw or {}
    defaults = PARAMETER_DEFAULTS[indicator]
    return {
        name: resolve_parameter(indicator, name, raw, aliases, defaults[name])
        for name, aliases in PARAMETER_ALIASES[indicator].items()
    }
