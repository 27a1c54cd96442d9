"""Indicator engine — dispatches an indicator name to its calculation.

``calculate_indicator`` is the single entry point used by the rule
evaluator and the API.  It validates the OHLCV columns the indicator
needs, resolves parameters through the alias table, and packages the
resulting series into an ``IndicatorResult``.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from signalforge.errors import InsufficientHistoryError, MissingSeriesError
from signalforge.indicators import calculations as calc
from signalforge.indicators.params import (
    PARAMETER_ALIASES,
    PARAMETER_DEFAULTS,
    ParamValue,
    resolve_parameters,
)
from signalforge.indicators.registry import (
    INDICATOR_REGISTRY,
    Indicator,
    get_spec,
    normalize_indicator,
)
from signalforge.market.models import DERIVED_SOURCES, OHLCVSeries


@dataclass(frozen=True)
class IndicatorResult:
    """Computed indicator lines.

    Single-value indicators have one line, ``"value"``.  MACD, Bollinger
    Bands and Stochastic expose their named lines; ``primary`` names the
    line reported as ``value``/``values``.
    """

    indicator: Indicator
    parameters: dict[str, ParamValue]
    lines: dict[str, list[float]]
    primary: str

    @property
    def value(self) -> Optional[float]:
        """Latest value of the primary line, ``None`` if not enough history."""
        return self.latest(self.primary)

    @property
    def values(self) -> list[float]:
        return self.lines[self.primary]

    def series(self, line: str) -> list[float]:
        return self.lines[line]

    def latest(self, line: str) -> Optional[float]:
        series = self.lines[line]
        return series[-1] if series else None

    def select_line(self, value_type: Optional[str]) -> str:
        """Name of the line a valueType label refers to (default: primary)."""
        return INDICATOR_REGISTRY[self.indicator].resolve_line(value_type)

    def as_dict(self) -> dict[str, Any]:
        """Wire shape: ``{value, values}`` or one key per named line."""
        if self.lines.keys() == {"value"}:
            return {"value": self.value, "values": list(self.values)}
        out: dict[str, Any] = {line: self.latest(line) for line in self.lines}
        out["values"] = list(self.values)
        return out


def minimum_bars(
    indicator: Union[str, Indicator],
    params: Mapping[str, Any],
    line: Optional[str] = None,
) -> int:
    """Bars needed before *indicator* produces its first value on *line*.

    *line* defaults to the primary line.  The MACD signal/histogram and
    the Stochastic %D are smoothed again, so they need extra bars.
    """
    indicator = normalize_indicator(indicator)
    if indicator in (Indicator.RSI, Indicator.ATR, Indicator.MFI):
        return int(params["period"]) + 1
    if indicator is Indicator.MACD:
        bars = max(int(params["fast"]), int(params["slow"]))
        if line in ("signal", "histogram"):
            bars += int(params["signal"]) - 1
        return bars
    if indicator is Indicator.STOCH:
        bars = int(params["kPeriod"])
        if line == "d":
            bars += int(params["dPeriod"]) - 1
        return bars
    return int(params["period"])


def _require(series: OHLCVSeries, indicator: Indicator, field: str) -> list[float]:
    column = series.column(field)
    if column is None:
        raise MissingSeriesError(INDICATOR_REGISTRY[indicator].display_name, field)
    return column


def _source(series: OHLCVSeries, indicator: Indicator, name: str) -> list[float]:
    """Input series for *name*: a column, or the bar-wise mean of several."""
    components = DERIVED_SOURCES.get(name)
    if components is None:
        return _require(series, indicator, name)
    columns = [_require(series, indicator, field) for field in components]
    return [sum(prices) / len(prices) for prices in zip(*columns)]


def _compute(
    indicator: Indicator, series: OHLCVSeries, p: dict[str, ParamValue],
) -> dict[str, list[float]]:
    if indicator in (Indicator.SMA, Indicator.EMA, Indicator.RSI,
                     Indicator.MACD, Indicator.BBANDS):
        source = _source(series, indicator, str(p["source"]))

        if indicator is Indicator.SMA:
            return {"value": calc.calculate_sma(source, p["period"])}
        if indicator is Indicator.EMA:
            return {"value": calc.calculate_ema(source, p["period"])}
        if indicator is Indicator.RSI:
            return {"value": calc.calculate_rsi(source, p["period"])}
        if indicator is Indicator.MACD:
            macd, signal, histogram = calc.calculate_macd(
                source, p["fast"], p["slow"], p["signal"],
            )
            return {"macd": macd, "signal": signal, "histogram": histogram}
        upper, middle, lower = calc.calculate_bollinger(
            source, p["period"], p["deviation"],
        )
        return {"upper": upper, "middle": middle, "lower": lower}

    high = _require(series, indicator, "high")
    low = _require(series, indicator, "low")
    close = series.close

    if indicator is Indicator.STOCH:
        k, d = calc.calculate_stochastic(high, low, close, p["kPeriod"], p["dPeriod"])
        return {"k": k, "d": d}
    if indicator is Indicator.ATR:
        return {"value": calc.calculate_atr(high, low, close, p["period"])}
    if indicator is Indicator.CCI:
        return {"value": calc.calculate_cci(high, low, close, p["period"])}
    if indicator is Indicator.WILLR:
        return {"value": calc.calculate_williams_r(high, low, close, p["period"])}

    volume = _require(series, indicator, "volume")
    return {"value": calc.calculate_mfi(high, low, close, volume, p["period"])}


def calculate_indicator(
    name: Union[str, Indicator],
    series: OHLCVSeries,
    config: Optional[Mapping[str, Any]] = None,
    require_history: bool = False,
) -> IndicatorResult:
    """Calculate *name* over the full *series*.

    Args:
        name: Indicator identifier in any supported spelling.
        series: OHLCV input, oldest → newest.
        config: Raw parameter mapping; aliases and defaults are applied.
        require_history: Raise ``InsufficientHistoryError`` instead of
            returning an empty result when the series is too short.

    Raises:
        UnsupportedIndicatorError: unknown indicator name.
        MissingSeriesError: a needed OHLCV column is absent.
        InvalidParameterError: a parameter is present but malformed.
    """
    spec = get_spec(name)
    indicator = spec.indicator

    for field in spec.required_fields:
        _require(series, indicator, field)

    params = resolve_parameters(indicator, config)
    lines = _compute(indicator, series, params)
    result = IndicatorResult(indicator, params, lines, spec.primary)

    if require_history and not result.values:
        raise InsufficientHistoryError(
            spec.display_name, minimum_bars(indicator, params), len(series),
        )
    return result


def describe_indicators() -> list[dict[str, Any]]:
    """Catalogue of supported indicators for API consumers."""
    catalogue = []
    for indicator, spec in INDICATOR_REGISTRY.items():
        catalogue.append({
            "name": spec.display_name,
            "id": indicator.value,
            "spellings": list(spec.spellings),
            "requires": ["close", *spec.required_fields],
            "parameters": {
                param: {
                    "default": PARAMETER_DEFAULTS[indicator][param],
                    "aliases": list(aliases),
                }
                for param, aliases in PARAMETER_ALIASES[indicator].items()
            },
            "value_types": list(spec.value_types),
        })
    return catalogue
