"""HTTP API routers — /indicators, /evaluate, /validate, /backtest endpoints.

No business logic. Parses request bodies and delegates to the indicator
engine, the rule evaluator and the backtest engine.
"""

import logging
from typing import Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from signalforge.backtest.engine import BacktestEngine
from signalforge.backtest.stats import calculate_stats
from signalforge.config import Config
from signalforge.errors import SignalForgeError
from signalforge.indicators.engine import calculate_indicator, describe_indicators
from signalforge.market.cache import IndicatorCache
from signalforge.market.models import OHLCVSeries, bars_from_dicts
from signalforge.rules.evaluator import RuleEvaluator
from signalforge.rules.rows import strategy_from_dict
from signalforge.rules.validation import recommended_fixes, validate_trading_rules

logger = logging.getLogger("signalforge")
router = APIRouter()

# ── Shared state (set during app startup) ────────────────────────────────

_config: Config = Config()
_cache: Optional[IndicatorCache] = None  # Set via configure_routers()


def configure_routers(
    config: Optional[Config] = None, cache: Optional[IndicatorCache] = None,
) -> None:
    """Inject dependencies from the application startup.

    Args:
        config: Loaded ``Config``; defaults are used when omitted.
        cache: Indicator cache shared by all requests that send a ``key``.
    """
    global _config, _cache  # noqa: PLW0603
    _config = config or Config()
    _cache = cache


def _error(message: str, status_code: int = 422) -> JSONResponse:
    return JSONResponse(
        status_code=status_code, content={"status": "error", "error": message},
    )


def _series(body: dict) -> OHLCVSeries:
    """Build the series from ``bars`` rows; ``key`` enables caching."""
    bars = bars_from_dicts(body.get("bars") or [])
    return OHLCVSeries.from_bars(bars, key=body.get("key") or None)


# ── Endpoints ────────────────────────────────────────────────────────────


@router.get("/indicators")
async def list_indicators():
    """Supported indicators with their parameters and value types."""
    return {"indicators": describe_indicators()}


@router.post("/indicators/{name}")
async def post_indicator(name: str, body: dict):
    """Calculate one indicator over ``bars`` with optional ``parameters``."""
    try:
        series = _series(body)
        result = calculate_indicator(name, series, body.get("parameters") or {})
    except (SignalForgeError, ValueError, KeyError, TypeError) as exc:
        logger.info("Indicator request for %s rejected: %s", name, exc)
        return _error(str(exc))
    return {
        "status": "ok",
        "indicator": result.indicator.value,
        "parameters": result.parameters,
        **result.as_dict(),
    }


@router.post("/evaluate")
async def post_evaluate(body: dict):
    """Evaluate entry/exit rules against ``bars``.

    Accepts the editor shape (``entry_rules``/``exit_rules``) or stored
    ``rule_groups`` rows.
    """
    try:
        series = _series(body)
        rules = strategy_from_dict(body)
        evaluator = RuleEvaluator(cache=_cache, equal_tolerance=_config.equal_tolerance)
        signal = evaluator.evaluate_rules(rules, series)
    except (SignalForgeError, ValueError, KeyError, TypeError) as exc:
        logger.info("Evaluation rejected: %s", exc)
        return _error(str(exc))

    action = signal.action(prefer_exit=_config.exit_priority)
    logger.info(
        "Evaluated %d entry / %d exit groups on %d bars: action=%s",
        len(rules.entry_groups), len(rules.exit_groups), len(series), action,
    )
    return {"status": "ok", "action": action, **signal.to_dict()}


@router.post("/validate")
async def post_validate(body: dict):
    """Static rule checks, no market data needed."""
    rules = strategy_from_dict(body)
    result = validate_trading_rules(rules.entry_groups, rules.exit_groups)
    return {
        "status": "ok",
        **result.to_dict(),
        "recommended_fixes": recommended_fixes(result),
    }


@router.post("/backtest")
async def post_backtest(body: dict):
    """Replay ``bars`` through the rules and report trades and statistics."""
    try:
        bars = bars_from_dicts(body.get("bars") or [])
        rules = strategy_from_dict(body)
        engine = BacktestEngine(_config, cache=_cache)
        result = engine.run(
            bars,
            rules,
            initial_equity=float(body.get("initial_equity", 10_000.0)),
            stop_loss_pct=body.get("stop_loss_pct"),
            take_profit_pct=body.get("take_profit_pct"),
            key=body.get("key") or None,
        )
    except (SignalForgeError, ValueError, KeyError, TypeError) as exc:
        logger.info("Backtest rejected: %s", exc)
        return _error(str(exc))
    stats = calculate_stats(
        result["trades"], result["equity_curve"], result["initial_equity"],
    )
    return {"status": "ok", "stats": stats, **result}
