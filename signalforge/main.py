"""SignalForge — application entry point.

Boots the FastAPI server and provides the CLI entry point for serve,
evaluate and backtest modes.
"""

import logging

from fastapi import FastAPI

from signalforge.api.routers import router

app = FastAPI(title="SignalForge API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("signalforge")


@app.get("/health")
async def health():
    return {"status": "ok"}


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate mode."""
    import argparse

    from signalforge.api.routers import configure_routers
    from signalforge.config import load_config
    from signalforge.market.cache import IndicatorCache

    parser = argparse.ArgumentParser(description="SignalForge rule engine")
    parser.add_argument(
        "--mode",
        choices=["serve", "evaluate", "backtest"],
        default="serve",
        help="Run mode (default: serve)",
    )
    parser.add_argument(
        "--input", help="JSON document with bars and rules (evaluate/backtest)",
    )
    parser.add_argument("--env", help="Path to a .env file")
    args = parser.parse_args(argv)

    config = load_config(args.env)
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.mode == "serve":
        import uvicorn

        cache = IndicatorCache(config.cache_ttl_seconds, config.cache_max_entries)
        configure_routers(config, cache)
        logger.info("Starting SignalForge API on port %d", config.api_port)
        uvicorn.run(app, host="0.0.0.0", port=config.api_port, log_level="info")
        return

    if not args.input:
        parser.error(f"--input is required in {args.mode} mode")
    print(_run_document(args.mode, args.input, config))


def _run_document(mode: str, path: str, config) -> str:
    """Evaluate or backtest the JSON document at *path*; return JSON text."""
    import json

    from signalforge.backtest.engine import BacktestEngine
    from signalforge.backtest.stats import calculate_stats
    from signalforge.market.models import OHLCVSeries, bars_from_dicts
    from signalforge.rules.evaluator import RuleEvaluator
    from signalforge.rules.rows import strategy_from_dict

    with open(path, "r", encoding="utf-8") as f:
        document = json.load(f)

    bars = bars_from_dicts(document.get("bars") or [])
    rules = strategy_from_dict(document)

    if mode == "evaluate":
        evaluator = RuleEvaluator(equal_tolerance=config.equal_tolerance)
        signal = evaluator.evaluate_rules(rules, OHLCVSeries.from_bars(bars))
        output = {
            "action": signal.action(prefer_exit=config.exit_priority),
            **signal.to_dict(),
        }
    else:
        result = BacktestEngine(config).run(
            bars,
            rules,
            initial_equity=float(document.get("initial_equity", 10_000.0)),
            stop_loss_pct=document.get("stop_loss_pct"),
            take_profit_pct=document.get("take_profit_pct"),
        )
        stats = calculate_stats(
            result["trades"], result["equity_curve"], result["initial_equity"],
        )
        output = {"stats": stats, **result}
        logger.info(
            "Backtest complete: %d trades, return %.2f%%, max drawdown %.2f%%",
            stats["total_trades"], stats["total_return_pct"], stats["max_drawdown_pct"],
        )
    return json.dumps(output, indent=2)


if __name__ == "__main__":
    _run_cli()
