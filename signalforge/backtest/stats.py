"""Backtest performance metrics — pure functions over a finished run.

Returns and drawdown are measured on the equity curve, so they are
reported both in account currency and as a percentage of equity.
"""

import math
from typing import Optional


def calculate_stats(
    trades: list[dict], equity_curve: list[float], initial_equity: float,
) -> dict:
    """Performance summary of a backtest run.

    Args:
        trades: Closed trades, each with a ``"pnl"`` key.
        equity_curve: Equity after each closed trade, starting with
            *initial_equity*.
        initial_equity: Starting virtual equity.

    Returns:
        Dict with trade counts, ``win_rate`` (percent), total return and
        maximum drawdown as ``*_value`` (currency) and ``*_pct``,
        ``sharpe_ratio`` over per-trade equity returns, ``profit_factor``
        (``None`` without losing trades) and ``net_pnl``.
    """
    final_equity = equity_curve[-1] if equity_curve else initial_equity
    pnls = [t["pnl"] for t in trades]
    winners = [p for p in pnls if p > 0]
    gross_loss = -sum(p for p in pnls if p < 0)
    drawdown_value, drawdown_pct = _max_drawdown(equity_curve)

    profit_factor: Optional[float] = None
    if gross_loss > 0:
        profit_factor = round(sum(winners) / gross_loss, 4)

    return {
        "total_trades": len(pnls),
        "winning_trades": len(winners),
        "losing_trades": len(pnls) - len(winners),
        "win_rate": round(100 * len(winners) / len(pnls), 2) if pnls else 0.0,
        "total_return_value": round(final_equity - initial_equity, 2),
        "total_return_pct": round(_percent(final_equity - initial_equity, initial_equity), 2),
        "max_drawdown_value": round(drawdown_value, 2),
        "max_drawdown_pct": round(drawdown_pct, 2),
        "sharpe_ratio": round(_sharpe(_returns(equity_curve)), 4),
        "profit_factor": profit_factor,
        "net_pnl": round(sum(pnls), 2),
    }


# ── Helpers ──────────────────────────────────────────────────────────────


def _percent(part: float, whole: float) -> float:
    return 100 * part / whole if whole else 0.0


def _returns(equity_curve: list[float]) -> list[float]:
    """Fractional change between consecutive equity points."""
    return [
        (curr - prev) / prev
        for prev, curr in zip(equity_curve, equity_curve[1:])
        if prev
    ]


def _sharpe(returns: list[float]) -> float:
    """Mean over sample standard deviation of *returns*, not annualised.

    Trades do not arrive at a fixed frequency, so no periods-per-year
    factor is applied.  0.0 with fewer than 2 returns or zero variance.
    """
    n = len(returns)
    if n < 2:
        return 0.0
    mean = sum(returns) / n
    std = math.sqrt(sum((r - mean) ** 2 for r in returns) / (n - 1))
    if std == 0:
        return 0.0
    return mean / std


def _max_drawdown(equity_curve: list[float]) -> tuple[float, float]:
    """Deepest peak-to-trough fall of equity as ``(value, percent of peak)``.

    The percentage belongs to the drawdown with the largest percentage,
    which need not be the one with the largest value.
    """
    peak = None
    worst_value = worst_pct = 0.0
    for equity in equity_curve:
        if peak is None or equity > peak:
            peak = equity
        fall = peak - equity
        worst_value = max(worst_value, fall)
        worst_pct = max(worst_pct, _percent(fall, peak))
    return worst_value, worst_pct
