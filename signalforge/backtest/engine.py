"""Backtest engine — replays historical bars through a strategy's rules.

Iterates bars chronologically, evaluating entry/exit signals on the
history up to each bar and simulating long-only trades with virtual
equity.  No orders are placed anywhere.
"""

import logging
from typing import Optional

from signalforge.config import Config
from signalforge.errors import InsufficientHistoryError
from signalforge.market.cache import IndicatorCache
from signalforge.market.models import Bar, OHLCVSeries
from signalforge.rules.evaluator import RuleEvaluator, StrategySignal
from signalforge.rules.models import RuleGroup, StrategyRules

logger = logging.getLogger("signalforge")


class BacktestEngine:
    """Simulates a rule-based strategy on historical bars.

    Args:
        config: Application configuration (tolerance, exit priority).
        cache: Optional indicator cache shared with the evaluator.
    """

    def __init__(
        self, config: Optional[Config] = None, cache: Optional[IndicatorCache] = None,
    ) -> None:
        self._config = config or Config()
        self._evaluator = RuleEvaluator(
            cache=cache, equal_tolerance=self._config.equal_tolerance,
        )

    # ── Public API ───────────────────────────────────────────────────────

    def run(
        self,
        bars: list[Bar],
        rules: StrategyRules,
        initial_equity: float = 10_000.0,
        stop_loss_pct: Optional[float] = None,
        take_profit_pct: Optional[float] = None,
        key: Optional[str] = None,
    ) -> dict:
        """Execute a full backtest.

        Args:
            bars: Chronological bars.
            rules: Entry and exit rule groups.
            initial_equity: Starting virtual equity, fully invested per trade.
            stop_loss_pct: Optional stop distance below entry, in percent.
            take_profit_pct: Optional target distance above entry, in percent.
            key: Instrument key enabling the indicator cache.

        Returns:
            Dict with ``trades`` (list of closed-trade dicts),
            ``initial_equity``, ``final_equity``, ``equity_curve`` (equity
            after each closed trade) and ``signals`` (one entry per bar
            where at least one side of the rules could be evaluated).

        Entry and exit rules are evaluated separately on every bar.  A side
        whose indicators still lack history does not fire, so a long exit
        lookback never delays entries; a bar is skipped only when no side
        could be evaluated.
        """
        series = OHLCVSeries.from_bars(bars, key=key)
        equity = initial_equity
        open_trade: Optional[dict] = None
        closed_trades: list[dict] = []
        equity_curve: list[float] = [initial_equity]
        signals: list[dict] = []
        skipped = 0

        for i, bar in enumerate(bars):
            # 1. Stop-loss / take-profit on a position opened earlier
            if open_trade is not None:
                hit = self._check_exit(open_trade, bar)
                if hit is not None:
                    exit_price, reason = hit
                    equity += self._close(open_trade, exit_price, reason, bar.date)
                    closed_trades.append(open_trade)
                    equity_curve.append(equity)
                    open_trade = None

            # 2. Signals on history up to and including this bar
            signal = self._evaluate(rules, series.window(i + 1))
            if signal is None:
                skipped += 1
                continue

            action = signal.action(prefer_exit=self._config.exit_priority)
            signals.append({
                "index": i,
                "date": bar.date,
                "entry_signal": signal.entry_signal,
                "exit_signal": signal.exit_signal,
                "action": action,
            })

            # 3. Exit on signal
            if open_trade is not None and signal.exit_signal:
                equity += self._close(open_trade, bar.close, "exit_signal", bar.date)
                closed_trades.append(open_trade)
                equity_curve.append(equity)
                open_trade = None
                continue

            # 4. Enter when flat
            if open_trade is None and action == "entry" and bar.close > 0:
                open_trade = self._open(
                    bar, equity, stop_loss_pct, take_profit_pct,
                    matched=signal.matched_conditions,
                )

        # Close any remaining position at last bar close
        if open_trade is not None and bars:
            last = bars[-1]
            equity += self._close(open_trade, last.close, "end_of_data", last.date)
            closed_trades.append(open_trade)
            equity_curve.append(equity)

        logger.info(
            "Backtest replayed %d bars (%d skipped for history): %d trades, "
            "final equity %.2f",
            len(bars), skipped, len(closed_trades), equity,
        )
        return {
            "trades": closed_trades,
            "initial_equity": initial_equity,
            "final_equity": equity,
            "equity_curve": equity_curve,
            "signals": signals,
        }

    # ── Helpers ──────────────────────────────────────────────────────────

    def _evaluate(
        self, rules: StrategyRules, window: OHLCVSeries,
    ) -> Optional[StrategySignal]:
        """Combined signal of the sides that have enough history, else ``None``."""
        if not rules.entry_groups and not rules.exit_groups:
            return StrategySignal(entry_signal=False, exit_signal=False)
        entry = self._evaluate_side(rules.entry_groups, window, entry=True)
        exit_ = self._evaluate_side(rules.exit_groups, window, entry=False)
        if entry is None and exit_ is None:
            return None
        return StrategySignal(
            entry_signal=entry is not None and entry.entry_signal,
            exit_signal=exit_ is not None and exit_.exit_signal,
            entry_results=entry.entry_results if entry else (),
            exit_results=exit_.exit_results if exit_ else (),
        )

    def _evaluate_side(
        self, groups: tuple[RuleGroup, ...], window: OHLCVSeries, entry: bool,
    ) -> Optional[StrategySignal]:
        if not groups:
            return None
        try:
            if entry:
                return self._evaluator.evaluate_strategy(groups, (), window)
            return self._evaluator.evaluate_strategy((), groups, window)
        except InsufficientHistoryError as exc:
            logger.debug("%s rules not ready: %s", "Entry" if entry else "Exit", exc)
            return None

    @staticmethod
    def _open(
        bar: Bar,
        equity: float,
        stop_loss_pct: Optional[float],
        take_profit_pct: Optional[float],
        matched: list[str],
    ) -> dict:
        entry = bar.close
        return {
            "direction": "buy",
            "entry_price": entry,
            "units": equity / entry,
            "sl": entry * (1 - stop_loss_pct / 100) if stop_loss_pct else None,
            "tp": entry * (1 + take_profit_pct / 100) if take_profit_pct else None,
            "entry_reason": matched,
            "opened_at": bar.date,
            "exit_price": None,
            "exit_reason": None,
            "pnl": None,
            "closed_at": None,
        }

    @staticmethod
    def _close(trade: dict, exit_price: float, reason: str, date: str) -> float:
        pnl = BacktestEngine._calc_pnl(trade, exit_price)
        trade["exit_price"] = exit_price
        trade["exit_reason"] = reason
        trade["pnl"] = pnl
        trade["closed_at"] = date
        return pnl

    @staticmethod
    def _check_exit(trade: dict, bar: Bar) -> Optional[tuple[float, str]]:
        """Check if *bar* triggers an SL or TP exit.

        Returns ``(exit_price, reason)`` or ``None``.
        When both are hit in the same bar, SL is assumed first
        (conservative).
        """
        sl = trade["sl"]
        tp = trade["tp"]
        if sl is not None and bar.low <= sl:
            return sl, "SL hit"
        if tp is not None and bar.high >= tp:
            return tp, "TP hit"
        return None

    @staticmethod
    def _calc_pnl(trade: dict, exit_price: float) -> float:
        """Compute P&L for a long trade exiting at *exit_price*."""
        return (exit_price - trade["entry_price"]) * trade["units"]
