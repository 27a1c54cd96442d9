"""Technical indicators — SMA, EMA, RSI, MACD, Bollinger Bands, Stochastic,
ATR, CCI, Williams %R, MFI. Pure functions, no I/O.

Every function returns a compact series: one value per bar starting at the
first bar with a complete window, so the last element always corresponds to
the most recent bar supplied.  Input shorter than the window produces an
empty list rather than an error.
"""

import math


def _window_extremes(
    high: list[float], low: list[float], end: int, period: int,
) -> tuple[float, float]:
    """Highest high and lowest low over bars ``(end - period, end]``."""
    start = end - period + 1
    return max(high[start : end + 1]), min(low[start : end + 1])


# ── Moving averages ──────────────────────────────────────────────────────


def calculate_sma(data: list[float], period: int) -> list[float]:
    """Simple Moving Average: mean of the trailing *period* values.

    Returns ``len(data) - period + 1`` values, or ``[]`` when the input is
    shorter than *period*.
    """
    if period <= 0 or len(data) < period:
        return []

    result: list[float] = []
    window_sum = sum(data[:period])
    result.append(window_sum / period)
    for i in range(period, len(data)):
        window_sum += data[i] - data[i - period]
        result.append(window_sum / period)
    return result


def calculate_ema(data: list[float], period: int) -> list[float]:
    """Exponential Moving Average.

    Uses the standard EMA formula:
        ``EMA_today = value × k + EMA_yesterday × (1 - k)``
    where ``k = 2 / (period + 1)``.

    The first EMA value is seeded with the SMA of the first *period*
    values, so the output has ``len(data) - period + 1`` entries.
    """
    if period <= 0 or len(data) < period:
        return []

    k = 2.0 / (period + 1)
    ema = sum(data[:period]) / period
    result: list[float] = [ema]

    for i in range(period, len(data)):
        ema = data[i] * k + ema * (1 - k)
        result.append(ema)

    return result


# ── RSI ──────────────────────────────────────────────────────────────────


def calculate_rsi(data: list[float], period: int = 14) -> list[float]:
    """Calculate Wilder's Relative Strength Index.

    Algorithm (Wilder-smoothed):
        1. delta = close[i] - close[i-1]
        2. Separate gains (positive) and losses (|negative|).
        3. Seed average gain/loss = SMA of first *period* deltas.
        4. Subsequent: avg = (prev_avg × (period-1) + current) / period
        5. RS = avg_gain / avg_loss
        6. RSI = 100 - 100 / (1 + RS)

    An average loss of zero saturates RSI at exactly 100.

    Requires at least ``period + 1`` values; returns
    ``len(data) - period`` values.
    """
    if period <= 0 or len(data) < period + 1:
        return []

    deltas = [data[i] - data[i - 1] for i in range(1, len(data))]
    gains = [max(d, 0.0) for d in deltas]
    losses = [abs(min(d, 0.0)) for d in deltas]

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period

    def _rsi_from_avgs(ag: float, al: float) -> float:
        if al == 0:
            return 100.0
        rs = ag / al
        return 100.0 - 100.0 / (1.0 + rs)

    result: list[float] = [_rsi_from_avgs(avg_gain, avg_loss)]

    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        result.append(_rsi_from_avgs(avg_gain, avg_loss))

    return result


# ── MACD ─────────────────────────────────────────────────────────────────


def calculate_macd(
    data: list[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> tuple[list[float], list[float], list[float]]:
    """Calculate MACD.

    MACD line  = EMA(fast) − EMA(slow), both aligned on the latest bar by
                 dropping the leading values of the longer series.
    Signal     = EMA(MACD line, *signal*)
    Histogram  = MACD line − Signal, aligned on the signal line, i.e.
                 ``histogram[i] = macd[i + signal - 1] - signal[i]``.

    Returns ``(macd, signal, histogram)``.  Any of them may be empty when
    the input is too short.
    """
    fast_ema = calculate_ema(data, fast)
    slow_ema = calculate_ema(data, slow)

    n = min(len(fast_ema), len(slow_ema))
    if n == 0:
        return [], [], []

    macd_line = [f - s for f, s in zip(fast_ema[-n:], slow_ema[-n:])]
    signal_line = calculate_ema(macd_line, signal)

    offset = len(macd_line) - len(signal_line)
    histogram = [
        macd_line[i + offset] - signal_line[i] for i in range(len(signal_line))
    ]
    return macd_line, signal_line, histogram


# ── Bollinger Bands ──────────────────────────────────────────────────────


def calculate_bollinger(
    data: list[float],
    period: int = 20,
    deviation: float = 2.0,
) -> tuple[list[float], list[float], list[float]]:
    """Calculate Bollinger Bands.

    Middle = SMA(*period*)
    Upper  = middle + *deviation* × σ
    Lower  = middle − *deviation* × σ

    σ is the population standard deviation of the same window.

    Returns ``(upper, middle, lower)``, each ``len(data) - period + 1``
    long.
    """
    if period <= 0 or len(data) < period:
        return [], [], []

    upper: list[float] = []
    middle: list[float] = []
    lower: list[float] = []

    for i in range(period - 1, len(data)):
        window = data[i - period + 1 : i + 1]
        sma = sum(window) / period
        variance = sum((x - sma) ** 2 for x in window) / period
        sigma = math.sqrt(variance)

        middle.append(sma)
        upper.append(sma + deviation * sigma)
        lower.append(sma - deviation * sigma)

    return upper, middle, lower


# ── Stochastic ───────────────────────────────────────────────────────────


def calculate_stochastic(
    high: list[float],
    low: list[float],
    close: list[float],
    k_period: int = 14,
    d_period: int = 3,
) -> tuple[list[float], list[float]]:
    """Calculate the Stochastic Oscillator.

    %K = (close − lowest_low) / (highest_high − lowest_low) × 100
    %D = SMA(%K, *d_period*)

    A window with no range (highest == lowest) reads 50.

    Returns ``(k, d)``.
    """
    if k_period <= 0 or len(close) < k_period:
        return [], []

    k: list[float] = []
    for i in range(k_period - 1, len(close)):
        highest, lowest = _window_extremes(high, low, i, k_period)
        spread = highest - lowest
        if spread == 0:
            k.append(50.0)
        else:
            k.append((close[i] - lowest) / spread * 100.0)

    return k, calculate_sma(k, d_period)


# ── ATR ──────────────────────────────────────────────────────────────────


def calculate_atr(
    high: list[float],
    low: list[float],
    close: list[float],
    period: int = 14,
) -> list[float]:
    """Calculate the Average True Range.

    Uses the standard True Range definition:
        TR = max(high - low, |high - prev_close|, |low - prev_close|)

    ATR is the SMA of the true ranges, so the first value needs
    ``period + 1`` bars (a previous close for every TR).
    """
    true_ranges: list[float] = []
    for i in range(1, len(close)):
        tr = max(
            high[i] - low[i],
            abs(high[i] - close[i - 1]),
            abs(low[i] - close[i - 1]),
        )
        true_ranges.append(tr)

    return calculate_sma(true_ranges, period)


# ── CCI ──────────────────────────────────────────────────────────────────


def calculate_cci(
    high: list[float],
    low: list[float],
    close: list[float],
    period: int = 14,
) -> list[float]:
    """Calculate the Commodity Channel Index.

    TP  = (high + low + close) / 3
    CCI = (TP − SMA(TP)) / (0.015 × mean_absolute_deviation(TP))

    A window with zero mean deviation reads 0.
    """
    if period <= 0 or len(close) < period:
        return []

    typical = [(h + l + c) / 3 for h, l, c in zip(high, low, close)]
    result: list[float] = []

    for i in range(period - 1, len(typical)):
        window = typical[i - period + 1 : i + 1]
        sma = sum(window) / period
        mean_dev = sum(abs(tp - sma) for tp in window) / period
        if mean_dev == 0:
            result.append(0.0)
        else:
            result.append((typical[i] - sma) / (0.015 * mean_dev))

    return result


# ── Williams %R ──────────────────────────────────────────────────────────


def calculate_williams_r(
    high: list[float],
    low: list[float],
    close: list[float],
    period: int = 14,
) -> list[float]:
    """Calculate Williams %R.

    %R = (highest_high − close) / (highest_high − lowest_low) × −100

    Values lie in [−100, 0]; a window with no range reads −50.
    """
    if period <= 0 or len(close) < period:
        return []

    result: list[float] = []
    for i in range(period - 1, len(close)):
        highest, lowest = _window_extremes(high, low, i, period)
        spread = highest - lowest
        if spread == 0:
            result.append(-50.0)
        else:
            result.append((highest - close[i]) / spread * -100.0)
    return result


# ── MFI ──────────────────────────────────────────────────────────────────


def calculate_mfi(
    high: list[float],
    low: list[float],
    close: list[float],
    volume: list[float],
    period: int = 14,
) -> list[float]:
    """Calculate the Money Flow Index.

    Raw money flow = TP × volume.  Over the trailing *period* bars, flow
    is positive when TP rose versus the previous bar and negative when it
    fell (unchanged bars count toward neither).

    MFI = 100 − 100 / (1 + positive_flow / negative_flow)

    Zero negative flow saturates MFI at 100.  Requires ``period + 1`` bars.
    """
    if period <= 0 or len(close) < period + 1:
        return []

    typical = [(h + l + c) / 3 for h, l, c in zip(high, low, close)]
    raw_flow = [tp * v for tp, v in zip(typical, volume)]
    result: list[float] = []

    for i in range(period, len(close)):
        positive = 0.0
        negative = 0.0
        for j in range(i - period + 1, i + 1):
            if typical[j] > typical[j - 1]:
                positive += raw_flow[j]
            elif typical[j] < typical[j - 1]:
                negative += raw_flow[j]

        if negative == 0:
            result.append(100.0)
        else:
            result.append(100.0 - 100.0 / (1.0 + positive / negative))

    return result
