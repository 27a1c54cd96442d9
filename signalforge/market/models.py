"""Market data models — typed OHLCV containers for the indicator engine."""

import hashlib
import json
from dataclasses import dataclass, field, replace
from functools import cached_property
from typing import Any, Mapping, Optional


PRICE_FIELDS = ("open", "high", "low", "close")
SERIES_FIELDS = PRICE_FIELDS + ("volume",)

# Averaged price sources and the columns each one needs.
DERIVED_SOURCES: dict[str, tuple[str, ...]] = {
    "hl2": ("high", "low"),
    "hlc3": ("high", "low", "close"),
    "ohlc4": ("open", "high", "low", "close"),
}


@dataclass(frozen=True)
class Bar:
    """A single OHLCV bar."""

    date: str
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


@dataclass(frozen=True)
class OHLCVSeries:
    """Column-oriented OHLCV input, ordered oldest → newest.

    ``close`` is always present.  The other columns are optional; indicators
    that need them raise ``MissingSeriesError`` when they are ``None``.
    ``key`` identifies the instrument/timeframe for caching and is never
    used in any computation.
    """

    close: list[float]
    open: Optional[list[float]] = None
    high: Optional[list[float]] = None
    low: Optional[list[float]] = None
    volume: Optional[list[float]] = None
    key: Optional[str] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        n = len(self.close)
        for name in ("open", "high", "low", "volume"):
            column = getattr(self, name)
            if column is not None and len(column) != n:
                raise ValueError(
                    f"Series '{name}' has {len(column)} bars, "
                    f"expected {n} to match 'close'"
                )

    def __len__(self) -> int:
        return len(self.close)

    @cached_property
    def fingerprint(self) -> str:
        """Digest of the column values, used to tell refetched data apart.

        Two series with the same key and length but different prices get
        different fingerprints.
        """
        payload = json.dumps(
            [getattr(self, name) for name in SERIES_FIELDS], separators=(",", ":"),
        )
        return hashlib.sha1(payload.encode("utf-8")).hexdigest()

    @classmethod
    def from_bars(cls, bars: list[Bar], key: Optional[str] = None) -> "OHLCVSeries":
        """Build column arrays from a chronological list of bars."""
        return cls(
            close=[b.close for b in bars],
            open=[b.open for b in bars],
            high=[b.high for b in bars],
            low=[b.low for b in bars],
            volume=[b.volume for b in bars],
            key=key,
        )

    def column(self, name: str) -> Optional[list[float]]:
        """Return the named column, or ``None`` if it was not supplied."""
        if name not in SERIES_FIELDS:
            raise ValueError(f"Unknown series field '{name}'")
        return getattr(self, name)

    def window(self, end: int) -> "OHLCVSeries":
        """Return the series truncated to bars ``[0, end)``."""

        def _cut(column: Optional[list[float]]) -> Optional[list[float]]:
            return None if column is None else column[:end]

        return replace(
            self,
            close=self.close[:end],
            open=_cut(self.open),
            high=_cut(self.high),
            low=_cut(self.low),
            volume=_cut(self.volume),
        )


def bars_from_dicts(rows: list[Mapping[str, Any]]) -> list[Bar]:
    """Parse ``{date, open, high, low, close, volume}`` mappings into bars.

    ``time`` is accepted in place of ``date``; a missing volume is 0.
    """
    bars: list[Bar] = []
    for row in rows:
        bars.append(
            Bar(
                date=str(row.get("date", row.get("time", ""))),
                open=float(row["open"]),
                high=float(row["high"]),
                low=float(row["low"]),
                close=float(row["close"]),
                volume=float(row.get("volume") or 0.0),
            )
        )
    return bars
