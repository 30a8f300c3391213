"""
Candle Module for CandleLab.

Immutable OHLCV records plus the helpers every other module needs to work
with a candle series: parsing raw rows, validating ordering, extracting
price columns and converting timestamps.

A series is a tuple/list of Candle sorted strictly ascending by open_time
(milliseconds since epoch).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Sequence, Tuple


class InvalidCandleSeriesError(ValueError):
    """Raised when a candle series cannot be simulated safely."""


@dataclass(frozen=True)
class Candle:
    """One closed OHLCV bar."""
    open_time: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    def to_row(self) -> List[float]:
        """Convert back to the [timestamp, open, high, low, close, volume] row format."""
        return [self.open_time, self.open, self.high, self.low, self.close, self.volume]


TIMEFRAME_UNITS_MS = {
    "m": 60 * 1000,
    "h": 60 * 60 * 1000,
    "d": 24 * 60 * 60 * 1000,
}


def parse_candle(raw: Any) -> Candle:
    """
    Build a Candle from a raw row.

    Handles list/tuple rows ([timestamp, open, high, low, close, volume]) and
    dicts keyed by open_time/timestamp/time.
    """
    if isinstance(raw, Candle):
        return raw
    if isinstance(raw, (list, tuple)):
        if len(raw) < 5:
            raise InvalidCandleSeriesError(f"Candle row needs at least 5 fields, got {len(raw)}: {raw!r}")
        return Candle(
            open_time=int(raw[0]),
            open=float(raw[1]),
            high=float(raw[2]),
            low=float(raw[3]),
            close=float(raw[4]),
            volume=float(raw[5]) if len(raw) > 5 and raw[5] is not None else 0.0,
        )
    if isinstance(raw, dict):
        t = raw.get("open_time")
        if t is None:
            t = raw.get("timestamp", raw.get("time"))
        if t is None:
            raise InvalidCandleSeriesError(f"Candle dict has no timestamp: {raw!r}")
        return Candle(
            open_time=int(t),
            open=float(raw["open"]),
            high=float(raw["high"]),
            low=float(raw["low"]),
            close=float(raw["close"]),
            volume=float(raw.get("volume") or 0.0),
        )
    raise InvalidCandleSeriesError(f"Unsupported candle type: {type(raw).__name__}")


def parse_candles(rows: Sequence[Any]) -> Tuple[Candle, ...]:
    """Parse a sequence of raw rows into an immutable candle tuple."""
    return tuple(parse_candle(r) for r in rows)


def validate_candles(candles: Sequence[Candle]) -> None:
    """
    Fail fast on a series that would corrupt a simulation.

    Checks strictly ascending open times, finite prices and high >= low.

    Raises:
        InvalidCandleSeriesError: describing the first offending candle
    """
    prev_time = None
    for i, c in enumerate(candles):
        values = (c.open, c.high, c.low, c.close)
        if not all(math.isfinite(v) for v in values):
            raise InvalidCandleSeriesError(f"Non-finite price at index {i} (open_time={c.open_time})")
        if c.high < c.low:
            raise InvalidCandleSeriesError(
                f"High below low at index {i} (open_time={c.open_time}): high={c.high}, low={c.low}"
            )
        if prev_time is not None and c.open_time <= prev_time:
            raise InvalidCandleSeriesError(
                f"Timestamps not strictly ascending at index {i}: {c.open_time} follows {prev_time}"
            )
        prev_time = c.open_time


def price_columns(candles: Sequence[Candle]) -> Dict[str, List[float]]:
    """Split a series into open/high/low/close/volume columns."""
    return {
        "open": [c.open for c in candles],
        "high": [c.high for c in candles],
        "low": [c.low for c in candles],
        "close": [c.close for c in candles],
        "volume": [c.volume for c in candles],
    }


def timeframe_to_ms(timeframe: str) -> int:
    """
    Convert a timeframe string such as '5m', '1h' or '1d' to milliseconds.

    Raises:
        ValueError: If the unit or amount is not recognised
    """
    tf = timeframe.strip().lower()
    unit = tf[-1:]
    if unit not in TIMEFRAME_UNITS_MS or not tf[:-1].isdigit():
        raise ValueError(f"Unknown timeframe format: {timeframe}")
    return int(tf[:-1]) * TIMEFRAME_UNITS_MS[unit]


def count_gaps(candles: Sequence[Candle], period_ms: int) -> int:
    """Number of consecutive pairs whose spacing differs from the nominal period."""
    return sum(
        1
        for prev, cur in zip(candles, candles[1:])
        if cur.open_time - prev.open_time != period_ms
    )


def ms_to_datetime(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


def ms_to_iso(ms: int) -> str:
    """UTC ISO-8601 string with millisecond precision, e.g. 2024-01-02T03:00:00.000Z."""
    dt = ms_to_datetime(ms)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{int(ms) % 1000:03d}Z"
