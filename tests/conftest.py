"""
Shared fixtures for CandleLab tests.

Provides candle factories and small hand-built series for simulator and
strategy tests.
"""

from typing import List, Optional, Sequence, Tuple

import pytest

from candles import Candle

HOUR_MS = 60 * 60 * 1000
BASE_TIME = 1_700_000_000_000 - (1_700_000_000_000 % HOUR_MS)


def make_candle(
    t: int,
    open_: float,
    high: float,
    low: float,
    close: float,
    volume: float = 1.0,
) -> Candle:
    return Candle(open_time=t, open=open_, high=high, low=low, close=close, volume=volume)


def candles_from_ranges(
    ranges: Sequence[Tuple[float, float]],
    entry: float = 100.0,
    start: int = BASE_TIME,
    period_ms: int = HOUR_MS,
) -> List[Candle]:
    """
    Build a series whose first candle is the entry candle (closing at `entry`)
    followed by candles with the given (low, high) ranges.
    """
    candles = [make_candle(start, entry, entry, entry, entry)]
    for n, (low, high) in enumerate(ranges, 1):
        mid = (low + high) / 2
        candles.append(make_candle(start + n * period_ms, mid, high, low, mid))
    return candles


def candles_from_closes(
    closes: Sequence[float],
    start: int = BASE_TIME,
    period_ms: int = HOUR_MS,
    spread: Optional[float] = None,
) -> List[Candle]:
    """Series where each candle opens at the previous close."""
    candles = []
    prev = closes[0]
    for n, close in enumerate(closes):
        pad = spread if spread is not None else abs(close - prev) * 0.1
        high = max(prev, close) + pad
        low = min(prev, close) - pad
        candles.append(make_candle(start + n * period_ms, prev, high, low, close))
        prev = close
    return candles


@pytest.fixture
def candle_factory():
    return make_candle


@pytest.fixture
def ranges_factory():
    return candles_from_ranges


@pytest.fixture
def closes_factory():
    return candles_from_closes


@pytest.fixture
def rising_candles():
    """300 hourly candles in a steady uptrend."""
    return candles_from_closes([100.0 + i * 0.5 for i in range(300)])
