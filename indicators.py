"""
Indicator Module for CandleLab.

Recurrence-based technical indicators with strict warm-up semantics.

Every function returns a list the same length as its input. Index i holds a
float once enough history exists and None before that:

- sma / ema / atr with period P: first value at index P-1
- rsi with period P: first value at index P (it works on first differences)

Insufficient history gives an all-None series rather than an exception.

All four indicators follow the same two-phase pattern, a simple-average seed
followed by a recursive step, so they share _seeded_smoothing.
"""

from __future__ import annotations

from typing import Callable, List, Optional, Sequence

Series = List[Optional[float]]


def _check_period(period: int) -> None:
    if not isinstance(period, int) or period < 1:
        raise ValueError(f"Indicator period must be a positive integer, got {period!r}")


def _first_defined(values: Sequence[Optional[float]]) -> int:
    """Index of the first non-None value (len(values) if there is none)."""
    for i, v in enumerate(values):
        if v is not None:
            return i
    return len(values)


def _seeded_smoothing(
    observations: Sequence[float],
    period: int,
    step: Callable[[float, float], float],
) -> Series:
    """
    Seed with the mean of the first `period` observations, then apply `step`.

    Args:
        observations: Fully defined input values
        period: Seed window length
        step: f(previous, observation) -> next smoothed value

    Returns:
        Series aligned with observations, first value at index period-1
    """
    out: Series = [None] * len(observations)
    if len(observations) < period:
        return out

    prev = sum(observations[:period]) / period
    out[period - 1] = prev
    for i in range(period, len(observations)):
        prev = step(prev, observations[i])
        out[i] = prev
    return out


def _wilder_step(period: int) -> Callable[[float, float], float]:
    return lambda prev, x: (prev * (period - 1) + x) / period


def _ema_step(period: int) -> Callable[[float, float], float]:
    k = 2 / (period + 1)
    return lambda prev, x: (x - prev) * k + prev


def sma(values: Sequence[Optional[float]], period: int) -> Series:
    """
    Simple Moving Average.

    A window containing an undefined value is itself undefined, so an SMA of
    another indicator (e.g. RSI) only starts once its whole window is defined.
    """
    _check_period(period)
    out: Series = [None] * len(values)
    for i in range(period - 1, len(values)):
        window = values[i - period + 1:i + 1]
        if any(v is None for v in window):
            continue
        out[i] = sum(window) / period
    return out


def ema(values: Sequence[Optional[float]], period: int) -> Series:
    """
    Exponential Moving Average, k = 2 / (period + 1), seeded with the SMA of
    the first `period` values.

    Leading None values (an indicator still warming up) shift the seed.
    """
    _check_period(period)
    start = _first_defined(values)
    tail = values[start:]
    if any(v is None for v in tail):
        raise ValueError("ema() input may only contain undefined values at the start")
    return [None] * start + _seeded_smoothing(tail, period, _ema_step(period))


def rsi(values: Sequence[float], period: int) -> Series:
    """
    Relative Strength Index with Wilder's smoothing.

    Average gain/loss are seeded from the simple mean of the first `period`
    differences. When the average loss is zero RSI saturates at 100.
    """
    _check_period(period)
    out: Series = [None] * len(values)
    if len(values) < period + 1:
        return out

    gains = []
    losses = []
    for i in range(1, len(values)):
        change = values[i] - values[i - 1]
        gains.append(change if change > 0 else 0.0)
        losses.append(-change if change < 0 else 0.0)

    step = _wilder_step(period)
    avg_gains = _seeded_smoothing(gains, period, step)
    avg_losses = _seeded_smoothing(losses, period, step)

    # difference j describes the move into values[j + 1]
    for j in range(period - 1, len(gains)):
        avg_gain = avg_gains[j]
        avg_loss = avg_losses[j]
        if avg_loss == 0:
            out[j + 1] = 100.0
        else:
            rs = avg_gain / avg_loss
            out[j + 1] = 100 - (100 / (1 + rs))
    return out


def true_range(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
) -> List[float]:
    """
    True range per candle. The first candle has no previous close, so its
    range is simply high - low.
    """
    if not (len(highs) == len(lows) == len(closes)):
        raise ValueError(
            f"highs/lows/closes length mismatch: {len(highs)}/{len(lows)}/{len(closes)}"
        )
    if not highs:
        return []

    trs = [highs[0] - lows[0]]
    for i in range(1, len(highs)):
        h = highs[i]
        l = lows[i]
        prev_close = closes[i - 1]
        trs.append(max(h - l, abs(h - prev_close), abs(l - prev_close)))
    return trs


def atr(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    period: int,
) -> Series:
    """
    Average True Range with Wilder's smoothing.

    Needs at least period + 1 candles; the first value sits at index
    period - 1 and equals the mean of the first `period` true ranges.
    """
    _check_period(period)
    trs = true_range(highs, lows, closes)
    if len(trs) < period + 1:
        return [None] * len(trs)
    return _seeded_smoothing(trs, period, _wilder_step(period))
