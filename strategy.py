"""
Entry signal detectors for CandleLab.

Three strategies, each with a frozen parameter set:

- Trend momentum: EMA trend + RSI momentum + pullback trigger, ATR levels
- Quick intraday: 5m RSI impulse and EMA snapback filtered by a 15m bias
- Mean reversion: fade a fast move over a small cluster of candles with a
  split position (see strategy_core.split_levels)

Detectors only read candles and precomputed indicator series; they never
simulate exits.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Sequence

from candles import Candle, price_columns
from indicators import Series, atr, ema, rsi, sma
from strategy_core import (
    Direction,
    ExitSettings,
    Signal,
    atr_levels,
    risk_multiple_levels,
)


class _ParamsMixin:
    def to_dict(self) -> Dict[str, Any]:
        """Convert parameters to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]):
        """Create parameters from dictionary, ignoring unknown keys."""
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})


@dataclass(frozen=True)
class TrendMomentumParams(_ParamsMixin):
    ema_short: int = 10
    ema_medium: int = 50
    ema_long: int = 200
    rsi_period: int = 14
    ma_rsi_period: int = 14
    atr_period: int = 14

    sl_atr_multiplier: float = 1.2
    tp_atr_multiplier: float = 2.0
    tp1_atr_multiplier: float = 1.0
    tp2_atr_multiplier: float = 1.5

    # unleveraged: ROI equals the spot move in percent
    leverage: float = 1.0

    def exit_settings(self, position_size: Optional[float] = None) -> ExitSettings:
        if position_size is None:
            return ExitSettings(leverage=self.leverage)
        return ExitSettings(leverage=self.leverage, position_size=position_size)

    def min_lookback(self) -> int:
        """Minimum candle index at which every indicator can be valid."""
        return max(self.ema_long, self.rsi_period, self.ma_rsi_period, self.atr_period)


@dataclass(frozen=True)
class QuickIntradayParams(_ParamsMixin):
    # entry timeframe
    ema_entry_period: int = 20
    ema_filter_period: int = 50
    rsi_period: int = 7
    rsi_ma_period: int = 7

    # bias timeframe
    bias_ema_short: int = 20
    bias_ema_long: int = 50
    bias_rsi_period: int = 7

    min_body_pct: float = 0.0015
    stop_buffer_pct: float = 0.0005
    reward_multiple: float = 3.0

    long_rsi_from: float = 40.0
    long_rsi_to: float = 45.0
    short_rsi_from: float = 60.0
    short_rsi_to: float = 55.0

    warmup_candles: int = 100
    leverage: float = 30.0

    def exit_settings(self, position_size: Optional[float] = None) -> ExitSettings:
        if position_size is None:
            return ExitSettings(leverage=self.leverage)
        return ExitSettings(leverage=self.leverage, position_size=position_size)


@dataclass(frozen=True)
class MeanReversionParams(_ParamsMixin):
    cluster_n: int = 4
    # fractional move over the cluster; 0.025 is the live target, 0.015 yields samples
    volatility_threshold: float = 0.015

    leverage: float = 50.0
    sl_roi_pct: float = 27.5
    tp1_roi_pct: float = 60.0
    tp2_roi_pct: float = 140.0

    def exit_settings(self, position_size: Optional[float] = None) -> ExitSettings:
        kwargs = dict(
            leverage=self.leverage,
            sl_roi_pct=self.sl_roi_pct,
            tp1_roi_pct=self.tp1_roi_pct,
            tp2_roi_pct=self.tp2_roi_pct,
        )
        if position_size is not None:
            kwargs["position_size"] = position_size
        return ExitSettings(**kwargs)


def _defined(*values: Optional[float]) -> bool:
    return all(v is not None for v in values)


# ═══════════════════════════════════════════════════════════════════════════
# TREND MOMENTUM
# ═══════════════════════════════════════════════════════════════════════════

def prepare_trend_indicators(candles: Sequence[Candle], params: TrendMomentumParams) -> Dict[str, Series]:
    """Compute every series the trend momentum detector reads."""
    cols = price_columns(candles)
    closes = cols["close"]
    rsi_values = rsi(closes, params.rsi_period)
    return {
        "ema_short": ema(closes, params.ema_short),
        "ema_medium": ema(closes, params.ema_medium),
        "ema_long": ema(closes, params.ema_long),
        "rsi": rsi_values,
        "ma_rsi": sma(rsi_values, params.ma_rsi_period),
        "atr": atr(cols["high"], cols["low"], closes, params.atr_period),
    }


def check_trend_entry(
    i: int,
    candles: Sequence[Candle],
    indicators: Dict[str, Series],
    params: TrendMomentumParams,
) -> Optional[Signal]:
    """
    Check for a trend momentum entry at candle i.

    LONG: EMA50 > EMA200 and close > EMA200, 50 < RSI < 70 and RSI above its
    MA, low touched EMA10 or EMA50, bullish candle closing above EMA10.
    SHORT mirrors it with 30 < RSI < 50.

    Returns:
        Signal entering at the candle's close, or None
    """
    ema_s = indicators["ema_short"][i]
    ema_m = indicators["ema_medium"][i]
    ema_l = indicators["ema_long"][i]
    rsi_v = indicators["rsi"][i]
    ma_rsi = indicators["ma_rsi"][i]
    atr_v = indicators["atr"][i]

    if not _defined(ema_s, ema_m, ema_l, rsi_v, ma_rsi, atr_v):
        return None

    c = candles[i]

    long_trend = ema_m > ema_l and c.close > ema_l
    long_mom = 50 < rsi_v < 70 and rsi_v > ma_rsi
    long_trigger = (c.low <= ema_s or c.low <= ema_m) and c.close > c.open and c.close > ema_s

    short_trend = ema_m < ema_l and c.close < ema_l
    short_mom = 30 < rsi_v < 50 and rsi_v < ma_rsi
    short_trigger = (c.high >= ema_s or c.high >= ema_m) and c.close < c.open and c.close < ema_s

    if long_trend and long_mom and long_trigger:
        direction = Direction.LONG
        reasons = [
            f"EMA{params.ema_short} > EMA{params.ema_medium} > EMA{params.ema_long}",
            f"RSI({rsi_v:.2f}) > 50 & < 70",
            f"Close > EMA{params.ema_short}",
            "Volume breakout (simulated)",
        ]
    elif short_trend and short_mom and short_trigger:
        direction = Direction.SHORT
        reasons = [
            f"EMA{params.ema_medium} < EMA{params.ema_long} (Downtrend)",
            f"RSI({rsi_v:.2f}) < 50 & > 30",
            f"Close < EMA{params.ema_short} (Bearish)",
            "Touched Resistance",
        ]
    else:
        return None

    levels = atr_levels(
        direction,
        c.close,
        atr_v,
        params.sl_atr_multiplier,
        params.tp_atr_multiplier,
        params.tp1_atr_multiplier,
        params.tp2_atr_multiplier,
    )
    return Signal(
        direction=direction,
        index=i,
        time=c.open_time,
        entry_price=c.close,
        stop_loss=levels.stop_loss,
        take_profit=levels.take_profit,
        tp1=levels.tp1,
        tp2=levels.tp2,
        tp3=levels.tp3,
        rr=round(levels.rr, 2),
        reason="- " + "\n- ".join(reasons),
        indicators={
            "atr": atr_v,
            "rsi": rsi_v,
            "ema_short": ema_s,
            "ema_medium": ema_m,
            "ema_long": ema_l,
        },
    )


# ═══════════════════════════════════════════════════════════════════════════
# QUICK INTRADAY
# ═══════════════════════════════════════════════════════════════════════════

def prepare_intraday_indicators(candles: Sequence[Candle], params: QuickIntradayParams) -> Dict[str, Series]:
    closes = [c.close for c in candles]
    rsi_values = rsi(closes, params.rsi_period)
    return {
        "ema_entry": ema(closes, params.ema_entry_period),
        "ema_filter": ema(closes, params.ema_filter_period),
        "rsi": rsi_values,
        "rsi_ma": sma(rsi_values, params.rsi_ma_period),
    }


def prepare_bias_indicators(bias_candles: Sequence[Candle], params: QuickIntradayParams) -> Dict[str, Series]:
    closes = [c.close for c in bias_candles]
    return {
        "ema_short": ema(closes, params.bias_ema_short),
        "ema_long": ema(closes, params.bias_ema_long),
        "rsi": rsi(closes, params.bias_rsi_period),
    }


def build_time_index(candles: Sequence[Candle]) -> Dict[int, int]:
    """Map open_time -> index for O(1) lookups."""
    return {c.open_time: i for i, c in enumerate(candles)}


def last_closed_bias_time(timestamp: int, bias_period_ms: int) -> int:
    """
    Open time of the most recently closed bias candle at `timestamp`.

    The bias candle containing the timestamp is still forming, so the one
    before it is used: floor(t / P) * P - P.
    """
    return (timestamp // bias_period_ms) * bias_period_ms - bias_period_ms


def get_bias(
    timestamp: int,
    bias_candles: Sequence[Candle],
    bias_time_index: Dict[int, int],
    bias_indicators: Dict[str, Series],
    bias_period_ms: int,
) -> Optional[Direction]:
    """
    Market bias from the last closed higher-timeframe candle.

    LONG when EMA20 >= EMA50, close > EMA20 and RSI >= 50; SHORT when
    EMA20 <= EMA50, close < EMA20 and RSI <= 50; None (neutral) otherwise or
    when that candle is missing or still warming up.
    """
    idx = bias_time_index.get(last_closed_bias_time(timestamp, bias_period_ms))
    if idx is None:
        return None

    ema_s = bias_indicators["ema_short"][idx]
    ema_l = bias_indicators["ema_long"][idx]
    rsi_v = bias_indicators["rsi"][idx]
    if not _defined(ema_s, ema_l, rsi_v):
        return None

    close = bias_candles[idx].close
    if ema_s >= ema_l and close > ema_s and rsi_v >= 50:
        return Direction.LONG
    if ema_s <= ema_l and close < ema_s and rsi_v <= 50:
        return Direction.SHORT
    return None


def check_intraday_entry(
    i: int,
    candles: Sequence[Candle],
    indicators: Dict[str, Series],
    bias: Optional[Direction],
    params: QuickIntradayParams,
) -> Optional[Signal]:
    """
    Check for a quick intraday entry at candle i in the bias direction.

    The RSI impulse looks back at candles i-1 and i-2 only.
    """
    if bias is None or i < 3:
        return None

    ema_e = indicators["ema_entry"][i]
    ema_f = indicators["ema_filter"][i]
    rsi_s = indicators["rsi"]
    rsi_ma = indicators["rsi_ma"]
    if not _defined(ema_e, ema_f, rsi_s[i], rsi_ma[i], rsi_s[i - 1], rsi_s[i - 2], rsi_ma[i - 1]):
        return None

    c = candles[i]
    is_momentum_candle = abs(c.close - c.open) / c.open >= params.min_body_pct
    if not is_momentum_candle:
        return None

    if bias is Direction.LONG:
        rsi_cross = rsi_s[i] > rsi_ma[i] and rsi_s[i - 1] <= rsi_ma[i - 1]
        rsi_impulse = rsi_s[i] > params.long_rsi_to and (
            rsi_s[i - 1] < params.long_rsi_from or rsi_s[i - 2] < params.long_rsi_from
        )
        snapback = c.low <= ema_e and c.close > ema_e and c.close > c.open
        if not (rsi_cross and rsi_impulse and snapback):
            return None
        stop_loss = min(c.low, ema_f) * (1 - params.stop_buffer_pct)
    else:
        rsi_cross = rsi_s[i] < rsi_ma[i] and rsi_s[i - 1] >= rsi_ma[i - 1]
        rsi_impulse = rsi_s[i] < params.short_rsi_to and (
            rsi_s[i - 1] > params.short_rsi_from or rsi_s[i - 2] > params.short_rsi_from
        )
        snapback = c.high >= ema_e and c.close < ema_e and c.close < c.open
        if not (rsi_cross and rsi_impulse and snapback):
            return None
        stop_loss = max(c.high, ema_f) * (1 + params.stop_buffer_pct)

    take_profit, risk = risk_multiple_levels(bias, c.close, stop_loss, params.reward_multiple)
    return Signal(
        direction=bias,
        index=i,
        time=c.open_time,
        entry_price=c.close,
        stop_loss=stop_loss,
        take_profit=take_profit,
        risk=risk,
        rr=params.reward_multiple,
        reason=f"RSI Cross & Impulse, Snapback EMA{params.ema_entry_period}, MomCandle",
        indicators={"rsi": rsi_s[i], "rsi_ma": rsi_ma[i], "ema_entry": ema_e, "ema_filter": ema_f},
    )


# ═══════════════════════════════════════════════════════════════════════════
# MEAN REVERSION
# ═══════════════════════════════════════════════════════════════════════════

def check_reversion_signal(i: int, candles: Sequence[Candle], params: MeanReversionParams) -> Optional[Direction]:
    """
    Fade a fast move from close[i] to close[i + cluster_n].

    A dump of at least the threshold signals LONG, a pump signals SHORT.
    """
    end = i + params.cluster_n
    if end >= len(candles):
        return None

    close_start = candles[i].close
    change = (candles[end].close - close_start) / close_start

    if change <= -params.volatility_threshold:
        return Direction.LONG
    if change >= params.volatility_threshold:
        return Direction.SHORT
    return None
