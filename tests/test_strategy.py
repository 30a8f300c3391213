"""
Tests for the entry signal detectors.

Detector conditions are checked against hand-built indicator values so each
rule can be toggled in isolation.
"""

import pytest

from candles import Candle
from strategy import (
    MeanReversionParams,
    QuickIntradayParams,
    TrendMomentumParams,
    build_time_index,
    check_intraday_entry,
    check_reversion_signal,
    check_trend_entry,
    get_bias,
    last_closed_bias_time,
    prepare_bias_indicators,
    prepare_intraday_indicators,
    prepare_trend_indicators,
)
from strategy_core import Direction

M15 = 900_000


def trend_indicators(**overrides):
    values = {
        "ema_short": 100.0,
        "ema_medium": 99.0,
        "ema_long": 95.0,
        "rsi": 60.0,
        "ma_rsi": 55.0,
        "atr": 2.0,
    }
    values.update(overrides)
    return {k: [v] for k, v in values.items()}


class TestTrendMomentum:
    """EMA trend, RSI momentum and pullback trigger."""

    LONG_CANDLE = Candle(0, 100.0, 102.0, 99.5, 101.0)

    def test_long_signal(self):
        signal = check_trend_entry(0, [self.LONG_CANDLE], trend_indicators(), TrendMomentumParams())
        assert signal is not None
        assert signal.direction is Direction.LONG
        assert signal.entry_price == 101.0
        assert signal.stop_loss == pytest.approx(101.0 - 2.4)
        assert signal.take_profit == pytest.approx(105.0)
        assert signal.tp3 == signal.take_profit
        assert signal.rr == pytest.approx(1.67)
        assert signal.reason.startswith("- EMA10 > EMA50 > EMA200\n- RSI(60.00)")
        assert signal.reason.endswith("- Volume breakout (simulated)")
        assert signal.indicators["atr"] == 2.0

    @pytest.mark.parametrize(
        "overrides",
        [
            {"rsi": 72.0},              # overbought
            {"ma_rsi": 65.0},           # RSI below its average
            {"ema_medium": 94.0},       # no uptrend
            {"atr": None},              # warming up
        ],
    )
    def test_long_rejected(self, overrides):
        signal = check_trend_entry(0, [self.LONG_CANDLE], trend_indicators(**overrides), TrendMomentumParams())
        assert signal is None

    def test_needs_pullback_touch(self):
        candle = Candle(0, 100.5, 102.0, 100.2, 101.0)
        assert check_trend_entry(0, [candle], trend_indicators(), TrendMomentumParams()) is None

    def test_short_signal(self):
        candle = Candle(0, 100.0, 100.5, 98.0, 99.0)
        ind = trend_indicators(ema_short=100.0, ema_medium=101.0, ema_long=105.0, rsi=40.0, ma_rsi=45.0)
        signal = check_trend_entry(0, [candle], ind, TrendMomentumParams())
        assert signal.direction is Direction.SHORT
        assert signal.stop_loss > signal.entry_price > signal.take_profit

    def test_min_lookback(self):
        assert TrendMomentumParams().min_lookback() == 200

    def test_prepare_indicators_lengths(self, rising_candles):
        ind = prepare_trend_indicators(rising_candles, TrendMomentumParams())
        assert set(ind) == {"ema_short", "ema_medium", "ema_long", "rsi", "ma_rsi", "atr"}
        assert all(len(s) == len(rising_candles) for s in ind.values())
        assert ind["ema_long"][199] is not None
        # RSI-MA needs a full window of defined RSI values
        assert ind["ma_rsi"][26] is None and ind["ma_rsi"][27] is not None


class TestBias:
    """Higher-timeframe bias from the last closed candle."""

    def test_last_closed_bias_time(self):
        assert last_closed_bias_time(2 * M15 + 5 * 60_000, M15) == M15
        assert last_closed_bias_time(2 * M15, M15) == M15

    def test_bias_from_indicators(self):
        bias_candles = [Candle(0, 1, 1, 1, 1), Candle(M15, 1, 1, 1, 105.0)]
        ind = {"ema_short": [None, 100.0], "ema_long": [None, 98.0], "rsi": [None, 55.0]}
        index = build_time_index(bias_candles)

        assert get_bias(2 * M15 + 1, bias_candles, index, ind, M15) is Direction.LONG
        # bias candle at index 0 is still warming up
        assert get_bias(M15 + 1, bias_candles, index, ind, M15) is None
        # no closed bias candle before the series starts
        assert get_bias(1, bias_candles, index, ind, M15) is None

    def test_short_and_neutral(self):
        bias_candles = [Candle(0, 1, 1, 1, 95.0)]
        index = build_time_index(bias_candles)
        short = {"ema_short": [100.0], "ema_long": [102.0], "rsi": [45.0]}
        neutral = {"ema_short": [100.0], "ema_long": [102.0], "rsi": [55.0]}
        assert get_bias(M15, bias_candles, index, short, M15) is Direction.SHORT
        assert get_bias(M15, bias_candles, index, neutral, M15) is None

    def test_prepare_bias_indicators(self, rising_candles):
        ind = prepare_bias_indicators(rising_candles, QuickIntradayParams())
        assert set(ind) == {"ema_short", "ema_long", "rsi"}
        assert ind["ema_long"][48] is None and ind["ema_long"][49] is not None


def intraday_indicators(rsi_values, rsi_ma_values, ema_entry=100.0, ema_filter=99.0):
    n = len(rsi_values)
    return {
        "ema_entry": [ema_entry] * n,
        "ema_filter": [ema_filter] * n,
        "rsi": list(rsi_values),
        "rsi_ma": list(rsi_ma_values),
    }


class TestQuickIntraday:
    """RSI impulse with EMA snapback in the bias direction."""

    FLAT = Candle(0, 100.0, 100.0, 100.0, 100.0)

    def long_setup(self):
        candles = [self.FLAT] * 3 + [Candle(4, 99.9, 100.5, 99.8, 100.3)]
        ind = intraday_indicators([50.0, 38.0, 42.0, 48.0], [45.0, 44.0, 43.0, 44.0])
        return candles, ind

    def test_long_signal(self):
        candles, ind = self.long_setup()
        params = QuickIntradayParams()
        signal = check_intraday_entry(3, candles, ind, Direction.LONG, params)
        assert signal is not None
        assert signal.direction is Direction.LONG
        assert signal.stop_loss == pytest.approx(99.0 * (1 - 0.0005))
        assert signal.take_profit == pytest.approx(100.3 + 3 * (100.3 - signal.stop_loss))
        assert signal.rr == 3.0

    def test_requires_bias(self):
        candles, ind = self.long_setup()
        assert check_intraday_entry(3, candles, ind, None, QuickIntradayParams()) is None
        assert check_intraday_entry(3, candles, ind, Direction.SHORT, QuickIntradayParams()) is None

    def test_impulse_window_is_two_candles(self):
        """RSI below 40 three candles back does not count."""
        candles = [self.FLAT] * 4 + [Candle(5, 99.9, 100.5, 99.8, 100.3)]
        ind = intraday_indicators([50.0, 38.0, 41.0, 42.0, 48.0], [45.0, 44.0, 43.0, 44.0, 44.0])
        assert check_intraday_entry(4, candles, ind, Direction.LONG, QuickIntradayParams()) is None

    def test_small_body_rejected(self):
        candles, ind = self.long_setup()
        candles[3] = Candle(4, 100.2, 100.5, 99.8, 100.3)
        assert check_intraday_entry(3, candles, ind, Direction.LONG, QuickIntradayParams()) is None

    def test_undefined_values(self):
        candles, ind = self.long_setup()
        ind["rsi_ma"][2] = None
        assert check_intraday_entry(3, candles, ind, Direction.LONG, QuickIntradayParams()) is None

    def test_short_signal(self):
        candles = [self.FLAT] * 3 + [Candle(4, 100.1, 100.2, 99.5, 99.7)]
        ind = intraday_indicators([50.0, 62.0, 58.0, 52.0], [55.0, 56.0, 57.0, 56.0], ema_filter=101.0)
        signal = check_intraday_entry(3, candles, ind, Direction.SHORT, QuickIntradayParams())
        assert signal.direction is Direction.SHORT
        assert signal.stop_loss == pytest.approx(101.0 * 1.0005)

    def test_prepare_indicators(self, rising_candles):
        ind = prepare_intraday_indicators(rising_candles, QuickIntradayParams())
        assert ind["rsi"][7] == 100.0
        assert ind["rsi_ma"][12] is None and ind["rsi_ma"][13] == pytest.approx(100.0)


class TestMeanReversion:
    """Fade fast moves across a small cluster."""

    def test_dump_signals_long(self, closes_factory):
        candles = closes_factory([100.0, 99.5, 99.0, 98.8, 98.0])
        assert check_reversion_signal(0, candles, MeanReversionParams()) is Direction.LONG

    def test_pump_signals_short(self, closes_factory):
        candles = closes_factory([100.0, 100.5, 101.0, 101.2, 102.0])
        assert check_reversion_signal(0, candles, MeanReversionParams()) is Direction.SHORT

    def test_small_move_no_signal(self, closes_factory):
        candles = closes_factory([100.0, 100.5, 101.0, 101.2, 101.4])
        assert check_reversion_signal(0, candles, MeanReversionParams()) is None

    def test_not_enough_candles(self, closes_factory):
        candles = closes_factory([100.0, 90.0, 80.0])
        assert check_reversion_signal(0, candles, MeanReversionParams()) is None

    def test_threshold_override(self, closes_factory):
        candles = closes_factory([100.0, 99.5, 99.0, 98.8, 98.0])
        params = MeanReversionParams.from_dict({"volatility_threshold": 0.025, "unknown": 1})
        assert check_reversion_signal(0, candles, params) is None

    def test_exit_settings(self):
        settings = MeanReversionParams().exit_settings(1000.0)
        assert settings.leverage == 50.0
        assert settings.tp2_roi_pct == 140.0
        assert settings.position_size == 1000.0
