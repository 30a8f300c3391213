"""
Tests for trade definitions and level setup helpers.
"""

import pytest

from strategy_core import (
    Direction,
    ExitSettings,
    Outcome,
    Signal,
    TradeSetup,
    atr_levels,
    price_move_roi,
    risk_multiple_levels,
    roi_to_price_distance,
    split_levels,
)


class TestEnums:
    """Direction and outcome helpers."""

    def test_direction_parse(self):
        assert Direction.parse("long") is Direction.LONG
        assert Direction.parse(Direction.SHORT) is Direction.SHORT
        with pytest.raises(ValueError):
            Direction.parse("sideways")

    def test_direction_sign(self):
        assert Direction.LONG.sign == 1
        assert Direction.SHORT.sign == -1

    def test_winners(self):
        assert Outcome.WIN.is_winner
        assert Outcome.TP1_BE.is_winner
        assert Outcome.TP2_FULL.is_winner
        assert not Outcome.LOSS.is_winner
        assert not Outcome.SL_FULL.is_winner


class TestTradeSetup:
    """Validation of position levels."""

    def test_simple_setup(self):
        trade = TradeSetup("LONG", 100.0, 90.0, take_profit=130.0)
        assert trade.direction is Direction.LONG
        assert not trade.is_split

    def test_split_setup(self):
        trade = TradeSetup(Direction.SHORT, 100.0, 110.0, tp1=95.0, tp2=90.0)
        assert trade.is_split
        assert trade.to_dict()["direction"] == "SHORT"

    def test_requires_targets(self):
        with pytest.raises(ValueError):
            TradeSetup(Direction.LONG, 100.0, 90.0)
        with pytest.raises(ValueError):
            TradeSetup(Direction.LONG, 100.0, 90.0, tp1=110.0)

    def test_entry_must_be_positive(self):
        with pytest.raises(ValueError):
            TradeSetup(Direction.LONG, 0.0, -1.0, take_profit=1.0)

    def test_leverage_must_be_positive(self):
        with pytest.raises(ValueError):
            ExitSettings(leverage=0)


class TestSignal:
    """Signals convert to simulated positions."""

    def test_simple_by_default(self):
        signal = Signal(
            direction=Direction.LONG, index=5, time=1000, entry_price=100.0,
            stop_loss=95.0, take_profit=110.0, tp1=105.0, tp2=107.5, tp3=110.0,
        )
        setup = signal.to_trade_setup()
        assert not setup.is_split
        assert setup.entry_index == 5
        assert setup.entry_time == 1000

    def test_split_on_request(self):
        signal = Signal(
            direction=Direction.LONG, index=5, time=1000, entry_price=100.0,
            stop_loss=95.0, take_profit=110.0, tp1=105.0, tp2=107.5,
        )
        assert signal.to_trade_setup(split=True).is_split


class TestLevelSetup:
    """Prices derived from ROI, ATR and risk multiples."""

    def test_roi_distance(self):
        assert roi_to_price_distance(60, 50, 100.0) == pytest.approx(1.2)

    def test_split_levels_long(self):
        settings = ExitSettings(leverage=50, sl_roi_pct=27.5, tp1_roi_pct=60, tp2_roi_pct=140)
        stop, tp1, tp2 = split_levels(Direction.LONG, 100.0, settings)
        assert stop == pytest.approx(99.45)
        assert tp1 == pytest.approx(101.2)
        assert tp2 == pytest.approx(102.8)

    def test_split_tp2_roi_measured_from_entry(self):
        settings = ExitSettings(leverage=20, sl_roi_pct=10, tp1_roi_pct=30, tp2_roi_pct=90)
        for direction in Direction:
            _, tp1, tp2 = split_levels(direction, 250.0, settings)
            assert price_move_roi(direction, 250.0, tp1, 20) == pytest.approx(30)
            assert price_move_roi(direction, 250.0, tp2, 20) == pytest.approx(90)

    def test_split_levels_short(self):
        settings = ExitSettings(leverage=10, sl_roi_pct=50, tp1_roi_pct=50, tp2_roi_pct=100)
        stop, tp1, tp2 = split_levels("SHORT", 100.0, settings)
        assert stop == pytest.approx(105.0)
        assert tp1 == pytest.approx(95.0)
        assert tp2 == pytest.approx(90.0)

    def test_atr_levels(self):
        levels = atr_levels(Direction.LONG, 100.0, 2.0, sl_multiplier=1.2, tp_multiplier=2.0)
        assert levels.stop_loss == pytest.approx(97.6)
        assert levels.take_profit == pytest.approx(104.0)
        assert levels.tp1 == pytest.approx(102.0)
        assert levels.tp2 == pytest.approx(103.0)
        assert levels.tp3 == levels.take_profit
        assert levels.rr == pytest.approx(2.0 / 1.2)

    def test_atr_levels_short(self):
        levels = atr_levels(Direction.SHORT, 100.0, 2.0, sl_multiplier=1.0, tp_multiplier=3.0)
        assert levels.stop_loss == pytest.approx(102.0)
        assert levels.take_profit == pytest.approx(94.0)

    def test_risk_multiple(self):
        tp, risk = risk_multiple_levels(Direction.SHORT, 100.0, 102.0, 3)
        assert risk == pytest.approx(2.0)
        assert tp == pytest.approx(94.0)
