"""
Strategy Core Module for CandleLab.

This module provides the single source of truth for trade definitions,
shared by every strategy, the exit simulator and the reports:

- Direction / Outcome enums
- TradeSetup: the levels of one position (simple or split)
- ExitSettings: leverage and ROI targets used for bookkeeping
- Signal: the entry descriptor produced by a strategy detector
- Level setup helpers deriving stop/target prices from settings
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from config import POSITION_SIZE_USDT


class Direction(Enum):
    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def sign(self) -> int:
        return 1 if self is Direction.LONG else -1

    @classmethod
    def parse(cls, value: Any) -> "Direction":
        if isinstance(value, Direction):
            return value
        return cls(str(value).upper())


class Outcome(Enum):
    # simple trades
    WIN = "WIN"
    LOSS = "LOSS"
    # split trades
    SL_FULL = "SL_FULL"
    TP1_BE = "TP1_BE"
    TP2_FULL = "TP2_FULL"

    @property
    def is_winner(self) -> bool:
        return self in (Outcome.WIN, Outcome.TP1_BE, Outcome.TP2_FULL)


@dataclass(frozen=True)
class ExitSettings:
    """
    Bookkeeping settings for one simulation run.

    leverage scales price moves into ROI. The ROI percentages define the
    split-trade levels and realized returns; position_size is the notional
    used for PnL.
    """
    leverage: float = 1.0
    sl_roi_pct: float = 0.0
    tp1_roi_pct: float = 0.0
    tp2_roi_pct: float = 0.0
    position_size: float = POSITION_SIZE_USDT

    def __post_init__(self):
        if self.leverage <= 0:
            raise ValueError(f"leverage must be positive, got {self.leverage}")


@dataclass(frozen=True)
class TradeSetup:
    """
    Levels of one position.

    A simple trade has take_profit. A split trade has tp1 and tp2 and is two
    equal-weight legs (A closes at tp1, B at tp2) sharing the stop loss.
    """
    direction: Direction
    entry_price: float
    stop_loss: float
    take_profit: Optional[float] = None
    tp1: Optional[float] = None
    tp2: Optional[float] = None
    entry_time: Optional[int] = None
    entry_index: Optional[int] = None

    def __post_init__(self):
        if not isinstance(self.direction, Direction):
            object.__setattr__(self, "direction", Direction.parse(self.direction))
        if self.entry_price <= 0:
            raise ValueError(f"entry_price must be positive, got {self.entry_price}")
        if not self.is_split and self.take_profit is None:
            raise ValueError("TradeSetup needs take_profit, or both tp1 and tp2")

    @property
    def is_split(self) -> bool:
        return self.tp1 is not None and self.tp2 is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "direction": self.direction.value,
            "entry_price": self.entry_price,
            "stop_loss": self.stop_loss,
            "take_profit": self.take_profit,
            "tp1": self.tp1,
            "tp2": self.tp2,
            "entry_time": self.entry_time,
            "entry_index": self.entry_index,
        }


@dataclass
class Signal:
    """Entry descriptor returned by a strategy detector."""
    direction: Direction
    index: int
    time: int
    entry_price: float
    stop_loss: float
    take_profit: Optional[float] = None

    tp1: Optional[float] = None
    tp2: Optional[float] = None
    tp3: Optional[float] = None
    rr: Optional[float] = None
    risk: Optional[float] = None

    reason: str = ""
    indicators: Dict[str, float] = field(default_factory=dict)

    def to_trade_setup(self, split: bool = False) -> TradeSetup:
        """
        Build the position to simulate.

        Trend signals carry informational tp1/tp2/tp3 but are simulated with
        the single take_profit unless split=True.
        """
        return TradeSetup(
            direction=self.direction,
            entry_price=self.entry_price,
            stop_loss=self.stop_loss,
            take_profit=self.take_profit,
            tp1=self.tp1 if split else None,
            tp2=self.tp2 if split else None,
            entry_time=self.time,
            entry_index=self.index,
        )


def roi_to_price_distance(roi_pct: float, leverage: float, entry_price: float) -> float:
    """
    Price distance that produces roi_pct at the given leverage.

    ROI = (Delta / Entry) * Leverage * 100  =>  Delta = ROI / 100 / Leverage * Entry
    """
    return (roi_pct / 100 / leverage) * entry_price


def price_move_roi(direction: Direction, entry_price: float, price: float, leverage: float) -> float:
    """Leveraged ROI (%) of moving from entry_price to price in the trade's favour."""
    return (price - entry_price) / entry_price * leverage * 100 * direction.sign


def split_levels(
    direction: Direction,
    entry_price: float,
    settings: ExitSettings,
) -> Tuple[float, float, float]:
    """
    Stop loss and the two split targets from ROI settings.

    TP2 is measured from TP1 so that leg B's ROI from entry equals
    tp2_roi_pct.

    Returns:
        Tuple of (stop_loss, tp1, tp2)
    """
    direction = Direction.parse(direction)
    sl_dist = roi_to_price_distance(settings.sl_roi_pct, settings.leverage, entry_price)
    tp1_dist = roi_to_price_distance(settings.tp1_roi_pct, settings.leverage, entry_price)
    tp2_dist = roi_to_price_distance(settings.tp2_roi_pct, settings.leverage, entry_price)

    sign = direction.sign
    stop_loss = entry_price - sign * sl_dist
    tp1 = entry_price + sign * tp1_dist
    tp2 = tp1 + sign * (tp2_dist - tp1_dist)
    return stop_loss, tp1, tp2


@dataclass(frozen=True)
class AtrLevels:
    stop_loss: float
    take_profit: float
    tp1: float
    tp2: float
    tp3: float
    rr: float


def atr_levels(
    direction: Direction,
    entry_price: float,
    atr_value: float,
    sl_multiplier: float,
    tp_multiplier: float,
    tp1_multiplier: float = 1.0,
    tp2_multiplier: float = 1.5,
) -> AtrLevels:
    """
    Stop and target at ATR multiples from entry.

    tp1/tp2 are informational staging levels; tp3 equals the take profit.
    rr is the reward/risk ratio of the full target.
    """
    direction = Direction.parse(direction)
    sign = direction.sign
    stop_loss = entry_price - sign * atr_value * sl_multiplier
    take_profit = entry_price + sign * atr_value * tp_multiplier
    risk = abs(entry_price - stop_loss)
    rr = abs(take_profit - entry_price) / risk if risk > 0 else 0.0
    return AtrLevels(
        stop_loss=stop_loss,
        take_profit=take_profit,
        tp1=entry_price + sign * atr_value * tp1_multiplier,
        tp2=entry_price + sign * atr_value * tp2_multiplier,
        tp3=take_profit,
        rr=rr,
    )


def risk_multiple_levels(
    direction: Direction,
    entry_price: float,
    stop_loss: float,
    reward_multiple: float,
) -> Tuple[float, float]:
    """
    Target placed reward_multiple risks away from entry.

    Returns:
        Tuple of (take_profit, risk)
    """
    direction = Direction.parse(direction)
    risk = abs(entry_price - stop_loss)
    return entry_price + direction.sign * reward_multiple * risk, risk
