"""
Trade-Exit Simulator for CandleLab.

Walks forward through closed candles to resolve an open position against its
stop loss and target(s), then converts the exit into realized ROI and PnL.

Exit rules (both modes):
- Levels are tested against candle extremes (high/low), never the close
- A stop touched in the same candle as a target wins the tie
- Drawdown (most negative leveraged ROI seen) is tracked on every candle
  scanned, the terminal candle included

Split mode runs two equal legs. Leg A closes at TP1 and moves leg B's stop to
break-even (entry price); leg B closes at TP2 or at its effective stop.
A single candle may close leg A at TP1 and leg B at TP2.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from candles import Candle, validate_candles
from strategy_core import Direction, ExitSettings, Outcome, TradeSetup, price_move_roi

logger = logging.getLogger(__name__)

MODE_SIMPLE = "SIMPLE"
MODE_SPLIT = "SPLIT"


@dataclass
class ExitOutcome:
    """
    Raw result of one simulation.

    outcome is None when no terminal condition was met before the data ran
    out. resume_index is where a sequential backtest continues scanning.
    """
    mode: str
    outcome: Optional[Outcome]
    exit_time: Optional[int]
    exit_index: Optional[int]
    resume_index: int
    min_equity: float = 0.0

    # simple mode
    exit_price: Optional[float] = None

    # split mode
    leg_a_exit_price: Optional[float] = None
    leg_b_exit_price: Optional[float] = None
    leg_b_stop: Optional[float] = None
    tp1_time: Optional[int] = None

    @property
    def resolved(self) -> bool:
        return self.outcome is not None


@dataclass
class SplitPositionState:
    """Mutable state of a split position, owned by one simulation run."""
    leg_a_open: bool = True
    leg_b_open: bool = True
    leg_b_at_break_even: bool = False
    min_equity: float = 0.0
    outcome: Optional[Outcome] = None

    def effective_stop_b(self, trade: TradeSetup) -> float:
        return trade.entry_price if self.leg_b_at_break_even else trade.stop_loss


def _stop_touched(direction: Direction, candle: Candle, stop: float) -> bool:
    if direction is Direction.LONG:
        return candle.low <= stop
    return candle.high >= stop


def _target_touched(direction: Direction, candle: Candle, target: float) -> bool:
    if direction is Direction.LONG:
        return candle.high >= target
    return candle.low <= target


def adverse_excursion_roi(trade: TradeSetup, candle: Candle, leverage: float) -> float:
    """Leveraged ROI (%) at the candle's worst price for the position."""
    worst = candle.low if trade.direction is Direction.LONG else candle.high
    return price_move_roi(trade.direction, trade.entry_price, worst, leverage)


def simulate_exit(
    trade: TradeSetup,
    candles: Sequence[Candle],
    start_index: int,
    settings: ExitSettings,
) -> ExitOutcome:
    """
    Simulate the lifecycle of a trade candle by candle.

    Switches between split and simple logic based on the trade's targets.

    Args:
        trade: Position levels
        candles: Candle series sorted by open time (read only)
        start_index: First candle to scan, strictly after the entry candle
        settings: Leverage used for drawdown bookkeeping

    Returns:
        ExitOutcome, unresolved if no exit happened by the end of data

    Raises:
        ValueError: If start_index is negative or not after the entry candle
        InvalidCandleSeriesError: If the scanned candles (and the one before
            them) are out of order or malformed
    """
    if start_index < 0:
        raise ValueError(f"start_index must be >= 0, got {start_index}")
    if trade.entry_index is not None and start_index <= trade.entry_index:
        raise ValueError(
            f"start_index {start_index} must be after the entry candle {trade.entry_index}"
        )
    validate_candles(candles[max(start_index - 1, 0):])

    if trade.is_split:
        return _simulate_split(trade, candles, start_index, settings)
    return _simulate_simple(trade, candles, start_index, settings)


def _simulate_split(
    trade: TradeSetup,
    candles: Sequence[Candle],
    start_index: int,
    settings: ExitSettings,
) -> ExitOutcome:
    direction = trade.direction
    state = SplitPositionState()

    leg_a_exit = None
    leg_b_exit = None
    tp1_time = None

    for j in range(start_index, len(candles)):
        c = candles[j]

        # 1. stop loss, shared until TP1 then break-even for leg B
        if state.leg_a_open and _stop_touched(direction, c, trade.stop_loss):
            state.outcome = Outcome.SL_FULL
            leg_a_exit = leg_b_exit = trade.stop_loss
        elif not state.leg_a_open and state.leg_b_open:
            stop_b = state.effective_stop_b(trade)
            if _stop_touched(direction, c, stop_b):
                state.outcome = Outcome.TP1_BE
                leg_b_exit = stop_b

        if state.outcome is not None:
            state.leg_a_open = state.leg_b_open = False
        else:
            # 2. TP1 closes leg A and protects leg B
            if state.leg_a_open and _target_touched(direction, c, trade.tp1):
                state.leg_a_open = False
                state.leg_b_at_break_even = True
                leg_a_exit = trade.tp1
                tp1_time = c.open_time
                logger.debug("TP1 hit at index %d, leg B stop moved to %.8g", j, trade.entry_price)

            # 3. TP2 closes leg B
            if state.leg_b_open and _target_touched(direction, c, trade.tp2):
                state.leg_b_open = False
                state.outcome = Outcome.TP2_FULL
                leg_b_exit = trade.tp2

        # 4. drawdown, every candle
        state.min_equity = min(state.min_equity, adverse_excursion_roi(trade, c, settings.leverage))

        if state.outcome is not None:
            return ExitOutcome(
                mode=MODE_SPLIT,
                outcome=state.outcome,
                exit_time=c.open_time,
                exit_index=j,
                resume_index=j + 1,
                min_equity=state.min_equity,
                leg_a_exit_price=leg_a_exit,
                leg_b_exit_price=leg_b_exit,
                leg_b_stop=state.effective_stop_b(trade),
                tp1_time=tp1_time,
            )

    return ExitOutcome(
        mode=MODE_SPLIT,
        outcome=None,
        exit_time=None,
        exit_index=None,
        resume_index=len(candles),
        min_equity=state.min_equity,
        leg_a_exit_price=leg_a_exit,
        leg_b_stop=state.effective_stop_b(trade),
        tp1_time=tp1_time,
    )


def _simulate_simple(
    trade: TradeSetup,
    candles: Sequence[Candle],
    start_index: int,
    settings: ExitSettings,
) -> ExitOutcome:
    direction = trade.direction
    min_equity = 0.0

    for j in range(start_index, len(candles)):
        c = candles[j]

        outcome = None
        exit_price = None
        if _stop_touched(direction, c, trade.stop_loss):
            outcome, exit_price = Outcome.LOSS, trade.stop_loss
        elif _target_touched(direction, c, trade.take_profit):
            outcome, exit_price = Outcome.WIN, trade.take_profit

        min_equity = min(min_equity, adverse_excursion_roi(trade, c, settings.leverage))

        if outcome is not None:
            return ExitOutcome(
                mode=MODE_SIMPLE,
                outcome=outcome,
                exit_time=c.open_time,
                exit_index=j,
                resume_index=j + 1,
                min_equity=min_equity,
                exit_price=exit_price,
            )

    return ExitOutcome(
        mode=MODE_SIMPLE,
        outcome=None,
        exit_time=None,
        exit_index=None,
        resume_index=len(candles),
        min_equity=min_equity,
    )


@dataclass(frozen=True)
class TradeResult:
    """Realized numbers of a closed trade."""
    roi_total: float
    pnl_notional: float
    avg_exit_price: float


def _leg_pnl(trade: TradeSetup, exit_price: float, notional: float) -> float:
    return (exit_price - trade.entry_price) / trade.entry_price * notional * trade.direction.sign


def compute_result(trade: TradeSetup, exit_outcome: ExitOutcome, settings: ExitSettings) -> TradeResult:
    """
    Calculate realized ROI and PnL for a completed trade.

    Raises:
        ValueError: If the simulation never reached a terminal outcome
    """
    if not exit_outcome.resolved:
        raise ValueError("Cannot compute a result for an unresolved trade")
    if exit_outcome.mode == MODE_SPLIT:
        return _split_result(trade, exit_outcome, settings)
    return _simple_result(trade, exit_outcome, settings)


def _split_result(trade: TradeSetup, exit_outcome: ExitOutcome, settings: ExitSettings) -> TradeResult:
    half = settings.position_size / 2
    outcome = exit_outcome.outcome

    if outcome is Outcome.SL_FULL:
        return TradeResult(
            roi_total=-settings.sl_roi_pct,
            pnl_notional=_leg_pnl(trade, trade.stop_loss, half) * 2,
            avg_exit_price=trade.stop_loss,
        )
    if outcome is Outcome.TP1_BE:
        # leg B closes at entry and contributes nothing
        return TradeResult(
            roi_total=settings.tp1_roi_pct * 0.5,
            pnl_notional=_leg_pnl(trade, trade.tp1, half),
            avg_exit_price=(trade.tp1 + trade.entry_price) / 2,
        )
    if outcome is Outcome.TP2_FULL:
        return TradeResult(
            roi_total=settings.tp1_roi_pct * 0.5 + settings.tp2_roi_pct * 0.5,
            pnl_notional=_leg_pnl(trade, trade.tp1, half) + _leg_pnl(trade, trade.tp2, half),
            avg_exit_price=(trade.tp1 + trade.tp2) / 2,
        )
    raise ValueError(f"Unexpected split outcome: {outcome}")


def _simple_result(trade: TradeSetup, exit_outcome: ExitOutcome, settings: ExitSettings) -> TradeResult:
    exit_price = exit_outcome.exit_price
    move = abs(exit_price - trade.entry_price) / trade.entry_price
    sign = 1 if exit_outcome.outcome is Outcome.WIN else -1
    return TradeResult(
        roi_total=move * settings.leverage * 100 * sign,
        pnl_notional=_leg_pnl(trade, exit_price, settings.position_size),
        avg_exit_price=exit_price,
    )
