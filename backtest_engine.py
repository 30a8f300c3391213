"""
Backtest Engine for CandleLab.

This module replays strategies over historical candles:
- Signals come from strategy.py detectors, exits from trade_simulator.py
- Walk-forward only: entries use the signal candle's close, exits scan
  strictly later candles
- Trend and intraday runs hold one trade at a time and resume scanning
  after the exit candle
- Mean reversion simulates every signal independently on a thread pool
- Unresolved trades (no exit before the data ends) are excluded
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from candles import Candle, ms_to_iso, timeframe_to_ms, validate_candles
from config import MAX_WORKERS, POSITION_SIZE_USDT, SYMBOL
from strategy import (
    MeanReversionParams,
    QuickIntradayParams,
    TrendMomentumParams,
    build_time_index,
    check_intraday_entry,
    check_reversion_signal,
    check_trend_entry,
    get_bias,
    prepare_bias_indicators,
    prepare_intraday_indicators,
    prepare_trend_indicators,
)
from strategy_core import Direction, ExitSettings, Outcome, Signal, TradeSetup, split_levels
from trade_simulator import ExitOutcome, compute_result, simulate_exit

logger = logging.getLogger(__name__)

STRATEGY_TREND = "trend_momentum"
STRATEGY_INTRADAY = "quick_intraday"
STRATEGY_MEAN_REVERSION = "mean_reversion"


@dataclass
class BacktestTrade:
    """Represents a completed trade for backtest analysis."""
    symbol: str
    timeframe: str
    strategy: str
    direction: Direction

    entry_index: int
    entry_time: int
    entry_price: float
    stop_loss: float

    exit_index: int
    exit_time: int
    exit_price: float
    outcome: Outcome

    roi_total: float
    pnl_notional: float
    min_equity: float
    leverage: float = 1.0

    take_profit: Optional[float] = None
    tp1: Optional[float] = None
    tp2: Optional[float] = None
    tp3: Optional[float] = None
    rr: Optional[float] = None

    trade_index: int = 0
    reason: str = ""
    indicators: Dict[str, float] = field(default_factory=dict)

    @property
    def is_winner(self) -> bool:
        return self.outcome.is_winner

    @property
    def spot_pnl_pct(self) -> float:
        """Unleveraged move in percent."""
        return self.roi_total / self.leverage

    def to_dict(self) -> Dict[str, Any]:
        """Convert trade to dictionary."""
        return {
            "trade_index": self.trade_index,
            "symbol": self.symbol,
            "timeframe": self.timeframe,
            "strategy": self.strategy,
            "direction": self.direction.value,
            "entry_index": self.entry_index,
            "entry_time": ms_to_iso(self.entry_time),
            "entry_price": self.entry_price,
            "stop_loss": self.stop_loss,
            "take_profit": self.take_profit,
            "tp1": self.tp1,
            "tp2": self.tp2,
            "tp3": self.tp3,
            "rr": self.rr,
            "exit_index": self.exit_index,
            "exit_time": ms_to_iso(self.exit_time),
            "exit_price": self.exit_price,
            "final_result": self.outcome.value,
            "roi_total": self.roi_total,
            "pnl_percent_spot": self.spot_pnl_pct,
            "pnl_usdt": round(self.pnl_notional, 2),
            "max_drawdown_during_trade": round(self.min_equity, 2),
            "reason": self.reason,
            "indicators": dict(self.indicators),
        }


@dataclass
class BacktestResult:
    """Results from a single backtest run."""
    strategy: str
    symbol: str
    timeframe: str
    trades: List[BacktestTrade] = field(default_factory=list)
    signals: int = 0
    unresolved: int = 0
    metrics: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (summary row, no trade list)."""
        row = {
            "strategy": self.strategy,
            "symbol": self.symbol,
            "timeframe": self.timeframe,
            "signals": self.signals,
            "unresolved": self.unresolved,
        }
        row.update(self.metrics)
        return row


def _build_trade(
    setup: TradeSetup,
    exit_outcome: ExitOutcome,
    settings: ExitSettings,
    candles: Sequence[Candle],
    strategy: str,
    symbol: str,
    timeframe: str,
    signal: Optional[Signal] = None,
) -> BacktestTrade:
    result = compute_result(setup, exit_outcome, settings)
    return BacktestTrade(
        symbol=symbol,
        timeframe=timeframe,
        strategy=strategy,
        direction=setup.direction,
        entry_index=setup.entry_index,
        entry_time=candles[setup.entry_index].open_time,
        entry_price=setup.entry_price,
        stop_loss=setup.stop_loss,
        exit_index=exit_outcome.exit_index,
        exit_time=exit_outcome.exit_time,
        exit_price=result.avg_exit_price,
        outcome=exit_outcome.outcome,
        roi_total=result.roi_total,
        pnl_notional=result.pnl_notional,
        min_equity=exit_outcome.min_equity,
        leverage=settings.leverage,
        take_profit=setup.take_profit,
        tp1=setup.tp1 if setup.is_split else (signal.tp1 if signal else None),
        tp2=setup.tp2 if setup.is_split else (signal.tp2 if signal else None),
        tp3=signal.tp3 if signal else None,
        rr=signal.rr if signal else None,
        reason=signal.reason if signal else "",
        indicators=dict(signal.indicators) if signal else {},
    )


def compute_metrics(trades: List[BacktestTrade]) -> Dict[str, Any]:
    """
    Compute performance metrics from trades.

    Drawdown is measured on the cumulative ROI curve (percentage points)
    in trade order.

    Args:
        trades: List of completed trades

    Returns:
        Dictionary of metrics
    """
    outcome_counts = {o.value: 0 for o in Outcome}
    for t in trades:
        outcome_counts[t.outcome.value] += 1

    if not trades:
        return {
            "total_trades": 0,
            "long_trades": 0,
            "short_trades": 0,
            "wins": 0,
            "losses": 0,
            "win_rate": 0.0,
            "total_roi": 0.0,
            "avg_roi": 0.0,
            "total_pnl": 0.0,
            "avg_win_roi": 0.0,
            "avg_loss_roi": 0.0,
            "max_drawdown": 0.0,
            "max_consecutive_losses": 0,
            "outcomes": outcome_counts,
        }

    total_trades = len(trades)
    wins = [t for t in trades if t.is_winner]
    losses = [t for t in trades if not t.is_winner]

    rois = np.array([t.roi_total for t in trades], dtype=float)
    cumulative = np.cumsum(rois)
    peaks = np.maximum.accumulate(np.concatenate(([0.0], cumulative)))[1:]
    max_dd = float(np.max(peaks - cumulative))

    max_consecutive_losses = 0
    current_streak = 0
    for t in trades:
        if not t.is_winner:
            current_streak += 1
            max_consecutive_losses = max(max_consecutive_losses, current_streak)
        else:
            current_streak = 0

    return {
        "total_trades": total_trades,
        "long_trades": sum(1 for t in trades if t.direction is Direction.LONG),
        "short_trades": sum(1 for t in trades if t.direction is Direction.SHORT),
        "wins": len(wins),
        "losses": len(losses),
        "win_rate": len(wins) / total_trades * 100,
        "total_roi": float(rois.sum()),
        "avg_roi": float(rois.mean()),
        "total_pnl": sum(t.pnl_notional for t in trades),
        "avg_win_roi": sum(t.roi_total for t in wins) / len(wins) if wins else 0.0,
        "avg_loss_roi": sum(t.roi_total for t in losses) / len(losses) if losses else 0.0,
        "max_drawdown": max_dd,
        "max_consecutive_losses": max_consecutive_losses,
        "outcomes": outcome_counts,
    }


def _finish(result: BacktestResult) -> BacktestResult:
    for n, t in enumerate(result.trades, 1):
        t.trade_index = n
    result.metrics = compute_metrics(result.trades)
    logger.info(
        "%s %s: %d signals, %d trades, %d unresolved",
        result.strategy, result.timeframe, result.signals, len(result.trades), result.unresolved,
    )
    return result


def run_trend_momentum_backtest(
    candles: Sequence[Candle],
    timeframe: str,
    params: Optional[TrendMomentumParams] = None,
    symbol: str = SYMBOL,
    position_size: float = POSITION_SIZE_USDT,
) -> BacktestResult:
    """
    Run the trend momentum strategy, one trade at a time.

    Args:
        candles: Candle series (validated here)
        timeframe: Label for reports, e.g. '1h'
        params: Strategy parameters (defaults if None)
        symbol: Symbol label
        position_size: Notional for PnL

    Returns:
        BacktestResult with trades and metrics
    """
    if params is None:
        params = TrendMomentumParams()
    validate_candles(candles)

    settings = params.exit_settings(position_size)
    indicators = prepare_trend_indicators(candles, params)
    result = BacktestResult(strategy=STRATEGY_TREND, symbol=symbol, timeframe=timeframe)

    i = params.min_lookback()
    while i < len(candles) - 1:
        signal = check_trend_entry(i, candles, indicators, params)
        if signal is None:
            i += 1
            continue

        result.signals += 1
        setup = signal.to_trade_setup()
        exit_outcome = simulate_exit(setup, candles, i + 1, settings)
        if not exit_outcome.resolved:
            result.unresolved += 1
            i += 1
            continue

        result.trades.append(
            _build_trade(setup, exit_outcome, settings, candles, STRATEGY_TREND, symbol, timeframe, signal)
        )
        i = exit_outcome.resume_index

    return _finish(result)


def run_quick_intraday_backtest(
    candles: Sequence[Candle],
    bias_candles: Sequence[Candle],
    timeframe: str = "5m",
    bias_timeframe: str = "15m",
    params: Optional[QuickIntradayParams] = None,
    symbol: str = SYMBOL,
    position_size: float = POSITION_SIZE_USDT,
) -> BacktestResult:
    """
    Run the quick intraday strategy on the entry timeframe, filtered by the
    bias timeframe, one trade at a time.
    """
    if params is None:
        params = QuickIntradayParams()
    validate_candles(candles)
    validate_candles(bias_candles)

    settings = params.exit_settings(position_size)
    indicators = prepare_intraday_indicators(candles, params)
    bias_indicators = prepare_bias_indicators(bias_candles, params)
    bias_index = build_time_index(bias_candles)
    bias_period_ms = timeframe_to_ms(bias_timeframe)

    result = BacktestResult(strategy=STRATEGY_INTRADAY, symbol=symbol, timeframe=timeframe)

    i = params.warmup_candles
    while i < len(candles) - 1:
        bias = get_bias(candles[i].open_time, bias_candles, bias_index, bias_indicators, bias_period_ms)
        signal = check_intraday_entry(i, candles, indicators, bias, params)
        if signal is None:
            i += 1
            continue

        result.signals += 1
        setup = signal.to_trade_setup()
        exit_outcome = simulate_exit(setup, candles, i + 1, settings)
        if not exit_outcome.resolved:
            result.unresolved += 1
            i += 1
            continue

        result.trades.append(
            _build_trade(setup, exit_outcome, settings, candles, STRATEGY_INTRADAY, symbol, timeframe, signal)
        )
        i = exit_outcome.resume_index

    return _finish(result)


def _simulate_reversion(
    direction: Direction,
    entry_index: int,
    candles: Sequence[Candle],
    settings: ExitSettings,
) -> tuple:
    entry = candles[entry_index]
    stop_loss, tp1, tp2 = split_levels(direction, entry.close, settings)
    setup = TradeSetup(
        direction=direction,
        entry_price=entry.close,
        stop_loss=stop_loss,
        tp1=tp1,
        tp2=tp2,
        entry_time=entry.open_time,
        entry_index=entry_index,
    )
    return setup, simulate_exit(setup, candles, entry_index + 1, settings)


def run_mean_reversion_backtest(
    candles: Sequence[Candle],
    timeframe: str = "1h",
    params: Optional[MeanReversionParams] = None,
    symbol: str = SYMBOL,
    position_size: float = POSITION_SIZE_USDT,
    max_workers: int = MAX_WORKERS,
) -> BacktestResult:
    """
    Run the mean reversion strategy.

    Every detected pattern is labelled independently (overlapping trades are
    allowed). Entry is the close of the last cluster candle; the split
    position is simulated from the next candle.

    Args:
        candles: Candle series (validated here, shared read-only by workers)
        timeframe: Label for reports
        params: Strategy parameters (defaults if None)
        symbol: Symbol label
        position_size: Notional for PnL
        max_workers: Thread pool size; 1 runs sequentially

    Returns:
        BacktestResult with trades in signal order
    """
    if params is None:
        params = MeanReversionParams()
    candles = tuple(candles)
    validate_candles(candles)

    settings = params.exit_settings(position_size)
    result = BacktestResult(strategy=STRATEGY_MEAN_REVERSION, symbol=symbol, timeframe=timeframe)

    jobs = []
    for i in range(len(candles) - params.cluster_n):
        direction = check_reversion_signal(i, candles, params)
        if direction is not None:
            jobs.append((direction, i + params.cluster_n))
    result.signals = len(jobs)

    if max_workers > 1 and len(jobs) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [
                executor.submit(_simulate_reversion, direction, entry_index, candles, settings)
                for direction, entry_index in jobs
            ]
            simulated = [f.result() for f in futures]
    else:
        simulated = [
            _simulate_reversion(direction, entry_index, candles, settings)
            for direction, entry_index in jobs
        ]

    for setup, exit_outcome in simulated:
        if not exit_outcome.resolved:
            result.unresolved += 1
            continue
        result.trades.append(
            _build_trade(setup, exit_outcome, settings, candles, STRATEGY_MEAN_REVERSION, symbol, timeframe)
        )

    return _finish(result)
