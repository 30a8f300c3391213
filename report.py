"""
Report Generator for CandleLab.

This module prints backtest summaries to the console and writes trade logs:
- JSON trade logs (one record per closed trade)
- Signal report in alert-headline format (entry, stop, targets, result)
- CSV summary of several backtest runs
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd

from backtest_engine import BacktestResult, BacktestTrade
from candles import ms_to_iso
from strategy_core import Direction, Outcome

PathLike = Union[str, Path]

SPLIT_OUTCOME_LABELS = {
    Outcome.SL_FULL: "SL_FULL (Loss)",
    Outcome.TP1_BE: "TP1_BE (Win Small)",
    Outcome.TP2_FULL: "TP2_FULL (Big Win)",
}


def _pct(count: int, total: int) -> float:
    return count / total * 100 if total else 0.0


def print_summary(result: BacktestResult):
    """Print summary statistics for one backtest run."""
    m = result.metrics
    total = m.get("total_trades", 0)

    print("\n" + "=" * 52)
    print(f"SUMMARY: {result.strategy} {result.symbol} ({result.timeframe})")
    print("=" * 52)
    print(f"Signals:            {result.signals}")
    print(f"Unresolved:         {result.unresolved}")
    print(f"Total Trades:       {total}")
    print(f"Long Trades:        {m.get('long_trades', 0)}")
    print(f"Short Trades:       {m.get('short_trades', 0)}")

    outcomes = m.get("outcomes", {})
    if any(outcomes.get(o.value, 0) for o in SPLIT_OUTCOME_LABELS):
        print("-" * 52)
        print("[Outcome Distribution]")
        for outcome, label in SPLIT_OUTCOME_LABELS.items():
            count = outcomes.get(outcome.value, 0)
            print(f"{label + ':':<20}{count} ({_pct(count, total):.1f}%)")
    else:
        print(f"Wins:               {m.get('wins', 0)}")
        print(f"Losses:             {m.get('losses', 0)}")

    print("-" * 52)
    print(f"Win Rate:           {m.get('win_rate', 0.0):.2f}%")
    print(f"Avg Win ROI:        {m.get('avg_win_roi', 0.0):.2f}%")
    print(f"Avg Loss ROI:       {m.get('avg_loss_roi', 0.0):.2f}%")
    print(f"Total ROI:          {m.get('total_roi', 0.0):.2f}%")
    print(f"Avg ROI / Trade:    {m.get('avg_roi', 0.0):.2f}%")
    print(f"Total PnL (USDT):   {m.get('total_pnl', 0.0):.2f} USDT")
    print(f"Max Drawdown:       {m.get('max_drawdown', 0.0):.2f}%")
    print(f"Max Consec Losses:  {m.get('max_consecutive_losses', 0)}")
    print("=" * 52 + "\n")


def print_examples(trades: List[BacktestTrade]):
    """Print the first LONG and first SHORT trade as JSON."""
    long_ex = next((t for t in trades if t.direction is Direction.LONG), None)
    short_ex = next((t for t in trades if t.direction is Direction.SHORT), None)
    if long_ex is None and short_ex is None:
        return

    print("\n--- EXAMPLES ---")
    if long_ex is not None:
        print("LONG EXAMPLE:", json.dumps(trade_log_record(long_ex), indent=2))
    if short_ex is not None:
        print("SHORT EXAMPLE:", json.dumps(trade_log_record(short_ex), indent=2))


def _round(value: Optional[float], ndigits: int = 2) -> Optional[float]:
    return round(value, ndigits) if value is not None else None


def trade_log_record(trade: BacktestTrade) -> Dict[str, Any]:
    """Trade record for JSON logs with ROI/PnL/drawdown rounded to 2 decimals."""
    record = trade.to_dict()
    for key in ("roi_total", "pnl_percent_spot", "pnl_usdt", "max_drawdown_during_trade"):
        record[key] = _round(record[key])
    return record


def export_trades_json(trades: List[BacktestTrade], path: PathLike) -> Path:
    """
    Write the detailed trade log.

    Args:
        trades: Closed trades
        path: Output file

    Returns:
        Path written
    """
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        json.dump([trade_log_record(t) for t in trades], f, indent=2)
    print(f"\nDetailed logs saved to {output_path}")
    return output_path


def signal_report_entry(trade: BacktestTrade) -> Dict[str, Any]:
    """One trade in alert format: headline, levels, reasons and outcome."""
    return {
        "headline": f"{trade.direction.value} - {trade.symbol} ({trade.timeframe})",
        "entry": trade.entry_price,
        "stopLoss": trade.stop_loss,
        "targets": {
            "tp1": trade.tp1,
            "tp2": trade.tp2,
            "tp3": trade.tp3,
        },
        "indicators": trade.reason,
        "rr": f"1 : {trade.rr}" if trade.rr is not None else None,
        "result": {
            "status": trade.outcome.value,
            "exitPrice": trade.exit_price,
            "pnlPercent": f"{trade.spot_pnl_pct:.2f}%",
            "exitTime": ms_to_iso(trade.exit_time),
        },
    }


def export_signal_report(trades: List[BacktestTrade], path: PathLike) -> Path:
    """Write the alert-format signal report for a list of trades."""
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        json.dump([signal_report_entry(t) for t in trades], f, indent=2)
    print(f"\n[EXPORT] Results exported to {output_path}")
    return output_path


def save_results_to_csv(results: List[BacktestResult], filename: PathLike = "results.csv"):
    """Save backtest summary rows to CSV file."""
    if not results:
        print("No results to save.")
        return

    rows = []
    for r in results:
        row = r.to_dict()
        outcomes = row.pop("outcomes", {})
        for name, count in outcomes.items():
            row[f"outcome_{name}"] = count
        rows.append(row)

    df = pd.DataFrame(rows)
    output_path = Path(filename)
    df.to_csv(output_path, index=False)
    print(f"\nResults saved to: {output_path}")


def load_results_from_csv(filename: PathLike = "results.csv") -> List[Dict]:
    """Load backtest summary rows from CSV file."""
    path = Path(filename)
    if not path.exists():
        print(f"File not found: {path}")
        return []

    df = pd.read_csv(path)
    return df.to_dict(orient="records")
