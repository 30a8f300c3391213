"""
CandleLab command line.

Usage:
    python main.py indicators --timeframe 1h --rows 10
    python main.py trend                      # trend momentum on 1h, 15m, 5m
    python main.py intraday                   # 5m entries with 15m bias
    python main.py mean-reversion             # 1h split-position fades
    python main.py validate                   # 10-day coverage check
    python main.py config                     # strategy parameter status
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import pandas as pd

from backtest_engine import (
    BacktestTrade,
    run_mean_reversion_backtest,
    run_quick_intraday_backtest,
    run_trend_momentum_backtest,
)
from candles import InvalidCandleSeriesError, price_columns
from config import (
    DATA_FILES,
    EXPECT_DAYS,
    INTRADAY_BIAS_TIMEFRAME,
    INTRADAY_ENTRY_TIMEFRAME,
    INTRADAY_REPORT_FILE,
    MAX_WORKERS,
    MEAN_REVERSION_REPORT_FILE,
    MEAN_REVERSION_TIMEFRAME,
    RESULTS_DIR,
    SYMBOL,
    TREND_REPORT_FILE,
    TREND_TIMEFRAMES,
    data_file,
)
from data_loader import (
    candles_to_df,
    data_age_days,
    load_candles,
    print_coverage_report,
    validate_coverage,
)
from indicators import ema, rsi, sma
from report import (
    export_signal_report,
    export_trades_json,
    print_examples,
    print_summary,
    save_results_to_csv,
)
from settings import get_strategy_params, print_config_status

logger = logging.getLogger(__name__)

LOG_FMT = "%(asctime)s | %(levelname)-7s | %(message)s"


def setup_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FMT,
        datefmt="%H:%M:%S",
    )


def _banner(title: str):
    print("=" * 70)
    print(f"   {title}")
    print("=" * 70)


def _load(path: Path):
    """Load a candle file, reporting and returning None when it cannot be used."""
    try:
        return load_candles(path)
    except FileNotFoundError:
        print(f"File not found: {path}")
    except InvalidCandleSeriesError as e:
        print(f"Invalid candle data in {path}: {e}")
    return None


def cmd_indicators(args) -> int:
    path = Path(args.file) if args.file else data_file(args.timeframe)
    candles = _load(path)
    if candles is None:
        return 1

    closes = price_columns(candles)["close"]
    df = candles_to_df(candles)[["close"]].copy()
    for name, fn in (("sma", sma), ("ema", ema), ("rsi", rsi)):
        df[f"{name}_{args.period}"] = pd.Series(fn(closes, args.period), index=df.index, dtype=float)

    _banner(f"INDICATORS {SYMBOL} ({args.timeframe}), period {args.period}")
    print(f"Loaded {len(candles)} candles from {path}")
    with pd.option_context("display.width", 120, "display.max_columns", None):
        print(df.tail(args.rows).round(2).to_string())
    return 0


def cmd_trend(args) -> int:
    _banner("TREND MOMENTUM STRATEGY BACKTEST")
    params = get_strategy_params("trend_momentum", args.config)
    timeframes = args.timeframes or TREND_TIMEFRAMES

    results = []
    all_trades: List[BacktestTrade] = []
    for tf in timeframes:
        path = data_file(tf)
        print(f"\nProcessing {path.name} ({tf})...")
        candles = _load(path)
        if candles is None:
            continue
        print(f"Loaded {len(candles)} candles.")

        result = run_trend_momentum_backtest(candles, tf, params)
        print_summary(result)
        results.append(result)
        all_trades.extend(result.trades)

    if not results:
        return 1

    export_signal_report(all_trades, _output(args, TREND_REPORT_FILE))
    if args.csv:
        save_results_to_csv(results, args.csv)
    return 0


def cmd_intraday(args) -> int:
    _banner("VERY QUICK INTRADAY STRATEGY BACKTEST")
    params = get_strategy_params("quick_intraday", args.config)

    candles = _load(data_file(INTRADAY_ENTRY_TIMEFRAME))
    bias_candles = _load(data_file(INTRADAY_BIAS_TIMEFRAME))
    if candles is None or bias_candles is None:
        return 1

    print(
        f"Calculating Indicators ({INTRADAY_ENTRY_TIMEFRAME}: {len(candles)} candles, "
        f"{INTRADAY_BIAS_TIMEFRAME}: {len(bias_candles)} candles)..."
    )
    result = run_quick_intraday_backtest(
        candles,
        bias_candles,
        timeframe=INTRADAY_ENTRY_TIMEFRAME,
        bias_timeframe=INTRADAY_BIAS_TIMEFRAME,
        params=params,
    )
    print_summary(result)
    print_examples(result.trades)
    export_trades_json(result.trades, _output(args, INTRADAY_REPORT_FILE))
    if args.csv:
        save_results_to_csv([result], args.csv)
    return 0


def cmd_mean_reversion(args) -> int:
    _banner("MEAN REVERSION STRATEGY BACKTEST")
    params = get_strategy_params("mean_reversion", args.config)

    candles = _load(data_file(MEAN_REVERSION_TIMEFRAME))
    if candles is None:
        return 1
    print(f"Loaded {len(candles)} candles ({MEAN_REVERSION_TIMEFRAME}).")

    result = run_mean_reversion_backtest(
        candles,
        timeframe=MEAN_REVERSION_TIMEFRAME,
        params=params,
        max_workers=args.workers,
    )
    print_summary(result)
    print_examples(result.trades)
    export_trades_json(result.trades, _output(args, MEAN_REVERSION_REPORT_FILE))
    if args.csv:
        save_results_to_csv([result], args.csv)
    return 0


def cmd_validate(args) -> int:
    all_ok = True
    for tf in args.timeframes or list(DATA_FILES):
        path = data_file(tf)
        try:
            candles = load_candles(path, validate=False)
        except FileNotFoundError:
            logger.warning("Skipping %s: file not found", path)
            print(f"\nFile not found: {path}")
            all_ok = False
            continue
        except InvalidCandleSeriesError as e:
            print(f"\nInvalid candle data in {path}: {e}")
            all_ok = False
            continue

        report = validate_coverage(candles, tf, expect_days=args.days)
        print_coverage_report(path, report)
        if candles:
            print(f"Data age: {data_age_days(candles):.2f} days")
        all_ok = all_ok and report.ok

    return 0 if all_ok else 1


def cmd_config(args) -> int:
    print_config_status(args.config)
    return 0


def _output(args, default_name: str) -> Path:
    return Path(args.output) if args.output else RESULTS_DIR / default_name


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="CandleLab Strategy Backtester")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--config", type=str, default=None, help="Strategy config JSON file")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("indicators", help="Print SMA/EMA/RSI for the last candles")
    p.add_argument("--timeframe", type=str, default="1h", choices=list(DATA_FILES))
    p.add_argument("--file", type=str, default=None, help="Candle file overriding the timeframe default")
    p.add_argument("--period", type=int, default=14)
    p.add_argument("--rows", type=int, default=10)
    p.set_defaults(func=cmd_indicators)

    p = sub.add_parser("trend", help="Trend momentum backtest")
    p.add_argument("--timeframes", type=str, nargs="+", default=None, choices=list(DATA_FILES))
    p.add_argument("--output", type=str, default=None, help="Signal report path")
    p.add_argument("--csv", type=str, default=None, help="Also save summary rows to CSV")
    p.set_defaults(func=cmd_trend)

    p = sub.add_parser("intraday", help="Quick intraday backtest")
    p.add_argument("--output", type=str, default=None, help="Trade log path")
    p.add_argument("--csv", type=str, default=None, help="Also save summary rows to CSV")
    p.set_defaults(func=cmd_intraday)

    p = sub.add_parser("mean-reversion", help="Mean reversion split-position backtest")
    p.add_argument("--workers", type=int, default=MAX_WORKERS, help="Simulation threads")
    p.add_argument("--output", type=str, default=None, help="Trade log path")
    p.add_argument("--csv", type=str, default=None, help="Also save summary rows to CSV")
    p.set_defaults(func=cmd_mean_reversion)

    p = sub.add_parser("validate", help="Check candle files cover the expected window")
    p.add_argument("--timeframes", type=str, nargs="+", default=None, choices=list(DATA_FILES))
    p.add_argument("--days", type=int, default=EXPECT_DAYS)
    p.set_defaults(func=cmd_validate)

    p = sub.add_parser("config", help="Show strategy parameters")
    p.set_defaults(func=cmd_config)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
