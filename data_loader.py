"""
Data Loading Utilities for CandleLab Backtests.

This module loads historical candle dumps and checks their coverage.

JSON File Requirements (exchange futures dumps):
- One file per timeframe, see config.DATA_FILES
- Content: [[timestampMillis, open, high, low, close, volume], ...]
- Rows may be unsorted; they are sorted by timestamp on load

CSV File Requirements:
- Required columns: timestamp (or time/date), open, high, low, close, volume (optional)
- Timestamp: epoch milliseconds or ISO 8601

Example CSV structure:
    timestamp,open,high,low,close,volume
    2024-01-02T00:00:00Z,42000.5,42110.0,41950.0,42080.1,812.4
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd

from candles import (
    Candle,
    InvalidCandleSeriesError,
    count_gaps,
    ms_to_iso,
    parse_candles,
    timeframe_to_ms,
    validate_candles,
)
from config import EXPECT_DAYS

logger = logging.getLogger(__name__)

MS_PER_DAY = 24 * 60 * 60 * 1000

PathLike = Union[str, Path]


def load_candles_json(path: PathLike, validate: bool = True) -> Tuple[Candle, ...]:
    """
    Load a JSON OHLCV dump.

    Args:
        path: File with [timestamp, open, high, low, close, volume] rows
        validate: Run validate_candles on the sorted series

    Returns:
        Immutable candle tuple sorted ascending by open time

    Raises:
        FileNotFoundError: If the file does not exist
        InvalidCandleSeriesError: If the content is not a list of rows or fails validation
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Candle file not found: {path}")

    with open(path, encoding="utf-8") as f:
        try:
            raw = json.load(f)
        except json.JSONDecodeError as e:
            raise InvalidCandleSeriesError(f"Malformed JSON in {path}: {e}") from e

    if not isinstance(raw, list):
        raise InvalidCandleSeriesError(f"Expected a JSON array of candle rows in {path}")

    try:
        parsed = parse_candles(raw)
    except (TypeError, ValueError) as e:
        raise InvalidCandleSeriesError(f"Unparseable candle row in {path}: {e}") from e

    candles = tuple(sorted(parsed, key=lambda c: c.open_time))
    if validate:
        validate_candles(candles)
    return candles


def _to_epoch_ms(series: pd.Series) -> pd.Series:
    """Epoch milliseconds as floats; blank or unparseable timestamps become NaN."""
    if pd.api.types.is_numeric_dtype(series):
        return series.astype("float64")
    ts = pd.to_datetime(series, utc=True, errors="coerce")
    ms = (ts - pd.Timestamp("1970-01-01", tz="UTC")) // pd.Timedelta(milliseconds=1)
    return pd.to_numeric(ms, errors="coerce").astype("float64")


def load_ohlcv_df_from_csv(path: PathLike) -> pd.DataFrame:
    """
    Load OHLCV data from CSV file.

    Rows with a blank or unparseable timestamp or price are dropped with a
    warning.

    Returns:
        DataFrame with columns: open_time (ms), open, high, low, close, volume,
        sorted by open_time

    Raises:
        FileNotFoundError: If CSV file not found
        InvalidCandleSeriesError: If the file is empty, unparseable or misses
            required columns
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"CSV file not found: {path}")

    try:
        df = pd.read_csv(path)
    except (pd.errors.EmptyDataError, pd.errors.ParserError) as e:
        raise InvalidCandleSeriesError(f"Cannot parse CSV {path}: {e}") from e

    time_cols = ["open_time", "timestamp", "time", "date", "datetime", "Date", "Time", "Timestamp"]
    time_col = next((col for col in time_cols if col in df.columns), None)
    if time_col is None:
        raise InvalidCandleSeriesError(f"No timestamp column found in {path}. Expected one of: {time_cols}")

    required_cols = ["open", "high", "low", "close"]
    col_mapping = {}
    for col in df.columns:
        col_lower = col.lower()
        if col_lower in required_cols and col_lower not in col_mapping:
            col_mapping[col_lower] = col

    for req in required_cols:
        if req not in col_mapping:
            raise InvalidCandleSeriesError(f"Missing required column '{req}' in {path}")

    result = pd.DataFrame()
    result["open_time"] = _to_epoch_ms(df[time_col])
    for new_col, old_col in col_mapping.items():
        result[new_col] = pd.to_numeric(df[old_col], errors="coerce")

    vol_col = next((c for c in df.columns if c.lower() == "volume"), None)
    if vol_col is not None:
        result["volume"] = pd.to_numeric(df[vol_col], errors="coerce").fillna(0)
    else:
        result["volume"] = 0.0

    bad_time = int(result["open_time"].isna().sum())
    if bad_time:
        logger.warning("Dropped %d rows with unparseable timestamps from %s", bad_time, path)
    result = result.dropna(subset=["open_time"])

    dropped = len(result) - len(result.dropna(subset=required_cols))
    if dropped:
        logger.warning("Dropped %d rows with unparseable prices from %s", dropped, path)
    result = result.dropna(subset=required_cols)

    result = result.astype({"open_time": "int64"})
    return result.sort_values("open_time").reset_index(drop=True)


def df_to_candles(df: pd.DataFrame) -> Tuple[Candle, ...]:
    """
    Convert an OHLCV DataFrame (open_time column in ms) to a candle tuple.
    """
    return tuple(
        Candle(
            open_time=int(row.open_time),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
        )
        for row in df.itertuples(index=False)
    )


def candles_to_df(candles: Sequence[Candle]) -> pd.DataFrame:
    """
    Convert candles to a DataFrame indexed by UTC open time.
    """
    if not candles:
        return pd.DataFrame(columns=["open_time", "open", "high", "low", "close", "volume"])

    df = pd.DataFrame([c.to_row() for c in candles], columns=["open_time", "open", "high", "low", "close", "volume"])
    df.index = pd.to_datetime(df["open_time"], unit="ms", utc=True)
    df.index.name = "timestamp"
    return df


def load_candles_csv(path: PathLike, validate: bool = True) -> Tuple[Candle, ...]:
    """High-level CSV loader returning a validated candle tuple."""
    candles = df_to_candles(load_ohlcv_df_from_csv(path))
    if validate:
        validate_candles(candles)
    return candles


def load_candles(path: PathLike, validate: bool = True) -> Tuple[Candle, ...]:
    """Load candles from a .json or .csv file."""
    if Path(path).suffix.lower() == ".csv":
        return load_candles_csv(path, validate)
    return load_candles_json(path, validate)


@dataclass
class CoverageReport:
    """How well a candle file covers the expected lookback window."""
    timeframe: str
    total_candles: int
    expected_candles: int
    first_time: Optional[int]
    last_time: Optional[int]
    range_days: float
    gaps: int
    ok: bool
    errors: List[str]
    expect_days: int = EXPECT_DAYS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timeframe": self.timeframe,
            "total_candles": self.total_candles,
            "expected_candles": self.expected_candles,
            "first_candle": ms_to_iso(self.first_time) if self.first_time is not None else None,
            "last_candle": ms_to_iso(self.last_time) if self.last_time is not None else None,
            "range_days": self.range_days,
            "gaps": self.gaps,
            "ok": self.ok,
            "errors": list(self.errors),
            "expect_days": self.expect_days,
        }


def validate_coverage(
    candles: Sequence[Candle],
    timeframe: str,
    expect_days: int = EXPECT_DAYS,
    min_ratio: float = 0.9,
) -> CoverageReport:
    """
    Check that a series covers roughly `expect_days` of data.

    Gaps are counted and reported but do not fail the check. The check fails
    when there are fewer than min_ratio of the expected candles, or the
    covered range is shorter than min_ratio of expect_days.
    """
    period_ms = timeframe_to_ms(timeframe)
    expected = int(expect_days * MS_PER_DAY / period_ms)
    errors = []

    if not candles:
        return CoverageReport(
            timeframe=timeframe,
            total_candles=0,
            expected_candles=expected,
            first_time=None,
            last_time=None,
            range_days=0.0,
            gaps=0,
            ok=False,
            errors=["Invalid or empty OHLCV series"],
            expect_days=expect_days,
        )

    first_time = candles[0].open_time
    last_time = candles[-1].open_time
    range_days = (last_time - first_time) / MS_PER_DAY
    gaps = count_gaps(candles, period_ms)
    if gaps:
        logger.warning("Found %d gaps in %s candles", gaps, timeframe)

    if len(candles) < expected * min_ratio:
        errors.append(f"Not enough candles: {len(candles)} < {min_ratio:.0%} of {expected}")
    if range_days < expect_days * min_ratio:
        errors.append(f"Data range {range_days:.2f} days is significantly less than {expect_days} days")

    return CoverageReport(
        timeframe=timeframe,
        total_candles=len(candles),
        expected_candles=expected,
        first_time=first_time,
        last_time=last_time,
        range_days=range_days,
        gaps=gaps,
        ok=not errors,
        errors=errors,
        expect_days=expect_days,
    )


def data_age_days(candles: Sequence[Candle], now_ms: Optional[int] = None) -> float:
    """Days between the last candle and now."""
    if not candles:
        return float("inf")
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return (now_ms - candles[-1].open_time) / MS_PER_DAY


def print_coverage_report(path: PathLike, report: CoverageReport):
    """Print a coverage report in the validation script format."""
    print(f"\nChecking file: {path} ({report.timeframe})...")
    print("===== REPORT =====")
    print(f"Total candles: {report.total_candles}")
    print(f"Expected (min ~{report.expect_days}d): {report.expected_candles}")
    if report.first_time is not None:
        print(f"First candle: {ms_to_iso(report.first_time)}")
        print(f"Last candle : {ms_to_iso(report.last_time)}")
    print(f"Actual range: {report.range_days:.2f} days")
    if report.gaps:
        print(f"[WARN] Found {report.gaps} gaps in candles")
    for err in report.errors:
        print(f"[FAIL] {err}")
    print(f"Result: {'VALID' if report.ok else 'INVALID'}")
