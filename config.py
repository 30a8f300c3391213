# config.py
"""
Configuration for CandleLab.

You keep:
- machine-specific paths and worker counts in environment variables
- public config (symbols, data files, timeframes) here
"""

import os
from pathlib import Path


BASE_DIR = Path(__file__).parent


def _get_path(env_name: str, default: Path) -> Path:
    """Get a directory path from environment or use default."""
    val = os.getenv(env_name)
    return Path(val) if val else default


def _get_int(env_name: str, default: int) -> int:
    """Get an integer from environment or use default."""
    val = os.getenv(env_name)
    if val:
        try:
            return int(val)
        except ValueError:
            print(f"[config] Warning: Invalid {env_name} value '{val}', using default")
    return default


# ==== Paths ====

DATA_DIR = _get_path("CANDLELAB_DATA_DIR", BASE_DIR / "data")
RESULTS_DIR = _get_path("CANDLELAB_RESULTS_DIR", BASE_DIR)

# Optional per-strategy overrides, see settings.py
STRATEGY_CONFIG_FILE = os.getenv("CANDLELAB_STRATEGY_CONFIG", "strategy_config.json")


# ==== Market ====

SYMBOL = os.getenv("CANDLELAB_SYMBOL", "BTCUSDT")

# Futures candle dumps, one file per timeframe
# Format: [[timestampMillis, open, high, low, close, volume], ...]
DATA_FILES = {
    "5m": "BTC_USDT_USDT-5m-futures.json",
    "15m": "BTC_USDT_USDT-15m-futures.json",
    "1h": "BTC_USDT_USDT-1h-futures.json",
}

# Timeframes scanned by the trend momentum backtest, in run order
TREND_TIMEFRAMES = ["1h", "15m", "5m"]

INTRADAY_ENTRY_TIMEFRAME = "5m"
INTRADAY_BIAS_TIMEFRAME = "15m"
MEAN_REVERSION_TIMEFRAME = "1h"


# ==== Accounting ====

# Notional size used for split-position PnL (USDT)
POSITION_SIZE_USDT = 6000.0


# ==== Execution ====

# Worker threads for independent trade simulations (1 = sequential)
MAX_WORKERS = _get_int("CANDLELAB_MAX_WORKERS", 4)


# ==== Reports ====

TREND_REPORT_FILE = "backtest_results.json"
INTRADAY_REPORT_FILE = "quick_intraday_results.json"
MEAN_REVERSION_REPORT_FILE = "mean_reversion_results.json"

# Data coverage check
EXPECT_DAYS = 10


def data_file(timeframe: str) -> Path:
    """Full path of the candle file for a timeframe."""
    return DATA_DIR / DATA_FILES[timeframe]
