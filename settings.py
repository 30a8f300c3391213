"""
Settings Module for CandleLab.

This module provides a centralized way to load and manage strategy
configurations, supporting both default and overridden parameters.

Config file layout (all sections optional):

    {
        "trend_momentum": {"sl_atr_multiplier": 1.5},
        "quick_intraday": {"leverage": 20},
        "mean_reversion": {"volatility_threshold": 0.025}
    }
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from config import STRATEGY_CONFIG_FILE
from strategy import MeanReversionParams, QuickIntradayParams, TrendMomentumParams

logger = logging.getLogger(__name__)

STRATEGY_PARAMS = {
    "trend_momentum": TrendMomentumParams,
    "quick_intraday": QuickIntradayParams,
    "mean_reversion": MeanReversionParams,
}

ParamsType = Union[TrendMomentumParams, QuickIntradayParams, MeanReversionParams]


def load_strategy_config(config_file: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Load strategy configuration from JSON file."""
    path = Path(config_file or STRATEGY_CONFIG_FILE)
    if not path.exists():
        return None

    try:
        with open(path) as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Error loading config %s: %s", path, e)
        return None


def get_strategy_params(name: str, config_file: Optional[str] = None) -> ParamsType:
    """
    Get parameters for a strategy.

    Values from the config file override the defaults; unknown keys are
    ignored.

    Args:
        name: One of STRATEGY_PARAMS
        config_file: Optional path overriding CANDLELAB_STRATEGY_CONFIG

    Returns:
        Frozen parameter dataclass for the strategy

    Raises:
        KeyError: If the strategy name is unknown
    """
    if name not in STRATEGY_PARAMS:
        raise KeyError(f"Unknown strategy '{name}'. Expected one of: {', '.join(STRATEGY_PARAMS)}")

    params_cls = STRATEGY_PARAMS[name]
    config = load_strategy_config(config_file)
    if config is None:
        return params_cls()

    return params_cls.from_dict(dict(config.get(name, {})))


def save_strategy_params(name: str, params: ParamsType, config_file: Optional[str] = None):
    """
    Save strategy parameters to config file.

    Args:
        name: Strategy section to write
        params: Parameters to save
        config_file: Optional path overriding CANDLELAB_STRATEGY_CONFIG
    """
    path = Path(config_file or STRATEGY_CONFIG_FILE)
    config = load_strategy_config(str(path)) or {}
    config[name] = params.to_dict()

    with open(path, "w") as f:
        json.dump(config, f, indent=2)


def get_config_status(config_file: Optional[str] = None) -> Dict[str, Any]:
    """Get current configuration status."""
    config = load_strategy_config(config_file)

    return {
        "config_file": str(config_file or STRATEGY_CONFIG_FILE),
        "config_file_exists": config is not None,
        "overridden": sorted(k for k in (config or {}) if k in STRATEGY_PARAMS),
        "params": {name: get_strategy_params(name, config_file).to_dict() for name in STRATEGY_PARAMS},
    }


def print_config_status(config_file: Optional[str] = None):
    """Print current configuration status."""
    status = get_config_status(config_file)

    print("\n" + "=" * 50)
    print("STRATEGY CONFIGURATION STATUS")
    print("=" * 50)
    print(f"Config File: {status['config_file']}")
    print(f"Config Exists: {'YES' if status['config_file_exists'] else 'NO'}")
    print(f"Overridden: {', '.join(status['overridden']) or 'none'}")

    for name, params in status["params"].items():
        print(f"\n{name}:")
        for key, value in params.items():
            print(f"  {key}: {value}")

    print("=" * 50 + "\n")


if __name__ == "__main__":
    print_config_status()
