"""
Settings and stock universe loading.

Settings come from a YAML file (``config/settings.yaml`` by default, or the
path in STOCK_AGGREGATOR_CONFIG). Missing keys fall back to the defaults
below; a missing file means all defaults.
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Dict, Optional
import yaml
from stock_aggregator.analytics.align import DEFAULT_BUCKET, POLICIES
from stock_aggregator.analytics.window import DEFAULT_WINDOW, validate_window

REPO_ROOT = Path(__file__).resolve().parent.parent
CONFIG_ENV_VAR = "STOCK_AGGREGATOR_CONFIG"
DEFAULT_CONFIG_PATH = REPO_ROOT / "config" / "settings.yaml"


@dataclass(frozen=True)
class Settings:
    """
    Runtime settings.

    Representation Invariants:
        - default_window is a valid window (5..60)
        - policy is one of POLICIES
    """
    default_window: int = DEFAULT_WINDOW
    policy: str = "bucket"
    bucket: str = DEFAULT_BUCKET
    cache_dir: str = ".cache"
    cache_max_age_seconds: Optional[float] = 60.0
    stocks_file: str = str(REPO_ROOT / "data" / "stocks.yaml")

    def __post_init__(self):
        object.__setattr__(self, "default_window", validate_window(self.default_window))
        if self.policy not in POLICIES:
            raise ValueError(f"policy must be one of {POLICIES}, got {self.policy!r}")


def load_settings(path: Optional[str] = None) -> Settings:
    """
    Load settings from YAML.

    Args:
        path: Settings file; defaults to $STOCK_AGGREGATOR_CONFIG, then
            config/settings.yaml

    Returns:
        Settings

    Raises:
        InvalidWindowError: If default_window is invalid
        ValueError: If the file has unknown keys or a bad policy
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH
    config_path = Path(path)
    if not config_path.exists():
        return Settings()

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{config_path} must contain a mapping")

    known = {f.name for f in fields(Settings)}
    unknown = set(raw) - known
    if unknown:
        raise ValueError(f"unknown settings in {config_path}: {', '.join(sorted(unknown))}")

    if "stocks_file" in raw and not Path(raw["stocks_file"]).is_absolute():
        raw["stocks_file"] = str(REPO_ROOT / raw["stocks_file"])
    return Settings(**raw)


def load_stock_universe(path: str) -> Dict[str, str]:
    """
    Selectable stocks as {display name: ticker}.

    Returns an empty mapping when the file does not exist.
    """
    stocks_path = Path(path)
    if not stocks_path.exists():
        return {}
    with open(stocks_path) as f:
        raw = yaml.safe_load(f) or {}
    return {str(name): str(ticker).upper() for name, ticker in raw.get("stocks", {}).items()}
