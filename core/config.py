"""
Thetaline — Configuration System
Loads YAML config and provides type-safe access via Pydantic models.
Supports environment variable overrides for secrets.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from core.exceptions import ConfigError

# ---------------------------------------------------------------------------
# Project paths
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"
STORAGE_DIR = PROJECT_ROOT / "storage"
EXPORTS_DIR = STORAGE_DIR / "exports"
LOGS_DIR = STORAGE_DIR / "logs"
DB_PATH = STORAGE_DIR / "backtests.db"


# ---------------------------------------------------------------------------
# Pydantic config models
# ---------------------------------------------------------------------------

class ProviderConfig(BaseModel):
    """Polygon market data credentials and throttling."""
    polygon_api_key: str = ""
    base_url: str = "https://api.polygon.io"
    volatility_index_ticker: str = "I:VIX"
    requests_per_second: float = 0.5     # 1 request every 2 seconds
    max_retries: int = 3
    timeout_seconds: float = 30.0

    def resolve(self) -> "ProviderConfig":
        return self.model_copy(update={
            "polygon_api_key": os.getenv("POLYGON_API_KEY", self.polygon_api_key),
        })


class EngineConfig(BaseModel):
    """Backtest engine tunables."""
    max_concurrency: int = Field(default=4, ge=1)
    cache_ttl_seconds: Optional[float] = 24 * 60 * 60


class BacktestDefaults(BaseModel):
    """Defaults for a backtest run when the caller omits a parameter."""
    symbols: list[str] = Field(default_factory=lambda: ["AAPL", "TSLA", "NVDA", "SPY", "QQQ"])
    budget: float = 1000.0          # $ per trade
    stop_loss: float = 0.45         # 45% of premium
    profit_target: float = 1.0      # 100% of premium
    rsi_oversold: float = 30.0
    rsi_overbought: float = 70.0
    min_vix: float = 15.0
    max_hold_days: int = 10
    rsi_period: int = 14


class DataConfig(BaseModel):
    """Run store and export locations."""
    db_path: str = str(DB_PATH)
    exports_dir: str = str(EXPORTS_DIR)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_dir: str = str(LOGS_DIR)
    max_file_size_mb: int = 50
    backup_count: int = 10


class Settings(BaseModel):
    """Root settings object."""
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    backtest: BacktestDefaults = Field(default_factory=BacktestDefaults)
    data: DataConfig = Field(default_factory=DataConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def resolve_secrets(self) -> "Settings":
        """Resolve environment variable overrides for provider secrets."""
        return self.model_copy(update={"provider": self.provider.resolve()})


# ---------------------------------------------------------------------------
# Config loading
# ---------------------------------------------------------------------------

def load_settings(config_path: Optional[Path] = None) -> Settings:
    """Load settings from YAML file, with env-var overrides for secrets."""
    if config_path is None:
        config_path = CONFIG_DIR / "settings.yaml"

    if config_path.exists():
        with open(config_path, "r") as f:
            raw = yaml.safe_load(f) or {}
        try:
            settings = Settings(**raw)
        except ValidationError as e:
            raise ConfigError(f"Invalid settings in {config_path}: {e}") from e
    else:
        settings = Settings()

    return settings.resolve_secrets()
