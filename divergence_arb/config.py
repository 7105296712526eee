"""Configuration management for the divergence arbitrage bot."""

import os
import re
from pathlib import Path
from typing import Optional
import yaml
from pydantic import BaseModel, Field


class VenueAccount(BaseModel):
    """Venue API credentials."""
    key: Optional[str] = None
    secret: Optional[str] = None
    password: Optional[str] = None
    account_id: Optional[str] = None
    sandbox: bool = False

    @property
    def is_complete(self) -> bool:
        """True when both key and secret are present."""
        return bool(self.key and self.secret)


class VenueConfig(BaseModel):
    """One venue of the compared pair."""
    name: str
    ccxt_id: str
    symbol_prefix: str = ""
    symbol_suffix: str = ""
    fee_rate: float = 0.0002  # taker fee as a decimal rate
    market_type: str = "swap"
    settle: str = "USDT"
    account: VenueAccount = Field(default_factory=VenueAccount)


def _default_left() -> VenueConfig:
    return VenueConfig(
        name="gateio", ccxt_id="gate", symbol_suffix="_USDT",
        fee_rate=0.00016, settle="USDT",
    )


def _default_right() -> VenueConfig:
    return VenueConfig(
        name="orderly", ccxt_id="woofipro", symbol_prefix="PERP_", symbol_suffix="_USDC",
        fee_rate=0.00018, settle="USDC",
    )


class ExchangeConfig(BaseModel):
    """Venue pair. Left is venue A, the divergence reference venue."""
    left: VenueConfig = Field(default_factory=_default_left)
    right: VenueConfig = Field(default_factory=_default_right)


class MonitorConfig(BaseModel):
    """Divergence scanning configuration."""
    interval_sec: float = 1.0
    pause_threshold_pct: float = 0.5
    min_volume: float = 300000.0  # 24h quote volume required on both venues; 0 disables
    duration_hours: float = 3.0  # 0 = no time limit
    progress_log_every: int = 60


class TradingConfig(BaseModel):
    """Position entry and exit configuration."""
    enabled: bool = True
    position_pct: float = 0.2  # share of free collateral per entry
    min_order_amount: float = 12.0
    fill_confirmation_delay_sec: float = 2.0
    watch_interval_sec: float = 10.0
    watch_detail_every: int = 6
    orderbook_levels: int = 5
    liquidity_gate: bool = False


class AlertConfig(BaseModel):
    """Alert configuration."""
    telegram_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None
    notify_entries: bool = True
    notify_exits: bool = True


class SessionConfig(BaseModel):
    """Session reporting configuration."""
    export_results: bool = True
    results_dir: str = "results"


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = "divergence_arb.log"


class Config(BaseModel):
    """Main configuration model."""
    exchanges: ExchangeConfig = Field(default_factory=ExchangeConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    trading: TradingConfig = Field(default_factory=TradingConfig)
    alerts: Optional[AlertConfig] = None
    session: SessionConfig = Field(default_factory=SessionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def default(cls) -> "Config":
        """Configuration with all defaults, no file needed."""
        return cls()

    @classmethod
    def load_from_file(cls, config_path: str = "config.yaml") -> "Config":
        """Load configuration from YAML file with environment variable substitution."""
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path, "r") as f:
            config_str = f.read()

        # Substitute environment variables
        for key, value in os.environ.items():
            config_str = config_str.replace(f"${{{key}}}", value)
        # Unset variables become empty values
        config_str = re.sub(r"\$\{[A-Za-z_][A-Za-z0-9_]*\}", "", config_str)

        config_data = yaml.safe_load(config_str) or {}
        return cls(**config_data)
