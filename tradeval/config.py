# -*- coding: utf-8 -*-
"""
Process-wide configuration.

Values are read once at construction: dataclass defaults first, then
environment variables (optionally loaded from a ``.env`` file at the project
root).
"""

import os
import logging
from pathlib import Path
from dataclasses import dataclass
from dotenv import load_dotenv


logger = logging.getLogger(__name__)

# Load .env file from project root if it exists
project_root = Path(__file__).parent.parent
env_file = project_root / ".env"
if env_file.exists():
    load_dotenv(env_file)
    logger.debug(f"Loaded environment variables from {env_file}")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("true", "1", "yes")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


@dataclass
class Config:
    # Risk engine
    enable_risk_engine: bool = True
    trading_enabled: bool = True  # Kill switch (False blocks every order)
    max_daily_loss_percent: float = 2.0
    max_position_size_percent: float = 25.0
    max_open_positions: int = 5
    require_stop_loss: bool = True
    require_take_profit: bool = False
    account_balance: float = 100000.0  # Default balance for the live order path

    # Execution model (fractions, e.g. 0.001 = 0.1%)
    spread_pct_crypto: float = 0.001
    spread_pct_stocks: float = 0.0005
    slippage_pct: float = 0.0005
    commission_pct: float = 0.001

    # Storage
    ohlcv_cache_dir: str = "data/ohlcv"
    evaluation_db_path: str = "data/evaluation.db"
    risk_stats_dir: str = "data/risk_stats"

    # Logging
    log_level: str = "INFO"
    log_file: str = ""

    # Telegram notifications
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""

    def __post_init__(self):
        """Override defaults with environment variables if present."""
        # Risk engine
        self.enable_risk_engine = _env_bool("ENABLE_RISK_ENGINE", self.enable_risk_engine)
        self.trading_enabled = _env_bool("TRADING_ENABLED", self.trading_enabled)
        self.max_daily_loss_percent = _env_float("MAX_DAILY_LOSS_PERCENT", self.max_daily_loss_percent)
        self.max_position_size_percent = _env_float("MAX_POSITION_SIZE_PERCENT", self.max_position_size_percent)
        if os.getenv("MAX_OPEN_POSITIONS"):
            self.max_open_positions = int(os.getenv("MAX_OPEN_POSITIONS"))
        self.require_stop_loss = _env_bool("REQUIRE_STOP_LOSS", self.require_stop_loss)
        self.require_take_profit = _env_bool("REQUIRE_TAKE_PROFIT", self.require_take_profit)
        self.account_balance = _env_float("ACCOUNT_BALANCE", self.account_balance)

        # Execution model
        self.spread_pct_crypto = _env_float("SPREAD_PCT_CRYPTO", self.spread_pct_crypto)
        self.spread_pct_stocks = _env_float("SPREAD_PCT_STOCKS", self.spread_pct_stocks)
        self.slippage_pct = _env_float("SLIPPAGE_PCT", self.slippage_pct)
        self.commission_pct = _env_float("COMMISSION_PCT", self.commission_pct)

        # Storage
        self.ohlcv_cache_dir = os.getenv("OHLCV_CACHE_DIR", self.ohlcv_cache_dir)
        self.evaluation_db_path = os.getenv("EVALUATION_DB_PATH", self.evaluation_db_path)
        self.risk_stats_dir = os.getenv("RISK_STATS_DIR", self.risk_stats_dir)

        # Logging
        self.log_level = os.getenv("LOG_LEVEL", self.log_level)
        self.log_file = os.getenv("LOG_FILE", self.log_file)

        # Telegram notifications
        self.telegram_bot_token = os.getenv("TELEGRAM_BOT_TOKEN", self.telegram_bot_token)
        self.telegram_chat_id = os.getenv("TELEGRAM_CHAT_ID", self.telegram_chat_id)
