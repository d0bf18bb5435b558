"""
Load configuration from config.yaml and .env. API keys only from env.
"""

from __future__ import annotations
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv


def _env_path(project_root: Optional[Path] = None) -> Path:
    root = project_root or Path(__file__).resolve().parents[2]
    return root / ".env"


def load_dotenv_if_exists(project_root: Optional[Path] = None) -> None:
    """Load .env from project root if present."""
    path = _env_path(project_root)
    if path.exists():
        load_dotenv(path)


def load_config(config_path: Optional[Path] = None, project_root: Optional[Path] = None) -> "Config":
    """Load config.yaml and overlay with env. Returns Config."""
    load_dotenv_if_exists(project_root)
    root = project_root or Path(__file__).resolve().parents[2]
    path = config_path or root / "config.yaml"
    data: dict[str, Any] = {}
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    def env(key: str, default: str = "") -> str:
        return os.getenv(key, default).strip()

    def env_bool(key: str, default: bool = False) -> bool:
        return os.getenv(key, str(default)).lower() in ("true", "1", "yes")

    def env_int(key: str, default: int = 0) -> int:
        try:
            return int(os.getenv(key, str(default)))
        except ValueError:
            return default

    def env_float(key: str, default: float = 0.0) -> float:
        try:
            return float(os.getenv(key, str(default)))
        except ValueError:
            return default

    api = data.get("api", {})
    backtest = data.get("backtest", {})
    settlement = data.get("settlement", {})
    telegram = data.get("telegram", {})
    logging_cfg = data.get("logging", {})

    use_testnet = env_bool("USE_TESTNET", api.get("use_testnet", False))
    # Klines are public; keys are optional and only raise rate limits
    binance_api_key = env("BINANCE_API_KEY", api.get("binance_api_key", ""))
    binance_api_secret = env("BINANCE_API_SECRET", api.get("binance_api_secret", ""))

    return Config(
        binance_api_key=binance_api_key,
        binance_api_secret=binance_api_secret,
        use_testnet=use_testnet,
        # Backtest
        initial_capital=env_float("INITIAL_CAPITAL", backtest.get("initial_capital", 10000.0)),
        timeframe=env("TIMEFRAME", backtest.get("timeframe", "1d")),
        maker_fee=env_float("MAKER_FEE", backtest.get("maker_fee", 0.0002)),
        periods_per_year=env_float("PERIODS_PER_YEAR", backtest.get("periods_per_year", 252.0)),
        trend_lookback=env_int("TREND_LOOKBACK", backtest.get("trend_lookback", 5)),
        data_dir=Path(env("DATA_DIR", str(backtest.get("data_dir", "historical_data")))),
        # Settlement
        window_before_days=env_float("BILL_WINDOW_BEFORE_DAYS", settlement.get("window_before_days", 2)),
        window_after_days=env_float("BILL_WINDOW_AFTER_DAYS", settlement.get("window_after_days", 1)),
        payment_grace_days=env_int("PAYMENT_GRACE_DAYS", settlement.get("payment_grace_days", 7)),
        # Strategy book (validated later by load_strategy_book)
        strategies=list(data.get("strategies", []) or []),
        tokens=list(data.get("tokens", []) or []),
        # Telegram
        telegram_bot_token=env("TELEGRAM_BOT_TOKEN", telegram.get("bot_token", "")),
        telegram_chat_id=env("TELEGRAM_CHAT_ID", telegram.get("chat_id", "")),
        # Logging
        log_level=env("LOG_LEVEL", logging_cfg.get("level", "INFO")),
        log_dir=Path(logging_cfg.get("log_dir", "logs")),
        log_file=logging_cfg.get("log_file", "ladder_engine.log"),
    )


class Config:
    """Unified configuration. Immutable after load."""

    __slots__ = (
        "binance_api_key", "binance_api_secret", "use_testnet",
        "initial_capital", "timeframe", "maker_fee", "periods_per_year", "trend_lookback", "data_dir",
        "window_before_days", "window_after_days", "payment_grace_days",
        "strategies", "tokens",
        "telegram_bot_token", "telegram_chat_id",
        "log_level", "log_dir", "log_file",
    )

    def __init__(
        self,
        binance_api_key: str = "",
        binance_api_secret: str = "",
        use_testnet: bool = False,
        initial_capital: float = 10000.0,
        timeframe: str = "1d",
        maker_fee: float = 0.0002,
        periods_per_year: float = 252.0,
        trend_lookback: int = 5,
        data_dir: Path = None,
        window_before_days: float = 2,
        window_after_days: float = 1,
        payment_grace_days: int = 7,
        strategies: Optional[list] = None,
        tokens: Optional[list] = None,
        telegram_bot_token: str = "",
        telegram_chat_id: str = "",
        log_level: str = "INFO",
        log_dir: Path = None,
        log_file: str = "ladder_engine.log",
    ):
        self.binance_api_key = binance_api_key
        self.binance_api_secret = binance_api_secret
        self.use_testnet = use_testnet
        self.initial_capital = initial_capital
        self.timeframe = timeframe
        self.maker_fee = maker_fee
        self.periods_per_year = periods_per_year
        self.trend_lookback = trend_lookback
        self.data_dir = Path(data_dir) if data_dir else Path("historical_data")
        self.window_before_days = window_before_days
        self.window_after_days = window_after_days
        self.payment_grace_days = payment_grace_days
        self.strategies = strategies or []
        self.tokens = tokens or []
        self.telegram_bot_token = telegram_bot_token
        self.telegram_chat_id = telegram_chat_id
        self.log_level = log_level
        self.log_dir = Path(log_dir) if log_dir else Path("logs")
        self.log_file = log_file
