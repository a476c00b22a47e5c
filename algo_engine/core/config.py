"""
Load configuration from config.yaml and .env. Broker and Telegram credentials only from env.
"""

from __future__ import annotations
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from algo_engine.core.errors import ValidationError
from algo_engine.core.types import FactorConfig, RiskManagementConfig, Strategy

DEFAULT_SIGNAL_THRESHOLD = 0.3
MAX_BROKER_TIMEOUT_SECONDS = 60.0
PAPER_BASE_URL = "https://paper-api.alpaca.markets"
DATA_BASE_URL = "https://data.alpaca.markets"


def _env_path(project_root: Optional[Path] = None) -> Path:
    root = project_root or Path(__file__).resolve().parents[2]
    return root / ".env"


def load_dotenv_if_exists(project_root: Optional[Path] = None) -> None:
    """Load .env from project root if present."""
    path = _env_path(project_root)
    if path.exists():
        load_dotenv(path)


def parse_strategy(raw: Dict[str, Any], portfolio_id: str = "default") -> Strategy:
    """Build a Strategy from a config/YAML mapping. Percentages are fractions."""
    if not isinstance(raw, dict):
        raise ValidationError("strategy entry must be a mapping")
    if not raw.get("id") and not raw.get("name"):
        raise ValidationError("strategy needs an id or a name")
    factors: List[FactorConfig] = []
    for f in raw.get("factors", []) or []:
        if not isinstance(f, dict) or "type" not in f:
            raise ValidationError(f"factor entry needs a type: {f!r}")
        factors.append(FactorConfig(
            type=str(f["type"]),
            weight=float(f.get("weight", 1.0)),
            enabled=bool(f.get("enabled", True)),
            params=dict(f.get("params", {}) or {}),
            name=f.get("name"),
        ))
    risk = raw.get("risk_management", {}) or {}
    tp = risk.get("take_profit_percent", 0.15)
    loss_limit = risk.get("daily_loss_limit")
    threshold = raw.get("signal_threshold")
    return Strategy(
        id=str(raw.get("id") or raw.get("name")),
        portfolio_id=str(raw.get("portfolio_id", portfolio_id)),
        name=str(raw.get("name") or raw.get("id")),
        factors=factors,
        risk_management=RiskManagementConfig(
            max_position_size=float(risk.get("max_position_size", 0.1)),
            max_positions=int(risk.get("max_positions", 10)),
            stop_loss_percent=float(risk.get("stop_loss_percent", 0.05)),
            take_profit_percent=float(tp) if tp is not None else None,
            daily_loss_limit=float(loss_limit) if loss_limit is not None else None,
            min_cash_reserve=float(risk.get("min_cash_reserve", 0.0)),
        ),
        stock_universe=[str(s).upper() for s in raw.get("stock_universe", []) or []],
        enabled=bool(raw.get("enabled", True)),
        signal_threshold=float(threshold) if threshold is not None else None,
    )


def load_config(config_path: Optional[Path] = None, project_root: Optional[Path] = None) -> "Config":
    """Load config.yaml and overlay with env. Returns Config."""
    load_dotenv_if_exists(project_root)
    root = project_root or Path(__file__).resolve().parents[2]
    path = config_path or root / "config.yaml"
    data: dict[str, Any] = {}
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    # Env overrides (for secrets and overrides)
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
    engine = data.get("engine", {})
    schedule = data.get("schedule", {})
    portfolio = data.get("portfolio", {})
    telegram = data.get("telegram", {})
    backtest = data.get("backtest", {})
    portfolio_id = str(portfolio.get("id", "default"))

    return Config(
        # API (env only; never put keys in config.yaml)
        alpaca_api_key=env("ALPACA_API_KEY"),
        alpaca_api_secret=env("ALPACA_API_SECRET"),
        alpaca_base_url=env("ALPACA_BASE_URL", api.get("base_url", PAPER_BASE_URL)),
        alpaca_data_url=env("ALPACA_DATA_URL", api.get("data_url", DATA_BASE_URL)),
        # Engine
        signal_threshold=env_float("SIGNAL_THRESHOLD", engine.get("signal_threshold", DEFAULT_SIGNAL_THRESHOLD)),
        broker_timeout_seconds=min(
            env_float("BROKER_TIMEOUT_SECONDS", engine.get("broker_timeout_seconds", 30.0)),
            MAX_BROKER_TIMEOUT_SECONDS,
        ),
        stale_pending_minutes=env_int("STALE_PENDING_MINUTES", engine.get("stale_pending_minutes", 10)),
        reconcile_price_tolerance=env_float(
            "RECONCILE_PRICE_TOLERANCE", engine.get("reconcile_price_tolerance", 0.01)
        ),
        market_hours_only=env_bool("MARKET_HOURS_ONLY", engine.get("market_hours_only", True)),
        max_job_failures=env_int("MAX_JOB_FAILURES", engine.get("max_job_failures", 10)),
        # Schedule
        strategy_cadence=schedule.get("strategy_execution", "15m"),
        order_status_cadence=schedule.get("order_status", "1m"),
        position_sync_cadence=schedule.get("position_sync", "5m"),
        snapshot_cadence=schedule.get("portfolio_snapshot", "1d"),
        disabled_jobs=[str(j) for j in schedule.get("disabled_jobs", []) or []],
        # Portfolio and strategies
        portfolio_id=portfolio_id,
        portfolio_name=portfolio.get("name", "Default"),
        initial_cash=float(portfolio.get("initial_cash", 100000.0)),
        strategies=[parse_strategy(s, portfolio_id) for s in data.get("strategies", []) or []],
        # Telegram
        telegram_bot_token=env("TELEGRAM_BOT_TOKEN", telegram.get("bot_token", "")),
        telegram_chat_id=env("TELEGRAM_CHAT_ID", telegram.get("chat_id", "")),
        # Logging
        log_level=data.get("logging", {}).get("level", "INFO"),
        log_dir=Path(data.get("logging", {}).get("log_dir", "logs")),
        log_file=data.get("logging", {}).get("log_file", "algo_engine.log"),
        # Backtest
        backtest_initial_capital=float(backtest.get("initial_capital", 10000.0)),
        slippage_bps=env_float("SLIPPAGE_BPS", backtest.get("slippage_bps", 5.0)),
        fee_bps=env_float("FEE_BPS", backtest.get("fee_bps", 0.0)),
    )


class Config:
    """Unified configuration. Immutable after load."""

    __slots__ = (
        "alpaca_api_key", "alpaca_api_secret", "alpaca_base_url", "alpaca_data_url",
        "signal_threshold", "broker_timeout_seconds", "stale_pending_minutes",
        "reconcile_price_tolerance", "market_hours_only", "max_job_failures",
        "strategy_cadence", "order_status_cadence", "position_sync_cadence", "snapshot_cadence",
        "disabled_jobs",
        "portfolio_id", "portfolio_name", "initial_cash", "strategies",
        "telegram_bot_token", "telegram_chat_id",
        "log_level", "log_dir", "log_file",
        "backtest_initial_capital", "slippage_bps", "fee_bps",
    )

    def __init__(
        self,
        alpaca_api_key: str = "",
        alpaca_api_secret: str = "",
        alpaca_base_url: str = PAPER_BASE_URL,
        alpaca_data_url: str = DATA_BASE_URL,
        signal_threshold: float = DEFAULT_SIGNAL_THRESHOLD,
        broker_timeout_seconds: float = 30.0,
        stale_pending_minutes: int = 10,
        reconcile_price_tolerance: float = 0.01,
        market_hours_only: bool = True,
        max_job_failures: int = 10,
        strategy_cadence: str = "15m",
        order_status_cadence: str = "1m",
        position_sync_cadence: str = "5m",
        snapshot_cadence: str = "1d",
        disabled_jobs: Optional[List[str]] = None,
        portfolio_id: str = "default",
        portfolio_name: str = "Default",
        initial_cash: float = 100000.0,
        strategies: Optional[List[Strategy]] = None,
        telegram_bot_token: str = "",
        telegram_chat_id: str = "",
        log_level: str = "INFO",
        log_dir: Path = None,
        log_file: str = "algo_engine.log",
        backtest_initial_capital: float = 10000.0,
        slippage_bps: float = 5.0,
        fee_bps: float = 0.0,
    ):
        self.alpaca_api_key = alpaca_api_key
        self.alpaca_api_secret = alpaca_api_secret
        self.alpaca_base_url = alpaca_base_url.rstrip("/")
        self.alpaca_data_url = alpaca_data_url.rstrip("/")
        self.signal_threshold = signal_threshold
        self.broker_timeout_seconds = broker_timeout_seconds
        self.stale_pending_minutes = stale_pending_minutes
        self.reconcile_price_tolerance = reconcile_price_tolerance
        self.market_hours_only = market_hours_only
        self.max_job_failures = max_job_failures
        self.strategy_cadence = strategy_cadence
        self.order_status_cadence = order_status_cadence
        self.position_sync_cadence = position_sync_cadence
        self.snapshot_cadence = snapshot_cadence
        self.disabled_jobs = list(disabled_jobs or [])
        self.portfolio_id = portfolio_id
        self.portfolio_name = portfolio_name
        self.initial_cash = initial_cash
        self.strategies = list(strategies or [])
        self.telegram_bot_token = telegram_bot_token
        self.telegram_chat_id = telegram_chat_id
        self.log_level = log_level
        self.log_dir = Path(log_dir) if log_dir else Path("logs")
        self.log_file = log_file
        self.backtest_initial_capital = backtest_initial_capital
        self.slippage_bps = slippage_bps
        self.fee_bps = fee_bps

    @property
    def has_broker_credentials(self) -> bool:
        """Live trading needs both keys and neither may be a placeholder."""
        key, secret = self.alpaca_api_key, self.alpaca_api_secret
        if not key or not secret:
            return False
        return "PLACEHOLDER" not in key.upper() and "PLACEHOLDER" not in secret.upper()

    @property
    def secrets(self) -> List[str]:
        """Credential values that must never appear in logs."""
        return [s for s in (self.alpaca_api_key, self.alpaca_api_secret, self.telegram_bot_token) if s]
