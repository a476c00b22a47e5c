"""Core: config, types, errors, logging."""

from algo_engine.core.config import load_config, parse_strategy, Config, DEFAULT_SIGNAL_THRESHOLD
from algo_engine.core.errors import (
    AppError,
    ValidationError,
    NotFoundError,
    ConflictError,
    ExternalServiceError,
)
from algo_engine.core.types import (
    SignalType,
    OrderSide,
    OrderType,
    OrderStatus,
    TradingMode,
    TradeReason,
    PriceBar,
    FactorConfig,
    RiskManagementConfig,
    Strategy,
    FactorScore,
    Signal,
    Trade,
    Position,
    Portfolio,
    PortfolioSnapshot,
)
from algo_engine.core.logger import setup_logging

__all__ = [
    "load_config",
    "parse_strategy",
    "Config",
    "DEFAULT_SIGNAL_THRESHOLD",
    "AppError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "ExternalServiceError",
    "SignalType",
    "OrderSide",
    "OrderType",
    "OrderStatus",
    "TradingMode",
    "TradeReason",
    "PriceBar",
    "FactorConfig",
    "RiskManagementConfig",
    "Strategy",
    "FactorScore",
    "Signal",
    "Trade",
    "Position",
    "Portfolio",
    "PortfolioSnapshot",
    "setup_logging",
]
