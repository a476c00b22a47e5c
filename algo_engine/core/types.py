"""
Core data types for bars, strategies, signals, trades, positions and portfolios.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SignalType(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class OrderSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class OrderType(str, Enum):
    MARKET = "market"
    LIMIT = "limit"
    STOP = "stop"
    STOP_LIMIT = "stop_limit"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    SUBMITTED = "SUBMITTED"
    PARTIALLY_FILLED = "PARTIALLY_FILLED"
    FILLED = "FILLED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.FILLED, OrderStatus.CANCELLED, OrderStatus.REJECTED)


class TradingMode(str, Enum):
    PAPER = "paper"
    LIVE = "live"


class TradeReason(str, Enum):
    SIGNAL = "signal"
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"
    MANUAL = "manual"


@dataclass(frozen=True)
class PriceBar:
    """OHLCV bar."""
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


@dataclass
class FactorConfig:
    """One weighted factor of a strategy. `type` is the raw string from configuration."""
    type: str
    weight: float
    enabled: bool = True
    params: Dict[str, Any] = field(default_factory=dict)
    name: Optional[str] = None

    @property
    def label(self) -> str:
        return self.name or self.type


@dataclass
class RiskManagementConfig:
    """Per-strategy risk limits. Percentages are fractions (0.05 = 5%)."""
    max_position_size: float = 0.1
    max_positions: int = 10
    stop_loss_percent: float = 0.05
    take_profit_percent: Optional[float] = 0.15
    daily_loss_limit: Optional[float] = None
    min_cash_reserve: float = 0.0


@dataclass
class Strategy:
    """A user-configured trading strategy."""
    id: str
    portfolio_id: str
    name: str
    factors: List[FactorConfig] = field(default_factory=list)
    risk_management: RiskManagementConfig = field(default_factory=RiskManagementConfig)
    stock_universe: List[str] = field(default_factory=list)
    enabled: bool = True
    signal_threshold: Optional[float] = None


@dataclass
class FactorScore:
    """Normalized output of one factor evaluator."""
    factor_type: str
    name: str
    score: float
    confidence: float
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def weighted_score(self) -> float:
        """Score with confidence folded into its magnitude."""
        return self.score * self.confidence


@dataclass(frozen=True)
class Signal:
    """Directional recommendation for one symbol from one strategy evaluation."""
    symbol: str
    type: SignalType
    strength: float
    composite: float
    price: Optional[float]
    timestamp: datetime
    contributing_factors: Tuple[FactorScore, ...] = ()
    reasoning: str = ""
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None

    @property
    def is_actionable(self) -> bool:
        return self.type != SignalType.HOLD

    def snapshot(self) -> Dict[str, Any]:
        """Plain dict persisted alongside the Trade it produced."""
        return {
            "symbol": self.symbol,
            "type": self.type.value,
            "strength": self.strength,
            "composite": self.composite,
            "price": self.price,
            "timestamp": self.timestamp.isoformat(),
            "reasoning": self.reasoning,
            "factors": [
                {"type": f.factor_type, "name": f.name, "score": f.score, "confidence": f.confidence}
                for f in self.contributing_factors
            ],
        }


@dataclass
class Trade:
    """An order and its lifecycle. `client_order_id` is the idempotency key sent to the broker."""
    id: str
    portfolio_id: str
    symbol: str
    side: OrderSide
    quantity: float
    price: float
    strategy_id: Optional[str] = None
    order_type: OrderType = OrderType.MARKET
    status: OrderStatus = OrderStatus.PENDING
    client_order_id: Optional[str] = None
    broker_order_id: Optional[str] = None
    reason: TradeReason = TradeReason.SIGNAL
    signal: Optional[Dict[str, Any]] = None
    filled_quantity: float = 0.0
    filled_price: Optional[float] = None
    realized_pnl: float = 0.0
    message: str = ""
    executed_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if self.client_order_id is None:
            self.client_order_id = self.id

    @property
    def in_flight_key(self) -> Tuple[str, str, Optional[str]]:
        return (self.portfolio_id, self.symbol, self.strategy_id)

    def blocks(self, other: "Trade") -> bool:
        """
        True when this non-terminal trade must keep `other` out of the store. Sells share
        one slot per (portfolio, symbol) since they all draw on the same holding.
        """
        if self.status.is_terminal:
            return False
        if self.in_flight_key == other.in_flight_key:
            return True
        return (
            self.side == OrderSide.SELL
            and other.side == OrderSide.SELL
            and (self.portfolio_id, self.symbol) == (other.portfolio_id, other.symbol)
        )


@dataclass
class Position:
    """Open holding. Cost basis and P&L are derived, so cost_basis == average_price * quantity holds."""
    portfolio_id: str
    symbol: str
    quantity: float
    average_price: float
    current_price: float = 0.0
    realized_pnl: float = 0.0
    opened_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def cost_basis(self) -> float:
        return self.average_price * self.quantity

    @property
    def market_value(self) -> float:
        price = self.current_price or self.average_price
        return price * self.quantity

    @property
    def unrealized_pnl(self) -> float:
        return self.market_value - self.cost_basis

    @property
    def unrealized_pnl_percent(self) -> float:
        """Fractional unrealized return (0.05 = +5%)."""
        if self.cost_basis <= 0:
            return 0.0
        return self.unrealized_pnl / self.cost_basis


@dataclass
class Portfolio:
    """Cash account. `loss_limit_breached_on` latches the daily-loss circuit breaker for that date."""
    id: str
    cash_balance: float
    trading_mode: TradingMode = TradingMode.PAPER
    name: str = ""
    loss_limit_breached_on: Optional[date] = None
    updated_at: datetime = field(default_factory=utcnow)

    def total_value(self, positions: List[Position]) -> float:
        return self.cash_balance + sum(p.market_value for p in positions)


@dataclass
class PortfolioSnapshot:
    """End-of-day valuation."""
    portfolio_id: str
    timestamp: datetime
    total_value: float
    cash_balance: float
    positions_value: float
    position_count: int
    daily_return: float = 0.0
    daily_return_percent: float = 0.0


class JobRunStatus(str, Enum):
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class JobExecution:
    """One run of a scheduled job."""
    id: str
    job: str
    status: JobRunStatus = JobRunStatus.STARTED
    started_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ScheduledJob:
    """Running totals for one job type; `consecutive_failures` resets on the next success."""
    job: str
    enabled: bool = True
    last_run_at: Optional[datetime] = None
    last_status: Optional[JobRunStatus] = None
    last_error: Optional[str] = None
    run_count: int = 0
    failure_count: int = 0
    consecutive_failures: int = 0
    average_duration_ms: Optional[int] = None
