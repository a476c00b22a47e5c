"""
Risk manager: daily-loss circuit breaker, position cap, position sizing, stop-loss / take-profit exits.
Position size = floor(max_position_size * portfolio value / price), capped by spendable cash.
"""

from __future__ import annotations
import logging
import math
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import List, Optional, Sequence

from algo_engine.core.types import (
    OrderSide,
    Portfolio,
    Position,
    RiskManagementConfig,
    Signal,
    SignalType,
    TradeReason,
)

logger = logging.getLogger("algo_engine.risk")


class RejectionReason(str, Enum):
    DAILY_LOSS_LIMIT = "DAILY_LOSS_LIMIT"
    MAX_POSITIONS = "MAX_POSITIONS"
    POSITION_EXISTS = "POSITION_EXISTS"
    INSUFFICIENT_CASH = "INSUFFICIENT_CASH"
    ZERO_QUANTITY = "ZERO_QUANTITY"
    NO_POSITION = "NO_POSITION"
    INVALID_PRICE = "INVALID_PRICE"
    HOLD = "HOLD"


@dataclass
class RiskDecision:
    """Result of gating a signal: approved with a quantity, or rejected with a reason."""
    approved: bool
    side: Optional[OrderSide] = None
    quantity: float = 0
    reason: Optional[RejectionReason] = None
    message: str = ""
    breaker_tripped: bool = False


@dataclass
class ExitIntent:
    """Synthetic SELL generated by a stop-loss or take-profit crossing."""
    symbol: str
    quantity: float
    reason: TradeReason
    price: float
    pnl_percent: float


class RiskManager:
    """
    Stateless gate over one strategy's RiskManagementConfig.
    The circuit breaker latch lives on Portfolio.loss_limit_breached_on so that it
    survives across independent job invocations.
    """

    def __init__(self, config: RiskManagementConfig):
        self.config = config

    def daily_loss(self, positions: Sequence[Position], realized_pnl_today: float) -> float:
        """Today's loss as a positive number (0 when the day is net positive)."""
        unrealized = sum(p.unrealized_pnl for p in positions)
        return max(0.0, -(realized_pnl_today + unrealized))

    def check_daily_loss(
        self,
        portfolio: Portfolio,
        positions: Sequence[Position],
        realized_pnl_today: float,
        today: date,
    ) -> bool:
        """
        Return False when new buys are blocked for today. Trips and latches the breaker
        on the portfolio when the loss exceeds the limit; a latch from an earlier day is cleared.
        """
        if portfolio.loss_limit_breached_on is not None and portfolio.loss_limit_breached_on != today:
            portfolio.loss_limit_breached_on = None
        if portfolio.loss_limit_breached_on == today:
            return False
        limit = self.config.daily_loss_limit
        if limit is None:
            return True
        loss = self.daily_loss(positions, realized_pnl_today)
        if loss > limit:
            logger.warning("Daily loss limit reached for %s: %.2f > %.2f", portfolio.id, loss, limit)
            portfolio.loss_limit_breached_on = today
            return False
        return True

    def size_position(self, total_value: float, price: float, available_cash: float) -> int:
        """Whole shares: floor(max_position_size * total_value / price), capped by available cash."""
        if price <= 0:
            return 0
        qty = math.floor(self.config.max_position_size * total_value / price)
        affordable = math.floor(max(0.0, available_cash) / price)
        return max(0, min(qty, affordable))

    def evaluate(
        self,
        signal: Signal,
        portfolio: Portfolio,
        positions: Sequence[Position],
        price: float,
        today: date,
        realized_pnl_today: float = 0.0,
    ) -> RiskDecision:
        """Gate a signal. Rejections are returned, never raised."""
        if signal.type == SignalType.HOLD:
            return RiskDecision(False, reason=RejectionReason.HOLD, message="HOLD signals are not traded")
        if price is None or price <= 0:
            return RiskDecision(False, reason=RejectionReason.INVALID_PRICE, message=f"invalid price {price!r}")
        held = next((p for p in positions if p.symbol == signal.symbol and p.quantity > 0), None)

        if signal.type == SignalType.SELL:
            if held is None:
                return RiskDecision(
                    False, side=OrderSide.SELL, reason=RejectionReason.NO_POSITION,
                    message=f"no open position in {signal.symbol} to sell",
                )
            return RiskDecision(True, side=OrderSide.SELL, quantity=held.quantity)

        was_latched = portfolio.loss_limit_breached_on == today
        if not self.check_daily_loss(portfolio, positions, realized_pnl_today, today):
            return RiskDecision(
                False, side=OrderSide.BUY, reason=RejectionReason.DAILY_LOSS_LIMIT,
                message=f"daily loss limit {self.config.daily_loss_limit} reached; buys blocked for {today}",
                breaker_tripped=not was_latched,
            )
        if held is not None:
            return RiskDecision(
                False, side=OrderSide.BUY, reason=RejectionReason.POSITION_EXISTS,
                message=f"already holding {held.quantity:g} {signal.symbol}",
            )
        open_count = sum(1 for p in positions if p.quantity > 0)
        if open_count >= self.config.max_positions:
            return RiskDecision(
                False, side=OrderSide.BUY, reason=RejectionReason.MAX_POSITIONS,
                message=f"{open_count} open positions >= max {self.config.max_positions}",
            )

        total_value = portfolio.total_value(list(positions))
        available = portfolio.cash_balance - self.config.min_cash_reserve
        target = math.floor(self.config.max_position_size * total_value / price)
        qty = self.size_position(total_value, price, available)
        if qty < 1:
            reason = RejectionReason.ZERO_QUANTITY if target < 1 else RejectionReason.INSUFFICIENT_CASH
            return RiskDecision(
                False, side=OrderSide.BUY, reason=reason,
                message=f"sized quantity is 0 (target {target}, cash {available:.2f}, price {price:.2f})",
            )
        return RiskDecision(True, side=OrderSide.BUY, quantity=qty)

    def check_exits(self, positions: Sequence[Position]) -> List[ExitIntent]:
        """Stop-loss / take-profit crossings on open positions, independent of new signals."""
        exits: List[ExitIntent] = []
        for p in positions:
            if p.quantity <= 0 or p.current_price <= 0:
                continue
            pct = p.unrealized_pnl_percent
            if pct <= -self.config.stop_loss_percent:
                exits.append(ExitIntent(p.symbol, p.quantity, TradeReason.STOP_LOSS, p.current_price, pct))
            elif self.config.take_profit_percent and pct >= self.config.take_profit_percent:
                exits.append(ExitIntent(p.symbol, p.quantity, TradeReason.TAKE_PROFIT, p.current_price, pct))
        return exits
