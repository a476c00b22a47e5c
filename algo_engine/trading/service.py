"""
Strategy execution pipeline for one strategy:
exits -> signals -> risk gate -> atomic PENDING insert -> broker submit -> lifecycle.
"""

from __future__ import annotations
import logging
import uuid
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from algo_engine.alerts.events import AlertChannel, AlertEvent, AlertType
from algo_engine.core.errors import ConflictError, ExternalServiceError, ValidationError
from algo_engine.core.types import (
    OrderSide,
    OrderStatus,
    OrderType,
    Signal,
    SignalType,
    Strategy,
    Trade,
    TradeReason,
    utcnow,
)
from algo_engine.execution.base import BrokerClient
from algo_engine.persistence.repositories import Store
from algo_engine.risk.manager import ExitIntent, RejectionReason, RiskManager
from algo_engine.strategies.evaluator import HistoryProvider, StrategyEvaluator
from algo_engine.trading.lifecycle import OrderLifecycleTracker
from algo_engine.utils.market_hours import start_of_trading_day, trading_day

logger = logging.getLogger("algo_engine.trading")


@dataclass
class ExecutionReport:
    strategy_id: str
    portfolio_id: str
    signals: List[Signal] = field(default_factory=list)
    trades: List[str] = field(default_factory=list)
    rejected: List[Tuple[str, str]] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    errors: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class TradingService:
    def __init__(
        self,
        store: Store,
        broker: BrokerClient,
        alerts: AlertChannel,
        tracker: OrderLifecycleTracker,
        evaluator: StrategyEvaluator,
        clock: Callable = utcnow,
    ):
        self.store = store
        self.broker = broker
        self.alerts = alerts
        self.tracker = tracker
        self.evaluator = evaluator
        self.clock = clock

    def execute_strategy(self, strategy: Strategy, history_provider: HistoryProvider) -> ExecutionReport:
        """
        Run one strategy end to end. NotFoundError for its portfolio propagates (the caller
        isolates strategies); everything per symbol is isolated here.
        """
        portfolio = self.store.portfolios.get(strategy.portfolio_id)
        report = ExecutionReport(strategy_id=strategy.id, portfolio_id=portfolio.id)
        try:
            self.evaluator.validate(strategy)
        except ValidationError as e:
            logger.error("Strategy %s invalid: %s", strategy.id, e.message)
            report.errors.append(("", e.message))
            self.alerts.publish(AlertEvent(
                type=AlertType.STRATEGY_ERROR, portfolio_id=portfolio.id, strategy_id=strategy.id,
                title=f"Strategy {strategy.name} is misconfigured", message=e.message, reason=e.code,
            ))
            return report

        risk = RiskManager(strategy.risk_management)
        self.tracker.reconciler.refresh_prices(portfolio.id)

        for intent in risk.check_exits(self.store.positions.list(portfolio.id)):
            try:
                self._execute_exit(strategy, intent, report)
            except Exception as e:
                logger.exception("Exit for %s failed", intent.symbol)
                report.errors.append((intent.symbol, str(e)))

        batch = self.evaluator.generate_signals(strategy, history_provider)
        report.signals = batch.signals
        for symbol, message in batch.errors:
            report.errors.append((symbol, message))
            self.alerts.publish(AlertEvent(
                type=AlertType.STRATEGY_ERROR, portfolio_id=portfolio.id, strategy_id=strategy.id, symbol=symbol,
                title=f"Evaluation failed for {symbol}", message=message,
            ))

        now = self.clock()
        today = trading_day(now)
        realized_today = sum(
            t.realized_pnl for t in self.store.trades.list_filled_since(portfolio.id, start_of_trading_day(now))
        )
        for signal in batch.actionable:
            try:
                self._execute_signal(strategy, signal, risk, today, realized_today, report)
            except Exception as e:
                logger.exception("Execution for %s failed", signal.symbol)
                report.errors.append((signal.symbol, str(e)))
        logger.info(
            "Strategy %s: %d signals, %d trades, %d rejected, %d skipped, %d errors",
            strategy.id, len(report.signals), len(report.trades), len(report.rejected),
            len(report.skipped), len(report.errors),
        )
        return report

    def _execute_exit(self, strategy: Strategy, intent: ExitIntent, report: ExecutionReport) -> None:
        alert_type = (
            AlertType.STOP_LOSS_TRIGGERED if intent.reason == TradeReason.STOP_LOSS else AlertType.TAKE_PROFIT_TRIGGERED
        )
        self.alerts.publish(AlertEvent(
            type=alert_type, portfolio_id=strategy.portfolio_id, strategy_id=strategy.id,
            title=f"{intent.reason.value.replace('_', ' ').title()}: {intent.symbol}",
            message=f"Unrealized {intent.pnl_percent * 100:+.2f}% crossed the configured limit",
            symbol=intent.symbol, quantity=intent.quantity, price=intent.price, reason=intent.reason.value,
        ))
        # Exits are keyed without a strategy so that overlapping strategies sell a position once.
        self._place(
            strategy.portfolio_id, None, intent.symbol, OrderSide.SELL, intent.quantity, intent.price,
            intent.reason, None, report,
        )

    def _execute_signal(
        self,
        strategy: Strategy,
        signal: Signal,
        risk: RiskManager,
        today,
        realized_today: float,
        report: ExecutionReport,
    ) -> None:
        side = OrderSide.BUY if signal.type == SignalType.BUY else OrderSide.SELL
        price = self.broker.get_latest_quote(signal.symbol).price_for(side)
        portfolio = self.store.portfolios.get(strategy.portfolio_id)
        positions = self.store.positions.list(strategy.portfolio_id)
        decision = risk.evaluate(signal, portfolio, positions, price, today, realized_today)
        if decision.breaker_tripped:
            with self.store.transaction():
                latest = self.store.portfolios.get(strategy.portfolio_id)
                latest.loss_limit_breached_on = today
                self.store.portfolios.save(latest)
        if not decision.approved:
            report.rejected.append((signal.symbol, decision.reason.value))
            alert_type = (
                AlertType.DAILY_LOSS_LIMIT if decision.reason == RejectionReason.DAILY_LOSS_LIMIT
                else AlertType.RISK_REJECTED
            )
            self.alerts.publish(AlertEvent(
                type=alert_type, portfolio_id=strategy.portfolio_id, strategy_id=strategy.id,
                title=f"{signal.type.value} {signal.symbol} not executed", message=decision.message,
                symbol=signal.symbol, price=price, reason=decision.reason.value,
            ))
            return
        self._place(
            strategy.portfolio_id, strategy.id, signal.symbol, side, decision.quantity, price,
            TradeReason.SIGNAL, signal, report,
        )

    def _place(
        self,
        portfolio_id: str,
        strategy_id: Optional[str],
        symbol: str,
        side: OrderSide,
        quantity: float,
        price: float,
        reason: TradeReason,
        signal: Optional[Signal],
        report: ExecutionReport,
    ) -> Optional[Trade]:
        trade = Trade(
            id=uuid.uuid4().hex,
            portfolio_id=portfolio_id,
            strategy_id=strategy_id,
            symbol=symbol,
            side=side,
            quantity=quantity,
            price=price,
            order_type=OrderType.MARKET,
            reason=reason,
            signal=signal.snapshot() if signal else None,
            created_at=self.clock(),
            updated_at=self.clock(),
        )
        try:
            self.store.trades.insert_if_none_in_flight(trade)
        except ConflictError as e:
            logger.info("Skipping %s %s: %s", side.value, symbol, e.message)
            report.skipped.append(symbol)
            return None
        report.trades.append(trade.id)
        try:
            order = self.broker.submit_order(
                symbol, side, quantity, OrderType.MARKET, client_order_id=trade.client_order_id
            )
        except ExternalServiceError as e:
            if e.is_transient:
                # Outcome unknown: the poller resolves it by client order id.
                logger.warning("Submit %s %s left PENDING: %s", side.value, symbol, e)
                return trade
            return self.tracker.finalize(trade.id, OrderStatus.REJECTED, str(e))
        except ValidationError as e:
            return self.tracker.finalize(trade.id, OrderStatus.REJECTED, e.message)
        return self.tracker.apply_broker_order(trade.id, order)
