"""
Order lifecycle tracker: moves trades forward from broker state, books fills into
cash and positions, and emits trade alerts. It never submits orders.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, List, Optional, Tuple

from algo_engine.alerts.events import AlertChannel, AlertEvent, AlertType
from algo_engine.core.types import OrderSide, OrderStatus, Trade, utcnow
from algo_engine.execution.base import BrokerClient, BrokerOrder
from algo_engine.execution.status import can_transition
from algo_engine.persistence.repositories import Store
from algo_engine.trading.reconciler import PositionReconciler

logger = logging.getLogger("algo_engine.lifecycle")


@dataclass
class PollReport:
    checked: int = 0
    updated: int = 0
    errors: List[Tuple[str, str]] = field(default_factory=list)


class OrderLifecycleTracker:
    def __init__(
        self,
        store: Store,
        broker: BrokerClient,
        alerts: AlertChannel,
        reconciler: PositionReconciler,
        clock: Callable = utcnow,
        stale_pending_after: timedelta = timedelta(minutes=10),
    ):
        self.store = store
        self.broker = broker
        self.alerts = alerts
        self.reconciler = reconciler
        self.clock = clock
        self.stale_pending_after = stale_pending_after

    def poll(self, portfolio_id: Optional[str] = None) -> PollReport:
        """Refresh every non-terminal trade. A failure on one trade never stops the others."""
        report = PollReport()
        for trade in self.store.trades.list_open(portfolio_id):
            report.checked += 1
            try:
                updated = self.refresh(trade)
            except Exception as e:
                logger.exception("Order status check failed for trade %s", trade.id)
                report.errors.append((trade.id, str(e)))
                continue
            if updated.status != trade.status or updated.filled_quantity != trade.filled_quantity:
                report.updated += 1
        return report

    def refresh(self, trade: Trade) -> Trade:
        """
        Look the order up at the broker and apply its state. A PENDING trade the broker has
        never seen is cancelled once it is older than `stale_pending_after`.
        """
        if trade.broker_order_id:
            order = self.broker.get_order(trade.broker_order_id)
        else:
            order = self.broker.get_order_by_client_id(trade.client_order_id)
        if order is not None:
            return self.apply_broker_order(trade.id, order)
        if trade.status == OrderStatus.PENDING and self.clock() - trade.created_at >= self.stale_pending_after:
            return self.finalize(trade.id, OrderStatus.CANCELLED, "order never reached the broker")
        return trade

    def apply_broker_order(self, trade_id: str, order: BrokerOrder) -> Trade:
        """
        Apply broker state to a trade inside one transaction: forward transitions only,
        incremental fills move cash (BUY debit, SELL credit) and positions exactly once.
        """
        events: List[AlertEvent] = []
        with self.store.transaction():
            trade = self.store.trades.get(trade_id)
            if trade.status.is_terminal:
                return trade
            new_status = order.canonical_status
            changed = False
            if trade.broker_order_id != order.id:
                trade.broker_order_id = order.id
                changed = True
            delta_qty = order.filled_quantity - trade.filled_quantity
            if new_status == trade.status and delta_qty <= 0:
                if changed:
                    trade.updated_at = self.clock()
                    self.store.trades.save(trade)
                return trade
            if new_status != trade.status and not can_transition(trade.status, new_status):
                logger.debug("Trade %s: ignoring %s -> %s", trade.id, trade.status.value, new_status.value)
                if changed:
                    self.store.trades.save(trade)
                return trade

            previous = trade.status
            if delta_qty > 0:
                self._book_fill(trade, order, delta_qty)
            trade.status = new_status
            trade.updated_at = self.clock()
            self.store.trades.save(trade)
            logger.info(
                "Trade %s %s %s: %s -> %s (filled %g)",
                trade.id, trade.side.value, trade.symbol, previous.value, new_status.value, trade.filled_quantity,
            )
            if new_status == OrderStatus.FILLED:
                events.append(self._trade_event(AlertType.TRADE_EXECUTED, trade, "Trade executed"))
            elif new_status in (OrderStatus.CANCELLED, OrderStatus.REJECTED):
                events.append(self._trade_event(
                    AlertType.TRADE_FAILED, trade, f"Trade {new_status.value.lower()}", reason=order.status,
                ))
        for event in events:
            self.alerts.publish(event)
        return trade

    def _book_fill(self, trade: Trade, order: BrokerOrder, delta_qty: float) -> None:
        avg = order.filled_avg_price or trade.price
        prior_notional = (trade.filled_price or 0.0) * trade.filled_quantity
        delta_price = (avg * order.filled_quantity - prior_notional) / delta_qty
        notional = delta_qty * delta_price
        portfolio = self.store.portfolios.get(trade.portfolio_id)
        portfolio.cash_balance += -notional if trade.side == OrderSide.BUY else notional
        portfolio.updated_at = self.clock()
        self.store.portfolios.save(portfolio)
        fill = self.reconciler.apply_fill(trade.portfolio_id, trade.symbol, trade.side, delta_qty, delta_price)
        trade.realized_pnl += fill.realized_pnl
        trade.filled_quantity = order.filled_quantity
        trade.filled_price = avg
        trade.executed_at = order.filled_at or self.clock()

    def finalize(self, trade_id: str, status: OrderStatus, message: str) -> Trade:
        """Move a trade into CANCELLED or REJECTED locally (no broker call)."""
        with self.store.transaction():
            trade = self.store.trades.get(trade_id)
            if trade.status.is_terminal or not can_transition(trade.status, status):
                return trade
            trade.status = status
            trade.message = message
            trade.updated_at = self.clock()
            self.store.trades.save(trade)
        logger.warning("Trade %s %s: %s", trade.id, status.value, message)
        self.alerts.publish(self._trade_event(
            AlertType.TRADE_FAILED, trade, f"Trade {status.value.lower()}", reason=message,
        ))
        return trade

    def cancel(self, trade_id: str) -> Trade:
        """Request cancellation at the broker, then pull the resulting state."""
        trade = self.store.trades.get(trade_id)
        if trade.status.is_terminal:
            return trade
        if trade.broker_order_id is None:
            order = self.broker.get_order_by_client_id(trade.client_order_id)
            if order is None:
                return self.finalize(trade.id, OrderStatus.CANCELLED, "cancelled before reaching the broker")
            trade = self.apply_broker_order(trade.id, order)
            if trade.status.is_terminal:
                return trade
        self.broker.cancel_order(trade.broker_order_id)
        return self.refresh(self.store.trades.get(trade_id))

    def _trade_event(self, alert_type: AlertType, trade: Trade, title: str, reason: Optional[str] = None) -> AlertEvent:
        price = trade.filled_price if trade.filled_price is not None else trade.price
        qty = trade.filled_quantity if alert_type == AlertType.TRADE_EXECUTED else trade.quantity
        return AlertEvent(
            type=alert_type,
            portfolio_id=trade.portfolio_id,
            title=f"{title}: {trade.side.value.upper()} {trade.symbol}",
            message=trade.message or f"{trade.side.value.upper()} {qty:g} {trade.symbol} ({trade.reason.value})",
            symbol=trade.symbol,
            quantity=qty,
            price=price,
            reason=reason or trade.reason.value,
            strategy_id=trade.strategy_id,
            trade_id=trade.id,
            metadata={"realized_pnl": trade.realized_pnl, "status": trade.status.value},
        )
