"""
Position reconciler: applies fills to local positions and resyncs them against the broker.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from algo_engine.alerts.events import AlertChannel, AlertEvent, AlertType
from algo_engine.core.errors import ExternalServiceError
from algo_engine.core.types import OrderSide, Position, utcnow
from algo_engine.execution.base import BrokerClient
from algo_engine.persistence.repositories import Store

logger = logging.getLogger("algo_engine.reconciler")

QTY_EPSILON = 1e-9


@dataclass
class FillResult:
    symbol: str
    side: OrderSide
    quantity: float
    price: float
    realized_pnl: float = 0.0
    position: Optional[Position] = None


@dataclass
class SyncReport:
    portfolio_id: str
    checked: int = 0
    corrected: List[str] = field(default_factory=list)
    created: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def drift_count(self) -> int:
        return len(self.corrected) + len(self.created) + len(self.removed)


class PositionReconciler:
    """
    Local update on fill: BUY averages in, SELL realizes (fill - average) * quantity.
    Broker resync: the broker is authoritative; every correction is alerted.
    """

    def __init__(
        self,
        store: Store,
        broker: BrokerClient,
        alerts: AlertChannel,
        clock: Callable = utcnow,
        price_tolerance: float = 0.01,
    ):
        self.store = store
        self.broker = broker
        self.alerts = alerts
        self.clock = clock
        self.price_tolerance = price_tolerance

    def apply_fill(self, portfolio_id: str, symbol: str, side: OrderSide, quantity: float, price: float) -> FillResult:
        """Apply one fill to the local position. The position is deleted when its quantity reaches 0."""
        now = self.clock()
        with self.store.transaction():
            pos = self.store.positions.get(portfolio_id, symbol)
            if side == OrderSide.BUY:
                if pos is None:
                    pos = Position(
                        portfolio_id=portfolio_id, symbol=symbol, quantity=quantity,
                        average_price=price, current_price=price, opened_at=now, updated_at=now,
                    )
                else:
                    total = pos.quantity + quantity
                    pos.average_price = (pos.quantity * pos.average_price + quantity * price) / total
                    pos.quantity = total
                    pos.current_price = price
                    pos.updated_at = now
                self.store.positions.upsert(pos)
                return FillResult(symbol, side, quantity, price, 0.0, pos)

            if pos is None:
                logger.warning("SELL fill for %s/%s without a local position", portfolio_id, symbol)
                return FillResult(symbol, side, quantity, price)
            sold = min(quantity, pos.quantity)
            if sold < quantity:
                logger.warning("SELL fill %g exceeds held %g for %s/%s", quantity, pos.quantity, portfolio_id, symbol)
            realized = (price - pos.average_price) * sold
            pos.quantity -= sold
            pos.realized_pnl += realized
            pos.current_price = price
            pos.updated_at = now
            if pos.quantity <= QTY_EPSILON:
                self.store.positions.delete(portfolio_id, symbol)
                logger.info("Position closed %s/%s realized %.2f", portfolio_id, symbol, realized)
                return FillResult(symbol, side, sold, price, realized, None)
            self.store.positions.upsert(pos)
            return FillResult(symbol, side, sold, price, realized, pos)

    def refresh_prices(self, portfolio_id: str) -> int:
        """Mark positions to market at the bid. Quote failures leave that position's price unchanged."""
        updated = 0
        for pos in self.store.positions.list(portfolio_id):
            try:
                bid = self.broker.get_latest_quote(pos.symbol).bid
            except ExternalServiceError as e:
                logger.warning("Price refresh failed for %s: %s", pos.symbol, e)
                continue
            with self.store.transaction():
                current = self.store.positions.get(portfolio_id, pos.symbol)
                if current is None:
                    continue
                current.current_price = bid
                current.updated_at = self.clock()
                self.store.positions.upsert(current)
                updated += 1
        return updated

    def sync_with_broker(self, portfolio_id: str) -> SyncReport:
        """
        Make local positions match the broker. Symbols with an in-flight trade are skipped
        because the pending fill will be applied by the lifecycle tracker.
        """
        broker_positions = {p.symbol: p for p in self.broker.get_positions() if p.quantity > 0}
        report = SyncReport(portfolio_id=portfolio_id)
        events: List[AlertEvent] = []
        now = self.clock()
        with self.store.transaction():
            in_flight = {t.symbol for t in self.store.trades.list_open(portfolio_id)}
            local = {p.symbol: p for p in self.store.positions.list(portfolio_id)}
            for symbol in sorted(set(broker_positions) | set(local)):
                report.checked += 1
                if symbol in in_flight:
                    report.skipped.append(symbol)
                    continue
                remote, mine = broker_positions.get(symbol), local.get(symbol)
                if remote is None:
                    self.store.positions.delete(portfolio_id, symbol)
                    report.removed.append(symbol)
                    events.append(self._drift_event(
                        portfolio_id, symbol, f"Local position of {mine.quantity:g} not held at broker; removed",
                        local_quantity=mine.quantity, broker_quantity=0.0,
                    ))
                    continue
                price = remote.current_price or remote.average_price
                if mine is None:
                    self.store.positions.upsert(Position(
                        portfolio_id=portfolio_id, symbol=symbol, quantity=remote.quantity,
                        average_price=remote.average_price, current_price=price, opened_at=now, updated_at=now,
                    ))
                    report.created.append(symbol)
                    events.append(self._drift_event(
                        portfolio_id, symbol, f"Broker holds {remote.quantity:g} not tracked locally; created",
                        local_quantity=0.0, broker_quantity=remote.quantity,
                    ))
                    continue
                qty_drift = abs(mine.quantity - remote.quantity) > QTY_EPSILON
                price_drift = (
                    mine.average_price > 0
                    and abs(mine.average_price - remote.average_price) / mine.average_price > self.price_tolerance
                )
                if qty_drift or price_drift:
                    events.append(self._drift_event(
                        portfolio_id, symbol,
                        f"Corrected to broker: qty {mine.quantity:g} -> {remote.quantity:g}, "
                        f"avg {mine.average_price:.2f} -> {remote.average_price:.2f}",
                        local_quantity=mine.quantity, broker_quantity=remote.quantity,
                        local_average_price=mine.average_price, broker_average_price=remote.average_price,
                    ))
                    mine.quantity = remote.quantity
                    mine.average_price = remote.average_price
                    report.corrected.append(symbol)
                if price > 0:
                    mine.current_price = price
                mine.updated_at = now
                self.store.positions.upsert(mine)
        for event in events:
            self.alerts.publish(event)
        if report.drift_count:
            logger.warning("Position sync %s: %d corrections", portfolio_id, report.drift_count)
        return report

    def _drift_event(self, portfolio_id: str, symbol: str, message: str, **metadata) -> AlertEvent:
        return AlertEvent(
            type=AlertType.POSITION_DRIFT,
            portfolio_id=portfolio_id,
            title=f"Position mismatch: {symbol}",
            message=message,
            symbol=symbol,
            quantity=metadata.get("broker_quantity"),
            reason="broker resync",
            metadata=metadata,
        )
