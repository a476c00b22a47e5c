"""
Simulated broker for paper/demo runs and tests. Quotes are derived deterministically
from the symbol (unless a reference price is set) and every accepted order fills at once.
"""

from __future__ import annotations
import itertools
import logging
import threading
from typing import Dict, List, Mapping, Optional

from algo_engine.core.errors import NotFoundError
from algo_engine.core.types import OrderSide, OrderType, utcnow
from algo_engine.execution.base import BrokerClient, BrokerOrder, BrokerPosition, Quote

logger = logging.getLogger("algo_engine.execution.simulated")

SPREAD = 0.001


def simulated_base_price(symbol: str) -> float:
    """Stable price in [50, 450) from the symbol's character codes."""
    return 50.0 + sum(ord(c) for c in symbol) % 400


class SimulatedBrokerClient(BrokerClient):
    """
    Fills buys at the ask and sells at the bid. Keeps its own order book and positions so
    that broker resync sees exactly what was filled. Sells beyond the held quantity are rejected.
    """

    name = "Simulated"

    def __init__(self, reference_prices: Optional[Mapping[str, float]] = None):
        self._prices: Dict[str, float] = dict(reference_prices or {})
        self._orders: Dict[str, BrokerOrder] = {}
        self._by_client_id: Dict[str, str] = {}
        self._positions: Dict[str, BrokerPosition] = {}
        self._ids = itertools.count(1)
        self._lock = threading.RLock()

    def set_price(self, symbol: str, price: float) -> None:
        """Pin the mid price for a symbol (e.g. the latest close)."""
        with self._lock:
            self._prices[symbol] = float(price)
            pos = self._positions.get(symbol)
            if pos is not None:
                pos.current_price = float(price)

    def get_latest_quote(self, symbol: str) -> Quote:
        with self._lock:
            mid = self._prices.get(symbol, simulated_base_price(symbol))
        half = mid * SPREAD / 2
        return Quote(symbol=symbol, bid=mid - half, ask=mid + half, timestamp=utcnow())

    def _fill(
        self,
        symbol: str,
        side: OrderSide,
        quantity: float,
        order_type: OrderType,
        client_order_id: Optional[str],
        limit_price: Optional[float] = None,
        stop_price: Optional[float] = None,
    ) -> BrokerOrder:
        with self._lock:
            if client_order_id and client_order_id in self._by_client_id:
                return self._copy(self._orders[self._by_client_id[client_order_id]])
            order_id = f"sim-{next(self._ids):06d}"
            price = self.get_latest_quote(symbol).price_for(side)
            now = utcnow()
            order = BrokerOrder(
                id=order_id,
                client_order_id=client_order_id or order_id,
                symbol=symbol,
                side=side,
                quantity=quantity,
                status="filled",
                order_type=order_type,
                filled_quantity=quantity,
                filled_avg_price=price,
                limit_price=limit_price,
                stop_price=stop_price,
                submitted_at=now,
                filled_at=now,
            )
            held = self._positions.get(symbol)
            if side == OrderSide.SELL and (held is None or held.quantity < quantity):
                order.status = "rejected"
                order.filled_quantity = 0.0
                order.filled_avg_price = None
                order.filled_at = None
            else:
                self._apply(symbol, side, quantity, price)
            self._orders[order_id] = order
            self._by_client_id[order.client_order_id] = order_id
            logger.info("Simulated %s %s x%g @ %.2f -> %s", side.value, symbol, quantity, price, order.status)
            return self._copy(order)

    def _apply(self, symbol: str, side: OrderSide, quantity: float, price: float) -> None:
        pos = self._positions.get(symbol)
        if side == OrderSide.BUY:
            if pos is None:
                self._positions[symbol] = BrokerPosition(symbol, quantity, price, price)
            else:
                total = pos.quantity + quantity
                pos.average_price = (pos.quantity * pos.average_price + quantity * price) / total
                pos.quantity = total
                pos.current_price = price
            return
        pos.quantity -= quantity
        pos.current_price = price
        if pos.quantity <= 0:
            del self._positions[symbol]

    @staticmethod
    def _copy(order: BrokerOrder) -> BrokerOrder:
        return BrokerOrder(**order.__dict__)

    def submit_market_order(
        self, symbol: str, side: OrderSide, quantity: float, client_order_id: Optional[str] = None
    ) -> BrokerOrder:
        return self._fill(symbol, side, quantity, OrderType.MARKET, client_order_id)

    def submit_limit_order(
        self,
        symbol: str,
        side: OrderSide,
        quantity: float,
        limit_price: float,
        client_order_id: Optional[str] = None,
    ) -> BrokerOrder:
        return self._fill(symbol, side, quantity, OrderType.LIMIT, client_order_id, limit_price=limit_price)

    def submit_stop_order(
        self,
        symbol: str,
        side: OrderSide,
        quantity: float,
        stop_price: float,
        client_order_id: Optional[str] = None,
    ) -> BrokerOrder:
        return self._fill(symbol, side, quantity, OrderType.STOP, client_order_id, stop_price=stop_price)

    def get_order(self, order_id: str) -> BrokerOrder:
        with self._lock:
            if order_id not in self._orders:
                raise NotFoundError("order", order_id)
            return self._copy(self._orders[order_id])

    def get_order_by_client_id(self, client_order_id: str) -> Optional[BrokerOrder]:
        with self._lock:
            order_id = self._by_client_id.get(client_order_id)
            return self._copy(self._orders[order_id]) if order_id else None

    def cancel_order(self, order_id: str) -> None:
        # Everything fills on submit, so only the lookup can fail.
        self.get_order(order_id)

    def get_positions(self) -> List[BrokerPosition]:
        with self._lock:
            return [BrokerPosition(**p.__dict__) for p in self._positions.values()]

    def get_position(self, symbol: str) -> Optional[BrokerPosition]:
        with self._lock:
            p = self._positions.get(symbol)
            return BrokerPosition(**p.__dict__) if p else None
