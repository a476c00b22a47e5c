"""Abstract brokerage interface: quotes, order placement and lookup, positions."""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from algo_engine.core.errors import ValidationError
from algo_engine.core.types import OrderSide, OrderStatus, OrderType
from algo_engine.execution.status import map_order_status


@dataclass
class BrokerOrder:
    """Order as reported by the broker. `status` is the broker's raw status string."""
    id: str
    symbol: str
    side: OrderSide
    quantity: float
    status: str
    order_type: OrderType = OrderType.MARKET
    client_order_id: Optional[str] = None
    filled_quantity: float = 0.0
    filled_avg_price: Optional[float] = None
    limit_price: Optional[float] = None
    stop_price: Optional[float] = None
    submitted_at: Optional[datetime] = None
    filled_at: Optional[datetime] = None

    @property
    def canonical_status(self) -> OrderStatus:
        return map_order_status(self.status)


@dataclass
class BrokerPosition:
    """Position as reported by the broker (authoritative)."""
    symbol: str
    quantity: float
    average_price: float
    current_price: float = 0.0


@dataclass
class Quote:
    symbol: str
    bid: float
    ask: float
    timestamp: datetime

    @property
    def mid(self) -> float:
        return (self.bid + self.ask) / 2.0

    def price_for(self, side: OrderSide) -> float:
        """Price a market order on `side` would cross at."""
        return self.ask if side == OrderSide.BUY else self.bid


class BrokerClient(ABC):
    """
    Brokerage capability. Implementations bound every call by a timeout and raise
    ExternalServiceError on failure. Reads may be retried; submissions and
    cancellations are not, and carry a client order id for idempotency.
    """

    name = "broker"

    @abstractmethod
    def submit_market_order(
        self, symbol: str, side: OrderSide, quantity: float, client_order_id: Optional[str] = None
    ) -> BrokerOrder:
        pass

    @abstractmethod
    def submit_limit_order(
        self,
        symbol: str,
        side: OrderSide,
        quantity: float,
        limit_price: float,
        client_order_id: Optional[str] = None,
    ) -> BrokerOrder:
        pass

    @abstractmethod
    def submit_stop_order(
        self,
        symbol: str,
        side: OrderSide,
        quantity: float,
        stop_price: float,
        client_order_id: Optional[str] = None,
    ) -> BrokerOrder:
        pass

    @abstractmethod
    def get_order(self, order_id: str) -> BrokerOrder:
        """Order by broker id. Raises NotFoundError when unknown."""
        pass

    @abstractmethod
    def get_order_by_client_id(self, client_order_id: str) -> Optional[BrokerOrder]:
        """Order by client order id, or None if the broker never received it."""
        pass

    @abstractmethod
    def cancel_order(self, order_id: str) -> None:
        pass

    @abstractmethod
    def get_positions(self) -> List[BrokerPosition]:
        pass

    @abstractmethod
    def get_position(self, symbol: str) -> Optional[BrokerPosition]:
        """Open position for symbol, or None."""
        pass

    @abstractmethod
    def get_latest_quote(self, symbol: str) -> Quote:
        pass

    def submit_order(
        self,
        symbol: str,
        side: OrderSide,
        quantity: float,
        order_type: OrderType = OrderType.MARKET,
        price: Optional[float] = None,
        client_order_id: Optional[str] = None,
    ) -> BrokerOrder:
        """Dispatch to the submit call for `order_type`."""
        if quantity <= 0:
            raise ValidationError(f"order quantity must be positive, got {quantity}")
        if order_type == OrderType.MARKET:
            return self.submit_market_order(symbol, side, quantity, client_order_id)
        if price is None or price <= 0:
            raise ValidationError(f"{order_type.value} order needs a positive price")
        if order_type == OrderType.LIMIT:
            return self.submit_limit_order(symbol, side, quantity, price, client_order_id)
        if order_type == OrderType.STOP:
            return self.submit_stop_order(symbol, side, quantity, price, client_order_id)
        raise ValidationError(f"unsupported order type {order_type.value}")
