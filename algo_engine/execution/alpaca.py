"""
Alpaca REST brokerage client with timeouts and retry on transient failures.
Only idempotent reads are retried; order submission and cancellation are not.
"""

from __future__ import annotations
import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

import pandas as pd
import requests

from algo_engine.core.config import DATA_BASE_URL, PAPER_BASE_URL
from algo_engine.core.errors import ExternalServiceError, NotFoundError
from algo_engine.core.types import OrderSide, OrderType, utcnow
from algo_engine.execution.base import BrokerClient, BrokerOrder, BrokerPosition, Quote

logger = logging.getLogger("algo_engine.execution.alpaca")


def retry_on_transient(max_retries: int = 3, base_delay: float = 1.0):
    """Decorator: retry on timeouts, connection errors, 429 and 5xx with exponential backoff."""
    def decorator(f):
        def wrapped(*args, **kwargs):
            last_exc = None
            for attempt in range(max_retries):
                try:
                    return f(*args, **kwargs)
                except ExternalServiceError as e:
                    last_exc = e
                    if e.is_transient and attempt < max_retries - 1:
                        delay = base_delay * (2 ** attempt)
                        logger.warning("%s failed (%s), retry in %.1fs (attempt %d)", f.__name__, e, delay, attempt + 1)
                        time.sleep(delay)
                    else:
                        raise
            raise last_exc
        wrapped.__name__ = f.__name__
        wrapped.__doc__ = f.__doc__
        return wrapped
    return decorator


def _float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


def _timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    return pd.Timestamp(value).to_pydatetime()


def _qty(quantity: float) -> str:
    return str(int(quantity)) if float(quantity).is_integer() else str(quantity)


def _order_type(raw: Optional[str]) -> OrderType:
    try:
        return OrderType(raw or "market")
    except ValueError:
        return OrderType.MARKET


class AlpacaBrokerClient(BrokerClient):
    """Alpaca trading (paper or live) and market-data client."""

    name = "Alpaca"

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        base_url: str = PAPER_BASE_URL,
        data_url: str = DATA_BASE_URL,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.data_url = data_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({
            "APCA-API-KEY-ID": api_key,
            "APCA-API-SECRET-KEY": api_secret,
            "Content-Type": "application/json",
        })
        logger.info("Alpaca client: %s", "PAPER" if "paper" in self.base_url else "LIVE")

    def _request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> requests.Response:
        try:
            return self._session.request(method, url, params=params, json=payload, timeout=self.timeout)
        except requests.Timeout as e:
            raise ExternalServiceError(self.name, f"{method} {url} timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise ExternalServiceError(self.name, f"{method} {url} failed: {e}") from e

    def _check(self, r: requests.Response) -> requests.Response:
        if r.status_code >= 400:
            raise ExternalServiceError(
                self.name, f"HTTP {r.status_code}: {r.text[:200]}", status_code=r.status_code
            )
        return r

    def _parse_order(self, d: Dict[str, Any]) -> BrokerOrder:
        return BrokerOrder(
            id=str(d["id"]),
            client_order_id=d.get("client_order_id"),
            symbol=d["symbol"],
            side=OrderSide(d["side"]),
            quantity=_float(d.get("qty")) or 0.0,
            status=d.get("status", ""),
            order_type=_order_type(d.get("type") or d.get("order_type")),
            filled_quantity=_float(d.get("filled_qty")) or 0.0,
            filled_avg_price=_float(d.get("filled_avg_price")),
            limit_price=_float(d.get("limit_price")),
            stop_price=_float(d.get("stop_price")),
            submitted_at=_timestamp(d.get("submitted_at")),
            filled_at=_timestamp(d.get("filled_at")),
        )

    def _parse_position(self, d: Dict[str, Any]) -> BrokerPosition:
        return BrokerPosition(
            symbol=d["symbol"],
            quantity=_float(d.get("qty")) or 0.0,
            average_price=_float(d.get("avg_entry_price")) or 0.0,
            current_price=_float(d.get("current_price")) or 0.0,
        )

    def _submit(self, payload: Dict[str, Any]) -> BrokerOrder:
        url = f"{self.base_url}/v2/orders"
        r = self._check(self._request("POST", url, payload=payload))
        order = self._parse_order(r.json())
        logger.info(
            "Order submitted: %s %s %s x%s -> %s (%s)",
            payload["type"], payload["side"], payload["symbol"], payload["qty"], order.id, order.status,
        )
        return order

    def _order_payload(
        self, symbol: str, side: OrderSide, quantity: float, order_type: OrderType, client_order_id: Optional[str]
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "symbol": symbol,
            "qty": _qty(quantity),
            "side": side.value,
            "type": order_type.value,
            "time_in_force": "day",
        }
        if client_order_id:
            payload["client_order_id"] = client_order_id
        return payload

    def submit_market_order(
        self, symbol: str, side: OrderSide, quantity: float, client_order_id: Optional[str] = None
    ) -> BrokerOrder:
        return self._submit(self._order_payload(symbol, side, quantity, OrderType.MARKET, client_order_id))

    def submit_limit_order(
        self,
        symbol: str,
        side: OrderSide,
        quantity: float,
        limit_price: float,
        client_order_id: Optional[str] = None,
    ) -> BrokerOrder:
        payload = self._order_payload(symbol, side, quantity, OrderType.LIMIT, client_order_id)
        payload["limit_price"] = f"{limit_price:.2f}"
        return self._submit(payload)

    def submit_stop_order(
        self,
        symbol: str,
        side: OrderSide,
        quantity: float,
        stop_price: float,
        client_order_id: Optional[str] = None,
    ) -> BrokerOrder:
        payload = self._order_payload(symbol, side, quantity, OrderType.STOP, client_order_id)
        payload["stop_price"] = f"{stop_price:.2f}"
        return self._submit(payload)

    @retry_on_transient(max_retries=3)
    def get_order(self, order_id: str) -> BrokerOrder:
        r = self._request("GET", f"{self.base_url}/v2/orders/{order_id}")
        if r.status_code == 404:
            raise NotFoundError("order", order_id)
        return self._parse_order(self._check(r).json())

    @retry_on_transient(max_retries=3)
    def get_order_by_client_id(self, client_order_id: str) -> Optional[BrokerOrder]:
        r = self._request(
            "GET", f"{self.base_url}/v2/orders:by_client_order_id", params={"client_order_id": client_order_id}
        )
        if r.status_code == 404:
            return None
        return self._parse_order(self._check(r).json())

    def cancel_order(self, order_id: str) -> None:
        r = self._request("DELETE", f"{self.base_url}/v2/orders/{order_id}")
        if r.status_code == 404:
            raise NotFoundError("order", order_id)
        self._check(r)
        logger.info("Cancel requested for order %s", order_id)

    @retry_on_transient(max_retries=3)
    def get_positions(self) -> List[BrokerPosition]:
        r = self._check(self._request("GET", f"{self.base_url}/v2/positions"))
        return [self._parse_position(p) for p in r.json()]

    @retry_on_transient(max_retries=3)
    def get_position(self, symbol: str) -> Optional[BrokerPosition]:
        r = self._request("GET", f"{self.base_url}/v2/positions/{symbol}")
        if r.status_code == 404:
            return None
        return self._parse_position(self._check(r).json())

    @retry_on_transient(max_retries=3)
    def get_latest_quote(self, symbol: str) -> Quote:
        r = self._check(self._request("GET", f"{self.data_url}/v2/stocks/{symbol}/quotes/latest"))
        q = r.json().get("quote", {})
        bid, ask = _float(q.get("bp")) or 0.0, _float(q.get("ap")) or 0.0
        # Outside regular hours one side of the book can be empty.
        if bid <= 0 and ask <= 0:
            raise ExternalServiceError(self.name, f"no quote available for {symbol}", transient=True)
        bid, ask = bid or ask, ask or bid
        return Quote(symbol=symbol, bid=bid, ask=ask, timestamp=_timestamp(q.get("t")) or utcnow())
