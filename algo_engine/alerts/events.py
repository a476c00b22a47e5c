"""
Structured alert events and the outbound channel the engine writes them to.
Publishing never raises and never blocks on delivery; the caller drains the
channel and decides how and when to deliver.
"""

from __future__ import annotations
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

from algo_engine.core.types import utcnow

logger = logging.getLogger("algo_engine.alerts")


class AlertType(str, Enum):
    TRADE_EXECUTED = "trade_executed"
    TRADE_FAILED = "trade_failed"
    STOP_LOSS_TRIGGERED = "stop_loss_triggered"
    TAKE_PROFIT_TRIGGERED = "take_profit_triggered"
    DAILY_LOSS_LIMIT = "daily_loss_limit"
    STRATEGY_ERROR = "strategy_error"
    RISK_REJECTED = "risk_rejected"
    POSITION_DRIFT = "position_drift"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


_DEFAULT_SEVERITY = {
    AlertType.TRADE_EXECUTED: Severity.INFO,
    AlertType.TRADE_FAILED: Severity.WARNING,
    AlertType.STOP_LOSS_TRIGGERED: Severity.WARNING,
    AlertType.TAKE_PROFIT_TRIGGERED: Severity.INFO,
    AlertType.DAILY_LOSS_LIMIT: Severity.CRITICAL,
    AlertType.STRATEGY_ERROR: Severity.CRITICAL,
    AlertType.RISK_REJECTED: Severity.INFO,
    AlertType.POSITION_DRIFT: Severity.WARNING,
}


@dataclass(frozen=True)
class AlertEvent:
    type: AlertType
    portfolio_id: str
    title: str
    message: str
    symbol: Optional[str] = None
    quantity: Optional[float] = None
    price: Optional[float] = None
    reason: Optional[str] = None
    strategy_id: Optional[str] = None
    trade_id: Optional[str] = None
    severity: Optional[Severity] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)

    @property
    def level(self) -> Severity:
        return self.severity or _DEFAULT_SEVERITY[self.type]

    def render(self) -> str:
        """One-message text for chat notifiers."""
        lines = [f"[{self.level.value.upper()}] {self.title}", self.message]
        if self.symbol:
            detail = self.symbol
            if self.quantity is not None:
                detail += f" qty={self.quantity:g}"
            if self.price is not None:
                detail += f" @ {self.price:.2f}"
            lines.append(detail)
        if self.reason:
            lines.append(f"Reason: {self.reason}")
        return "\n".join(lines)


class AlertChannel:
    """Thread-safe outbound queue of AlertEvents. Oldest events drop first once `maxlen` is reached."""

    def __init__(self, maxlen: int = 10000):
        self._events: Deque[AlertEvent] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def publish(self, event: AlertEvent) -> None:
        with self._lock:
            if self._events.maxlen is not None and len(self._events) == self._events.maxlen:
                logger.warning("Alert channel full, dropping oldest event")
            self._events.append(event)
        logger.info("Alert %s | %s | %s", event.type.value, event.portfolio_id, event.title)

    def drain(self) -> List[AlertEvent]:
        """Remove and return all queued events, oldest first."""
        with self._lock:
            events = list(self._events)
            self._events.clear()
        return events

    def peek(self) -> List[AlertEvent]:
        with self._lock:
            return list(self._events)

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
