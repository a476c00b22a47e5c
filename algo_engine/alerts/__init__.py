"""Alerts: event types, outbound channel, Telegram delivery."""

from algo_engine.alerts.events import AlertType, Severity, AlertEvent, AlertChannel
from algo_engine.alerts.telegram import TelegramNotifier, DeliveryReport

__all__ = ["AlertType", "Severity", "AlertEvent", "AlertChannel", "TelegramNotifier", "DeliveryReport"]
