"""Deliver drained alert events to Telegram. Delivery failures are counted, never raised."""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Iterable

from algo_engine.alerts.events import AlertChannel, AlertEvent
from algo_engine.utils.telegram import send_telegram

logger = logging.getLogger("algo_engine.alerts.telegram")


@dataclass
class DeliveryReport:
    sent: int = 0
    failed: int = 0


class TelegramNotifier:
    def __init__(self, bot_token: str = "", chat_id: str = ""):
        self.bot_token = bot_token
        self.chat_id = chat_id

    @property
    def configured(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    def deliver(self, events: Iterable[AlertEvent]) -> DeliveryReport:
        report = DeliveryReport()
        for event in events:
            if send_telegram(event.render(), self.bot_token, self.chat_id):
                report.sent += 1
            else:
                report.failed += 1
        if report.failed and self.configured:
            logger.warning("Telegram delivery: %d sent, %d failed", report.sent, report.failed)
        return report

    def flush(self, channel: AlertChannel) -> DeliveryReport:
        """Drain the channel and deliver everything in it."""
        return self.deliver(channel.drain())
