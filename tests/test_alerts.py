"""Unit tests for alert events, the alert channel and Telegram delivery."""

from unittest.mock import MagicMock

import requests

from algo_engine.alerts import telegram as telegram_alerts
from algo_engine.alerts.events import AlertChannel, AlertEvent, AlertType, Severity
from algo_engine.alerts.telegram import TelegramNotifier
from algo_engine.utils import telegram as telegram_transport
from algo_engine.utils.telegram import send_telegram


def _event(alert_type=AlertType.TRADE_EXECUTED, **kwargs):
    return AlertEvent(type=alert_type, portfolio_id="p1", title="Trade executed: BUY AAPL",
                      message="BUY 10 AAPL (signal)", **kwargs)


def test_channel_publish_and_drain():
    channel = AlertChannel()
    channel.publish(_event())
    channel.publish(_event(AlertType.TRADE_FAILED))
    assert len(channel) == 2
    assert [e.type for e in channel.peek()] == [AlertType.TRADE_EXECUTED, AlertType.TRADE_FAILED]
    drained = channel.drain()
    assert len(drained) == 2
    assert len(channel) == 0
    assert channel.drain() == []


def test_channel_drops_oldest_when_full():
    channel = AlertChannel(maxlen=2)
    for alert_type in (AlertType.TRADE_EXECUTED, AlertType.TRADE_FAILED, AlertType.POSITION_DRIFT):
        channel.publish(_event(alert_type))
    assert [e.type for e in channel.drain()] == [AlertType.TRADE_FAILED, AlertType.POSITION_DRIFT]


def test_default_severity_and_override():
    assert _event().level is Severity.INFO
    assert _event(AlertType.DAILY_LOSS_LIMIT).level is Severity.CRITICAL
    assert _event(severity=Severity.WARNING).level is Severity.WARNING


def test_render():
    text = _event(symbol="AAPL", quantity=10, price=187.254, reason="signal").render()
    assert text.splitlines() == [
        "[INFO] Trade executed: BUY AAPL",
        "BUY 10 AAPL (signal)",
        "AAPL qty=10 @ 187.25",
        "Reason: signal",
    ]


def test_send_telegram_unconfigured(monkeypatch):
    post = MagicMock()
    monkeypatch.setattr(telegram_transport.requests, "post", post)
    assert send_telegram("hi") is False
    post.assert_not_called()


def test_send_telegram_failures_return_false(monkeypatch):
    monkeypatch.setattr(telegram_transport.requests, "post", MagicMock(side_effect=requests.ConnectionError()))
    assert send_telegram("hi", "token", "chat") is False
    monkeypatch.setattr(telegram_transport.requests, "post", MagicMock(return_value=MagicMock(status_code=500)))
    assert send_telegram("hi", "token", "chat") is False


def test_send_telegram_ok(monkeypatch):
    post = MagicMock(return_value=MagicMock(status_code=200))
    monkeypatch.setattr(telegram_transport.requests, "post", post)
    assert send_telegram("x" * 5000, "token", "chat") is True
    kwargs = post.call_args.kwargs
    assert kwargs["json"]["chat_id"] == "chat"
    assert len(kwargs["json"]["text"]) == 4096
    assert kwargs["timeout"] == 10.0


def test_notifier_flush_drains_channel(monkeypatch):
    sent = []

    def fake_send(text, bot_token, chat_id):
        sent.append(text)
        return len(sent) == 1

    monkeypatch.setattr(telegram_alerts, "send_telegram", fake_send)
    channel = AlertChannel()
    channel.publish(_event())
    channel.publish(_event(AlertType.TRADE_FAILED))
    report = TelegramNotifier("token", "chat").flush(channel)
    assert (report.sent, report.failed) == (1, 1)
    assert len(sent) == 2
    assert len(channel) == 0
