"""Unit tests for trading.lifecycle (order state machine and fill booking)."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from algo_engine.alerts.events import AlertType
from algo_engine.core.errors import ConflictError, ExternalServiceError
from algo_engine.core.types import OrderSide, OrderStatus, Position, Trade
from algo_engine.execution.base import BrokerClient, BrokerOrder
from algo_engine.trading.lifecycle import OrderLifecycleTracker
from algo_engine.trading.reconciler import PositionReconciler

NOW = datetime(2024, 3, 5, 15, 0, tzinfo=timezone.utc)


def _trade(trade_id="t1", symbol="AAA", side=OrderSide.BUY, qty=10, price=100.0, **kwargs):
    kwargs.setdefault("strategy_id", "s1")
    return Trade(id=trade_id, portfolio_id="p1", symbol=symbol, side=side, quantity=qty, price=price, **kwargs)


def _order(status, filled=0.0, avg=None, order_id="o1", symbol="AAA", side=OrderSide.BUY, qty=10):
    return BrokerOrder(id=order_id, symbol=symbol, side=side, quantity=qty, status=status,
                       filled_quantity=filled, filled_avg_price=avg)


@pytest.fixture
def mock_broker():
    return MagicMock(spec=BrokerClient)


@pytest.fixture
def mock_tracker(store, mock_broker, alerts):
    clock = lambda: NOW
    reconciler = PositionReconciler(store, mock_broker, alerts, clock)
    return OrderLifecycleTracker(store, mock_broker, alerts, reconciler, clock, timedelta(minutes=10))


def test_partial_then_full_fill_books_incrementally(store, tracker, alerts):
    store.trades.insert_if_none_in_flight(_trade())

    trade = tracker.apply_broker_order("t1", _order("partially_filled", 4, 100.0))
    assert trade.status is OrderStatus.PARTIALLY_FILLED
    assert store.portfolios.get("p1").cash_balance == pytest.approx(99600.0)
    assert store.positions.get("p1", "AAA").quantity == 4
    assert len(alerts) == 0

    trade = tracker.apply_broker_order("t1", _order("filled", 10, 101.0))
    assert trade.status is OrderStatus.FILLED
    assert trade.filled_quantity == 10
    assert trade.filled_price == pytest.approx(101.0)
    assert store.portfolios.get("p1").cash_balance == pytest.approx(100000.0 - 1010.0)
    pos = store.positions.get("p1", "AAA")
    assert pos.quantity == 10
    assert pos.average_price == pytest.approx(101.0)
    assert [e.type for e in alerts.drain()] == [AlertType.TRADE_EXECUTED]

    # Re-applying a terminal order changes nothing.
    tracker.apply_broker_order("t1", _order("filled", 10, 101.0))
    assert store.portfolios.get("p1").cash_balance == pytest.approx(98990.0)
    assert len(alerts) == 0


def test_sell_fill_credits_cash_and_realizes(store, tracker):
    store.positions.upsert(Position(portfolio_id="p1", symbol="AAA", quantity=10, average_price=100.0))
    store.trades.insert_if_none_in_flight(_trade(side=OrderSide.SELL, price=110.0))
    trade = tracker.apply_broker_order("t1", _order("filled", 10, 110.0, side=OrderSide.SELL))
    assert trade.realized_pnl == pytest.approx(100.0)
    assert store.portfolios.get("p1").cash_balance == pytest.approx(101100.0)
    assert store.positions.get("p1", "AAA") is None


def test_backward_transitions_are_ignored(store, tracker):
    store.trades.insert_if_none_in_flight(_trade())
    assert tracker.apply_broker_order("t1", _order("new")).status is OrderStatus.SUBMITTED
    trade = tracker.apply_broker_order("t1", _order("pending_new"))
    assert trade.status is OrderStatus.SUBMITTED
    assert store.trades.get("t1").broker_order_id == "o1"


def test_broker_rejection_emits_trade_failed(store, tracker, alerts):
    store.trades.insert_if_none_in_flight(_trade())
    trade = tracker.apply_broker_order("t1", _order("rejected"))
    assert trade.status is OrderStatus.REJECTED
    assert store.portfolios.get("p1").cash_balance == 100000.0
    (event,) = alerts.drain()
    assert event.type is AlertType.TRADE_FAILED
    assert event.trade_id == "t1"


def test_poll_moves_trades_forward(store, mock_tracker, mock_broker):
    store.trades.insert_if_none_in_flight(_trade(broker_order_id="o1"))
    mock_broker.get_order.return_value = _order("filled", 10, 99.0)
    report = mock_tracker.poll()
    assert (report.checked, report.updated, report.errors) == (1, 1, [])
    assert store.trades.get("t1").status is OrderStatus.FILLED
    mock_broker.get_order.assert_called_once_with("o1")


def test_poll_isolates_failures(store, mock_tracker, mock_broker):
    store.trades.insert_if_none_in_flight(_trade("bad", symbol="BBB", broker_order_id="o-bad"))
    store.trades.insert_if_none_in_flight(_trade("good", symbol="AAA", broker_order_id="o1"))

    def get_order(order_id):
        if order_id == "o-bad":
            raise ExternalServiceError("Broker", "boom", status_code=500)
        return _order("filled", 10, 99.0)

    mock_broker.get_order.side_effect = get_order
    report = mock_tracker.poll()
    assert report.checked == 2
    assert [tid for tid, _ in report.errors] == ["bad"]
    assert store.trades.get("good").status is OrderStatus.FILLED
    assert store.trades.get("bad").status is OrderStatus.PENDING


def test_stale_pending_unknown_to_broker_is_cancelled(store, mock_tracker, mock_broker, alerts):
    store.trades.insert_if_none_in_flight(_trade("old", symbol="AAA", created_at=NOW - timedelta(minutes=20)))
    store.trades.insert_if_none_in_flight(_trade("new", symbol="BBB", created_at=NOW - timedelta(minutes=1)))
    mock_broker.get_order_by_client_id.return_value = None

    report = mock_tracker.poll()
    assert report.updated == 1
    assert store.trades.get("old").status is OrderStatus.CANCELLED
    assert store.trades.get("new").status is OrderStatus.PENDING
    (event,) = alerts.drain()
    assert event.type is AlertType.TRADE_FAILED
    assert event.trade_id == "old"


def test_pending_trade_found_by_client_id(store, mock_tracker, mock_broker):
    store.trades.insert_if_none_in_flight(_trade(created_at=NOW - timedelta(minutes=30)))
    mock_broker.get_order_by_client_id.return_value = _order("accepted")
    trade = mock_tracker.refresh(store.trades.get("t1"))
    assert trade.status is OrderStatus.SUBMITTED
    assert trade.broker_order_id == "o1"
    mock_broker.get_order_by_client_id.assert_called_once_with("t1")


def test_cancel_submitted_order(store, mock_tracker, mock_broker, alerts):
    store.trades.insert_if_none_in_flight(_trade(status=OrderStatus.SUBMITTED, broker_order_id="o1"))
    mock_broker.get_order.return_value = _order("canceled")
    trade = mock_tracker.cancel("t1")
    mock_broker.cancel_order.assert_called_once_with("o1")
    assert trade.status is OrderStatus.CANCELLED
    assert [e.type for e in alerts.drain()] == [AlertType.TRADE_FAILED]


def test_cancel_before_reaching_broker(store, tracker):
    store.trades.insert_if_none_in_flight(_trade())
    trade = tracker.cancel("t1")
    assert trade.status is OrderStatus.CANCELLED
    assert trade.message == "cancelled before reaching the broker"


def test_finalize_ignores_terminal_trades(store, tracker, alerts):
    store.trades.insert_if_none_in_flight(_trade(status=OrderStatus.FILLED))
    trade = tracker.finalize("t1", OrderStatus.REJECTED, "late")
    assert trade.status is OrderStatus.FILLED
    assert len(alerts) == 0


def test_in_flight_sells_share_one_slot_per_symbol(store):
    store.trades.insert_if_none_in_flight(_trade("b1"))
    store.trades.insert_if_none_in_flight(_trade("b2", strategy_id=None))
    store.trades.insert_if_none_in_flight(_trade("s1", side=OrderSide.SELL, strategy_id="s2"))
    with pytest.raises(ConflictError):
        store.trades.insert_if_none_in_flight(_trade("s2", side=OrderSide.SELL, strategy_id="s3"))

    done = store.trades.get("s1")
    done.status = OrderStatus.FILLED
    store.trades.save(done)
    store.trades.insert_if_none_in_flight(_trade("s3", side=OrderSide.SELL, strategy_id="s4"))
    assert {t.id for t in store.trades.list_open("p1")} == {"b1", "b2", "s3"}
