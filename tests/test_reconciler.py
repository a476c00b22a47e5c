"""Unit tests for trading.reconciler."""

import pytest

from algo_engine.alerts.events import AlertType
from algo_engine.core.types import OrderSide, Position, Trade


def test_buys_average_in(store, reconciler):
    reconciler.apply_fill("p1", "AAA", OrderSide.BUY, 10, 100.0)
    result = reconciler.apply_fill("p1", "AAA", OrderSide.BUY, 5, 110.0)
    pos = store.positions.get("p1", "AAA")
    assert pos.quantity == 15
    assert pos.average_price == pytest.approx(1550.0 / 15)
    assert pos.cost_basis == pytest.approx(1550.0)
    assert result.realized_pnl == 0.0


def test_round_trip_realizes_pnl(store, reconciler):
    reconciler.apply_fill("p1", "AAA", OrderSide.BUY, 10, 100.0)
    reconciler.apply_fill("p1", "AAA", OrderSide.BUY, 5, 110.0)
    result = reconciler.apply_fill("p1", "AAA", OrderSide.SELL, 15, 120.0)
    assert result.realized_pnl == pytest.approx(15 * 120.0 - 1550.0)
    assert result.position is None
    assert store.positions.get("p1", "AAA") is None


def test_partial_sell_keeps_average(store, reconciler):
    reconciler.apply_fill("p1", "AAA", OrderSide.BUY, 10, 100.0)
    result = reconciler.apply_fill("p1", "AAA", OrderSide.SELL, 4, 90.0)
    pos = store.positions.get("p1", "AAA")
    assert result.realized_pnl == pytest.approx(-40.0)
    assert pos.quantity == 6
    assert pos.average_price == 100.0
    assert pos.realized_pnl == pytest.approx(-40.0)


def test_sell_without_position_is_noop(store, reconciler):
    result = reconciler.apply_fill("p1", "ZZZ", OrderSide.SELL, 4, 90.0)
    assert result.realized_pnl == 0.0
    assert store.positions.list("p1") == []


def test_refresh_prices_marks_at_bid(store, broker, reconciler):
    broker.set_price("AAA", 120.0)
    store.positions.upsert(Position(portfolio_id="p1", symbol="AAA", quantity=10, average_price=100.0))
    assert reconciler.refresh_prices("p1") == 1
    pos = store.positions.get("p1", "AAA")
    assert pos.current_price == pytest.approx(119.94)
    assert pos.unrealized_pnl == pytest.approx(199.4)


def test_sync_broker_is_authoritative(store, broker, reconciler, alerts):
    for symbol in ("AAA", "CCC", "DDD"):
        broker.set_price(symbol, 100.0)
    broker.submit_market_order("AAA", OrderSide.BUY, 10)
    broker.submit_market_order("CCC", OrderSide.BUY, 3)
    broker.submit_market_order("DDD", OrderSide.BUY, 7)
    store.positions.upsert(Position(portfolio_id="p1", symbol="AAA", quantity=8, average_price=100.05))
    store.positions.upsert(Position(portfolio_id="p1", symbol="BBB", quantity=5, average_price=50.0))
    store.positions.upsert(Position(portfolio_id="p1", symbol="DDD", quantity=2, average_price=100.05))
    store.trades.insert_if_none_in_flight(Trade(
        id="pending-ddd", portfolio_id="p1", symbol="DDD", side=OrderSide.BUY, quantity=5, price=100.0,
    ))

    report = reconciler.sync_with_broker("p1")

    assert report.corrected == ["AAA"]
    assert report.removed == ["BBB"]
    assert report.created == ["CCC"]
    assert report.skipped == ["DDD"]
    assert report.drift_count == 3
    assert store.positions.get("p1", "AAA").quantity == 10
    assert store.positions.get("p1", "BBB") is None
    assert store.positions.get("p1", "CCC").quantity == 3
    assert store.positions.get("p1", "DDD").quantity == 2
    events = alerts.drain()
    assert [e.type for e in events] == [AlertType.POSITION_DRIFT] * 3
    assert {e.symbol for e in events} == {"AAA", "BBB", "CCC"}


def test_sync_within_price_tolerance_is_quiet(store, broker, reconciler, alerts):
    broker.set_price("AAA", 100.0)
    broker.submit_market_order("AAA", OrderSide.BUY, 10)
    store.positions.upsert(Position(portfolio_id="p1", symbol="AAA", quantity=10, average_price=100.0))
    report = reconciler.sync_with_broker("p1")
    assert report.drift_count == 0
    assert len(alerts) == 0
    assert store.positions.get("p1", "AAA").average_price == 100.0
