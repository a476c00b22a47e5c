"""Tests for the scheduled jobs exposed by trading.engine."""

import dataclasses
from datetime import datetime, timezone

import pytest

from algo_engine.core.types import OrderSide, Portfolio, Position
from algo_engine.strategies.evaluator import StrategyEvaluator
from algo_engine.trading.engine import TradingEngine
from conftest import bars_from_closes, uptrend

SATURDAY = datetime(2024, 3, 9, 16, 0, tzinfo=timezone.utc)
TUESDAY_SESSION = datetime(2024, 3, 5, 15, 0, tzinfo=timezone.utc)


def _history(symbol):
    return bars_from_closes(uptrend())


def test_full_tick(store, broker, alerts, ma_strategy):
    store.strategies.save(ma_strategy)
    broker.set_price("UPCO", uptrend()[-1])
    engine = TradingEngine(store, broker, alerts, StrategyEvaluator(0.3), clock=lambda: TUESDAY_SESSION,
                           market_hours_only=True)

    result = engine.run_strategy_execution(_history)
    assert (result.processed, result.succeeded, result.errors) == (1, 1, [])
    assert result.details["s1"]["signals"] == {"UPCO": "BUY"}
    assert result.details["s1"]["trades"] == 1

    poll = engine.run_order_status_poll()
    assert poll.processed == 0

    sync = engine.run_position_sync()
    assert sync.succeeded == 1
    assert sync.details["p1"]["corrected"] == []
    assert sync.details["p1"]["created"] == []

    snap = engine.run_portfolio_snapshot()
    assert snap.succeeded == 1
    assert snap.details["p1"]["total_value"] == pytest.approx(100000.0, rel=0.001)


def test_jobs_skip_when_market_closed(store, broker, alerts, ma_strategy):
    store.strategies.save(ma_strategy)
    engine = TradingEngine(store, broker, alerts, clock=lambda: SATURDAY, market_hours_only=True)
    assert engine.run_strategy_execution(_history).skipped
    assert engine.run_order_status_poll().skipped
    assert engine.run_position_sync().skipped
    assert not engine.run_portfolio_snapshot().skipped
    assert store.trades.list() == []


def test_force_overrides_market_hours(store, broker, alerts, ma_strategy):
    store.strategies.save(ma_strategy)
    broker.set_price("UPCO", uptrend()[-1])
    engine = TradingEngine(store, broker, alerts, clock=lambda: SATURDAY, market_hours_only=True)
    result = engine.run_strategy_execution(_history, force=True)
    assert not result.skipped
    assert result.details["s1"]["trades"] == 1


def test_strategy_failures_are_isolated(store, broker, alerts, ma_strategy):
    store.strategies.save(dataclasses.replace(ma_strategy, id="orphan", portfolio_id="ghost"))
    store.strategies.save(ma_strategy)
    broker.set_price("UPCO", uptrend()[-1])
    engine = TradingEngine(store, broker, alerts)
    result = engine.run_strategy_execution(_history)
    assert result.processed == 2
    assert result.succeeded == 1
    assert result.failed == 1
    assert any("ghost" in e for e in result.errors)


def test_disabled_strategies_are_not_run(store, broker, alerts, ma_strategy):
    store.strategies.save(dataclasses.replace(ma_strategy, enabled=False))
    result = TradingEngine(store, broker, alerts).run_strategy_execution(_history)
    assert result.processed == 0


def test_snapshot_daily_return(store, broker, alerts):
    engine = TradingEngine(store, broker, alerts)
    first = engine.snapshot_portfolio("p1")
    assert first.daily_return == 0.0
    assert first.total_value == 100000.0

    broker.set_price("AAA", 100.0)
    broker.submit_market_order("AAA", OrderSide.BUY, 100)
    store.positions.upsert(Position(portfolio_id="p1", symbol="AAA", quantity=100, average_price=50.0))
    second = engine.snapshot_portfolio("p1")
    bid = broker.get_latest_quote("AAA").bid
    assert second.positions_value == pytest.approx(100 * bid)
    assert second.daily_return == pytest.approx(100 * bid)
    assert second.daily_return_percent == pytest.approx(100 * bid / 100000.0 * 100)
    assert second.position_count == 1
    assert len(store.snapshots.list("p1")) == 2


def test_position_sync_covers_every_portfolio(store, broker, alerts):
    store.portfolios.save(Portfolio(id="p2", cash_balance=5000.0))
    result = TradingEngine(store, broker, alerts).run_position_sync()
    assert result.processed == 2
    assert set(result.details) == {"p1", "p2"}
