"""Shared fixtures: price bar builders, store and engine wiring."""

from datetime import datetime, timedelta, timezone

import pytest

from algo_engine.alerts.events import AlertChannel
from algo_engine.core.types import (
    FactorConfig,
    Portfolio,
    PriceBar,
    RiskManagementConfig,
    Strategy,
)
from algo_engine.execution.simulated import SimulatedBrokerClient
from algo_engine.persistence.memory import InMemoryStore
from algo_engine.trading.lifecycle import OrderLifecycleTracker
from algo_engine.trading.reconciler import PositionReconciler

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def bars_from_closes(closes, spread=0.01):
    return [
        PriceBar(
            timestamp=START + timedelta(days=i),
            open=c,
            high=c * (1 + spread),
            low=c * (1 - spread),
            close=c,
            volume=1000.0,
        )
        for i, c in enumerate(closes)
    ]


def uptrend(n=30, start=100.0, growth=1.03):
    return [start * growth ** i for i in range(n)]


@pytest.fixture
def make_bars():
    return bars_from_closes


@pytest.fixture
def uptrend_bars():
    return bars_from_closes(uptrend())


@pytest.fixture
def store():
    s = InMemoryStore()
    s.portfolios.save(Portfolio(id="p1", cash_balance=100000.0, name="Test"))
    return s


@pytest.fixture
def alerts():
    return AlertChannel()


@pytest.fixture
def broker():
    return SimulatedBrokerClient()


@pytest.fixture
def reconciler(store, broker, alerts):
    return PositionReconciler(store, broker, alerts)


@pytest.fixture
def tracker(store, broker, alerts, reconciler):
    return OrderLifecycleTracker(store, broker, alerts, reconciler)


@pytest.fixture
def ma_strategy():
    return Strategy(
        id="s1",
        portfolio_id="p1",
        name="MA trend",
        factors=[FactorConfig(type="MA_Crossover", weight=1.0, params={"short": 5, "long": 10})],
        risk_management=RiskManagementConfig(
            max_position_size=0.1, max_positions=5, stop_loss_percent=0.05, take_profit_percent=0.15,
        ),
        stock_universe=["UPCO"],
    )
