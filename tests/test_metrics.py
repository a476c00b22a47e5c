"""Unit tests for analytics.metrics."""

from datetime import datetime, timedelta, timezone

import pytest

from algo_engine.analytics.metrics import (
    compute_metrics,
    expectancy,
    max_drawdown,
    period_returns,
    portfolio_performance,
    profit_factor,
    sharpe_ratio,
    sortino_ratio,
    win_rate,
)
from algo_engine.core.types import OrderSide, OrderStatus, PortfolioSnapshot, Trade


def test_sharpe_ratio_empty():
    assert sharpe_ratio([]) == 0.0


def test_sharpe_ratio_constant():
    assert sharpe_ratio([0.01] * 10) == 0.0  # zero std


def test_sortino_without_downside_falls_back_to_sharpe():
    rets = [0.01, 0.02, 0.015]
    assert sortino_ratio(rets) == pytest.approx(sharpe_ratio(rets))


def test_period_returns():
    assert period_returns([100.0, 110.0, 99.0]) == pytest.approx([0.1, -0.1])
    assert period_returns([100.0]) == []


def test_win_rate():
    assert win_rate([1, -1, 1, 1]) == 0.75
    assert win_rate([]) == 0.0


def test_profit_factor():
    assert profit_factor([10, -5, 10, -5]) == 2.0
    assert profit_factor([10, 10]) == float("inf")
    assert profit_factor([-5, -5]) == 0.0


def test_expectancy():
    assert expectancy([10, -5, 5]) == pytest.approx(10 / 3)
    assert expectancy([]) == 0.0


def test_max_drawdown():
    # equity 1 -> 1.2 -> 1.0 -> 1.1  =>  peak 1.2, dd (1.0-1.2)/1.2 = -16.67%
    cum = [1.0, 1.2, 1.0, 1.1]
    assert max_drawdown(cum) == pytest.approx(-16.666, rel=0.01)


def test_compute_metrics():
    pnls = [10.0, -5.0, 15.0, -3.0]
    m = compute_metrics(pnls)
    assert m.total_trades == 4
    assert m.winning_trades == 2
    assert m.losing_trades == 2
    assert m.expectancy == pytest.approx(4.25)
    assert m.win_rate == 0.5
    assert m.avg_win == pytest.approx(12.5)
    assert m.avg_loss == pytest.approx(-4.0)


def test_compute_metrics_with_equity_curve():
    m = compute_metrics([], equity=[1000.0, 1100.0, 1045.0])
    assert m.total_return_pct == pytest.approx(4.5)
    assert m.max_drawdown_pct == pytest.approx(-5.0)
    assert m.total_trades == 0


def test_compute_metrics_empty():
    m = compute_metrics([])
    assert m.total_trades == 0
    assert m.sharpe_ratio == 0.0
    assert m.total_return_pct == 0.0


def test_portfolio_performance_uses_filled_sells():
    t0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
    snapshots = [
        PortfolioSnapshot("p1", t0 + timedelta(days=1), 1100.0, 1100.0, 0.0, 0),
        PortfolioSnapshot("p1", t0, 1000.0, 1000.0, 0.0, 0),
    ]
    trades = [
        Trade(id="b", portfolio_id="p1", symbol="A", side=OrderSide.BUY, quantity=1, price=10,
              status=OrderStatus.FILLED, filled_quantity=1),
        Trade(id="s", portfolio_id="p1", symbol="A", side=OrderSide.SELL, quantity=1, price=12,
              status=OrderStatus.FILLED, filled_quantity=1, realized_pnl=2.0),
        Trade(id="x", portfolio_id="p1", symbol="A", side=OrderSide.SELL, quantity=1, price=12,
              status=OrderStatus.REJECTED),
    ]
    m = portfolio_performance(snapshots, trades)
    assert m.total_trades == 1
    assert m.total_return_pct == pytest.approx(10.0)
