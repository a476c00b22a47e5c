"""
Performance metrics from equity values and closed-trade P&L:
Sharpe, Sortino, max drawdown, win rate, profit factor, expectancy.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from algo_engine.core.types import OrderSide, PortfolioSnapshot, Trade

TRADING_DAYS = 252.0


@dataclass
class PerformanceMetrics:
    total_return_pct: float
    sharpe_ratio: float
    sortino_ratio: float
    max_drawdown_pct: float
    win_rate: float
    profit_factor: float
    expectancy: float
    total_trades: int
    winning_trades: int
    losing_trades: int
    avg_win: float
    avg_loss: float


def period_returns(values: Sequence[float]) -> List[float]:
    """Simple returns between consecutive equity values."""
    arr = np.asarray(values, dtype=float)
    if len(arr) < 2:
        return []
    prev = arr[:-1]
    rets = np.where(prev != 0, (arr[1:] - prev) / np.where(prev != 0, prev, 1), 0.0)
    return rets.tolist()


def sharpe_ratio(returns: Sequence[float], risk_free_rate: float = 0.0, periods_per_year: float = TRADING_DAYS) -> float:
    """Annualized Sharpe of period returns. 0 when returns are empty or constant."""
    if len(returns) == 0:
        return 0.0
    excess = np.asarray(returns, dtype=float) - risk_free_rate / periods_per_year
    std = excess.std()
    if std <= 1e-12:
        return 0.0
    return float(np.sqrt(periods_per_year) * excess.mean() / std)


def sortino_ratio(returns: Sequence[float], risk_free_rate: float = 0.0, periods_per_year: float = TRADING_DAYS) -> float:
    """Annualized Sortino (downside deviation only); falls back to Sharpe without downside."""
    if len(returns) == 0:
        return 0.0
    arr = np.asarray(returns, dtype=float)
    downside = arr[arr < 0]
    if len(downside) == 0 or downside.std() <= 1e-12:
        return sharpe_ratio(returns, risk_free_rate, periods_per_year)
    excess = arr - risk_free_rate / periods_per_year
    return float(np.sqrt(periods_per_year) * excess.mean() / downside.std())


def max_drawdown(equity: Sequence[float]) -> float:
    """Largest peak-to-trough decline in percent, as a negative number (-15.0 = 15%)."""
    if len(equity) == 0:
        return 0.0
    arr = np.asarray(equity, dtype=float)
    peak = np.maximum.accumulate(arr)
    dd = (arr - peak) / np.where(peak != 0, peak, 1)
    return float(dd.min()) * 100.0


def win_rate(pnls: Sequence[float]) -> float:
    if not pnls:
        return 0.0
    return sum(1 for p in pnls if p > 0) / len(pnls)


def profit_factor(pnls: Sequence[float]) -> float:
    """Gross profit / gross loss; inf with profits and no losses, 0 with neither."""
    wins = sum(p for p in pnls if p > 0)
    losses = -sum(p for p in pnls if p < 0)
    if losses <= 0:
        return float("inf") if wins > 0 else 0.0
    return wins / losses


def expectancy(pnls: Sequence[float]) -> float:
    if not pnls:
        return 0.0
    return sum(pnls) / len(pnls)


def compute_metrics(
    pnls: Sequence[float],
    equity: Optional[Sequence[float]] = None,
    risk_free_rate: float = 0.0,
    periods_per_year: float = TRADING_DAYS,
) -> PerformanceMetrics:
    """
    Metrics from closed-trade P&L and an optional equity curve (absolute values).
    Without an equity curve, one is built from a unit starting balance plus cumulative P&L.
    """
    pnls = list(pnls)
    if equity is None:
        equity = list(np.concatenate([[1.0], 1.0 + np.cumsum(pnls)])) if pnls else [1.0]
    equity = [float(v) for v in equity]
    if not pnls and len(equity) < 2:
        return PerformanceMetrics(0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0, 0, 0, 0.0, 0.0)
    rets = period_returns(equity)
    wins = [p for p in pnls if p > 0]
    losses = [p for p in pnls if p < 0]
    start = equity[0] or 1.0
    return PerformanceMetrics(
        total_return_pct=(equity[-1] / start - 1.0) * 100.0,
        sharpe_ratio=sharpe_ratio(rets, risk_free_rate, periods_per_year),
        sortino_ratio=sortino_ratio(rets, risk_free_rate, periods_per_year),
        max_drawdown_pct=max_drawdown(equity),
        win_rate=win_rate(pnls),
        profit_factor=profit_factor(pnls),
        expectancy=expectancy(pnls),
        total_trades=len(pnls),
        winning_trades=len(wins),
        losing_trades=len(losses),
        avg_win=sum(wins) / len(wins) if wins else 0.0,
        avg_loss=sum(losses) / len(losses) if losses else 0.0,
    )


def portfolio_performance(snapshots: Sequence[PortfolioSnapshot], trades: Sequence[Trade]) -> PerformanceMetrics:
    """Metrics for a live portfolio: equity from its snapshots, P&L from its filled sells."""
    pnls = [t.realized_pnl for t in trades if t.side == OrderSide.SELL and t.filled_quantity > 0]
    equity = [s.total_value for s in sorted(snapshots, key=lambda s: s.timestamp)]
    return compute_metrics(pnls, equity or None)
