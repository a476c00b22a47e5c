"""Analytics: performance metrics."""

from algo_engine.analytics.metrics import (
    PerformanceMetrics,
    period_returns,
    sharpe_ratio,
    sortino_ratio,
    max_drawdown,
    win_rate,
    profit_factor,
    expectancy,
    compute_metrics,
    portfolio_performance,
)

__all__ = [
    "PerformanceMetrics",
    "period_returns",
    "sharpe_ratio",
    "sortino_ratio",
    "max_drawdown",
    "win_rate",
    "profit_factor",
    "expectancy",
    "compute_metrics",
    "portfolio_performance",
]
