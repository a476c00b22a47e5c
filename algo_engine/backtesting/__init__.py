"""Backtesting: bar-by-bar strategy replay."""

from algo_engine.backtesting.engine import BacktestEngine, BacktestResult, ClosedTrade

__all__ = ["BacktestEngine", "BacktestResult", "ClosedTrade"]
