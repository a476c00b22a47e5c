"""Strategies: composite signal evaluation."""

from algo_engine.strategies.evaluator import (
    StrategyEvaluator,
    SignalBatch,
    HistoryProvider,
    validate_risk_config,
)

__all__ = ["StrategyEvaluator", "SignalBatch", "HistoryProvider", "validate_risk_config"]
