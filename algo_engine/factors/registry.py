"""
Lookup table from FactorType to its evaluator, built once at import.
"""

from __future__ import annotations
import dataclasses
import logging
from typing import Dict, Optional, Sequence

from algo_engine.core.types import FactorConfig, FactorScore, PriceBar
from algo_engine.factors.base import FactorEvaluator, FactorType
from algo_engine.factors import technical

logger = logging.getLogger("algo_engine.factors")

FACTOR_EVALUATORS: Dict[FactorType, FactorEvaluator] = {
    FactorType.RSI: FactorEvaluator(
        FactorType.RSI, technical.evaluate_rsi, technical.validate_rsi, technical.RSI_DEFAULTS,
    ),
    FactorType.MACD: FactorEvaluator(
        FactorType.MACD, technical.evaluate_macd, technical.validate_macd, technical.MACD_DEFAULTS,
    ),
    FactorType.MA_CROSSOVER: FactorEvaluator(
        FactorType.MA_CROSSOVER, technical.evaluate_ma_crossover, technical.validate_ma_crossover,
        technical.MA_CROSSOVER_DEFAULTS,
    ),
    FactorType.BOLLINGER: FactorEvaluator(
        FactorType.BOLLINGER, technical.evaluate_bollinger, technical.validate_bollinger,
        technical.BOLLINGER_DEFAULTS,
    ),
}


def register_factor(evaluator: FactorEvaluator) -> None:
    """Install or replace the evaluator for a variant."""
    FACTOR_EVALUATORS[evaluator.type] = evaluator


def get_evaluator(factor_type: object) -> Optional[FactorEvaluator]:
    parsed = FactorType.parse(factor_type)
    return FACTOR_EVALUATORS.get(parsed) if parsed else None


def validate_factor(config: FactorConfig) -> None:
    """Raise ValidationError for bad params of a known variant. Unknown types pass (they are skipped)."""
    evaluator = get_evaluator(config.type)
    if evaluator is not None:
        evaluator.resolve_params(config.params)


def evaluate_factor(config: FactorConfig, history: Sequence[PriceBar]) -> Optional[FactorScore]:
    """Score one configured factor. None for disabled factors and unknown types."""
    if not config.enabled:
        return None
    evaluator = get_evaluator(config.type)
    if evaluator is None:
        logger.warning("Unknown factor type %r skipped", config.type)
        return None
    result = evaluator.score(history, config.params)
    return dataclasses.replace(result, name=config.label)
