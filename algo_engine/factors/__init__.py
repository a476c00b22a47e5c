"""Factors: closed set of technical variants and their lookup table."""

from algo_engine.factors.base import FactorType, FactorEvaluator, clamp, make_score, insufficient
from algo_engine.factors.registry import (
    FACTOR_EVALUATORS,
    register_factor,
    get_evaluator,
    validate_factor,
    evaluate_factor,
)

__all__ = [
    "FactorType",
    "FactorEvaluator",
    "clamp",
    "make_score",
    "insufficient",
    "FACTOR_EVALUATORS",
    "register_factor",
    "get_evaluator",
    "validate_factor",
    "evaluate_factor",
]
