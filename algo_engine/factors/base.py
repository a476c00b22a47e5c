"""
Factor variants and the evaluator record.

A factor turns price history into a score in [-1, 1] (positive = bullish) and a
confidence in [0, 1]. The set of variants is closed: FactorType enumerates them
and the registry maps each one to exactly one FactorEvaluator.
"""

from __future__ import annotations
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

from algo_engine.core.errors import ValidationError
from algo_engine.core.types import FactorScore, PriceBar

ParamValidator = Callable[[Mapping[str, Any]], Optional[str]]
FactorFn = Callable[[Sequence[PriceBar], Mapping[str, Any]], FactorScore]


def _normalize_name(raw: str) -> str:
    return re.sub(r"[^a-z0-9]", "", raw.lower())


class FactorType(str, Enum):
    RSI = "RSI"
    MACD = "MACD"
    MA_CROSSOVER = "MA_Crossover"
    BOLLINGER = "Bollinger"

    @classmethod
    def parse(cls, raw: Any) -> Optional["FactorType"]:
        """Resolve a configured type string (case and punctuation insensitive). None if unknown."""
        if isinstance(raw, FactorType):
            return raw
        if not isinstance(raw, str):
            return None
        return _ALIASES.get(_normalize_name(raw))


_ALIASES: Dict[str, FactorType] = {
    "rsi": FactorType.RSI,
    "macd": FactorType.MACD,
    "macrossover": FactorType.MA_CROSSOVER,
    "movingaveragecrossover": FactorType.MA_CROSSOVER,
    "smacrossover": FactorType.MA_CROSSOVER,
    "bollinger": FactorType.BOLLINGER,
    "bollingerbands": FactorType.BOLLINGER,
    "bbands": FactorType.BOLLINGER,
}


def clamp(value: float, lo: float = -1.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, value))


def make_score(factor_type: FactorType, score: float, confidence: float, **metadata: Any) -> FactorScore:
    """Build a FactorScore with score clamped to [-1, 1] and confidence to [0, 1]."""
    return FactorScore(
        factor_type=factor_type.value,
        name=factor_type.value,
        score=clamp(float(score)),
        confidence=clamp(float(confidence), 0.0, 1.0),
        metadata=metadata,
    )


def insufficient(factor_type: FactorType, reason: str) -> FactorScore:
    """Neutral score used when the history is too short for the indicator."""
    return make_score(factor_type, 0.0, 0.0, error=reason)


@dataclass(frozen=True)
class FactorEvaluator:
    """One factor variant: default params, a param validator and the scoring function."""
    type: FactorType
    evaluate: FactorFn
    validate: ParamValidator
    defaults: Mapping[str, Any] = field(default_factory=dict)

    def resolve_params(self, params: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        """Defaults overlaid with configured params. Raises ValidationError when invalid."""
        merged = dict(self.defaults)
        merged.update(params or {})
        error = self.validate(merged)
        if error:
            raise ValidationError(f"{self.type.value}: {error}", details={"params": merged})
        return merged

    def score(self, history: Sequence[PriceBar], params: Optional[Mapping[str, Any]] = None) -> FactorScore:
        return self.evaluate(history, self.resolve_params(params))
