"""
Strategy evaluator: weighted composite of enabled factor scores -> BUY / SELL / HOLD.
"""

from __future__ import annotations
import logging
import math
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from algo_engine.core.config import DEFAULT_SIGNAL_THRESHOLD
from algo_engine.core.errors import ValidationError
from algo_engine.core.types import FactorConfig, FactorScore, PriceBar, Signal, SignalType, Strategy, utcnow
from algo_engine.factors import evaluate_factor, get_evaluator, validate_factor

logger = logging.getLogger("algo_engine.strategy")

HistoryProvider = Callable[[str], Sequence[PriceBar]]


@dataclass
class SignalBatch:
    """Signals for a strategy's universe plus per-symbol failures."""
    strategy_id: str
    signals: List[Signal] = field(default_factory=list)
    errors: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def actionable(self) -> List[Signal]:
        return [s for s in self.signals if s.is_actionable]


def validate_risk_config(strategy: Strategy) -> None:
    rm = strategy.risk_management
    if not 0 < rm.max_position_size <= 1:
        raise ValidationError("max_position_size must be a fraction in (0, 1]")
    if rm.max_positions < 1:
        raise ValidationError("max_positions must be at least 1")
    if not 0 < rm.stop_loss_percent < 1:
        raise ValidationError("stop_loss_percent must be a fraction in (0, 1)")
    if rm.take_profit_percent is not None and rm.take_profit_percent <= 0:
        raise ValidationError("take_profit_percent must be positive")
    if rm.daily_loss_limit is not None and rm.daily_loss_limit <= 0:
        raise ValidationError("daily_loss_limit must be positive")
    if rm.min_cash_reserve < 0:
        raise ValidationError("min_cash_reserve cannot be negative")


class StrategyEvaluator:
    """
    Composite = sum(w_i * score_i * confidence_i) / sum(w_i) over enabled, known factors.
    composite >= threshold -> BUY, <= -threshold -> SELL, otherwise HOLD.
    A strategy with no enabled factors always holds.
    """

    def __init__(self, threshold: float = DEFAULT_SIGNAL_THRESHOLD):
        if not 0 < threshold <= 1:
            raise ValidationError(f"signal threshold must be in (0, 1], got {threshold}")
        self.threshold = threshold

    def threshold_for(self, strategy: Strategy) -> float:
        return strategy.signal_threshold if strategy.signal_threshold is not None else self.threshold

    def validate(self, strategy: Strategy) -> None:
        """Raise ValidationError for any configuration problem. Runs before any broker call."""
        for f in strategy.factors:
            if not 0 <= f.weight <= 1:
                raise ValidationError(f"factor {f.label}: weight must be between 0 and 1")
            validate_factor(f)
        validate_risk_config(strategy)
        if strategy.enabled and not strategy.stock_universe:
            raise ValidationError(f"strategy {strategy.id} has an empty stock universe")
        if strategy.signal_threshold is not None and not 0 < strategy.signal_threshold <= 1:
            raise ValidationError("signal_threshold must be in (0, 1]")

    def _active_factors(self, strategy: Strategy) -> List[FactorConfig]:
        return [f for f in strategy.factors if f.enabled and get_evaluator(f.type) is not None]

    def evaluate(self, strategy: Strategy, symbol: str, history: Sequence[PriceBar]) -> Signal:
        """Evaluate one symbol. Validation errors from factor params propagate."""
        price = history[-1].close if history else None
        timestamp = history[-1].timestamp if history else utcnow()
        scored: List[Tuple[FactorConfig, FactorScore]] = []
        for f in strategy.factors:
            result = evaluate_factor(f, history)
            if result is not None:
                scored.append((f, result))

        total_weight = math.fsum(f.weight for f, _ in scored)
        if not scored or total_weight <= 0:
            return Signal(
                symbol=symbol, type=SignalType.HOLD, strength=0.0, composite=0.0,
                price=price, timestamp=timestamp,
                contributing_factors=tuple(s for _, s in scored),
                reasoning="No enabled factors" if not scored else "Enabled factors carry no weight",
            )

        composite = math.fsum(f.weight * s.weighted_score for f, s in scored) / total_weight
        tau = self.threshold_for(strategy)
        if composite >= tau:
            signal_type = SignalType.BUY
        elif composite <= -tau:
            signal_type = SignalType.SELL
        else:
            signal_type = SignalType.HOLD

        stop_loss = take_profit = None
        rm = strategy.risk_management
        if price is not None and signal_type == SignalType.BUY:
            stop_loss = price * (1 - rm.stop_loss_percent)
            if rm.take_profit_percent:
                take_profit = price * (1 + rm.take_profit_percent)
        elif price is not None and signal_type == SignalType.SELL:
            stop_loss = price * (1 + rm.stop_loss_percent)
            if rm.take_profit_percent:
                take_profit = price * (1 - rm.take_profit_percent)

        factors = tuple(s for _, s in scored)
        return Signal(
            symbol=symbol,
            type=signal_type,
            strength=min(1.0, abs(composite)),
            composite=composite,
            price=price,
            timestamp=timestamp,
            contributing_factors=factors,
            reasoning=self._reasoning(factors, composite),
            stop_loss=stop_loss,
            take_profit=take_profit,
        )

    def _reasoning(self, factors: Sequence[FactorScore], composite: float) -> str:
        top = sorted(factors, key=lambda f: abs(f.score), reverse=True)[:3]
        parts = [
            f"{f.name} ({'bullish' if f.score > 0 else 'bearish' if f.score < 0 else 'neutral'}, "
            f"{abs(f.score) * 100:.0f}%)"
            for f in top
        ]
        overall = "bullish" if composite > 0 else "bearish" if composite < 0 else "neutral"
        return f"Overall {overall} signal based on: {', '.join(parts)}"

    def generate_signals(self, strategy: Strategy, history_provider: HistoryProvider) -> SignalBatch:
        """Evaluate every symbol in the universe. One symbol failing never stops the rest."""
        batch = SignalBatch(strategy_id=strategy.id)
        for symbol in strategy.stock_universe:
            try:
                history = history_provider(symbol)
                batch.signals.append(self.evaluate(strategy, symbol, history))
            except Exception as e:
                logger.exception("Strategy %s: evaluation failed for %s", strategy.id, symbol)
                batch.errors.append((symbol, str(e)))
        return batch
