"""Unit tests for the strategy evaluator (composite scoring and signal generation)."""

import dataclasses

import pytest

from algo_engine.core.errors import ValidationError
from algo_engine.core.types import FactorConfig, RiskManagementConfig, SignalType, Strategy
from algo_engine.strategies.evaluator import StrategyEvaluator
from conftest import bars_from_closes, uptrend


def _strategy(factors, **kwargs):
    return Strategy(id="s1", portfolio_id="p1", name="test", factors=factors, stock_universe=["AAA"], **kwargs)


MIXED_FACTORS = [
    FactorConfig(type="RSI", weight=0.3),
    FactorConfig(type="MACD", weight=0.3),
    FactorConfig(type="MA_Crossover", weight=0.4, params={"short": 5, "long": 10}),
    FactorConfig(type="Bollinger", weight=0.2),
]


@pytest.mark.parametrize("closes", [
    uptrend(),
    uptrend(growth=0.97),
    [100.0] * 40,
    [],
])
def test_no_factors_always_holds(closes):
    signal = StrategyEvaluator().evaluate(_strategy([]), "AAA", bars_from_closes(closes))
    assert signal.type is SignalType.HOLD
    assert signal.strength == 0.0
    assert signal.composite == 0.0


def test_disabled_and_unknown_factors_hold():
    factors = [FactorConfig(type="RSI", weight=1.0, enabled=False), FactorConfig(type="Sentiment", weight=1.0)]
    signal = StrategyEvaluator().evaluate(_strategy(factors), "AAA", bars_from_closes(uptrend()))
    assert signal.type is SignalType.HOLD
    assert signal.strength == 0.0


def test_zero_weight_holds():
    factors = [FactorConfig(type="MA_Crossover", weight=0.0, params={"short": 5, "long": 10})]
    signal = StrategyEvaluator().evaluate(_strategy(factors), "AAA", bars_from_closes(uptrend()))
    assert signal.type is SignalType.HOLD


def test_uptrend_buy_with_exit_levels():
    factors = [FactorConfig(type="MA_Crossover", weight=1.0, params={"short": 5, "long": 10})]
    bars = bars_from_closes(uptrend())
    signal = StrategyEvaluator(0.3).evaluate(_strategy(factors), "AAA", bars)
    assert signal.type is SignalType.BUY
    assert signal.composite == pytest.approx(0.885 * 0.811, abs=0.02)
    assert 0.0 <= signal.strength <= 1.0
    assert signal.price == bars[-1].close
    assert signal.stop_loss == pytest.approx(bars[-1].close * 0.95)
    assert signal.take_profit == pytest.approx(bars[-1].close * 1.15)
    assert "MA_Crossover" in signal.reasoning


def test_downtrend_sell():
    factors = [FactorConfig(type="MA_Crossover", weight=1.0, params={"short": 5, "long": 10})]
    signal = StrategyEvaluator().evaluate(_strategy(factors), "AAA", bars_from_closes(uptrend(growth=0.97)))
    assert signal.type is SignalType.SELL
    assert signal.composite < 0
    assert signal.stop_loss > signal.price


def test_threshold_gates_signal():
    factors = [FactorConfig(type="MA_Crossover", weight=1.0, params={"short": 5, "long": 10})]
    bars = bars_from_closes(uptrend())
    assert StrategyEvaluator(0.95).evaluate(_strategy(factors), "AAA", bars).type is SignalType.HOLD
    strict = _strategy(factors, signal_threshold=0.95)
    assert StrategyEvaluator(0.3).evaluate(strict, "AAA", bars).type is SignalType.HOLD


def test_composite_independent_of_factor_order():
    bars = bars_from_closes(uptrend(60, growth=1.01))
    evaluator = StrategyEvaluator()
    forward = evaluator.evaluate(_strategy(MIXED_FACTORS), "AAA", bars)
    backward = evaluator.evaluate(_strategy(list(reversed(MIXED_FACTORS))), "AAA", bars)
    rotated = evaluator.evaluate(_strategy(MIXED_FACTORS[2:] + MIXED_FACTORS[:2]), "AAA", bars)
    assert forward.composite == backward.composite == rotated.composite
    assert forward.type is backward.type


def test_composite_is_weighted_mean():
    bars = bars_from_closes(uptrend(60, growth=1.01))
    signal = StrategyEvaluator().evaluate(_strategy(MIXED_FACTORS), "AAA", bars)
    weights = [f.weight for f in MIXED_FACTORS]
    expected = sum(w * s.score * s.confidence for w, s in zip(weights, signal.contributing_factors)) / sum(weights)
    assert signal.composite == pytest.approx(expected)


def test_signal_is_deterministic():
    bars = bars_from_closes(uptrend(60, growth=1.01))
    evaluator = StrategyEvaluator()
    assert evaluator.evaluate(_strategy(MIXED_FACTORS), "AAA", bars) == evaluator.evaluate(
        _strategy(MIXED_FACTORS), "AAA", bars
    )


@pytest.mark.parametrize("change", [
    {"factors": [FactorConfig(type="RSI", weight=1.5)]},
    {"factors": [FactorConfig(type="RSI", weight=0.5, params={"period": 0})]},
    {"stock_universe": []},
    {"risk_management": RiskManagementConfig(max_position_size=0)},
    {"risk_management": RiskManagementConfig(stop_loss_percent=1.5)},
    {"signal_threshold": 0.0},
])
def test_validate_rejects_bad_config(change):
    strategy = dataclasses.replace(_strategy(MIXED_FACTORS), **change)
    with pytest.raises(ValidationError):
        StrategyEvaluator().validate(strategy)


def test_validate_accepts_good_config():
    StrategyEvaluator().validate(_strategy(MIXED_FACTORS))


def test_threshold_bounds():
    with pytest.raises(ValidationError):
        StrategyEvaluator(0)
    with pytest.raises(ValidationError):
        StrategyEvaluator(1.5)


def test_generate_signals_isolates_symbol_failures():
    strategy = dataclasses.replace(_strategy(MIXED_FACTORS), stock_universe=["AAA", "BAD", "CCC"])

    def history(symbol):
        if symbol == "BAD":
            raise RuntimeError("no data")
        return bars_from_closes(uptrend())

    batch = StrategyEvaluator().generate_signals(strategy, history)
    assert [s.symbol for s in batch.signals] == ["AAA", "CCC"]
    assert batch.errors == [("BAD", "no data")]
