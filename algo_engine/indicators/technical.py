"""
Technical indicators: SMA, EMA, RSI, MACD, Bollinger Bands, ATR.

Every function returns a list aligned 1:1 with its input. Positions inside the
warm-up window hold WARMING_UP; the rest hold Ready(value). NaN is used only
inside this module and never escapes it.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from algo_engine.core.errors import ValidationError
from algo_engine.core.types import PriceBar


@dataclass(frozen=True)
class Ready:
    """Indicator value past its warm-up window."""
    value: float


class WarmingUp:
    """Not enough history yet. Use the WARMING_UP singleton."""

    _instance: Optional["WarmingUp"] = None

    def __new__(cls) -> "WarmingUp":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "WARMING_UP"


WARMING_UP = WarmingUp()

IndicatorValue = Union[Ready, WarmingUp]
IndicatorSeries = List[IndicatorValue]


@dataclass(frozen=True)
class MACDResult:
    macd: IndicatorSeries
    signal: IndicatorSeries
    histogram: IndicatorSeries


@dataclass(frozen=True)
class BollingerBands:
    upper: IndicatorSeries
    middle: IndicatorSeries
    lower: IndicatorSeries


def _check_period(period: int, name: str = "period") -> None:
    if not isinstance(period, (int, np.integer)) or isinstance(period, bool) or period < 1:
        raise ValidationError(f"{name} must be a positive integer, got {period!r}")


def _to_array(prices: Sequence[float]) -> np.ndarray:
    return np.asarray(list(prices), dtype=float)


def _to_series(values: np.ndarray) -> IndicatorSeries:
    return [WARMING_UP if np.isnan(v) else Ready(float(v)) for v in values]


def _ema_array(values: np.ndarray, period: int) -> np.ndarray:
    """EMA seeded with the SMA of the first `period` non-NaN values. Leading NaN are skipped."""
    out = np.full(len(values), np.nan)
    valid = np.flatnonzero(~np.isnan(values))
    if len(valid) < period:
        return out
    start = int(valid[0])
    seed_idx = start + period - 1
    out[seed_idx] = values[start:seed_idx + 1].mean()
    k = 2.0 / (period + 1)
    for i in range(seed_idx + 1, len(values)):
        out[i] = (values[i] - out[i - 1]) * k + out[i - 1]
    return out


def sma(prices: Sequence[float], period: int) -> IndicatorSeries:
    """Simple moving average; ready from index period-1."""
    _check_period(period)
    arr = _to_array(prices)
    return _to_series(pd.Series(arr, dtype=float).rolling(period).mean().to_numpy())


def ema(prices: Sequence[float], period: int) -> IndicatorSeries:
    """Exponential moving average seeded with SMA(period) at index period-1."""
    _check_period(period)
    return _to_series(_ema_array(_to_array(prices), period))


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    # No losses in the window saturates at 100, flat series included.
    if avg_loss == 0:
        return 100.0
    return 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)


def rsi(prices: Sequence[float], period: int = 14) -> IndicatorSeries:
    """
    Wilder RSI. The seed is the mean of the first `period` price changes, so the
    first ready value sits at index `period` (one bar later than SMA/EMA).
    """
    _check_period(period)
    arr = _to_array(prices)
    out = np.full(len(arr), np.nan)
    if len(arr) <= period:
        return _to_series(out)
    deltas = np.diff(arr)
    gains = np.clip(deltas, 0, None)
    losses = np.clip(-deltas, 0, None)
    avg_gain = float(gains[:period].mean())
    avg_loss = float(losses[:period].mean())
    out[period] = _rsi_value(avg_gain, avg_loss)
    for i in range(period + 1, len(arr)):
        avg_gain = (avg_gain * (period - 1) + gains[i - 1]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i - 1]) / period
        out[i] = _rsi_value(avg_gain, avg_loss)
    return _to_series(out)


def macd(prices: Sequence[float], fast: int = 12, slow: int = 26, signal: int = 9) -> MACDResult:
    """MACD line, signal line (EMA of the MACD tail starting at slow-1) and histogram."""
    _check_period(fast, "fast")
    _check_period(slow, "slow")
    _check_period(signal, "signal")
    arr = _to_array(prices)
    line = _ema_array(arr, fast) - _ema_array(arr, slow)
    sig = _ema_array(line, signal)
    return MACDResult(macd=_to_series(line), signal=_to_series(sig), histogram=_to_series(line - sig))


def bollinger_bands(prices: Sequence[float], period: int = 20, k: float = 2.0) -> BollingerBands:
    """Middle = SMA(period); bands = middle +/- k * population std of the trailing window."""
    _check_period(period)
    if k <= 0:
        raise ValidationError(f"std_dev multiplier must be positive, got {k!r}")
    s = pd.Series(_to_array(prices), dtype=float)
    middle = s.rolling(period).mean()
    std = s.rolling(period).std(ddof=0)
    return BollingerBands(
        upper=_to_series((middle + k * std).to_numpy()),
        middle=_to_series(middle.to_numpy()),
        lower=_to_series((middle - k * std).to_numpy()),
    )


def true_range(bars: Sequence[PriceBar]) -> List[float]:
    """TR[0] = high - low; afterwards the max of the three classic ranges."""
    out: List[float] = []
    prev_close: Optional[float] = None
    for b in bars:
        if prev_close is None:
            out.append(b.high - b.low)
        else:
            out.append(max(b.high - b.low, abs(b.high - prev_close), abs(b.low - prev_close)))
        prev_close = b.close
    return out


def atr(bars: Sequence[PriceBar], period: int = 14) -> IndicatorSeries:
    """Average true range: EMA(period) of the true-range series."""
    _check_period(period)
    return _to_series(_ema_array(np.asarray(true_range(bars), dtype=float), period))


def closes(bars: Sequence[PriceBar]) -> List[float]:
    return [b.close for b in bars]


def is_ready(value: IndicatorValue) -> bool:
    return isinstance(value, Ready)


def value_at(series: IndicatorSeries, index: int) -> Optional[float]:
    """Value at index (negative allowed), or None when warming up or out of range."""
    try:
        v = series[index]
    except IndexError:
        return None
    return v.value if isinstance(v, Ready) else None


def latest(series: IndicatorSeries) -> Optional[float]:
    return value_at(series, -1)


def ready_values(series: IndicatorSeries) -> List[float]:
    return [v.value for v in series if isinstance(v, Ready)]
