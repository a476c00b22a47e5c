"""
Technical factor variants: RSI, MACD, moving-average crossover, Bollinger %B.
"""

from __future__ import annotations
from typing import Any, Mapping, Optional, Sequence

from algo_engine.core.types import FactorScore, PriceBar
from algo_engine.factors.base import FactorType, clamp, insufficient, make_score
from algo_engine.indicators import technical as ind

RSI_DEFAULTS = {"period": 14, "oversold": 30, "overbought": 70}
MACD_DEFAULTS = {"fast": 12, "slow": 26, "signal": 9}
MA_CROSSOVER_DEFAULTS = {"short": 20, "long": 50}
BOLLINGER_DEFAULTS = {"period": 20, "std_dev": 2.0}


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _int_in_range(params: Mapping[str, Any], key: str, lo: int, hi: int) -> Optional[str]:
    v = params.get(key)
    if not _is_number(v) or int(v) != v or not lo <= v <= hi:
        return f"{key} must be an integer between {lo} and {hi}"
    return None


# --- RSI ---------------------------------------------------------------

def validate_rsi(params: Mapping[str, Any]) -> Optional[str]:
    err = _int_in_range(params, "period", 2, 100)
    if err:
        return err
    oversold, overbought = params.get("oversold"), params.get("overbought")
    if not _is_number(oversold) or not 0 <= oversold <= 50:
        return "oversold must be between 0 and 50"
    if not _is_number(overbought) or not 50 <= overbought <= 100:
        return "overbought must be between 50 and 100"
    if oversold >= overbought:
        return "oversold must be less than overbought"
    return None


def evaluate_rsi(history: Sequence[PriceBar], params: Mapping[str, Any]) -> FactorScore:
    """
    Contrarian RSI. Oversold scores 0.5..1, overbought -0.5..-1, the neutral band
    is linear in between with low confidence. Monotonic in RSI and continuous at the
    band edges.
    """
    period = int(params["period"])
    oversold = float(params["oversold"])
    overbought = float(params["overbought"])
    if len(history) < period + 1:
        return insufficient(FactorType.RSI, "Insufficient historical data for RSI calculation")
    value = ind.latest(ind.rsi(ind.closes(history), period))
    if value is None:
        return insufficient(FactorType.RSI, "Unable to calculate RSI")

    if value <= oversold:
        depth = (oversold - value) / oversold if oversold > 0 else 1.0
        score, confidence, zone = 0.5 + 0.5 * depth, 0.3 + 0.7 * depth, "oversold"
    elif value >= overbought:
        depth = (value - overbought) / (100 - overbought) if overbought < 100 else 1.0
        score, confidence, zone = -(0.5 + 0.5 * depth), 0.3 + 0.7 * depth, "overbought"
    else:
        mid = (oversold + overbought) / 2
        score, confidence, zone = (mid - value) / (overbought - oversold), 0.3, "neutral"

    return make_score(
        FactorType.RSI, score, confidence,
        rsi=value, period=period, oversold=oversold, overbought=overbought, interpretation=zone,
    )


# --- MACD --------------------------------------------------------------

def validate_macd(params: Mapping[str, Any]) -> Optional[str]:
    err = (
        _int_in_range(params, "fast", 2, 50)
        or _int_in_range(params, "slow", 2, 100)
        or _int_in_range(params, "signal", 2, 50)
    )
    if err:
        return err
    if params["fast"] >= params["slow"]:
        return "fast must be less than slow"
    return None


def evaluate_macd(history: Sequence[PriceBar], params: Mapping[str, Any]) -> FactorScore:
    """Histogram sign change is a crossover (+/-0.8); otherwise histogram scaled by its largest magnitude."""
    fast, slow, signal = int(params["fast"]), int(params["slow"]), int(params["signal"])
    prices = ind.closes(history)
    if len(prices) < slow + signal:
        return insufficient(FactorType.MACD, "Insufficient historical data for MACD calculation")
    result = ind.macd(prices, fast, slow, signal)
    line = ind.latest(result.macd)
    sig = ind.latest(result.signal)
    hist = ind.latest(result.histogram)
    prev_hist = ind.value_at(result.histogram, -2)
    if line is None or sig is None or hist is None:
        return insufficient(FactorType.MACD, "Unable to calculate MACD")

    score, confidence, crossover = 0.0, 0.5, "none"
    if prev_hist is not None:
        if prev_hist <= 0 < hist:
            score, confidence, crossover = 0.8, 0.9, "bullish"
        elif prev_hist >= 0 > hist:
            score, confidence, crossover = -0.8, 0.9, "bearish"
    if crossover == "none":
        max_abs = max((abs(h) for h in ind.ready_values(result.histogram)), default=0.0)
        if max_abs > 0:
            score = hist / max_abs
            confidence = min(0.7, abs(score))

    avg_price = sum(prices) / len(prices)
    if avg_price > 0:
        confidence = min(1.0, confidence + abs(line - sig) / avg_price * 10)

    interpretation = "bullish momentum" if hist > 0 else "bearish momentum" if hist < 0 else "neutral"
    return make_score(
        FactorType.MACD, score, confidence,
        macd=line, signal=sig, histogram=hist, crossover=crossover, interpretation=interpretation,
    )


# --- Moving-average crossover -----------------------------------------

def validate_ma_crossover(params: Mapping[str, Any]) -> Optional[str]:
    err = _int_in_range(params, "short", 2, 200) or _int_in_range(params, "long", 2, 500)
    if err:
        return err
    if params["short"] >= params["long"]:
        return "short must be less than long"
    return None


def evaluate_ma_crossover(history: Sequence[PriceBar], params: Mapping[str, Any]) -> FactorScore:
    """
    Golden/death cross of SMA(short) over SMA(long) scores +/-0.9. Without a cross the
    score is the percentage gap between the averages over 10%, strengthened when the
    last close confirms the trend and less confident when it sits between them.
    """
    short_p, long_p = int(params["short"]), int(params["long"])
    prices = ind.closes(history)
    if len(prices) < long_p:
        return insufficient(FactorType.MA_CROSSOVER, "Insufficient historical data for MA calculation")
    short_ma = ind.sma(prices, short_p)
    long_ma = ind.sma(prices, long_p)
    cur_short, cur_long = ind.latest(short_ma), ind.latest(long_ma)
    prev_short, prev_long = ind.value_at(short_ma, -2), ind.value_at(long_ma, -2)
    if cur_short is None or cur_long is None or cur_long == 0:
        return insufficient(FactorType.MA_CROSSOVER, "Unable to calculate moving averages")
    price = prices[-1]
    ma_diff = (cur_short - cur_long) / cur_long * 100

    score, confidence, crossover = 0.0, 0.5, "none"
    if prev_short is not None and prev_long is not None:
        was_below = prev_short <= prev_long
        is_above = cur_short > cur_long
        if was_below and is_above:
            score, confidence, crossover = 0.9, 0.95, "golden"
        elif not was_below and not is_above:
            score, confidence, crossover = -0.9, 0.95, "death"

    if crossover == "none":
        score = clamp(ma_diff / 10)
        confidence = min(0.8, abs(ma_diff) / 10)
        above_short, above_long = price > cur_short, price > cur_long
        if above_short and above_long and score > 0:
            score = min(1.0, score * 1.2)
            confidence = min(1.0, confidence * 1.1)
        elif not above_short and not above_long and score < 0:
            score = max(-1.0, score * 1.2)
            confidence = min(1.0, confidence * 1.1)
        elif above_short != above_long:
            confidence *= 0.7

    if price > cur_short and price > cur_long:
        position = "above both"
    elif price < cur_short and price < cur_long:
        position = "below both"
    else:
        position = "between"
    return make_score(
        FactorType.MA_CROSSOVER, score, confidence,
        short_ma=cur_short, long_ma=cur_long, ma_diff=ma_diff, crossover=crossover, price_position=position,
    )


# --- Bollinger %B ------------------------------------------------------

def validate_bollinger(params: Mapping[str, Any]) -> Optional[str]:
    err = _int_in_range(params, "period", 2, 200)
    if err:
        return err
    k = params.get("std_dev")
    if not _is_number(k) or not 0 < k <= 5:
        return "std_dev must be greater than 0 and at most 5"
    return None


def evaluate_bollinger(history: Sequence[PriceBar], params: Mapping[str, Any]) -> FactorScore:
    """Mean reversion on %B: at the lower band scores +1, at the upper band -1."""
    period, k = int(params["period"]), float(params["std_dev"])
    prices = ind.closes(history)
    if len(prices) < period:
        return insufficient(FactorType.BOLLINGER, "Insufficient historical data for Bollinger Bands")
    bands = ind.bollinger_bands(prices, period, k)
    upper, middle, lower = ind.latest(bands.upper), ind.latest(bands.middle), ind.latest(bands.lower)
    if upper is None or middle is None or lower is None:
        return insufficient(FactorType.BOLLINGER, "Unable to calculate Bollinger Bands")
    width = upper - lower
    if width <= 0:
        return make_score(FactorType.BOLLINGER, 0.0, 0.0, upper=upper, middle=middle, lower=lower, percent_b=0.5)
    percent_b = (prices[-1] - lower) / width
    score = clamp(1 - 2 * percent_b)
    return make_score(
        FactorType.BOLLINGER, score, abs(score),
        upper=upper, middle=middle, lower=lower, percent_b=percent_b,
    )
