"""Indicators: pure functions over price series."""

from algo_engine.indicators.technical import (
    Ready,
    WarmingUp,
    WARMING_UP,
    IndicatorSeries,
    MACDResult,
    BollingerBands,
    sma,
    ema,
    rsi,
    macd,
    bollinger_bands,
    true_range,
    atr,
    closes,
    is_ready,
    value_at,
    latest,
    ready_values,
)

__all__ = [
    "Ready",
    "WarmingUp",
    "WARMING_UP",
    "IndicatorSeries",
    "MACDResult",
    "BollingerBands",
    "sma",
    "ema",
    "rsi",
    "macd",
    "bollinger_bands",
    "true_range",
    "atr",
    "closes",
    "is_ready",
    "value_at",
    "latest",
    "ready_values",
]
