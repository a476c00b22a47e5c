"""
Price history loading: CSV files (one per symbol) or a deterministic synthetic walk.
Frames use the columns time, open, high, low, close, volume.
"""

from __future__ import annotations
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from algo_engine.core.types import PriceBar

logger = logging.getLogger("algo_engine.utils.data")

OHLCV = ("open", "high", "low", "close", "volume")
_ALIASES = {"o": "open", "h": "high", "l": "low", "c": "close", "v": "volume", "vol": "volume"}


def load_price_csv(path: str | Path) -> pd.DataFrame:
    """Read a CSV with a date/time column plus OHLC(V). Sorted by time, lowercase columns."""
    df = pd.read_csv(path)
    df.columns = [str(c).lower().strip() for c in df.columns]
    df = df.rename(columns={k: v for k, v in _ALIASES.items() if k in df.columns})
    time_col = next((c for c in ("time", "timestamp", "date", "datetime") if c in df.columns), df.columns[0])
    df["time"] = pd.to_datetime(df[time_col], utc=True)
    if "volume" not in df.columns:
        df["volume"] = 0.0
    missing = [c for c in ("open", "high", "low", "close") if c not in df.columns]
    if missing:
        raise ValueError(f"{path}: missing columns {missing}")
    df[list(OHLCV)] = df[list(OHLCV)].astype(float)
    return df[["time", *OHLCV]].sort_values("time").reset_index(drop=True)


def bars_from_frame(df: pd.DataFrame) -> List[PriceBar]:
    return [
        PriceBar(
            timestamp=pd.Timestamp(row.time).to_pydatetime(),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
        )
        for row in df.itertuples(index=False)
    ]


def synthetic_frame(
    symbol: str,
    bars: int = 120,
    start_price: Optional[float] = None,
    end: Optional[datetime] = None,
) -> pd.DataFrame:
    """Reproducible daily random walk seeded from the symbol."""
    seed = sum(ord(c) for c in symbol)
    rng = np.random.default_rng(seed)
    price0 = start_price or 50.0 + seed % 400
    returns = rng.normal(0.0005, 0.02, bars)
    close = price0 * np.cumprod(1 + returns)
    open_ = np.concatenate([[price0], close[:-1]])
    spread = np.abs(rng.normal(0, 0.01, bars)) * close
    end = end or datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    times = [end - timedelta(days=bars - 1 - i) for i in range(bars)]
    return pd.DataFrame({
        "time": pd.to_datetime(times, utc=True),
        "open": open_,
        "high": np.maximum(open_, close) + spread,
        "low": np.minimum(open_, close) - spread,
        "close": close,
        "volume": rng.integers(100_000, 1_000_000, bars).astype(float),
    })


class HistoryLoader:
    """
    Callable symbol -> List[PriceBar]. Reads `<directory>/<SYMBOL>.csv` when a directory is
    given and the file exists, otherwise falls back to the synthetic walk. Cached per symbol.
    """

    def __init__(self, directory: Optional[Path] = None, limit: int = 300, synthetic_bars: int = 120):
        self.directory = Path(directory) if directory else None
        self.limit = limit
        self.synthetic_bars = synthetic_bars
        self._cache: Dict[str, List[PriceBar]] = {}

    def frame(self, symbol: str) -> pd.DataFrame:
        if self.directory is not None:
            path = self.directory / f"{symbol.upper()}.csv"
            if path.exists():
                return load_price_csv(path).tail(self.limit).reset_index(drop=True)
            logger.warning("No price file for %s in %s, using synthetic history", symbol, self.directory)
        return synthetic_frame(symbol, self.synthetic_bars)

    def __call__(self, symbol: str) -> List[PriceBar]:
        if symbol not in self._cache:
            self._cache[symbol] = bars_from_frame(self.frame(symbol))
        return self._cache[symbol]
