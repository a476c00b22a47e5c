"""Utils: Telegram, cadences, market hours, price history loading."""

from algo_engine.utils.telegram import send_telegram
from algo_engine.utils.cadence import cadence_minutes
from algo_engine.utils.market_hours import is_market_open, trading_day, start_of_trading_day
from algo_engine.utils.data import load_price_csv, bars_from_frame, synthetic_frame, HistoryLoader

__all__ = [
    "send_telegram",
    "cadence_minutes",
    "is_market_open",
    "trading_day",
    "start_of_trading_day",
    "load_price_csv",
    "bars_from_frame",
    "synthetic_frame",
    "HistoryLoader",
]
