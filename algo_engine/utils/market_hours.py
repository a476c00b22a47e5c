"""US equity regular trading hours (09:30-16:00 New York, weekdays). Exchange holidays are not modelled."""

from __future__ import annotations
from datetime import datetime, time, timezone
from typing import Optional
from zoneinfo import ZoneInfo

MARKET_TZ = ZoneInfo("America/New_York")
MARKET_OPEN = time(9, 30)
MARKET_CLOSE = time(16, 0)


def is_market_open(now: Optional[datetime] = None) -> bool:
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local = now.astimezone(MARKET_TZ)
    if local.weekday() >= 5:
        return False
    return MARKET_OPEN <= local.time() < MARKET_CLOSE


def trading_day(now: Optional[datetime] = None):
    """Calendar date of `now` in the market's time zone (the daily-loss reset boundary)."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(MARKET_TZ).date()


def start_of_trading_day(now: Optional[datetime] = None) -> datetime:
    """Midnight New York time of the current trading day, as an aware datetime."""
    day = trading_day(now)
    return datetime(day.year, day.month, day.day, tzinfo=MARKET_TZ)
