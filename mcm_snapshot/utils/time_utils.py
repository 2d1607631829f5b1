"""
MCM Snapshot - Time Utilities
Handles timezone conversions and market-local calendar fields
"""

from datetime import datetime, time
from typing import Optional
import pytz

# Cache timezone objects (pytz caches internally, but avoid repeated lookups)
_MARKET_TZ = pytz.timezone("America/New_York")
_UTC_TZ = pytz.timezone("UTC")

# US regular session, market-local, both bounds inclusive at minute resolution
RTH_OPEN = time(9, 30)
RTH_CLOSE = time(16, 0)


def get_market_tz() -> pytz.BaseTzInfo:
    """Get market timezone (ET/New York) - cached instance"""
    return _MARKET_TZ


def get_utc_tz() -> pytz.BaseTzInfo:
    """Get UTC timezone - cached instance"""
    return _UTC_TZ


def _as_utc_if_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return get_utc_tz().localize(dt)
    return dt


def now_utc() -> datetime:
    """Get current time in UTC"""
    return datetime.now(get_utc_tz())


def to_market(dt: Optional[datetime] = None) -> datetime:
    """
    Convert a timestamp to market-local time (DST handled by the tz database).
    Naive datetimes are treated as UTC (wall-clock "now" semantics), not as market-local.
    """
    if dt is None:
        return datetime.now(get_market_tz())
    return _as_utc_if_naive(dt).astimezone(get_market_tz())


def epoch_seconds(dt: datetime) -> float:
    """Unix epoch seconds for an aware (or UTC-naive) datetime"""
    return _as_utc_if_naive(dt).timestamp()


def format_market_stamp(dt: datetime) -> str:
    """Format as 'YYYY-MM-DD HH:MM NY' in market time"""
    return f"{to_market(dt).strftime('%Y-%m-%d %H:%M')} NY"


def format_local_stamp(dt: datetime) -> str:
    """Format in the server's local timezone"""
    return _as_utc_if_naive(dt).astimezone().strftime("%Y-%m-%d %H:%M:%S %Z")
