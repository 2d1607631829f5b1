"""
MCM Snapshot - Session Service
Resolves wall-clock time to market-local calendar fields, classifies the session
(RTH vs ETH) with its refresh cadence, and derives the time-bucketed cache key.
"""

from datetime import datetime, time
from typing import Iterable, List, Optional

from mcm_snapshot.models.snapshot_models import (
    ResolvedSession, SessionClassification, SessionInfo, SessionLabel,
)
from mcm_snapshot.utils.time_utils import RTH_CLOSE, RTH_OPEN, epoch_seconds, now_utc, to_market

DAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
WEEKDAYS = DAY_NAMES[:5]

DEFAULT_MAX_SYMBOLS = 50


class SessionService:
    """Clock/session resolver. Pure given its input and the timezone database."""

    def __init__(self, rth_cadence_seconds: int = 5 * 60, eth_cadence_seconds: int = 60 * 60):
        self.rth_cadence_seconds = rth_cadence_seconds
        self.eth_cadence_seconds = eth_cadence_seconds

    @staticmethod
    def session_info(when: Optional[datetime] = None) -> SessionInfo:
        """Market-timezone breakdown of `when` (default: now), whatever the caller's local zone"""
        dt_et = to_market(when)
        return SessionInfo(
            market_date=dt_et.date(),
            hhmm=f"{dt_et.hour:02d}:{dt_et.minute:02d}",
            dow=DAY_NAMES[dt_et.weekday()],
            hour=dt_et.hour,
            minute=dt_et.minute,
        )

    @staticmethod
    def is_rth(info: SessionInfo) -> bool:
        """Mon–Fri and 09:30 <= HH:MM <= 16:00 market-local"""
        if info.dow not in WEEKDAYS:
            return False
        return RTH_OPEN <= time(info.hour, info.minute) <= RTH_CLOSE

    def classify(self, info: SessionInfo) -> SessionClassification:
        if self.is_rth(info):
            return SessionClassification(label=SessionLabel.RTH, cadence_seconds=self.rth_cadence_seconds)
        return SessionClassification(label=SessionLabel.ETH, cadence_seconds=self.eth_cadence_seconds)

    def resolve(self, when: Optional[datetime] = None) -> ResolvedSession:
        if when is None:
            when = now_utc()
        info = self.session_info(when)
        return ResolvedSession(
            info=info,
            classification=self.classify(info),
            epoch_seconds=epoch_seconds(when),
        )


def parse_symbols(raw: Optional[str], max_symbols: int = DEFAULT_MAX_SYMBOLS) -> List[str]:
    """
    Parse a comma-separated, case-insensitive symbol list.
    Trims, upper-cases, drops empties and duplicates (first occurrence wins), caps at max_symbols.
    """
    return normalize_symbols((raw or "").split(","), max_symbols)


def normalize_symbols(symbols: Iterable[str], max_symbols: int = DEFAULT_MAX_SYMBOLS) -> List[str]:
    out: List[str] = []
    for s in symbols:
        sym = (s or "").strip().upper()
        if sym and sym not in out:
            out.append(sym)
    return out[:max_symbols]


def build_snapshot_key(resolved: ResolvedSession, symbols: List[str], prefix: str = "") -> str:
    """
    Cache key: <prefix>snapshot:<date>:<session>:<bucket>:<SYM1,SYM2,...>

    Identical for every call inside one cadence window with the same symbol set;
    the next window produces a different bucket index.
    """
    return (
        f"{prefix}snapshot:{resolved.info.ymd}:{resolved.classification.label.value}:"
        f"{resolved.bucket}:{','.join(symbols)}"
    )
