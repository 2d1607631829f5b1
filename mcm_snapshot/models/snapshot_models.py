"""
MCM Snapshot - Snapshot Models
Pydantic models for session resolution, per-symbol signals and the assembled snapshot.
Wire names (perfHigh, _meta, meta.previous_close) are the ones the dashboard and coach read.
"""

from datetime import date
from typing import Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum


class SessionLabel(str, Enum):
    """Market session enumeration"""
    RTH = "RTH"  # Regular trading hours
    ETH = "ETH"  # Everything else, weekends included


class SessionInfo(BaseModel):
    """Market-timezone calendar breakdown of one timestamp (never persisted)"""
    market_date: date
    hhmm: str  # "HH:MM"
    dow: str  # "Mon", "Tue", ...
    hour: int = Field(ge=0, le=23)
    minute: int = Field(ge=0, le=59)

    @property
    def ymd(self) -> str:
        return self.market_date.isoformat()


class SessionClassification(BaseModel):
    """Session label plus its refresh cadence (also the cache bucket width)"""
    label: SessionLabel
    cadence_seconds: int = Field(gt=0)

    @property
    def is_rth(self) -> bool:
        return self.label == SessionLabel.RTH


class ResolvedSession(BaseModel):
    """Output of the session resolver for one timestamp"""
    info: SessionInfo
    classification: SessionClassification
    epoch_seconds: float

    @property
    def bucket(self) -> int:
        """Time bucket index: floor(now / cadence)"""
        return int(self.epoch_seconds // self.classification.cadence_seconds)


class Reversal(BaseModel):
    """Reversal confirmation with a human-readable threshold explanation"""
    confirmed: bool = False
    detail: str


class WindowSignals(BaseModel):
    """Derived metrics for one session window (RTH or ETH)"""
    model_config = ConfigDict(populate_by_name=True)

    high: Optional[float] = None
    perf_high: Optional[float] = Field(default=None, alias="perfHigh")
    reversal: Reversal


class ExtendedWindowSignals(WindowSignals):
    """ETH window; `available` flags whether the window could be computed"""
    available: bool = True


class SymbolMeta(BaseModel):
    previous_close: Optional[float] = None


class SymbolSnapshot(BaseModel):
    """Fully (or partially) populated per-symbol entry"""
    model_config = ConfigDict(populate_by_name=True)

    symbol: str
    name: str
    baseline: Optional[float] = None
    last: Optional[float] = None
    asof_market: Optional[str] = None
    asof_local: Optional[str] = None
    meta: SymbolMeta = Field(default_factory=SymbolMeta)
    rth: WindowSignals
    eth: ExtendedWindowSignals
    # Sub-fetch failures that degraded (but did not void) this entry
    warnings: List[str] = Field(default_factory=list)


class SymbolError(BaseModel):
    """Error marker: every upstream fetch for this symbol failed"""
    symbol: str
    error: str


SymbolEntry = Union[SymbolSnapshot, SymbolError]


class SnapshotMeta(BaseModel):
    """Snapshot-level metadata (serialized under `_meta`)"""
    asof_local: str
    asof_market: str
    session: SessionLabel
    cadence_rth: str
    cadence_eth: str
    bucket: int
    symbols: List[str] = Field(default_factory=list)
    note: str = "Signals update from cached snapshots (credits-aware)."
    source: str = "twelvedata"


class Snapshot(BaseModel):
    """Assembled snapshot. Immutable once built; cached as an opaque JSON blob."""
    model_config = ConfigDict(frozen=True)

    meta: SnapshotMeta
    entries: Dict[str, SymbolEntry]

    def to_payload(self) -> dict:
        """Flatten to the wire shape: {"_meta": {...}, "MSFT": {...}, ...}"""
        payload = {"_meta": self.meta.model_dump(mode="json")}
        for symbol, entry in self.entries.items():
            payload[symbol] = entry.model_dump(mode="json", by_alias=True)
        return payload


class CoachSummary(BaseModel):
    """Narrative summary produced from a snapshot"""
    asof_local: Optional[str] = None
    asof_market: Optional[str] = None
    session: Optional[str] = None
    symbols: List[str] = Field(default_factory=list)
    model: str
    text: List[str] = Field(default_factory=list)
