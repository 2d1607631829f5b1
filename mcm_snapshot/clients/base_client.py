"""
MCM Snapshot - Base Quote Client Interface
Common interface for upstream quote/time-series providers.

Every fetch returns a value: data on success, FetchError on any failure.
Nothing raises past a client method, so one symbol cannot abort a batch.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union


@dataclass(frozen=True)
class FetchError:
    """Per-call error marker (string reason)"""
    reason: str


@dataclass
class QuoteData:
    """Current quote: last traded price and previous close (both optional)"""
    last: Optional[float]
    prev_close: Optional[float]
    asof_market: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SeriesData:
    """Recent intraday candles as returned upstream: [{datetime, open, high, low, close, volume}, ...]"""
    values: List[Dict[str, Any]]
    meta: Optional[Dict[str, Any]] = None


QuoteResult = Union[QuoteData, FetchError]
SeriesResult = Union[SeriesData, FetchError]


class BaseQuoteClient(ABC):
    """Base interface for quote providers"""

    source: str = "unknown"

    def normalize_symbol(self, symbol: str) -> str:
        """
        Optional: Normalize symbol format for provider-specific requirements.
        Default implementation upper-cases and strips.
        """
        return symbol.strip().upper()

    @abstractmethod
    async def fetch_quote(self, symbol: str) -> QuoteResult:
        """
        Get the current quote for a symbol.

        Returns:
            QuoteData, or FetchError on non-success status, error payload,
            malformed payload or transport failure
        """

    @abstractmethod
    async def fetch_time_series(
        self,
        symbol: str,
        interval: str = "5min",
        outputsize: int = 300,
    ) -> SeriesResult:
        """
        Get recent intraday candles for a symbol.

        Returns:
            SeriesData, or FetchError (same failure policy as fetch_quote)
        """

    async def fetch_symbol(
        self,
        symbol: str,
        interval: str = "5min",
        outputsize: int = 300,
    ) -> Tuple[QuoteResult, SeriesResult]:
        """Issue both sub-fetches concurrently"""
        quote, series = await asyncio.gather(
            self.fetch_quote(symbol),
            self.fetch_time_series(symbol, interval, outputsize),
        )
        return quote, series

    async def close(self) -> None:
        pass

    def healthcheck(self) -> Dict:
        """
        Configuration-level health (no upstream call, to spare rate-limited credits).

        Returns:
            Dict with status ("healthy" | "unhealthy"), provider, message
        """
        return {"status": "healthy", "provider": self.source, "message": "ok"}
