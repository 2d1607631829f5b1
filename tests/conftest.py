"""Shared fixtures for mcm_snapshot tests."""

from datetime import datetime
from typing import Dict, List, Optional

import pytest
import pytz

from mcm_snapshot.clients.base_client import (
    BaseQuoteClient, FetchError, QuoteData, QuoteResult, SeriesData, SeriesResult,
)
from mcm_snapshot.config import Settings
from mcm_snapshot.storage.kv_store import MemoryKVStore

UTC = pytz.UTC

# Tuesday 2024-01-16 10:00 ET (EST, UTC-5): regular session
RTH_NOW = datetime(2024, 1, 16, 15, 0, tzinfo=UTC)
# Saturday 2024-01-13 12:00 ET: extended/closed
ETH_NOW = datetime(2024, 1, 13, 17, 0, tzinfo=UTC)


def make_candles(highs: List[float], closes: Optional[List[float]] = None) -> List[Dict]:
    """5-min candles, newest first (the order Twelve Data returns)"""
    closes = closes or [h - 0.5 for h in highs]
    rows = []
    for i, (high, close) in enumerate(zip(highs, closes)):
        minute = 55 - 5 * i
        rows.append({
            "datetime": f"2024-01-16 09:{minute:02d}:00",
            "open": str(close - 0.2),
            "high": str(high),
            "low": str(close - 1.0),
            "close": str(close),
            "volume": "1000",
        })
    return rows


class FakeQuoteClient(BaseQuoteClient):
    """In-memory provider: per-symbol canned results, every call recorded"""

    source = "twelvedata"

    def __init__(self, quotes: Optional[Dict[str, QuoteResult]] = None, series: Optional[Dict[str, SeriesResult]] = None):
        self.quotes = quotes or {}
        self.series = series or {}
        self.quote_calls: List[str] = []
        self.series_calls: List[str] = []

    async def fetch_quote(self, symbol: str) -> QuoteResult:
        self.quote_calls.append(symbol)
        return self.quotes.get(symbol, FetchError("quote_error"))

    async def fetch_time_series(self, symbol: str, interval: str = "5min", outputsize: int = 300) -> SeriesResult:
        self.series_calls.append(symbol)
        return self.series.get(symbol, FetchError("timeseries_error"))


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        TWELVEDATA_API_KEY="td-test-key",
        OPENAI_API_KEY="sk-test",
        kv_backend="memory",
        kv_key_prefix="mcm:",
        symbol_timeout_seconds=2.0,
    )


@pytest.fixture
def kv() -> MemoryKVStore:
    return MemoryKVStore()


@pytest.fixture
def fake_client() -> FakeQuoteClient:
    return FakeQuoteClient(
        quotes={
            "MSFT": QuoteData(last=392.0, prev_close=388.0, asof_market="2024-01-16"),
            "JPM": QuoteData(last=170.0, prev_close=172.0, asof_market="2024-01-16"),
        },
        series={
            "MSFT": SeriesData(values=make_candles([393.5, 391.0, 389.0])),
            "JPM": SeriesData(values=make_candles([171.0, 171.5, 170.5])),
        },
    )
