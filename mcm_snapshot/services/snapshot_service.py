"""
MCM Snapshot - Snapshot Service Orchestrator
Resolve session -> cache key -> cache check -> (miss) concurrent per-symbol
fetch + compute -> persist snapshot with a bucket-aligned expiry.
Pure-ish and injectable design
"""

import asyncio
import json
import logging
import time
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from mcm_snapshot.clients.base_client import BaseQuoteClient, FetchError
from mcm_snapshot.config import Settings, get_settings
from mcm_snapshot.errors import CacheUnavailableError, ConfigurationError, SymbolValidationError
from mcm_snapshot.models.snapshot_models import (
    ResolvedSession, Snapshot, SnapshotMeta, SymbolEntry, SymbolError, SymbolMeta, SymbolSnapshot,
)
from mcm_snapshot.services.session_service import SessionService, build_snapshot_key, normalize_symbols
from mcm_snapshot.services.signal_service import SignalService
from mcm_snapshot.storage.baseline_repo import BaselineRepository
from mcm_snapshot.storage.kv_store import KVStore
from mcm_snapshot.utils.time_utils import format_local_stamp, format_market_stamp, now_utc

log = logging.getLogger(__name__)


def ensure_upstream_configured(settings: Settings) -> None:
    """Fatal configuration check, run before any work begins"""
    if not settings.twelvedata_api_key:
        raise ConfigurationError("Missing env.TWELVEDATA_API_KEY")


class SnapshotService:
    """Snapshot assembler: owns all intermediate state of one assembly"""

    def __init__(
        self,
        quote_client: BaseQuoteClient,
        kv: KVStore,
        settings: Optional[Settings] = None,
        session_service: Optional[SessionService] = None,
        baseline_repo: Optional[BaselineRepository] = None,
        signal_service: Optional[SignalService] = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        """Initialize snapshot service with dependencies"""
        self.settings = settings or get_settings()
        self.quote_client = quote_client
        self.kv = kv
        self.session_service = session_service or SessionService(
            rth_cadence_seconds=self.settings.rth_cadence_seconds,
            eth_cadence_seconds=self.settings.eth_cadence_seconds,
        )
        self.baseline_repo = baseline_repo or BaselineRepository(kv, key_prefix=self.settings.kv_key_prefix)
        self.signal_service = signal_service or SignalService()
        self.clock = clock
        log.info("✅ SnapshotService initialized")

    def cache_ttl(self, resolved: ResolvedSession) -> int:
        """Cadence plus grace margin, so a bucket's entry outlives the bucket slightly"""
        return resolved.classification.cadence_seconds + self.settings.cache_grace_seconds

    async def get_snapshot_json(
        self,
        symbols: List[str],
        now: Optional[datetime] = None,
    ) -> Tuple[str, bool]:
        """
        Serve the snapshot for `symbols` as JSON text.

        Args:
            symbols: Requested symbols (normalized: upper-cased, de-duplicated, capped)
            now: Request time (default: clock())

        Returns:
            (json_text, cache_hit). A hit returns exactly the text stored for the bucket.

        Raises:
            ConfigurationError: no provider API key
            SymbolValidationError: no usable symbols
            CacheUnavailableError: snapshot/baseline read or write failed
        """
        ensure_upstream_configured(self.settings)
        symbols = normalize_symbols(symbols, self.settings.max_symbols)
        if not symbols:
            raise SymbolValidationError("Provide ?symbols=MSFT,AXP,CRM,NKE,MMM,JPM")

        now = now or self.clock()
        resolved = self.session_service.resolve(now)
        key = build_snapshot_key(resolved, symbols, prefix=self.settings.kv_key_prefix)

        cached = await self.kv.get(key, "text")
        if cached:
            log.info(f"📦 Cache hit: {key}")
            return cached, True

        log.info(f"📥 Cache miss: {key} ({len(symbols)} symbols, session {resolved.classification.label.value})")
        snapshot = await self.build_snapshot(symbols, resolved, now)

        text = json.dumps(snapshot.to_payload(), indent=2)
        await self.kv.put(key, text, expiration_ttl=self.cache_ttl(resolved))
        return text, False

    async def get_snapshot(self, symbols: List[str], now: Optional[datetime] = None) -> dict:
        """Parsed snapshot payload (cache-aware), for in-process consumers such as the coach"""
        text, _ = await self.get_snapshot_json(symbols, now)
        return json.loads(text)

    async def build_snapshot(
        self,
        symbols: List[str],
        resolved: ResolvedSession,
        now: datetime,
    ) -> Snapshot:
        """Fan out one fetch+compute task per symbol and wait for every one to settle"""
        start_time = time.time()
        labels = self.settings.cadence_labels
        meta = SnapshotMeta(
            asof_local=format_local_stamp(now),
            asof_market=format_market_stamp(now),
            session=resolved.classification.label,
            cadence_rth=labels["RTH"],
            cadence_eth=labels["ETH"],
            bucket=resolved.bucket,
            symbols=symbols,
            source=self.quote_client.source,
        )

        results = await asyncio.gather(
            *(self._build_symbol_guarded(sym, resolved, meta) for sym in symbols),
            return_exceptions=True,
        )

        entries = {}
        for sym, result in zip(symbols, results):
            if isinstance(result, CacheUnavailableError):
                raise result
            if isinstance(result, BaseException):
                log.error(f"❌ {sym}: unexpected failure: {result!r}", exc_info=result)
                entries[sym] = SymbolError(symbol=sym, error=f"internal_error: {result}")
                continue
            entries[sym] = result

        failed = sum(1 for e in entries.values() if isinstance(e, SymbolError))
        log.info(
            f"✅ Snapshot built: {len(entries) - failed} ok, {failed} failed "
            f"in {time.time() - start_time:.2f}s"
        )
        if failed == len(entries):
            log.error(f"❌ NO SYMBOLS SUCCESSFUL. All {len(entries)} symbols failed.")
        return Snapshot(meta=meta, entries=entries)

    async def _build_symbol_guarded(
        self,
        symbol: str,
        resolved: ResolvedSession,
        meta: SnapshotMeta,
    ) -> SymbolEntry:
        """Bound one symbol's fetch+compute; a timeout becomes that symbol's error marker"""
        timeout = self.settings.symbol_timeout_seconds
        try:
            return await asyncio.wait_for(self._build_symbol(symbol, resolved, meta), timeout=timeout)
        except asyncio.TimeoutError:
            log.warning(f"  ⚠️ {symbol}: timed out after {timeout:.0f}s")
            return SymbolError(symbol=symbol, error=f"timeout after {timeout:.0f}s")

    async def _build_symbol(
        self,
        symbol: str,
        resolved: ResolvedSession,
        meta: SnapshotMeta,
    ) -> SymbolEntry:
        quote, series = await self.quote_client.fetch_symbol(
            symbol,
            interval=self.settings.series_interval,
            outputsize=self.settings.series_outputsize,
        )
        quote_failed = isinstance(quote, FetchError)
        series_failed = isinstance(series, FetchError)

        if quote_failed and series_failed:
            return SymbolError(symbol=symbol, error=f"{quote.reason}; {series.reason}")

        warnings = []
        if quote_failed:
            warnings.append(f"quote: {quote.reason}")
        if series_failed:
            warnings.append(f"time_series: {series.reason}")

        prev_close = None if quote_failed else quote.prev_close
        baseline = await self.baseline_repo.get_or_bootstrap(
            symbol, prev_close, market_date=resolved.info.market_date,
        )

        values = [] if series_failed else series.values
        rth_high, last_close = self.signal_service.compute_high(values)
        # Both windows read the same series until an extended-hours-only series is fetched
        eth_high, _ = self.signal_service.compute_high(values)

        # Prefer the quote's price; fall back to the most recent candle close
        last = None if quote_failed else quote.last
        if last is None:
            last = last_close

        return SymbolSnapshot(
            symbol=symbol,
            name=symbol,
            baseline=baseline,
            last=last,
            asof_market=(None if quote_failed else quote.asof_market) or meta.asof_market,
            asof_local=meta.asof_local,
            meta=SymbolMeta(previous_close=prev_close),
            rth=self.signal_service.build_window(rth_high, last, baseline),
            eth=self.signal_service.build_extended_window(eth_high, last, baseline),
            warnings=warnings,
        )
