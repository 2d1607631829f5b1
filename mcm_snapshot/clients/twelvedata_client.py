"""
MCM Snapshot - Twelve Data Quote Client
Thin async adapter for the Twelve Data REST API (/quote, /time_series).
No retries: the provider is rate-limited and the snapshot cache is the throttle.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

import aiohttp

from mcm_snapshot.clients.base_client import (
    BaseQuoteClient,
    FetchError,
    QuoteData,
    QuoteResult,
    SeriesData,
    SeriesResult,
)
from mcm_snapshot.utils.num_utils import first_num

log = logging.getLogger(__name__)


def _stamp(v: Any) -> Optional[str]:
    """Quote as-of value (date string or epoch seconds) as a string"""
    if v is None or v == "":
        return None
    return str(v)


class TwelveDataClient(BaseQuoteClient):
    """Twelve Data client for US equity quotes and intraday candles"""

    source = "twelvedata"

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.twelvedata.com",
        timeout: float = 10.0,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

        # Reusable aiohttp session (created lazily, closed on shutdown)
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """
        Get or create the aiohttp session.
        A session is bound to the loop that created it; recreate when the loop changed.
        """
        current_loop = asyncio.get_running_loop()
        stale = (
            self._session is None
            or self._session.closed
            or getattr(self._session, "_loop", current_loop) is not current_loop
        )
        if stale:
            if self._session is not None and not self._session.closed:
                await self._session.close()
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"Accept": "application/json"},
            )
        return self._session

    async def close(self) -> None:
        """Close aiohttp session (call from FastAPI lifespan event)"""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def _fetch_json(self, path: str, params: Dict[str, Any]) -> Tuple[bool, int, Any]:
        """
        GET base_url/path with the API key appended.

        Returns:
            (ok, status, json) where json is None when the body is not JSON.
            Transport failures come back as (False, 0, None).
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        query = {**params, "apikey": self.api_key}
        try:
            session = await self._get_session()
            async with session.get(url, params=query) as r:
                try:
                    body = await r.json(content_type=None)
                except ValueError:
                    body = None
                return 200 <= r.status < 300, r.status, body
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.warning(f"  ⚠️ Twelve Data {path} transport error: {e!r}")
            return False, 0, None

    @staticmethod
    def _error_reason(ok: bool, status: int, body: Any, default: str) -> Optional[str]:
        """Reason string when the response is a failure, else None"""
        if ok and isinstance(body, dict) and body.get("status") != "error":
            return None
        # Twelve Data reports most failures (429, bad symbol) as 200 + {"status": "error"}
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        if status and not ok:
            return f"{default} (HTTP {status})"
        return default

    async def fetch_quote(self, symbol: str) -> QuoteResult:
        sym = self.normalize_symbol(symbol)
        ok, status, body = await self._fetch_json("quote", {"symbol": sym})
        reason = self._error_reason(ok, status, body, "quote_error")
        if reason:
            log.warning(f"  ⚠️ {sym}: quote failed: {reason}")
            return FetchError(reason)

        return QuoteData(
            last=first_num(body.get("price"), body.get("close"), body.get("last")),
            prev_close=first_num(body.get("previous_close"), body.get("prev_close")),
            asof_market=_stamp(body.get("datetime") or body.get("timestamp")),
            raw=body,
        )

    async def fetch_time_series(
        self,
        symbol: str,
        interval: str = "5min",
        outputsize: int = 300,
    ) -> SeriesResult:
        sym = self.normalize_symbol(symbol)
        ok, status, body = await self._fetch_json(
            "time_series",
            {"symbol": sym, "interval": interval, "outputsize": str(outputsize)},
        )
        reason = self._error_reason(ok, status, body, "timeseries_error")
        if reason:
            log.warning(f"  ⚠️ {sym}: time_series failed: {reason}")
            return FetchError(reason)

        values = body.get("values")
        if not isinstance(values, list):
            log.warning(f"  ⚠️ {sym}: time_series payload has no values list")
            return FetchError("timeseries_malformed")

        candles = [v for v in values if isinstance(v, dict)]
        log.debug(f"  {sym}: {len(candles)} candles ({interval})")
        return SeriesData(values=candles, meta=body.get("meta"))

    def healthcheck(self) -> Dict:
        if not self.api_key:
            return {"status": "unhealthy", "provider": self.source, "message": "No TWELVEDATA_API_KEY"}
        return {"status": "healthy", "provider": self.source, "message": "API key configured"}
