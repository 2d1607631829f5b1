"""
MCM Snapshot - Baseline Repository
Durable per-symbol reference price, read-through with bootstrap-on-miss from previous close
"""

import json
import logging
from datetime import date
from typing import Any, Optional

from mcm_snapshot.storage.kv_store import KVStore
from mcm_snapshot.utils.num_utils import to_num

log = logging.getLogger(__name__)


def parse_baseline_record(record: Any) -> Optional[float]:
    """Accept a bare number or {"baseline": number}"""
    if isinstance(record, dict):
        return to_num(record.get("baseline"))
    return to_num(record)


class BaselineRepository:
    """
    Baseline store keyed by `<prefix>baseline:<SYMBOL>`.

    Records never expire and are never overwritten once numeric. Read failures
    propagate (CacheUnavailableError) so an outage cannot trigger a re-bootstrap.
    """

    def __init__(self, kv: KVStore, key_prefix: str = "mcm:"):
        self.kv = kv
        self.key_prefix = key_prefix

    def key(self, symbol: str) -> str:
        return f"{self.key_prefix}baseline:{symbol.upper()}"

    async def get(self, symbol: str) -> Optional[float]:
        record = await self.kv.get(self.key(symbol), "json")
        return parse_baseline_record(record)

    async def get_or_bootstrap(
        self,
        symbol: str,
        previous_close: Optional[float],
        market_date: Optional[date] = None,
    ) -> Optional[float]:
        """
        Return the stored baseline, seeding it from previous_close on first sight.

        Args:
            symbol: Upper-case ticker
            previous_close: Candidate seed value (ignored when a record exists)
            market_date: Market-local day of the bootstrap, recorded for audit

        Returns:
            Baseline price, or None when neither a record nor a finite seed exists
        """
        existing = await self.get(symbol)
        if existing is not None:
            return existing

        seed = to_num(previous_close)
        if seed is None:
            log.debug(f"  {symbol}: no baseline and no previous close to seed from")
            return None

        record = {"baseline": seed, "source": "previous_close"}
        if market_date is not None:
            record["bootstrapped_on"] = market_date.isoformat()
        await self.kv.put(self.key(symbol), json.dumps(record))
        log.info(f"📌 {symbol}: bootstrapped baseline {seed:.2f} from previous close")
        return seed
