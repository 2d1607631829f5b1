"""
MCM Snapshot - Coach Service
Narrative summary of a snapshot via a chat model. Consumes the snapshot read-only
and keeps the latest summary (plus its run time) in the KV store.
"""

import json
import logging
import re
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from mcm_snapshot.clients.openai_client import OpenAIChatClient
from mcm_snapshot.config import Settings, get_settings
from mcm_snapshot.errors import CoachError, ConfigurationError
from mcm_snapshot.models.snapshot_models import CoachSummary
from mcm_snapshot.services.session_service import normalize_symbols
from mcm_snapshot.services.snapshot_service import SnapshotService
from mcm_snapshot.storage.kv_store import KVStore
from mcm_snapshot.utils.num_utils import to_num
from mcm_snapshot.utils.time_utils import format_local_stamp, now_utc

log = logging.getLogger(__name__)

MIN_INTERVAL_MINUTES = 5
MAX_INTERVAL_MINUTES = 180
PLACEHOLDER = "—"

SYSTEM_PROMPT = (
    "You are MCM Coach: a concise, risk-aware market tape reader. "
    "Provide educational commentary only. No financial advice. Output must be short bullet points."
)

_BULLET_RE = re.compile(r"^\s*[-•*]\s*")


def clamp_interval_minutes(raw: Any, default: float = 30) -> float:
    """Refresh interval in minutes, clamped to [5, 180]; fractions kept, junk falls back to default"""
    mins = to_num(raw)
    if mins is None:
        mins = default
    return float(max(MIN_INTERVAL_MINUTES, min(MAX_INTERVAL_MINUTES, mins)))


def _fmt(v: Any) -> str:
    return PLACEHOLDER if v is None else str(v)


def build_prompt_rows(payload: Dict[str, Any], symbols: List[str]) -> List[str]:
    """One text row per symbol; error entries (or absent ones) read as `(no data)`"""
    rows = []
    for sym in symbols:
        entry = payload.get(sym)
        if not isinstance(entry, dict) or entry.get("error"):
            rows.append(f"{sym}: (no data)")
            continue
        rth = entry.get("rth") or {}
        eth = entry.get("eth") or {}
        rth_conf = bool((rth.get("reversal") or {}).get("confirmed"))
        eth_conf = bool((eth.get("reversal") or {}).get("confirmed"))
        rows.append(
            f"{sym}: baseline={_fmt(entry.get('baseline'))} last={_fmt(entry.get('last'))} "
            f"RTH(high={_fmt(rth.get('high'))}, perfHigh={_fmt(rth.get('perfHigh'))}, confirmed={str(rth_conf).lower()}) "
            f"ETH(high={_fmt(eth.get('high'))}, perfHigh={_fmt(eth.get('perfHigh'))}, confirmed={str(eth_conf).lower()})"
        )
    return rows


def build_messages(payload: Dict[str, Any], symbols: List[str]) -> List[Dict[str, str]]:
    meta = payload.get("_meta") or {}
    rows = "\n".join(build_prompt_rows(payload, symbols))
    user = (
        "Context:\n"
        "- Tool: experimental Dow-focused reversal tracker (panic mean reversion vs repricing).\n"
        f"- As-of: {meta.get('asof_market') or meta.get('asof_local') or 'unknown'}\n"
        f"- Session: {meta.get('session') or 'unknown'}\n\n"
        f"Data:\n{rows}\n\n"
        "Task:\n"
        "1) Give 4-6 bullets: what stands out, breadth, leaders vs laggards.\n"
        "2) One bullet: what would invalidate the current read.\n"
        "3) One bullet: what to watch next hour.\n"
        "Keep it plain English. Do not tell users to buy or sell."
    )
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": user},
    ]


def parse_bullets(text: str, max_lines: int = 10) -> List[str]:
    """Split a reply into bullet lines: leading -/• stripped, blanks dropped, capped"""
    lines = [_BULLET_RE.sub("", line).strip() for line in (text or "").split("\n")]
    lines = [line for line in lines if line][:max_lines]
    if lines:
        return lines
    stripped = (text or "").strip()
    return [stripped] if stripped else []


class CoachService:
    """Coach: snapshot -> chat model -> stored bullet summary"""

    def __init__(
        self,
        snapshot_service: SnapshotService,
        chat_client: OpenAIChatClient,
        kv: KVStore,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.settings = settings or get_settings()
        self.snapshot_service = snapshot_service
        self.chat_client = chat_client
        self.kv = kv
        self.clock = clock

    @property
    def latest_key(self) -> str:
        return f"{self.settings.kv_key_prefix}coach:latest"

    @property
    def last_run_key(self) -> str:
        return f"{self.settings.kv_key_prefix}coach:last_run_ms"

    def ensure_configured(self) -> None:
        if not self.settings.openai_api_key:
            raise ConfigurationError("Missing env.OPENAI_API_KEY")

    async def latest(self) -> Optional[dict]:
        """Last stored summary, or None if none was generated (or it expired)"""
        data = await self.kv.get(self.latest_key, "json")
        return data if isinstance(data, dict) else None

    async def last_run_ms(self) -> int:
        return int(to_num(await self.kv.get(self.last_run_key)) or 0)

    async def run(self, symbols: List[str], max_lines: Optional[int] = None) -> dict:
        """
        Always regenerate the summary.

        Args:
            symbols: Symbols to summarize
            max_lines: Bullet cap (default: coach_run_max_lines)

        Raises:
            ConfigurationError: no model API key
            SymbolValidationError: no usable symbols
            CoachError: snapshot could not be assembled or the model call failed
            CacheUnavailableError: KV read/write failed
        """
        self.ensure_configured()
        symbols = normalize_symbols(symbols, self.settings.max_symbols)
        now = self.clock()

        payload = await self.snapshot_service.get_snapshot(symbols, now)
        if not isinstance(payload, dict) or payload.get("error"):
            raise CoachError("Failed to fetch snapshot for coach")

        log.info(f"🧠 Coach run for {','.join(symbols)} (model {self.chat_client.model})")
        reply = await self.chat_client.complete(build_messages(payload, symbols))

        meta = payload.get("_meta") or {}
        summary = CoachSummary(
            asof_local=meta.get("asof_local") or format_local_stamp(now),
            asof_market=meta.get("asof_market"),
            session=meta.get("session"),
            symbols=symbols,
            model=self.chat_client.model,
            text=parse_bullets(reply, max_lines or self.settings.coach_run_max_lines),
        )
        out = summary.model_dump(mode="json")

        await self.kv.put(self.latest_key, json.dumps(out), expiration_ttl=self.settings.coach_ttl_seconds)
        await self.kv.put(self.last_run_key, str(int(time.time() * 1000)))
        log.info(f"✅ Coach summary stored ({len(summary.text)} lines)")
        return out

    async def refresh(self, symbols: List[str], interval_minutes: float) -> Dict[str, Any]:
        """
        Regenerate only when the last run is older than interval_minutes.

        Returns:
            {"fresh": True, "coach": cached} when the stored summary is recent enough,
            else {"fresh": False, "coach": new_summary}
        """
        min_ms = clamp_interval_minutes(interval_minutes) * 60 * 1000
        last_run = await self.last_run_ms()
        cached = await self.latest()
        if cached and last_run and int(time.time() * 1000) - last_run < min_ms:
            log.info("📦 Coach summary still fresh, serving cached")
            return {"fresh": True, "coach": cached}
        return {"fresh": False, "coach": await self.run(symbols, max_lines=self.settings.coach_max_lines)}
