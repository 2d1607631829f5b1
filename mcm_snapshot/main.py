"""
MCM Snapshot - FastAPI Main Application
Credit-aware market snapshot service: cached per-symbol reversal signals plus a narrative coach
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, Response

from mcm_snapshot.clients.base_client import BaseQuoteClient
from mcm_snapshot.clients.openai_client import OpenAIChatClient
from mcm_snapshot.clients.twelvedata_client import TwelveDataClient
from mcm_snapshot.config import Settings, get_settings
from mcm_snapshot.errors import SnapshotError, SymbolValidationError
from mcm_snapshot.services.coach_service import CoachService, clamp_interval_minutes
from mcm_snapshot.services.session_service import parse_symbols
from mcm_snapshot.services.snapshot_service import SnapshotService, ensure_upstream_configured
from mcm_snapshot.storage.kv_store import KVStore, build_kv_store

VERSION = "1.0.0"

# Get settings early to configure logging
settings = get_settings()

# Setup logging with structured format for Cloud Logging
log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
logging.basicConfig(
    level=log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S %Z'
)
log = logging.getLogger(__name__)

# Every response, errors included
RESPONSE_HEADERS = {
    "cache-control": "no-store",
    "access-control-allow-origin": "*",
}


class ServiceRegistry:
    """
    Process-wide clients and services, built on first use.

    Building lazily keeps a missing binding a per-request ConfigurationError
    (answered as {error}) instead of a startup crash.
    """

    def __init__(
        self,
        settings: Settings,
        kv: Optional[KVStore] = None,
        quote_client: Optional[BaseQuoteClient] = None,
        chat_client: Optional[OpenAIChatClient] = None,
    ):
        self.settings = settings
        self._kv = kv
        self._quote_client = quote_client
        self._chat_client = chat_client
        self._snapshot_service: Optional[SnapshotService] = None
        self._coach_service: Optional[CoachService] = None

    @property
    def kv(self) -> KVStore:
        if self._kv is None:
            self._kv = build_kv_store(self.settings)
        return self._kv

    @property
    def quote_client(self) -> BaseQuoteClient:
        if self._quote_client is None:
            self._quote_client = TwelveDataClient(
                api_key=self.settings.twelvedata_api_key,
                base_url=self.settings.twelvedata_base_url,
                timeout=self.settings.upstream_timeout_seconds,
            )
        return self._quote_client

    @property
    def chat_client(self) -> OpenAIChatClient:
        if self._chat_client is None:
            self._chat_client = OpenAIChatClient(
                api_key=self.settings.openai_api_key,
                model=self.settings.openai_model,
                base_url=self.settings.openai_base_url,
                temperature=self.settings.openai_temperature,
                timeout=self.settings.openai_timeout_seconds,
            )
        return self._chat_client

    def snapshot_service(self) -> SnapshotService:
        if self._snapshot_service is None:
            self._snapshot_service = SnapshotService(self.quote_client, self.kv, settings=self.settings)
        return self._snapshot_service

    def coach_service(self) -> CoachService:
        if self._coach_service is None:
            self._coach_service = CoachService(
                self.snapshot_service(), self.chat_client, self.kv, settings=self.settings,
            )
        return self._coach_service

    async def close(self) -> None:
        for name, resource in (
            ("quote client", self._quote_client),
            ("chat client", self._chat_client),
            ("KV store", self._kv),
        ):
            if resource is None:
                continue
            try:
                await resource.close()
            except Exception as e:
                log.warning(f"Error closing {name}: {e}")


registry = ServiceRegistry(settings)


def get_registry() -> ServiceRegistry:
    """FastAPI dependency (overridden in tests)"""
    return registry


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan event handler for startup/shutdown"""
    log.info("=" * 60)
    log.info("🚀 MCM Snapshot starting up...")
    log.info(f"📦 Version: {VERSION}")
    log.info(f"🌍 Environment: {settings.environment}")
    log.info(f"💾 KV backend: {settings.kv_backend}")
    log.info("=" * 60)
    yield
    log.info("🛑 Shutting down MCM Snapshot...")
    await registry.close()
    log.info("✅ Shutdown complete")


# Initialize FastAPI app
app = FastAPI(
    title="MCM Snapshot",
    description="Credit-aware market snapshot service with baseline reversal signals",
    version=VERSION,
    lifespan=lifespan
)


@app.exception_handler(SnapshotError)
async def snapshot_error_handler(request: Request, exc: SnapshotError):
    if exc.status_code >= 500:
        log.error(f"❌ {request.url.path}: {exc.code.value}: {exc.message}")
    else:
        log.warning(f"⚠️ {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=RESPONSE_HEADERS)


@app.middleware("http")
async def response_headers(request: Request, call_next):
    try:
        response = await call_next(request)
    except Exception as e:
        log.error(f"❌ Unhandled error on {request.url.path}: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": str(e)}, headers=RESPONSE_HEADERS)
    response.headers.update(RESPONSE_HEADERS)
    return response


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@app.get("/")
async def root():
    return {
        "service": settings.service_name,
        "version": VERSION,
        "endpoints": [
            "/api/snapshot?symbols=MSFT,CRM,JPM",
            "/api/coach/latest",
            "/api/coach/refresh?symbols=MSFT,CRM,JPM&mins=30",
            "/api/coach/run?symbols=MSFT,CRM,JPM",
            "/health",
            "/version",
        ],
    }


# Health check endpoint
@app.get("/health")
async def health(services: ServiceRegistry = Depends(get_registry)):
    """Store ping plus configuration flags. No upstream quote call (spares rate-limited credits)."""
    cfg = services.settings
    kv_status = "connected"
    try:
        if not await services.kv.ping():
            kv_status = "unavailable"
    except SnapshotError as e:
        log.error(f"Health check: KV store not usable: {e.message}")
        kv_status = "unconfigured"

    quote_health = services.quote_client.healthcheck()
    status = "healthy"
    if kv_status != "connected" or quote_health.get("status") != "healthy":
        status = "degraded"

    return JSONResponse(
        status_code=200 if status == "healthy" else 503,
        content={
            "status": status,
            "service": cfg.service_name,
            "version": VERSION,
            "kv_backend": cfg.kv_backend,
            "kv": kv_status,
            "quote_provider": quote_health,
            "coach_configured": bool(cfg.openai_api_key),
            "timestamp": _timestamp(),
        },
    )


# Version endpoint
@app.get("/version")
async def version():
    """Get service version"""
    return {
        "service": settings.service_name,
        "version": VERSION,
        "timestamp": _timestamp(),
    }


@app.get("/api/snapshot")
async def snapshot(symbols: Optional[str] = None, services: ServiceRegistry = Depends(get_registry)):
    """
    Snapshot for ?symbols=A,B,C

    Checks run in order: provider key, symbol list, store binding. A cache hit
    is answered with the stored JSON text as-is.
    """
    cfg = services.settings
    ensure_upstream_configured(cfg)

    syms = parse_symbols(symbols, cfg.max_symbols)
    if not syms:
        raise SymbolValidationError("Provide ?symbols=MSFT,AXP,CRM,NKE,MMM,JPM")

    text, cache_hit = await services.snapshot_service().get_snapshot_json(syms)
    log.debug(f"/api/snapshot {','.join(syms)} ({'hit' if cache_hit else 'miss'})")
    return Response(content=text, media_type="application/json; charset=utf-8")


@app.get("/api/coach/latest")
async def coach_latest(services: ServiceRegistry = Depends(get_registry)):
    """Last stored coach summary, or null if none has been generated yet"""
    data = await services.coach_service().latest()
    return JSONResponse(content=data)


@app.get("/api/coach/refresh")
async def coach_refresh(
    symbols: Optional[str] = None,
    mins: Optional[str] = None,
    services: ServiceRegistry = Depends(get_registry),
):
    """Regenerate the coach summary only when the last run is older than `mins` (5..180)"""
    cfg = services.settings
    coach = services.coach_service()

    syms = parse_symbols(symbols, cfg.max_symbols)
    if not syms:
        raise SymbolValidationError("Missing symbols param (e.g. ?symbols=MSFT,CRM,JPM,AXP,NKE,IBM)")
    coach.ensure_configured()

    interval = clamp_interval_minutes(mins, cfg.coach_default_interval_minutes)
    result = await coach.refresh(syms, interval)
    if result["fresh"]:
        return {"ok": True, "fresh": True, "coach": result["coach"]}
    return {"ok": True, "fresh": False, "stored": True, "coach": result["coach"]}


@app.get("/api/coach/run")
async def coach_run(symbols: Optional[str] = None, services: ServiceRegistry = Depends(get_registry)):
    """Always regenerate the coach summary (defaults to the tracked basket)"""
    cfg = services.settings
    coach = services.coach_service()
    coach.ensure_configured()

    syms = parse_symbols(symbols, cfg.max_symbols) or cfg.default_symbols[:cfg.max_symbols]
    if not syms:
        raise SymbolValidationError("No symbols given and no tracked basket configured")

    out = await coach.run(syms)
    return {"ok": True, "stored": True, "coach": out}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8080)
