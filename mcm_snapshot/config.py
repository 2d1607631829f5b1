"""
MCM Snapshot - Configuration Management
Handles environment variables and service configuration
"""

import json
from pathlib import Path
from typing import List, Optional
from pydantic_settings import BaseSettings
from pydantic import AliasChoices, Field, field_validator
from functools import lru_cache

# Load secretsprivate/.env for local dev when present (deploy injects real env vars)
_secrets_env = Path(__file__).resolve().parents[1] / "secretsprivate" / ".env"
if _secrets_env.exists():
    from dotenv import load_dotenv
    load_dotenv(_secrets_env)


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Service Configuration
    service_name: str = "mcm-snapshot"
    environment: str = "production"
    log_level: str = "INFO"

    # Upstream quote provider (Twelve Data)
    twelvedata_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("TWELVEDATA_API_KEY", "TWELVE_DATA_API_KEY"),
    )
    twelvedata_base_url: str = "https://api.twelvedata.com"
    series_interval: str = "5min"
    series_outputsize: int = 300
    upstream_timeout_seconds: float = 10.0  # Per HTTP call
    symbol_timeout_seconds: float = 25.0  # Per symbol fetch+compute

    # Durable key-value store
    kv_backend: str = "redis"  # "redis" | "memory"
    mcm_kv_url: Optional[str] = None  # MCM_KV_URL, e.g. redis://localhost:6379/0
    kv_key_prefix: str = "mcm:"

    # Session cadence (bucket width) and cache grace margin
    rth_cadence_seconds: int = 5 * 60
    eth_cadence_seconds: int = 60 * 60
    cache_grace_seconds: int = 15

    # Symbol handling
    max_symbols: int = 50
    tracked_symbols: str = "MSFT,CRM,JPM,AXP,NKE,IBM"  # JSON list or comma-separated

    # Narrative coach (OpenAI chat completions)
    openai_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("OPENAI_API_KEY", "OPENAI_KEY"),
    )
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str = "https://api.openai.com/v1"
    openai_temperature: float = 0.3
    openai_timeout_seconds: float = 30.0
    coach_ttl_seconds: int = 60 * 60  # Keep latest coach output 1 hour
    coach_max_lines: int = 10  # /api/coach/refresh
    coach_run_max_lines: int = 8  # /api/coach/run
    coach_default_interval_minutes: int = 30

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        populate_by_name = True

    @field_validator("kv_backend", mode="before")
    @classmethod
    def _normalize_backend(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @property
    def default_symbols(self) -> List[str]:
        """
        Parse the tracked basket.
        Supports both JSON format (["MSFT","CRM"]) and comma-separated (MSFT,CRM,JPM).
        """
        s = (self.tracked_symbols or "").strip()
        if not s:
            return []
        # JSON list support
        if s.startswith("["):
            try:
                return [str(x).strip().upper() for x in json.loads(s) if str(x).strip()]
            except ValueError:
                pass
        # CSV support
        return [x.strip().upper() for x in s.split(",") if x.strip()]

    @property
    def cadence_labels(self) -> dict:
        """Human-readable cadence per session, e.g. {"RTH": "5m", "ETH": "1h"}"""
        return {
            "RTH": _format_cadence(self.rth_cadence_seconds),
            "ETH": _format_cadence(self.eth_cadence_seconds),
        }


def _format_cadence(seconds: int) -> str:
    if seconds % 3600 == 0:
        return f"{seconds // 3600}h"
    if seconds % 60 == 0:
        return f"{seconds // 60}m"
    return f"{seconds}s"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
