"""
MCM Snapshot - OpenAI Chat Client
Minimal async chat-completions call used by the coach. Returns the reply text.
"""

import logging
from typing import Dict, List, Optional

import httpx

from mcm_snapshot.errors import CoachError

log = logging.getLogger(__name__)


class OpenAIChatClient:
    """Chat-completions client (httpx.AsyncClient, created lazily)"""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        temperature: float = 0.3,
        timeout: float = 30.0,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def complete(self, messages: List[Dict[str, str]]) -> str:
        """
        Send a chat-completions request.

        Raises:
            CoachError: transport failure, non-2xx status or an unreadable body
        """
        try:
            r = await self._get_client().post(
                f"{self.base_url}/chat/completions",
                headers={"authorization": f"Bearer {self.api_key}"},
                json={"model": self.model, "temperature": self.temperature, "messages": messages},
            )
        except httpx.HTTPError as e:
            log.error(f"❌ OpenAI request failed: {e!r}")
            raise CoachError(f"OpenAI request failed: {e}") from e

        try:
            body = r.json()
        except ValueError:
            body = None

        if r.is_error or not isinstance(body, dict):
            message = None
            if isinstance(body, dict):
                message = (body.get("error") or {}).get("message")
            raise CoachError(message or f"OpenAI error ({r.status_code})")

        choices = body.get("choices") or [{}]
        return ((choices[0] or {}).get("message") or {}).get("content") or ""
