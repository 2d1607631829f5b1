"""Tests for the chat-completions client (httpx mock transport)."""

import json

import httpx
import pytest

from mcm_snapshot.clients.openai_client import OpenAIChatClient
from mcm_snapshot.errors import CoachError

MESSAGES = [{"role": "user", "content": "hi"}]


def make_client(handler) -> OpenAIChatClient:
    client = OpenAIChatClient(api_key="sk-test", model="gpt-4o-mini", base_url="https://llm.example.test/v1/")
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client


@pytest.mark.asyncio
async def test_complete_returns_content():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": "- one\n- two"}}]})

    client = make_client(handler)
    assert await client.complete(MESSAGES) == "- one\n- two"
    await client.close()

    assert seen["url"] == "https://llm.example.test/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["model"] == "gpt-4o-mini"
    assert seen["body"]["temperature"] == 0.3
    assert seen["body"]["messages"] == MESSAGES


@pytest.mark.asyncio
async def test_error_status_uses_api_message():
    def handler(request):
        return httpx.Response(429, json={"error": {"message": "Rate limit reached"}})

    with pytest.raises(CoachError, match="Rate limit reached"):
        await make_client(handler).complete(MESSAGES)


@pytest.mark.asyncio
async def test_error_status_without_body():
    def handler(request):
        return httpx.Response(500, text="upstream exploded")

    with pytest.raises(CoachError, match=r"OpenAI error \(500\)"):
        await make_client(handler).complete(MESSAGES)


@pytest.mark.asyncio
async def test_transport_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(CoachError, match="OpenAI request failed"):
        await make_client(handler).complete(MESSAGES)


@pytest.mark.asyncio
async def test_empty_choices():
    def handler(request):
        return httpx.Response(200, json={"choices": []})

    assert await make_client(handler).complete(MESSAGES) == ""
