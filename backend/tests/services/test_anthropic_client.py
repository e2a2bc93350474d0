"""Resilient Anthropic Client — retry on open, error mapping, text streaming.

Invariants:
    - Rate limits and connection errors are retried up to max_retries
    - Client errors (4xx) fail immediately
    - Errors raised while text flows are mapped, never retried
"""

import pytest

from taskboard.core.errors import AnthropicAPIError
from taskboard.infrastructure.anthropic_client import ResilientAnthropicClient
from tests.services.mock_anthropic import (
    FakeSdkClient, bad_request_error, connection_error, rate_limit_error,
)


def _client(outcomes, max_retries=2) -> ResilientAnthropicClient:
    client = ResilientAnthropicClient(
        api_key="sk-ant-test", model="claude-test",
        max_retries=max_retries, base_delay_ms=0,
    )
    client.client = FakeSdkClient(outcomes)
    return client


async def _collect(client: ResilientAnthropicClient) -> list[str]:
    async with client.stream_text(
        system="sys", messages=[{"role": "user", "content": "hi"}],
    ) as text_stream:
        return [t async for t in text_stream]


async def test_streams_text_deltas():
    client = _client([["Hel", "lo"]])
    assert await _collect(client) == ["Hel", "lo"]
    call = client.client.messages.calls[0]
    assert call["model"] == "claude-test"
    assert call["system"] == "sys"


async def test_rate_limit_is_retried():
    client = _client([rate_limit_error(), ["ok"]])
    assert await _collect(client) == ["ok"]
    assert len(client.client.messages.calls) == 2


async def test_connection_error_is_retried():
    client = _client([connection_error(), connection_error(), ["ok"]])
    assert await _collect(client) == ["ok"]


async def test_rate_limit_exhausts_retries():
    client = _client([rate_limit_error()] * 3, max_retries=2)
    with pytest.raises(AnthropicAPIError) as exc:
        await _collect(client)
    assert exc.value.api_error_type == "rate_limit"
    assert exc.value.http_status == 429


async def test_client_error_fails_immediately():
    client = _client([bad_request_error(), ["never"]])
    with pytest.raises(AnthropicAPIError) as exc:
        await _collect(client)
    assert exc.value.api_error_type == "client_error"
    assert len(client.client.messages.calls) == 1


def test_retry_after_header_is_read_in_milliseconds():
    client = _client([])
    assert client._extract_retry_after(rate_limit_error("3")) == 3000
    assert client._extract_retry_after(rate_limit_error()) is None


def test_backoff_is_capped():
    client = ResilientAnthropicClient(
        api_key="sk-ant-test", model="m", base_delay_ms=1000, max_delay_ms=5000,
    )
    assert client._backoff(10) <= 5000 * 1.25
