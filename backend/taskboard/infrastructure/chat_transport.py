"""Chat Transport — opens the upstream chat-completions byte stream over httpx.

Invariants:
    - open_stream() yields raw byte chunks in arrival order, undecoded
    - 429 → ChatRateLimitedError, 402 → ChatCreditsExhaustedError,
      other non-2xx → ChatTransportError (raised before any chunk is yielded)
    - httpx failures mid-stream surface as ChatTransportError
    - CancelledError passes through untouched

Design Decisions:
    - No retry here: retry/backoff policy for this call is out of scope
    - Client injectable so tests drive it with httpx.MockTransport
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx

from taskboard.core.errors import (
    ChatCreditsExhaustedError,
    ChatRateLimitedError,
    ChatTransportError,
)
from taskboard.core.message_assembler import Message

logger = logging.getLogger(__name__)


class ChatTransport:
    """POSTs the conversation and streams back the event-stream bytes."""

    def __init__(
        self,
        url: str,
        model: str,
        api_key: str = "",
        timeout_seconds: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.url = url
        self.model = model
        self._api_key = api_key
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "text/event-stream"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    @asynccontextmanager
    async def open_stream(
        self, messages: list[Message],
    ) -> AsyncIterator[AsyncIterator[bytes]]:
        body = {
            "model": self.model,
            "messages": [m.to_dict() for m in messages],
            "stream": True,
        }
        try:
            async with self._client.stream(
                "POST", self.url, json=body, headers=self._headers(),
            ) as response:
                _raise_for_status(response)
                yield _iter_chunks(response)
        except httpx.HTTPError as e:
            logger.error(f"Chat upstream failed: {e}")
            raise ChatTransportError(f"Chat upstream failed: {e}")

    async def aclose(self) -> None:
        await self._client.aclose()


async def _iter_chunks(response: httpx.Response) -> AsyncIterator[bytes]:
    async for chunk in response.aiter_bytes():
        if chunk:
            yield chunk


def _raise_for_status(response: httpx.Response) -> None:
    if response.status_code == 429:
        raise ChatRateLimitedError(_retry_after_ms(response))
    if response.status_code == 402:
        raise ChatCreditsExhaustedError()
    if response.status_code >= 400:
        raise ChatTransportError(
            f"Chat upstream returned HTTP {response.status_code}",
        )


def _retry_after_ms(response: httpx.Response) -> int | None:
    value = response.headers.get("retry-after")
    if value and value.isdigit():
        return int(value) * 1000
    return None
