"""Mock chat upstream — httpx.MockTransport handlers that stream event-stream bytes.

Invariants:
    - Each request gets a fresh chunk iterator; chunks arrive exactly as given
    - An optional error is raised after the last chunk (mid-stream failure)
    - Every request is recorded on handler.requests
"""

import json

import httpx

from taskboard.infrastructure.chat_transport import ChatTransport

UPSTREAM = "http://upstream.test/v1/chat/completions"


def frame(content: str) -> bytes:
    payload = {"choices": [{"delta": {"content": content}}]}
    return f"data: {json.dumps(payload)}\n\n".encode()


def transport_for(handler) -> ChatTransport:
    return ChatTransport(
        url=UPSTREAM, model="test-model", api_key="secret",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


def streaming(*chunks: bytes, error: Exception | None = None, status: int = 200):
    """Handler answering with the given chunks, optionally failing after them."""
    requests = []

    async def body():
        for chunk in chunks:
            yield chunk
        if error is not None:
            raise error

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            status, content=body(), headers={"content-type": "text/event-stream"},
        )

    handler.requests = requests
    return handler
