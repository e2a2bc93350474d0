"""Chat Routes — history, streamed assistant replies, and the completions relay.

Invariants:
    - POST /messages streams "message" events carrying the full assistant text so far
    - Only one chat stream in flight per process (409 while another runs)
    - The chat lock is held only while the response body streams; a response
      that is never iterated never holds it
    - Losing the lock between handler and body yields one CONCURRENCY_CONFLICT error event
    - POST /completions speaks the OpenAI-style event-stream dialect the decoder consumes:
      keep-alive comment, data: {"choices":[{"delta":{"content":...}}]}, data: [DONE]
    - Relay errors after the stream opened are sent as a data frame, then the stream ends

Design Decisions:
    - StreamingResponse for SSE: event generators yield formatted SSE lines
    - Transport and Anthropic client are process singletons (connection pool reuse)
"""

import asyncio
import json
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.config import get_settings
from taskboard.core.domain_types import DATA_PREFIX, DONE_SENTINEL
from taskboard.core.errors import AnthropicAPIError, ConcurrencyError
from taskboard.infrastructure.anthropic_client import ResilientAnthropicClient
from taskboard.infrastructure.chat_transport import ChatTransport
from taskboard.infrastructure.database import get_db
from taskboard.infrastructure.persistence import SqlChatMessageStore
from taskboard.schemas.chat import ChatInput, CompletionRequest
from taskboard.services.chat_runner import ChatStreamRunner

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/chat", tags=["chat"])

# Proxies (nginx) and browsers must not buffer streamed events.
_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
    "Connection": "keep-alive",
}

_chat_lock = asyncio.Lock()


@router.get("/messages")
async def list_messages(db: AsyncSession = Depends(get_db)):
    """Chat history, oldest first."""
    history = await SqlChatMessageStore(db).history()
    return {"messages": [m.to_dict() for m in history]}


@router.post("/messages")
async def send_message(body: ChatInput, db: AsyncSession = Depends(get_db)):
    """Send a user message and stream the assistant reply as it grows."""
    runner = ChatStreamRunner(SqlChatMessageStore(db), _get_chat_transport())
    if _chat_lock.locked():
        raise ConcurrencyError("A chat reply is already streaming")

    async def event_generator():
        if _chat_lock.locked():
            conflict = ConcurrencyError("A chat reply is already streaming")
            yield _sse_line(conflict.to_sse_event())
            return
        async with _chat_lock:
            try:
                async for event in runner.run(body.content):
                    yield _sse_line(event)
            except asyncio.CancelledError:
                logger.info("Client disconnected from chat stream")
                raise

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers=_SSE_HEADERS,
    )


@router.post("/completions")
async def chat_completions(body: CompletionRequest):
    """OpenAI-style streaming completions backed by Anthropic."""
    client = _get_anthropic_client()
    system = get_settings().chat_system_prompt
    messages = [m.model_dump() for m in body.messages]

    async def relay():
        yield ": stream-open\n\n"
        try:
            async with client.stream_text(
                system=system, messages=messages,
            ) as text_stream:
                async for text in text_stream:
                    if text:
                        yield _completion_chunk(text)
        except AnthropicAPIError as e:
            logger.error(
                f"Completions relay failed: {e.message}",
                extra={"error_code": e.code},
            )
            yield _sse_line(e.to_sse_event())
            return
        yield f"{DATA_PREFIX}{DONE_SENTINEL}\n\n"

    return StreamingResponse(
        relay(), media_type="text/event-stream", headers=_SSE_HEADERS,
    )


# -- Helpers -------------------------------------------------------------------

_anthropic_client: ResilientAnthropicClient | None = None
_chat_transport: ChatTransport | None = None


def _get_anthropic_client() -> ResilientAnthropicClient:
    """Singleton Anthropic client — reused across all relay streams."""
    global _anthropic_client
    if _anthropic_client is None:
        settings = get_settings()
        _anthropic_client = ResilientAnthropicClient(
            api_key=settings.anthropic_api_key,
            model=settings.anthropic_model,
            max_tokens=settings.anthropic_max_tokens,
            max_retries=settings.anthropic_max_retries,
            base_delay_ms=settings.anthropic_base_delay_ms,
            max_delay_ms=settings.anthropic_max_delay_ms,
            timeout_seconds=settings.anthropic_timeout_seconds,
        )
    return _anthropic_client


def _get_chat_transport() -> ChatTransport:
    """Singleton chat transport — one httpx connection pool per process."""
    global _chat_transport
    if _chat_transport is None:
        settings = get_settings()
        _chat_transport = ChatTransport(
            url=settings.chat_upstream_url,
            model=settings.chat_model,
            api_key=settings.chat_upstream_api_key,
            timeout_seconds=settings.chat_timeout_seconds,
        )
    return _chat_transport


def _sse_line(event: dict) -> str:
    """Format event as SSE data line."""
    return f"{DATA_PREFIX}{json.dumps(event, ensure_ascii=False)}\n\n"


def _completion_chunk(text: str) -> str:
    """One OpenAI-style streaming chunk carrying a text delta."""
    return _sse_line({"choices": [{"index": 0, "delta": {"content": text}}]})


async def close_clients() -> None:
    """Release the transport's connection pool (called on shutdown)."""
    global _chat_transport
    if _chat_transport is not None:
        await _chat_transport.aclose()
        _chat_transport = None
