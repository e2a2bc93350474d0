"""Chat Stream Runner — transport bytes → StreamDecoder → SSE events + persistence.

Invariants:
    - One StreamDecoder per run; chunks are fed strictly in arrival order
    - Every "message" event carries the full assistant text so far, not a diff
    - The user message is persisted before the upstream call starts
    - The assistant message is persisted once, after COMPLETED or ABORTED, only if non-empty
    - Transport failures become an "error" event, never an exception out of run()
    - Cancellation persists the partial message, then re-raises

Design Decisions:
    - Explicit accumulator (StreamDecoder) over callbacks threaded through closures
    - Async generator of event dicts: the route only formats SSE lines
"""

import asyncio
import logging
from collections.abc import AsyncIterator

from taskboard.core.domain_types import Role
from taskboard.core.errors import ChatTransportError
from taskboard.core.message_assembler import Message
from taskboard.core.stream_decoder import DeltaUpdate, StreamDecoder, StreamOutcome
from taskboard.infrastructure.chat_transport import ChatTransport
from taskboard.infrastructure.persistence import SqlChatMessageStore

logger = logging.getLogger(__name__)


def _message_event(update: DeltaUpdate) -> dict:
    return {
        "type": "message",
        "data": {
            "role": Role.ASSISTANT.value,
            "delta": update.delta,
            "content": update.content,
        },
    }


def _done_event(outcome: StreamOutcome) -> dict:
    return {
        "type": "done",
        "data": {
            "state": outcome.state.value,
            "error": outcome.error is not None,
            "content": outcome.content,
            "parse_errors": outcome.parse_errors,
        },
    }


class ChatStreamRunner:
    """Runs one user turn against the chat upstream."""

    def __init__(self, store: SqlChatMessageStore, transport: ChatTransport):
        self._store = store
        self._transport = transport

    async def run(self, text: str) -> AsyncIterator[dict]:
        user_message = Message(Role.USER, text)
        history = await self._store.history()
        await self._store.append(user_message)

        decoder = StreamDecoder()
        try:
            async with self._transport.open_stream(
                [*history, user_message],
            ) as chunks:
                async for chunk in chunks:
                    for update in decoder.feed(chunk):
                        yield _message_event(update)
                    if decoder.done:
                        break
            outcome = decoder.finish()
            for update in outcome.trailing:
                yield _message_event(update)
        except ChatTransportError as e:
            outcome = decoder.abort(e.message)
            logger.error(
                f"Chat stream aborted: {e.message}",
                extra={"error_code": e.code, "stream_state": outcome.state.value},
            )
            yield e.to_sse_event()
        except (asyncio.CancelledError, GeneratorExit):
            outcome = decoder.cancel()
            logger.info("Chat stream cancelled by client")
            await asyncio.shield(self._save(outcome))
            raise

        await self._save(outcome)
        yield _done_event(outcome)

    async def _save(self, outcome: StreamOutcome) -> None:
        if outcome.message is None:
            logger.info(
                "Chat stream produced no text",
                extra={"stream_state": outcome.state.value},
            )
            return
        await self._store.append(outcome.message)
        logger.info(
            "Assistant message saved",
            extra={
                "stream_state": outcome.state.value,
                "parse_errors": outcome.parse_errors,
            },
        )
