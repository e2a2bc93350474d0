"""Chat Stream Runner — upstream bytes through the decoder into events and history.

Invariants:
    - Message events carry the full text so far
    - User message persisted before the upstream call; assistant once, at the end
    - Upstream failures become an error event; partial text is still saved

Design Decisions:
    - httpx.MockTransport drives ChatTransport: real chunked HTTP plumbing, no network
"""

import json

import httpx

from taskboard.core.domain_types import Role
from taskboard.core.message_assembler import Message
from taskboard.infrastructure.persistence import SqlChatMessageStore
from taskboard.services.chat_runner import ChatStreamRunner
from tests.services.mock_upstream import frame, streaming, transport_for


async def _run(runner: ChatStreamRunner, text: str) -> list[dict]:
    return [event async for event in runner.run(text)]


async def test_streams_growing_message_and_saves_it(test_db):
    handler = streaming(
        b": stream-open\n\n", frame("Hel")[:20], frame("Hel")[20:],
        frame("lo"), b"data: [DONE]\n\n",
    )
    store = SqlChatMessageStore(test_db)
    events = await _run(ChatStreamRunner(store, transport_for(handler)), "Hi")

    messages = [e["data"]["content"] for e in events if e["type"] == "message"]
    assert messages == ["Hel", "Hello"]
    assert events[-1] == {
        "type": "done",
        "data": {"state": "completed", "error": False, "content": "Hello", "parse_errors": 0},
    }
    assert await store.history() == [
        Message(Role.USER, "Hi"), Message(Role.ASSISTANT, "Hello"),
    ]


async def test_request_carries_history_and_auth(test_db):
    store = SqlChatMessageStore(test_db)
    await store.append(Message(Role.USER, "earlier"))
    await store.append(Message(Role.ASSISTANT, "reply"))
    handler = streaming(frame("ok"), b"data: [DONE]\n\n")
    await _run(ChatStreamRunner(store, transport_for(handler)), "now")

    request = handler.requests[0]
    assert request.headers["authorization"] == "Bearer secret"
    body = json.loads(request.content)
    assert body["stream"] is True
    assert body["model"] == "test-model"
    assert body["messages"] == [
        {"role": "user", "content": "earlier"},
        {"role": "assistant", "content": "reply"},
        {"role": "user", "content": "now"},
    ]


async def test_rate_limited_upstream_yields_error_event(test_db):
    handler = streaming(status=429)
    store = SqlChatMessageStore(test_db)
    events = await _run(ChatStreamRunner(store, transport_for(handler)), "Hi")

    error = next(e for e in events if e["type"] == "error")
    assert error["data"]["code"] == "CHAT_RATE_LIMITED"
    assert error["data"]["message"] == "Too many requests, please wait."
    assert error["data"]["severity"] == "warning"
    assert error["data"]["recoverable"] is True
    assert events[-1]["data"]["state"] == "aborted"
    assert await store.history() == [Message(Role.USER, "Hi")]


async def test_credits_exhausted_upstream(test_db):
    handler = streaming(status=402)
    events = await _run(
        ChatStreamRunner(SqlChatMessageStore(test_db), transport_for(handler)), "Hi",
    )
    assert events[0]["data"]["code"] == "CHAT_CREDITS_EXHAUSTED"
    assert events[0]["data"]["recoverable"] is False


async def test_mid_stream_failure_keeps_partial_text(test_db):
    handler = streaming(
        frame("Hel"), b'data: {"choi', error=httpx.ReadError("connection reset"),
    )
    store = SqlChatMessageStore(test_db)
    events = await _run(ChatStreamRunner(store, transport_for(handler)), "Hi")

    assert [e["type"] for e in events] == ["message", "error", "done"]
    assert events[1]["data"]["code"] == "CHAT_TRANSPORT_ERROR"
    assert events[-1]["data"] == {
        "state": "aborted", "error": True, "content": "Hel", "parse_errors": 0,
    }
    assert (await store.history())[-1] == Message(Role.ASSISTANT, "Hel")


async def test_stream_without_text_saves_only_user_message(test_db):
    handler = streaming(b": ping\n\n", b"data: [DONE]\n\n")
    store = SqlChatMessageStore(test_db)
    events = await _run(ChatStreamRunner(store, transport_for(handler)), "Hi")
    assert [e["type"] for e in events] == ["done"]
    assert await store.history() == [Message(Role.USER, "Hi")]


async def test_malformed_frame_is_counted_not_fatal(test_db):
    handler = streaming(b"data: {nope\n", frame("fine"), b"data: [DONE]\n\n")
    events = await _run(
        ChatStreamRunner(SqlChatMessageStore(test_db), transport_for(handler)), "Hi",
    )
    assert events[-1]["data"]["content"] == "fine"
    assert events[-1]["data"]["parse_errors"] == 1


async def test_cancelled_consumer_saves_partial_text(test_db):
    handler = streaming(frame("par"), frame("tial"), frame("never"))
    store = SqlChatMessageStore(test_db)
    run = ChatStreamRunner(store, transport_for(handler)).run("Hi")
    first = await run.__anext__()
    assert first["data"]["content"] == "par"
    await run.aclose()
    assert (await store.history())[-1] == Message(Role.ASSISTANT, "par")
