"""Mock Anthropic objects — drive the completions relay and the resilient client in tests.

Invariants:
    - MockAnthropicClient replaces ResilientAnthropicClient (stream_text interface)
    - FakeMessages replaces AsyncAnthropic.messages (SDK stream manager interface)
    - Responses are sequenced: one per stream call, in order

Design Decisions:
    - Flat mock classes (no inheritance): simple, explicit, easy to debug
    - An Exception in the response list is raised instead of opening a stream
"""

from contextlib import asynccontextmanager

import anthropic
import httpx


# -- Relay-level mock ------------------------------------------------------------


class MockAnthropicClient:
    """Replaces ResilientAnthropicClient. Sequences pre-configured text streams.

    Each response is a list of text deltas, an Exception raised on open, or a
    (texts, exception) pair that fails after the texts were yielded.
    """

    def __init__(self, responses):
        self._responses = responses
        self._idx = 0
        self.calls = []

    @asynccontextmanager
    async def stream_text(self, **kwargs):
        self.calls.append(kwargs)
        if self._idx >= len(self._responses):
            raise RuntimeError(
                f"MockAnthropicClient: no response at index {self._idx} "
                f"(configured {len(self._responses)})",
            )
        response = self._responses[self._idx]
        self._idx += 1
        if isinstance(response, Exception):
            raise response
        texts, error = response if isinstance(response, tuple) else (response, None)
        yield _texts(texts, error)


async def _texts(texts, error):
    for text in texts:
        yield text
    if error is not None:
        raise error


# -- SDK-level mock ----------------------------------------------------------------


class _Usage:
    def __init__(self, input_tokens=100, output_tokens=50):
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens


class _Message:
    def __init__(self):
        self.usage = _Usage()


class _SdkStream:
    """Mock MessageStream: text_stream + get_final_message()."""

    def __init__(self, texts):
        self._texts = texts

    @property
    def text_stream(self):
        return _texts(self._texts, None)

    async def get_final_message(self):
        return _Message()


class _StreamManager:
    def __init__(self, outcome):
        self._outcome = outcome

    async def __aenter__(self):
        if isinstance(self._outcome, Exception):
            raise self._outcome
        return _SdkStream(self._outcome)

    async def __aexit__(self, *exc):
        return False


class FakeMessages:
    """Replaces AsyncAnthropic.messages. Each outcome: texts or an Exception."""

    def __init__(self, outcomes):
        self._outcomes = list(outcomes)
        self.calls = []

    def stream(self, **kwargs):
        self.calls.append(kwargs)
        return _StreamManager(self._outcomes.pop(0))


class FakeSdkClient:
    def __init__(self, outcomes):
        self.messages = FakeMessages(outcomes)


# -- Builder helpers -----------------------------------------------------------


def _response(status_code: int, headers: dict | None = None) -> httpx.Response:
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    return httpx.Response(status_code, headers=headers, request=request)


def rate_limit_error(retry_after: str | None = None) -> anthropic.RateLimitError:
    headers = {"retry-after": retry_after} if retry_after else None
    return anthropic.RateLimitError(
        "rate limited", response=_response(429, headers), body=None,
    )


def bad_request_error() -> anthropic.BadRequestError:
    return anthropic.BadRequestError(
        "invalid request", response=_response(400), body=None,
    )


def connection_error() -> anthropic.APIConnectionError:
    return anthropic.APIConnectionError(
        request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"),
    )
