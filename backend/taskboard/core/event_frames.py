"""Event Frame Parser — classifies event-stream lines and extracts text deltas.

Invariants:
    - classify_line is PURE: no IO, no state, never raises on any input
    - Rule order: blank, comment, "data: " payload, everything else ignored
    - "[DONE]" after the prefix is the terminator, never a delta
    - A JSON payload without choices[0].delta.content yields a DATA frame with text=None
    - Invalid JSON is INCOMPLETE on first sight, MALFORMED on the retry

Design Decisions:
    - Retry bound is a single boolean on the parser instance, not recursion
    - Frame keeps the raw line so the caller can re-queue it verbatim
      (prefix included — stripping happens again on the retry)
"""

import json
from dataclasses import dataclass

from taskboard.core.domain_types import DATA_PREFIX, DONE_SENTINEL, FrameKind


@dataclass(frozen=True)
class Frame:
    """One classified line of the event stream."""
    kind: FrameKind
    raw: str
    text: str | None = None

    @property
    def delta(self) -> str | None:
        """Text fragment to append, if this frame carries one."""
        return self.text if self.kind == FrameKind.DATA else None


def extract_delta(payload: object) -> str | None:
    """Pull choices[0].delta.content out of a decoded payload."""
    if not isinstance(payload, dict):
        return None
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    delta = first.get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    if isinstance(content, str) and content:
        return content
    return None


def classify_line(line: str) -> Frame:
    """Classify a single line. Stateless — see EventFrameParser for retries."""
    if not line.strip():
        return Frame(FrameKind.BLANK, line)
    if line.startswith(":"):
        return Frame(FrameKind.COMMENT, line)
    if not line.startswith(DATA_PREFIX):
        return Frame(FrameKind.COMMENT, line)

    candidate = line[len(DATA_PREFIX):].strip()
    if candidate == DONE_SENTINEL:
        return Frame(FrameKind.TERMINATOR, line)
    try:
        payload = json.loads(candidate)
    except ValueError:
        return Frame(FrameKind.INCOMPLETE, line)
    return Frame(FrameKind.DATA, line, extract_delta(payload))


class EventFrameParser:
    """Stateful classifier that bounds re-queue retries to one per line."""

    def __init__(self):
        self._retrying = False
        self.parse_errors = 0

    @property
    def retrying(self) -> bool:
        return self._retrying

    def classify(self, line: str) -> Frame:
        frame = classify_line(line)
        if frame.kind != FrameKind.INCOMPLETE:
            self._retrying = False
            return frame
        if self._retrying:
            self._retrying = False
            self.parse_errors += 1
            return Frame(FrameKind.MALFORMED, line)
        self._retrying = True
        return frame
