"""Stream Decoder — drives FrameBuffer, EventFrameParser and MessageAssembler per stream.

Invariants:
    - State machine: IDLE → STREAMING → COMPLETED | ABORTED, one instance per stream
    - Deltas are applied strictly in the order their frames were read
    - After TERMINATOR no further frame is read; later feed() calls return []
    - A re-queued line stops the current chunk; the next chunk extends it
    - abort()/cancel() keep whatever text was applied (no rollback)
    - Parse anomalies never escape: they are counted in StreamOutcome.parse_errors

Design Decisions:
    - Transport failures arrive as abort() calls and leave as an explicit
      StreamOutcome, never as exceptions thrown through the per-chunk loop
    - When a retried line still fails, only the original fragment is dropped;
      the bytes that extended it are classified on their own so a valid frame
      that followed the malformed one survives
"""

import logging
from collections.abc import Iterator
from dataclasses import dataclass

from taskboard.core.domain_types import FrameKind, StreamState
from taskboard.core.event_frames import EventFrameParser
from taskboard.core.frame_buffer import FrameBuffer
from taskboard.core.message_assembler import Message, MessageAssembler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeltaUpdate:
    """One applied delta and the full message text after applying it."""
    delta: str
    content: str


@dataclass(frozen=True)
class StreamOutcome:
    """Terminal result of a stream."""
    state: StreamState
    message: Message | None
    error: str | None = None
    parse_errors: int = 0
    trailing: tuple[DeltaUpdate, ...] = ()

    @property
    def content(self) -> str:
        return self.message.content if self.message else ""


class StreamDecoder:
    """Byte chunks in, message deltas out."""

    def __init__(self):
        self._buffer = FrameBuffer()
        self._parser = EventFrameParser()
        self._assembler = MessageAssembler()
        self._state = StreamState.IDLE
        self._requeued: str | None = None
        self._outcome: StreamOutcome | None = None

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def done(self) -> bool:
        return self._state in (StreamState.COMPLETED, StreamState.ABORTED)

    @property
    def content(self) -> str:
        return self._assembler.content

    def feed(self, chunk: bytes) -> list[DeltaUpdate]:
        """Process one transport chunk. Returns the deltas it produced."""
        if self.done:
            logger.debug("Chunk ignored: stream already %s", self._state.value)
            return []
        self._state = StreamState.STREAMING
        updates: list[DeltaUpdate] = []
        self._consume(self._buffer.feed(chunk), updates, final=False)
        return updates

    def finish(self) -> StreamOutcome:
        """Input ended normally: drain, flush the partial line, finalize."""
        if self._outcome:
            return self._outcome
        updates: list[DeltaUpdate] = []
        if self._state != StreamState.COMPLETED:
            self._consume(self._buffer.drain(), updates, final=True)
        while self._state != StreamState.COMPLETED:
            tail = self._buffer.flush()
            if tail is None:
                break
            self._handle(tail, updates, final=True)
            self._consume(self._buffer.drain(), updates, final=True)
        self._state = StreamState.COMPLETED
        return self._close(None, tuple(updates))

    def abort(self, reason: str) -> StreamOutcome:
        """Transport failed: keep applied text, drop the partial line."""
        if self._outcome:
            return self._outcome
        lost = self._buffer.discard()
        if lost:
            logger.info("Discarded %d buffered chars on abort", lost)
        self._state = StreamState.ABORTED
        return self._close(reason, ())

    def cancel(self) -> StreamOutcome:
        """Caller cancelled: same policy as abort."""
        return self.abort("cancelled")

    # -- internals ------------------------------------------------------------

    def _consume(
        self, lines: Iterator[str], updates: list[DeltaUpdate], final: bool,
    ) -> None:
        for line in lines:
            if self._state == StreamState.COMPLETED:
                return
            if self._handle(line, updates, final):
                return

    def _handle(self, line: str, updates: list[DeltaUpdate], final: bool) -> bool:
        """Process one line. Returns True when the caller must stop reading."""
        frame = self._parser.classify(line)

        if frame.kind == FrameKind.INCOMPLETE:
            self._buffer.requeue(line)
            self._requeued = line
            return not final

        if frame.kind == FrameKind.MALFORMED:
            fragment, self._requeued = self._requeued, None
            logger.warning(
                "Dropped malformed event-stream line",
                extra={"parse_errors": self._parser.parse_errors},
            )
            if fragment and line.startswith(fragment) and len(line) > len(fragment):
                return self._handle(line[len(fragment):], updates, final)
            return False

        self._requeued = None
        if frame.kind == FrameKind.TERMINATOR:
            self._state = StreamState.COMPLETED
            return True
        delta = frame.delta
        if delta:
            updates.append(DeltaUpdate(delta, self._assembler.apply(delta)))
        return False

    def _close(
        self, error: str | None, trailing: tuple[DeltaUpdate, ...],
    ) -> StreamOutcome:
        self._outcome = StreamOutcome(
            state=self._state,
            message=self._assembler.finalize(),
            error=error,
            parse_errors=self._parser.parse_errors,
            trailing=trailing,
        )
        return self._outcome
