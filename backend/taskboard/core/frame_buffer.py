"""Frame Buffer — accumulates raw byte chunks and splits them into complete lines.

Invariants:
    - No byte is dropped or duplicated between feed() calls
    - A line is removed from the buffer only when it is yielded (lazy drain)
    - Exactly one trailing "\\r" is stripped per line (LF and CRLF framing)
    - A multi-byte UTF-8 character split across chunks is reassembled

Design Decisions:
    - Incremental codec decoder over bytes.decode: chunk boundaries may fall
      inside a code point, and the decoder carries the partial sequence
    - Lazy generator over list: a consumer that stops early (terminator,
      re-queue) leaves the unread lines buffered for the next call
"""

import codecs
from collections.abc import Iterator


class FrameBuffer:
    """Line splitter that tolerates chunk boundaries anywhere."""

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._pending = ""

    @property
    def pending(self) -> str:
        """Unconsumed text (partial line plus any undrained lines)."""
        return self._pending

    def feed(self, chunk: bytes) -> Iterator[str]:
        """Append chunk and lazily yield every complete line now buffered."""
        self._pending += self._decoder.decode(chunk)
        return self.drain()

    def drain(self) -> Iterator[str]:
        """Yield complete lines already buffered, without new input."""
        while True:
            newline = self._pending.find("\n")
            if newline == -1:
                return
            line = self._pending[:newline]
            self._pending = self._pending[newline + 1:]
            if line.endswith("\r"):
                line = line[:-1]
            yield line

    def requeue(self, fragment: str) -> None:
        """Put an unterminated fragment back in front of the buffer."""
        self._pending = fragment + self._pending

    def flush(self) -> str | None:
        """End of stream: return the trailing partial line, if non-empty."""
        self._pending += self._decoder.decode(b"", final=True)
        remainder, self._pending = self._pending, ""
        if remainder.endswith("\r"):
            remainder = remainder[:-1]
        return remainder or None

    def discard(self) -> int:
        """Abnormal termination: drop the partial line. Returns chars lost."""
        lost = len(self._pending)
        self._pending = ""
        self._decoder.reset()
        return lost
