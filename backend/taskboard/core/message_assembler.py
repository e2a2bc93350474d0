"""Message Assembler — folds text deltas into one growing assistant message.

Invariants:
    - At most one in-progress message per assembler
    - content always holds the full accumulated text, never a diff
    - finalize() on an assembler that received no delta returns None
    - finalize() resets the assembler: the returned Message is immutable and owned by the caller
"""

from dataclasses import dataclass

from taskboard.core.domain_types import Role


@dataclass(frozen=True)
class Message:
    """A finished chat message."""
    role: Role
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role.value, "content": self.content}


class MessageAssembler:
    """Accumulator with apply()/finalize(), one per stream."""

    def __init__(self, role: Role = Role.ASSISTANT):
        self._role = role
        self._content: str | None = None

    @property
    def in_progress(self) -> bool:
        return self._content is not None

    @property
    def content(self) -> str:
        return self._content or ""

    def apply(self, delta: str) -> str:
        """Append delta and return the full current text."""
        if self._content is None:
            self._content = delta
        else:
            self._content += delta
        return self._content

    def finalize(self) -> Message | None:
        content = self.content
        self._content = None
        if not content:
            return None
        return Message(self._role, content)
