"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - Progress is bounded 0–100 (enforced by the task schemas)
    - All valid states encoded as Enums — no raw string matching

Design Decisions:
    - str Enums: serialize to JSON without custom encoders (SSE payloads are JSON)
"""

from enum import Enum


# ─── Enums ───────────────────────────────────────────────────────

class Role(str, Enum):
    """Chat message author."""
    USER = "user"
    ASSISTANT = "assistant"


class Priority(str, Enum):
    """Task priority shown on the card."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class FrameKind(str, Enum):
    """Classification of one event-stream line."""
    COMMENT = "comment"
    BLANK = "blank"
    DATA = "data"
    TERMINATOR = "terminator"
    INCOMPLETE = "incomplete"    # needs more bytes — caller re-queues
    MALFORMED = "malformed"      # dropped after one retry


class StreamState(str, Enum):
    """Lifecycle of a single decoded stream."""
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ABORTED = "aborted"


# ─── Constants ───────────────────────────────────────────────────

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"
DEFAULT_COLUMNS = (
    ("todo", "To Do"),
    ("in-progress", "In Progress"),
    ("done", "Done"),
)
