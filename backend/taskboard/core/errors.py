"""Error Hierarchy — typed, categorized exceptions for all Taskboard failure modes.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Severity, not HTTP status, decides recoverability: rate limits are WARNING, domain errors ERROR
    - to_response() produces REST envelope; to_sse_event() produces SSE envelope
    - Only WARNING errors are marked recoverable in SSE events (client may retry)
    - Recoverable parse errors never appear here: the decoder absorbs them

Design Decisions:
    - Single hierarchy with TaskboardError base: FastAPI global handler catches all
    - ErrorContext as dataclass: rich observability without coupling to logging framework
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    DATABASE = "database"
    EXTERNAL_API = "external_api"
    INTERNAL = "internal"
    CONFLICT = "conflict"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    task_id: str | None = None
    column_id: str | None = None
    user_message: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class TaskboardError(Exception):
    """Base exception for all Taskboard errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "task_id": self.context.task_id,
                    "column_id": self.context.column_id,
                    "retry_after_ms": self.context.retry_after_ms,
                },
            }
        }

    def to_sse_event(self) -> dict:
        """Convert to SSE error event."""
        return {
            "type": "error",
            "data": {
                "code": self.code,
                "message": self.context.user_message or self.message,
                "severity": self.severity.value,
                "recoverable": self.severity == ErrorSeverity.WARNING,
            },
        }


# ─── Domain Errors (400-level) ──────────────────────────────────

class ResourceNotFoundError(TaskboardError):
    """Requested resource does not exist."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )


class ColumnNotEmptyError(TaskboardError):
    """Column still has tasks referencing it."""
    def __init__(
        self, column_id: str, task_count: int, context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.column_id = column_id
        super().__init__(
            f"Column '{column_id}' still has {task_count} task(s). "
            "Move or delete them first.",
            "COLUMN_NOT_EMPTY", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.ERROR, ctx, 409,
        )
        self.task_count = task_count


class ColumnExistsError(TaskboardError):
    """A column with the same slug already exists."""
    def __init__(self, column_id: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.column_id = column_id
        super().__init__(
            f"Column '{column_id}' already exists",
            "COLUMN_EXISTS", ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, ctx, 409,
        )


class ConcurrencyError(TaskboardError):
    """Concurrent modification or overlapping stream detected."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "CONCURRENCY_CONFLICT", ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, context, 409,
        )


# ─── Infrastructure Errors (500-level) ──────────────────────────

class DatabaseError(TaskboardError):
    """Database operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation


class ChatTransportError(TaskboardError):
    """Chat upstream failed to open or broke mid-stream."""
    def __init__(
        self,
        message: str,
        code: str = "CHAT_TRANSPORT_ERROR",
        http_status: int = 503,
        retry_after_ms: int | None = None,
        context: ErrorContext | None = None,
        severity: ErrorSeverity = ErrorSeverity.CRITICAL,
    ):
        ctx = context or ErrorContext()
        ctx.retry_after_ms = retry_after_ms
        super().__init__(
            message, code, ErrorCategory.EXTERNAL_API,
            severity, ctx, http_status,
        )


class ChatRateLimitedError(ChatTransportError):
    """Upstream answered 429."""
    def __init__(self, retry_after_ms: int | None = None, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.user_message = "Too many requests, please wait."
        super().__init__(
            "Chat upstream rate limit exceeded", "CHAT_RATE_LIMITED",
            429, retry_after_ms, ctx, ErrorSeverity.WARNING,
        )


class ChatCreditsExhaustedError(ChatTransportError):
    """Upstream answered 402."""
    def __init__(self, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.user_message = "Credits exhausted. Please add funds to continue."
        super().__init__(
            "Chat upstream credits exhausted", "CHAT_CREDITS_EXHAUSTED",
            402, None, ctx,
        )


class AnthropicAPIError(TaskboardError):
    """Anthropic API call failed (chat completions relay)."""
    def __init__(
        self,
        message: str,
        api_error_type: str,
        retry_after_ms: int | None = None,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.retry_after_ms = retry_after_ms
        super().__init__(
            f"Anthropic API error ({api_error_type}): {message}",
            "ANTHROPIC_API_ERROR", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.CRITICAL, ctx,
            429 if api_error_type == "rate_limit" else 503,
        )
        self.api_error_type = api_error_type


class OrderingInvariantError(TaskboardError):
    """Two items in one partition share an order value after a reorder."""
    def __init__(self, partition: str, order: int, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.column_id = partition
        super().__init__(
            f"Duplicate order {order} in partition '{partition}'",
            "ORDERING_INVARIANT_VIOLATED", ErrorCategory.INTERNAL,
            ErrorSeverity.CRITICAL, ctx, 500,
        )
        self.partition = partition
        self.order = order
