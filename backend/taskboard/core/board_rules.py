"""Board Rules — pure checks the caller runs around the ordering engine.

Invariants:
    - All functions are PURE: no IO, no async, no DB, no side effects
    - check_* functions return an error dict on violation, None on success
    - Column deletion is validated here, never inside reorder()

Design Decisions:
    - Return dicts (not exceptions): routes decide how to surface them, and
      tests assert on plain data without mocks
"""

import re
from collections.abc import Iterable

from taskboard.core.ordering import OrderedItem

_WHITESPACE = re.compile(r"\s+")


def check_column_deletable(
    column_id: str, items: Iterable[OrderedItem],
) -> dict | None:
    """A column may only be deleted when no task references it."""
    count = sum(1 for item in items if item.partition == column_id)
    if count:
        return {
            "status": "error",
            "error_code": "COLUMN_NOT_EMPTY",
            "message": (
                f"Cannot delete column '{column_id}': {count} task(s) still in it. "
                "Move or delete them first."
            ),
            "task_count": count,
        }
    return None


def column_id_from_title(title: str) -> str:
    """'In Review' → 'in-review'."""
    return _WHITESPACE.sub("-", title.strip().lower())


def next_order(orders: Iterable[int]) -> int:
    """New tasks and columns are appended after every existing one."""
    return max(orders, default=-1) + 1


def matches_search(title: str, description: str | None, query: str | None) -> bool:
    """Case-insensitive substring match on title or description."""
    if not query:
        return True
    needle = query.lower()
    return needle in title.lower() or needle in (description or "").lower()
