"""Ordering Engine — applies a drag move to a partitioned, totally ordered collection.

Invariants:
    - reorder() is PURE: the input sequence is never mutated, a new tuple is returned
    - After a move, order values are the dense 0-based positions of one flat sequence
    - Filtering the result by partition reproduces the intended visual arrangement
    - No two items of one partition share an order value (checked after every move)
    - An unknown item id is a no-op: same items, empty changed set, no exception
    - changed contains exactly the items whose order or partition differ from the input

Design Decisions:
    - Collection-wide renumbering over per-partition: one stable sort key serves
      every column and a cross-column move cannot collide with another column
    - destination_index counts within the destination partition as it looks
      after the moved item was lifted out (drag-and-drop semantics)
    - A stale from_partition is logged and the move applied from the item's
      real position; the caller owns snapshot freshness
"""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace

from taskboard.core.errors import OrderingInvariantError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderedItem:
    """An item placed in a partition at a position of the global order."""
    id: str
    partition: str
    order: int


@dataclass(frozen=True)
class MoveIntent:
    """Produced by one drag gesture, consumed exactly once by reorder()."""
    item_id: str
    from_partition: str
    to_partition: str
    destination_index: int


@dataclass(frozen=True)
class ReorderResult:
    """New snapshot plus the minimal set of records to persist."""
    items: tuple[OrderedItem, ...]
    changed: tuple[OrderedItem, ...]

    @property
    def is_noop(self) -> bool:
        return not self.changed

    def in_partition(self, partition: str) -> list[OrderedItem]:
        return [i for i in self.items if i.partition == partition]


def sort_items(items: Iterable[OrderedItem]) -> tuple[OrderedItem, ...]:
    """Ascending order, stable for ties."""
    return tuple(sorted(items, key=lambda i: i.order))


def find_duplicate_order(
    items: Iterable[OrderedItem],
) -> tuple[str, int] | None:
    """First (partition, order) pair used twice, or None."""
    seen: set[tuple[str, int]] = set()
    for item in items:
        key = (item.partition, item.order)
        if key in seen:
            return key
        seen.add(key)
    return None


def reorder(
    items: Sequence[OrderedItem], move: MoveIntent, *, strict: bool = False,
) -> ReorderResult:
    """Move one item and renumber the whole collection."""
    snapshot = sort_items(items)
    working = list(snapshot)

    index = next(
        (i for i, item in enumerate(working) if item.id == move.item_id), None,
    )
    if index is None:
        logger.info(
            "Move ignored: unknown item", extra={"task_id": move.item_id},
        )
        return ReorderResult(items=snapshot, changed=())

    moved = working.pop(index)
    if moved.partition != move.from_partition:
        logger.warning(
            "Stale move intent: item is in '%s', intent says '%s'",
            moved.partition, move.from_partition,
            extra={"task_id": move.item_id},
        )
    moved = replace(moved, partition=move.to_partition)

    members = [item for item in working if item.partition == move.to_partition]
    destination = max(move.destination_index, 0)
    if destination < len(members):
        insert_at = working.index(members[destination])
    else:
        insert_at = len(working)
    working.insert(insert_at, moved)

    renumbered = tuple(
        item if item.order == position else replace(item, order=position)
        for position, item in enumerate(working)
    )
    _check_invariants(renumbered, strict)

    before = {item.id: item for item in snapshot}
    changed = tuple(
        item for item in renumbered
        if before[item.id].order != item.order
        or before[item.id].partition != item.partition
    )
    return ReorderResult(items=renumbered, changed=changed)


def _check_invariants(items: Sequence[OrderedItem], strict: bool) -> None:
    duplicate = find_duplicate_order(items)
    if duplicate is None:
        return
    error = OrderingInvariantError(*duplicate)
    if strict:
        raise error
    logger.error(error.message, extra={"error_code": error.code})
