"""Board Coordinator — owns the authoritative in-memory board snapshot.

Invariants:
    - Only this class replaces the snapshot; routes never mutate it
    - At most one reorder computation in flight per board (asyncio.Lock)
    - A move commits locally before anything is written (optimistic)
    - persist() runs under the same lock as move(), so writes land in call order
    - persist() writes the current snapshot's diff against the last stored state;
      a late persist for an older move cannot overwrite a newer order
    - Any failed write marks the snapshot stale; the next load() reconciles from storage

Design Decisions:
    - Snapshot is a tuple of frozen OrderedItem: reorder() receives a value,
      never an alias of state someone else can change
    - Adapter passed per call: DB sessions are request-scoped, the coordinator is not
    - Single writer per process; no cross-editor conflict resolution
    - After invalidate() there is no baseline, so persist() falls back to the
      result's own changed items
"""

import asyncio
import logging

from taskboard.core.ordering import (
    MoveIntent, OrderedItem, ReorderResult, reorder, sort_items,
)
from taskboard.infrastructure.persistence import PersistenceAdapter

logger = logging.getLogger(__name__)


class BoardCoordinator:
    """Serializes moves against one board and persists their diffs."""

    def __init__(self, strict: bool = False):
        self.strict = strict
        self._snapshot: tuple[OrderedItem, ...] | None = None
        self._persisted: dict[str, OrderedItem] | None = None
        self._lock = asyncio.Lock()

    @property
    def snapshot(self) -> tuple[OrderedItem, ...] | None:
        return self._snapshot

    @property
    def stale(self) -> bool:
        return self._snapshot is None

    def invalidate(self) -> None:
        """Drop the snapshot; the next load() refetches from storage."""
        self._snapshot = None
        self._persisted = None

    async def load(
        self, adapter: PersistenceAdapter, force: bool = False,
    ) -> tuple[OrderedItem, ...]:
        if force or self._snapshot is None:
            self._snapshot = sort_items(await adapter.list_ordered())
            self._persisted = {item.id: item for item in self._snapshot}
            logger.debug("Board snapshot loaded (%d items)", len(self._snapshot))
        return self._snapshot

    async def move(
        self, adapter: PersistenceAdapter, intent: MoveIntent,
    ) -> ReorderResult:
        async with self._lock:
            snapshot = await self.load(adapter)
            result = reorder(snapshot, intent, strict=self.strict)
            self._snapshot = result.items
        logger.info(
            "Task moved to '%s' at %d", intent.to_partition, intent.destination_index,
            extra={"task_id": intent.item_id, "changed_count": len(result.changed)},
        )
        return result

    async def persist(
        self, adapter: PersistenceAdapter, result: ReorderResult,
    ) -> int:
        """Write what the snapshot changed since the last write. Returns rows updated."""
        if result.is_noop:
            return 0
        async with self._lock:
            targets = self._pending_writes(result)
            if not targets:
                return 0
            written = 0
            for item in targets:
                ok = await adapter.update_fields(
                    item.id, {"status": item.partition, "order": item.order},
                )
                if ok:
                    written += 1
                    if self._persisted is not None:
                        self._persisted[item.id] = item
                else:
                    logger.warning(
                        "Order update matched no row", extra={"task_id": item.id},
                    )
            await adapter.commit()
            if written != len(targets):
                self.invalidate()
            return written

    def _pending_writes(self, result: ReorderResult) -> tuple[OrderedItem, ...]:
        if self._snapshot is None or self._persisted is None:
            return result.changed
        return tuple(
            item for item in self._snapshot
            if self._persisted.get(item.id) != item
        )
