"""Board Coordinator — snapshot lifecycle, optimistic moves, diff persistence.

Tests cover:
    - First move loads from storage; later moves reuse the snapshot
    - persist() writes only the changed items and commits once
    - A write that matches no row invalidates the snapshot
    - invalidate() forces the next move to reload
    - Overlapping persists leave storage in the snapshot's order
"""

import asyncio

from taskboard.core.ordering import MoveIntent, OrderedItem
from taskboard.infrastructure.persistence import PersistenceAdapter
from taskboard.services.board_coordinator import BoardCoordinator


class _MemoryAdapter(PersistenceAdapter):
    """In-memory adapter that records every call."""

    def __init__(self, items, missing=(), delay=0.0, shared=None):
        self.items = shared if shared is not None else {i.id: i for i in items}
        self.delay = delay
        self.missing = set(missing)
        self.loads = 0
        self.updates = []
        self.commits = 0

    async def list_ordered(self, partition_key=None):
        self.loads += 1
        return [
            i for i in self.items.values()
            if partition_key is None or i.partition == partition_key
        ]

    async def insert(self, fields):
        item = OrderedItem(**fields)
        self.items[item.id] = item
        return item

    async def update_fields(self, item_id, fields):
        self.updates.append((item_id, fields))
        if self.delay:
            await asyncio.sleep(self.delay)
        if item_id in self.missing or item_id not in self.items:
            return False
        self.items[item_id] = OrderedItem(
            item_id, fields["status"], fields["order"],
        )
        return True

    async def delete(self, item_id):
        return self.items.pop(item_id, None) is not None

    async def commit(self):
        self.commits += 1


def _items():
    return [
        OrderedItem("A", "todo", 0),
        OrderedItem("B", "todo", 1),
        OrderedItem("C", "done", 2),
    ]


async def test_move_loads_once_and_reuses_snapshot():
    adapter = _MemoryAdapter(_items())
    board = BoardCoordinator()
    assert board.stale
    await board.move(adapter, MoveIntent("B", "todo", "todo", 0))
    await board.move(adapter, MoveIntent("C", "done", "todo", 0))
    assert adapter.loads == 1
    assert [i.id for i in board.snapshot] == ["C", "B", "A"]


async def test_move_does_not_write():
    adapter = _MemoryAdapter(_items())
    await BoardCoordinator().move(adapter, MoveIntent("B", "todo", "todo", 0))
    assert adapter.updates == []


async def test_persist_writes_changed_items_only():
    adapter = _MemoryAdapter(_items())
    board = BoardCoordinator()
    result = await board.move(adapter, MoveIntent("B", "todo", "todo", 0))
    written = await board.persist(adapter, result)
    assert written == 2
    assert sorted(item_id for item_id, _ in adapter.updates) == ["A", "B"]
    assert adapter.commits == 1
    assert not board.stale


async def test_persist_noop_result_touches_nothing():
    adapter = _MemoryAdapter(_items())
    board = BoardCoordinator()
    result = await board.move(adapter, MoveIntent("missing", "todo", "done", 0))
    assert await board.persist(adapter, result) == 0
    assert adapter.commits == 0


async def test_failed_write_invalidates_snapshot():
    adapter = _MemoryAdapter(_items(), missing={"A"})
    board = BoardCoordinator()
    result = await board.move(adapter, MoveIntent("B", "todo", "todo", 0))
    assert await board.persist(adapter, result) == 1
    assert board.stale


async def test_invalidate_forces_reload():
    adapter = _MemoryAdapter(_items())
    board = BoardCoordinator()
    await board.load(adapter)
    board.invalidate()
    await board.move(adapter, MoveIntent("A", "todo", "done", 0))
    assert adapter.loads == 2


async def test_load_force_refetches():
    adapter = _MemoryAdapter(_items())
    board = BoardCoordinator()
    await board.load(adapter)
    adapter.items["A"] = OrderedItem("A", "done", 9)
    snapshot = await board.load(adapter, force=True)
    assert snapshot[-1] == OrderedItem("A", "done", 9)


async def test_overlapping_persists_keep_storage_in_snapshot_order():
    storage = {i.id: i for i in [
        OrderedItem("A", "x", 0), OrderedItem("B", "x", 1), OrderedItem("C", "x", 2),
    ]}
    slow = _MemoryAdapter((), delay=0.05, shared=storage)
    fast = _MemoryAdapter((), shared=storage)
    board = BoardCoordinator()
    first = await board.move(fast, MoveIntent("C", "x", "x", 0))
    second = await board.move(fast, MoveIntent("A", "x", "x", 0))
    assert [i.id for i in board.snapshot] == ["A", "C", "B"]

    await asyncio.gather(
        board.persist(slow, first), board.persist(fast, second),
    )

    stored = sorted(storage.values(), key=lambda i: i.order)
    assert [i.id for i in stored] == ["A", "C", "B"]
    assert not board.stale


async def test_persist_after_earlier_persist_writes_nothing_new():
    adapter = _MemoryAdapter(_items())
    board = BoardCoordinator()
    first = await board.move(adapter, MoveIntent("B", "todo", "todo", 0))
    second = await board.move(adapter, MoveIntent("C", "done", "todo", 0))
    assert await board.persist(adapter, second) == 2
    assert await board.persist(adapter, first) == 0
    assert adapter.commits == 1
