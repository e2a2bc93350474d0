"""SQL Persistence Adapters — tasks, columns and chat history against SQLite."""

from uuid import uuid4

from taskboard.core.domain_types import Role
from taskboard.core.message_assembler import Message
from taskboard.infrastructure.persistence import (
    SqlChatMessageStore, SqlColumnStore, SqlTaskAdapter,
)


async def test_list_ordered_is_sorted_by_order(test_db, make_task):
    await make_task("second", order=1)
    await make_task("first", order=0)
    await make_task("done", status="done", order=2)
    adapter = SqlTaskAdapter(test_db)
    items = await adapter.list_ordered()
    assert [i.order for i in items] == [0, 1, 2]
    assert [i.partition for i in await adapter.list_ordered("done")] == ["done"]


async def test_insert_assigns_id(test_db):
    adapter = SqlTaskAdapter(test_db)
    task = await adapter.insert({"title": "New", "status": "todo", "order": 0, "bogus": 1})
    await adapter.commit()
    assert task.id is not None
    assert (await adapter.get(str(task.id))).title == "New"


async def test_update_fields_reports_match(test_db, make_task):
    task = await make_task("t")
    adapter = SqlTaskAdapter(test_db)
    assert await adapter.update_fields(str(task.id), {"status": "done", "order": 4})
    assert not await adapter.update_fields(str(uuid4()), {"order": 1})
    assert not await adapter.update_fields("not-a-uuid", {"order": 1})
    assert not await adapter.update_fields(str(task.id), {"unknown": 1})
    await adapter.commit()
    test_db.expire_all()
    stored = await adapter.get(str(task.id))
    assert (stored.status, stored.order) == ("done", 4)
    assert stored.updated_at is not None


async def test_delete_reports_match(test_db, make_task):
    task = await make_task("t")
    adapter = SqlTaskAdapter(test_db)
    assert await adapter.delete(str(task.id))
    assert not await adapter.delete(str(task.id))
    assert not await adapter.delete("nope")


async def test_column_store_round_trip(test_db):
    store = SqlColumnStore(test_db)
    assert [c.id for c in await store.list_ordered()] == ["todo", "in-progress", "done"]
    await store.insert("review", "Review", 3)
    assert (await store.get("review")).title == "Review"
    assert await store.delete("review")
    assert await store.get("review") is None


async def test_chat_history_is_oldest_first(test_db):
    store = SqlChatMessageStore(test_db)
    await store.append(Message(Role.USER, "hi"))
    await store.append(Message(Role.ASSISTANT, "hello"))
    assert await store.history() == [
        Message(Role.USER, "hi"), Message(Role.ASSISTANT, "hello"),
    ]
