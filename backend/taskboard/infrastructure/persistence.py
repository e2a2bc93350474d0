"""Persistence Adapters — the only path from the core to remote storage.

Invariants:
    - PersistenceAdapter exposes exactly list_ordered / insert / update_fields / delete
    - list_ordered returns items ascending by order (ties broken by creation time)
    - update_fields and delete report success as bool, never raise for a missing id
    - Adapters flush; the caller decides when to commit (one commit per batch)

Design Decisions:
    - ABC over Protocol: the coordinator and the tests share one explicit contract
    - An unparseable id is treated like a missing row (False), not a 400
"""

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.core.domain_types import Role
from taskboard.core.message_assembler import Message
from taskboard.core.ordering import OrderedItem
from taskboard.models.board_column import BoardColumn
from taskboard.models.chat_message import ChatMessage
from taskboard.models.task import Task

logger = logging.getLogger(__name__)

_TASK_FIELDS = frozenset({
    "title", "description", "status", "priority", "tags",
    "progress", "assignees", "due_date", "order",
})


def _parse_id(item_id: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(item_id))
    except ValueError:
        return None


class PersistenceAdapter(ABC):
    """CRUD contract the board coordinator persists through."""

    @abstractmethod
    async def list_ordered(
        self, partition_key: str | None = None,
    ) -> list[OrderedItem]:
        ...

    @abstractmethod
    async def insert(self, fields: dict[str, Any]) -> Any:
        """Store a new item; returns it with its assigned id."""

    @abstractmethod
    async def update_fields(self, item_id: str, fields: dict[str, Any]) -> bool:
        ...

    @abstractmethod
    async def delete(self, item_id: str) -> bool:
        ...

    @abstractmethod
    async def commit(self) -> None:
        ...


class SqlTaskAdapter(PersistenceAdapter):
    """PersistenceAdapter over the tasks table."""

    def __init__(self, db: AsyncSession):
        self._db = db

    async def list_tasks(self, partition_key: str | None = None) -> list[Task]:
        query = select(Task).order_by(Task.order, Task.created_at)
        if partition_key is not None:
            query = query.where(Task.status == partition_key)
        result = await self._db.execute(query)
        return list(result.scalars().all())

    async def list_ordered(
        self, partition_key: str | None = None,
    ) -> list[OrderedItem]:
        return [t.to_ordered_item() for t in await self.list_tasks(partition_key)]

    async def get(self, item_id: str) -> Task | None:
        task_id = _parse_id(item_id)
        if task_id is None:
            return None
        result = await self._db.execute(select(Task).where(Task.id == task_id))
        return result.scalar_one_or_none()

    async def insert(self, fields: dict[str, Any]) -> Task:
        task = Task(**{k: v for k, v in fields.items() if k in _TASK_FIELDS})
        self._db.add(task)
        await self._db.flush()
        await self._db.refresh(task)
        return task

    async def update_fields(self, item_id: str, fields: dict[str, Any]) -> bool:
        task_id = _parse_id(item_id)
        values = {k: v for k, v in fields.items() if k in _TASK_FIELDS}
        if task_id is None or not values:
            return False
        values["updated_at"] = datetime.now(timezone.utc)
        result = await self._db.execute(
            update(Task).where(Task.id == task_id).values(**values),
        )
        return result.rowcount == 1

    async def delete(self, item_id: str) -> bool:
        task_id = _parse_id(item_id)
        if task_id is None:
            return False
        result = await self._db.execute(delete(Task).where(Task.id == task_id))
        return result.rowcount == 1

    async def commit(self) -> None:
        await self._db.commit()


class SqlColumnStore:
    """Board columns, ordered left to right."""

    def __init__(self, db: AsyncSession):
        self._db = db

    async def list_ordered(self) -> list[BoardColumn]:
        result = await self._db.execute(
            select(BoardColumn).order_by(BoardColumn.order, BoardColumn.created_at),
        )
        return list(result.scalars().all())

    async def get(self, column_id: str) -> BoardColumn | None:
        return await self._db.get(BoardColumn, column_id)

    async def insert(self, column_id: str, title: str, order: int) -> BoardColumn:
        column = BoardColumn(id=column_id, title=title, order=order)
        self._db.add(column)
        await self._db.commit()
        await self._db.refresh(column)
        return column

    async def delete(self, column_id: str) -> bool:
        result = await self._db.execute(
            delete(BoardColumn).where(BoardColumn.id == column_id),
        )
        await self._db.commit()
        return result.rowcount == 1


class SqlChatMessageStore:
    """Chat history, oldest first."""

    def __init__(self, db: AsyncSession):
        self._db = db

    async def history(self) -> list[Message]:
        result = await self._db.execute(
            select(ChatMessage).order_by(ChatMessage.created_at),
        )
        return [
            Message(Role(row.role), row.content)
            for row in result.scalars().all()
        ]

    async def append(self, message: Message) -> None:
        self._db.add(ChatMessage(role=message.role.value, content=message.content))
        await self._db.commit()
        logger.debug("Saved %s message (%d chars)", message.role.value, len(message.content))
