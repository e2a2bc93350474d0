"""Task ORM — one card on the board.

Invariants:
    - id is UUID primary key (client never chooses it)
    - status holds the id of the column the task sits in (the partition)
    - order is the task's position in the single board-wide sequence
    - progress is 0-100; tags and assignees are JSON string lists

Design Decisions:
    - Collection-wide order column over per-column positions: one ORDER BY
      serves every column (see core/ordering.py)
    - JSON columns for tags/assignees: no querying by tag is needed
"""

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import String, Text, Integer, Date, DateTime, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from taskboard.core.ordering import OrderedItem
from taskboard.db.base import Base


class Task(Base):
    __tablename__ = "tasks"
    __table_args__ = (Index("ix_tasks_status_order", "status", "order"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(String(100), nullable=False)
    priority: Mapped[str] = mapped_column(
        String(10), nullable=False, default="medium",
    )
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    assignees: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    order: Mapped[int] = mapped_column(
        "order", Integer, nullable=False, default=0,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    def to_ordered_item(self) -> OrderedItem:
        return OrderedItem(id=str(self.id), partition=self.status, order=self.order)
