"""Task Routes — CRUD plus drag moves against the board coordinator.

Invariants:
    - Every mutation outside /move invalidates the coordinator snapshot
    - /move validates the task exists (404) before the engine sees the intent
    - /move answers with the locally committed order; persistence follows in background
    - New tasks are appended after every existing task

Design Decisions:
    - _board as module-level coordinator: single-process uvicorn, one board;
      state is rebuilt from storage on restart
    - Background persistence uses its own DB session (the request one is closed by then)
"""

import logging
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.config import get_settings
from taskboard.core.board_rules import matches_search, next_order
from taskboard.core.errors import DatabaseError, ResourceNotFoundError
from taskboard.core.ordering import MoveIntent, OrderedItem, ReorderResult
from taskboard.infrastructure.database import get_db
from taskboard.infrastructure.persistence import SqlColumnStore, SqlTaskAdapter
from taskboard.models.task import Task
from taskboard.schemas.task import (
    MoveRequest, MoveResponse, OrderEntry, TaskCreate, TaskResponse, TaskUpdate,
)
from taskboard.services.board_coordinator import BoardCoordinator

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/tasks", tags=["tasks"])

_board = BoardCoordinator(strict=get_settings().ordering_strict_invariants)


async def get_task_or_404(task_id: UUID, adapter: SqlTaskAdapter) -> Task:
    """Get task or raise 404. Shared by every per-task route."""
    task = await adapter.get(str(task_id))
    if not task:
        raise ResourceNotFoundError("Task", str(task_id))
    return task


async def _require_column(db: AsyncSession, column_id: str) -> None:
    if not await SqlColumnStore(db).get(column_id):
        raise ResourceNotFoundError("Column", column_id)


@router.get("", response_model=list[TaskResponse])
async def list_tasks(
    q: str | None = Query(None, max_length=200),
    status_filter: str | None = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
):
    """Tasks in board order, optionally filtered by column and search text."""
    tasks = await SqlTaskAdapter(db).list_tasks(status_filter)
    return [t for t in tasks if matches_search(t.title, t.description, q)]


@router.post(
    "", response_model=TaskResponse, status_code=status.HTTP_201_CREATED,
)
async def create_task(body: TaskCreate, db: AsyncSession = Depends(get_db)):
    await _require_column(db, body.status)
    adapter = SqlTaskAdapter(db)
    fields = body.model_dump()
    fields["priority"] = body.priority.value
    fields["order"] = next_order(i.order for i in await adapter.list_ordered())
    task = await adapter.insert(fields)
    await adapter.commit()
    _board.invalidate()
    logger.info("Task created", extra={"task_id": str(task.id), "column_id": task.status})
    return task


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(task_id: UUID, db: AsyncSession = Depends(get_db)):
    return await get_task_or_404(task_id, SqlTaskAdapter(db))


@router.patch("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: UUID, body: TaskUpdate, db: AsyncSession = Depends(get_db),
):
    """Edit task fields. Moving between columns by edit keeps the order value."""
    adapter = SqlTaskAdapter(db)
    task = await get_task_or_404(task_id, adapter)
    fields = body.model_dump(exclude_unset=True)
    if "status" in fields and fields["status"] is not None:
        await _require_column(db, fields["status"])
    if fields.get("priority") is not None:
        fields["priority"] = fields["priority"].value
    fields = {
        k: v for k, v in fields.items() if v is not None or k == "due_date"
    }
    if fields:
        await adapter.update_fields(str(task_id), fields)
        await adapter.commit()
        await db.refresh(task)
        _board.invalidate()
    return task


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(task_id: UUID, db: AsyncSession = Depends(get_db)):
    adapter = SqlTaskAdapter(db)
    await get_task_or_404(task_id, adapter)
    await adapter.delete(str(task_id))
    await adapter.commit()
    _board.invalidate()
    logger.info("Task deleted", extra={"task_id": str(task_id)})
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{task_id}/move", response_model=MoveResponse)
async def move_task(
    task_id: UUID,
    body: MoveRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    """Apply a drag move. Local order is committed now; storage catches up."""
    adapter = SqlTaskAdapter(db)
    await get_task_or_404(task_id, adapter)
    await _require_column(db, body.to_status)
    result = await _board.move(adapter, MoveIntent(
        item_id=str(task_id),
        from_partition=body.from_status,
        to_partition=body.to_status,
        destination_index=body.destination_index,
    ))
    if not result.is_noop:
        background_tasks.add_task(_persist_in_background, result)
    return MoveResponse(
        moved=not result.is_noop,
        changed=[_entry(i) for i in result.changed],
        order=[_entry(i) for i in result.items],
    )


def _entry(item: OrderedItem) -> OrderEntry:
    return OrderEntry(id=item.id, status=item.partition, order=item.order)


async def _persist_in_background(result: ReorderResult) -> None:
    """Background task: write the changed order values.

    Uses its own DB session. A failure leaves the snapshot stale so the next
    move reloads from storage.
    """
    from taskboard.infrastructure import database

    if not database.db_manager:
        logger.error("Cannot persist move: database not initialized")
        _board.invalidate()
        return

    try:
        async with database.db_manager.session() as db:
            written = await _board.persist(SqlTaskAdapter(db), result)
        logger.info("Move persisted", extra={"changed_count": written})
    except DatabaseError as e:
        _board.invalidate()
        logger.error(f"Move persistence failed: {e.message}", extra={"error_code": e.code})
