"""Column Routes — list, add and remove board columns.

Invariants:
    - Column id is derived from the title (slug); duplicates are rejected with 409
    - New columns are appended to the right
    - A column that still holds tasks cannot be deleted (409 COLUMN_NOT_EMPTY);
      the check runs here, before anything reaches the ordering engine
"""

import logging

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.core.board_rules import (
    check_column_deletable, column_id_from_title, next_order,
)
from taskboard.core.errors import (
    ColumnExistsError, ColumnNotEmptyError, ResourceNotFoundError,
)
from taskboard.infrastructure.database import get_db
from taskboard.infrastructure.persistence import SqlColumnStore, SqlTaskAdapter
from taskboard.schemas.column import ColumnCreate, ColumnResponse

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/columns", tags=["columns"])


@router.get("", response_model=list[ColumnResponse])
async def list_columns(db: AsyncSession = Depends(get_db)):
    return await SqlColumnStore(db).list_ordered()


@router.post(
    "", response_model=ColumnResponse, status_code=status.HTTP_201_CREATED,
)
async def create_column(body: ColumnCreate, db: AsyncSession = Depends(get_db)):
    store = SqlColumnStore(db)
    column_id = column_id_from_title(body.title)
    if await store.get(column_id):
        raise ColumnExistsError(column_id)
    columns = await store.list_ordered()
    column = await store.insert(
        column_id, body.title, next_order(c.order for c in columns),
    )
    logger.info("Column created", extra={"column_id": column_id})
    return column


@router.delete("/{column_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_column(column_id: str, db: AsyncSession = Depends(get_db)):
    store = SqlColumnStore(db)
    if not await store.get(column_id):
        raise ResourceNotFoundError("Column", column_id)
    items = await SqlTaskAdapter(db).list_ordered(column_id)
    error = check_column_deletable(column_id, items)
    if error:
        raise ColumnNotEmptyError(column_id, error["task_count"])
    await store.delete(column_id)
    logger.info("Column deleted", extra={"column_id": column_id})
    return Response(status_code=status.HTTP_204_NO_CONTENT)
