"""Task Schemas — Pydantic models with field-level validation for the board API.

Invariants:
    - TaskCreate.title: 1-300 chars, stripped, non-empty
    - progress bounded 0-100; priority one of low/medium/high
    - Assignees and tags are stripped and de-blanked
    - MoveRequest.destination_index >= 0

Design Decisions:
    - order is never client-writable through create/update: only moves change it
"""

from datetime import date
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from taskboard.core.domain_types import Priority


def _clean_list(values: list[str]) -> list[str]:
    return [v.strip() for v in values if v and v.strip()]


class TaskCreate(BaseModel):
    """Task creation — status must name an existing column."""
    title: str = Field(min_length=1, max_length=300)
    description: str = Field("", max_length=10_000)
    status: str = Field("todo", min_length=1, max_length=100)
    priority: Priority = Priority.MEDIUM
    tags: list[str] = Field(default_factory=list)
    progress: int = Field(0, ge=0, le=100)
    assignees: list[str] = Field(default_factory=list)
    due_date: date | None = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title cannot be empty or whitespace")
        return v

    @field_validator("description")
    @classmethod
    def strip_description(cls, v: str) -> str:
        return v.strip()

    @field_validator("tags", "assignees")
    @classmethod
    def clean_lists(cls, v: list[str]) -> list[str]:
        return _clean_list(v)


class TaskUpdate(BaseModel):
    """Partial update — only fields that were sent are applied."""
    title: str | None = Field(None, min_length=1, max_length=300)
    description: str | None = Field(None, max_length=10_000)
    status: str | None = Field(None, min_length=1, max_length=100)
    priority: Priority | None = None
    tags: list[str] | None = None
    progress: int | None = Field(None, ge=0, le=100)
    assignees: list[str] | None = None
    due_date: date | None = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("title cannot be empty or whitespace")
        return v

    @field_validator("tags", "assignees")
    @classmethod
    def clean_lists(cls, v: list[str] | None) -> list[str] | None:
        return None if v is None else _clean_list(v)


class TaskResponse(BaseModel):
    """Task response — public-facing task data."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: str
    status: str
    priority: Priority
    tags: list[str]
    progress: int
    assignees: list[str]
    due_date: date | None
    order: int


class MoveRequest(BaseModel):
    """Drag result: where the card was dropped."""
    from_status: str = Field(min_length=1, max_length=100)
    to_status: str = Field(min_length=1, max_length=100)
    destination_index: int = Field(ge=0)


class OrderEntry(BaseModel):
    """One (id, status, order) triple of the board sequence."""
    id: str
    status: str
    order: int


class MoveResponse(BaseModel):
    """New board order after a move, plus the records that changed."""
    moved: bool
    changed: list[OrderEntry]
    order: list[OrderEntry]
