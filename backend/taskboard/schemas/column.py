"""Column Schemas — board column creation and response shapes."""

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ColumnCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title cannot be empty or whitespace")
        return v


class ColumnResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    order: int
