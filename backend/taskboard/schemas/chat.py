"""Chat Schemas — request bodies for the chat endpoints.

Invariants:
    - ChatInput.content: 1-10000 chars, stripped, non-empty
    - CompletionRequest mirrors the OpenAI-style chat-completions body
"""

from typing import Literal

from pydantic import BaseModel, Field, field_validator


class ChatInput(BaseModel):
    content: str = Field(min_length=1, max_length=10_000)

    @field_validator("content")
    @classmethod
    def strip_content(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("content cannot be empty or whitespace")
        return v


class ChatMessageIn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class CompletionRequest(BaseModel):
    """Body accepted by the completions relay."""
    messages: list[ChatMessageIn] = Field(min_length=1)
    model: str | None = None
    stream: bool = True
