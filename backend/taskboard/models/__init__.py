"""ORM Models — SQLAlchemy declarative models for all domain entities.

Invariants:
    - All models inherit from Base (db/base.py)
    - Task.status references BoardColumn.id by value; deletion guarded in the API

Design Decisions:
    - One file per entity for locality
    - All models imported here so Base.metadata is complete before create_all/alembic
"""

from taskboard.models.board_column import BoardColumn  # noqa: F401
from taskboard.models.task import Task  # noqa: F401
from taskboard.models.chat_message import ChatMessage  # noqa: F401
