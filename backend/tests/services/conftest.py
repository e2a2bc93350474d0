"""Service test fixtures — async DB + FastAPI test client.

Invariants:
    - Every test gets a fresh in-memory SQLite database seeded with the default columns
    - get_db dependency overridden to use test DB session
    - db_manager patched for background tasks that bypass get_db
    - The module-level board coordinator starts every test with no snapshot

Design Decisions:
    - SQLite in-memory: fast, no external dependency, sufficient for route tests
      (PostgreSQL-specific features are not exercised here)
"""

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncSession, create_async_engine, async_sessionmaker,
)
from httpx import ASGITransport, AsyncClient

from taskboard.api.routes import tasks as tasks_routes
from taskboard.core.domain_types import DEFAULT_COLUMNS
from taskboard.db.base import Base
from taskboard.infrastructure.database import get_db, DatabaseSessionManager
from taskboard.models.board_column import BoardColumn
from taskboard.models.task import Task
import taskboard.infrastructure.database as db_module
from taskboard.main import app


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )
    async with factory() as session:
        session.add_all(
            BoardColumn(id=column_id, title=title, order=position)
            for position, (column_id, title) in enumerate(DEFAULT_COLUMNS)
        )
        await session.commit()
    return factory


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture
async def client(test_engine, test_session_factory):
    """FastAPI test client with DB dependency overridden."""
    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    # Background move persistence opens its own session via db_manager
    original_manager = db_module.db_manager
    fake_manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    fake_manager.engine = test_engine
    fake_manager._session_factory = test_session_factory
    db_module.db_manager = fake_manager
    tasks_routes._board.invalidate()

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
    db_module.db_manager = original_manager
    tasks_routes._board.invalidate()


@pytest.fixture
def make_task(test_db):
    """Insert a task directly. Returns the stored Task."""
    async def _make(title: str, status: str = "todo", order: int = 0, **fields):
        task = Task(title=title, status=status, order=order, **fields)
        test_db.add(task)
        await test_db.commit()
        await test_db.refresh(task)
        return task
    return _make
