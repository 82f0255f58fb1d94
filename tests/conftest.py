"""Pytest fixtures backed by an in-memory SQLite database and stub upstreams."""

import os
from datetime import timedelta
from typing import Any, AsyncGenerator, Optional

# Settings are read at import time; give the app a throwaway database.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENV", "dev")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from app.schemas.players import Player
from app.services.job_dispatcher import JobRunner
from app.services.player_directory import create_player, update_player
from app.services.player_jobs import build_job_handlers
from app.services.player_service import PlayerService
from tests.helpers import FrozenClock, RecordingDispatcher, StubHiscores, StubHistory


@pytest_asyncio.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Yield an in-memory SQLite engine with the schema created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Session for calling service methods directly."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def hiscores() -> StubHiscores:
    return StubHiscores()


@pytest.fixture
def history() -> StubHistory:
    return StubHistory()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def player_service(
    hiscores: StubHiscores,
    history: StubHistory,
    dispatcher: RecordingDispatcher,
    clock: FrozenClock,
) -> PlayerService:
    return PlayerService(
        hiscores=hiscores,  # type: ignore[arg-type]
        history=history,  # type: ignore[arg-type]
        dispatcher=dispatcher,
        track_cooldown=timedelta(seconds=60),
        import_cooldown=timedelta(hours=24),
        search_limit=20,
        clock=clock,
    )


@pytest.fixture
def seed_player(session_factory: async_sessionmaker[AsyncSession]):
    """Return a coroutine that inserts a player directly (administrative path)."""

    async def _seed(username: str, player_id: Optional[int] = None, **changes: Any) -> Player:
        async with session_factory() as session:
            async with session.begin():
                player = await create_player(session, username, player_id=player_id)
                if changes:
                    await update_player(session, player, **changes)
        return player

    return _seed


@pytest_asyncio.fixture
async def app_client(
    session_factory: async_sessionmaker[AsyncSession],
    player_service: PlayerService,
) -> AsyncGenerator[AsyncClient, None]:
    """Provide an HTTP client with the app wired to the test database and stubs.

    Jobs queued by a request run before the client call returns.
    """
    from app.main import app
    from app.routes.players import get_job_runner, get_player_service
    from app.utils.db_async import get_session

    async def _get_session_override() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _get_session_override
    app.dependency_overrides[get_player_service] = lambda: player_service
    app.dependency_overrides[get_job_runner] = lambda: JobRunner(
        build_job_handlers(player_service, session_factory), retry_delay=0
    )
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.pop(get_session, None)
        app.dependency_overrides.pop(get_player_service, None)
        app.dependency_overrides.pop(get_job_runner, None)
