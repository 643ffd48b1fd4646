from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Iterator
from datetime import timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from src.api.deps import get_db_session, get_event_sink, get_uow_factory
from src.api.main import create_app
from src.core.auth import Role
from src.domain.models import Actor, Challenge, ChallengeStatus, utcnow
from src.infrastructure.db.base import Base
from src.infrastructure.repositories.unit_of_work import UnitOfWork

from tests.utils import RecordingSink, make_actor


def _sqlite_url(path: Path) -> str:
    return f"sqlite+aiosqlite:///{path}"


@pytest.fixture()
async def engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    engine = create_async_engine(_sqlite_url(tmp_path / "workflow.db"), future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture()
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest.fixture()
def uow(session: AsyncSession) -> UnitOfWork:
    return UnitOfWork(session)


@pytest.fixture()
def uow_factory(session_factory: async_sessionmaker[AsyncSession]) -> Callable[[], UnitOfWork]:
    return UnitOfWork.factory(session_factory)


@pytest.fixture()
def events() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def author() -> Actor:
    return make_actor("author-1", Role.USER)


@pytest.fixture()
def manager() -> Actor:
    return make_actor("manager-1", Role.MANAGER)


@pytest.fixture()
def sme() -> Actor:
    return make_actor("sme-1", Role.SME)


@pytest.fixture()
def board_member() -> Actor:
    return make_actor("board-1", Role.BOARD_MEMBER)


@pytest.fixture()
def admin() -> Actor:
    return make_actor("admin-1", Role.ADMINISTRATOR)


@pytest.fixture()
async def active_challenge(uow_factory: Callable[[], UnitOfWork], manager: Actor) -> Challenge:
    """An open challenge created by ``manager`` with a week left to submit."""
    challenge = Challenge(
        challenge_id="challenge-1",
        title="Reduce onboarding time",
        created_by=manager.actor_id,
        status=ChallengeStatus.ACTIVE,
        submission_deadline=utcnow() + timedelta(days=7),
        evaluation_deadline=utcnow() + timedelta(days=14),
    )
    async with uow_factory() as uow:
        await uow.challenges.add(challenge)
    return challenge


@pytest.fixture()
def recorded_events() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def test_client(tmp_path: Path, recorded_events: RecordingSink) -> Iterator[TestClient]:
    engine = create_async_engine(_sqlite_url(tmp_path / "api.db"), future=True)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)

    async def _init_db() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def override_db_session() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            yield session

    app = create_app()
    app.dependency_overrides[get_db_session] = override_db_session
    app.dependency_overrides[get_uow_factory] = lambda: UnitOfWork.factory(session_factory)
    app.dependency_overrides[get_event_sink] = lambda: recorded_events
    with TestClient(app) as client:
        # Schema creation runs on the client's loop, where the engine is used afterwards.
        client.portal.call(_init_db)
        yield client
        client.portal.call(engine.dispose)
