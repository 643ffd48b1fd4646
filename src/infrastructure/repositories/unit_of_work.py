from __future__ import annotations

from collections.abc import Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .challenges import ChallengeRepository
from .collaborations import CollaborationRepository
from .reviews import ReviewRepository
from .submissions import SubmissionRepository
from .users import UserRepository

logger = structlog.get_logger()


class UnitOfWork:
    """Repositories over one session; commits on clean exit, rolls back on error.

    A unit of work built from a session factory owns its session and closes it
    on exit. One built around an existing session leaves closing to the caller.
    """

    def __init__(self, session: AsyncSession, *, owns_session: bool = False) -> None:
        self.session = session
        self._owns_session = owns_session
        self.submissions = SubmissionRepository(session)
        self.challenges = ChallengeRepository(session)
        self.reviews = ReviewRepository(session)
        self.collaborations = CollaborationRepository(session)
        self.users = UserRepository(session)

    @classmethod
    def factory(cls, session_factory: async_sessionmaker[AsyncSession]) -> Callable[[], UnitOfWork]:
        """Build independent units of work, one session each."""

        def _build() -> UnitOfWork:
            return cls(session_factory(), owns_session=True)

        return _build

    async def __aenter__(self) -> UnitOfWork:
        logger.debug("uow_enter")
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if exc:
                await self.rollback()
            else:
                await self.commit()
        finally:
            if self._owns_session:
                await self.session.close()
        logger.debug("uow_exit", exc_type=str(exc_type) if exc_type else None)

    async def commit(self) -> None:
        await self.session.commit()
        logger.debug("uow_commit")

    async def rollback(self) -> None:
        await self.session.rollback()
        logger.debug("uow_rollback")
