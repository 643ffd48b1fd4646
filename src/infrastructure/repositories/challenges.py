from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from src.domain.errors import NotFoundError
from src.domain.models import Challenge, ChallengeStatus
from src.infrastructure.db.models import ChallengeModel, ChallengeSubmissionModel

from ._time import as_utc

logger = structlog.get_logger()


def challenge_from_row(row: ChallengeModel, submission_count: int) -> Challenge:
    return Challenge(
        challenge_id=row.id,
        title=row.title,
        created_by=row.created_by,
        status=ChallengeStatus(row.status),
        submission_deadline=as_utc(row.submission_deadline),
        evaluation_deadline=as_utc(row.evaluation_deadline),
        max_participants=row.max_participants,
        submission_count=submission_count,
        description=row.description,
        created_at=as_utc(row.created_at),
    )


class ChallengeRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, challenge_id: str) -> Challenge:
        stmt = (
            select(ChallengeModel)
            .where(ChallengeModel.id == challenge_id)
            .execution_options(populate_existing=True)
        )
        row = await self.session.scalar(stmt)
        if row is None:
            raise NotFoundError(f"Challenge {challenge_id} not found")
        return challenge_from_row(row, await self.count_submissions(challenge_id))

    async def count_submissions(self, challenge_id: str) -> int:
        stmt = select(func.count(ChallengeSubmissionModel.id)).where(
            ChallengeSubmissionModel.challenge_id == challenge_id
        )
        return int(await self.session.scalar(stmt) or 0)

    async def add(self, challenge: Challenge) -> Challenge:
        row = ChallengeModel(
            id=challenge.challenge_id,
            title=challenge.title,
            description=challenge.description,
            created_by=challenge.created_by,
            status=challenge.status,
            submission_deadline=challenge.submission_deadline,
            evaluation_deadline=challenge.evaluation_deadline,
            max_participants=challenge.max_participants,
            created_at=challenge.created_at,
        )
        self.session.add(row)
        await self.session.flush()
        return challenge

    async def save(self, challenge: Challenge) -> None:
        stmt = (
            update(ChallengeModel)
            .where(ChallengeModel.id == challenge.challenge_id)
            .values(
                title=challenge.title,
                description=challenge.description,
                status=challenge.status,
                submission_deadline=challenge.submission_deadline,
                evaluation_deadline=challenge.evaluation_deadline,
                max_participants=challenge.max_participants,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:
            raise NotFoundError(f"Challenge {challenge.challenge_id} not found")

    async def delete(self, challenge: Challenge) -> None:
        await self.session.execute(
            delete(ChallengeModel)
            .where(ChallengeModel.id == challenge.challenge_id)
            .execution_options(synchronize_session=False)
        )

    async def list_by_status(
        self, status: ChallengeStatus, *, deadline_before: datetime | None = None
    ) -> list[Challenge]:
        """Challenges in ``status``; with ``deadline_before`` only those whose
        relevant deadline (submission for active, evaluation for closed) passed."""
        stmt = select(ChallengeModel).where(ChallengeModel.status == status)
        if deadline_before is not None:
            column = (
                ChallengeModel.submission_deadline
                if status is ChallengeStatus.ACTIVE
                else ChallengeModel.evaluation_deadline
            )
            stmt = stmt.where(column.is_not(None), column <= deadline_before)
        rows = (
            await self.session.execute(
                stmt.order_by(ChallengeModel.created_at).execution_options(populate_existing=True)
            )
        ).scalars().all()
        return [challenge_from_row(row, await self.count_submissions(row.id)) for row in rows]
