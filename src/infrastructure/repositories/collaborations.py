from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from src.domain.errors import NotFoundError
from src.domain.models import Collaboration, CollaborationDirection, CollaborationStatus
from src.domain.stages import SubmissionKind
from src.infrastructure.db.models import CollaborationModel

from ._time import as_utc

OPEN_STATUSES = (CollaborationStatus.PENDING.value, CollaborationStatus.ACCEPTED.value)


def _from_row(row: CollaborationModel) -> Collaboration:
    return Collaboration(
        collaboration_id=row.id,
        submission_kind=SubmissionKind(row.submission_kind),
        submission_id=row.submission_id,
        collaborator_id=row.collaborator_id,
        invited_by=row.invited_by,
        direction=CollaborationDirection(row.direction),
        status=CollaborationStatus(row.status),
        message=row.message,
        invited_at=as_utc(row.invited_at),
        responded_at=as_utc(row.responded_at),
    )


class CollaborationRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, collaboration_id: str) -> Collaboration:
        stmt = (
            select(CollaborationModel)
            .where(CollaborationModel.id == collaboration_id)
            .execution_options(populate_existing=True)
        )
        row = await self.session.scalar(stmt)
        if row is None:
            raise NotFoundError(f"Collaboration {collaboration_id} not found")
        return _from_row(row)

    async def add(self, collaboration: Collaboration) -> Collaboration:
        self.session.add(
            CollaborationModel(
                id=collaboration.collaboration_id,
                submission_kind=collaboration.submission_kind.value,
                submission_id=collaboration.submission_id,
                collaborator_id=collaboration.collaborator_id,
                invited_by=collaboration.invited_by,
                direction=collaboration.direction.value,
                status=collaboration.status.value,
                message=collaboration.message,
                invited_at=collaboration.invited_at,
            )
        )
        await self.session.flush()
        return collaboration

    async def save(self, collaboration: Collaboration) -> None:
        await self.session.execute(
            update(CollaborationModel)
            .where(CollaborationModel.id == collaboration.collaboration_id)
            .values(status=collaboration.status.value, responded_at=collaboration.responded_at)
            .execution_options(synchronize_session=False)
        )

    async def find_open(
        self, kind: SubmissionKind, submission_id: str, collaborator_id: str
    ) -> Collaboration | None:
        """Pending or accepted collaboration linking the collaborator, if any."""
        stmt = (
            select(CollaborationModel)
            .where(
                CollaborationModel.submission_kind == SubmissionKind(kind).value,
                CollaborationModel.submission_id == submission_id,
                CollaborationModel.collaborator_id == collaborator_id,
                CollaborationModel.status.in_(OPEN_STATUSES),
            )
            .execution_options(populate_existing=True)
        )
        row = await self.session.scalar(stmt.limit(1))
        return _from_row(row) if row is not None else None

    async def list_for_submission(self, kind: SubmissionKind, submission_id: str) -> list[Collaboration]:
        stmt = (
            select(CollaborationModel)
            .where(
                CollaborationModel.submission_kind == SubmissionKind(kind).value,
                CollaborationModel.submission_id == submission_id,
            )
            .order_by(CollaborationModel.invited_at)
            .execution_options(populate_existing=True)
        )
        return [_from_row(row) for row in (await self.session.execute(stmt)).scalars().all()]
