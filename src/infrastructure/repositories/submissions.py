"""Persistence of ideas and challenge submissions.

The stage column is only written by ``save_stage``, an optimistic
compare-and-set: ``UPDATE ... WHERE id = :id AND stage = :expected``.
"""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from src.domain.errors import ConflictError, CorruptStateError, DuplicateSubmissionError, NotFoundError
from src.domain.models import (
    ChallengeSubmission,
    EvaluationOutcome,
    Idea,
    Submission,
)
from src.domain.stages import STAGE_MACHINE, ReviewStage, Stage, StageMachine, SubmissionKind
from src.infrastructure.db.models import (
    ChallengeSubmissionModel,
    CollaborationModel,
    IdeaModel,
    ReviewModel,
)

from ._time import as_utc
from .challenges import challenge_from_row

logger = structlog.get_logger()

SubmissionRow = IdeaModel | ChallengeSubmissionModel


class SubmissionRepository:
    def __init__(self, session: AsyncSession, machine: StageMachine = STAGE_MACHINE) -> None:
        self.session = session
        self.machine = machine

    async def get(self, kind: SubmissionKind, submission_id: str) -> Submission:
        if SubmissionKind(kind) is SubmissionKind.IDEA:
            return await self.get_idea(submission_id)
        return await self.get_challenge_submission(submission_id)

    async def get_idea(self, idea_id: str) -> Idea:
        stmt = (
            select(IdeaModel)
            .where(IdeaModel.id == idea_id)
            .execution_options(populate_existing=True)
        )
        row = await self.session.scalar(stmt)
        if row is None:
            raise NotFoundError(f"Idea {idea_id} not found")
        review_counts = await self._review_counts(SubmissionKind.IDEA, [row.id])
        return self._idea_from_row(row, review_counts.get(row.id, 0))

    async def get_challenge_submission(self, submission_id: str) -> ChallengeSubmission:
        stmt = (
            select(ChallengeSubmissionModel)
            .options(selectinload(ChallengeSubmissionModel.challenge))
            .where(ChallengeSubmissionModel.id == submission_id)
            .execution_options(populate_existing=True)
        )
        row = await self.session.scalar(stmt)
        if row is None:
            raise NotFoundError(f"Challenge submission {submission_id} not found")
        submissions = await self._challenge_submissions_from_rows([row])
        return submissions[0]

    async def list_for_challenge(
        self, challenge_id: str, *, stage: Stage | None = None
    ) -> list[ChallengeSubmission]:
        stmt = (
            select(ChallengeSubmissionModel)
            .options(selectinload(ChallengeSubmissionModel.challenge))
            .where(ChallengeSubmissionModel.challenge_id == challenge_id)
            .order_by(ChallengeSubmissionModel.created_at, ChallengeSubmissionModel.id)
            .execution_options(populate_existing=True)
        )
        if stage is not None:
            stmt = stmt.where(ChallengeSubmissionModel.status == stage.value)
        rows = (await self.session.execute(stmt)).scalars().all()
        return await self._challenge_submissions_from_rows(list(rows))

    async def participant_exists(self, challenge_id: str, author_id: str) -> bool:
        stmt = select(ChallengeSubmissionModel.id).where(
            ChallengeSubmissionModel.challenge_id == challenge_id,
            ChallengeSubmissionModel.author_id == author_id,
        )
        return await self.session.scalar(stmt.limit(1)) is not None

    async def add(self, submission: Submission) -> Submission:
        values = {**self._content_values(submission), **self._stage_values(submission)}
        if isinstance(submission, Idea):
            row: SubmissionRow = IdeaModel(
                id=submission.submission_id,
                current_stage=submission.current_stage.value,
                created_at=submission.created_at,
                **values,
            )
        elif isinstance(submission, ChallengeSubmission):
            row = ChallengeSubmissionModel(
                id=submission.submission_id,
                challenge_id=submission.challenge_id,
                status=submission.current_stage.value,
                created_at=submission.created_at,
                **values,
            )
        else:
            raise TypeError(f"Unsupported submission type: {type(submission).__name__}")

        self.session.add(row)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise DuplicateSubmissionError(
                f"Participant {submission.author_id} already submitted to this challenge"
            ) from exc
        return submission

    async def save_stage(self, submission: Submission, expected_stage: Stage) -> None:
        """Persist the stage and its side-effect fields if the stored stage is still expected."""
        model, stage_column = self._table(submission.kind)
        stmt = (
            update(model)
            .where(model.id == submission.submission_id, stage_column == expected_stage.value)
            .values({stage_column.key: submission.current_stage.value, **self._stage_values(submission)})
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 1:
            return

        actual = await self.session.scalar(
            select(stage_column).where(model.id == submission.submission_id)
        )
        if actual is None:
            raise NotFoundError(f"Submission {submission.submission_id} not found")
        raise ConflictError(submission.submission_id, expected_stage.value, actual)

    async def save_details(self, submission: Submission) -> None:
        """Persist content, team and assignment fields. Never touches the stage."""
        model, _ = self._table(submission.kind)
        await self.session.execute(
            update(model)
            .where(model.id == submission.submission_id)
            .values(
                **self._content_values(submission),
                assigned_reviewer_id=submission.assigned_reviewer_id,
                assigned_review_stage=(
                    submission.assigned_review_stage.value
                    if submission.assigned_review_stage
                    else None
                ),
            )
            .execution_options(synchronize_session=False)
        )

    async def delete(self, submission: Submission) -> None:
        model, _ = self._table(submission.kind)
        await self.session.execute(
            delete(CollaborationModel)
            .where(
                CollaborationModel.submission_kind == submission.kind.value,
                CollaborationModel.submission_id == submission.submission_id,
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(
            delete(model)
            .where(model.id == submission.submission_id)
            .execution_options(synchronize_session=False)
        )

    def parse_stage(self, kind: SubmissionKind, raw: str, submission_id: str) -> Stage:
        try:
            return self.machine.parse_stage(kind, raw, submission_id=submission_id)
        except CorruptStateError:
            logger.error(
                "corrupt_stage_detected",
                submission_kind=SubmissionKind(kind).value,
                submission_id=submission_id,
                raw_stage=raw,
            )
            raise

    @staticmethod
    def _table(kind: SubmissionKind) -> tuple[Any, Any]:
        if SubmissionKind(kind) is SubmissionKind.IDEA:
            return IdeaModel, IdeaModel.current_stage
        return ChallengeSubmissionModel, ChallengeSubmissionModel.status

    @staticmethod
    def _content_values(submission: Submission) -> dict[str, Any]:
        return {
            "author_id": submission.author_id,
            "title": submission.title,
            "description": submission.description,
            "team_members": sorted(submission.team_members),
            "collaboration_enabled": submission.collaboration_enabled,
        }

    @staticmethod
    def _stage_values(submission: Submission) -> dict[str, Any]:
        values: dict[str, Any] = {
            "collaboration_enabled": submission.collaboration_enabled,
            "review_round": submission.review_round,
            "assigned_reviewer_id": submission.assigned_reviewer_id,
            "assigned_review_stage": (
                submission.assigned_review_stage.value if submission.assigned_review_stage else None
            ),
            "submitted_at": submission.submitted_at,
            "last_stage_change": submission.last_stage_change,
        }
        if isinstance(submission, Idea):
            values["implementation_started_at"] = submission.implementation_started_at
            values["completed_at"] = submission.completed_at
        elif isinstance(submission, ChallengeSubmission):
            values["evaluation"] = submission.evaluation.value if submission.evaluation else None
            values["ranking"] = submission.ranking
        return values

    async def _review_counts(self, kind: SubmissionKind, submission_ids: list[str]) -> dict[str, int]:
        if not submission_ids:
            return {}
        stmt = (
            select(ReviewModel.submission_id, func.count(ReviewModel.id))
            .where(
                ReviewModel.submission_kind == kind.value,
                ReviewModel.submission_id.in_(submission_ids),
            )
            .group_by(ReviewModel.submission_id)
        )
        return {submission_id: count for submission_id, count in (await self.session.execute(stmt)).all()}

    async def _submission_counts(self, challenge_ids: set[str]) -> dict[str, int]:
        if not challenge_ids:
            return {}
        stmt = (
            select(ChallengeSubmissionModel.challenge_id, func.count(ChallengeSubmissionModel.id))
            .where(ChallengeSubmissionModel.challenge_id.in_(challenge_ids))
            .group_by(ChallengeSubmissionModel.challenge_id)
        )
        return {challenge_id: count for challenge_id, count in (await self.session.execute(stmt)).all()}

    def _idea_from_row(self, row: IdeaModel, review_count: int) -> Idea:
        return Idea(
            submission_id=row.id,
            author_id=row.author_id,
            current_stage=self.parse_stage(SubmissionKind.IDEA, row.current_stage, row.id),
            title=row.title,
            description=row.description,
            team_members=frozenset(row.team_members or ()),
            collaboration_enabled=row.collaboration_enabled,
            review_count=review_count,
            review_round=row.review_round,
            assigned_reviewer_id=row.assigned_reviewer_id,
            assigned_review_stage=_review_stage(row.assigned_review_stage),
            created_at=as_utc(row.created_at),
            last_stage_change=as_utc(row.last_stage_change),
            submitted_at=as_utc(row.submitted_at),
            completed_at=as_utc(row.completed_at),
            implementation_started_at=as_utc(row.implementation_started_at),
        )

    async def _challenge_submissions_from_rows(
        self, rows: list[ChallengeSubmissionModel]
    ) -> list[ChallengeSubmission]:
        review_counts = await self._review_counts(
            SubmissionKind.CHALLENGE_SUBMISSION, [row.id for row in rows]
        )
        submission_counts = await self._submission_counts({row.challenge_id for row in rows})
        return [
            ChallengeSubmission(
                submission_id=row.id,
                author_id=row.author_id,
                current_stage=self.parse_stage(
                    SubmissionKind.CHALLENGE_SUBMISSION, row.status, row.id
                ),
                title=row.title,
                description=row.description,
                team_members=frozenset(row.team_members or ()),
                collaboration_enabled=row.collaboration_enabled,
                review_count=review_counts.get(row.id, 0),
                review_round=row.review_round,
                assigned_reviewer_id=row.assigned_reviewer_id,
                assigned_review_stage=_review_stage(row.assigned_review_stage),
                created_at=as_utc(row.created_at),
                last_stage_change=as_utc(row.last_stage_change),
                submitted_at=as_utc(row.submitted_at),
                challenge_id=row.challenge_id,
                challenge=challenge_from_row(
                    row.challenge, submission_counts.get(row.challenge_id, 0)
                ),
                evaluation=EvaluationOutcome(row.evaluation) if row.evaluation else None,
                ranking=row.ranking,
            )
            for row in rows
        ]


def _review_stage(raw: str | None) -> ReviewStage | None:
    return ReviewStage(raw) if raw else None
