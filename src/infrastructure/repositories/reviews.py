from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from src.domain.models import Review, ReviewDecision
from src.domain.stages import ReviewStage, SubmissionKind
from src.infrastructure.db.models import ReviewModel

from ._time import as_utc


class ReviewRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, review: Review) -> Review:
        self.session.add(
            ReviewModel(
                id=review.review_id,
                submission_kind=review.submission_kind.value,
                submission_id=review.submission_id,
                reviewer_id=review.reviewer_id,
                review_stage=review.review_stage.value,
                decision=review.decision.value,
                review_round=review.review_round,
                score=review.score,
                comments=review.comments,
                created_at=review.created_at,
                completed_at=review.completed_at,
            )
        )
        await self.session.flush()
        return review

    async def list_for_submission(
        self,
        kind: SubmissionKind,
        submission_id: str,
        *,
        review_round: int | None = None,
    ) -> list[Review]:
        stmt = select(ReviewModel).where(
            ReviewModel.submission_kind == SubmissionKind(kind).value,
            ReviewModel.submission_id == submission_id,
        )
        if review_round is not None:
            stmt = stmt.where(ReviewModel.review_round == review_round)
        rows = (await self.session.execute(stmt.order_by(ReviewModel.created_at))).scalars().all()
        return [
            Review(
                review_id=row.id,
                submission_kind=SubmissionKind(row.submission_kind),
                submission_id=row.submission_id,
                reviewer_id=row.reviewer_id,
                review_stage=ReviewStage(row.review_stage),
                decision=ReviewDecision(row.decision),
                review_round=row.review_round,
                score=row.score,
                comments=row.comments,
                created_at=as_utc(row.created_at),
                completed_at=as_utc(row.completed_at),
            )
            for row in rows
        ]
