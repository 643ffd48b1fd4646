from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from src.api.deps import get_current_actor, get_event_sink, get_uow, to_http_exception
from src.api.schemas.submissions import (
    ReviewItem,
    ReviewRequest,
    ReviewResponse,
    SubmissionResponse,
    stage_change_response,
)
from src.domain import Actor
from src.domain.errors import WorkflowError
from src.domain.events import EventSink
from src.domain.services import ReviewService
from src.infrastructure.repositories.unit_of_work import UnitOfWork

router = APIRouter(prefix="/challenge-submissions", tags=["Challenge submissions"])


@router.post(
    "/{submission_id}/reviews",
    response_model=ReviewResponse,
    status_code=status.HTTP_201_CREATED,
)
async def review_challenge_submission(
    submission_id: str,
    payload: ReviewRequest,
    actor: Actor = Depends(get_current_actor),
    uow: UnitOfWork = Depends(get_uow),
    events: EventSink = Depends(get_event_sink),
) -> ReviewResponse:
    """Record a stage review; the last required review evaluates the submission."""
    if payload.review_stage is None:
        raise HTTPException(status_code=422, detail="review_stage is required")
    try:
        outcome = await ReviewService(uow, events=events).review_challenge_submission(
            actor,
            submission_id,
            payload.review_stage,
            payload.decision,
            score=payload.score,
            comments=payload.comments,
            expected_stage=payload.expected_stage,
        )
    except (WorkflowError, ValueError) as exc:
        raise to_http_exception(exc) from exc
    return ReviewResponse(
        review=ReviewItem.from_domain(outcome.review),
        submission=SubmissionResponse.from_domain(outcome.submission),
        stage_changes=[stage_change_response(event) for event in outcome.events],
    )
