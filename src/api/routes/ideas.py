from __future__ import annotations

from fastapi import APIRouter, Depends, status
from src.api.deps import get_current_actor, get_event_sink, get_uow, to_http_exception
from src.api.schemas.submissions import (
    IdeaCreate,
    ReviewItem,
    ReviewRequest,
    ReviewResponse,
    SubmissionResponse,
    stage_change_response,
)
from src.domain import Actor
from src.domain.errors import WorkflowError
from src.domain.events import EventSink
from src.domain.services import ReviewService, SubmissionService
from src.infrastructure.repositories.unit_of_work import UnitOfWork

router = APIRouter(prefix="/ideas", tags=["Ideas"])


@router.post("", response_model=SubmissionResponse, status_code=status.HTTP_201_CREATED)
async def create_idea(
    payload: IdeaCreate,
    actor: Actor = Depends(get_current_actor),
    uow: UnitOfWork = Depends(get_uow),
) -> SubmissionResponse:
    """Create a draft idea owned by the caller."""
    try:
        idea = await SubmissionService(uow).create_idea(
            actor,
            title=payload.title,
            description=payload.description,
            team_members=payload.team_members,
        )
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return SubmissionResponse.from_domain(idea)


@router.post("/{idea_id}/reviews", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
async def review_idea(
    idea_id: str,
    payload: ReviewRequest,
    actor: Actor = Depends(get_current_actor),
    uow: UnitOfWork = Depends(get_uow),
    events: EventSink = Depends(get_event_sink),
) -> ReviewResponse:
    """Record a review at the idea's current review stage and apply its decision."""
    try:
        outcome = await ReviewService(uow, events=events).review_idea(
            actor,
            idea_id,
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
