from __future__ import annotations

from collections.abc import Callable

import structlog
from fastapi import APIRouter, Depends, Response, status
from src.api.deps import (
    get_current_actor,
    get_event_sink,
    get_uow,
    get_uow_factory,
    to_http_exception,
)
from src.api.schemas.challenges import (
    ChallengeCreate,
    ChallengeResponse,
    ChallengeStatusRequest,
    ChallengeUpdate,
    WinnerOutcomeItem,
    WinnerSelectionRequest,
    WinnerSelectionResponse,
)
from src.api.schemas.submissions import ChallengeSubmissionCreate, SubmissionResponse
from src.domain import Actor
from src.domain.errors import WorkflowError
from src.domain.events import EventSink
from src.domain.services import (
    ChallengeService,
    SubmissionService,
    WinnerSelection,
    WinnerService,
)
from src.infrastructure.repositories.unit_of_work import UnitOfWork

router = APIRouter(prefix="/challenges", tags=["Challenges"])
logger = structlog.get_logger()


@router.post("", response_model=ChallengeResponse, status_code=status.HTTP_201_CREATED)
async def create_challenge(
    payload: ChallengeCreate,
    actor: Actor = Depends(get_current_actor),
    uow: UnitOfWork = Depends(get_uow),
) -> ChallengeResponse:
    """Create a draft challenge (managers and administrators)."""
    try:
        challenge = await ChallengeService(uow).create(actor, **payload.model_dump())
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return ChallengeResponse.from_domain(challenge)


@router.get("/{challenge_id}", response_model=ChallengeResponse)
async def get_challenge(
    challenge_id: str,
    actor: Actor = Depends(get_current_actor),
    uow: UnitOfWork = Depends(get_uow),
) -> ChallengeResponse:
    try:
        challenge = await ChallengeService(uow).get(challenge_id)
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return ChallengeResponse.from_domain(challenge)


@router.patch("/{challenge_id}", response_model=ChallengeResponse)
async def update_challenge(
    challenge_id: str,
    payload: ChallengeUpdate,
    actor: Actor = Depends(get_current_actor),
    uow: UnitOfWork = Depends(get_uow),
) -> ChallengeResponse:
    try:
        challenge = await ChallengeService(uow).update(
            actor, challenge_id, **payload.model_dump(exclude_unset=True)
        )
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return ChallengeResponse.from_domain(challenge)


@router.delete("/{challenge_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_challenge(
    challenge_id: str,
    actor: Actor = Depends(get_current_actor),
    uow: UnitOfWork = Depends(get_uow),
) -> Response:
    try:
        await ChallengeService(uow).delete(actor, challenge_id)
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{challenge_id}/publish", response_model=ChallengeResponse)
async def publish_challenge(
    challenge_id: str,
    actor: Actor = Depends(get_current_actor),
    uow: UnitOfWork = Depends(get_uow),
) -> ChallengeResponse:
    try:
        challenge = await ChallengeService(uow).publish(actor, challenge_id)
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return ChallengeResponse.from_domain(challenge)


@router.post("/{challenge_id}/status", response_model=ChallengeResponse)
async def change_challenge_status(
    challenge_id: str,
    payload: ChallengeStatusRequest,
    actor: Actor = Depends(get_current_actor),
    uow: UnitOfWork = Depends(get_uow),
) -> ChallengeResponse:
    """Move the challenge to its next status, or archive it."""
    try:
        challenge = await ChallengeService(uow).change_status(actor, challenge_id, payload.status)
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return ChallengeResponse.from_domain(challenge)


@router.post(
    "/{challenge_id}/submissions",
    response_model=SubmissionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_challenge_submission(
    challenge_id: str,
    payload: ChallengeSubmissionCreate,
    actor: Actor = Depends(get_current_actor),
    uow: UnitOfWork = Depends(get_uow),
) -> SubmissionResponse:
    try:
        submission = await SubmissionService(uow).create_challenge_submission(
            actor,
            challenge_id,
            title=payload.title,
            description=payload.description,
            team_members=payload.team_members,
        )
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return SubmissionResponse.from_domain(submission)


@router.get("/{challenge_id}/submissions", response_model=list[SubmissionResponse])
async def list_challenge_submissions(
    challenge_id: str,
    actor: Actor = Depends(get_current_actor),
    uow: UnitOfWork = Depends(get_uow),
) -> list[SubmissionResponse]:
    try:
        submissions = await ChallengeService(uow).list_submissions(actor, challenge_id)
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return [SubmissionResponse.from_domain(submission) for submission in submissions]


@router.post("/{challenge_id}/winners", response_model=WinnerSelectionResponse)
async def select_winners(
    challenge_id: str,
    payload: WinnerSelectionRequest,
    actor: Actor = Depends(get_current_actor),
    uow_factory: Callable[[], UnitOfWork] = Depends(get_uow_factory),
    events: EventSink = Depends(get_event_sink),
) -> WinnerSelectionResponse:
    """Mark evaluated submissions as winners; each entry succeeds or fails on its own."""
    selections: dict[str, WinnerSelection] = {}
    for item in payload.winners:
        selections.setdefault(item.submission_id, WinnerSelection(item.submission_id, item.ranking))
    try:
        outcomes = await WinnerService(uow_factory, events=events).select_winners(
            actor, challenge_id, list(selections.values())
        )
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return WinnerSelectionResponse(
        challenge_id=challenge_id,
        results=[
            WinnerOutcomeItem(
                submission_id=outcome.submission_id,
                selected=outcome.selected,
                error=outcome.error,
            )
            for outcome in outcomes
        ],
    )
