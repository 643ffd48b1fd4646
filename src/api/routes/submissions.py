"""Routes shared by ideas and challenge submissions, addressed as /{kind}/{id}."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, Response, status
from src.api.deps import get_current_actor, get_event_sink, get_uow, to_http_exception
from src.api.schemas.submissions import (
    CollaborationInvite,
    CollaborationJoinRequest,
    CollaborationResponse,
    CollaborationToggle,
    ReviewerAssignmentRequest,
    SubmissionPath,
    SubmissionResponse,
    SubmissionUpdate,
    TransitionRequest,
    TransitionResponse,
    stage_change_response,
)
from src.domain import Actor
from src.domain.errors import WorkflowError
from src.domain.events import EventSink
from src.domain.services import (
    CollaborationService,
    ReviewService,
    SubmissionService,
    TransitionOptions,
    WorkflowService,
)
from src.infrastructure.repositories.unit_of_work import UnitOfWork

router = APIRouter(tags=["Submissions"])
logger = structlog.get_logger()


@router.get("/{kind}/{submission_id}", response_model=SubmissionResponse)
async def get_submission(
    kind: SubmissionPath,
    submission_id: str,
    actor: Actor = Depends(get_current_actor),
    uow: UnitOfWork = Depends(get_uow),
) -> SubmissionResponse:
    try:
        submission = await SubmissionService(uow).get(actor, kind.kind, submission_id)
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return SubmissionResponse.from_domain(submission)


@router.patch("/{kind}/{submission_id}", response_model=SubmissionResponse)
async def update_submission(
    kind: SubmissionPath,
    submission_id: str,
    payload: SubmissionUpdate,
    actor: Actor = Depends(get_current_actor),
    uow: UnitOfWork = Depends(get_uow),
) -> SubmissionResponse:
    """Edit title, description or team while the submission is still editable."""
    try:
        submission = await SubmissionService(uow).update(
            actor,
            kind.kind,
            submission_id,
            title=payload.title,
            description=payload.description,
            team_members=payload.team_members,
        )
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return SubmissionResponse.from_domain(submission)


@router.delete("/{kind}/{submission_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_submission(
    kind: SubmissionPath,
    submission_id: str,
    actor: Actor = Depends(get_current_actor),
    uow: UnitOfWork = Depends(get_uow),
) -> Response:
    try:
        await SubmissionService(uow).delete(actor, kind.kind, submission_id)
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{kind}/{submission_id}/transitions", response_model=TransitionResponse)
async def request_transition(
    kind: SubmissionPath,
    submission_id: str,
    payload: TransitionRequest,
    actor: Actor = Depends(get_current_actor),
    uow: UnitOfWork = Depends(get_uow),
    events: EventSink = Depends(get_event_sink),
) -> TransitionResponse:
    """Apply one workflow action.

    ``expected_stage`` lets a client refuse to act on a submission that moved
    since it was last read; the mismatch is answered with 409. Review decisions
    at a reviewable stage are made through the reviews endpoints and are
    refused here.
    """
    options = TransitionOptions(ranking=payload.ranking)
    try:
        result = await WorkflowService(uow, events=events).request_transition(
            actor,
            kind.kind,
            submission_id,
            payload.action,
            expected_stage=payload.expected_stage,
            options=options,
        )
    except (WorkflowError, ValueError) as exc:
        raise to_http_exception(exc) from exc
    return TransitionResponse(
        submission=SubmissionResponse.from_domain(result.submission),
        stage_change=stage_change_response(result.event),
    )


@router.put("/{kind}/{submission_id}/collaboration", response_model=SubmissionResponse)
async def toggle_collaboration(
    kind: SubmissionPath,
    submission_id: str,
    payload: CollaborationToggle,
    actor: Actor = Depends(get_current_actor),
    uow: UnitOfWork = Depends(get_uow),
) -> SubmissionResponse:
    try:
        submission = await SubmissionService(uow).set_collaboration(
            actor, kind.kind, submission_id, enabled=payload.enabled
        )
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return SubmissionResponse.from_domain(submission)


@router.post("/{kind}/{submission_id}/reviewer-assignment", response_model=SubmissionResponse)
async def assign_reviewer(
    kind: SubmissionPath,
    submission_id: str,
    payload: ReviewerAssignmentRequest,
    actor: Actor = Depends(get_current_actor),
    uow: UnitOfWork = Depends(get_uow),
) -> SubmissionResponse:
    try:
        submission = await ReviewService(uow).assign_reviewer(
            actor,
            kind.kind,
            submission_id,
            payload.assignee_id,
            review_stage=payload.review_stage,
        )
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return SubmissionResponse.from_domain(submission)


@router.post(
    "/{kind}/{submission_id}/collaborations",
    response_model=CollaborationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def request_to_join(
    kind: SubmissionPath,
    submission_id: str,
    payload: CollaborationJoinRequest,
    actor: Actor = Depends(get_current_actor),
    uow: UnitOfWork = Depends(get_uow),
) -> CollaborationResponse:
    try:
        collaboration = await CollaborationService(uow).request_to_join(
            actor, kind.kind, submission_id, message=payload.message
        )
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return CollaborationResponse.from_domain(collaboration)


@router.post(
    "/{kind}/{submission_id}/collaborations/invite",
    response_model=CollaborationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def invite_collaborator(
    kind: SubmissionPath,
    submission_id: str,
    payload: CollaborationInvite,
    actor: Actor = Depends(get_current_actor),
    uow: UnitOfWork = Depends(get_uow),
) -> CollaborationResponse:
    try:
        collaboration = await CollaborationService(uow).invite(
            actor, kind.kind, submission_id, payload.collaborator_id, message=payload.message
        )
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return CollaborationResponse.from_domain(collaboration)


@router.get("/{kind}/{submission_id}/export")
async def export_submission(
    kind: SubmissionPath,
    submission_id: str,
    actor: Actor = Depends(get_current_actor),
    uow: UnitOfWork = Depends(get_uow),
) -> dict[str, Any]:
    """Submission snapshot with its reviews and collaborations."""
    try:
        data = await SubmissionService(uow).export(actor, kind.kind, submission_id)
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    logger.info("submission_exported", submission_id=submission_id, actor_id=actor.actor_id)
    return data
