"""
Collaboration invitations and join requests.

    pending  --accept-->    accepted
    pending  --decline-->   declined
    accepted --remove-->    removed
    removed  --reinstate--> accepted
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime
from types import MappingProxyType

import structlog
from src.domain.errors import DuplicateCollaborationError, InvalidTransitionError, UnauthorizedError
from src.domain.models import (
    Actor,
    Collaboration,
    CollaborationDirection,
    CollaborationStatus,
    Submission,
    utcnow,
)
from src.domain.policies import AuthorizationPolicy, Decision
from src.domain.stages import SubmissionKind
from src.infrastructure.repositories.unit_of_work import UnitOfWork

logger = structlog.get_logger()

ACCEPT = "accept"
DECLINE = "decline"
REMOVE = "remove"
REINSTATE = "reinstate"

COLLABORATION_TRANSITIONS = MappingProxyType(
    {
        (CollaborationStatus.PENDING, ACCEPT): CollaborationStatus.ACCEPTED,
        (CollaborationStatus.PENDING, DECLINE): CollaborationStatus.DECLINED,
        (CollaborationStatus.ACCEPTED, REMOVE): CollaborationStatus.REMOVED,
        (CollaborationStatus.REMOVED, REINSTATE): CollaborationStatus.ACCEPTED,
    }
)


class CollaborationService:
    def __init__(
        self,
        uow: UnitOfWork,
        *,
        policy: AuthorizationPolicy | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.uow = uow
        self.policy = policy or AuthorizationPolicy()
        self.clock = clock

    async def request_to_join(
        self,
        actor: Actor,
        kind: SubmissionKind,
        submission_id: str,
        *,
        message: str | None = None,
    ) -> Collaboration:
        async with self.uow:
            submission = await self.uow.submissions.get(kind, submission_id)
            _require(
                self.policy.for_kind(kind).can_collaborate(actor, submission), actor, "collaborate"
            )
            collaboration = await self._open(
                submission, actor.actor_id, actor.actor_id, CollaborationDirection.REQUEST, message
            )
        return collaboration

    async def invite(
        self,
        actor: Actor,
        kind: SubmissionKind,
        submission_id: str,
        collaborator_id: str,
        *,
        message: str | None = None,
    ) -> Collaboration:
        async with self.uow:
            submission = await self.uow.submissions.get(kind, submission_id)
            _require(
                self.policy.for_kind(kind).can_invite_collaborator(actor, submission),
                actor,
                "invite_collaborator",
            )
            if submission.is_owned_by(collaborator_id):
                raise DuplicateCollaborationError(
                    f"{collaborator_id} already owns submission {submission_id}"
                )
            collaboration = await self._open(
                submission, collaborator_id, actor.actor_id, CollaborationDirection.INVITATION, message
            )
        return collaboration

    async def respond(self, actor: Actor, collaboration_id: str, action: str) -> Collaboration:
        """Apply accept, decline, remove or reinstate to a collaboration."""
        async with self.uow:
            collaboration = await self.uow.collaborations.get(collaboration_id)
            target = COLLABORATION_TRANSITIONS.get((collaboration.status, action))
            submission = await self.uow.submissions.get(
                collaboration.submission_kind, collaboration.submission_id
            )
            policy = self.policy.for_kind(collaboration.submission_kind)
            if action in (ACCEPT, DECLINE):
                decision = policy.can_respond_to_collaboration(actor, submission, collaboration)
            else:
                decision = policy.can_remove_collaborator(actor, submission)
            _require(decision, actor, f"{action}_collaboration")

            if target is None:
                raise InvalidTransitionError(
                    "collaboration", collaboration.status.value, action
                )
            if action == REINSTATE:
                await self._ensure_no_open(submission, collaboration.collaborator_id)

            collaboration.status = target
            collaboration.responded_at = self.clock()
            await self.uow.collaborations.save(collaboration)

        await logger.ainfo(
            "collaboration_updated",
            collaboration_id=collaboration_id,
            action=action,
            status=collaboration.status.value,
            actor_id=actor.actor_id,
        )
        return collaboration

    async def _open(
        self,
        submission: Submission,
        collaborator_id: str,
        invited_by: str,
        direction: CollaborationDirection,
        message: str | None,
    ) -> Collaboration:
        await self._ensure_no_open(submission, collaborator_id)
        collaboration = Collaboration(
            collaboration_id=str(uuid.uuid4()),
            submission_kind=submission.kind,
            submission_id=submission.submission_id,
            collaborator_id=collaborator_id,
            invited_by=invited_by,
            direction=direction,
            message=message,
            invited_at=self.clock(),
        )
        await self.uow.collaborations.add(collaboration)
        await logger.ainfo(
            "collaboration_opened",
            collaboration_id=collaboration.collaboration_id,
            submission_id=submission.submission_id,
            collaborator_id=collaborator_id,
            direction=direction.value,
        )
        return collaboration

    async def _ensure_no_open(self, submission: Submission, collaborator_id: str) -> None:
        existing = await self.uow.collaborations.find_open(
            submission.kind, submission.submission_id, collaborator_id
        )
        if existing is not None:
            raise DuplicateCollaborationError(
                f"{collaborator_id} already has a {existing.status.value} collaboration "
                f"on submission {submission.submission_id}"
            )


def _require(decision: Decision, actor: Actor, action: str) -> None:
    if decision:
        return
    logger.warning("transition_denied", action=action, actor_id=actor.actor_id, rule=decision.rule)
    raise UnauthorizedError(action, decision.rule)
