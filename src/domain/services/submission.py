"""
Submission service for ideas and challenge submissions.

Covers everything except stage changes: creation, content edits, deletion,
collaboration toggling and export. Stage changes go through WorkflowService.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable
from dataclasses import asdict
from datetime import datetime
from typing import Any

import structlog
from src.domain.errors import (
    DuplicateSubmissionError,
    PreconditionFailedError,
    UnauthorizedError,
)
from src.domain.models import (
    Actor,
    ChallengeSubmission,
    Idea,
    Submission,
    utcnow,
)
from src.domain.policies import AuthorizationPolicy, Decision
from src.domain.stages import ChallengeSubmissionStatus, IdeaStage, SubmissionKind
from src.infrastructure.repositories.unit_of_work import UnitOfWork

logger = structlog.get_logger()


class SubmissionService:
    """Handles the non-stage lifecycle of submissions."""

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

    async def get(self, actor: Actor, kind: SubmissionKind, submission_id: str) -> Submission:
        submission = await self.uow.submissions.get(kind, submission_id)
        _require(self.policy.for_kind(kind).can_view(actor, submission), actor, "view", submission_id)
        return submission

    async def create_idea(
        self,
        actor: Actor,
        *,
        title: str,
        description: str = "",
        team_members: Iterable[str] = (),
    ) -> Idea:
        _require(self.policy.ideas.can_create(actor), actor, "create", None)
        idea = Idea(
            submission_id=str(uuid.uuid4()),
            author_id=actor.actor_id,
            current_stage=IdeaStage.DRAFT,
            title=title,
            description=description,
            team_members=_team(actor, team_members),
            created_at=self.clock(),
        )
        async with self.uow:
            await self.uow.submissions.add(idea)
        await logger.ainfo("idea_created", idea_id=idea.submission_id, author_id=actor.actor_id)
        return idea

    async def create_challenge_submission(
        self,
        actor: Actor,
        challenge_id: str,
        *,
        title: str,
        description: str = "",
        team_members: Iterable[str] = (),
    ) -> ChallengeSubmission:
        """Create a draft entry for ``challenge_id``.

        Checked in order: participation policy (UnauthorizedError), one entry per
        participant (DuplicateSubmissionError), then the challenge's status,
        deadline and capacity (PreconditionFailedError).
        """
        async with self.uow:
            challenge = await self.uow.challenges.get(challenge_id)
            _require(
                self.policy.challenges.can_participate(actor, challenge),
                actor,
                "participate",
                challenge_id,
            )
            if await self.uow.submissions.participant_exists(challenge_id, actor.actor_id):
                raise DuplicateSubmissionError(
                    f"Participant {actor.actor_id} already submitted to challenge {challenge_id}"
                )

            now = self.clock()
            if not challenge.accepts_submissions(now):
                raise PreconditionFailedError(
                    SubmissionKind.CHALLENGE_SUBMISSION.value,
                    ChallengeSubmissionStatus.DRAFT.value,
                    "create",
                    f"challenge is {challenge.status.value} or past its submission deadline",
                )
            if (
                challenge.max_participants is not None
                and challenge.submission_count >= challenge.max_participants
            ):
                raise PreconditionFailedError(
                    SubmissionKind.CHALLENGE_SUBMISSION.value,
                    ChallengeSubmissionStatus.DRAFT.value,
                    "create",
                    "challenge reached its participant limit",
                )

            submission = ChallengeSubmission(
                submission_id=str(uuid.uuid4()),
                author_id=actor.actor_id,
                current_stage=ChallengeSubmissionStatus.DRAFT,
                title=title,
                description=description,
                team_members=_team(actor, team_members),
                created_at=now,
                challenge_id=challenge_id,
                challenge=challenge,
            )
            await self.uow.submissions.add(submission)

        await logger.ainfo(
            "challenge_submission_created",
            submission_id=submission.submission_id,
            challenge_id=challenge_id,
            author_id=actor.actor_id,
        )
        return submission

    async def update(
        self,
        actor: Actor,
        kind: SubmissionKind,
        submission_id: str,
        *,
        title: str | None = None,
        description: str | None = None,
        team_members: Iterable[str] | None = None,
    ) -> Submission:
        async with self.uow:
            submission = await self.uow.submissions.get(kind, submission_id)
            _require(
                self.policy.for_kind(kind).can_update(actor, submission), actor, "update", submission_id
            )
            if title is not None:
                submission.title = title
            if description is not None:
                submission.description = description
            if team_members is not None:
                submission.team_members = _team(submission.author_id, team_members)
            await self.uow.submissions.save_details(submission)
        await logger.ainfo("submission_updated", submission_id=submission_id, actor_id=actor.actor_id)
        return submission

    async def delete(self, actor: Actor, kind: SubmissionKind, submission_id: str) -> None:
        async with self.uow:
            submission = await self.uow.submissions.get(kind, submission_id)
            _require(
                self.policy.for_kind(kind).can_delete(actor, submission), actor, "delete", submission_id
            )
            await self.uow.submissions.delete(submission)
        await logger.ainfo("submission_deleted", submission_id=submission_id, actor_id=actor.actor_id)

    async def set_collaboration(
        self, actor: Actor, kind: SubmissionKind, submission_id: str, *, enabled: bool
    ) -> Submission:
        async with self.uow:
            submission = await self.uow.submissions.get(kind, submission_id)
            _require(
                self.policy.for_kind(kind).can_toggle_collaboration(actor, submission),
                actor,
                "toggle_collaboration",
                submission_id,
            )
            submission.collaboration_enabled = enabled
            await self.uow.submissions.save_details(submission)
        await logger.ainfo(
            "collaboration_toggled", submission_id=submission_id, enabled=enabled, actor_id=actor.actor_id
        )
        return submission

    async def export(self, actor: Actor, kind: SubmissionKind, submission_id: str) -> dict[str, Any]:
        """Snapshot of the submission with its reviews and collaborations."""
        kind = SubmissionKind(kind)
        submission = await self.uow.submissions.get(kind, submission_id)
        _require(self.policy.for_kind(kind).can_export(actor, submission), actor, "export", submission_id)
        reviews = await self.uow.reviews.list_for_submission(kind, submission_id)
        collaborations = await self.uow.collaborations.list_for_submission(kind, submission_id)
        return {
            "submission": serialize_submission(submission),
            "reviews": [_jsonable(asdict(review)) for review in reviews],
            "collaborations": [_jsonable(asdict(item)) for item in collaborations],
        }


def serialize_submission(submission: Submission) -> dict[str, Any]:
    data = asdict(submission)
    data.pop("challenge", None)
    data["team_members"] = sorted(submission.team_members)
    return _jsonable(data)


def _jsonable(data: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, datetime):
            value = value.isoformat()
        elif hasattr(value, "value"):
            value = value.value
        elif isinstance(value, frozenset):
            value = sorted(value)
        out[key] = value
    return out


def _team(owner: Actor | str, members: Iterable[str]) -> frozenset[str]:
    owner_id = owner.actor_id if isinstance(owner, Actor) else owner
    return frozenset(member for member in members if member and member != owner_id)


def _require(decision: Decision, actor: Actor, action: str, entity_id: str | None) -> None:
    if decision:
        return
    logger.warning(
        "transition_denied",
        action=action,
        entity_id=entity_id,
        actor_id=actor.actor_id,
        rule=decision.rule,
    )
    raise UnauthorizedError(action, decision.rule)
