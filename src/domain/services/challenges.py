"""
Challenge lifecycle, deadline sweeping and batch winner selection.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType

import structlog
from src.core.config import Settings, get_settings
from src.domain.errors import (
    InvalidTransitionError,
    NotFoundError,
    PreconditionFailedError,
    UnauthorizedError,
    WorkflowError,
)
from src.domain.events import EventSink
from src.domain.models import Actor, Challenge, ChallengeStatus, ChallengeSubmission, utcnow
from src.domain.policies import ChallengePolicy, ChallengeSubmissionPolicy, Decision
from src.domain.services.workflow import TransitionOptions, WorkflowService, system_actor
from src.domain.stages import Action, ChallengeSubmissionStatus, SubmissionKind
from src.infrastructure.repositories.unit_of_work import UnitOfWork

logger = structlog.get_logger()

# Forward moves of the challenge container; archive is allowed from anywhere.
CHALLENGE_STATUS_FLOW = MappingProxyType(
    {
        ChallengeStatus.DRAFT: ChallengeStatus.ACTIVE,
        ChallengeStatus.ACTIVE: ChallengeStatus.CLOSED,
        ChallengeStatus.CLOSED: ChallengeStatus.JUDGING,
        ChallengeStatus.JUDGING: ChallengeStatus.REVIEW_COMPLETED,
        ChallengeStatus.REVIEW_COMPLETED: ChallengeStatus.COMPLETED,
    }
)

EDITABLE_FIELDS = frozenset(
    {"title", "description", "submission_deadline", "evaluation_deadline", "max_participants"}
)


@dataclass(slots=True)
class SweepReport:
    closed: list[str] = field(default_factory=list)
    archived_submissions: list[str] = field(default_factory=list)
    judging: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class WinnerSelection:
    submission_id: str
    ranking: int | None = None


@dataclass(slots=True)
class WinnerOutcome:
    submission_id: str
    selected: bool
    error: str | None = None
    rule: str | None = None


class ChallengeService:
    def __init__(
        self,
        uow: UnitOfWork,
        *,
        policy: ChallengePolicy | None = None,
        events: EventSink | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.uow = uow
        self.policy = policy or ChallengePolicy()
        self.events = events
        self.settings = settings or get_settings()
        self.clock = clock

    async def get(self, challenge_id: str) -> Challenge:
        return await self.uow.challenges.get(challenge_id)

    async def list_submissions(self, actor: Actor, challenge_id: str) -> list[ChallengeSubmission]:
        """Entries of the challenge the actor is allowed to see."""
        await self.uow.challenges.get(challenge_id)
        policy = ChallengeSubmissionPolicy()
        submissions = await self.uow.submissions.list_for_challenge(challenge_id)
        return [submission for submission in submissions if policy.can_view(actor, submission)]

    async def create(
        self,
        actor: Actor,
        *,
        title: str,
        description: str = "",
        submission_deadline: datetime | None = None,
        evaluation_deadline: datetime | None = None,
        max_participants: int | None = None,
    ) -> Challenge:
        _require(self.policy.can_create(actor), actor, "create_challenge", None)
        challenge = Challenge(
            challenge_id=str(uuid.uuid4()),
            title=title,
            created_by=actor.actor_id,
            status=ChallengeStatus.DRAFT,
            submission_deadline=submission_deadline,
            evaluation_deadline=evaluation_deadline,
            max_participants=max_participants,
            description=description,
            created_at=self.clock(),
        )
        async with self.uow:
            await self.uow.challenges.add(challenge)
        await logger.ainfo(
            "challenge_created", challenge_id=challenge.challenge_id, created_by=actor.actor_id
        )
        return challenge

    async def update(self, actor: Actor, challenge_id: str, **changes) -> Challenge:
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported challenge field(s): {', '.join(sorted(unknown))}")
        async with self.uow:
            challenge = await self.uow.challenges.get(challenge_id)
            _require(
                self.policy.can_update(actor, challenge), actor, "update_challenge", challenge_id
            )
            for name, value in changes.items():
                setattr(challenge, name, value)
            await self.uow.challenges.save(challenge)
        await logger.ainfo("challenge_updated", challenge_id=challenge_id, fields=sorted(changes))
        return challenge

    async def delete(self, actor: Actor, challenge_id: str) -> None:
        async with self.uow:
            challenge = await self.uow.challenges.get(challenge_id)
            _require(
                self.policy.can_delete(actor, challenge), actor, "delete_challenge", challenge_id
            )
            await self.uow.challenges.delete(challenge)
        await logger.ainfo("challenge_deleted", challenge_id=challenge_id, actor_id=actor.actor_id)

    async def publish(self, actor: Actor, challenge_id: str) -> Challenge:
        async with self.uow:
            challenge = await self.uow.challenges.get(challenge_id)
            _require(
                self.policy.can_publish(actor, challenge), actor, "publish_challenge", challenge_id
            )
            now = self.clock()
            if challenge.submission_deadline is not None and challenge.submission_deadline <= now:
                raise PreconditionFailedError(
                    "challenge", challenge.status.value, "publish", "submission deadline has passed"
                )
            challenge.status = ChallengeStatus.ACTIVE
            await self.uow.challenges.save(challenge)
        await logger.ainfo("challenge_published", challenge_id=challenge_id, actor_id=actor.actor_id)
        return challenge

    async def change_status(
        self, actor: Actor, challenge_id: str, status: ChallengeStatus
    ) -> Challenge:
        """Move the challenge one step along its flow, or archive it."""
        status = ChallengeStatus(status)
        if status is ChallengeStatus.ACTIVE:
            raise InvalidTransitionError("challenge", "draft", "activate", "use publish")
        async with self.uow:
            challenge = await self.uow.challenges.get(challenge_id)
            _require(
                self.policy.can_change_status(actor, challenge),
                actor,
                "change_challenge_status",
                challenge_id,
            )
            previous = challenge.status
            self._move(challenge, status)
            await self.uow.challenges.save(challenge)
        await logger.ainfo(
            "challenge_status_changed",
            challenge_id=challenge_id,
            from_status=previous.value,
            to_status=status.value,
            actor_id=actor.actor_id,
        )
        return challenge

    async def sweep_deadlines(self) -> SweepReport:
        """Close expired challenges, archive their leftover drafts, start judging.

        Runs as the system actor. Each draft is archived through the workflow
        so the stage change is serialized and published like any other.
        """
        actor = system_actor(self.settings)
        report = SweepReport()
        now = self.clock()

        async with self.uow:
            for challenge in await self.uow.challenges.list_by_status(
                ChallengeStatus.ACTIVE, deadline_before=now
            ):
                self._move(challenge, ChallengeStatus.CLOSED)
                await self.uow.challenges.save(challenge)
                report.closed.append(challenge.challenge_id)

        workflow = WorkflowService(
            self.uow, events=self.events, settings=self.settings, clock=self.clock
        )
        for challenge in await self.uow.challenges.list_by_status(ChallengeStatus.CLOSED):
            drafts = await self.uow.submissions.list_for_challenge(
                challenge.challenge_id, stage=ChallengeSubmissionStatus.DRAFT
            )
            for submission in drafts:
                try:
                    await workflow.request_transition(
                        actor,
                        SubmissionKind.CHALLENGE_SUBMISSION,
                        submission.submission_id,
                        Action.ARCHIVE,
                        expected_stage=ChallengeSubmissionStatus.DRAFT,
                        options=TransitionOptions(metadata={"reason": "submission_deadline_passed"}),
                    )
                    report.archived_submissions.append(submission.submission_id)
                except WorkflowError as exc:
                    report.failed[submission.submission_id] = type(exc).__name__
                    await logger.awarning(
                        "deadline_archive_failed",
                        submission_id=submission.submission_id,
                        challenge_id=challenge.challenge_id,
                        error=str(exc),
                    )

        async with self.uow:
            for challenge in await self.uow.challenges.list_by_status(
                ChallengeStatus.CLOSED, deadline_before=now
            ):
                self._move(challenge, ChallengeStatus.JUDGING)
                await self.uow.challenges.save(challenge)
                report.judging.append(challenge.challenge_id)

        await logger.ainfo(
            "challenge_deadlines_swept",
            closed=len(report.closed),
            archived=len(report.archived_submissions),
            judging=len(report.judging),
            failed=len(report.failed),
        )
        return report

    @staticmethod
    def _move(challenge: Challenge, status: ChallengeStatus) -> None:
        if status is ChallengeStatus.ARCHIVED and challenge.status is not ChallengeStatus.ARCHIVED:
            challenge.status = status
            return
        if CHALLENGE_STATUS_FLOW.get(challenge.status) is not status:
            raise InvalidTransitionError("challenge", challenge.status.value, status.value)
        challenge.status = status


class WinnerService:
    """Batch winner selection; each submission runs in its own unit of work."""

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        *,
        events: EventSink | None = None,
        settings: Settings | None = None,
        concurrency: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.uow_factory = uow_factory
        self.events = events
        self.settings = settings or get_settings()
        self.concurrency = concurrency or self.settings.winner_selection_concurrency
        self.clock = clock
        self.policy = ChallengePolicy()

    async def select_winners(
        self, actor: Actor, challenge_id: str, selections: Sequence[WinnerSelection]
    ) -> list[WinnerOutcome]:
        async with self.uow_factory() as uow:
            challenge = await uow.challenges.get(challenge_id)
            _require(
                self.policy.can_manage_winners(actor, challenge),
                actor,
                "manage_winners",
                challenge_id,
            )

        semaphore = asyncio.Semaphore(self.concurrency)

        async def _select(selection: WinnerSelection) -> WinnerOutcome:
            async with semaphore:
                return await self._select_one(actor, challenge_id, selection)

        outcomes = await asyncio.gather(*(_select(selection) for selection in selections))
        await logger.ainfo(
            "winners_selected",
            challenge_id=challenge_id,
            selected=sum(1 for outcome in outcomes if outcome.selected),
            failed=sum(1 for outcome in outcomes if not outcome.selected),
        )
        return list(outcomes)

    async def _select_one(
        self, actor: Actor, challenge_id: str, selection: WinnerSelection
    ) -> WinnerOutcome:
        uow = self.uow_factory()
        try:
            submission = await uow.submissions.get_challenge_submission(selection.submission_id)
            if submission.challenge_id != challenge_id:
                raise NotFoundError(
                    f"Submission {selection.submission_id} is not part of challenge {challenge_id}"
                )
            workflow = WorkflowService(
                uow, events=self.events, settings=self.settings, clock=self.clock
            )
            await workflow.request_transition(
                actor,
                SubmissionKind.CHALLENGE_SUBMISSION,
                selection.submission_id,
                Action.SELECT_WINNER,
                expected_stage=ChallengeSubmissionStatus.EVALUATED,
                options=TransitionOptions(ranking=selection.ranking),
            )
        except UnauthorizedError as exc:
            return WinnerOutcome(selection.submission_id, False, type(exc).__name__, exc.rule)
        except WorkflowError as exc:
            return WinnerOutcome(selection.submission_id, False, type(exc).__name__)
        finally:
            await uow.session.close()
        return WinnerOutcome(selection.submission_id, True)


def _require(decision: Decision, actor: Actor, action: str, challenge_id: str | None) -> None:
    if decision:
        return
    logger.warning(
        "transition_denied",
        action=action,
        challenge_id=challenge_id,
        actor_id=actor.actor_id,
        rule=decision.rule,
    )
    raise UnauthorizedError(action, decision.rule)
