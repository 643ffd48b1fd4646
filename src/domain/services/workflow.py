"""Transition orchestration for ideas and challenge submissions.

``WorkflowService`` is the only writer of a submission's stage. A transition
request loads the submission, asks the authorization policy, asks the stage
machine for the next stage, checks time/capacity preconditions, applies the
stage side effects and persists them with an optimistic compare-and-set on the
stage it read. Events are published only after the unit of work commits.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

import structlog
from src.core.auth import Role
from src.core.config import Settings, get_settings
from src.domain.errors import ConflictError, PreconditionFailedError, UnauthorizedError
from src.domain.events import EventSink, StageChanged, build_default_bus
from src.domain.models import (
    Actor,
    ChallengeSubmission,
    EvaluationOutcome,
    Idea,
    Review,
    Submission,
    utcnow,
)
from src.domain.policies import AuthorizationPolicy, Decision
from src.domain.stages import (
    IDEA_REVIEW_STAGES,
    STAGE_MACHINE,
    Action,
    ChallengeSubmissionStatus,
    IdeaStage,
    Stage,
    StageMachine,
    SubmissionKind,
)
from src.infrastructure.repositories.unit_of_work import UnitOfWork

logger = structlog.get_logger()

REVIEW_DECISION_ACTIONS = frozenset({Action.REJECT, Action.REQUEST_CHANGES})


def system_actor(settings: Settings | None = None) -> Actor:
    """Actor that scheduled jobs and review reconciliation act as."""
    settings = settings or get_settings()
    return Actor(actor_id=settings.system_actor_id, roles=frozenset({Role.ADMINISTRATOR}))


@dataclass(slots=True)
class TransitionResult:
    submission: Submission
    event: StageChanged


@dataclass(slots=True)
class TransitionOptions:
    """Extra inputs some actions need.

    ``review`` is the stored review a review-driven move is taken for; only
    review recording sets it.
    """

    review: Review | None = None
    evaluation: EvaluationOutcome | None = None
    ranking: int | None = None
    metadata: dict = field(default_factory=dict)


class WorkflowService:
    def __init__(
        self,
        uow: UnitOfWork,
        *,
        policy: AuthorizationPolicy | None = None,
        machine: StageMachine = STAGE_MACHINE,
        events: EventSink | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.uow = uow
        self.machine = machine
        self.policy = policy or AuthorizationPolicy(machine)
        self.events = events or build_default_bus()
        self.settings = settings or get_settings()
        self.clock = clock

    async def request_transition(
        self,
        actor: Actor,
        kind: SubmissionKind,
        submission_id: str,
        action: Action,
        *,
        expected_stage: Stage | str | None = None,
        options: TransitionOptions | None = None,
    ) -> TransitionResult:
        """Apply one transition, commit it, then publish its event."""
        try:
            result = await self.apply_transition(
                actor,
                kind,
                submission_id,
                action,
                expected_stage=expected_stage,
                options=options,
            )
        except Exception:
            await self.uow.rollback()
            raise
        await self.uow.commit()
        await self.publish([result.event])
        return result

    async def apply_transition(
        self,
        actor: Actor,
        kind: SubmissionKind,
        submission_id: str,
        action: Action,
        *,
        expected_stage: Stage | str | None = None,
        options: TransitionOptions | None = None,
    ) -> TransitionResult:
        """Apply a transition inside the caller's unit of work without committing.

        Raises ``UnauthorizedError``, ``InvalidTransitionError`` (or its
        ``PreconditionFailedError`` subclass), ``ConflictError`` and
        ``CorruptStateError``; on any of them nothing has been written.
        """
        kind = SubmissionKind(kind)
        action = Action(action)
        options = options or TransitionOptions()
        expected = self.machine.coerce(kind, expected_stage) if expected_stage is not None else None
        attempts = max(1, self.settings.transition_max_retries)

        for attempt in range(1, attempts + 1):
            submission = await self.uow.submissions.get(kind, submission_id)
            stage_read = submission.current_stage
            if expected is not None and stage_read != expected:
                raise ConflictError(submission_id, expected.value, stage_read.value)

            target = self.machine.can_transition(kind, stage_read, action)
            decision = self.authorize(actor, submission, action, target, options.review)
            if not decision:
                await logger.awarning(
                    "transition_denied",
                    submission_kind=kind.value,
                    submission_id=submission_id,
                    stage=stage_read.value,
                    action=action.value,
                    actor_id=actor.actor_id,
                    rule=decision.rule,
                )
                raise UnauthorizedError(action.value, decision.rule)

            target = self.machine.require_transition(kind, stage_read, action)
            now = self.clock()
            self._check_preconditions(submission, action, now, options)
            self._apply_side_effects(submission, target, now, options)

            try:
                await self.uow.submissions.save_stage(submission, stage_read)
            except ConflictError as exc:
                if exc.actual_stage != stage_read.value or attempt == attempts:
                    await logger.awarning(
                        "transition_conflict",
                        submission_id=submission_id,
                        expected_stage=stage_read.value,
                        actual_stage=exc.actual_stage,
                        attempt=attempt,
                    )
                    raise
                continue

            event = StageChanged(
                submission_kind=kind.value,
                submission_id=submission_id,
                from_stage=stage_read.value,
                to_stage=target.value,
                actor_id=actor.actor_id,
                action=action.value,
                occurred_at=now,
                metadata=self._event_metadata(submission, options),
            )
            await logger.ainfo(
                "stage_transition_applied",
                submission_kind=kind.value,
                submission_id=submission_id,
                from_stage=stage_read.value,
                to_stage=target.value,
                action=action.value,
                actor_id=actor.actor_id,
                attempt=attempt,
            )
            return TransitionResult(submission=submission, event=event)

        raise ConflictError(submission_id, (expected or stage_read).value)  # pragma: no cover

    async def publish(self, events: list[StageChanged]) -> None:
        for event in events:
            await self.events.publish(event)

    def authorize(
        self,
        actor: Actor,
        submission: Submission,
        action: Action,
        target: Stage | None,
        review: Review | None = None,
    ) -> Decision:
        """Pick the policy rule that governs ``action`` on the submission's current stage.

        Decisions a reviewer makes at a reviewable stage, and the evaluation
        that closes a challenge review round, need the stored ``review``.
        """
        policy = self.policy.for_submission(submission)
        if action is Action.ARCHIVE:
            return policy.can_archive(actor, submission)
        if action is Action.SELECT_WINNER and isinstance(submission, ChallengeSubmission):
            return self.policy.challenge_submissions.can_mark_as_winner(actor, submission)
        if action is Action.EVALUATE and isinstance(submission, ChallengeSubmission):
            return self.policy.challenge_submissions.can_evaluate(actor, submission, review)
        if action in REVIEW_DECISION_ACTIONS:
            return policy.can_record_decision(actor, submission, review)
        if action is Action.APPROVE and self.machine.is_reviewable(submission.kind, submission.current_stage):
            return policy.can_record_decision(actor, submission, review)
        return policy.can_update_status(actor, submission, target)

    def _check_preconditions(
        self, submission: Submission, action: Action, now: datetime, options: TransitionOptions
    ) -> None:
        if not isinstance(submission, ChallengeSubmission):
            return
        if action in (Action.SUBMIT, Action.APPROVE) and (
            submission.current_stage is ChallengeSubmissionStatus.DRAFT
        ):
            challenge = submission.challenge
            if challenge is None or not challenge.accepts_submissions(now):
                raise PreconditionFailedError(
                    submission.kind.value,
                    submission.current_stage.value,
                    action.value,
                    "challenge is not accepting submissions",
                )
        if action is Action.EVALUATE and options.evaluation is None:
            raise PreconditionFailedError(
                submission.kind.value,
                submission.current_stage.value,
                action.value,
                "an evaluation outcome is required",
            )

    def _apply_side_effects(
        self, submission: Submission, target: Stage, now: datetime, options: TransitionOptions
    ) -> None:
        submission.current_stage = target
        submission.last_stage_change = now

        if target.value == "submitted":
            submission.submitted_at = now
        elif target.value == "draft":
            submission.submitted_at = None
            submission.review_round += 1

        if isinstance(submission, Idea):
            if target is IdeaStage.COLLABORATION:
                submission.collaboration_enabled = True
            elif target in (IdeaStage.COMPLETED, IdeaStage.DRAFT):
                submission.collaboration_enabled = False
            if target is IdeaStage.IMPLEMENTATION:
                submission.implementation_started_at = now
            elif target is IdeaStage.COMPLETED:
                submission.completed_at = now
            still_assigned = IDEA_REVIEW_STAGES.get(target) == submission.assigned_review_stage
        elif isinstance(submission, ChallengeSubmission):
            if target is ChallengeSubmissionStatus.EVALUATED:
                submission.evaluation = options.evaluation
            elif target is ChallengeSubmissionStatus.DRAFT:
                submission.evaluation = None
            elif target is ChallengeSubmissionStatus.WINNER:
                submission.ranking = options.ranking
            still_assigned = target is ChallengeSubmissionStatus.UNDER_REVIEW
        else:
            still_assigned = False

        if not still_assigned:
            submission.assigned_reviewer_id = None
            submission.assigned_review_stage = None

    @staticmethod
    def _event_metadata(submission: Submission, options: TransitionOptions) -> dict:
        metadata = dict(options.metadata)
        metadata["review_round"] = submission.review_round
        if isinstance(submission, ChallengeSubmission):
            metadata["challenge_id"] = submission.challenge_id
            if submission.evaluation is not None:
                metadata["evaluation"] = submission.evaluation.value
            if submission.ranking is not None:
                metadata["ranking"] = submission.ranking
        return metadata
