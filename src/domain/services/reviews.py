"""Review recording and reconciliation.

A review is stored and its stage consequence applied in one unit of work: an
idea review drives the idea's own stage directly, while challenge submission
reviews accumulate per review stage until every required stage has resolved,
at which point the system actor evaluates the submission.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from statistics import fmean

import structlog
from src.core.config import Settings, get_settings
from src.domain.errors import ConflictError, UnauthorizedError
from src.domain.events import EventSink, StageChanged
from src.domain.models import (
    Actor,
    ChallengeSubmission,
    EvaluationOutcome,
    Review,
    ReviewDecision,
    Submission,
    utcnow,
)
from src.domain.policies import AuthorizationPolicy, Decision
from src.domain.services.workflow import TransitionOptions, WorkflowService, system_actor
from src.domain.stages import (
    IDEA_REVIEW_STAGES,
    Action,
    ChallengeSubmissionStatus,
    ReviewStage,
    Stage,
    SubmissionKind,
)
from src.infrastructure.repositories.unit_of_work import UnitOfWork

logger = structlog.get_logger()

IDEA_DECISION_ACTIONS = {
    ReviewDecision.APPROVED: Action.APPROVE,
    ReviewDecision.REJECTED: Action.REJECT,
    ReviewDecision.NEEDS_CHANGES: Action.REQUEST_CHANGES,
}


@dataclass(slots=True)
class ReviewOutcome:
    review: Review
    submission: Submission
    events: list[StageChanged] = field(default_factory=list)


def reconcile_outcome(reviews: list[Review], threshold: float) -> EvaluationOutcome:
    """Outcome of a fully resolved review round."""
    resolved = [review for review in reviews if review.is_resolved]
    if any(review.decision is ReviewDecision.REJECTED for review in resolved):
        return EvaluationOutcome.REJECTED
    scores = [review.score for review in resolved if review.score is not None]
    if (
        scores
        and all(review.decision is ReviewDecision.APPROVED for review in resolved)
        and fmean(scores) >= threshold
    ):
        return EvaluationOutcome.RECOMMENDED
    return EvaluationOutcome.APPROVED


class ReviewService:
    def __init__(
        self,
        uow: UnitOfWork,
        *,
        workflow: WorkflowService | None = None,
        events: EventSink | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.uow = uow
        self.settings = settings or get_settings()
        self.workflow = workflow or WorkflowService(
            uow, events=events, settings=self.settings, clock=clock
        )
        self.policy: AuthorizationPolicy = self.workflow.policy
        self.clock = clock

    @property
    def required_stages(self) -> frozenset[ReviewStage]:
        return frozenset(ReviewStage(stage) for stage in self.settings.required_challenge_review_stages)

    async def review_idea(
        self,
        actor: Actor,
        idea_id: str,
        decision: ReviewDecision,
        *,
        score: float | None = None,
        comments: str | None = None,
        expected_stage: Stage | str | None = None,
    ) -> ReviewOutcome:
        decision = ReviewDecision(decision)
        try:
            idea = await self.uow.submissions.get_idea(idea_id)
            self._check_expected(idea, expected_stage)
            self._require(self.policy.ideas.can_review(actor, idea), actor, idea, "review")

            review_stage = IDEA_REVIEW_STAGES[idea.current_stage]
            review = self._new_review(actor, idea, review_stage, decision, score, comments)
            await self.uow.reviews.add(review)

            outcome = ReviewOutcome(review=review, submission=idea)
            action = IDEA_DECISION_ACTIONS.get(decision)
            if action is not None:
                result = await self.workflow.apply_transition(
                    actor,
                    SubmissionKind.IDEA,
                    idea_id,
                    action,
                    expected_stage=idea.current_stage,
                    options=TransitionOptions(
                        review=review,
                        metadata={"review_id": review.review_id},
                    ),
                )
                outcome.submission = result.submission
                outcome.events.append(result.event)
        except Exception:
            await self.uow.rollback()
            raise

        await self.uow.commit()
        await self._log_review(review)
        await self.workflow.publish(outcome.events)
        return outcome

    async def review_challenge_submission(
        self,
        actor: Actor,
        submission_id: str,
        review_stage: ReviewStage,
        decision: ReviewDecision,
        *,
        score: float | None = None,
        comments: str | None = None,
        expected_stage: Stage | str | None = None,
    ) -> ReviewOutcome:
        review_stage = ReviewStage(review_stage)
        decision = ReviewDecision(decision)
        try:
            submission = await self.uow.submissions.get_challenge_submission(submission_id)
            self._check_expected(submission, expected_stage)
            self._require(
                self.policy.challenge_submissions.can_review(actor, submission, review_stage),
                actor,
                submission,
                "review",
            )

            review = self._new_review(actor, submission, review_stage, decision, score, comments)
            await self.uow.reviews.add(review)
            outcome = ReviewOutcome(review=review, submission=submission)

            if decision is ReviewDecision.NEEDS_CHANGES:
                result = await self.workflow.apply_transition(
                    actor,
                    SubmissionKind.CHALLENGE_SUBMISSION,
                    submission_id,
                    Action.REQUEST_CHANGES,
                    expected_stage=ChallengeSubmissionStatus.UNDER_REVIEW,
                    options=TransitionOptions(
                        review=review,
                        metadata={"review_id": review.review_id},
                    ),
                )
                outcome.submission = result.submission
                outcome.events.append(result.event)
            else:
                evaluation = await self._reconcile(submission)
                if evaluation is not None:
                    result = await self.workflow.apply_transition(
                        system_actor(self.settings),
                        SubmissionKind.CHALLENGE_SUBMISSION,
                        submission_id,
                        Action.EVALUATE,
                        expected_stage=ChallengeSubmissionStatus.UNDER_REVIEW,
                        options=TransitionOptions(
                            evaluation=evaluation,
                            review=review,
                            metadata={"review_id": review.review_id},
                        ),
                    )
                    outcome.submission = result.submission
                    outcome.events.append(result.event)
        except Exception:
            await self.uow.rollback()
            raise

        await self.uow.commit()
        await self._log_review(review)
        await self.workflow.publish(outcome.events)
        return outcome

    async def assign_reviewer(
        self,
        actor: Actor,
        kind: SubmissionKind,
        submission_id: str,
        assignee_id: str,
        *,
        review_stage: ReviewStage | None = None,
    ) -> Submission:
        kind = SubmissionKind(kind)
        try:
            submission = await self.uow.submissions.get(kind, submission_id)
            assignee = await self.uow.users.get_actor(assignee_id)
            policy = self.policy.for_kind(kind)
            self._require(
                policy.can_assign_reviewer(actor, submission, assignee, review_stage),
                actor,
                submission,
                "assign_reviewer",
            )
            submission.assigned_reviewer_id = assignee.actor_id
            submission.assigned_review_stage = policy.review_stage_for(submission, review_stage)
            await self.uow.submissions.save_details(submission)
        except Exception:
            await self.uow.rollback()
            raise
        await self.uow.commit()
        await logger.ainfo(
            "reviewer_assigned",
            submission_kind=kind.value,
            submission_id=submission_id,
            assignee_id=assignee_id,
            review_stage=submission.assigned_review_stage.value
            if submission.assigned_review_stage
            else None,
        )
        return submission

    async def _reconcile(self, submission: ChallengeSubmission) -> EvaluationOutcome | None:
        """Evaluation outcome once every required stage has a resolved review this round."""
        reviews = await self.uow.reviews.list_for_submission(
            SubmissionKind.CHALLENGE_SUBMISSION,
            submission.submission_id,
            review_round=submission.review_round,
        )
        resolved_stages = {review.review_stage for review in reviews if review.is_resolved}
        if not self.required_stages <= resolved_stages:
            return None
        return reconcile_outcome(reviews, self.settings.recommendation_score_threshold)

    def _new_review(
        self,
        actor: Actor,
        submission: Submission,
        review_stage: ReviewStage,
        decision: ReviewDecision,
        score: float | None,
        comments: str | None,
    ) -> Review:
        now = self.clock()
        return Review(
            review_id=str(uuid.uuid4()),
            submission_kind=submission.kind,
            submission_id=submission.submission_id,
            reviewer_id=actor.actor_id,
            review_stage=review_stage,
            decision=decision,
            review_round=submission.review_round,
            score=score,
            comments=comments,
            created_at=now,
            completed_at=now if decision is not ReviewDecision.PENDING else None,
        )

    def _check_expected(self, submission: Submission, expected_stage: Stage | str | None) -> None:
        if expected_stage is None:
            return
        expected = self.workflow.machine.coerce(submission.kind, expected_stage)
        if submission.current_stage != expected:
            raise ConflictError(
                submission.submission_id, expected.value, submission.current_stage.value
            )

    @staticmethod
    def _require(decision: Decision, actor: Actor, submission: Submission, action: str) -> None:
        if decision:
            return
        logger.warning(
            "transition_denied",
            submission_kind=submission.kind.value,
            submission_id=submission.submission_id,
            stage=submission.current_stage.value,
            action=action,
            actor_id=actor.actor_id,
            rule=decision.rule,
        )
        raise UnauthorizedError(action, decision.rule)

    @staticmethod
    async def _log_review(review: Review) -> None:
        await logger.ainfo(
            "review_recorded",
            review_id=review.review_id,
            submission_kind=review.submission_kind.value,
            submission_id=review.submission_id,
            reviewer_id=review.reviewer_id,
            review_stage=review.review_stage.value,
            decision=review.decision.value,
            review_round=review.review_round,
        )
