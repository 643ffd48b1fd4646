from __future__ import annotations

import pytest
from src.core.auth import Role
from src.domain.errors import ConflictError, NotFoundError, UnauthorizedError
from src.domain.models import (
    Actor,
    Challenge,
    EvaluationOutcome,
    Idea,
    Review,
    ReviewDecision,
)
from src.domain.services import ReviewService, SubmissionService, WorkflowService, reconcile_outcome
from src.domain.stages import (
    Action,
    ChallengeSubmissionStatus,
    IdeaStage,
    ReviewStage,
    SubmissionKind,
)
from src.infrastructure.repositories.unit_of_work import UnitOfWork

from tests.utils import RecordingSink, make_actor

ENTRY = SubmissionKind.CHALLENGE_SUBMISSION


async def _idea_in_manager_review(uow: UnitOfWork, author: Actor, manager: Actor) -> Idea:
    idea = await SubmissionService(uow).create_idea(author, title="Shared parking calendar")
    workflow = WorkflowService(uow, events=RecordingSink())
    await workflow.request_transition(author, SubmissionKind.IDEA, idea.submission_id, Action.SUBMIT)
    await workflow.request_transition(manager, SubmissionKind.IDEA, idea.submission_id, Action.APPROVE)
    return await uow.submissions.get_idea(idea.submission_id)


def _review(stage: ReviewStage, decision: ReviewDecision, score: float | None = None) -> Review:
    return Review(
        review_id=f"{stage.value}-{decision.value}",
        submission_kind=ENTRY,
        submission_id="entry-1",
        reviewer_id="reviewer-1",
        review_stage=stage,
        decision=decision,
        score=score,
    )


class TestReconcileOutcome:
    def test_any_rejection_rejects(self) -> None:
        reviews = [
            _review(ReviewStage.MANAGER_REVIEW, ReviewDecision.APPROVED, 95),
            _review(ReviewStage.SME_REVIEW, ReviewDecision.REJECTED, 90),
        ]
        assert reconcile_outcome(reviews, 80) is EvaluationOutcome.REJECTED

    def test_unanimous_high_scores_recommend(self) -> None:
        reviews = [
            _review(ReviewStage.MANAGER_REVIEW, ReviewDecision.APPROVED, 90),
            _review(ReviewStage.SME_REVIEW, ReviewDecision.APPROVED, 70),
        ]
        assert reconcile_outcome(reviews, 80) is EvaluationOutcome.RECOMMENDED

    def test_low_average_is_plain_approval(self) -> None:
        reviews = [
            _review(ReviewStage.MANAGER_REVIEW, ReviewDecision.APPROVED, 60),
            _review(ReviewStage.SME_REVIEW, ReviewDecision.APPROVED, 70),
        ]
        assert reconcile_outcome(reviews, 80) is EvaluationOutcome.APPROVED

    def test_unscored_approvals_are_not_recommended(self) -> None:
        reviews = [_review(ReviewStage.MANAGER_REVIEW, ReviewDecision.APPROVED)]
        assert reconcile_outcome(reviews, 80) is EvaluationOutcome.APPROVED

    def test_pending_reviews_do_not_count(self) -> None:
        reviews = [
            _review(ReviewStage.MANAGER_REVIEW, ReviewDecision.APPROVED, 90),
            _review(ReviewStage.SME_REVIEW, ReviewDecision.PENDING, 10),
        ]
        assert reconcile_outcome(reviews, 80) is EvaluationOutcome.RECOMMENDED


class TestIdeaReviews:
    async def test_approval_advances_and_publishes(
        self, uow: UnitOfWork, events: RecordingSink, author: Actor, manager: Actor
    ) -> None:
        idea = await _idea_in_manager_review(uow, author, manager)
        second_manager = make_actor("manager-2", Role.MANAGER)

        outcome = await ReviewService(uow, events=events).review_idea(
            second_manager, idea.submission_id, ReviewDecision.APPROVED, score=88
        )

        assert outcome.review.review_stage is ReviewStage.MANAGER_REVIEW
        assert outcome.submission.current_stage is IdeaStage.SME_REVIEW
        assert events.stages == [("manager_review", "sme_review")]
        assert events.events[0].metadata["review_id"] == outcome.review.review_id

    async def test_pending_review_leaves_stage_alone(
        self, uow: UnitOfWork, events: RecordingSink, author: Actor, manager: Actor
    ) -> None:
        idea = await _idea_in_manager_review(uow, author, manager)

        outcome = await ReviewService(uow, events=events).review_idea(
            manager, idea.submission_id, ReviewDecision.PENDING
        )

        assert outcome.submission.current_stage is IdeaStage.MANAGER_REVIEW
        assert outcome.events == []
        assert outcome.review.completed_at is None

    async def test_changes_requested_then_author_edits_but_cannot_delete(
        self, uow: UnitOfWork, author: Actor, manager: Actor
    ) -> None:
        idea = await _idea_in_manager_review(uow, author, manager)
        await ReviewService(uow, events=RecordingSink()).review_idea(
            manager, idea.submission_id, ReviewDecision.NEEDS_CHANGES, comments="Add a cost estimate"
        )
        submissions = SubmissionService(uow)

        updated = await submissions.update(
            author, SubmissionKind.IDEA, idea.submission_id, description="Costs about 2k a year"
        )
        with pytest.raises(UnauthorizedError) as exc_info:
            await submissions.delete(author, SubmissionKind.IDEA, idea.submission_id)

        assert updated.current_stage is IdeaStage.DRAFT
        assert updated.review_count == 1
        assert exc_info.value.rule == "has_reviews"

    async def test_author_with_reviewer_role_is_conflicted(self, uow: UnitOfWork, manager: Actor) -> None:
        reviewing_author = make_actor("author-2", Role.USER, Role.MANAGER)
        idea = await _idea_in_manager_review(uow, reviewing_author, manager)

        with pytest.raises(UnauthorizedError) as exc_info:
            await ReviewService(uow).review_idea(reviewing_author, idea.submission_id, ReviewDecision.APPROVED)

        assert exc_info.value.rule == "conflict_of_interest:author"
        assert await uow.reviews.list_for_submission(SubmissionKind.IDEA, idea.submission_id) == []

    async def test_reviewer_for_another_stage_is_denied(
        self, uow: UnitOfWork, author: Actor, manager: Actor, sme: Actor
    ) -> None:
        idea = await _idea_in_manager_review(uow, author, manager)

        with pytest.raises(UnauthorizedError) as exc_info:
            await ReviewService(uow).review_idea(sme, idea.submission_id, ReviewDecision.APPROVED)

        assert exc_info.value.rule == "wrong_role"

    async def test_stale_expected_stage_conflicts(
        self, uow: UnitOfWork, author: Actor, manager: Actor
    ) -> None:
        idea = await _idea_in_manager_review(uow, author, manager)

        with pytest.raises(ConflictError):
            await ReviewService(uow).review_idea(
                manager, idea.submission_id, ReviewDecision.APPROVED, expected_stage="submitted"
            )


class TestChallengeReviews:
    @pytest.fixture()
    async def entry_id(
        self, uow: UnitOfWork, active_challenge: Challenge, author: Actor, admin: Actor
    ) -> str:
        entry = await SubmissionService(uow).create_challenge_submission(
            author, active_challenge.challenge_id, title="Mentor matching"
        )
        workflow = WorkflowService(uow, events=RecordingSink())
        await workflow.request_transition(author, ENTRY, entry.submission_id, Action.SUBMIT)
        await workflow.request_transition(admin, ENTRY, entry.submission_id, Action.BEGIN_REVIEW)
        return entry.submission_id

    async def test_evaluated_once_every_required_stage_resolves(
        self, uow: UnitOfWork, events: RecordingSink, entry_id: str, sme: Actor
    ) -> None:
        reviews = ReviewService(uow, events=events)
        second_manager = make_actor("manager-2", Role.MANAGER)

        first = await reviews.review_challenge_submission(
            second_manager, entry_id, ReviewStage.MANAGER_REVIEW, ReviewDecision.APPROVED, score=90
        )
        assert first.submission.current_stage is ChallengeSubmissionStatus.UNDER_REVIEW
        assert first.events == []

        second = await reviews.review_challenge_submission(
            sme, entry_id, ReviewStage.SME_REVIEW, ReviewDecision.APPROVED, score=85
        )
        assert second.submission.current_stage is ChallengeSubmissionStatus.EVALUATED
        assert second.submission.evaluation is EvaluationOutcome.RECOMMENDED
        assert events.stages == [("under_review", "evaluated")]
        assert events.events[0].actor_id == "system"

    async def test_rejection_is_evaluated_as_rejected(
        self, uow: UnitOfWork, entry_id: str, sme: Actor
    ) -> None:
        reviews = ReviewService(uow, events=RecordingSink())
        second_manager = make_actor("manager-2", Role.MANAGER)

        await reviews.review_challenge_submission(
            second_manager, entry_id, ReviewStage.MANAGER_REVIEW, ReviewDecision.REJECTED, score=30
        )
        outcome = await reviews.review_challenge_submission(
            sme, entry_id, ReviewStage.SME_REVIEW, ReviewDecision.APPROVED, score=95
        )

        assert outcome.submission.evaluation is EvaluationOutcome.REJECTED

    async def test_needs_changes_returns_entry_to_draft(
        self, uow: UnitOfWork, entry_id: str, sme: Actor
    ) -> None:
        outcome = await ReviewService(uow, events=RecordingSink()).review_challenge_submission(
            sme, entry_id, ReviewStage.SME_REVIEW, ReviewDecision.NEEDS_CHANGES
        )

        assert outcome.submission.current_stage is ChallengeSubmissionStatus.DRAFT
        assert outcome.submission.review_round == 2

    async def test_challenge_creator_cannot_review(
        self, uow: UnitOfWork, entry_id: str, manager: Actor
    ) -> None:
        with pytest.raises(UnauthorizedError) as exc_info:
            await ReviewService(uow).review_challenge_submission(
                manager, entry_id, ReviewStage.MANAGER_REVIEW, ReviewDecision.APPROVED
            )

        assert exc_info.value.rule == "conflict_of_interest:challenge_creator"


class TestReviewerAssignment:
    async def test_assignment_lasts_for_its_stage(
        self, uow: UnitOfWork, author: Actor, manager: Actor, sme: Actor
    ) -> None:
        idea = await _idea_in_manager_review(uow, author, manager)
        await ReviewService(uow, events=RecordingSink()).review_idea(
            manager, idea.submission_id, ReviewDecision.APPROVED
        )
        await uow.users.upsert(sme)
        await uow.commit()
        reviews = ReviewService(uow, events=RecordingSink())

        assigned = await reviews.assign_reviewer(manager, SubmissionKind.IDEA, idea.submission_id, sme.actor_id)
        assert assigned.assigned_reviewer_id == sme.actor_id
        assert assigned.assigned_review_stage is ReviewStage.SME_REVIEW

        outcome = await reviews.review_idea(sme, idea.submission_id, ReviewDecision.APPROVED)
        assert outcome.submission.current_stage is IdeaStage.COLLABORATION
        assert outcome.submission.assigned_reviewer_id is None

    async def test_conflicted_assignee_is_rejected(
        self, uow: UnitOfWork, author: Actor, manager: Actor
    ) -> None:
        idea = await _idea_in_manager_review(uow, author, manager)
        await uow.users.upsert(author)
        await uow.commit()

        with pytest.raises(UnauthorizedError) as exc_info:
            await ReviewService(uow).assign_reviewer(
                manager, SubmissionKind.IDEA, idea.submission_id, author.actor_id
            )

        assert exc_info.value.rule == "assignee:conflict_of_interest:author"

    async def test_unknown_assignee(self, uow: UnitOfWork, author: Actor, manager: Actor) -> None:
        idea = await _idea_in_manager_review(uow, author, manager)

        with pytest.raises(NotFoundError):
            await ReviewService(uow).assign_reviewer(
                manager, SubmissionKind.IDEA, idea.submission_id, "nobody"
            )
