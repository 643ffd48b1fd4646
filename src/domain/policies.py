"""Authorization policies for ideas, challenge submissions and challenges.

Every decision function is pure and total: it returns a ``Decision`` for all
inputs and only raises ``MissingRelatedEntityError`` when a related entity it
needs was not loaded. Decisions start from deny, grant only through an explicit
rule, and check disqualifying rules (inactive account, conflict of interest,
ownership, stage) before any role-based grant.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

from src.domain.conflicts import conflict_reason
from src.domain.errors import MissingRelatedEntityError
from src.domain.models import (
    Actor,
    Challenge,
    ChallengeStatus,
    ChallengeSubmission,
    Collaboration,
    CollaborationDirection,
    EvaluationOutcome,
    Review,
    Submission,
)
from src.domain.roles import Permission, has_permission
from src.domain.stages import (
    IDEA_REVIEW_STAGES,
    STAGE_MACHINE,
    ChallengeSubmissionStatus,
    IdeaStage,
    ReviewStage,
    Stage,
    StageMachine,
    SubmissionKind,
)


@dataclass(frozen=True, slots=True)
class Decision:
    """Outcome of a policy check; ``rule`` names the rule that decided it."""

    allowed: bool
    rule: str

    def __bool__(self) -> bool:
        return self.allowed

    @classmethod
    def allow(cls, rule: str) -> Decision:
        return cls(True, rule)

    @classmethod
    def deny(cls, rule: str) -> Decision:
        return cls(False, rule)


NO_MATCHING_GRANT = "no_matching_grant"
INACTIVE_ACCOUNT = "inactive_account"

REVIEW_STAGE_PERMISSIONS: Mapping[ReviewStage, Permission] = MappingProxyType(
    {
        ReviewStage.MANAGER_REVIEW: Permission.REVIEW_MANAGER_STAGE,
        ReviewStage.SME_REVIEW: Permission.REVIEW_SME_STAGE,
        ReviewStage.BOARD_REVIEW: Permission.REVIEW_BOARD_STAGE,
        ReviewStage.CHALLENGE_REVIEW: Permission.REVIEW_CHALLENGE_STAGE,
    }
)

CHALLENGE_REVIEW_STAGES = frozenset(
    {ReviewStage.MANAGER_REVIEW, ReviewStage.SME_REVIEW, ReviewStage.CHALLENGE_REVIEW}
)

WINNER_SELECTION_STATUSES = frozenset(
    {ChallengeStatus.REVIEW_COMPLETED, ChallengeStatus.JUDGING, ChallengeStatus.COMPLETED}
)

AWARDABLE_OUTCOMES = frozenset({EvaluationOutcome.APPROVED, EvaluationOutcome.RECOMMENDED})


def _inactive(actor: Actor) -> Decision | None:
    if not actor.is_active:
        return Decision.deny(INACTIVE_ACCOUNT)
    return None


class SubmissionPolicy(ABC):
    """Rules shared by both submission variants."""

    kind: SubmissionKind
    collaboration_stages: frozenset[Stage] = frozenset()

    def __init__(self, machine: StageMachine = STAGE_MACHINE) -> None:
        self.machine = machine

    def can_view(self, actor: Actor, submission: Submission) -> Decision:
        if denied := _inactive(actor):
            return denied
        if submission.is_owned_by(actor.actor_id):
            return Decision.allow("owner")
        if has_permission(actor, Permission.VIEW_ALL_SUBMISSIONS):
            return Decision.allow("view_all_submissions")
        return Decision.deny(NO_MATCHING_GRANT)

    def can_create(self, actor: Actor) -> Decision:
        if denied := _inactive(actor):
            return denied
        if not actor.terms_accepted:
            return Decision.deny("terms_not_accepted")
        if has_permission(actor, Permission.CREATE_SUBMISSION):
            return Decision.allow("create_submission")
        return Decision.deny(NO_MATCHING_GRANT)

    def can_update(self, actor: Actor, submission: Submission) -> Decision:
        if denied := _inactive(actor):
            return denied
        editable = self.machine.is_editable(self.kind, submission.current_stage)
        if submission.is_owned_by(actor.actor_id):
            if editable:
                return Decision.allow("owner_editable")
            return Decision.deny("stage_not_editable")
        if has_permission(actor, Permission.EDIT_ANY_SUBMISSION):
            if submission.review_count > 0:
                return Decision.allow("elevated_control")
            if editable:
                return Decision.allow("edit_any_submission")
            return Decision.deny("stage_not_editable")
        return Decision.deny(NO_MATCHING_GRANT)

    def can_delete(self, actor: Actor, submission: Submission) -> Decision:
        if denied := _inactive(actor):
            return denied
        if submission.review_count > 0:
            return Decision.deny("has_reviews")
        return self.can_update(actor, submission)

    def can_review(
        self,
        actor: Actor,
        submission: Submission,
        review_stage: ReviewStage | None = None,
    ) -> Decision:
        if denied := _inactive(actor):
            return denied
        reason = conflict_reason(actor.actor_id, submission)
        if reason is not None:
            return Decision.deny(f"conflict_of_interest:{reason}")
        if not self.machine.is_reviewable(self.kind, submission.current_stage):
            return Decision.deny("stage_not_reviewable")
        stage = self.review_stage_for(submission, review_stage)
        if stage is None:
            return Decision.deny("wrong_review_stage")
        if has_permission(actor, REVIEW_STAGE_PERMISSIONS[stage]):
            return Decision.allow(f"reviewer:{stage.value}")
        return Decision.deny("wrong_role")

    @abstractmethod
    def review_stage_for(
        self, submission: Submission, requested: ReviewStage | None
    ) -> ReviewStage | None: ...

    def can_record_decision(
        self, actor: Actor, submission: Submission, review: Review | None
    ) -> Decision:
        """Review-driven stage moves are only taken on behalf of a stored review by ``actor``."""
        if denied := _inactive(actor):
            return denied
        if review is None or review.submission_id != submission.submission_id:
            return Decision.deny("review_required")
        if review.reviewer_id != actor.actor_id:
            return Decision.deny("review_mismatch")
        return self.can_review(actor, submission, review.review_stage)

    def can_update_status(
        self, actor: Actor, submission: Submission, target: Stage | None
    ) -> Decision:
        if denied := _inactive(actor):
            return denied
        graph = self.machine.graph(self.kind)
        if submission.is_owned_by(actor.actor_id):
            if submission.current_stage == graph.start and target == self._submitted_stage():
                return Decision.allow("owner_submit")
            return Decision.deny("owner_cannot_advance")
        if has_permission(actor, Permission.ADVANCE_STATUS):
            if submission.current_stage == graph.start:
                return Decision.deny("author_submits")
            if target is None:
                # Legality is the stage machine's call.
                return Decision.allow("advance_status")
            if self.machine.is_forward(self.kind, submission.current_stage, target):
                return Decision.allow("advance_status")
            return Decision.deny("backward_move")
        return Decision.deny(NO_MATCHING_GRANT)

    @abstractmethod
    def _submitted_stage(self) -> Stage: ...

    def can_archive(self, actor: Actor, submission: Submission) -> Decision:
        if denied := _inactive(actor):
            return denied
        if self.machine.is_terminal(self.kind, submission.current_stage):
            return Decision.deny("terminal_stage")
        if has_permission(actor, Permission.ARCHIVE_SUBMISSIONS):
            return Decision.allow("archive_submissions")
        return Decision.deny(NO_MATCHING_GRANT)

    def can_collaborate(self, actor: Actor, submission: Submission) -> Decision:
        if denied := _inactive(actor):
            return denied
        if not submission.collaboration_enabled:
            return Decision.deny("collaboration_disabled")
        if actor.actor_id == submission.author_id:
            return Decision.deny("owner")
        if actor.actor_id in submission.team_members:
            return Decision.deny("already_member")
        if submission.current_stage not in self.collaboration_stages:
            return Decision.deny("stage_not_eligible")
        return Decision.allow("open_collaboration")

    def can_toggle_collaboration(self, actor: Actor, submission: Submission) -> Decision:
        if denied := _inactive(actor):
            return denied
        if submission.is_owned_by(actor.actor_id):
            return Decision.allow("owner")
        if has_permission(actor, Permission.MANAGE_COLLABORATION):
            return Decision.allow("manage_collaboration")
        return Decision.deny(NO_MATCHING_GRANT)

    def can_invite_collaborator(self, actor: Actor, submission: Submission) -> Decision:
        if denied := _inactive(actor):
            return denied
        if self.machine.is_terminal(self.kind, submission.current_stage):
            return Decision.deny("terminal_stage")
        return self.can_toggle_collaboration(actor, submission)

    def can_respond_to_collaboration(
        self, actor: Actor, submission: Submission, collaboration: Collaboration
    ) -> Decision:
        if denied := _inactive(actor):
            return denied
        if collaboration.direction is CollaborationDirection.INVITATION:
            if actor.actor_id == collaboration.collaborator_id:
                return Decision.allow("invitee")
            return Decision.deny("not_invitee")
        if actor.actor_id == collaboration.collaborator_id:
            return Decision.deny("own_request")
        return self.can_toggle_collaboration(actor, submission)

    def can_remove_collaborator(self, actor: Actor, submission: Submission) -> Decision:
        return self.can_toggle_collaboration(actor, submission)

    def can_export(self, actor: Actor, submission: Submission) -> Decision:
        if denied := _inactive(actor):
            return denied
        if submission.is_owned_by(actor.actor_id):
            return Decision.allow("owner")
        if has_permission(actor, Permission.EXPORT_DATA):
            return Decision.allow("export_data")
        return Decision.deny(NO_MATCHING_GRANT)

    def can_view_analytics(self, actor: Actor, submission: Submission) -> Decision:
        if denied := _inactive(actor):
            return denied
        if submission.is_owned_by(actor.actor_id):
            return Decision.allow("owner")
        if has_permission(actor, Permission.VIEW_ANALYTICS):
            return Decision.allow("view_analytics")
        return Decision.deny(NO_MATCHING_GRANT)

    def can_assign_reviewer(
        self,
        actor: Actor,
        submission: Submission,
        assignee: Actor,
        review_stage: ReviewStage | None = None,
    ) -> Decision:
        if denied := _inactive(actor):
            return denied
        if not has_permission(actor, Permission.ASSIGN_REVIEWERS):
            return Decision.deny(NO_MATCHING_GRANT)
        assignee_decision = self.can_review(assignee, submission, review_stage)
        if not assignee_decision:
            return Decision.deny(f"assignee:{assignee_decision.rule}")
        return Decision.allow("assign_reviewers")


class IdeaPolicy(SubmissionPolicy):
    kind = SubmissionKind.IDEA
    collaboration_stages = frozenset(
        {
            IdeaStage.SUBMITTED,
            IdeaStage.MANAGER_REVIEW,
            IdeaStage.SME_REVIEW,
            IdeaStage.COLLABORATION,
        }
    )

    def review_stage_for(
        self, submission: Submission, requested: ReviewStage | None
    ) -> ReviewStage | None:
        stage = IDEA_REVIEW_STAGES.get(submission.current_stage)
        if requested is not None and requested != stage:
            return None
        return stage

    def _submitted_stage(self) -> Stage:
        return IdeaStage.SUBMITTED


class ChallengeSubmissionPolicy(SubmissionPolicy):
    kind = SubmissionKind.CHALLENGE_SUBMISSION
    collaboration_stages = frozenset(
        {ChallengeSubmissionStatus.SUBMITTED, ChallengeSubmissionStatus.UNDER_REVIEW}
    )

    def review_stage_for(
        self, submission: Submission, requested: ReviewStage | None
    ) -> ReviewStage | None:
        if requested is None or requested not in CHALLENGE_REVIEW_STAGES:
            return None
        return requested

    def _submitted_stage(self) -> Stage:
        return ChallengeSubmissionStatus.SUBMITTED

    def can_evaluate(
        self, actor: Actor, submission: ChallengeSubmission, review: Review | None
    ) -> Decision:
        """Evaluation follows a reconciled review round, never a direct request.

        ``review`` is the review that completed the round; without one the
        required reviews have not resolved.
        """
        if denied := _inactive(actor):
            return denied
        if (
            review is None
            or review.submission_id != submission.submission_id
            or review.review_round != submission.review_round
        ):
            return Decision.deny("reviews_unresolved")
        if submission.current_stage != ChallengeSubmissionStatus.UNDER_REVIEW:
            return Decision.deny("stage_not_reviewable")
        reason = conflict_reason(actor.actor_id, submission)
        if reason is not None:
            return Decision.deny(f"conflict_of_interest:{reason}")
        if has_permission(actor, Permission.ADVANCE_STATUS):
            return Decision.allow("review_reconciliation")
        return Decision.deny(NO_MATCHING_GRANT)

    def can_mark_as_winner(self, actor: Actor, submission: ChallengeSubmission) -> Decision:
        if denied := _inactive(actor):
            return denied
        challenge = _require_challenge(submission)
        if submission.is_owned_by(actor.actor_id):
            return Decision.deny("ownership")
        if not has_permission(actor, Permission.SELECT_WINNERS):
            return Decision.deny("wrong_role")
        if challenge.status not in WINNER_SELECTION_STATUSES:
            return Decision.deny("challenge_status")
        if (
            submission.current_stage != ChallengeSubmissionStatus.EVALUATED
            or submission.evaluation not in AWARDABLE_OUTCOMES
        ):
            return Decision.deny("not_awardable")
        return Decision.allow("select_winners")


class ChallengePolicy:
    """Rules for the challenge container itself."""

    def can_create(self, actor: Actor) -> Decision:
        if denied := _inactive(actor):
            return denied
        if has_permission(actor, Permission.CREATE_CHALLENGE):
            return Decision.allow("create_challenge")
        return Decision.deny(NO_MATCHING_GRANT)

    def can_update(self, actor: Actor, challenge: Challenge) -> Decision:
        if denied := _inactive(actor):
            return denied
        if has_permission(actor, Permission.EDIT_ANY_CHALLENGE):
            return Decision.allow("edit_any_challenge")
        if self._manages_own(actor, challenge):
            if challenge.submission_count > 0:
                return Decision.deny("has_submissions")
            return Decision.allow("own_challenge")
        return Decision.deny(NO_MATCHING_GRANT)

    def can_delete(self, actor: Actor, challenge: Challenge) -> Decision:
        if denied := _inactive(actor):
            return denied
        if challenge.submission_count > 0:
            return Decision.deny("has_submissions")
        return self.can_update(actor, challenge)

    def can_publish(self, actor: Actor, challenge: Challenge) -> Decision:
        if denied := _inactive(actor):
            return denied
        if challenge.status is not ChallengeStatus.DRAFT:
            return Decision.deny("challenge_status")
        if has_permission(actor, Permission.PUBLISH_CHALLENGE):
            return Decision.allow("publish_challenge")
        if self._manages_own(actor, challenge):
            return Decision.allow("own_challenge")
        return Decision.deny(NO_MATCHING_GRANT)

    def can_change_status(self, actor: Actor, challenge: Challenge) -> Decision:
        if denied := _inactive(actor):
            return denied
        if has_permission(actor, Permission.EDIT_ANY_CHALLENGE):
            return Decision.allow("edit_any_challenge")
        if self._manages_own(actor, challenge):
            return Decision.allow("own_challenge")
        return Decision.deny(NO_MATCHING_GRANT)

    def can_participate(self, actor: Actor, challenge: Challenge) -> Decision:
        if denied := _inactive(actor):
            return denied
        if not actor.terms_accepted:
            return Decision.deny("terms_not_accepted")
        if actor.actor_id == challenge.created_by:
            return Decision.deny("conflict_of_interest:challenge_creator")
        if has_permission(actor, Permission.CREATE_SUBMISSION):
            return Decision.allow("create_submission")
        return Decision.deny(NO_MATCHING_GRANT)

    def can_manage_winners(self, actor: Actor, challenge: Challenge) -> Decision:
        if denied := _inactive(actor):
            return denied
        if challenge.submission_count == 0:
            return Decision.deny("no_submissions")
        if has_permission(actor, Permission.EDIT_ANY_CHALLENGE):
            return Decision.allow("edit_any_challenge")
        if self._manages_own(actor, challenge) and has_permission(actor, Permission.SELECT_WINNERS):
            return Decision.allow("own_challenge")
        return Decision.deny(NO_MATCHING_GRANT)

    def can_export(self, actor: Actor, challenge: Challenge) -> Decision:
        if denied := _inactive(actor):
            return denied
        if actor.actor_id == challenge.created_by:
            return Decision.allow("creator")
        if has_permission(actor, Permission.EXPORT_DATA):
            return Decision.allow("export_data")
        return Decision.deny(NO_MATCHING_GRANT)

    def can_view_analytics(self, actor: Actor, challenge: Challenge) -> Decision:
        if denied := _inactive(actor):
            return denied
        if actor.actor_id == challenge.created_by:
            return Decision.allow("creator")
        if has_permission(actor, Permission.VIEW_ANALYTICS):
            return Decision.allow("view_analytics")
        return Decision.deny(NO_MATCHING_GRANT)

    @staticmethod
    def _manages_own(actor: Actor, challenge: Challenge) -> bool:
        return (
            has_permission(actor, Permission.MANAGE_OWN_CHALLENGE)
            and challenge.created_by == actor.actor_id
        )


def _require_challenge(submission: ChallengeSubmission) -> Challenge:
    if submission.challenge is None:
        raise MissingRelatedEntityError(
            f"Challenge submission {submission.submission_id} loaded without its challenge"
        )
    return submission.challenge


class AuthorizationPolicy:
    """Entry point bundling the per-entity policies."""

    def __init__(self, machine: StageMachine = STAGE_MACHINE) -> None:
        self.ideas = IdeaPolicy(machine)
        self.challenge_submissions = ChallengeSubmissionPolicy(machine)
        self.challenges = ChallengePolicy()

    def for_kind(self, kind: SubmissionKind) -> SubmissionPolicy:
        if SubmissionKind(kind) is SubmissionKind.IDEA:
            return self.ideas
        return self.challenge_submissions

    def for_submission(self, submission: Submission) -> SubmissionPolicy:
        return self.for_kind(submission.kind)
