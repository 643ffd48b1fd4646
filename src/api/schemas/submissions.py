"""Pydantic schemas for ideas, challenge submissions, reviews and collaborations."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field
from src.domain.events import StageChanged
from src.domain.models import (
    ChallengeSubmission,
    Collaboration,
    Idea,
    Review,
    ReviewDecision,
    Submission,
)
from src.domain.stages import Action, ReviewStage, SubmissionKind

# --- Request Schemas ---


class IdeaCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    team_members: list[str] = Field(default_factory=list)


class ChallengeSubmissionCreate(IdeaCreate):
    pass


class SubmissionUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    team_members: list[str] | None = None


class TransitionRequest(BaseModel):
    action: Action
    expected_stage: str | None = Field(
        None, description="Stage the caller last saw; a mismatch is answered with 409"
    )
    ranking: int | None = Field(None, ge=1)


class ReviewRequest(BaseModel):
    decision: ReviewDecision
    score: float | None = Field(None, ge=0, le=100)
    comments: str | None = None
    expected_stage: str | None = None
    review_stage: ReviewStage | None = Field(
        None, description="Required for challenge submissions; ideas use their current stage"
    )


class ReviewerAssignmentRequest(BaseModel):
    assignee_id: str = Field(..., min_length=1)
    review_stage: ReviewStage | None = None


class CollaborationToggle(BaseModel):
    enabled: bool


class CollaborationJoinRequest(BaseModel):
    message: str | None = None


class CollaborationInvite(BaseModel):
    collaborator_id: str = Field(..., min_length=1)
    message: str | None = None


# --- Response Schemas ---


class SubmissionResponse(BaseModel):
    id: str
    kind: str
    author_id: str
    stage: str
    title: str
    description: str
    team_members: list[str]
    collaboration_enabled: bool
    review_count: int
    review_round: int
    assigned_reviewer_id: str | None = None
    assigned_review_stage: str | None = None
    created_at: datetime
    last_stage_change: datetime | None = None
    submitted_at: datetime | None = None
    challenge_id: str | None = None
    evaluation: str | None = None
    ranking: int | None = None
    implementation_started_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_domain(cls, submission: Submission) -> SubmissionResponse:
        data: dict[str, Any] = {
            "id": submission.submission_id,
            "kind": submission.kind.value,
            "author_id": submission.author_id,
            "stage": submission.current_stage.value,
            "title": submission.title,
            "description": submission.description,
            "team_members": sorted(submission.team_members),
            "collaboration_enabled": submission.collaboration_enabled,
            "review_count": submission.review_count,
            "review_round": submission.review_round,
            "assigned_reviewer_id": submission.assigned_reviewer_id,
            "assigned_review_stage": (
                submission.assigned_review_stage.value if submission.assigned_review_stage else None
            ),
            "created_at": submission.created_at,
            "last_stage_change": submission.last_stage_change,
            "submitted_at": submission.submitted_at,
        }
        if isinstance(submission, ChallengeSubmission):
            data["challenge_id"] = submission.challenge_id
            data["evaluation"] = submission.evaluation.value if submission.evaluation else None
            data["ranking"] = submission.ranking
        elif isinstance(submission, Idea):
            data["implementation_started_at"] = submission.implementation_started_at
            data["completed_at"] = submission.completed_at
        return cls(**data)


class StageChangeResponse(BaseModel):
    from_stage: str
    to_stage: str
    action: str
    actor_id: str
    occurred_at: datetime
    awards_points: bool


class TransitionResponse(BaseModel):
    submission: SubmissionResponse
    stage_change: StageChangeResponse


class ReviewItem(BaseModel):
    id: str
    reviewer_id: str
    review_stage: str
    decision: str
    review_round: int
    score: float | None = None
    comments: str | None = None
    created_at: datetime

    @classmethod
    def from_domain(cls, review: Review) -> ReviewItem:
        return cls(
            id=review.review_id,
            reviewer_id=review.reviewer_id,
            review_stage=review.review_stage.value,
            decision=review.decision.value,
            review_round=review.review_round,
            score=review.score,
            comments=review.comments,
            created_at=review.created_at,
        )


class ReviewResponse(BaseModel):
    review: ReviewItem
    submission: SubmissionResponse
    stage_changes: list[StageChangeResponse]


class CollaborationResponse(BaseModel):
    id: str
    submission_kind: str
    submission_id: str
    collaborator_id: str
    invited_by: str
    direction: str
    status: str
    message: str | None = None
    invited_at: datetime
    responded_at: datetime | None = None

    @classmethod
    def from_domain(cls, collaboration: Collaboration) -> CollaborationResponse:
        return cls(
            id=collaboration.collaboration_id,
            submission_kind=collaboration.submission_kind.value,
            submission_id=collaboration.submission_id,
            collaborator_id=collaboration.collaborator_id,
            invited_by=collaboration.invited_by,
            direction=collaboration.direction.value,
            status=collaboration.status.value,
            message=collaboration.message,
            invited_at=collaboration.invited_at,
            responded_at=collaboration.responded_at,
        )


class SubmissionPath(str, enum.Enum):
    """URL segment naming a submission kind."""

    IDEAS = "ideas"
    CHALLENGE_SUBMISSIONS = "challenge-submissions"

    @property
    def kind(self) -> SubmissionKind:
        if self is SubmissionPath.IDEAS:
            return SubmissionKind.IDEA
        return SubmissionKind.CHALLENGE_SUBMISSION


def stage_change_response(event: StageChanged) -> StageChangeResponse:
    return StageChangeResponse(
        from_stage=event.from_stage,
        to_stage=event.to_stage,
        action=event.action,
        actor_id=event.actor_id,
        occurred_at=event.occurred_at,
        awards_points=event.awards_points,
    )
