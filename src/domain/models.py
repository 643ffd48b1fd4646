from __future__ import annotations

import enum
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from src.core.auth import AccountStatus, Role
from src.domain.roles import Permission, resolve_capabilities
from src.domain.stages import (
    ChallengeSubmissionStatus,
    IdeaStage,
    ReviewStage,
    Stage,
    SubmissionKind,
)


def utcnow() -> datetime:
    return datetime.now(UTC)


class ChallengeStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    CLOSED = "closed"
    JUDGING = "judging"
    REVIEW_COMPLETED = "review_completed"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class ReviewDecision(str, enum.Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    NEEDS_CHANGES = "needs_changes"
    PENDING = "pending"


class EvaluationOutcome(str, enum.Enum):
    APPROVED = "approved"
    RECOMMENDED = "recommended"
    REJECTED = "rejected"


class CollaborationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    REMOVED = "removed"


class CollaborationDirection(str, enum.Enum):
    INVITATION = "invitation"
    REQUEST = "request"


@dataclass(frozen=True, slots=True)
class Actor:
    """Authenticated actor snapshot; capabilities are resolved once on construction."""

    actor_id: str
    roles: frozenset[Role] = frozenset()
    status: AccountStatus = AccountStatus.ACTIVE
    terms_accepted: bool = True
    email: str = ""
    capabilities: frozenset[Permission] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        roles = frozenset(Role(role) for role in self.roles)
        object.__setattr__(self, "roles", roles)
        object.__setattr__(self, "status", AccountStatus(self.status))
        object.__setattr__(self, "capabilities", resolve_capabilities(roles))

    @classmethod
    def from_claims(
        cls,
        actor_id: str,
        roles: Iterable[str],
        *,
        status: str = AccountStatus.ACTIVE.value,
        terms_accepted: bool = True,
        email: str = "",
    ) -> Actor:
        return cls(
            actor_id=actor_id,
            roles=frozenset(Role(role) for role in roles),
            status=AccountStatus(status),
            terms_accepted=terms_accepted,
            email=email,
        )

    @property
    def is_active(self) -> bool:
        return self.status is AccountStatus.ACTIVE


@dataclass(slots=True)
class Challenge:
    """Container for challenge submissions."""

    challenge_id: str
    title: str
    created_by: str
    status: ChallengeStatus
    submission_deadline: datetime | None = None
    evaluation_deadline: datetime | None = None
    max_participants: int | None = None
    submission_count: int = 0
    description: str = ""
    created_at: datetime = field(default_factory=utcnow)

    def accepts_submissions(self, now: datetime) -> bool:
        if self.status is not ChallengeStatus.ACTIVE:
            return False
        return self.submission_deadline is None or now < self.submission_deadline


@dataclass(slots=True)
class Submission:
    """Shared shape of ideas and challenge submissions.

    ``author_id`` is fixed at creation. ``current_stage`` only changes through
    ``WorkflowService``.
    """

    submission_id: str
    author_id: str
    current_stage: Stage
    title: str = ""
    description: str = ""
    team_members: frozenset[str] = frozenset()
    collaboration_enabled: bool = False
    review_count: int = 0
    review_round: int = 1
    assigned_reviewer_id: str | None = None
    assigned_review_stage: ReviewStage | None = None
    created_at: datetime = field(default_factory=utcnow)
    last_stage_change: datetime | None = None
    submitted_at: datetime | None = None

    kind: SubmissionKind = field(init=False, default=SubmissionKind.IDEA)

    def is_owned_by(self, actor_id: str) -> bool:
        return actor_id == self.author_id or actor_id in self.team_members


@dataclass(slots=True)
class Idea(Submission):
    completed_at: datetime | None = None
    implementation_started_at: datetime | None = None

    def __post_init__(self) -> None:
        self.kind = SubmissionKind.IDEA
        self.current_stage = IdeaStage(self.current_stage)


@dataclass(slots=True)
class ChallengeSubmission(Submission):
    challenge_id: str = ""
    challenge: Challenge | None = None
    evaluation: EvaluationOutcome | None = None
    ranking: int | None = None

    def __post_init__(self) -> None:
        self.kind = SubmissionKind.CHALLENGE_SUBMISSION
        self.current_stage = ChallengeSubmissionStatus(self.current_stage)


@dataclass(slots=True)
class Review:
    """A reviewer's decision against one submission at one review stage."""

    review_id: str
    submission_kind: SubmissionKind
    submission_id: str
    reviewer_id: str
    review_stage: ReviewStage
    decision: ReviewDecision
    review_round: int = 1
    score: float | None = None
    comments: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None

    @property
    def is_resolved(self) -> bool:
        return self.decision is not ReviewDecision.PENDING


@dataclass(slots=True)
class Collaboration:
    collaboration_id: str
    submission_kind: SubmissionKind
    submission_id: str
    collaborator_id: str
    invited_by: str
    direction: CollaborationDirection
    status: CollaborationStatus = CollaborationStatus.PENDING
    message: str | None = None
    invited_at: datetime = field(default_factory=utcnow)
    responded_at: datetime | None = None
