"""Domain services."""

from src.domain.services.challenges import (
    ChallengeService,
    SweepReport,
    WinnerOutcome,
    WinnerSelection,
    WinnerService,
)
from src.domain.services.collaborations import CollaborationService
from src.domain.services.reviews import ReviewOutcome, ReviewService, reconcile_outcome
from src.domain.services.submission import SubmissionService
from src.domain.services.workflow import (
    TransitionOptions,
    TransitionResult,
    WorkflowService,
    system_actor,
)

__all__ = [
    "ChallengeService",
    "CollaborationService",
    "ReviewOutcome",
    "ReviewService",
    "SubmissionService",
    "SweepReport",
    "TransitionOptions",
    "TransitionResult",
    "WinnerOutcome",
    "WinnerSelection",
    "WinnerService",
    "WorkflowService",
    "reconcile_outcome",
    "system_actor",
]
