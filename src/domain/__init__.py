"""Workflow domain: stage machines, authorization policies and services."""

from src.domain.models import (
    Actor,
    Challenge,
    ChallengeStatus,
    ChallengeSubmission,
    Collaboration,
    Idea,
    Review,
    Submission,
)
from src.domain.stages import STAGE_MACHINE, Action, SubmissionKind

__all__ = [
    "Action",
    "Actor",
    "Challenge",
    "ChallengeStatus",
    "ChallengeSubmission",
    "Collaboration",
    "Idea",
    "Review",
    "STAGE_MACHINE",
    "Submission",
    "SubmissionKind",
]
