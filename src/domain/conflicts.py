"""Conflict-of-interest check for reviewing and judging."""

from __future__ import annotations

from src.domain.errors import MissingRelatedEntityError
from src.domain.models import ChallengeSubmission, Submission

AUTHOR = "author"
TEAM_MEMBER = "team_member"
CHALLENGE_CREATOR = "challenge_creator"


def conflict_reason(actor_id: str, submission: Submission) -> str | None:
    """Return why ``actor_id`` may not review ``submission``, or None."""
    if actor_id == submission.author_id:
        return AUTHOR
    if actor_id in submission.team_members:
        return TEAM_MEMBER
    if isinstance(submission, ChallengeSubmission):
        if submission.challenge is None:
            raise MissingRelatedEntityError(
                f"Challenge submission {submission.submission_id} loaded without its challenge"
            )
        if actor_id == submission.challenge.created_by:
            return CHALLENGE_CREATOR
    return None


def is_conflicted(actor_id: str, submission: Submission) -> bool:
    return conflict_reason(actor_id, submission) is not None
