from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field, field_validator
from src.domain.models import Challenge, ChallengeStatus


class ChallengeCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    submission_deadline: datetime | None = None
    evaluation_deadline: datetime | None = None
    max_participants: int | None = Field(None, ge=1)

    @field_validator("submission_deadline", "evaluation_deadline")
    @classmethod
    def deadline_in_utc(cls, value: datetime | None) -> datetime | None:
        return _assume_utc(value)


class ChallengeUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    submission_deadline: datetime | None = None
    evaluation_deadline: datetime | None = None
    max_participants: int | None = Field(None, ge=1)

    @field_validator("submission_deadline", "evaluation_deadline")
    @classmethod
    def deadline_in_utc(cls, value: datetime | None) -> datetime | None:
        return _assume_utc(value)


class ChallengeStatusRequest(BaseModel):
    status: ChallengeStatus


class ChallengeResponse(BaseModel):
    id: str
    title: str
    description: str
    created_by: str
    status: str
    submission_deadline: datetime | None = None
    evaluation_deadline: datetime | None = None
    max_participants: int | None = None
    submission_count: int
    created_at: datetime

    @classmethod
    def from_domain(cls, challenge: Challenge) -> ChallengeResponse:
        return cls(
            id=challenge.challenge_id,
            title=challenge.title,
            description=challenge.description,
            created_by=challenge.created_by,
            status=challenge.status.value,
            submission_deadline=challenge.submission_deadline,
            evaluation_deadline=challenge.evaluation_deadline,
            max_participants=challenge.max_participants,
            submission_count=challenge.submission_count,
            created_at=challenge.created_at,
        )


class WinnerItem(BaseModel):
    submission_id: str
    ranking: int | None = Field(None, ge=1)


class WinnerSelectionRequest(BaseModel):
    winners: list[WinnerItem] = Field(..., min_length=1)


class WinnerOutcomeItem(BaseModel):
    submission_id: str
    selected: bool
    error: str | None = None


class WinnerSelectionResponse(BaseModel):
    challenge_id: str
    results: list[WinnerOutcomeItem]


def _assume_utc(value: datetime | None) -> datetime | None:
    """Naive deadlines are read as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value
