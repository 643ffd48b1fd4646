from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from src.domain.models import ChallengeStatus

from .base import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class UserModel(Base):
    """Actor snapshot used to resolve third parties (reviewer assignment targets)."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    email: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True, index=True)
    roles: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="active", nullable=False)
    terms_accepted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<UserModel(id={self.id}, roles={self.roles}, status={self.status})>"


class ChallengeModel(Base):
    __tablename__ = "challenges"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    status: Mapped[ChallengeStatus] = mapped_column(
        Enum(
            ChallengeStatus,
            name="challenge_status",
            values_callable=lambda enum: [e.value for e in enum],
        ),
        default=ChallengeStatus.DRAFT,
        nullable=False,
        index=True,
    )
    submission_deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    evaluation_deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    max_participants: Mapped[int | None] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    submissions: Mapped[list[ChallengeSubmissionModel]] = relationship(
        back_populates="challenge", cascade="all,delete-orphan"
    )


class IdeaModel(Base):
    __tablename__ = "ideas"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    author_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    # Plain string: values outside the stage set must surface on load, not in the driver.
    current_stage: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    team_members: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    collaboration_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    review_round: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    assigned_reviewer_id: Mapped[str | None] = mapped_column(String(64))
    assigned_review_stage: Mapped[str | None] = mapped_column(String(32))
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    implementation_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_stage_change: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class ChallengeSubmissionModel(Base):
    __tablename__ = "challenge_submissions"
    __table_args__ = (
        UniqueConstraint("challenge_id", "author_id", name="uq_challenge_participant"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    challenge_id: Mapped[str] = mapped_column(
        ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False, index=True
    )
    author_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    team_members: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    collaboration_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    review_round: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    assigned_reviewer_id: Mapped[str | None] = mapped_column(String(64))
    assigned_review_stage: Mapped[str | None] = mapped_column(String(32))
    evaluation: Mapped[str | None] = mapped_column(String(16))
    ranking: Mapped[int | None] = mapped_column(Integer)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_stage_change: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    challenge: Mapped[ChallengeModel] = relationship(back_populates="submissions")


class ReviewModel(Base):
    __tablename__ = "reviews"
    __table_args__ = (Index("ix_reviews_submission", "submission_kind", "submission_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    submission_kind: Mapped[str] = mapped_column(String(32), nullable=False)
    submission_id: Mapped[str] = mapped_column(String(36), nullable=False)
    reviewer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    review_stage: Mapped[str] = mapped_column(String(32), nullable=False)
    decision: Mapped[str] = mapped_column(String(16), nullable=False)
    review_round: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    score: Mapped[float | None] = mapped_column(Float)
    comments: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class CollaborationModel(Base):
    __tablename__ = "collaborations"
    __table_args__ = (
        Index("ix_collaborations_submission", "submission_kind", "submission_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    submission_kind: Mapped[str] = mapped_column(String(32), nullable=False)
    submission_id: Mapped[str] = mapped_column(String(36), nullable=False)
    collaborator_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    invited_by: Mapped[str] = mapped_column(String(64), nullable=False)
    direction: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="pending", nullable=False)
    message: Mapped[str | None] = mapped_column(Text)
    invited_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
