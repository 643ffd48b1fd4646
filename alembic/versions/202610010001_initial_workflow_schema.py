"""Initial schema for users, challenges, submissions, reviews and collaborations

Revision ID: 202610010001
Revises:
Create Date: 2026-10-01 00:01:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "202610010001"
down_revision = None
branch_labels = None
depends_on = None

challenge_status_enum = sa.Enum(
    "draft",
    "active",
    "closed",
    "judging",
    "review_completed",
    "completed",
    "archived",
    name="challenge_status",
)


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(
        name, sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=True, unique=True),
        sa.Column("roles", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("terms_accepted", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
    )
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "challenges",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("created_by", sa.String(length=64), nullable=False),
        sa.Column("status", challenge_status_enum, nullable=False, server_default="draft"),
        sa.Column("submission_deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("evaluation_deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_participants", sa.Integer(), nullable=True),
        _created_at(),
        _created_at("updated_at"),
    )
    op.create_index("ix_challenges_created_by", "challenges", ["created_by"])
    op.create_index("ix_challenges_status", "challenges", ["status"])

    op.create_table(
        "ideas",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("author_id", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("current_stage", sa.String(length=32), nullable=False),
        sa.Column("team_members", sa.JSON(), nullable=False),
        sa.Column("collaboration_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("review_round", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("assigned_reviewer_id", sa.String(length=64), nullable=True),
        sa.Column("assigned_review_stage", sa.String(length=32), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("implementation_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_stage_change", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index("ix_ideas_author_id", "ideas", ["author_id"])
    op.create_index("ix_ideas_current_stage", "ideas", ["current_stage"])

    op.create_table(
        "challenge_submissions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "challenge_id",
            sa.String(length=36),
            sa.ForeignKey("challenges.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("author_id", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("team_members", sa.JSON(), nullable=False),
        sa.Column("collaboration_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("review_round", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("assigned_reviewer_id", sa.String(length=64), nullable=True),
        sa.Column("assigned_review_stage", sa.String(length=32), nullable=True),
        sa.Column("evaluation", sa.String(length=16), nullable=True),
        sa.Column("ranking", sa.Integer(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_stage_change", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.UniqueConstraint("challenge_id", "author_id", name="uq_challenge_participant"),
    )
    op.create_index(
        "ix_challenge_submissions_challenge_id", "challenge_submissions", ["challenge_id"]
    )
    op.create_index("ix_challenge_submissions_author_id", "challenge_submissions", ["author_id"])
    op.create_index("ix_challenge_submissions_status", "challenge_submissions", ["status"])

    op.create_table(
        "reviews",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("submission_kind", sa.String(length=32), nullable=False),
        sa.Column("submission_id", sa.String(length=36), nullable=False),
        sa.Column("reviewer_id", sa.String(length=64), nullable=False),
        sa.Column("review_stage", sa.String(length=32), nullable=False),
        sa.Column("decision", sa.String(length=16), nullable=False),
        sa.Column("review_round", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("score", sa.Float(), nullable=True),
        sa.Column("comments", sa.Text(), nullable=True),
        _created_at(),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_reviews_submission", "reviews", ["submission_kind", "submission_id"])
    op.create_index("ix_reviews_reviewer_id", "reviews", ["reviewer_id"])

    op.create_table(
        "collaborations",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("submission_kind", sa.String(length=32), nullable=False),
        sa.Column("submission_id", sa.String(length=36), nullable=False),
        sa.Column("collaborator_id", sa.String(length=64), nullable=False),
        sa.Column("invited_by", sa.String(length=64), nullable=False),
        sa.Column("direction", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column(
            "invited_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_collaborations_submission", "collaborations", ["submission_kind", "submission_id"]
    )
    op.create_index("ix_collaborations_collaborator_id", "collaborations", ["collaborator_id"])


def downgrade() -> None:
    op.drop_table("collaborations")
    op.drop_table("reviews")
    op.drop_table("challenge_submissions")
    op.drop_table("ideas")
    op.drop_table("challenges")
    op.drop_table("users")
    challenge_status_enum.drop(op.get_bind(), checkfirst=True)
