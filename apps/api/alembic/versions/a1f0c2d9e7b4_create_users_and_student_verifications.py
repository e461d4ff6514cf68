"""create users and student verifications

Revision ID: a1f0c2d9e7b4
Revises:
Create Date: 2026-10-18 09:00:00.000000

This migration:
1. Creates the users table with both student verification signals
2. Creates the student_verification_status enum type
3. Creates the student_verifications table (one row per user, versioned)

A user without a row in student_verifications has never submitted; there is
no stored "none" status.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "a1f0c2d9e7b4"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Create users and student_verifications tables."""
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        *_timestamps(),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("sheerid_verified", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("student_verified", sa.Boolean(), nullable=False, server_default="false"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    status_enum = postgresql.ENUM(
        "PENDING",
        "VERIFIED",
        "REJECTED",
        name="student_verification_status",
        create_type=False,
    )
    status_enum.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "student_verifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        *_timestamps(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("status", status_enum, nullable=False, server_default="PENDING"),
        # Enrollment details
        sa.Column("university_name", sa.String(length=200), nullable=False),
        sa.Column("student_id_number", sa.String(length=100), nullable=False),
        sa.Column("graduation_year", sa.String(length=10), nullable=False),
        sa.Column("major", sa.String(length=200), nullable=False),
        # Evidence (data URLs)
        sa.Column("student_id_document", sa.Text(), nullable=False),
        sa.Column("enrollment_letter", sa.Text(), nullable=False),
        # Lifecycle
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("manual_review_notes", sa.Text(), nullable=True),
        sa.Column("backlog_notified_at", sa.DateTime(timezone=True), nullable=True),
        # Optimistic concurrency
        sa.Column("version", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", name="uq_student_verifications_user_id"),
    )
    op.create_index(
        "ix_student_verifications_status", "student_verifications", ["status"], unique=False
    )
    op.create_index(
        "ix_student_verifications_submitted_at",
        "student_verifications",
        ["submitted_at"],
        unique=False,
    )


def downgrade() -> None:
    """Drop student_verifications and users tables."""
    op.drop_index("ix_student_verifications_submitted_at", table_name="student_verifications")
    op.drop_index("ix_student_verifications_status", table_name="student_verifications")
    op.drop_table("student_verifications")

    postgresql.ENUM(name="student_verification_status").drop(op.get_bind(), checkfirst=True)

    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
