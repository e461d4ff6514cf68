"""
Student Verification Models

One verification record per user. A user who never submitted has no row;
there is no stored "none" status.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nestquarter.modules.shared import BaseModel
from nestquarter.modules.users.models import User


class VerificationStatus(str, enum.Enum):
    """Status of a manual student verification."""

    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class DocumentKind(str, enum.Enum):
    """Evidence documents attached to a verification."""

    STUDENT_ID = "student_id"
    ENROLLMENT_LETTER = "enrollment_letter"


class StudentVerification(BaseModel):
    """
    Manual (document-based) student verification record.

    Evidence payloads are stored as data URLs exactly as submitted.
    `version` is SQLAlchemy's optimistic concurrency column: an UPDATE that
    matches zero rows because another writer bumped the version raises
    StaleDataError instead of silently overwriting.
    """

    __tablename__ = "student_verifications"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    status: Mapped[VerificationStatus] = mapped_column(
        Enum(VerificationStatus, name="student_verification_status"),
        nullable=False,
        default=VerificationStatus.PENDING,
    )

    # Enrollment details
    university_name: Mapped[str] = mapped_column(String(200), nullable=False)
    student_id_number: Mapped[str] = mapped_column(String(100), nullable=False)
    graduation_year: Mapped[str] = mapped_column(String(10), nullable=False)
    major: Mapped[str] = mapped_column(String(200), nullable=False)

    # Evidence (data URLs)
    student_id_document: Mapped[str] = mapped_column(Text, nullable=False)
    enrollment_letter: Mapped[str] = mapped_column(Text, nullable=False)

    # Lifecycle timestamps, each written once
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    manual_review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Set when the record was included in a review backlog digest
    backlog_notified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    user: Mapped[User] = relationship(User, lazy="joined")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_student_verifications_status", "status"),
        Index("ix_student_verifications_submitted_at", "submitted_at"),
    )

    def document(self, kind: DocumentKind) -> str:
        """Return the stored data URL for a document kind."""
        if kind == DocumentKind.STUDENT_ID:
            return self.student_id_document
        return self.enrollment_letter
