"""
Student Verification Repository

Database operations for student verification records. Records are keyed by
user: every read and write addresses a single row, never the whole
collection.

Design Principles:
- All queries are parameterized (no SQL injection)
- Async operations for non-blocking I/O
- Only database operations, no business logic beyond the state machine guard
- Timezone-aware datetime handling (UTC)
"""

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import defer

from .models import StudentVerification, VerificationStatus

# Valid status transitions. Absence of a record is the initial state, so
# creation (always PENDING) is not listed here.
VALID_STATUS_TRANSITIONS: dict[VerificationStatus, set[VerificationStatus]] = {
    VerificationStatus.PENDING: {
        VerificationStatus.VERIFIED,
        VerificationStatus.REJECTED,
    },
    # Terminal states
    VerificationStatus.VERIFIED: set(),
    VerificationStatus.REJECTED: set(),
}


class InvalidStatusTransitionError(ValueError):
    """Raised when an invalid status transition is attempted."""

    def __init__(
        self,
        current_status: VerificationStatus,
        new_status: VerificationStatus,
    ):
        self.current_status = current_status
        self.new_status = new_status
        valid_transitions = VALID_STATUS_TRANSITIONS.get(current_status, set())
        super().__init__(
            f"Invalid status transition: {current_status.value} -> {new_status.value}. "
            f"Valid transitions: {sorted(s.value for s in valid_transitions)}"
        )


async def get_by_user_id(db: AsyncSession, user_id: UUID) -> StudentVerification | None:
    """Get the verification record for a user, with the user loaded."""
    result = await db.execute(
        select(StudentVerification).where(StudentVerification.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def create_pending(
    db: AsyncSession,
    user_id: UUID,
    *,
    university_name: str,
    student_id_number: str,
    graduation_year: str,
    major: str,
    student_id_document: str,
    enrollment_letter: str,
) -> StudentVerification:
    """Create a PENDING record. submitted_at is stamped here and never again."""
    verification = StudentVerification(
        user_id=user_id,
        status=VerificationStatus.PENDING,
        university_name=university_name,
        student_id_number=student_id_number,
        graduation_year=graduation_year,
        major=major,
        student_id_document=student_id_document,
        enrollment_letter=enrollment_letter,
        submitted_at=datetime.now(UTC),
    )

    db.add(verification)
    await db.commit()
    await db.refresh(verification)

    return verification


async def replace_pending_submission(
    db: AsyncSession,
    verification: StudentVerification,
    *,
    university_name: str,
    student_id_number: str,
    graduation_year: str,
    major: str,
    student_id_document: str,
    enrollment_letter: str,
) -> StudentVerification:
    """
    Overwrite the fields and documents of a record that is still PENDING.

    submitted_at is left untouched.

    Raises:
        InvalidStatusTransitionError: If the record is no longer PENDING
    """
    if verification.status != VerificationStatus.PENDING:
        raise InvalidStatusTransitionError(verification.status, VerificationStatus.PENDING)

    verification.university_name = university_name
    verification.student_id_number = student_id_number
    verification.graduation_year = graduation_year
    verification.major = major
    verification.student_id_document = student_id_document
    verification.enrollment_letter = enrollment_letter

    await db.commit()
    await db.refresh(verification)

    return verification


async def update_status(
    db: AsyncSession,
    user_id: UUID,
    status: VerificationStatus,
    **kwargs,
) -> StudentVerification:
    """
    Update a record's status and optional fields.

    Validates the transition against the state machine, so a terminal
    record can never be decided twice.

    Args:
        db: Database session
        user_id: Owner of the record
        status: New status
        **kwargs: Additional columns to set (e.g., reviewed_at)

    Returns:
        Updated StudentVerification

    Raises:
        ValueError: If no record exists for the user
        InvalidStatusTransitionError: If the transition is not allowed
        sqlalchemy.orm.exc.StaleDataError: If another writer changed the row
    """
    verification = await get_by_user_id(db, user_id)
    if not verification:
        raise ValueError(f"Verification for user {user_id} not found")

    current_status = verification.status
    if status not in VALID_STATUS_TRANSITIONS.get(current_status, set()):
        raise InvalidStatusTransitionError(current_status, status)

    verification.status = status

    for key, value in kwargs.items():
        if hasattr(verification, key):
            setattr(verification, key, value)

    await db.commit()
    await db.refresh(verification)

    return verification


async def record_decision(
    db: AsyncSession,
    user_id: UUID,
    status: VerificationStatus,
    notes: str,
    reviewed_by: UUID,
) -> StudentVerification:
    """
    Adjudicate a PENDING record as VERIFIED or REJECTED.

    Stamps reviewed_at and stores the reviewer's notes. Approval also sets
    the user's derived student_verified flag in the same commit;
    sheerid_verified is never touched.

    Raises:
        ValueError: If no record exists for the user
        InvalidStatusTransitionError: If the record is not PENDING
    """
    verification = await get_by_user_id(db, user_id)
    if not verification:
        raise ValueError(f"Verification for user {user_id} not found")

    if status not in VALID_STATUS_TRANSITIONS.get(verification.status, set()):
        raise InvalidStatusTransitionError(verification.status, status)

    if status == VerificationStatus.VERIFIED:
        verification.user.student_verified = True

    return await update_status(
        db,
        user_id,
        status,
        reviewed_at=datetime.now(UTC),
        reviewed_by=reviewed_by,
        manual_review_notes=notes,
    )


async def list_with_subjects(
    db: AsyncSession,
    status: VerificationStatus | None = None,
) -> list[StudentVerification]:
    """
    List records (optionally of one status) with their users, in insertion order.

    Document payloads are deferred; the list view never needs them.
    """
    query = (
        select(StudentVerification)
        .options(
            defer(StudentVerification.student_id_document),
            defer(StudentVerification.enrollment_letter),
        )
        .order_by(StudentVerification.created_at, StudentVerification.id)
    )

    if status:
        query = query.where(StudentVerification.status == status)

    result = await db.execute(query)
    return list(result.scalars().all())


async def get_status_counts(db: AsyncSession) -> dict[str, int]:
    """Count records per status in a single aggregate query."""
    query = select(
        func.count(StudentVerification.id).label("total"),
        func.count(case((StudentVerification.status == VerificationStatus.PENDING, 1))).label(
            "pending"
        ),
        func.count(case((StudentVerification.status == VerificationStatus.VERIFIED, 1))).label(
            "verified"
        ),
        func.count(case((StudentVerification.status == VerificationStatus.REJECTED, 1))).label(
            "rejected"
        ),
    )

    row = (await db.execute(query)).one()

    return {
        "total": row.total,
        "pending": row.pending,
        "verified": row.verified,
        "rejected": row.rejected,
    }


# ============================================
# Background Job Repository Methods
# ============================================


async def get_pending_past_sla(
    db: AsyncSession,
    submitted_before: datetime,
) -> list[StudentVerification]:
    """
    Get PENDING records submitted before the cutoff that were never reported.

    Idempotent until mark_backlog_notified() stamps the records.
    """
    result = await db.execute(
        select(StudentVerification)
        .options(
            defer(StudentVerification.student_id_document),
            defer(StudentVerification.enrollment_letter),
        )
        .where(
            StudentVerification.status == VerificationStatus.PENDING,
            StudentVerification.submitted_at < submitted_before,
            StudentVerification.backlog_notified_at.is_(None),
        )
        .order_by(StudentVerification.submitted_at)
    )
    return list(result.scalars().all())


async def mark_backlog_notified(
    db: AsyncSession,
    verification_ids: list[UUID],
    notified_at: datetime | None = None,
) -> None:
    """Stamp backlog_notified_at on the given records."""
    if not verification_ids:
        return

    await db.execute(
        update(StudentVerification)
        .where(StudentVerification.id.in_(verification_ids))
        .values(backlog_notified_at=notified_at or datetime.now(UTC))
        .execution_options(synchronize_session=False)
    )
    await db.commit()
