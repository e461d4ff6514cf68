"""
Student Verification Service Layer

Business logic for proving a user is an enrolled student.
Orchestrates repository operations, the SheerID client, and email notifications.

This module implements:
1. Manual Submission Flow:
   - Validate the enrollment fields and both evidence documents
   - Create a PENDING record, or overwrite a record that is still PENDING
   - Send a confirmation email to the student

2. Instant Verification:
   - One call to SheerID; success sets sheerid_verified and student_verified
   - Failure leaves every stored value untouched

3. Review Queue (admin):
   - List, count and inspect records
   - Approve or reject a PENDING record exactly once
   - Serve the evidence documents for inspection

Concurrency:
- Records carry a version column; a decision racing another decision on the
  same record fails with CONCURRENT_UPDATE instead of overwriting it
- Admins may also pass the version they looked at (expected_version)
"""

import logging
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from nestquarter.core import sheerid
from nestquarter.core.auth import CurrentUser
from nestquarter.core.config import settings
from nestquarter.core.email import (
    send_verification_approved,
    send_verification_rejected,
    send_verification_submitted,
)
from nestquarter.modules.student_verification import repository
from nestquarter.modules.student_verification.helpers import (
    Document,
    DocumentSizeError,
    DocumentTypeError,
    format_megabytes,
    has_payload,
    parse_document,
)
from nestquarter.modules.student_verification.models import (
    DocumentKind,
    StudentVerification,
    VerificationStatus,
)
from nestquarter.modules.student_verification.repository import InvalidStatusTransitionError
from nestquarter.modules.student_verification.schemas import (
    InstantVerificationResponse,
    MyVerificationResponse,
    PendingVerification,
    RejectedVerification,
    VerificationSubmitRequest,
    VerificationSubmitResponse,
    VerifiedVerification,
)
from nestquarter.modules.users import UserRepository

logger = logging.getLogger(__name__)

DEFAULT_APPROVAL_NOTE = "Approved by admin"


class VerificationServiceError(Exception):
    """Base exception for verification service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class MissingRequiredFieldsError(VerificationServiceError):
    """Raised when an enrollment field is blank."""

    def __init__(self):
        super().__init__(
            message="Please fill in all required fields",
            error_code="MISSING_REQUIRED_FIELDS",
        )


class MissingDocumentsError(VerificationServiceError):
    """Raised when either evidence document is absent."""

    def __init__(self):
        super().__init__(
            message="Please upload both Student ID and Enrollment Letter",
            error_code="MISSING_DOCUMENTS",
        )


class InvalidDocumentTypeError(VerificationServiceError):
    def __init__(self):
        super().__init__(
            message="Please upload a valid document file (JPG, PNG, WebP, or PDF)",
            error_code="INVALID_DOCUMENT_TYPE",
        )


class DocumentTooLargeError(VerificationServiceError):
    def __init__(self, max_bytes: int):
        super().__init__(
            message=f"File size must be less than {format_megabytes(max_bytes)}",
            error_code="DOCUMENT_TOO_LARGE",
        )


class RejectionReasonRequiredError(VerificationServiceError):
    """Raised when a rejection is attempted with empty notes."""

    def __init__(self):
        super().__init__(
            message="Please provide a reason for rejection in the review notes",
            error_code="REJECTION_REASON_REQUIRED",
        )


class UniversityNameRequiredError(VerificationServiceError):
    def __init__(self):
        super().__init__(
            message="Please enter your university name",
            error_code="UNIVERSITY_NAME_REQUIRED",
        )


class VerificationNotFoundError(VerificationServiceError):
    """Raised when the user has no verification record."""

    def __init__(self, user_id: UUID | None = None):
        message = (
            f"No verification found for user {user_id}" if user_id else "Verification not found"
        )
        super().__init__(
            message=message,
            error_code="VERIFICATION_NOT_FOUND",
            status_code=404,
        )


class UserNotFoundError(VerificationServiceError):
    def __init__(self, user_id: UUID):
        super().__init__(
            message=f"User {user_id} not found",
            error_code="USER_NOT_FOUND",
            status_code=404,
        )


class AlreadyReviewedError(VerificationServiceError):
    """Raised when a decision targets a record that is already terminal."""

    def __init__(self, current_status: str):
        super().__init__(
            message=f"This verification has already been reviewed (status: {current_status})",
            error_code="VERIFICATION_ALREADY_REVIEWED",
            status_code=409,
        )


class ResubmissionNotAllowedError(VerificationServiceError):
    """Raised when documents are submitted for an already decided record."""

    def __init__(self, current_status: str):
        super().__init__(
            message=(
                f"Your verification has already been reviewed (status: {current_status}). "
                "Please contact support."
            ),
            error_code="RESUBMISSION_NOT_ALLOWED",
            status_code=409,
        )


class ConcurrentUpdateError(VerificationServiceError):
    """Raised when the record changed between reading and writing it."""

    def __init__(self):
        super().__init__(
            message="This verification was modified by someone else. Reload and try again.",
            error_code="CONCURRENT_UPDATE",
            status_code=409,
        )


class InstantVerificationFailedError(VerificationServiceError):
    def __init__(self):
        super().__init__(
            message="SheerID verification failed. Please use manual verification.",
            error_code="INSTANT_VERIFICATION_FAILED",
            status_code=502,
        )


class VerificationPersistenceError(VerificationServiceError):
    """Raised when the store fails; the record keeps its previous state."""

    def __init__(self, action: str):
        super().__init__(
            message=f"Failed to {action} verification",
            error_code="VERIFICATION_PERSISTENCE_FAILED",
            status_code=500,
        )


class DocumentUnreadableError(VerificationServiceError):
    def __init__(self, kind: DocumentKind):
        super().__init__(
            message=f"Stored {kind.value} document could not be decoded",
            error_code="DOCUMENT_UNREADABLE",
            status_code=500,
        )


# ============================================
# Helpers
# ============================================


def _validate_document(data_url: str) -> None:
    try:
        parse_document(data_url, settings.max_document_bytes)
    except DocumentSizeError as e:
        raise DocumentTooLargeError(settings.max_document_bytes) from e
    except DocumentTypeError as e:
        raise InvalidDocumentTypeError() from e


def _check_resubmittable(
    existing: StudentVerification | None,
    user_id: UUID,
) -> StudentVerification | None:
    if existing and existing.status != VerificationStatus.PENDING:
        logger.warning(f"Resubmission refused for user {user_id}: status={existing.status.value}")
        raise ResubmissionNotAllowedError(existing.status.value)
    return existing


async def _write_submission(
    db: AsyncSession,
    user_id: UUID,
    existing: StudentVerification | None,
    fields: dict[str, str],
    data: VerificationSubmitRequest,
) -> StudentVerification:
    if existing:
        verification = await repository.replace_pending_submission(
            db,
            existing,
            **fields,
            student_id_document=data.student_id_document,
            enrollment_letter=data.enrollment_letter,
        )
        logger.info(f"Pending verification resubmitted for user {user_id}")
        return verification

    verification = await repository.create_pending(
        db,
        user_id,
        **fields,
        student_id_document=data.student_id_document,
        enrollment_letter=data.enrollment_letter,
    )
    logger.info(f"Verification submitted for user {user_id}")
    return verification


def decode_stored_document(verification: StudentVerification, kind: DocumentKind) -> Document:
    """
    Decode one of a record's stored evidence documents.

    Raises:
        DocumentUnreadableError: The stored payload is not a valid document
    """
    try:
        return parse_document(verification.document(kind))
    except (DocumentTypeError, DocumentSizeError) as e:
        logger.error(f"Stored {kind.value} for user {verification.user_id} is unreadable: {e}")
        raise DocumentUnreadableError(kind) from e


def build_verification_view(
    verification: StudentVerification,
) -> PendingVerification | VerifiedVerification | RejectedVerification:
    """Project a record onto the view variant for its status."""
    common = {
        "user_id": verification.user_id,
        "university_name": verification.university_name,
        "student_id_number": verification.student_id_number,
        "graduation_year": verification.graduation_year,
        "major": verification.major,
        "submitted_at": verification.submitted_at,
        "version": verification.version,
    }

    if verification.status == VerificationStatus.PENDING:
        return PendingVerification(**common)

    if verification.status == VerificationStatus.VERIFIED:
        return VerifiedVerification(
            **common,
            reviewed_at=verification.reviewed_at,
            manual_review_notes=verification.manual_review_notes or DEFAULT_APPROVAL_NOTE,
        )

    return RejectedVerification(
        **common,
        reviewed_at=verification.reviewed_at,
        manual_review_notes=verification.manual_review_notes,
    )


# ============================================
# Subject Operations
# ============================================


async def submit_manual_verification(
    db: AsyncSession,
    user: CurrentUser,
    data: VerificationSubmitRequest,
) -> VerificationSubmitResponse:
    """
    Submit enrollment details and evidence for manual review.

    Validation order: text fields, then document presence, then each
    document's type and size. A record that is still PENDING is overwritten
    in place and keeps its original submitted_at. A second first submission
    that loses the insert race overwrites the winner the same way.

    Args:
        db: Database session
        user: The authenticated subject
        data: Enrollment fields and both documents as data URLs

    Returns:
        The PENDING record's status and submission time

    Raises:
        MissingRequiredFieldsError: A text field is blank
        MissingDocumentsError: A document is absent
        InvalidDocumentTypeError: A document is not an allowed type
        DocumentTooLargeError: A document exceeds the size limit
        ResubmissionNotAllowedError: The record was already decided
        VerificationPersistenceError: The store failed
    """
    fields = {
        "university_name": data.university_name.strip(),
        "student_id_number": data.student_id_number.strip(),
        "graduation_year": data.graduation_year.strip(),
        "major": data.major.strip(),
    }
    if not all(fields.values()):
        raise MissingRequiredFieldsError()

    if not has_payload(data.student_id_document) or not has_payload(data.enrollment_letter):
        raise MissingDocumentsError()

    _validate_document(data.student_id_document)
    _validate_document(data.enrollment_letter)

    existing = _check_resubmittable(await repository.get_by_user_id(db, user.id), user.id)

    try:
        try:
            verification = await _write_submission(db, user.id, existing, fields, data)
        except IntegrityError:
            if existing:
                raise
            # Another first submission for this user committed between our read and insert
            await db.rollback()
            logger.info(f"Concurrent first submission for user {user.id}, overwriting it")
            existing = _check_resubmittable(
                await repository.get_by_user_id(db, user.id), user.id
            )
            if not existing:
                raise
            verification = await _write_submission(db, user.id, existing, fields, data)
    except InvalidStatusTransitionError as e:
        # Decided between our read and our write
        await db.rollback()
        raise ResubmissionNotAllowedError(e.current_status.value) from e
    except StaleDataError as e:
        await db.rollback()
        raise ConcurrentUpdateError() from e
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Failed to store verification for user {user.id}: {e}", exc_info=True)
        raise VerificationPersistenceError("submit") from e

    # Send confirmation email (non-blocking)
    try:
        await send_verification_submitted(
            to_email=user.email,
            first_name=user.first_name,
            university_name=verification.university_name,
        )
    except Exception as e:
        logger.error(f"Failed to send submission email: {e}", exc_info=True)

    return VerificationSubmitResponse(
        user_id=verification.user_id,
        status=verification.status,
        submitted_at=verification.submitted_at,
    )


async def verify_instantly(
    db: AsyncSession,
    user: CurrentUser,
    university_name: str,
) -> InstantVerificationResponse:
    """
    Verify the subject through SheerID.

    Independent of the manual record: it is neither read nor written.

    Raises:
        UniversityNameRequiredError: university_name is blank
        InstantVerificationFailedError: SheerID failed or declined
        UserNotFoundError: The user row no longer exists
    """
    university_name = university_name.strip()
    if not university_name:
        raise UniversityNameRequiredError()

    try:
        await sheerid.verify_student(
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            organization=university_name,
        )
    except sheerid.SheerIDError as e:
        logger.warning(f"Instant verification failed for user {user.id}: {e}")
        raise InstantVerificationFailedError() from e

    try:
        updated = await UserRepository.mark_sheerid_verified(db, user.id)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Failed to store SheerID result for user {user.id}: {e}", exc_info=True)
        raise VerificationPersistenceError("store instant") from e

    if not updated:
        raise UserNotFoundError(user.id)

    logger.info(f"User {user.id} verified instantly via SheerID")

    return InstantVerificationResponse(
        sheerid_verified=updated.sheerid_verified,
        student_verified=updated.student_verified,
    )


async def get_my_verification(db: AsyncSession, user_id: UUID) -> MyVerificationResponse:
    """Return the caller's flags and their record, if any."""
    user = await UserRepository.get_by_id(db, user_id)
    if not user:
        raise UserNotFoundError(user_id)

    verification = await repository.get_by_user_id(db, user_id)

    return MyVerificationResponse(
        status=verification.status.value if verification else "none",
        sheerid_verified=user.sheerid_verified,
        student_verified=user.student_verified,
        verification=build_verification_view(verification) if verification else None,
    )


# ============================================
# Admin Operations
# ============================================


async def admin_list_verifications(db: AsyncSession, status_filter: str = "pending") -> dict:
    """
    List verification records for the review queue.

    Args:
        db: Database session
        status_filter: "all" or one of the status values

    Returns:
        Dict with status_filter, verifications (in submission order), total
    """
    status = None if status_filter == "all" else VerificationStatus(status_filter)
    verifications = await repository.list_with_subjects(db, status)

    return {
        "status_filter": status_filter,
        "verifications": verifications,
        "total": len(verifications),
    }


async def admin_get_stats(db: AsyncSession) -> dict:
    return await repository.get_status_counts(db)


async def admin_get_verification_detail(
    db: AsyncSession,
    user_id: UUID,
) -> StudentVerification:
    """
    Raises:
        VerificationNotFoundError: If the user has no record
    """
    verification = await repository.get_by_user_id(db, user_id)
    if not verification:
        raise VerificationNotFoundError(user_id)
    return verification


async def admin_get_document(
    db: AsyncSession,
    user_id: UUID,
    kind: DocumentKind,
) -> Document:
    """Decode a stored evidence document for inspection."""
    verification = await admin_get_verification_detail(db, user_id)
    return decode_stored_document(verification, kind)


def _check_decidable(
    verification: StudentVerification | None,
    user_id: UUID,
    expected_version: int | None,
) -> StudentVerification:
    if not verification:
        logger.warning(f"Verification not found for user {user_id}")
        raise VerificationNotFoundError(user_id)

    if verification.status != VerificationStatus.PENDING:
        logger.warning(
            f"Verification for user {user_id} already reviewed: status={verification.status.value}"
        )
        raise AlreadyReviewedError(verification.status.value)

    if expected_version is not None and verification.version != expected_version:
        logger.warning(
            f"Stale decision for user {user_id}: "
            f"expected version {expected_version}, found {verification.version}"
        )
        raise ConcurrentUpdateError()

    return verification


async def _decide(
    db: AsyncSession,
    user_id: UUID,
    status: VerificationStatus,
    notes: str,
    admin_id: UUID,
    action: str,
) -> StudentVerification:
    try:
        return await repository.record_decision(db, user_id, status, notes, admin_id)
    except InvalidStatusTransitionError as e:
        await db.rollback()
        logger.error(f"Status transition error: {e}")
        raise AlreadyReviewedError(e.current_status.value) from e
    except ValueError as e:
        raise VerificationNotFoundError(user_id) from e
    except StaleDataError as e:
        await db.rollback()
        logger.warning(f"Concurrent decision on verification for user {user_id}")
        raise ConcurrentUpdateError() from e
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Failed to {action} verification for user {user_id}: {e}", exc_info=True)
        raise VerificationPersistenceError(action) from e


async def admin_approve_verification(
    db: AsyncSession,
    user_id: UUID,
    admin_id: UUID,
    notes: str | None = None,
    expected_version: int | None = None,
) -> tuple[StudentVerification, str]:
    """
    Approve a PENDING verification.

    Sets status VERIFIED, stamps reviewed_at, stores the notes (or a
    default), and sets the user's student_verified flag.

    Args:
        db: Database session
        user_id: Owner of the record
        admin_id: UUID of the reviewing admin
        notes: Optional review notes
        expected_version: Version the admin looked at, if known

    Returns:
        The updated record and a reviewer-facing confirmation message

    Raises:
        VerificationNotFoundError: If the user has no record
        AlreadyReviewedError: If the record is not PENDING
        ConcurrentUpdateError: If the record changed concurrently
        VerificationPersistenceError: If the store failed
    """
    logger.info(f"Admin {admin_id} approving verification for user {user_id}")

    verification = await repository.get_by_user_id(db, user_id)
    _check_decidable(verification, user_id, expected_version)

    review_notes = notes.strip() if notes and notes.strip() else DEFAULT_APPROVAL_NOTE

    updated = await _decide(
        db, user_id, VerificationStatus.VERIFIED, review_notes, admin_id, "approve"
    )
    logger.info(f"Verification for user {user_id} approved")

    subject = updated.user

    # Send approval email (non-blocking)
    try:
        await send_verification_approved(to_email=subject.email, first_name=subject.first_name)
    except Exception as e:
        logger.error(f"Failed to send approval email: {e}", exc_info=True)

    name = subject.full_name
    return updated, f"Verified {name} as a student"


async def admin_reject_verification(
    db: AsyncSession,
    user_id: UUID,
    admin_id: UUID,
    notes: str,
    expected_version: int | None = None,
) -> tuple[StudentVerification, str]:
    """
    Reject a PENDING verification with a mandatory reason.

    The reason is checked before the record is read, so an empty reason
    never touches the store.

    Raises:
        RejectionReasonRequiredError: If notes are empty or whitespace
        VerificationNotFoundError: If the user has no record
        AlreadyReviewedError: If the record is not PENDING
        ConcurrentUpdateError: If the record changed concurrently
        VerificationPersistenceError: If the store failed
    """
    reason = (notes or "").strip()
    if not reason:
        raise RejectionReasonRequiredError()

    logger.info(f"Admin {admin_id} rejecting verification for user {user_id}")

    verification = await repository.get_by_user_id(db, user_id)
    _check_decidable(verification, user_id, expected_version)

    updated = await _decide(db, user_id, VerificationStatus.REJECTED, reason, admin_id, "reject")
    logger.info(f"Verification for user {user_id} rejected")

    subject = updated.user

    # Send rejection email (non-blocking)
    try:
        await send_verification_rejected(
            to_email=subject.email,
            first_name=subject.first_name,
            reason=reason,
        )
    except Exception as e:
        logger.error(f"Failed to send rejection email: {e}", exc_info=True)

    name = subject.full_name
    return updated, f"Rejected {name}'s verification"

