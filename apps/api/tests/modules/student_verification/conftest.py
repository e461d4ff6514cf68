"""
Fixtures for student verification tests.
"""

import base64
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

import pytest

from nestquarter.core.auth import CurrentUser
from nestquarter.modules.student_verification import repository
from nestquarter.modules.student_verification.models import (
    StudentVerification,
    VerificationStatus,
)
from nestquarter.modules.student_verification.schemas import VerificationSubmitRequest
from nestquarter.modules.users.models import User

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
PDF_BYTES = b"%PDF-1.4\n%test document\n"


def to_data_url(mime_type: str, content: bytes) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(content).decode()}"


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.refresh = AsyncMock()
    db.rollback = AsyncMock()
    db.get = AsyncMock()
    db.execute = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def admin_id():
    """Return a consistent admin UUID for testing."""
    return UUID("00000000-0000-0000-0000-000000000001")


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def current_user(user_id):
    """The authenticated subject."""
    return CurrentUser(
        id=user_id,
        email="ada@stanford.edu",
        first_name="Ada",
        last_name="Lovelace",
    )


@pytest.fixture
def png_data_url():
    return to_data_url("image/png", PNG_BYTES)


@pytest.fixture
def pdf_data_url():
    return to_data_url("application/pdf", PDF_BYTES)


@pytest.fixture
def sample_submit_request(png_data_url, pdf_data_url):
    """A complete, valid submission."""
    return VerificationSubmitRequest(
        university_name="Stanford University",
        student_id_number="20230001",
        graduation_year="2026",
        major="CS",
        student_id_document=png_data_url,
        enrollment_letter=pdf_data_url,
    )


@pytest.fixture
def sample_user(user_id):
    return User(
        id=user_id,
        email="ada@stanford.edu",
        password_hash="x",
        first_name="Ada",
        last_name="Lovelace",
        is_admin=False,
        is_active=True,
        sheerid_verified=False,
        student_verified=False,
    )


def _verification(user, status, png_data_url, pdf_data_url, **overrides) -> StudentVerification:
    verification = StudentVerification(
        id=uuid4(),
        user_id=user.id,
        status=status,
        university_name="Stanford University",
        student_id_number="20230001",
        graduation_year="2026",
        major="CS",
        student_id_document=png_data_url,
        enrollment_letter=pdf_data_url,
        submitted_at=datetime.now(UTC) - timedelta(days=1),
        version=1,
    )
    verification.user = user
    for key, value in overrides.items():
        setattr(verification, key, value)
    return verification


@pytest.fixture
def sample_pending_verification(sample_user, png_data_url, pdf_data_url):
    """A record awaiting review."""
    return _verification(sample_user, VerificationStatus.PENDING, png_data_url, pdf_data_url)


@pytest.fixture
def sample_verified_verification(sample_user, admin_id, png_data_url, pdf_data_url):
    sample_user.student_verified = True
    return _verification(
        sample_user,
        VerificationStatus.VERIFIED,
        png_data_url,
        pdf_data_url,
        reviewed_at=datetime.now(UTC),
        reviewed_by=admin_id,
        manual_review_notes="Approved by admin",
        version=2,
    )


@pytest.fixture
def sample_rejected_verification(sample_user, admin_id, png_data_url, pdf_data_url):
    return _verification(
        sample_user,
        VerificationStatus.REJECTED,
        png_data_url,
        pdf_data_url,
        reviewed_at=datetime.now(UTC),
        reviewed_by=admin_id,
        manual_review_notes="Enrollment letter is illegible",
        version=2,
    )


class InMemoryVerificationRepository:
    """
    Stand-in for the repository module backed by a dict.

    Applies the same state machine and version bumps as the database
    implementation, so the service can be exercised end to end.
    """

    InvalidStatusTransitionError = repository.InvalidStatusTransitionError

    def __init__(self, users: dict[UUID, User] | None = None):
        self.users: dict[UUID, User] = users or {}
        self.records: dict[UUID, StudentVerification] = {}
        self.writes = 0

    async def get_by_user_id(self, db, user_id):
        return self.records.get(user_id)

    async def create_pending(self, db, user_id, **fields):
        verification = StudentVerification(
            id=uuid4(),
            user_id=user_id,
            status=VerificationStatus.PENDING,
            submitted_at=datetime.now(UTC),
            version=1,
            **fields,
        )
        verification.user = self.users[user_id]
        self.records[user_id] = verification
        self.writes += 1
        return verification

    async def replace_pending_submission(self, db, verification, **fields):
        if verification.status != VerificationStatus.PENDING:
            raise self.InvalidStatusTransitionError(
                verification.status, VerificationStatus.PENDING
            )
        for key, value in fields.items():
            setattr(verification, key, value)
        verification.version += 1
        self.writes += 1
        return verification

    async def record_decision(self, db, user_id, status, notes, reviewed_by):
        verification = self.records.get(user_id)
        if not verification:
            raise ValueError(f"Verification for user {user_id} not found")

        allowed = repository.VALID_STATUS_TRANSITIONS[verification.status]
        if status not in allowed:
            raise self.InvalidStatusTransitionError(verification.status, status)

        if status == VerificationStatus.VERIFIED:
            verification.user.student_verified = True

        verification.status = status
        verification.reviewed_at = datetime.now(UTC)
        verification.reviewed_by = reviewed_by
        verification.manual_review_notes = notes
        verification.version += 1
        self.writes += 1
        return verification

    async def list_with_subjects(self, db, status=None):
        return [v for v in self.records.values() if status is None or v.status == status]

    async def get_status_counts(self, db):
        counts = {"total": len(self.records), "pending": 0, "verified": 0, "rejected": 0}
        for verification in self.records.values():
            counts[verification.status.value] += 1
        return counts


@pytest.fixture
def memory_repository(sample_user):
    return InMemoryVerificationRepository(users={sample_user.id: sample_user})
