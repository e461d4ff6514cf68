"""
Student Verification Schemas

Pydantic schemas for request validation and response serialization.

Record views are a tagged union keyed by `status`: each variant carries only
the fields that exist in that state (a pending record has no review data, a
rejected record always has notes).
"""

from datetime import datetime
from typing import Annotated, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from nestquarter.modules.student_verification.models import DocumentKind, VerificationStatus

# ============================================
# Subject Request Schemas
# ============================================


class VerificationSubmitRequest(BaseModel):
    """Request body for POST /student-verification.

    Required-ness is checked by the service so that missing text fields and
    missing documents produce distinct errors.
    """

    university_name: str = Field(
        "", max_length=200, json_schema_extra={"example": "Stanford University"}
    )
    student_id_number: str = Field("", max_length=100, json_schema_extra={"example": "20230001"})
    graduation_year: str = Field("", max_length=10, json_schema_extra={"example": "2026"})
    major: str = Field("", max_length=200, json_schema_extra={"example": "Computer Science"})
    student_id_document: str = Field(
        "", description="Student ID as a data URL (JPG, PNG, WebP or PDF)"
    )
    enrollment_letter: str = Field(
        "", description="Enrollment letter as a data URL (JPG, PNG, WebP or PDF)"
    )


class InstantVerificationRequest(BaseModel):
    """Request body for POST /student-verification/instant."""

    university_name: str = Field("", max_length=200)


# ============================================
# Record Views (tagged by status)
# ============================================


class _VerificationViewBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: UUID
    university_name: str
    student_id_number: str
    graduation_year: str
    major: str
    submitted_at: datetime
    version: int = Field(..., description="Pass back as expected_version when deciding")


class PendingVerification(_VerificationViewBase):
    status: Literal[VerificationStatus.PENDING] = VerificationStatus.PENDING


class VerifiedVerification(_VerificationViewBase):
    status: Literal[VerificationStatus.VERIFIED] = VerificationStatus.VERIFIED
    reviewed_at: datetime
    manual_review_notes: str


class RejectedVerification(_VerificationViewBase):
    status: Literal[VerificationStatus.REJECTED] = VerificationStatus.REJECTED
    reviewed_at: datetime
    manual_review_notes: str = Field(..., min_length=1)


VerificationView = Annotated[
    PendingVerification | VerifiedVerification | RejectedVerification,
    Field(discriminator="status"),
]


# ============================================
# Subject Response Schemas
# ============================================


class VerificationSubmitResponse(BaseModel):
    """Response after submitting documents for manual review."""

    user_id: UUID
    status: VerificationStatus
    submitted_at: datetime
    message: str = (
        "Verification documents submitted successfully! Your student status is now under "
        "review. You will receive a notification once verified."
    )
    redirect_to: str = "/"


class InstantVerificationResponse(BaseModel):
    """Response after a successful instant verification."""

    sheerid_verified: bool
    student_verified: bool
    message: str = "Student status verified instantly via SheerID!"
    redirect_to: str = "/"


class MyVerificationResponse(BaseModel):
    """The caller's verification state.

    `status` is "none" when the user never submitted documents.
    """

    status: Literal["none", "pending", "verified", "rejected"]
    sheerid_verified: bool
    student_verified: bool
    verification: VerificationView | None = None


# ============================================
# Admin Schemas
# ============================================


class SubjectSummary(BaseModel):
    """Profile summary of the student behind a verification."""

    first_name: str
    last_name: str
    email: str
    sheerid_verified: bool


class VerificationListItem(BaseModel):
    """One row of the review queue."""

    user_id: UUID
    status: VerificationStatus
    subject: SubjectSummary
    university_name: str
    student_id_number: str
    graduation_year: str
    major: str
    submitted_at: datetime
    reviewed_at: datetime | None = None
    manual_review_notes: str | None = None
    version: int


class VerificationListResponse(BaseModel):
    """Review queue, in submission order."""

    status_filter: Literal["all", "pending", "verified", "rejected"]
    verifications: list[VerificationListItem]
    total: int = Field(..., ge=0)


class VerificationStatsResponse(BaseModel):
    """Counts shown above the review queue."""

    total: int = Field(..., ge=0)
    pending: int = Field(..., ge=0)
    verified: int = Field(..., ge=0)
    rejected: int = Field(..., ge=0)


class DocumentInfo(BaseModel):
    kind: DocumentKind
    mime_type: str
    size_bytes: int
    url: str = Field(..., description="Admin endpoint serving the raw document")


class VerificationDetailResponse(BaseModel):
    """Full record for review, without the document payloads."""

    subject: SubjectSummary
    verification: VerificationView
    documents: list[DocumentInfo]


class ApproveRequest(BaseModel):
    """Request body for approving a verification."""

    notes: str | None = Field(None, max_length=2000)
    expected_version: int | None = Field(
        None, description="Reject the action if the record changed since it was viewed"
    )


class RejectRequest(BaseModel):
    """Request body for rejecting a verification.

    `notes` may be empty here; the service refuses empty reasons with a
    dedicated error.
    """

    notes: str = Field("", max_length=2000)
    expected_version: int | None = None


class DecisionResponse(BaseModel):
    """Response after approving or rejecting."""

    user_id: UUID
    status: VerificationStatus
    reviewed_at: datetime
    manual_review_notes: str
    message: str
