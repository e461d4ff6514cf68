"""
Student Verification Admin Router

API endpoints for reviewers working the manual verification queue.
All endpoints require an authenticated admin; non-admins get 403
ADMIN_ACCESS_REQUIRED before any record is read.

Endpoints:
- GET /admin/verifications - List verifications (default: pending)
- GET /admin/verifications/stats - Counts per status
- GET /admin/verifications/{user_id} - Verification details
- POST /admin/verifications/{user_id}/approve - Approve
- POST /admin/verifications/{user_id}/reject - Reject with a reason
- GET /admin/verifications/{user_id}/documents/{kind} - Raw evidence document
"""

import logging
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from nestquarter.core.auth import CurrentUser, get_current_admin_user
from nestquarter.core.database import get_db
from nestquarter.core.rate_limit import enforce_rate_limit
from nestquarter.modules.student_verification import service
from nestquarter.modules.student_verification.models import (
    DocumentKind,
    StudentVerification,
)
from nestquarter.modules.student_verification.schemas import (
    ApproveRequest,
    DecisionResponse,
    DocumentInfo,
    RejectRequest,
    SubjectSummary,
    VerificationDetailResponse,
    VerificationListItem,
    VerificationListResponse,
    VerificationStatsResponse,
)
from nestquarter.modules.student_verification.service import VerificationServiceError

logger = logging.getLogger(__name__)

router = APIRouter()

ADMIN_PREFIX = "/api/v1/admin/verifications"

# ============================================
# Rate Limiting Configuration
# ============================================

RATE_LIMIT_APPROVE = (10, 60)  # 10 approvals per minute
RATE_LIMIT_REJECT = (10, 60)  # 10 rejections per minute


# ============================================
# Helper Functions
# ============================================


def _handle_service_error(e: VerificationServiceError) -> None:
    """Convert service errors to HTTPExceptions."""
    raise HTTPException(
        status_code=e.status_code,
        detail={
            "error": e.error_code,
            "message": e.message,
        },
    ) from e


def _internal_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )


def _subject_summary(verification: StudentVerification) -> SubjectSummary:
    user = verification.user
    return SubjectSummary(
        first_name=user.first_name,
        last_name=user.last_name,
        email=user.email,
        sheerid_verified=user.sheerid_verified,
    )


def _verification_to_list_item(verification: StudentVerification) -> VerificationListItem:
    """Convert StudentVerification model to VerificationListItem schema."""
    return VerificationListItem(
        user_id=verification.user_id,
        status=verification.status,
        subject=_subject_summary(verification),
        university_name=verification.university_name,
        student_id_number=verification.student_id_number,
        graduation_year=verification.graduation_year,
        major=verification.major,
        submitted_at=verification.submitted_at,
        reviewed_at=verification.reviewed_at,
        manual_review_notes=verification.manual_review_notes,
        version=verification.version,
    )


def _document_info(verification: StudentVerification, kind: DocumentKind) -> DocumentInfo:
    document = service.decode_stored_document(verification, kind)
    return DocumentInfo(
        kind=kind,
        mime_type=document.mime_type,
        size_bytes=document.size,
        url=f"{ADMIN_PREFIX}/{verification.user_id}/documents/{kind.value}",
    )


def _decision_response(verification: StudentVerification, message: str) -> DecisionResponse:
    return DecisionResponse(
        user_id=verification.user_id,
        status=verification.status,
        reviewed_at=verification.reviewed_at,
        manual_review_notes=verification.manual_review_notes,
        message=message,
    )


# ============================================
# List & Stats Endpoints
# ============================================


@router.get(
    "",
    response_model=VerificationListResponse,
    summary="List Verifications",
    description="""
List verification records for review, oldest submission first.

**Filter:**
- `status`: `pending` (default), `verified`, `rejected` or `all`

Each item carries the student's name, email and SheerID flag. Document
payloads are not included.
""",
)
async def list_verifications(
    status_filter: Literal["all", "pending", "verified", "rejected"] = Query(
        "pending",
        alias="status",
        description="Filter by verification status",
    ),
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(get_current_admin_user),
) -> VerificationListResponse:
    try:
        result = await service.admin_list_verifications(db, status_filter)

        logger.info(
            f"Admin {admin.id} listed verifications: "
            f"status={status_filter}, total={result['total']}"
        )

        return VerificationListResponse(
            status_filter=result["status_filter"],
            verifications=[_verification_to_list_item(v) for v in result["verifications"]],
            total=result["total"],
        )

    except VerificationServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error listing verifications: {e}")
        raise _internal_error() from e


@router.get(
    "/stats",
    response_model=VerificationStatsResponse,
    summary="Get Verification Statistics",
)
async def get_stats(
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(get_current_admin_user),
) -> VerificationStatsResponse:
    """Counts of all, pending, verified and rejected records."""
    try:
        counts = await service.admin_get_stats(db)
        return VerificationStatsResponse(**counts)

    except Exception as e:
        logger.exception(f"Error fetching verification stats: {e}")
        raise _internal_error() from e


# ============================================
# Detail Endpoints
# ============================================


@router.get(
    "/{user_id}",
    response_model=VerificationDetailResponse,
    summary="Get Verification Details",
)
async def get_verification_detail(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(get_current_admin_user),
) -> VerificationDetailResponse:
    """
    Full record for review, with links to both evidence documents.

    Raises:
        HTTPException 404: If the user has no verification
    """
    try:
        verification = await service.admin_get_verification_detail(db, user_id)

        logger.info(f"Admin {admin.id} viewed verification for user {user_id}")

        return VerificationDetailResponse(
            subject=_subject_summary(verification),
            verification=service.build_verification_view(verification),
            documents=[_document_info(verification, kind) for kind in DocumentKind],
        )

    except VerificationServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error fetching verification detail: {e}")
        raise _internal_error() from e


@router.get(
    "/{user_id}/documents/{kind}",
    summary="View Evidence Document",
    response_class=Response,
    responses={
        200: {
            "description": "Raw document bytes",
            "content": {
                "image/jpeg": {},
                "image/png": {},
                "image/webp": {},
                "application/pdf": {},
            },
        },
        404: {"description": "Verification not found"},
    },
)
async def view_document(
    user_id: UUID,
    kind: DocumentKind,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(get_current_admin_user),
) -> Response:
    """Serve a stored evidence document with its original content type."""
    try:
        document = await service.admin_get_document(db, user_id, kind)

        logger.info(f"Admin {admin.id} opened {kind.value} for user {user_id}")

        return Response(
            content=document.content,
            media_type=document.mime_type,
            headers={
                "Content-Disposition": f'inline; filename="{kind.value}"',
                "Cache-Control": "no-store",
            },
        )

    except VerificationServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error serving document: {e}")
        raise _internal_error() from e


# ============================================
# Decision Endpoints
# ============================================


@router.post(
    "/{user_id}/approve",
    response_model=DecisionResponse,
    summary="Approve Verification",
    description="""
Approve a pending verification.

Sets the status to `verified`, stamps the review time, stores the notes
(default "Approved by admin") and marks the student as verified.

**Requirements:**
- Verification must be `pending`
- If `expected_version` is given it must match the current record

**Rate limit:** 10 approvals per minute per admin.
""",
    responses={
        404: {"description": "Verification not found"},
        409: {"description": "Already reviewed or modified concurrently"},
        429: {"description": "Rate limit exceeded"},
    },
)
async def approve_verification(
    user_id: UUID,
    data: ApproveRequest | None = None,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(get_current_admin_user),
) -> DecisionResponse:
    await enforce_rate_limit(f"admin:approve:{admin.id}", *RATE_LIMIT_APPROVE)

    data = data or ApproveRequest()

    try:
        verification, message = await service.admin_approve_verification(
            db,
            user_id,
            admin.id,
            notes=data.notes,
            expected_version=data.expected_version,
        )

        logger.info(f"Admin {admin.id} approved verification for user {user_id}")

        return _decision_response(verification, message)

    except VerificationServiceError as e:
        logger.warning(f"Cannot approve verification for user {user_id}: {e.message}")
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error approving verification: {e}")
        raise _internal_error() from e


@router.post(
    "/{user_id}/reject",
    response_model=DecisionResponse,
    summary="Reject Verification",
    description="""
Reject a pending verification.

`notes` must explain the rejection; it is emailed to the student.

**Rate limit:** 10 rejections per minute per admin.
""",
    responses={
        400: {
            "description": "Rejection reason missing",
            "content": {
                "application/json": {
                    "example": {
                        "detail": {
                            "error": "REJECTION_REASON_REQUIRED",
                            "message": "Please provide a reason for rejection in the review notes",
                        }
                    }
                }
            },
        },
        404: {"description": "Verification not found"},
        409: {"description": "Already reviewed or modified concurrently"},
        429: {"description": "Rate limit exceeded"},
    },
)
async def reject_verification(
    user_id: UUID,
    data: RejectRequest,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(get_current_admin_user),
) -> DecisionResponse:
    await enforce_rate_limit(f"admin:reject:{admin.id}", *RATE_LIMIT_REJECT)

    try:
        verification, message = await service.admin_reject_verification(
            db,
            user_id,
            admin.id,
            notes=data.notes,
            expected_version=data.expected_version,
        )

        logger.info(f"Admin {admin.id} rejected verification for user {user_id}")

        return _decision_response(verification, message)

    except VerificationServiceError as e:
        logger.warning(f"Cannot reject verification for user {user_id}: {e.message}")
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error rejecting verification: {e}")
        raise _internal_error() from e
