"""
Student Verification Router

API endpoints for a signed-in user proving they are an enrolled student.

Endpoints:
- POST /student-verification - Submit documents for manual review
- POST /student-verification/instant - Verify instantly via SheerID
- GET /student-verification/me - Current verification state

Security:
- All endpoints require a valid access token
- Submissions and instant attempts are rate limited per user
- Document type and size validated before anything is stored
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from nestquarter.core.auth import CurrentUser, get_current_user
from nestquarter.core.database import get_db
from nestquarter.core.rate_limit import enforce_rate_limit
from nestquarter.modules.student_verification import service
from nestquarter.modules.student_verification.schemas import (
    InstantVerificationRequest,
    InstantVerificationResponse,
    MyVerificationResponse,
    VerificationSubmitRequest,
    VerificationSubmitResponse,
)
from nestquarter.modules.student_verification.service import VerificationServiceError

logger = logging.getLogger(__name__)

router = APIRouter()

RATE_LIMIT_SUBMIT = (5, 3600)  # 5 submissions per hour
RATE_LIMIT_INSTANT = (5, 3600)  # 5 SheerID attempts per hour


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


@router.post(
    "",
    response_model=VerificationSubmitResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit Student Verification",
    description="""
Submit enrollment details and two evidence documents for manual review.

Documents are data URLs (`data:<mime>;base64,<payload>`) of type JPG, PNG,
WebP or PDF, each at most 10MB decoded.

**Resubmission:**
- While the record is `pending`, a new submission replaces the details and
  documents (the original submission time is kept)
- Once `verified` or `rejected`, submissions are refused
""",
    responses={
        400: {
            "description": "Missing fields or invalid documents",
            "content": {
                "application/json": {
                    "example": {
                        "detail": {
                            "error": "MISSING_DOCUMENTS",
                            "message": "Please upload both Student ID and Enrollment Letter",
                        }
                    }
                }
            },
        },
        409: {"description": "Verification already reviewed"},
        429: {"description": "Too many submissions"},
    },
)
async def submit_verification(
    data: VerificationSubmitRequest,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> VerificationSubmitResponse:
    """Submit documents for manual review."""
    await enforce_rate_limit(f"student_verification:submit:{user.id}", *RATE_LIMIT_SUBMIT)

    try:
        response = await service.submit_manual_verification(db, user, data)

        logger.info(f"Verification submitted: user={user.id}, status={response.status.value}")

        return response

    except VerificationServiceError as e:
        logger.warning(f"Verification submission refused for user {user.id}: {e.error_code}")
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error submitting verification: {e}")
        raise _internal_error() from e


@router.post(
    "/instant",
    response_model=InstantVerificationResponse,
    summary="Verify Instantly via SheerID",
    description="""
Ask SheerID to confirm enrollment at the given university.

On success both `sheerid_verified` and `student_verified` are set. On any
failure nothing is changed and the client should fall back to manual
verification.
""",
    responses={
        400: {"description": "University name missing"},
        429: {"description": "Too many attempts"},
        502: {
            "description": "SheerID unavailable or declined",
            "content": {
                "application/json": {
                    "example": {
                        "detail": {
                            "error": "INSTANT_VERIFICATION_FAILED",
                            "message": (
                                "SheerID verification failed. Please use manual verification."
                            ),
                        }
                    }
                }
            },
        },
    },
)
async def verify_instantly(
    data: InstantVerificationRequest,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> InstantVerificationResponse:
    await enforce_rate_limit(f"student_verification:instant:{user.id}", *RATE_LIMIT_INSTANT)

    try:
        return await service.verify_instantly(db, user, data.university_name)

    except VerificationServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error during instant verification: {e}")
        raise _internal_error() from e


@router.get(
    "/me",
    response_model=MyVerificationResponse,
    summary="Get My Verification",
)
async def get_my_verification(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> MyVerificationResponse:
    """
    Current verification state of the caller.

    `status` is "none" until documents are submitted. Document payloads are
    never returned here.
    """
    try:
        return await service.get_my_verification(db, user.id)

    except VerificationServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error fetching verification for user {user.id}: {e}")
        raise _internal_error() from e
