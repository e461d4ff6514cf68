from fastapi import APIRouter

from nestquarter.modules.auth import router as auth_router
from nestquarter.modules.student_verification import admin_router as admin_verifications_router
from nestquarter.modules.student_verification import router as student_verification_router

api_router = APIRouter()

api_router.include_router(auth_router, prefix="/auth", tags=["Authentication"])

api_router.include_router(
    student_verification_router,
    prefix="/student-verification",
    tags=["Student Verification"],
)

api_router.include_router(
    admin_verifications_router,
    prefix="/admin/verifications",
    tags=["Admin - Verifications"],
)
