"""
Student Verification Module

Handles proving that a user is an enrolled student:
1. Manual verification: enrollment details plus two evidence documents,
   reviewed by an admin (pending -> verified | rejected, decided once)
2. Instant verification through SheerID, independent of the manual record
3. Background job reporting submissions pending past the review SLA

API Endpoints:
- POST /student-verification - Submit documents for manual review
- POST /student-verification/instant - Verify instantly via SheerID
- GET /student-verification/me - Current verification state
- /admin/verifications/* - Review queue (admin only)

Background Jobs (via APScheduler):
- notify_review_backlog: Runs hourly, reports pending records past the SLA
"""

from .admin_router import router as admin_router
from .jobs import register_student_verification_jobs
from .router import router

__all__ = ["router", "admin_router", "register_student_verification_jobs"]
