"""
Student Verification Background Jobs

Scheduled tasks for the manual review queue:
1. Report verifications pending longer than the review SLA

Design Principles:
- Jobs are idempotent (each record is reported once)
- Jobs handle their own database sessions
- Jobs log all operations for auditing

Schedule:
- Runs hourly
- Can also be triggered manually via the debug job endpoints
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from apscheduler.triggers.interval import IntervalTrigger

from nestquarter.core.config import settings
from nestquarter.core.database import async_session_maker
from nestquarter.core.email import send_review_backlog_digest
from nestquarter.core.scheduler import register_job
from nestquarter.modules.student_verification import repository

logger = logging.getLogger(__name__)

JOB_ID_REVIEW_BACKLOG = "student_verification_review_backlog"


async def notify_review_backlog() -> dict[str, Any]:
    """
    Email reviewers the pending verifications older than the review SLA.

    Records are stamped with backlog_notified_at after the digest goes out,
    so the next run skips them. When the email fails nothing is stamped and
    the same records are reported on the next run.

    Returns:
        Dict with job execution summary including:
        - executed_at: When the job ran
        - overdue: Number of records found
        - notified: Number of records stamped
        - delivered: Whether the digest was sent (or logged)
    """
    executed_at = datetime.now(UTC)
    threshold = executed_at - timedelta(hours=settings.review_sla_hours)

    logger.info(f"Starting review backlog job. Threshold: {threshold.isoformat()}")

    results: dict[str, Any] = {
        "executed_at": executed_at.isoformat(),
        "overdue": 0,
        "notified": 0,
        "delivered": False,
    }

    async with async_session_maker() as db:
        overdue = await repository.get_pending_past_sla(db, submitted_before=threshold)
        results["overdue"] = len(overdue)

        if not overdue:
            logger.info("Review backlog job completed. Nothing overdue")
            return results

        entries = [(v.user.full_name, v.university_name) for v in overdue]

        if settings.review_team_email:
            delivered = await send_review_backlog_digest(
                to_email=settings.review_team_email,
                overdue=entries,
                sla_hours=settings.review_sla_hours,
            )
        else:
            logger.warning(
                f"REVIEW_TEAM_EMAIL not set - {len(entries)} verification(s) pending "
                f"longer than {settings.review_sla_hours}h: "
                + ", ".join(name for name, _ in entries)
            )
            delivered = True

        results["delivered"] = delivered

        if not delivered:
            logger.error("Review backlog digest could not be sent; will retry next run")
            return results

        await repository.mark_backlog_notified(
            db, [v.id for v in overdue], notified_at=executed_at
        )
        results["notified"] = len(overdue)

    logger.info(
        f"Review backlog job completed. Overdue: {results['overdue']}, "
        f"Notified: {results['notified']}"
    )

    return results


def register_student_verification_jobs() -> None:
    """
    Register student verification background jobs with the scheduler.

    Registered jobs:
    1. notify_review_backlog - Runs every hour
    """
    register_job(
        job_id=JOB_ID_REVIEW_BACKLOG,
        func=notify_review_backlog,
        trigger=IntervalTrigger(hours=1),
    )
    logger.info(f"Registered job: {JOB_ID_REVIEW_BACKLOG} (interval: 1 hour)")
