"""
Email Service using Resend

Handles sending emails for the student verification flow.
"""

import asyncio
import logging
import os
from html import escape

import resend

logger = logging.getLogger(__name__)

# Initialize Resend with API key
resend.api_key = os.getenv("RESEND_API_KEY")

# Configurations
EMAIL_FROM = os.getenv("EMAIL_FROM", "NestQuarter <noreply@nestquarter.dev>")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

_STYLE = """
    <style>
        body { font-family: system-ui, -apple-system, sans-serif; line-height: 1.6; color: #1f2937; }
        .container { max-width: 600px; margin: 0 auto; padding: 40px 20px; }
        .header { color: #be123c; margin-bottom: 24px; }
        .button { display: inline-block; background-color: #e11d48; color: white; padding: 14px 28px; text-decoration: none; border-radius: 8px; margin: 24px 0; }
        .notes { background-color: #f9fafb; border-left: 4px solid #e11d48; padding: 12px 16px; }
        .footer { margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 14px; }
    </style>
"""


def _render(title: str, body: str) -> str:
    return f"""
    <!DOCTYPE html>
    <html>
    <head>{_STYLE}</head>
    <body>
        <div class="container">
            <h1 class="header">{title}</h1>
            {body}
            <div class="footer">
                <p>NestQuarter - Student Housing</p>
            </div>
        </div>
    </body>
    </html>
    """


async def send_email(
    to_email: str,
    subject: str,
    html_content: str,
) -> bool:
    """
    Send an email using Resend.

    Args:
        to_email: Recipient email address
        subject: Email subject line
        html_content: HTML content of the email

    Returns:
        True if email was sent successfully
    """
    if not resend.api_key:
        logger.warning("RESEND_API_KEY not set - logging email instead of sending")
        logger.info(f"EMAIL TO: {to_email} | SUBJECT: {subject}")
        return True

    try:
        params: resend.Emails.SendParams = {
            "from": EMAIL_FROM,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }

        # Resend's client is synchronous
        email = await asyncio.to_thread(resend.Emails.send, params)
        logger.info(f"Email sent successfully to {to_email}, id: {email['id']}")
        return True
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


async def send_verification_submitted(
    to_email: str,
    first_name: str,
    university_name: str,
) -> bool:
    """Tell the student their documents are queued for manual review."""
    safe_name = escape(first_name)
    safe_university = escape(university_name)

    body = f"""
        <p>Hello {safe_name},</p>
        <p>We received your student verification documents for <strong>{safe_university}</strong>.</p>
        <p>Our team reviews submissions within 24-48 hours. We'll email you as soon as a decision is made.</p>
    """
    return await send_email(
        to_email=to_email,
        subject="Your NestQuarter student verification is under review",
        html_content=_render("Verification Received", body),
    )


async def send_verification_approved(
    to_email: str,
    first_name: str,
) -> bool:
    """Tell the student they are verified."""
    safe_name = escape(first_name)

    body = f"""
        <p>Hello {safe_name},</p>
        <p>Your student status has been verified. You now have access to all student-exclusive features!</p>
        <a href="{FRONTEND_URL}/search" class="button">Find a place</a>
    """
    return await send_email(
        to_email=to_email,
        subject="You're verified on NestQuarter",
        html_content=_render("Student Status Verified", body),
    )


async def send_verification_rejected(
    to_email: str,
    first_name: str,
    reason: str,
) -> bool:
    """Tell the student their verification was rejected, with the reviewer's reason."""
    safe_name = escape(first_name)
    safe_reason = escape(reason)

    body = f"""
        <p>Hello {safe_name},</p>
        <p>Unfortunately we could not verify your student status from the documents provided.</p>
        <p class="notes">{safe_reason}</p>
        <p>If you believe this is a mistake, please contact support.</p>
    """
    return await send_email(
        to_email=to_email,
        subject="Update on your NestQuarter student verification",
        html_content=_render("Verification Not Approved", body),
    )


async def send_review_backlog_digest(
    to_email: str,
    overdue: list[tuple[str, str]],
    sla_hours: int,
) -> bool:
    """
    Send reviewers the list of verifications pending longer than the SLA.

    Args:
        to_email: Review team address
        overdue: (student display name, university) pairs
        sla_hours: The review promise in hours
    """
    rows = "".join(
        f"<li>{escape(name)} &mdash; {escape(university)}</li>" for name, university in overdue
    )
    body = f"""
        <p>{len(overdue)} student verification(s) have been pending for more than {sla_hours} hours:</p>
        <ul>{rows}</ul>
        <a href="{FRONTEND_URL}/admin/verifications" class="button">Open review queue</a>
    """
    return await send_email(
        to_email=to_email,
        subject=f"{len(overdue)} student verification(s) awaiting review",
        html_content=_render("Review Backlog", body),
    )
