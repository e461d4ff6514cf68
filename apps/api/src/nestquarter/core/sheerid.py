"""
SheerID Client

Instant student verification against the SheerID API. A single outbound
request per call: no retries, no backoff. Any failure is reported as
SheerIDError and the caller falls back to manual verification.
"""

import asyncio
import logging

import requests

from nestquarter.core.config import settings

logger = logging.getLogger(__name__)


class SheerIDError(Exception):
    """The provider is unavailable or did not confirm the student."""


def _post_verification(payload: dict[str, str]) -> requests.Response:
    headers = {"Content-Type": "application/json"}
    if settings.sheerid_api_token:
        headers["Authorization"] = f"Bearer {settings.sheerid_api_token}"

    return requests.post(
        settings.sheerid_api_url,
        json=payload,
        headers=headers,
        timeout=settings.sheerid_timeout_seconds,
    )


async def verify_student(
    first_name: str,
    last_name: str,
    email: str,
    organization: str,
) -> bool:
    """
    Ask SheerID to confirm the person is enrolled at the organization.

    Returns:
        True when the provider answered 2xx

    Raises:
        SheerIDError: Provider not configured, unreachable, timed out, or
            answered with a non-2xx status
    """
    if not settings.sheerid_api_url:
        logger.warning("SHEERID_API_URL not set - instant verification unavailable")
        raise SheerIDError("Instant verification is not configured")

    payload = {
        "firstName": first_name,
        "lastName": last_name,
        "email": email,
        "organization": organization,
    }

    try:
        # requests is synchronous
        response = await asyncio.to_thread(_post_verification, payload)
    except requests.RequestException as e:
        logger.error(f"SheerID request failed: {e}")
        raise SheerIDError("SheerID is unavailable") from e

    if not response.ok:
        logger.warning(f"SheerID declined verification: HTTP {response.status_code}")
        raise SheerIDError(f"SheerID returned HTTP {response.status_code}")

    logger.info(f"SheerID confirmed student status for organization '{organization}'")
    return True
