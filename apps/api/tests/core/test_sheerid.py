"""
Tests for the SheerID client.
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from nestquarter.core import sheerid
from nestquarter.core.sheerid import SheerIDError, verify_student

API_URL = "https://sheerid.test/verify"


@pytest.fixture
def configured():
    with (
        patch.object(sheerid.settings, "sheerid_api_url", API_URL),
        patch.object(sheerid.settings, "sheerid_api_token", "secret"),
    ):
        yield


@pytest.mark.asyncio
async def test_not_configured():
    with (
        patch.object(sheerid.settings, "sheerid_api_url", None),
        patch.object(sheerid.requests, "post") as mock_post,
    ):
        with pytest.raises(SheerIDError, match="not configured"):
            await verify_student("Ada", "Lovelace", "ada@stanford.edu", "Stanford University")

        mock_post.assert_not_called()


@pytest.mark.asyncio
async def test_success_sends_one_request(configured):
    with patch.object(sheerid.requests, "post", return_value=MagicMock(ok=True)) as mock_post:
        assert await verify_student("Ada", "Lovelace", "ada@stanford.edu", "Stanford University")

    mock_post.assert_called_once()
    args, kwargs = mock_post.call_args
    assert args[0] == API_URL
    assert kwargs["json"] == {
        "firstName": "Ada",
        "lastName": "Lovelace",
        "email": "ada@stanford.edu",
        "organization": "Stanford University",
    }
    assert kwargs["headers"]["Authorization"] == "Bearer secret"


@pytest.mark.asyncio
async def test_non_2xx_is_a_failure(configured):
    response = MagicMock(ok=False, status_code=403)

    with patch.object(sheerid.requests, "post", return_value=response) as mock_post:
        with pytest.raises(SheerIDError, match="403"):
            await verify_student("Ada", "Lovelace", "ada@stanford.edu", "Stanford University")

    mock_post.assert_called_once()


@pytest.mark.asyncio
async def test_network_error_is_a_failure(configured):
    with (
        patch.object(sheerid.requests, "post", side_effect=requests.Timeout("timed out")),
        pytest.raises(SheerIDError, match="unavailable"),
    ):
        await verify_student("Ada", "Lovelace", "ada@stanford.edu", "Stanford University")
