"""
Tests for the job registry and manual triggering.
"""

from unittest.mock import AsyncMock, patch

import pytest
from apscheduler.triggers.interval import IntervalTrigger

from nestquarter.core import scheduler


@pytest.fixture(autouse=True)
def empty_registry():
    with patch.dict(scheduler._job_registry, clear=True):
        yield


@pytest.mark.asyncio
async def test_trigger_unknown_job():
    with pytest.raises(ValueError, match="not found"):
        await scheduler.trigger_job_manually("missing")


@pytest.mark.asyncio
async def test_trigger_returns_job_result():
    job = AsyncMock(return_value={"overdue": 0})
    scheduler.register_job("backlog", job, IntervalTrigger(hours=1))

    result = await scheduler.trigger_job_manually("backlog")

    assert result["status"] == "success"
    assert result["result"] == {"overdue": 0}
    job.assert_awaited_once()


@pytest.mark.asyncio
async def test_trigger_reports_job_failure():
    scheduler.register_job(
        "broken", AsyncMock(side_effect=RuntimeError("db down")), IntervalTrigger(hours=1)
    )

    result = await scheduler.trigger_job_manually("broken")

    assert result["status"] == "error"
    assert result["error"] == "db down"


def test_list_registered_jobs_before_start():
    scheduler.register_job("backlog", AsyncMock(), IntervalTrigger(hours=1))

    assert scheduler.list_registered_jobs() == [{"job_id": "backlog", "next_run_time": None}]
