"""
Scheduled pull loop tests
"""

import asyncio

import pytest

from coursesync.services.scheduler import PollingScheduler


@pytest.mark.asyncio
async def test_scheduler_runs_job_until_stopped():
    calls = []

    async def job():
        calls.append(1)

    scheduler = PollingScheduler(0.01, job)
    scheduler.start()
    assert scheduler.running
    await asyncio.sleep(0.08)
    await scheduler.stop()

    assert not scheduler.running
    count = len(calls)
    assert count >= 2
    await asyncio.sleep(0.03)
    assert len(calls) == count


@pytest.mark.asyncio
async def test_failed_run_does_not_stop_the_loop():
    calls = []

    async def job():
        calls.append(1)
        raise RuntimeError("master unreachable")

    scheduler = PollingScheduler(0.01, job)
    assert await scheduler.run_once() is None
    scheduler.start()
    await asyncio.sleep(0.06)
    await scheduler.stop()
    assert len(calls) >= 3
