"""
Audit log tests
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import update

from coursesync.models.content import ContentKind
from coursesync.models.records import SyncLogRecord


@pytest.mark.asyncio
async def test_log_persists_entry(sync_log):
    entry = await sync_log.log(
        "pull", ContentKind.LESSON, "abc-123", "success", "Created lesson"
    )
    assert entry.id is not None
    assert entry.to_dict()["contentKind"] == "lesson"

    recent = await sync_log.recent()
    assert [e.content_ref for e in recent] == ["abc-123"]


@pytest.mark.asyncio
async def test_missing_reference_is_stored_as_zero(sync_log):
    entry = await sync_log.log("push", "course", None, "error", "bad item")
    assert entry.content_ref == "0"


@pytest.mark.asyncio
@pytest.mark.parametrize("direction, outcome", [
    ("sideways", "success"),
    ("pull", "fine"),
])
async def test_unknown_direction_or_outcome_is_rejected(
    sync_log, direction, outcome
):
    with pytest.raises(ValueError):
        await sync_log.log(direction, "course", "x", outcome, "")


@pytest.mark.asyncio
async def test_recent_is_newest_first_and_filterable(sync_log):
    for n, outcome in enumerate(["success", "error", "skipped", "error"]):
        await sync_log.log("push", "topic", f"t{n}", outcome, f"entry {n}")

    recent = await sync_log.recent(limit=3)
    assert [e.content_ref for e in recent] == ["t3", "t2", "t1"]

    errors = await sync_log.recent(outcome="error")
    assert [e.content_ref for e in errors] == ["t3", "t1"]


@pytest.mark.asyncio
async def test_clear_older_than(sync_log, session_factory):
    old = await sync_log.log("pull", "quiz", "old", "info", "old entry")
    await sync_log.log("pull", "quiz", "new", "info", "new entry")
    async with session_factory() as session:
        await session.execute(
            update(SyncLogRecord)
            .where(SyncLogRecord.id == old.id)
            .values(created_at=datetime.utcnow() - timedelta(days=45))
        )
        await session.commit()

    removed = await sync_log.clear_older_than(30)

    assert removed == 1
    assert [e.content_ref for e in await sync_log.recent()] == ["new"]
