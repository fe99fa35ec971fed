"""
Stable identifier assignment tests
"""

import uuid

import pytest

from coursesync.models.content import ContentKind
from coursesync.repositories.content_repo import ContentRepository
from coursesync.services.identity import IdentityService, new_stable_id


def test_new_stable_id_is_uuid4():
    value = new_stable_id()
    assert uuid.UUID(value).version == 4
    assert new_stable_id() != value


@pytest.mark.asyncio
async def test_ensure_stable_id_assigns_once(session_factory):
    async with session_factory() as session:
        record = await ContentRepository(session).create(
            ContentKind.LESSON, "Lesson", "lesson"
        )
        assert record.stable_id is None

        identity = IdentityService(session)
        first = await identity.ensure_stable_id(record)
        second = await identity.ensure_stable_id(record)

    assert first == second
    async with session_factory() as session:
        stored = await ContentRepository(session).get(record.id)
        assert stored.stable_id == first


@pytest.mark.asyncio
async def test_existing_stable_id_is_returned_unchanged(session_factory):
    async with session_factory() as session:
        record = await ContentRepository(session).create(
            ContentKind.COURSE, "Course", "course", stable_id="fixed-id"
        )
        assert await IdentityService(session).ensure_stable_id(record) == "fixed-id"


@pytest.mark.asyncio
async def test_concurrent_assignment_converges(session_factory):
    async with session_factory() as session:
        record = await ContentRepository(session).create(
            ContentKind.QUIZ, "Quiz", "quiz"
        )
        record_id = record.id

    async with session_factory() as session_a, session_factory() as session_b:
        # Both callers load the record before either assigns an id
        record_a = await ContentRepository(session_a).get(record_id)
        record_b = await ContentRepository(session_b).get(record_id)
        assert record_a.stable_id is None and record_b.stable_id is None

        id_a = await IdentityService(session_a).ensure_stable_id(record_a)
        id_b = await IdentityService(session_b).ensure_stable_id(record_b)

    assert id_a == id_b


@pytest.mark.asyncio
async def test_ensure_all_reports_counts(session_factory):
    async with session_factory() as session:
        repo = ContentRepository(session)
        await repo.create(ContentKind.TOPIC, "A", "a", stable_id="known")
        await repo.create(ContentKind.TOPIC, "B", "b")
        await repo.create(ContentKind.TOPIC, "C", "c")
        await repo.create(ContentKind.LESSON, "Other kind", "other")

        stats = await IdentityService(session).ensure_all(ContentKind.TOPIC)
        assert stats == {"total": 3, "newly_assigned": 2, "already_present": 1}

        again = await IdentityService(session).ensure_all(ContentKind.TOPIC)
        assert again == {"total": 3, "newly_assigned": 0, "already_present": 3}

        lesson = await repo.find_by_slug(ContentKind.LESSON, "other")
        assert lesson.stable_id is None
