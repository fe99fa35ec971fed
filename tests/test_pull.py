"""
Client pull tests against a second in-process master node
"""

import httpx
import pytest
from httpx import ASGITransport

from coursesync.models.content import ContentKind
from coursesync.repositories.content_repo import ContentRepository
from coursesync.repositories.registration_repo import RegistrationRepository
from coursesync.services.metadata import STEPS_KEY
from coursesync.services.pull import PullSyncService
from coursesync.services.sync_log import SyncLogger


@pytest.fixture
async def nodes(make_database, make_app, master_settings):
    master = await make_database("master")
    client = await make_database("client")
    async with client() as session:
        repo = ContentRepository(session)
        for n in range(7):
            await repo.create(ContentKind.TOPIC, f"Local {n}", f"local-{n}")
    master_app = make_app(master_settings, master)
    return master, client, ASGITransport(app=master_app)


def _pull_service(factory, settings, transport):
    return PullSyncService(
        factory, settings, SyncLogger(factory), transport=transport
    )


@pytest.mark.asyncio
async def test_pull_pages_through_every_kind(nodes, client_settings, seed_course):
    master, client, transport = nodes
    tree = await seed_course(master)
    settings = client_settings.model_copy(update={"batch_size": 2})

    result = await _pull_service(client, settings, transport).sync_from_master()

    assert result.success is True
    assert (result.synced, result.skipped, result.errors) == (11, 0, 0)
    async with client() as session:
        repo = ContentRepository(session)
        course = await repo.find_by_slug(ContentKind.COURSE, "intro-to-sync")
        lesson = await repo.find_by_slug(ContentKind.LESSON, "lesson-one")
        topic = await repo.find_by_slug(ContentKind.TOPIC, "topic-2")
        assert course.origin_id == tree["course"].id
        assert topic.parent_id == lesson.id
        lesson_steps = course.meta[STEPS_KEY]["lesson"][str(lesson.id)]
        assert str(topic.id) in lesson_steps["topic"]

    again = await _pull_service(client, settings, transport).sync_from_master()
    assert (again.synced, again.skipped) == (0, 11)


@pytest.mark.asyncio
async def test_pull_respects_kind_selection(nodes, client_settings, seed_course):
    master, client, transport = nodes
    await seed_course(master)
    settings = client_settings.model_copy(
        update={"sync_topics": False, "sync_questions": False}
    )

    result = await _pull_service(client, settings, transport).sync_from_master()
    assert result.synced == 4

    only_questions = await _pull_service(
        client, client_settings, transport
    ).sync_from_master(["questions"])
    assert only_questions.synced == 5


@pytest.mark.asyncio
async def test_pull_from_empty_master(nodes, client_settings):
    _, client, transport = nodes
    result = await _pull_service(
        client, client_settings, transport
    ).sync_from_master()
    assert result.success is True
    assert result.message == "No content found on master."


@pytest.mark.asyncio
async def test_failed_page_only_stops_its_kind(session_factory, client_settings):
    requested = []

    def handler(request):
        kind = request.url.path.rsplit("/", 1)[-1]
        requested.append(kind)
        if kind == "lesson":
            return httpx.Response(500, json={"error": "boom"})
        if kind == "course":
            return httpx.Response(200, json={
                "items": [{"id": "c-1", "title": "Course", "slug": "course"}],
                "total": 1, "total_pages": 1, "page": 1, "per_page": 10,
            })
        return httpx.Response(200, json={
            "items": [], "total": 0, "total_pages": 0, "page": 1,
            "per_page": 10,
        })

    service = _pull_service(
        session_factory, client_settings, httpx.MockTransport(handler)
    )
    result = await service.sync_from_master()

    assert requested == ["course", "lesson", "topic", "quiz", "question"]
    assert result.synced == 1
    assert result.errors == 1
    assert result.success is False
    errors = await SyncLogger(session_factory).recent(outcome="error")
    assert any("lessons page 1" in e.message for e in errors)


@pytest.mark.asyncio
async def test_verify_master_connection_registers_client(
    nodes, client_settings
):
    master, client, transport = nodes
    outcome = await _pull_service(
        client, client_settings, transport
    ).verify_master_connection()

    assert outcome["success"] is True
    assert outcome["site_name"] == "Master Site"
    async with master() as session:
        registration = await RegistrationRepository(session).find(
            "http://client.test"
        )
        assert registration is not None
        assert registration.display_name == "Client Site"


@pytest.mark.asyncio
async def test_verify_master_with_wrong_key(nodes, client_settings):
    _, client, transport = nodes
    settings = client_settings.model_copy(update={"master_api_key": "nope"})
    outcome = await _pull_service(
        client, settings, transport
    ).verify_master_connection()
    assert outcome["success"] is False
    assert "403" in outcome["message"]
