"""
HTTP surface tests: auth, handshake, content listing, authoring and admin
endpoints
"""

import pytest
from httpx import AsyncClient, ASGITransport

from coursesync.models.content import ContentKind
from coursesync.repositories.content_repo import ContentRepository
from coursesync.services.exporter import ContentExporter, build_batch_payload
from coursesync.utils.auth import generate_api_key

MASTER_KEY = "master-secret"
CLIENT_KEY = "client-secret"
MASTER_HEADERS = {"X-Sync-Api-Key": MASTER_KEY}


@pytest.fixture
async def master_app(make_app, master_settings, session_factory):
    return make_app(master_settings, session_factory)


async def _client(app):
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_health_endpoints(master_app):
    async with await _client(master_app) as client:
        r = await client.get("/api/v1/health")
        assert r.status_code == 200
        data = r.json()
        assert data["status"] == "healthy"
        assert data["mode"] == "master"
        assert isinstance(data["uptime"], (int, float))

        r = await client.get("/api/v1/health/live")
        assert r.status_code == 200
        assert r.json()["status"] == "alive"


@pytest.mark.asyncio
async def test_reachability_test_is_rate_limited(master_app):
    async with await _client(master_app) as client:
        for _ in range(10):
            r = await client.get("/api/v1/test")
            assert r.status_code == 200
            assert r.json()["status"] == "ok"
        r = await client.get("/api/v1/test")
    assert r.status_code == 429
    body = r.json()
    assert body["success"] is False
    assert "Rate limit" in body["error"]

    other = AsyncClient(
        transport=ASGITransport(app=master_app, client=("10.0.0.2", 123)),
        base_url="http://test",
    )
    async with other:
        r = await other.get("/api/v1/test")
    assert r.status_code == 200


@pytest.mark.asyncio
@pytest.mark.parametrize("headers, expected", [
    ({}, 401),
    ({"X-Sync-Api-Key": "wrong"}, 403),
    (MASTER_HEADERS, 200),
])
async def test_verify_requires_api_key(master_app, headers, expected):
    async with await _client(master_app) as client:
        r = await client.get("/api/v1/verify", headers=headers)
    assert r.status_code == expected
    if expected != 200:
        assert r.json()["success"] is False


@pytest.mark.asyncio
async def test_site_without_key_rejects_everyone(
    make_app, master_settings, session_factory
):
    app = make_app(master_settings.model_copy(update={"api_key": ""}),
                   session_factory)
    async with await _client(app) as client:
        r = await client.get("/api/v1/verify", headers={"X-Sync-Api-Key": "x"})
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_verify_registers_identified_caller(master_app):
    headers = {
        **MASTER_HEADERS,
        "X-Sync-Client-URL": "http://client.test/",
        "X-Sync-Client-Name": "Client Site",
    }
    async with await _client(master_app) as client:
        r = await client.get("/api/v1/verify", headers=headers)
        assert r.status_code == 200
        data = r.json()
        assert data["success"] is True
        assert data["site_name"] == "Master Site"
        assert data["site_url"] == "http://master.test"

        r = await client.get("/api/v1/clients", headers=MASTER_HEADERS)
    clients = r.json()["clients"]
    assert len(clients) == 1
    assert clients[0]["endpointUrl"] == "http://client.test"
    assert clients[0]["displayName"] == "Client Site"
    assert clients[0]["active"] is True
    assert clients[0]["hasSecret"] is False


@pytest.mark.asyncio
async def test_content_listing_and_fetch(master_app, session_factory, seed_course):
    tree = await seed_course(session_factory)
    async with await _client(master_app) as client:
        r = await client.get(
            "/api/v1/content/questions?page=1&per_page=100",
            headers=MASTER_HEADERS,
        )
        assert r.status_code == 200
        page = r.json()
        assert page["per_page"] == 50
        assert page["total"] == 5
        assert page["total_pages"] == 1
        assert all(item["id"] for item in page["items"])

        r = await client.get(
            "/api/v1/content/question?page=2&per_page=2", headers=MASTER_HEADERS
        )
        assert r.json()["total_pages"] == 3
        assert len(r.json()["items"]) == 2

        course_id = tree["course"].id
        r = await client.get(
            f"/api/v1/content/course/{course_id}", headers=MASTER_HEADERS
        )
        assert r.status_code == 200
        assert r.json()["slug"] == "intro-to-sync"
        assert "_progress_42" not in r.json()["meta"]

        r = await client.get(
            f"/api/v1/content/lesson/{course_id}", headers=MASTER_HEADERS
        )
        assert r.status_code == 400

        r = await client.get("/api/v1/content/course/9999", headers=MASTER_HEADERS)
        assert r.status_code == 404

        r = await client.get("/api/v1/content/banana", headers=MASTER_HEADERS)
        assert r.status_code == 400


@pytest.mark.asyncio
async def test_authoring_records_update_entries(master_app):
    async with await _client(master_app) as client:
        r = await client.post(
            "/api/v1/content/courses",
            json={"title": "New Course", "slug": "new-course",
                  "status": "published"},
            headers=MASTER_HEADERS,
        )
        assert r.status_code == 201
        created = r.json()
        assert created["id"]
        course_id = created["source_id"]

        r = await client.patch(
            f"/api/v1/content/course/{course_id}",
            json={"title": "Renamed Course"},
            headers=MASTER_HEADERS,
        )
        assert r.status_code == 200
        assert r.json()["title"] == "Renamed Course"
        assert r.json()["id"] == created["id"]

        r = await client.post(
            "/api/v1/content/course",
            json={"title": "Dupe", "slug": "new-course"},
            headers=MASTER_HEADERS,
        )
        assert r.status_code == 409

        r = await client.get("/api/v1/logs", headers=MASTER_HEADERS)
    messages = [e["message"] for e in r.json()["entries"]
                if e["direction"] == "update"]
    assert messages == [
        "Content updated: Renamed Course",
        "Content created: New Course",
    ]


@pytest.mark.asyncio
async def test_receive_endpoint(
    make_app, make_database, client_settings, seed_course
):
    master = await make_database("master")
    tree = await seed_course(master)
    async with master() as session:
        payload = build_batch_payload(
            await ContentExporter(session).export_tree(tree["course"].id)
        )

    client_db = await make_database("client")
    app = make_app(client_settings, client_db)
    async with await _client(app) as client:
        r = await client.post("/api/v1/receive", json=payload)
        assert r.status_code == 401

        r = await client.post(
            "/api/v1/receive", json=payload,
            headers={"X-Sync-Api-Key": CLIENT_KEY},
        )
    assert r.status_code == 200
    data = r.json()
    assert data["success"] is True
    assert (data["synced"], data["skipped"], data["errors"]) == (11, 0, 0)
    assert len(data["details"]) == 11


@pytest.mark.asyncio
async def test_client_registry_management(master_app):
    async with await _client(master_app) as client:
        r = await client.get("/api/v1/clients", headers=MASTER_HEADERS)
        assert r.json()["message"] == "No client sites configured."

        r = await client.post(
            "/api/v1/clients",
            json={"endpoint_url": "https://school.example/", "secret": "s3"},
            headers=MASTER_HEADERS,
        )
        assert r.status_code == 201
        assert r.json()["hasSecret"] is True
        assert r.json()["endpointUrl"] == "https://school.example"

        r = await client.delete(
            "/api/v1/clients",
            params={"endpoint_url": "https://school.example"},
            headers=MASTER_HEADERS,
        )
        assert r.status_code == 204

        r = await client.delete(
            "/api/v1/clients",
            params={"endpoint_url": "https://school.example"},
            headers=MASTER_HEADERS,
        )
        assert r.status_code == 404


@pytest.mark.asyncio
async def test_identifier_backfill_endpoint(master_app, session_factory):
    async with session_factory() as session:
        repo = ContentRepository(session)
        await repo.create(ContentKind.LESSON, "L1", "l1")
        await repo.create(ContentKind.LESSON, "L2", "l2", stable_id="known")

    async with await _client(master_app) as client:
        r = await client.post(
            "/api/v1/identifiers/backfill",
            json={"kinds": ["lessons"]},
            headers=MASTER_HEADERS,
        )
    assert r.status_code == 200
    assert r.json()["results"] == {
        "lesson": {"total": 2, "newly_assigned": 1, "already_present": 1}
    }


@pytest.mark.asyncio
async def test_pull_without_master_reports_configuration_error(
    make_app, client_settings, session_factory
):
    settings = client_settings.model_copy(update={"master_url": ""})
    app = make_app(settings, session_factory)
    async with await _client(app) as client:
        r = await client.post(
            "/api/v1/sync/pull", headers={"X-Sync-Api-Key": CLIENT_KEY}
        )
    assert r.status_code == 200
    data = r.json()
    assert data["success"] is False
    assert data["message"] == "Master site URL or API key is not configured."


@pytest.mark.asyncio
async def test_generated_api_key_authenticates(
    make_app, master_settings, session_factory
):
    key = generate_api_key()
    assert len(key) == 32
    assert key.isalnum()
    assert generate_api_key() != key

    settings = master_settings.model_copy(update={"api_key": key})
    async with await _client(make_app(settings, session_factory)) as client:
        r = await client.get("/api/v1/verify", headers={"X-Sync-Api-Key": key})
        assert r.status_code == 200
        r = await client.get(
            "/api/v1/verify", headers={"X-Sync-Api-Key": MASTER_KEY}
        )
        assert r.status_code == 403
