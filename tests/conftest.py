"""
Pytest configuration and fixtures for the sync service tests
"""

import os

import pytest
from sqlalchemy.pool import NullPool

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["AUTO_MIGRATE"] = "false"

from coursesync.config import SyncSettings
from coursesync.db.config import build_engine, build_session_factory
from coursesync.main import create_app
from coursesync.models.content import PUBLISHED, ContentKind
from coursesync.models.records import Base
from coursesync.repositories.content_repo import ContentRepository
from coursesync.services.metadata import STEPS_KEY
from coursesync.services.sync_log import SyncLogger
from coursesync.utils.rate_limit import limiter

MASTER_KEY = "master-secret"
CLIENT_KEY = "client-secret"


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """Rate limit counters live in process memory; start each test clean."""
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
async def make_database(tmp_path):
    """Factory for isolated SQLite databases, one file per call."""
    engines = []

    async def _make(name="node"):
        url = f"sqlite+aiosqlite:///{tmp_path / (name + '.db')}"
        engine = build_engine(url, poolclass=NullPool)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        engines.append(engine)
        return build_session_factory(engine)

    yield _make

    for engine in engines:
        await engine.dispose()


@pytest.fixture
async def session_factory(make_database):
    return await make_database("default")


@pytest.fixture
def sync_log(session_factory):
    return SyncLogger(session_factory)


@pytest.fixture
def master_settings():
    return SyncSettings(
        mode="master",
        api_key=MASTER_KEY,
        site_url="http://master.test",
        site_name="Master Site",
    )


@pytest.fixture
def client_settings():
    return SyncSettings(
        mode="client",
        api_key=CLIENT_KEY,
        site_url="http://client.test",
        site_name="Client Site",
        master_url="http://master.test",
        master_api_key=MASTER_KEY,
    )


@pytest.fixture
def make_app():
    """Build an application bound to the given session factory."""

    def _make(settings, session_factory, transport=None):
        return create_app(
            settings=settings,
            session_factory=session_factory,
            transport=transport,
        )

    return _make


async def _create_tree(session):
    repo = ContentRepository(session)
    course = await repo.create(
        ContentKind.COURSE, "Intro to Sync", "intro-to-sync",
        status=PUBLISHED,
        meta={
            "course_price_type": "open",
            "course_prerequisite_enabled": "on",
            "_progress_42": {"completed": 3},
            "course_42_access_from": 1700000000,
            "unrelated_plugin_flag": True,
        },
        taxonomies={"course_category": ["basics", "basics", "sync"]},
    )
    lesson = await repo.create(
        ContentKind.LESSON, "Lesson One", "lesson-one",
        status=PUBLISHED, course_id=course.id, ordering=1,
        meta={"lesson_video_enabled": "on"},
    )
    topics = [
        await repo.create(
            ContentKind.TOPIC, f"Topic {n}", f"topic-{n}",
            status=PUBLISHED, course_id=course.id, parent_id=lesson.id,
            ordering=n,
        )
        for n in (1, 2)
    ]
    lesson_quiz = await repo.create(
        ContentKind.QUIZ, "Lesson Quiz", "lesson-quiz",
        status=PUBLISHED, course_id=course.id, parent_id=lesson.id,
        meta={"quiz_passing_percentage": 80, "quiz_attempts_user_7": 2},
    )
    lesson_questions = [
        await repo.create(
            ContentKind.QUESTION, f"Lesson question {n}", f"lesson-q-{n}",
            status=PUBLISHED, course_id=course.id, parent_id=lesson_quiz.id,
            ordering=n,
        )
        for n in (1, 2, 3)
    ]
    final_quiz = await repo.create(
        ContentKind.QUIZ, "Final Quiz", "final-quiz",
        status=PUBLISHED, course_id=course.id, ordering=5,
    )
    final_questions = [
        await repo.create(
            ContentKind.QUESTION, f"Final question {n}", f"final-q-{n}",
            status=PUBLISHED, course_id=course.id, parent_id=final_quiz.id,
            ordering=n,
        )
        for n in (1, 2)
    ]
    steps = {
        "lesson": {
            str(lesson.id): {
                "topic": {str(t.id): {} for t in topics},
                "quiz": {str(lesson_quiz.id): {}},
            }
        },
        "quiz": {str(final_quiz.id): {}},
    }
    await repo.update(course, meta={**course.meta, STEPS_KEY: steps})
    return {
        "course": course,
        "lesson": lesson,
        "topics": topics,
        "lesson_quiz": lesson_quiz,
        "lesson_questions": lesson_questions,
        "final_quiz": final_quiz,
        "final_questions": final_questions,
    }


@pytest.fixture
def seed_course():
    """Create a course with 1 lesson (2 topics, 1 quiz with 3 questions)
    and 1 course-level quiz with 2 questions. Returns the records."""

    async def _seed(session_factory):
        async with session_factory() as session:
            return await _create_tree(session)

    return _seed

