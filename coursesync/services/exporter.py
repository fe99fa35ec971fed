"""
Content exporter (master side).

Walks a course depth-first and produces a flat, ordered batch:

    course
    lesson -> its topics (-> topic quizzes) -> lesson quizzes -> questions
    ... next lesson ...
    course-level quizzes -> questions

A quiz reachable from more than one place is emitted once. Children are read
from the course structure map, falling back to unpublished steps and finally
to the relational links, so draft descendants are not silently dropped.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from coursesync.models.content import (
    ITEM_MODELS,
    PUBLISHED,
    ContentItemBase,
    ContentKind,
)
from coursesync.models.records import ContentRecord
from coursesync.repositories.content_repo import ContentRepository
from coursesync.services.identity import IdentityService
from coursesync.services.metadata import STEPS_KEY, safe_metadata
from coursesync.services.structure import (
    nested_steps,
    step_local_id,
    step_section,
)

logger = logging.getLogger(__name__)

ExportEntry = Tuple[ContentKind, ContentItemBase]


def build_batch_payload(entries: Iterable[ExportEntry]) -> Dict[str, Any]:
    """Wire body for ``POST /receive``."""
    return {
        "items": [
            {"type": kind.value, "data": item.to_wire()}
            for kind, item in entries
        ]
    }


class ContentExporter:
    def __init__(self, session: AsyncSession):
        self.repo = ContentRepository(session)
        self.identity = IdentityService(session)

    async def prepare_item(self, record: ContentRecord) -> ContentItemBase:
        stable_id = await self.identity.ensure_stable_id(record)
        model = ITEM_MODELS[ContentKind(record.kind)]
        return model(
            stable_id=stable_id,
            title=record.title,
            body=record.body or "",
            summary=record.summary or "",
            slug=record.slug,
            lifecycle_state=record.status,
            created=record.created_at,
            modified=record.updated_at,
            parent_ref=await self._parent_ref(record),
            ordering_key=record.ordering or 0,
            config_metadata=safe_metadata(record.meta),
            featured_media_ref=record.featured_media,
            attached_taxonomy_terms=record.taxonomies or {},
            source_id=record.id,
        )

    async def _parent_ref(self, record: ContentRecord) -> Optional[str]:
        parent_pk = record.parent_id
        if parent_pk is None and record.kind != ContentKind.COURSE.value:
            parent_pk = record.course_id
        if parent_pk is None:
            return None
        parent = await self.repo.find(parent_pk)
        if parent is None:
            return None
        return await self.identity.ensure_stable_id(parent)

    async def export_tree(self, root_id: int) -> List[ExportEntry]:
        course = await self.repo.get_of_kind(ContentKind.COURSE, root_id)
        batch: List[ExportEntry] = [
            (ContentKind.COURSE, await self.prepare_item(course))
        ]
        emitted_quizzes: Set[str] = set()
        steps = (course.meta or {}).get(STEPS_KEY) or {}

        lessons = await self._step_children(
            steps, ContentKind.LESSON, course=course
        )
        for lesson in lessons:
            batch.append((ContentKind.LESSON, await self.prepare_item(lesson)))
            lesson_steps = nested_steps(steps, ContentKind.LESSON, lesson.id)

            topics = await self._step_children(
                lesson_steps, ContentKind.TOPIC, parent=lesson
            )
            for topic in topics:
                batch.append((ContentKind.TOPIC, await self.prepare_item(topic)))
                topic_steps = nested_steps(
                    lesson_steps, ContentKind.TOPIC, topic.id
                )
                for quiz in await self._step_children(
                    topic_steps, ContentKind.QUIZ, parent=topic
                ):
                    await self._emit_quiz(batch, quiz, emitted_quizzes)

            for quiz in await self._step_children(
                lesson_steps, ContentKind.QUIZ, parent=lesson
            ):
                await self._emit_quiz(batch, quiz, emitted_quizzes)

        for quiz in await self._step_children(
            steps, ContentKind.QUIZ, course=course
        ):
            await self._emit_quiz(batch, quiz, emitted_quizzes)

        logger.info(
            "Exported course %s (%s) as %d items",
            course.id, course.stable_id, len(batch),
        )
        return batch

    async def export_courses(self, course_ids: Iterable[int]) -> List[ExportEntry]:
        """Export several trees, keeping the first copy of shared items."""
        batch: List[ExportEntry] = []
        seen: Set[str] = set()
        for course_id in course_ids:
            for kind, item in await self.export_tree(course_id):
                if item.stable_id in seen:
                    continue
                seen.add(item.stable_id)
                batch.append((kind, item))
        return batch

    async def _emit_quiz(
        self,
        batch: List[ExportEntry],
        quiz: ContentRecord,
        emitted: Set[str],
    ) -> None:
        key = quiz.stable_id if quiz.stable_id else f"#{quiz.id}"
        if key in emitted:
            logger.debug("Quiz %s already exported for this course", key)
            return
        item = await self.prepare_item(quiz)
        emitted.update({item.stable_id, f"#{quiz.id}"})
        batch.append((ContentKind.QUIZ, item))

        questions = await self.repo.children(
            ContentKind.QUESTION, parent_id=quiz.id, published_only=True
        )
        if not questions:
            questions = await self.repo.children(
                ContentKind.QUESTION, parent_id=quiz.id
            )
        for question in questions:
            batch.append(
                (ContentKind.QUESTION, await self.prepare_item(question))
            )

    async def _step_children(
        self,
        steps: Dict[str, Any],
        kind: ContentKind,
        course: Optional[ContentRecord] = None,
        parent: Optional[ContentRecord] = None,
    ) -> List[ContentRecord]:
        ids = [
            pk for pk in (step_local_id(k) for k in step_section(steps, kind))
            if pk is not None
        ]
        records = await self.repo.get_many(kind, ids)
        records.sort(key=lambda r: (r.ordering or 0, r.id))

        published = [r for r in records if r.status == PUBLISHED]
        if published:
            return published
        if records:
            logger.info(
                "No published %s steps; exporting %d unpublished from the "
                "structure map", kind.value, len(records),
            )
            return records

        # No structure map entries at all: use the relational links
        if parent is not None:
            return await self.repo.children(kind, parent_id=parent.id)
        return await self.repo.children(
            kind, course_id=course.id, top_level=True
        )
