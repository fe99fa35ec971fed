"""
Course structure map handling.

A course keeps its step hierarchy in ``meta["course_steps"]``::

    {"lesson": {"12": {"topic": {"15": {}}, "quiz": {"20": {}}}},
     "quiz": {"30": {}}}

Keys are local numeric ids (optionally ``"<kind>:<id>"``) and ``{}`` marks a
leaf. Right after an item-by-item sync a received course still carries the
origin's ids in that map; the rebuilder translates them into this node's ids
once every item of the batch exists locally.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from coursesync.errors import ContentTypeMismatch
from coursesync.models.content import ContentKind
from coursesync.models.records import ContentRecord
from coursesync.repositories.content_repo import ContentRepository
from coursesync.services.metadata import (
    LESSON_IDS_KEY,
    QUIZ_IDS_KEY,
    STEPS_KEY,
)
from coursesync.services.sync_log import SyncLogger

logger = logging.getLogger(__name__)


def split_step_key(key: Any) -> Tuple[str, str]:
    key = str(key)
    if ":" in key:
        prefix, _, raw = key.partition(":")
        return prefix, raw
    return "", key


def step_local_id(key: Any) -> Optional[int]:
    _, raw = split_step_key(key)
    return int(raw) if raw.isdigit() else None


def step_section(steps: Optional[Mapping], kind: ContentKind) -> Dict[str, Any]:
    if not isinstance(steps, Mapping):
        return {}
    section = steps.get(kind.value)
    if section is None:
        section = steps.get(kind.plural)
    return section if isinstance(section, dict) else {}


def nested_steps(
    steps: Optional[Mapping], kind: ContentKind, record_id: int
) -> Dict[str, Any]:
    for key, value in step_section(steps, kind).items():
        if step_local_id(key) == record_id and isinstance(value, dict):
            return value
    return {}


def collect_step_ids(steps: Optional[Mapping], kind: ContentKind) -> List[int]:
    """Flat, ordered, de-duplicated ids of ``kind`` anywhere in the tree."""
    found: List[int] = []

    def walk(level):
        if not isinstance(level, Mapping):
            return
        for section_name, entries in level.items():
            if not isinstance(entries, Mapping):
                continue
            for key, nested in entries.items():
                pk = step_local_id(key)
                if section_name in (kind.value, kind.plural) and pk is not None \
                        and pk not in found:
                    found.append(pk)
                walk(nested)

    walk(steps)
    return found


class StructureRebuilder:
    def __init__(
        self,
        repo: ContentRepository,
        sync_log: Optional[SyncLogger] = None,
    ):
        self.repo = repo
        self.sync_log = sync_log
        self._dropped: List[str] = []
        self._links: Dict[int, Tuple[Optional[int], Optional[int]]] = {}

    async def rebuild_structure(
        self,
        course_local_id: int,
        origin_to_local: Mapping[str, int],
        direction: str = "push",
    ) -> Dict[str, Any]:
        course = await self.repo.get_of_kind(ContentKind.COURSE, course_local_id)
        steps = (course.meta or {}).get(STEPS_KEY) or {}
        self._dropped = []
        self._links = {}

        remapped = await self._remap_level(steps, course, None, origin_to_local)

        meta = dict(course.meta or {})
        meta[STEPS_KEY] = remapped
        meta[LESSON_IDS_KEY] = [
            pk for pk in (
                step_local_id(k)
                for k in step_section(remapped, ContentKind.LESSON)
            ) if pk is not None
        ]
        meta[QUIZ_IDS_KEY] = collect_step_ids(remapped, ContentKind.QUIZ)

        with self.repo.suppress_replication():
            await self.repo.update(course, meta=meta)
            await self.repo.relink(self._links)

        message = (
            f"Structure rebuilt: {len(self._links)} steps mapped, "
            f"{len(self._dropped)} dropped"
        )
        if self._dropped:
            logger.info(
                "Dropped unresolved steps for course %s: %s",
                course.id, ", ".join(self._dropped),
            )
        if self.sync_log:
            await self.sync_log.log(
                direction, ContentKind.COURSE, course.stable_id or course.id,
                "info", message,
            )
        return remapped

    async def _remap_level(
        self,
        level: Any,
        course: ContentRecord,
        parent: Optional[ContentRecord],
        origin_to_local: Mapping[str, int],
    ) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if not isinstance(level, Mapping):
            return out
        for section_name, entries in level.items():
            try:
                kind = ContentKind.from_wire(section_name)
            except ContentTypeMismatch:
                self._dropped.append(str(section_name))
                continue
            if not isinstance(entries, Mapping):
                continue
            section = out.setdefault(kind.value, {})
            for key, nested in entries.items():
                prefix, raw = split_step_key(key)
                record = await self._resolve(kind, raw, origin_to_local)
                if record is None:
                    self._dropped.append(f"{kind.value}:{raw}")
                    continue
                new_key = f"{prefix}:{record.id}" if prefix else str(record.id)
                section[new_key] = await self._remap_level(
                    nested, course, record, origin_to_local
                )
                self._links.setdefault(
                    record.id, (course.id, parent.id if parent else None)
                )
        return out

    async def _resolve(
        self,
        kind: ContentKind,
        raw: str,
        origin_to_local: Mapping[str, int],
    ) -> Optional[ContentRecord]:
        local_id = origin_to_local.get(raw)
        if local_id is not None:
            record = await self.repo.find(local_id)
            if record is not None and record.kind == kind.value:
                return record
        return await self.repo.find_by_reference(kind, raw)
