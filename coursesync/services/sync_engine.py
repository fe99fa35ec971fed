"""
Sync engine (receiving side).

Applies validated content items to the local store one at a time, keeping an
origin map (stable id / origin numeric id -> local id) for the batch. Once the
whole batch has been applied, every course that was synced successfully gets
its structure map rebuilt against that map.
"""
from __future__ import annotations
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from coursesync.config import SyncSettings
from coursesync.errors import (
    ContentTypeMismatch,
    PersistenceError,
    ValidationError,
)
from coursesync.models.content import (
    PUBLISHED,
    BatchEntry,
    BatchResult,
    ContentItemBase,
    ContentKind,
    ItemResult,
    parse_item,
)
from coursesync.models.records import ContentRecord
from coursesync.repositories.content_repo import ContentRepository
from coursesync.services.hooks import ReplicationHooks
from coursesync.services.metadata import safe_metadata
from coursesync.services.structure import StructureRebuilder
from coursesync.services.sync_log import SyncLogger

logger = logging.getLogger(__name__)


class SyncEngine:
    def __init__(
        self,
        session: AsyncSession,
        settings: SyncSettings,
        sync_log: SyncLogger,
        hooks: Optional[ReplicationHooks] = None,
    ):
        self.session = session
        self.settings = settings
        self.sync_log = sync_log
        self.repo = ContentRepository(session, hooks)
        self.origin_map: Dict[str, int] = {}
        self.synced_courses: List[int] = []

    def _remember(self, item: ContentItemBase, record: ContentRecord) -> None:
        self.origin_map[item.stable_id] = record.id
        if item.source_id is not None:
            self.origin_map[str(item.source_id)] = record.id

    async def _resolve_existing(
        self, item: ContentItemBase, kind: ContentKind
    ) -> Optional[ContentRecord]:
        record = await self.repo.find_any_by_stable_id(item.stable_id)
        if record is not None:
            if record.kind != kind.value:
                raise ContentTypeMismatch(
                    f"{item.stable_id} is stored as a {record.kind}, "
                    f"not a {kind.value}"
                )
            return record
        return await self.repo.find_by_slug(kind, item.slug)

    async def _parent_fields(self, item: ContentItemBase) -> Dict[str, Any]:
        if not item.parent_ref:
            return {}
        parent = await self.repo.find_any_by_stable_id(item.parent_ref)
        if parent is None and item.parent_ref.isdigit():
            local_id = self.origin_map.get(item.parent_ref)
            parent = await self.repo.find(local_id) if local_id else None
        if parent is None:
            return {}
        if parent.kind == ContentKind.COURSE.value:
            return {"course_id": parent.id}
        return {"parent_id": parent.id, "course_id": parent.course_id}

    async def sync_single_item(
        self,
        item: ContentItemBase,
        kind: ContentKind,
        direction: str = "push",
    ) -> ItemResult:
        kind = ContentKind.from_wire(kind)
        if item.kind != kind.value:
            return await self._error(
                direction, kind, item.stable_id,
                f"Item is a {item.kind}, not a {kind.value}",
            )
        try:
            existing = await self._resolve_existing(item, kind)
        except ContentTypeMismatch as exc:
            return await self._error(direction, kind, item.stable_id, str(exc))

        if existing is not None and self.settings.conflict_resolution == "skip":
            self._remember(item, existing)
            message = f"Skipped existing {kind.value}: {item.title}"
            await self.sync_log.log(
                direction, kind, item.stable_id, "skipped", message
            )
            return ItemResult(
                status="skipped", kind=kind.value, stable_id=item.stable_id,
                local_id=existing.id, message=message,
            )

        now = datetime.utcnow()
        fields: Dict[str, Any] = dict(
            body=item.body,
            summary=item.summary,
            ordering=item.ordering_key,
            stable_id=item.stable_id,
            origin_id=item.source_id,
            featured_media=item.featured_media_ref,
            last_synced_at=now,
        )
        fields.update(await self._parent_fields(item))

        try:
            with self.repo.suppress_replication():
                if existing is not None:
                    taxonomies = dict(existing.taxonomies or {})
                    taxonomies.update(item.attached_taxonomy_terms)
                    record = await self.repo.update(
                        existing,
                        title=item.title,
                        slug=item.slug,
                        meta={
                            **(existing.meta or {}),
                            **safe_metadata(item.config_metadata),
                        },
                        taxonomies=taxonomies,
                        **fields,
                    )
                    verb = "Updated"
                else:
                    record = await self.repo.create(
                        kind,
                        item.title,
                        item.slug,
                        status=PUBLISHED,
                        meta=safe_metadata(item.config_metadata),
                        taxonomies=dict(item.attached_taxonomy_terms),
                        **fields,
                    )
                    verb = "Created"
        except PersistenceError as exc:
            return await self._error(
                direction, kind, item.stable_id,
                f"Failed to save {kind.value} {item.title!r}: {exc}",
            )

        self._remember(item, record)
        if kind == ContentKind.COURSE and record.id not in self.synced_courses:
            self.synced_courses.append(record.id)

        message = f"{verb} {kind.value}: {item.title}"
        await self.sync_log.log(direction, kind, item.stable_id, "success", message)
        return ItemResult(
            status="success", kind=kind.value, stable_id=item.stable_id,
            local_id=record.id, message=message,
        )

    async def sync_entry(
        self, kind_name: str, data: Any, direction: str = "push"
    ) -> ItemResult:
        """Validate one raw wire entry and apply it."""
        ref = data.get("id") if isinstance(data, dict) else None
        try:
            kind = ContentKind.from_wire(kind_name)
            item = parse_item(kind, data)
        except (ContentTypeMismatch, ValidationError) as exc:
            return await self._error(direction, kind_name, ref, str(exc))
        return await self.sync_single_item(item, kind, direction)

    async def finalize(self, direction: str = "push") -> None:
        """Rebuild the structure of every course synced in this batch."""
        rebuilder = StructureRebuilder(self.repo, self.sync_log)
        for course_id in self.synced_courses:
            await rebuilder.rebuild_structure(
                course_id, self.origin_map, direction=direction
            )

    async def receive_batch(
        self, entries: Iterable[BatchEntry], direction: str = "push"
    ) -> BatchResult:
        result = BatchResult()
        for entry in entries:
            result.add(await self.sync_entry(entry.type, entry.data, direction))
        await self.finalize(direction)
        result.success = result.errors == 0
        result.message = (
            f"Synced {result.synced}, skipped {result.skipped}, "
            f"errors {result.errors}"
        )
        if not result.details:
            result.message = "No items received."
        return result

    async def _error(
        self,
        direction: str,
        kind: Any,
        ref: Any,
        message: str,
    ) -> ItemResult:
        kind_value = kind.value if isinstance(kind, ContentKind) else str(kind)
        await self.sync_log.log(direction, kind_value, ref, "error", message)
        return ItemResult(
            status="error",
            kind=kind_value,
            stable_id=str(ref) if ref else None,
            message=message,
        )
