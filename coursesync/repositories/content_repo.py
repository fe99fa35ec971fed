"""Repository layer for content persistence.

Provides an abstraction over direct SQLAlchemy session usage so that routers
and services remain thin and testable. Every save goes through ``create`` or
``update`` so that replication listeners see it, unless the caller suppresses
replication for the duration of a sync write.
"""
from __future__ import annotations
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from coursesync.errors import (
    ContentNotFoundError,
    ContentTypeMismatch,
    PersistenceError,
)
from coursesync.models.content import PUBLISHED, ContentKind
from coursesync.models.records import ContentRecord
from coursesync.services.hooks import ReplicationHooks

UPDATABLE_FIELDS = {
    "title", "body", "summary", "slug", "status", "ordering", "course_id",
    "parent_id", "stable_id", "origin_id", "featured_media", "meta",
    "taxonomies", "last_synced_at",
}


class ContentRepository:
    def __init__(
        self,
        session: AsyncSession,
        hooks: Optional[ReplicationHooks] = None,
    ):
        self.session = session
        self.hooks = hooks
        self._replication_suppressed = False

    @contextmanager
    def suppress_replication(self) -> Iterator[None]:
        """Keep sync writes from re-triggering save listeners."""
        previous = self._replication_suppressed
        self._replication_suppressed = True
        try:
            yield
        finally:
            self._replication_suppressed = previous

    @property
    def replication_suppressed(self) -> bool:
        return self._replication_suppressed

    async def _saved(self, record: ContentRecord, created: bool,
                     replicate: bool) -> None:
        if replicate and not self._replication_suppressed and self.hooks:
            await self.hooks.content_saved(record, created)

    async def _commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError(str(exc.__cause__ or exc)) from exc

    # CREATE -----------------------------------------------------------------
    async def create(
        self,
        kind: ContentKind,
        title: str,
        slug: str,
        replicate: bool = True,
        **fields,
    ) -> ContentRecord:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown content fields: {sorted(unknown)}")
        fields.setdefault("meta", {})
        fields.setdefault("taxonomies", {})
        record = ContentRecord(
            kind=ContentKind(kind).value, title=title, slug=slug, **fields
        )
        self.session.add(record)
        await self._commit()
        await self.session.refresh(record)
        await self._saved(record, True, replicate)
        return record

    # READ -------------------------------------------------------------------
    async def find(self, pk: int) -> Optional[ContentRecord]:
        return await self.session.get(ContentRecord, pk)

    async def get(self, pk: int) -> ContentRecord:
        record = await self.find(pk)
        if not record:
            raise ContentNotFoundError(f"Content {pk} not found")
        return record

    async def get_of_kind(self, kind: ContentKind, pk: int) -> ContentRecord:
        record = await self.get(pk)
        if record.kind != ContentKind(kind).value:
            raise ContentTypeMismatch(
                f"Content {pk} is a {record.kind}, not a {ContentKind(kind).value}"
            )
        return record

    async def find_by_stable_id(
        self, kind: ContentKind, stable_id: str
    ) -> Optional[ContentRecord]:
        result = await self.session.execute(
            select(ContentRecord).where(
                ContentRecord.kind == ContentKind(kind).value,
                ContentRecord.stable_id == stable_id,
            )
        )
        return result.scalar_one_or_none()

    async def find_any_by_stable_id(
        self, stable_id: str
    ) -> Optional[ContentRecord]:
        result = await self.session.execute(
            select(ContentRecord).where(ContentRecord.stable_id == stable_id)
        )
        return result.scalar_one_or_none()

    async def find_by_slug(
        self, kind: ContentKind, slug: str
    ) -> Optional[ContentRecord]:
        result = await self.session.execute(
            select(ContentRecord).where(
                ContentRecord.kind == ContentKind(kind).value,
                ContentRecord.slug == slug,
            )
        )
        return result.scalar_one_or_none()

    async def find_by_reference(
        self, kind: ContentKind, ref: str
    ) -> Optional[ContentRecord]:
        """Match a foreign reference against stored stable/origin ids."""
        conditions = [ContentRecord.stable_id == ref]
        if ref.isdigit():
            conditions.append(ContentRecord.origin_id == int(ref))
        result = await self.session.execute(
            select(ContentRecord)
            .where(
                ContentRecord.kind == ContentKind(kind).value,
                or_(*conditions),
            )
            .order_by(ContentRecord.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_many(
        self, kind: ContentKind, ids: Iterable[int]
    ) -> List[ContentRecord]:
        ids = list(ids)
        if not ids:
            return []
        result = await self.session.execute(
            select(ContentRecord).where(
                ContentRecord.kind == ContentKind(kind).value,
                ContentRecord.id.in_(ids),
            )
        )
        return list(result.scalars().all())

    async def children(
        self,
        kind: ContentKind,
        course_id: Optional[int] = None,
        parent_id: Optional[int] = None,
        top_level: bool = False,
        published_only: bool = False,
    ) -> List[ContentRecord]:
        query = select(ContentRecord).where(
            ContentRecord.kind == ContentKind(kind).value
        )
        if course_id is not None:
            query = query.where(ContentRecord.course_id == course_id)
        if parent_id is not None:
            query = query.where(ContentRecord.parent_id == parent_id)
        if top_level:
            query = query.where(ContentRecord.parent_id.is_(None))
        if published_only:
            query = query.where(ContentRecord.status == PUBLISHED)
        query = query.order_by(ContentRecord.ordering, ContentRecord.id)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_kind(self, kind: ContentKind) -> Sequence[ContentRecord]:
        result = await self.session.execute(
            select(ContentRecord)
            .where(ContentRecord.kind == ContentKind(kind).value)
            .order_by(ContentRecord.id)
        )
        return result.scalars().all()

    async def list_page(
        self,
        kind: ContentKind,
        page: int,
        per_page: int,
        status: Optional[str] = PUBLISHED,
    ) -> Tuple[Sequence[ContentRecord], int]:
        conditions = [ContentRecord.kind == ContentKind(kind).value]
        if status:
            conditions.append(ContentRecord.status == status)
        total = await self.session.scalar(
            select(func.count()).select_from(ContentRecord).where(*conditions)
        )
        result = await self.session.execute(
            select(ContentRecord)
            .where(*conditions)
            .order_by(ContentRecord.created_at.desc(), ContentRecord.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        return result.scalars().all(), int(total or 0)

    # UPDATE -----------------------------------------------------------------
    async def update(
        self,
        record: ContentRecord,
        replicate: bool = True,
        **fields,
    ) -> ContentRecord:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown content fields: {sorted(unknown)}")
        for name, value in fields.items():
            # JSON columns need a new object to be flagged dirty
            if isinstance(value, dict):
                value = dict(value)
            setattr(record, name, value)
        await self._commit()
        await self.session.refresh(record)
        await self._saved(record, False, replicate)
        return record

    async def relink(
        self, links: Dict[int, Tuple[Optional[int], Optional[int]]]
    ) -> int:
        """Set ``(course_id, parent_id)`` for many records in one commit."""
        changed = 0
        for pk, (course_id, parent_id) in links.items():
            record = await self.find(pk)
            if record is None:
                continue
            if (record.course_id, record.parent_id) != (course_id, parent_id):
                record.course_id = course_id
                record.parent_id = parent_id
                changed += 1
        if changed:
            await self._commit()
        return changed
