"""
Stable identifier assignment.

Each content record carries a UUID4 that is generated once by the node that
created it and travels unchanged through every sync. Assignment is a
conditional UPDATE (``... WHERE stable_id IS NULL``) so two concurrent callers
for the same record end up agreeing on whichever value landed first.
"""
from __future__ import annotations
import logging
import uuid
from typing import Dict

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from coursesync.models.content import ContentKind
from coursesync.models.records import ContentRecord
from coursesync.repositories.content_repo import ContentRepository

logger = logging.getLogger(__name__)


def new_stable_id() -> str:
    return str(uuid.uuid4())


class IdentityService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def ensure_stable_id(self, record: ContentRecord) -> str:
        """Return the record's stable id, assigning one if it has none."""
        if record.stable_id:
            return record.stable_id

        candidate = new_stable_id()
        result = await self.session.execute(
            update(ContentRecord)
            .where(
                ContentRecord.id == record.id,
                ContentRecord.stable_id.is_(None),
            )
            .values(stable_id=candidate)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        await self.session.refresh(record, ["stable_id"])
        if result.rowcount == 0:
            logger.info(
                "Stable id for %s #%s was assigned concurrently",
                record.kind, record.id,
            )
        return record.stable_id

    async def ensure_all(self, kind: ContentKind) -> Dict[str, int]:
        """Backfill missing identifiers for every record of ``kind``."""
        records = await ContentRepository(self.session).list_kind(kind)
        stats = {"total": len(records), "newly_assigned": 0,
                 "already_present": 0}
        for record in records:
            if record.stable_id:
                stats["already_present"] += 1
                continue
            await self.ensure_stable_id(record)
            stats["newly_assigned"] += 1
        logger.info(
            "Stable id backfill for %s: %s", ContentKind(kind).value, stats
        )
        return stats
