"""Audit trail for sync operations.

Entries are written through their own short-lived session so that an entry
survives a rollback of the item being synced. Every entry is mirrored to the
process logger.
"""
from __future__ import annotations
import logging
from datetime import datetime, timedelta
from typing import Optional, Sequence, Union

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursesync.models.content import ContentKind
from coursesync.models.records import SyncLogRecord

logger = logging.getLogger(__name__)

DIRECTIONS = {"pull", "push", "update"}
OUTCOMES = {"success", "skipped", "error", "info", "debug"}

_LEVELS = {
    "success": logging.INFO,
    "skipped": logging.INFO,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "error": logging.ERROR,
}


class SyncLogger:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def log(
        self,
        direction: str,
        content_kind: Union[ContentKind, str],
        content_ref: Union[str, int, None],
        outcome: str,
        message: str = "",
    ) -> SyncLogRecord:
        if direction not in DIRECTIONS:
            raise ValueError(f"Unknown sync direction: {direction}")
        if outcome not in OUTCOMES:
            raise ValueError(f"Unknown sync outcome: {outcome}")
        kind = (
            content_kind.value
            if isinstance(content_kind, ContentKind)
            else str(content_kind)
        )
        ref = str(content_ref) if content_ref else "0"

        logger.log(
            _LEVELS[outcome],
            "[%s] %s %s %s: %s", direction, kind, ref, outcome, message,
        )
        entry = SyncLogRecord(
            direction=direction,
            content_kind=kind,
            content_ref=ref,
            outcome=outcome,
            message=message,
        )
        async with self.session_factory() as session:
            session.add(entry)
            await session.commit()
            await session.refresh(entry)
        return entry

    async def recent(
        self, limit: int = 100, outcome: Optional[str] = None
    ) -> Sequence[SyncLogRecord]:
        query = select(SyncLogRecord)
        if outcome:
            query = query.where(SyncLogRecord.outcome == outcome)
        query = query.order_by(
            SyncLogRecord.created_at.desc(), SyncLogRecord.id.desc()
        ).limit(limit)
        async with self.session_factory() as session:
            result = await session.execute(query)
            return result.scalars().all()

    async def clear_older_than(self, days: int = 30) -> int:
        cutoff = datetime.utcnow() - timedelta(days=days)
        async with self.session_factory() as session:
            result = await session.execute(
                delete(SyncLogRecord).where(SyncLogRecord.created_at < cutoff)
            )
            await session.commit()
        logger.info("Pruned %d sync log entries older than %d days",
                    result.rowcount, days)
        return result.rowcount
