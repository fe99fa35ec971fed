"""Content-save listeners.

On a master node every authoring save is recorded as an ``update`` audit
entry and handed to any registered listener (outbound notification point).
Writes performed by the sync engine run with replication suppressed and never
reach these listeners.
"""
from __future__ import annotations
import logging
from typing import Awaitable, Callable, List

from coursesync.models.records import ContentRecord
from coursesync.services.sync_log import SyncLogger

logger = logging.getLogger(__name__)

SaveListener = Callable[[ContentRecord, bool], Awaitable[None]]


class ReplicationHooks:
    def __init__(self):
        self._listeners: List[SaveListener] = []

    def register(self, listener: SaveListener) -> None:
        self._listeners.append(listener)

    async def content_saved(self, record: ContentRecord, created: bool) -> None:
        for listener in self._listeners:
            await listener(record, created)


class ChangeNotifier:
    """Master-side listener that records content changes."""

    def __init__(self, sync_log: SyncLogger):
        self.sync_log = sync_log

    async def __call__(self, record: ContentRecord, created: bool) -> None:
        verb = "created" if created else "updated"
        await self.sync_log.log(
            "update",
            record.kind,
            record.stable_id or record.id,
            "info",
            f"Content {verb}: {record.title}",
        )
