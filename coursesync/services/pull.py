"""
Client-mode pull: page through the master's listing for every enabled kind
and feed each item to the sync engine.

Kinds run sequentially in emission order (courses first) and pages run
sequentially within a kind. A failed page stops only that kind. Structure
rebuild runs once, after every kind has been processed.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Iterable, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursesync.config import SyncSettings
from coursesync.errors import ConfigurationError, TransportError
from coursesync.models.content import BatchResult, ContentKind
from coursesync.services.hooks import ReplicationHooks
from coursesync.services.sync_engine import SyncEngine
from coursesync.services.sync_log import SyncLogger
from coursesync.services.transport import MasterClient

logger = logging.getLogger(__name__)

NO_CONTENT_MESSAGE = "No content found on master."


class PullSyncService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: SyncSettings,
        sync_log: SyncLogger,
        hooks: Optional[ReplicationHooks] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.session_factory = session_factory
        self.settings = settings
        self.sync_log = sync_log
        self.hooks = hooks
        self.transport = transport

    async def sync_from_master(
        self, kinds: Optional[Iterable[ContentKind]] = None
    ) -> BatchResult:
        try:
            self.settings.require_master()
        except ConfigurationError as exc:
            await self.sync_log.log("pull", "all", None, "error", str(exc))
            return BatchResult(success=False, errors=1, message=str(exc))

        selected = self.settings.enabled_kinds if kinds is None else [
            ContentKind.from_wire(k) for k in kinds
        ]
        result = BatchResult()
        fetched = 0

        async with MasterClient(self.settings, self.transport) as client:
            async with self.session_factory() as session:
                engine = SyncEngine(
                    session, self.settings, self.sync_log, self.hooks
                )
                for kind in selected:
                    fetched += await self._pull_kind(client, engine, kind, result)
                await engine.finalize("pull")

        result.success = result.errors == 0
        if fetched == 0 and result.errors == 0:
            result.message = NO_CONTENT_MESSAGE
        else:
            result.message = (
                f"Pulled {fetched} items: synced {result.synced}, "
                f"skipped {result.skipped}, errors {result.errors}"
            )
        await self.sync_log.log(
            "pull", "all", None,
            "info" if result.success else "error", result.message,
        )
        return result

    async def _pull_kind(
        self,
        client: MasterClient,
        engine: SyncEngine,
        kind: ContentKind,
        result: BatchResult,
    ) -> int:
        fetched = 0
        page = 1
        while True:
            try:
                data = await client.fetch_page(
                    kind, page=page, per_page=self.settings.batch_size
                )
            except TransportError as exc:
                result.errors += 1
                await self.sync_log.log(
                    "pull", kind, None, "error",
                    f"Failed to fetch {kind.plural} page {page}: {exc}",
                )
                break

            items = data["items"]
            if not items:
                break
            for raw in items:
                fetched += 1
                result.add(await engine.sync_entry(kind.value, raw, "pull"))
            if page >= int(data.get("total_pages") or 1):
                break
            page += 1
        logger.info("Pulled %d %s from master", fetched, kind.plural)
        return fetched

    async def verify_master_connection(self) -> Dict[str, Any]:
        try:
            async with MasterClient(self.settings, self.transport) as client:
                data = await client.verify()
        except (ConfigurationError, TransportError) as exc:
            await self.sync_log.log("pull", "all", None, "error", str(exc))
            return {"success": False, "message": str(exc)}
        message = f"Connected to {data.get('site_name') or self.settings.master_url}"
        await self.sync_log.log("pull", "all", None, "info", message)
        return {
            "success": True,
            "message": message,
            "site_url": data.get("site_url"),
            "site_name": data.get("site_name"),
            "version": data.get("version"),
        }
