"""
Master-mode push: export content and deliver it to every registered client.

Clients are contacted one after another, each with its own timeout. A failed
or slow client is logged and counted and never stops delivery to the next one.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursesync.config import SyncSettings
from coursesync.errors import TransportError
from coursesync.models.content import ContentKind
from coursesync.models.records import ClientRegistration
from coursesync.repositories.registration_repo import RegistrationRepository
from coursesync.services.exporter import (
    ContentExporter,
    ExportEntry,
    build_batch_payload,
)
from coursesync.services.sync_log import SyncLogger
from coursesync.services.transport import post_batch

logger = logging.getLogger(__name__)

NO_CLIENTS_MESSAGE = "No client sites configured."
NO_CONTENT_MESSAGE = "No content to push."


def mask_url(url: str) -> str:
    """Reduce a client URL to scheme and host for result details."""
    parsed = httpx.URL(url)
    return f"{parsed.scheme}://{parsed.host}" if parsed.host else url


class PushService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: SyncSettings,
        sync_log: SyncLogger,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.session_factory = session_factory
        self.settings = settings
        self.sync_log = sync_log
        self.transport = transport

    async def push_courses(self, course_ids: Iterable[int]) -> Dict[str, Any]:
        course_ids = list(course_ids)
        async with self.session_factory() as session:
            clients = await RegistrationRepository(session).list()
            if not clients:
                return self._empty(NO_CLIENTS_MESSAGE)
            entries = await ContentExporter(session).export_courses(course_ids)
        return await self._deliver(clients, entries, ContentKind.COURSE)

    async def push_item(self, kind: ContentKind, item_id: int) -> Dict[str, Any]:
        kind = ContentKind.from_wire(kind)
        async with self.session_factory() as session:
            clients = await RegistrationRepository(session).list()
            if not clients:
                return self._empty(NO_CLIENTS_MESSAGE)
            exporter = ContentExporter(session)
            if kind == ContentKind.COURSE:
                entries = await exporter.export_tree(item_id)
            else:
                record = await exporter.repo.get_of_kind(kind, item_id)
                entries = [(kind, await exporter.prepare_item(record))]
        return await self._deliver(clients, entries, kind)

    @staticmethod
    def _empty(message: str) -> Dict[str, Any]:
        return {"success": 0, "failed": 0, "message": message, "details": []}

    async def _deliver(
        self,
        clients: List[ClientRegistration],
        entries: List[ExportEntry],
        kind: ContentKind,
    ) -> Dict[str, Any]:
        if not entries:
            return self._empty(NO_CONTENT_MESSAGE)
        payload = build_batch_payload(entries)
        root_ref = entries[0][1].stable_id
        outcome: Dict[str, Any] = {"success": 0, "failed": 0, "details": []}

        for client in clients:
            site = mask_url(client.endpoint_url)
            ok, message = await self._push_to(client, payload)
            outcome["success" if ok else "failed"] += 1
            outcome["details"].append({
                "site": site,
                "name": client.display_name,
                "success": ok,
                "message": message,
            })
            await self.sync_log.log(
                "push", kind, root_ref,
                "success" if ok else "error",
                f"{site}: {message}",
            )

        outcome["message"] = (
            f"Pushed {len(entries)} items to {outcome['success']} of "
            f"{len(clients)} client sites"
        )
        return outcome

    async def _push_to(
        self, client: ClientRegistration, payload: Dict[str, Any]
    ):
        if not client.secret:
            return False, "No secret configured"
        try:
            body = await post_batch(
                client.endpoint_url,
                client.secret,
                payload,
                timeout=self.settings.push_timeout,
                transport=self.transport,
            )
        except TransportError as exc:
            logger.warning("Push to %s failed: %s", client.endpoint_url, exc)
            return False, f"Push failed: {exc}"
        return True, (
            f"synced {body.get('synced', 0)}, skipped {body.get('skipped', 0)}, "
            f"errors {body.get('errors', 0)}"
        )
