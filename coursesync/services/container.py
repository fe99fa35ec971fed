"""
Service objects shared by request handlers.

Built once by ``create_app`` and stored on ``app.state.services``; routers
reach them through ``get_services``.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursesync.config import SyncSettings
from coursesync.services.hooks import ChangeNotifier, ReplicationHooks
from coursesync.services.pull import PullSyncService
from coursesync.services.push import PushService
from coursesync.services.scheduler import PollingScheduler
from coursesync.services.sync_log import SyncLogger


@dataclass
class SyncServices:
    settings: SyncSettings
    session_factory: async_sessionmaker[AsyncSession]
    sync_log: SyncLogger
    hooks: ReplicationHooks
    pull: PullSyncService
    push: PushService
    scheduler: Optional[PollingScheduler] = None

    @classmethod
    def build(
        cls,
        settings: SyncSettings,
        session_factory: async_sessionmaker[AsyncSession],
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "SyncServices":
        sync_log = SyncLogger(session_factory)
        hooks = ReplicationHooks()
        if settings.mode == "master":
            hooks.register(ChangeNotifier(sync_log))
        pull = PullSyncService(
            session_factory, settings, sync_log, hooks, transport
        )
        services = cls(
            settings=settings,
            session_factory=session_factory,
            sync_log=sync_log,
            hooks=hooks,
            pull=pull,
            push=PushService(session_factory, settings, sync_log, transport),
        )
        if settings.mode == "client" and settings.auto_sync_enabled:
            services.scheduler = PollingScheduler(
                settings.interval_seconds, pull.sync_from_master
            )
        return services


def get_services(request: Request) -> SyncServices:
    return request.app.state.services


def get_settings(request: Request) -> SyncSettings:
    return request.app.state.services.settings
