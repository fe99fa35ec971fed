"""Sync router.

Node-to-node endpoints (``/verify``, ``/receive``) and the operator actions
that drive a sync: pull now, push courses, push one item, verify the master,
backfill identifiers and read the audit log.
"""
from __future__ import annotations
import logging
import os
from typing import Optional

from fastapi import APIRouter, Body, Depends, Header, Query
from sqlalchemy.ext.asyncio import AsyncSession

from coursesync.db.config import get_session
from coursesync.models.api import (
    BackfillRequest,
    PullRequest,
    PushItemRequest,
    PushRequest,
)
from coursesync.models.content import (
    KIND_ORDER,
    BatchRequest,
    BatchResult,
    ContentKind,
    VerifyResponse,
)
from coursesync.repositories.registration_repo import RegistrationRepository
from coursesync.services.container import SyncServices, get_services
from coursesync.services.identity import IdentityService
from coursesync.services.sync_engine import SyncEngine
from coursesync.services.transport import CLIENT_NAME_HEADER, CLIENT_URL_HEADER
from coursesync.utils.auth import require_api_key

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Sync"], dependencies=[Depends(require_api_key)])


@router.get("/verify", response_model=VerifyResponse)
async def verify_connection(
    client_url: Optional[str] = Header(None, alias=CLIENT_URL_HEADER),
    client_name: Optional[str] = Header(None, alias=CLIENT_NAME_HEADER),
    session: AsyncSession = Depends(get_session),
    services: SyncServices = Depends(get_services),
):
    """Handshake; registers the caller when it identifies itself."""
    if client_url:
        await RegistrationRepository(session).record_seen(client_url, client_name)
        logger.info("Verified client %s", client_url)
    return VerifyResponse(
        site_url=services.settings.site_url,
        site_name=services.settings.site_name,
        version=os.getenv("APP_VERSION", "1.0.0"),
    )


@router.post("/receive", response_model=BatchResult)
async def receive_batch(
    batch: BatchRequest,
    session: AsyncSession = Depends(get_session),
    services: SyncServices = Depends(get_services),
):
    engine = SyncEngine(
        session, services.settings, services.sync_log, services.hooks
    )
    return await engine.receive_batch(batch.items, direction="push")


@router.post("/sync/pull", response_model=BatchResult)
async def pull_now(
    request: Optional[PullRequest] = Body(None),
    services: SyncServices = Depends(get_services),
):
    kinds = request.kinds if request else None
    return await services.pull.sync_from_master(kinds)


@router.post("/sync/verify-master")
async def verify_master(services: SyncServices = Depends(get_services)):
    return await services.pull.verify_master_connection()


@router.post("/sync/push")
async def push_courses(
    request: PushRequest, services: SyncServices = Depends(get_services)
):
    return await services.push.push_courses(request.course_ids)


@router.post("/sync/push-item")
async def push_item(
    request: PushItemRequest, services: SyncServices = Depends(get_services)
):
    return await services.push.push_item(
        ContentKind.from_wire(request.kind), request.id
    )


@router.post("/identifiers/backfill")
async def backfill_identifiers(
    request: Optional[BackfillRequest] = Body(None),
    session: AsyncSession = Depends(get_session),
):
    kinds = (
        [ContentKind.from_wire(k) for k in request.kinds]
        if request and request.kinds else KIND_ORDER
    )
    identity = IdentityService(session)
    results = {kind.value: await identity.ensure_all(kind) for kind in kinds}
    return {"success": True, "results": results}


@router.get("/logs")
async def recent_logs(
    limit: int = Query(100, ge=1, le=1000),
    outcome: Optional[str] = Query(None),
    services: SyncServices = Depends(get_services),
):
    entries = await services.sync_log.recent(limit=limit, outcome=outcome)
    return {"entries": [e.to_dict() for e in entries], "count": len(entries)}
