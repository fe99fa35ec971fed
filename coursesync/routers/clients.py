"""Client registry router (master side)."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from coursesync.db.config import get_session
from coursesync.models.api import ClientCreate
from coursesync.repositories.registration_repo import (
    RegistrationNotFoundError,
    RegistrationRepository,
)
from coursesync.services.container import SyncServices, get_services
from coursesync.utils.auth import require_api_key

router = APIRouter(
    prefix="/clients",
    tags=["Clients"],
    dependencies=[Depends(require_api_key)],
)


@router.get("")
async def list_clients(
    session: AsyncSession = Depends(get_session),
    services: SyncServices = Depends(get_services),
):
    threshold = services.settings.inactive_after_days
    clients = await RegistrationRepository(session).list()
    items = [c.to_dict(threshold_days=threshold) for c in clients]
    if not items:
        return {"clients": [], "count": 0,
                "message": "No client sites configured."}
    return {"clients": items, "count": len(items)}


@router.post("", status_code=status.HTTP_201_CREATED)
async def save_client(
    payload: ClientCreate,
    session: AsyncSession = Depends(get_session),
    services: SyncServices = Depends(get_services),
):
    record = await RegistrationRepository(session).save_client(
        payload.endpoint_url, payload.secret, payload.display_name
    )
    return record.to_dict(threshold_days=services.settings.inactive_after_days)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def delete_client(
    endpoint_url: str = Query(..., min_length=1),
    session: AsyncSession = Depends(get_session),
):
    try:
        await RegistrationRepository(session).delete(endpoint_url)
    except RegistrationNotFoundError:
        raise HTTPException(status_code=404, detail="Client not found")
    return None
