"""Content router: listing and single-item fetch consumed by client nodes,
plus minimal authoring endpoints on the master.

Every item leaves this router in wire format with its stable id assigned.
"""
from __future__ import annotations
import math

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from coursesync.db.config import get_session
from coursesync.models.api import ContentCreate, ContentUpdate
from coursesync.models.content import ContentKind, ContentPage
from coursesync.repositories.content_repo import ContentRepository
from coursesync.services.container import SyncServices, get_services
from coursesync.services.exporter import ContentExporter
from coursesync.services.identity import new_stable_id
from coursesync.utils.auth import require_api_key

MAX_PER_PAGE = 50

router = APIRouter(
    prefix="/content",
    tags=["Content"],
    dependencies=[Depends(require_api_key)],
)


@router.get("/{kind}", response_model=ContentPage)
async def list_content(
    kind: str,
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1),
    session: AsyncSession = Depends(get_session),
):
    content_kind = ContentKind.from_wire(kind)
    per_page = min(per_page, MAX_PER_PAGE)
    exporter = ContentExporter(session)
    records, total = await exporter.repo.list_page(content_kind, page, per_page)
    items = [(await exporter.prepare_item(r)).to_wire() for r in records]
    return ContentPage(
        items=items,
        total=total,
        total_pages=math.ceil(total / per_page) if total else 0,
        page=page,
        per_page=per_page,
    )


@router.get("/{kind}/{item_id}")
async def get_content(
    kind: str,
    item_id: int,
    session: AsyncSession = Depends(get_session),
):
    exporter = ContentExporter(session)
    record = await exporter.repo.get_of_kind(ContentKind.from_wire(kind), item_id)
    return (await exporter.prepare_item(record)).to_wire()


@router.post("/{kind}", status_code=status.HTTP_201_CREATED)
async def create_content(
    kind: str,
    payload: ContentCreate,
    session: AsyncSession = Depends(get_session),
    services: SyncServices = Depends(get_services),
):
    repo = ContentRepository(session, services.hooks)
    fields = payload.model_dump(exclude={"title", "slug"})
    record = await repo.create(
        ContentKind.from_wire(kind),
        payload.title,
        payload.slug,
        stable_id=new_stable_id(),
        **fields,
    )
    item = await ContentExporter(session).prepare_item(record)
    return item.to_wire()


@router.patch("/{kind}/{item_id}")
async def update_content(
    kind: str,
    item_id: int,
    payload: ContentUpdate,
    session: AsyncSession = Depends(get_session),
    services: SyncServices = Depends(get_services),
):
    repo = ContentRepository(session, services.hooks)
    record = await repo.get_of_kind(ContentKind.from_wire(kind), item_id)
    record = await repo.update(record, **payload.model_dump(exclude_unset=True))
    item = await ContentExporter(session).prepare_item(record)
    return item.to_wire()
