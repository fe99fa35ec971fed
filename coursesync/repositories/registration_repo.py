"""Repository layer for known client nodes."""
from __future__ import annotations
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coursesync.models.records import ClientRegistration


class RegistrationNotFoundError(Exception):
    """Raised when a client registration could not be located."""


def normalize_url(url: str) -> str:
    return url.strip().rstrip("/")


class RegistrationRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def find(self, endpoint_url: str) -> Optional[ClientRegistration]:
        result = await self.session.execute(
            select(ClientRegistration).where(
                ClientRegistration.endpoint_url == normalize_url(endpoint_url)
            )
        )
        return result.scalar_one_or_none()

    async def list(self) -> Sequence[ClientRegistration]:
        result = await self.session.execute(
            select(ClientRegistration).order_by(ClientRegistration.id)
        )
        return result.scalars().all()

    async def record_seen(
        self, endpoint_url: str, display_name: Optional[str] = None
    ) -> ClientRegistration:
        """Create on first verified contact, refresh ``last_seen_at`` after."""
        now = datetime.utcnow()
        url = normalize_url(endpoint_url)
        record = await self.find(url)
        if record is None:
            record = ClientRegistration(
                endpoint_url=url,
                display_name=display_name or url,
                first_seen_at=now,
                last_seen_at=now,
            )
            self.session.add(record)
        else:
            record.last_seen_at = now
            if display_name:
                record.display_name = display_name
        await self.session.commit()
        await self.session.refresh(record)
        return record

    async def save_client(
        self,
        endpoint_url: str,
        secret: str,
        display_name: Optional[str] = None,
    ) -> ClientRegistration:
        """Add or update a push target together with its receive key."""
        url = normalize_url(endpoint_url)
        record = await self.find(url)
        if record is None:
            record = ClientRegistration(
                endpoint_url=url, display_name=display_name or url
            )
            self.session.add(record)
        elif display_name:
            record.display_name = display_name
        record.secret = secret
        await self.session.commit()
        await self.session.refresh(record)
        return record

    async def delete(self, endpoint_url: str) -> None:
        record = await self.find(endpoint_url)
        if record is None:
            raise RegistrationNotFoundError(endpoint_url)
        await self.session.delete(record)
        await self.session.commit()
