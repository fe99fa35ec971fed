"""
Identifier Backfill Script

Assigns a stable id to every content record that does not have one yet.
Run once on an existing master before its first sync:

    python -m scripts.backfill_identifiers [course lesson ...]
"""
import asyncio
import sys

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from coursesync.models.content import KIND_ORDER, ContentKind
from coursesync.models.records import Base
from coursesync.services.identity import IdentityService


async def backfill_identifiers(kind_names=None):
    """Backfill stable ids for the given kinds (all kinds by default)."""
    from coursesync.db.config import DATABASE_URL

    kinds = [ContentKind.from_wire(k) for k in kind_names] if kind_names else KIND_ORDER

    engine = create_async_engine(DATABASE_URL, future=True)
    async_session = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    # Create tables if they don't exist
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        identity = IdentityService(session)
        for kind in kinds:
            stats = await identity.ensure_all(kind)
            print(
                f"{kind.plural}: {stats['total']} total, "
                f"{stats['newly_assigned']} assigned, "
                f"{stats['already_present']} already present"
            )

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(backfill_identifiers(sys.argv[1:]))
