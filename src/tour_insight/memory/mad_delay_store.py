"""CRUD operations for the saved MAD (preparation delay) list."""
from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from tour_insight.analysis.filters import mad_key, parse_mad_key
from tour_insight.db.models import MadDelay

logger = logging.getLogger(__name__)


def _entry(key: str) -> MadDelay:
    warehouse, day = parse_mad_key(key)
    return MadDelay(key=mad_key(warehouse, day), warehouse=warehouse, date=day)


async def list_all(session: AsyncSession) -> list[MadDelay]:
    """Saved entries, newest day first."""
    stmt = select(MadDelay).order_by(MadDelay.date.desc(), MadDelay.warehouse)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_keys(session: AsyncSession) -> list[str]:
    return [entry.key for entry in await list_all(session)]


async def add(session: AsyncSession, key: str) -> MadDelay:
    """Save one entry; an already saved key is returned unchanged."""
    entry = _entry(key)
    existing = await session.get(MadDelay, entry.key)
    if existing is not None:
        return existing
    session.add(entry)
    await session.commit()
    await session.refresh(entry)
    return entry


async def replace(session: AsyncSession, keys: Iterable[str]) -> list[str]:
    """Replace the whole list. Returns the saved keys in input order.

    Every key is validated before anything is deleted.
    """
    entries: dict[str, MadDelay] = {}
    for key in keys:
        entry = _entry(key)
        entries.setdefault(entry.key, entry)

    await session.execute(delete(MadDelay))
    session.add_all(list(entries.values()))
    await session.commit()
    logger.info("Saved %d MAD entries", len(entries))
    return list(entries)


async def remove(session: AsyncSession, key: str) -> bool:
    """Delete one entry. Returns False when it was not saved."""
    stmt = delete(MadDelay).where(MadDelay.key == key)
    result = await session.execute(stmt)
    await session.commit()
    return result.rowcount > 0
