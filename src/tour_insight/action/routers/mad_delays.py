"""MAD (preparation delay) list routes."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from tour_insight.analysis.filters import FilterError
from tour_insight.db.connection import get_session
from tour_insight.memory import mad_delay_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["mad-delays"])


class MadDelayList(BaseModel):
    keys: list[str]


class MadDelayEntry(BaseModel):
    key: str


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("/mad-delays")
async def list_mad_delays(session: AsyncSession = Depends(get_session)) -> dict:
    """Saved warehouse/day keys, newest day first."""
    keys = await mad_delay_store.list_keys(session)
    return {"keys": keys, "total": len(keys)}


@router.put("/mad-delays")
async def replace_mad_delays(body: MadDelayList, session: AsyncSession = Depends(get_session)):
    """Replace the whole saved list."""
    try:
        keys = await mad_delay_store.replace(session, body.keys)
        return {"status": "updated", "keys": keys, "total": len(keys)}
    except FilterError as exc:
        return JSONResponse({"error": str(exc)}, status_code=422)
    except Exception:
        logger.exception("Error saving MAD list")
        await session.rollback()
        return JSONResponse({"error": "Failed to save MAD list"}, status_code=500)


@router.post("/mad-delays")
async def add_mad_delay(body: MadDelayEntry, session: AsyncSession = Depends(get_session)):
    """Flag one warehouse/day."""
    try:
        entry = await mad_delay_store.add(session, body.key)
        return {"status": "added", "key": entry.key}
    except FilterError as exc:
        return JSONResponse({"error": str(exc)}, status_code=422)
    except Exception:
        logger.exception("Error adding MAD entry %s", body.key)
        await session.rollback()
        return JSONResponse({"error": "Failed to add MAD entry"}, status_code=500)


@router.delete("/mad-delays/{key}")
async def delete_mad_delay(key: str, session: AsyncSession = Depends(get_session)) -> dict:
    """Unflag one warehouse/day."""
    removed = await mad_delay_store.remove(session, key)
    if not removed:
        raise HTTPException(status_code=404, detail=f"MAD entry '{key}' not found")
    return {"status": "deleted", "key": key}
