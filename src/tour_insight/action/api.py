"""FastAPI application exposing the tour analysis and the MAD list."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tour_insight.db.connection import engine
from tour_insight.db.models import Base

logger = logging.getLogger(__name__)

app = FastAPI(title="Tour Insight API", version="1.0.0")

# ---------------------------------------------------------------------------
# Include modular routers
# ---------------------------------------------------------------------------
from tour_insight.action.routers.analysis import router as analysis_router  # noqa: E402
from tour_insight.action.routers.mad_delays import router as mad_delays_router  # noqa: E402

app.include_router(analysis_router)
app.include_router(mad_delays_router)


@app.on_event("startup")
async def _ensure_tables():
    """Create missing tables (the MAD list lives in the database)."""
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ensured")
    except Exception:
        logger.exception("Failed to ensure database schema")


@app.exception_handler(Exception)
async def _global_error_handler(request: Request, exc: Exception):
    """Catch-all: every unhandled error returns JSON, not raw HTML."""
    logger.exception("Unhandled error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={
            "detail": f"Server error: {exc}",
            "error": str(exc),
            "status": "failed",
        },
    )


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
