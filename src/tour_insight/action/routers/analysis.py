"""Analysis routes: run the engine on posted or uploaded tours and tasks."""

import datetime as dt
import json
import logging
from dataclasses import asdict, replace
from typing import Any, Optional
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from tour_insight.analysis.engine import AnalysisResult, NoDataResult, analyze
from tour_insight.analysis.filters import FilterError, FilterSet, filter_options, mad_delay_candidates
from tour_insight.analysis.lookups import DepotLookup
from tour_insight.analysis.records import Task, Tour, valid_rating
from tour_insight.db.connection import get_session
from tour_insight.ingestion.merge import merge_records
from tour_insight.ingestion.spreadsheet_loader import (
    IngestionError,
    normalize_tasks,
    normalize_tours,
    read_upload,
)
from tour_insight.memory import mad_delay_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["analysis"])

depot_lookup = DepotLookup(settings.depot_prefixes)


def _wall_clock(value: Optional[dt.datetime]) -> Optional[dt.datetime]:
    """Aware datetimes become naive wall-clock time in the depots' zone."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(ZoneInfo(settings.local_timezone)).replace(tzinfo=None)


class TourIn(BaseModel):
    unique_id: str
    name: str = ""
    date: Optional[dt.date] = None
    warehouse: str = ""
    driver: Optional[str] = None
    planned_start: Optional[dt.datetime] = None
    planned_end: Optional[dt.datetime] = None
    realized_start: Optional[dt.datetime] = None
    realized_end: Optional[dt.datetime] = None
    capacity_weight: float = 0.0
    capacity_volume: float = 0.0
    planned_weight: float = 0.0
    planned_volume: float = 0.0
    realized_weight: Optional[float] = None
    realized_volume: Optional[float] = None
    planned_distance_km: float = 0.0
    realized_distance_km: float = 0.0

    @field_validator("planned_start", "planned_end", "realized_start", "realized_end")
    @classmethod
    def naive_times(cls, value):
        return _wall_clock(value)


class TaskIn(BaseModel):
    tour_unique_id: str
    sequence: Optional[int] = None
    date: Optional[dt.date] = None
    warehouse: str = ""
    driver: Optional[str] = None
    window_start: Optional[dt.datetime] = None
    window_end: Optional[dt.datetime] = None
    planned_arrival: Optional[dt.datetime] = None
    realized_arrival: Optional[dt.datetime] = None
    closure: Optional[dt.datetime] = None
    postal_code: str = ""
    city: str = ""
    rating: Optional[float] = None
    comment: Optional[str] = None
    weight: float = 0.0
    items: float = 0.0
    completed_by: Optional[str] = None
    progress: Optional[str] = None

    @field_validator("window_start", "window_end", "planned_arrival", "realized_arrival", "closure")
    @classmethod
    def naive_times(cls, value):
        return _wall_clock(value)

    @field_validator("rating")
    @classmethod
    def rating_in_range(cls, value):
        return valid_rating(value)


class AnalysisRequest(BaseModel):
    tours: list[TourIn] = []
    tasks: list[TaskIn]
    filters: dict[str, Any] = {}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _build_filters(raw: dict[str, Any], session: AsyncSession) -> FilterSet:
    """Parse the filters, defaulting from settings and the saved MAD list."""
    filters = FilterSet.from_mapping(
        raw,
        default_threshold=settings.punctuality_threshold_minutes,
        mobile_marker=settings.mobile_completion_marker,
    )
    if filters.max_weight_threshold is None and settings.max_weight_threshold_kg is not None:
        filters = replace(filters, max_weight_threshold=settings.max_weight_threshold_kg)
    if filters.exclude_mad_delays and not filters.mad_delays:
        keys = await mad_delay_store.list_keys(session)
        filters = replace(filters, mad_delays=frozenset(keys))
    return filters


def _serialize(result: AnalysisResult | NoDataResult) -> dict:
    if isinstance(result, NoDataResult):
        return {
            "status": "no_data",
            "reason": result.reason,
            "input_records": result.input_records,
        }
    payload = asdict(result)
    payload["overloaded_tours_count"] = result.overloaded_tours_count
    payload["late_start_anomalies_count"] = result.late_start_anomalies_count
    return {"status": "ok", "result": jsonable_encoder(payload)}


async def _run(tours: list[Tour], tasks: list[Task], raw_filters: dict, session: AsyncSession):
    try:
        filters = await _build_filters(raw_filters, session)
    except FilterError as exc:
        logger.warning("Rejected filters: %s", exc)
        return JSONResponse({"error": str(exc), "status": "invalid_filters"}, status_code=422)
    result = analyze(merge_records(tours, tasks), filters, depot_lookup)
    return _serialize(result)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.post("/analysis")
async def run_analysis(body: AnalysisRequest, session: AsyncSession = Depends(get_session)):
    """Analyse tours and tasks posted as JSON."""
    tours = [Tour(**t.model_dump()) for t in body.tours]
    tasks = [Task(**t.model_dump()) for t in body.tasks]
    return await _run(tours, tasks, body.filters, session)


@router.post("/analysis/upload")
async def upload_and_analyse(
    tours_file: UploadFile = File(...),
    tasks_file: UploadFile = File(...),
    filters: str = Form("{}"),
    session: AsyncSession = Depends(get_session),
):
    """Analyse the two exported spreadsheets (xlsx or csv)."""
    try:
        raw_filters = json.loads(filters or "{}")
    except json.JSONDecodeError:
        return JSONResponse({"error": "'filters' must be a JSON object"}, status_code=422)
    if not isinstance(raw_filters, dict):
        return JSONResponse({"error": "'filters' must be a JSON object"}, status_code=422)

    try:
        tours = normalize_tours(read_upload(await tours_file.read(), tours_file.filename or ""))
        tasks = normalize_tasks(read_upload(await tasks_file.read(), tasks_file.filename or ""), tours)
    except IngestionError as exc:
        logger.warning("Upload rejected: %s", exc)
        return JSONResponse({"error": str(exc), "status": "invalid_file"}, status_code=422)

    return await _run(tours, tasks, raw_filters, session)


@router.post("/analysis/options")
async def analysis_options(body: AnalysisRequest) -> dict:
    """Filter choices and MAD candidates for the posted, unfiltered data."""
    tours = [Tour(**t.model_dump()) for t in body.tours]
    tasks = [Task(**t.model_dump()) for t in body.tasks]
    records = merge_records(tours, tasks)
    options = filter_options(records, depot_lookup)
    return jsonable_encoder({
        "depots": options.depots,
        "warehouses": options.warehouses,
        "cities": options.cities,
        "mad_candidates": [asdict(c) for c in mad_delay_candidates(records)],
    })
