"""Spreadsheet (xlsx / csv) -> Tour and Task records.

Headers are matched case-insensitively against alias tables, so exports
from different planning tools load without renaming columns.  Rows that
miss a mandatory value are skipped and counted; a sheet without the
mandatory headers, or without any usable row, raises ``IngestionError``.
"""
from __future__ import annotations

import io
import logging
import zipfile
from datetime import date, datetime, time, timedelta
from pathlib import Path
from typing import Any, Iterable

import numpy as np
import pandas as pd
from openpyxl.utils.exceptions import InvalidFileException

from tour_insight.analysis.records import Task, Tour, valid_rating

logger = logging.getLogger(__name__)

EXCEL_EPOCH = pd.Timestamp("1899-12-30")
ROLLOVER_MARGIN = timedelta(hours=12)

TOUR_HEADERS: dict[str, list[str]] = {
    "name": ["nom", "tournée", "tournee"],
    "date": ["date"],
    "warehouse": ["entrepôt", "entrepot"],
    "driver": ["livreur"],
    "capacity_volume": ["capacité bac (bacs)"],
    "planned_volume": ["bac (bacs)"],
    "capacity_weight": ["capacité poids (kg)"],
    "planned_weight": ["poids (kg)"],
    "planned_distance_km": ["kilométrage (km)", "distance (m)"],
    "realized_distance_km": ["kilométrage réel (km)"],
    "planned_start": ["départ"],
    "planned_end": ["fin"],
    "realized_start": ["heure de départ réelle du livreur"],
    "started": ["démarré"],
    "finished": ["terminé"],
}

TASK_HEADERS: dict[str, list[str]] = {
    "tour_name": ["tournée", "tournee"],
    "date": ["date", "jour"],
    "warehouse": ["entrepôt", "entrepot"],
    "driver": ["livreur"],
    "sequence": ["séquence", "sequence"],
    "completed_by": ["complété par"],
    "progress": ["avancement"],
    "weight": ["poids", "poids (kg)"],
    "items": ["items"],
    "window_start": ["départ"],
    "window_end": ["arrivée"],
    "planned_arrival": ["arrivée approximative"],
    "realized_arrival": ["heure d'arrivée sur site", "heure d'arrivee sur site"],
    "closure": ["heure de clôture"],
    "city": ["ville"],
    "postal_code": ["code postal"],
    "rating": ["notez votre livraison"],
    "comment": ["qu'avez vous pensé de la livraison de votre commande?"],
}

MANDATORY_TOUR_FIELDS = ("name", "date", "warehouse")
MANDATORY_TASK_FIELDS = ("tour_name", "date", "warehouse")


class IngestionError(ValueError):
    """The sheet cannot be turned into records at all."""


# ---------------------------------------------------------------------------
# Cell parsing
# ---------------------------------------------------------------------------


def _blank(val: Any) -> bool:
    if val is None:
        return True
    if isinstance(val, str):
        return not val.strip() or val.strip().lower() == "null"
    try:
        return bool(pd.isna(val))
    except (TypeError, ValueError):
        return False


def _text(val: Any) -> str | None:
    if _blank(val):
        return None
    if isinstance(val, float) and val.is_integer():
        return str(int(val))
    return str(val).strip()


def _number(val: Any) -> float | None:
    if _blank(val) or isinstance(val, bool):
        return None
    try:
        return float(str(val).strip().replace(",", "."))
    except ValueError:
        return None


def _parse_date(val: Any) -> date | None:
    """Excel serial, datetime-like, ``dd/mm/yyyy`` or ISO string."""
    if _blank(val):
        return None
    if isinstance(val, datetime):
        return val.date()
    if isinstance(val, date):
        return val
    if isinstance(val, (int, float, np.number)):
        return (EXCEL_EPOCH + pd.to_timedelta(float(val), unit="D")).date()
    raw = str(val).strip().split(" ")[0]
    try:
        if "/" in raw:
            return datetime.strptime(raw, "%d/%m/%Y").date()
        return date.fromisoformat(raw[:10])
    except ValueError:
        return None


def _parse_time(val: Any) -> timedelta | None:
    """Time of day as an offset from midnight.

    Accepts ``time``/``datetime`` cells, Excel day fractions (a full serial
    keeps only its fractional part) and ``HH:MM[:SS]`` strings.
    """
    if _blank(val):
        return None
    if isinstance(val, datetime):
        return val - datetime.combine(val.date(), time())
    if isinstance(val, time):
        return timedelta(hours=val.hour, minutes=val.minute, seconds=val.second)
    if isinstance(val, (int, float, np.number)):
        fraction = float(val) % 1 if float(val) > 1 else float(val)
        return timedelta(seconds=round(fraction * 86400))
    parts = str(val).strip().split(":")
    if len(parts) < 2:
        return None
    try:
        h, m = int(parts[0]), int(parts[1])
        s = int(float(parts[2])) if len(parts) > 2 and parts[2] else 0
    except ValueError:
        return None
    return timedelta(hours=h, minutes=m, seconds=s)


def _at(day: date, val: Any) -> datetime | None:
    offset = _parse_time(val)
    if offset is None:
        return None
    return datetime.combine(day, time()) + offset


def tour_unique_id(name: str, day: date, warehouse: str) -> str:
    return f"{name}|{day.isoformat()}|{warehouse}"


# ---------------------------------------------------------------------------
# Header resolution
# ---------------------------------------------------------------------------


def _resolve_columns(
    df: pd.DataFrame,
    aliases: dict[str, list[str]],
    mandatory: tuple[str, ...],
    kind: str,
) -> dict[str, str]:
    """Map field name -> DataFrame column, first matching column wins."""
    by_lower: dict[str, str] = {}
    for col in df.columns:
        by_lower.setdefault(str(col).strip().lower(), col)

    columns: dict[str, str] = {}
    for field_name, names in aliases.items():
        for name in names:
            if name in by_lower:
                columns[field_name] = by_lower[name]
                break

    missing = [f for f in mandatory if f not in columns]
    if missing:
        expected = "; ".join(f"'{aliases[f][0]}'" for f in missing)
        raise IngestionError(
            f"Missing mandatory {kind} headers: {', '.join(missing)} (expected e.g. {expected})"
        )
    return columns


def _rows(df: pd.DataFrame, columns: dict[str, str]) -> Iterable[dict[str, Any]]:
    """Rows as ``{field: raw value}`` with NaN/NaT replaced by None."""
    frame = df[list(columns.values())].astype(object).replace({np.nan: None})
    renamed = {col: field_name for field_name, col in columns.items()}
    for raw in frame.to_dict(orient="records"):
        yield {renamed[col]: val for col, val in raw.items()}


# ---------------------------------------------------------------------------
# Normalisation
# ---------------------------------------------------------------------------


def normalize_tours(df: pd.DataFrame) -> list[Tour]:
    """Turn a tours sheet into Tour records.

    Tours whose name starts with ``R`` (return legs) are left out.
    """
    if df.empty:
        raise IngestionError("The tours sheet has no rows")
    columns = _resolve_columns(df, TOUR_HEADERS, MANDATORY_TOUR_FIELDS, "tours")
    distance_in_metres = "(m)" in str(columns.get("planned_distance_km", "")).lower()

    tours: list[Tour] = []
    skipped = 0
    for row in _rows(df, columns):
        name = _text(row.get("name"))
        day = _parse_date(row.get("date"))
        warehouse = _text(row.get("warehouse"))
        if not name or day is None or not warehouse:
            skipped += 1
            continue
        if name.upper().startswith("R"):
            continue

        planned_distance = _number(row.get("planned_distance_km")) or 0.0
        if distance_in_metres:
            planned_distance /= 1000

        tours.append(Tour(
            unique_id=tour_unique_id(name, day, warehouse),
            name=name,
            date=day,
            warehouse=warehouse,
            driver=_text(row.get("driver")),
            planned_start=_at(day, row.get("planned_start")),
            planned_end=_at(day, row.get("planned_end")),
            realized_start=_at(day, row.get("realized_start")) or _at(day, row.get("started")),
            realized_end=_at(day, row.get("finished")),
            capacity_weight=_number(row.get("capacity_weight")) or 0.0,
            capacity_volume=_number(row.get("capacity_volume")) or 0.0,
            planned_weight=_number(row.get("planned_weight")) or 0.0,
            planned_volume=_number(row.get("planned_volume")) or 0.0,
            planned_distance_km=planned_distance,
            realized_distance_km=_number(row.get("realized_distance_km")) or 0.0,
        ))

    if skipped:
        logger.info("Skipped %d tour rows missing a name, date or warehouse", skipped)
    if not tours:
        raise IngestionError("No tour could be read, check the tours sheet and its headers")
    logger.info("Loaded %d tours", len(tours))
    return tours


def normalize_tasks(df: pd.DataFrame, tours: Iterable[Tour] | None = None) -> list[Task]:
    """Turn a tasks sheet into Task records.

    With *tours*, a closure earlier than its tour's start minus 12 hours is
    taken to be past midnight and moved to the next day, along with the
    realized arrival.
    """
    if df.empty:
        raise IngestionError("The tasks sheet has no rows")
    columns = _resolve_columns(df, TASK_HEADERS, MANDATORY_TASK_FIELDS, "tasks")

    starts: dict[str, datetime] = {}
    for tour in tours or ():
        start = tour.realized_start or tour.planned_start
        if start is not None:
            starts[tour.unique_id] = start

    tasks: list[Task] = []
    skipped = rolled = 0
    for row in _rows(df, columns):
        tour_name = _text(row.get("tour_name"))
        day = _parse_date(row.get("date"))
        warehouse = _text(row.get("warehouse"))
        if not tour_name or day is None or not warehouse:
            skipped += 1
            continue

        tour_id = tour_unique_id(tour_name, day, warehouse)
        closure = _at(day, row.get("closure"))
        arrival = _at(day, row.get("realized_arrival")) or closure

        start = starts.get(tour_id)
        if start is not None and closure is not None and closure < start - ROLLOVER_MARGIN:
            closure += timedelta(days=1)
            if arrival is not None:
                arrival += timedelta(days=1)
            rolled += 1

        sequence = _number(row.get("sequence"))
        tasks.append(Task(
            tour_unique_id=tour_id,
            sequence=None if sequence is None else int(sequence),
            date=day,
            warehouse=warehouse,
            driver=_text(row.get("driver")),
            window_start=_at(day, row.get("window_start")),
            window_end=_at(day, row.get("window_end")),
            planned_arrival=_at(day, row.get("planned_arrival")),
            realized_arrival=arrival,
            closure=closure,
            postal_code=_text(row.get("postal_code")) or "",
            city=_text(row.get("city")) or "",
            rating=valid_rating(_number(row.get("rating"))),
            comment=_text(row.get("comment")),
            weight=_number(row.get("weight")) or 0.0,
            items=_number(row.get("items")) or 0.0,
            completed_by=_text(row.get("completed_by")),
            progress=_text(row.get("progress")),
        ))

    if skipped:
        logger.info("Skipped %d task rows missing a tour, date or warehouse", skipped)
    if rolled:
        logger.debug("Moved %d closures past midnight to the next day", rolled)
    if not tasks:
        raise IngestionError("No task could be read, check the tasks sheet and its headers")
    logger.info("Loaded %d tasks", len(tasks))
    return tasks


# ---------------------------------------------------------------------------
# File entry points
# ---------------------------------------------------------------------------


UNREADABLE = (ValueError, zipfile.BadZipFile, InvalidFileException, pd.errors.ParserError)


def _read(source: Any, filename: str) -> pd.DataFrame:
    try:
        if filename.lower().endswith(".csv"):
            return pd.read_csv(source, dtype=object)
        return pd.read_excel(source, sheet_name=0, dtype=object, engine="openpyxl")
    except UNREADABLE as exc:
        raise IngestionError(f"Cannot read {filename!r} as a spreadsheet: {exc}") from exc


def read_sheet(path: Path) -> pd.DataFrame:
    """First sheet of an xlsx/xls file, or a csv file, as raw objects."""
    path = Path(path)
    return _read(path, path.name)


def read_upload(content: bytes, filename: str) -> pd.DataFrame:
    """Same as :func:`read_sheet` for an uploaded file held in memory."""
    if not content:
        raise IngestionError(f"Uploaded file {filename!r} is empty")
    return _read(io.BytesIO(content), filename)


def load_tours(path: Path) -> list[Tour]:
    return normalize_tours(read_sheet(path))


def load_tasks(path: Path, tours: Iterable[Tour] | None = None) -> list[Task]:
    return normalize_tasks(read_sheet(path), tours)
