"""Filter stage: reduce merged records to the working subset.

Filters arrive as a sparse mapping (the shape the UI sends).  Every present
key is an independent predicate and the predicates are AND-ed; absent keys
do not restrict anything.  Output order is the input order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Iterable, Mapping

from tour_insight.analysis.lookups import DEFAULT_DEPOT_LOOKUP, DepotLookup
from tour_insight.analysis.punctuality import DEFAULT_THRESHOLD_MINUTES
from tour_insight.analysis.records import MergedRecord


class FilterError(ValueError):
    """Raised when a filter value cannot be interpreted."""


def mad_key(warehouse: str, day: date) -> str:
    """Key of a MAD (preparation delay) entry: ``"warehouse|YYYY-MM-DD"``."""
    return f"{warehouse}|{day.isoformat()}"


def parse_mad_key(key: str) -> tuple[str, date]:
    """Split a MAD key back into its warehouse and day."""
    warehouse, sep, day = str(key).rpartition("|")
    if not sep or not warehouse.strip():
        raise FilterError(f"MAD key must look like 'warehouse|YYYY-MM-DD', got {key!r}")
    try:
        return warehouse, date.fromisoformat(day.strip())
    except ValueError:
        raise FilterError(f"MAD key has an invalid date: {key!r}") from None


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


def _blank(val) -> bool:
    return val is None or (isinstance(val, str) and not val.strip())


def _to_float(key: str, val) -> float | None:
    if _blank(val):
        return None
    if isinstance(val, bool):
        raise FilterError(f"Filter '{key}' expects a number, got {val!r}")
    try:
        return float(str(val).replace(",", "."))
    except (TypeError, ValueError):
        raise FilterError(f"Filter '{key}' expects a number, got {val!r}") from None


def _to_bool(val) -> bool:
    if isinstance(val, str):
        return val.strip().lower() in ("1", "true", "yes", "on", "oui")
    return bool(val)


def _to_date(key: str, val) -> date | None:
    if _blank(val):
        return None
    if isinstance(val, datetime):
        return val.date()
    if isinstance(val, date):
        return val
    try:
        return date.fromisoformat(str(val).strip()[:10])
    except ValueError:
        raise FilterError(f"Filter '{key}' expects an ISO date, got {val!r}") from None


def _to_period(val) -> int | None:
    if _blank(val) or str(val).strip().lower() == "all":
        return None
    try:
        days = int(str(val).strip())
    except ValueError:
        raise FilterError(f"Filter 'period' expects 'all' or a day count, got {val!r}") from None
    if days <= 0:
        raise FilterError(f"Filter 'period' must be positive, got {days}")
    return days


def _to_hour(val) -> int | None:
    if _blank(val):
        return None
    try:
        hour = int(str(val).strip().split(":")[0].rstrip("h"))
    except ValueError:
        raise FilterError(f"Filter 'heure' expects an hour, got {val!r}") from None
    if not 0 <= hour <= 23:
        raise FilterError(f"Filter 'heure' must be within 0-23, got {hour}")
    return hour


def _to_text(val) -> str | None:
    return None if _blank(val) else str(val)


# ---------------------------------------------------------------------------
# Filter set
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FilterSet:
    """Parsed, immutable view of the active filters."""

    period_days: int | None = None
    depot: str | None = None
    warehouse: str | None = None
    city: str | None = None
    postal_code: str | None = None
    selected_date: date | None = None
    hour: int | None = None
    punctuality_threshold: float = DEFAULT_THRESHOLD_MINUTES
    max_weight_threshold: float | None = None
    tours_100_mobile: bool = False
    exclude_mad_delays: bool = False
    mad_delays: frozenset[str] = field(default_factory=frozenset)
    mobile_marker: str = "mobile"

    @classmethod
    def from_mapping(
        cls,
        raw: Mapping[str, Any] | None,
        default_threshold: float = DEFAULT_THRESHOLD_MINUTES,
        mobile_marker: str = "mobile",
    ) -> "FilterSet":
        """Build a FilterSet from the UI filter mapping.

        Recognised keys: ``period``, ``depot``, ``entrepot``, ``city``,
        ``codePostal``, ``selectedDate``, ``heure``,
        ``punctualityThreshold`` (minutes), ``maxWeightThreshold`` (kg),
        ``tours100Mobile``, ``excludeMadDelays``, ``madDelays``.
        Unknown keys are ignored.
        """
        raw = raw or {}
        threshold = _to_float("punctualityThreshold", raw.get("punctualityThreshold"))
        if threshold is not None and threshold < 0:
            raise FilterError(f"Filter 'punctualityThreshold' must be >= 0, got {threshold}")
        mad = raw.get("madDelays") or ()
        if isinstance(mad, str):
            mad = (mad,)
        return cls(
            period_days=_to_period(raw.get("period")),
            depot=_to_text(raw.get("depot")),
            warehouse=_to_text(raw.get("entrepot")),
            city=_to_text(raw.get("city")),
            postal_code=_to_text(raw.get("codePostal")),
            selected_date=_to_date("selectedDate", raw.get("selectedDate")),
            hour=_to_hour(raw.get("heure")),
            punctuality_threshold=default_threshold if threshold is None else threshold,
            max_weight_threshold=_to_float("maxWeightThreshold", raw.get("maxWeightThreshold")),
            tours_100_mobile=_to_bool(raw.get("tours100Mobile", False)),
            exclude_mad_delays=_to_bool(raw.get("excludeMadDelays", False)),
            mad_delays=frozenset(str(k) for k in mad),
            mobile_marker=mobile_marker,
        )


def is_mad_excused(record: MergedRecord, filters: FilterSet) -> bool:
    """True when the record's warehouse/day is flagged MAD and exclusion is on.

    Only late records are excused; the caller checks the classification.
    """
    if not filters.exclude_mad_delays or not filters.mad_delays:
        return False
    day = record.date
    if day is None or not record.warehouse:
        return False
    return mad_key(record.warehouse, day) in filters.mad_delays


# ---------------------------------------------------------------------------
# Filter stage
# ---------------------------------------------------------------------------


def _mobile_tours(records: list[MergedRecord], marker: str) -> set[str]:
    """Tour ids whose every task was closed from the mobile app."""
    marker = marker.lower()
    verdict: dict[str, bool] = {}
    for rec in records:
        if rec.tour is None:
            continue
        by_mobile = (rec.task.completed_by or "").strip().lower() == marker
        verdict[rec.tour_id] = verdict.get(rec.tour_id, True) and by_mobile
    return {tour_id for tour_id, ok in verdict.items() if ok}


def apply_filters(
    records: Iterable[MergedRecord],
    filters: FilterSet,
    depot_lookup: DepotLookup = DEFAULT_DEPOT_LOOKUP,
) -> list[MergedRecord]:
    """Return the records matching every active filter, in input order.

    MAD exclusion is not applied here: late records on MAD days stay in the
    working subset (they count in totals) and are taken out of the
    punctuality measurements by the engine through :func:`is_mad_excused`.
    """
    records = list(records)

    earliest: date | None = None
    if filters.period_days is not None:
        dates = [r.date for r in records if r.date is not None]
        if dates:
            earliest = max(dates) - timedelta(days=filters.period_days)

    mobile_ids = (
        _mobile_tours(records, filters.mobile_marker) if filters.tours_100_mobile else None
    )

    kept: list[MergedRecord] = []
    for rec in records:
        if filters.period_days is not None:
            if earliest is None or rec.date is None or rec.date <= earliest:
                continue
        if filters.depot is not None:
            if rec.tour is None or depot_lookup.depot_for(rec.tour.warehouse) != filters.depot:
                continue
        if filters.warehouse is not None:
            if rec.tour is None or rec.tour.warehouse != filters.warehouse:
                continue
        if filters.city is not None and rec.task.city != filters.city:
            continue
        if filters.postal_code is not None and rec.task.postal_code != filters.postal_code:
            continue
        if filters.selected_date is not None and rec.date != filters.selected_date:
            continue
        if filters.hour is not None:
            arrival = rec.task.realized_arrival
            if arrival is None or arrival.hour != filters.hour:
                continue
        if mobile_ids is not None and rec.tour_id not in mobile_ids:
            continue
        kept.append(rec)
    return kept


# ---------------------------------------------------------------------------
# Filter options and MAD candidates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FilterOptions:
    depots: list[str]
    warehouses: list[str]
    cities: list[str]


def filter_options(
    records: Iterable[MergedRecord],
    depot_lookup: DepotLookup = DEFAULT_DEPOT_LOOKUP,
) -> FilterOptions:
    """Distinct depots, warehouses and cities present in the data."""
    warehouses: set[str] = set()
    cities: set[str] = set()
    for rec in records:
        if rec.warehouse:
            warehouses.add(rec.warehouse)
        if rec.task.city:
            cities.add(rec.task.city)
    return FilterOptions(
        depots=sorted({depot_lookup.depot_for(w) for w in warehouses}),
        warehouses=sorted(warehouses),
        cities=sorted(cities),
    )


@dataclass(frozen=True)
class MadDelayCandidate:
    """A warehouse/day pair an operator can flag as a preparation delay."""

    key: str
    warehouse: str
    date: date
    tour_count: int


def mad_delay_candidates(records: Iterable[MergedRecord]) -> list[MadDelayCandidate]:
    """Warehouse/day pairs with their distinct tour count, newest day first."""
    tours: dict[tuple[str, date], set[str]] = {}
    for rec in records:
        if rec.tour is None or rec.date is None:
            continue
        tours.setdefault((rec.tour.warehouse, rec.date), set()).add(rec.tour_id)
    pairs = sorted(tours.items(), key=lambda kv: (-kv[0][1].toordinal(), kv[0][0]))
    return [
        MadDelayCandidate(
            key=mad_key(warehouse, day),
            warehouse=warehouse,
            date=day,
            tour_count=len(ids),
        )
        for (warehouse, day), ids in pairs
    ]
