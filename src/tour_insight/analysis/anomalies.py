"""Tour-level anomaly lists: overloads, late-start drift, duration overruns."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from tour_insight.analysis.tours import TourProfile


@dataclass(frozen=True)
class OverloadedTour:
    unique_id: str
    name: str
    warehouse: str
    driver: str | None
    weight_limit: float | None
    realized_weight: float
    weight_overrun: float | None  # None without a weight limit
    weight_overrun_pct: float | None
    capacity_volume: float
    realized_volume: float
    volume_overrun: float
    volume_overrun_pct: float | None


@dataclass(frozen=True)
class LateStartAnomaly:
    unique_id: str
    name: str
    warehouse: str
    driver: str | None
    late_tasks: int


@dataclass(frozen=True)
class DurationDiscrepancy:
    unique_id: str
    name: str
    warehouse: str
    driver: str | None
    estimated_duration: float  # minutes
    realized_duration: float
    gap: float


def overloaded_tours(profiles: Iterable[TourProfile]) -> list[OverloadedTour]:
    """Overloaded tours, worst weight overrun (in percent) first."""
    rows = [
        OverloadedTour(
            unique_id=p.unique_id,
            name=p.tour.name,
            warehouse=p.tour.warehouse,
            driver=p.tour.driver,
            weight_limit=p.weight_limit,
            realized_weight=p.realized_weight,
            weight_overrun=_round(p.weight_overrun),
            weight_overrun_pct=_round(p.weight_overrun_pct),
            capacity_volume=p.tour.capacity_volume,
            realized_volume=p.realized_volume,
            volume_overrun=round(p.volume_overrun, 2),
            volume_overrun_pct=_round(p.volume_overrun_pct),
        )
        for p in profiles
        if p.overloaded
    ]
    rows.sort(key=lambda r: (
        -(r.weight_overrun_pct or 0.0),
        -(r.volume_overrun_pct or 0.0),
        r.unique_id,
    ))
    return rows


def late_start_anomalies(profiles: Iterable[TourProfile]) -> list[LateStartAnomaly]:
    """Tours that left on time but finished their last stop late."""
    rows = [
        LateStartAnomaly(
            unique_id=p.unique_id,
            name=p.tour.name,
            warehouse=p.tour.warehouse,
            driver=p.tour.driver,
            late_tasks=p.late_count,
        )
        for p in profiles
        if p.late_start_anomaly
    ]
    rows.sort(key=lambda r: (-r.late_tasks, r.unique_id))
    return rows


def duration_discrepancies(profiles: Iterable[TourProfile]) -> list[DurationDiscrepancy]:
    """Tours that took longer than estimated, largest gap first."""
    rows = []
    for p in profiles:
        gap = p.duration_discrepancy
        if gap is None or gap <= 0:
            continue
        rows.append(DurationDiscrepancy(
            unique_id=p.unique_id,
            name=p.tour.name,
            warehouse=p.tour.warehouse,
            driver=p.tour.driver,
            estimated_duration=round(p.estimated_duration, 2),
            realized_duration=round(p.realized_duration, 2),
            gap=round(gap, 2),
        ))
    rows.sort(key=lambda r: (-r.gap, r.unique_id))
    return rows


def _round(value: float | None) -> float | None:
    return None if value is None else round(value, 2)
