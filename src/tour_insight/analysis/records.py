"""Typed records for tours, tasks and merged task/tour rows.

Records are frozen: the analysis passes never mutate what ingestion
produced, every derived value lives in its own structure.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

COMPLETED_PROGRESS = ("complétée", "completed")
RATING_MIN, RATING_MAX = 1.0, 5.0


def valid_rating(value: float | None) -> float | None:
    """*value* when it is a 1-5 rating, otherwise None (0 means "not rated")."""
    if value is None or not RATING_MIN <= value <= RATING_MAX:
        return None
    return value


@dataclass(frozen=True)
class Tour:
    """A delivery round: plan, realization and declared capacity."""

    unique_id: str
    name: str = ""
    date: date | None = None
    warehouse: str = ""
    driver: str | None = None
    planned_start: datetime | None = None
    planned_end: datetime | None = None
    realized_start: datetime | None = None
    realized_end: datetime | None = None
    capacity_weight: float = 0.0  # kg
    capacity_volume: float = 0.0  # bins
    planned_weight: float = 0.0
    planned_volume: float = 0.0
    realized_weight: float | None = None  # None = derive from tasks
    realized_volume: float | None = None
    planned_distance_km: float = 0.0
    realized_distance_km: float = 0.0


@dataclass(frozen=True)
class Task:
    """A single delivery stop within a tour."""

    tour_unique_id: str
    sequence: int | None = None
    date: date | None = None
    warehouse: str = ""
    driver: str | None = None
    window_start: datetime | None = None
    window_end: datetime | None = None
    planned_arrival: datetime | None = None
    realized_arrival: datetime | None = None
    closure: datetime | None = None
    postal_code: str = ""
    city: str = ""
    rating: float | None = None
    comment: str | None = None
    weight: float = 0.0
    items: float = 0.0
    completed_by: str | None = None
    progress: str | None = None  # "complétée", "annulée", ...

    @property
    def completed(self) -> bool:
        """A stop without any progress value is taken as completed."""
        if not (self.progress or "").strip():
            return True
        return self.progress.strip().lower() in COMPLETED_PROGRESS


@dataclass(frozen=True)
class MergedRecord:
    """A task joined to its parent tour (None when the tour is unknown)."""

    task: Task
    tour: Tour | None
    ordre: int  # 1-based position in ingestion order

    @property
    def tour_id(self) -> str:
        return self.task.tour_unique_id

    @property
    def warehouse(self) -> str:
        """Tour warehouse, falling back to the warehouse written on the task."""
        if self.tour is not None and self.tour.warehouse:
            return self.tour.warehouse
        return self.task.warehouse

    @property
    def date(self) -> date | None:
        if self.task.date is not None:
            return self.task.date
        if self.task.realized_arrival is not None:
            return self.task.realized_arrival.date()
        return self.tour.date if self.tour is not None else None

    @property
    def driver(self) -> str | None:
        if self.tour is not None and self.tour.driver:
            return self.tour.driver
        return self.task.driver or None
