"""Generic group-and-fold pass shared by every breakdown.

``fold_by`` walks the classified stops once and folds each into the running
sums of its group.  Rates and averages are only read from the accumulator
once the fold is complete.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Iterable

from tour_insight.analysis.lookups import UNKNOWN
from tour_insight.analysis.punctuality import ON_TIME, Outcome

BAD_REVIEW_MAX = 3  # ratings 1-3 out of 5 are negative

DAY_NAMES = ["Lundi", "Mardi", "Mercredi", "Jeudi", "Vendredi", "Samedi", "Dimanche"]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def pct(part: float, whole: float) -> float | None:
    """Percentage of *part* in *whole*, None when *whole* is zero."""
    if not whole:
        return None
    return round(part / whole * 100, 2)


def mean(total: float, count: int) -> float | None:
    if not count:
        return None
    return round(total / count, 2)


def is_bad_review(rating: float | None) -> bool:
    return rating is not None and rating <= BAD_REVIEW_MAX


def hour_label(hour: int) -> str:
    return f"{hour:02d}:00"


def slot_label(hour: int) -> str:
    start = hour // 2 * 2
    return f"{start:02d}h-{start + 2:02d}h"


def hour_key(moment: datetime | None) -> str | None:
    return None if moment is None else hour_label(moment.hour)


def slot_key(moment: datetime | None) -> str | None:
    return None if moment is None else slot_label(moment.hour)


# ---------------------------------------------------------------------------
# Accumulator
# ---------------------------------------------------------------------------


class GroupAccumulator:
    """Running sums for one group of stops."""

    __slots__ = (
        "key", "total", "measured", "late", "early", "on_time",
        "planned_measured", "planned_on_time", "delay_sum", "late_delay_sum",
        "rating_sum", "rating_count", "late_bad_review", "excused", "tour_ids",
    )

    def __init__(self, key: str) -> None:
        self.key = key
        self.total = 0
        self.measured = 0
        self.late = 0
        self.early = 0
        self.on_time = 0
        self.planned_measured = 0
        self.planned_on_time = 0
        self.delay_sum = 0.0
        self.late_delay_sum = 0.0
        self.rating_sum = 0.0
        self.rating_count = 0
        self.late_bad_review = 0
        self.excused = 0
        self.tour_ids: dict[str, None] = {}  # insertion-ordered set

    def add(self, outcome: Outcome) -> None:
        self.total += 1
        if outcome.record.tour is not None:
            self.tour_ids[outcome.record.tour_id] = None
        if outcome.excused:
            self.excused += 1
        if outcome.measured:
            self.measured += 1
            self.delay_sum += outcome.delay
            if outcome.is_late:
                self.late += 1
                self.late_delay_sum += outcome.delay
                if is_bad_review(outcome.rating):
                    self.late_bad_review += 1
            elif outcome.is_early:
                self.early += 1
            else:
                self.on_time += 1
        if outcome.planned_status is not None:
            self.planned_measured += 1
            if outcome.planned_status == ON_TIME:
                self.planned_on_time += 1
        if outcome.rating is not None:
            self.rating_sum += outcome.rating
            self.rating_count += 1

    # -- finalised figures ------------------------------------------------

    @property
    def tour_count(self) -> int:
        return len(self.tour_ids)

    @property
    def punctuality_rate(self) -> float | None:
        return pct(self.on_time, self.measured)

    @property
    def planned_punctuality_rate(self) -> float | None:
        return pct(self.planned_on_time, self.planned_measured)

    @property
    def avg_delay(self) -> float | None:
        """Sign-preserving mean deviation: advances pull the mean down."""
        return mean(self.delay_sum, self.measured)

    @property
    def avg_late_delay(self) -> float | None:
        return mean(self.late_delay_sum, self.late)

    @property
    def avg_rating(self) -> float | None:
        return mean(self.rating_sum, self.rating_count)

    @property
    def late_with_bad_review_pct(self) -> float | None:
        return pct(self.late_bad_review, self.late)


def fold_by(
    outcomes: Iterable[Outcome],
    key_fn: Callable[[Outcome], str | None],
) -> dict[str, GroupAccumulator]:
    """Fold stops into groups keyed by *key_fn*, in first-seen order.

    Stops whose key is empty land in the ``"Inconnu"`` group, so the group
    totals always add up to the number of stops folded.
    """
    groups: dict[str, GroupAccumulator] = {}
    for outcome in outcomes:
        key = key_fn(outcome) or UNKNOWN
        acc = groups.get(key)
        if acc is None:
            acc = groups[key] = GroupAccumulator(key)
        acc.add(outcome)
    return groups


def count_by(
    outcomes: Iterable[Outcome],
    key_fn: Callable[[Outcome], str | None],
) -> dict[str, int]:
    """Plain counter over non-empty keys, in first-seen order."""
    counts: dict[str, int] = {}
    for outcome in outcomes:
        key = key_fn(outcome)
        if key:
            counts[key] = counts.get(key, 0) + 1
    return counts
