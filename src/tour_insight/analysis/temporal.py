"""Temporal and geographic breakdowns of delays and advances."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable

from tour_insight.analysis.grouping import (
    DAY_NAMES,
    GroupAccumulator,
    count_by,
    fold_by,
    hour_key,
    slot_key,
)
from tour_insight.analysis.lookups import UNKNOWN
from tour_insight.analysis.punctuality import Outcome


@dataclass(frozen=True)
class CountRow:
    key: str
    count: int


@dataclass(frozen=True)
class TimePerformance:
    """Punctuality of one time bucket (weekday or 2-hour slot)."""

    key: str
    total_tasks: int
    punctuality_rate: float | None
    avg_delay: float | None
    avg_late_delay: float | None
    delays: int
    advances: int


@dataclass(frozen=True)
class HistogramBin:
    range: str
    count: int


# ---------------------------------------------------------------------------
# Delay / advance counters
# ---------------------------------------------------------------------------


def count_rows(
    outcomes: Iterable[Outcome],
    predicate: Callable[[Outcome], bool],
    key_fn: Callable[[Outcome], str | None],
) -> list[CountRow]:
    """Count matching stops per key, most frequent first."""
    counts = count_by((o for o in outcomes if predicate(o)), key_fn)
    return [
        CountRow(key=k, count=c)
        for k, c in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    ]


def count_by_hour(
    outcomes: Iterable[Outcome],
    predicate: Callable[[Outcome], bool],
) -> list[CountRow]:
    """Count matching stops per realized-arrival hour, in clock order."""
    counts = count_by(
        (o for o in outcomes if predicate(o)),
        lambda o: hour_key(o.record.task.realized_arrival),
    )
    return [CountRow(key=k, count=counts[k]) for k in sorted(counts)]


def _is_late(o: Outcome) -> bool:
    return o.is_late


def _is_early(o: Outcome) -> bool:
    return o.is_early


def delays_by(outcomes: list[Outcome], key_fn: Callable[[Outcome], str | None]) -> list[CountRow]:
    return count_rows(outcomes, _is_late, key_fn)


def advances_by(outcomes: list[Outcome], key_fn: Callable[[Outcome], str | None]) -> list[CountRow]:
    return count_rows(outcomes, _is_early, key_fn)


def delays_by_hour(outcomes: list[Outcome]) -> list[CountRow]:
    return count_by_hour(outcomes, _is_late)


def advances_by_hour(outcomes: list[Outcome]) -> list[CountRow]:
    return count_by_hour(outcomes, _is_early)


# ---------------------------------------------------------------------------
# Weekday and time slot
# ---------------------------------------------------------------------------


def _time_row(acc: GroupAccumulator) -> TimePerformance:
    return TimePerformance(
        key=acc.key,
        total_tasks=acc.total,
        punctuality_rate=acc.punctuality_rate,
        avg_delay=acc.avg_delay,
        avg_late_delay=acc.avg_late_delay,
        delays=acc.late,
        advances=acc.early,
    )


def _day_name(o: Outcome) -> str | None:
    day = o.record.date
    return None if day is None else DAY_NAMES[day.weekday()]


def performance_by_day_of_week(outcomes: Iterable[Outcome]) -> list[TimePerformance]:
    """Monday to Sunday, days without stops omitted; undated stops last."""
    groups = fold_by(outcomes, _day_name)
    order = DAY_NAMES + [UNKNOWN]
    return [_time_row(groups[name]) for name in order if name in groups]


def performance_by_time_slot(outcomes: Iterable[Outcome]) -> list[TimePerformance]:
    """2-hour slots of the realized arrival, in clock order."""
    groups = fold_by(outcomes, lambda o: slot_key(o.record.task.realized_arrival))
    # "Inconnu" sorts after the "HHh-HHh" labels
    return [_time_row(groups[k]) for k in sorted(groups)]


# ---------------------------------------------------------------------------
# Histogram
# ---------------------------------------------------------------------------


def _fmt(minutes: float) -> str:
    return f"{minutes:g}"


def delay_histogram(outcomes: Iterable[Outcome], threshold: float) -> list[HistogramBin]:
    """Seven-bin distribution of the measured deviations.

    Inner edges are clamped to the threshold, so the bins partition the
    measured stops: early bins sum to the early count, late bins to the
    late count and the middle bin to the on-time count.  Labels follow the
    clamped edges; a bin squeezed to nothing (threshold above 30) stays
    in place, empty, so the histogram always has seven bins.
    """
    mid = max(threshold, 30.0)
    far = max(threshold, 60.0)
    t, m, f = _fmt(threshold), _fmt(mid), _fmt(far)
    labels = [
        f"> {f} min en avance",
        f"{m}-{f} min en avance",
        f"{t}-{m} min en avance",
        "À l'heure",
        f"{t}-{m} min de retard",
        f"{m}-{f} min de retard",
        f"> {f} min de retard",
    ]
    counts = [0] * 7
    for o in outcomes:
        if not o.measured:
            continue
        d = o.delay
        if o.is_on_time:
            idx = 3
        elif o.is_early:
            idx = 0 if d < -far else 1 if d < -mid else 2
        else:
            idx = 6 if d > far else 5 if d > mid else 4
        counts[idx] += 1
    return [HistogramBin(range=label, count=n) for label, n in zip(labels, counts)]
