"""Depot, warehouse and postal-code summary tables.

One summary row per key, built from the stops of the key and the profiles
of the tours those stops belong to.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable

from tour_insight.analysis.grouping import GroupAccumulator, is_bad_review, mean, pct, slot_label
from tour_insight.analysis.punctuality import Outcome
from tour_insight.analysis.tours import TourProfile

INTENSITY_FIRST_HOUR = 6
INTENSITY_LAST_HOUR = 22


@dataclass(frozen=True)
class DepotSummary:
    key: str
    total_deliveries: int
    total_tours: int
    punctuality_rate_planned: float | None
    punctuality_rate_realized: float | None
    # shares of the key's tours that departed on time and still ran late
    on_time_departure_first_late_pct: float | None
    on_time_departure_any_late_pct: float | None
    negative_ratings_late_pct: float | None
    overweight_tours_pct: float | None
    most_chosen_window: str | None
    most_chosen_window_pct: float | None
    most_late_window: str | None
    most_late_window_rate: float | None
    planned_intensity: float | None  # stops per tour per 2-hour slot
    realized_intensity: float | None
    most_intense_slot: str | None
    most_intense_value: float | None
    least_intense_slot: str | None
    least_intense_value: float | None


@dataclass(frozen=True)
class PostalCodeSummary:
    postal_code: str
    warehouse: str
    total_deliveries: int
    late_count: int
    late_pct: float | None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _window_label(o: Outcome) -> str | None:
    task = o.record.task
    if task.window_start is None or task.window_end is None:
        return None
    return f"{task.window_start:%H:%M}-{task.window_end:%H:%M}"


def _window_stats(stops: list[Outcome]):
    stats: dict[str, list[int]] = {}  # label -> [total, late]
    for o in stops:
        label = _window_label(o)
        if label is None:
            continue
        entry = stats.setdefault(label, [0, 0])
        entry[0] += 1
        if o.is_late:
            entry[1] += 1

    chosen = chosen_pct = worst = worst_rate = None
    if stats:
        # ties: first-seen window wins
        chosen, (n, _) = max(stats.items(), key=lambda kv: kv[1][0])
        chosen_pct = pct(n, len(stops))
        late_windows = [(k, v) for k, v in stats.items() if v[1] > 0]
        if late_windows:
            worst, (n, late) = max(late_windows, key=lambda kv: kv[1][1])
            worst_rate = pct(late, n)
    return chosen, chosen_pct, worst, worst_rate


def _intensity(stops: list[Outcome]):
    slots = range(INTENSITY_FIRST_HOUR, INTENSITY_LAST_HOUR, 2)
    planned = {s: [0, set()] for s in slots}
    real = {s: [0, set()] for s in slots}
    for o in stops:
        task = o.record.task
        for moment, bucket in ((task.planned_arrival, planned), (task.closure, real)):
            if moment is None:
                continue
            entry = bucket.get(moment.hour // 2 * 2)
            if entry is not None:
                entry[0] += 1
                entry[1].add(o.record.tour_id)

    rows = []
    for s in slots:
        avg_planned = mean(planned[s][0], len(planned[s][1])) or 0.0
        avg_real = mean(real[s][0], len(real[s][1])) or 0.0
        if avg_planned or avg_real:
            rows.append((slot_label(s), avg_planned, avg_real))
    if not rows:
        return None, None, None, None, None, None

    most = max(rows, key=lambda r: r[2])
    least = min(rows, key=lambda r: r[2])
    return (
        mean(sum(r[1] for r in rows), len(rows)),
        mean(sum(r[2] for r in rows), len(rows)),
        most[0], most[2], least[0], least[2],
    )


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------


def depot_summaries(
    outcomes: Iterable[Outcome],
    profiles: dict[str, TourProfile],
    key_fn: Callable[[Outcome], str | None],
) -> list[DepotSummary]:
    """Summary row per key (depot or warehouse), in key order."""
    stops_by_key: dict[str, list[Outcome]] = {}
    for o in outcomes:
        key = key_fn(o)
        if key:
            stops_by_key.setdefault(key, []).append(o)

    rows = []
    for key in sorted(stops_by_key):
        stops = stops_by_key[key]
        acc = GroupAccumulator(key)
        for o in stops:
            acc.add(o)
        tours = [profiles[t] for t in acc.tour_ids if t in profiles]
        departed = [p for p in tours if p.departed_on_time]

        negatives = [o for o in stops if is_bad_review(o.rating)]
        chosen, chosen_pct, worst, worst_rate = _window_stats(stops)
        planned_int, real_int, most, most_v, least, least_v = _intensity(stops)

        rows.append(DepotSummary(
            key=key,
            total_deliveries=acc.total,
            total_tours=len(tours),
            punctuality_rate_planned=acc.planned_punctuality_rate,
            punctuality_rate_realized=acc.punctuality_rate,
            on_time_departure_first_late_pct=pct(
                sum(1 for p in departed if p.first_outcome.is_late), len(tours)
            ),
            on_time_departure_any_late_pct=pct(
                sum(1 for p in departed if p.late_count > 0), len(tours)
            ),
            negative_ratings_late_pct=pct(
                sum(1 for o in negatives if o.is_late), len(negatives)
            ),
            overweight_tours_pct=pct(sum(1 for p in tours if p.overweight), len(tours)),
            most_chosen_window=chosen,
            most_chosen_window_pct=chosen_pct,
            most_late_window=worst,
            most_late_window_rate=worst_rate,
            planned_intensity=planned_int,
            realized_intensity=real_int,
            most_intense_slot=most,
            most_intense_value=most_v,
            least_intense_slot=least,
            least_intense_value=least_v,
        ))
    return rows


def postal_code_summaries(outcomes: Iterable[Outcome]) -> list[PostalCodeSummary]:
    """Late share per postal code, worst first."""
    stats: dict[str, list] = {}  # code -> [warehouse, total, late]
    for o in outcomes:
        code = o.record.task.postal_code
        if not code:
            continue
        entry = stats.setdefault(code, [o.record.warehouse, 0, 0])
        entry[1] += 1
        if o.is_late:
            entry[2] += 1

    rows = [
        PostalCodeSummary(
            postal_code=code,
            warehouse=warehouse,
            total_deliveries=total,
            late_count=late,
            late_pct=pct(late, total),
        )
        for code, (warehouse, total, late) in stats.items()
    ]
    rows.sort(key=lambda r: (-(r.late_pct or 0.0), r.postal_code))
    return rows
