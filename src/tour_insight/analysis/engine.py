"""Analysis engine: merged records + filters -> one immutable result bundle.

Flow:
1. Filter the merged records (``apply_filters``).
2. Classify every stop once (``build_outcomes``), MAD-excused late stops
   are taken out of the punctuality measurements but stay in totals.
3. Profile every tour once (``build_tour_profiles``).
4. Fold the shared outcomes and profiles into every breakdown.

The engine never performs I/O and never mutates its inputs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from tour_insight.analysis import anomalies, comments, kpis, performance, summaries, temporal, workload
from tour_insight.analysis.filters import FilterSet, apply_filters, is_mad_excused
from tour_insight.analysis.grouping import GroupAccumulator, fold_by
from tour_insight.analysis.lookups import DEFAULT_DEPOT_LOOKUP, DepotLookup
from tour_insight.analysis.punctuality import Outcome, build_outcomes
from tour_insight.analysis.records import MergedRecord, Task, Tour
from tour_insight.analysis.tours import build_tour_profiles
from tour_insight.ingestion.merge import merge_records

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NoDataResult:
    """Returned when the filters leave nothing to analyse."""

    reason: str
    input_records: int
    has_data: bool = False


@dataclass(frozen=True)
class PunctualitySummary:
    measured: int
    on_time: int
    late: int
    early: int
    excused: int
    punctuality_rate_planned: float | None
    punctuality_rate_realized: float | None
    avg_delay: float | None
    avg_late_delay: float | None


@dataclass(frozen=True)
class AnalysisResult:
    threshold: float
    total_records: int
    total_tours: int
    punctuality: PunctualitySummary
    avg_rating: float | None
    rated_records: int

    delays_by_hour: list[temporal.CountRow]
    advances_by_hour: list[temporal.CountRow]
    delays_by_warehouse: list[temporal.CountRow]
    advances_by_warehouse: list[temporal.CountRow]
    delays_by_city: list[temporal.CountRow]
    advances_by_city: list[temporal.CountRow]
    delays_by_postal_code: list[temporal.CountRow]
    advances_by_postal_code: list[temporal.CountRow]

    performance_by_driver: list[performance.DriverPerformance]
    performance_by_city: list[performance.GroupPerformance]
    performance_by_postal_code: list[performance.GroupPerformance]
    performance_by_depot: list[performance.GroupPerformance]
    performance_by_warehouse: list[performance.GroupPerformance]
    performance_by_day_of_week: list[temporal.TimePerformance]
    performance_by_time_slot: list[temporal.TimePerformance]
    delay_histogram: list[temporal.HistogramBin]

    depot_summaries: list[summaries.DepotSummary]
    warehouse_summaries: list[summaries.DepotSummary]
    postal_code_summaries: list[summaries.PostalCodeSummary]

    overloaded_tours: list[anomalies.OverloadedTour]
    late_start_anomalies: list[anomalies.LateStartAnomaly]
    duration_discrepancies: list[anomalies.DurationDiscrepancy]

    saturation: list[workload.SaturationPoint]
    workload_by_hour: list[workload.HourlyWorkload]
    workload_by_slot: list[workload.SlotWorkload]
    average_workload: workload.AverageWorkload

    global_summary: kpis.GlobalSummary
    quality: kpis.QualityKpis
    comment_categories: dict[str, int]
    cities: list[str]
    has_data: bool = True

    @property
    def overloaded_tours_count(self) -> int:
        return len(self.overloaded_tours)

    @property
    def late_start_anomalies_count(self) -> int:
        return len(self.late_start_anomalies)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _punctuality_summary(acc: GroupAccumulator) -> PunctualitySummary:
    return PunctualitySummary(
        measured=acc.measured,
        on_time=acc.on_time,
        late=acc.late,
        early=acc.early,
        excused=acc.excused,
        punctuality_rate_planned=acc.planned_punctuality_rate,
        punctuality_rate_realized=acc.punctuality_rate,
        avg_delay=acc.avg_delay,
        avg_late_delay=acc.avg_late_delay,
    )


def _warehouse(o: Outcome) -> str:
    return o.record.warehouse


def _city(o: Outcome) -> str:
    return o.record.task.city


def _postal_code(o: Outcome) -> str:
    return o.record.task.postal_code


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def analyze(
    records: Iterable[MergedRecord],
    filters: FilterSet,
    depot_lookup: DepotLookup = DEFAULT_DEPOT_LOOKUP,
) -> AnalysisResult | NoDataResult:
    """Compute the full metrics bundle for the records matching *filters*."""
    records = list(records)
    filtered = apply_filters(records, filters, depot_lookup)
    if not filtered:
        logger.info("No records left after filtering (%d in input)", len(records))
        return NoDataResult(
            reason="no records match the active filters",
            input_records=len(records),
        )

    threshold = filters.punctuality_threshold
    outcomes = build_outcomes(filtered, threshold, lambda rec: is_mad_excused(rec, filters))
    profiles = build_tour_profiles(outcomes, filters.max_weight_threshold)
    profile_list = list(profiles.values())

    def depot(o: Outcome) -> str:
        return depot_lookup.depot_for(o.record.warehouse)

    overall = fold_by(outcomes, lambda o: "all")["all"]

    late_starts = anomalies.late_start_anomalies(profile_list)
    slot_rows, avg_workload = workload.average_workload_by_slot(outcomes)

    result = AnalysisResult(
        threshold=threshold,
        total_records=len(filtered),
        total_tours=len(profiles),
        punctuality=_punctuality_summary(overall),
        avg_rating=overall.avg_rating,
        rated_records=overall.rating_count,
        delays_by_hour=temporal.delays_by_hour(outcomes),
        advances_by_hour=temporal.advances_by_hour(outcomes),
        delays_by_warehouse=temporal.delays_by(outcomes, _warehouse),
        advances_by_warehouse=temporal.advances_by(outcomes, _warehouse),
        delays_by_city=temporal.delays_by(outcomes, _city),
        advances_by_city=temporal.advances_by(outcomes, _city),
        delays_by_postal_code=temporal.delays_by(outcomes, _postal_code),
        advances_by_postal_code=temporal.advances_by(outcomes, _postal_code),
        performance_by_driver=performance.performance_by_driver(outcomes, profiles),
        performance_by_city=performance.performance_by_group(outcomes, profiles, _city),
        performance_by_postal_code=performance.performance_by_group(outcomes, profiles, _postal_code),
        performance_by_depot=performance.performance_by_group(outcomes, profiles, depot),
        performance_by_warehouse=performance.performance_by_group(outcomes, profiles, _warehouse),
        performance_by_day_of_week=temporal.performance_by_day_of_week(outcomes),
        performance_by_time_slot=temporal.performance_by_time_slot(outcomes),
        delay_histogram=temporal.delay_histogram(outcomes, threshold),
        depot_summaries=summaries.depot_summaries(outcomes, profiles, depot),
        warehouse_summaries=summaries.depot_summaries(outcomes, profiles, _warehouse),
        postal_code_summaries=summaries.postal_code_summaries(outcomes),
        overloaded_tours=anomalies.overloaded_tours(profile_list),
        late_start_anomalies=late_starts,
        duration_discrepancies=anomalies.duration_discrepancies(profile_list),
        saturation=workload.saturation_series(outcomes),
        workload_by_hour=workload.workload_by_hour(outcomes),
        workload_by_slot=slot_rows,
        average_workload=avg_workload,
        global_summary=kpis.global_summary(outcomes, profile_list),
        quality=kpis.quality_kpis(outcomes, profiles, len(late_starts)),
        comment_categories=comments.comment_categories(outcomes),
        cities=sorted({r.task.city for r in filtered if r.task.city}),
    )
    logger.info(
        "Analysed %d records over %d tours (late=%d, early=%d, excused=%d)",
        result.total_records,
        result.total_tours,
        overall.late,
        overall.early,
        overall.excused,
    )
    return result


def run_analysis(
    tours: Iterable[Tour],
    tasks: Iterable[Task],
    filters: FilterSet | Mapping[str, Any] | None = None,
    depot_lookup: DepotLookup = DEFAULT_DEPOT_LOOKUP,
) -> AnalysisResult | NoDataResult:
    """Merge, filter and analyse in one call."""
    if not isinstance(filters, FilterSet):
        filters = FilterSet.from_mapping(filters)
    return analyze(merge_records(tours, tasks), filters, depot_lookup)
