"""Headline figures: global discrepancy summary and quality KPIs."""

from __future__ import annotations

from dataclasses import dataclass

from tour_insight.analysis.grouping import is_bad_review, mean, pct
from tour_insight.analysis.punctuality import EARLY, LATE, Outcome
from tour_insight.analysis.tours import TourProfile


@dataclass(frozen=True)
class GlobalSummary:
    total_tours: int
    avg_duration_discrepancy: float | None  # minutes per tour
    avg_weight_discrepancy: float | None    # kg per tour
    weight_overrun_pct: float | None        # realized vs planned weight, all tours
    duration_overrun_pct: float | None
    planned_weight: float
    realized_weight: float
    planned_distance_km: float
    realized_distance_km: float
    planned_out_of_window: int
    realized_out_of_window: int


@dataclass(frozen=True)
class QualityKpis:
    negative_review_count: int
    negative_reviews_late_pct: float | None
    bad_review_rate_overloaded: float | None
    bad_review_rate_standard: float | None
    late_start_anomaly_pct: float | None


def global_summary(outcomes: list[Outcome], profiles: list[TourProfile]) -> GlobalSummary:
    planned_weight = sum(p.tour.planned_weight for p in profiles)
    realized_weight = sum(p.realized_weight for p in profiles)

    timed = [p for p in profiles if p.duration_discrepancy is not None]
    estimated = sum(p.estimated_duration for p in timed)
    realized = sum(p.realized_duration for p in timed)

    return GlobalSummary(
        total_tours=len(profiles),
        avg_duration_discrepancy=mean(sum(p.duration_discrepancy for p in timed), len(timed)),
        avg_weight_discrepancy=mean(sum(p.weight_discrepancy for p in profiles), len(profiles)),
        weight_overrun_pct=pct(realized_weight - planned_weight, planned_weight),
        duration_overrun_pct=pct(realized - estimated, estimated),
        planned_weight=round(planned_weight, 2),
        realized_weight=round(realized_weight, 2),
        planned_distance_km=round(sum(p.tour.planned_distance_km for p in profiles), 2),
        realized_distance_km=round(sum(p.tour.realized_distance_km for p in profiles), 2),
        planned_out_of_window=sum(1 for o in outcomes if o.planned_status in (LATE, EARLY)),
        realized_out_of_window=sum(1 for o in outcomes if o.status in (LATE, EARLY)),
    )


def quality_kpis(
    outcomes: list[Outcome],
    profiles: dict[str, TourProfile],
    late_start_count: int,
) -> QualityKpis:
    """Links between lateness, overload and negative reviews (rating 1-3)."""
    negatives = [o for o in outcomes if is_bad_review(o.rating)]

    overloaded_ids = {tid for tid, p in profiles.items() if p.overloaded}
    rated_over = rated_std = bad_over = bad_std = 0
    for o in outcomes:
        rating = o.rating
        if rating is None:
            continue
        if o.record.tour is not None and o.record.tour_id in overloaded_ids:
            rated_over += 1
            bad_over += is_bad_review(rating)
        else:
            rated_std += 1
            bad_std += is_bad_review(rating)

    return QualityKpis(
        negative_review_count=len(negatives),
        negative_reviews_late_pct=pct(sum(1 for o in negatives if o.is_late), len(negatives)),
        bad_review_rate_overloaded=pct(bad_over, rated_over),
        bad_review_rate_standard=pct(bad_std, rated_std),
        late_start_anomaly_pct=pct(late_start_count, len(profiles)),
    )
