"""Join tasks to their parent tours."""

from __future__ import annotations

import logging
from typing import Iterable

from tour_insight.analysis.records import MergedRecord, Task, Tour

logger = logging.getLogger(__name__)


def merge_records(tours: Iterable[Tour], tasks: Iterable[Task]) -> list[MergedRecord]:
    """One merged record per task, in task order, with a 1-based ``ordre``.

    Tasks whose tour is unknown are kept with ``tour=None``.  When two tours
    share an id the later one wins.
    """
    by_id: dict[str, Tour] = {}
    for tour in tours:
        if tour.unique_id in by_id:
            logger.warning("Duplicate tour id %s, keeping the last occurrence", tour.unique_id)
        by_id[tour.unique_id] = tour

    merged = [
        MergedRecord(task=task, tour=by_id.get(task.tour_unique_id), ordre=index + 1)
        for index, task in enumerate(tasks)
    ]
    orphans = sum(1 for rec in merged if rec.tour is None)
    if orphans:
        logger.info("%d of %d tasks have no matching tour", orphans, len(merged))
    return merged
