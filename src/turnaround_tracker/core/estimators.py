"""Pluggable estimators for the project completion date."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Protocol

from turnaround_tracker.core.clock import naive_local, parse_timestamp
from turnaround_tracker.core.metrics import ProjectStats, compute_project_stats
from turnaround_tracker.db.models import Activity, Package

logger = logging.getLogger(__name__)

# (packages, activities, as_of) -> (predicted end, reasoning)
Predictor = Callable[[list[Package], list[Activity], datetime], tuple[datetime | str, str]]


@dataclass
class EndDateEstimate:
    date: datetime | None
    reasoning: str | None = None
    source: str = "formula"


class EndDateEstimator(Protocol):
    def estimate(
        self, activities: list[Activity], packages: list[Package], as_of: datetime
    ) -> EndDateEstimate: ...


class FormulaEstimator:
    """Linear run-rate projection used by the project stats."""

    def estimate(self, activities, packages, as_of) -> EndDateEstimate:
        stats = compute_project_stats(activities, packages, as_of)
        return EndDateEstimate(date=stats.estimated_end_date, source="formula")


class ExternalEstimator:
    """Delegates to an external predictor, falling back to the formula on failure.

    The prediction is for display only and never written back to any record.
    """

    def __init__(self, predict: Predictor, fallback: EndDateEstimator | None = None):
        self.predict = predict
        self.fallback = fallback or FormulaEstimator()

    def estimate(self, activities, packages, as_of) -> EndDateEstimate:
        try:
            predicted, reasoning = self.predict(packages, activities, as_of)
            if isinstance(predicted, str):
                predicted = parse_timestamp(predicted)
            predicted = naive_local(predicted)
        except Exception:
            logger.exception("External end-date prediction failed, using formula estimate")
            return self.fallback.estimate(activities, packages, as_of)
        return EndDateEstimate(date=predicted, reasoning=reasoning, source="external")


def choose_estimate(
    stats: ProjectStats,
    activities: list[Activity],
    packages: list[Package],
    as_of: datetime,
    external: EndDateEstimator | None = None,
    low: float = 5.0,
    high: float = 95.0,
) -> EndDateEstimate:
    """Pick the estimate to display.

    The external estimator is only consulted while actual progress is strictly
    between ``low`` and ``high`` percent; outside that band the formula value
    already carried by ``stats`` is used.
    """
    if external is not None and low < stats.actual_progress < high:
        return external.estimate(activities, packages, as_of)
    return EndDateEstimate(date=stats.estimated_end_date, source="formula")


def variance_hours(planned_end: datetime | None, estimate: EndDateEstimate) -> float:
    """Planned end minus estimated end, in hours (positive means ahead)."""
    if planned_end is None or estimate.date is None:
        return 0.0
    return (planned_end - estimate.date).total_seconds() / 3600
