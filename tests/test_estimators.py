"""Tests for completion-date estimators."""

from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from turnaround_tracker.core import estimators as estimators_mod
from turnaround_tracker.core.metrics import compute_project_stats
from turnaround_tracker.db.models import Activity, Package

T0 = datetime(2024, 8, 15)


def h(hours: float) -> datetime:
    return T0 + timedelta(hours=hours)


@pytest.fixture
def project():
    packages = [Package("P", "Exchangers", h(0), h(100))]
    activities = [
        Activity("a", "A", "P", "T", h(0), h(4), status="Completed", start_time=h(0), end_time=h(4)),
        Activity("b", "B", "P", "T", h(4), h(8), status="In Progress", start_time=h(4)),
        Activity("c", "C", "P", "T", h(8), h(12)),
        Activity("d", "D", "P", "T", h(12), h(16)),
    ]
    return packages, activities


class TestFormulaEstimator:
    def test_matches_stats(self, project):
        packages, activities = project
        estimate = estimators_mod.FormulaEstimator().estimate(activities, packages, h(10))
        assert estimate.source == "formula"
        assert estimate.date == h(40)


class TestExternalEstimator:
    def test_uses_prediction(self, project):
        packages, activities = project
        predict = MagicMock(return_value=("2024-08-18T12:00:00", "Crew shortage"))
        estimate = estimators_mod.ExternalEstimator(predict).estimate(activities, packages, h(10))
        predict.assert_called_once_with(packages, activities, h(10))
        assert estimate.source == "external"
        assert estimate.date == datetime(2024, 8, 18, 12, 0)
        assert estimate.reasoning == "Crew shortage"

    def test_falls_back_on_failure(self, project):
        packages, activities = project
        predict = MagicMock(side_effect=RuntimeError("service down"))
        estimate = estimators_mod.ExternalEstimator(predict).estimate(activities, packages, h(10))
        assert estimate.source == "formula"
        assert estimate.date == h(40)

    def test_offset_prediction_is_made_naive(self, project):
        packages, activities = project
        predict = MagicMock(return_value=("2024-08-18T12:00:00+00:00", ""))
        estimate = estimators_mod.ExternalEstimator(predict).estimate(activities, packages, h(10))
        assert estimate.source == "external"
        assert estimate.date.tzinfo is None
        assert isinstance(estimators_mod.variance_hours(h(16), estimate), float)

    def test_falls_back_on_bad_date(self, project):
        packages, activities = project
        predict = MagicMock(return_value=("soon", ""))
        estimate = estimators_mod.ExternalEstimator(predict).estimate(activities, packages, h(10))
        assert estimate.source == "formula"


class TestChooseEstimate:
    def test_override_inside_band(self, project):
        packages, activities = project
        stats = compute_project_stats(activities, packages, h(10))
        external = estimators_mod.ExternalEstimator(lambda *_: (h(90), "model"))
        estimate = estimators_mod.choose_estimate(stats, activities, packages, h(10), external)
        assert estimate.source == "external"
        assert estimate.date == h(90)
        assert estimators_mod.variance_hours(stats.planned_end_date, estimate) == pytest.approx(10.0)

    def test_formula_outside_band(self, project):
        packages, activities = project
        for a in activities:
            a.status, a.start_time, a.end_time = "Completed", h(0), h(20)
        stats = compute_project_stats(activities, packages, h(30))
        external = MagicMock()
        estimate = estimators_mod.choose_estimate(stats, activities, packages, h(30), external)
        external.estimate.assert_not_called()
        assert estimate.source == "formula"
        assert estimate.date == h(20)

    def test_no_external(self, project):
        packages, activities = project
        stats = compute_project_stats(activities, packages, h(10))
        estimate = estimators_mod.choose_estimate(stats, activities, packages, h(10))
        assert estimate.date == stats.estimated_end_date

    def test_variance_without_dates(self):
        estimate = estimators_mod.EndDateEstimate(date=None)
        assert estimators_mod.variance_hours(h(10), estimate) == 0.0
