"""
Tests for analytics scores and team reports.
"""

import pytest

from taskpulse.errors import Forbidden, ValidationFailed
from taskpulse.services import AnalyticsService, TaskStatsEstimator


class FixedEstimator:
    """Estimator returning one score and recording its calls."""

    def __init__(self, score):
        self.score = score
        self.calls = []

    def estimate(self, metric, subject_id):
        self.calls.append((metric, subject_id))
        return self.score


@pytest.fixture
def estimator():
    return FixedEstimator(87.5)


@pytest.fixture
def analytics(people, dispatcher, estimator):
    return AnalyticsService(people, dispatcher, estimator=estimator)


class TestMetrics:
    """Test per-user metric scores."""

    def test_own_metric(self, analytics, employee, estimator, dispatcher):
        data = analytics.productivity(employee)

        assert data["userId"] == "U2"
        assert data["score"] == 87.5
        assert estimator.calls == [("productivity", "U2")]
        assert dispatcher.routed() == [("analytics:U2", "productivity-updated")]

    def test_manager_reads_anyone(self, analytics, manager, dispatcher):
        assert analytics.quality(manager, "U3")["userId"] == "U3"
        assert dispatcher.routed() == [("analytics:M1", "quality-updated")]

    def test_employee_cannot_read_others(self, analytics, employee, dispatcher):
        with pytest.raises(Forbidden):
            analytics.efficiency(employee, "U4")
        assert dispatcher.events == []

    def test_unknown_metric(self, analytics, employee):
        with pytest.raises(ValidationFailed):
            analytics.metric(employee, "happiness")


class TestTaskStatsEstimator:
    """Test scores derived from assigned tasks."""

    def test_scores(self, store):
        """Half done, half of those on time, half of those approved."""
        base = {"assignedTo": "U2", "isDeleted": False, "deadline": "2026-01-10T00:00:00+00:00"}
        store.insert("tasks", {**base, "status": "completed", "completedAt": "2026-01-05T12:00:00+00:00", "approvedBy": "M1"})
        store.insert("tasks", {**base, "status": "completed", "completedAt": "2026-02-01T12:00:00+00:00"})
        store.insert("tasks", {**base, "status": "in_progress"})
        store.insert("tasks", {**base, "status": "pending"})
        store.insert("tasks", {**base, "status": "completed", "isDeleted": True})

        estimator = TaskStatsEstimator(store)
        assert estimator.estimate("productivity", "U2") == 50.0
        assert estimator.estimate("efficiency", "U2") == 50.0
        assert estimator.estimate("quality", "U2") == 50.0
        assert estimator.estimate("productivity", "nobody") == 0.0


class TestReports:
    """Test team report generation."""

    def test_team_report(self, analytics, manager, dispatcher):
        report = analytics.generate_team_report(manager, "T1", "performance")

        assert report["summary"]["totalMembers"] == 3
        assert report["summary"]["averageProductivity"] == 87.5
        assert dispatcher.events == [
            ("team:T1", "report-generated", {"reportId": report["id"], "reportType": "performance"}),
        ]

    def test_employee_cannot_generate(self, analytics, employee):
        with pytest.raises(Forbidden):
            analytics.generate_team_report(employee, "T1", "performance")

    def test_invalid_type(self, analytics, manager):
        with pytest.raises(ValidationFailed):
            analytics.generate_team_report(manager, "T1", "vibes")
