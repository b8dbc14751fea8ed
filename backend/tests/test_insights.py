"""
Tests for grading/insights.py - at-risk, top performers, summary, anomalies.
"""

import os
import sys
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from grading.dataset import build_score_frame
from grading.insights import (
    detect_score_anomalies,
    generate_insights,
    generate_performance_summary,
    identify_at_risk_students,
    identify_top_performers,
)

TRIMESTERS = [
    {"id": f"t{i}", "name": f"Trimester {i}", "academic_year_id": "y1", "order": i}
    for i in (1, 2, 3)
]


def _frame(marks):
    """marks: {student_id: {subject: [t1, t2, t3]}}, None for no record."""
    subject_names = sorted({name for per in marks.values() for name in per})
    subjects = [
        {"id": f"{name}-{t['id']}", "name": name, "grade_level_id": "g1",
         "trimester_id": t["id"], "academic_year_id": "y1", "teacher_id": "tch1"}
        for name in subject_names
        for t in TRIMESTERS
    ]
    scores = []
    for student_id, per in marks.items():
        for name, values in per.items():
            for t, value in zip(TRIMESTERS, values):
                if value is not None:
                    scores.append({"student_id": student_id, "subject_id": f"{name}-{t['id']}",
                                   "final_score": value})
    students = [{"id": sid, "name": sid.capitalize()} for sid in marks]
    return build_score_frame(scores, subjects, students, trimesters=TRIMESTERS)


@pytest.fixture
def cohort():
    return _frame({
        "ada": {"Mathematics": [90, 92, 95], "Science": [88, 90, 91]},
        "ben": {"Mathematics": [70, 65, 40], "Science": [60, 55, 45]},
        "cy": {"Mathematics": [75, 72, None], "Science": [70, 74, None]},
        "dee": {"Mathematics": [50, 80, 85], "Science": [70, 72, 74]},
    })


@pytest.fixture
def empty():
    return build_score_frame([], [])


class TestAtRiskStudents:
    def test_flags_declining_low_performer(self, cohort):
        result = identify_at_risk_students(cohort)
        ben = result[0]
        assert ben["student_name"] == "Ben"
        assert ben["risk_factors"] == [
            "Low overall average",
            "Struggling in Science",
            "Struggling in Mathematics",
            "Recent performance declining",
        ]
        assert ben["trend_direction"] == "declining"
        assert ben["risk_score"] == 84.2
        assert ben["risk_level"] == "high"

    def test_missing_recent_scores(self, cohort):
        result = identify_at_risk_students(cohort)
        cy = next(s for s in result if s["student_id"] == "cy")
        assert cy["risk_factors"] == ["Missing recent scores (Trimester 3)"]
        assert cy["risk_score"] == 32.3
        assert cy["risk_level"] == "low"

    def test_only_students_with_factors(self, cohort):
        ids = [s["student_id"] for s in identify_at_risk_students(cohort)]
        assert ids == ["ben", "cy"]

    def test_threshold_override(self, cohort):
        ids = [s["student_id"] for s in identify_at_risk_students(cohort, {"at_risk_average": 75})]
        assert "dee" in ids

    def test_risk_score_clamped(self):
        df = _frame({"zed": {"Mathematics": [40, 20, 0], "Science": [30, 10, 0]}})
        assert identify_at_risk_students(df)[0]["risk_score"] == 100.0

    def test_empty(self, empty):
        assert identify_at_risk_students(empty) == []


class TestTopPerformers:
    def test_high_average(self, cohort):
        result = identify_top_performers(cohort)
        assert [s["student_id"] for s in result] == ["ada"]
        assert result[0]["strongest_subjects"] == ["Mathematics", "Science"]
        assert result[0]["trend_direction"] == "stable"

    def test_single_strong_subject_qualifies(self):
        df = _frame({"eve": {"Mathematics": [88, 90, 92], "Science": [50, 55, 60]}})
        result = identify_top_performers(df)
        assert result[0]["strongest_subjects"] == ["Mathematics"]

    def test_empty(self, empty):
        assert identify_top_performers(empty) == []


class TestPerformanceSummary:
    def test_counts_and_average(self, cohort):
        summary = generate_performance_summary(cohort)
        assert summary["class_average"] == 72.9
        assert summary["at_risk_count"] == 2
        assert summary["top_performer_count"] == 1
        assert "4 students across 2 subjects" in summary["summary"]

    def test_top_subjects_and_improvement_areas(self, cohort):
        summary = generate_performance_summary(cohort, {"top_subject": 74, "improvement_area": 72})
        assert summary["top_subjects"] == ["Mathematics"]
        assert summary["improvement_areas"] == ["Science"]

    def test_empty(self, empty):
        summary = generate_performance_summary(empty)
        assert summary["summary"].startswith("Not enough data")
        assert summary["class_average"] == 0
        assert summary["top_subjects"] == []


class TestScoreAnomalies:
    def test_cohort_anomalies(self, cohort):
        found = {(a["student_id"], a["subject_name"], a["anomaly_type"]) for a in detect_score_anomalies(cohort)}
        assert found == {
            ("ben", "Mathematics", "sudden-drop"),
            ("dee", "Mathematics", "sudden-improvement"),
            ("dee", "Mathematics", "inconsistent-performance"),
        }

    def test_severity(self):
        df = _frame({"fay": {"Mathematics": [90, 55, None]}})
        anomaly = detect_score_anomalies(df)[0]
        assert anomaly["anomaly_type"] == "sudden-drop"
        assert anomaly["severity"] == "high"
        assert anomaly["from_period"] == "Trimester 1"
        assert anomaly["to_period"] == "Trimester 2"

    def test_relative_swing_is_low_severity(self):
        df = _frame({"gus": {"Mathematics": [40, 54, None]}})
        anomaly = detect_score_anomalies(df)[0]
        assert anomaly["anomaly_type"] == "sudden-improvement"
        assert anomaly["severity"] == "low"

    def test_ordered_by_period_not_input(self):
        df = _frame({"hal": {"Mathematics": [85, 84, 50]}})
        df = df.iloc[::-1]
        anomaly = detect_score_anomalies(df)[0]
        assert anomaly["previous_score"] == 84.0
        assert anomaly["current_score"] == 50.0

    def test_single_record_no_anomaly(self):
        df = _frame({"ivy": {"Mathematics": [30, None, None]}})
        assert detect_score_anomalies(df) == []

    def test_high_severity_first(self):
        df = _frame({
            "ben": {"Mathematics": [70, 65, 40]},
            "fay": {"Mathematics": [90, 55, None]},
        })
        severities = [a["severity"] for a in detect_score_anomalies(df)]
        assert severities == sorted(severities, key=["high", "medium", "low"].index)


class TestGenerateInsights:
    def test_all(self, cohort):
        result = generate_insights(cohort, "all")
        assert set(result) == {"at_risk_students", "top_performers", "summary", "anomalies"}

    def test_single_type(self, cohort):
        assert generate_insights(cohort, "top-performers") == identify_top_performers(cohort)

    def test_all_on_empty(self, empty):
        result = generate_insights(empty, "all")
        assert result["at_risk_students"] == []
        assert result["anomalies"] == []

    def test_unknown_type(self, cohort):
        with pytest.raises(ValueError):
            generate_insights(cohort, "gossip")

    def test_unknown_threshold(self, cohort):
        with pytest.raises(ValueError):
            identify_at_risk_students(cohort, {"nonsense": 1})
