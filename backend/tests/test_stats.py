"""
Tests for grading/stats.py - averages, distributions, rates, profiles.
"""

import os
import sys
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from grading.dataset import build_score_frame
from grading.stats import (
    build_student_profile,
    compute_average,
    compute_component_performance,
    compute_grade_distribution,
    compute_letter_distribution,
    compute_pass_rates,
    compute_score_summary,
    compute_subject_averages,
)


def _records(values):
    return [{"student_id": f"st{i}", "final_score": v} for i, v in enumerate(values, 1)]


@pytest.fixture
def components():
    return [
        {"id": "quiz", "subject_id": "math", "name": "Quiz", "weight": 30},
        {"id": "homework", "subject_id": "math", "name": "Homework", "weight": 20},
    ]


class TestComputeAverage:
    def test_end_to_end_average(self):
        assert compute_average(_records([92, 92, 75])) == 86.3

    def test_empty_is_zero(self):
        assert compute_average([]) == 0

    def test_zero_counts_non_numeric_skipped(self):
        assert compute_average(_records([0, 80, None, "x"])) == 40.0


class TestDistributions:
    def test_category_buckets(self):
        dist = compute_grade_distribution(_records([80, 79.9, 65, 64.9, 50, 49.9]))
        assert dist == {"excellent": 1, "good": 2, "average": 2, "poor": 1}

    def test_empty_category_buckets(self):
        assert compute_grade_distribution([]) == {"excellent": 0, "good": 0, "average": 0, "poor": 0}

    def test_non_numeric_not_counted(self):
        dist = compute_grade_distribution(_records([None, 90]))
        assert sum(dist.values()) == 1

    def test_letter_buckets(self):
        dist = compute_letter_distribution(_records([95, 72, 61, 55, 10, 12]))
        assert dist == {
            "A (80-100%)": 1,
            "B (70-79%)": 1,
            "C (60-69%)": 1,
            "D (50-59%)": 1,
            "F (0-49%)": 2,
        }


class TestComponentPerformance:
    def test_mean_raw_score_by_name(self, components):
        scores = [
            {"class_assessment_scores": {"quiz": 80, "homework": 60}},
            {"class_assessment_scores": {"quiz": 70}},
        ]
        assert compute_component_performance(scores, components) == {"Quiz": 75.0, "Homework": 60.0}

    def test_unrecorded_component_left_out(self, components):
        scores = [{"class_assessment_scores": {"quiz": 90}}]
        assert compute_component_performance(scores, components) == {"Quiz": 90.0}

    def test_keyed_by_id_without_components(self):
        scores = [{"class_assessment_scores": {"c1": 50}}]
        assert compute_component_performance(scores) == {"c1": 50.0}


class TestPassRates:
    def test_end_to_end_excellence_rate(self):
        rates = compute_pass_rates(_records([92, 92, 75]))
        assert rates["excellence_rate"] == 66.7
        assert rates["pass_rate"] == 100.0
        assert rates["excellence_count"] == 2

    def test_custom_marks(self):
        rates = compute_pass_rates(_records([40, 50, 60, 70]), pass_mark=50, excellence_mark=70)
        assert rates["pass_rate"] == 75.0
        assert rates["excellence_rate"] == 25.0

    def test_empty(self):
        rates = compute_pass_rates([])
        assert rates["pass_rate"] == 0
        assert rates["excellence_rate"] == 0


class TestScoreSummary:
    def test_summary_keys(self):
        summary = compute_score_summary(_records([92, 92, 75]))
        for key in ("count", "average", "median", "min", "max", "distribution",
                    "letter_distribution", "component_performance", "pass_rate", "excellence_rate"):
            assert key in summary
        assert summary["average"] == 86.3
        assert summary["max"] == 92.0

    def test_empty_summary(self):
        summary = compute_score_summary([])
        assert summary["count"] == 0
        assert summary["average"] == 0
        assert summary["median"] is None
        assert set(summary["distribution"].values()) == {0}


@pytest.fixture
def frame():
    subjects = [
        {"id": "math", "name": "Mathematics", "grade_level_id": "g1", "trimester_id": "t1", "academic_year_id": "y1"},
        {"id": "sci", "name": "Science", "grade_level_id": "g1", "trimester_id": "t1", "academic_year_id": "y1"},
        {"id": "eng", "name": "English", "grade_level_id": "g1", "trimester_id": "t1", "academic_year_id": "y1"},
    ]
    students = [{"id": "a", "name": "Ada"}]
    scores = [
        {"student_id": "a", "subject_id": "math", "final_score": 90,
         "class_assessment_scores": {"quiz": 85, "homework": 40}},
        {"student_id": "a", "subject_id": "sci", "final_score": 60},
        {"student_id": "a", "subject_id": "eng", "final_score": 75},
    ]
    return build_score_frame(scores, subjects, students)


class TestFrameReductions:
    def test_subject_averages_best_first(self, frame):
        rows = compute_subject_averages(frame)
        assert [r["subject"] for r in rows] == ["Mathematics", "English", "Science"]

    def test_student_profile(self, frame, components):
        profile = build_student_profile(frame, "a", components)
        assert profile["name"] == "Ada"
        assert profile["average"] == 75.0
        assert profile["strongest_subjects"][0]["subject"] == "Mathematics"
        assert profile["weakest_subjects"][0]["subject"] == "Science"
        assert profile["weakest_component"] == {"component": "Homework", "score": 40.0}

    def test_unknown_student(self, frame):
        assert build_student_profile(frame, "nobody") is None
