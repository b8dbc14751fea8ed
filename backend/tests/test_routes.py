"""
Tests for the API routes - analyze, insights and error responses.
"""

import copy
import os
import sys
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from fastapi.testclient import TestClient

from main import app

client = TestClient(app)

GRADEBOOK = {
    "students": [
        {"id": "a", "name": "Ada", "grade_level_id": "g1"},
        {"id": "b", "name": "Ben", "grade_level_id": "g1"},
        {"id": "c", "name": "Cy", "grade_level_id": "g1"},
    ],
    "academic_years": [{"id": "y1", "name": "2024-2025", "start_date": "2024-09-01"}],
    "trimesters": [
        {"id": "t1", "name": "Trimester 1", "academic_year_id": "y1", "order": 1},
        {"id": "t2", "name": "Trimester 2", "academic_year_id": "y1", "order": 2},
        {"id": "t3", "name": "Trimester 3", "academic_year_id": "y1", "order": 3},
    ],
    "subjects": [
        {"id": "m1", "name": "Mathematics", "grade_level_id": "g1", "trimester_id": "t1",
         "academic_year_id": "y1", "teacher_id": "tch1"},
        {"id": "m2", "name": "Mathematics", "grade_level_id": "g1", "trimester_id": "t2",
         "academic_year_id": "y1", "teacher_id": "tch1"},
    ],
    "components": [
        {"id": "q1", "subject_id": "m1", "name": "Quiz", "weight": 25},
        {"id": "h1", "subject_id": "m1", "name": "Homework", "weight": 25},
        {"id": "q2", "subject_id": "m2", "name": "Quiz", "weight": 25},
        {"id": "h2", "subject_id": "m2", "name": "Homework", "weight": 25},
    ],
    "scores": [
        {"id": "1", "student_id": "a", "subject_id": "m1", "exam_score": 92,
         "class_assessment_scores": {"q1": 92, "h1": 92}},
        {"id": "2", "student_id": "b", "subject_id": "m1", "exam_score": 92,
         "class_assessment_scores": {"q1": 92}},
        {"id": "3", "student_id": "c", "subject_id": "m1", "exam_score": 75,
         "class_assessment_scores": {"q1": 75, "h1": 75}},
        {"id": "4", "student_id": "a", "subject_id": "m2", "exam_score": 80,
         "class_assessment_scores": {"q2": 80, "h2": 80}},
        {"id": "5", "student_id": "b", "subject_id": "m2", "exam_score": 90,
         "class_assessment_scores": {"q2": 70}},
        {"id": "6", "student_id": "c", "subject_id": "m2", "exam_score": 60,
         "class_assessment_scores": {"q2": 60, "h2": 60}},
    ],
}


@pytest.fixture
def payload():
    return copy.deepcopy(GRADEBOOK)


class TestHealth:
    def test_health(self):
        r = client.get("/api/health")
        assert r.status_code == 200
        assert r.json()["status"] == "ok"

    def test_config(self):
        body = client.get("/api/config").json()
        assert "pass_mark" in body and "excellence_mark" in body


class TestFinalScores:
    def test_quiz_only_final_score(self, payload):
        scores = client.post("/api/analyze/final-scores", json=payload).json()["scores"]
        ben = next(s for s in scores if s["id"] == "5")
        assert ben["assessment_score"] == 70.0
        assert ben["final_score"] == 80.0

    def test_input_order_kept(self, payload):
        scores = client.post("/api/analyze/final-scores", json=payload).json()["scores"]
        assert [s["id"] for s in scores] == ["1", "2", "3", "4", "5", "6"]

    def test_missing_subjects(self, payload):
        del payload["subjects"]
        assert client.post("/api/analyze/final-scores", json=payload).status_code == 400


class TestRanking:
    def test_subject_ranking(self, payload):
        payload["filters"] = {"subject_id": "m1"}
        body = client.post("/api/analyze/ranking", json=payload).json()
        assert [r["rank"] for r in body["rankings"]] == [1, 1, 3]
        assert body["rankings"][-1]["name"] == "Cy"

    def test_grade_level_ranking(self, payload):
        payload["scope"] = "grade-level"
        payload["filters"] = {"grade_level_id": "g1"}
        body = client.post("/api/analyze/ranking", json=payload).json()
        assert [r["average_score"] for r in body["rankings"]] == [86.0, 86.0, 67.5]
        assert [r["rank"] for r in body["rankings"]] == [1, 1, 3]

    def test_subject_filter_required(self, payload):
        assert client.post("/api/analyze/ranking", json=payload).status_code == 400

    def test_unknown_scope(self, payload):
        payload["scope"] = "galaxy"
        assert client.post("/api/analyze/ranking", json=payload).status_code == 400


class TestDistribution:
    def test_end_to_end_summary(self, payload):
        payload["filters"] = {"subject_id": "m1"}
        body = client.post("/api/analyze/distribution", json=payload).json()
        assert body["average"] == 86.3
        assert body["excellence_rate"] == 66.7
        assert body["distribution"] == {"excellent": 2, "good": 1, "average": 0, "poor": 0}
        assert body["component_performance"]["Quiz"] == 86.3

    def test_empty_cohort(self, payload):
        payload["filters"] = {"subject_id": "nothing"}
        body = client.post("/api/analyze/distribution", json=payload).json()
        assert body["average"] == 0
        assert body["count"] == 0


class TestTrends:
    def test_trend_omits_empty_trimester(self, payload):
        body = client.post("/api/analyze/trend", json=payload).json()
        assert [p["trimester_id"] for p in body["series"]] == ["t1", "t2"]
        assert body["direction"] == "declining"

    def test_student_trend(self, payload):
        body = client.post("/api/analyze/student/c/trend", json=payload).json()
        assert [p["average_score"] for p in body["series"]] == [75.0, 60.0]

    def test_comparison(self, payload):
        payload["filters"] = {"trimester_id": "t2"}
        body = client.post("/api/analyze/comparison", json=payload).json()
        assert body["comparison"]["previous_trimester_id"] == "t1"
        assert body["comparison"]["delta"] == -13.0
        assert body["narrative"].startswith("Declined by 13.0 points")

    def test_comparison_without_previous(self, payload):
        payload["filters"] = {"trimester_id": "t1"}
        body = client.post("/api/analyze/comparison", json=payload).json()
        assert body["comparison"] is None


class TestStudentViews:
    def test_profile(self, payload):
        body = client.post("/api/analyze/student/a/profile", json=payload).json()
        assert body["name"] == "Ada"
        assert body["average"] == 86.0

    def test_profile_not_found(self, payload):
        assert client.post("/api/analyze/student/zz/profile", json=payload).status_code == 404

    def test_breakdown(self, payload):
        body = client.post("/api/analyze/student/b/breakdown", json=payload).json()
        first = body["subjects"][0]
        assert [c["recorded"] for c in first["components"]] == [True, False]


class TestInsights:
    def test_teacher_required(self, payload):
        assert client.post("/api/insights?type=all", json=payload).status_code == 400

    def test_unknown_type(self, payload):
        r = client.post("/api/insights?type=gossip&teacher_id=tch1", json=payload)
        assert r.status_code == 400

    def test_all(self, payload):
        body = client.post("/api/insights?type=all&teacher_id=tch1", json=payload).json()
        assert set(body) == {"at_risk_students", "top_performers", "summary", "anomalies"}
        assert body["summary"]["class_average"] == 79.8

    def test_at_risk(self, payload):
        body = client.post("/api/insights?type=at-risk&teacher_id=tch1", json=payload).json()
        cy = next(s for s in body if s["student_id"] == "c")
        assert "Recent performance declining" in cy["risk_factors"]

    def test_scoped_to_teacher(self, payload):
        body = client.post("/api/insights?type=at-risk&teacher_id=someone-else", json=payload).json()
        assert body == []


class TestErrors:
    def test_unknown_subject_reference(self, payload):
        payload["scores"].append({"id": "bad", "student_id": "a", "subject_id": "zz"})
        r = client.post("/api/analyze/final-scores", json=payload)
        assert r.status_code == 422
        assert r.json()["error"]["code"] == "INVALID_DATA"

    def test_scores_must_be_list(self, payload):
        payload["scores"] = {"oops": True}
        assert client.post("/api/analyze/final-scores", json=payload).status_code == 400


class TestCacheInvalidate:
    def test_invalidate(self, payload):
        client.post("/api/analyze/final-scores", json=payload)
        body = client.post("/api/analyze/cache/invalidate", json={"teacher_id": "tch1"}).json()
        assert body["status"] == "ok"
        assert body["invalidated"] >= 1

    def test_teacher_required(self):
        assert client.post("/api/analyze/cache/invalidate", json={}).status_code == 400
