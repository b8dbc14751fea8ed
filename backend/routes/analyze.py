"""
Analyze routes - grade computation, ranking, distribution and trend endpoints.
"""

import logging

from fastapi import APIRouter, HTTPException

from grading.dataset import build_score_frame
from grading.grade_bands import get_all_grade_thresholds
from grading.narrative import narrate_comparison
from grading.ranking import build_ranking_report, get_top_students, rank_students_by_average
from grading.scoring import score_breakdown
from grading.stats import build_student_profile, compute_score_summary
from grading.trends import (
    build_student_trend,
    build_trend_series,
    classify_trend,
    compare_with_previous,
)
from routes.payload import (
    EXCELLENCE_MARK,
    PASS_MARK,
    aggregate_cache,
    cohort_students,
    filters_from,
    load_cohort,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _require_filter(cohort: dict, key: str) -> str:
    value = cohort["filters"].get(key)
    if not value:
        raise HTTPException(400, f"Provide 'filters.{key}'.")
    return value


@router.post("/final-scores")
async def final_scores(payload: dict):
    """Score records with exam, normalized assessment and final score attached."""
    cohort = load_cohort(payload)
    return {"scores": cohort["scores"]}


@router.post("/ranking")
async def ranking(payload: dict):
    """
    Competition ranking. scope='subject' ranks one subject offering's cohort
    by final score; scope='grade-level' ranks students by their average.
    """
    scope = payload.get("scope", "subject")
    cohort = load_cohort(payload)

    if scope == "subject":
        subject_id = _require_filter(cohort, "subject_id")
        if not cohort["subjects"]:
            raise HTTPException(404, f"Subject '{subject_id}' not found.")
        subject = cohort["subjects"][0]
        students = cohort_students(cohort["students"], subject) or [
            {"id": s.get("student_id")} for s in cohort["scores"]
        ]
        rows = build_ranking_report(students, cohort["scores"], cohort["components"])
        return {"scope": scope, "subject_id": subject_id, "subject_name": subject.get("name"), "rankings": rows}

    if scope == "grade-level":
        grade_level_id = _require_filter(cohort, "grade_level_id")
        rows = rank_students_by_average(cohort["scores"], cohort["students"])
        return {"scope": scope, "grade_level_id": grade_level_id, "rankings": rows}

    raise HTTPException(400, "scope must be 'subject' or 'grade-level'.")


@router.post("/top-students")
async def top_students(payload: dict):
    """Best students by average final score across the selected offerings."""
    cohort = load_cohort(payload)
    limit = int(payload.get("limit", 5))
    return {"students": get_top_students(cohort["scores"], cohort["students"], limit=limit)}


@router.post("/distribution")
async def distribution(payload: dict):
    """Average, category and letter distributions, component means, pass rates."""
    cohort = load_cohort(payload)
    return compute_score_summary(
        cohort["scores"],
        cohort["components"],
        pass_mark=PASS_MARK,
        excellence_mark=EXCELLENCE_MARK,
    )


@router.post("/trend")
async def trend(payload: dict):
    """Per-trimester average series for the selected cohort."""
    cohort = load_cohort(payload)
    if not cohort["trimesters"]:
        raise HTTPException(400, "No trimesters provided.")
    series = build_trend_series(
        cohort["scores"],
        cohort["subjects"],
        cohort["trimesters"],
        subject_id=cohort["filters"].get("subject_id"),
        grade_level_id=cohort["filters"].get("grade_level_id"),
        academic_years=cohort["academic_years"],
    )
    return {"series": series, "direction": classify_trend(series)}


@router.post("/student/{student_id}/trend")
async def student_trend(student_id: str, payload: dict):
    """One student's per-trimester average across their subjects."""
    cohort = load_cohort(payload)
    if not cohort["trimesters"]:
        raise HTTPException(400, "No trimesters provided.")
    series = build_student_trend(
        student_id,
        cohort["scores"],
        cohort["subjects"],
        cohort["trimesters"],
        academic_years=cohort["academic_years"],
    )
    return {"student_id": student_id, "series": series, "direction": classify_trend(series)}


@router.post("/student/{student_id}/profile")
async def student_profile(student_id: str, payload: dict):
    """Strongest and weakest subjects plus weakest component for one student."""
    cohort = load_cohort(payload)
    df = build_score_frame(
        cohort["scores"],
        cohort["subjects"],
        cohort["students"],
        trimesters=cohort["trimesters"],
        academic_years=cohort["academic_years"],
    )
    result = build_student_profile(df, student_id, cohort["components"])
    if result is None:
        raise HTTPException(404, f"Student '{student_id}' not found.")
    return result


@router.post("/student/{student_id}/breakdown")
async def student_breakdown(student_id: str, payload: dict):
    """Per-component detail of each of the student's score records."""
    cohort = load_cohort(payload)
    own = [s for s in cohort["scores"] if str(s.get("student_id")) == student_id]
    if not own:
        raise HTTPException(404, f"Student '{student_id}' not found.")
    return {
        "student_id": student_id,
        "subjects": [score_breakdown(s, cohort["components"]) for s in own],
    }


@router.post("/comparison")
async def comparison(payload: dict):
    """Current trimester against the immediately preceding one."""
    filters = filters_from(payload)
    trimester_id = filters.pop("trimester_id", None)
    if not trimester_id:
        raise HTTPException(400, "Provide 'filters.trimester_id'.")
    # both periods must stay in scope
    filters.pop("academic_year_id", None)
    cohort = load_cohort({**payload, "filters": filters})
    result = compare_with_previous(
        cohort["scores"],
        cohort["subjects"],
        cohort["trimesters"],
        trimester_id,
        subject_id=filters.get("subject_id"),
        grade_level_id=filters.get("grade_level_id"),
        academic_years=cohort["academic_years"],
    )
    return {
        "comparison": result,
        "narrative": narrate_comparison(result) if result else None,
    }


@router.post("/cache/invalidate")
async def invalidate_cache(payload: dict):
    """Drop cached aggregates after a write to scores or components."""
    teacher_id = payload.get("teacher_id")
    if not teacher_id:
        raise HTTPException(400, "Provide 'teacher_id'.")
    removed = aggregate_cache.invalidate(teacher_id, payload.get("subject_id"))
    return {"status": "ok", "invalidated": removed}


@router.get("/grade-scale")
async def grade_scale():
    """Performance-category and letter-grade thresholds."""
    return {
        "pass_mark": PASS_MARK,
        "excellence_mark": EXCELLENCE_MARK,
        "performance": get_all_grade_thresholds("performance"),
        "letter": get_all_grade_thresholds("letter"),
    }
