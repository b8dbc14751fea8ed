"""
Payload helpers shared by the route modules - entity extraction, filtering
and cached final-score aggregation.
"""

import logging
import os
from typing import Any, Dict, List, Optional

from fastapi import HTTPException

from grading.cache import AggregateCache
from grading.dataset import validate_scores
from grading.scoring import attach_final_scores

logger = logging.getLogger(__name__)

PASS_MARK = float(os.getenv("PASS_MARK", "60"))
EXCELLENCE_MARK = float(os.getenv("EXCELLENCE_MARK", "80"))
CACHE_TTL_SECONDS = int(os.getenv("CACHE_TTL_SECONDS", "3600"))

FILTER_KEYS = ("subject_id", "grade_level_id", "trimester_id", "academic_year_id", "teacher_id")

aggregate_cache = AggregateCache(ttl_seconds=CACHE_TTL_SECONDS)


def entities(payload: dict, key: str, required: bool = False) -> List[dict]:
    """Extract a list of entity records from the request payload."""
    value = payload.get(key)
    if value is None:
        if required:
            raise HTTPException(400, f"No {key} provided.")
        return []
    if not isinstance(value, list):
        raise HTTPException(400, f"'{key}' must be a list.")
    return value


def filters_from(payload: dict) -> Dict[str, str]:
    raw = payload.get("filters") or {}
    if not isinstance(raw, dict):
        raise HTTPException(400, "'filters' must be an object.")
    return {k: str(raw[k]) for k in FILTER_KEYS if raw.get(k) is not None}


def filter_subjects(subjects: List[dict], filters: Dict[str, str]) -> List[dict]:
    """Subject offerings matching every given filter."""
    field_for = {"subject_id": "id"}
    selected = []
    for subject in subjects:
        if all(
            str(subject.get(field_for.get(key, key))) == value
            for key, value in filters.items()
        ):
            selected.append(subject)
    return selected


def cohort_students(students: List[dict], subject: dict) -> List[dict]:
    """Students enrolled in the subject offering's grade level."""
    grade_level = subject.get("grade_level_id")
    if grade_level is None or not any("grade_level_id" in s for s in students):
        return students
    return [s for s in students if str(s.get("grade_level_id")) == str(grade_level)]


def final_scored(
    scores: List[dict],
    subjects: List[dict],
    components: List[dict],
    teacher_id: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Attach final scores, memoized per (teacher, subject offering). Records
    come back in input order.
    """
    subjects_by_id = {str(s.get("id")): s for s in subjects}
    positions: Dict[str, List[int]] = {}
    for idx, score in enumerate(scores):
        positions.setdefault(str(score.get("subject_id")), []).append(idx)

    result: List[Optional[Dict[str, Any]]] = [None] * len(scores)
    for subject_id, idxs in positions.items():
        subject = subjects_by_id.get(subject_id, {})
        owner = teacher_id or subject.get("teacher_id") or "-"
        records = [scores[i] for i in idxs]
        subject_components = [c for c in components if str(c.get("subject_id")) == subject_id]
        scored = aggregate_cache.get_or_compute(
            owner,
            subject_id,
            (records, subject_components),
            lambda: attach_final_scores(records, subject_components),
        )
        for i, record in zip(idxs, scored):
            result[i] = dict(record)
    return result


def load_cohort(payload: dict, teacher_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Validate the payload, apply filters and return the selected subjects
    with their final-scored records.
    """
    subjects = entities(payload, "subjects", required=True)
    scores = entities(payload, "scores")
    students = payload.get("students")
    if students is not None and not isinstance(students, list):
        raise HTTPException(400, "'students' must be a list.")
    components = entities(payload, "components")

    validate_scores(scores, subjects, students)

    filters = filters_from(payload)
    if teacher_id is not None:
        filters["teacher_id"] = str(teacher_id)
    selected = filter_subjects(subjects, filters)
    selected_ids = {str(s.get("id")) for s in selected}
    in_scope = [s for s in scores if str(s.get("subject_id")) in selected_ids]

    return {
        "filters": filters,
        "subjects": selected,
        "all_subjects": subjects,
        "students": students or [],
        "components": components,
        "scores": final_scored(in_scope, selected, components, teacher_id),
        "trimesters": entities(payload, "trimesters"),
        "academic_years": payload.get("academic_years"),
    }
