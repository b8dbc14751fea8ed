"""
dataset.py - Entity records in, analysis frame out.

Two jobs:
- validate_scores: data-contract checks the data access boundary runs on
  score records before they reach the engine. Malformed records are
  reported, not repaired.
- build_score_frame: join scores with their subject offering, student and
  trimester into one pandas row per score, with final scores recomputed
  from the active components. The insight layer reduces over this frame.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

import pandas as pd

from grading.scoring import attach_final_scores
from grading.trends import order_trimesters

logger = logging.getLogger(__name__)

SCORE_FRAME_COLUMNS = [
    "score_id",
    "student_id",
    "student_name",
    "grade_level_id",
    "subject_id",
    "subject_name",
    "academic_year_id",
    "trimester_id",
    "period_index",
    "period",
    "created_at",
    "exam_score",
    "assessment_score",
    "final_score",
    "class_assessment_scores",
]


class GradebookDataError(ValueError):
    """Upstream records break the data contract the engine relies on."""

    def __init__(self, problems: List[str]):
        self.problems = problems
        summary = "; ".join(problems[:5])
        if len(problems) > 5:
            summary += f" (and {len(problems) - 5} more)"
        super().__init__(summary)


def _blank(value: Any) -> bool:
    return value is None or str(value).strip() == ""


def validate_scores(
    scores: Iterable[Mapping[str, Any]],
    subjects: Iterable[Mapping[str, Any]],
    students: Optional[Iterable[Mapping[str, Any]]] = None,
) -> None:
    """Raise GradebookDataError listing every malformed score record."""
    subject_ids = {str(s.get("id")) for s in subjects or []}
    student_ids = {str(s.get("id")) for s in students} if students is not None else None

    problems: List[str] = []
    for idx, score in enumerate(scores or []):
        label = score.get("id") or f"#{idx}"
        if _blank(score.get("student_id")):
            problems.append(f"score {label} has no student reference")
        elif student_ids is not None and str(score["student_id"]) not in student_ids:
            problems.append(f"score {label} references unknown student {score['student_id']}")
        if _blank(score.get("subject_id")):
            problems.append(f"score {label} has no subject reference")
        elif str(score["subject_id"]) not in subject_ids:
            problems.append(f"score {label} references unknown subject {score['subject_id']}")
        recorded = score.get("class_assessment_scores")
        if recorded is not None and not isinstance(recorded, Mapping):
            problems.append(f"score {label} has malformed class_assessment_scores")

    if problems:
        raise GradebookDataError(problems)


def _period_index(trimesters, academic_years) -> Dict[Any, Dict[str, Any]]:
    index: Dict[Any, Dict[str, Any]] = {}
    for position, t in enumerate(order_trimesters(trimesters or [], academic_years)):
        entry = {"period_index": position, "period": t.get("name")}
        index[(str(t.get("id")), str(t.get("academic_year_id")))] = entry
        index.setdefault(str(t.get("id")), entry)
    return index


def build_score_frame(
    scores: Iterable[Mapping[str, Any]],
    subjects: Iterable[Mapping[str, Any]],
    students: Optional[Iterable[Mapping[str, Any]]] = None,
    components: Optional[Iterable[Mapping[str, Any]]] = None,
    trimesters: Optional[Iterable[Mapping[str, Any]]] = None,
    academic_years: Optional[Iterable[Mapping[str, Any]]] = None,
) -> pd.DataFrame:
    """
    One row per score record joined with its subject offering.

    With components given, final scores are recomputed from them. With
    components=None the records must already carry final_score (the output
    of attach_final_scores).
    """
    records = list(scores or [])
    if components is not None:
        records = attach_final_scores(records, components)

    subjects_by_id = {str(s.get("id")): s for s in subjects or []}
    names = {str(s.get("id")): s.get("name") for s in students or []}
    periods = _period_index(trimesters, academic_years)

    rows = []
    dropped = 0
    for score in records:
        subject = subjects_by_id.get(str(score.get("subject_id")))
        if subject is None:
            dropped += 1
            continue
        student_id = str(score.get("student_id"))
        trimester_id = str(subject.get("trimester_id"))
        year_id = str(subject.get("academic_year_id"))
        period = periods.get((trimester_id, year_id)) or periods.get(trimester_id) or {}
        rows.append({
            "score_id": score.get("id"),
            "student_id": student_id,
            "student_name": names.get(student_id) or student_id,
            "grade_level_id": subject.get("grade_level_id"),
            "subject_id": str(subject.get("id")),
            "subject_name": subject.get("name") or str(subject.get("id")),
            "academic_year_id": subject.get("academic_year_id"),
            "trimester_id": subject.get("trimester_id"),
            "period_index": period.get("period_index"),
            "period": period.get("period"),
            "created_at": score.get("created_at"),
            "exam_score": score.get("exam_score"),
            "assessment_score": score.get("assessment_score"),
            "final_score": score.get("final_score"),
            "class_assessment_scores": score.get("class_assessment_scores") or {},
        })

    if dropped:
        logger.debug("Dropped %d score record(s) without a known subject offering", dropped)

    df = pd.DataFrame(rows, columns=SCORE_FRAME_COLUMNS)
    for col in ("exam_score", "assessment_score", "final_score", "period_index"):
        df[col] = pd.to_numeric(df[col], errors="coerce")
    df["created_at"] = pd.to_datetime(df["created_at"], errors="coerce", utc=True)
    return df
