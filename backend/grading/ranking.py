"""
ranking.py - Competition ranking ("1224") over final scores.

Ties share the lower-numbered rank and the next distinct score resumes at
its positional index: scores 90, 80, 80, 70 rank 1, 2, 2, 4.

Missing or non-numeric final scores sort last as -inf and share the last
rank among themselves. The sort is stable, so re-ranking an already
ranked cohort returns identical ranks in identical order.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

import pandas as pd
from scipy import stats as sp_stats

from grading.grade_bands import get_performance_category, rank_label
from grading.scoring import attach_final_scores, round_half_up, to_number

logger = logging.getLogger(__name__)

NEG_INF = float("-inf")


def _sort_value(record: Mapping[str, Any], key: str) -> float:
    value = to_number(record.get(key))
    return NEG_INF if value is None else value


def rank_scores(
    scores: Iterable[Mapping[str, Any]],
    score_key: str = "final_score",
) -> List[Dict[str, Any]]:
    """
    Rank one cohort. Returns copies sorted best-first, each carrying rank,
    rank_label, performance and percentile.
    """
    ordered = sorted(
        (dict(s) for s in scores or []),
        key=lambda s: _sort_value(s, score_key),
        reverse=True,
    )
    if not ordered:
        return []

    numeric = [v for v in (to_number(s.get(score_key)) for s in ordered) if v is not None]

    current_rank = 0
    previous: Optional[float] = None
    for position, record in enumerate(ordered):
        value = _sort_value(record, score_key)
        if position == 0 or value != previous:
            current_rank = position + 1
        previous = value

        record["rank"] = current_rank
        record["rank_label"] = rank_label(current_rank)
        record["performance"] = get_performance_category(record.get(score_key))
        if value == NEG_INF:
            record["percentile"] = None
        else:
            pct = sp_stats.percentileofscore(numeric, value, kind="weak")
            record["percentile"] = round(float(pct), 1)

    return ordered


def rank_students_by_average(
    scores: Iterable[Mapping[str, Any]],
    students: Optional[Iterable[Mapping[str, Any]]] = None,
) -> List[Dict[str, Any]]:
    """
    Composite ranking for a grade level: each student's mean final score
    across their subject offerings, ranked with rank_scores semantics.
    """
    records = list(scores or [])
    if not records:
        return []

    df = pd.DataFrame(records)
    if "student_id" not in df.columns:
        raise TypeError("score records must carry a 'student_id' key")
    if "final_score" not in df.columns:
        df["final_score"] = None
    df["final_score"] = pd.to_numeric(df["final_score"], errors="coerce")
    df["student_id"] = df["student_id"].astype(str)

    grouped = df.groupby("student_id", sort=False)["final_score"].agg(["mean", "count"])
    names = {str(s.get("id")): s.get("name") for s in students or []}

    rows = []
    for student_id, row in grouped.iterrows():
        mean = to_number(row["mean"])
        average = round_half_up(mean, 1) if mean is not None else None
        rows.append({
            "student_id": student_id,
            "student_name": names.get(student_id, student_id),
            "average_score": average,
            "subject_count": int(row["count"]),
        })

    return rank_scores(rows, score_key="average_score")


def get_top_students(
    scores: Iterable[Mapping[str, Any]],
    students: Optional[Iterable[Mapping[str, Any]]] = None,
    limit: int = 5,
) -> List[Dict[str, Any]]:
    """Best students by average final score, students without scores excluded."""
    ranked = rank_students_by_average(scores, students)
    return [r for r in ranked if r["average_score"] is not None][:limit]


def build_ranking_report(
    students: Iterable[Mapping[str, Any]],
    scores: Iterable[Mapping[str, Any]],
    components: Iterable[Mapping[str, Any]],
) -> List[Dict[str, Any]]:
    """
    Ranking report for one subject offering.

    Every student of the cohort appears; a student without a score record
    is reported with exam 0 and assessment 0.
    """
    scored = attach_final_scores(scores, components)
    by_student: Dict[str, Dict[str, Any]] = {}
    for record in scored:
        by_student.setdefault(str(record.get("student_id")), record)

    rows = []
    for student in students or []:
        sid = str(student.get("id"))
        record = by_student.get(sid)
        if record is None:
            logger.debug("No score record for student %s; reporting zeros", sid)
        rows.append({
            "student_id": sid,
            "name": student.get("name", sid),
            "exam_score": record["exam_score"] if record else 0.0,
            "assessment_score": record["assessment_score"] if record else 0.0,
            "final_score": record["final_score"] if record else 0.0,
        })

    return rank_scores(rows)
