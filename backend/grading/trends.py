"""
trends.py - Per-trimester time series and period-over-period comparison.

Trimester order comes from the Trimester entities (and their academic
years), never from the scores. A trimester is matched by its id *and*
academic year, since trimester names repeat across years. Trimesters with
no matching records are left out of a series instead of being reported as
a 0% average.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from grading.scoring import to_number
from grading.stats import compute_average

logger = logging.getLogger(__name__)

DEFAULT_STABLE_BAND = 5.0


# ── Ordering ────────────────────────────────────────────────────────

def _year_ranks(
    trimesters: List[Mapping[str, Any]],
    academic_years: Optional[Iterable[Mapping[str, Any]]],
) -> Dict[str, int]:
    if academic_years is None:
        ranks: Dict[str, int] = {}
        for t in trimesters:
            ranks.setdefault(str(t.get("academic_year_id")), len(ranks))
        return ranks

    years = list(academic_years)
    if years and all(y.get("start_date") for y in years):
        years = sorted(years, key=lambda y: str(y["start_date"]))
    return {str(y.get("id")): idx for idx, y in enumerate(years)}


def order_trimesters(
    trimesters: Iterable[Mapping[str, Any]],
    academic_years: Optional[Iterable[Mapping[str, Any]]] = None,
) -> List[Dict[str, Any]]:
    """
    Chronological trimester order: by academic year first (start_date when
    every year has one, otherwise the order given), then by the trimester's
    own 'order' field, falling back to the order given.
    """
    items = [dict(t) for t in trimesters or []]
    ranks = _year_ranks(items, academic_years)
    unknown_year = len(ranks)

    def key(indexed):
        idx, t = indexed
        order = to_number(t.get("order"))
        return (
            ranks.get(str(t.get("academic_year_id")), unknown_year),
            order if order is not None else float(idx),
            idx,
        )

    return [t for _, t in sorted(enumerate(items), key=key)]


# ── Filtering ───────────────────────────────────────────────────────

def _period_records(
    scores: List[Mapping[str, Any]],
    subjects_by_id: Dict[str, Mapping[str, Any]],
    trimester: Mapping[str, Any],
    subject_id: Optional[str] = None,
    grade_level_id: Optional[str] = None,
) -> List[Mapping[str, Any]]:
    trimester_id = str(trimester.get("id"))
    year_id = trimester.get("academic_year_id")
    matched = []
    for score in scores:
        subject = subjects_by_id.get(str(score.get("subject_id")))
        if subject is None:
            continue
        if str(subject.get("trimester_id")) != trimester_id:
            continue
        if year_id is not None and str(subject.get("academic_year_id")) != str(year_id):
            continue
        if subject_id is not None and str(score.get("subject_id")) != str(subject_id):
            continue
        if grade_level_id is not None and str(subject.get("grade_level_id")) != str(grade_level_id):
            continue
        matched.append(score)
    return matched


def _index_subjects(subjects: Iterable[Mapping[str, Any]]) -> Dict[str, Mapping[str, Any]]:
    return {str(s.get("id")): s for s in subjects or []}


# ── Series ──────────────────────────────────────────────────────────

def build_trend_series(
    scores: Iterable[Mapping[str, Any]],
    subjects: Iterable[Mapping[str, Any]],
    trimesters: Iterable[Mapping[str, Any]],
    subject_id: Optional[str] = None,
    grade_level_id: Optional[str] = None,
    academic_years: Optional[Iterable[Mapping[str, Any]]] = None,
) -> List[Dict[str, Any]]:
    """Ordered (period, average) points for a cohort of final-scored records."""
    records = list(scores or [])
    subjects_by_id = _index_subjects(subjects)

    series = []
    for trimester in order_trimesters(trimesters, academic_years):
        matched = _period_records(records, subjects_by_id, trimester, subject_id, grade_level_id)
        if not matched:
            continue
        series.append({
            "trimester_id": str(trimester.get("id")),
            "period": trimester.get("name"),
            "academic_year_id": trimester.get("academic_year_id"),
            "average_score": compute_average(matched),
            "count": len(matched),
        })
    return series


def build_student_trend(
    student_id: str,
    scores: Iterable[Mapping[str, Any]],
    subjects: Iterable[Mapping[str, Any]],
    trimesters: Iterable[Mapping[str, Any]],
    academic_years: Optional[Iterable[Mapping[str, Any]]] = None,
) -> List[Dict[str, Any]]:
    """One student's average across all their subjects, per trimester."""
    own = [s for s in scores or [] if str(s.get("student_id")) == str(student_id)]
    return build_trend_series(own, subjects, trimesters, academic_years=academic_years)


def compare_with_previous(
    scores: Iterable[Mapping[str, Any]],
    subjects: Iterable[Mapping[str, Any]],
    trimesters: Iterable[Mapping[str, Any]],
    current_trimester_id: str,
    subject_id: Optional[str] = None,
    grade_level_id: Optional[str] = None,
    academic_years: Optional[Iterable[Mapping[str, Any]]] = None,
) -> Optional[Dict[str, Any]]:
    """
    Compare the current trimester's average with the immediately preceding
    trimester in chronological order. None when there is no preceding
    trimester or when either period has no records.
    """
    ordered = order_trimesters(trimesters, academic_years)
    position = next(
        (i for i, t in enumerate(ordered) if str(t.get("id")) == str(current_trimester_id)),
        None,
    )
    if position is None or position == 0:
        return None

    records = list(scores or [])
    subjects_by_id = _index_subjects(subjects)
    current, previous = ordered[position], ordered[position - 1]
    current_records = _period_records(records, subjects_by_id, current, subject_id, grade_level_id)
    previous_records = _period_records(records, subjects_by_id, previous, subject_id, grade_level_id)
    if not current_records or not previous_records:
        logger.debug(
            "No comparison for trimester %s: %d current, %d previous records",
            current_trimester_id, len(current_records), len(previous_records),
        )
        return None

    current_avg = compute_average(current_records)
    previous_avg = compute_average(previous_records)
    delta = round(current_avg - previous_avg, 1)
    if delta > 0:
        direction = "improved"
    elif delta < 0:
        direction = "declined"
    else:
        direction = "unchanged"

    return {
        "current_trimester_id": str(current.get("id")),
        "current_period": current.get("name"),
        "current_average": current_avg,
        "previous_trimester_id": str(previous.get("id")),
        "previous_period": previous.get("name"),
        "previous_average": previous_avg,
        "delta": delta,
        "direction": direction,
    }


def classify_trend(
    series: List[Mapping[str, Any]],
    stable_band: float = DEFAULT_STABLE_BAND,
    value_key: str = "average_score",
) -> str:
    """improving / declining / stable from the two most recent points."""
    values = [v for v in (to_number(p.get(value_key)) for p in series or []) if v is not None]
    if len(values) < 2:
        return "stable"
    difference = values[-1] - values[-2]
    if difference >= stable_band:
        return "improving"
    if difference <= -stable_band:
        return "declining"
    return "stable"
