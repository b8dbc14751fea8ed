"""
scoring.py - Final score aggregation for one student in one subject offering.

final = 0.5 * exam + 0.5 * assessment

The assessment half is the weighted mean of the component scores the
student actually has, re-normalized over the weights of those components.
Two 25%-weight components therefore still produce a 0-100 assessment
score rather than capping at 50.

Absent component scores are excluded from both the weighted sum and the
weight total. An absent exam score counts as 0. The asymmetry is
intentional and callers rely on it.
"""

import math
from typing import Any, Dict, Iterable, List, Mapping, Optional

EXAM_SHARE = 0.5
ASSESSMENT_SHARE = 0.5


# ── Helpers ─────────────────────────────────────────────────────────

def to_number(val: Any) -> Optional[float]:
    """Convert to float, or None for missing / non-numeric / NaN / inf."""
    if val is None or isinstance(val, bool):
        return None
    try:
        v = float(val)
    except (TypeError, ValueError):
        return None
    if math.isnan(v) or math.isinf(v):
        return None
    return v


def round_half_up(value: float, digits: int = 1) -> float:
    """Round half away from zero for non-negative values (86.25 -> 86.3)."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def _components_by_subject(components: Iterable[Mapping[str, Any]]) -> Dict[str, List[Mapping[str, Any]]]:
    grouped: Dict[str, List[Mapping[str, Any]]] = {}
    for comp in components or []:
        grouped.setdefault(str(comp.get("subject_id")), []).append(comp)
    return grouped


# ── Aggregation ─────────────────────────────────────────────────────

def compute_assessment_score(
    class_assessment_scores: Optional[Mapping[str, Any]],
    components: Iterable[Mapping[str, Any]],
) -> float:
    """Normalized 0-100 assessment score over the recorded components."""
    recorded = class_assessment_scores or {}
    weighted_sum = 0.0
    weight_total = 0.0

    for comp in components or []:
        raw = to_number(recorded.get(str(comp.get("id"))))
        if raw is None:
            continue
        weight = to_number(comp.get("weight")) or 0.0
        weighted_sum += raw * weight / 100
        weight_total += weight

    if weight_total > 0:
        return weighted_sum * 100 / weight_total
    return 0.0


def compute_final_score(exam_score: Any, assessment_score: Any) -> float:
    exam = to_number(exam_score) or 0.0
    assessment = to_number(assessment_score) or 0.0
    return round_half_up(EXAM_SHARE * exam + ASSESSMENT_SHARE * assessment, 1)


def attach_final_scores(
    scores: Iterable[Mapping[str, Any]],
    components: Iterable[Mapping[str, Any]],
) -> List[Dict[str, Any]]:
    """
    Return copies of the score records with exam_score, assessment_score
    and final_score attached.

    Components are matched to a record by subject_id; components of other
    subject offerings never contribute.
    """
    by_subject = _components_by_subject(components)
    result = []
    for score in scores or []:
        subject_components = by_subject.get(str(score.get("subject_id")), [])
        exam = to_number(score.get("exam_score")) or 0.0
        assessment = compute_assessment_score(
            score.get("class_assessment_scores"), subject_components
        )
        enriched = dict(score)
        enriched["exam_score"] = exam
        enriched["assessment_score"] = round_half_up(assessment, 1)
        enriched["final_score"] = compute_final_score(exam, assessment)
        result.append(enriched)
    return result


def score_breakdown(
    score: Mapping[str, Any],
    components: Iterable[Mapping[str, Any]],
) -> Dict[str, Any]:
    """Per-component detail for one score record of one subject offering."""
    recorded = score.get("class_assessment_scores") or {}
    subject_id = str(score.get("subject_id"))
    rows = []
    weight_total = 0.0

    for comp in components or []:
        if str(comp.get("subject_id")) != subject_id:
            continue
        raw = to_number(recorded.get(str(comp.get("id"))))
        weight = to_number(comp.get("weight")) or 0.0
        if raw is not None:
            weight_total += weight
        rows.append({
            "component_id": str(comp.get("id")),
            "name": comp.get("name"),
            "weight": weight,
            "score": raw,
            "recorded": raw is not None,
            "weighted_contribution": round(raw * weight / 100, 2) if raw is not None else None,
        })

    exam = to_number(score.get("exam_score")) or 0.0
    assessment = compute_assessment_score(recorded, [
        c for c in components or [] if str(c.get("subject_id")) == subject_id
    ])
    return {
        "student_id": score.get("student_id"),
        "subject_id": score.get("subject_id"),
        "components": rows,
        "recorded_weight": weight_total,
        "exam_score": exam,
        "assessment_score": round_half_up(assessment, 1),
        "final_score": compute_final_score(exam, assessment),
    }
