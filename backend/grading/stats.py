"""
stats.py - Distribution and summary statistics over final scores.

Computes:
- Average final score (empty set -> 0)
- Performance-category distribution (excellent / good / average / poor)
- Letter-grade distribution (A-F)
- Per-component mean of recorded raw scores
- Pass and excellence rates
- Per-subject averages and student profiles for the insight layer

Every function is a pure reduction over whatever records it is given.
Filtering by subject, grade level, trimester or year happens upstream.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional

import numpy as np
import pandas as pd

from grading.grade_bands import (
    CATEGORY_NAMES,
    LETTER_GRADES,
    get_letter_grade,
    get_performance_category,
)
from grading.scoring import round_half_up, to_number

DEFAULT_PASS_MARK = 60
DEFAULT_EXCELLENCE_MARK = 80


# ── Helpers ─────────────────────────────────────────────────────────

def _safe_float(val, digits: int = 2) -> Optional[float]:
    """Convert to a rounded float or return None."""
    v = to_number(val)
    return None if v is None else round(v, digits)


def _sanitize(obj):
    """Recursively coerce numpy/pandas scalars to JSON-safe Python types."""
    if isinstance(obj, dict):
        return {k: _sanitize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_sanitize(v) for v in obj]
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, (np.floating, float)):
        v = float(obj)
        return None if (np.isnan(v) or np.isinf(v)) else v
    return obj


def _final_scores(scores: Iterable[Mapping[str, Any]]) -> List[float]:
    values = []
    for s in scores or []:
        v = to_number(s.get("final_score"))
        if v is not None:
            values.append(v)
    return values


def _rate(count: int, total: int) -> float:
    return round_half_up(count / total * 100, 1) if total > 0 else 0


# ── Reductions ──────────────────────────────────────────────────────

def compute_average(scores: Iterable[Mapping[str, Any]]) -> float:
    """Mean final score rounded to one decimal; 0 for an empty set."""
    values = _final_scores(scores)
    if not values:
        return 0
    return round_half_up(sum(values) / len(values), 1)


def compute_grade_distribution(scores: Iterable[Mapping[str, Any]]) -> Dict[str, int]:
    distribution = {name: 0 for name in CATEGORY_NAMES}
    for value in _final_scores(scores):
        distribution[get_performance_category(value)] += 1
    return distribution


def compute_letter_distribution(scores: Iterable[Mapping[str, Any]]) -> Dict[str, int]:
    """Bucket counts keyed by the dashboard labels, e.g. 'A (80-100%)'."""
    labels = {label: desc for _, label, desc in LETTER_GRADES}
    distribution = {desc: 0 for desc in labels.values()}
    for value in _final_scores(scores):
        distribution[labels[get_letter_grade(value)]] += 1
    return distribution


def compute_component_performance(
    scores: Iterable[Mapping[str, Any]],
    components: Optional[Iterable[Mapping[str, Any]]] = None,
) -> Dict[str, float]:
    """
    Mean recorded raw score per assessment component, independent of
    weighting. Keyed by component name when components are supplied
    (scores for unknown component ids are skipped), otherwise by id.
    Components without any recorded score are left out.
    """
    names: Optional[Dict[str, str]] = None
    order: List[str] = []
    if components is not None:
        names = {}
        for comp in components:
            name = str(comp.get("name") or comp.get("id"))
            names[str(comp.get("id"))] = name
            if name not in order:
                order.append(name)

    totals: Dict[str, List[float]] = {}
    for score in scores or []:
        for component_id, raw in (score.get("class_assessment_scores") or {}).items():
            value = to_number(raw)
            if value is None:
                continue
            if names is None:
                key = str(component_id)
            elif str(component_id) in names:
                key = names[str(component_id)]
            else:
                continue
            if key not in order:
                order.append(key)
            totals.setdefault(key, []).append(value)

    return {
        key: round_half_up(sum(totals[key]) / len(totals[key]), 1)
        for key in order
        if totals.get(key)
    }


def compute_pass_rates(
    scores: Iterable[Mapping[str, Any]],
    pass_mark: float = DEFAULT_PASS_MARK,
    excellence_mark: float = DEFAULT_EXCELLENCE_MARK,
) -> Dict[str, Any]:
    values = _final_scores(scores)
    total = len(values)
    pass_count = sum(1 for v in values if v >= pass_mark)
    excellence_count = sum(1 for v in values if v >= excellence_mark)
    return {
        "pass_mark": pass_mark,
        "excellence_mark": excellence_mark,
        "pass_count": pass_count,
        "excellence_count": excellence_count,
        "pass_rate": _rate(pass_count, total),
        "excellence_rate": _rate(excellence_count, total),
    }


def compute_score_summary(
    scores: Iterable[Mapping[str, Any]],
    components: Optional[Iterable[Mapping[str, Any]]] = None,
    pass_mark: float = DEFAULT_PASS_MARK,
    excellence_mark: float = DEFAULT_EXCELLENCE_MARK,
) -> Dict[str, Any]:
    """All distribution and summary statistics for one filtered set."""
    records = list(scores or [])
    pct = pd.Series(_final_scores(records), dtype=float)

    summary: Dict[str, Any] = {
        "count": int(len(pct)),
        "average": compute_average(records),
        "median": _safe_float(pct.median()),
        "std": _safe_float(pct.std()),
        "min": _safe_float(pct.min()),
        "max": _safe_float(pct.max()),
        "distribution": compute_grade_distribution(records),
        "letter_distribution": compute_letter_distribution(records),
        "component_performance": compute_component_performance(records, components),
    }
    summary.update(compute_pass_rates(records, pass_mark, excellence_mark))
    return _sanitize(summary)


# ── Analysis-frame reductions ───────────────────────────────────────

def compute_subject_averages(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """Per-subject mean final score over an analysis frame, best first."""
    if df.empty:
        return []
    valid = df.dropna(subset=["final_score"])
    if valid.empty:
        return []
    grouped = valid.groupby("subject_name")["final_score"].agg(["mean", "count"])
    rows = [
        {"subject": str(subject), "average": float(row["mean"]), "count": int(row["count"])}
        for subject, row in grouped.iterrows()
    ]
    rows.sort(key=lambda r: r["average"], reverse=True)
    return rows


def build_student_profile(
    df: pd.DataFrame,
    student_id: str,
    components: Optional[Iterable[Mapping[str, Any]]] = None,
) -> Optional[Dict[str, Any]]:
    """Strongest and weakest subjects plus weakest component for one student."""
    sdf = df[df["student_id"] == str(student_id)] if not df.empty else df
    if sdf.empty:
        return None

    subject_means = sdf.groupby("subject_name")["final_score"].mean().dropna()
    ranked = [
        {"subject": str(s), "score": round_half_up(float(v), 1)}
        for s, v in subject_means.sort_values(ascending=False).items()
    ]

    component_perf = compute_component_performance(sdf.to_dict(orient="records"), components)
    weakest_component = None
    if component_perf:
        name, value = min(component_perf.items(), key=lambda kv: kv[1])
        weakest_component = {"component": name, "score": value}

    records = sdf.to_dict(orient="records")
    return _sanitize({
        "student_id": str(student_id),
        "name": str(sdf.iloc[0]["student_name"]),
        "average": compute_average(records),
        "record_count": int(len(sdf)),
        "strongest_subjects": ranked[:3],
        "weakest_subjects": list(reversed(ranked))[:3],
        "component_performance": component_perf,
        "weakest_component": weakest_component,
    })
