"""
insights.py - Rule-based classification of a teacher's cohort.

Four independent queries over the analysis frame from
dataset.build_score_frame:

  at-risk         risk score (0-100), risk factors, trend direction
  top-performers  average, strongest subjects, trend direction
  summary         class average, top subjects, improvement areas, narrative
  anomalies       sudden drop / sudden improvement / inconsistent
                  performance per (student, subject), with severity

Trend direction compares a student's two most recent trimester averages.
Every threshold lives in DEFAULT_THRESHOLDS and can be overridden per call.

Risk score:
  max(0, 100 - average)
  + 20 when declining, - 10 when improving
  + 5 per risk factor
  clamped to 0-100.  Levels: high >= 70, medium >= 40, low otherwise.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

import numpy as np
import pandas as pd

from grading.narrative import (
    factor_declining,
    factor_low_average,
    factor_missing_recent,
    factor_struggling_subject,
    narrate_inconsistent,
    narrate_performance_summary,
    narrate_sudden_drop,
    narrate_sudden_improvement,
    narrate_unusual_swing,
    no_data_summary,
)
from grading.scoring import round_half_up
from grading.stats import _sanitize, compute_subject_averages
from grading.trends import classify_trend

logger = logging.getLogger(__name__)

INSIGHT_TYPES = ("at-risk", "top-performers", "summary", "anomalies", "all")

DEFAULT_THRESHOLDS: Dict[str, float] = {
    # at-risk
    "at_risk_average": 60,
    "struggling_subject": 60,
    "declining_penalty": 20,
    "improving_relief": 10,
    "factor_penalty": 5,
    "high_risk": 70,
    "medium_risk": 40,
    # top performers / summary
    "top_performer": 85,
    "top_subject": 75,
    "improvement_area": 70,
    # trend
    "trend_band": 5,
    # anomalies
    "drop": 20,
    "severe_drop": 30,
    "improvement": 25,
    "severe_improvement": 40,
    "swing_ratio": 0.30,
    "min_swing": 10,
    "inconsistency_std": 15,
    "severe_inconsistency_std": 25,
}

RECOMMENDATIONS = {
    "high": (
        "Immediate intervention is recommended: meet with the student, review "
        "recent assessments together and agree on a weekly recovery plan."
    ),
    "medium": (
        "Monitor closely this trimester and offer additional support in the "
        "weakest subjects."
    ),
    "low": "Keep monitoring; the student is close to the expected level.",
}

SEVERITY_ORDER = {"high": 0, "medium": 1, "low": 2}


# ── Helpers ─────────────────────────────────────────────────────────

def _thresholds(overrides: Optional[Mapping[str, float]]) -> Dict[str, float]:
    merged = dict(DEFAULT_THRESHOLDS)
    for key, value in (overrides or {}).items():
        if key not in DEFAULT_THRESHOLDS:
            raise ValueError(f"Unknown insight threshold: {key}")
        merged[key] = float(value)
    return merged


def _scored(df: pd.DataFrame) -> pd.DataFrame:
    if df.empty:
        return df
    return df.dropna(subset=["final_score"])


def _period_series(sdf: pd.DataFrame) -> List[Dict[str, Any]]:
    timed = sdf.dropna(subset=["period_index"])
    means = timed.groupby("period_index")["final_score"].mean().sort_index()
    return [{"period_index": int(idx), "average_score": float(v)} for idx, v in means.items()]


def _student_overviews(df: pd.DataFrame, t: Dict[str, float]) -> List[Dict[str, Any]]:
    """Average, subject averages and trend for every student with scores."""
    overviews = []
    for student_id, sdf in _scored(df).groupby("student_id", sort=False):
        subject_means = sdf.groupby("subject_name", sort=False)["final_score"].mean()
        series = _period_series(sdf)
        overviews.append({
            "student_id": str(student_id),
            "student_name": str(sdf.iloc[0]["student_name"]),
            "average": float(sdf["final_score"].mean()),
            "subject_averages": {str(k): float(v) for k, v in subject_means.items()},
            "periods": [p["period_index"] for p in series],
            "trend_direction": classify_trend(series, stable_band=t["trend_band"]),
        })
    return overviews


def _risk_level(risk_score: float, t: Dict[str, float]) -> str:
    if risk_score >= t["high_risk"]:
        return "high"
    if risk_score >= t["medium_risk"]:
        return "medium"
    return "low"


# ── At-Risk Students ────────────────────────────────────────────────

def identify_at_risk_students(
    df: pd.DataFrame, thresholds: Optional[Mapping[str, float]] = None
) -> List[Dict[str, Any]]:
    """Students with at least one risk factor, highest risk first."""
    t = _thresholds(thresholds)
    scored = _scored(df)
    if scored.empty:
        return []

    latest_period = scored["period_index"].max()
    latest_name = None
    if pd.notna(latest_period):
        latest_rows = scored[scored["period_index"] == latest_period]
        latest_name = latest_rows.iloc[0]["period"] if not latest_rows.empty else None

    at_risk = []
    for ov in _student_overviews(df, t):
        factors = []
        if ov["average"] < t["at_risk_average"]:
            factors.append(factor_low_average())

        for subject, avg in sorted(ov["subject_averages"].items(), key=lambda kv: kv[1]):
            if avg < t["struggling_subject"]:
                factors.append(factor_struggling_subject(subject))

        if ov["trend_direction"] == "declining":
            factors.append(factor_declining())

        if pd.notna(latest_period) and ov["periods"] and latest_period not in ov["periods"]:
            factors.append(factor_missing_recent(latest_name))

        if not factors:
            continue

        risk = max(0.0, 100 - ov["average"])
        if ov["trend_direction"] == "declining":
            risk += t["declining_penalty"]
        elif ov["trend_direction"] == "improving":
            risk -= t["improving_relief"]
        risk += t["factor_penalty"] * len(factors)
        risk_score = round_half_up(min(100.0, max(0.0, risk)), 1)
        level = _risk_level(risk_score, t)

        at_risk.append({
            "student_id": ov["student_id"],
            "student_name": ov["student_name"],
            "average_score": round_half_up(ov["average"], 1),
            "risk_score": risk_score,
            "risk_level": level,
            "risk_factors": factors,
            "trend_direction": ov["trend_direction"],
            "recommendation": RECOMMENDATIONS[level],
        })

    at_risk.sort(key=lambda s: s["risk_score"], reverse=True)
    logger.debug("Flagged %d at-risk student(s)", len(at_risk))
    return _sanitize(at_risk)


# ── Top Performers ──────────────────────────────────────────────────

def identify_top_performers(
    df: pd.DataFrame, thresholds: Optional[Mapping[str, float]] = None
) -> List[Dict[str, Any]]:
    """Students averaging above the bar overall or in at least one subject."""
    t = _thresholds(thresholds)
    performers = []
    for ov in _student_overviews(df, t):
        strongest = [
            subject
            for subject, avg in sorted(ov["subject_averages"].items(), key=lambda kv: kv[1], reverse=True)
            if avg >= t["top_performer"]
        ]
        if ov["average"] >= t["top_performer"] or strongest:
            performers.append({
                "student_id": ov["student_id"],
                "student_name": ov["student_name"],
                "average_score": round_half_up(ov["average"], 1),
                "strongest_subjects": strongest,
                "trend_direction": ov["trend_direction"],
            })

    performers.sort(key=lambda s: s["average_score"], reverse=True)
    return _sanitize(performers)


# ── Performance Summary ─────────────────────────────────────────────

def generate_performance_summary(
    df: pd.DataFrame, thresholds: Optional[Mapping[str, float]] = None
) -> Dict[str, Any]:
    t = _thresholds(thresholds)
    scored = _scored(df)
    if scored.empty:
        return {
            "summary": no_data_summary(),
            "class_average": 0,
            "top_subjects": [],
            "improvement_areas": [],
            "subject_averages": [],
            "at_risk_count": 0,
            "top_performer_count": 0,
        }

    subject_averages = compute_subject_averages(scored)
    class_average = round_half_up(float(scored["final_score"].mean()), 1)
    top_subjects = [s["subject"] for s in subject_averages if s["average"] >= t["top_subject"]]
    improvement_areas = [
        s["subject"]
        for s in sorted(subject_averages, key=lambda s: s["average"])
        if s["average"] < t["improvement_area"]
    ]
    at_risk_count = len(identify_at_risk_students(df, thresholds))
    top_performer_count = len(identify_top_performers(df, thresholds))

    return _sanitize({
        "summary": narrate_performance_summary(
            student_count=scored["student_id"].nunique(),
            subject_count=scored["subject_name"].nunique(),
            class_average=class_average,
            top_subjects=top_subjects,
            improvement_areas=improvement_areas,
            at_risk_count=at_risk_count,
            top_performer_count=top_performer_count,
        ),
        "class_average": class_average,
        "top_subjects": top_subjects,
        "improvement_areas": improvement_areas,
        "subject_averages": [
            {**s, "average": round_half_up(s["average"], 1)} for s in subject_averages
        ],
        "at_risk_count": at_risk_count,
        "top_performer_count": top_performer_count,
    })


# ── Anomaly Detection ───────────────────────────────────────────────

def _swing_anomaly(
    name: str, subject: str, values: List[float], i: int, t: Dict[str, float]
) -> Optional[Dict[str, Any]]:
    previous, current = values[i - 1], values[i]
    difference = current - previous

    if difference <= -t["drop"]:
        return {
            "anomaly_type": "sudden-drop",
            "description": narrate_sudden_drop(name, subject, previous, current),
            "severity": "high" if difference <= -t["severe_drop"] else "medium",
        }
    if difference >= t["improvement"]:
        return {
            "anomaly_type": "sudden-improvement",
            "description": narrate_sudden_improvement(name, subject, previous, current),
            "severity": "high" if difference >= t["severe_improvement"] else "medium",
        }

    historical_mean = float(np.mean(values[:i]))
    if (
        historical_mean > 0
        and abs(difference) >= t["min_swing"]
        and abs(difference) > t["swing_ratio"] * historical_mean
    ):
        return {
            "anomaly_type": "sudden-drop" if difference < 0 else "sudden-improvement",
            "description": narrate_unusual_swing(name, subject, previous, current, historical_mean),
            "severity": "low",
        }
    return None


def detect_score_anomalies(
    df: pd.DataFrame, thresholds: Optional[Mapping[str, float]] = None
) -> List[Dict[str, Any]]:
    """
    Flag (student, subject) pairs whose final scores, ordered by trimester
    and then by record creation time, swing sharply or vary widely.
    """
    t = _thresholds(thresholds)
    scored = _scored(df)
    if scored.empty:
        return []

    ordered = scored.sort_values(["period_index", "created_at"], na_position="last", kind="stable")
    anomalies = []
    for (student_id, subject), sdf in ordered.groupby(["student_id", "subject_name"], sort=False):
        if len(sdf) < 2:
            continue
        name = str(sdf.iloc[0]["student_name"])
        values = [float(v) for v in sdf["final_score"]]
        periods = list(sdf["period"])
        base = {
            "student_id": str(student_id),
            "student_name": name,
            "subject_id": str(sdf.iloc[-1]["subject_id"]),
            "subject_name": str(subject),
        }

        for i in range(1, len(values)):
            found = _swing_anomaly(name, str(subject), values, i, t)
            if found:
                anomalies.append({
                    **base,
                    **found,
                    "previous_score": values[i - 1],
                    "current_score": values[i],
                    "from_period": periods[i - 1],
                    "to_period": periods[i],
                })

        if len(values) >= 3:
            std_dev = float(np.std(values))
            if std_dev > t["inconsistency_std"]:
                anomalies.append({
                    **base,
                    "anomaly_type": "inconsistent-performance",
                    "description": narrate_inconsistent(name, str(subject), std_dev),
                    "severity": "high" if std_dev > t["severe_inconsistency_std"] else "medium",
                    "std_dev": round(std_dev, 1),
                })

    anomalies.sort(key=lambda a: SEVERITY_ORDER[a["severity"]])
    logger.debug("Detected %d score anomaly(ies)", len(anomalies))
    return _sanitize(anomalies)


# ── Main Entry Point ───────────────────────────────────────────────

def generate_insights(
    df: pd.DataFrame,
    insight_type: str = "all",
    thresholds: Optional[Mapping[str, float]] = None,
) -> Any:
    """Dispatch one insight query by name, or all four for 'all'."""
    if insight_type == "at-risk":
        return identify_at_risk_students(df, thresholds)
    if insight_type == "top-performers":
        return identify_top_performers(df, thresholds)
    if insight_type == "summary":
        return generate_performance_summary(df, thresholds)
    if insight_type == "anomalies":
        return detect_score_anomalies(df, thresholds)
    if insight_type == "all":
        return {
            "at_risk_students": identify_at_risk_students(df, thresholds),
            "top_performers": identify_top_performers(df, thresholds),
            "summary": generate_performance_summary(df, thresholds),
            "anomalies": detect_score_anomalies(df, thresholds),
        }
    raise ValueError(f"Unknown insight type: {insight_type!r}. Expected one of {INSIGHT_TYPES}")
