"""
narrative.py - Template-based text for insights and comparisons.

Turns structured insight data into human-readable sentences using f-string
templates. Numbers are formatted to one decimal place throughout.
"""

from typing import Any, Dict, List, Optional


# ── Risk Factors ────────────────────────────────────────────────────

def factor_low_average() -> str:
    return "Low overall average"


def factor_struggling_subject(subject: str) -> str:
    return f"Struggling in {subject}"


def factor_declining() -> str:
    return "Recent performance declining"


def factor_missing_recent(period: Optional[str]) -> str:
    if period:
        return f"Missing recent scores ({period})"
    return "Missing recent scores"


# ── Anomaly Narratives ──────────────────────────────────────────────

def narrate_sudden_drop(name: str, subject: str, previous: float, current: float) -> str:
    return (
        f"{name}'s score in {subject} dropped by {abs(current - previous):.1f}% "
        f"from {previous:.1f}% to {current:.1f}%"
    )


def narrate_sudden_improvement(name: str, subject: str, previous: float, current: float) -> str:
    return (
        f"{name}'s score in {subject} improved by {current - previous:.1f}% "
        f"from {previous:.1f}% to {current:.1f}%"
    )


def narrate_unusual_swing(
    name: str, subject: str, previous: float, current: float, historical_mean: float
) -> str:
    direction = "rose" if current > previous else "fell"
    return (
        f"{name}'s score in {subject} {direction} from {previous:.1f}% to {current:.1f}%, "
        f"a swing of {abs(current - previous):.1f} points against a historical "
        f"average of {historical_mean:.1f}%"
    )


def narrate_inconsistent(name: str, subject: str, std_dev: float) -> str:
    return (
        f"{name} shows highly variable performance in {subject} "
        f"(standard deviation: {std_dev:.1f}%)"
    )


# ── Comparison ──────────────────────────────────────────────────────

def narrate_comparison(comparison: Dict[str, Any]) -> str:
    delta = comparison.get("delta", 0)
    previous_period = comparison.get("previous_period") or "the previous trimester"
    previous_avg = comparison.get("previous_average", 0)
    if delta > 0:
        return f"Improved by {delta:.1f} points compared to {previous_period} ({previous_avg:.1f}%)."
    if delta < 0:
        return f"Declined by {abs(delta):.1f} points compared to {previous_period} ({previous_avg:.1f}%)."
    return f"Unchanged compared to {previous_period} ({previous_avg:.1f}%)."


# ── Performance Summary ─────────────────────────────────────────────

def narrate_performance_summary(
    student_count: int,
    subject_count: int,
    class_average: float,
    top_subjects: List[str],
    improvement_areas: List[str],
    at_risk_count: int,
    top_performer_count: int,
) -> str:
    """Short paragraph describing overall class performance."""
    parts = [
        f"Class performance analysis based on {student_count} students "
        f"across {subject_count} subjects.",
        f"The overall class average is {class_average:.1f}%.",
    ]
    if top_subjects:
        parts.append(f"The class is performing particularly well in {', '.join(top_subjects)}.")
    if improvement_areas:
        parts.append(f"Areas needing attention include {', '.join(improvement_areas)}.")
    parts.append(
        f"There are {at_risk_count} students at risk of underperforming "
        f"who may need additional support."
    )
    parts.append(
        f"{top_performer_count} students are demonstrating exceptional "
        f"performance in one or more subjects."
    )
    return " ".join(parts)


def no_data_summary() -> str:
    return "Not enough data to generate a performance summary."
