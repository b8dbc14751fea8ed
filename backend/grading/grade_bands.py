"""
grade_bands.py - Performance categories, letter grades and rank labels.

Two scales are in use:
  performance categories: excellent, good, average, poor (ranking report,
                          grade distribution)
  letter grades:          A, B, C, D, F (analytics dashboard)

Both tables are ordered high to low and looked up with a ">= min" scan.
"""

from typing import Any, Dict, List, Optional


# (min_score, category, description)
PERFORMANCE_CATEGORIES = [
    (80.0, "excellent", "Excellent"),
    (65.0, "good", "Good"),
    (50.0, "average", "Average"),
    (0.0, "poor", "Poor"),
]

# (min_score, label, description)
LETTER_GRADES = [
    (80.0, "A", "A (80-100%)"),
    (70.0, "B", "B (70-79%)"),
    (60.0, "C", "C (60-69%)"),
    (50.0, "D", "D (50-59%)"),
    (0.0, "F", "F (0-49%)"),
]

CATEGORY_NAMES = [name for _, name, _ in PERFORMANCE_CATEGORIES]
LETTER_NAMES = [label for _, label, _ in LETTER_GRADES]


def _to_score(score: Any) -> Optional[float]:
    if score is None or isinstance(score, bool):
        return None
    try:
        value = float(score)
    except (TypeError, ValueError):
        return None
    if value != value:  # NaN
        return None
    return value


def get_performance_category(score: Any) -> str:
    """Return the performance category for a 0-100 final score.

    Scores that are missing or non-numeric are treated as 0, matching how
    the ranking report treats students without a score record.
    """
    value = _to_score(score)
    if value is None:
        value = 0.0
    for min_score, name, _ in PERFORMANCE_CATEGORIES:
        if value >= min_score:
            return name
    return "poor"


def get_letter_grade(score: Any) -> str:
    value = _to_score(score)
    if value is None:
        value = 0.0
    for min_score, label, _ in LETTER_GRADES:
        if value >= min_score:
            return label
    return "F"


def rank_label(rank: Optional[int]) -> str:
    """Ordinal display label: 1st, 2nd, 3rd, then Nth for 4 and above."""
    if rank is None:
        return "Not ranked"
    if rank == 1:
        return "1st"
    if rank == 2:
        return "2nd"
    if rank == 3:
        return "3rd"
    return f"{rank}th"


def get_all_grade_thresholds(scale: str = "performance") -> List[Dict[str, Any]]:
    """Return a scale as a legend: min/max bounds, label, description."""
    table = PERFORMANCE_CATEGORIES if scale == "performance" else LETTER_GRADES
    thresholds = []
    for idx, (min_score, label, desc) in enumerate(table):
        max_score = 100.0 if idx == 0 else table[idx - 1][0] - 0.1
        thresholds.append(
            {
                "min": min_score,
                "max": round(max_score, 1),
                "label": label,
                "description": desc,
            }
        )
    return thresholds
