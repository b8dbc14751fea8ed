"""
Insight routes - at-risk students, top performers, class summary and anomalies.
"""

import asyncio
import logging
import os
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from starlette.concurrency import run_in_threadpool

from grading.dataset import build_score_frame
from grading.insights import (
    INSIGHT_TYPES,
    detect_score_anomalies,
    generate_insights,
    generate_performance_summary,
    identify_at_risk_students,
    identify_top_performers,
)
from routes.payload import load_cohort

logger = logging.getLogger(__name__)

router = APIRouter()

AT_RISK_THRESHOLD = float(os.getenv("AT_RISK_THRESHOLD", "60"))
HIGH_PERFORMER_THRESHOLD = float(os.getenv("HIGH_PERFORMER_THRESHOLD", "85"))

THRESHOLDS = {
    "at_risk_average": AT_RISK_THRESHOLD,
    "struggling_subject": AT_RISK_THRESHOLD,
    "top_performer": HIGH_PERFORMER_THRESHOLD,
}


@router.post("")
async def insights(
    payload: dict,
    insight_type: str = Query("all", alias="type"),
    teacher_id: Optional[str] = Query(None),
):
    """
    Insights over the subject offerings taught by teacher_id.
    type: at-risk | top-performers | summary | anomalies | all
    """
    if not teacher_id:
        raise HTTPException(400, "teacher_id is required.")
    if insight_type not in INSIGHT_TYPES:
        raise HTTPException(400, f"type must be one of: {', '.join(INSIGHT_TYPES)}.")

    cohort = load_cohort(payload, teacher_id=teacher_id)
    df = build_score_frame(
        cohort["scores"],
        cohort["subjects"],
        cohort["students"],
        trimesters=cohort["trimesters"],
        academic_years=cohort["academic_years"],
    )
    logger.info("Generating '%s' insights for teacher %s over %d score(s)",
                insight_type, teacher_id, len(df))

    if insight_type != "all":
        return await run_in_threadpool(generate_insights, df, insight_type, THRESHOLDS)

    at_risk, top, summary, anomalies = await asyncio.gather(
        run_in_threadpool(identify_at_risk_students, df, THRESHOLDS),
        run_in_threadpool(identify_top_performers, df, THRESHOLDS),
        run_in_threadpool(generate_performance_summary, df, THRESHOLDS),
        run_in_threadpool(detect_score_anomalies, df, THRESHOLDS),
    )
    return {
        "at_risk_students": at_risk,
        "top_performers": top,
        "summary": summary,
        "anomalies": anomalies,
    }
