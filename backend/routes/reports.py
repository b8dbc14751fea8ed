"""
Report routes - ranking report PDF and Excel generation endpoints.
"""

import logging
import os
import re
import uuid
from pathlib import Path

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask

from grading.ranking import build_ranking_report
from grading.report_builder import generate_ranking_excel, generate_ranking_report_pdf
from grading.stats import compute_score_summary
from routes.payload import EXCELLENCE_MARK, PASS_MARK, cohort_students, load_cohort

logger = logging.getLogger(__name__)

router = APIRouter()

SCHOOL_NAME = os.getenv("SCHOOL_NAME", "My School")
REPORTS_DIR = Path(__file__).resolve().parent.parent / "generated_reports"
REPORTS_DIR.mkdir(parents=True, exist_ok=True)


def _safe_token(value: str, fallback: str = "item") -> str:
    """Create filesystem-safe token for filenames."""
    token = re.sub(r"[^A-Za-z0-9._-]+", "_", str(value)).strip("._-")
    return token or fallback


def _safe_unlink(path: str):
    """Delete the generated file once the response has been sent."""
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Could not delete report %s: %s", path, exc)


def _ranking_report(payload: dict):
    cohort = load_cohort(payload)
    subject_id = cohort["filters"].get("subject_id")
    if not subject_id:
        raise HTTPException(400, "Provide 'filters.subject_id'.")
    if not cohort["subjects"]:
        raise HTTPException(404, f"Subject '{subject_id}' not found.")

    subject = cohort["subjects"][0]
    students = cohort_students(cohort["students"], subject) or [
        {"id": s.get("student_id")} for s in cohort["scores"]
    ]
    rows = build_ranking_report(students, cohort["scores"], cohort["components"])
    summary = compute_score_summary(rows, pass_mark=PASS_MARK, excellence_mark=EXCELLENCE_MARK)
    return subject, rows, summary


@router.post("/ranking-pdf")
async def ranking_report_pdf(payload: dict):
    """Ranking report PDF for one subject offering."""
    subject, rows, summary = _ranking_report(payload)
    subject_name = str(subject.get("name") or subject.get("id"))
    report_id = str(uuid.uuid4())[:8]
    subject_token = _safe_token(subject_name, fallback="subject")
    output_path = REPORTS_DIR / f"ranking_{subject_token}_{report_id}.pdf"

    generate_ranking_report_pdf(
        output_path=str(output_path),
        school_name=payload.get("school_name") or SCHOOL_NAME,
        subject_name=subject_name,
        rows=rows,
        summary=summary,
        teacher_name=payload.get("teacher_name"),
        period=payload.get("period"),
    )
    logger.info("Generated ranking PDF for subject %s (%d students)", subject.get("id"), len(rows))

    return FileResponse(
        str(output_path),
        media_type="application/pdf",
        filename=f"Ranking_{subject_token}_{report_id}.pdf",
        background=BackgroundTask(_safe_unlink, str(output_path)),
    )


@router.post("/ranking-excel")
async def ranking_report_excel(payload: dict):
    """Ranking report workbook for one subject offering."""
    subject, rows, summary = _ranking_report(payload)
    subject_name = str(subject.get("name") or subject.get("id"))
    report_id = str(uuid.uuid4())[:8]
    subject_token = _safe_token(subject_name, fallback="subject")
    output_path = REPORTS_DIR / f"ranking_{subject_token}_{report_id}.xlsx"

    generate_ranking_excel(
        output_path=str(output_path),
        subject_name=subject_name,
        rows=rows,
        summary=summary,
    )
    logger.info("Generated ranking workbook for subject %s (%d students)", subject.get("id"), len(rows))

    return FileResponse(
        str(output_path),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        filename=f"Ranking_{subject_token}_{report_id}.xlsx",
        background=BackgroundTask(_safe_unlink, str(output_path)),
    )
