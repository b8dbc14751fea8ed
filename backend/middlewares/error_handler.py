"""
Error handlers - consistent JSON error bodies for engine data errors.
"""

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from grading.dataset import GradebookDataError

logger = logging.getLogger(__name__)


def _now_iso():
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def add_error_handlers(app: FastAPI):
    @app.exception_handler(GradebookDataError)
    async def gradebook_data_error_handler(request: Request, exc: GradebookDataError):
        logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=422,
            content={
                "error": {
                    "code": "INVALID_DATA",
                    "message": str(exc),
                    "problems": exc.problems,
                },
                "generated_at": _now_iso(),
            },
        )
