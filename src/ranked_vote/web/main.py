import logging
import os
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse

from ..errors import ReportLookupError
from ..report.store import ReportStore

logger = logging.getLogger(__name__)

REPORT_DIR_ENV = "RANKED_VOTE_REPORT_DIR"

app = FastAPI(
    title="Ranked Vote Reports",
    description="Read-only access to ranked-choice contest reports",
)

# Global report directory; falls back to RANKED_VOTE_REPORT_DIR
report_dir: Optional[Path] = None


def set_report_dir(path: str):
    """Set the report directory for the application."""
    global report_dir
    report_dir = Path(path)
    logger.info(f"Report directory set to: {report_dir}")
    if not report_dir.is_dir():
        logger.warning(f"Report directory does not exist yet: {report_dir}")


def get_store() -> ReportStore:
    """Report store for the configured directory."""
    directory = report_dir
    if directory is None and os.environ.get(REPORT_DIR_ENV):
        directory = Path(os.environ[REPORT_DIR_ENV])
    if directory is None:
        raise HTTPException(status_code=500, detail="Report directory not configured")
    return ReportStore(directory)


def not_found() -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": "Report not found"})


@app.get("/api/index")
async def get_index():
    """Listing of all elections and contests."""
    try:
        index = get_store().get_index()
    except ReportLookupError as e:
        logger.error(f"Error reading index: {e}")
        raise HTTPException(status_code=500, detail="Failed to read index")
    if index is None:
        return {"elections": []}
    return index


@app.get("/api/report/{path:path}")
async def get_report(path: str):
    """Full report for one contest, e.g. /api/report/us/ca/sfo/2019/11/mayor."""
    try:
        report = get_store().get_report(path)
    except ReportLookupError as e:
        logger.error(f"Error reading report {path}: {e}")
        raise HTTPException(status_code=500, detail="Failed to read report")
    if report is None:
        return not_found()
    return report


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    directory = report_dir or os.environ.get(REPORT_DIR_ENV)
    return {"status": "healthy", "report_dir_configured": directory is not None}
