"""GET /api/v1/reports/offenders: industry breakdown and top offenders."""

import sqlite3
from datetime import date

from fastapi import APIRouter, Depends, Query

from api.database import get_db, get_engine
from api.models import OffenderReportOut, industry_stats_out, offender_out, summary_out
from enforcement.repository import list_offenders
from enforcement.stats import OffenderStatsEngine

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/offenders", response_model=OffenderReportOut, summary="Offender report")
def offender_report(
    agency: str | None = Query(None, description="Restrict to one agency code"),
    date_from: date | None = Query(None, description="Records on or after this date"),
    date_to: date | None = Query(None, description="Records on or before this date"),
    limit: int = Query(10, ge=1, le=100, description="Number of top offenders"),
    conn: sqlite3.Connection = Depends(get_db),
    engine: OffenderStatsEngine = Depends(get_engine),
) -> OffenderReportOut:
    """Return per-industry totals, the highest-fined offenders and the
    repeat-offender summary for the selected agency and period."""
    offenders = list_offenders(conn, agency=agency, date_from=date_from, date_to=date_to)
    return OffenderReportOut(
        summary=summary_out(engine.compute_summary(offenders)),
        industry_stats=[industry_stats_out(s) for s in engine.industry_stats(offenders)],
        top_offenders=[offender_out(o, engine) for o in engine.top_offenders(offenders, limit)],
    )
