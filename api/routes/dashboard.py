"""Dashboard summary endpoints for the overview page.

The summary is cached on the app.  The cache is bound to the case and notice
subscription, so any new record clears it before the next lookup.
"""

import sqlite3

from fastapi import APIRouter, Depends, Query, Request

from api.database import get_db, get_engine
from api.models import AgencyOut, SummaryOut, summary_out
from enforcement.repository import list_agencies, list_offenders
from enforcement.stats import OffenderStatsEngine
from utils.cache import TTLCache

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/offenders", response_model=SummaryOut, summary="Offender summary card")
def offender_summary(
    request: Request,
    agency: str | None = Query(None, description="Only offenders with a record from this agency"),
    conn: sqlite3.Connection = Depends(get_db),
    engine: OffenderStatsEngine = Depends(get_engine),
) -> SummaryOut:
    """Return the offender count, repeat-offender share and average fine.

    Example body for three offenders fined £1,000, £50,000 and £250,000,
    two of them repeat offenders::

        {"total_count": 3, "repeat_display": "2 (66.7%)",
         "average_fine_display": "£100,333.33", ...}
    """
    cache: TTLCache = request.app.state.summary_cache
    cache_key = ("offender_summary", agency)
    cached = cache.get(cache_key)
    if cached is not None:
        return cached

    offenders = list_offenders(conn, agency=agency)
    result = summary_out(engine.compute_summary(offenders))
    cache.set(cache_key, result)
    return result


@router.get("/agencies", response_model=list[AgencyOut], summary="Tracked agencies")
def agencies(
    enabled_only: bool = Query(False),
    conn: sqlite3.Connection = Depends(get_db),
) -> list[AgencyOut]:
    return [
        AgencyOut(code=a.code, name=a.name, enabled=a.enabled)
        for a in list_agencies(conn, enabled_only=enabled_only)
    ]
