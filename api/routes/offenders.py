"""
GET /api/v1/offenders and GET /api/v1/offenders/{id} endpoints.

The list endpoint loads offenders from the store (optionally pre-filtered by
agency and date range in SQL) and then filters, sorts and paginates them
with the stats engine.  The detail endpoint adds the risk assessment,
agency breakdown, industry comparison, related offenders and the
enforcement timeline.  An unknown id raises ``NotFound``, which the app
turns into a 404 body linking back to the list.
"""

import logging
import sqlite3
from datetime import date

from fastapi import APIRouter, Depends, Query, Request

from api.database import get_db, get_engine
from api.models import (
    ErrorResponse,
    OffenderDetailOut,
    OffenderListResponse,
    offender_detail_out,
    offender_out,
)
from enforcement.filters import OffenderFilters, TimelineFilter, paginate
from enforcement.repository import get_offender, list_offenders
from enforcement.stats import OffenderStatsEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/offenders", tags=["offenders"])


@router.get("", response_model=OffenderListResponse, summary="List offenders")
def offender_list(
    request: Request,
    industry: str | None = Query(None, description="Exact industry match"),
    local_authority: str | None = Query(None, description="Local authority contains (case-insensitive)"),
    business_type: str | None = Query(None, description="limited_company | individual | partnership | plc | other"),
    repeat_only: bool = Query(False, description="Only offenders with more than one case or notice"),
    agency: str | None = Query(None, description="Agency code present among the offender's records"),
    search: str | None = Query(None, description="Name or postcode contains (case-insensitive)"),
    date_from: date | None = Query(None, description="Only offenders with a record on or after this date"),
    date_to: date | None = Query(None, description="Only offenders with a record on or before this date"),
    sort_by: str | None = Query(None, description="total_fines | total_cases | total_notices | name | first_seen_date | last_seen_date"),
    sort_order: str | None = Query(None, description="asc | desc"),
    page: int = Query(1, ge=1),
    per_page: int | None = Query(None, ge=1, le=100),
    conn: sqlite3.Connection = Depends(get_db),
    engine: OffenderStatsEngine = Depends(get_engine),
) -> OffenderListResponse:
    """Return one page of filtered, sorted offenders.

    An unsupported ``sort_by`` / ``sort_order`` falls back to total fines,
    descending; the response reports the ordering actually applied.  When
    nothing matches, ``empty_message`` is set.
    """
    filters = OffenderFilters.from_params({
        "industry": industry,
        "local_authority": local_authority,
        "business_type": business_type,
        "repeat_only": repeat_only,
        "agency": agency,
        "search": search,
    })
    spec = engine.resolve_sort(sort_by, sort_order)

    offenders = list_offenders(conn, date_from=date_from, date_to=date_to)
    matched = engine.sort(engine.filter(offenders, filters), spec.key, spec.order)

    active = dict(filters.active)
    if date_from is not None:
        active["date_from"] = date_from.isoformat()
    if date_to is not None:
        active["date_to"] = date_to.isoformat()

    result = paginate(
        matched,
        page=page,
        per_page=per_page or request.app.state.config.page_size,
        filters=active,
    )
    empty = result.empty_result
    return OffenderListResponse(
        items=[offender_out(o, engine) for o in result.items],
        total=result.total,
        page=result.page,
        per_page=result.per_page,
        total_pages=result.total_pages,
        has_next=result.has_next,
        has_prev=result.has_prev,
        sort_by=spec.key,
        sort_order=spec.order,
        filters=result.filters,
        empty_message=empty.message if empty else None,
    )


@router.get(
    "/{offender_id}",
    response_model=OffenderDetailOut,
    summary="Offender detail",
    responses={404: {"model": ErrorResponse, "description": "Offender not found"}},
)
def offender_detail(
    offender_id: str,
    filter_type: str | None = Query(None, description="Timeline: cases | notices"),
    timeline_agency: str | None = Query(None, description="Timeline: agency code"),
    from_date: str | None = Query(None, description="Timeline: ISO start date (inclusive)"),
    to_date: str | None = Query(None, description="Timeline: ISO end date (inclusive)"),
    conn: sqlite3.Connection = Depends(get_db),
    engine: OffenderStatsEngine = Depends(get_engine),
) -> OffenderDetailOut:
    offender = get_offender(conn, offender_id)
    everyone = list_offenders(conn)

    timeline_filter = TimelineFilter.from_params({
        "filter_type": filter_type,
        "agency": timeline_agency,
        "from_date": from_date,
        "to_date": to_date,
    })
    return offender_detail_out(
        offender,
        engine,
        risk=engine.rank_risk(offender),
        breakdown=engine.agency_breakdown(offender),
        context=engine.industry_context(offender, everyone),
        related=engine.related_offenders(offender, everyone),
        timeline=engine.enforcement_timeline(offender, timeline_filter),
    )
