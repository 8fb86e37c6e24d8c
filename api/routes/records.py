"""
POST /api/v1/cases and POST /api/v1/notices endpoints.

Each request names its offender by ``offender_id`` or by an ``offender``
object (name, postcode, ...) that is matched against existing offenders
before a new one is created.  The offender's aggregates are refreshed in the
same transaction, and the change is published on the app's event bus.
"""

import sqlite3

from fastapi import APIRouter, Depends, HTTPException

from api.database import get_bus, get_db, get_engine
from api.models import (
    CaseCreatedOut,
    CaseIn,
    ErrorResponse,
    NoticeCreatedOut,
    NoticeIn,
    case_out,
    notice_out,
    offender_out,
)
from enforcement.events import EventBus
from enforcement.repository import create_case, create_notice, get_offender
from enforcement.stats import OffenderStatsEngine

router = APIRouter(tags=["records"])

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Duplicate regulator id for the agency"},
    404: {"model": ErrorResponse, "description": "Unknown offender_id"},
}


def _require_offender(body: CaseIn | NoticeIn) -> None:
    if not body.offender_id and body.offender is None:
        raise HTTPException(
            status_code=422, detail="Provide either offender_id or offender"
        )


@router.post("/cases", response_model=CaseCreatedOut, status_code=201,
             summary="Record a case", responses=_ERROR_RESPONSES)
def post_case(
    body: CaseIn,
    conn: sqlite3.Connection = Depends(get_db),
    engine: OffenderStatsEngine = Depends(get_engine),
    bus: EventBus = Depends(get_bus),
) -> CaseCreatedOut:
    _require_offender(body)
    case = create_case(conn, body.model_dump(), bus=bus)
    offender = get_offender(conn, case.offender_id, load_related=False)
    return CaseCreatedOut(case=case_out(case), offender=offender_out(offender, engine))


@router.post("/notices", response_model=NoticeCreatedOut, status_code=201,
             summary="Record a notice", responses=_ERROR_RESPONSES)
def post_notice(
    body: NoticeIn,
    conn: sqlite3.Connection = Depends(get_db),
    engine: OffenderStatsEngine = Depends(get_engine),
    bus: EventBus = Depends(get_bus),
) -> NoticeCreatedOut:
    _require_offender(body)
    notice = create_notice(conn, body.model_dump(), bus=bus)
    offender = get_offender(conn, notice.offender_id, load_related=False)
    return NoticeCreatedOut(notice=notice_out(notice), offender=offender_out(offender, engine))
