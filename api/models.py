"""
Pydantic request/response models for the API.

Optional fields default to None so that partial responses are valid when
database rows have NULL columns.  Money travels as a decimal string
(``"100333.33"``) next to its display form (``"£100,333.33"``) so that no
client ever sees a binary float.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from utils.formatting import format_currency, format_date, quantize_money


# ── Reference data ────────────────────────────────────────────────────────────

class AgencyOut(BaseModel):
    """A regulatory body."""
    code: str = Field(..., description="Short agency code", examples=["hse"])
    name: str = Field(..., description="Agency name", examples=["Health and Safety Executive"])
    enabled: bool = Field(True, description="Whether the agency is actively tracked")


# ── Offender records ──────────────────────────────────────────────────────────

class CaseOut(BaseModel):
    """A prosecuted case."""
    id: str
    offender_id: str
    agency_code: str | None = Field(None, description="Issuing agency", examples=["hse"])
    regulator_id: str | None = Field(None, description="Agency's own case reference", examples=["4567890"])
    action_date: date | None = Field(None, description="Date of the offence action")
    fine: str = Field(..., description="Fine as a decimal string", examples=["50000.00"])
    fine_display: str = Field(..., description="Formatted fine", examples=["£50,000.00"])
    breaches: str | None = None


class NoticeOut(BaseModel):
    """An enforcement notice."""
    id: str
    offender_id: str
    agency_code: str | None = Field(None, examples=["hse"])
    regulator_id: str | None = None
    notice_type: str | None = Field(None, examples=["Improvement Notice"])
    notice_date: date | None = None
    operative_date: date | None = None
    compliance_date: date | None = None
    compliance_period_days: int | None = Field(
        None, description="Days between operative (or notice) date and compliance date")
    body: str | None = None


class OffenderOut(BaseModel):
    """One row of the offender list."""
    id: str
    name: str = Field(..., examples=["Acme Manufacturing Limited"])
    postcode: str | None = Field(None, examples=["M1 1AE"])
    local_authority: str | None = Field(None, examples=["Manchester"])
    industry: str | None = Field(None, examples=["Manufacturing"])
    business_type: str | None = Field(None, examples=["limited_company"])
    total_cases: int = Field(0, description="Number of cases")
    total_notices: int = Field(0, description="Number of notices")
    total_fines: str = Field(..., description="Sum of case fines", examples=["250000.00"])
    total_fines_display: str = Field(..., examples=["£250,000.00"])
    first_seen_date: date | None = None
    last_seen_date: date | None = None
    is_repeat: bool = Field(..., description="More than one case or notice in total")


class OffenderListResponse(BaseModel):
    """Response body for GET /api/v1/offenders."""
    items: list[OffenderOut] = Field(..., description="Offenders on this page")
    total: int = Field(..., description="Offenders matching the filters", examples=[132])
    page: int = Field(..., ge=1, examples=[1])
    per_page: int = Field(..., ge=1, examples=[20])
    total_pages: int = Field(..., ge=1, examples=[7])
    has_next: bool
    has_prev: bool
    sort_by: str = Field(..., examples=["total_fines"])
    sort_order: str = Field(..., examples=["desc"])
    filters: dict[str, Any] = Field(default_factory=dict, description="Active filters")
    empty_message: str | None = Field(
        None, description="Set when nothing matched", examples=["No offenders found"])


# ── Detail view ───────────────────────────────────────────────────────────────

class RiskOut(BaseModel):
    level: str = Field(..., description="low | moderate | high", examples=["high"])
    label: str = Field(..., examples=["High Risk"])
    factors: list[str] = Field(default_factory=list, examples=[["Escalating fines"]])


class AgencyStatsOut(BaseModel):
    agency_code: str
    cases: int
    notices: int
    total_fines: str
    total_fines_display: str


class IndustryContextOut(BaseModel):
    industry: str | None = None
    peer_count: int = Field(0, description="Other offenders in the same industry")
    average_fine: str | None = None
    average_fine_display: str | None = None
    comparison: str | None = Field(None, examples=["Above industry average"])


class RelatedOut(BaseModel):
    same_industry: list[OffenderOut] = Field(default_factory=list)
    same_area: list[OffenderOut] = Field(default_factory=list)


class TimelineEntryOut(BaseModel):
    action_type: str = Field(..., description="case | notice")
    occurred_on: str = Field(..., description="ISO date, or N/A")
    agency_code: str | None = None
    record_id: str
    fine_display: str | None = None
    notice_type: str | None = None


class TimelineYearOut(BaseModel):
    year: int | None = Field(None, description="Calendar year; null groups undated records")
    entries: list[TimelineEntryOut]


class OffenderDetailOut(OffenderOut):
    """Response body for GET /api/v1/offenders/{id}."""
    normalized_name: str | None = None
    address: str | None = None
    country: str | None = None
    main_activity: str | None = None
    sic_code: str | None = None
    cases: list[CaseOut] = Field(default_factory=list)
    notices: list[NoticeOut] = Field(default_factory=list)
    risk: RiskOut
    agency_breakdown: list[AgencyStatsOut] = Field(default_factory=list)
    industry_context: IndustryContextOut
    related: RelatedOut
    timeline: list[TimelineYearOut] = Field(default_factory=list)


# ── Dashboard and reports ─────────────────────────────────────────────────────

class SummaryOut(BaseModel):
    """Headline offender figures."""
    total_count: int = Field(..., examples=[3])
    repeat_count: int = Field(..., examples=[2])
    repeat_percentage: float = Field(..., examples=[66.7])
    repeat_display: str = Field(..., examples=["2 (66.7%)"])
    average_fine: str = Field(..., examples=["100333.33"])
    average_fine_display: str = Field(..., examples=["£100,333.33"])
    total_fines: str = Field(..., examples=["301000.00"])


class IndustryStatsOut(BaseModel):
    industry: str
    count: int
    total_fines: str
    total_fines_display: str
    average_fine: str
    average_fine_display: str


class OffenderReportOut(BaseModel):
    """Response body for GET /api/v1/reports/offenders."""
    summary: SummaryOut
    industry_stats: list[IndustryStatsOut]
    top_offenders: list[OffenderOut]


# ── Record creation ───────────────────────────────────────────────────────────

class OffenderIn(BaseModel):
    """Offender details used to find or create the offender."""
    name: str = Field(..., min_length=1, examples=["Acme Manufacturing Ltd"])
    address: str | None = None
    postcode: str | None = None
    local_authority: str | None = None
    country: str | None = None
    main_activity: str | None = None
    sic_code: str | None = None
    industry: str | None = None
    business_type: str | None = None


class CaseIn(BaseModel):
    """Request body for POST /api/v1/cases.  Give offender_id or offender."""
    offender_id: str | None = None
    offender: OffenderIn | None = None
    agency_code: str = Field(..., min_length=1, examples=["hse"])
    regulator_id: str | None = None
    action_date: date | None = None
    fine: Decimal = Field(Decimal("0"), ge=0, description="Fine amount", examples=["50000.00"])
    breaches: str | None = None


class NoticeIn(BaseModel):
    """Request body for POST /api/v1/notices.  Give offender_id or offender."""
    offender_id: str | None = None
    offender: OffenderIn | None = None
    agency_code: str = Field(..., min_length=1, examples=["hse"])
    regulator_id: str | None = None
    notice_type: str | None = None
    notice_date: date | None = None
    operative_date: date | None = None
    compliance_date: date | None = None
    body: str | None = None


class CaseCreatedOut(BaseModel):
    case: CaseOut
    offender: OffenderOut


class NoticeCreatedOut(BaseModel):
    notice: NoticeOut
    offender: OffenderOut


# ── Error model ───────────────────────────────────────────────────────────────

class ErrorResponse(BaseModel):
    """Standard error response body."""
    error: str = Field(..., description="Short error category", examples=["Bad request"])
    detail: str | None = Field(None, description="Extended error detail")
    status_code: int = Field(..., ge=400, le=599, description="HTTP status code", examples=[400])
    links: dict[str, str] | None = Field(None, description="Where to go instead")


# ── Converters ────────────────────────────────────────────────────────────────

def case_out(case) -> CaseOut:
    return CaseOut(
        id=case.id,
        offender_id=case.offender_id,
        agency_code=case.agency_code,
        regulator_id=case.regulator_id,
        action_date=case.action_date,
        fine=str(quantize_money(case.fine)),
        fine_display=format_currency(case.fine),
        breaches=case.breaches,
    )


def notice_out(notice) -> NoticeOut:
    return NoticeOut(
        id=notice.id,
        offender_id=notice.offender_id,
        agency_code=notice.agency_code,
        regulator_id=notice.regulator_id,
        notice_type=notice.notice_type,
        notice_date=notice.notice_date,
        operative_date=notice.operative_date,
        compliance_date=notice.compliance_date,
        compliance_period_days=notice.compliance_period_days,
        body=notice.body,
    )


def _offender_fields(offender, is_repeat: bool) -> dict[str, Any]:
    return {
        "id": offender.id,
        "name": offender.name,
        "postcode": offender.postcode,
        "local_authority": offender.local_authority,
        "industry": offender.industry,
        "business_type": offender.business_type,
        "total_cases": offender.total_cases,
        "total_notices": offender.total_notices,
        "total_fines": str(quantize_money(offender.total_fines)),
        "total_fines_display": format_currency(offender.total_fines),
        "first_seen_date": offender.first_seen_date,
        "last_seen_date": offender.last_seen_date,
        "is_repeat": is_repeat,
    }


def offender_out(offender, engine) -> OffenderOut:
    return OffenderOut(**_offender_fields(offender, engine.classify_repeat(offender)))


def summary_out(summary) -> SummaryOut:
    return SummaryOut(**summary.to_dict())


def industry_stats_out(stats) -> IndustryStatsOut:
    return IndustryStatsOut(
        industry=stats.industry,
        count=stats.count,
        total_fines=str(stats.total_fines),
        total_fines_display=format_currency(stats.total_fines),
        average_fine=str(stats.average_fine),
        average_fine_display=format_currency(stats.average_fine),
    )


def timeline_entry_out(entry) -> TimelineEntryOut:
    is_case = entry.action_type == "case"
    return TimelineEntryOut(
        action_type=entry.action_type,
        occurred_on=format_date(entry.occurred_on),
        agency_code=entry.agency_code,
        record_id=entry.record.id,
        fine_display=format_currency(entry.record.fine) if is_case else None,
        notice_type=None if is_case else entry.record.notice_type,
    )


def offender_detail_out(
    offender, engine, risk, breakdown, context, related, timeline
) -> OffenderDetailOut:
    """Assemble the detail body from the engine's per-offender results."""
    return OffenderDetailOut(
        **_offender_fields(offender, engine.classify_repeat(offender)),
        normalized_name=offender.normalized_name,
        address=offender.address,
        country=offender.country,
        main_activity=offender.main_activity,
        sic_code=offender.sic_code,
        cases=[case_out(c) for c in offender.cases],
        notices=[notice_out(n) for n in offender.notices],
        risk=RiskOut(level=risk.tier.value, label=risk.label, factors=list(risk.factors)),
        agency_breakdown=[
            AgencyStatsOut(
                agency_code=code,
                cases=s.cases,
                notices=s.notices,
                total_fines=str(quantize_money(s.total_fines)),
                total_fines_display=format_currency(s.total_fines),
            )
            for code, s in breakdown.items()
        ],
        industry_context=IndustryContextOut(
            industry=context.industry,
            peer_count=context.peer_count,
            average_fine=str(context.average_fine) if context.average_fine is not None else None,
            average_fine_display=(
                format_currency(context.average_fine)
                if context.average_fine is not None else None
            ),
            comparison=context.comparison,
        ),
        related=RelatedOut(
            same_industry=[offender_out(o, engine) for o in related.same_industry],
            same_area=[offender_out(o, engine) for o in related.same_area],
        ),
        timeline=[
            TimelineYearOut(year=year, entries=[timeline_entry_out(e) for e in entries])
            for year, entries in timeline
        ],
    )
