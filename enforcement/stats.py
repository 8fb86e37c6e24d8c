"""
Offender aggregation and risk classification.

``OffenderStatsEngine`` turns offender records (and, where loaded, their
cases and notices) into the figures a dashboard shows: the summary card,
repeat-offender flags, risk tiers, industry comparisons, agency breakdowns
and the per-offender enforcement timeline.

The engine keeps no state between calls.  Every method is a pure function of
its arguments plus the ``RiskPolicy`` given at construction, runs in a single
pass over its input, and never raises on partial records: missing counts and
fines are treated as zero.

Usage::

    engine = OffenderStatsEngine()
    summary = engine.compute_summary(offenders)
    summary.repeat_display        # "2 (66.7%)"
    summary.average_fine_display  # "£100,333.33"
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence

from enforcement.errors import InvalidFilter
from enforcement.filters import OffenderFilters, SortSpec, TimelineFilter
from enforcement.models import Case, Notice, Offender
from utils.config import RiskPolicy
from utils.formatting import format_currency, format_percent, percentage, quantize_money
from utils.strings import safe_decimal, safe_int

logger = logging.getLogger(__name__)

FACTOR_MULTIPLE_AGENCIES = "Multiple agencies involved"
FACTOR_ESCALATING_FINES = "Escalating fines"
FACTOR_RECENT_ACTIVITY = "Recent activity"
FACTOR_MULTIPLE_VIOLATIONS = "Multiple violations"

COMPARISON_SIGNIFICANTLY_ABOVE = "Significantly above industry average"
COMPARISON_ABOVE = "Above industry average"
COMPARISON_WITHIN = "Within industry average"

UNKNOWN_INDUSTRY = "Unknown"
UNKNOWN_AGENCY = "unknown"


class RiskTier(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"

    @property
    def label(self) -> str:
        return f"{self.value.capitalize()} Risk"


# ── Result structures ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Summary:
    """Headline figures for a collection of offenders."""

    total_count: int
    repeat_count: int
    repeat_percentage: float
    average_fine: Decimal
    total_fines: Decimal

    @property
    def repeat_display(self) -> str:
        return f"{self.repeat_count:,} ({format_percent(self.repeat_percentage)})"

    @property
    def average_fine_display(self) -> str:
        return format_currency(self.average_fine)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_count": self.total_count,
            "repeat_count": self.repeat_count,
            "repeat_percentage": self.repeat_percentage,
            "repeat_display": self.repeat_display,
            "average_fine": str(self.average_fine),
            "average_fine_display": self.average_fine_display,
            "total_fines": str(self.total_fines),
        }


@dataclass(frozen=True)
class RiskAssessment:
    """Risk tier plus the signals that produced it."""

    tier: RiskTier
    factors: tuple[str, ...] = ()
    agency_count: int = 0
    escalating: bool = False
    recent: bool = False
    last_action_date: date | None = None

    @property
    def label(self) -> str:
        return self.tier.label


@dataclass
class AgencyStats:
    cases: int = 0
    notices: int = 0
    total_fines: Decimal = Decimal("0")


@dataclass(frozen=True)
class IndustryContext:
    """How an offender's fines compare with others in its industry."""

    industry: str | None
    peer_count: int
    average_fine: Decimal | None = None
    comparison: str | None = None


@dataclass(frozen=True)
class IndustryStats:
    industry: str
    count: int
    total_fines: Decimal
    average_fine: Decimal


@dataclass
class RelatedOffenders:
    same_industry: list[Offender] = field(default_factory=list)
    same_area: list[Offender] = field(default_factory=list)


@dataclass(frozen=True)
class TimelineEntry:
    """One case or notice on an offender's enforcement timeline."""

    action_type: str  # "case" | "notice"
    occurred_on: date | None
    agency_code: str | None
    record: Case | Notice


# ── Field accessors (treat missing as zero) ───────────────────────────────────


def _fines(offender: Offender) -> Decimal:
    return safe_decimal(getattr(offender, "total_fines", None))


def _cases(offender: Offender) -> int:
    return safe_int(getattr(offender, "total_cases", None))


def _notices(offender: Offender) -> int:
    return safe_int(getattr(offender, "total_notices", None))


def _date_key(value: date | None) -> tuple[bool, date]:
    # undated sorts below every real date
    return (value is not None, value or date.min)


_SORT_KEY_FUNCS = {
    "total_fines": _fines,
    "total_cases": _cases,
    "total_notices": _notices,
    "name": lambda o: (o.name or "").casefold(),
    "first_seen_date": lambda o: _date_key(o.first_seen_date),
    "last_seen_date": lambda o: _date_key(o.last_seen_date),
}


# ── Engine ────────────────────────────────────────────────────────────────────


class OffenderStatsEngine:
    """Pure computations over offenders and their enforcement records.

    Args:
        policy: Risk thresholds.  Defaults to ``RiskPolicy()``.
    """

    def __init__(self, policy: RiskPolicy | None = None) -> None:
        self.policy = policy or RiskPolicy()

    # ── Summary ───────────────────────────────────────────────────────────

    def compute_summary(self, offenders: Iterable[Offender]) -> Summary:
        """Count, repeat share, and average fine for *offenders*.

        The repeat percentage is rounded half-up to one decimal place and the
        average fine half-up to whole pence.  An empty input gives zeros.
        """
        total_count = 0
        repeat_count = 0
        total_fines = Decimal("0")
        for offender in offenders:
            total_count += 1
            if self.classify_repeat(offender):
                repeat_count += 1
            total_fines += _fines(offender)

        if total_count == 0:
            return Summary(0, 0, 0.0, quantize_money(0), quantize_money(0))

        return Summary(
            total_count=total_count,
            repeat_count=repeat_count,
            repeat_percentage=percentage(repeat_count, total_count),
            average_fine=quantize_money(total_fines / total_count),
            total_fines=quantize_money(total_fines),
        )

    def classify_repeat(self, offender: Offender) -> bool:
        """True when the offender has more than one case or notice in total."""
        return _cases(offender) + _notices(offender) > 1

    # ── Risk ──────────────────────────────────────────────────────────────

    def rank_risk(self, offender: Offender, today: date | None = None) -> RiskAssessment:
        """Classify an offender as low, moderate, or high risk.

        High risk needs all of: cases from at least ``policy.min_agencies``
        agencies, an escalating fine trend, and an action fewer than
        ``policy.recent_window_days`` days before *today*.  Otherwise repeat offenders
        are moderate and everyone else is low.

        Args:
            offender: Offender, ideally loaded with its cases and notices.
            today: Reference date for the recent-activity window
                (default: ``date.today()``).
        """
        today = today or date.today()
        policy = self.policy
        cases = list(offender.cases or [])

        agency_count = len({c.agency_code for c in cases if c.agency_code})
        multi_agency = agency_count >= policy.min_agencies
        escalating = self._fines_escalating(cases)

        last_action = self.last_action_date(offender)
        recent = (
            last_action is not None
            and (today - last_action).days < policy.recent_window_days
        )

        factors: list[str] = []
        if multi_agency:
            factors.append(FACTOR_MULTIPLE_AGENCIES)
        if escalating:
            factors.append(FACTOR_ESCALATING_FINES)
        if recent:
            factors.append(FACTOR_RECENT_ACTIVITY)
        if _cases(offender) + _notices(offender) > policy.multiple_violations:
            factors.append(FACTOR_MULTIPLE_VIOLATIONS)

        if multi_agency and escalating and recent:
            tier = RiskTier.HIGH
        elif self.classify_repeat(offender):
            tier = RiskTier.MODERATE
        else:
            tier = RiskTier.LOW

        return RiskAssessment(
            tier=tier,
            factors=tuple(factors),
            agency_count=agency_count,
            escalating=escalating,
            recent=recent,
            last_action_date=last_action,
        )

    def _fines_escalating(self, cases: Sequence[Case]) -> bool:
        fined = sorted(
            (c for c in cases if c.action_date is not None and safe_decimal(c.fine) > 0),
            key=lambda c: c.action_date,
        )
        if len(fined) < self.policy.min_escalation_cases:
            return False
        first = safe_decimal(fined[0].fine)
        latest = safe_decimal(fined[-1].fine)
        return latest > first * Decimal(str(self.policy.escalation_factor))

    @staticmethod
    def last_action_date(offender: Offender) -> date | None:
        """Most recent case or notice date, falling back to ``last_seen_date``."""
        dates = [c.action_date for c in offender.cases or [] if c.action_date]
        dates += [n.notice_date for n in offender.notices or [] if n.notice_date]
        if dates:
            return max(dates)
        return offender.last_seen_date

    # ── Filtering and sorting ─────────────────────────────────────────────

    def filter(
        self,
        offenders: Iterable[Offender],
        predicates: OffenderFilters | Mapping[str, Any] | None = None,
    ) -> list[Offender]:
        """Keep offenders matching every populated predicate.

        *predicates* may be an ``OffenderFilters`` or a query-param mapping.
        """
        if predicates is None:
            return list(offenders)
        if not isinstance(predicates, OffenderFilters):
            predicates = OffenderFilters.from_params(predicates)

        authority = predicates.local_authority.casefold() if predicates.local_authority else None
        search = predicates.search.casefold() if predicates.search else None

        result = []
        for o in offenders:
            if predicates.industry is not None and o.industry != predicates.industry:
                continue
            if authority is not None and authority not in (o.local_authority or "").casefold():
                continue
            if predicates.business_type is not None and o.business_type != predicates.business_type:
                continue
            if predicates.repeat_only and not self.classify_repeat(o):
                continue
            if search is not None and not (
                search in (o.name or "").casefold()
                or search in (o.postcode or "").casefold()
            ):
                continue
            if predicates.agency is not None and predicates.agency not in self._agency_codes(o):
                continue
            result.append(o)
        return result

    def sort(
        self,
        offenders: Iterable[Offender],
        key: str | None = None,
        order: str | None = None,
    ) -> list[Offender]:
        """Stable sort by ``key`` ("total_fines", "total_cases", "name", ...).

        An unsupported key or order is logged and replaced by the default
        ordering (total fines, descending).
        """
        spec = self.resolve_sort(key, order)
        return sorted(offenders, key=_SORT_KEY_FUNCS[spec.key], reverse=spec.descending)

    @staticmethod
    def resolve_sort(key: str | None, order: str | None) -> SortSpec:
        """The ordering ``sort`` will apply for *key* and *order*."""
        try:
            return SortSpec.parse(key, order)
        except InvalidFilter as exc:
            logger.warning("invalid_sort key=%r order=%r: %s", key, order, exc)
            return SortSpec()

    @staticmethod
    def find(offenders: Iterable[Offender], offender_id: str) -> Offender | None:
        """Return the offender with *offender_id*, or None."""
        for o in offenders:
            if o.id == offender_id:
                return o
        return None

    # ── Detail view breakdowns ────────────────────────────────────────────

    @staticmethod
    def _agency_codes(offender: Offender) -> set[str]:
        codes = {c.agency_code for c in offender.cases or [] if c.agency_code}
        codes |= {n.agency_code for n in offender.notices or [] if n.agency_code}
        return codes

    def agency_breakdown(self, offender: Offender) -> dict[str, AgencyStats]:
        """Cases, notices and fines per agency code, ordered by code."""
        stats: dict[str, AgencyStats] = defaultdict(AgencyStats)
        for c in offender.cases or []:
            entry = stats[c.agency_code or UNKNOWN_AGENCY]
            entry.cases += 1
            entry.total_fines += safe_decimal(c.fine)
        for n in offender.notices or []:
            stats[n.agency_code or UNKNOWN_AGENCY].notices += 1
        return dict(sorted(stats.items()))

    def industry_context(
        self, offender: Offender, offenders: Iterable[Offender]
    ) -> IndustryContext:
        """Compare the offender's fines with the average of its industry peers.

        Peers share the offender's industry and exclude the offender itself.
        More than twice the peer average is "significantly above".
        """
        if not offender.industry:
            return IndustryContext(industry=offender.industry, peer_count=0)

        peer_fines = [
            _fines(o) for o in offenders
            if o.industry == offender.industry and o.id != offender.id
        ]
        if not peer_fines:
            return IndustryContext(industry=offender.industry, peer_count=0)

        average = sum(peer_fines, Decimal("0")) / len(peer_fines)
        fines = _fines(offender)
        if fines > average * 2:
            comparison = COMPARISON_SIGNIFICANTLY_ABOVE
        elif fines > average:
            comparison = COMPARISON_ABOVE
        else:
            comparison = COMPARISON_WITHIN

        return IndustryContext(
            industry=offender.industry,
            peer_count=len(peer_fines),
            average_fine=quantize_money(average),
            comparison=comparison,
        )

    def related_offenders(
        self, offender: Offender, offenders: Iterable[Offender], limit: int = 5
    ) -> RelatedOffenders:
        """Highest-fined offenders in the same industry and the same area."""
        others = [o for o in offenders if o.id != offender.id]
        same_industry = [
            o for o in others if offender.industry and o.industry == offender.industry
        ]
        same_area = [
            o for o in others
            if offender.local_authority and o.local_authority == offender.local_authority
        ]
        return RelatedOffenders(
            same_industry=self.sort(same_industry, "total_fines", "desc")[:limit],
            same_area=self.sort(same_area, "total_fines", "desc")[:limit],
        )

    def enforcement_timeline(
        self, offender: Offender, timeline_filter: TimelineFilter | None = None
    ) -> list[tuple[int | None, list[TimelineEntry]]]:
        """Cases and notices grouped by year, newest first.

        Undated records are collected in a trailing ``None`` group and are
        dropped whenever a date bound is set.
        """
        tf = timeline_filter or TimelineFilter()
        entries: list[TimelineEntry] = []
        if tf.action_type in (None, "cases"):
            entries += [
                TimelineEntry("case", c.action_date, c.agency_code, c)
                for c in offender.cases or []
            ]
        if tf.action_type in (None, "notices"):
            entries += [
                TimelineEntry("notice", n.notice_date, n.agency_code, n)
                for n in offender.notices or []
            ]

        if tf.agency is not None:
            entries = [e for e in entries if e.agency_code == tf.agency]
        if tf.from_date is not None or tf.to_date is not None:
            entries = [
                e for e in entries
                if e.occurred_on is not None
                and (tf.from_date is None or e.occurred_on >= tf.from_date)
                and (tf.to_date is None or e.occurred_on <= tf.to_date)
            ]

        entries.sort(key=lambda e: _date_key(e.occurred_on), reverse=True)

        groups: dict[int | None, list[TimelineEntry]] = {}
        for e in entries:
            year = e.occurred_on.year if e.occurred_on else None
            groups.setdefault(year, []).append(e)
        return list(groups.items())

    # ── Reports ───────────────────────────────────────────────────────────

    def industry_stats(self, offenders: Iterable[Offender]) -> list[IndustryStats]:
        """Offender count, total and average fines per industry.

        Missing industries are grouped as "Unknown".  Ordered by total fines,
        highest first.
        """
        counts: dict[str, int] = defaultdict(int)
        totals: dict[str, Decimal] = defaultdict(Decimal)
        for o in offenders:
            industry = o.industry or UNKNOWN_INDUSTRY
            counts[industry] += 1
            totals[industry] += _fines(o)

        stats = [
            IndustryStats(
                industry=industry,
                count=count,
                total_fines=quantize_money(totals[industry]),
                average_fine=quantize_money(totals[industry] / count),
            )
            for industry, count in counts.items()
        ]
        stats.sort(key=lambda s: (s.total_fines, s.industry), reverse=True)
        return stats

    def top_offenders(self, offenders: Iterable[Offender], limit: int = 10) -> list[Offender]:
        return self.sort(offenders, "total_fines", "desc")[:limit]
