"""
Domain records consumed by the stats engine.

The relational store owns these entities; the engine only reads them.  Each
record has a ``from_row`` constructor that accepts a ``sqlite3.Row`` or plain
mapping and coerces missing or malformed numeric fields to zero, so partial
data still produces a usable record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Mapping

from utils.strings import parse_date, safe_decimal, safe_int

BUSINESS_TYPES = frozenset({"limited_company", "individual", "partnership", "plc", "other"})


def _get(row: Mapping[str, Any], key: str, default: Any = None) -> Any:
    # sqlite3.Row supports keys() and [] but not .get()
    try:
        return row[key] if key in row.keys() else default
    except (KeyError, IndexError):
        return default


def normalize_business_type(value: Any) -> str | None:
    """Return *value* if it is a known business type, otherwise None."""
    if value is None:
        return None
    value = str(value).strip().lower()
    return value if value in BUSINESS_TYPES else None


@dataclass(frozen=True)
class Agency:
    """A regulatory body issuing cases and notices."""

    code: str
    name: str
    enabled: bool = True

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Agency":
        return cls(
            code=str(_get(row, "code", "")),
            name=str(_get(row, "name", "") or ""),
            enabled=bool(_get(row, "enabled", 1)),
        )


@dataclass
class Case:
    """A prosecuted enforcement action carrying a fine."""

    id: str
    offender_id: str
    agency_code: str | None = None
    regulator_id: str | None = None
    action_date: date | None = None
    fine: Decimal = Decimal("0")
    breaches: str | None = None

    @property
    def occurred_on(self) -> date | None:
        return self.action_date

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Case":
        return cls(
            id=str(_get(row, "id", "")),
            offender_id=str(_get(row, "offender_id", "")),
            agency_code=_get(row, "agency_code"),
            regulator_id=_get(row, "regulator_id"),
            action_date=parse_date(_get(row, "action_date")),
            fine=safe_decimal(_get(row, "fine")),
            breaches=_get(row, "breaches"),
        )


@dataclass
class Notice:
    """A non-monetary enforcement instrument with a compliance deadline."""

    id: str
    offender_id: str
    agency_code: str | None = None
    regulator_id: str | None = None
    notice_type: str | None = None
    notice_date: date | None = None
    operative_date: date | None = None
    compliance_date: date | None = None
    body: str | None = None

    @property
    def occurred_on(self) -> date | None:
        return self.notice_date

    @property
    def compliance_period_days(self) -> int | None:
        """Days allowed for compliance, counted from the operative date.

        Falls back to the notice date when no operative date is recorded.
        """
        start = self.operative_date or self.notice_date
        if start is None or self.compliance_date is None:
            return None
        return (self.compliance_date - start).days

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Notice":
        return cls(
            id=str(_get(row, "id", "")),
            offender_id=str(_get(row, "offender_id", "")),
            agency_code=_get(row, "agency_code"),
            regulator_id=_get(row, "regulator_id"),
            notice_type=_get(row, "notice_type"),
            notice_date=parse_date(_get(row, "notice_date")),
            operative_date=parse_date(_get(row, "operative_date")),
            compliance_date=parse_date(_get(row, "compliance_date")),
            body=_get(row, "body"),
        )


@dataclass
class Offender:
    """An organisation or individual with enforcement actions against it.

    ``total_cases``, ``total_notices`` and ``total_fines`` are cached
    aggregates maintained by the repository; ``cases`` and ``notices`` are
    only populated when the record was loaded with its related rows.
    """

    id: str
    name: str
    normalized_name: str | None = None
    address: str | None = None
    postcode: str | None = None
    local_authority: str | None = None
    country: str | None = None
    main_activity: str | None = None
    sic_code: str | None = None
    industry: str | None = None
    business_type: str | None = None
    total_cases: int = 0
    total_notices: int = 0
    total_fines: Decimal = Decimal("0")
    first_seen_date: date | None = None
    last_seen_date: date | None = None
    cases: list[Case] = field(default_factory=list)
    notices: list[Notice] = field(default_factory=list)

    @property
    def enforcement_count(self) -> int:
        return self.total_cases + self.total_notices

    @classmethod
    def from_row(
        cls,
        row: Mapping[str, Any],
        cases: list[Case] | None = None,
        notices: list[Notice] | None = None,
    ) -> "Offender":
        return cls(
            id=str(_get(row, "id", "")),
            name=str(_get(row, "name", "") or ""),
            normalized_name=_get(row, "normalized_name"),
            address=_get(row, "address"),
            postcode=_get(row, "postcode"),
            local_authority=_get(row, "local_authority"),
            country=_get(row, "country"),
            main_activity=_get(row, "main_activity"),
            sic_code=_get(row, "sic_code"),
            industry=_get(row, "industry"),
            business_type=normalize_business_type(_get(row, "business_type")),
            total_cases=safe_int(_get(row, "total_cases")),
            total_notices=safe_int(_get(row, "total_notices")),
            total_fines=safe_decimal(_get(row, "total_fines")),
            first_seen_date=parse_date(_get(row, "first_seen_date")),
            last_seen_date=parse_date(_get(row, "last_seen_date")),
            cases=list(cases or []),
            notices=list(notices or []),
        )
