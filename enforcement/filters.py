"""
Offender list predicates, sort keys, and pagination.

``OffenderFilters`` is the predicate set applied by
``OffenderStatsEngine.filter``; every populated field narrows the result
(logical AND) and blank values are ignored.  ``SortSpec.parse`` validates a
requested ordering and raises ``InvalidFilter`` for anything unsupported.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Generic, Mapping, Sequence, TypeVar

from enforcement.errors import EmptyResult, InvalidFilter
from utils.strings import parse_date

T = TypeVar("T")

SORT_KEYS = (
    "total_fines", "total_cases", "total_notices", "name",
    "first_seen_date", "last_seen_date",
)
SORT_ORDERS = ("asc", "desc")
DEFAULT_SORT_KEY = "total_fines"
DEFAULT_SORT_ORDER = "desc"

# Free-text search terms longer than this are truncated
MAX_SEARCH_LENGTH = 100

_TRUE_STRINGS = {"true", "1", "yes", "on"}


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


@dataclass(frozen=True)
class OffenderFilters:
    """Composable predicates over offenders.

    Attributes:
        industry: Exact, case-sensitive match on ``Offender.industry``.
        local_authority: Case-insensitive substring of ``local_authority``.
        business_type: Exact match on ``business_type``.
        repeat_only: Keep only repeat offenders.
        search: Case-insensitive substring of name or postcode.
        agency: Agency code present among the offender's cases or notices.
    """

    industry: str | None = None
    local_authority: str | None = None
    business_type: str | None = None
    repeat_only: bool = False
    search: str | None = None
    agency: str | None = None

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "OffenderFilters":
        """Build filters from query-string style params.

        Blank strings are dropped, ``repeat_only`` accepts "true"/"1"/"yes"/"on",
        and the search term is trimmed to ``MAX_SEARCH_LENGTH`` characters.
        Keys that are not filters are ignored.
        """
        repeat = params.get("repeat_only")
        if isinstance(repeat, str):
            repeat = repeat.strip().lower() in _TRUE_STRINGS
        search = _clean(params.get("search"))
        if search is not None:
            search = search[:MAX_SEARCH_LENGTH]
        return cls(
            industry=_clean(params.get("industry")),
            local_authority=_clean(params.get("local_authority")),
            business_type=_clean(params.get("business_type")),
            repeat_only=bool(repeat),
            search=search,
            agency=_clean(params.get("agency")),
        )

    @property
    def active(self) -> dict[str, Any]:
        """Only the populated predicates, keyed by name."""
        values = {
            "industry": self.industry,
            "local_authority": self.local_authority,
            "business_type": self.business_type,
            "repeat_only": self.repeat_only or None,
            "search": self.search,
            "agency": self.agency,
        }
        return {k: v for k, v in values.items() if v is not None}

    @property
    def is_empty(self) -> bool:
        return not self.active


@dataclass(frozen=True)
class SortSpec:
    key: str = DEFAULT_SORT_KEY
    order: str = DEFAULT_SORT_ORDER

    @property
    def descending(self) -> bool:
        return self.order == "desc"

    @classmethod
    def parse(cls, key: str | None, order: str | None) -> "SortSpec":
        """Validate a requested ordering.

        Missing values take the defaults (total fines, descending).

        Raises:
            InvalidFilter: If the key or order is not supported.
        """
        key = (key or DEFAULT_SORT_KEY).strip()
        order = (order or DEFAULT_SORT_ORDER).strip().lower()
        if key not in SORT_KEYS:
            raise InvalidFilter(
                f"Unsupported sort key '{key}'. Must be one of: {', '.join(SORT_KEYS)}"
            )
        if order not in SORT_ORDERS:
            raise InvalidFilter(f"Unsupported sort order '{order}'. Use 'asc' or 'desc'")
        return cls(key=key, order=order)


@dataclass(frozen=True)
class TimelineFilter:
    """Narrows an offender's enforcement timeline.

    ``action_type`` is "cases" or "notices"; any other non-empty value
    matches nothing.  Date bounds are inclusive.
    """

    action_type: str | None = None
    agency: str | None = None
    from_date: date | None = None
    to_date: date | None = None

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "TimelineFilter":
        # unparsable dates are dropped rather than rejected
        return cls(
            action_type=_clean(params.get("filter_type")),
            agency=_clean(params.get("agency")),
            from_date=parse_date(_clean(params.get("from_date"))),
            to_date=parse_date(_clean(params.get("to_date"))),
        )


@dataclass
class Page(Generic[T]):
    """One page of a filtered, sorted list."""

    items: list[T]
    total: int
    page: int
    per_page: int
    total_pages: int
    filters: dict[str, Any] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return self.total == 0

    @property
    def empty_result(self) -> EmptyResult | None:
        """The empty-state marker when nothing matched, else None."""
        if not self.is_empty:
            return None
        return EmptyResult(filters=dict(self.filters))

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1


def paginate(
    items: Sequence[T],
    page: int = 1,
    per_page: int = 20,
    filters: dict[str, Any] | None = None,
) -> Page[T]:
    """Slice *items* into a page.

    ``page`` is clamped into ``1..total_pages`` and ``per_page`` to at least 1.
    An empty input yields one empty page.  *filters* is carried through for
    the empty-state message.
    """
    per_page = max(1, int(per_page))
    total = len(items)
    total_pages = max(1, math.ceil(total / per_page))
    page = min(max(1, int(page)), total_pages)
    start = (page - 1) * per_page
    return Page(
        items=list(items[start:start + per_page]),
        total=total,
        page=page,
        per_page=per_page,
        total_pages=total_pages,
        filters=dict(filters or {}),
    )
