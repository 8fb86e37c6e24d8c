"""
Enforcement package -- offender aggregation and risk classification.

Re-exports key entry points so callers can do::

    from enforcement import OffenderStatsEngine, OffenderFilters, EventBus
"""

from enforcement.errors import EmptyResult, InvalidFilter, NotFound, OffenderError
from enforcement.events import Event, EventBus, OffenderDetailSession, Subscription
from enforcement.filters import OffenderFilters, Page, SortSpec, TimelineFilter, paginate
from enforcement.models import Agency, Case, Notice, Offender
from enforcement.stats import OffenderStatsEngine, RiskAssessment, RiskTier, Summary

__all__ = [
    "OffenderStatsEngine",
    "Summary",
    "RiskTier",
    "RiskAssessment",
    "OffenderFilters",
    "SortSpec",
    "TimelineFilter",
    "Page",
    "paginate",
    "Agency",
    "Case",
    "Notice",
    "Offender",
    "Event",
    "EventBus",
    "Subscription",
    "OffenderDetailSession",
    "OffenderError",
    "NotFound",
    "InvalidFilter",
    "EmptyResult",
]
