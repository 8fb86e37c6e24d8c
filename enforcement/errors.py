"""Error taxonomy for offender lookups and list views.

None of these are fatal to a page render:

- NotFound: an offender id with no backing record.  The API turns it into a
  404 body carrying a link back to the offender list.
- InvalidFilter: an unsupported sort key/order.  The engine logs it and
  falls back to the default ordering.
- EmptyResult: no offenders matched.  This is a result state, not an
  exception; list pages expose it so the view can show its empty message.
"""

from dataclasses import dataclass, field
from typing import Any

EMPTY_RESULT_MESSAGE = "No offenders found"


class OffenderError(Exception):
    """Base class for offender view errors."""


class NotFound(OffenderError, LookupError):
    """Raised when an offender id has no matching record."""

    def __init__(self, offender_id: str):
        self.offender_id = offender_id
        super().__init__(f"Offender {offender_id} not found")


class InvalidFilter(OffenderError, ValueError):
    """Raised for an unsupported sort key or sort order."""


@dataclass(frozen=True)
class EmptyResult:
    """Zero offenders matched the active filters."""

    message: str = EMPTY_RESULT_MESSAGE
    filters: dict[str, Any] = field(default_factory=dict)
