"""String and numeric coercion utilities for the enforcement dashboard.

Rows coming back from the store (or hand-built in tests) may carry NULLs,
blank strings or currency-formatted text in numeric columns.  These helpers
turn such values into numbers and fall back to a default instead of raising,
so a partial record still renders.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from utils.patterns import CURRENCY_SYMBOLS, ISO_DATE, WHITESPACE


def safe_int(val, default: int = 0) -> int:
    """Convert a count-like value to int, returning *default* on failure.

    Examples:
        safe_int("3") -> 3
        safe_int(None) -> 0
        safe_int("n/a") -> 0
    """
    if val is None or val == '' or isinstance(val, bool):
        return default
    if isinstance(val, int):
        return val
    try:
        return int(Decimal(str(val).strip().replace(',', '')))
    except (InvalidOperation, ValueError, TypeError):
        return default


def safe_decimal(val, default: Decimal | None = None) -> Decimal:
    """Convert a money-like value to Decimal, returning *default* on failure.

    Floats are converted through ``str()`` so ``0.1`` becomes
    ``Decimal("0.1")`` rather than its binary expansion.

    Examples:
        safe_decimal("£1,250.50") -> Decimal("1250.50")
        safe_decimal(None) -> Decimal("0")
    """
    if default is None:
        default = Decimal("0")
    if val is None or val == '' or isinstance(val, bool):
        return default
    if isinstance(val, Decimal):
        return val if val.is_finite() else default
    if isinstance(val, int):
        return Decimal(val)
    try:
        s = CURRENCY_SYMBOLS.sub('', str(val)).replace(',', '').strip()
        if not s:
            return default
        result = Decimal(s)
    except (InvalidOperation, ValueError, TypeError):
        return default
    return result if result.is_finite() else default


def parse_date(val) -> date | None:
    """Parse an ISO date (or pass through a date), returning None otherwise.

    Datetimes are truncated to their date part.  Anything unparsable,
    including empty strings, yields None.
    """
    if val is None or val == '':
        return None
    if isinstance(val, datetime):
        return val.date()
    if isinstance(val, date):
        return val
    s = str(val).strip()[:10]
    if not ISO_DATE.match(s):
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        return None


def normalize_whitespace(s: str) -> str:
    """Normalize multiple whitespace characters to single spaces.

    Example:
        "Acme   Manufacturing\\n  Ltd" -> "Acme Manufacturing Ltd"
    """
    return WHITESPACE.sub(' ', s).strip()
