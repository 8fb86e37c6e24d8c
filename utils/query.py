"""Shared SQL query builder utilities for the offender repository.

The stats engine filters in memory; these builders only narrow what is
loaded from the store (agency and date-range pre-filters) and keep column
names on a whitelist.
"""

from datetime import date
from typing import Any

# Date column per enforcement table
DATE_COLUMNS = {
    "cases": "action_date",
    "notices": "notice_date",
}

ALLOWED_SORTS = {
    "name", "total_fines", "total_cases", "total_notices",
    "first_seen_date", "last_seen_date",
}


def build_where_clause(
    table: str,
    agency: list[str] | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    offender_ids: list[str] | None = None,
    offender_subquery: tuple[str, list[Any]] | None = None,
) -> tuple[str, list[Any]]:
    """Build a WHERE clause over the ``cases`` or ``notices`` table.

    Args:
        table: "cases" or "notices".
        agency: Restrict to these agency codes.
        date_from: Inclusive lower bound on the table's date column.
        date_to: Inclusive upper bound on the table's date column.
        offender_ids: Restrict to records linked to these offenders.
        offender_subquery: ``(sql, params)`` of a SELECT yielding offender
            ids; records are restricted to those ids without binding each
            one as a separate variable.

    Returns:
        Tuple of (where_clause_string, params_list).  The clause starts with
        "WHERE " if any condition applies, or is "" if none.

    Raises:
        ValueError: If *table* is not an enforcement table.
    """
    if table not in DATE_COLUMNS:
        raise ValueError(
            f"Unknown enforcement table: '{table}'. "
            f"Must be one of: {', '.join(sorted(DATE_COLUMNS))}"
        )
    date_col = DATE_COLUMNS[table]
    conditions: list[str] = []
    params: list[Any] = []

    if agency:
        placeholders = ",".join("?" * len(agency))
        conditions.append(f"agency_code IN ({placeholders})")
        params.extend(agency)

    if date_from is not None:
        conditions.append(f"{date_col} >= ?")
        params.append(date_from.isoformat())

    if date_to is not None:
        conditions.append(f"{date_col} <= ?")
        params.append(date_to.isoformat())

    if offender_ids is not None:
        if not offender_ids:
            return "WHERE 1=0", []
        placeholders = ",".join("?" * len(offender_ids))
        conditions.append(f"offender_id IN ({placeholders})")
        params.extend(offender_ids)

    if offender_subquery is not None:
        sub_sql, sub_params = offender_subquery
        conditions.append(f"offender_id IN ({sub_sql})")
        params.extend(sub_params)

    where = "WHERE " + " AND ".join(conditions) if conditions else ""
    return where, params


def build_order_clause(
    sort_by: str,
    sort_dir: str,
    allowed_sorts: set[str] | None = None,
    default_sort: str = "total_fines",
) -> str:
    """Build a safe SQL ORDER BY clause for the offenders table.

    Unknown columns fall back to *default_sort*; anything other than
    "desc" sorts ascending.  ``name`` is the tie-breaker so paging is stable.
    """
    if allowed_sorts is None:
        allowed_sorts = ALLOWED_SORTS
    col = sort_by if sort_by in allowed_sorts else default_sort
    direction = "DESC" if sort_dir.lower() == "desc" else "ASC"
    if col == "name":
        return f"ORDER BY name {direction}"
    return f"ORDER BY {col} {direction}, name ASC"


def build_offender_subquery(
    agency: list[str] | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
) -> tuple[str, list[Any]]:
    """SELECT of the offender ids with a case or notice inside the bounds.

    The bind-variable count depends only on the number of agencies and date
    bounds, never on how many offenders match.

    Returns:
        Tuple of (select_sql, params), usable as ``id IN (<select_sql>)``.
    """
    parts: list[str] = []
    params: list[Any] = []
    for table in DATE_COLUMNS:
        where, table_params = build_where_clause(
            table, agency=agency, date_from=date_from, date_to=date_to
        )
        parts.append(f"SELECT offender_id FROM {table} {where}".rstrip())
        params.extend(table_params)
    return " UNION ".join(parts), params
