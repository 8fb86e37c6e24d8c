"""
SQLite persistence for agencies, offenders, cases and notices.

Offenders carry cached aggregates (``total_cases``, ``total_notices``,
``total_fines``, first/last seen dates).  They are recomputed from the
offender's records inside the same transaction as every insert, so the
cached figures always agree with the rows that produced them.  Fines are
stored as decimal TEXT and summed in Python with ``Decimal``.

When an ``EventBus`` is passed to ``create_case`` / ``create_notice`` the new
record is announced after the transaction commits.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Mapping

from enforcement.errors import NotFound
from enforcement.events import CASE_CREATED, NOTICE_CREATED, Event, EventBus
from enforcement.matching import (
    extract_postcode,
    find_best_match,
    normalize_company_name,
    normalize_postcode,
)
from enforcement.models import Agency, Case, Notice, Offender, normalize_business_type
from utils.database import query_to_dicts, table_exists
from utils.formatting import quantize_money
from utils.query import build_offender_subquery, build_order_clause, build_where_clause
from utils.strings import parse_date, safe_decimal

logger = logging.getLogger(__name__)

# ── Schema ────────────────────────────────────────────────────────────────────

SCHEMA = """
CREATE TABLE IF NOT EXISTS agencies (
    code        TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    enabled     INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS offenders (
    id               TEXT PRIMARY KEY,
    name             TEXT NOT NULL,
    normalized_name  TEXT NOT NULL,
    address          TEXT,
    postcode         TEXT,
    local_authority  TEXT,
    country          TEXT,
    main_activity    TEXT,
    sic_code         TEXT,
    industry         TEXT,
    business_type    TEXT,
    total_cases      INTEGER NOT NULL DEFAULT 0,
    total_notices    INTEGER NOT NULL DEFAULT 0,
    total_fines      TEXT NOT NULL DEFAULT '0.00',
    first_seen_date  TEXT,
    last_seen_date   TEXT,
    created_at       TEXT
);

CREATE TABLE IF NOT EXISTS cases (
    id            TEXT PRIMARY KEY,
    offender_id   TEXT NOT NULL REFERENCES offenders(id),
    agency_code   TEXT,
    regulator_id  TEXT,
    action_date   TEXT,
    fine          TEXT NOT NULL DEFAULT '0.00',
    breaches      TEXT,
    UNIQUE (agency_code, regulator_id)
);

CREATE TABLE IF NOT EXISTS notices (
    id               TEXT PRIMARY KEY,
    offender_id      TEXT NOT NULL REFERENCES offenders(id),
    agency_code      TEXT,
    regulator_id     TEXT,
    notice_type      TEXT,
    notice_date      TEXT,
    operative_date   TEXT,
    compliance_date  TEXT,
    body             TEXT,
    UNIQUE (agency_code, regulator_id)
);

CREATE INDEX IF NOT EXISTS idx_offenders_normalized ON offenders(normalized_name);
CREATE INDEX IF NOT EXISTS idx_offenders_industry ON offenders(industry);
CREATE INDEX IF NOT EXISTS idx_cases_offender ON cases(offender_id);
CREATE INDEX IF NOT EXISTS idx_cases_agency_date ON cases(agency_code, action_date);
CREATE INDEX IF NOT EXISTS idx_notices_offender ON notices(offender_id);
CREATE INDEX IF NOT EXISTS idx_notices_agency_date ON notices(agency_code, notice_date);
"""

OFFENDER_FIELDS = (
    "name", "address", "postcode", "local_authority", "country",
    "main_activity", "sic_code", "industry", "business_type",
)

# Orderings the store can apply itself; money is sorted by the engine
OFFENDER_SORTS = {
    "name", "total_cases", "total_notices", "first_seen_date", "last_seen_date",
}


def init_schema(conn: sqlite3.Connection) -> None:
    """Create the enforcement tables and indexes if they are missing."""
    conn.executescript(SCHEMA)
    conn.commit()


def is_initialized(conn: sqlite3.Connection) -> bool:
    return table_exists(conn, "offenders")


def _iso(value: Any) -> str | None:
    d = parse_date(value)
    return d.isoformat() if d else None


def _money(value: Any) -> str:
    return str(quantize_money(safe_decimal(value)))


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


# ── Agencies ──────────────────────────────────────────────────────────────────


def create_agency(
    conn: sqlite3.Connection, code: str, name: str, enabled: bool = True
) -> Agency:
    """Insert an agency, or update the name/enabled flag of an existing code."""
    code = (code or "").strip().lower()
    if not code:
        raise ValueError("Agency code is required")
    conn.execute(
        "INSERT INTO agencies (code, name, enabled) VALUES (?, ?, ?) "
        "ON CONFLICT(code) DO UPDATE SET name = excluded.name, "
        "enabled = excluded.enabled",
        (code, name, int(enabled)),
    )
    conn.commit()
    return Agency(code=code, name=name, enabled=enabled)


def list_agencies(conn: sqlite3.Connection, enabled_only: bool = False) -> list[Agency]:
    sql = "SELECT code, name, enabled FROM agencies"
    if enabled_only:
        sql += " WHERE enabled = 1"
    rows = conn.execute(sql + " ORDER BY code").fetchall()
    return [Agency.from_row(r) for r in rows]


# ── Offenders ─────────────────────────────────────────────────────────────────


def _insert_offender(conn: sqlite3.Connection, attrs: Mapping[str, Any]) -> str:
    name = _clean(attrs.get("name"))
    if not name:
        raise ValueError("Offender name is required")
    postcode = normalize_postcode(_clean(attrs.get("postcode"))) or extract_postcode(
        attrs.get("address")
    )
    offender_id = str(uuid.uuid4())
    conn.execute(
        """INSERT INTO offenders
           (id, name, normalized_name, address, postcode, local_authority,
            country, main_activity, sic_code, industry, business_type, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            offender_id,
            name,
            normalize_company_name(name),
            _clean(attrs.get("address")),
            postcode,
            _clean(attrs.get("local_authority")),
            _clean(attrs.get("country")),
            _clean(attrs.get("main_activity")),
            _clean(attrs.get("sic_code")),
            _clean(attrs.get("industry")),
            normalize_business_type(attrs.get("business_type")),
            datetime.now(timezone.utc).isoformat(),
        ),
    )
    logger.info("offender_created id=%s name=%r", offender_id, name)
    return offender_id


def create_offender(conn: sqlite3.Connection, attrs: Mapping[str, Any]) -> Offender:
    """Insert a new offender with zeroed aggregates.

    Raises:
        ValueError: If ``attrs["name"]`` is missing or blank.
    """
    offender_id = _insert_offender(conn, attrs)
    conn.commit()
    return get_offender(conn, offender_id, load_related=False)


def _resolve_offender(conn: sqlite3.Connection, attrs: Mapping[str, Any]) -> str:
    """Return the id of the matching offender, inserting one if none matches.

    Does not commit.
    """
    name = _clean(attrs.get("name"))
    if not name:
        raise ValueError("Offender name is required")
    normalized = normalize_company_name(name)
    postcode = normalize_postcode(_clean(attrs.get("postcode"))) or extract_postcode(
        attrs.get("address")
    )

    row = conn.execute(
        "SELECT id FROM offenders WHERE normalized_name = ? AND postcode IS ?",
        (normalized, postcode),
    ).fetchone()
    if row is not None:
        logger.debug("offender_match exact id=%s", row["id"])
        return row["id"]

    first_token = normalized.split()[0] if normalized else ""
    candidate_rows = conn.execute(
        "SELECT * FROM offenders WHERE normalized_name LIKE ?",
        (f"%{first_token}%",),
    ).fetchall()
    match = find_best_match(
        [Offender.from_row(r) for r in candidate_rows], name, postcode
    )
    if match is not None:
        offender, score = match
        logger.info("offender_match fuzzy id=%s name=%r score=%.2f",
                    offender.id, name, score)
        return offender.id

    return _insert_offender(conn, {**attrs, "postcode": postcode})


def find_or_create_offender(conn: sqlite3.Connection, attrs: Mapping[str, Any]) -> Offender:
    """Find an existing offender by name and postcode, or create one.

    Tries an exact normalised-name + postcode match first, then a fuzzy name
    match over offenders sharing the first word of the name.

    Raises:
        ValueError: If ``attrs["name"]`` is missing or blank.
    """
    offender_id = _resolve_offender(conn, attrs)
    conn.commit()
    return get_offender(conn, offender_id, load_related=False)


def _load_cases(
    conn: sqlite3.Connection,
    offender_ids: list[str] | None = None,
    offender_subquery: tuple[str, list] | None = None,
) -> dict[str, list[Case]]:
    where, params = build_where_clause(
        "cases", offender_ids=offender_ids, offender_subquery=offender_subquery
    )
    rows = conn.execute(
        f"SELECT * FROM cases {where} ORDER BY action_date, id", params
    ).fetchall()
    by_offender: dict[str, list[Case]] = {}
    for r in rows:
        by_offender.setdefault(r["offender_id"], []).append(Case.from_row(r))
    return by_offender


def _load_notices(
    conn: sqlite3.Connection,
    offender_ids: list[str] | None = None,
    offender_subquery: tuple[str, list] | None = None,
) -> dict[str, list[Notice]]:
    where, params = build_where_clause(
        "notices", offender_ids=offender_ids, offender_subquery=offender_subquery
    )
    rows = conn.execute(
        f"SELECT * FROM notices {where} ORDER BY notice_date, id", params
    ).fetchall()
    by_offender: dict[str, list[Notice]] = {}
    for r in rows:
        by_offender.setdefault(r["offender_id"], []).append(Notice.from_row(r))
    return by_offender


def get_offender(
    conn: sqlite3.Connection, offender_id: str, load_related: bool = True
) -> Offender:
    """Fetch one offender, with its cases and notices unless told otherwise.

    Raises:
        NotFound: If no offender has *offender_id*.
    """
    row = conn.execute("SELECT * FROM offenders WHERE id = ?", (offender_id,)).fetchone()
    if row is None:
        raise NotFound(offender_id)
    if not load_related:
        return Offender.from_row(row)
    cases = _load_cases(conn, [offender_id]).get(offender_id, [])
    notices = _load_notices(conn, [offender_id]).get(offender_id, [])
    return Offender.from_row(row, cases=cases, notices=notices)


def list_offenders(
    conn: sqlite3.Connection,
    agency: str | list[str] | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    sort_by: str = "name",
    sort_dir: str = "asc",
) -> list[Offender]:
    """Load offenders together with their cases and notices.

    With *agency* or a date bound set, only offenders with at least one case
    or notice matching those bounds are returned (each still carries all of
    its records).

    Args:
        agency: Agency code or codes.
        date_from: Inclusive lower bound on action/notice date.
        date_to: Inclusive upper bound on action/notice date.
        sort_by: Store-side ordering column; unknown columns order by name.
        sort_dir: "asc" or "desc".
    """
    if isinstance(agency, str):
        agency = [agency]

    # bind-variable count is independent of how many offenders match
    matching = None
    if agency or date_from is not None or date_to is not None:
        matching = build_offender_subquery(agency, date_from, date_to)

    order = build_order_clause(sort_by, sort_dir, OFFENDER_SORTS, default_sort="name")
    if matching is None:
        rows = conn.execute(f"SELECT * FROM offenders {order}").fetchall()
    else:
        sub_sql, sub_params = matching
        rows = conn.execute(
            f"SELECT * FROM offenders WHERE id IN ({sub_sql}) {order}", sub_params
        ).fetchall()
    if not rows:
        return []

    cases = _load_cases(conn, offender_subquery=matching)
    notices = _load_notices(conn, offender_subquery=matching)
    return [
        Offender.from_row(r, cases=cases.get(r["id"]), notices=notices.get(r["id"]))
        for r in rows
    ]


def offender_count(conn: sqlite3.Connection) -> int:
    return conn.execute("SELECT COUNT(*) FROM offenders").fetchone()[0]


# ── Aggregates ────────────────────────────────────────────────────────────────


def refresh_aggregates(conn: sqlite3.Connection, offender_id: str) -> None:
    """Recompute an offender's cached totals from its records.  Does not commit."""
    case_rows = query_to_dicts(
        conn, "SELECT fine, action_date FROM cases WHERE offender_id = ?", (offender_id,)
    )
    notice_rows = query_to_dicts(
        conn, "SELECT notice_date FROM notices WHERE offender_id = ?", (offender_id,)
    )

    total_fines = sum((safe_decimal(r["fine"]) for r in case_rows), Decimal("0"))
    dates = [parse_date(r["action_date"]) for r in case_rows]
    dates += [parse_date(r["notice_date"]) for r in notice_rows]
    dates = [d for d in dates if d is not None]

    conn.execute(
        """UPDATE offenders
           SET total_cases = ?, total_notices = ?, total_fines = ?,
               first_seen_date = ?, last_seen_date = ?
           WHERE id = ?""",
        (
            len(case_rows),
            len(notice_rows),
            str(quantize_money(total_fines)),
            min(dates).isoformat() if dates else None,
            max(dates).isoformat() if dates else None,
            offender_id,
        ),
    )


# ── Cases and notices ─────────────────────────────────────────────────────────


def _offender_for_record(conn: sqlite3.Connection, attrs: Mapping[str, Any]) -> str:
    offender_id = _clean(attrs.get("offender_id"))
    if offender_id:
        exists = conn.execute(
            "SELECT 1 FROM offenders WHERE id = ?", (offender_id,)
        ).fetchone()
        if exists is None:
            raise NotFound(offender_id)
        return offender_id
    offender_attrs = attrs.get("offender")
    if not offender_attrs:
        raise ValueError("Either offender_id or offender details are required")
    return _resolve_offender(conn, offender_attrs)


def _insert_record(
    conn: sqlite3.Connection, sql: str, params: tuple, kind: str, attrs: Mapping[str, Any]
) -> None:
    try:
        conn.execute(sql, params)
    except sqlite3.IntegrityError as exc:
        conn.rollback()
        raise ValueError(
            f"{kind} {attrs.get('regulator_id')!r} already recorded for agency "
            f"{attrs.get('agency_code')!r}"
        ) from exc


def create_case(
    conn: sqlite3.Connection, attrs: Mapping[str, Any], bus: EventBus | None = None
) -> Case:
    """Record a case and refresh its offender's aggregates.

    The offender is taken from ``attrs["offender_id"]`` or found/created from
    the ``attrs["offender"]`` mapping (name, postcode, address, ...).

    Raises:
        NotFound: If ``offender_id`` is given but unknown.
        ValueError: If no offender can be resolved, or the agency already has
            a case with the same regulator id.
    """
    try:
        offender_id = _offender_for_record(conn, attrs)
    except (NotFound, ValueError):
        conn.rollback()
        raise
    case_id = str(uuid.uuid4())
    _insert_record(
        conn,
        """INSERT INTO cases
           (id, offender_id, agency_code, regulator_id, action_date, fine, breaches)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (
            case_id,
            offender_id,
            _clean(attrs.get("agency_code")),
            _clean(attrs.get("regulator_id")),
            _iso(attrs.get("action_date")),
            _money(attrs.get("fine")),
            _clean(attrs.get("breaches")),
        ),
        "Case",
        attrs,
    )
    refresh_aggregates(conn, offender_id)
    conn.commit()
    logger.info("case_created id=%s offender=%s agency=%s",
                case_id, offender_id, attrs.get("agency_code"))

    if bus is not None:
        bus.publish_record(Event(CASE_CREATED, offender_id, case_id))

    row = conn.execute("SELECT * FROM cases WHERE id = ?", (case_id,)).fetchone()
    return Case.from_row(row)


def create_notice(
    conn: sqlite3.Connection, attrs: Mapping[str, Any], bus: EventBus | None = None
) -> Notice:
    """Record a notice and refresh its offender's aggregates.

    Offender resolution and errors are as for ``create_case``.
    """
    try:
        offender_id = _offender_for_record(conn, attrs)
    except (NotFound, ValueError):
        conn.rollback()
        raise
    notice_id = str(uuid.uuid4())
    _insert_record(
        conn,
        """INSERT INTO notices
           (id, offender_id, agency_code, regulator_id, notice_type, notice_date,
            operative_date, compliance_date, body)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            notice_id,
            offender_id,
            _clean(attrs.get("agency_code")),
            _clean(attrs.get("regulator_id")),
            _clean(attrs.get("notice_type")),
            _iso(attrs.get("notice_date")),
            _iso(attrs.get("operative_date")),
            _iso(attrs.get("compliance_date")),
            _clean(attrs.get("body")),
        ),
        "Notice",
        attrs,
    )
    refresh_aggregates(conn, offender_id)
    conn.commit()
    logger.info("notice_created id=%s offender=%s agency=%s",
                notice_id, offender_id, attrs.get("agency_code"))

    if bus is not None:
        bus.publish_record(Event(NOTICE_CREATED, offender_id, notice_id))

    row = conn.execute("SELECT * FROM notices WHERE id = ?", (notice_id,)).fetchone()
    return Notice.from_row(row)
