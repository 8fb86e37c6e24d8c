"""
Pytest fixtures for the enforcement offender tests.

Provides in-memory offender fixtures for the stats engine, a temporary
SQLite database seeded through the repository, and a FastAPI TestClient
bound to that database.

The three core offenders reproduce the dashboard's worked example: fines of
£1,000, £50,000 and £250,000 with 1, 5 and 3 enforcement actions, giving an
average fine of £100,333.33 and two repeat offenders (66.7%).
"""

import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from enforcement.models import Case, Notice, Offender  # noqa: E402
from enforcement.repository import (  # noqa: E402
    create_agency,
    create_case,
    create_notice,
    init_schema,
)
from utils.database import connect  # noqa: E402

TODAY = date(2024, 6, 1)


# ── In-memory offenders ───────────────────────────────────────────────────────

def make_offender(oid: str, name: str, fines: str, cases: int, notices: int, **kw) -> Offender:
    return Offender(
        id=oid,
        name=name,
        total_fines=Decimal(fines),
        total_cases=cases,
        total_notices=notices,
        **kw,
    )


@pytest.fixture()
def worked_example() -> list[Offender]:
    """Three offenders: one single-action, two repeat."""
    return [
        make_offender("o1", "Small Bakery Ltd", "1000.00", 1, 0,
                      industry="Manufacturing", local_authority="Leeds",
                      business_type="limited_company", postcode="LS1 1AA"),
        make_offender("o2", "Big Chemicals PLC", "50000.00", 3, 2,
                      industry="Chemicals", local_authority="Manchester",
                      business_type="plc", postcode="M1 1AE"),
        make_offender("o3", "Acme Manufacturing Limited", "250000.00", 2, 1,
                      industry="Manufacturing", local_authority="Greater Manchester",
                      business_type="limited_company", postcode="M15 4FN"),
    ]


@pytest.fixture()
def high_risk_offender() -> Offender:
    """Cases from two agencies, rising fines, latest action two months ago."""
    cases = [
        Case(id="c1", offender_id="hr", agency_code="hse",
             action_date=date(2022, 3, 1), fine=Decimal("5000")),
        Case(id="c2", offender_id="hr", agency_code="ea",
             action_date=date(2023, 1, 15), fine=Decimal("20000")),
        Case(id="c3", offender_id="hr", agency_code="hse",
             action_date=date(2024, 4, 1), fine=Decimal("75000")),
    ]
    notices = [
        Notice(id="n1", offender_id="hr", agency_code="hse",
               notice_type="Improvement Notice", notice_date=date(2023, 6, 1)),
    ]
    return Offender(
        id="hr", name="Hazard Works Ltd",
        total_cases=3, total_notices=1, total_fines=Decimal("100000"),
        industry="Construction",
        first_seen_date=date(2022, 3, 1), last_seen_date=date(2024, 4, 1),
        cases=cases, notices=notices,
    )


# ── SQLite fixtures ───────────────────────────────────────────────────────────

def seed(conn) -> dict[str, str]:
    """Populate a fresh database; returns offender ids keyed by short name."""
    create_agency(conn, "hse", "Health and Safety Executive")
    create_agency(conn, "ea", "Environment Agency")

    small = create_case(conn, {
        "offender": {"name": "Small Bakery Ltd", "postcode": "LS1 1AA",
                     "industry": "Manufacturing", "local_authority": "Leeds",
                     "business_type": "limited_company"},
        "agency_code": "hse", "regulator_id": "H-1",
        "action_date": "2023-02-01", "fine": "1000.00",
    })
    chem_case = create_case(conn, {
        "offender": {"name": "Big Chemicals PLC", "postcode": "M1 1AE",
                     "industry": "Chemicals", "local_authority": "Manchester",
                     "business_type": "plc"},
        "agency_code": "ea", "regulator_id": "E-1",
        "action_date": "2022-05-10", "fine": "10000.00",
    })
    chem = chem_case.offender_id
    create_case(conn, {"offender_id": chem, "agency_code": "hse", "regulator_id": "H-2",
                       "action_date": "2023-08-20", "fine": "15000.00"})
    create_case(conn, {"offender_id": chem, "agency_code": "hse", "regulator_id": "H-3",
                       "action_date": "2024-03-05", "fine": "25000.00"})
    create_notice(conn, {"offender_id": chem, "agency_code": "hse", "regulator_id": "HN-1",
                         "notice_type": "Improvement Notice",
                         "notice_date": "2023-01-10", "compliance_date": "2023-03-10"})
    create_notice(conn, {"offender_id": chem, "agency_code": "ea", "regulator_id": "EN-1",
                         "notice_type": "Enforcement Notice", "notice_date": "2024-01-15"})

    acme_case = create_case(conn, {
        "offender": {"name": "Acme Manufacturing Limited", "postcode": "M15 4FN",
                     "industry": "Manufacturing", "local_authority": "Greater Manchester",
                     "business_type": "limited_company"},
        "agency_code": "hse", "regulator_id": "H-4",
        "action_date": "2021-11-30", "fine": "200000.00",
    })
    acme = acme_case.offender_id
    create_case(conn, {"offender_id": acme, "agency_code": "hse", "regulator_id": "H-5",
                       "action_date": "2022-06-30", "fine": "50000.00"})
    create_notice(conn, {"offender_id": acme, "agency_code": "hse", "regulator_id": "HN-2",
                         "notice_type": "Prohibition Notice", "notice_date": "2022-01-05"})

    return {"small": small.offender_id, "chem": chem, "acme": acme}


@pytest.fixture()
def conn():
    """Fresh in-memory database with the enforcement schema."""
    c = connect(":memory:")
    init_schema(c)
    yield c
    c.close()


@pytest.fixture()
def seeded(conn):
    """(connection, ids) for a database holding the three seeded offenders."""
    return conn, seed(conn)


@pytest.fixture(scope="module")
def api_db(tmp_path_factory):
    """Seeded on-disk database shared by an API test module."""
    db_path = tmp_path_factory.mktemp("api") / "enforcement.sqlite"
    c = connect(db_path)
    init_schema(c)
    ids = seed(c)
    c.close()
    return db_path, ids


@pytest.fixture(scope="module")
def client(api_db):
    """FastAPI TestClient bound to the seeded database."""
    from fastapi.testclient import TestClient

    from api.app import create_app
    from utils.config import RiskPolicy

    db_path, _ = api_db
    app = create_app(db_path=db_path, policy=RiskPolicy())
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


@pytest.fixture(scope="module")
def ids(api_db):
    return api_db[1]
