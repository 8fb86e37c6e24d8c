"""
Tests for enforcement/stats.py — OffenderStatsEngine

Covers the summary card (including the £100,333.33 worked example), repeat
classification, risk tiers, filtering, sorting with fallback, and the
detail-view and report breakdowns.
"""
import logging
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from enforcement.filters import OffenderFilters, TimelineFilter
from enforcement.models import Case, Notice, Offender
from enforcement.stats import (
    COMPARISON_ABOVE,
    COMPARISON_SIGNIFICANTLY_ABOVE,
    COMPARISON_WITHIN,
    FACTOR_ESCALATING_FINES,
    FACTOR_MULTIPLE_AGENCIES,
    FACTOR_MULTIPLE_VIOLATIONS,
    FACTOR_RECENT_ACTIVITY,
    OffenderStatsEngine,
    RiskTier,
)
from utils.config import RiskPolicy

from conftest import TODAY, make_offender


@pytest.fixture()
def engine():
    return OffenderStatsEngine(RiskPolicy())


# ── compute_summary ───────────────────────────────────────────────────────────

class TestComputeSummary:
    def test_worked_example(self, engine, worked_example):
        s = engine.compute_summary(worked_example)
        assert s.total_count == 3
        assert s.repeat_count == 2
        assert s.repeat_percentage == 66.7
        assert s.average_fine == Decimal("100333.33")
        assert s.total_fines == Decimal("301000.00")

    def test_worked_example_display(self, engine, worked_example):
        s = engine.compute_summary(worked_example)
        assert s.repeat_display == "2 (66.7%)"
        assert s.average_fine_display == "£100,333.33"

    def test_empty_input_gives_zeros(self, engine):
        s = engine.compute_summary([])
        assert s.total_count == 0
        assert s.repeat_count == 0
        assert s.repeat_percentage == 0.0
        assert s.average_fine == Decimal("0.00")
        assert s.average_fine_display == "£0.00"

    def test_accepts_generator(self, engine, worked_example):
        s = engine.compute_summary(o for o in worked_example)
        assert s.total_count == 3

    def test_missing_fines_count_as_zero(self, engine):
        offenders = [
            make_offender("a", "A", "100", 1, 0),
            Offender(id="b", name="B", total_fines=None, total_cases=None),
        ]
        s = engine.compute_summary(offenders)
        assert s.total_count == 2
        assert s.average_fine == Decimal("50.00")
        assert s.repeat_count == 0

    def test_malformed_fine_string_counts_as_zero(self, engine):
        o = Offender(id="x", name="X", total_fines="not money")
        assert engine.compute_summary([o]).total_fines == Decimal("0.00")

    def test_average_rounds_half_up(self, engine):
        offenders = [make_offender("a", "A", "0.01", 1, 0),
                     make_offender("b", "B", "0.00", 1, 0)]
        # 0.005 rounds up to a whole penny
        assert engine.compute_summary(offenders).average_fine == Decimal("0.01")

    def test_repeat_share_rounds_half_up(self, engine):
        offenders = [make_offender("r", "Repeat Co", "0", 2, 0)]
        offenders += [make_offender(f"s{i}", f"Single {i}", "0", 1, 0) for i in range(15)]
        s = engine.compute_summary(offenders)
        # 1 of 16 is exactly 6.25%
        assert s.repeat_percentage == 6.3
        assert s.repeat_display == "1 (6.3%)"

    def test_to_dict_keys(self, engine, worked_example):
        d = engine.compute_summary(worked_example).to_dict()
        assert d["average_fine"] == "100333.33"
        assert d["repeat_display"] == "2 (66.7%)"
        assert set(d) >= {"total_count", "repeat_count", "repeat_percentage",
                          "average_fine_display", "total_fines"}

    def test_does_not_mutate_input(self, engine, worked_example):
        before = [(o.id, o.total_fines) for o in worked_example]
        engine.compute_summary(worked_example)
        assert [(o.id, o.total_fines) for o in worked_example] == before


# ── classify_repeat ───────────────────────────────────────────────────────────

class TestClassifyRepeat:
    @pytest.mark.parametrize("cases,notices,expected", [
        (0, 0, False),
        (1, 0, False),
        (0, 1, False),
        (1, 1, True),
        (2, 0, True),
        (0, 2, True),
    ])
    def test_threshold(self, engine, cases, notices, expected):
        o = make_offender("x", "X", "0", cases, notices)
        assert engine.classify_repeat(o) is expected

    def test_none_counts(self, engine):
        assert engine.classify_repeat(Offender(id="x", name="X",
                                               total_cases=None,
                                               total_notices=None)) is False


# ── rank_risk ─────────────────────────────────────────────────────────────────

class TestRankRisk:
    def test_high_risk_needs_all_three_signals(self, engine, high_risk_offender):
        r = engine.rank_risk(high_risk_offender, today=TODAY)
        assert r.tier is RiskTier.HIGH
        assert r.label == "High Risk"
        assert r.agency_count == 2
        assert r.escalating
        assert r.recent
        assert r.last_action_date == date(2024, 4, 1)
        assert FACTOR_MULTIPLE_AGENCIES in r.factors
        assert FACTOR_ESCALATING_FINES in r.factors
        assert FACTOR_RECENT_ACTIVITY in r.factors

    def test_stale_activity_drops_to_moderate(self, engine, high_risk_offender):
        r = engine.rank_risk(high_risk_offender, today=date(2026, 1, 1))
        assert r.tier is RiskTier.MODERATE
        assert FACTOR_RECENT_ACTIVITY not in r.factors

    def test_single_agency_is_not_high(self, engine, high_risk_offender):
        for c in high_risk_offender.cases:
            c.agency_code = "hse"
        r = engine.rank_risk(high_risk_offender, today=TODAY)
        assert r.tier is RiskTier.MODERATE
        assert r.agency_count == 1

    def test_falling_fines_are_not_escalating(self, engine, high_risk_offender):
        high_risk_offender.cases[-1].fine = Decimal("1000")
        r = engine.rank_risk(high_risk_offender, today=TODAY)
        assert not r.escalating
        assert r.tier is RiskTier.MODERATE

    def test_escalation_ignores_unfined_and_undated_cases(self, engine, high_risk_offender):
        high_risk_offender.cases.append(
            Case(id="c4", offender_id="hr", agency_code="ea",
                 action_date=date(2024, 5, 1), fine=Decimal("0")))
        high_risk_offender.cases.append(
            Case(id="c5", offender_id="hr", agency_code="ea", action_date=None,
                 fine=Decimal("1")))
        assert engine.rank_risk(high_risk_offender, today=TODAY).escalating

    def test_single_offence_is_low(self, engine):
        o = Offender(id="l", name="Low", total_cases=1,
                     cases=[Case(id="c", offender_id="l", agency_code="hse",
                                 action_date=date(2024, 5, 1), fine=Decimal("500"))])
        r = engine.rank_risk(o, today=TODAY)
        assert r.tier is RiskTier.LOW
        assert r.label == "Low Risk"

    def test_repeat_without_records_is_moderate(self, engine, worked_example):
        r = engine.rank_risk(worked_example[1], today=TODAY)
        assert r.tier is RiskTier.MODERATE
        assert r.label == "Moderate Risk"
        assert r.agency_count == 0

    def test_multiple_violations_factor(self, engine):
        o = make_offender("m", "Many", "0", 3, 3)
        assert FACTOR_MULTIPLE_VIOLATIONS in engine.rank_risk(o, today=TODAY).factors

    def test_multiple_violations_needs_more_than_threshold(self, engine):
        o = make_offender("m", "Five", "0", 3, 2)
        assert FACTOR_MULTIPLE_VIOLATIONS not in engine.rank_risk(o, today=TODAY).factors

    def test_last_seen_date_used_without_records(self, engine):
        o = Offender(id="s", name="S", last_seen_date=date(2024, 1, 1))
        r = engine.rank_risk(o, today=TODAY)
        assert r.last_action_date == date(2024, 1, 1)
        assert r.recent

    def test_window_boundary_is_exclusive(self, engine, high_risk_offender):
        # last action 2024-04-01
        assert engine.rank_risk(high_risk_offender, today=date(2025, 3, 31)).recent
        assert not engine.rank_risk(high_risk_offender, today=date(2025, 4, 1)).recent

    def test_policy_thresholds(self, high_risk_offender):
        policy = RiskPolicy()
        policy.min_agencies = 3
        r = OffenderStatsEngine(policy).rank_risk(high_risk_offender, today=TODAY)
        assert r.tier is RiskTier.MODERATE

    def test_escalation_factor(self, high_risk_offender):
        policy = RiskPolicy()
        policy.escalation_factor = 20.0  # 75000 is only 15x 5000
        r = OffenderStatsEngine(policy).rank_risk(high_risk_offender, today=TODAY)
        assert not r.escalating

    def test_tier_values(self):
        assert [t.value for t in RiskTier] == ["low", "moderate", "high"]


# ── filter ────────────────────────────────────────────────────────────────────

class TestFilter:
    def test_no_predicates_returns_all(self, engine, worked_example):
        assert len(engine.filter(worked_example)) == 3
        assert len(engine.filter(worked_example, OffenderFilters())) == 3

    def test_industry_exact_and_case_sensitive(self, engine, worked_example):
        assert [o.id for o in engine.filter(worked_example, {"industry": "Manufacturing"})] == ["o1", "o3"]
        assert engine.filter(worked_example, {"industry": "manufacturing"}) == []

    def test_local_authority_substring(self, engine, worked_example):
        ids = [o.id for o in engine.filter(worked_example, {"local_authority": "manchester"})]
        assert ids == ["o2", "o3"]

    def test_business_type(self, engine, worked_example):
        ids = [o.id for o in engine.filter(worked_example, {"business_type": "plc"})]
        assert ids == ["o2"]

    def test_repeat_only(self, engine, worked_example):
        ids = [o.id for o in engine.filter(worked_example, {"repeat_only": "true"})]
        assert ids == ["o2", "o3"]

    def test_search_name_and_postcode(self, engine, worked_example):
        assert [o.id for o in engine.filter(worked_example, {"search": "acme"})] == ["o3"]
        assert [o.id for o in engine.filter(worked_example, {"search": "m1 1ae"})] == ["o2"]

    def test_predicates_are_anded(self, engine, worked_example):
        f = OffenderFilters(industry="Manufacturing", repeat_only=True)
        assert [o.id for o in engine.filter(worked_example, f)] == ["o3"]

    def test_blank_values_ignored(self, engine, worked_example):
        assert len(engine.filter(worked_example, {"industry": "", "search": "  "})) == 3

    def test_agency(self, engine, high_risk_offender, worked_example):
        pool = worked_example + [high_risk_offender]
        assert engine.filter(pool, {"agency": "ea"}) == [high_risk_offender]

    def test_preserves_order(self, engine, worked_example):
        reversed_pool = list(reversed(worked_example))
        assert engine.filter(reversed_pool, {"industry": "Manufacturing"})[0].id == "o3"


# ── sort ──────────────────────────────────────────────────────────────────────

class TestSort:
    def test_default_is_fines_desc(self, engine, worked_example):
        assert [o.id for o in engine.sort(worked_example)] == ["o3", "o2", "o1"]

    def test_cases_asc(self, engine, worked_example):
        assert [o.id for o in engine.sort(worked_example, "total_cases", "asc")] == ["o1", "o3", "o2"]

    def test_name_is_case_insensitive(self, engine, worked_example):
        assert [o.name for o in engine.sort(worked_example, "name", "asc")] == [
            "Acme Manufacturing Limited", "Big Chemicals PLC", "Small Bakery Ltd"]

    def test_stable_for_ties(self, engine):
        pool = [make_offender(str(i), f"N{i}", "100", 1, 0) for i in range(5)]
        assert [o.id for o in engine.sort(pool, "total_fines", "desc")] == ["0", "1", "2", "3", "4"]
        assert [o.id for o in engine.sort(pool, "total_fines", "asc")] == ["0", "1", "2", "3", "4"]

    def test_invalid_key_falls_back_and_logs(self, engine, worked_example, caplog):
        with caplog.at_level(logging.WARNING, logger="enforcement.stats"):
            result = engine.sort(worked_example, "bogus", "asc")
        assert [o.id for o in result] == ["o3", "o2", "o1"]
        assert "invalid_sort" in caplog.text

    def test_invalid_order_falls_back(self, engine, worked_example):
        assert [o.id for o in engine.sort(worked_example, "name", "sideways")] == ["o3", "o2", "o1"]

    def test_undated_sorts_last_when_descending(self, engine):
        pool = [Offender(id="a", name="A"),
                Offender(id="b", name="B", last_seen_date=date(2024, 1, 1))]
        assert [o.id for o in engine.sort(pool, "last_seen_date", "desc")] == ["b", "a"]

    def test_resolve_sort(self, engine):
        spec = engine.resolve_sort("total_cases", "ASC")
        assert (spec.key, spec.order) == ("total_cases", "asc")
        assert engine.resolve_sort(None, None).key == "total_fines"


def test_find(engine, worked_example):
    assert engine.find(worked_example, "o2").name == "Big Chemicals PLC"
    assert engine.find(worked_example, "missing") is None


# ── Detail view breakdowns ────────────────────────────────────────────────────

class TestAgencyBreakdown:
    def test_counts_and_fines(self, engine, high_risk_offender):
        b = engine.agency_breakdown(high_risk_offender)
        assert list(b) == ["ea", "hse"]
        assert b["hse"].cases == 2
        assert b["hse"].notices == 1
        assert b["hse"].total_fines == Decimal("80000")
        assert b["ea"].cases == 1
        assert b["ea"].notices == 0

    def test_no_records(self, engine):
        assert engine.agency_breakdown(Offender(id="x", name="X")) == {}


class TestIndustryContext:
    def test_significantly_above(self, engine, worked_example):
        ctx = engine.industry_context(worked_example[2], worked_example)
        assert ctx.peer_count == 1
        assert ctx.average_fine == Decimal("1000.00")
        assert ctx.comparison == COMPARISON_SIGNIFICANTLY_ABOVE

    def test_within(self, engine, worked_example):
        ctx = engine.industry_context(worked_example[0], worked_example)
        assert ctx.comparison == COMPARISON_WITHIN

    def test_above(self, engine):
        pool = [make_offender("a", "A", "150", 1, 0, industry="X"),
                make_offender("b", "B", "100", 1, 0, industry="X")]
        assert engine.industry_context(pool[0], pool).comparison == COMPARISON_ABOVE

    def test_no_peers(self, engine, worked_example):
        ctx = engine.industry_context(worked_example[1], worked_example)
        assert ctx.peer_count == 0
        assert ctx.comparison is None

    def test_no_industry(self, engine, worked_example):
        o = make_offender("z", "Z", "10", 1, 0)
        assert engine.industry_context(o, worked_example).peer_count == 0


def test_related_offenders(engine, worked_example):
    extra = make_offender("o4", "Widget Works", "5000", 1, 0,
                          industry="Manufacturing", local_authority="Leeds")
    pool = worked_example + [extra]
    rel = engine.related_offenders(worked_example[0], pool)
    assert [o.id for o in rel.same_industry] == ["o3", "o4"]
    assert [o.id for o in rel.same_area] == ["o4"]
    assert engine.related_offenders(worked_example[0], pool, limit=1).same_industry[0].id == "o3"


class TestTimeline:
    def test_grouped_by_year_newest_first(self, engine, high_risk_offender):
        groups = engine.enforcement_timeline(high_risk_offender)
        assert [y for y, _ in groups] == [2024, 2023, 2022]
        assert [e.record.id for e in groups[1][1]] == ["n1", "c2"]

    def test_filter_by_type(self, engine, high_risk_offender):
        groups = engine.enforcement_timeline(high_risk_offender, TimelineFilter(action_type="notices"))
        assert [(y, [e.action_type for e in es]) for y, es in groups] == [(2023, ["notice"])]

    def test_filter_by_agency_and_dates(self, engine, high_risk_offender):
        tf = TimelineFilter(agency="hse", from_date=date(2023, 1, 1), to_date=date(2024, 12, 31))
        ids = [e.record.id for _, es in engine.enforcement_timeline(high_risk_offender, tf) for e in es]
        assert ids == ["c3", "n1"]

    def test_unknown_type_matches_nothing(self, engine, high_risk_offender):
        assert engine.enforcement_timeline(high_risk_offender, TimelineFilter(action_type="fines")) == []

    def test_undated_records_trail(self, engine, high_risk_offender):
        high_risk_offender.notices.append(
            Notice(id="n2", offender_id="hr", agency_code="hse"))
        groups = engine.enforcement_timeline(high_risk_offender)
        assert groups[-1][0] is None
        assert [e.record.id for e in groups[-1][1]] == ["n2"]

    def test_from_params_drops_bad_dates(self, engine, high_risk_offender):
        tf = TimelineFilter.from_params({"from_date": "yesterday", "filter_type": "cases"})
        assert tf.from_date is None
        assert len(engine.enforcement_timeline(high_risk_offender, tf)) == 3


# ── Reports ───────────────────────────────────────────────────────────────────

def test_industry_stats(engine, worked_example):
    extra = make_offender("o4", "Unlabelled", "10", 1, 0)
    stats = engine.industry_stats(worked_example + [extra])
    assert [s.industry for s in stats] == ["Manufacturing", "Chemicals", "Unknown"]
    mfg = stats[0]
    assert mfg.count == 2
    assert mfg.total_fines == Decimal("251000.00")
    assert mfg.average_fine == Decimal("125500.00")


def test_top_offenders(engine, worked_example):
    assert [o.id for o in engine.top_offenders(worked_example, limit=2)] == ["o3", "o2"]
