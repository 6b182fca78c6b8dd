"""
Tests for rebate eligibility, program potential and claim validation
"""

from profit_engine.models import RebateDetail, RebateProgram
from profit_engine.rebates import (
    ClaimStatus,
    RebateMatcher,
    find_eligible_rebates,
    summarize_programs,
    validate_claims,
)


def _detail(code, start="2024-01-01", end="2024-03-31", mtm="M1", per_unit=10.0, **kwargs):
    return RebateDetail(program_code=code, mtm=mtm, per_unit=per_unit, start_date=start, end_date=end, **kwargs)


# ===== ELIGIBILITY =====

def test_window_bounds_are_inclusive():
    matcher = RebateMatcher([_detail("Q1")])
    assert [d.program_code for d in matcher.eligible("M1", "2024-01-01")] == ["Q1"]
    assert [d.program_code for d in matcher.eligible("M1", "2024-03-31")] == ["Q1"]
    assert matcher.eligible("M1", "2023-12-31") == []
    assert matcher.eligible("M1", "2024-04-01") == []


def test_eligible_programs_stack():
    matcher = RebateMatcher([
        _detail("BASE", per_unit=10.0),
        _detail("PUSH", start="2024-03-01", end="2024-03-31", per_unit=5.0),
        _detail("OTHER", mtm="M2"),
    ])
    breakdown = matcher.breakdown("M1", "03/15/2024")
    assert [(b.program_code, b.per_unit_amount) for b in breakdown] == [("BASE", 10.0), ("PUSH", 5.0)]


def test_open_ended_windows():
    matcher = RebateMatcher([
        _detail("FROM", start="2024-02-01", end=None),
        _detail("UNTIL", start=None, end="2024-02-01"),
    ])
    assert [d.program_code for d in matcher.eligible("M1", "2025-01-01")] == ["FROM"]
    assert [d.program_code for d in matcher.eligible("M1", "2023-01-01")] == ["UNTIL"]
    assert [d.program_code for d in matcher.eligible("M1", "2024-02-01")] == ["FROM", "UNTIL"]


def test_detail_without_any_bound_never_matches():
    assert find_eligible_rebates("M1", "2024-02-01", [_detail("NONE", start=None, end=None)]) == []


def test_unparseable_bound_or_reference_date_excludes():
    matcher = RebateMatcher([_detail("BAD", start="2024-02-30")])
    assert matcher.eligible("M1", "2024-03-01") == []

    matcher = RebateMatcher([_detail("Q1")])
    assert matcher.eligible("M1", "not a date") == []
    assert matcher.eligible("M1", None) == []


def test_upper_case_month_bounds():
    matcher = RebateMatcher([_detail("Q4", start="01-OCT-2024", end="31-DEC-2024")])
    assert [d.program_code for d in matcher.eligible("M1", "2024-11-01")] == ["Q4"]
    assert [d.program_code for d in matcher.eligible("M1", "01-OCT-2024")] == ["Q4"]
    assert matcher.eligible("M1", "30-SEP-2024") == []


def test_missing_per_unit_counts_as_zero():
    matcher = RebateMatcher([_detail("ZERO", per_unit=None)])
    assert matcher.breakdown("M1", "2024-02-01")[0].per_unit_amount == 0.0


# ===== PROGRAM POTENTIAL =====

def test_summarize_programs_counts_claims_inside_detail_windows(rebate_sale_factory):
    programs = [RebateProgram(program="Q1", status="Open", per_unit=10.0)]
    details = [_detail("Q1", per_unit=12.0, program_reported_lph=2)]
    claims = [
        rebate_sale_factory("S1", invoice_date="2024-01-15"),
        rebate_sale_factory("S2", invoice_date="2024-03-31", qty=2),
        rebate_sale_factory("S3", invoice_date="2024-04-02"),
        rebate_sale_factory("S4", mtm="M2", invoice_date="2024-02-01"),
    ]

    summary = summarize_programs(programs, details, claims)[0]
    assert summary.tracked_units == 3
    assert summary.potential_rebate == 36.0
    assert summary.details[0].variance == 1


def test_program_without_details_uses_own_window(rebate_sale_factory):
    programs = [
        RebateProgram(program="FLAT", start_date="2024-01-01", end_date="2024-01-31", per_unit=7.0),
        RebateProgram(program="OPEN", start_date="2024-01-01", per_unit=7.0),
    ]
    claims = [rebate_sale_factory("S1", invoice_date="2024-01-10"), rebate_sale_factory("S2", invoice_date="2024-02-10")]

    flat, open_ended = summarize_programs(programs, [], claims)
    assert (flat.tracked_units, flat.potential_rebate) == (1, 7.0)
    assert (open_ended.tracked_units, open_ended.potential_rebate) == (0, 0.0)


# ===== CLAIM VALIDATION =====

def test_validate_claims(sale_factory, rebate_sale_factory):
    sales = [
        sale_factory("aa1", invoice_date="2024-03-20"),
        sale_factory("BB2", invoice_date="2024-05-01"),
        sale_factory("CC3", invoice_date=None),
    ]
    claims = [
        rebate_sale_factory("AA1", invoice_date="03/20/2024"),
        rebate_sale_factory("BB2", invoice_date="2024-05-03"),
        rebate_sale_factory("ZZ9"),
    ]

    checks = {c.serial_number: c for c in validate_claims(sales, claims)}

    assert checks["AA1"].status == ClaimStatus.MATCHED
    assert checks["AA1"].date_mismatch is False
    assert checks["BB2"].date_mismatch is True
    assert checks["CC3"].status == ClaimStatus.UNCLAIMED_SALE
    assert checks["ZZ9"].status == ClaimStatus.UNVERIFIED_CLAIM


def test_validate_claims_sorted_newest_first(sale_factory):
    sales = [
        sale_factory("A", invoice_date="2024-01-01"),
        sale_factory("B", invoice_date=None),
        sale_factory("C", invoice_date="2024-05-01"),
    ]
    assert [c.serial_number for c in validate_claims(sales, [])] == ["C", "A", "B"]
