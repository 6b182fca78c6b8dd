"""
Rebate Module
=============

Three views over the vendor rebate data:

1. ``RebateMatcher`` - which rebate details apply to a sold unit, given its
   MTM and reference date. Eligible programs stack.
2. ``summarize_programs`` - tracked units and potential rebate per program,
   from the vendor-reported rebate sales.
3. ``validate_claims`` - our sales vs. the vendor's rebate claims, by serial.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from .dates import parse_date
from .indexes import normalize_serial
from .models import RebateBreakdown, RebateDetail, RebateProgram, RebateSale, Sale

logger = logging.getLogger(__name__)


# =============================================================================
# ELIGIBILITY
# =============================================================================

class RebateMatcher:
    """
    Match sold units against per-MTM rebate windows.

    A detail is eligible when its MTM equals the sale's MTM, the reference
    date and every present bound parse, at least one bound is present, and
    ``start <= date <= end`` (inclusive, open where a bound is missing).
    """

    def __init__(self, details: Iterable[RebateDetail] = ()):
        self._by_mtm: Dict[str, List[Tuple[RebateDetail, Optional[datetime], Optional[datetime]]]] = defaultdict(list)
        for detail in details:
            if not detail.start_date and not detail.end_date:
                continue
            start = parse_date(detail.start_date) if detail.start_date else None
            end = parse_date(detail.end_date) if detail.end_date else None
            # A bound that is present but unparseable disqualifies the detail
            if (detail.start_date and start is None) or (detail.end_date and end is None):
                continue
            self._by_mtm[detail.mtm].append((detail, start, end))

    def eligible(self, mtm: str, reference_date) -> List[RebateDetail]:
        """All details whose window contains ``reference_date``, in source order."""
        windows = self._by_mtm.get(mtm)
        if not windows:
            return []

        when = reference_date if isinstance(reference_date, datetime) else parse_date(reference_date)
        if when is None:
            return []

        matches = []
        for detail, start, end in windows:
            if start is not None and when < start:
                continue
            if end is not None and when > end:
                continue
            matches.append(detail)
        return matches

    def breakdown(self, mtm: str, reference_date) -> List[RebateBreakdown]:
        """Eligible details as (program code, per-unit amount) pairs."""
        return [
            RebateBreakdown(program_code=d.program_code, per_unit_amount=d.per_unit or 0.0)
            for d in self.eligible(mtm, reference_date)
        ]


def find_eligible_rebates(
    mtm: str,
    reference_date,
    details: Iterable[RebateDetail],
) -> List[RebateDetail]:
    """One-off convenience wrapper around ``RebateMatcher``."""
    return RebateMatcher(details).eligible(mtm, reference_date)


# =============================================================================
# PROGRAM POTENTIAL
# =============================================================================

@dataclass
class RebateDetailPotential:
    program_code: str
    mtm: str
    per_unit: float
    tracked_units: int              # Vendor-reported units inside the window
    reported_units: float           # Program's own reported count
    variance: float                 # tracked - reported
    potential_rebate: float


@dataclass
class RebateProgramSummary:
    program: str
    lenovo_quarter: str
    status: str
    per_unit: Optional[float]
    rebate_earned: Optional[float]
    tracked_units: int = 0
    potential_rebate: float = 0.0
    details: List[RebateDetailPotential] = field(default_factory=list)


def _units_in_window(
    rebate_sales: List[Tuple[RebateSale, Optional[datetime]]],
    start_text: Optional[str],
    end_text: Optional[str],
    mtm: Optional[str] = None,
) -> int:
    """Sum claim quantities inside a closed window; both bounds are required."""
    start = parse_date(start_text) if start_text else None
    end = parse_date(end_text) if end_text else None
    if start is None or end is None:
        return 0

    total = 0
    for rebate_sale, when in rebate_sales:
        if mtm is not None and rebate_sale.mtm != mtm:
            continue
        if when is not None and start <= when <= end:
            total += rebate_sale.quantity
    return total


def summarize_programs(
    programs: Iterable[RebateProgram],
    details: Iterable[RebateDetail],
    rebate_sales: Iterable[RebateSale],
) -> List[RebateProgramSummary]:
    """
    Potential rebate per program from vendor-reported sales.

    Programs with MTM details are summed detail by detail. A program with no
    details but a closed window of its own counts every reported sale inside
    that window at the program's per-unit rate.
    """
    details_by_program: Dict[str, List[RebateDetail]] = defaultdict(list)
    for detail in details:
        details_by_program[detail.program_code].append(detail)

    dated_sales = [
        (rs, parse_date(rs.rebate_invoice_date) if rs.rebate_invoice_date else None)
        for rs in rebate_sales
    ]

    summaries = []
    for program in programs:
        summary = RebateProgramSummary(
            program=program.program,
            lenovo_quarter=program.lenovo_quarter,
            status=program.status,
            per_unit=program.per_unit,
            rebate_earned=program.rebate_earned,
        )

        program_details = details_by_program.get(program.program, [])
        if program_details:
            for detail in program_details:
                tracked = _units_in_window(dated_sales, detail.start_date, detail.end_date, mtm=detail.mtm)
                per_unit = detail.per_unit or 0.0
                reported = detail.program_reported_lph or 0.0
                summary.details.append(RebateDetailPotential(
                    program_code=detail.program_code,
                    mtm=detail.mtm,
                    per_unit=per_unit,
                    tracked_units=tracked,
                    reported_units=reported,
                    variance=tracked - reported,
                    potential_rebate=tracked * per_unit,
                ))
                summary.tracked_units += tracked
                summary.potential_rebate += tracked * per_unit
        elif program.start_date and program.end_date:
            summary.tracked_units = _units_in_window(dated_sales, program.start_date, program.end_date)
            summary.potential_rebate = summary.tracked_units * (program.per_unit or 0.0)

        summaries.append(summary)

    return summaries


# =============================================================================
# CLAIM VALIDATION
# =============================================================================

class ClaimStatus(str, Enum):
    MATCHED = "Matched"
    UNCLAIMED_SALE = "Unclaimed Sale"        # We sold it, vendor has no claim
    UNVERIFIED_CLAIM = "Unverified Claim"    # Vendor claim with no sale of ours


@dataclass
class RebateClaimCheck:
    serial_number: str
    mtm: str
    status: ClaimStatus
    our_sale_date: Optional[str]
    vendor_claim_date: Optional[str]
    date_mismatch: bool = False


def validate_claims(
    sales: Iterable[Sale],
    rebate_sales: Iterable[RebateSale],
) -> List[RebateClaimCheck]:
    """
    Compare our sales against vendor rebate claims by serial number.

    Serials are compared upper-cased. A matched pair is flagged with
    ``date_mismatch`` when the two dates parse to different days (or only one
    of them parses). Results are sorted by our sale date, newest first, with
    undated rows last.
    """
    our_sales: Dict[str, Sale] = {}
    for sale in sales:
        key = normalize_serial(sale.serial_number)
        if key:
            our_sales[key] = sale

    claims: Dict[str, RebateSale] = {}
    for claim in rebate_sales:
        key = normalize_serial(claim.serial_number)
        if key:
            claims[key] = claim

    checks = []
    for serial in sorted(set(our_sales) | set(claims)):
        sale = our_sales.get(serial)
        claim = claims.get(serial)

        if sale and claim:
            status = ClaimStatus.MATCHED
            date_mismatch = parse_date(sale.invoice_date) != parse_date(claim.rebate_invoice_date)
        elif sale:
            status = ClaimStatus.UNCLAIMED_SALE
            date_mismatch = False
        else:
            status = ClaimStatus.UNVERIFIED_CLAIM
            date_mismatch = False

        checks.append(RebateClaimCheck(
            serial_number=serial,
            mtm=sale.mtm if sale else claim.mtm,
            status=status,
            our_sale_date=sale.invoice_date if sale else None,
            vendor_claim_date=claim.rebate_invoice_date if claim else None,
            date_mismatch=date_mismatch,
        ))

    def _sort_key(check: RebateClaimCheck):
        when = parse_date(check.our_sale_date) if check.our_sale_date else None
        return (when is None, -when.timestamp() if when else 0.0)

    checks.sort(key=_sort_key)
    return checks
