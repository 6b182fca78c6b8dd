"""
Domain Model
============

Source records arrive as immutable snapshots from the data provider; derived
records are rebuilt on every computation pass and never treated as a source
of truth.

Dates on source records are kept as the raw text supplied by the provider.
They are parsed with ``profit_engine.dates.parse_date`` at the point of use.
"""

import math
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional


# =============================================================================
# ENUMERATIONS
# =============================================================================

class ReconciliationStatus(str, Enum):
    """Outcome of joining a sale through orders, costs and rebates."""

    MATCHED = "Matched"
    NO_REBATE = "No Rebate"
    COST_MISSING = "Cost Missing"
    PARTIALLY_COSTED = "Partially Costed"
    NO_ORDER_MATCH = "No Order Match"


# Statuses that mean the cost waterfall is incomplete
MISSING_COST_STATUSES = (
    ReconciliationStatus.NO_ORDER_MATCH,
    ReconciliationStatus.COST_MISSING,
    ReconciliationStatus.PARTIALLY_COSTED,
)


class BackorderPriority(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class SalesTrend(str, Enum):
    INCREASING = "Increasing"
    DECREASING = "Decreasing"
    STABLE = "Stable"


class CustomerTier(str, Enum):
    PLATINUM = "Platinum"
    GOLD = "Gold"
    SILVER = "Silver"
    BRONZE = "Bronze"


class CustomerQuadrant(str, Enum):
    """Position on the revenue / purchase-frequency matrix."""

    CHAMPION = "Champion"            # high revenue, high frequency
    HIGH_SPENDER = "High Spender"    # high revenue, low frequency
    LOYAL = "Loyal"                  # low revenue, high frequency
    AT_RISK = "At Risk / Watch"      # neither


class PromotionPriority(str, Enum):
    URGENT = "Urgent"
    PRE_LAUNCH = "Pre-Launch"
    RECOMMENDED = "Recommended"
    OPTIONAL = "Optional"


class ShipmentStatus(str, Enum):
    ARRIVED = "Arrived"
    TRANSIT_SG_KH = "Transit SG > KH"
    TRANSIT_CN_SG = "Transit CN > SG"
    DELAYED = "Delayed"
    UPCOMING = "Upcoming"


# =============================================================================
# SOURCE ENTITIES
# =============================================================================

@dataclass(frozen=True)
class Order:
    """A purchase-order line (one sales order, one MTM)."""
    sales_order: str
    mtm: str
    model_name: str = ""
    product_line: str = ""
    qty: int = 0
    fob_unit_price: Optional[float] = None
    landing_cost_unit_price: float = 0.0
    order_value: float = 0.0
    date_issue_pi: Optional[str] = None
    eta: Optional[str] = None
    actual_arrival: Optional[str] = None
    factory_to_sgp: str = ""          # Factory-side shipping status
    status: str = ""
    delivery_number: Optional[str] = None
    is_delayed_production: bool = False
    is_delayed_transit: bool = False
    is_at_risk: bool = False


@dataclass(frozen=True)
class Sale:
    """A retail sale of one serialized unit."""
    invoice_number: str
    invoice_date: Optional[str]
    buyer_id: str
    buyer_name: str
    serial_number: str
    mtm: str                          # lenovoProductNumber
    model_name: str = ""
    quantity: int = 1
    unit_price: float = 0.0
    total_revenue: float = 0.0
    segment: str = ""


@dataclass(frozen=True)
class SerializedItem:
    """A serial-number scan tying a unit to its sales order."""
    serial_number: str
    full_serialized_string: str
    sales_order: str
    mtm: str
    timestamp: Optional[str] = None


@dataclass(frozen=True)
class Shipment:
    """A freight line from a packing list."""
    packing_list: str
    sales_order: str
    mtm: str
    quantity: int = 0
    shipping_cost: float = 0.0        # Per unit
    packing_list_date: Optional[str] = None
    eta: Optional[str] = None
    arrival_date: Optional[str] = None
    total_kgs_on_date: float = 0.0


@dataclass(frozen=True)
class AccessoryCost:
    """Per-unit accessory (backpack) cost for an SO + MTM."""
    so: str
    mtm: str
    backpack_cost: float = 0.0


@dataclass(frozen=True)
class RebateProgram:
    """Vendor rebate program header."""
    program: str
    lenovo_quarter: str = ""
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    per_unit: Optional[float] = None
    status: str = ""                  # "Open" / "Close"
    update: str = ""
    rebate_earned: Optional[float] = None
    credit_no: Optional[str] = None


@dataclass(frozen=True)
class RebateDetail:
    """Per-MTM line of a rebate program with its own date window."""
    program_code: str
    mtm: str
    per_unit: Optional[float] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    program_max: Optional[float] = None
    program_reported_lph: Optional[float] = None


@dataclass(frozen=True)
class RebateSale:
    """A sale as reported to the vendor for rebate claims."""
    serial_number: str
    mtm: str
    rebate_invoice_date: Optional[str] = None
    buyer_id: str = ""
    quantity: int = 1
    unit_bp_reported_price: float = 0.0
    invoice_number: str = ""


# =============================================================================
# DERIVED ENTITIES
# =============================================================================

@dataclass
class RebateBreakdown:
    program_code: str
    per_unit_amount: float


@dataclass
class ReconciledSale:
    """Cost/profit waterfall for one sold unit."""
    invoice_date: Optional[str]       # Rebate invoice date when a claim exists
    invoice_number: str
    buyer_name: str
    serial_number: str
    mtm: str
    model_name: str
    unit_sale_price: float
    sales_order: str                  # "N/A" when the serial was never scanned
    fob_cost: Optional[float]
    shipping_cost: Optional[float]
    accessory_cost: Optional[float]
    landing_cost: Optional[float]
    rebate_details: List[RebateBreakdown]
    rebate_applied: Optional[float]
    net_cost: Optional[float]
    unit_profit: Optional[float]
    profit_margin: Optional[float]
    status: ReconciliationStatus


@dataclass
class InventoryPosition:
    """Stock position for one MTM, before run-rate and profit enrichment."""
    mtm: str
    model_name: str
    total_shipped_qty: int = 0
    total_arrived_qty: int = 0
    total_sold_qty: int = 0
    total_serialized_qty: int = 0
    total_arrived_serialized_qty: int = 0
    total_otw_serialized_qty: int = 0
    on_hand_qty: int = 0
    unaccounted_stock_qty: int = 0
    average_landing_cost: float = 0.0
    average_fob_cost: float = 0.0
    last_arrival_date: Optional[str] = None


@dataclass
class InventoryItem(InventoryPosition):
    """Inventory health row published to the Inventory Summary sheet."""
    otw_qty: int = 0
    otw_value: float = 0.0
    on_hand_value: float = 0.0
    weekly_run_rate: float = 0.0
    weeks_of_inventory: Optional[int] = None   # None = cannot estimate
    days_since_last_sale: Optional[int] = None
    days_since_last_arrival: Optional[int] = None
    is_new_model: bool = False
    total_profit: Optional[float] = None
    profit_margin: Optional[float] = None


@dataclass
class SalesMetrics:
    """Trailing-window demand for one MTM."""
    last_30: int = 0
    prev_30: int = 0
    total_90: int = 0
    affected_customers: set = field(default_factory=set)


@dataclass
class BackorderRecommendation:
    mtm: str
    model_name: str
    priority: BackorderPriority
    priority_score: int
    recent_sales_units: int
    estimated_backorder_value: float
    first_order_date: Optional[str]
    in_stock_qty: int
    average_landing_cost: float
    sales_trend: SalesTrend
    affected_customers: int
    sales_last_30_days: int


@dataclass
class Customer:
    id: str
    name: str
    total_revenue: float = 0.0
    total_units: int = 0
    invoice_count: int = 0
    first_purchase_date: Optional[str] = None
    last_purchase_date: Optional[str] = None
    days_since_last_purchase: float = math.inf   # inf = never purchased
    is_new: bool = False
    is_at_risk: bool = False
    tier: Optional[CustomerTier] = None
    quadrant: Optional[CustomerQuadrant] = None
    sales: List[Sale] = field(default_factory=list, repr=False)


@dataclass
class SalesOpportunity:
    id: str                           # "<customerId>-<mtm>"
    customer_id: str
    customer_name: str
    customer_tier: Optional[CustomerTier]
    mtm: str
    model_name: str
    in_stock_qty: int
    otw_qty: int
    average_landing_cost: float
    surplus_stock_value: float
    customer_past_units: int
    customer_last_purchase_date: Optional[str]
    opportunity_score: int = 0


@dataclass
class CustomerSalesOpportunity:
    customer_id: str
    customer_name: str
    customer_tier: Optional[CustomerTier]
    opportunities: List[SalesOpportunity]
    total_opportunity_value: float
    customer_opportunity_score: int
    opportunity_count: int


@dataclass
class PromotionCandidate:
    mtm: str
    model_name: str
    in_stock_qty: int
    otw_qty: int
    in_stock_value: float
    otw_value: float
    weeks_of_inventory: Optional[int]
    days_since_last_sale: Optional[int]
    priority: PromotionPriority
    score: Optional[float]            # None for Pre-Launch items
    reasoning: str


@dataclass
class ShipmentLine:
    """One line inside a shipment group (a Shipment or an in-transit Order)."""
    sales_order: str
    mtm: str
    packing_list: str
    quantity: int
    shipping_cost: float
    model_name: str
    eta: Optional[str] = None
    packing_list_date: Optional[str] = None
    arrival_date: Optional[str] = None


@dataclass
class ShipmentProgress:
    percentage: float = 0.0
    total_duration: float = 0.0       # days
    elapsed: float = 0.0              # days
    is_complete: bool = False
    eta_percentage: Optional[float] = None


@dataclass
class AugmentedShipmentGroup:
    packing_list: str                 # Packing list, or delivery number for order groups
    leg: str                          # "SG→KH" or "CN→SG"
    source: str                       # "shipment" or "order"
    items: List[ShipmentLine]
    packing_list_date: Optional[str]
    eta: Optional[str]
    arrival_date: Optional[str]
    total_quantity: int
    total_cost: float
    total_fob_value: float
    total_kgs_on_date: float
    status: ShipmentStatus
    progress: ShipmentProgress
    delay_days: int = 0


# =============================================================================
# HELPERS
# =============================================================================

def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive scores (2.5 -> 3, not 2)."""
    return int(math.floor(value + 0.5))


# =============================================================================
# ROW CONVERSION
# =============================================================================

def _to_plain(value: Any) -> Any:
    """Convert a field value into something JSON and spreadsheets accept."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, float) and math.isinf(value):
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    if is_dataclass(value) and not isinstance(value, type):
        return to_row(value)
    if isinstance(value, (list, tuple)):
        return [_to_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _to_plain(v) for k, v in value.items()}
    return value


def to_row(record: Any, exclude: tuple = ("sales",)) -> Dict[str, Any]:
    """
    Flatten a dataclass record into a plain dict for sinks and hashing.

    Enums become their values, infinite sentinels become None, nested
    dataclasses become dicts. Fields named in ``exclude`` are dropped
    (customers carry their raw sales list, which is never published).
    """
    return {
        f.name: _to_plain(getattr(record, f.name))
        for f in fields(record)
        if f.name not in exclude
    }
