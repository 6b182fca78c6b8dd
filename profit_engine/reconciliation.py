"""
Sale Reconciliation Engine
==========================

Joins every sale through serial scans, orders, freight, accessory costs and
rebate windows to produce one ``ReconciledSale`` per input sale.

Cost waterfall per unit:
    landing = FOB + shipping + accessory
    net     = landing - rebates
    profit  = sale price - net

Missing joins never raise. They leave None in the affected fields and are
reported through the status tag, first match wins:
    No Order Match -> Cost Missing -> Partially Costed -> Matched -> No Rebate
"""

import logging
from collections import Counter
from typing import Iterable, List, Optional

from .indexes import SourceIndexes, order_key
from .models import Order, ReconciledSale, ReconciliationStatus, Sale
from .rebates import RebateMatcher

logger = logging.getLogger(__name__)


def classify_status(
    order: Optional[Order],
    fob_cost: Optional[float],
    shipping_cost: Optional[float],
    accessory_cost: Optional[float],
    has_rebate: bool,
) -> ReconciliationStatus:
    if order is None:
        return ReconciliationStatus.NO_ORDER_MATCH
    if fob_cost is None:
        return ReconciliationStatus.COST_MISSING
    if shipping_cost is None or accessory_cost is None:
        return ReconciliationStatus.PARTIALLY_COSTED
    if has_rebate:
        return ReconciliationStatus.MATCHED
    return ReconciliationStatus.NO_REBATE


def reconcile_sale(
    sale: Sale,
    indexes: SourceIndexes,
    matcher: RebateMatcher,
) -> ReconciledSale:
    """Build the cost/profit waterfall for a single sale."""
    serialized = indexes.find_serialized(sale.serial_number)
    key = order_key(serialized.sales_order, sale.mtm) if serialized else ""

    order = indexes.order_index.get(key) if key else None
    fob_cost = order.fob_unit_price if order else None
    shipping_cost = indexes.shipping_cost_index.get(key) if key else None
    accessory_cost = indexes.accessory_index.get(key) if key else None

    landing_cost = None
    if fob_cost is not None:
        landing_cost = fob_cost + (shipping_cost or 0.0) + (accessory_cost or 0.0)

    # The vendor's claim date decides rebate eligibility when a claim exists
    rebate_sale = indexes.find_rebate_sale(sale.serial_number)
    reference_date = (rebate_sale.rebate_invoice_date if rebate_sale else None) or sale.invoice_date

    rebate_details = matcher.breakdown(sale.mtm, reference_date)
    total_rebate = sum(d.per_unit_amount for d in rebate_details)
    rebate_applied = total_rebate if total_rebate > 0 else None

    net_cost = None
    if landing_cost is not None:
        net_cost = landing_cost - (rebate_applied or 0.0)

    unit_profit = sale.unit_price - net_cost if net_cost is not None else None

    profit_margin = None
    if unit_profit is not None and sale.unit_price > 0:
        profit_margin = unit_profit / sale.unit_price * 100

    status = classify_status(order, fob_cost, shipping_cost, accessory_cost, bool(rebate_details))

    return ReconciledSale(
        invoice_date=reference_date,
        invoice_number=sale.invoice_number,
        buyer_name=sale.buyer_name,
        serial_number=sale.serial_number,
        mtm=sale.mtm,
        model_name=sale.model_name,
        unit_sale_price=sale.unit_price,
        sales_order=serialized.sales_order if serialized and serialized.sales_order else "N/A",
        fob_cost=fob_cost,
        shipping_cost=shipping_cost,
        accessory_cost=accessory_cost,
        landing_cost=landing_cost,
        rebate_details=rebate_details,
        rebate_applied=rebate_applied,
        net_cost=net_cost,
        unit_profit=unit_profit,
        profit_margin=profit_margin,
        status=status,
    )


def reconcile_sales(
    sales: Iterable[Sale],
    indexes: SourceIndexes,
    matcher: RebateMatcher,
) -> List[ReconciledSale]:
    """Reconcile every sale, preserving input order (one output per input)."""
    reconciled = [reconcile_sale(sale, indexes, matcher) for sale in sales]

    if reconciled:
        counts = Counter(r.status.value for r in reconciled)
        logger.info(
            "Reconciled %d sales: %s",
            len(reconciled),
            ", ".join(f"{status}={count}" for status, count in sorted(counts.items())),
        )
    return reconciled
