"""
Tests for the per-sale cost/profit waterfall and status classification
"""

import pytest

from profit_engine.indexes import build_indexes
from profit_engine.models import Order, ReconciliationStatus, RebateSale
from profit_engine.rebates import RebateMatcher
from profit_engine.reconciliation import classify_status, reconcile_sale, reconcile_sales


def _reconcile(sources, sales=None):
    indexes = build_indexes(
        orders=sources["orders"],
        serialized_items=sources["serialized_items"],
        shipments=sources["shipments"],
        accessory_costs=sources["accessory_costs"],
        rebate_sales=sources["rebate_sales"],
    )
    matcher = RebateMatcher(sources["rebate_details"])
    return reconcile_sales(sales if sales is not None else sources["sales"], indexes, matcher)


def test_fully_costed_rebated_sale(rebated_sale_sources):
    sale = _reconcile(rebated_sale_sources)[0]

    assert sale.sales_order == "SO1"
    assert sale.fob_cost == 300.0
    assert sale.shipping_cost == 20.0
    assert sale.accessory_cost == 0.0
    assert sale.landing_cost == 320.0
    assert sale.rebate_applied == 15.0
    assert sale.net_cost == 305.0
    assert sale.unit_profit == 195.0
    assert sale.profit_margin == pytest.approx(39.0)
    assert sale.status == ReconciliationStatus.MATCHED
    assert [(d.program_code, d.per_unit_amount) for d in sale.rebate_details] == [("REB-Q1", 15.0)]


def test_missing_order_leaves_costs_empty(rebated_sale_sources):
    rebated_sale_sources["orders"] = []
    sale = _reconcile(rebated_sale_sources)[0]

    assert sale.fob_cost is None
    assert sale.landing_cost is None
    assert sale.net_cost is None
    assert sale.unit_profit is None
    assert sale.profit_margin is None
    assert sale.status == ReconciliationStatus.NO_ORDER_MATCH


def test_unscanned_serial_has_no_sales_order(rebated_sale_sources, sale_factory):
    sale = _reconcile(rebated_sale_sources, sales=[sale_factory("NOSCAN")])[0]
    assert sale.sales_order == "N/A"
    assert sale.shipping_cost is None
    assert sale.status == ReconciliationStatus.NO_ORDER_MATCH


def test_order_without_fob_is_cost_missing(rebated_sale_sources):
    rebated_sale_sources["orders"] = [Order(sales_order="SO1", mtm="M1", fob_unit_price=None)]
    sale = _reconcile(rebated_sale_sources)[0]
    assert sale.landing_cost is None
    assert sale.status == ReconciliationStatus.COST_MISSING


def test_missing_accessory_row_is_partially_costed(rebated_sale_sources):
    """Landing cost still computed, treating the gap as zero."""
    rebated_sale_sources["accessory_costs"] = []
    sale = _reconcile(rebated_sale_sources)[0]
    assert sale.accessory_cost is None
    assert sale.landing_cost == 320.0
    assert sale.status == ReconciliationStatus.PARTIALLY_COSTED


def test_missing_shipping_is_partially_costed(rebated_sale_sources):
    rebated_sale_sources["shipments"] = []
    sale = _reconcile(rebated_sale_sources)[0]
    assert sale.landing_cost == 300.0
    assert sale.unit_profit == 215.0
    assert sale.status == ReconciliationStatus.PARTIALLY_COSTED


def test_no_eligible_rebate(rebated_sale_sources):
    rebated_sale_sources["rebate_details"] = []
    sale = _reconcile(rebated_sale_sources)[0]
    assert sale.rebate_applied is None
    assert sale.rebate_details == []
    assert sale.net_cost == 320.0
    assert sale.status == ReconciliationStatus.NO_REBATE


def test_vendor_claim_date_decides_eligibility(rebated_sale_sources):
    """Claim dated after the window removes the rebate and becomes the invoice date."""
    rebated_sale_sources["rebate_sales"] = [
        RebateSale(serial_number="abc123", mtm="M1", rebate_invoice_date="2024-07-02")
    ]
    sale = _reconcile(rebated_sale_sources)[0]
    assert sale.invoice_date == "2024-07-02"
    assert sale.rebate_applied is None
    assert sale.status == ReconciliationStatus.NO_REBATE


def test_zero_price_has_no_margin(rebated_sale_sources, sale_factory):
    free = sale_factory("ABC123", price=0.0)
    sale = _reconcile(rebated_sale_sources, sales=[free])[0]
    assert sale.unit_profit == pytest.approx(-305.0)
    assert sale.profit_margin is None


def test_one_output_per_input_in_order(rebated_sale_sources, sale_factory):
    sales = [sale_factory("X1"), rebated_sale_sources["sales"][0], sale_factory("X2")]
    reconciled = _reconcile(rebated_sale_sources, sales=sales)
    assert [r.serial_number for r in reconciled] == ["X1", "ABC123", "X2"]


def test_status_precedence():
    order = Order(sales_order="SO1", mtm="M1", fob_unit_price=1.0)
    assert classify_status(None, None, None, None, True) == ReconciliationStatus.NO_ORDER_MATCH
    assert classify_status(order, None, 1.0, 1.0, True) == ReconciliationStatus.COST_MISSING
    assert classify_status(order, 1.0, None, 1.0, True) == ReconciliationStatus.PARTIALLY_COSTED
    assert classify_status(order, 1.0, 1.0, 1.0, True) == ReconciliationStatus.MATCHED
    assert classify_status(order, 1.0, 1.0, 1.0, False) == ReconciliationStatus.NO_REBATE


def test_reconcile_sale_directly(rebated_sale_sources):
    indexes = build_indexes(serialized_items=rebated_sale_sources["serialized_items"])
    sale = reconcile_sale(rebated_sale_sources["sales"][0], indexes, RebateMatcher())
    assert sale.sales_order == "SO1"
    assert sale.status == ReconciliationStatus.NO_ORDER_MATCH
