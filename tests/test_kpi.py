"""
Tests for dashboard KPI roll-ups
"""

import pytest

from profit_engine.kpi import order_kpis, profitability_kpis, rebate_kpis, sales_kpis
from profit_engine.models import Order, RebateProgram, ReconciledSale, ReconciliationStatus


def _reconciled(profit, price=100.0, rebate=None, status=ReconciliationStatus.MATCHED):
    return ReconciledSale(
        invoice_date="2024-06-01",
        invoice_number="INV",
        buyer_name="Buyer",
        serial_number="S",
        mtm="M1",
        model_name="",
        unit_sale_price=price,
        sales_order="SO1",
        fob_cost=None,
        shipping_cost=None,
        accessory_cost=None,
        landing_cost=None,
        rebate_details=[],
        rebate_applied=rebate,
        net_cost=None,
        unit_profit=profit,
        profit_margin=None,
        status=status,
    )


def test_order_kpis():
    orders = [
        Order(sales_order="SO1", mtm="M1", qty=10, landing_cost_unit_price=110.0, order_value=1000.0,
              date_issue_pi="2024-01-01", eta="2024-02-01", actual_arrival="2024-01-31", is_at_risk=True),
        Order(sales_order="SO1", mtm="M2", qty=5, landing_cost_unit_price=220.0, order_value=1000.0,
              date_issue_pi="2024-01-01", eta="2024-02-01", actual_arrival="2024-02-10"),
        Order(sales_order="SO2", mtm="M1", qty=5, landing_cost_unit_price=110.0, order_value=500.0,
              is_delayed_transit=True),
    ]
    kpi = order_kpis(orders)

    assert kpi.total_orders == 3
    assert kpi.total_units == 20
    assert kpi.total_landing_cost_value == 2750.0
    assert kpi.total_fob_value == 2500.0
    assert kpi.open_units == 5
    assert kpi.backlog_value == 500.0
    assert kpi.delayed_orders_count == 1
    assert kpi.at_risk_orders_count == 1
    assert kpi.average_lead_time == pytest.approx((30 + 40) / 2)
    assert kpi.on_time_eligible_count == 2
    assert kpi.on_time_arrival_rate == pytest.approx(50.0)
    assert kpi.unique_order_count == 2
    assert kpi.avg_order_value == 1250.0
    assert kpi.average_fob_price == 125.0


def test_empty_inputs():
    assert order_kpis([]) is None
    assert sales_kpis([]) is None
    assert profitability_kpis([]).average_margin == 0.0


def test_sales_kpis(sale_factory):
    sales = [
        sale_factory("1", buyer_id="A", price=100.0, invoice="INV-1"),
        sale_factory("2", buyer_id="A", price=300.0, invoice="INV-1"),
        sale_factory("3", buyer_id="B", price=200.0, qty=2, invoice="INV-2"),
    ]
    kpi = sales_kpis(sales, [_reconciled(50.0), _reconciled(None), _reconciled(100.0)])

    assert kpi.total_revenue == 800.0
    assert kpi.total_units == 4
    assert kpi.invoice_count == 2
    assert kpi.unique_buyers_count == 2
    assert kpi.average_sale_price_per_unit == 200.0
    assert kpi.average_revenue_per_invoice == 400.0
    assert kpi.total_profit == 150.0
    assert kpi.average_gross_margin == pytest.approx(18.75)


def test_rebate_kpis():
    programs = [
        RebateProgram(program="A", status="Open", rebate_earned=100.0, update="Payment pending"),
        RebateProgram(program="B", status="Close", rebate_earned=50.0, update="Paid"),
        RebateProgram(program="C", status="Open"),
    ]
    kpi = rebate_kpis(programs)
    assert kpi.total_earned == 150.0
    assert kpi.open_programs == 2
    assert kpi.pending_payment == 1
    assert kpi.total_pending_value == 100.0


def test_profitability_margin_ignores_unknown_profit():
    reconciled = [
        _reconciled(40.0, price=200.0, rebate=15.0),
        _reconciled(10.0, price=50.0),
        _reconciled(None, price=1000.0, status=ReconciliationStatus.COST_MISSING),
        _reconciled(5.0, status=ReconciliationStatus.PARTIALLY_COSTED),
    ]
    kpi = profitability_kpis(reconciled)
    assert kpi.total_profit == 55.0
    assert kpi.average_margin == pytest.approx(55.0 / 350.0 * 100)
    assert kpi.total_rebates_applied == 15.0
    assert kpi.sales_with_rebates == 1
    assert kpi.sales_missing_cost == 2
