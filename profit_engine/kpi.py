"""
KPI Aggregators
Dashboard roll-ups over orders, sales, rebate programs and reconciled sales.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from .dates import days_between, parse_date
from .models import (
    MISSING_COST_STATUSES,
    Order,
    RebateProgram,
    ReconciledSale,
    Sale,
)


@dataclass
class OrderKPIs:
    total_orders: int = 0
    total_units: int = 0
    total_landing_cost_value: float = 0.0
    total_fob_value: float = 0.0
    open_units: int = 0                   # Not yet arrived
    backlog_value: float = 0.0
    delayed_orders_count: int = 0         # Production or transit delay
    at_risk_orders_count: int = 0
    average_lead_time: float = 0.0        # PI issue -> arrival, days
    on_time_arrival_rate: float = 0.0     # %
    on_time_eligible_count: int = 0
    average_fob_price: float = 0.0
    average_landing_cost: float = 0.0
    unique_order_count: int = 0
    avg_order_value: float = 0.0          # Per sales order


@dataclass
class SalesKPIs:
    total_revenue: float = 0.0
    total_units: int = 0
    invoice_count: int = 0
    average_sale_price_per_unit: float = 0.0
    average_revenue_per_invoice: float = 0.0
    unique_buyers_count: int = 0
    total_profit: float = 0.0
    average_gross_margin: float = 0.0     # %


@dataclass
class RebateKPIs:
    total_earned: float = 0.0
    open_programs: int = 0
    pending_payment: int = 0
    total_pending_value: float = 0.0


@dataclass
class ProfitabilityKPIs:
    total_profit: float = 0.0
    average_margin: float = 0.0           # Revenue-weighted, %
    total_rebates_applied: float = 0.0
    sales_with_rebates: int = 0
    sales_missing_cost: int = 0


def order_kpis(orders: Iterable[Order]) -> Optional[OrderKPIs]:
    """Order book totals; None when there are no orders."""
    orders = list(orders)
    if not orders:
        return None

    kpi = OrderKPIs()
    total_lead_time = 0.0
    lead_time_count = 0
    on_time = 0

    for order in orders:
        kpi.total_orders += 1
        kpi.total_units += order.qty
        kpi.total_landing_cost_value += order.landing_cost_unit_price * order.qty
        kpi.total_fob_value += order.order_value
        if order.is_delayed_production or order.is_delayed_transit:
            kpi.delayed_orders_count += 1
        if order.is_at_risk:
            kpi.at_risk_orders_count += 1

        arrived = parse_date(order.actual_arrival) if order.actual_arrival else None
        if not order.actual_arrival:
            kpi.open_units += order.qty
            kpi.backlog_value += order.order_value

        issued = parse_date(order.date_issue_pi) if order.date_issue_pi else None
        if issued and arrived:
            lead_time = days_between(issued, arrived)
            if lead_time >= 0:
                total_lead_time += lead_time
                lead_time_count += 1

        eta = parse_date(order.eta) if order.eta else None
        if eta and arrived:
            kpi.on_time_eligible_count += 1
            if arrived <= eta:
                on_time += 1

    kpi.unique_order_count = len({o.sales_order for o in orders})
    if kpi.unique_order_count:
        kpi.avg_order_value = kpi.total_fob_value / kpi.unique_order_count
    if lead_time_count:
        kpi.average_lead_time = total_lead_time / lead_time_count
    if kpi.on_time_eligible_count:
        kpi.on_time_arrival_rate = on_time / kpi.on_time_eligible_count * 100
    if kpi.total_units:
        kpi.average_fob_price = kpi.total_fob_value / kpi.total_units
        kpi.average_landing_cost = kpi.total_landing_cost_value / kpi.total_units

    return kpi


def sales_kpis(sales: Iterable[Sale], reconciled_sales: Iterable[ReconciledSale] = ()) -> Optional[SalesKPIs]:
    """Revenue and volume totals; None when there are no sales."""
    sales = list(sales)
    if not sales:
        return None

    kpi = SalesKPIs(
        total_revenue=sum(s.total_revenue for s in sales),
        total_units=sum(s.quantity for s in sales),
        invoice_count=len({s.invoice_number for s in sales}),
        unique_buyers_count=len({s.buyer_id for s in sales}),
        total_profit=sum(r.unit_profit for r in reconciled_sales if r.unit_profit is not None),
    )
    if kpi.total_units:
        kpi.average_sale_price_per_unit = kpi.total_revenue / kpi.total_units
    if kpi.invoice_count:
        kpi.average_revenue_per_invoice = kpi.total_revenue / kpi.invoice_count
    if kpi.total_revenue > 0:
        kpi.average_gross_margin = kpi.total_profit / kpi.total_revenue * 100
    return kpi


def rebate_kpis(programs: Iterable[RebateProgram]) -> RebateKPIs:
    kpi = RebateKPIs()
    for program in programs:
        kpi.total_earned += program.rebate_earned or 0.0
        if program.status == "Open":
            kpi.open_programs += 1
        if "pending" in (program.update or "").lower():
            kpi.pending_payment += 1
            kpi.total_pending_value += program.rebate_earned or 0.0
    return kpi


def profitability_kpis(reconciled_sales: Iterable[ReconciledSale]) -> ProfitabilityKPIs:
    """
    Profit roll-up over reconciled sales.

    Margin is weighted by revenue and only counts sales whose profit is known,
    so gaps in cost data lower ``sales_missing_cost`` coverage rather than
    dragging the margin toward zero.
    """
    kpi = ProfitabilityKPIs()
    revenue_for_margin = 0.0

    for sale in reconciled_sales:
        if sale.unit_profit is not None:
            kpi.total_profit += sale.unit_profit
            revenue_for_margin += sale.unit_sale_price
        if sale.rebate_applied is not None and sale.rebate_applied > 0:
            kpi.total_rebates_applied += sale.rebate_applied
            kpi.sales_with_rebates += 1
        if sale.status in MISSING_COST_STATUSES:
            kpi.sales_missing_cost += 1

    if revenue_for_margin > 0:
        kpi.average_margin = kpi.total_profit / revenue_for_margin * 100
    return kpi
