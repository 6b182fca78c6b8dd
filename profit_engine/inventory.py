"""
Inventory & Backorder Analyzer
Per-MTM stock position, run rate, weeks of cover and restock priorities.
"""

import logging
import math
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set

from .config import Config, default_config
from .dates import days_ago, format_date, parse_date
from .indexes import normalize_serial, order_key
from .models import (
    BackorderPriority,
    BackorderRecommendation,
    InventoryItem,
    InventoryPosition,
    Order,
    ReconciledSale,
    Sale,
    SalesMetrics,
    SalesTrend,
    SerializedItem,
    round_half_up,
)

logger = logging.getLogger(__name__)


class InventoryAnalyzer:
    """Derive inventory health and backorder recommendations from orders and sales."""

    def __init__(self, config: Config = None):
        self.config = config or default_config

    # =========================================================================
    # STOCK POSITION
    # =========================================================================

    def calculate_inventory_status(
        self,
        orders: Iterable[Order],
        sales: Iterable[Sale],
        serialized_items: Iterable[SerializedItem],
    ) -> Dict[str, InventoryPosition]:
        """
        Stock position for every MTM that appears in the orders.

        Shipped quantity counts every order line; arrived quantity counts
        lines with an actual arrival date. Serial scans are split into
        arrived / on-the-way by whether their order line has arrived.

        On-hand follows ``config.on_hand_basis``:
            serialized  - arrived serials that have not been sold
            theoretical - arrived qty minus sold qty
        """
        orders = list(orders)
        sales = list(sales)

        arrived_lines: Set[str] = {
            order_key(o.sales_order, o.mtm) for o in orders if o.actual_arrival
        }

        positions: Dict[str, InventoryPosition] = {}
        landing_value: Dict[str, float] = defaultdict(float)
        fob_value: Dict[str, float] = defaultdict(float)
        last_arrival: Dict[str, datetime] = {}

        for order in orders:
            position = positions.get(order.mtm)
            if position is None:
                position = InventoryPosition(mtm=order.mtm, model_name=order.model_name)
                positions[order.mtm] = position

            position.total_shipped_qty += order.qty
            landing_value[order.mtm] += order.landing_cost_unit_price * order.qty
            fob_value[order.mtm] += order.order_value

            if order.actual_arrival:
                position.total_arrived_qty += order.qty
                arrived_on = parse_date(order.actual_arrival)
                if arrived_on and (order.mtm not in last_arrival or arrived_on > last_arrival[order.mtm]):
                    last_arrival[order.mtm] = arrived_on

        sold_by_mtm: Dict[str, int] = defaultdict(int)
        sold_serials: Set[str] = set()
        for sale in sales:
            sold_by_mtm[sale.mtm] += sale.quantity
            if sale.serial_number:
                sold_serials.add(normalize_serial(sale.serial_number))

        arrived_serials: Dict[str, List[SerializedItem]] = defaultdict(list)
        otw_serials: Dict[str, int] = defaultdict(int)
        for item in serialized_items:
            if order_key(item.sales_order, item.mtm) in arrived_lines:
                arrived_serials[item.mtm].append(item)
            else:
                otw_serials[item.mtm] += 1

        for mtm, position in positions.items():
            position.total_sold_qty = sold_by_mtm.get(mtm, 0)
            arrived = arrived_serials.get(mtm, [])
            position.total_arrived_serialized_qty = len(arrived)
            position.total_otw_serialized_qty = otw_serials.get(mtm, 0)
            position.total_serialized_qty = len(arrived) + position.total_otw_serialized_qty

            theoretical = position.total_arrived_qty - position.total_sold_qty
            if self.config.on_hand_basis == "theoretical":
                position.on_hand_qty = theoretical
            else:
                position.on_hand_qty = sum(
                    1 for s in arrived
                    if normalize_serial(s.serial_number) not in sold_serials
                    and normalize_serial(s.full_serialized_string) not in sold_serials
                )
            position.unaccounted_stock_qty = theoretical - position.on_hand_qty

            if position.total_shipped_qty > 0:
                position.average_landing_cost = landing_value[mtm] / position.total_shipped_qty
                position.average_fob_cost = fob_value[mtm] / position.total_shipped_qty
            position.last_arrival_date = format_date(last_arrival.get(mtm))

        logger.debug("Inventory status computed for %d MTMs", len(positions))
        return positions

    # =========================================================================
    # MODEL AGE
    # =========================================================================

    def get_first_order_dates(self, orders: Iterable[Order]) -> Dict[str, datetime]:
        """Earliest PI issue date per MTM (orders without a parseable date are skipped)."""
        first: Dict[str, datetime] = {}
        for order in orders:
            if not order.date_issue_pi:
                continue
            issued = parse_date(order.date_issue_pi)
            if issued and (order.mtm not in first or issued < first[order.mtm]):
                first[order.mtm] = issued
        return first

    def get_new_model_mtms(self, first_order_dates: Dict[str, datetime], today: datetime) -> Set[str]:
        cutoff = days_ago(today, self.config.new_model_days)
        return {mtm for mtm, first in first_order_dates.items() if first >= cutoff}

    # =========================================================================
    # DEMAND
    # =========================================================================

    def get_sales_metrics(self, sales: Iterable[Sale], today: datetime) -> Dict[str, SalesMetrics]:
        """
        Trailing demand per MTM.

        Only sales inside the run-rate lookback window are counted. Each sale
        lands in exactly one of the "last 30" / "previous 30" buckets, or in
        neither when it is older than the prior window.
        """
        recent_cutoff = days_ago(today, self.config.recent_sales_days)
        prior_cutoff = days_ago(today, self.config.prior_sales_days)
        lookback_cutoff = days_ago(today, self.config.run_rate_lookback_days)

        metrics: Dict[str, SalesMetrics] = {}
        for sale in sales:
            if not sale.invoice_date:
                continue
            sold_on = parse_date(sale.invoice_date)
            if sold_on is None or sold_on < lookback_cutoff:
                continue

            metric = metrics.setdefault(sale.mtm, SalesMetrics())
            metric.total_90 += sale.quantity
            metric.affected_customers.add(sale.buyer_id)
            if sold_on >= recent_cutoff:
                metric.last_30 += sale.quantity
            elif sold_on >= prior_cutoff:
                metric.prev_30 += sale.quantity

        return metrics

    # =========================================================================
    # BACKORDER PRIORITIES
    # =========================================================================

    def analyze_backorder_candidates(
        self,
        inventory_status: Dict[str, InventoryPosition],
        sales_metrics: Dict[str, SalesMetrics],
        first_order_dates: Dict[str, datetime],
        new_model_mtms: Set[str],
    ) -> List[BackorderRecommendation]:
        """
        Rank out-of-stock MTMs that still have recent demand.

        Score components:
            volume   - min(cap, log2(units_90 + 1) * factor)
            velocity - 30 rising, 0 falling, 15 stable (10% swing threshold)
            revenue  - share of the largest backorder value, scaled to weight
            new      - flat bonus for recently launched models
        """
        config = self.config
        candidates = [
            (position, sales_metrics[mtm])
            for mtm, position in inventory_status.items()
            if position.on_hand_qty <= 0 and mtm in sales_metrics
        ]
        if not candidates:
            return []

        max_value = max(
            [m.total_90 * p.average_landing_cost for p, m in candidates] + [1]
        )

        recommendations = []
        for position, metrics in candidates:
            volume_score = min(
                config.backorder_volume_cap,
                math.log2(metrics.total_90 + 1) * config.backorder_volume_factor,
            )

            if metrics.last_30 > metrics.prev_30 * config.backorder_trend_ratio:
                velocity_score, trend = 30, SalesTrend.INCREASING
            elif metrics.prev_30 > metrics.last_30 * config.backorder_trend_ratio:
                velocity_score, trend = 0, SalesTrend.DECREASING
            else:
                velocity_score, trend = 15, SalesTrend.STABLE

            estimated_value = metrics.total_90 * position.average_landing_cost
            revenue_score = estimated_value / max_value * config.backorder_revenue_weight
            new_model_bonus = config.backorder_new_model_bonus if position.mtm in new_model_mtms else 0

            score = round_half_up(volume_score + velocity_score + revenue_score + new_model_bonus)
            if score >= config.backorder_high_score:
                priority = BackorderPriority.HIGH
            elif score >= config.backorder_medium_score:
                priority = BackorderPriority.MEDIUM
            else:
                priority = BackorderPriority.LOW

            recommendations.append(BackorderRecommendation(
                mtm=position.mtm,
                model_name=position.model_name,
                priority=priority,
                priority_score=score,
                recent_sales_units=metrics.total_90,
                estimated_backorder_value=estimated_value,
                first_order_date=format_date(first_order_dates.get(position.mtm)),
                in_stock_qty=position.on_hand_qty,
                average_landing_cost=position.average_landing_cost,
                sales_trend=trend,
                affected_customers=len(metrics.affected_customers),
                sales_last_30_days=metrics.last_30,
            ))

        recommendations.sort(key=lambda r: (-r.priority_score, r.mtm))
        return recommendations

    # =========================================================================
    # INVENTORY HEALTH ROWS
    # =========================================================================

    def build_inventory_items(
        self,
        inventory_status: Dict[str, InventoryPosition],
        orders: Iterable[Order],
        sales: Iterable[Sale],
        reconciled_sales: Iterable[ReconciledSale],
        new_model_mtms: Set[str],
        today: datetime,
    ) -> List[InventoryItem]:
        """Enrich stock positions with run rate, cover, OTW value, recency and profit."""
        lookback_cutoff = days_ago(today, self.config.run_rate_lookback_days)
        lookback_weeks = self.config.run_rate_lookback_days / 7

        otw_value: Dict[str, float] = defaultdict(float)
        for order in orders:
            if not order.actual_arrival:
                otw_value[order.mtm] += order.order_value

        recent_units: Dict[str, int] = defaultdict(int)
        last_sale: Dict[str, datetime] = {}
        for sale in sales:
            sold_on = parse_date(sale.invoice_date) if sale.invoice_date else None
            if sold_on is None:
                continue
            if sold_on >= lookback_cutoff:
                recent_units[sale.mtm] += sale.quantity
            if sale.mtm not in last_sale or sold_on > last_sale[sale.mtm]:
                last_sale[sale.mtm] = sold_on

        profit: Dict[str, float] = defaultdict(float)
        revenue: Dict[str, float] = defaultdict(float)
        for reconciled in reconciled_sales:
            if reconciled.unit_profit is not None:
                profit[reconciled.mtm] += reconciled.unit_profit
                revenue[reconciled.mtm] += reconciled.unit_sale_price

        items = []
        for mtm, position in inventory_status.items():
            units = recent_units.get(mtm, 0)
            run_rate = units / lookback_weeks if units > 0 else 0.0

            # None means "cannot estimate", never zero weeks of cover
            weeks = None
            if position.on_hand_qty > 0 and run_rate > 0:
                weeks = math.floor(position.on_hand_qty / run_rate)

            days_since_sale = None
            if mtm in last_sale:
                days_since_sale = (today - last_sale[mtm]).days

            days_since_arrival = None
            arrived_on = parse_date(position.last_arrival_date) if position.last_arrival_date else None
            if arrived_on:
                days_since_arrival = (today - arrived_on).days

            total_profit = profit[mtm] if mtm in profit else None
            margin = None
            if mtm in profit and revenue[mtm] > 0:
                margin = profit[mtm] / revenue[mtm] * 100

            items.append(InventoryItem(
                **vars(position),
                otw_qty=position.total_shipped_qty - position.total_arrived_qty,
                otw_value=otw_value.get(mtm, 0.0),
                on_hand_value=position.on_hand_qty * position.average_fob_cost,
                weekly_run_rate=run_rate,
                weeks_of_inventory=weeks,
                days_since_last_sale=days_since_sale,
                days_since_last_arrival=days_since_arrival,
                is_new_model=mtm in new_model_mtms,
                total_profit=total_profit,
                profit_margin=margin,
            ))

        return items
