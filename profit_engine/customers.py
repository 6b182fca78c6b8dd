"""
Customer Segmentation Engine
Aggregates sales per buyer, flags new / at-risk customers, assigns revenue
tiers and places each buyer on the revenue vs. frequency matrix.
"""

import logging
import math
from datetime import datetime
from typing import Dict, Iterable, List

from .config import Config, default_config
from .dates import days_ago, format_date, parse_date
from .models import Customer, CustomerQuadrant, CustomerTier, Sale

logger = logging.getLogger(__name__)

# Tier order matters: cutoffs are cumulative from the top
TIER_ORDER = [CustomerTier.PLATINUM, CustomerTier.GOLD, CustomerTier.SILVER]


class CustomerSegmenter:
    """Build customer records and segment them."""

    def __init__(self, config: Config = None):
        self.config = config or default_config

    def build_customers(self, sales: Iterable[Sale], today: datetime) -> List[Customer]:
        """
        One Customer per buyer id, in order of first appearance.

        ``days_since_last_purchase`` is ``math.inf`` when no sale carries a
        parseable date, which also makes the customer at-risk.
        """
        customers: Dict[str, Customer] = {}
        invoices: Dict[str, set] = {}
        first_seen: Dict[str, datetime] = {}
        last_seen: Dict[str, datetime] = {}

        for sale in sales:
            customer = customers.get(sale.buyer_id)
            if customer is None:
                customer = Customer(id=sale.buyer_id, name=sale.buyer_name)
                customers[sale.buyer_id] = customer
                invoices[sale.buyer_id] = set()

            customer.total_revenue += sale.total_revenue
            customer.total_units += sale.quantity
            customer.sales.append(sale)
            invoices[sale.buyer_id].add(sale.invoice_number)

            sold_on = parse_date(sale.invoice_date) if sale.invoice_date else None
            if sold_on is None:
                continue
            if sale.buyer_id not in first_seen or sold_on < first_seen[sale.buyer_id]:
                first_seen[sale.buyer_id] = sold_on
            if sale.buyer_id not in last_seen or sold_on > last_seen[sale.buyer_id]:
                last_seen[sale.buyer_id] = sold_on

        new_cutoff = days_ago(today, self.config.new_customer_days)
        for buyer_id, customer in customers.items():
            customer.invoice_count = len(invoices[buyer_id])

            first = first_seen.get(buyer_id)
            last = last_seen.get(buyer_id)
            customer.first_purchase_date = format_date(first)
            customer.last_purchase_date = format_date(last)
            customer.days_since_last_purchase = (today - last).days if last else math.inf
            customer.is_new = first is not None and first >= new_cutoff
            customer.is_at_risk = customer.days_since_last_purchase > self.config.at_risk_days

        return list(customers.values())

    # =========================================================================
    # TIERS
    # =========================================================================

    def assign_tiers(self, customers: List[Customer]) -> List[Customer]:
        """
        Sort by revenue (descending, stable) and cut into tiers.

        With n customers the first ceil(0.05n) are Platinum, up to
        ceil(0.20n) Gold, up to ceil(0.50n) Silver, the rest Bronze.
        Returns the sorted list; the customers are updated in place.
        """
        ranked = sorted(customers, key=lambda c: -c.total_revenue)
        if not ranked:
            return ranked

        count = len(ranked)
        cutoffs = [
            (tier, math.ceil(count * self.config.tier_cutoffs[tier.value]))
            for tier in TIER_ORDER
        ]

        for position, customer in enumerate(ranked):
            customer.tier = CustomerTier.BRONZE
            for tier, cutoff in cutoffs:
                if position < cutoff:
                    customer.tier = tier
                    break

        return ranked

    # =========================================================================
    # VALUE MATRIX
    # =========================================================================

    @staticmethod
    def _upper_median(values: List[float]) -> float:
        ordered = sorted(values)
        return ordered[len(ordered) // 2]

    def classify_quadrants(self, customers: List[Customer]) -> Dict[str, List[Customer]]:
        """
        Place customers on the revenue / invoice-count matrix.

        Medians come from the whole population passed in; "high" means at or
        above the median. Populations below ``quadrant_min_population`` are
        all placed in At Risk / Watch.
        """
        matrix: Dict[str, List[Customer]] = {
            "champions": [],
            "high_spenders": [],
            "loyal": [],
            "at_risk": [],
        }

        if len(customers) < self.config.quadrant_min_population:
            for customer in customers:
                customer.quadrant = CustomerQuadrant.AT_RISK
            matrix["at_risk"] = list(customers)
            return matrix

        median_revenue = self._upper_median([c.total_revenue for c in customers])
        median_frequency = self._upper_median([c.invoice_count for c in customers])

        for customer in customers:
            high_revenue = customer.total_revenue >= median_revenue
            high_frequency = customer.invoice_count >= median_frequency

            if high_revenue and high_frequency:
                customer.quadrant, bucket = CustomerQuadrant.CHAMPION, "champions"
            elif high_revenue:
                customer.quadrant, bucket = CustomerQuadrant.HIGH_SPENDER, "high_spenders"
            elif high_frequency:
                customer.quadrant, bucket = CustomerQuadrant.LOYAL, "loyal"
            else:
                customer.quadrant, bucket = CustomerQuadrant.AT_RISK, "at_risk"
            matrix[bucket].append(customer)

        return matrix

    def segment(self, sales: Iterable[Sale], today: datetime) -> List[Customer]:
        """Build, tier and classify customers; returned in revenue order."""
        customers = self.assign_tiers(self.build_customers(sales, today))
        self.classify_quadrants(customers)
        logger.info(
            "Segmented %d customers (%d new, %d at risk)",
            len(customers),
            sum(1 for c in customers if c.is_new),
            sum(1 for c in customers if c.is_at_risk),
        )
        return customers
