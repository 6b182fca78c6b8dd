"""
Surplus Opportunity Scorer
Matches customers with MTMs they have bought before that are now in surplus.
"""

import logging
import math
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from .config import Config, default_config
from .dates import days_between, format_date, parse_date
from .models import (
    Customer,
    CustomerSalesOpportunity,
    InventoryItem,
    SalesOpportunity,
    round_half_up,
)

logger = logging.getLogger(__name__)


class OpportunityScorer:
    """Score cross-sell opportunities for surplus stock."""

    def __init__(self, config: Config = None):
        self.config = config or default_config

    def score(self, opportunity: SalesOpportunity, today: datetime) -> int:
        """
        Opportunity score, rounded to the nearest integer.

            tier      tier_score * 7.5          (untiered = 0)
            stock     min(15, (in_stock - 25) / 20)
            recency   35 / sqrt(days + 1)       (no dated purchase = 0)
            loyalty   min(20, 10 * log10(past_units + 1))
        """
        config = self.config
        tier = opportunity.customer_tier.value if opportunity.customer_tier else None

        tier_component = config.get_tier_score(tier) * config.opportunity_tier_weight
        stock_component = min(
            config.opportunity_stock_cap,
            (opportunity.in_stock_qty - config.surplus_threshold) / config.opportunity_stock_divisor,
        )

        recency_component = 0.0
        last = parse_date(opportunity.customer_last_purchase_date) if opportunity.customer_last_purchase_date else None
        if last is not None:
            days_since = max(0.0, days_between(last, today))
            recency_component = config.opportunity_recency_weight / math.sqrt(days_since + 1)

        units_component = min(
            config.opportunity_units_cap,
            10 * math.log10(opportunity.customer_past_units + 1),
        )

        return round_half_up(tier_component + stock_component + recency_component + units_component)

    def find_opportunities(
        self,
        customers: Iterable[Customer],
        inventory: Iterable[InventoryItem],
        today: datetime,
    ) -> List[CustomerSalesOpportunity]:
        """
        One entry per customer who has bought at least one surplus MTM.

        Customers without any matching surplus MTM are left out entirely.
        """
        surplus = [item for item in inventory if item.on_hand_qty > self.config.surplus_threshold]
        if not surplus:
            return []

        results = []
        for customer in customers:
            units_by_mtm: Dict[str, int] = defaultdict(int)
            last_by_mtm: Dict[str, Optional[datetime]] = {}
            for sale in customer.sales:
                units_by_mtm[sale.mtm] += sale.quantity
                sold_on = parse_date(sale.invoice_date) if sale.invoice_date else None
                previous = last_by_mtm.get(sale.mtm)
                if sold_on is not None and (previous is None or sold_on > previous):
                    last_by_mtm[sale.mtm] = sold_on
                else:
                    last_by_mtm.setdefault(sale.mtm, None)

            opportunities = []
            for item in surplus:
                if item.mtm not in units_by_mtm:
                    continue
                opportunity = SalesOpportunity(
                    id=f"{customer.id}-{item.mtm}",
                    customer_id=customer.id,
                    customer_name=customer.name,
                    customer_tier=customer.tier,
                    mtm=item.mtm,
                    model_name=item.model_name,
                    in_stock_qty=item.on_hand_qty,
                    otw_qty=item.otw_qty,
                    average_landing_cost=item.average_landing_cost,
                    surplus_stock_value=item.on_hand_qty * item.average_landing_cost,
                    customer_past_units=units_by_mtm[item.mtm],
                    customer_last_purchase_date=format_date(last_by_mtm.get(item.mtm)),
                )
                opportunity.opportunity_score = self.score(opportunity, today)
                opportunities.append(opportunity)

            if not opportunities:
                continue

            results.append(CustomerSalesOpportunity(
                customer_id=customer.id,
                customer_name=customer.name,
                customer_tier=customer.tier,
                opportunities=opportunities,
                total_opportunity_value=sum(o.surplus_stock_value for o in opportunities),
                customer_opportunity_score=round_half_up(
                    sum(o.opportunity_score for o in opportunities) / len(opportunities)
                ),
                opportunity_count=len(opportunities),
            ))

        logger.debug("%d customers with surplus opportunities", len(results))
        return results


def flatten_opportunities(customer_opportunities: Iterable[CustomerSalesOpportunity]) -> List[SalesOpportunity]:
    """All opportunities, customer by customer, for the Sales Opportunities sheet."""
    return [o for co in customer_opportunities for o in co.opportunities]
