"""
Tests for surplus cross-sell opportunity scoring
"""

import pytest

from profit_engine.models import Customer, CustomerTier, InventoryItem
from profit_engine.opportunities import OpportunityScorer, flatten_opportunities


@pytest.fixture
def surplus_inventory():
    """M1 and M2 above the surplus threshold of 25, M3 exactly at it."""
    return [
        InventoryItem(mtm="M1", model_name="Model M1", on_hand_qty=45, average_landing_cost=200.0, otw_qty=3),
        InventoryItem(mtm="M2", model_name="Model M2", on_hand_qty=26, average_landing_cost=100.0),
        InventoryItem(mtm="M3", model_name="Model M3", on_hand_qty=25, average_landing_cost=100.0),
    ]


def test_customer_opportunities(config, today, sale_factory, surplus_inventory):
    gold = Customer(
        id="B1",
        name="Buyer B1",
        tier=CustomerTier.GOLD,
        sales=[
            sale_factory("1", mtm="M1", invoice_date="2024-06-10"),
            sale_factory("2", mtm="M1", invoice_date="2024-06-26"),
            sale_factory("3", mtm="M2", invoice_date=None),
            sale_factory("4", mtm="M3", invoice_date="2024-06-26"),
        ],
    )
    other = Customer(id="B2", name="Buyer B2", sales=[sale_factory("5", mtm="M9", buyer_id="B2")])

    results = OpportunityScorer(config).find_opportunities([gold, other], surplus_inventory, today)
    assert len(results) == 1

    entry = results[0]
    by_mtm = {o.mtm: o for o in entry.opportunities}
    assert set(by_mtm) == {"M1", "M2"}

    m1 = by_mtm["M1"]
    assert m1.id == "B1-M1"
    assert m1.customer_past_units == 2
    assert m1.customer_last_purchase_date == "2024-06-26"
    assert m1.surplus_stock_value == 9000.0
    # 22.5 tier + 1 stock + 35/sqrt(5) recency + 10*log10(3) loyalty = 43.9
    assert m1.opportunity_score == 44

    m2 = by_mtm["M2"]
    assert m2.customer_last_purchase_date is None
    # 22.5 + 0.05 + 0 + 10*log10(2) = 25.6
    assert m2.opportunity_score == 26

    assert entry.customer_opportunity_score == 35
    assert entry.total_opportunity_value == 11600.0
    assert entry.opportunity_count == 2
    assert [o.id for o in flatten_opportunities(results)] == [o.id for o in entry.opportunities]


def test_untiered_customer_scores_without_tier_weight(config, today, sale_factory, surplus_inventory):
    customer = Customer(id="B3", name="Buyer B3", sales=[sale_factory("1", mtm="M2", invoice_date=None)])
    opportunity = OpportunityScorer(config).find_opportunities([customer], surplus_inventory, today)[0].opportunities[0]
    # 0.05 stock + 3.01 loyalty
    assert opportunity.opportunity_score == 3


def test_no_surplus_means_no_opportunities(config, today, sale_factory):
    customer = Customer(id="B1", name="Buyer", sales=[sale_factory("1")])
    inventory = [InventoryItem(mtm="M1", model_name="", on_hand_qty=5)]
    assert OpportunityScorer(config).find_opportunities([customer], inventory, today) == []
