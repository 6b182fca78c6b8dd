"""
Analytics Engine
================

Runs every derivation over one immutable ``SourceSnapshot`` and returns a
``DerivedResults`` bundle. "Today" is sampled once per pass.

Pass order:
    indexes -> reconciliation -> inventory -> backorders -> customers
            -> opportunities -> promotions -> shipments -> rebates -> KPIs

Results are cached by a SHA-256 fingerprint of the snapshot plus the pass
date, so repeated calls on an unchanged snapshot return the same object.
"""

import copy
import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple

from .config import Config, default_config
from .customers import CustomerSegmenter
from .dates import today_utc
from .indexes import build_indexes
from .inventory import InventoryAnalyzer
from .kpi import (
    OrderKPIs,
    ProfitabilityKPIs,
    RebateKPIs,
    SalesKPIs,
    order_kpis,
    profitability_kpis,
    rebate_kpis,
    sales_kpis,
)
from .models import (
    AccessoryCost,
    AugmentedShipmentGroup,
    BackorderRecommendation,
    Customer,
    CustomerSalesOpportunity,
    InventoryItem,
    Order,
    PromotionCandidate,
    RebateDetail,
    RebateProgram,
    RebateSale,
    ReconciledSale,
    Sale,
    SalesOpportunity,
    SerializedItem,
    Shipment,
)
from .opportunities import OpportunityScorer, flatten_opportunities
from .promotions import PromotionScorer
from .rebates import RebateClaimCheck, RebateMatcher, RebateProgramSummary, summarize_programs, validate_claims
from .reconciliation import reconcile_sales
from .shipments import build_shipment_groups

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceSnapshot:
    """Every source collection as of one refresh. Any of them may be empty."""
    orders: Tuple[Order, ...] = ()
    sales: Tuple[Sale, ...] = ()
    serialized_items: Tuple[SerializedItem, ...] = ()
    shipments: Tuple[Shipment, ...] = ()
    accessory_costs: Tuple[AccessoryCost, ...] = ()
    rebate_programs: Tuple[RebateProgram, ...] = ()
    rebate_details: Tuple[RebateDetail, ...] = ()
    rebate_sales: Tuple[RebateSale, ...] = ()

    @classmethod
    def of(cls, **collections) -> "SourceSnapshot":
        """Build a snapshot from any iterables, freezing them into tuples."""
        return cls(**{name: tuple(values or ()) for name, values in collections.items()})

    def fingerprint(self) -> str:
        """Content hash; equal snapshots always hash equal."""
        return hashlib.sha256(repr(self).encode("utf-8")).hexdigest()

    def counts(self) -> Dict[str, int]:
        return {name: len(getattr(self, name)) for name in self.__dataclass_fields__}


@dataclass
class DerivedResults:
    """Everything computed from one snapshot on one day."""
    today: datetime
    reconciled_sales: List[ReconciledSale] = field(default_factory=list)
    inventory: List[InventoryItem] = field(default_factory=list)
    new_model_mtms: Set[str] = field(default_factory=set)
    backorders: List[BackorderRecommendation] = field(default_factory=list)
    customers: List[Customer] = field(default_factory=list)
    customer_opportunities: List[CustomerSalesOpportunity] = field(default_factory=list)
    promotions: List[PromotionCandidate] = field(default_factory=list)
    shipment_groups: List[AugmentedShipmentGroup] = field(default_factory=list)
    rebate_programs: List[RebateProgramSummary] = field(default_factory=list)
    rebate_claims: List[RebateClaimCheck] = field(default_factory=list)
    order_kpis: Optional[OrderKPIs] = None
    sales_kpis: Optional[SalesKPIs] = None
    rebate_kpis: RebateKPIs = field(default_factory=RebateKPIs)
    profitability_kpis: ProfitabilityKPIs = field(default_factory=ProfitabilityKPIs)

    @property
    def opportunities(self) -> List[SalesOpportunity]:
        return flatten_opportunities(self.customer_opportunities)


class AnalyticsEngine:
    """Pure recomputation of all derived collections from a snapshot."""

    def __init__(self, config: Config = None):
        self.config = config or default_config
        self.inventory_analyzer = InventoryAnalyzer(config=self.config)
        self.segmenter = CustomerSegmenter(config=self.config)
        self.opportunity_scorer = OpportunityScorer(config=self.config)
        self.promotion_scorer = PromotionScorer(config=self.config)
        self._cache_key: Optional[Tuple[str, datetime]] = None
        self._cache_value: Optional[DerivedResults] = None

    def invalidate(self):
        """Drop the cached result so the next compute() runs a full pass."""
        self._cache_key = None
        self._cache_value = None

    def compute(self, snapshot: SourceSnapshot, today: datetime = None) -> DerivedResults:
        """
        Derive all analytics for ``snapshot``.

        Args:
            snapshot: Source collections for this pass
            today: Reference date (any time of day); defaults to now, UTC

        Returns:
            A private copy of the DerivedResults. The cached pass is reused
            when snapshot and day are unchanged.
        """
        today = today_utc(today)
        key = (snapshot.fingerprint(), today)
        if key == self._cache_key and self._cache_value is not None:
            logger.debug("Snapshot unchanged, reusing derived results")
            return copy.deepcopy(self._cache_value)

        results = self._run(snapshot, today)
        self._cache_key = key
        self._cache_value = results
        return copy.deepcopy(results)

    def _run(self, snapshot: SourceSnapshot, today: datetime) -> DerivedResults:
        logger.info("Computing derived results for %s: %s", today.date().isoformat(), snapshot.counts())
        results = DerivedResults(today=today)

        # Reconciliation
        indexes = build_indexes(
            orders=snapshot.orders,
            serialized_items=snapshot.serialized_items,
            shipments=snapshot.shipments,
            accessory_costs=snapshot.accessory_costs,
            rebate_sales=snapshot.rebate_sales,
        )
        matcher = RebateMatcher(snapshot.rebate_details)
        results.reconciled_sales = reconcile_sales(snapshot.sales, indexes, matcher)

        # Inventory and backorders
        analyzer = self.inventory_analyzer
        status = analyzer.calculate_inventory_status(snapshot.orders, snapshot.sales, snapshot.serialized_items)
        first_orders = analyzer.get_first_order_dates(snapshot.orders)
        results.new_model_mtms = analyzer.get_new_model_mtms(first_orders, today)
        metrics = analyzer.get_sales_metrics(snapshot.sales, today)
        results.backorders = analyzer.analyze_backorder_candidates(
            status, metrics, first_orders, results.new_model_mtms
        )
        results.inventory = analyzer.build_inventory_items(
            status,
            snapshot.orders,
            snapshot.sales,
            results.reconciled_sales,
            results.new_model_mtms,
            today,
        )

        # Customers and opportunities
        results.customers = self.segmenter.segment(snapshot.sales, today)
        results.customer_opportunities = self.opportunity_scorer.find_opportunities(
            results.customers, results.inventory, today
        )

        results.promotions = self.promotion_scorer.analyze(results.inventory)
        results.shipment_groups = build_shipment_groups(snapshot.shipments, snapshot.orders, today)

        # Rebates
        results.rebate_programs = summarize_programs(
            snapshot.rebate_programs, snapshot.rebate_details, snapshot.rebate_sales
        )
        results.rebate_claims = validate_claims(snapshot.sales, snapshot.rebate_sales)

        # KPIs
        results.order_kpis = order_kpis(snapshot.orders)
        results.sales_kpis = sales_kpis(snapshot.sales, results.reconciled_sales)
        results.rebate_kpis = rebate_kpis(snapshot.rebate_programs)
        results.profitability_kpis = profitability_kpis(results.reconciled_sales)

        logger.info(
            "Derived %d inventory items, %d backorders, %d customers, %d opportunities, %d promotions, %d shipment groups",
            len(results.inventory),
            len(results.backorders),
            len(results.customers),
            len(results.opportunities),
            len(results.promotions),
            len(results.shipment_groups),
        )
        return results


def compute_derived_results(
    snapshot: SourceSnapshot,
    today: datetime = None,
    config: Config = None,
) -> DerivedResults:
    """One-shot convenience wrapper with no caching."""
    return AnalyticsEngine(config=config)._run(snapshot, today_utc(today))
