"""
Unit Profitability & Inventory Health Engine
============================================

Reconciles purchase orders, retail sales, serial scans, freight and vendor
rebates into a per-unit cost/profit view, and derives inventory health,
backorder priorities, customer segments, cross-sell opportunities,
promotion candidates and shipment progress from it.

Configuration:
- Edit settings.yaml at the repository root for easy configuration
- Or construct Config directly for programmatic control
"""

from .config import Config, default_config, config_from_yaml, reload_settings
from .customers import CustomerSegmenter
from .data_loader import DataLoader
from .dates import parse_date, today_utc
from .engine import AnalyticsEngine, DerivedResults, SourceSnapshot, compute_derived_results
from .indexes import SourceIndexes, build_indexes
from .inventory import InventoryAnalyzer
from .opportunities import OpportunityScorer
from .promotions import PromotionScorer
from .rebates import RebateMatcher, summarize_programs, validate_claims
from .reconciliation import reconcile_sale, reconcile_sales
from .report_generator import ReportGenerator
from .sheet_sync import ExcelWorkbookSink, InMemorySink, SheetSync, sync_derived_results
from .shipments import build_shipment_groups

__version__ = "1.0.0"
__all__ = [
    "Config",
    "default_config",
    "config_from_yaml",
    "reload_settings",
    "CustomerSegmenter",
    "DataLoader",
    "parse_date",
    "today_utc",
    "AnalyticsEngine",
    "DerivedResults",
    "SourceSnapshot",
    "compute_derived_results",
    "SourceIndexes",
    "build_indexes",
    "InventoryAnalyzer",
    "OpportunityScorer",
    "PromotionScorer",
    "RebateMatcher",
    "summarize_programs",
    "validate_claims",
    "reconcile_sale",
    "reconcile_sales",
    "ReportGenerator",
    "ExcelWorkbookSink",
    "InMemorySink",
    "SheetSync",
    "sync_derived_results",
    "build_shipment_groups",
]
