"""
Configuration for the Unit Profitability & Inventory Health Engine.

CONFIGURATION OPTIONS:
----------------------
1. EASY WAY (Recommended): Edit settings.yaml at the repository root
   - Human-readable YAML format
   - Just edit values and save

2. PROGRAMMATIC WAY: Construct Config directly or use with_overrides()
   - For tests, notebooks and automation

All file locations, trailing windows, thresholds and scoring weights are
configurable via either method.
"""

import logging
from pathlib import Path
from dataclasses import dataclass, field, replace
from typing import Dict, Optional
import yaml

logger = logging.getLogger(__name__)

# =============================================================================
# DEFAULT PATHS
# =============================================================================

PROJECT_PATH = Path(__file__).resolve().parent.parent
DATA_PATH = PROJECT_PATH / "data"
OUTPUT_PATH = PROJECT_PATH / "output"
SETTINGS_FILE = PROJECT_PATH / "settings.yaml"


@dataclass
class Config:
    """Configuration settings for the reconciliation and analytics engine."""

    # =========================================================================
    # FILE PATHS
    # =========================================================================
    data_path: Path = DATA_PATH
    output_path: Path = OUTPUT_PATH

    # Source files (relative to data_path); .csv or .xlsx
    orders_file: str = "orders.csv"
    sales_file: str = "sales.csv"
    serialization_file: str = "serialization.csv"
    shipments_file: str = "shipments.csv"
    accessory_costs_file: str = "accessory_costs.csv"
    rebate_programs_file: str = "rebate_programs.csv"
    rebate_details_file: str = "rebate_details.csv"
    rebate_sales_file: str = "rebate_sales.csv"

    # Output workbook for derived collections
    report_file: str = "derived_results.xlsx"

    # =========================================================================
    # TRAILING WINDOWS (in days, relative to UTC-midnight "today")
    # =========================================================================
    run_rate_lookback_days: int = 90      # Units sold in this window drive weekly run rate
    new_model_days: int = 90              # First order inside this window = new model
    new_customer_days: int = 90           # First purchase inside this window = new customer
    at_risk_days: int = 180               # No purchase for longer than this = at risk
    recent_sales_days: int = 30           # "Last 30" bucket for backorder velocity
    prior_sales_days: int = 60            # "Prev 30" bucket ends here

    # =========================================================================
    # INVENTORY PARAMETERS
    # =========================================================================
    on_hand_basis: str = "serialized"     # "serialized" or "theoretical" (arrived - sold)
    surplus_threshold: int = 25           # On-hand above this = surplus stock

    # =========================================================================
    # CUSTOMER SEGMENTATION
    # =========================================================================
    tier_cutoffs: Dict[str, float] = field(default_factory=lambda: {
        "Platinum": 0.05,   # Top 5% by revenue
        "Gold": 0.20,       # Up to top 20%
        "Silver": 0.50,     # Up to top 50%
        # Remainder is Bronze
    })
    quadrant_min_population: int = 4      # Below this, everyone lands in "At Risk / Watch"

    # =========================================================================
    # BACKORDER SCORING
    # =========================================================================
    backorder_volume_cap: float = 40.0
    backorder_volume_factor: float = 6.0
    backorder_trend_ratio: float = 1.1    # 10% swing needed to call a trend
    backorder_revenue_weight: float = 20.0
    backorder_new_model_bonus: float = 10.0
    backorder_high_score: int = 70
    backorder_medium_score: int = 35

    # =========================================================================
    # OPPORTUNITY SCORING
    # =========================================================================
    opportunity_tier_weight: float = 7.5
    opportunity_stock_cap: float = 15.0
    opportunity_stock_divisor: float = 20.0
    opportunity_recency_weight: float = 35.0
    opportunity_units_cap: float = 20.0

    tier_scores: Dict[str, int] = field(default_factory=lambda: {
        "Platinum": 4,
        "Gold": 3,
        "Silver": 2,
        "Bronze": 1,
    })

    # =========================================================================
    # PROMOTION SCORING
    # =========================================================================
    promotion_urgent_score: int = 70
    promotion_recommended_score: int = 40
    pre_launch_max_on_hand: int = 5
    pre_launch_min_otw_qty: int = 20
    pre_launch_min_otw_value: float = 10000.0

    # =========================================================================
    # DERIVED SHEETS & SYNC
    # =========================================================================
    sheet_names: Dict[str, str] = field(default_factory=lambda: {
        "inventory": "Inventory Summary",
        "customers": "Customer Summary",
        "opportunities": "Sales Opportunities",
        "backorders": "Backorder Analysis",
        "promotions": "Promotion Candidates",
    })
    sync_delay_seconds: float = 5.0       # Fixed debounce delay
    sync_jitter_seconds: float = 2.0      # Random stagger added on top

    # =========================================================================
    # HELPER METHODS
    # =========================================================================

    def get_full_path(self, relative_path: str) -> Path:
        """Get full path for a file relative to data_path."""
        return Path(self.data_path) / relative_path

    def get_report_path(self) -> Path:
        """Full path of the derived-results workbook."""
        return Path(self.output_path) / self.report_file

    def get_tier_score(self, tier: Optional[str]) -> int:
        """Numeric weight for a customer tier; untiered customers score 0."""
        if not tier:
            return 0
        return self.tier_scores.get(tier, 0)

    def with_overrides(self, **overrides) -> "Config":
        """Return a new config with the given fields replaced."""
        return replace(self, **overrides)


# =============================================================================
# SETTINGS LOADER
# =============================================================================

def load_settings_from_yaml(yaml_path: Path = None) -> dict:
    """
    Load settings from YAML file.

    Args:
        yaml_path: Path to settings.yaml (uses default if not provided)

    Returns:
        Dictionary of settings, or empty dict if file not found or unreadable
    """
    yaml_path = Path(yaml_path or SETTINGS_FILE)
    if not yaml_path.exists():
        return {}

    try:
        with open(yaml_path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Could not load settings from %s: %s", yaml_path, e)
        return {}


def config_from_yaml(yaml_path: Path = None) -> Config:
    """
    Create a Config object from settings.yaml.

    Missing sections and keys fall back to the dataclass defaults.

    Args:
        yaml_path: Path to settings.yaml (uses default if not provided)

    Returns:
        Config object with settings applied
    """
    settings = load_settings_from_yaml(yaml_path)

    if not settings:
        return Config()

    defaults = Config()

    # Extract nested settings
    paths = settings.get('paths') or {}
    files = settings.get('files') or {}
    windows = settings.get('windows') or {}
    thresholds = settings.get('thresholds') or {}
    scoring = settings.get('scoring') or {}
    backorder = scoring.get('backorder') or {}
    opportunity = scoring.get('opportunity') or {}
    promotion = scoring.get('promotion') or {}
    sheets = settings.get('sheets') or {}
    sync = settings.get('sync') or {}
    inventory = settings.get('inventory') or {}

    # Relative paths in settings.yaml are resolved against the settings file
    base_dir = Path(yaml_path or SETTINGS_FILE).resolve().parent

    def _resolve(value, fallback: Path) -> Path:
        if not value:
            return fallback
        path = Path(value)
        return path if path.is_absolute() else base_dir / path

    tier_cutoffs = dict(defaults.tier_cutoffs)
    tier_cutoffs.update(thresholds.get('tier_cutoffs') or {})

    tier_scores = dict(defaults.tier_scores)
    tier_scores.update(opportunity.get('tier_scores') or {})

    sheet_names = dict(defaults.sheet_names)
    sheet_names.update(sheets)

    config = Config(
        # Paths
        data_path=_resolve(paths.get('data'), defaults.data_path),
        output_path=_resolve(paths.get('output'), defaults.output_path),

        # Files
        orders_file=files.get('orders', defaults.orders_file),
        sales_file=files.get('sales', defaults.sales_file),
        serialization_file=files.get('serialization', defaults.serialization_file),
        shipments_file=files.get('shipments', defaults.shipments_file),
        accessory_costs_file=files.get('accessory_costs', defaults.accessory_costs_file),
        rebate_programs_file=files.get('rebate_programs', defaults.rebate_programs_file),
        rebate_details_file=files.get('rebate_details', defaults.rebate_details_file),
        rebate_sales_file=files.get('rebate_sales', defaults.rebate_sales_file),
        report_file=files.get('report', defaults.report_file),

        # Windows
        run_rate_lookback_days=windows.get('run_rate_lookback_days', defaults.run_rate_lookback_days),
        new_model_days=windows.get('new_model_days', defaults.new_model_days),
        new_customer_days=windows.get('new_customer_days', defaults.new_customer_days),
        at_risk_days=windows.get('at_risk_days', defaults.at_risk_days),
        recent_sales_days=windows.get('recent_sales_days', defaults.recent_sales_days),
        prior_sales_days=windows.get('prior_sales_days', defaults.prior_sales_days),

        # Inventory
        on_hand_basis=inventory.get('on_hand_basis', defaults.on_hand_basis),
        surplus_threshold=thresholds.get('surplus_threshold', defaults.surplus_threshold),

        # Customers
        tier_cutoffs=tier_cutoffs,
        quadrant_min_population=thresholds.get('quadrant_min_population', defaults.quadrant_min_population),

        # Backorder scoring
        backorder_volume_cap=backorder.get('volume_cap', defaults.backorder_volume_cap),
        backorder_volume_factor=backorder.get('volume_factor', defaults.backorder_volume_factor),
        backorder_trend_ratio=backorder.get('trend_ratio', defaults.backorder_trend_ratio),
        backorder_revenue_weight=backorder.get('revenue_weight', defaults.backorder_revenue_weight),
        backorder_new_model_bonus=backorder.get('new_model_bonus', defaults.backorder_new_model_bonus),
        backorder_high_score=backorder.get('high_score', defaults.backorder_high_score),
        backorder_medium_score=backorder.get('medium_score', defaults.backorder_medium_score),

        # Opportunity scoring
        opportunity_tier_weight=opportunity.get('tier_weight', defaults.opportunity_tier_weight),
        opportunity_stock_cap=opportunity.get('stock_cap', defaults.opportunity_stock_cap),
        opportunity_stock_divisor=opportunity.get('stock_divisor', defaults.opportunity_stock_divisor),
        opportunity_recency_weight=opportunity.get('recency_weight', defaults.opportunity_recency_weight),
        opportunity_units_cap=opportunity.get('units_cap', defaults.opportunity_units_cap),
        tier_scores=tier_scores,

        # Promotion scoring
        promotion_urgent_score=promotion.get('urgent_score', defaults.promotion_urgent_score),
        promotion_recommended_score=promotion.get('recommended_score', defaults.promotion_recommended_score),
        pre_launch_max_on_hand=promotion.get('pre_launch_max_on_hand', defaults.pre_launch_max_on_hand),
        pre_launch_min_otw_qty=promotion.get('pre_launch_min_otw_qty', defaults.pre_launch_min_otw_qty),
        pre_launch_min_otw_value=promotion.get('pre_launch_min_otw_value', defaults.pre_launch_min_otw_value),

        # Sheets & sync
        sheet_names=sheet_names,
        sync_delay_seconds=sync.get('delay_seconds', defaults.sync_delay_seconds),
        sync_jitter_seconds=sync.get('jitter_seconds', defaults.sync_jitter_seconds),
    )

    return config


# Create default configuration instance
# First try to load from settings.yaml, fall back to defaults
try:
    default_config = config_from_yaml()
except Exception:
    logger.exception("Invalid settings file %s, using defaults", SETTINGS_FILE)
    default_config = Config()


def reload_settings(yaml_path: Path = None) -> Config:
    """Reload settings from YAML file."""
    global default_config
    default_config = config_from_yaml(yaml_path)
    return default_config
