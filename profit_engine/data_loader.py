"""
Data Loader Module
Loads the source sheets (CSV or Excel exports) into immutable domain records.

Each source is a table whose headers are matched loosely: case, spaces,
underscores and hyphens are ignored, so ``salesOrder``, ``Sales Order`` and
``sales_order`` all land in the same field. A few sources use their own
names for shared concepts (e.g. ``lenovoProductNumber`` for the sale MTM);
those are listed in the per-source schemas below.

A missing file is not an error: the source is treated as empty and the
engine degrades (more "No Order Match" / "Cost Missing" rows) instead of
failing.
"""

import logging
import re
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from .config import Config, default_config
from .engine import SourceSnapshot
from .models import (
    AccessoryCost,
    Order,
    RebateDetail,
    RebateProgram,
    RebateSale,
    Sale,
    SerializedItem,
    Shipment,
)

logger = logging.getLogger(__name__)

# Field kinds
STR = "str"              # Text, blank -> ""
OPT_STR = "opt_str"      # Text, blank -> None
DATE = "date"            # Date text kept as supplied; Excel dates -> YYYY-MM-DD
INT = "int"              # Numeric, blank -> 0
FLOAT = "float"          # Numeric, blank -> 0.0
OPT_FLOAT = "opt_float"  # Numeric, blank -> None
BOOL = "bool"

# field -> (kind, extra header aliases)
Schema = Dict[str, Tuple[str, Tuple[str, ...]]]

ORDER_SCHEMA: Schema = {
    "sales_order": (STR, ("so",)),
    "mtm": (STR, ()),
    "model_name": (STR, ("model",)),
    "product_line": (STR, ()),
    "qty": (INT, ("quantity",)),
    "fob_unit_price": (OPT_FLOAT, ("fob",)),
    "landing_cost_unit_price": (FLOAT, ("landingcost",)),
    "order_value": (FLOAT, ()),
    "date_issue_pi": (DATE, ("dateissuepi",)),
    "eta": (DATE, ()),
    "actual_arrival": (DATE, ()),
    "factory_to_sgp": (STR, ()),
    "status": (STR, ()),
    "delivery_number": (OPT_STR, ()),
    "is_delayed_production": (BOOL, ()),
    "is_delayed_transit": (BOOL, ()),
    "is_at_risk": (BOOL, ()),
}

SALE_SCHEMA: Schema = {
    "invoice_number": (STR, ("invoiceno",)),
    "invoice_date": (DATE, ()),
    "buyer_id": (STR, ()),
    "buyer_name": (STR, ()),
    "serial_number": (STR, ("serial",)),
    "mtm": (STR, ("lenovoproductnumber",)),
    "model_name": (STR, ()),
    "quantity": (INT, ("qty",)),
    "unit_price": (FLOAT, ()),
    "total_revenue": (FLOAT, ()),
    "segment": (STR, ()),
}

SERIALIZED_SCHEMA: Schema = {
    "serial_number": (STR, ()),
    "full_serialized_string": (STR, ()),
    "sales_order": (STR, ("so",)),
    "mtm": (STR, ()),
    "timestamp": (OPT_STR, ()),
}

SHIPMENT_SCHEMA: Schema = {
    "packing_list": (STR, ()),
    "sales_order": (STR, ("so",)),
    "mtm": (STR, ()),
    "quantity": (INT, ("qty",)),
    "shipping_cost": (FLOAT, ()),
    "packing_list_date": (DATE, ()),
    "eta": (DATE, ()),
    "arrival_date": (DATE, ()),
    "total_kgs_on_date": (FLOAT, ()),
}

ACCESSORY_SCHEMA: Schema = {
    "so": (STR, ("salesorder",)),
    "mtm": (STR, ()),
    "backpack_cost": (FLOAT, ("accessorycost",)),
}

REBATE_PROGRAM_SCHEMA: Schema = {
    "program": (STR, ("programcode",)),
    "lenovo_quarter": (STR, ()),
    "start_date": (DATE, ()),
    "end_date": (DATE, ()),
    "per_unit": (OPT_FLOAT, ()),
    "status": (STR, ()),
    "update": (STR, ()),
    "rebate_earned": (OPT_FLOAT, ()),
    "credit_no": (OPT_STR, ()),
}

REBATE_DETAIL_SCHEMA: Schema = {
    "program_code": (STR, ("program",)),
    "mtm": (STR, ()),
    "per_unit": (OPT_FLOAT, ()),
    "start_date": (DATE, ()),
    "end_date": (DATE, ()),
    "program_max": (OPT_FLOAT, ()),
    "program_reported_lph": (OPT_FLOAT, ()),
}

REBATE_SALE_SCHEMA: Schema = {
    "serial_number": (STR, ()),
    "mtm": (STR, ()),
    "rebate_invoice_date": (DATE, ()),
    "buyer_id": (STR, ()),
    "quantity": (INT, ("qty",)),
    "unit_bp_reported_price": (FLOAT, ()),
    "invoice_number": (STR, ()),
}

TRUE_VALUES = {"true", "yes", "y", "1", "x"}
BLANK_VALUES = {"", "nan", "none", "nat", "null"}


def _header_key(name: Any) -> str:
    """Compare headers ignoring case and separators."""
    return re.sub(r"[^a-z0-9]", "", str(name).lower())


def _cell_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, float) and np.isnan(value):
        return None
    if isinstance(value, (pd.Timestamp, datetime, date)):
        if pd.isna(value):
            return None
        return value.strftime("%Y-%m-%d")
    if isinstance(value, float) and value.is_integer():
        # Excel hands back numeric identifiers as floats (12345.0)
        value = int(value)
    text = str(value).strip()
    return None if text.lower() in BLANK_VALUES else text


class DataLoader:
    """Load and normalize every source collection for the analytics engine."""

    def __init__(self, config: Config = None, strict: bool = False):
        self.config = config or default_config
        self.strict = strict
        self._cache: Dict[str, list] = {}

        if strict and not Path(self.config.data_path).is_dir():
            raise FileNotFoundError(f"Data directory not found: {self.config.data_path}")

    def _get_path(self, relative_path: str) -> Path:
        """Get full path for a data file."""
        return self.config.get_full_path(relative_path)

    # =========================================================================
    # FILE READING
    # =========================================================================

    def _read_frame(self, relative_path: str) -> Optional[pd.DataFrame]:
        """Read a CSV or Excel file as text cells; None when the file is absent."""
        file_path = self._get_path(relative_path)
        if not file_path.exists():
            logger.warning("Source file not found, treating as empty: %s", file_path)
            return None

        if file_path.suffix.lower() in (".xlsx", ".xlsm", ".xls"):
            df = pd.read_excel(file_path, dtype=object)
        else:
            df = pd.read_csv(file_path, dtype=str, keep_default_na=False)

        df.columns = df.columns.astype(str).str.strip()
        return df

    def _normalize(self, df: pd.DataFrame, schema: Schema) -> pd.DataFrame:
        """Map headers onto schema fields and coerce each column to its kind."""
        headers = {_header_key(col): col for col in df.columns}
        out = pd.DataFrame(index=df.index)

        for field_name, (kind, aliases) in schema.items():
            source = None
            for candidate in (field_name,) + aliases:
                source = headers.get(_header_key(candidate))
                if source is not None:
                    break

            column = df[source] if source is not None else pd.Series([None] * len(df), index=df.index, dtype=object)

            if kind in (INT, FLOAT, OPT_FLOAT):
                numbers = pd.to_numeric(column.map(_cell_text), errors="coerce").astype(float)
                numbers = numbers.where(np.isfinite(numbers))
                if kind == INT:
                    out[field_name] = numbers.fillna(0).astype(int)
                elif kind == FLOAT:
                    out[field_name] = numbers.fillna(0.0).astype(float)
                else:
                    out[field_name] = numbers.astype(object).where(numbers.notna(), None)
            elif kind == BOOL:
                out[field_name] = column.map(lambda v: (_cell_text(v) or "").lower() in TRUE_VALUES)
            else:
                text = column.map(_cell_text)
                if kind == STR:
                    text = text.fillna("")
                out[field_name] = text.astype(object).where(text.notna(), None)

        return out

    def _load(self, cache_key: str, relative_path: str, schema: Schema, model, use_cache: bool) -> list:
        if use_cache and cache_key in self._cache:
            return self._cache[cache_key]

        df = self._read_frame(relative_path)
        records = []
        if df is not None and not df.empty:
            df = self._normalize(df, schema)
            records = [model(**row) for row in df.to_dict("records")]
            logger.debug("Loaded %d %s rows from %s", len(records), cache_key, relative_path)

        self._cache[cache_key] = records
        return records

    # =========================================================================
    # SOURCE COLLECTIONS
    # =========================================================================

    def load_orders(self, use_cache: bool = True) -> List[Order]:
        return self._load("orders", self.config.orders_file, ORDER_SCHEMA, Order, use_cache)

    def load_sales(self, use_cache: bool = True) -> List[Sale]:
        return self._load("sales", self.config.sales_file, SALE_SCHEMA, Sale, use_cache)

    def load_serialized_items(self, use_cache: bool = True) -> List[SerializedItem]:
        return self._load(
            "serialized_items", self.config.serialization_file, SERIALIZED_SCHEMA, SerializedItem, use_cache
        )

    def load_shipments(self, use_cache: bool = True) -> List[Shipment]:
        return self._load("shipments", self.config.shipments_file, SHIPMENT_SCHEMA, Shipment, use_cache)

    def load_accessory_costs(self, use_cache: bool = True) -> List[AccessoryCost]:
        return self._load(
            "accessory_costs", self.config.accessory_costs_file, ACCESSORY_SCHEMA, AccessoryCost, use_cache
        )

    def load_rebate_programs(self, use_cache: bool = True) -> List[RebateProgram]:
        return self._load(
            "rebate_programs", self.config.rebate_programs_file, REBATE_PROGRAM_SCHEMA, RebateProgram, use_cache
        )

    def load_rebate_details(self, use_cache: bool = True) -> List[RebateDetail]:
        return self._load(
            "rebate_details", self.config.rebate_details_file, REBATE_DETAIL_SCHEMA, RebateDetail, use_cache
        )

    def load_rebate_sales(self, use_cache: bool = True) -> List[RebateSale]:
        return self._load(
            "rebate_sales", self.config.rebate_sales_file, REBATE_SALE_SCHEMA, RebateSale, use_cache
        )

    # =========================================================================
    # SNAPSHOTS
    # =========================================================================

    def fetch_all(self, use_cache: bool = True) -> SourceSnapshot:
        """Every source collection, frozen into one snapshot."""
        return SourceSnapshot.of(
            orders=self.load_orders(use_cache),
            sales=self.load_sales(use_cache),
            serialized_items=self.load_serialized_items(use_cache),
            shipments=self.load_shipments(use_cache),
            accessory_costs=self.load_accessory_costs(use_cache),
            rebate_programs=self.load_rebate_programs(use_cache),
            rebate_details=self.load_rebate_details(use_cache),
            rebate_sales=self.load_rebate_sales(use_cache),
        )

    def clear_cache(self):
        """Clear all cached data."""
        self._cache.clear()

    def refresh(self) -> SourceSnapshot:
        """Clear cache and reload all data."""
        self.clear_cache()
        return self.fetch_all()
