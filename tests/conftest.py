"""
Pytest configuration and shared fixtures for all tests
Small, hand-built source collections around one reference date
"""

import os
import sys
from datetime import datetime, timezone

import pytest

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from profit_engine.config import Config
from profit_engine.models import (
    AccessoryCost,
    Order,
    RebateDetail,
    RebateSale,
    Sale,
    SerializedItem,
    Shipment,
)

# ===== SHARED REFERENCE DATE AND CONFIG =====

@pytest.fixture
def today():
    """Fixed UTC-midnight "today" so trailing windows are deterministic."""
    return datetime(2024, 6, 30, tzinfo=timezone.utc)


@pytest.fixture
def config(tmp_path):
    """Default settings with data/output redirected to a temp folder."""
    return Config(data_path=tmp_path / "data", output_path=tmp_path / "output")


# ===== SHARED SOURCE RECORDS =====

@pytest.fixture
def rebated_sale_sources():
    """
    One fully costed, rebated unit:
    - Sale ABC123 on 2024-03-15 at 500
    - Order SO1 / M1 with FOB 300
    - Shipping 20 per unit, accessory 0 per unit
    - Rebate detail of 15 per unit valid 2024-01-01..2024-06-30
    """
    return {
        "sales": [
            Sale(
                invoice_number="INV-1",
                invoice_date="2024-03-15",
                buyer_id="B1",
                buyer_name="Buyer One",
                serial_number="ABC123",
                mtm="M1",
                model_name="ThinkPad X1",
                unit_price=500.0,
                total_revenue=500.0,
            )
        ],
        "serialized_items": [
            SerializedItem(
                serial_number="ABC123",
                full_serialized_string="1S-M1-ABC123",
                sales_order="SO1",
                mtm="M1",
            )
        ],
        "orders": [
            Order(
                sales_order="SO1",
                mtm="M1",
                model_name="ThinkPad X1",
                qty=10,
                fob_unit_price=300.0,
                landing_cost_unit_price=320.0,
                order_value=3000.0,
                date_issue_pi="2024-01-05",
                eta="2024-02-20",
                actual_arrival="2024-02-18",
            )
        ],
        "shipments": [
            Shipment(packing_list="PL-1", sales_order="SO1", mtm="M1", quantity=10, shipping_cost=20.0)
        ],
        "accessory_costs": [AccessoryCost(so="SO1", mtm="M1", backpack_cost=0.0)],
        "rebate_details": [
            RebateDetail(
                program_code="REB-Q1",
                mtm="M1",
                per_unit=15.0,
                start_date="2024-01-01",
                end_date="2024-06-30",
            )
        ],
        "rebate_sales": [],
    }


def make_sale(serial, mtm="M1", invoice_date="2024-06-01", buyer_id="B1", price=100.0, invoice=None, qty=1):
    """Sale with revenue = price * qty."""
    return Sale(
        invoice_number=invoice or f"INV-{serial}",
        invoice_date=invoice_date,
        buyer_id=buyer_id,
        buyer_name=f"Buyer {buyer_id}",
        serial_number=serial,
        mtm=mtm,
        model_name=f"Model {mtm}",
        quantity=qty,
        unit_price=price,
        total_revenue=price * qty,
    )


@pytest.fixture
def sale_factory():
    """Build Sale records with sensible defaults."""
    return make_sale


@pytest.fixture
def rebate_sale_factory():
    def _make(serial, mtm="M1", invoice_date="2024-03-20", qty=1):
        return RebateSale(serial_number=serial, mtm=mtm, rebate_invoice_date=invoice_date, quantity=qty)
    return _make
