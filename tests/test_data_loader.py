"""
Tests for loading source sheets from CSV / Excel exports
"""

import logging

import pandas as pd
import pytest

from profit_engine.data_loader import DataLoader, _header_key


@pytest.fixture
def data_dir(config):
    """
    Data folder with:
    - orders.csv using camelCase headers and a blank FOB price
    - sales.csv using spaced headers and the vendor MTM column name
    - no other source files
    """
    path = config.data_path
    path.mkdir(parents=True)
    (path / "orders.csv").write_text(
        "salesOrder,mtm,modelName,qty,fobUnitPrice,actualArrival,deliveryNumber,isAtRisk\n"
        "SO1,M1,ThinkPad X1,10,300,2024-02-18,D1,TRUE\n"
        "SO2,M1,ThinkPad X1,5,,,,\n",
        encoding="utf-8",
    )
    (path / "sales.csv").write_text(
        "Invoice Number,Invoice Date,Buyer ID,Buyer Name,Serial Number,lenovoProductNumber,Quantity,Unit Price,Total Revenue\n"
        "INV-1,03/15/2024,B1,Buyer One,ABC123,M1,1,500,500\n"
        "INV-2,,B2,Buyer Two,DEF456,M1,,450.5,450.5\n",
        encoding="utf-8",
    )
    return path


def test_header_key():
    assert _header_key("Sales Order") == _header_key("salesOrder") == _header_key("sales_order") == "salesorder"


def test_load_orders(config, data_dir):
    orders = DataLoader(config=config).load_orders()

    assert len(orders) == 2
    first, second = orders
    assert first.sales_order == "SO1"
    assert first.qty == 10
    assert first.fob_unit_price == 300.0
    assert first.actual_arrival == "2024-02-18"
    assert first.delivery_number == "D1"
    assert first.is_at_risk is True
    assert second.fob_unit_price is None
    assert second.actual_arrival is None
    assert second.delivery_number is None
    assert second.is_at_risk is False


def test_load_sales(config, data_dir):
    sales = DataLoader(config=config).load_sales()

    assert [s.mtm for s in sales] == ["M1", "M1"]
    assert sales[0].invoice_date == "03/15/2024"
    assert sales[0].buyer_id == "B1"
    assert sales[1].invoice_date is None
    assert sales[1].quantity == 0
    assert sales[1].unit_price == 450.5


def test_missing_source_is_empty(config, data_dir, caplog):
    with caplog.at_level(logging.WARNING, logger="profit_engine.data_loader"):
        assert DataLoader(config=config).load_shipments() == []
    assert "shipments.csv" in caplog.text


def test_strict_requires_data_dir(config):
    with pytest.raises(FileNotFoundError):
        DataLoader(config=config, strict=True)
    assert DataLoader(config=config).load_sales() == []


def test_cache_and_refresh(config, data_dir):
    loader = DataLoader(config=config)
    sales = loader.load_sales()
    assert loader.load_sales() is sales

    (data_dir / "sales.csv").write_text("Invoice Number,Buyer ID\nINV-9,B9\n", encoding="utf-8")
    assert loader.load_sales() is sales
    assert len(loader.load_sales(use_cache=False)) == 1

    snapshot = loader.refresh()
    assert snapshot.counts()["sales"] == 1
    assert snapshot.counts()["orders"] == 2
    assert snapshot.counts()["rebate_sales"] == 0


def test_excel_source(config, data_dir):
    pd.DataFrame({
        "Serial Number": ["XYZ1"],
        "MTM": ["M1"],
        "Rebate Invoice Date": [pd.Timestamp("2024-03-20")],
        "Invoice Number": [12345],
    }).to_excel(data_dir / "rebate_sales.xlsx", index=False)

    loader = DataLoader(config=config.with_overrides(rebate_sales_file="rebate_sales.xlsx"))
    claim = loader.load_rebate_sales()[0]

    assert claim.serial_number == "XYZ1"
    assert claim.rebate_invoice_date == "2024-03-20"
    assert claim.invoice_number == "12345"
    assert claim.quantity == 0


def test_non_finite_numbers_fall_back_to_defaults(config, data_dir):
    (data_dir / "sales.csv").write_text(
        "Invoice Number,Buyer ID,Serial Number,MTM,Quantity,Unit Price\n"
        "INV-1,B1,S1,M1,inf,-inf\n",
        encoding="utf-8",
    )
    (data_dir / "orders.csv").write_text("salesOrder,mtm,qty,fobUnitPrice\nSO1,M1,-inf,inf\n", encoding="utf-8")
    loader = DataLoader(config=config)

    sale = loader.load_sales()[0]
    assert sale.quantity == 0
    assert sale.unit_price == 0.0

    order = loader.load_orders()[0]
    assert order.qty == 0
    assert order.fob_unit_price is None
