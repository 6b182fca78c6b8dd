"""
Report Generator Module
Outputs derived results to an Excel workbook with one tab per collection,
plus a plain-text quick summary for the console.
"""

import logging
import warnings
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Dict, List

import pandas as pd

from .config import Config, default_config
from .engine import DerivedResults
from .models import to_row
from .sheet_sync import derived_sheet_rows

warnings.filterwarnings('ignore', category=UserWarning, module='openpyxl')

logger = logging.getLogger(__name__)


def _flat(rows: List[Dict]) -> pd.DataFrame:
    """DataFrame with nested lists/dicts rendered as text."""
    return pd.DataFrame([
        {k: (str(v) if isinstance(v, (list, dict)) else v) for k, v in row.items()}
        for row in rows
    ])


class ReportGenerator:
    """Generate Excel reports from derived results."""

    def __init__(self, config: Config = None):
        self.config = config or default_config
        self.output_path = Path(self.config.output_path)

    def generate_workbook(self, results: DerivedResults, output_file: Path = None) -> Path:
        """
        Write every derived collection to one workbook.

        Tabs: Summary, Reconciled Sales, the five published sheets, Shipments,
        Rebate Programs and Rebate Claims. Empty collections still get a tab
        so the layout is stable between runs.
        """
        output_file = Path(output_file or self.config.get_report_path())
        output_file.parent.mkdir(parents=True, exist_ok=True)

        with pd.ExcelWriter(output_file, engine='openpyxl') as writer:
            self._write_summary_tab(writer, results)

            _flat([self._reconciled_row(r) for r in results.reconciled_sales]).to_excel(
                writer, sheet_name="Reconciled Sales", index=False
            )

            for sheet_name, rows in derived_sheet_rows(results, self.config).items():
                _flat(rows).to_excel(writer, sheet_name=sheet_name[:31], index=False)

            self._write_shipments_tab(writer, results)

            _flat([to_row(p, exclude=("details",)) for p in results.rebate_programs]).to_excel(
                writer, sheet_name="Rebate Programs", index=False
            )
            _flat([to_row(c) for c in results.rebate_claims]).to_excel(
                writer, sheet_name="Rebate Claims", index=False
            )

        logger.info("Report written to %s", output_file)
        return output_file

    @staticmethod
    def _reconciled_row(sale) -> Dict:
        row = to_row(sale)
        row["rebate_details"] = ", ".join(
            f"{d['program_code']} ({d['per_unit_amount']:,.2f})" for d in row["rebate_details"]
        )
        return row

    def _write_summary_tab(self, writer: pd.ExcelWriter, results: DerivedResults):
        """Write Executive Summary tab."""
        rows = []

        rows.append(["UNIT PROFITABILITY & INVENTORY HEALTH REPORT", ""])
        rows.append(["Generated", datetime.now().strftime("%Y-%m-%d %H:%M")])
        rows.append(["As Of", results.today.strftime("%Y-%m-%d")])
        rows.append(["", ""])

        sections = [
            ("PROFITABILITY", asdict(results.profitability_kpis)),
            ("SALES", asdict(results.sales_kpis) if results.sales_kpis else {}),
            ("ORDERS", asdict(results.order_kpis) if results.order_kpis else {}),
            ("REBATES", asdict(results.rebate_kpis)),
        ]
        for title, values in sections:
            rows.append([title, ""])
            if not values:
                rows.append(["No data", ""])
            for key, value in values.items():
                rows.append([key.replace("_", " ").title(), value])
            rows.append(["", ""])

        df = pd.DataFrame(rows, columns=["Item", "Value"])
        df.to_excel(writer, sheet_name="Summary", index=False)

    def _write_shipments_tab(self, writer: pd.ExcelWriter, results: DerivedResults):
        rows = []
        for group in results.shipment_groups:
            rows.append({
                "packing_list": group.packing_list,
                "leg": group.leg,
                "source": group.source,
                "status": group.status.value,
                "packing_list_date": group.packing_list_date,
                "eta": group.eta,
                "arrival_date": group.arrival_date,
                "delay_days": group.delay_days,
                "total_quantity": group.total_quantity,
                "total_cost": group.total_cost,
                "total_fob_value": group.total_fob_value,
                "progress_pct": round(group.progress.percentage, 1),
                "eta_pct": None if group.progress.eta_percentage is None else round(group.progress.eta_percentage, 1),
                "lines": len(group.items),
            })
        pd.DataFrame(rows).to_excel(writer, sheet_name="Shipments", index=False)

    def generate_quick_summary(self, results: DerivedResults) -> str:
        """Generate a quick text summary of the derived results."""
        profit = results.profitability_kpis
        sales = results.sales_kpis

        status_counts: Dict[str, int] = {}
        for sale in results.reconciled_sales:
            status_counts[sale.status.value] = status_counts.get(sale.status.value, 0) + 1

        text = f"""
UNIT PROFITABILITY & INVENTORY HEALTH - QUICK SUMMARY
=====================================================
As of: {results.today.strftime('%Y-%m-%d')}

PROFITABILITY:
- Sales Reconciled: {len(results.reconciled_sales):,}
- Total Profit: ${profit.total_profit:,.2f}
- Average Margin: {profit.average_margin:.1f}%
- Rebates Applied: ${profit.total_rebates_applied:,.2f} on {profit.sales_with_rebates:,} sales
- Sales Missing Cost: {profit.sales_missing_cost:,}
"""
        if sales:
            text += f"- Revenue: ${sales.total_revenue:,.2f} ({sales.total_units:,} units, {sales.unique_buyers_count:,} buyers)\n"

        text += "\nRECONCILIATION STATUS:\n"
        for status, count in sorted(status_counts.items()):
            text += f"  {status:18} {count:6,}\n"

        on_hand = sum(item.on_hand_qty for item in results.inventory)
        otw = sum(item.otw_qty for item in results.inventory)
        text += f"""
INVENTORY:
- Models: {len(results.inventory):,}  On Hand: {on_hand:,}  On The Way: {otw:,}
- New Models: {len(results.new_model_mtms):,}
- Customers: {len(results.customers):,}  Opportunities: {len(results.opportunities):,}
- Promotion Candidates: {len(results.promotions):,}
- Shipment Groups: {len(results.shipment_groups):,}

TOP BACKORDER PRIORITIES:
"""
        for i, rec in enumerate(results.backorders[:10], 1):
            text += f"  {i:2}. {rec.mtm[:15]:15} {rec.model_name[:25]:25} Score: {rec.priority_score:3d}  ({rec.priority.value})\n"
        if not results.backorders:
            text += "  None\n"

        return text
