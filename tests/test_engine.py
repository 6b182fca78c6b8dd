"""
Tests for the snapshot -> derived results pass
"""

from datetime import datetime, timezone

import pytest

from profit_engine.engine import AnalyticsEngine, SourceSnapshot, compute_derived_results
from profit_engine.models import ReconciliationStatus
from profit_engine.sheet_sync import derived_sheet_rows


def test_empty_snapshot(config, today):
    results = compute_derived_results(SourceSnapshot(), today=today, config=config)

    assert results.reconciled_sales == []
    assert results.inventory == []
    assert results.backorders == []
    assert results.customers == []
    assert results.opportunities == []
    assert results.promotions == []
    assert results.shipment_groups == []
    assert results.order_kpis is None
    assert results.sales_kpis is None
    assert results.profitability_kpis.total_profit == 0.0


def test_full_pass(config, today, rebated_sale_sources):
    snapshot = SourceSnapshot.of(**rebated_sale_sources)
    results = compute_derived_results(snapshot, today=today, config=config)

    assert results.today == today
    assert [r.status for r in results.reconciled_sales] == [ReconciliationStatus.MATCHED]
    assert results.inventory[0].mtm == "M1"
    assert results.inventory[0].total_profit == 195.0
    assert results.inventory[0].profit_margin == pytest.approx(39.0)
    assert [c.id for c in results.customers] == ["B1"]
    assert results.profitability_kpis.total_rebates_applied == 15.0
    assert results.shipment_groups[0].packing_list == "PL-1"


def test_recompute_is_deterministic(config, today, rebated_sale_sources):
    snapshot = SourceSnapshot.of(**rebated_sale_sources)
    first = compute_derived_results(snapshot, today=today, config=config)
    second = compute_derived_results(snapshot, today=today, config=config)
    assert derived_sheet_rows(first, config) == derived_sheet_rows(second, config)


def test_engine_caches_by_snapshot_and_day(config, today, rebated_sale_sources, monkeypatch):
    engine = AnalyticsEngine(config=config)
    snapshot = SourceSnapshot.of(**rebated_sale_sources)
    passes = []
    run = engine._run

    def counting_run(snapshot, today):
        passes.append(today)
        return run(snapshot, today)

    monkeypatch.setattr(engine, "_run", counting_run)

    first = engine.compute(snapshot, today=today)
    again = engine.compute(SourceSnapshot.of(**rebated_sale_sources), today=today.replace(hour=15))
    assert len(passes) == 1
    assert again is not first
    assert derived_sheet_rows(again, config) == derived_sheet_rows(first, config)

    engine.compute(snapshot, today=datetime(2024, 7, 1, tzinfo=timezone.utc))
    assert len(passes) == 2

    engine.invalidate()
    engine.compute(snapshot, today=today)
    assert len(passes) == 3


def test_cached_results_are_not_shared(config, today, rebated_sale_sources):
    engine = AnalyticsEngine(config=config)
    snapshot = SourceSnapshot.of(**rebated_sale_sources)

    first = engine.compute(snapshot, today=today)
    first.customers[0].name = "Edited"
    first.reconciled_sales.clear()

    second = engine.compute(snapshot, today=today)
    assert second.customers[0].name != "Edited"
    assert len(second.reconciled_sales) == 1


def test_fingerprint_tracks_content(rebated_sale_sources):
    snapshot = SourceSnapshot.of(**rebated_sale_sources)
    assert snapshot.fingerprint() == SourceSnapshot.of(**rebated_sale_sources).fingerprint()

    rebated_sale_sources["sales"] = []
    assert snapshot.fingerprint() != SourceSnapshot.of(**rebated_sale_sources).fingerprint()
    assert snapshot.counts()["sales"] == 1
