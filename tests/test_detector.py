"""
test_detector.py — Unit tests for the spend insight detection engine.

Tests cover:
    - Duplicate vendor detection and priority thresholds
    - Off-contract spend against the Pareto preferred set
    - Price anomalies with Tukey fences and minimum sample size
    - Volume opportunities at the discount threshold
    - Tail spend transaction-count exclusion
    - Input immutability and determinism
"""

import copy
import sys
from pathlib import Path

import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from spend_insights.detector import (
    DETECTORS,
    detect_duplicate_vendors,
    detect_off_contract_spend,
    detect_price_anomalies,
    detect_tail_spend,
    detect_volume_opportunities,
    group_by_vendor,
    preferred_vendors,
    quartile_stats,
    to_frame,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

def _make_record(**overrides) -> dict:
    """Return a minimal procurement record with sensible defaults."""
    base = {
        "vendor": "Test Vendor",
        "category": "Office Supplies",
        "amount": 100.0,
        "date": "2024-12-01",
        "po_number": "PO-2024-0001",
    }
    base.update(overrides)
    return base


# ---------------------------------------------------------------------------
# Working frame helpers
# ---------------------------------------------------------------------------

class TestToFrame:

    def test_unparseable_amount_becomes_zero(self):
        df = to_frame([_make_record(amount="n/a"), _make_record(amount="250.5")])
        assert df["amount"].tolist() == [0.0, 250.5]

    def test_missing_columns_are_added(self):
        df = to_frame([{"vendor": "Acme", "amount": 10}])
        assert list(df.columns) == ["vendor", "category", "amount", "date", "po_number"]
        assert df.loc[0, "category"] == ""

    def test_empty_input(self):
        df = to_frame([])
        assert df.empty
        assert group_by_vendor(df) == []

    def test_group_by_vendor_keeps_first_seen_order(self):
        df = to_frame([
            _make_record(vendor="B", amount=10),
            _make_record(vendor="A", amount=5),
            _make_record(vendor="B", amount=20),
        ])
        assert group_by_vendor(df) == [
            {"vendor": "B", "spend": 30.0, "count": 2},
            {"vendor": "A", "spend": 5.0, "count": 1},
        ]


# ---------------------------------------------------------------------------
# Rule 1: Duplicate Vendors
# ---------------------------------------------------------------------------

class TestDetectDuplicateVendors:

    def test_acme_variants_grouped(self):
        records = [
            _make_record(vendor="Acme Corp", amount=100),
            _make_record(vendor="ACME Corporation", amount=200),
            _make_record(vendor="Acme Corp.", amount=300),
        ]
        insights = detect_duplicate_vendors(records)
        assert len(insights) == 1
        insight = insights[0]
        assert insight["type"] == "duplicate_vendors"
        assert insight["vendor_names"] == ["Acme Corp", "ACME Corporation", "Acme Corp."]
        assert insight["total_spend"] == pytest.approx(600.0)
        assert insight["savings"] == pytest.approx(48.0)
        assert insight["records"] == 3
        assert insight["priority"] == "MEDIUM"
        assert insight["title"] == "Duplicate Vendor: Acme Corp"
        assert "risk_amount" not in insight

    def test_confidence_within_bounds(self):
        records = [_make_record(vendor="Acme Corp"), _make_record(vendor="ACME CORP.")]
        confidence = detect_duplicate_vendors(records)[0]["confidence"]
        assert 0.5 <= confidence <= 0.95

    def test_same_raw_name_is_not_a_duplicate(self):
        records = [_make_record(vendor="Acme Corp"), _make_record(vendor="Acme Corp")]
        assert detect_duplicate_vendors(records) == []

    def test_high_priority_above_threshold(self):
        records = [
            _make_record(vendor="Acme Corp", amount=100000),
            _make_record(vendor="Acme Inc", amount=100000),
        ]
        insight = detect_duplicate_vendors(records)[0]
        assert insight["savings"] == pytest.approx(16000.0)
        assert insight["priority"] == "HIGH"

    def test_evidence_formats_money(self):
        records = [
            _make_record(vendor="Acme Corp", amount=1000),
            _make_record(vendor="Acme Inc", amount=500),
        ]
        evidence = detect_duplicate_vendors(records)[0]["evidence"]
        assert "Total spend: $1,500.00" in evidence


# ---------------------------------------------------------------------------
# Rule 2: Off-Contract Spend
# ---------------------------------------------------------------------------

class TestDetectOffContractSpend:

    def _records(self):
        return [
            _make_record(vendor="A", amount=800),
            _make_record(vendor="B", amount=150),
            _make_record(vendor="C", amount=50),
        ]

    def test_preferred_set_stops_once_share_reached(self):
        aggregates = group_by_vendor(to_frame(self._records()))
        assert preferred_vendors(aggregates, 0.80) == ["A"]

    def test_off_contract_amount_and_risk(self):
        insights = detect_off_contract_spend(self._records())
        assert len(insights) == 1
        insight = insights[0]
        assert insight["off_contract_spend"] == pytest.approx(200.0)
        assert insight["risk_amount"] == pytest.approx(24.0)
        assert insight["transaction_count"] == 2
        assert insight["affected_vendors"] == ["B", "C"]
        assert insight["priority"] == "MEDIUM"
        assert "savings" not in insight

    def test_single_vendor_has_no_off_contract_spend(self):
        assert detect_off_contract_spend([_make_record(vendor="A", amount=500)]) == []

    def test_zero_total_spend_flags_everything_with_zero_risk(self):
        records = [_make_record(vendor="A", amount=0), _make_record(vendor="B", amount=0)]
        insight = detect_off_contract_spend(records)[0]
        assert insight["transaction_count"] == 2
        assert insight["risk_amount"] == 0

    def test_empty_input(self):
        assert detect_off_contract_spend([]) == []


# ---------------------------------------------------------------------------
# Rule 3: Price Anomalies
# ---------------------------------------------------------------------------

class TestDetectPriceAnomalies:

    def test_quartiles_are_index_based(self):
        stats = quartile_stats([100, 100, 100, 100, 10000])
        assert stats == {"median": 100.0, "q1": 100.0, "q3": 100.0, "iqr": 0.0}

    def test_single_high_outlier(self):
        records = [_make_record(amount=a) for a in (100, 100, 100, 100, 10000)]
        insights = detect_price_anomalies(records)
        assert len(insights) == 1
        insight = insights[0]
        assert insight["category"] == "Office Supplies"
        assert insight["outlier_count"] == 1
        assert insight["median_price"] == pytest.approx(100.0)
        assert insight["excess_spend"] == pytest.approx(9900.0)
        assert insight["savings"] == pytest.approx(9900.0)
        assert insight["priority"] == "HIGH"

    def test_category_below_minimum_sample_skipped(self):
        records = [_make_record(amount=100), _make_record(amount=100000)]
        assert detect_price_anomalies(records) == []

    def test_uniform_prices_not_flagged(self):
        records = [_make_record(amount=250) for _ in range(6)]
        assert detect_price_anomalies(records) == []

    def test_low_outliers_only_produce_no_insight(self):
        records = [_make_record(amount=a) for a in (1000, 1000, 1000, 1000, 10)]
        assert detect_price_anomalies(records) == []

    def test_categories_evaluated_independently(self):
        records = (
            [_make_record(category="Marketing", amount=a) for a in (500, 500, 500, 500, 3000)]
            + [_make_record(category="Shipping", amount=a) for a in (200, 210, 190)]
        )
        insights = detect_price_anomalies(records)
        assert [i["category"] for i in insights] == ["Marketing"]
        assert insights[0]["priority"] == "MEDIUM"


# ---------------------------------------------------------------------------
# Rule 4: Volume Opportunities
# ---------------------------------------------------------------------------

class TestDetectVolumeOpportunities:

    def test_vendor_above_threshold(self):
        records = [_make_record(vendor="Big Co", amount=30000), _make_record(vendor="Big Co", amount=30000)]
        insights = detect_volume_opportunities(records)
        assert len(insights) == 1
        assert insights[0]["annual_spend"] == pytest.approx(60000.0)
        assert insights[0]["transaction_count"] == 2
        assert insights[0]["savings"] == pytest.approx(3000.0)
        assert insights[0]["priority"] == "MEDIUM"

    def test_exactly_at_threshold_not_flagged(self):
        assert detect_volume_opportunities([_make_record(amount=50000)]) == []

    def test_high_priority(self):
        insight = detect_volume_opportunities([_make_record(amount=200000)])[0]
        assert insight["savings"] == pytest.approx(10000.0)
        assert insight["priority"] == "HIGH"


# ---------------------------------------------------------------------------
# Rule 5: Tail Spend
# ---------------------------------------------------------------------------

class TestDetectTailSpend:

    def test_only_vendors_with_more_than_two_transactions(self):
        records = (
            [_make_record(vendor="Main Supplier", amount=10000)]
            + [_make_record(vendor="Corner Shop", amount=50) for _ in range(3)]
            + [_make_record(vendor="Kiosk", amount=50) for _ in range(2)]
        )
        insights = detect_tail_spend(records)
        assert len(insights) == 1
        insight = insights[0]
        assert insight["tail_vendors"] == ["Corner Shop"]
        assert insight["tail_vendor_count"] == 1
        assert insight["tail_spend"] == pytest.approx(150.0)
        assert insight["savings"] == pytest.approx(18.0)
        assert insight["priority"] == "LOW"

    def test_no_tail_vendors(self):
        records = [_make_record(vendor="A", amount=100), _make_record(vendor="B", amount=100)]
        assert detect_tail_spend(records) == []


# ---------------------------------------------------------------------------
# Cross-cutting properties
# ---------------------------------------------------------------------------

class TestDetectorProperties:

    RECORDS = [
        {"vendor": "Acme Corp", "category": "Office Supplies", "amount": 15420, "date": "2024-12-15", "po_number": "PO-1"},
        {"vendor": "ACME Corporation", "category": "Office Supplies", "amount": 18900, "date": "2024-11-28", "po_number": "PO-2"},
        {"vendor": "Global Tech Solutions", "category": "IT Equipment", "amount": 125000, "date": "2024-11-15", "po_number": "PO-3"},
        {"vendor": "TechMart Express", "category": "IT Equipment", "amount": 45000, "date": "2024-12-05", "po_number": "PO-4"},
    ]

    @pytest.mark.parametrize("name", sorted(DETECTORS))
    def test_input_not_mutated(self, name):
        records = copy.deepcopy(self.RECORDS)
        DETECTORS[name](records)
        assert records == self.RECORDS

    def test_dataframe_input_not_mutated(self):
        df = pd.DataFrame(self.RECORDS)
        before = df.copy()
        detect_duplicate_vendors(df)
        pd.testing.assert_frame_equal(df, before)

    @pytest.mark.parametrize("name", sorted(DETECTORS))
    def test_deterministic(self, name):
        assert DETECTORS[name](self.RECORDS) == DETECTORS[name](self.RECORDS)

    @pytest.mark.parametrize("name", sorted(DETECTORS))
    def test_empty_input_yields_no_insights(self, name):
        assert DETECTORS[name]([]) == []

    def test_custom_benchmarks_respected(self):
        from spend_insights.config import DEFAULT_BENCHMARKS

        bm = {**DEFAULT_BENCHMARKS, "volume_discount_threshold": 200000}
        assert detect_volume_opportunities(self.RECORDS, bm) == []
