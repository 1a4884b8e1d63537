"""
test_analyzer.py — Integration tests for the analysis orchestrator.

Tests cover:
    - Full analysis over the demo record set
    - Data-quality reporting
    - Single-detector dispatch and unknown-mode fallback
    - Empty input, idempotence and input immutability
"""

import copy
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from spend_insights.analyzer import analyze, check_data_quality, run_analysis
from spend_insights.data_generator import sample_records


def _make_record(**overrides) -> dict:
    base = {
        "vendor": "Test Vendor",
        "category": "Office Supplies",
        "amount": 100.0,
        "date": "2024-12-01",
        "po_number": "PO-2024-0001",
    }
    base.update(overrides)
    return base


def _without_timing(result: dict) -> dict:
    result = copy.deepcopy(result)
    result["summary"].pop("analysisTimeMs")
    return result


class TestAnalyzeSampleData:

    @pytest.fixture(scope="class")
    def result(self):
        return analyze(sample_records())

    def test_result_structure(self, result):
        assert set(result) == {"insights", "summary", "dataQuality", "actionPlan"}
        assert set(result["summary"]) == {
            "totalSavings", "totalRisk", "recordsAnalyzed", "analysisTimeMs", "confidence",
        }
        assert result["summary"]["recordsAnalyzed"] == 12
        assert result["dataQuality"] == []

    def test_insight_order(self, result):
        assert [i["type"] for i in result["insights"]] == [
            "volume_opportunity",
            "volume_opportunity",
            "duplicate_vendors",
            "off_contract_spend",
        ]
        assert result["insights"][0]["vendor"] == "Global Tech Solutions"

    def test_savings_non_increasing(self, result):
        savings = [i.get("savings") or 0 for i in result["insights"]]
        assert savings == sorted(savings, reverse=True)

    def test_acme_duplicates(self, result):
        dup = next(i for i in result["insights"] if i["type"] == "duplicate_vendors")
        assert dup["vendor_names"] == ["Acme Corp", "ACME Corporation", "Acme Corp."]
        assert dup["total_spend"] == pytest.approx(56420.0)
        assert dup["savings"] == pytest.approx(4513.6)

    def test_totals(self, result):
        assert result["summary"]["totalSavings"] == pytest.approx(10737.5 + 5670.0 + 4513.6)
        assert result["summary"]["totalRisk"] == pytest.approx(86220.0 * 0.12)

    def test_confidence_is_rounded_mean(self, result):
        confidences = [i["confidence"] for i in result["insights"]]
        expected = round(sum(confidences) / len(confidences), 2)
        assert result["summary"]["confidence"] == expected

    def test_action_plan(self, result):
        plan = result["actionPlan"]
        assert len(plan["priorityActions"]) == 1
        assert plan["priorityActions"][0]["impact"] == pytest.approx(10737.5)
        assert [i["type"] for i in plan["quickWins"]] == ["duplicate_vendors"]
        assert plan["executiveSummary"].startswith("Analysis identified $20,921.10")


class TestAnalyzeProperties:

    def test_empty_input(self):
        result = analyze([])
        assert result["insights"] == []
        assert result["summary"]["totalSavings"] == 0
        assert result["summary"]["totalRisk"] == 0
        assert result["summary"]["recordsAnalyzed"] == 0
        assert result["summary"]["confidence"] == 0
        assert result["dataQuality"] == []
        assert result["actionPlan"]["executiveSummary"] == (
            "Analysis identified $0.00 in potential savings across 0 opportunities"
        )

    def test_idempotent(self):
        records = sample_records()
        assert _without_timing(analyze(records)) == _without_timing(analyze(records))

    def test_input_not_mutated(self):
        records = sample_records()
        before = copy.deepcopy(records)
        analyze(records)
        assert records == before

    def test_accepts_generator(self):
        result = analyze(r for r in sample_records())
        assert result["summary"]["recordsAnalyzed"] == 12

    def test_every_insight_has_one_impact_field(self):
        for insight in analyze(sample_records())["insights"]:
            assert ("savings" in insight) != ("risk_amount" in insight)

    def test_dirty_records_still_analyzed(self):
        records = [
            _make_record(vendor="A", amount="abc"),
            _make_record(vendor="B", amount=None),
            _make_record(vendor="C", amount=60000),
        ]
        result = analyze(records)
        assert result["summary"]["recordsAnalyzed"] == 3
        assert "1 records with non-numeric amounts" in result["dataQuality"]


class TestCheckDataQuality:

    def test_clean_batch(self):
        assert check_data_quality([_make_record(), _make_record()]) == []

    def test_each_issue_reported(self):
        records = [
            _make_record(amount=None),
            _make_record(amount="abc"),
            _make_record(amount=-50),
            _make_record(vendor=""),
            _make_record(date="not-a-date"),
        ]
        assert check_data_quality(records) == [
            "1 records missing amounts",
            "1 records with non-numeric amounts",
            "1 records with negative amounts",
            "1 records missing vendor names",
            "1 records with invalid dates",
        ]

    def test_zero_amount_counts_as_missing(self):
        assert check_data_quality([_make_record(amount=0)]) == ["1 records missing amounts"]

    def test_missing_columns(self):
        assert check_data_quality([{"amount": 10}]) == ["1 records missing vendor names"]

    def test_empty(self):
        assert check_data_quality([]) == []


class TestRunAnalysis:

    def test_single_detector(self):
        result = run_analysis(sample_records(), "duplicateVendors")
        assert result["analysisType"] == "duplicateVendors"
        assert [i["type"] for i in result["insights"]] == ["duplicate_vendors"]
        assert result["summary"]["totalSavings"] == pytest.approx(4513.6)
        assert result["summary"]["recordsAnalyzed"] == 12

    def test_contract_opportunities_maps_to_volume(self):
        result = run_analysis(sample_records(), "contractOpportunities")
        assert {i["type"] for i in result["insights"]} == {"volume_opportunity"}

    def test_off_contract_mode_reports_no_savings(self):
        result = run_analysis(sample_records(), "offContractSpend")
        assert result["summary"]["totalSavings"] == 0
        assert len(result["insights"]) == 1

    def test_full(self):
        result = run_analysis(sample_records(), "full")
        assert "actionPlan" in result

    def test_unknown_type_falls_back_to_full(self, caplog):
        with caplog.at_level("WARNING"):
            result = run_analysis(sample_records(), "bogus")
        assert "actionPlan" in result
        assert "bogus" in caplog.text
