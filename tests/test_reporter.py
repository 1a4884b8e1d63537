"""
test_reporter.py — Tests for the Excel workbook, insight CSV and dashboard.

All outputs are written under pytest's tmp_path via a throwaway config file.
"""

import sys
from datetime import datetime
from pathlib import Path

import pandas as pd
import pytest
import yaml
from openpyxl import load_workbook

sys.path.insert(0, str(Path(__file__).parent.parent))

from spend_insights.analyzer import analyze
from spend_insights.categorizer import categorize_spend
from spend_insights.dashboard import generate_dashboard
from spend_insights.data_generator import sample_records
from spend_insights.reporter import export_insights_csv, generate_report, insights_frame
from spend_insights.stores import TrendStore


@pytest.fixture
def config_path(tmp_path) -> str:
    cfg = {
        "project": {"name": "Test", "organisation": "Test Org", "currency": "$"},
        "paths": {
            "output_dir": str(tmp_path / "outputs"),
            "report_filename": "report_{date}.xlsx",
            "dashboard_filename": "dashboard_{date}.html",
        },
    }
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(cfg))
    return str(path)


@pytest.fixture(scope="module")
def result():
    return analyze(sample_records())


@pytest.fixture(scope="module")
def categorization():
    return categorize_spend(sample_records())


class TestInsightsFrame:

    def test_one_row_per_insight(self, result):
        df = insights_frame(result["insights"])
        assert len(df) == len(result["insights"])
        assert df.loc[0, "type"] == "volume_opportunity"

    def test_evidence_joined(self, result):
        df = insights_frame(result["insights"])
        assert df.loc[0, "evidence"] == "; ".join(result["insights"][0]["evidence"])

    def test_empty(self):
        assert insights_frame([]).empty


class TestExportInsightsCsv:

    def test_writes_rows(self, tmp_path, result):
        path = export_insights_csv(result, tmp_path / "nested" / "insights.csv")
        df = pd.read_csv(path)
        assert len(df) == len(result["insights"])
        assert list(df.columns[:3]) == ["type", "title", "priority"]
        off_contract = df[df["type"] == "off_contract_spend"].iloc[0]
        assert pd.isna(off_contract["savings"])
        assert off_contract["risk_amount"] == pytest.approx(10346.4)


class TestGenerateReport:

    def test_workbook_sheets(self, config_path, result, categorization):
        path = generate_report(result, categorization, config_path)
        assert path.exists()
        assert path.name == f"report_{datetime.today().strftime('%Y-%m-%d')}.xlsx"

        wb = load_workbook(path)
        assert wb.sheetnames == ["Summary", "Insights", "Categories", "Action Plan"]

    def test_insight_rows(self, config_path, result, categorization):
        ws = load_workbook(generate_report(result, categorization, config_path))["Insights"]
        assert ws.max_row == len(result["insights"]) + 1
        assert ws["A1"].value == "Type"
        assert ws["A2"].value == "Volume Opportunity"
        assert ws["C2"].value == "HIGH"

    def test_category_rows(self, config_path, result, categorization):
        ws = load_workbook(generate_report(result, categorization, config_path))["Categories"]
        assert ws["A3"].value == categorization["categoryBreakdown"][0]["name"]

    def test_empty_analysis(self, config_path):
        path = generate_report(analyze([]), categorize_spend([]), config_path)
        wb = load_workbook(path)
        assert wb["Insights"].max_row == 1


class TestGenerateDashboard:

    def test_html_written(self, config_path, result, categorization):
        path = generate_dashboard(result, categorization, None, config_path)
        html = path.read_text(encoding="utf-8")
        assert path.suffix == ".html"
        assert "Procurement Spend Insights" in html
        assert result["actionPlan"]["executiveSummary"] in html

    def test_with_trend_data(self, config_path, result, categorization):
        store = TrendStore()
        store.add_snapshot(result, 12, now=datetime(2025, 1, 1))
        store.add_snapshot(result, 12, now=datetime(2025, 2, 1))
        path = generate_dashboard(result, categorization, store.get_trend_data(), config_path)
        assert "Monthly Trend" in path.read_text(encoding="utf-8")
