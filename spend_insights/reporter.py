"""
reporter.py — Excel Workbook and CSV Insight Export.

Produces a multi-sheet Excel workbook for procurement and finance teams:
colour-coded priority rows, frozen headers, auto-fitted columns and a cover
sheet with KPI tiles.

Sheets:
    1. Summary      — KPI tiles, impact by insight type, top categories
    2. Insights     — one row per insight with evidence and next step
    3. Categories   — category spend breakdown with bar chart
    4. Action Plan  — HIGH-priority actions and quick wins
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd
from openpyxl import Workbook
from openpyxl.chart import BarChart, Reference
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.utils.dataframe import dataframe_to_rows

from spend_insights.config import load_config
from spend_insights.scorer import build_executive_summary, insight_impact

logger = logging.getLogger(__name__)

COLOURS = {
    "navy":        "1F4E79",
    "dark_red":    "C00000",
    "dark_green":  "375623",
    "gold":        "BF8F00",
    "light_grey":  "F2F2F2",
    "white":       "FFFFFF",
    "high_row":    "FFCCCC",
    "medium_row":  "FFFFE0",
    "low_row":     "E2EFDA",
}

PRIORITY_ROW_COLOURS = {
    "HIGH":   COLOURS["high_row"],
    "MEDIUM": COLOURS["medium_row"],
    "LOW":    COLOURS["low_row"],
}

TYPE_LABELS = {
    "duplicate_vendors":      "Duplicate Vendors",
    "off_contract_spend":     "Off-Contract Spend",
    "price_anomaly":          "Price Anomaly",
    "volume_opportunity":     "Volume Opportunity",
    "tail_spend":             "Tail Spend",
    "category_consolidation": "Category Consolidation",
    "transaction_efficiency": "Transaction Efficiency",
}

CSV_COLUMNS = [
    "type", "title", "priority", "savings", "risk_amount", "confidence",
    "description", "evidence", "next_step",
]

THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)


def _fill(hex_colour: str) -> PatternFill:
    return PatternFill(fill_type="solid", fgColor=hex_colour)


def _header_font() -> Font:
    return Font(name="Calibri", bold=True, color=COLOURS["white"], size=11)


def _title_font(size: int = 14) -> Font:
    return Font(name="Calibri", bold=True, color=COLOURS["navy"], size=size)


def _auto_fit_columns(ws, min_width: int = 10, max_width: int = 60) -> None:
    """Set each column's width to its longest value, within bounds."""
    for col in ws.columns:
        col_letter = get_column_letter(col[0].column)
        max_len = max((len(str(cell.value)) for cell in col if cell.value is not None), default=0)
        ws.column_dimensions[col_letter].width = min(max(max_len + 4, min_width), max_width)


def _write_header_row(ws, row: int, headers: list[str], colour: str, start_col: int = 1) -> None:
    for col_i, header in enumerate(headers, start=start_col):
        cell = ws.cell(row=row, column=col_i, value=header)
        cell.fill = _fill(colour)
        cell.font = _header_font()
        cell.alignment = Alignment(horizontal="center", wrap_text=True)
        cell.border = THIN_BORDER


def _write_kpi_tile(ws, row: int, col: int, label: str, value: str, colour: str) -> None:
    """Write a two-cell KPI tile (label above, value below)."""
    label_cell = ws.cell(row=row, column=col, value=label)
    label_cell.fill = _fill(colour)
    label_cell.font = _header_font()
    label_cell.alignment = Alignment(horizontal="center", vertical="center")
    label_cell.border = THIN_BORDER

    value_cell = ws.cell(row=row + 1, column=col, value=value)
    value_cell.font = Font(name="Calibri", bold=True, size=16, color=colour)
    value_cell.alignment = Alignment(horizontal="center", vertical="center")
    value_cell.fill = _fill(COLOURS["light_grey"])
    value_cell.border = THIN_BORDER


def _build_summary_sheet(ws, summary: dict[str, Any], run_date: str, org: str) -> None:
    """Populate the Summary sheet with KPI tiles and breakdown tables.

    Args:
        ws: openpyxl Worksheet (Summary tab).
        summary: Executive summary dict from scorer.build_executive_summary().
        run_date: ISO date string for the report header.
        org: Organisation name for the subtitle.
    """
    cur = summary["currency"]
    ws.sheet_properties.tabColor = COLOURS["navy"]
    ws.row_dimensions[1].height = 30

    ws.merge_cells("A1:H1")
    title = ws["A1"]
    title.value = "PROCUREMENT SPEND INSIGHTS — EXECUTIVE SUMMARY"
    title.font = Font(name="Calibri", bold=True, size=16, color=COLOURS["white"])
    title.fill = _fill(COLOURS["navy"])
    title.alignment = Alignment(horizontal="center", vertical="center")

    ws.merge_cells("A2:H2")
    sub = ws["A2"]
    sub.value = (
        f"Report Date: {run_date}  |  Records Analysed: {summary['records_analysed']:,}  |  "
        f"Overall Confidence: {summary['confidence']:.0%}  |  Organisation: {org}"
    )
    sub.font = Font(name="Calibri", italic=True, size=10, color=COLOURS["navy"])
    sub.alignment = Alignment(horizontal="center", vertical="center")

    priorities = summary["priority_breakdown"]
    tiles = [
        ("POTENTIAL SAVINGS", f"{cur}{summary['headline_savings']:,.2f}", COLOURS["dark_green"]),
        ("RISK EXPOSURE",     f"{cur}{summary['headline_risk']:,.2f}",    COLOURS["dark_red"]),
        ("INSIGHTS",          f"{summary['total_insights']:,}",           COLOURS["navy"]),
        ("HIGH",              str(priorities.get("HIGH", 0)),             "CC0000"),
        ("MEDIUM",            str(priorities.get("MEDIUM", 0)),           COLOURS["gold"]),
        ("LOW",               str(priorities.get("LOW", 0)),              COLOURS["dark_green"]),
    ]
    for i, (label, value, colour) in enumerate(tiles, start=1):
        _write_kpi_tile(ws, row=4, col=i, label=label, value=value, colour=colour)
    ws.row_dimensions[5].height = 30

    ws.cell(row=7, column=1, value="IMPACT BY INSIGHT TYPE").font = _title_font(12)
    _write_header_row(ws, 8, ["Insight Type", "Count", f"Impact ({cur})"], COLOURS["navy"])
    for row_i, (insight_type, data) in enumerate(summary["by_type"].items(), start=9):
        values = [TYPE_LABELS.get(insight_type, insight_type), data["count"], round(data["impact"], 2)]
        for col_i, val in enumerate(values, start=1):
            cell = ws.cell(row=row_i, column=col_i, value=val)
            cell.fill = _fill(COLOURS["light_grey"])
            cell.border = THIN_BORDER
            if col_i == 3:
                cell.number_format = "#,##0.00"

    if summary["top_categories"]:
        ws.cell(row=7, column=6, value="TOP CATEGORIES BY SPEND").font = _title_font(12)
        _write_header_row(ws, 8, ["Category", f"Spend ({cur})"], COLOURS["dark_green"], start_col=6)
        for row_i, (name, spend) in enumerate(summary["top_categories"].items(), start=9):
            ws.cell(row=row_i, column=6, value=name).border = THIN_BORDER
            amt = ws.cell(row=row_i, column=7, value=spend)
            amt.number_format = "#,##0.00"
            amt.border = THIN_BORDER

    _auto_fit_columns(ws)


def insights_frame(insights: list[dict[str, Any]]) -> pd.DataFrame:
    """Flatten insights into one row each with evidence joined by '; '."""
    rows = []
    for insight in insights:
        row = {col: insight.get(col) for col in CSV_COLUMNS}
        row["evidence"] = "; ".join(insight.get("evidence", []))
        rows.append(row)
    return pd.DataFrame(rows, columns=CSV_COLUMNS)


def _build_insights_sheet(ws, insights: list[dict[str, Any]]) -> None:
    """Write every insight with a priority-coloured row."""
    ws.sheet_properties.tabColor = COLOURS["dark_red"]
    df = insights_frame(insights)
    df["type"] = df["type"].map(lambda t: TYPE_LABELS.get(t, t))
    headers = [
        "Type", "Title", "Priority", "Savings", "Risk Amount", "Confidence",
        "Description", "Evidence", "Next Step",
    ]
    _write_header_row(ws, 1, headers, COLOURS["dark_red"])
    ws.freeze_panes = "A2"

    for row_i, row in enumerate(dataframe_to_rows(df, index=False, header=False), start=2):
        fill = _fill(PRIORITY_ROW_COLOURS.get(row[2], COLOURS["light_grey"]))
        for col_i, val in enumerate(row, start=1):
            if isinstance(val, float) and pd.isna(val):
                val = None
            cell = ws.cell(row=row_i, column=col_i, value=val)
            cell.fill = fill
            cell.border = THIN_BORDER
            if col_i in (4, 5):
                cell.number_format = "#,##0.00"
            elif col_i == 6:
                cell.number_format = "0%"

    ws.auto_filter.ref = f"A1:{get_column_letter(len(headers))}1"
    _auto_fit_columns(ws)


def _build_categories_sheet(ws, categorization: dict[str, Any]) -> None:
    """Write the category breakdown and a spend-by-category bar chart."""
    ws.sheet_properties.tabColor = COLOURS["dark_green"]
    ws.cell(row=1, column=1, value="SPEND BY CATEGORY").font = _title_font()

    headers = ["Category", "Total Spend", "% of Spend", "Transactions", "Vendors", "Avg Transaction"]
    _write_header_row(ws, 2, headers, COLOURS["dark_green"])

    breakdown = categorization["categoryBreakdown"]
    for row_i, cat in enumerate(breakdown, start=3):
        values = [
            cat["name"],
            round(cat["totalSpend"], 2),
            f"{cat['percentage']}%",
            cat["transactionCount"],
            cat["vendorCount"],
            round(cat["avgTransactionSize"], 2),
        ]
        for col_i, val in enumerate(values, start=1):
            cell = ws.cell(row=row_i, column=col_i, value=val)
            cell.fill = _fill(COLOURS["light_grey"])
            cell.border = THIN_BORDER
            if col_i in (2, 6):
                cell.number_format = "#,##0.00"

    if len(breakdown) > 1:
        chart = BarChart()
        chart.type = "bar"
        chart.title = "Spend by Category"
        chart.style = 10
        chart.height = 10
        chart.width = 20
        data_ref = Reference(ws, min_col=2, min_row=2, max_row=2 + len(breakdown))
        labels_ref = Reference(ws, min_col=1, min_row=3, max_row=2 + len(breakdown))
        chart.add_data(data_ref, titles_from_data=True)
        chart.set_categories(labels_ref)
        ws.add_chart(chart, "H2")

    cat_insights = categorization.get("insights", [])
    if cat_insights:
        start = len(breakdown) + 5
        ws.cell(row=start, column=1, value="CATEGORY INSIGHTS").font = _title_font(12)
        _write_header_row(ws, start + 1, ["Title", "Priority", "Savings", "Next Step"], COLOURS["navy"])
        for row_i, insight in enumerate(cat_insights, start=start + 2):
            fill = _fill(PRIORITY_ROW_COLOURS.get(insight["priority"], COLOURS["light_grey"]))
            values = [insight["title"], insight["priority"], round(insight["savings"], 2), insight["next_step"]]
            for col_i, val in enumerate(values, start=1):
                cell = ws.cell(row=row_i, column=col_i, value=val)
                cell.fill = fill
                cell.border = THIN_BORDER
                if col_i == 3:
                    cell.number_format = "#,##0.00"

    _auto_fit_columns(ws)


def _build_action_plan_sheet(ws, action_plan: dict[str, Any]) -> None:
    """Write the executive sentence, priority actions and quick wins."""
    ws.sheet_properties.tabColor = COLOURS["gold"]
    ws.cell(row=1, column=1, value="ACTION PLAN").font = _title_font()
    ws.cell(row=2, column=1, value=action_plan["executiveSummary"]).font = Font(italic=True)

    _write_header_row(ws, 4, ["Action", "Impact", "Timeline", "Owner"], COLOURS["navy"])
    row_i = 5
    for action in action_plan["priorityActions"]:
        values = [action["action"], round(action["impact"], 2), action["timeline"], action["owner"]]
        for col_i, val in enumerate(values, start=1):
            cell = ws.cell(row=row_i, column=col_i, value=val)
            cell.border = THIN_BORDER
            if col_i == 2:
                cell.number_format = "#,##0.00"
        row_i += 1

    row_i += 1
    ws.cell(row=row_i, column=1, value="QUICK WINS").font = _title_font(12)
    _write_header_row(ws, row_i + 1, ["Title", "Impact", "Next Step"], COLOURS["dark_green"])
    for offset, insight in enumerate(action_plan["quickWins"], start=row_i + 2):
        ws.cell(row=offset, column=1, value=insight["title"]).border = THIN_BORDER
        impact = ws.cell(row=offset, column=2, value=round(insight_impact(insight), 2))
        impact.number_format = "#,##0.00"
        impact.border = THIN_BORDER
        ws.cell(row=offset, column=3, value=insight["next_step"]).border = THIN_BORDER

    _auto_fit_columns(ws)


def export_insights_csv(result: dict[str, Any], output_path: str | Path) -> Path:
    """Write one CSV row per insight and return the path."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    insights_frame(result["insights"]).to_csv(output_path, index=False)
    logger.info("Insight CSV saved to %s (%d rows)", output_path, len(result["insights"]))
    return output_path


def generate_report(
    result: dict[str, Any],
    categorization: dict[str, Any],
    config_path: str = "config.yaml",
) -> Path:
    """Generate the full Excel workbook and write it to the output directory.

    Args:
        result: Output of analyzer.analyze().
        categorization: Output of categorizer.categorize_spend().
        config_path: Path to configuration YAML.

    Returns:
        Path to the generated .xlsx file.

    Raises:
        OSError: If the output directory cannot be created.
    """
    cfg = load_config(config_path)
    project = cfg.get("project", {})
    currency = project.get("currency", "$")

    run_date = datetime.today().strftime("%Y-%m-%d")
    output_dir = Path(cfg["paths"]["output_dir"])
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / cfg["paths"]["report_filename"].format(date=run_date)

    summary = build_executive_summary(result, categorization, currency)

    wb = Workbook()
    wb.remove(wb.active)

    _build_summary_sheet(wb.create_sheet("Summary"), summary, run_date, project.get("organisation", ""))
    _build_insights_sheet(wb.create_sheet("Insights"), result["insights"])
    logger.info("Built Insights sheet (%d rows)", len(result["insights"]))
    _build_categories_sheet(wb.create_sheet("Categories"), categorization)
    _build_action_plan_sheet(wb.create_sheet("Action Plan"), result["actionPlan"])

    wb.save(output_path)
    logger.info("Excel report saved to %s", output_path)
    return output_path
