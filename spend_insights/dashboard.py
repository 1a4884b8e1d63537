"""
dashboard.py — Interactive Plotly HTML Dashboard.

Generates a single HTML page with four charts:
    1. Impact by Insight Type   — Horizontal bar (savings / risk per type)
    2. Spend by Category        — Horizontal bar with transaction counts
    3. Priority Mix             — Donut of HIGH / MEDIUM / LOW insights
    4. Monthly Trend            — Potential savings line with insight count bars

The trend chart needs at least one snapshot from the TrendStore; with none it
renders an empty placeholder.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd
import plotly.graph_objects as go
from plotly.subplots import make_subplots

from spend_insights.config import load_config
from spend_insights.reporter import TYPE_LABELS
from spend_insights.scorer import build_executive_summary, insight_impact

logger = logging.getLogger(__name__)

PRIORITY_COLOURS = {
    "HIGH":   "#C00000",
    "MEDIUM": "#BF8F00",
    "LOW":    "#375623",
}

DASHBOARD_TEMPLATE = "plotly_white"


def _chart_impact_by_type(insights: list[dict[str, Any]]) -> go.Figure:
    """Bar per insight type, stacked by priority.

    Risk-only insights (off-contract spend) contribute their risk amount so
    every type has a visible bar.
    """
    rows = [
        {
            "type": TYPE_LABELS.get(i["type"], i["type"]),
            "priority": i.get("priority", "LOW"),
            "impact": insight_impact(i),
        }
        for i in insights
    ]
    df = pd.DataFrame(rows, columns=["type", "priority", "impact"])
    grouped = df.groupby(["type", "priority"], as_index=False)["impact"].sum()

    fig = go.Figure()
    for priority, colour in PRIORITY_COLOURS.items():
        subset = grouped[grouped["priority"] == priority]
        if subset.empty:
            continue
        fig.add_trace(
            go.Bar(
                y=subset["type"],
                x=subset["impact"],
                name=priority,
                orientation="h",
                marker_color=colour,
                hovertemplate="<b>%{y}</b><br>Impact: $%{x:,.2f}<extra></extra>",
            )
        )

    fig.update_layout(
        title="Impact by Insight Type",
        barmode="stack",
        template=DASHBOARD_TEMPLATE,
        xaxis_title="Savings / Risk ($)",
        xaxis_tickformat="$,.0f",
        legend_title="Priority",
        height=400,
    )
    return fig


def _chart_category_spend(categorization: dict[str, Any]) -> go.Figure:
    breakdown = pd.DataFrame(
        categorization.get("categoryBreakdown", []),
        columns=["name", "totalSpend", "transactionCount", "vendorCount"],
    ).sort_values("totalSpend")

    fig = go.Figure(
        go.Bar(
            y=breakdown["name"],
            x=breakdown["totalSpend"],
            orientation="h",
            marker_color="#1F4E79",
            customdata=breakdown[["transactionCount", "vendorCount"]].values,
            hovertemplate=(
                "<b>%{y}</b><br>Spend: $%{x:,.2f}<br>"
                "Transactions: %{customdata[0]}<br>Vendors: %{customdata[1]}<extra></extra>"
            ),
        )
    )
    fig.update_layout(
        title="Spend by Category",
        template=DASHBOARD_TEMPLATE,
        xaxis_title="Spend ($)",
        xaxis_tickformat="$,.0f",
        height=400,
    )
    return fig


def _chart_priority_mix(summary: dict[str, Any]) -> go.Figure:
    breakdown = summary["priority_breakdown"]
    labels = list(PRIORITY_COLOURS)
    fig = go.Figure(
        go.Pie(
            labels=labels,
            values=[breakdown.get(p, 0) for p in labels],
            hole=0.5,
            marker={"colors": [PRIORITY_COLOURS[p] for p in labels]},
            sort=False,
        )
    )
    fig.update_layout(title="Insights by Priority", template=DASHBOARD_TEMPLATE, height=400)
    return fig


def _chart_trend(trend_data: dict[str, Any] | None) -> go.Figure:
    """Monthly potential savings (line) with insight counts (bars).

    Args:
        trend_data: Output of TrendStore.get_trend_data(), or None.

    Returns:
        Plotly Figure object.
    """
    chart = (trend_data or {}).get("chartData") or {"labels": [], "datasets": {}}
    labels = chart["labels"]
    datasets = chart["datasets"]

    fig = make_subplots(specs=[[{"secondary_y": True}]])
    fig.add_trace(
        go.Scatter(
            x=labels,
            y=datasets.get("potentialSavings", []),
            name="Potential Savings",
            mode="lines+markers",
            line={"color": "#375623", "width": 2},
        ),
        secondary_y=False,
    )
    fig.add_trace(
        go.Bar(
            x=labels,
            y=datasets.get("insightsFound", []),
            name="Insights Found",
            marker_color="#1F4E79",
            opacity=0.6,
        ),
        secondary_y=True,
    )
    fig.update_layout(title="Monthly Trend", template=DASHBOARD_TEMPLATE, height=400)
    fig.update_yaxes(title_text="Potential Savings ($)", tickformat="$,.0f", secondary_y=False)
    fig.update_yaxes(title_text="Insights", secondary_y=True)
    return fig


def _build_kpi_header(summary: dict[str, Any], organisation: str) -> str:
    """Generate the HTML KPI banner for the dashboard header."""
    cur = summary["currency"]
    priorities = summary["priority_breakdown"]
    tiles = [
        ("Potential Savings", f"{cur}{summary['headline_savings']:,.2f}", "#375623"),
        ("Risk Exposure",     f"{cur}{summary['headline_risk']:,.2f}",    "#C00000"),
        ("Records",           f"{summary['records_analysed']:,}",         "#1F4E79"),
        ("Insights",          f"{summary['total_insights']:,}",           "#1F4E79"),
        ("Confidence",        f"{summary['confidence']:.0%}",             "#1F4E79"),
        ("High",              str(priorities.get("HIGH", 0)),             PRIORITY_COLOURS["HIGH"]),
        ("Medium",            str(priorities.get("MEDIUM", 0)),           PRIORITY_COLOURS["MEDIUM"]),
        ("Low",               str(priorities.get("LOW", 0)),              PRIORITY_COLOURS["LOW"]),
    ]
    tile_html = ""
    for label, value, colour in tiles:
        tile_html += f"""
        <div style="
            background:{colour}; color:white; border-radius:8px;
            padding:12px 18px; min-width:120px; text-align:center;
        ">
            <div style="font-size:11px; font-weight:600; letter-spacing:1px;">{label.upper()}</div>
            <div style="font-size:22px; font-weight:700; margin-top:4px;">{value}</div>
        </div>"""

    return f"""
    <div style="font-family: 'Segoe UI', Arial, sans-serif; background:#1F4E79; padding:20px 30px;">
        <h1 style="color:white; margin:0 0 4px 0; font-size:22px;">Procurement Spend Insights</h1>
        <p style="color:rgba(255,255,255,0.75); margin:0 0 16px 0; font-size:13px;">
            {organisation} &nbsp;|&nbsp; Generated: {datetime.today().strftime('%Y-%m-%d %H:%M')}
        </p>
        <div style="display:flex; gap:12px; flex-wrap:wrap;">{tile_html}
        </div>
    </div>
    """


def generate_dashboard(
    result: dict[str, Any],
    categorization: dict[str, Any],
    trend_data: dict[str, Any] | None = None,
    config_path: str = "config.yaml",
) -> Path:
    """Assemble the dashboard and write it to HTML.

    Args:
        result: Output of analyzer.analyze().
        categorization: Output of categorizer.categorize_spend().
        trend_data: Output of TrendStore.get_trend_data(), if any snapshots exist.
        config_path: Path to configuration YAML.

    Returns:
        Path to the generated .html file.
    """
    cfg = load_config(config_path)
    project = cfg.get("project", {})
    summary = build_executive_summary(result, categorization, project.get("currency", "$"))

    run_date = datetime.today().strftime("%Y-%m-%d")
    output_dir = Path(cfg["paths"]["output_dir"])
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / cfg["paths"]["dashboard_filename"].format(date=run_date)

    logger.info("Building dashboard — %d insights to visualise", len(result["insights"]))

    chart_args = {"include_plotlyjs": False, "full_html": False}
    divs = [
        _chart_impact_by_type(result["insights"]).to_html(**chart_args),
        _chart_category_spend(categorization).to_html(**chart_args),
        _chart_priority_mix(summary).to_html(**chart_args),
        _chart_trend(trend_data).to_html(**chart_args),
    ]
    cards = "\n".join(f'        <div class="chart-card">{div}</div>' for div in divs)

    html = f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>Procurement Spend Insights — {run_date}</title>
    <script src="https://cdn.plot.ly/plotly-2.35.2.min.js"></script>
    <style>
        body {{ font-family: 'Segoe UI', Arial, sans-serif; background: #F5F5F5; margin: 0; }}
        .charts-grid {{ display: grid; grid-template-columns: 1fr 1fr; gap: 16px; padding: 20px; }}
        .chart-card {{ background: white; border-radius: 8px; padding: 8px; }}
        .summary {{ padding: 0 20px; color: #333; font-size: 14px; }}
        @media (max-width: 900px) {{ .charts-grid {{ grid-template-columns: 1fr; }} }}
    </style>
</head>
<body>
    {_build_kpi_header(summary, project.get("organisation", ""))}
    <p class="summary">{result["actionPlan"]["executiveSummary"]}</p>
    <div class="charts-grid">
{cards}
    </div>
</body>
</html>"""

    output_path.write_text(html, encoding="utf-8")
    logger.info("Dashboard saved to %s", output_path)
    return output_path
