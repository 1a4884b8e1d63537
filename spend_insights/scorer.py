"""
scorer.py — Insight Ranking and Action Planning.

Transforms raw detector insights into an ordered, actionable result:
    - Ranking by savings (risk-only insights rank as zero savings)
    - Overall confidence as the mean of insight confidences
    - Action plan: executive summary, HIGH-priority actions, quick wins
    - Executive summary dict for the Excel report and dashboard

Priority labels:
    HIGH    — escalate within the current sourcing cycle
    MEDIUM  — schedule into the quarterly review
    LOW     — monitor
"""

import logging
from typing import Any

logger = logging.getLogger(__name__)

# Priority label ordering for sort/comparison
PRIORITY_ORDER = {"HIGH": 3, "MEDIUM": 2, "LOW": 1}

QUICK_WIN_TYPES = ("duplicate_vendors", "price_anomaly")
ACTION_TIMELINE = "30-60 days"
ACTION_OWNER = "Procurement Team"


def insight_impact(insight: dict[str, Any]) -> float:
    """Dollar magnitude of an insight: its savings, else its risk amount."""
    return insight.get("savings") or insight.get("risk_amount") or 0


def sort_insights(insights: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Order insights by savings, highest first.

    Risk-only insights compare as zero savings, so exposure never outranks a
    positive savings opportunity. The sort is stable for equal savings.
    """
    return sorted(insights, key=lambda i: i.get("savings") or 0, reverse=True)


def calculate_overall_confidence(insights: list[dict[str, Any]]) -> float:
    """Mean insight confidence rounded to two decimals; 0 with no insights."""
    if not insights:
        return 0
    avg_confidence = sum(i["confidence"] for i in insights) / len(insights)
    return round(avg_confidence, 2)


def build_action_plan(insights: list[dict[str, Any]]) -> dict[str, Any]:
    """Build the action plan for an already-sorted insight list.

    Args:
        insights: Insights in ranked order.

    Returns:
        Dict with keys:
            executiveSummary  — one-sentence headline
            priorityActions   — HIGH insights as action / impact / timeline / owner
            quickWins         — first three duplicate-vendor or price-anomaly insights
            csvExportReady    — always True
    """
    total_savings = sum(i.get("savings") or 0 for i in insights)

    priority_actions = [
        {
            "action": i["next_step"],
            "impact": insight_impact(i),
            "timeline": ACTION_TIMELINE,
            "owner": ACTION_OWNER,
        }
        for i in insights
        if i["priority"] == "HIGH"
    ]
    quick_wins = [i for i in insights if i["type"] in QUICK_WIN_TYPES][:3]

    logger.info(
        "Action plan built — %d priority actions | %d quick wins",
        len(priority_actions),
        len(quick_wins),
    )
    return {
        "executiveSummary": (
            f"Analysis identified ${total_savings:,.2f} in potential savings "
            f"across {len(insights)} opportunities"
        ),
        "priorityActions": priority_actions,
        "quickWins": quick_wins,
        "csvExportReady": True,
    }


def build_executive_summary(
    result: dict[str, Any],
    categorization: dict[str, Any] | None = None,
    currency: str = "$",
) -> dict[str, Any]:
    """Build an executive-level summary dict for reporting.

    Aggregates an analysis result into headline figures suitable for the
    Excel cover sheet and dashboard banner.

    Args:
        result: Output of analyzer.analyze().
        categorization: Optional output of categorizer.categorize_spend().
        currency: Currency symbol for display.

    Returns:
        Dict with keys:
            headline_savings, headline_risk, total_insights, priority_breakdown,
            by_type, records_analysed, confidence, top_categories, currency
    """
    insights = result["insights"]
    summary = result["summary"]

    priority_breakdown = {label: 0 for label in PRIORITY_ORDER}
    by_type: dict[str, dict[str, float]] = {}
    for insight in insights:
        priority_breakdown[insight["priority"]] += 1
        entry = by_type.setdefault(insight["type"], {"count": 0, "impact": 0.0})
        entry["count"] += 1
        entry["impact"] += insight_impact(insight)

    top_categories = {}
    if categorization:
        top_categories = {
            cat["name"]: round(cat["totalSpend"], 2)
            for cat in categorization["categoryBreakdown"][:5]
        }

    exec_summary = {
        "headline_savings": round(summary["totalSavings"], 2),
        "headline_risk": round(summary["totalRisk"], 2),
        "total_insights": len(insights),
        "priority_breakdown": priority_breakdown,
        "by_type": by_type,
        "records_analysed": summary["recordsAnalyzed"],
        "confidence": summary["confidence"],
        "top_categories": top_categories,
        "currency": currency,
    }

    logger.info(
        "Executive summary built — %s%.2f potential savings | %s%.2f risk | %d HIGH",
        currency,
        exec_summary["headline_savings"],
        currency,
        exec_summary["headline_risk"],
        priority_breakdown["HIGH"],
    )
    return exec_summary
