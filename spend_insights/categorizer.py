"""
categorizer.py — Spend Categorisation.

Assigns every record a clean spend category, aggregates spend per category and
derives two category-level insights:

    category_consolidation  — too many vendors serving one sizeable category
    transaction_efficiency  — high volume of small purchase orders

Records without a usable category are classified by keyword lookup on the
vendor name and PO number, then by amount band as a last resort.
"""

import logging
from typing import Any

import pandas as pd

from spend_insights.config import DEFAULT_BENCHMARKS
from spend_insights.detector import Records, to_frame

logger = logging.getLogger(__name__)

# Checked in order; the first category with a matching keyword wins
CATEGORY_KEYWORDS: dict[str, list[str]] = {
    "IT Hardware": [
        "laptop", "computer", "server", "monitor", "keyboard", "mouse", "printer",
        "scanner", "tablet", "phone", "hardware", "tech", "dell", "hp", "lenovo",
        "apple", "microsoft",
    ],
    "Software": [
        "license", "subscription", "software", "saas", "cloud", "adobe", "microsoft",
        "oracle", "salesforce", "zoom", "slack", "office",
    ],
    "Office Supplies": [
        "supplies", "paper", "pen", "pencil", "stapler", "folder", "binder", "office",
        "stationery", "depot", "staples",
    ],
    "Professional Services": [
        "consulting", "legal", "accounting", "audit", "advisory", "professional",
        "services", "lawyer", "consultant",
    ],
    "Marketing": [
        "advertising", "marketing", "promotion", "print", "design", "creative",
        "media", "campaign", "branding",
    ],
    "Travel": [
        "travel", "hotel", "flight", "airline", "booking", "expense", "trip",
        "accommodation",
    ],
    "Facilities": [
        "rent", "utilities", "maintenance", "cleaning", "security", "facility",
        "building", "janitorial",
    ],
    "Manufacturing": [
        "materials", "parts", "components", "manufacturing", "production",
        "industrial", "machinery",
    ],
    "Shipping": [
        "shipping", "freight", "logistics", "delivery", "transport", "courier",
        "fedex", "ups", "dhl",
    ],
    "Telecommunications": [
        "phone", "internet", "telecom", "communication", "network", "verizon",
        "att", "comcast",
    ],
}

CATEGORY_ALIASES = {
    "It Equipment": "IT Hardware",
    "It Hardware": "IT Hardware",
    "Technology": "IT Hardware",
    "Office Supply": "Office Supplies",
    "Supplies": "Office Supplies",
    "Legal Services": "Professional Services",
    "Consulting Services": "Professional Services",
}

UNCATEGORIZED = "Uncategorized"


def classify_record(
    vendor: str,
    po_number: str,
    amount: float,
    benchmarks: dict[str, float] | None = None,
) -> str:
    """Infer a category for a record that arrived without one.

    Args:
        vendor: Raw vendor name.
        po_number: Purchase order reference (may be empty).
        amount: Transaction amount.
        benchmarks: Benchmark constants for the amount bands.

    Returns:
        A keyword category, or one of the amount-band fallbacks.
    """
    bm = benchmarks or DEFAULT_BENCHMARKS
    search_text = f"{vendor} {po_number or ''}".lower()
    for category, keywords in CATEGORY_KEYWORDS.items():
        if any(keyword in search_text for keyword in keywords):
            return category

    if amount > bm["major_purchase_amount"]:
        return "Major Purchases"
    if amount < bm["small_purchase_amount"]:
        return "Small Purchases"
    return "General Procurement"


def normalize_category_name(category: str) -> str:
    """Title-case a category and collapse known synonyms."""
    normalized = " ".join(
        word[:1].upper() + word[1:].lower() for word in category.strip().split(" ")
    )
    return CATEGORY_ALIASES.get(normalized, normalized)


def assign_categories(
    records: Records,
    benchmarks: dict[str, float] | None = None,
) -> pd.DataFrame:
    """Return a working frame with a ``final_category`` column added."""
    df = to_frame(records)

    def _resolve(row: pd.Series) -> str:
        category = row["category"].strip() or UNCATEGORIZED
        if category == UNCATEGORIZED:
            category = classify_record(row["vendor"], row["po_number"], row["amount"], benchmarks)
        return normalize_category_name(category)

    if df.empty:
        df["final_category"] = pd.Series(dtype=str)
    else:
        df["final_category"] = df.apply(_resolve, axis=1)
    return df


def _category_insights(
    categories: list[dict[str, Any]],
    bm: dict[str, float],
) -> list[dict[str, Any]]:
    """Derive consolidation then efficiency insights from sorted categories."""
    insights = []

    for cat in categories:
        if (
            cat["vendorCount"] > bm["category_consolidation_min_vendors"]
            and cat["totalSpend"] > bm["category_consolidation_min_spend"]
        ):
            savings = cat["totalSpend"] * bm["category_consolidation_savings"]
            insights.append({
                "type": "category_consolidation",
                "title": f"{cat['name']} Vendor Consolidation",
                "description": f"{cat['vendorCount']} vendors in {cat['name']} category",
                "category": cat["name"],
                "vendor_count": cat["vendorCount"],
                "total_spend": cat["totalSpend"],
                "vendors": cat["vendors"],
                "savings": savings,
                "confidence": bm["category_consolidation_confidence"],
                "evidence": [
                    f"{cat['vendorCount']} vendors in {cat['name']}",
                    f"Total category spend: ${cat['totalSpend']:,.2f}",
                    f"Average transaction: ${cat['avgTransactionSize']:,.2f}",
                    f"Potential {bm['category_consolidation_savings'] * 100:g}% "
                    f"consolidation savings: ${savings:,.2f}",
                ],
                "next_step": f"Consolidate {cat['name']} vendors to 2-3 preferred suppliers",
                "priority": (
                    "HIGH" if savings > bm["category_consolidation_high_priority"] else "MEDIUM"
                ),
            })

    for cat in categories:
        if (
            cat["transactionCount"] > bm["transaction_efficiency_min_count"]
            and cat["avgTransactionSize"] < bm["transaction_efficiency_max_avg"]
        ):
            admin_cost = cat["transactionCount"] * bm["admin_cost_per_transaction"]
            insights.append({
                "type": "transaction_efficiency",
                "title": f"{cat['name']} Transaction Efficiency",
                "description": "High volume of small transactions increasing admin costs",
                "category": cat["name"],
                "transaction_count": cat["transactionCount"],
                "avg_transaction": cat["avgTransactionSize"],
                "admin_cost": admin_cost,
                "savings": admin_cost,
                "confidence": bm["transaction_efficiency_confidence"],
                "evidence": [
                    f"{cat['transactionCount']} transactions in {cat['name']}",
                    f"Average transaction size: ${cat['avgTransactionSize']:,.2f}",
                    f"Estimated admin cost: ${admin_cost:,.2f}",
                ],
                "next_step": f"Implement blanket POs or bulk ordering for {cat['name']}",
                "priority": (
                    "MEDIUM" if admin_cost > bm["transaction_efficiency_medium_priority"] else "LOW"
                ),
            })

    return insights


def categorize_spend(
    records: Records,
    benchmarks: dict[str, float] | None = None,
) -> dict[str, Any]:
    """Categorise spend and derive category-level insights.

    Args:
        records: Procurement records.
        benchmarks: Benchmark constants.

    Returns:
        Dict with keys:
            insights           — category_consolidation / transaction_efficiency
            categoryBreakdown  — per-category totals, sorted by spend descending
            summary            — totalCategories, topCategory, topCategorySpend, totalSpend
    """
    bm = benchmarks or DEFAULT_BENCHMARKS
    df = assign_categories(records, bm)
    logger.info("Categorising spend for %d records", len(df))

    categories = []
    for name, group in df.groupby("final_category", sort=False):
        vendors = group["vendor"].drop_duplicates().tolist()
        total = float(group["amount"].sum())
        categories.append({
            "name": name,
            "totalSpend": total,
            "transactionCount": len(group),
            "vendors": vendors,
            "vendorCount": len(vendors),
            "avgTransactionSize": total / len(group),
        })
    categories.sort(key=lambda c: c["totalSpend"], reverse=True)

    total_spend = sum(cat["totalSpend"] for cat in categories)
    breakdown = [
        {
            "name": cat["name"],
            "totalSpend": cat["totalSpend"],
            "percentage": f"{(cat['totalSpend'] / total_spend * 100) if total_spend else 0.0:.1f}",
            "transactionCount": cat["transactionCount"],
            "vendorCount": cat["vendorCount"],
            "avgTransactionSize": cat["avgTransactionSize"],
        }
        for cat in categories
    ]
    insights = _category_insights(categories, bm)

    logger.info(
        "Categorisation complete — %d categories | %d insights",
        len(categories),
        len(insights),
    )
    return {
        "insights": insights,
        "categoryBreakdown": breakdown,
        "summary": {
            "totalCategories": len(categories),
            "topCategory": categories[0]["name"] if categories else None,
            "topCategorySpend": categories[0]["totalSpend"] if categories else None,
            "totalSpend": total_spend,
        },
    }
