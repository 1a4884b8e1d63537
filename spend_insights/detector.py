"""
detector.py — Multi-Rule Spend Insight Detection Engine.

Applies five independent detection rules to a batch of procurement records
and returns one insight dict per finding. Rules never mutate their input and
share no state, so each can be invoked on its own.

Detection Rules:
    1. Duplicate Vendors     — raw vendor strings that normalise to one supplier
    2. Off-Contract Spend    — spend outside the 80% Pareto vendor set
    3. Price Anomaly         — category amounts beyond the Tukey IQR fence
    4. Volume Opportunity    — vendors large enough to negotiate discounts
    5. Tail Spend            — many small transactions with minor vendors

Every insight carries exactly one of ``savings`` (opportunity) or
``risk_amount`` (exposure).
"""

import logging
from typing import Any, Iterable

import numpy as np
import pandas as pd

from spend_insights.config import DEFAULT_BENCHMARKS
from spend_insights.normalizer import normalize_vendor_name, string_similarity

logger = logging.getLogger(__name__)

RECORD_FIELDS = ["vendor", "category", "amount", "date", "po_number"]

Records = Iterable[dict[str, Any]] | pd.DataFrame


def to_frame(records: Records) -> pd.DataFrame:
    """Build a working DataFrame from records without touching the originals.

    Amounts are coerced to float (unparseable values contribute 0.0) and the
    text columns are filled with empty strings so grouping is total.

    Args:
        records: Sequence of record dicts, or a DataFrame with record columns.

    Returns:
        New DataFrame with exactly the RECORD_FIELDS columns.
    """
    if isinstance(records, pd.DataFrame):
        df = records.copy()
    else:
        df = pd.DataFrame.from_records(list(records))

    for col in RECORD_FIELDS:
        if col not in df.columns:
            df[col] = None
    df = df[RECORD_FIELDS].reset_index(drop=True)

    df["amount"] = pd.to_numeric(df["amount"], errors="coerce").fillna(0.0).astype(float)
    for col in ("vendor", "category", "po_number"):
        df[col] = df[col].fillna("").astype(str)
    return df


def group_by_vendor(df: pd.DataFrame) -> list[dict[str, Any]]:
    """Aggregate spend and transaction count per distinct raw vendor string.

    Returns:
        List of {vendor, spend, count} dicts in first-seen vendor order.
    """
    if df.empty:
        return []
    grouped = df.groupby("vendor", sort=False)["amount"].agg(["sum", "count"])
    return [
        {"vendor": vendor, "spend": float(row["sum"]), "count": int(row["count"])}
        for vendor, row in grouped.iterrows()
    ]


def _money(amount: float) -> str:
    return f"${amount:,.2f}"


# ---------------------------------------------------------------------------
# Rule 1: Duplicate Vendors
# ---------------------------------------------------------------------------

def duplicate_confidence(names: list[str]) -> float:
    """Score how likely a set of raw names refers to one supplier.

    Each name takes its best similarity against the other names; the mean
    of those maxima is mapped onto [0.5, 0.95].
    """
    best_matches = []
    for name in names:
        others = [other for other in names if other != name]
        best_matches.append(max(string_similarity(name, other) for other in others))
    avg_similarity = sum(best_matches) / len(best_matches)
    return min(0.95, 0.5 + avg_similarity * 0.5)


def detect_duplicate_vendors(
    records: Records,
    benchmarks: dict[str, float] | None = None,
) -> list[dict[str, Any]]:
    """Flag suppliers recorded under more than one raw vendor name.

    Records are bucketed by normalised vendor name; any bucket holding two or
    more distinct raw strings becomes one insight whose savings are the
    consolidation benchmark applied to the bucket's total spend.

    Args:
        records: Procurement records.
        benchmarks: Benchmark constants (defaults to DEFAULT_BENCHMARKS).

    Returns:
        List of ``duplicate_vendors`` insights.
    """
    bm = benchmarks or DEFAULT_BENCHMARKS
    df = to_frame(records)
    logger.info("Running Rule 1: Duplicate Vendor Detection (%d records)", len(df))

    insights = []
    df["_normalized"] = df["vendor"].map(normalize_vendor_name)
    for _, group in df.groupby("_normalized", sort=False):
        names = group["vendor"].drop_duplicates().tolist()
        if len(names) < 2:
            continue

        total_spend = float(group["amount"].sum())
        savings = total_spend * bm["duplicate_vendor_savings"]
        insights.append({
            "type": "duplicate_vendors",
            "title": f"Duplicate Vendor: {names[0]}",
            "description": f"Found {len(names)} variations of the same vendor",
            "vendor_names": names,
            "total_spend": total_spend,
            "records": len(group),
            "savings": savings,
            "confidence": duplicate_confidence(names),
            "evidence": [
                f"{len(names)} name variations: {', '.join(names)}",
                f"Total spend: {_money(total_spend)}",
                f"Potential savings: {_money(savings)} "
                f"({bm['duplicate_vendor_savings'] * 100:g}% consolidation rate)",
            ],
            "next_step": "Consolidate to single vendor master record",
            "priority": "HIGH" if savings > bm["duplicate_high_priority"] else "MEDIUM",
        })

    logger.info("Rule 1 flagged %d duplicate vendor groups", len(insights))
    return insights


# ---------------------------------------------------------------------------
# Rule 2: Off-Contract Spend
# ---------------------------------------------------------------------------

def preferred_vendors(
    aggregates: list[dict[str, Any]],
    share: float = 0.80,
) -> list[str]:
    """Return the minimal top-spend vendor prefix reaching ``share`` of spend.

    A vendor is admitted while cumulative spend is still strictly below the
    threshold, so the vendor that reaches or crosses it is included.
    """
    total_spend = sum(agg["spend"] for agg in aggregates)
    threshold = total_spend * share

    cumulative = 0.0
    preferred = []
    for agg in sorted(aggregates, key=lambda a: a["spend"], reverse=True):
        if cumulative < threshold:
            preferred.append(agg["vendor"])
            cumulative += agg["spend"]
    return preferred


def detect_off_contract_spend(
    records: Records,
    benchmarks: dict[str, float] | None = None,
) -> list[dict[str, Any]]:
    """Flag spend placed with vendors outside the Pareto preferred set.

    Args:
        records: Procurement records.
        benchmarks: Benchmark constants.

    Returns:
        Empty list, or a single ``off_contract_spend`` insight carrying
        ``risk_amount`` (the estimated off-contract cost premium).
    """
    bm = benchmarks or DEFAULT_BENCHMARKS
    df = to_frame(records)
    logger.info(
        "Running Rule 2: Off-Contract Spend Detection (preferred share=%.0f%%)",
        bm["preferred_spend_share"] * 100,
    )

    preferred = preferred_vendors(group_by_vendor(df), bm["preferred_spend_share"])
    off_contract = df[~df["vendor"].isin(preferred)]
    if off_contract.empty:
        logger.info("Rule 2 found no off-contract transactions")
        return []

    off_contract_spend = float(off_contract["amount"].sum())
    penalty = off_contract_spend * bm["off_contract_penalty"]
    affected = off_contract["vendor"].drop_duplicates().tolist()

    logger.info(
        "Rule 2 flagged %d off-contract transactions across %d vendors | risk %s",
        len(off_contract),
        len(affected),
        _money(penalty),
    )
    return [{
        "type": "off_contract_spend",
        "title": "Off-Contract Spending Detected",
        "description": (
            f"{len(off_contract)} transactions outside preferred vendor network"
        ),
        "off_contract_spend": off_contract_spend,
        "transaction_count": len(off_contract),
        "affected_vendors": affected,
        "risk_amount": penalty,
        "confidence": bm["off_contract_confidence"],
        "evidence": [
            f"{len(off_contract)} off-contract transactions",
            f"{_money(off_contract_spend)} spent outside preferred vendors",
            f"Estimated {bm['off_contract_penalty'] * 100:g}% cost premium = {_money(penalty)}",
        ],
        "next_step": "Review vendor selection criteria and contract coverage",
        "priority": "HIGH" if penalty > bm["off_contract_high_priority"] else "MEDIUM",
    }]


# ---------------------------------------------------------------------------
# Rule 3: Price Anomalies
# ---------------------------------------------------------------------------

def quartile_stats(amounts: Iterable[float]) -> dict[str, float]:
    """Index-based median, Q1, Q3 and IQR of a sample.

    Uses the sorted values at ``n // 2``, ``floor(0.25n)`` and
    ``floor(0.75n)`` with no interpolation.
    """
    values = np.sort(np.asarray(list(amounts), dtype=float))
    n = len(values)
    q1 = float(values[int(n * 0.25)])
    q3 = float(values[int(n * 0.75)])
    return {
        "median": float(values[n // 2]),
        "q1": q1,
        "q3": q3,
        "iqr": q3 - q1,
    }


def detect_price_anomalies(
    records: Records,
    benchmarks: dict[str, float] | None = None,
) -> list[dict[str, Any]]:
    """Flag categories whose outlier transactions overspend the median.

    Within each category with at least ``price_min_sample`` records, amounts
    beyond the Tukey fence are outliers. Excess spend is what the outliers
    cost above the category median; only positive excess is reported.

    Args:
        records: Procurement records.
        benchmarks: Benchmark constants.

    Returns:
        List of ``price_anomaly`` insights, one per affected category.
    """
    bm = benchmarks or DEFAULT_BENCHMARKS
    df = to_frame(records)
    fence = bm["iqr_fence_multiplier"]
    logger.info("Running Rule 3: Price Anomaly Detection (fence=%.1f x IQR)", fence)

    insights = []
    for category, group in df.groupby("category", sort=False):
        if len(group) < bm["price_min_sample"]:
            continue

        stats = quartile_stats(group["amount"])
        upper = stats["q3"] + fence * stats["iqr"]
        lower = stats["q1"] - fence * stats["iqr"]
        outliers = group[(group["amount"] > upper) | (group["amount"] < lower)]
        if outliers.empty:
            continue

        median = stats["median"]
        excess_spend = float(outliers["amount"].sum()) - len(outliers) * median
        if excess_spend <= 0:
            continue

        insights.append({
            "type": "price_anomaly",
            "title": f"Price Anomaly in {category}",
            "description": (
                f"{len(outliers)} transactions significantly above market rate"
            ),
            "category": category,
            "outlier_count": len(outliers),
            "excess_spend": excess_spend,
            "median_price": median,
            "outlier_vendors": outliers["vendor"].drop_duplicates().tolist(),
            "savings": excess_spend,
            "confidence": bm["price_anomaly_confidence"],
            "evidence": [
                f"{len(outliers)} outlier transactions in {category}",
                f"Median price: {_money(median)}",
                f"Excess spend: {_money(excess_spend)}",
            ],
            "next_step": "Review pricing with these vendors and negotiate better rates",
            "priority": "HIGH" if excess_spend > bm["price_anomaly_high_priority"] else "MEDIUM",
        })

    logger.info("Rule 3 flagged %d categories with price anomalies", len(insights))
    return insights


# ---------------------------------------------------------------------------
# Rule 4: Volume Opportunities
# ---------------------------------------------------------------------------

def detect_volume_opportunities(
    records: Records,
    benchmarks: dict[str, float] | None = None,
) -> list[dict[str, Any]]:
    """Flag vendors whose spend qualifies for negotiated volume pricing.

    Args:
        records: Procurement records.
        benchmarks: Benchmark constants.

    Returns:
        List of ``volume_opportunity`` insights, one per qualifying vendor.
    """
    bm = benchmarks or DEFAULT_BENCHMARKS
    df = to_frame(records)
    threshold = bm["volume_discount_threshold"]
    logger.info("Running Rule 4: Volume Opportunity Detection (threshold=%s)", _money(threshold))

    insights = []
    for agg in group_by_vendor(df):
        if agg["spend"] <= threshold:
            continue
        savings = agg["spend"] * bm["volume_discount_rate"]
        insights.append({
            "type": "volume_opportunity",
            "title": f"Volume Discount Opportunity: {agg['vendor']}",
            "description": "High spend volume qualifies for negotiated discounts",
            "vendor": agg["vendor"],
            "annual_spend": agg["spend"],
            "transaction_count": agg["count"],
            "savings": savings,
            "confidence": bm["volume_confidence"],
            "evidence": [
                f"Annual spend: {_money(agg['spend'])}",
                f"{agg['count']} transactions",
                f"Potential {bm['volume_discount_rate'] * 100:g}% volume discount = {_money(savings)}",
            ],
            "next_step": "Negotiate volume-based pricing with this vendor",
            "priority": "HIGH" if savings > bm["volume_high_priority"] else "MEDIUM",
        })

    logger.info("Rule 4 flagged %d volume discount opportunities", len(insights))
    return insights


# ---------------------------------------------------------------------------
# Rule 5: Tail Spend
# ---------------------------------------------------------------------------

def detect_tail_spend(
    records: Records,
    benchmarks: dict[str, float] | None = None,
) -> list[dict[str, Any]]:
    """Flag low-share vendors that still generate repeated transactions.

    A tail vendor holds strictly less than ``tail_spend_share`` of total spend
    and has more than ``tail_min_transactions`` transactions. One-off small
    purchases are deliberately excluded.

    Args:
        records: Procurement records.
        benchmarks: Benchmark constants.

    Returns:
        Empty list, or a single aggregate ``tail_spend`` insight.
    """
    bm = benchmarks or DEFAULT_BENCHMARKS
    df = to_frame(records)
    logger.info(
        "Running Rule 5: Tail Spend Detection (share < %.0f%%, > %d transactions)",
        bm["tail_spend_share"] * 100,
        bm["tail_min_transactions"],
    )

    aggregates = group_by_vendor(df)
    total_spend = sum(agg["spend"] for agg in aggregates)
    tail = [
        agg for agg in aggregates
        if agg["spend"] < total_spend * bm["tail_spend_share"]
        and agg["count"] > bm["tail_min_transactions"]
    ]
    if not tail:
        logger.info("Rule 5 found no tail vendors")
        return []

    tail_spend = sum(agg["spend"] for agg in tail)
    savings = tail_spend * bm["tail_consolidation_savings"]
    logger.info("Rule 5 flagged %d tail vendors | tail spend %s", len(tail), _money(tail_spend))
    return [{
        "type": "tail_spend",
        "title": "Tail Spend Consolidation Opportunity",
        "description": (
            f"{len(tail)} low-volume vendors creating administrative overhead"
        ),
        "tail_vendor_count": len(tail),
        "tail_spend": tail_spend,
        "tail_vendors": [agg["vendor"] for agg in tail],
        "savings": savings,
        "confidence": bm["tail_confidence"],
        "evidence": [
            f"{len(tail)} vendors with minimal spend",
            f"Total tail spend: {_money(tail_spend)}",
            f"Consolidation savings: {_money(savings)}",
        ],
        "next_step": "Consolidate tail spend with preferred vendors",
        "priority": "MEDIUM" if savings > bm["tail_medium_priority"] else "LOW",
    }]


DETECTORS = {
    "duplicateVendors": detect_duplicate_vendors,
    "offContractSpend": detect_off_contract_spend,
    "priceAnomalies": detect_price_anomalies,
    "contractOpportunities": detect_volume_opportunities,
    "tailSpend": detect_tail_spend,
}
