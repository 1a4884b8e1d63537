"""
analyzer.py — Analysis Orchestrator.

Runs the data-quality pre-check and every spend detector over one batch of
records, then ranks the insights and attaches the summary and action plan.
Each call is independent: nothing is cached or shared between batches.
"""

import logging
import time
from typing import Any

import pandas as pd

from spend_insights.config import DEFAULT_BENCHMARKS
from spend_insights.detector import (
    DETECTORS,
    Records,
    detect_duplicate_vendors,
    detect_off_contract_spend,
    detect_price_anomalies,
    detect_tail_spend,
    detect_volume_opportunities,
    to_frame,
)
from spend_insights.scorer import (
    build_action_plan,
    calculate_overall_confidence,
    sort_insights,
)

logger = logging.getLogger(__name__)

FULL_ANALYSIS = "full"

FULL_PIPELINE = (
    detect_duplicate_vendors,
    detect_off_contract_spend,
    detect_price_anomalies,
    detect_volume_opportunities,
    detect_tail_spend,
)


def _materialize(records: Records) -> pd.DataFrame | list[dict[str, Any]]:
    if isinstance(records, pd.DataFrame):
        return records
    return list(records)


def _blank(series: pd.Series) -> pd.Series:
    return series.isna() | series.astype(str).str.strip().eq("")


def _parse_date(value: Any):
    try:
        return pd.to_datetime(value, errors="coerce")
    except (TypeError, ValueError, OverflowError):
        return pd.NaT


def check_data_quality(records: Records) -> list[str]:
    """Report dirty values without rejecting any record.

    Counts missing or zero amounts, non-numeric and negative amounts, blank
    vendor names and dates that are present but cannot be parsed.

    Args:
        records: Procurement records (never modified).

    Returns:
        Human-readable issue strings; empty when the batch is clean.
    """
    raw = records.copy() if isinstance(records, pd.DataFrame) else pd.DataFrame.from_records(list(records))
    if raw.empty:
        return []

    empty_col = pd.Series([None] * len(raw), index=raw.index, dtype=object)
    amount_raw = raw["amount"] if "amount" in raw.columns else empty_col
    vendor_raw = raw["vendor"] if "vendor" in raw.columns else empty_col
    date_raw = raw["date"] if "date" in raw.columns else empty_col

    amounts = pd.to_numeric(amount_raw, errors="coerce")
    amount_blank = _blank(amount_raw)
    date_present = ~_blank(date_raw)

    counts = [
        (int((amount_blank | amounts.eq(0)).sum()), "records missing amounts"),
        (int((~amount_blank & amounts.isna()).sum()), "records with non-numeric amounts"),
        (int(amounts.lt(0).sum()), "records with negative amounts"),
        (int(_blank(vendor_raw).sum()), "records missing vendor names"),
        (
            int(date_raw[date_present].map(_parse_date).isna().sum()),
            "records with invalid dates",
        ),
    ]
    issues = [f"{count} {label}" for count, label in counts if count > 0]

    for issue in issues:
        logger.warning("Data quality: %s", issue)
    return issues


def analyze(
    records: Records,
    benchmarks: dict[str, float] | None = None,
) -> dict[str, Any]:
    """Run the full detector pipeline and return a ranked analysis result.

    Args:
        records: Procurement records.
        benchmarks: Benchmark constants (defaults to DEFAULT_BENCHMARKS).

    Returns:
        Dict with keys:
            insights     — all insights sorted by savings, highest first
            summary      — totalSavings, totalRisk, recordsAnalyzed,
                           analysisTimeMs, confidence
            dataQuality  — issue strings from check_data_quality()
            actionPlan   — see scorer.build_action_plan()
    """
    start = time.perf_counter()
    bm = benchmarks or DEFAULT_BENCHMARKS
    records = _materialize(records)
    logger.info("Analyzing %d procurement records", len(records))

    quality_issues = check_data_quality(records)
    df = to_frame(records)

    insights = []
    for detector in FULL_PIPELINE:
        insights.extend(detector(df, bm))

    ranked = sort_insights(insights)
    total_savings = sum(i.get("savings") or 0 for i in ranked)
    total_risk = sum(i.get("risk_amount") or 0 for i in ranked)
    elapsed_ms = int(round((time.perf_counter() - start) * 1000))

    logger.info(
        "Analysis complete — %d insights | savings $%.2f | risk $%.2f | %d ms",
        len(ranked),
        total_savings,
        total_risk,
        elapsed_ms,
    )
    return {
        "insights": ranked,
        "summary": {
            "totalSavings": total_savings,
            "totalRisk": total_risk,
            "recordsAnalyzed": len(df),
            "analysisTimeMs": elapsed_ms,
            "confidence": calculate_overall_confidence(ranked),
        },
        "dataQuality": quality_issues,
        "actionPlan": build_action_plan(ranked),
    }


def run_analysis(
    records: Records,
    analysis_type: str = FULL_ANALYSIS,
    benchmarks: dict[str, float] | None = None,
) -> dict[str, Any]:
    """Dispatch a full analysis or a single named detector.

    Named modes are the keys of detector.DETECTORS. Unknown modes fall back
    to the full analysis.

    Returns:
        The full analyze() result, or for a single detector
        {insights, summary: {totalSavings, recordsAnalyzed}, analysisType}.
    """
    if analysis_type != FULL_ANALYSIS and analysis_type not in DETECTORS:
        logger.warning("Unknown analysis type %r — running full analysis", analysis_type)
    if analysis_type not in DETECTORS:
        return analyze(records, benchmarks)

    records = _materialize(records)
    insights = DETECTORS[analysis_type](records, benchmarks)
    return {
        "insights": insights,
        "summary": {
            "totalSavings": sum(i.get("savings") or 0 for i in insights),
            "recordsAnalyzed": len(records),
        },
        "analysisType": analysis_type,
    }
