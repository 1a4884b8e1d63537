"""
procurement-spend-insights — Source package.

Modules:
    normalizer      — Vendor name canonicalisation and string similarity
    config          — YAML configuration and benchmark constants
    ingest          — CSV / Excel upload parsing and header mapping
    data_generator  — Demo records and synthetic dataset with injected findings
    detector        — Duplicate, off-contract, price, volume and tail-spend detectors
    categorizer     — Keyword categorisation and category-level insights
    scorer          — Insight ranking, confidence and action plan
    analyzer        — Full analysis orchestration and data-quality checks
    stores          — Trend snapshots and contract renewal alerts
    commentary      — Chat-completions client for narrative commentary
    reporter        — Excel workbook and insight CSV export
    dashboard       — Interactive Plotly HTML dashboard
"""
