"""
ingest.py — Spreadsheet / CSV Ingestion.

Reads an uploaded CSV or Excel file and maps its columns onto the record
shape the analyzer expects:

    vendor, category, amount, date, po_number

Source headers vary between ERP exports, so each field is resolved once from
an ordered alias table (first header present wins). Missing values are
replaced with sentinel defaults rather than rejected.
"""

import logging
from datetime import date
from pathlib import Path
from typing import Any

import pandas as pd

logger = logging.getLogger(__name__)

DEFAULT_HEADER_ALIASES: dict[str, list[str]] = {
    "vendor": ["vendor", "Vendor", "supplier", "Supplier", "supplier_name", "Supplier Name"],
    "category": ["category", "Category", "type", "Type"],
    "amount": ["amount", "Amount", "cost", "Cost", "invoice_amount", "Spend"],
    "date": ["date", "Date", "invoice_date", "Invoice Date"],
    "po_number": ["po_number", "PO Number", "po", "PO"],
}

DEFAULT_VALUES: dict[str, str] = {
    "vendor": "Unknown",
    "category": "Uncategorized",
    "po_number": "N/A",
}

EXCEL_SUFFIXES = {".xlsx", ".xlsm"}


def resolve_columns(
    columns: list[str],
    aliases: dict[str, list[str]] | None = None,
) -> dict[str, str | None]:
    """Map each record field to the source header that supplies it.

    Exact alias matches are tried first, in alias order; then a
    case-insensitive match on the same aliases.

    Returns:
        Dict of field -> source column name (None when unresolved).
    """
    aliases = aliases or DEFAULT_HEADER_ALIASES
    stripped = {str(col).strip(): col for col in columns}
    lowered = {name.lower(): col for name, col in stripped.items()}

    resolved = {}
    for field, candidates in aliases.items():
        match = next((stripped[c] for c in candidates if c in stripped), None)
        if match is None:
            match = next((lowered[c.lower()] for c in candidates if c.lower() in lowered), None)
        resolved[field] = match
    return resolved


def normalize_frame(
    df: pd.DataFrame,
    aliases: dict[str, list[str]] | None = None,
    defaults: dict[str, str] | None = None,
) -> list[dict[str, Any]]:
    """Convert a raw upload DataFrame into analyzer records.

    Args:
        df: DataFrame as read from the uploaded file.
        aliases: Field -> accepted header list (see DEFAULT_HEADER_ALIASES).
        defaults: Sentinel values for missing text fields.

    Returns:
        List of record dicts.

    Raises:
        ValueError: If neither a vendor nor an amount column can be found.
    """
    defaults = {**DEFAULT_VALUES, **(defaults or {})}
    mapping = resolve_columns(list(df.columns), aliases)
    if mapping["vendor"] is None and mapping["amount"] is None:
        raise ValueError(
            f"No vendor or amount column found in upload (columns: {list(df.columns)})"
        )

    unresolved = [field for field, col in mapping.items() if col is None]
    if unresolved:
        logger.warning("Columns not found, using defaults for: %s", ", ".join(unresolved))

    n = len(df)

    def _column(field: str) -> pd.Series:
        col = mapping.get(field)
        if col is None:
            return pd.Series([None] * n, index=df.index, dtype=object)
        return df[col]

    def _text(field: str, default: str) -> pd.Series:
        values = _column(field)
        blank = values.isna() | values.astype(str).str.strip().eq("")
        return values.astype(str).str.strip().where(~blank, default)

    today = date.today().isoformat()
    dates = _column("date")
    date_text = dates.map(
        lambda v: v.strftime("%Y-%m-%d") if pd.notna(v) and hasattr(v, "strftime") else v
    )
    date_blank = dates.isna() | date_text.astype(str).str.strip().eq("")

    amounts = _column("amount")
    if not pd.api.types.is_numeric_dtype(amounts):
        # Currency symbols and thousands separators from spreadsheet exports
        amounts = amounts.astype(str).str.replace(r"[$£€,\s]", "", regex=True)

    normalized = pd.DataFrame({
        "vendor": _text("vendor", defaults["vendor"]),
        "category": _text("category", defaults["category"]),
        "amount": pd.to_numeric(amounts, errors="coerce").fillna(0.0).astype(float),
        "date": date_text.astype(str).str.strip().where(~date_blank, today),
        "po_number": _text("po_number", defaults["po_number"]),
    })
    return normalized.to_dict(orient="records")


def load_records(
    path: str | Path,
    aliases: dict[str, list[str]] | None = None,
    defaults: dict[str, str] | None = None,
) -> list[dict[str, Any]]:
    """Load and normalise a CSV or Excel file from disk.

    Args:
        path: Path to a .csv, .xlsx or .xlsm file.
        aliases: Header alias table override.
        defaults: Sentinel default override.

    Returns:
        List of record dicts.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the extension is unsupported or required columns are missing.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(
            f"Procurement data not found at {path}. "
            "Run with --generate-data first or pass --input."
        )

    suffix = path.suffix.lower()
    if suffix == ".csv":
        df = pd.read_csv(path)
    elif suffix in EXCEL_SUFFIXES:
        df = pd.read_excel(path, sheet_name=0)
    else:
        raise ValueError(f"Unsupported file type '{suffix}' (expected .csv, .xlsx or .xlsm)")

    records = normalize_frame(df, aliases, defaults)
    logger.info("Loaded %d records from %s", len(records), path)
    return records
