"""
data_generator.py — Sample and Synthetic Procurement Record Generator.

Provides the fixed twelve-record demo set and generates a realistic
procurement dataset with controlled finding injection. Injected rows are
marked so the detection engine can be validated deterministically.

Outputs:
    data/raw/procurement.csv   — primary dataset
"""

import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

from spend_insights.config import load_config

logger = logging.getLogger(__name__)

SAMPLE_RECORDS = [
    {"vendor": "Acme Corp", "category": "Office Supplies", "amount": 15420, "date": "2024-12-15", "po_number": "PO-2024-1001"},
    {"vendor": "ACME Corporation", "category": "Office Supplies", "amount": 18900, "date": "2024-11-28", "po_number": "PO-2024-0987"},
    {"vendor": "Acme Corp.", "category": "Office Supplies", "amount": 22100, "date": "2024-10-20", "po_number": "PO-2024-0856"},
    {"vendor": "Global Tech Solutions", "category": "IT Equipment", "amount": 89750, "date": "2024-12-10", "po_number": "PO-2024-1002"},
    {"vendor": "Global Tech Solutions", "category": "IT Equipment", "amount": 125000, "date": "2024-11-15", "po_number": "PO-2024-0923"},
    {"vendor": "TechMart Express", "category": "IT Equipment", "amount": 45000, "date": "2024-12-05", "po_number": "PO-2024-0999"},
    {"vendor": "Premium Office Co", "category": "Office Supplies", "amount": 12300, "date": "2024-12-01", "po_number": "PO-2024-0995"},
    {"vendor": "Office Depot Pro", "category": "Office Supplies", "amount": 8750, "date": "2024-12-02", "po_number": "PO-2024-0996"},
    {"vendor": "Industrial Supplies Inc", "category": "Manufacturing", "amount": 45600, "date": "2024-12-08", "po_number": "PO-2024-0998"},
    {"vendor": "Industrial Supplies Inc", "category": "Manufacturing", "amount": 67800, "date": "2024-11-22", "po_number": "PO-2024-0945"},
    {"vendor": "Quick Print Services", "category": "Marketing", "amount": 8750, "date": "2024-12-12", "po_number": "PO-2024-1005"},
    {"vendor": "Logistics Partners LLC", "category": "Shipping", "amount": 23400, "date": "2024-12-01", "po_number": "PO-2024-0994"},
]


def sample_records() -> list[dict[str, Any]]:
    """Return a fresh copy of the demo record set."""
    return [dict(record) for record in SAMPLE_RECORDS]


def _spelling_variant(name: str, rng: np.random.Generator) -> str:
    """Produce a plausible alternative spelling of a vendor name.

    Variants only differ by case, punctuation or legal suffix so they still
    normalise to the original vendor.
    """
    variants = [
        name.upper(),
        f"{name}.",
        f"{name} Inc",
        f"{name}, LLC",
        name.replace("Corp", "Corporation") if "Corp" in name else f"{name} Ltd",
    ]
    return variants[int(rng.integers(0, len(variants)))]


def _generate_base_records(
    cfg: dict[str, Any],
    rng: np.random.Generator,
) -> pd.DataFrame:
    """Generate the baseline record corpus without injected findings.

    Vendors are drawn by configured weight; amounts vary ±8% around each
    vendor's typical order value and dates are spread uniformly over the
    history window.

    Args:
        cfg: Full configuration dictionary.
        rng: Seeded NumPy random generator for reproducibility.

    Returns:
        DataFrame with columns:
            vendor, category, amount, date, po_number, is_injected, injected_type
    """
    gen_cfg = cfg["data_generation"]
    n_records = gen_cfg["record_count"]
    days = gen_cfg["days_history"]
    vendors = gen_cfg["vendors"]

    weights = np.array([v.get("weight", 1.0) for v in vendors], dtype=float)
    weights = weights / weights.sum()
    start_date = datetime.today() - timedelta(days=days)

    records = []
    for index in range(n_records):
        vendor = vendors[int(rng.choice(len(vendors), p=weights))]
        typical = vendor["typical_amount"]
        amount = round(float(rng.normal(typical, typical * 0.08)), 2)
        txn_date = start_date + timedelta(days=int(rng.integers(0, days)))
        records.append(
            {
                "vendor": vendor["name"],
                "category": vendor["category"],
                "amount": max(10.0, amount),
                "date": txn_date.strftime("%Y-%m-%d"),
                "po_number": f"PO-{txn_date.year}-{index + 1:05d}",
                "is_injected": False,
                "injected_type": "",
            }
        )

    df = pd.DataFrame(records)
    logger.info("Generated %d base records across %d days", len(df), days)
    return df


def _inject_vendor_variants(
    df: pd.DataFrame,
    rate: float,
    rng: np.random.Generator,
) -> pd.DataFrame:
    """Rewrite vendor names on selected rows with alternative spellings.

    Simulates the same supplier being set up more than once in the vendor
    master (e.g. 'Acme Corp' and 'ACME CORP.').
    """
    n_variants = max(1, int(len(df) * rate))
    indices = rng.choice(df.index, size=n_variants, replace=False)
    for idx in indices:
        df.at[idx, "vendor"] = _spelling_variant(df.at[idx, "vendor"], rng)
        df.at[idx, "is_injected"] = True
        df.at[idx, "injected_type"] = "duplicate_vendor"

    logger.info("Injected %d vendor name variants", n_variants)
    return df


def _inject_price_outliers(
    df: pd.DataFrame,
    rate: float,
    rng: np.random.Generator,
) -> pd.DataFrame:
    """Inflate amounts on selected rows to 4-8× the vendor's usual order.

    The multiplier puts each row far beyond the category's Tukey fence.
    """
    n_outliers = max(1, int(len(df) * rate))
    indices = rng.choice(df.index, size=n_outliers, replace=False)
    for idx in indices:
        df.at[idx, "amount"] = round(df.at[idx, "amount"] * float(rng.uniform(4.0, 8.0)), 2)
        df.at[idx, "is_injected"] = True
        df.at[idx, "injected_type"] = (
            "price_anomaly"
            if df.at[idx, "injected_type"] == ""
            else df.at[idx, "injected_type"] + "|price_anomaly"
        )

    logger.info("Injected %d price outliers", n_outliers)
    return df


def _inject_tail_vendors(
    df: pd.DataFrame,
    vendor_count: int,
    rng: np.random.Generator,
    days: int,
) -> pd.DataFrame:
    """Append small vendors with several low-value transactions each."""
    start_date = datetime.today() - timedelta(days=days)
    extra_records = []
    for vendor_index in range(vendor_count):
        name = f"Local Vendor {vendor_index + 1:02d}"
        for txn_index in range(int(rng.integers(3, 6))):
            txn_date = start_date + timedelta(days=int(rng.integers(0, days)))
            extra_records.append(
                {
                    "vendor": name,
                    "category": "Office Supplies",
                    "amount": round(float(rng.uniform(50.0, 400.0)), 2),
                    "date": txn_date.strftime("%Y-%m-%d"),
                    "po_number": f"PO-TAIL-{vendor_index + 1:02d}{txn_index + 1:02d}",
                    "is_injected": True,
                    "injected_type": "tail_spend",
                }
            )

    result = pd.concat([df, pd.DataFrame(extra_records)], ignore_index=True)
    logger.info(
        "Injected %d tail vendors (%d extra records)", vendor_count, len(extra_records)
    )
    return result


def generate_dataset(config_path: str = "config.yaml") -> pd.DataFrame:
    """Orchestrate full synthetic dataset generation.

    Runs base generation followed by all injection steps in sequence. The
    resulting CSV is written to the path specified in config.yaml.

    Args:
        config_path: Path to configuration YAML file.

    Returns:
        Complete record DataFrame including injected findings.

    Raises:
        OSError: If the output directory cannot be created or written to.
    """
    cfg = load_config(config_path)
    gen_cfg = cfg["data_generation"]
    seed = gen_cfg["seed"]
    rng = np.random.default_rng(seed)

    logger.info("Starting dataset generation (seed=%d)", seed)

    df = _generate_base_records(cfg, rng)

    injection = gen_cfg["injection"]
    df = _inject_vendor_variants(df, injection["vendor_variant_rate"], rng)
    df = _inject_price_outliers(df, injection["price_outlier_rate"], rng)
    df = _inject_tail_vendors(df, injection["tail_vendor_count"], rng, gen_cfg["days_history"])

    df = df.sort_values(["date", "po_number"]).reset_index(drop=True)

    output_path = Path(cfg["paths"]["raw_data"])
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(output_path, index=False)

    logger.info(
        "Dataset written to %s — %d rows | %d injected | $%.2f total spend",
        output_path,
        len(df),
        df["is_injected"].sum(),
        df["amount"].sum(),
    )
    return df
