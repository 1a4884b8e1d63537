"""
config.py — YAML configuration and benchmark constants.

Benchmarks are the fixed multipliers and thresholds every detector applies to
computed spend aggregates. The module defaults below are used unless a
``benchmarks:`` section in config.yaml overrides individual keys.
"""

import logging
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_BENCHMARKS: dict[str, float] = {
    # Duplicate vendors
    "duplicate_vendor_savings": 0.08,
    "duplicate_high_priority": 10000,
    # Off-contract spend
    "preferred_spend_share": 0.80,
    "off_contract_penalty": 0.12,
    "off_contract_confidence": 0.85,
    "off_contract_high_priority": 15000,
    # Price anomalies
    "price_min_sample": 3,
    "iqr_fence_multiplier": 1.5,
    "price_anomaly_confidence": 0.78,
    "price_anomaly_high_priority": 5000,
    # Volume discounts
    "volume_discount_threshold": 50000,
    "volume_discount_rate": 0.05,
    "volume_confidence": 0.72,
    "volume_high_priority": 8000,
    # Tail spend
    "tail_spend_share": 0.05,
    "tail_min_transactions": 2,
    "tail_consolidation_savings": 0.12,
    "tail_confidence": 0.68,
    "tail_medium_priority": 3000,
    # Categorisation
    "category_consolidation_min_vendors": 3,
    "category_consolidation_min_spend": 10000,
    "category_consolidation_savings": 0.08,
    "category_consolidation_confidence": 0.75,
    "category_consolidation_high_priority": 5000,
    "transaction_efficiency_min_count": 10,
    "transaction_efficiency_max_avg": 1000,
    "admin_cost_per_transaction": 25,
    "transaction_efficiency_confidence": 0.68,
    "transaction_efficiency_medium_priority": 1000,
    "major_purchase_amount": 50000,
    "small_purchase_amount": 500,
}


def load_config(config_path: str = "config.yaml") -> dict[str, Any]:
    """Load YAML configuration file.

    Args:
        config_path: Path to config.yaml relative to project root.

    Returns:
        Parsed configuration dictionary.

    Raises:
        FileNotFoundError: If config file does not exist.
        yaml.YAMLError: If config file is malformed.
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")
    with open(config_path, "r") as fh:
        config = yaml.safe_load(fh) or {}
    logger.debug("Configuration loaded from %s", config_path)
    return config


def load_benchmarks(cfg: dict[str, Any] | None = None) -> dict[str, float]:
    """Merge the ``benchmarks`` section of a config onto the defaults.

    Raises:
        ValueError: If the config names a benchmark that does not exist.
    """
    benchmarks = dict(DEFAULT_BENCHMARKS)
    overrides = (cfg or {}).get("benchmarks") or {}
    unknown = set(overrides) - set(DEFAULT_BENCHMARKS)
    if unknown:
        raise ValueError(f"Unknown benchmark keys: {sorted(unknown)}")
    benchmarks.update(overrides)
    if overrides:
        logger.info("Applied %d benchmark override(s)", len(overrides))
    return benchmarks
