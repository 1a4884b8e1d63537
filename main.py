"""
main.py — Procurement Spend Insights — CLI Entry Point.

Provides a command-line interface to run any combination of pipeline stages:
  1. generate-data   — Create synthetic procurement dataset
  2. analyze         — Run the spend detectors (full or a single detector)
  3. categorize      — Category breakdown and category-level insights
  4. report          — Generate Excel workbook and insight CSV
  5. dashboard       — Build interactive HTML dashboard
  6. commentary      — Ask the commentary service for a narrative summary
  7. contracts       — Detect contract renewals and raise renewal alerts
  8. full-run        — Execute stages 1-5 in sequence (default for scheduler)

Usage examples:
    python main.py --full-run
    python main.py --analyze --analysis-type duplicateVendors
    python main.py --analyze --categorize --report --input exports/spend.xlsx
    python main.py --sample --analyze --commentary

Environment:
    COMMENTARY_API_KEY  Bearer token for the commentary endpoint (optional)
    LOG_LEVEL           Override log verbosity (default: INFO)
"""

import argparse
import logging
import logging.handlers
import os
import sys
from datetime import datetime
from pathlib import Path

import yaml

ANALYSIS_TYPES = [
    "full",
    "duplicateVendors",
    "offContractSpend",
    "priceAnomalies",
    "contractOpportunities",
    "tailSpend",
]


def _configure_logging(
    log_dir: str = "logs",
    level: str = "INFO",
    filename: str | None = None,
    backup_count: int = 7,
) -> None:
    """Attach a rotating file handler and a stdout handler to the root logger.

    Log level is read from the LOG_LEVEL environment variable or the `level`
    parameter. The scheduler reuses this with its own fixed filename.

    Args:
        log_dir: Directory to write log files into.
        level: Default log level string (DEBUG, INFO, WARNING, ERROR).
        filename: Log file name (default: spend_insights_YYYYMMDD.log).
        backup_count: Rotated files to keep.
    """
    effective_level = os.environ.get("LOG_LEVEL", level).upper()
    numeric_level = getattr(logging, effective_level, logging.INFO)

    Path(log_dir).mkdir(parents=True, exist_ok=True)
    filename = filename or f"spend_insights_{datetime.today().strftime('%Y%m%d')}.log"

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)-30s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    file_handler = logging.handlers.RotatingFileHandler(
        Path(log_dir) / filename, maxBytes=10 * 1024 * 1024, backupCount=backup_count, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(stream_handler)

    logging.getLogger("urllib3").setLevel(logging.WARNING)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="spend-insights",
        description=(
            "Procurement Spend Insights — "
            "deterministic savings and risk analysis for procurement records.\n\n"
            "Run --full-run to execute generate → analyze → categorize → report → dashboard."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --full-run
  python main.py --analyze --analysis-type priceAnomalies
  python main.py --analyze --report --dashboard --input data/raw/spend.csv
  python main.py --sample --analyze --categorize --commentary
        """,
    )

    parser.add_argument(
        "--config",
        default="config.yaml",
        metavar="PATH",
        help="Path to configuration YAML file (default: config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity level (default: INFO)",
    )

    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--input",
        metavar="PATH",
        help="CSV or Excel file to analyse (default: paths.raw_data from config)",
    )
    source.add_argument(
        "--sample",
        action="store_true",
        help="Analyse the built-in twelve-record demo set",
    )

    stages = parser.add_argument_group("Pipeline Stages")
    stages.add_argument(
        "--generate-data",
        action="store_true",
        help="Generate synthetic procurement dataset",
    )
    stages.add_argument(
        "--analyze",
        action="store_true",
        help="Run the spend detectors",
    )
    stages.add_argument(
        "--analysis-type",
        default="full",
        metavar="TYPE",
        help=f"Detector to run with --analyze: {', '.join(ANALYSIS_TYPES)} (default: full)",
    )
    stages.add_argument(
        "--categorize",
        action="store_true",
        help="Build category breakdown and category-level insights",
    )
    stages.add_argument(
        "--report",
        action="store_true",
        help="Generate Excel workbook and insight CSV",
    )
    stages.add_argument(
        "--dashboard",
        action="store_true",
        help="Build interactive Plotly HTML dashboard",
    )
    stages.add_argument(
        "--commentary",
        action="store_true",
        help="Request a narrative summary from the commentary service",
    )
    stages.add_argument(
        "--contracts",
        action="store_true",
        help="Detect contract renewals via the commentary service and list alerts",
    )
    stages.add_argument(
        "--full-run",
        action="store_true",
        help="Execute generate → analyze → categorize → report → dashboard",
    )
    return parser


def _stage_banner(logger: logging.Logger, title: str) -> None:
    logger.info("=" * 60)
    logger.info(title)
    logger.info("=" * 60)


def run_pipeline(
    args: argparse.Namespace,
    logger: logging.Logger,
    trend_store=None,
    alert_store=None,
) -> int:
    """Execute the requested pipeline stages and return an exit code.

    Records, analysis and categorization results are shared in memory between
    stages. The trend and alert stores are owned by the caller so a long-lived
    process (the scheduler) accumulates history across runs.

    Args:
        args: Parsed CLI arguments.
        logger: Configured logger.
        trend_store: Optional TrendStore; a fresh one is created if omitted.
        alert_store: Optional ContractAlertStore; created from config if omitted.

    Returns:
        0 on success, 1 on any stage failure.
    """
    from spend_insights.analyzer import FULL_ANALYSIS, run_analysis
    from spend_insights.categorizer import categorize_spend
    from spend_insights.commentary import CommentaryClient
    from spend_insights.config import load_benchmarks, load_config
    from spend_insights.dashboard import generate_dashboard
    from spend_insights.data_generator import generate_dataset, sample_records
    from spend_insights.ingest import load_records
    from spend_insights.reporter import export_insights_csv, generate_report
    from spend_insights.stores import ContractAlertStore, TrendStore

    try:
        cfg = load_config(args.config)
        benchmarks = load_benchmarks(cfg)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as exc:
        logger.error("Configuration error: %s", exc)
        return 1

    if trend_store is None:
        trend_store = TrendStore(cfg.get("trends", {}).get("max_snapshots", 12))
    if alert_store is None:
        alert_store = ContractAlertStore(**cfg.get("contracts", {}))

    do_all = args.full_run
    analysis_type = FULL_ANALYSIS if do_all else args.analysis_type
    needs_result = do_all or args.analyze or args.report or args.dashboard or args.commentary
    needs_categories = do_all or args.categorize or args.report or args.dashboard
    needs_records = needs_result or needs_categories or args.contracts

    records = None
    result = None
    categorization = None

    # -------------------------------------------------------------------------
    # Stage 1: Generate data
    # -------------------------------------------------------------------------
    if do_all or args.generate_data:
        _stage_banner(logger, "STAGE 1: Data Generation")
        try:
            df = generate_dataset(args.config)
            logger.info("Data generation complete — %d records written", len(df))
        except Exception as exc:
            logger.error("Data generation failed: %s", exc, exc_info=True)
            return 1

    # -------------------------------------------------------------------------
    # Load records (required by every later stage)
    # -------------------------------------------------------------------------
    if needs_records:
        try:
            if getattr(args, "sample", False):
                records = sample_records()
                logger.info("Using built-in demo set (%d records)", len(records))
            else:
                ingestion = cfg.get("ingestion", {})
                records = load_records(
                    args.input or cfg["paths"]["raw_data"],
                    ingestion.get("header_aliases"),
                    ingestion.get("defaults"),
                )
        except (FileNotFoundError, ValueError) as exc:
            logger.error("Could not load procurement records: %s", exc)
            return 1

    # -------------------------------------------------------------------------
    # Stage 2: Analysis
    # -------------------------------------------------------------------------
    if needs_result:
        _stage_banner(logger, f"STAGE 2: Spend Analysis ({analysis_type})")
        try:
            result = run_analysis(records, analysis_type, benchmarks)
            logger.info(
                "Analysis complete — %d insights | potential savings $%.2f",
                len(result["insights"]),
                result["summary"]["totalSavings"],
            )
            if "actionPlan" in result:
                trend_store.add_snapshot(result, len(records))
        except Exception as exc:
            logger.error("Analysis failed: %s", exc, exc_info=True)
            return 1

    # -------------------------------------------------------------------------
    # Stage 3: Categorization
    # -------------------------------------------------------------------------
    if needs_categories:
        _stage_banner(logger, "STAGE 3: Spend Categorization")
        try:
            categorization = categorize_spend(records, benchmarks)
            logger.info(
                "Categorization complete — %d categories | top: %s",
                categorization["summary"]["totalCategories"],
                categorization["summary"]["topCategory"],
            )
        except Exception as exc:
            logger.error("Categorization failed: %s", exc, exc_info=True)
            return 1

    full_result = result is not None and "actionPlan" in result

    # -------------------------------------------------------------------------
    # Stage 4: Excel Report + insight CSV
    # -------------------------------------------------------------------------
    if do_all or args.report:
        if not full_result:
            logger.warning("Report needs a full analysis — skipping (use --analysis-type full).")
        else:
            _stage_banner(logger, "STAGE 4: Excel Report Generation")
            try:
                report_path = generate_report(result, categorization, args.config)
                csv_name = cfg["paths"]["insights_csv_filename"].format(
                    date=datetime.today().strftime("%Y-%m-%d")
                )
                csv_path = export_insights_csv(result, Path(cfg["paths"]["output_dir"]) / csv_name)
                logger.info("Report generated: %s | CSV: %s", report_path, csv_path)
            except Exception as exc:
                logger.error("Report generation failed: %s", exc, exc_info=True)
                return 1

    # -------------------------------------------------------------------------
    # Stage 5: Interactive Dashboard
    # -------------------------------------------------------------------------
    if do_all or args.dashboard:
        if not full_result:
            logger.warning("Dashboard needs a full analysis — skipping (use --analysis-type full).")
        else:
            _stage_banner(logger, "STAGE 5: Interactive Dashboard")
            try:
                trend_data = trend_store.get_trend_data() if len(trend_store) else None
                dash_path = generate_dashboard(result, categorization, trend_data, args.config)
                logger.info("Dashboard generated: %s", dash_path)
            except Exception as exc:
                logger.error("Dashboard generation failed: %s", exc, exc_info=True)
                return 1

    # -------------------------------------------------------------------------
    # Stage 6: Commentary (non-fatal)
    # -------------------------------------------------------------------------
    if args.commentary and result is not None:
        _stage_banner(logger, "STAGE 6: Narrative Commentary")
        try:
            reply = CommentaryClient.from_config(cfg).summarize(result)
            if reply["success"]:
                logger.info("Commentary (%s):\n%s", reply["model"], reply["commentary"])
            else:
                logger.warning("Commentary unavailable: %s", reply["error"])
        except KeyError as exc:
            logger.warning("Commentary not configured — missing %s", exc)
        except Exception as exc:
            logger.warning("Commentary stage failed: %s", exc, exc_info=True)

    # -------------------------------------------------------------------------
    # Stage 7: Contract renewal alerts (non-fatal)
    # -------------------------------------------------------------------------
    if args.contracts:
        _stage_banner(logger, "STAGE 7: Contract Renewal Alerts")
        try:
            contracts = CommentaryClient.from_config(cfg).detect_contracts(records)
            alert_store.add_contracts(contracts)
            for alert in alert_store.get_active_alerts():
                logger.info(
                    "  [%-6s] %-30s renews %s (%d days)",
                    alert["priority"],
                    alert["vendor"],
                    alert["renewalDate"],
                    alert["daysUntilRenewal"],
                )
            counts = alert_store.summary()
            logger.info(
                "Active alerts — HIGH=%d | MEDIUM=%d | LOW=%d",
                counts["HIGH"],
                counts["MEDIUM"],
                counts["LOW"],
            )
        except KeyError as exc:
            logger.warning("Commentary not configured — missing %s", exc)
        except Exception as exc:
            logger.warning("Contract alert stage failed: %s", exc, exc_info=True)

    # -------------------------------------------------------------------------
    # Final summary
    # -------------------------------------------------------------------------
    logger.info("=" * 60)
    logger.info("PIPELINE COMPLETE")
    if result is not None:
        summary = result["summary"]
        logger.info("  %-35s $%.2f", "Potential savings:", summary["totalSavings"])
        if "totalRisk" in summary:
            logger.info("  %-35s $%.2f", "Risk exposure:", summary["totalRisk"])
        logger.info("  %-35s %d", "Records analysed:", summary["recordsAnalyzed"])
        logger.info("  %-35s %d", "Insights found:", len(result["insights"]))
        for issue in result.get("dataQuality", []):
            logger.info("  Data quality: %s", issue)
    logger.info("=" * 60)
    return 0


def main() -> None:
    """Parse arguments, configure logging, and run the pipeline."""
    parser = _build_parser()
    args = parser.parse_args()

    try:
        with open(args.config, "r") as fh:
            cfg = yaml.safe_load(fh) or {}
        log_dir = cfg.get("paths", {}).get("log_dir", "logs")
    except (OSError, yaml.YAMLError):
        log_dir = "logs"

    _configure_logging(log_dir=log_dir, level=args.log_level)
    logger = logging.getLogger(__name__)

    no_stage_selected = not any([
        args.full_run, args.generate_data, args.analyze, args.categorize,
        args.report, args.dashboard, args.commentary, args.contracts,
    ])
    if no_stage_selected:
        parser.print_help()
        sys.exit(0)

    logger.info(
        "Procurement Spend Insights | %s",
        datetime.today().strftime("%Y-%m-%d %H:%M:%S"),
    )
    logger.info("Config: %s | Log level: %s", args.config, args.log_level)

    sys.exit(run_pipeline(args, logger))


if __name__ == "__main__":
    main()
