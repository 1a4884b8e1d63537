"""
scheduler.py — Daily Analysis Scheduler.

Wraps the full pipeline run in APScheduler so the analysis runs at a
configured time every day. Trend snapshots and contract alerts are kept in
stores owned by this process, so monthly trends build up across runs.

Usage:
    python scheduler.py                  # Run daemon (blocks)
    python scheduler.py --run-now        # Trigger one immediate run then exit
    python scheduler.py --config custom.yaml
"""

import argparse
import logging
import signal
import sys
import time
from datetime import datetime

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from spend_insights.config import load_config
from spend_insights.stores import ContractAlertStore, TrendStore

logger = logging.getLogger(__name__)


def _configure_scheduler_logging(log_dir: str) -> None:
    """Log the daemon to a single rotating scheduler.log alongside stdout."""
    from main import _configure_logging

    _configure_logging(log_dir, filename="scheduler.log", backup_count=14)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def _full_run_args(config_path: str, contract_alerts: bool = False) -> argparse.Namespace:
    """Namespace equivalent to ``main.py --full-run [--contracts] --config PATH``."""
    return argparse.Namespace(
        config=config_path,
        log_level="INFO",
        input=None,
        sample=False,
        full_run=True,
        generate_data=False,
        analyze=False,
        analysis_type="full",
        categorize=False,
        report=False,
        dashboard=False,
        commentary=False,
        contracts=contract_alerts,
    )


def _run_full_pipeline(
    config_path: str,
    max_retries: int,
    retry_delay: int,
    trend_store: TrendStore,
    alert_store: ContractAlertStore,
    contract_alerts: bool = True,
) -> None:
    """Execute the full pipeline with retry logic.

    Called by APScheduler on each trigger. Uses main.run_pipeline() so the
    scheduler and CLI share identical pipeline logic.

    Args:
        config_path: Path to configuration YAML.
        max_retries: Maximum attempts per scheduled run.
        retry_delay: Seconds to wait between attempts.
        trend_store: Process-lifetime trend store.
        alert_store: Process-lifetime contract alert store.
        contract_alerts: Also run the contract renewal stage so alerts
            accumulate in alert_store across runs.
    """
    from main import run_pipeline

    logger.info("=" * 70)
    logger.info("SCHEDULED ANALYSIS RUN — %s", datetime.now().strftime("%Y-%m-%d %H:%M:%S"))
    logger.info("=" * 70)

    args = _full_run_args(config_path, contract_alerts)
    for attempt in range(1, max_retries + 1):
        try:
            exit_code = run_pipeline(args, logger, trend_store, alert_store)
            if exit_code == 0:
                logger.info("Scheduled run completed successfully (attempt %d)", attempt)
                return
            logger.error(
                "Pipeline returned non-zero exit code %d (attempt %d)", exit_code, attempt
            )
        except Exception as exc:
            logger.error(
                "Pipeline raised exception (attempt %d): %s", attempt, exc, exc_info=True
            )

        if attempt < max_retries:
            logger.info("Retrying in %d seconds...", retry_delay)
            time.sleep(retry_delay)

    logger.error(
        "Pipeline failed after %d attempt(s) — will retry at next scheduled time",
        max_retries,
    )


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="scheduler",
        description="Daily APScheduler daemon for the Procurement Spend Insights pipeline.",
    )
    parser.add_argument(
        "--config",
        default="config.yaml",
        help="Path to configuration YAML (default: config.yaml)",
    )
    parser.add_argument(
        "--run-now",
        action="store_true",
        help="Execute one pipeline run immediately then exit",
    )
    return parser.parse_args()


def main() -> None:
    """Entry point: configure scheduler and start the blocking daemon."""
    args = _parse_args()
    config_path = args.config

    try:
        cfg = load_config(config_path)
    except FileNotFoundError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)

    _configure_scheduler_logging(cfg.get("paths", {}).get("log_dir", "logs"))

    sched_cfg = cfg.get("scheduler", {})
    run_time = sched_cfg.get("run_time", "07:00")
    timezone = sched_cfg.get("timezone", "UTC")
    max_retries = sched_cfg.get("max_retries", 3)
    retry_delay = sched_cfg.get("retry_delay_seconds", 300)
    run_hour, run_minute = map(int, run_time.split(":"))

    job_kwargs = {
        "config_path": config_path,
        "max_retries": max_retries,
        "retry_delay": retry_delay,
        "trend_store": TrendStore(cfg.get("trends", {}).get("max_snapshots", 12)),
        "alert_store": ContractAlertStore(**cfg.get("contracts", {})),
        "contract_alerts": sched_cfg.get("contract_alerts", True),
    }

    if args.run_now:
        logger.info("--run-now flag set — executing pipeline immediately")
        _run_full_pipeline(**job_kwargs)
        logger.info("Immediate run complete — exiting")
        return

    scheduler = BlockingScheduler(timezone=timezone)
    scheduler.add_job(
        func=_run_full_pipeline,
        trigger=CronTrigger(hour=run_hour, minute=run_minute, timezone=timezone),
        kwargs=job_kwargs,
        id="daily_spend_analysis",
        name="Daily Procurement Spend Analysis",
        replace_existing=True,
        misfire_grace_time=600,
    )

    def _handle_shutdown(signum, frame):
        logger.info("Shutdown signal received — stopping scheduler")
        scheduler.shutdown(wait=False)
        sys.exit(0)

    signal.signal(signal.SIGINT, _handle_shutdown)
    signal.signal(signal.SIGTERM, _handle_shutdown)

    logger.info("Scheduler started — daily run at %s (%s)", run_time, timezone)
    scheduler.start()


if __name__ == "__main__":
    main()
