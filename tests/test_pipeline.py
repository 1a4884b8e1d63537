"""
test_pipeline.py — Tests for the CLI pipeline stages and the scheduled run.

The commentary service is never contacted: contract detection is patched on
the client class.
"""

import argparse
import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

sys.path.insert(0, str(Path(__file__).parent.parent))

import scheduler
from main import run_pipeline
from spend_insights.commentary import CommentaryClient
from spend_insights.stores import ContractAlertStore, TrendStore

logger = logging.getLogger("test_pipeline")


@pytest.fixture
def config_path(tmp_path) -> str:
    cfg = {
        "paths": {"output_dir": str(tmp_path / "outputs"), "log_dir": str(tmp_path / "logs")},
        "commentary": {"base_url": "http://localhost:3000", "model": "llama3.1:8b"},
    }
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(cfg))
    return str(path)


def _contracts_only_args(config_path: str) -> argparse.Namespace:
    args = scheduler._full_run_args(config_path, contract_alerts=True)
    args.full_run = False
    args.sample = True
    return args


class TestContractStage:

    def test_offset_renewal_dates_become_alerts(self, config_path):
        renewal = (datetime.now(timezone.utc) + timedelta(days=10)).strftime("%Y-%m-%dT%H:%M:%SZ")
        contracts = [{"vendor": "Global Tech Solutions", "renewalDate": renewal, "annualValue": 214750}]
        store = ContractAlertStore()
        with patch.object(CommentaryClient, "detect_contracts", return_value=contracts):
            exit_code = run_pipeline(_contracts_only_args(config_path), logger, alert_store=store)
        assert exit_code == 0
        alerts = store.get_active_alerts()
        assert [a["vendor"] for a in alerts] == ["Global Tech Solutions"]
        assert alerts[0]["priority"] == "HIGH"

    def test_malformed_contracts_do_not_fail_run(self, config_path):
        store = ContractAlertStore()
        with patch.object(CommentaryClient, "detect_contracts", return_value=["not a contract"]):
            exit_code = run_pipeline(_contracts_only_args(config_path), logger, alert_store=store)
        assert exit_code == 0
        assert store.get_active_alerts() == []


class TestScheduledRun:

    def test_full_run_args(self, config_path):
        args = scheduler._full_run_args(config_path)
        assert args.full_run is True
        assert args.contracts is False
        assert scheduler._full_run_args(config_path, contract_alerts=True).contracts is True

    def test_contract_stage_runs_on_schedule(self, config_path):
        trend_store = TrendStore()
        alert_store = ContractAlertStore()
        with patch("main.run_pipeline", return_value=0) as mock_run:
            scheduler._run_full_pipeline(config_path, 1, 0, trend_store, alert_store)
        args, _, trends, alerts = mock_run.call_args.args
        assert args.contracts is True
        assert trends is trend_store
        assert alerts is alert_store

    def test_retries_until_success(self, config_path):
        with patch("main.run_pipeline", side_effect=[1, 0]) as mock_run:
            scheduler._run_full_pipeline(
                config_path, 3, 0, TrendStore(), ContractAlertStore(), contract_alerts=False
            )
        assert mock_run.call_count == 2
        assert mock_run.call_args.args[0].contracts is False
