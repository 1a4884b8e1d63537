"""
stores.py — Trend and Contract-Alert Stores.

In-memory, process-lifetime stores owned by the caller and passed in where
needed. The analyzer never touches them; the CLI and scheduler record
snapshots after each full analysis.

    TrendStore          — monthly analysis snapshots and trend summary
    ContractAlertStore  — upcoming contract renewals with dismiss / snooze
"""

import logging
import math
import uuid
from datetime import datetime, timedelta
from typing import Any

import pandas as pd

logger = logging.getLogger(__name__)


def _direction(change: float) -> str:
    if change > 0:
        return "increasing"
    if change < 0:
        return "decreasing"
    return "stable"


class TrendStore:
    """Monthly snapshots of full-analysis metrics, newest last."""

    def __init__(self, max_snapshots: int = 12):
        self.max_snapshots = max_snapshots
        self._snapshots: list[dict[str, Any]] = []

    def __len__(self) -> int:
        return len(self._snapshots)

    @staticmethod
    def _metrics(result: dict[str, Any]) -> dict[str, Any]:
        insights = result.get("insights") or []
        summary = result.get("summary") or {}
        total_savings = sum(i.get("savings") or 0 for i in insights)
        return {
            "potentialSavings": summary.get("totalSavings", 0),
            "insightsFound": len(insights),
            "offContractSpend": sum(
                i.get("off_contract_spend", 0)
                for i in insights
                if i["type"] == "off_contract_spend"
            ),
            "duplicateVendors": sum(
                len(i.get("vendor_names", []))
                for i in insights
                if i["type"] == "duplicate_vendors"
            ),
            "avgSavingsPerInsight": round(total_savings / len(insights)) if insights else 0,
            "processingTime": (summary.get("analysisTimeMs") or 0) / 1000,
        }

    def add_snapshot(
        self,
        result: dict[str, Any],
        record_count: int,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Record metrics from a full analysis result.

        Any existing snapshot for the same calendar month is replaced, and only
        the most recent ``max_snapshots`` are kept.

        Args:
            result: Output of analyzer.analyze().
            record_count: Number of records analysed.
            now: Snapshot timestamp (defaults to the current time).

        Returns:
            The stored snapshot dict.
        """
        now = now or datetime.now()
        snapshot = {
            "id": f"trend_{uuid.uuid4().hex[:12]}",
            "date": now.strftime("%Y-%m-%d"),
            "month": now.strftime("%b"),
            "year": now.year,
            "metrics": self._metrics(result),
            "recordsProcessed": record_count,
            "createdAt": now.isoformat(),
        }

        self._snapshots = [
            s for s in self._snapshots
            if not (s["month"] == snapshot["month"] and s["year"] == snapshot["year"])
        ]
        self._snapshots.append(snapshot)
        self._snapshots = self._snapshots[-self.max_snapshots:]

        logger.info(
            "Recorded trend snapshot for %s %d (%d insights)",
            snapshot["month"],
            snapshot["year"],
            snapshot["metrics"]["insightsFound"],
        )
        return snapshot

    def get_trend_data(self, months: int = 12) -> dict[str, Any]:
        """Return recent snapshots with a trend summary and chart series."""
        recent = self._snapshots[-months:] if months > 0 else []
        return {
            "trends": recent,
            "summary": self._summarize(recent),
            "chartData": {
                "labels": [s["month"] for s in recent],
                "datasets": {
                    key: [s["metrics"][key] for s in recent]
                    for key in (
                        "potentialSavings",
                        "insightsFound",
                        "offContractSpend",
                        "duplicateVendors",
                        "processingTime",
                    )
                },
            },
        }

    @staticmethod
    def _summarize(trends: list[dict[str, Any]]) -> dict[str, Any] | None:
        if len(trends) < 2:
            return None

        latest, previous = trends[-1]["metrics"], trends[-2]["metrics"]
        return {
            "totalSavingsIdentified": sum(t["metrics"]["potentialSavings"] for t in trends),
            "avgMonthlyInsights": round(
                sum(t["metrics"]["insightsFound"] for t in trends) / len(trends)
            ),
            "complianceImprovement": previous["offContractSpend"] - latest["offContractSpend"],
            "savingsTrend": _direction(latest["potentialSavings"] - previous["potentialSavings"]),
            "insightsTrend": _direction(latest["insightsFound"] - previous["insightsFound"]),
            "bestMonth": max(trends, key=lambda t: t["metrics"]["potentialSavings"]),
        }


class ContractAlertStore:
    """Upcoming contract renewals inside an alerting window."""

    def __init__(
        self,
        alert_window_days: int = 120,
        high_days: int = 30,
        medium_days: int = 60,
    ):
        self.alert_window_days = alert_window_days
        self.high_days = high_days
        self.medium_days = medium_days
        self._alerts: dict[str, dict[str, Any]] = {}

    def _priority(self, days_until_renewal: int) -> str:
        if days_until_renewal <= self.high_days:
            return "HIGH"
        if days_until_renewal <= self.medium_days:
            return "MEDIUM"
        return "LOW"

    def add_contracts(
        self,
        contracts: list[dict[str, Any]],
        today: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """Create alerts for contracts renewing after today and inside the window.

        Args:
            contracts: Candidate contracts with vendor, contractType,
                renewalDate, annualValue, confidence and evidence keys.
            today: Reference time (defaults to now).

        Returns:
            The alerts created by this call.
        """
        today = today or datetime.now()
        window_end = today + timedelta(days=self.alert_window_days)

        created = []
        for contract in contracts:
            renewal = pd.to_datetime(contract.get("renewalDate"), errors="coerce")
            if pd.isna(renewal):
                logger.warning(
                    "Skipping contract for %s: unparseable renewal date %r",
                    contract.get("vendor"),
                    contract.get("renewalDate"),
                )
                continue
            if renewal.tzinfo is not None:
                # Offset-bearing dates are compared as naive UTC
                renewal = renewal.tz_convert(None)
            renewal = renewal.to_pydatetime()
            if not (today < renewal <= window_end):
                continue

            days_until = math.ceil((renewal - today).total_seconds() / 86400)
            alert = {
                "id": f"alert_{uuid.uuid4().hex[:12]}",
                "vendor": contract.get("vendor"),
                "contractType": contract.get("contractType"),
                "renewalDate": renewal.strftime("%Y-%m-%d"),
                "daysUntilRenewal": days_until,
                "annualValue": contract.get("annualValue"),
                "priority": self._priority(days_until),
                "status": "active",
                "confidence": contract.get("confidence"),
                "evidence": contract.get("evidence"),
                "createdAt": today.isoformat(),
                "snoozedUntil": None,
            }
            self._alerts[alert["id"]] = alert
            created.append(alert)

        logger.info("Created %d contract renewal alert(s)", len(created))
        return created

    def get_active_alerts(self, now: datetime | None = None) -> list[dict[str, Any]]:
        """Active, not currently snoozed alerts, soonest renewal first."""
        now = now or datetime.now()
        active = [
            alert for alert in self._alerts.values()
            if alert["status"] == "active"
            and (alert["snoozedUntil"] is None or datetime.fromisoformat(alert["snoozedUntil"]) <= now)
        ]
        return sorted(active, key=lambda a: a["daysUntilRenewal"])

    def _get(self, alert_id: str) -> dict[str, Any]:
        try:
            return self._alerts[alert_id]
        except KeyError:
            raise KeyError(f"Unknown contract alert: {alert_id}") from None

    def dismiss(self, alert_id: str, now: datetime | None = None) -> dict[str, Any]:
        alert = self._get(alert_id)
        alert["status"] = "dismissed"
        alert["dismissedAt"] = (now or datetime.now()).isoformat()
        logger.info("Dismissed contract alert %s (%s)", alert_id, alert["vendor"])
        return alert

    def snooze(self, alert_id: str, days: int = 7, now: datetime | None = None) -> dict[str, Any]:
        alert = self._get(alert_id)
        alert["snoozedUntil"] = ((now or datetime.now()) + timedelta(days=days)).isoformat()
        logger.info("Snoozed contract alert %s for %d days", alert_id, days)
        return alert

    def summary(self, now: datetime | None = None) -> dict[str, int]:
        """Count active alerts per priority."""
        counts = {"HIGH": 0, "MEDIUM": 0, "LOW": 0}
        for alert in self.get_active_alerts(now):
            counts[alert["priority"]] += 1
        return counts
