"""
Alert Rule Generator for Prometheus AlertManager

Generates alert rule definitions for reconciliation and fix sessions:
fix failure rate, circuit breaker trips and unmatched records.
"""

import logging
from typing import Any, Dict

import yaml

logger = logging.getLogger(__name__)


class AlertRuleGenerator:
    """Generates Prometheus AlertManager alert rules."""

    def __init__(
        self,
        failure_rate_threshold: float = 0.2,
        unmatched_threshold: int = 10
    ):
        """
        Args:
            failure_rate_threshold: Share of failed fixes (0-1) that raises an alert
            unmatched_threshold: Unmatched records per side that raises an alert
        """
        self.failure_rate_threshold = failure_rate_threshold
        self.unmatched_threshold = unmatched_threshold

    def generate_alert_rules(self) -> Dict[str, Any]:
        """
        Generate complete alert rule configuration.

        Returns:
            Dict with alert rule groups in Prometheus format
        """
        groups = [
            self._generate_fix_alerts(),
            self._generate_reconciliation_alerts(),
        ]

        logger.info(f"Generated {len(groups)} alert rule groups")
        return {"groups": groups}

    def _generate_fix_alerts(self) -> Dict[str, Any]:
        failed = 'sum by (tenant) (rate(dealsync_fix_results_total{status="failed"}[15m]))'
        total = 'sum by (tenant) (rate(dealsync_fix_results_total[15m]))'

        return {
            "name": "dealsync_fixes",
            "interval": "1m",
            "rules": [
                {
                    "alert": "HighFixFailureRate",
                    "expr": f"({failed} / {total}) > {self.failure_rate_threshold}",
                    "for": "10m",
                    "labels": {
                        "severity": "warning",
                        "component": "fixes"
                    },
                    "annotations": {
                        "summary": "High fix failure rate",
                        "description": "{{ $value | humanizePercentage }} of fixes for {{ $labels.tenant }} are failing"
                    }
                },
                {
                    "alert": "FixCircuitBreakerOpen",
                    "expr": "dealsync_circuit_breaker_open == 1",
                    "for": "1m",
                    "labels": {
                        "severity": "critical",
                        "component": "fixes"
                    },
                    "annotations": {
                        "summary": "Fix circuit breaker open",
                        "description": "Fixes for {{ $labels.tenant }} are blocked after repeated failures"
                    }
                },
                {
                    "alert": "RepeatedCircuitBreakerTrips",
                    "expr": "increase(dealsync_circuit_breaker_trips_total[1h]) > 3",
                    "for": "0m",
                    "labels": {
                        "severity": "warning",
                        "component": "fixes"
                    },
                    "annotations": {
                        "summary": "Circuit breaker tripping repeatedly",
                        "description": "Breaker for {{ $labels.tenant }} opened {{ $value }} times in the last hour"
                    }
                }
            ]
        }

    def _generate_reconciliation_alerts(self) -> Dict[str, Any]:
        return {
            "name": "dealsync_reconciliation",
            "interval": "5m",
            "rules": [
                {
                    "alert": "UnmatchedRecordsHigh",
                    "expr": f"dealsync_unmatched_records > {self.unmatched_threshold}",
                    "for": "30m",
                    "labels": {
                        "severity": "warning",
                        "component": "reconciliation"
                    },
                    "annotations": {
                        "summary": "Many unmatched records",
                        "description": "{{ $value }} {{ $labels.source }} records for {{ $labels.tenant }} have no counterpart"
                    }
                },
                {
                    "alert": "ValueDiscrepanciesPresent",
                    "expr": "dealsync_value_discrepancies > 0",
                    "for": "1h",
                    "labels": {
                        "severity": "info",
                        "component": "reconciliation"
                    },
                    "annotations": {
                        "summary": "Deal and project values disagree",
                        "description": "{{ $value }} matched pairs for {{ $labels.tenant }} differ beyond tolerance"
                    }
                }
            ]
        }

    def to_yaml(self) -> str:
        return yaml.dump(self.generate_alert_rules(), default_flow_style=False, sort_keys=False)

    def export_to_yaml(self, output_file: str) -> None:
        """
        Export alert rules to YAML file.

        Args:
            output_file: Path to output YAML file
        """
        with open(output_file, 'w') as f:
            f.write(self.to_yaml())

        logger.info(f"Alert rules exported to {output_file}")

    def get_alert_summary(self) -> Dict[str, int]:
        """
        Get summary of alert rules.

        Returns:
            Dict with counts by severity
        """
        rules = self.generate_alert_rules()

        summary = {
            "total_groups": len(rules["groups"]),
            "total_alerts": 0,
            "critical": 0,
            "warning": 0,
            "info": 0
        }

        for group in rules["groups"]:
            for rule in group["rules"]:
                summary["total_alerts"] += 1
                severity = rule["labels"].get("severity", "unknown")
                if severity in summary:
                    summary[severity] += 1

        return summary
