"""
Monitoring Module for Deal/Project Reconciliation

Usage:
    from prometheus_client import CollectorRegistry
    from dealsync.monitoring import FixMetrics, AlertRuleGenerator

    metrics = FixMetrics(registry=CollectorRegistry())
    metrics.record_fix_result("acme", "INVALID_TITLE_FORMAT", "fixed")

    rules = AlertRuleGenerator().generate_alert_rules()
"""

from dealsync.monitoring.alerts import AlertRuleGenerator
from dealsync.monitoring.metrics import FixMetrics, ReconciliationMetrics, start_metrics_server

__all__ = [
    "ReconciliationMetrics",
    "FixMetrics",
    "AlertRuleGenerator",
    "start_metrics_server",
]
