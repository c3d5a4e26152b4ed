"""
Prometheus Metrics for Deal/Project Reconciliation

Metrics for reconciliation passes and fix sessions. Every metrics object
takes a CollectorRegistry so tests and multiple tenants in one process do
not collide on the default registry.
"""

import logging
from typing import Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram, start_http_server

logger = logging.getLogger(__name__)


class ReconciliationMetrics:
    """Prometheus metrics for matching passes."""

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        self.reconciliation_runs_total = Counter(
            'dealsync_reconciliation_runs_total',
            'Total number of reconciliation runs',
            ['tenant'],
            registry=registry
        )

        self.matched_records = Gauge(
            'dealsync_matched_records',
            'Deal/project pairs matched in the latest run',
            ['tenant'],
            registry=registry
        )

        self.unmatched_records = Gauge(
            'dealsync_unmatched_records',
            'Records left without a counterpart in the latest run',
            ['tenant', 'source'],
            registry=registry
        )

        self.value_discrepancies = Gauge(
            'dealsync_value_discrepancies',
            'Matched pairs whose values differ beyond tolerance',
            ['tenant'],
            registry=registry
        )

        logger.info("ReconciliationMetrics initialized")

    def record_reconciliation_run(self, tenant: str, summary) -> None:
        """
        Record one reconciliation pass.

        Args:
            tenant: Tenant label
            summary: ReconciliationSummary of the pass
        """
        self.reconciliation_runs_total.labels(tenant=tenant).inc()
        self.matched_records.labels(tenant=tenant).set(summary.matched_count)
        self.unmatched_records.labels(tenant=tenant, source='pipedrive').set(
            summary.unmatched_deals_count
        )
        self.unmatched_records.labels(tenant=tenant, source='xero').set(
            summary.unmatched_projects_count
        )
        self.value_discrepancies.labels(tenant=tenant).set(len(summary.value_discrepancies))

        logger.debug(
            f"Recorded reconciliation metrics for {tenant}: "
            f"{summary.matched_count} matched"
        )


class FixMetrics:
    """Prometheus metrics for fix sessions."""

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        self.sessions_total = Counter(
            'dealsync_fix_sessions_total',
            'Fix sessions by terminal status',
            ['tenant', 'status'],
            registry=registry
        )

        self.fix_results_total = Counter(
            'dealsync_fix_results_total',
            'Fix results by issue code and status',
            ['tenant', 'issue_code', 'status'],
            registry=registry
        )

        self.fix_retries_total = Counter(
            'dealsync_fix_retries_total',
            'Retried fix attempts',
            ['tenant', 'issue_code'],
            registry=registry
        )

        self.circuit_breaker_open = Gauge(
            'dealsync_circuit_breaker_open',
            'Whether the fix circuit breaker is open (1) or closed (0)',
            ['tenant'],
            registry=registry
        )

        self.circuit_breaker_trips_total = Counter(
            'dealsync_circuit_breaker_trips_total',
            'Times the fix circuit breaker opened',
            ['tenant'],
            registry=registry
        )

        self.session_duration_seconds = Histogram(
            'dealsync_fix_session_duration_seconds',
            'Duration of fix sessions in seconds',
            ['tenant'],
            buckets=[1, 5, 10, 30, 60, 120, 300, 600, 1800],
            registry=registry
        )

        self.rollbacks_total = Counter(
            'dealsync_fix_rollbacks_total',
            'Rollback attempts by outcome',
            ['tenant', 'status'],
            registry=registry
        )

        logger.info("FixMetrics initialized")

    def record_fix_result(self, tenant: str, issue_code: str, status: str) -> None:
        self.fix_results_total.labels(tenant=tenant, issue_code=issue_code, status=status).inc()

    def record_retry(self, tenant: str, issue_code: str) -> None:
        self.fix_retries_total.labels(tenant=tenant, issue_code=issue_code).inc()

    def record_circuit_breaker_trip(self, tenant: str) -> None:
        self.circuit_breaker_trips_total.labels(tenant=tenant).inc()
        self.circuit_breaker_open.labels(tenant=tenant).set(1)

    def set_circuit_breaker_open(self, tenant: str, is_open: bool) -> None:
        self.circuit_breaker_open.labels(tenant=tenant).set(1 if is_open else 0)

    def record_session(self, tenant: str, status: str, duration_seconds: float) -> None:
        """
        Record a finished fix session.

        Args:
            tenant: Tenant label
            status: Terminal session status
            duration_seconds: Wall-clock duration
        """
        self.sessions_total.labels(tenant=tenant, status=status).inc()
        self.session_duration_seconds.labels(tenant=tenant).observe(duration_seconds)

    def record_rollback(self, tenant: str, succeeded: bool) -> None:
        status = 'success' if succeeded else 'failure'
        self.rollbacks_total.labels(tenant=tenant, status=status).inc()


def start_metrics_server(port: int = 9090, registry: Optional[CollectorRegistry] = None) -> None:
    """Start the Prometheus HTTP exporter."""
    try:
        start_http_server(port, registry=registry if registry is not None else REGISTRY)
        logger.info(f"Metrics server started on port {port}")
    except OSError as e:
        if "Address already in use" in str(e):
            logger.warning(f"Metrics server already running on port {port}")
        else:
            raise
