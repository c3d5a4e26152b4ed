#!/usr/bin/env python3
"""
Deal/Project Reconciliation Tool

Matches Pipedrive deals against Xero projects and applies automatic fixes
for validation issues, with support for:
- Dry-run mode for validation
- Batch size and YAML configuration overrides
- Rolling back a session when any fix fails
- Prometheus metrics exporter and alert rule export

Usage:
    ./scripts/reconcile.py match --deals deals.json --projects projects.json
    ./scripts/reconcile.py --metrics-port 9090 match --deals deals.json --projects projects.json --config dealsync.yaml
    ./scripts/reconcile.py fix --issues issues.json --dry-run
    ./scripts/reconcile.py fix --issues issues.json --config dealsync.yaml --rollback-on-failure
    ./scripts/reconcile.py alerts > rules.yml

Credentials are read from PIPEDRIVE_API_KEY / PIPEDRIVE_COMPANY_DOMAIN, or
from Vault (VAULT_ADDR / VAULT_TOKEN) secret "pipedrive-credentials".
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from prometheus_client import CollectorRegistry

# Allow running from a checkout without installing
sys.path.insert(0, str(Path(__file__).parent.parent))

from dealsync.fixes import FixOrchestrationConfig, FixOrchestrator
from dealsync.monitoring import AlertRuleGenerator, FixMetrics, ReconciliationMetrics, start_metrics_server
from dealsync.reconciliation import ProjectMatcher
from dealsync.utils import CorrelationContext, configure_logging, resolve_pipedrive_credentials

logger = logging.getLogger("dealsync.cli")


def _load_json_list(path: str, key: Optional[str] = None) -> List[Dict[str, Any]]:
    """Load a JSON array, or the ``key``/``data`` array of a JSON object."""
    with open(path, 'r') as f:
        document = json.load(f)

    if isinstance(document, dict):
        document = document.get(key) or document.get("data") or []
    if not isinstance(document, list):
        raise ValueError(f"{path} does not contain a list")
    return document


def _load_config(args) -> FixOrchestrationConfig:
    if args.config:
        config = FixOrchestrationConfig.from_yaml(args.config)
    else:
        config = FixOrchestrationConfig.from_env()

    overrides = {}
    if getattr(args, "dry_run", False):
        overrides["enable_dry_run"] = True
    if getattr(args, "batch_size", None) is not None:
        overrides["batch_size"] = args.batch_size
    if getattr(args, "tolerance", None) is not None:
        overrides["value_tolerance_percentage"] = args.tolerance
    return config.merge(overrides)


def _metrics_registry(args) -> Optional[CollectorRegistry]:
    """Start the exporter on --metrics-port and return its registry, if requested."""
    if args.metrics_port is None:
        return None
    registry = CollectorRegistry()
    start_metrics_server(args.metrics_port, registry=registry)
    return registry


def run_match(args) -> Dict[str, Any]:
    deals = _load_json_list(args.deals, "deals")
    projects = _load_json_list(args.projects, "projects")

    config = _load_config(args)
    registry = _metrics_registry(args)
    metrics = ReconciliationMetrics(registry=registry) if registry is not None else None

    matcher = ProjectMatcher.from_config(config, metrics=metrics)
    summary = matcher.reconcile(deals, projects, tenant=args.tenant)
    return summary.to_dict()


def run_fix(args) -> Dict[str, Any]:
    issues = _load_json_list(args.issues, "issues")
    config = _load_config(args)
    credentials = resolve_pipedrive_credentials()
    registry = _metrics_registry(args)
    metrics = FixMetrics(registry=registry) if registry is not None else None

    orchestrator = FixOrchestrator(config, metrics=metrics)
    orchestrator.set_progress_callback(
        lambda step: logger.info(f"{step.name}: {step.status.value} ({step.progress}%)")
    )
    orchestrator.initialize_session(args.tenant, args.tenant_name or args.tenant, issues)
    session = orchestrator.execute_fix_workflow(
        credentials["api_key"], credentials["company_domain"]
    )

    output = session.to_dict()
    if args.rollback_on_failure and session.summary and session.summary.failed_count:
        logger.warning(f"{session.summary.failed_count} fixes failed, rolling back session")
        rollback = orchestrator.rollback_session(
            credentials["api_key"], credentials["company_domain"]
        )
        output["rollback"] = {
            "attempted": rollback.attempted,
            "rolled_back": rollback.rolled_back,
            "failed_record_ids": rollback.failed_record_ids,
        }
    return output


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Deal/Project Reconciliation Tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    parser.add_argument("--tenant", default=os.getenv("DEALSYNC_TENANT", "default"), help="Tenant id")
    parser.add_argument(
        "--metrics-port", type=int, help="Expose Prometheus metrics on this port while running"
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    match_parser = subparsers.add_parser("match", help="Match deals to projects")
    match_parser.add_argument("--deals", required=True, help="JSON file of Pipedrive deals")
    match_parser.add_argument("--projects", required=True, help="JSON file of Xero projects")
    match_parser.add_argument("--tolerance", type=float, help="Value tolerance in percent (overrides config)")
    match_parser.add_argument("--config", help="YAML config file")

    fix_parser = subparsers.add_parser("fix", help="Apply automatic fixes")
    fix_parser.add_argument("--issues", required=True, help="JSON file of validation issues")
    fix_parser.add_argument("--tenant-name", help="Tenant display name")
    fix_parser.add_argument("--dry-run", action="store_true", help="Dry run mode")
    fix_parser.add_argument("--batch-size", type=int, help="Fixes per batch")
    fix_parser.add_argument("--config", help="YAML config file")
    fix_parser.add_argument(
        "--rollback-on-failure", action="store_true", help="Roll back all fixes if any fix failed"
    )

    alerts_parser = subparsers.add_parser("alerts", help="Print Prometheus alert rules")
    alerts_parser.add_argument("--output", help="Write rules to this file instead of stdout")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=args.verbose)

    if not args.command:
        parser.print_help()
        return 1

    with CorrelationContext():
        try:
            if args.command == "match":
                print(json.dumps(run_match(args), indent=2, default=str))

            elif args.command == "fix":
                print(json.dumps(run_fix(args), indent=2, default=str))

            elif args.command == "alerts":
                generator = AlertRuleGenerator()
                if args.output:
                    generator.export_to_yaml(args.output)
                else:
                    print(generator.to_yaml())

            return 0

        except Exception as e:
            logger.error(f"Error: {e}", exc_info=args.verbose)
            return 1


if __name__ == "__main__":
    sys.exit(main())
