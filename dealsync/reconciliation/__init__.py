"""
Reconciliation Module for Deal/Project Sync

Pairs Pipedrive deals with Xero projects and reports what does not line up.

Main components:
- keys: Matching key generation from free-text names
- normalizer: Raw payload to CanonicalRecord conversion
- matcher: 1:1 key matching, value comparison and summaries

Usage:
    from dealsync.reconciliation import ProjectMatcher, generate_project_key

    key = generate_project_key("ED25002 - Titanic")  # "ed25002-titanic"

    matcher = ProjectMatcher(value_tolerance_percentage=5.0)
    summary = matcher.reconcile(raw_deals, raw_projects)
"""

from dealsync.reconciliation.keys import generate_project_key
from dealsync.reconciliation.matcher import ProjectMatcher
from dealsync.reconciliation.models import (
    CanonicalRecord,
    MatchResult,
    ProjectMatch,
    ReconciliationSummary,
    ValueDiscrepancy,
)
from dealsync.reconciliation.normalizer import normalize_deal, normalize_project

__all__ = [
    "generate_project_key",
    "ProjectMatcher",
    "CanonicalRecord",
    "MatchResult",
    "ProjectMatch",
    "ReconciliationSummary",
    "ValueDiscrepancy",
    "normalize_deal",
    "normalize_project",
]
