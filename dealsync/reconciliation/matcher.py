"""
Project Matcher for Deal/Project Reconciliation

Pairs Pipedrive deals with Xero projects by matching key, enforcing a 1:1
relation, and compares their values within a percentage tolerance.
"""

import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional, Set

from dealsync.reconciliation.keys import generate_project_key
from dealsync.reconciliation.models import (
    CanonicalRecord,
    MatchResult,
    ProjectMatch,
    ReconciliationSummary,
    ValueDiscrepancy,
)
from dealsync.reconciliation.normalizer import normalize_deals, normalize_projects

logger = logging.getLogger(__name__)


class ProjectMatcher:
    """
    Matches deals to projects and reports value discrepancies.

    Tie-break policy: when several projects share a deal's key, the first one
    (in input order) not already consumed wins. This is deterministic for a
    fixed ordering but does not prefer the closest value among candidates.
    """

    def __init__(
        self,
        value_tolerance_percentage: float = 5.0,
        enable_value_comparison: bool = True,
        metrics=None
    ):
        """
        Initialize the project matcher.

        Args:
            value_tolerance_percentage: Maximum percentage difference for values to match
            enable_value_comparison: Report value discrepancies on matched pairs
            metrics: Optional ReconciliationMetrics to record each pass
        """
        if value_tolerance_percentage < 0:
            raise ValueError("value_tolerance_percentage must be non-negative")

        self.value_tolerance_percentage = value_tolerance_percentage
        self.enable_value_comparison = enable_value_comparison
        self.metrics = metrics
        logger.debug(
            f"Initialized ProjectMatcher with {value_tolerance_percentage}% tolerance"
        )

    @classmethod
    def from_config(cls, config, metrics=None) -> "ProjectMatcher":
        """Build a matcher from the value settings of a FixOrchestrationConfig."""
        return cls(
            value_tolerance_percentage=config.value_tolerance_percentage,
            enable_value_comparison=config.enable_value_comparison,
            metrics=metrics,
        )

    def match_projects(
        self,
        deals: List[CanonicalRecord],
        projects: List[CanonicalRecord]
    ) -> MatchResult:
        """
        Pair deals with projects sharing the same matching key.

        Args:
            deals: Side-A records, in priority order
            projects: Side-B records, in priority order

        Returns:
            MatchResult with matches and residuals on both sides
        """
        result = MatchResult()
        project_index: Dict[str, List[CanonicalRecord]] = defaultdict(list)

        for project in projects:
            key = generate_project_key(project.name)
            if not key:
                logger.warning(f"Skipping project {project.id} with no usable name")
                result.skipped_projects.append(project)
                continue
            project_index[key].append(project)

        consumed: Set[int] = set()
        matched_deal_ids: Set[int] = set()

        for deal in deals:
            key = generate_project_key(deal.name)
            if not key:
                logger.warning(f"Skipping deal {deal.id} with no usable title")
                result.skipped_deals.append(deal)
                continue

            for project in project_index.get(key, []):
                if id(project) in consumed:
                    continue

                consumed.add(id(project))
                matched_deal_ids.add(id(deal))
                result.matches.append(self._build_match(deal, project, key))
                break

        skipped = {id(r) for r in result.skipped_deals + result.skipped_projects}
        result.unmatched_deals = [
            d for d in deals if id(d) not in matched_deal_ids and id(d) not in skipped
        ]
        result.unmatched_projects = [
            p for p in projects if id(p) not in consumed and id(p) not in skipped
        ]

        logger.info(
            f"Project matching completed: {len(deals)} deals, {len(projects)} projects, "
            f"{len(result.matches)} matched"
        )
        return result

    def _build_match(
        self,
        deal: CanonicalRecord,
        project: CanonicalRecord,
        key: str
    ) -> ProjectMatch:
        return ProjectMatch(
            deal=deal,
            project=project,
            match_key=key,
            value_match=self.check_value_match(deal.value, project.value),
            value_difference=abs(deal.value - project.value),
            value_difference_percentage=self.calculate_difference_percentage(
                deal.value, project.value
            ),
        )

    def check_value_match(self, value1: float, value2: float) -> bool:
        """
        Check if two values match within the configured tolerance.

        Args:
            value1: Deal value
            value2: Project value

        Returns:
            True if the percentage difference is within tolerance
        """
        if value1 == value2:
            return True
        return (
            self.calculate_difference_percentage(value1, value2)
            <= self.value_tolerance_percentage
        )

    @staticmethod
    def calculate_difference_percentage(value1: float, value2: float) -> float:
        """
        Percentage difference of two values relative to their average.

        Both zero is a 0% difference; a zero average with unequal values is
        reported as 100%.
        """
        if value1 == 0 and value2 == 0:
            return 0.0
        average = (value1 + value2) / 2
        if average == 0:
            return 100.0
        return abs(value1 - value2) / average * 100

    def compare_values(self, matches: List[ProjectMatch]) -> List[ValueDiscrepancy]:
        """
        Collect value discrepancies from matched pairs.

        Args:
            matches: Matched pairs

        Returns:
            Discrepancies for pairs whose values differ beyond tolerance
        """
        if not self.enable_value_comparison:
            return []

        discrepancies = [
            ValueDiscrepancy(
                project_name=match.project.name,
                project_key=match.match_key,
                deal_value=match.deal.value,
                project_value=match.project.value,
                difference=match.value_difference,
                difference_percentage=match.value_difference_percentage,
            )
            for match in matches
            if not match.value_match
        ]

        logger.info(f"Found {len(discrepancies)} value discrepancies")
        return discrepancies

    def generate_summary(
        self,
        deals: List[CanonicalRecord],
        projects: List[CanonicalRecord],
        result: MatchResult,
        discrepancies: List[ValueDiscrepancy]
    ) -> ReconciliationSummary:
        """
        Build the reconciliation summary and recommendations.

        Args:
            deals: All deals considered
            projects: All projects considered
            result: Matching result
            discrepancies: Value discrepancies

        Returns:
            ReconciliationSummary
        """
        unmatched_deals = result.unmatched_deals + result.skipped_deals
        unmatched_projects = result.unmatched_projects + result.skipped_projects

        recommendations = []
        if unmatched_deals:
            recommendations.append(
                f"{len(unmatched_deals)} won deals need to be created as projects in Xero"
            )
        if unmatched_projects:
            recommendations.append(
                f"{len(unmatched_projects)} projects in Xero may need to be reviewed "
                f"or linked to deals"
            )
        if discrepancies:
            recommendations.append(
                f"{len(discrepancies)} projects have value discrepancies that need reconciliation"
            )
        if not result.matches and deals and projects:
            recommendations.append(
                "No matches found - review project naming conventions in both systems"
            )
            recommendations.append(
                "Consider standardizing project names or using common identifiers"
            )
        if not recommendations:
            recommendations.append("All projects are synchronized")

        return ReconciliationSummary(
            deals_count=len(deals),
            projects_count=len(projects),
            matched_count=len(result.matches),
            unmatched_deals_count=len(unmatched_deals),
            unmatched_projects_count=len(unmatched_projects),
            value_discrepancies=discrepancies,
            recommendations=recommendations,
            matches=list(result.matches),
            unmatched_deals=[self._with_key(r) for r in unmatched_deals],
            unmatched_projects=[self._with_key(r) for r in unmatched_projects],
        )

    @staticmethod
    def _with_key(record: CanonicalRecord) -> Dict[str, Any]:
        data = record.to_dict()
        data["normalized_key"] = generate_project_key(record.name)
        return data

    def reconcile(
        self,
        raw_deals: List[Dict[str, Any]],
        raw_projects: List[Dict[str, Any]],
        tenant: Optional[str] = None
    ) -> ReconciliationSummary:
        """
        Normalize, match and compare raw payloads from both systems.

        Args:
            raw_deals: Pipedrive deal payloads
            raw_projects: Xero project payloads
            tenant: Tenant label for metrics

        Returns:
            ReconciliationSummary
        """
        deals = normalize_deals(raw_deals)
        projects = normalize_projects(raw_projects)

        result = self.match_projects(deals, projects)
        discrepancies = self.compare_values(result.matches)
        summary = self.generate_summary(deals, projects, result, discrepancies)

        if self.metrics is not None:
            self.metrics.record_reconciliation_run(tenant or "default", summary)

        return summary
