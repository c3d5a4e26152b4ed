"""
Data model for deal/project reconciliation.

Canonical records are produced by the normalizer from raw API payloads; match
results are produced once per reconciliation pass and never mutated.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List

SOURCE_PIPEDRIVE = "pipedrive"
SOURCE_XERO = "xero"


@dataclass(frozen=True)
class CanonicalRecord:
    """
    A deal or project reduced to the fields reconciliation needs.

    Attributes:
        id: Record identifier in its own system
        name: Display name (deal title or project name)
        value: Monetary value
        currency: ISO currency code
        source: Originating system ("pipedrive" or "xero")
        status: Record status as reported by the source system
        raw: Original payload, kept for reporting
    """

    id: str
    name: str
    value: float
    currency: str
    source: str
    status: str = ""
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "value": self.value,
            "currency": self.currency,
            "source": self.source,
            "status": self.status,
        }


@dataclass(frozen=True)
class ProjectMatch:
    """A deal paired with a project under the same matching key."""

    deal: CanonicalRecord
    project: CanonicalRecord
    match_key: str
    value_match: bool
    value_difference: float
    value_difference_percentage: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deal": self.deal.to_dict(),
            "project": self.project.to_dict(),
            "match_key": self.match_key,
            "value_match": self.value_match,
            "value_difference": self.value_difference,
            "value_difference_percentage": self.value_difference_percentage,
        }


@dataclass
class MatchResult:
    """Output of one matching pass, including residuals on both sides."""

    matches: List[ProjectMatch] = field(default_factory=list)
    unmatched_deals: List[CanonicalRecord] = field(default_factory=list)
    unmatched_projects: List[CanonicalRecord] = field(default_factory=list)
    skipped_deals: List[CanonicalRecord] = field(default_factory=list)
    skipped_projects: List[CanonicalRecord] = field(default_factory=list)


@dataclass(frozen=True)
class ValueDiscrepancy:
    """Value difference on a matched pair that exceeds the tolerance."""

    project_name: str
    project_key: str
    deal_value: float
    project_value: float
    difference: float
    difference_percentage: float


@dataclass
class ReconciliationSummary:
    """Aggregate view of a reconciliation pass."""

    deals_count: int
    projects_count: int
    matched_count: int
    unmatched_deals_count: int
    unmatched_projects_count: int
    value_discrepancies: List[ValueDiscrepancy] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    matches: List[ProjectMatch] = field(default_factory=list)
    unmatched_deals: List[Dict[str, Any]] = field(default_factory=list)
    unmatched_projects: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deals_count": self.deals_count,
            "projects_count": self.projects_count,
            "matched_count": self.matched_count,
            "unmatched_deals_count": self.unmatched_deals_count,
            "unmatched_projects_count": self.unmatched_projects_count,
            "value_discrepancies": [asdict(d) for d in self.value_discrepancies],
            "recommendations": list(self.recommendations),
            "matches": [m.to_dict() for m in self.matches],
            "unmatched_deals": list(self.unmatched_deals),
            "unmatched_projects": list(self.unmatched_projects),
        }
