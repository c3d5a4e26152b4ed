"""
Data model for the fix orchestration system.

Validation issues arrive from the external rule engine; everything else is
created and owned by the orchestrator for the lifetime of one fix session.
"""

import copy
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from dealsync.fixes.config import FixOrchestrationConfig
from dealsync.fixes.errors import InvalidIssuePayloadError

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class IssueCode(str, Enum):
    """Issue codes known to this system."""
    INVALID_TITLE_FORMAT = "INVALID_TITLE_FORMAT"
    VALUE_MISMATCH = "VALUE_MISMATCH"
    WON_DEAL_IN_UNQUALIFIED_PIPELINE = "WON_DEAL_IN_UNQUALIFIED_PIPELINE"
    OPEN_DEAL_IN_WRONG_PIPELINE = "OPEN_DEAL_IN_WRONG_PIPELINE"
    EMPTY_TITLE = "EMPTY_TITLE"
    MISSING_VESSEL = "MISSING_VESSEL"
    NO_QUOTE_LINKED = "NO_QUOTE_LINKED"
    QUOTE_NOT_FOUND = "QUOTE_NOT_FOUND"
    QUOTE_STATUS_MISMATCH = "QUOTE_STATUS_MISMATCH"


# Pipeline placement needs a human decision
MANUAL_RESOLUTION_CODES = frozenset({
    IssueCode.WON_DEAL_IN_UNQUALIFIED_PIPELINE,
    IssueCode.OPEN_DEAL_IN_WRONG_PIPELINE,
})

AUTO_FIXABLE_CODES = frozenset({
    IssueCode.INVALID_TITLE_FORMAT,
    IssueCode.VALUE_MISMATCH,
})


def parse_issue_code(code: str) -> Optional[IssueCode]:
    """Return the IssueCode for a raw code string, or None if unknown."""
    try:
        return IssueCode(code)
    except ValueError:
        return None


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class SessionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    SKIPPED = "skipped"


class FixStatus(str, Enum):
    FIXED = "fixed"
    SKIPPED = "skipped"
    FAILED = "failed"


def _require(metadata: Dict[str, Any], key: str, code: str) -> Any:
    value = metadata.get(key)
    if value is None:
        raise InvalidIssuePayloadError(f"{code} issue metadata is missing '{key}'")
    return value


def _optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class TitleFormatPayload:
    """Metadata carried by INVALID_TITLE_FORMAT issues."""

    deal_id: int
    deal_title: str
    expected_title: Optional[str] = None
    project_code: Optional[str] = None
    vessel_name: Optional[str] = None
    pipeline_id: Optional[int] = None
    status: Optional[str] = None
    deal_value: Optional[float] = None
    currency: Optional[str] = None

    @classmethod
    def from_metadata(cls, metadata: Dict[str, Any]) -> "TitleFormatPayload":
        return cls(
            deal_id=_require(metadata, "dealId", IssueCode.INVALID_TITLE_FORMAT.value),
            deal_title=metadata.get("dealTitle") or "",
            expected_title=metadata.get("expectedTitle"),
            project_code=metadata.get("projectCode"),
            vessel_name=metadata.get("vesselName"),
            pipeline_id=metadata.get("pipelineId"),
            status=metadata.get("status"),
            deal_value=_optional_float(metadata.get("dealValue")),
            currency=metadata.get("currency"),
        )


@dataclass(frozen=True)
class DealValuePayload:
    """Metadata carried by VALUE_MISMATCH issues."""

    deal_id: int
    deal_value: float
    expected_value: Optional[float] = None
    deal_title: str = ""
    currency: Optional[str] = None

    @classmethod
    def from_metadata(cls, metadata: Dict[str, Any]) -> "DealValuePayload":
        code = IssueCode.VALUE_MISMATCH.value
        deal_value = _optional_float(_require(metadata, "dealValue", code))
        if deal_value is None:
            raise InvalidIssuePayloadError(f"{code} issue metadata has a non-numeric 'dealValue'")

        return cls(
            deal_id=_require(metadata, "dealId", code),
            deal_value=deal_value,
            expected_value=_optional_float(metadata.get("expectedValue")),
            deal_title=metadata.get("dealTitle") or "",
            currency=metadata.get("currency"),
        )


IssuePayload = Union[TitleFormatPayload, DealValuePayload]

PAYLOAD_TYPES = {
    IssueCode.INVALID_TITLE_FORMAT: TitleFormatPayload,
    IssueCode.VALUE_MISMATCH: DealValuePayload,
}


@dataclass(frozen=True)
class ValidationIssue:
    """
    A problem reported by the external rule engine for one record.

    Attributes:
        code: Issue code; unknown codes are kept as plain strings
        severity: error, warning or info
        message: Human-readable description
        metadata: Record identifiers and code-specific context
        suggested_fix: Optional hint from the rule engine
        category: Optional grouping label
    """

    code: str
    severity: Severity
    message: str
    metadata: Dict[str, Any] = field(default_factory=dict, hash=False)
    suggested_fix: Optional[str] = None
    category: Optional[str] = None

    @property
    def issue_code(self) -> Optional[IssueCode]:
        return parse_issue_code(self.code)

    @property
    def record_id(self) -> Any:
        return self.metadata.get("dealId")

    @property
    def requires_manual_resolution(self) -> bool:
        return self.issue_code in MANUAL_RESOLUTION_CODES

    def payload(self) -> IssuePayload:
        """
        Parse metadata into the payload type registered for this code.

        Raises:
            InvalidIssuePayloadError: If the code has no payload type or
                required fields are missing
        """
        payload_type = PAYLOAD_TYPES.get(self.issue_code)
        if payload_type is None:
            raise InvalidIssuePayloadError(f"No payload type registered for {self.code}")
        return payload_type.from_metadata(self.metadata)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ValidationIssue":
        """Build an issue from the rule engine's JSON shape."""
        if not data.get("code"):
            raise InvalidIssuePayloadError("Validation issue is missing 'code'")

        return cls(
            code=str(data["code"]),
            severity=Severity(data.get("severity", Severity.ERROR.value)),
            message=data.get("message", ""),
            metadata=copy.deepcopy(data.get("metadata") or {}),
            suggested_fix=data.get("suggestedFix", data.get("suggested_fix")),
            category=data.get("category"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "severity": self.severity.value,
            "message": self.message,
            "metadata": copy.deepcopy(self.metadata),
            "suggestedFix": self.suggested_fix,
            "category": self.category,
        }


@dataclass(frozen=True)
class FixHandlerContext:
    """Credentials and config handed to every handler call."""

    api_key: str = field(repr=False)
    company_domain: str
    tenant_id: str
    config: FixOrchestrationConfig


@dataclass
class FixHandlerResult:
    success: bool
    original_value: Any = None
    new_value: Any = None
    error: Optional[str] = None
    rollback_data: Optional[Dict[str, Any]] = None


@dataclass
class FixResult:
    """
    Outcome of one issue that reached the apply phase.

    rollback_data is present if and only if status is FIXED.
    """

    issue_code: str
    record_id: Any
    status: FixStatus
    original_value: Any = None
    new_value: Any = None
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)
    rollback_data: Optional[Dict[str, Any]] = None
    attempts: int = 0

    def __post_init__(self):
        if self.status == FixStatus.FIXED and self.rollback_data is None:
            raise ValueError("A fixed result must carry rollback data")
        if self.status != FixStatus.FIXED and self.rollback_data is not None:
            raise ValueError(f"A {self.status.value} result cannot carry rollback data")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "issue_code": self.issue_code,
            "record_id": self.record_id,
            "status": self.status.value,
            "original_value": self.original_value,
            "new_value": self.new_value,
            "error": self.error,
            "timestamp": _iso(self.timestamp),
            "rollback_data": self.rollback_data,
            "attempts": self.attempts,
        }


@dataclass
class FixStep:
    """Progress state of one workflow phase."""

    id: str
    name: str
    description: str
    status: StepStatus = StepStatus.PENDING
    progress: int = 0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    result: Any = None
    error: Optional[str] = None

    def snapshot(self) -> "FixStep":
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status.value,
            "progress": self.progress,
            "start_time": _iso(self.start_time),
            "end_time": _iso(self.end_time),
            "error": self.error,
        }


@dataclass
class FixSummary:
    total_issues: int
    fixable_issues: int
    validated_issues: int
    fixed_count: int
    skipped_count: int
    failed_count: int
    duration_ms: int
    fix_results: List[FixResult] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    circuit_breaker_tripped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_issues": self.total_issues,
            "fixable_issues": self.fixable_issues,
            "validated_issues": self.validated_issues,
            "fixed_count": self.fixed_count,
            "skipped_count": self.skipped_count,
            "failed_count": self.failed_count,
            "duration_ms": self.duration_ms,
            "fix_results": [r.to_dict() for r in self.fix_results],
            "recommendations": list(self.recommendations),
            "circuit_breaker_tripped": self.circuit_breaker_tripped,
        }


@dataclass
class FixSession:
    """
    One end-to-end run of the fix workflow for one tenant.

    analyzed_issues and validated_issues hold the intermediate phase outputs
    so a failed session can still be inspected.
    """

    id: str
    tenant_id: str
    tenant_name: str
    issues: List[ValidationIssue]
    start_time: datetime = field(default_factory=utcnow)
    end_time: Optional[datetime] = None
    status: SessionStatus = SessionStatus.PENDING
    fix_results: List[FixResult] = field(default_factory=list)
    summary: Optional[FixSummary] = None
    error: Optional[str] = None
    excluded_issues: int = 0
    analyzed_issues: List[ValidationIssue] = field(default_factory=list)
    validated_issues: List[ValidationIssue] = field(default_factory=list)
    steps: Dict[str, FixStep] = field(default_factory=dict)

    @property
    def duration_ms(self) -> int:
        end = self.end_time or utcnow()
        return int((end - self.start_time).total_seconds() * 1000)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "tenant_name": self.tenant_name,
            "status": self.status.value,
            "start_time": _iso(self.start_time),
            "end_time": _iso(self.end_time),
            "issues": [i.to_dict() for i in self.issues],
            "excluded_issues": self.excluded_issues,
            "fix_results": [r.to_dict() for r in self.fix_results],
            "summary": self.summary.to_dict() if self.summary else None,
            "error": self.error,
            "steps": {k: s.to_dict() for k, s in self.steps.items()},
        }


@dataclass
class RollbackSummary:
    """Tally of a rollback sweep; truthy when every rollback succeeded."""

    attempted: int = 0
    rolled_back: int = 0
    failed_record_ids: List[Any] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.attempted > 0 and self.rolled_back == self.attempted
