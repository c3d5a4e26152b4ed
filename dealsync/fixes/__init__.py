"""
Fix Orchestration Module

Turns validation issues into applied, retryable and reversible fixes.

Usage:
    from dealsync.fixes import FixOrchestrator, FixOrchestrationConfig

    orchestrator = FixOrchestrator(FixOrchestrationConfig(batch_size=5))
    orchestrator.initialize_session("tenant-1", "Acme", issues)
    session = orchestrator.execute_fix_workflow(api_key, "acme")

    if session.summary.failed_count:
        orchestrator.rollback_session(api_key, "acme")
"""

from dealsync.fixes.circuit_breaker import CircuitBreaker
from dealsync.fixes.config import DEFAULT_FIX_CONFIG, FixOrchestrationConfig
from dealsync.fixes.errors import (
    ConfigurationError,
    FixWorkflowError,
    HandlerRegistrationError,
    InvalidIssuePayloadError,
    SessionNotInitializedError,
)
from dealsync.fixes.models import (
    AUTO_FIXABLE_CODES,
    MANUAL_RESOLUTION_CODES,
    FixHandlerContext,
    FixHandlerResult,
    FixResult,
    FixSession,
    FixStatus,
    FixStep,
    FixSummary,
    IssueCode,
    RollbackSummary,
    SessionStatus,
    Severity,
    StepStatus,
    ValidationIssue,
)
from dealsync.fixes.orchestrator import FixOrchestrator, SessionState
from dealsync.fixes.progress import CancellationToken, ProgressStream
from dealsync.fixes.registry import FixHandlerRegistry, create_default_registry

__all__ = [
    "FixOrchestrator",
    "SessionState",
    "FixOrchestrationConfig",
    "DEFAULT_FIX_CONFIG",
    "FixHandlerRegistry",
    "create_default_registry",
    "CircuitBreaker",
    "CancellationToken",
    "ProgressStream",
    "IssueCode",
    "AUTO_FIXABLE_CODES",
    "MANUAL_RESOLUTION_CODES",
    "Severity",
    "FixStatus",
    "SessionStatus",
    "StepStatus",
    "ValidationIssue",
    "FixHandlerContext",
    "FixHandlerResult",
    "FixResult",
    "FixSession",
    "FixStep",
    "FixSummary",
    "RollbackSummary",
    "FixWorkflowError",
    "SessionNotInitializedError",
    "HandlerRegistrationError",
    "InvalidIssuePayloadError",
    "ConfigurationError",
]
