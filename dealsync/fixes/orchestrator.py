"""
Fix Orchestrator

Runs a fix session through four phases:

1. analyze_issues   keep issues that have a registered handler
2. validate_fixes   keep issues whose handler confirms the fix is still safe
3. apply_fixes      apply in batches with retries, guarded by a circuit breaker
4. generate_summary counts, duration and recommendations

Every phase transition is published as a FixStep snapshot to the progress
callback and the session's ProgressStream. Issue codes that need a human
decision are dropped when the session is created.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from dealsync.clients.deal_client import PipedriveDealClient
from dealsync.fixes.circuit_breaker import CircuitBreaker
from dealsync.fixes.config import FixOrchestrationConfig
from dealsync.fixes.errors import (
    FixWorkflowError,
    InvalidIssuePayloadError,
    SessionNotInitializedError,
)
from dealsync.fixes.models import (
    FixHandlerContext,
    FixHandlerResult,
    FixResult,
    FixSession,
    FixStatus,
    FixStep,
    FixSummary,
    RollbackSummary,
    SessionStatus,
    StepStatus,
    ValidationIssue,
    utcnow,
)
from dealsync.fixes.progress import CancellationToken, ProgressStream
from dealsync.fixes.registry import FixHandlerRegistry, create_default_registry
from dealsync.utils.logging_config import CorrelationContext

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[FixStep], None]

CIRCUIT_OPEN_REASON = "Circuit breaker open"
DRY_RUN_REASON = "Dry run - no changes applied"

WORKFLOW_STEPS = (
    ("analyze_issues", "Analyze Issues", "Identify issues with an automatic fix"),
    ("validate_fixes", "Validate Fixes", "Confirm each fix is still safe to apply"),
    ("apply_fixes", "Apply Fixes", "Apply fixes in batches"),
    ("generate_summary", "Generate Summary", "Summarize the session"),
)


@dataclass
class SessionState:
    """Everything owned by one session, passed explicitly between phases."""

    session: FixSession
    cancel_token: CancellationToken = field(default_factory=CancellationToken)
    progress: ProgressStream = field(default_factory=ProgressStream)
    breaker: Optional[CircuitBreaker] = None
    context: Optional[FixHandlerContext] = None
    applied: List[Tuple[ValidationIssue, FixResult]] = field(default_factory=list)


class _HalfwayMarker:
    """Reports 50% progress once half of a phase's items are processed."""

    def __init__(self, total: int, report: Callable[[int], None]):
        self.total = total
        self.report = report
        self.processed = 0
        self.reported = False

    def tick(self, count: int = 1) -> None:
        self.processed += count
        if not self.reported and self.processed * 2 >= self.total:
            self.finish()

    def finish(self) -> None:
        if not self.reported:
            self.reported = True
            self.report(50)


class FixOrchestrator:
    """
    Coordinates fix handlers over a session of validation issues.

    One orchestrator runs one session at a time; initialize_session replaces
    any previous session.
    """

    def __init__(
        self,
        config: Optional[FixOrchestrationConfig] = None,
        registry: Optional[FixHandlerRegistry] = None,
        client: Optional[PipedriveDealClient] = None,
        metrics=None
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Operational parameters (defaults apply when omitted)
            registry: Handler registry; the default one is built around client
            client: Deal client shared by the default handlers
            metrics: Optional FixMetrics
        """
        self.config = (config or FixOrchestrationConfig()).validate()
        self.client = client or PipedriveDealClient(timeout=self.config.request_timeout_seconds)

        if registry is None:
            registry = create_default_registry(self.client)
        else:
            registry.verify_coverage()
        self.registry = registry

        self.metrics = metrics
        self._progress_callback: Optional[ProgressCallback] = None
        self._state: Optional[SessionState] = None

    def initialize_session(
        self,
        tenant_id: str,
        tenant_name: str,
        issues: Iterable[Union[ValidationIssue, Dict[str, Any]]]
    ) -> FixSession:
        """
        Start a new session.

        Args:
            tenant_id: Tenant identifier
            tenant_name: Display name of the tenant
            issues: ValidationIssue objects or their dict form

        Returns:
            The new FixSession in pending state

        Raises:
            InvalidIssuePayloadError: If an issue dict has no code
        """
        parsed = [i if isinstance(i, ValidationIssue) else ValidationIssue.from_dict(i) for i in issues]
        kept = [i for i in parsed if not i.requires_manual_resolution]

        session = FixSession(
            id=f"fix-{uuid.uuid4()}",
            tenant_id=tenant_id,
            tenant_name=tenant_name,
            issues=kept,
            excluded_issues=len(parsed) - len(kept),
        )
        self._state = SessionState(session=session)

        logger.info(
            f"Initialized fix session {session.id} for {tenant_name}: {len(kept)} issues, "
            f"{session.excluded_issues} excluded for manual resolution"
        )
        return session

    def set_progress_callback(self, callback: Optional[ProgressCallback]) -> None:
        self._progress_callback = callback

    def progress_stream(self) -> ProgressStream:
        """
        Stream of FixStep snapshots for the current session.

        Raises:
            SessionNotInitializedError: If no session exists
        """
        return self._require_state().progress

    def get_session(self) -> Optional[FixSession]:
        return self._state.session if self._state else None

    def _require_state(self) -> SessionState:
        if self._state is None:
            raise SessionNotInitializedError("No fix session initialized")
        return self._state

    def execute_fix_workflow(self, api_key: str, company_domain: str) -> FixSession:
        """
        Run all four phases for the current session.

        Args:
            api_key: Pipedrive API token
            company_domain: Pipedrive company subdomain

        Returns:
            The session in completed or cancelled state

        Raises:
            SessionNotInitializedError: If no session exists
            FixWorkflowError: If the session is not pending
            Exception: Whatever a phase raised; the session is marked failed
                and keeps its partial results
        """
        state = self._require_state()
        session = state.session

        if session.status != SessionStatus.PENDING:
            raise FixWorkflowError(f"Session {session.id} is {session.status.value}, not pending")

        state.context = FixHandlerContext(
            api_key=api_key,
            company_domain=company_domain,
            tenant_id=session.tenant_id,
            config=self.config,
        )
        state.breaker = CircuitBreaker(
            threshold=self.config.circuit_breaker_threshold,
            reset_ms=self.config.circuit_breaker_reset_ms,
            on_trip=lambda: self._on_breaker_trip(state),
        )
        session.status = SessionStatus.RUNNING

        with CorrelationContext(session.id):
            logger.info(f"Starting fix workflow for session {session.id}")
            try:
                session.analyzed_issues = self._run_step(
                    state, "analyze_issues",
                    lambda marker: self._analyze_issues(state, marker)
                )
                session.validated_issues = self._run_step(
                    state, "validate_fixes",
                    lambda marker: self._validate_fixes(state, session.analyzed_issues, marker)
                )
                self._run_step(
                    state, "apply_fixes",
                    lambda marker: self._apply_fixes(state, session.validated_issues, marker)
                )
                session.summary = self._run_step(
                    state, "generate_summary",
                    lambda marker: self._generate_summary(state, marker)
                )
            except Exception as e:
                session.status = SessionStatus.FAILED
                session.error = str(e)
                logger.error(f"Fix workflow failed for session {session.id}: {e}")
                raise
            else:
                if state.cancel_token.cancelled:
                    session.status = SessionStatus.CANCELLED
                else:
                    session.status = SessionStatus.COMPLETED
                logger.info(
                    f"Fix workflow {session.status.value} for session {session.id}: "
                    f"{session.summary.fixed_count} fixed, {session.summary.failed_count} failed, "
                    f"{session.summary.skipped_count} skipped"
                )
            finally:
                session.end_time = utcnow()
                state.progress.close()
                if self.metrics is not None:
                    # The breaker is scoped to this session
                    self.metrics.set_circuit_breaker_open(session.tenant_id, False)
                    self.metrics.record_session(
                        session.tenant_id, session.status.value, session.duration_ms / 1000
                    )

        return session

    def _run_step(self, state: SessionState, step_id: str, phase: Callable[[_HalfwayMarker], Any]):
        """Run one phase, publishing running(0) -> running(50) -> completed(100) or error."""
        self._update_step(state, step_id, StepStatus.RUNNING, 0)
        marker = _HalfwayMarker(0, lambda pct: self._update_step(state, step_id, StepStatus.RUNNING, pct))

        try:
            result = phase(marker)
        except Exception as e:
            progress = 50 if marker.reported else 0
            self._update_step(state, step_id, StepStatus.ERROR, progress, error=str(e))
            raise

        marker.finish()
        self._update_step(state, step_id, StepStatus.COMPLETED, 100, result=result)
        return result

    def _update_step(
        self,
        state: SessionState,
        step_id: str,
        status: StepStatus,
        progress: int,
        result: Any = None,
        error: Optional[str] = None
    ) -> None:
        steps = state.session.steps
        step = steps.get(step_id)
        if step is None:
            _, name, description = next(s for s in WORKFLOW_STEPS if s[0] == step_id)
            step = FixStep(id=step_id, name=name, description=description)
            steps[step_id] = step

        if step.start_time is None and status == StepStatus.RUNNING:
            step.start_time = utcnow()
        if status in (StepStatus.COMPLETED, StepStatus.ERROR):
            step.end_time = utcnow()

        step.status = status
        step.progress = progress
        step.result = result
        step.error = error

        state.progress.publish(step)
        if self._progress_callback is not None:
            try:
                self._progress_callback(step.snapshot())
            except Exception as e:
                logger.error(f"Progress callback failed on step {step_id}: {e}")

    def _analyze_issues(self, state: SessionState, marker: _HalfwayMarker) -> List[ValidationIssue]:
        issues = state.session.issues
        marker.total = len(issues)
        fixable = []

        for issue in issues:
            handler = self.registry.get(issue.code)
            if handler is not None and handler.can_handle(issue):
                fixable.append(issue)
            else:
                logger.debug(f"No handler for {issue.code} on record {issue.record_id}")
            marker.tick()

        logger.info(f"Analyzed {len(issues)} issues, {len(fixable)} fixable")
        return fixable

    def _validate_fixes(
        self,
        state: SessionState,
        issues: List[ValidationIssue],
        marker: _HalfwayMarker
    ) -> List[ValidationIssue]:
        marker.total = len(issues)
        validated = []

        for issue in issues:
            handler = self.registry.get(issue.code)
            try:
                if handler.validate(issue, state.context):
                    validated.append(issue)
                else:
                    logger.debug(f"Validation rejected {issue.code} on record {issue.record_id}")
            except Exception as e:
                logger.warning(f"Validation error for {issue.code} on record {issue.record_id}: {e}")
            marker.tick()

        logger.info(f"Validated {len(validated)} of {len(issues)} fixes")
        return validated

    def _apply_fixes(
        self,
        state: SessionState,
        issues: List[ValidationIssue],
        marker: _HalfwayMarker
    ) -> List[FixResult]:
        batch_size = self.config.batch_size
        batches = [issues[i:i + batch_size] for i in range(0, len(issues), batch_size)]
        marker.total = len(batches)
        results = state.session.fix_results

        for index, batch in enumerate(batches):
            reason = self._stop_reason(state)
            if reason is None and index > 0 and self.config.inter_batch_delay_ms > 0:
                time.sleep(self.config.inter_batch_delay_ms / 1000)

            logger.debug(f"Processing batch {index + 1}/{len(batches)} ({len(batch)} issues)")
            for issue in batch:
                reason = self._stop_reason(state)
                if reason is not None:
                    result = self._skipped(issue, reason)
                else:
                    result = self._apply_single(state, issue)

                results.append(result)
                if result.status == FixStatus.FIXED:
                    state.applied.append((issue, result))
                if self.metrics is not None:
                    self.metrics.record_fix_result(
                        state.session.tenant_id, issue.code, result.status.value
                    )
            marker.tick()

        return results

    def _stop_reason(self, state: SessionState) -> Optional[str]:
        if state.cancel_token.cancelled:
            return state.cancel_token.reason
        if state.breaker.is_open():
            return CIRCUIT_OPEN_REASON
        if self.metrics is not None:
            self.metrics.set_circuit_breaker_open(state.session.tenant_id, False)
        return None

    @staticmethod
    def _skipped(issue: ValidationIssue, reason: str, new_value: Any = None) -> FixResult:
        return FixResult(
            issue_code=issue.code,
            record_id=issue.record_id,
            status=FixStatus.SKIPPED,
            new_value=new_value,
            error=reason,
        )

    def _apply_single(self, state: SessionState, issue: ValidationIssue) -> FixResult:
        handler = self.registry.get(issue.code)
        if handler is None:
            return self._skipped(issue, f"No handler registered for {issue.code}")

        if self.config.enable_dry_run:
            logger.info(f"[dry run] Would fix {issue.code} on record {issue.record_id}")
            return self._skipped(issue, DRY_RUN_REASON, new_value=self._target_value(issue))

        attempts = self.config.retry_attempts
        outcome = FixHandlerResult(success=False)

        for attempt in range(1, attempts + 1):
            try:
                outcome = handler.apply_fix(issue, state.context)
            except Exception as e:
                outcome = FixHandlerResult(success=False, error=str(e))

            if outcome.success and outcome.rollback_data is None:
                # Applied but not reversible; retrying would mutate twice
                logger.error(f"{handler.handler_id} returned no rollback data for {issue.record_id}")
                outcome = FixHandlerResult(
                    success=False,
                    original_value=outcome.original_value,
                    error="Handler returned no rollback data",
                )
                break

            if outcome.success:
                state.breaker.record_success()
                return FixResult(
                    issue_code=issue.code,
                    record_id=issue.record_id,
                    status=FixStatus.FIXED,
                    original_value=outcome.original_value,
                    new_value=outcome.new_value,
                    rollback_data=outcome.rollback_data,
                    attempts=attempt,
                )

            logger.warning(
                f"Attempt {attempt}/{attempts} failed for {issue.code} on record "
                f"{issue.record_id}: {outcome.error}"
            )
            if attempt < attempts:
                if self.metrics is not None:
                    self.metrics.record_retry(state.session.tenant_id, issue.code)
                time.sleep(self.config.retry_delay_ms * attempt / 1000)

        state.breaker.record_failure()
        return FixResult(
            issue_code=issue.code,
            record_id=issue.record_id,
            status=FixStatus.FAILED,
            original_value=outcome.original_value,
            error=outcome.error or "Fix failed",
            attempts=attempt,
        )

    @staticmethod
    def _target_value(issue: ValidationIssue) -> Any:
        try:
            payload = issue.payload()
        except InvalidIssuePayloadError:
            return None
        return getattr(payload, "expected_title", None) or getattr(payload, "expected_value", None)

    def _on_breaker_trip(self, state: SessionState) -> None:
        if self.metrics is not None:
            self.metrics.record_circuit_breaker_trip(state.session.tenant_id)

    def _generate_summary(self, state: SessionState, marker: _HalfwayMarker) -> FixSummary:
        session = state.session
        results = session.fix_results
        fixed = sum(1 for r in results if r.status == FixStatus.FIXED)
        skipped = sum(1 for r in results if r.status == FixStatus.SKIPPED)
        failed = sum(1 for r in results if r.status == FixStatus.FAILED)
        marker.finish()

        recommendations = []
        if fixed:
            recommendations.append(f"Successfully fixed {fixed} deal(s)")
        if failed:
            recommendations.append(f"{failed} fix(es) failed - manual review required")
        if skipped:
            recommendations.append(
                f"{skipped} issue(s) were skipped (dry run, no handler or workflow stopped early)"
            )
        if state.breaker.tripped:
            recommendations.append(
                "Circuit breaker opened - check Pipedrive API health before re-running"
            )
        if session.excluded_issues:
            recommendations.append(
                f"{session.excluded_issues} issue(s) need manual resolution of pipeline placement"
            )

        return FixSummary(
            total_issues=len(session.issues),
            fixable_issues=len(session.analyzed_issues),
            validated_issues=len(session.validated_issues),
            fixed_count=fixed,
            skipped_count=skipped,
            failed_count=failed,
            duration_ms=session.duration_ms,
            fix_results=list(results),
            recommendations=recommendations,
            circuit_breaker_tripped=state.breaker.tripped,
        )

    def rollback_session(self, api_key: str, company_domain: str) -> RollbackSummary:
        """
        Undo every fix applied in the current session, newest first.

        Failures are logged per record and do not stop the sweep.

        Raises:
            SessionNotInitializedError: If no session exists
        """
        state = self._require_state()
        session = state.session
        context = FixHandlerContext(
            api_key=api_key,
            company_domain=company_domain,
            tenant_id=session.tenant_id,
            config=self.config,
        )
        summary = RollbackSummary()

        with CorrelationContext(session.id):
            for issue, result in reversed(state.applied):
                summary.attempted += 1
                handler = self.registry.get(result.issue_code)
                try:
                    restored = handler.rollback(issue, result.rollback_data, context)
                except Exception as e:
                    logger.error(f"Rollback raised for record {result.record_id}: {e}")
                    restored = False

                if restored:
                    summary.rolled_back += 1
                else:
                    summary.failed_record_ids.append(result.record_id)
                    logger.error(f"Rollback failed for record {result.record_id}")

                if self.metrics is not None:
                    self.metrics.record_rollback(session.tenant_id, restored)

        logger.info(
            f"Rolled back {summary.rolled_back}/{summary.attempted} fixes for session {session.id}"
        )
        return summary

    def cancel_session(self, reason: str = "Session cancelled") -> None:
        """
        Request cooperative cancellation.

        The apply phase stops before the next issue; remaining issues are
        recorded as skipped.
        """
        state = self._require_state()
        state.cancel_token.cancel(reason)

        session = state.session
        if session.status in (SessionStatus.PENDING, SessionStatus.RUNNING):
            if session.status == SessionStatus.PENDING:
                session.end_time = utcnow()
            session.status = SessionStatus.CANCELLED
            logger.info(f"Cancelled fix session {session.id}")
