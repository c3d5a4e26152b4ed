"""
Fix Handler Interface

A handler owns one family of issue codes. It decides whether an issue is
safe to fix, applies the fix and can undo it from the rollback data it
returned. Handlers hold no per-session state; credentials arrive through
the FixHandlerContext on every call.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, FrozenSet

from dealsync.fixes.models import (
    FixHandlerContext,
    FixHandlerResult,
    IssueCode,
    ValidationIssue,
)

logger = logging.getLogger(__name__)

COPY_MARKER = "(copy)"


class FixHandler(ABC):
    """Base class for automatic fix handlers."""

    handler_id: str = ""
    supported_issue_codes: FrozenSet[IssueCode] = frozenset()

    def __init__(self, client):
        """
        Args:
            client: PipedriveDealClient used for reads and writes
        """
        self.client = client

    def can_handle(self, issue: ValidationIssue) -> bool:
        return issue.issue_code in self.supported_issue_codes

    @abstractmethod
    def validate(self, issue: ValidationIssue, context: FixHandlerContext) -> bool:
        """
        Check that the fix is still safe to apply against live data.

        Returns:
            True if apply_fix may run
        """

    @abstractmethod
    def apply_fix(self, issue: ValidationIssue, context: FixHandlerContext) -> FixHandlerResult:
        """
        Apply the fix.

        Returns:
            FixHandlerResult carrying rollback data on success
        """

    @abstractmethod
    def rollback(
        self,
        issue: ValidationIssue,
        rollback_data: Dict[str, Any],
        context: FixHandlerContext
    ) -> bool:
        """
        Undo a previously applied fix. Never raises.

        Returns:
            True if the record was restored
        """

    @abstractmethod
    def get_description(self) -> str:
        pass

    def _fetch_deal(self, deal_id: Any, context: FixHandlerContext):
        deal = self.client.get_deal(deal_id, context.api_key, context.company_domain)
        if deal is None:
            logger.warning(f"[{self.handler_id}] Could not fetch deal {deal_id}")
        return deal
