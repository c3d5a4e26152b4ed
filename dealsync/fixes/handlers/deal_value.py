"""
Deal Value Fix Handler

Sets a deal's value to the amount the rule engine expects (usually the
linked project's total) for VALUE_MISMATCH issues.
"""

import logging
from typing import Any, Dict

from dealsync.fixes.errors import InvalidIssuePayloadError
from dealsync.fixes.handlers.base import COPY_MARKER, FixHandler
from dealsync.fixes.models import (
    FixHandlerContext,
    FixHandlerResult,
    IssueCode,
    ValidationIssue,
)

logger = logging.getLogger(__name__)


def _same_amount(a: Any, b: Any) -> bool:
    try:
        return round(float(a), 2) == round(float(b), 2)
    except (TypeError, ValueError):
        return False


class DealValueFixHandler(FixHandler):
    """Fixes VALUE_MISMATCH issues."""

    handler_id = "deal-value"
    supported_issue_codes = frozenset({IssueCode.VALUE_MISMATCH})

    def get_description(self) -> str:
        return "Updates deal values to match the linked project total"

    def validate(self, issue: ValidationIssue, context: FixHandlerContext) -> bool:
        try:
            payload = issue.payload()
        except InvalidIssuePayloadError as e:
            logger.debug(f"[{self.handler_id}] Invalid payload: {e}")
            return False

        target = payload.expected_value
        if target is None or target < 0:
            logger.debug(f"[{self.handler_id}] Deal {payload.deal_id} has no usable expected value")
            return False

        if _same_amount(payload.deal_value, target):
            logger.debug(f"[{self.handler_id}] Deal {payload.deal_id} value already correct")
            return False

        if COPY_MARKER in payload.deal_title.lower():
            logger.debug(f"[{self.handler_id}] Deal {payload.deal_id} looks like a duplicate")
            return False

        deal = self._fetch_deal(payload.deal_id, context)
        if deal is None:
            return False

        if not _same_amount(deal.get("value"), payload.deal_value):
            logger.warning(
                f"[{self.handler_id}] Deal {payload.deal_id} value changed since validation: "
                f"{payload.deal_value} -> {deal.get('value')}"
            )
            return False

        return True

    def apply_fix(self, issue: ValidationIssue, context: FixHandlerContext) -> FixHandlerResult:
        try:
            payload = issue.payload()
            deal = self._fetch_deal(payload.deal_id, context)
            if deal is None:
                return FixHandlerResult(
                    success=False,
                    error=f"Could not fetch current state for deal {payload.deal_id}"
                )

            original_value = deal.get("value")
            updated = self.client.update_deal(
                payload.deal_id,
                {"value": payload.expected_value},
                context.api_key,
                context.company_domain
            )
            if not updated:
                return FixHandlerResult(
                    success=False,
                    original_value=original_value,
                    error="Failed to update deal value"
                )

            return FixHandlerResult(
                success=True,
                original_value=original_value,
                new_value=payload.expected_value,
                rollback_data={
                    "deal_id": payload.deal_id,
                    "original_value": original_value,
                    "currency": deal.get("currency"),
                },
            )

        except Exception as e:
            logger.error(f"[{self.handler_id}] Error applying fix: {e}")
            return FixHandlerResult(success=False, error=str(e))

    def rollback(
        self,
        issue: ValidationIssue,
        rollback_data: Dict[str, Any],
        context: FixHandlerContext
    ) -> bool:
        if not isinstance(rollback_data, dict) or "deal_id" not in rollback_data \
                or "original_value" not in rollback_data:
            logger.error(f"[{self.handler_id}] Malformed rollback data")
            return False

        deal_id = rollback_data["deal_id"]
        try:
            restored = self.client.update_deal(
                deal_id,
                {"value": rollback_data["original_value"]},
                context.api_key,
                context.company_domain
            )
        except Exception as e:
            logger.error(f"[{self.handler_id}] Error rolling back deal {deal_id}: {e}")
            return False

        if not restored:
            logger.error(f"[{self.handler_id}] Failed to restore value of deal {deal_id}")
        return restored
