"""
Title Format Fix Handler

Renames deals whose title does not follow the ProjectCode-VesselName
convention, using the expected title reported by the rule engine.
"""

import copy
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

# The rule engine emits these when it cannot build a real title
PLACEHOLDER_MARKERS = ("(missing", "(set ")


class TitleFormatFixHandler(FixHandler):
    """Fixes INVALID_TITLE_FORMAT issues."""

    handler_id = "title-format"
    supported_issue_codes = frozenset({IssueCode.INVALID_TITLE_FORMAT})

    def get_description(self) -> str:
        return "Fixes deal titles to match the expected format (ProjectCode-VesselName)"

    def validate(self, issue: ValidationIssue, context: FixHandlerContext) -> bool:
        """
        Refuse the fix unless a real, different target title exists and the
        live deal still carries the title the issue was raised against.
        """
        try:
            payload = issue.payload()
        except InvalidIssuePayloadError as e:
            logger.debug(f"[{self.handler_id}] Invalid payload: {e}")
            return False

        expected = payload.expected_title
        current = payload.deal_title

        if not expected:
            logger.debug(f"[{self.handler_id}] Deal {payload.deal_id} has no expected title")
            return False

        if any(marker in expected for marker in PLACEHOLDER_MARKERS):
            logger.debug(
                f"[{self.handler_id}] Deal {payload.deal_id} expected title is a placeholder: {expected}"
            )
            return False

        if current.lower() == expected.lower():
            logger.debug(f"[{self.handler_id}] Deal {payload.deal_id} title already correct")
            return False

        if COPY_MARKER in current.lower():
            logger.debug(f"[{self.handler_id}] Deal {payload.deal_id} looks like a duplicate")
            return False

        deal = self._fetch_deal(payload.deal_id, context)
        if deal is None:
            return False

        if deal.get("title") != current:
            logger.warning(
                f"[{self.handler_id}] Deal {payload.deal_id} title changed since validation: "
                f"'{current}' -> '{deal.get('title')}'"
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

            original_title = deal.get("title")
            updated = self.client.update_deal_title(
                payload.deal_id, payload.expected_title, context.api_key, context.company_domain
            )
            if not updated:
                return FixHandlerResult(
                    success=False,
                    original_value=original_title,
                    error="Failed to update deal title"
                )

            logger.info(
                f"[{self.handler_id}] Deal {payload.deal_id}: '{original_title}' -> "
                f"'{payload.expected_title}'"
            )
            return FixHandlerResult(
                success=True,
                original_value=original_title,
                new_value=payload.expected_title,
                rollback_data={
                    "deal_id": payload.deal_id,
                    "original_title": original_title,
                    "original_deal": copy.deepcopy(deal),
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
        if not isinstance(rollback_data, dict):
            logger.error(f"[{self.handler_id}] Rollback data is not a mapping")
            return False

        deal_id = rollback_data.get("deal_id")
        original_title = rollback_data.get("original_title")
        if deal_id is None or not isinstance(original_title, str):
            logger.error(f"[{self.handler_id}] Malformed rollback data: {sorted(rollback_data)}")
            return False

        try:
            restored = self.client.update_deal_title(
                deal_id, original_title, context.api_key, context.company_domain
            )
        except Exception as e:
            logger.error(f"[{self.handler_id}] Error rolling back deal {deal_id}: {e}")
            return False

        if restored:
            logger.info(f"[{self.handler_id}] Restored title of deal {deal_id}")
        else:
            logger.error(f"[{self.handler_id}] Failed to restore title of deal {deal_id}")
        return restored
