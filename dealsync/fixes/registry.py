"""
Fix Handler Registry

Dispatch table from IssueCode to the handler that fixes it.
"""

import logging
from typing import Dict, Iterable, List, Optional, Union

from dealsync.fixes.errors import HandlerRegistrationError
from dealsync.fixes.handlers import DealValueFixHandler, FixHandler, TitleFormatFixHandler
from dealsync.fixes.models import AUTO_FIXABLE_CODES, IssueCode, parse_issue_code

logger = logging.getLogger(__name__)


class FixHandlerRegistry:
    """Maps each issue code to exactly one handler."""

    def __init__(self):
        self._handlers: Dict[IssueCode, FixHandler] = {}

    def register(self, handler: FixHandler) -> None:
        """
        Register a handler for every code it supports.

        Raises:
            HandlerRegistrationError: If a code already has a handler or the
                handler supports no codes
        """
        if not handler.supported_issue_codes:
            raise HandlerRegistrationError(f"Handler {handler.handler_id} supports no issue codes")

        taken = [c.value for c in handler.supported_issue_codes if c in self._handlers]
        if taken:
            raise HandlerRegistrationError(
                f"Handler {handler.handler_id} conflicts on already registered codes: {sorted(taken)}"
            )

        for code in handler.supported_issue_codes:
            self._handlers[code] = handler
            logger.debug(f"Registered handler {handler.handler_id} for {code.value}")

    def get(self, code: Union[IssueCode, str, None]) -> Optional[FixHandler]:
        if not isinstance(code, IssueCode):
            code = parse_issue_code(code) if code else None
        if code is None:
            return None
        return self._handlers.get(code)

    def verify_coverage(self, codes: Iterable[IssueCode] = AUTO_FIXABLE_CODES) -> None:
        """
        Raises:
            HandlerRegistrationError: Listing every code without a handler
        """
        missing = sorted(c.value for c in codes if c not in self._handlers)
        if missing:
            raise HandlerRegistrationError(f"No handler registered for: {', '.join(missing)}")

    @property
    def handlers(self) -> List[FixHandler]:
        unique = []
        for handler in self._handlers.values():
            if handler not in unique:
                unique.append(handler)
        return unique

    @property
    def codes(self) -> List[IssueCode]:
        return list(self._handlers)

    def __contains__(self, code) -> bool:
        return self.get(code) is not None

    def __len__(self) -> int:
        return len(self._handlers)


def create_default_registry(client) -> FixHandlerRegistry:
    """Registry with every built-in handler, checked against AUTO_FIXABLE_CODES."""
    registry = FixHandlerRegistry()
    registry.register(TitleFormatFixHandler(client))
    registry.register(DealValueFixHandler(client))
    registry.verify_coverage(AUTO_FIXABLE_CODES)

    logger.info(f"Fix handler registry ready with {len(registry.handlers)} handlers")
    return registry
