"""
Unit tests for the fix handler registry.
"""

import pytest
from unittest.mock import Mock

from dealsync.fixes.errors import HandlerRegistrationError
from dealsync.fixes.handlers import DealValueFixHandler, TitleFormatFixHandler
from dealsync.fixes.models import AUTO_FIXABLE_CODES, IssueCode
from dealsync.fixes.registry import FixHandlerRegistry, create_default_registry


class TestFixHandlerRegistry:
    """Test suite for FixHandlerRegistry."""

    def test_default_registry_covers_auto_fixable_codes(self):
        """Test that every auto-fixable code has a handler."""
        registry = create_default_registry(Mock())

        for code in AUTO_FIXABLE_CODES:
            assert code in registry
        assert isinstance(registry.get(IssueCode.INVALID_TITLE_FORMAT), TitleFormatFixHandler)
        assert isinstance(registry.get("VALUE_MISMATCH"), DealValueFixHandler)
        assert len(registry.handlers) == 2

    def test_get_unknown_code(self):
        """Test lookups for codes without handlers."""
        registry = create_default_registry(Mock())

        assert registry.get("NOT_A_CODE") is None
        assert registry.get(None) is None
        assert registry.get(IssueCode.EMPTY_TITLE) is None

    def test_duplicate_registration_rejected(self):
        """Test that a code can only have one handler."""
        registry = FixHandlerRegistry()
        registry.register(TitleFormatFixHandler(Mock()))

        with pytest.raises(HandlerRegistrationError, match="INVALID_TITLE_FORMAT"):
            registry.register(TitleFormatFixHandler(Mock()))

    def test_verify_coverage_lists_missing_codes(self):
        """Test the coverage check names what is missing."""
        registry = FixHandlerRegistry()
        registry.register(TitleFormatFixHandler(Mock()))

        with pytest.raises(HandlerRegistrationError, match="VALUE_MISMATCH"):
            registry.verify_coverage()

    def test_handler_without_codes_rejected(self):
        """Test that a handler supporting nothing cannot register."""
        handler = Mock(handler_id="empty", supported_issue_codes=frozenset())

        with pytest.raises(HandlerRegistrationError):
            FixHandlerRegistry().register(handler)
