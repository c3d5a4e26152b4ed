"""
Pytest configuration and shared fixtures.

No test talks to the network: the deal client is replaced by a Mock and
sleeps are patched where timing matters.
"""

import pytest
from unittest.mock import Mock


def make_title_issue(deal_id, title, expected, **extra):
    """Dict form of an INVALID_TITLE_FORMAT issue as the rule engine emits it."""
    metadata = {"dealId": deal_id, "dealTitle": title, "expectedTitle": expected}
    metadata.update(extra)
    return {
        "code": "INVALID_TITLE_FORMAT",
        "severity": "error",
        "message": f"Deal title '{title}' does not match expected format",
        "metadata": metadata,
        "suggestedFix": f"Rename to '{expected}'",
    }


def make_value_issue(deal_id, value, expected, title="ED25002 - Titanic"):
    return {
        "code": "VALUE_MISMATCH",
        "severity": "warning",
        "message": "Deal value differs from project total",
        "metadata": {
            "dealId": deal_id,
            "dealTitle": title,
            "dealValue": value,
            "expectedValue": expected,
            "currency": "USD",
        },
    }


@pytest.fixture
def deal_store():
    """In-memory deals keyed by id, shared with the mock client."""
    return {
        101: {"id": 101, "title": "titanic ed25002", "value": 1000.0, "currency": "USD"},
        102: {"id": 102, "title": "Voyager job", "value": 2500.0, "currency": "USD"},
    }


@pytest.fixture
def mock_client(deal_store):
    """Mock PipedriveDealClient backed by deal_store."""
    client = Mock()

    def get_deal(deal_id, api_key, company_domain):
        deal = deal_store.get(deal_id)
        return dict(deal) if deal else None

    def update_deal(deal_id, fields, api_key, company_domain):
        if deal_id not in deal_store:
            return False
        deal_store[deal_id].update(fields)
        return True

    def update_deal_title(deal_id, title, api_key, company_domain):
        return update_deal(deal_id, {"title": title}, api_key, company_domain)

    client.get_deal.side_effect = get_deal
    client.update_deal.side_effect = update_deal
    client.update_deal_title.side_effect = update_deal_title
    return client


@pytest.fixture
def fast_config():
    """Config with small batches and the default delays (sleeps are patched)."""
    from dealsync.fixes.config import FixOrchestrationConfig
    return FixOrchestrationConfig(batch_size=2, retry_attempts=3, retry_delay_ms=1000)


@pytest.fixture
def handler_context(fast_config):
    from dealsync.fixes.models import FixHandlerContext
    return FixHandlerContext(
        api_key="test-token",
        company_domain="acme",
        tenant_id="tenant-1",
        config=fast_config,
    )


@pytest.fixture
def title_issue():
    """Factory for INVALID_TITLE_FORMAT issue dicts."""
    return make_title_issue


@pytest.fixture
def value_issue():
    """Factory for VALUE_MISMATCH issue dicts."""
    return make_value_issue


@pytest.fixture
def restore_dealsync_logger():
    """Undo configure_logging so later tests keep caplog propagation."""
    import logging
    logger = logging.getLogger("dealsync")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    yield
    logger.handlers[:] = saved[0]
    logger.setLevel(saved[1])
    logger.propagate = saved[2]
