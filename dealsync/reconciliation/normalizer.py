"""
Record Normalizer for Deal/Project Reconciliation

Converts raw Pipedrive deal payloads and Xero project payloads into
CanonicalRecord instances so the matcher can treat both sides alike.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from dealsync.reconciliation.models import CanonicalRecord, SOURCE_PIPEDRIVE, SOURCE_XERO

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "USD"


def _to_float(value: Any) -> float:
    """Parse a monetary value, treating anything unparseable as zero."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _amount(amount: Any) -> Optional[float]:
    if not isinstance(amount, dict) or amount.get("value") is None:
        return None
    return _to_float(amount.get("value"))


def _currency(amount: Any) -> Optional[str]:
    if not isinstance(amount, dict):
        return None
    return amount.get("currency")


def normalize_deal(raw: Dict[str, Any]) -> CanonicalRecord:
    """
    Normalize a Pipedrive deal payload.

    The v2 API returns the title as ``name``; v1 uses ``title``.

    Args:
        raw: Deal payload

    Returns:
        CanonicalRecord for the deal
    """
    title = raw.get("name") or raw.get("title") or ""
    if not title:
        logger.warning(f"Deal {raw.get('id')} has no title")

    return CanonicalRecord(
        id=str(raw["id"]),
        name=title,
        value=_to_float(raw.get("value")),
        currency=raw.get("currency") or DEFAULT_CURRENCY,
        source=SOURCE_PIPEDRIVE,
        status=raw.get("status") or "won",
        raw=dict(raw),
    )


def normalize_project(raw: Dict[str, Any]) -> CanonicalRecord:
    """
    Normalize a Xero project payload.

    The project value is ``totalAmount.value``; when Xero omits it the value
    is the sum of the task and expense totals.

    Args:
        raw: Project payload

    Returns:
        CanonicalRecord for the project
    """
    total = _amount(raw.get("totalAmount"))
    task_amount = raw.get("totalTaskAmount")
    expense_amount = raw.get("totalExpenseAmount")

    if total is None:
        total = (_amount(task_amount) or 0.0) + (_amount(expense_amount) or 0.0)

    currency = (
        _currency(raw.get("totalAmount"))
        or _currency(task_amount)
        or raw.get("currencyCode")
        or DEFAULT_CURRENCY
    )

    return CanonicalRecord(
        id=str(raw["projectId"]),
        name=raw.get("name") or "",
        value=total,
        currency=currency,
        source=SOURCE_XERO,
        status=raw.get("status") or "INPROGRESS",
        raw=dict(raw),
    )


def normalize_deals(payloads: Iterable[Dict[str, Any]]) -> List[CanonicalRecord]:
    """Normalize deal payloads, dropping entries without an id."""
    records = [normalize_deal(p) for p in payloads if p and p.get("id")]
    logger.debug(f"Normalized {len(records)} deals")
    return records


def normalize_projects(payloads: Iterable[Dict[str, Any]]) -> List[CanonicalRecord]:
    """Normalize project payloads, dropping entries without a projectId."""
    records = [normalize_project(p) for p in payloads if p and p.get("projectId")]
    logger.debug(f"Normalized {len(records)} projects")
    return records
