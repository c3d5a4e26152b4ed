"""
Project Key Generator for Deal/Project Reconciliation

Derives a canonical matching key from a free-text deal title or project name.
Two records are candidates for pairing when their keys are equal.
"""

import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_TRAILING_COUNTER = re.compile(r"\s*\(\d+\)\s*$", re.ASCII)
_CODE_WITH_SEPARATOR = re.compile(r"^([A-Z]+\d+)\s*[-\s]+\s*(.+)$", re.IGNORECASE | re.ASCII)
# Case-sensitive: only upper-case project codes may be glued to the name
_CODE_COMPACT = re.compile(r"^([A-Z]+\d+)([A-Za-z].*)$", re.ASCII)
_EMBEDDED_NUMBER = re.compile(r"(?:project|job|client)?[\s-]*(\d{3,})", re.IGNORECASE | re.ASCII)
_NON_ALPHANUMERIC = re.compile(r"[^a-zA-Z0-9]+")


def _squash(text: str) -> str:
    """Lowercase text and strip every non-alphanumeric character."""
    return _NON_ALPHANUMERIC.sub("", text.strip().lower())


def generate_project_key(name: Any) -> str:
    """
    Generate a normalized key for project matching.

    Rules are tried in order and the first one that matches wins:

    1. ``"MES241058 - London Voyager"`` -> ``"mes241058-londonvoyager"``
    2. ``"ED255007Vessel"`` -> ``"ed255007-vessel"``
    3. ``"Project 12345 Harbour"`` -> ``"12345-harbour"``
    4. anything else -> lowercased name with non-alphanumerics removed

    A trailing counter such as ``" (2)"`` is ignored.

    Args:
        name: Deal title or project name (may be None or not a string)

    Returns:
        Matching key, or an empty string for empty/invalid input
    """
    if not name or not isinstance(name, str):
        logger.warning(f"Invalid project name provided for key generation: {name!r}")
        return ""

    clean_name = _TRAILING_COUNTER.sub("", name).strip()

    code_match = _CODE_WITH_SEPARATOR.match(clean_name)
    if code_match:
        return f"{code_match.group(1).lower()}-{_squash(code_match.group(2))}"

    compact_match = _CODE_COMPACT.match(clean_name)
    if compact_match:
        return f"{compact_match.group(1).lower()}-{_squash(compact_match.group(2))}"

    number_match = _EMBEDDED_NUMBER.search(clean_name)
    if number_match:
        remaining = clean_name.replace(number_match.group(0), "", 1)
        return f"{number_match.group(1)}-{_squash(remaining)}"

    return _squash(clean_name)
