"""
Logging setup with correlation IDs.

A correlation ID (the fix session id, or a fresh UUID per CLI run) is kept
in a context variable and stamped on every log record by
correlation_id_filter, so the lines of one session can be grepped together.
"""

import contextvars
import json
import logging
import os
import sys
import uuid
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)

_correlation_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    'correlation_id',
    default=None
)

# Extra attributes copied into JSON log lines when present on the record
STRUCTURED_FIELDS = ("session_id", "tenant_id", "issue_code", "record_id", "duration")


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str) -> None:
    """
    Set the correlation ID in the current context.

    Raises:
        ValueError: If correlation_id is empty or not a string
    """
    if not correlation_id or not isinstance(correlation_id, str):
        raise ValueError("Correlation ID must be a non-empty string")
    _correlation_id.set(correlation_id)


class CorrelationContext:
    """
    Binds a correlation ID for the duration of a ``with`` block and restores
    the previous one on exit.
    """

    def __init__(self, correlation_id: Optional[str] = None):
        self.correlation_id = correlation_id
        self._token = None

    def __enter__(self) -> str:
        if not self.correlation_id:
            self.correlation_id = generate_correlation_id()
        self._token = _correlation_id.set(self.correlation_id)
        return self.correlation_id

    def __exit__(self, exc_type, exc_val, exc_tb):
        _correlation_id.reset(self._token)


def correlation_id_filter(record):
    """Logging filter adding ``record.correlation_id``; always lets the record through."""
    record.correlation_id = get_correlation_id() or "N/A"
    return True


class StructuredJSONFormatter(logging.Formatter):
    """JSON-lines formatter with correlation ID support."""

    def format(self, record):
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'correlation_id': getattr(record, 'correlation_id', None) or get_correlation_id(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        for name in STRUCTURED_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def configure_logging(verbose: bool = False, json_logs: Optional[bool] = None) -> logging.Logger:
    """
    Configure the ``dealsync`` logger hierarchy.

    Args:
        verbose: Log at DEBUG instead of INFO
        json_logs: Emit JSON lines; defaults to the JSON_LOGGING env var

    Returns:
        The configured ``dealsync`` logger
    """
    if json_logs is None:
        json_logs = os.getenv('JSON_LOGGING', 'false').lower() == 'true'

    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(correlation_id_filter)
    if json_logs:
        handler.setFormatter(StructuredJSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '[%(asctime)s] %(levelname)s [%(correlation_id)s] %(name)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))

    root = logging.getLogger('dealsync')
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.propagate = False

    return root
