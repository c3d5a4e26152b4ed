"""Deal/project reconciliation and automated fix orchestration."""

__version__ = "1.0.0"
