"""Exceptions raised by the fix orchestration system."""


class FixWorkflowError(Exception):
    """Base class for fix orchestration failures."""
    pass


class SessionNotInitializedError(FixWorkflowError):
    """Raised when a workflow operation runs before initialize_session."""
    pass


class HandlerRegistrationError(FixWorkflowError):
    """Raised when the handler registry is missing or double-registers a code."""
    pass


class InvalidIssuePayloadError(FixWorkflowError):
    """Raised when issue metadata lacks the fields its payload type requires."""
    pass


class ConfigurationError(FixWorkflowError):
    """Raised when orchestration configuration is invalid."""
    pass
