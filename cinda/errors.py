"""
Error taxonomy for the Cinda runner profile core.

Local validation and persistence problems are recoverable and never block
the wizard; remote failures are surfaced with a retry flag; routing without
any stored shoe requests or gap is fatal to the flow and sends the runner
back to the first step.
"""

from typing import Optional


class CindaError(Exception):
    """Base class for all package errors."""


class ProfileValidationError(CindaError, ValueError):
    """
    Malformed user input for a single field.

    Reported inline next to the offending field and never persisted.
    """

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class PersistenceError(CindaError):
    """Serialization, quota or backend failure while touching durable storage."""


class StorageQuotaExceeded(PersistenceError):
    """The backend refused a write because it would exceed its quota."""


class SchemaDriftWarning(UserWarning):
    """Stored schema version differs from the current one. Informational only."""


class ApiError(CindaError):
    """Base class for failures talking to the analysis/chat service."""

    retryable = True
    suggest_back = False

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class NetworkError(ApiError):
    """The request never produced an HTTP response (DNS, timeout, reset)."""


class ServerError(ApiError):
    """Non-2xx response other than 400, or an unsuccessful result body."""


class InvalidRequestError(ApiError):
    """HTTP 400: the profile needs fixing before a retry can succeed."""

    suggest_back = True


class InvalidRoutingState(CindaError):
    """Neither shoe requests nor a gap are stored when routing to analysis."""

    def __init__(self, message: str = "No shoe requests or gap found - restart the profile builder") -> None:
        super().__init__(message)
        self.restart_step = "basics"


class WizardError(CindaError):
    """Base class for wizard navigation errors."""


class IncompleteStepError(WizardError):
    """The current step is missing required fields."""

    def __init__(self, step: str, missing: list) -> None:
        super().__init__(f"Step '{step}' cannot proceed, missing: {missing}")
        self.step = step
        self.missing = missing


class DuplicateSubmissionError(WizardError):
    """A request is already pending for the current step."""
