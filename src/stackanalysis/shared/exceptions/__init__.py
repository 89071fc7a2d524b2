"""Exception hierarchy for stack analysis lifecycles.

Every failure a lifecycle can hit maps onto one class below, so the central
error handler only needs to understand :class:`StackAnalysisError`.  Each
exception carries a machine-readable ``error_code``, a ``severity`` indicator
and an arbitrary ``context`` dict for structured logging.
"""
from __future__ import annotations

from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Severity levels
# ---------------------------------------------------------------------------

class Severity(str, Enum):
    """Severity levels for stack analysis exceptions."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class StackAnalysisError(Exception):
    """Root exception for every stack analysis failure.

    Attributes:
        message:    Human-readable description, shown to the user.
        error_code: Machine-readable code (e.g. ``"SA_SUBMISSION_ERROR"``).
        severity:   Impact severity.
        context:    Arbitrary key-value context for structured logging.
    """

    def __init__(
        self,
        message: str = "Stack analysis error",
        error_code: str = "SA_ERROR",
        severity: Severity = Severity.MEDIUM,
        context: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.error_code = error_code
        self.severity = severity
        self.context: dict[str, Any] = context or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}("
            f"error_code={self.error_code!r}, "
            f"severity={self.severity.value!r}, "
            f"message={self.message!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise the exception for logs and report panels."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "severity": self.severity.value,
            "context": self.context,
        }


# ---------------------------------------------------------------------------
# Lifecycle exceptions
# ---------------------------------------------------------------------------

class ResolutionError(StackAnalysisError):
    """Raised when manifest or workspace resolution fails."""

    def __init__(self, message: str = "Failed to resolve application dependencies", **kwargs: Any) -> None:
        super().__init__(message, error_code=kwargs.pop("error_code", "SA_RESOLUTION_ERROR"), **kwargs)


class SubmissionError(StackAnalysisError):
    """Raised when an analysis job cannot be submitted or the direct analysis call fails."""

    def __init__(self, message: str = "Failed to submit stack analysis", **kwargs: Any) -> None:
        super().__init__(
            message,
            error_code=kwargs.pop("error_code", "SA_SUBMISSION_ERROR"),
            severity=kwargs.pop("severity", Severity.HIGH),
            **kwargs,
        )


class PollTransportError(StackAnalysisError):
    """Raised when a poll tick fails at the transport level."""

    def __init__(self, message: str = "Failed to fetch stack analysis status", **kwargs: Any) -> None:
        super().__init__(
            message,
            error_code=kwargs.pop("error_code", "SA_POLL_TRANSPORT_ERROR"),
            severity=kwargs.pop("severity", Severity.HIGH),
            **kwargs,
        )


class PollTimeoutError(StackAnalysisError):
    """Raised when the job is still pending after every poll attempt was used."""

    def __init__(
        self,
        message: str = "Failed to trigger application's stack analysis, try in a while.",
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_code=kwargs.pop("error_code", "SA_POLL_TIMEOUT"), **kwargs)


class PersistenceError(StackAnalysisError):
    """Raised when the analysis report cannot be written to disk."""

    def __init__(self, message: str = "Failed to write dependency analysis report", **kwargs: Any) -> None:
        super().__init__(
            message,
            error_code=kwargs.pop("error_code", "SA_PERSISTENCE_ERROR"),
            severity=kwargs.pop("severity", Severity.HIGH),
            **kwargs,
        )


class AnalysisInProgressError(StackAnalysisError):
    """Raised when a lifecycle for the same project is already running and joining is disabled."""

    def __init__(self, message: str = "Stack analysis already in progress", **kwargs: Any) -> None:
        super().__init__(
            message,
            error_code=kwargs.pop("error_code", "SA_IN_PROGRESS"),
            severity=kwargs.pop("severity", Severity.LOW),
            **kwargs,
        )


# ---------------------------------------------------------------------------
# Configuration / validation exceptions
# ---------------------------------------------------------------------------

class ConfigurationError(StackAnalysisError):
    """Raised when required configuration is missing or invalid."""

    def __init__(self, message: str = "Configuration error", **kwargs: Any) -> None:
        super().__init__(message, error_code=kwargs.pop("error_code", "SA_CONFIG_ERROR"), **kwargs)


class ValidationError(StackAnalysisError):
    """Raised when input data fails validation."""

    def __init__(self, message: str = "Validation error", **kwargs: Any) -> None:
        super().__init__(
            message,
            error_code=kwargs.pop("error_code", "SA_VALIDATION_ERROR"),
            severity=kwargs.pop("severity", Severity.LOW),
            **kwargs,
        )


class InvalidEcosystemError(ValidationError):
    """Raised for an ecosystem tag outside maven / npm / pypi / golang."""

    def __init__(self, ecosystem: str, **kwargs: Any) -> None:
        super().__init__(
            f"Unsupported ecosystem: {ecosystem!r}",
            error_code=kwargs.pop("error_code", "SA_INVALID_ECOSYSTEM"),
            context=kwargs.pop("context", {"ecosystem": ecosystem}),
            **kwargs,
        )
        self.ecosystem = ecosystem


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

__all__ = [
    "Severity",
    "StackAnalysisError",
    "ResolutionError",
    "SubmissionError",
    "PollTransportError",
    "PollTimeoutError",
    "PersistenceError",
    "AnalysisInProgressError",
    "ConfigurationError",
    "ValidationError",
    "InvalidEcosystemError",
]
