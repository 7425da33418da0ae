"""
Structured error types for the cadence engine.

Every failure the engine can record carries a category, an explicit
retry flag and structured context, so the execution log and the outer
redelivery layer can decide what to do without string matching.

Manifesto:
    - **Typed hierarchy:** Configuration, infrastructure and target
      resolution failures are different types, not different messages
    - **Explicit retry semantics:** Each error knows if redelivery can help
    - **Rich context:** Tenant, rule, event and data source ride along
    - **Error chaining:** The provider's original exception is kept as cause

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                        CadenceError                              │
        │          (category, retryable, context, cause)                   │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ConfigurationError      InfrastructureError   TargetResolution │
        │  (CONFIG, fatal)         (retryable)           (TARGET, fatal)  │
        │       │                        │                                 │
        │  UnknownActionType       ChannelNotConnected                     │
        │  UnknownProvider         ProviderUnavailable                     │
        │  InvalidActionConfig     CredentialExpired                       │
        │  InvalidTrigger          DocumentDestinationUnavailable          │
        │                                                                  │
        │  NotFoundError           InvalidTransitionError (ValueError)    │
        │  RuleNotFound                                                    │
        │  DataSourceNotFound                                              │
        └─────────────────────────────────────────────────────────────────┘

    A condition that does not match is not an error: it is the normal
    ``skipped`` terminal state. A webhook answering non-2xx is not an
    error either: it is a completed action whose result says
    ``success: False``.

Examples:
    >>> err = ChannelNotConnectedError("Slack not connected")
    >>> err.retryable
    True
    >>> err.with_context(tenant_id="t1").to_dict()["context"]
    {'tenant_id': 't1'}

Tags:
    error-handling, exception-hierarchy, retry-logic, error-context

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    CONFIG = "CONFIG"                  # Unknown adapter, missing config field
    INFRASTRUCTURE = "INFRASTRUCTURE"  # Channel down, provider unreachable
    AUTH = "AUTH"                      # Expired or revoked credentials
    TARGET = "TARGET"                  # No directory mapping for a user
    NOT_FOUND = "NOT_FOUND"            # Rule or data source missing
    STORAGE = "STORAGE"                # Store failures
    INTERNAL = "INTERNAL"              # Bugs, unexpected state
    UNKNOWN = "UNKNOWN"                # Uncategorized errors


@dataclass
class ErrorContext:
    """Structured metadata attached to an error for logging and the audit trail."""

    tenant_id: str | None = None
    rule_id: str | None = None
    event_id: str | None = None
    action_type: str | None = None
    data_source_id: str | None = None
    provider: str | None = None
    url: str | None = None
    http_status: int | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["tenant_id", "rule_id", "event_id", "action_type",
                    "data_source_id", "provider", "url", "http_status"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class CadenceError(Exception):
    """
    Base exception for all engine errors.

    Subclasses set ``default_category`` and ``default_retryable``; callers
    may still override either per instance.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> CadenceError:
        """
        Add context to this error (fluent API).

        Usage:
            raise ChannelNotConnectedError("Slack not connected").with_context(
                tenant_id=tenant_id, action_type="channel_message"
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS (fatal, never retried)
# =============================================================================


class ConfigurationError(CadenceError):
    """
    Rule or registration is misconfigured.

    Redelivering the same event cannot fix a bad rule, so these are
    surfaced to the caller and recorded, never retried.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class UnknownActionTypeError(ConfigurationError):
    """Action type has no registered adapter."""


class UnknownProviderError(ConfigurationError):
    """Data source names a provider with no registered adapter."""


class InvalidActionConfigError(ConfigurationError):
    """Action configuration is missing a required field or has the wrong shape."""

    def __init__(self, message: str, *, errors: list[dict[str, Any]] | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.errors = errors or []


class InvalidTriggerError(ConfigurationError):
    """Trigger event type is not part of the supported event list."""


# =============================================================================
# INFRASTRUCTURE ERRORS (retryable at the redelivery layer)
# =============================================================================


class InfrastructureError(CadenceError):
    """
    A collaborator the engine depends on is unavailable right now.

    Retryable by default: the outer redelivery layer may replay the whole
    event or the scanner will pick the data source up on the next tick.
    """

    default_category = ErrorCategory.INFRASTRUCTURE
    default_retryable = True


class ChannelNotConnectedError(InfrastructureError):
    """Tenant has no connected messaging workspace, or the post failed."""


class ProviderUnavailableError(InfrastructureError):
    """External data provider could not be reached or answered with a failure."""


class CredentialExpiredError(InfrastructureError):
    """Provider credentials expired and could not be refreshed."""

    default_category = ErrorCategory.AUTH


class DocumentDestinationUnavailableError(InfrastructureError):
    """Document producer or destination device is unreachable."""


# =============================================================================
# TARGET RESOLUTION / LOOKUP ERRORS
# =============================================================================


class TargetResolutionError(CadenceError):
    """No directory mapping exists for the user an action is addressed to."""

    default_category = ErrorCategory.TARGET
    default_retryable = False


class NotFoundError(CadenceError):
    """Referenced entity does not exist."""

    default_category = ErrorCategory.NOT_FOUND
    default_retryable = False


class RuleNotFoundError(NotFoundError):
    """Automation rule not found."""


class DataSourceNotFoundError(NotFoundError):
    """Data source registration not found."""


class StorageError(CadenceError):
    """Store rejected or failed an operation."""

    default_category = ErrorCategory.STORAGE


class InvalidTransitionError(ValueError):
    """Raised when an illegal state transition is attempted.

    Execution records and sync runs only move forward; a terminal state
    never goes back to running.
    """

    def __init__(self, current: str, target: str, enum_name: str = "Status") -> None:
        self.current = current
        self.target = target
        super().__init__(f"Invalid {enum_name} transition: {current} -> {target}")


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, CadenceError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


def categorize_error(error: BaseException) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, CadenceError):
        return error.category
    if isinstance(error, (ConnectionError, TimeoutError)):
        return ErrorCategory.INFRASTRUCTURE
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "CadenceError",
    "ConfigurationError",
    "UnknownActionTypeError",
    "UnknownProviderError",
    "InvalidActionConfigError",
    "InvalidTriggerError",
    "InfrastructureError",
    "ChannelNotConnectedError",
    "ProviderUnavailableError",
    "CredentialExpiredError",
    "DocumentDestinationUnavailableError",
    "TargetResolutionError",
    "NotFoundError",
    "RuleNotFoundError",
    "DataSourceNotFoundError",
    "StorageError",
    "InvalidTransitionError",
    "is_retryable",
    "categorize_error",
]
