"""Custom exception hierarchy for policydesk.

Provides precise error classification across the dispatch core, so
callers can tell a missing handler from a handler crash or a bad
parameter set without string matching.

The dispatcher never lets these escape ``Dispatcher.handle()``; it
converts them into failed ``DispatchResult`` values carrying the
``error_code`` of the exception class.
"""

from enum import Enum
from typing import Any, Optional


class ErrorCategory(str, Enum):
    """Classification of errors for retry decisions."""
    TRANSIENT = "transient"          # Worth retrying (upstream timeout, rate limit)
    PERMANENT = "permanent"          # Not worth retrying (bad input, missing handler)
    INFRASTRUCTURE = "infrastructure"  # Config or environment problems


class PolicyDeskError(Exception):
    """Base exception for all policydesk errors.

    Attributes:
        message: Human-readable error description.
        category: Error classification for retry/escalation decisions.
        module: Originating module name (e.g. "dispatcher").
        context: Arbitrary key-value pairs for structured logging.
    """

    error_code: str = "error"

    def __init__(
        self,
        message: str = "",
        *,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.message = message
        self.category = category
        self.module = module
        self.context = context
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        """Whether this error is worth retrying."""
        return self.category == ErrorCategory.TRANSIENT

    def __str__(self) -> str:
        parts = [self.message or self.__class__.__name__]
        if self.module:
            parts.append(f"[module={self.module}]")
        if self.context:
            ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"({ctx})")
        return " ".join(parts)

    def __repr__(self) -> str:
        cls = self.__class__.__name__
        return (
            f"{cls}({self.message!r}, category={self.category.value!r}, "
            f"module={self.module!r})"
        )


# ---------------------------------------------------------------------------
# Dispatch exceptions
# ---------------------------------------------------------------------------

class ValidationError(PolicyDeskError):
    """Malformed or missing parameters for a handler.

    Not to be confused with ``pydantic.ValidationError``; modules that
    need both import pydantic's under an alias.
    """

    error_code = "validation_error"

    def __init__(
        self,
        message: str = "",
        *,
        field: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.field = field
        super().__init__(
            message, category=category, module=module or "handlers", **context
        )


class HandlerNotFoundError(PolicyDeskError):
    """No registry entry for the recognized intent type.

    Attributes:
        intent_type: The intent type that had no handler.
    """

    error_code = "handler_not_found"

    def __init__(
        self,
        intent_type: str,
        *,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.intent_type = intent_type
        super().__init__(
            f"No handler registered for intent '{intent_type}'",
            category=category,
            module=module or "dispatcher",
            **context,
        )


class HandlerExecutionError(PolicyDeskError):
    """A handler raised while executing.

    Wraps the original exception; ``message`` is the original message
    so it can be shown to the end user unchanged.

    Attributes:
        handler: Name of the handler that failed.
        cause: The original exception.
    """

    error_code = "handler_execution_error"

    def __init__(
        self,
        message: str = "",
        *,
        handler: Optional[str] = None,
        cause: Optional[BaseException] = None,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.handler = handler
        self.cause = cause
        super().__init__(
            message, category=category, module=module or "dispatcher", **context
        )


# ---------------------------------------------------------------------------
# History exceptions
# ---------------------------------------------------------------------------

class HistoryError(PolicyDeskError):
    """Invalid history operation, e.g. restoring a malformed snapshot."""

    error_code = "history_error"

    def __init__(
        self,
        message: str = "",
        *,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        super().__init__(
            message, category=category, module=module or "history", **context
        )


# ---------------------------------------------------------------------------
# Configuration exceptions
# ---------------------------------------------------------------------------

class ConfigurationError(PolicyDeskError):
    """Invalid or missing configuration.

    Defaults to INFRASTRUCTURE because config issues are environmental
    and won't resolve by retrying.
    """

    error_code = "configuration_error"

    def __init__(
        self,
        message: str = "",
        *,
        setting_name: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.INFRASTRUCTURE,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.setting_name = setting_name
        super().__init__(
            message, category=category, module=module or "config", **context
        )
