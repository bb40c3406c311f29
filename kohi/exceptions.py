"""Custom exception hierarchy for Kohi.

Provides error classification across the relay: configuration,
command loading, command execution and outbound delivery. Callers
catch the narrow type at the boundary that owns the failure and
fall back to ``KohiError`` for broad catches.
"""

from enum import Enum
from typing import Any, Optional


class ErrorCategory(str, Enum):
    """Classification of errors for logging and escalation."""
    TRANSIENT = "transient"          # Network hiccup, timeout, 5xx
    PERMANENT = "permanent"          # Rejected request, bad input
    INFRASTRUCTURE = "infrastructure"  # Missing credentials, env issues


class KohiError(Exception):
    """Base exception for all Kohi errors.

    Attributes:
        message: Human-readable error description.
        category: Error classification.
        module: Originating module name (e.g. "transport").
        context: Arbitrary key-value pairs for structured logging.
    """

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
    def is_transient(self) -> bool:
        """Whether the failure is likely to go away on its own."""
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


class ConfigError(KohiError):
    """Missing or unusable configuration.

    Raised at startup when the page access token cannot be obtained.
    Nothing useful can run without it, so this one is fatal.
    """

    def __init__(
        self,
        message: str = "",
        *,
        key: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.INFRASTRUCTURE,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.key = key
        super().__init__(
            message, category=category, module=module or "config", **context
        )


# ---------------------------------------------------------------------------
# Command subsystem exceptions
# ---------------------------------------------------------------------------

class CommandLoadError(KohiError):
    """A handler file could not be turned into command specs.

    Attributes:
        source: Path of the handler file that failed.
    """

    def __init__(
        self,
        message: str = "",
        *,
        source: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.source = source
        super().__init__(
            message, category=category, module=module or "commands.registry", **context
        )


class CommandError(KohiError):
    """A handler failure whose message is safe to show to the user.

    The router replies with ``message`` verbatim instead of the generic
    error text, so keep it short and free of internals.
    """

    def __init__(
        self,
        message: str = "",
        *,
        command: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.command = command
        super().__init__(
            message, category=category, module=module or "commands", **context
        )


# ---------------------------------------------------------------------------
# Transport exceptions
# ---------------------------------------------------------------------------

class DeliveryError(KohiError):
    """The platform API could not be reached or rejected a request.

    Attributes:
        status: HTTP status code, or None for network-level failures.
        body: Truncated response body for diagnostics.
    """

    def __init__(
        self,
        message: str = "",
        *,
        status: Optional[int] = None,
        body: str = "",
        category: Optional[ErrorCategory] = None,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.status = status
        self.body = body
        if category is None:
            # No status means we never got an answer: worth trying later
            if status is None or status >= 500:
                category = ErrorCategory.TRANSIENT
            else:
                category = ErrorCategory.PERMANENT
        super().__init__(
            message, category=category, module=module or "transport", **context
        )
