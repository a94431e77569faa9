"""
Validation Exception Classes for Status Engine

Raised when monitor or alert contact data fails validation
before it is used by the engine.
"""

from __future__ import annotations

from typing import Any, Optional

from exceptions.base import StatusEngineException


class ValidationException(StatusEngineException):
    """
    Base Validation Exception

    Parent class for all validation-related exceptions.
    """

    default_error_code = 3000

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Any = None,
        **kwargs: Any
    ) -> None:
        """
        Initialize validation exception.

        Args:
            message: Error message
            field: Name of the field that failed validation
            value: The invalid value (sanitized)
            **kwargs: Additional arguments
        """
        super().__init__(message, **kwargs)

        if field:
            self.details["field"] = field

        if value is not None:
            self.details["value"] = self._sanitize_value(value)

    @staticmethod
    def _sanitize_value(value: Any) -> str:
        """Truncate long values for safe logging."""
        value_str = str(value)
        if len(value_str) > 100:
            value_str = value_str[:100] + "..."
        return value_str


class InvalidEmailError(ValidationException):
    """Raised for a malformed email contact address."""

    default_error_code = 3001

    def __init__(self, email: str, **kwargs: Any) -> None:
        super().__init__(f"Invalid email address: {email}", field="value", value=email, **kwargs)


class InvalidURLError(ValidationException):
    """Raised for a URL that is not an absolute http(s) URL."""

    default_error_code = 3002

    def __init__(self, url: str, reason: Optional[str] = None, **kwargs: Any) -> None:
        message = f"Invalid URL: {url}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, field="url", value=url, **kwargs)


class InvalidHTTPMethodError(ValidationException):
    """Raised when an HTTP contact method is not GET or POST."""

    default_error_code = 3003

    def __init__(self, method: Optional[str], **kwargs: Any) -> None:
        super().__init__(
            f"Invalid HTTP method: {method}. Must be GET or POST",
            field="http_method",
            value=method,
            **kwargs
        )


class InvalidThresholdError(ValidationException):
    """Raised when an alerting threshold is not a positive multiple of the step."""

    default_error_code = 3004

    def __init__(self, threshold: int, step: int, **kwargs: Any) -> None:
        super().__init__(
            f"Alerting threshold must be at least {step} seconds and a multiple of {step}, got {threshold}",
            field="alerting_threshold",
            value=threshold,
            **kwargs
        )
