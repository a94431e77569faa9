"""
Exceptions Package for Status Engine

Provides the exception hierarchy for error handling
throughout the engine.
"""

from exceptions.base import StatusEngineException

from exceptions.database import (
    DatabaseException,
    DatabaseConnectionError,
    DatabaseQueryError,
)

from exceptions.validation import (
    ValidationException,
    InvalidEmailError,
    InvalidURLError,
    InvalidHTTPMethodError,
    InvalidThresholdError,
)

from exceptions.monitoring import (
    MonitoringException,
    AlertException,
    AlertConfigurationError,
    AlertDeliveryError,
    UnsupportedContactTypeError,
)

__all__ = [
    # Base exception
    "StatusEngineException",

    # Database exceptions
    "DatabaseException",
    "DatabaseConnectionError",
    "DatabaseQueryError",

    # Validation exceptions
    "ValidationException",
    "InvalidEmailError",
    "InvalidURLError",
    "InvalidHTTPMethodError",
    "InvalidThresholdError",

    # Monitoring exceptions
    "MonitoringException",
    "AlertException",
    "AlertConfigurationError",
    "AlertDeliveryError",
    "UnsupportedContactTypeError",
]
