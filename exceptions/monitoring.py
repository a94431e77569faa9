"""
Monitoring Exception Classes for Status Engine

Errors raised inside the check pipeline and the alert dispatcher.
Predicate failures and network errors are never raised; they are
recorded as failing check results instead.
"""

from __future__ import annotations

from typing import Any, Optional

from exceptions.base import StatusEngineException


class MonitoringException(StatusEngineException):
    """Base class for monitoring-related exceptions."""

    default_error_code = 4000


class AlertException(MonitoringException):
    """Base class for alert delivery problems."""

    default_error_code = 4100

    def __init__(
        self,
        message: str,
        contact_id: Optional[int] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)
        if contact_id is not None:
            self.details["contact_id"] = contact_id


class AlertConfigurationError(AlertException):
    """A contact cannot be served with the current configuration."""

    default_error_code = 4101


class AlertDeliveryError(AlertException):
    """The transport rejected or failed to deliver a notification."""

    default_error_code = 4102


class UnsupportedContactTypeError(AlertException):
    """The contact type has no registered channel."""

    default_error_code = 4103
