"""
Database Exception Classes for Status Engine

Connection and query failures raised by the database layer.
"""

from __future__ import annotations

from typing import Any, Optional

from exceptions.base import StatusEngineException


class DatabaseException(StatusEngineException):
    """
    Base Database Exception

    Parent class for all database-related exceptions.
    """

    default_error_code = 2000


class DatabaseConnectionError(DatabaseException):
    """Raised when the database cannot be reached or initialized."""

    default_error_code = 2001

    def __init__(
        self,
        message: str = "Failed to connect to database",
        database_url: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)
        if database_url:
            self.details["database_url"] = database_url


class DatabaseQueryError(DatabaseException):
    """Raised when a query fails to execute."""

    default_error_code = 2002
