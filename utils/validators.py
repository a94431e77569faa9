"""
============================================================================
STATUS ENGINE - VALIDATORS UTILITY
============================================================================
Validation of alert contacts and monitor settings before the engine
uses them.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import json
import re
from typing import Any, Dict, Optional

import validators as external_validators

from config.constants import ContactType, Defaults
from exceptions.validation import (
    InvalidEmailError,
    InvalidHTTPMethodError,
    InvalidThresholdError,
    InvalidURLError,
    ValidationException,
)
from utils.logger import get_logger


logger = get_logger("Validators")


# ============================================================================
# URL VALIDATORS
# ============================================================================

class URLValidator:
    """
    URL validation.
    """

    SCHEME_PATTERN = re.compile(r"^https?://.*", re.IGNORECASE)

    @staticmethod
    def has_http_scheme(url: Optional[str]) -> bool:
        """True when *url* starts with ``http://`` or ``https://``."""
        return bool(url) and URLValidator.SCHEME_PATTERN.match(url) is not None

    @staticmethod
    def is_valid_url(url: Optional[str]) -> bool:
        """
        Check that *url* is a well-formed absolute http(s) URL.

        Args:
            url: URL to validate

        Returns:
            True if valid, False otherwise
        """
        if not URLValidator.has_http_scheme(url):
            return False
        return external_validators.url(url, simple_host=True) is True


# ============================================================================
# CONTACT VALIDATORS
# ============================================================================

class ContactValidator:
    """
    Type-specific validation for alert contacts.

    HTTP contact URLs may carry template placeholders, so only the
    scheme is checked for them.
    """

    EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9+_.-]+@([A-Za-z0-9.-]+\.[A-Za-z]{2,})$")
    HTTP_METHOD_PATTERN = re.compile(r"^(GET|POST)$", re.IGNORECASE)

    @classmethod
    def is_valid_email(cls, email: Optional[str]) -> bool:
        return bool(email) and cls.EMAIL_PATTERN.fullmatch(email) is not None

    @classmethod
    def is_valid_http_method(cls, method: Optional[str]) -> bool:
        return bool(method) and cls.HTTP_METHOD_PATTERN.fullmatch(method) is not None

    @classmethod
    def normalize_http_method(cls, method: Optional[str]) -> str:
        """
        Upper-case *method*, defaulting to GET when unset.

        Raises:
            InvalidHTTPMethodError: for anything other than GET or POST
        """
        if not method:
            return Defaults.HTTP_CONTACT_METHOD
        if not cls.is_valid_http_method(method):
            raise InvalidHTTPMethodError(method)
        return method.upper()

    @classmethod
    def validate(cls, contact_type: ContactType, value: Optional[str], http_method: Optional[str] = None) -> None:
        """
        Validate a contact's destination value.

        Args:
            contact_type: EMAIL or HTTP
            value: Email address or URL
            http_method: HTTP contacts only

        Raises:
            ValidationException: if the contact cannot be used
        """
        if contact_type == ContactType.EMAIL:
            if not cls.is_valid_email(value):
                raise InvalidEmailError(value or "")
        elif contact_type == ContactType.HTTP:
            if not URLValidator.has_http_scheme(value):
                raise InvalidURLError(value or "", reason="must start with http:// or https://")
            # templated URLs are only checked once rendered
            if "{{" not in value and not URLValidator.is_valid_url(value):
                raise InvalidURLError(value, reason="malformed URL")
            cls.normalize_http_method(http_method)
        else:
            raise ValidationException(f"Unknown contact type: {contact_type}", field="type", value=contact_type)

    @staticmethod
    def parse_headers(raw: Any) -> Dict[str, str]:
        """
        Coerce stored contact headers into a ``str -> str`` mapping.

        Accepts a mapping or a JSON object string; anything unparseable
        yields an empty mapping.
        """
        if not raw:
            return {}
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except ValueError:
                logger.warning(f"Ignoring contact headers that are not valid JSON: {raw[:100]!r}")
                return {}
        if not isinstance(raw, dict):
            logger.warning(f"Ignoring contact headers that are not a JSON object: {type(raw).__name__}")
            return {}
        return {str(k): "" if v is None else str(v) for k, v in raw.items()}


# ============================================================================
# MONITOR VALIDATORS
# ============================================================================

class MonitorValidator:
    """Validation of monitor settings the engine depends on."""

    @staticmethod
    def validate_alerting_threshold(threshold: Optional[int]) -> int:
        """
        Return *threshold* if it is a positive multiple of 15 seconds.

        Raises:
            InvalidThresholdError: otherwise
        """
        step = Defaults.ALERTING_THRESHOLD_STEP
        if threshold is None or threshold < step or threshold % step != 0:
            raise InvalidThresholdError(threshold, step)
        return threshold

    @staticmethod
    def effective_alerting_threshold(threshold: Optional[int]) -> int:
        """Validated threshold, falling back to the default when unusable."""
        try:
            return MonitorValidator.validate_alerting_threshold(threshold)
        except InvalidThresholdError as e:
            logger.warning(f"{e.message}; using {Defaults.ALERTING_THRESHOLD_SECONDS}s")
            return Defaults.ALERTING_THRESHOLD_SECONDS
