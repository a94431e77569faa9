"""
============================================================================
STATUS ENGINE - HEALTH-CHECK EVALUATOR
============================================================================
Issues one HTTP GET for a monitor through the shared probe pool and
applies the monitor's success predicates to the response.

Predicates
----------
default        ← no status-code regex: status in [200, 400)
status code    ← textual status must fully match a regex
body           ← response body must contain a regex match
metric range   ← Prometheus-style text: sum values whose key matches a
                 regex and compare the sum with optional min / max

Configured predicates are ANDed.  An invalid regex fails its predicate;
it never aborts the check.  Nothing here touches the database.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Mapping, Optional

import httpx

from config.constants import Defaults
from config.settings import HttpProbeSettings
from database.models import Monitor
from monitoring.http_client import ProbeClient
from utils.helpers import StringHelper, TimeHelper
from utils.logger import get_logger


logger = get_logger("Evaluator")


# ============================================================================
# VALUE OBJECTS
# ============================================================================

@dataclass(frozen=True)
class SuccessCriteria:
    """The optional success predicates of a monitor."""
    status_code_regex: Optional[str] = None
    response_body_regex: Optional[str] = None
    metric_key_regex: Optional[str] = None
    metric_min_value: Optional[float] = None
    metric_max_value: Optional[float] = None

    @classmethod
    def from_monitor(cls, monitor: Monitor) -> "SuccessCriteria":
        return cls(
            status_code_regex=monitor.status_code_regex,
            response_body_regex=monitor.response_body_regex,
            metric_key_regex=monitor.prometheus_key_regex,
            metric_min_value=monitor.prometheus_min_value,
            metric_max_value=monitor.prometheus_max_value,
        )

    @property
    def is_custom(self) -> bool:
        return bool(self.status_code_regex or self.response_body_regex or self.metric_key_regex)

    def describe(self) -> str:
        if not self.is_custom:
            return "default (200 <= status < 400)"
        parts = []
        if self.status_code_regex:
            parts.append(f"status={self.status_code_regex}")
        else:
            parts.append("200 <= status < 400")
        if self.response_body_regex:
            parts.append(f"body={self.response_body_regex}")
        if self.metric_key_regex:
            parts.append(
                f"metric={self.metric_key_regex} "
                f"[{self.metric_min_value}, {self.metric_max_value}]"
            )
        return ", ".join(parts)


@dataclass
class ProbeOutcome:
    """
    Result of one probe, before it is persisted.

    ``response_body`` is carried along for alert templates only and is
    never stored.
    """
    is_up: bool
    status_code: Optional[int]
    response_time_ms: int
    checked_at: datetime
    error_message: Optional[str] = None
    response_body: Optional[str] = field(default=None, repr=False)

    @classmethod
    def failure(cls, message: str, response_time_ms: int = 1, checked_at: Optional[datetime] = None) -> "ProbeOutcome":
        """A failed outcome with no HTTP status."""
        return cls(
            is_up=False,
            status_code=None,
            response_time_ms=max(1, response_time_ms),
            checked_at=checked_at or TimeHelper.get_utc_now(),
            error_message=message,
        )


def elapsed_ms(started: float, finished: float) -> int:
    """Whole milliseconds between two ``perf_counter`` readings, at least 1."""
    return max(1, int((finished - started) * 1000))


# ============================================================================
# PREDICATES
# ============================================================================

def check_default_status(status_code: int) -> Optional[str]:
    """Failure reason for the default predicate, or None if it passes."""
    if Defaults.SUCCESS_STATUS_MIN <= status_code < Defaults.SUCCESS_STATUS_MAX:
        return None
    return f"HTTP {status_code} response"


def check_status_code(status_code: int, pattern: str) -> Optional[str]:
    """The textual status code must fully match *pattern*."""
    try:
        regex = re.compile(pattern)
    except re.error:
        return f"Invalid status code regex: {pattern}"
    if regex.fullmatch(str(status_code)):
        return None
    return f"Status code {status_code} does not match pattern: {pattern}"


def check_response_body(body: Optional[str], pattern: str) -> Optional[str]:
    """The body must contain a match for *pattern* anywhere."""
    try:
        regex = re.compile(pattern, re.DOTALL | re.MULTILINE)
    except re.error:
        return f"Invalid response body regex: {pattern}"
    if body is not None and regex.search(body):
        return None
    return f"Response body does not match pattern: {pattern}"


def sum_metric_values(body: str, key_regex: "re.Pattern[str]") -> Optional[float]:
    """
    Sum the values of every metric line whose key matches *key_regex*.

    Blank lines and ``#`` comments are skipped, each remaining line is
    split on its first run of whitespace, and values that do not parse
    as numbers are ignored.  Returns None when no line contributed.
    """
    total = 0.0
    found = False
    for raw_line in body.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split(None, 1)
        if len(parts) < 2:
            continue
        key, value = parts
        if not key_regex.search(key):
            continue
        try:
            total += float(value.strip())
        except ValueError:
            continue
        found = True
    return total if found else None


def check_metric_range(
    body: Optional[str],
    key_pattern: str,
    min_value: Optional[float] = None,
    max_value: Optional[float] = None,
) -> Optional[str]:
    """
    Metric-range predicate.

    A key pattern that matches nothing fails even when no bounds are
    configured; present bounds are inclusive.
    """
    try:
        key_regex = re.compile(key_pattern)
    except re.error:
        return f"Invalid metric key regex: {key_pattern}"

    total = sum_metric_values(body, key_regex) if body else None
    if total is None:
        return f"No metric lines match key pattern: {key_pattern}"
    if min_value is not None and total < min_value:
        return f"Metric value {total:g} for keys matching {key_pattern} is below minimum {min_value:g}"
    if max_value is not None and total > max_value:
        return f"Metric value {total:g} for keys matching {key_pattern} is above maximum {max_value:g}"
    return None


def evaluate_response(status_code: int, body: Optional[str], criteria: SuccessCriteria) -> Optional[str]:
    """
    Apply *criteria* to a response.

    Returns
    -------
    str | None
        The first failing predicate's reason, or None when all pass.
    """
    # without a status pattern the 200-399 range still applies
    if criteria.status_code_regex:
        reason = check_status_code(status_code, criteria.status_code_regex)
    else:
        reason = check_default_status(status_code)
    if reason:
        return reason

    if criteria.response_body_regex:
        reason = check_response_body(body, criteria.response_body_regex)
        if reason:
            return reason

    if criteria.metric_key_regex:
        reason = check_metric_range(
            body,
            criteria.metric_key_regex,
            criteria.metric_min_value,
            criteria.metric_max_value,
        )
        if reason:
            return reason

    return None


# ============================================================================
# EVALUATOR
# ============================================================================

class HealthCheckEvaluator:
    """
    Performs a single health check.

    Transport failures are returned as failed outcomes with a
    ``Network error:`` reason; anything else that goes wrong becomes an
    ``Unexpected error:`` outcome.  No exception escapes ``check``.
    """

    def __init__(self, probe_client: ProbeClient, settings: Optional[HttpProbeSettings] = None):
        self.client = probe_client
        self.settings = settings or probe_client.settings

    async def evaluate(self, monitor: Monitor) -> ProbeOutcome:
        """Probe *monitor* using its URL, headers and success criteria."""
        return await self.check(
            monitor.url,
            monitor.headers or {},
            SuccessCriteria.from_monitor(monitor),
        )

    async def check(
        self,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        criteria: Optional[SuccessCriteria] = None,
    ) -> ProbeOutcome:
        """
        Execute one GET against *url* and evaluate it.

        Parameters
        ----------
        url : str
            Target URL.
        headers : Mapping[str, str] | None
            Custom request headers; they override the pool defaults.
        criteria : SuccessCriteria | None
            Success predicates; None means the default predicate.

        Returns
        -------
        ProbeOutcome
        """
        criteria = criteria or SuccessCriteria()
        request_headers = {str(k): str(v) for k, v in (headers or {}).items()}
        checked_at = TimeHelper.get_utc_now()
        started = time.perf_counter()

        try:
            response = await self.client.get(url, headers=request_headers)
            response_time_ms = elapsed_ms(started, time.perf_counter())
            body = response.text
            status_code = response.status_code

            reason = evaluate_response(status_code, body, criteria)
            is_up = reason is None

            if is_up:
                logger.debug(f"[HTTP] {url} → {status_code} in {response_time_ms}ms")
            else:
                self._log_failed_response(url, status_code, response_time_ms, criteria, response, body)

            return ProbeOutcome(
                is_up=is_up,
                status_code=status_code,
                response_time_ms=response_time_ms,
                checked_at=checked_at,
                error_message=reason,
                response_body=body,
            )

        except httpx.TransportError as e:
            response_time_ms = elapsed_ms(started, time.perf_counter())
            detail = str(e) or type(e).__name__
            logger.warning(
                f"[HTTP] {url} network error after {response_time_ms}ms "
                f"({type(e).__name__}): {detail} | request headers: {request_headers}"
            )
            return ProbeOutcome.failure(f"Network error: {detail}", response_time_ms, checked_at)

        except Exception as e:
            response_time_ms = elapsed_ms(started, time.perf_counter())
            detail = str(e) or type(e).__name__
            logger.opt(exception=e).error(
                f"[HTTP] Unexpected error checking {url} after {response_time_ms}ms: {detail}"
            )
            return ProbeOutcome.failure(f"Unexpected error: {detail}", response_time_ms, checked_at)

    def _log_failed_response(
        self,
        url: str,
        status_code: int,
        response_time_ms: int,
        criteria: SuccessCriteria,
        response: httpx.Response,
        body: Optional[str],
    ) -> None:
        response_headers: Dict[str, str] = dict(response.headers)
        request_headers: Dict[str, str] = dict(response.request.headers) if response.request else {}
        body_excerpt = StringHelper.truncate(body, self.settings.log_body_limit, "... (truncated)")
        logger.warning(
            f"[HTTP] Check failed for {url}: status={status_code}, time={response_time_ms}ms, "
            f"criteria={criteria.describe()} | request headers: {request_headers} | "
            f"response headers: {response_headers} | body: {body_excerpt or '<empty>'}"
        )
