import asyncio

import httpx
import pytest

from config.settings import HttpProbeSettings
from monitoring.evaluator import (
    HealthCheckEvaluator,
    SuccessCriteria,
    check_default_status,
    check_metric_range,
    check_response_body,
    check_status_code,
    elapsed_ms,
    evaluate_response,
)
from monitoring.http_client import ProbeClient


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "status_code, is_up",
    [(199, False), (200, True), (399, True), (400, False), (503, False)],
)
def test_default_predicate(status_code, is_up):
    assert (check_default_status(status_code) is None) is is_up


def test_status_code_regex_requires_full_match():
    assert check_status_code(200, r"2\d\d") is None
    assert check_status_code(201, r"20") == "Status code 201 does not match pattern: 20"


def test_invalid_regex_is_a_failure_not_an_error():
    assert check_status_code(200, "(") == "Invalid status code regex: ("
    assert check_response_body("ok", "[") == "Invalid response body regex: ["
    assert check_metric_range("foo 1", "(") == "Invalid metric key regex: ("


def test_body_regex_searches_across_lines():
    body = "<html>\n<body>\nstatus: healthy\n</body>\n</html>"
    assert check_response_body(body, r"status: \w+") is None
    assert check_response_body(body, r"<body>.*healthy") is None
    assert check_response_body(body, "degraded") == "Response body does not match pattern: degraded"


def test_metric_range_sums_matching_keys():
    body = "foo 3\nbar 4\n"
    assert check_metric_range(body, "foo|bar", 5, 10) is None
    assert "below minimum" in check_metric_range(body, "foo|bar", 8, 10)
    assert "above maximum" in check_metric_range(body, "foo|bar", None, 6)


def test_metric_range_skips_comments_and_blank_lines():
    body = "# HELP foo a counter\n# TYPE foo counter\n\nfoo 2\nfoo_bucket 3\nother 100\n"
    assert check_metric_range(body, "^foo", 5, 5) is None


def test_metric_range_fails_when_no_key_matches():
    body = "foo 3\nbar 4\n"
    assert check_metric_range(body, "baz", 0, 100) == "No metric lines match key pattern: baz"
    # even with no bounds at all
    assert check_metric_range(body, "baz") == "No metric lines match key pattern: baz"


def test_metric_range_without_bounds_passes_on_match():
    assert check_metric_range("foo 3\n", "foo") is None


def test_status_range_applies_when_only_body_or_metric_is_configured():
    body_only = SuccessCriteria(response_body_regex="OK")
    assert evaluate_response(503, "status OK", body_only) == "HTTP 503 response"
    assert evaluate_response(200, "status OK", body_only) is None

    metric_only = SuccessCriteria(metric_key_regex="up")
    assert evaluate_response(500, "up 1\n", metric_only) == "HTTP 500 response"
    assert evaluate_response(204, "up 1\n", metric_only) is None


def test_status_regex_replaces_status_range():
    criteria = SuccessCriteria(status_code_regex="503", response_body_regex="maintenance")
    assert evaluate_response(503, "under maintenance", criteria) is None


def test_response_time_is_at_least_one_millisecond():
    assert elapsed_ms(10.0, 10.0) == 1
    assert elapsed_ms(10.0, 10.0004) == 1
    assert elapsed_ms(10.0, 10.25) == 250


# ---------------------------------------------------------------------------
# Evaluator against a mock transport
# ---------------------------------------------------------------------------

def _evaluator(handler):
    client = ProbeClient(HttpProbeSettings(), transport=httpx.MockTransport(handler))
    return client, HealthCheckEvaluator(client)


@pytest.mark.asyncio
async def test_check_success_with_default_predicate():
    seen = {}

    def handler(request):
        seen.update(request.headers)
        return httpx.Response(200, text="ok")

    client, evaluator = _evaluator(handler)
    async with client:
        outcome = await evaluator.check("https://svc.example.com/", {"X-Token": "abc"})

    assert outcome.is_up
    assert outcome.status_code == 200
    assert outcome.response_time_ms >= 1
    assert outcome.error_message is None
    assert seen["x-token"] == "abc"
    assert seen["accept"] == "*/*"
    assert seen["user-agent"].startswith("StatusEngine-Monitor")


@pytest.mark.asyncio
async def test_check_custom_headers_override_defaults():
    seen = {}

    def handler(request):
        seen.update(request.headers)
        return httpx.Response(200)

    client, evaluator = _evaluator(handler)
    async with client:
        await evaluator.check("https://svc.example.com/", {"Accept": "application/json"})

    assert seen["accept"] == "application/json"


@pytest.mark.asyncio
async def test_check_applies_all_predicates():
    def handler(request):
        return httpx.Response(200, text="requests_total 7\n")

    client, evaluator = _evaluator(handler)
    criteria = SuccessCriteria(
        status_code_regex="200",
        response_body_regex="requests",
        metric_key_regex="requests_total",
        metric_min_value=8,
    )
    async with client:
        outcome = await evaluator.check("https://svc.example.com/metrics", criteria=criteria)

    assert not outcome.is_up
    assert outcome.status_code == 200
    assert "below minimum" in outcome.error_message


@pytest.mark.asyncio
async def test_check_failing_status():
    client, evaluator = _evaluator(lambda request: httpx.Response(503, text="down"))
    async with client:
        outcome = await evaluator.check("https://svc.example.com/")

    assert not outcome.is_up
    assert outcome.status_code == 503
    assert outcome.error_message == "HTTP 503 response"
    assert outcome.response_body == "down"


@pytest.mark.asyncio
async def test_network_error_has_no_status_code():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client, evaluator = _evaluator(handler)
    async with client:
        outcome = await evaluator.check("https://svc.example.com/")

    assert not outcome.is_up
    assert outcome.status_code is None
    assert outcome.error_message.startswith("Network error:")
    assert outcome.response_time_ms >= 1


@pytest.mark.asyncio
async def test_unexpected_error_is_reported_separately():
    def handler(request):
        raise ValueError("boom")

    client, evaluator = _evaluator(handler)
    async with client:
        outcome = await evaluator.check("https://svc.example.com/")

    assert not outcome.is_up
    assert outcome.status_code is None
    assert outcome.error_message == "Unexpected error: boom"


@pytest.mark.asyncio
async def test_probe_client_must_be_started():
    client = ProbeClient(HttpProbeSettings(), transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    with pytest.raises(RuntimeError):
        await client.get("https://svc.example.com/")


@pytest.mark.asyncio
async def test_probe_client_lifecycle():
    client = ProbeClient(HttpProbeSettings(), transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    assert not client.is_open

    async with client:
        assert client.is_open
        response = await client.get("https://svc.example.com/")
        assert response.status_code == 200

    assert not client.is_open


@pytest.mark.asyncio
async def test_check_body_match_does_not_hide_server_error():
    client, evaluator = _evaluator(lambda request: httpx.Response(503, text="status OK"))
    async with client:
        outcome = await evaluator.check(
            "https://svc.example.com/health",
            criteria=SuccessCriteria(response_body_regex="OK"),
        )

    assert not outcome.is_up
    assert outcome.status_code == 503
    assert outcome.error_message == "HTTP 503 response"


@pytest.mark.asyncio
async def test_host_slots_are_released_when_idle():
    release = asyncio.Event()
    seen = []

    async def handler(request):
        seen.append(request.url.host)
        await release.wait()
        if request.url.host == "broken.example.com":
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200)

    client = ProbeClient(
        HttpProbeSettings(max_connections_per_host=1),
        transport=httpx.MockTransport(handler),
    )
    async with client:
        tasks = [
            asyncio.create_task(client.get("https://a.example.com/1")),
            asyncio.create_task(client.get("https://a.example.com/2")),
            asyncio.create_task(client.get("https://broken.example.com/")),
        ]
        while len(seen) < 2:
            await asyncio.sleep(0)

        # the second request for a.example.com waits for the first
        assert sorted(seen) == ["a.example.com", "broken.example.com"]
        assert client.tracked_hosts == 2

        release.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

    assert [getattr(r, "status_code", None) for r in results[:2]] == [200, 200]
    assert isinstance(results[2], httpx.ConnectError)
    assert seen.count("a.example.com") == 2
    assert client.tracked_hosts == 0
