import json
from datetime import timedelta
from itertools import count
from unittest.mock import AsyncMock

import httpx
import pytest

from config.constants import AlertType, ContactContentType, ContactType
from config.settings import AlertSettings, EmailSettings
from exceptions import AlertConfigurationError
from monitoring.alerts import (
    AlertContext,
    AlertDispatcher,
    AlertSubject,
    render_email,
    render_template,
    should_send_down_alert,
)
from monitoring.notifiers import EmailSender, WebhookSender

from conftest import FIXED_NOW


class WebhookRecorder:
    """Mock transport handler that records requests and returns a fixed status."""

    def __init__(self, status_code=200):
        self.status_code = status_code
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        return httpx.Response(self.status_code)


def ticking_clock():
    ticks = count()
    return lambda: FIXED_NOW + timedelta(seconds=next(ticks))


@pytest.fixture
def recorder():
    return WebhookRecorder()


@pytest.fixture
def dispatcher(repos, recorder):
    return AlertDispatcher(
        contacts=repos.contacts,
        history=repos.alert_history,
        email_sender=EmailSender(EmailSettings(enabled=False)),
        webhook_sender=WebhookSender(AlertSettings(), transport=httpx.MockTransport(recorder)),
        clock=ticking_clock(),
    )


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def test_threshold_not_reached():
    assert not should_send_down_alert(FIXED_NOW - timedelta(seconds=10), 30, FIXED_NOW)


def test_threshold_reached():
    assert should_send_down_alert(FIXED_NOW - timedelta(seconds=31), 30, FIXED_NOW)
    assert should_send_down_alert(FIXED_NOW - timedelta(seconds=30), 30, FIXED_NOW)


def test_threshold_without_down_timestamp():
    assert not should_send_down_alert(None, 30, FIXED_NOW)


def test_render_template_blanks_missing_values():
    subject = AlertSubject(monitor_id=1, tenant_id=1, name="API", url="https://api.example.com")
    context = AlertContext(subject=subject, alert_type=AlertType.DOWN, timestamp=FIXED_NOW)
    rendered = render_template(
        "{{MONITOR_NAME}}|{{TENANT_NAME}}|{{STATUS_CODE}}|{{RESPONSE_BODY}}|{{ALERT_TYPE}}|{{TIMESTAMP}}",
        context,
    )
    assert rendered == "API||||down|2024-06-15T12:00:00"


def test_render_template_leaves_placeholders_in_values_alone():
    subject = AlertSubject(monitor_id=1, tenant_id=1, name="{{ALERT_TYPE}}", url="https://api.example.com")
    context = AlertContext(
        subject=subject,
        alert_type=AlertType.DOWN,
        timestamp=FIXED_NOW,
        response_body="error at {{TIMESTAMP}}",
    )
    rendered = render_template("{{RESPONSE_BODY}} / {{MONITOR_NAME}} / {{ALERT_TYPE}} / {{UNKNOWN}}", context)
    assert rendered == "error at {{TIMESTAMP}} / {{ALERT_TYPE}} / down / {{UNKNOWN}}"


def test_render_email_down_and_up():
    subject = AlertSubject(monitor_id=1, tenant_id=1, name="API", url="https://api.example.com")

    down = AlertContext(subject=subject, alert_type=AlertType.DOWN, timestamp=FIXED_NOW, status_code=503)
    title, body = render_email(down, "[Status Engine]")
    assert title == "[Status Engine] Monitor 'API' is DOWN - Status: 503"
    assert "URL: https://api.example.com" in body
    assert "Status Code: 503" in body

    no_status = AlertContext(subject=subject, alert_type=AlertType.DOWN, timestamp=FIXED_NOW)
    assert render_email(no_status, "[X]")[0].endswith("Status: N/A")

    up = AlertContext(subject=subject, alert_type=AlertType.UP, timestamp=FIXED_NOW)
    assert render_email(up, "[X]")[0] == "[X] Monitor 'API' is UP again"


# ---------------------------------------------------------------------------
# Dedup policy
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_down_up_down_sends_one_alert_each(dispatcher, repos, recorder, tenant, make_monitor, make_contact):
    monitor = await make_monitor(tenant.id)
    await make_contact(tenant.id)
    subject = AlertSubject.from_monitor(monitor)

    assert len(await dispatcher.handle_monitor_down(subject, 503)) == 1
    assert await dispatcher.handle_monitor_down(subject, 503) == []

    assert len(await dispatcher.handle_monitor_up(subject, 200)) == 1
    assert await dispatcher.handle_monitor_up(subject, 200) == []

    assert len(await dispatcher.handle_monitor_down(subject, 500)) == 1

    history = await repos.alert_history.list_for_monitor(monitor.id, tenant.id)
    assert [h.alert_type for h in history] == [AlertType.DOWN, AlertType.UP, AlertType.DOWN]
    assert len(recorder.requests) == 3
    await dispatcher.webhook_sender.close()


@pytest.mark.asyncio
async def test_up_without_prior_down_is_noop(dispatcher, repos, recorder, tenant, make_monitor, make_contact):
    monitor = await make_monitor(tenant.id)
    await make_contact(tenant.id)

    assert await dispatcher.handle_monitor_up(AlertSubject.from_monitor(monitor), 200) == []
    assert recorder.requests == []
    assert await repos.alert_history.list_for_monitor(monitor.id, tenant.id) == []


@pytest.mark.asyncio
async def test_failed_delivery_is_not_recorded(repos, tenant, make_monitor, make_contact):
    failing = WebhookRecorder(status_code=500)
    dispatcher = AlertDispatcher(
        contacts=repos.contacts,
        history=repos.alert_history,
        email_sender=EmailSender(EmailSettings(enabled=False)),
        webhook_sender=WebhookSender(transport=httpx.MockTransport(failing)),
        clock=ticking_clock(),
    )
    monitor = await make_monitor(tenant.id)
    await make_contact(tenant.id, name="broken")
    await make_contact(tenant.id, name="second", value="https://other.example.com/hook")
    subject = AlertSubject.from_monitor(monitor)

    assert await dispatcher.handle_monitor_down(subject, 503) == []
    # both contacts were still attempted
    assert len(failing.requests) == 2
    assert await repos.alert_history.list_for_monitor(monitor.id, tenant.id) == []

    # nothing was recorded, so the next check tries again
    failing.status_code = 200
    assert len(await dispatcher.handle_monitor_down(subject, 503)) == 2


@pytest.mark.asyncio
async def test_no_usable_channel_skips_dispatch(dispatcher, repos, tenant, make_monitor, make_contact):
    monitor = await make_monitor(tenant.id)
    await make_contact(tenant.id, ContactType.EMAIL, "ops@example.com")

    assert await dispatcher.handle_monitor_down(AlertSubject.from_monitor(monitor), 503) == []
    assert await repos.alert_history.list_for_monitor(monitor.id, tenant.id) == []


@pytest.mark.asyncio
async def test_inactive_contacts_are_ignored(dispatcher, recorder, tenant, make_monitor, make_contact):
    monitor = await make_monitor(tenant.id)
    await make_contact(tenant.id, is_active=False)

    assert await dispatcher.handle_monitor_down(AlertSubject.from_monitor(monitor), 503) == []
    assert recorder.requests == []


# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_http_contact_post_rendering(dispatcher, recorder, tenant, make_monitor, make_contact):
    monitor = await make_monitor(tenant.id, name="Checkout")
    await make_contact(
        tenant.id,
        value="https://hooks.example.com/{{ALERT_TYPE}}",
        http_method="post",
        http_headers=json.dumps({"X-Monitor": "{{MONITOR_NAME}}"}),
        http_body="{{MONITOR_NAME}} at {{MONITOR_URL}} for {{TENANT_NAME}}: {{STATUS_CODE}} {{RESPONSE_BODY}}",
        http_content_type=ContactContentType.TEXT_PLAIN,
    )

    sent = await dispatcher.handle_monitor_down(AlertSubject.from_monitor(monitor), 503, "maintenance")

    assert sent == ["https://hooks.example.com/down"]
    request = recorder.requests[0]
    assert request.method == "POST"
    assert request.headers["x-monitor"] == "Checkout"
    assert request.headers["content-type"] == "text/plain"
    assert request.content.decode() == (
        "Checkout at https://api.example.com/health for Acme Corp: 503 maintenance"
    )


@pytest.mark.asyncio
async def test_http_contact_defaults_to_get_without_body(dispatcher, recorder, tenant, make_monitor, make_contact):
    monitor = await make_monitor(tenant.id)
    await make_contact(tenant.id, http_body="ignored for GET")

    await dispatcher.handle_monitor_down(AlertSubject.from_monitor(monitor), 503)

    request = recorder.requests[0]
    assert request.method == "GET"
    assert request.content == b""


@pytest.mark.asyncio
async def test_post_body_defaults_to_json_content_type(dispatcher, recorder, tenant, make_monitor, make_contact):
    monitor = await make_monitor(tenant.id)
    await make_contact(tenant.id, http_method="POST", http_body='{"monitor": "{{MONITOR_NAME}}"}')

    await dispatcher.handle_monitor_down(AlertSubject.from_monitor(monitor), 503)

    request = recorder.requests[0]
    assert request.headers["content-type"] == "application/json"
    assert json.loads(request.content) == {"monitor": "API"}


@pytest.mark.asyncio
async def test_email_contact(repos, tenant, make_monitor, make_contact):
    email_sender = EmailSender(EmailSettings(enabled=True))
    email_sender.send = AsyncMock()
    dispatcher = AlertDispatcher(
        contacts=repos.contacts,
        history=repos.alert_history,
        email_sender=email_sender,
        webhook_sender=WebhookSender(transport=httpx.MockTransport(WebhookRecorder())),
        clock=ticking_clock(),
    )
    monitor = await make_monitor(tenant.id)
    await make_contact(tenant.id, ContactType.EMAIL, "ops@example.com")

    sent = await dispatcher.handle_monitor_down(AlertSubject.from_monitor(monitor), 502)

    assert sent == ["ops@example.com"]
    to_address, subject, body = email_sender.send.await_args.args
    assert to_address == "ops@example.com"
    assert subject == "[Status Engine] Monitor 'API' is DOWN - Status: 502"
    assert "Time: 2024-06-15 12:00:00 UTC" in body


# ---------------------------------------------------------------------------
# Test notifications
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_test_notification_never_writes_history(dispatcher, repos, recorder, tenant, make_contact):
    contact = await make_contact(tenant.id, http_method="POST", http_body="{{MONITOR_NAME}}|{{RESPONSE_BODY}}")

    assert await dispatcher.send_test_notification(contact) is True
    assert recorder.requests[0].content.decode() == "Test Monitor - Ops|Test notification response body"
    assert await repos.alert_history.list_for_monitor(-1, tenant.id) == []


@pytest.mark.asyncio
async def test_test_notification_reports_delivery_failure(repos, tenant, make_contact):
    dispatcher = AlertDispatcher(
        contacts=repos.contacts,
        history=repos.alert_history,
        email_sender=EmailSender(EmailSettings(enabled=False)),
        webhook_sender=WebhookSender(transport=httpx.MockTransport(WebhookRecorder(status_code=404))),
    )
    contact = await make_contact(tenant.id)

    assert await dispatcher.send_test_notification(contact) is False


@pytest.mark.asyncio
async def test_test_notification_email_requires_transport(dispatcher, tenant, make_contact):
    contact = await make_contact(tenant.id, ContactType.EMAIL, "ops@example.com")

    with pytest.raises(AlertConfigurationError):
        await dispatcher.send_test_notification(contact)
