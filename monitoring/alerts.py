"""
============================================================================
STATUS ENGINE - ALERT DISPATCHER
============================================================================
Decides whether a check should notify anyone, renders the message for
each active contact of the owning tenant, delivers it and records what
was actually sent.

Policy
------
DOWN  fires when the monitor has been down for at least its alerting
      threshold and the latest DOWN alert (if any) has already been
      followed by an UP alert.
UP    fires only when the latest DOWN alert has not been followed by an
      UP alert yet.

Alert history is written once per destination that was reached.  A
failed delivery is logged and left out of the history, so the next
eligible check tries again.  Test notifications bypass the policy and
are never recorded.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import inspect

from config.constants import (
    AlertType, ContactContentType, ContactType, EmailTemplates,
    SyntheticTestMonitor, TemplatePlaceholders
)
from config.settings import AlertSettings
from database.models import AlertContact, AlertHistory, Monitor
from database.repositories import AlertContactRepository, AlertHistoryRepository
from exceptions import (
    AlertConfigurationError, AlertException, UnsupportedContactTypeError,
    ValidationException
)
from monitoring.notifiers import EmailSender, WebhookSender
from utils.helpers import StringHelper, TimeHelper
from utils.logger import get_logger
from utils.validators import ContactValidator


logger = get_logger("AlertDispatcher")

PLACEHOLDER_PATTERN = re.compile(r"\{\{[A-Z_]+\}\}")


# ============================================================================
# VALUE OBJECTS
# ============================================================================

def _loaded_tenant(instance):
    """The tenant relationship if already loaded; detached rows never lazy-load."""
    if "tenant" in inspect(instance).unloaded:
        return None
    return instance.tenant


@dataclass(frozen=True)
class AlertSubject:
    """The monitor an alert is about, detached from the ORM."""
    monitor_id: int
    tenant_id: int
    name: str
    url: str
    tenant_name: Optional[str] = None

    @classmethod
    def from_monitor(cls, monitor: Monitor) -> "AlertSubject":
        tenant = _loaded_tenant(monitor)
        return cls(
            monitor_id=monitor.id,
            tenant_id=monitor.tenant_id,
            name=monitor.name,
            url=monitor.url,
            tenant_name=tenant.name if tenant is not None else None,
        )

    @classmethod
    def for_test(cls, contact: AlertContact) -> "AlertSubject":
        tenant = _loaded_tenant(contact)
        return cls(
            monitor_id=SyntheticTestMonitor.MONITOR_ID,
            tenant_id=contact.tenant_id,
            name=SyntheticTestMonitor.MONITOR_NAME.format(contact_name=contact.name),
            url=SyntheticTestMonitor.MONITOR_URL,
            tenant_name=tenant.name if tenant is not None else None,
        )


@dataclass(frozen=True)
class AlertContext:
    """Everything a template may refer to."""
    subject: AlertSubject
    alert_type: AlertType
    timestamp: datetime
    status_code: Optional[int] = None
    response_body: Optional[str] = None

    def placeholders(self) -> Dict[str, str]:
        return {
            TemplatePlaceholders.MONITOR_NAME: self.subject.name or "",
            TemplatePlaceholders.MONITOR_URL: self.subject.url or "",
            TemplatePlaceholders.TENANT_NAME: self.subject.tenant_name or "",
            TemplatePlaceholders.STATUS_CODE: "" if self.status_code is None else str(self.status_code),
            TemplatePlaceholders.RESPONSE_BODY: self.response_body or "",
            TemplatePlaceholders.ALERT_TYPE: self.alert_type.value,
            TemplatePlaceholders.TIMESTAMP: self.timestamp.isoformat(),
        }


# ============================================================================
# PURE HELPERS
# ============================================================================

def render_template(template: Optional[str], context: AlertContext) -> str:
    """Substitute every ``{{PLACEHOLDER}}`` in *template*."""
    if not template:
        return ""
    values = context.placeholders()
    # one pass, so placeholder text inside a substituted value stays literal
    return PLACEHOLDER_PATTERN.sub(lambda m: values.get(m.group(0), m.group(0)), template)


def render_email(context: AlertContext, prefix: str) -> Tuple[str, str]:
    """Subject and body of an alert email."""
    values = {
        "prefix": prefix,
        "name": context.subject.name,
        "url": context.subject.url,
        "status_code": "N/A" if context.status_code is None else context.status_code,
        "timestamp": TimeHelper.format_datetime(context.timestamp) + " UTC",
    }
    if context.alert_type == AlertType.UP:
        return EmailTemplates.UP_SUBJECT.format(**values), EmailTemplates.UP_BODY.format(**values)
    return EmailTemplates.DOWN_SUBJECT.format(**values), EmailTemplates.DOWN_BODY.format(**values)


def should_send_down_alert(down_since: Optional[datetime], threshold_seconds: int, now: datetime) -> bool:
    """
    True once the monitor has been down for at least *threshold_seconds*.

    Elapsed time is measured in whole seconds.
    """
    if down_since is None:
        return False
    return TimeHelper.whole_seconds_between(down_since, now) >= threshold_seconds


def is_down_alert_open(last_down: Optional[AlertHistory], last_up: Optional[AlertHistory]) -> bool:
    """True when a DOWN alert was sent and no UP alert followed it."""
    if last_down is None:
        return False
    if last_up is None:
        return True
    return (last_up.sent_at, last_up.id) <= (last_down.sent_at, last_down.id)


# ============================================================================
# DISPATCHER
# ============================================================================

class AlertDispatcher:
    """
    Edge-triggered, deduplicated alert delivery.

    Parameters
    ----------
    contacts : AlertContactRepository
        Source of each tenant's active contacts.
    history : AlertHistoryRepository
        Append-only record of delivered alerts.
    email_sender : EmailSender
        May be unconfigured; email contacts are skipped then.
    webhook_sender : WebhookSender
        Outbound HTTP capability for HTTP contacts.
    clock : Callable[[], datetime]
        Source of "now" (naive UTC).
    """

    def __init__(
        self,
        contacts: AlertContactRepository,
        history: AlertHistoryRepository,
        email_sender: EmailSender,
        webhook_sender: WebhookSender,
        settings: Optional[AlertSettings] = None,
        clock: Callable[[], datetime] = TimeHelper.get_utc_now,
    ):
        self.contacts = contacts
        self.history = history
        self.email_sender = email_sender
        self.webhook_sender = webhook_sender
        self.settings = settings or AlertSettings()
        self.clock = clock

    # ------------------------------------------------------------------
    # PUBLIC API
    # ------------------------------------------------------------------

    async def handle_monitor_down(
        self,
        subject: AlertSubject,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
    ) -> List[str]:
        """
        Notify every active contact that *subject* is down, unless an
        unresolved DOWN alert already went out.

        Returns the destinations that were reached.
        """
        contacts = await self._usable_contacts(subject.tenant_id)
        if not contacts:
            return []

        last_down = await self.history.find_latest(subject.monitor_id, subject.tenant_id, AlertType.DOWN)
        last_up = await self.history.find_latest(subject.monitor_id, subject.tenant_id, AlertType.UP)
        if is_down_alert_open(last_down, last_up):
            logger.debug(
                f"[Alerts] DOWN alert for monitor {subject.monitor_id} already sent, "
                f"waiting for recovery"
            )
            return []

        context = AlertContext(
            subject=subject,
            alert_type=AlertType.DOWN,
            timestamp=self.clock(),
            status_code=status_code,
            response_body=StringHelper.truncate(response_body, self.settings.response_body_limit, ""),
        )
        return await self._dispatch(contacts, context, record=True)

    async def handle_monitor_up(self, subject: AlertSubject, status_code: Optional[int] = None) -> List[str]:
        """
        Send a recovery notification if a DOWN alert is still unresolved.

        Returns the destinations that were reached.
        """
        contacts = await self._usable_contacts(subject.tenant_id)
        if not contacts:
            return []

        last_down = await self.history.find_latest(subject.monitor_id, subject.tenant_id, AlertType.DOWN)
        last_up = await self.history.find_latest(subject.monitor_id, subject.tenant_id, AlertType.UP)
        if not is_down_alert_open(last_down, last_up):
            return []

        context = AlertContext(
            subject=subject,
            alert_type=AlertType.UP,
            timestamp=self.clock(),
            status_code=status_code,
        )
        return await self._dispatch(contacts, context, record=True)

    async def send_test_notification(self, contact: AlertContact) -> bool:
        """
        Send a synthetic DOWN alert to a single contact.

        Never touches alert history and ignores threshold and dedup rules.

        Raises
        ------
        AlertConfigurationError
            For an EMAIL contact while email delivery is disabled.
        ValidationException
            If the contact's destination is invalid.

        Returns
        -------
        bool
            Whether the transport accepted the message.
        """
        if contact.type == ContactType.EMAIL and not self.email_sender.is_configured:
            raise AlertConfigurationError(
                "Email delivery is not configured; cannot send test notification",
                contact_id=contact.id,
            )
        ContactValidator.validate(contact.type, contact.value, contact.http_method)

        context = AlertContext(
            subject=AlertSubject.for_test(contact),
            alert_type=AlertType.DOWN,
            timestamp=self.clock(),
            status_code=SyntheticTestMonitor.STATUS_CODE,
            response_body=SyntheticTestMonitor.RESPONSE_BODY,
        )
        sent = await self._dispatch([contact], context, record=False)
        if sent:
            logger.info(f"[Alerts] Test notification delivered to contact {contact.id}")
        return bool(sent)

    # ------------------------------------------------------------------
    # INTERNALS
    # ------------------------------------------------------------------

    async def _usable_contacts(self, tenant_id: int) -> List[AlertContact]:
        """Active contacts, or an empty list when no channel could serve them."""
        contacts = await self.contacts.list_active_contacts(tenant_id)
        if not contacts:
            logger.debug(f"[Alerts] Tenant {tenant_id} has no active contacts")
            return []

        has_http = any(c.type == ContactType.HTTP for c in contacts)
        if not self.email_sender.is_configured and not has_http:
            logger.debug(
                f"[Alerts] Email delivery disabled and tenant {tenant_id} has no HTTP contacts"
            )
            return []
        return contacts

    async def _dispatch(self, contacts: List[AlertContact], context: AlertContext, record: bool) -> List[str]:
        delivered: List[str] = []
        for contact in contacts:
            try:
                destination = await self._deliver(contact, context)
            except ValidationException as e:
                logger.warning(f"[Alerts] Skipping invalid contact {contact.id}: {e.message}")
                continue
            except AlertException as e:
                logger.error(
                    f"[Alerts] Failed to send {context.alert_type.value} alert for monitor "
                    f"{context.subject.monitor_id} to contact {contact.id}: {e.message}"
                )
                continue

            delivered.append(destination)
            if record:
                await self.history.add(
                    AlertHistory(
                        monitor_id=context.subject.monitor_id,
                        tenant_id=context.subject.tenant_id,
                        alert_type=context.alert_type,
                        sent_at=self.clock(),
                        sent_to=destination,
                    )
                )

        if delivered:
            logger.info(
                f"[Alerts] {context.alert_type.value.upper()} alert for monitor "
                f"{context.subject.monitor_id} ({context.subject.name}) sent to {len(delivered)} contact(s)"
            )
        return delivered

    async def _deliver(self, contact: AlertContact, context: AlertContext) -> str:
        """Send to one contact and return the destination reached."""
        if contact.type == ContactType.EMAIL:
            return await self._deliver_email(contact, context)
        if contact.type == ContactType.HTTP:
            return await self._deliver_http(contact, context)
        raise UnsupportedContactTypeError(f"Unsupported contact type: {contact.type}", contact_id=contact.id)

    async def _deliver_email(self, contact: AlertContact, context: AlertContext) -> str:
        if not self.email_sender.is_configured:
            raise AlertConfigurationError(
                "Email delivery is not configured",
                contact_id=contact.id,
            )
        ContactValidator.validate(ContactType.EMAIL, contact.value)
        subject, body = render_email(context, self.email_sender.subject_prefix)
        await self.email_sender.send(contact.value, subject, body)
        return contact.value

    async def _deliver_http(self, contact: AlertContact, context: AlertContext) -> str:
        ContactValidator.validate(ContactType.HTTP, contact.value, contact.http_method)
        method = ContactValidator.normalize_http_method(contact.http_method)

        url = render_template(contact.value, context)
        headers = {
            name: render_template(value, context)
            for name, value in ContactValidator.parse_headers(contact.http_headers).items()
        }

        body = None
        if method == "POST" and contact.http_body:
            body = render_template(contact.http_body, context)
            content_type = (
                ContactContentType.TEXT_PLAIN
                if contact.http_content_type == ContactContentType.TEXT_PLAIN
                else ContactContentType.APPLICATION_JSON
            )
            headers["Content-Type"] = content_type.value

        await self.webhook_sender.send(method, url, headers=headers, body=body)
        return url
