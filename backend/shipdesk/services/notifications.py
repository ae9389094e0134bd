"""Customer notifications on shipment creation and status changes.

Delivery is best-effort: nothing in this module raises into the caller once a
notice has been handed off, failures end up in the log only.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from urllib.parse import quote

from shipdesk.core.config import Settings, get_settings
from shipdesk.core.errors import NotificationError
from shipdesk.services.clock import format_datetime
from shipdesk.services.email import EmailRelay, build_template_params, render_template

logger = logging.getLogger(__name__)

Spawn = Callable[[Coroutine[Any, Any, Any]], Any]

_DATE_FORMATS = ("%Y-%m-%d %H:%M", "%Y-%m-%d %H:%M:%S", "%Y-%m-%d")


@dataclass(frozen=True)
class StatusNotice:
    tracking_no: str
    status: str
    status_date: str
    status_time: str
    location: str
    remarks: str
    sender_email: str
    receiver_email: str
    is_new: bool = False

    @property
    def recipients(self) -> list[str]:
        return [email for email in (self.sender_email.strip(), self.receiver_email.strip()) if email]


@dataclass(frozen=True)
class ComposedEmail:
    subject: str
    body: str
    tracking_link: str


def should_notify(is_new: bool, old_status: str | None, new_status: str) -> bool:
    if is_new:
        return True
    return old_status is not None and old_status != new_status


def tracking_link(tracking_no: str, settings: Settings | None = None) -> str:
    settings = settings or get_settings()
    origin = settings.public_origin.rstrip("/")
    return f"{origin}{settings.tracking_path}?tn={quote(tracking_no, safe='')}"


def format_status_datetime(status_date: str, status_time: str) -> str:
    raw = f"{status_date} {status_time}".strip()
    for fmt in _DATE_FORMATS:
        try:
            value = datetime.strptime(raw, fmt)
        except ValueError:
            continue
        return format_datetime(value)
    return raw


def compose(notice: StatusNotice, settings: Settings | None = None) -> ComposedEmail:
    settings = settings or get_settings()
    link = tracking_link(notice.tracking_no, settings)
    if notice.is_new:
        subject = f"Your {settings.email_from_name} shipment has been created: {notice.tracking_no}"
        template = "shipment_created.txt.j2"
    else:
        subject = f"Shipment Status Update - {notice.tracking_no}"
        template = "status_update.txt.j2"
    body = render_template(
        template,
        {
            "tracking_number": notice.tracking_no,
            "status": notice.status,
            "date_time": format_status_datetime(notice.status_date, notice.status_time),
            "location": notice.location,
            "tracking_link": link,
            "remarks": notice.remarks,
            "from_name": settings.email_from_name,
        },
    )
    return ComposedEmail(subject=subject, body=body, tracking_link=link)


def mailto_links(notice: StatusNotice, settings: Settings | None = None) -> list[str]:
    """Direct-mail intents, one per recipient, for previews and manual sends."""
    email = compose(notice, settings)
    subject = quote(email.subject, safe="")
    body = quote(email.body.replace("\n", "\r\n"), safe="")
    return [f"mailto:{quote(to, safe='@')}?subject={subject}&body={body}" for to in notice.recipients]


async def deliver(relay: EmailRelay | None, notice: StatusNotice, settings: Settings | None = None) -> bool:
    """Send one combined message, falling back to one message per recipient."""
    settings = settings or get_settings()
    log_extra = {"tracking_no": notice.tracking_no, "status": notice.status}
    if relay is None:
        logger.warning("notification_relay_not_configured", extra=log_extra)
        return False
    recipients = notice.recipients
    if not recipients:
        logger.warning("notification_no_recipients", extra=log_extra)
        return False

    email = compose(notice, settings)

    def params(to_email: str, to_name: str = "Customer") -> dict[str, str]:
        return build_template_params(
            subject=email.subject,
            message=email.body,
            tracking_number=notice.tracking_no,
            tracking_link=email.tracking_link,
            to_email=to_email,
            from_email=settings.email_from,
            from_name=settings.email_from_name,
            to_name=to_name,
        )

    try:
        await relay.send(params(", ".join(recipients)))
        logger.info("notification_sent", extra={**log_extra, "recipients": len(recipients)})
        return True
    except NotificationError as exc:
        logger.warning("notification_combined_send_failed", extra={**log_extra, "error": exc.message})

    try:
        for to_email in recipients:
            await relay.send(params(to_email, to_email.split("@")[0]))
    except NotificationError as exc:
        logger.error("notification_delivery_failed", extra={**log_extra, "error": exc.message})
        return False
    logger.info("notification_sent_individually", extra={**log_extra, "recipients": len(recipients)})
    return True


def evaluate(
    notice: StatusNotice,
    *,
    old_status: str | None,
    relay: EmailRelay | None,
    spawn: Spawn,
    settings: Settings | None = None,
) -> bool:
    """Hand delivery off to ``spawn`` when the status transition warrants a notice."""
    if not should_notify(notice.is_new, old_status, notice.status):
        return False
    spawn(deliver(relay, notice, settings))
    return True
