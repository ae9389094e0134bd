from __future__ import annotations

import logging
import random
import re

from shipdesk.core.errors import BackendError, ValidationError
from shipdesk.schemas.shipment import Contact, Shipment, parse_shipment
from shipdesk.schemas.tracking import PLACEHOLDER, TrackingContact, TrackingView
from shipdesk.services.backend_mode import BackendMode, RemoteMode
from shipdesk.services.clock import format_timestamp, now_ms

logger = logging.getLogger(__name__)

_TRACKING_RE = re.compile(r"^\S{1,64}$")


def generate_tracking_number(prefix: str = "JP", *, now: int | None = None, rng: random.Random | None = None) -> str:
    """Prefix, the last 8 digits of the epoch-ms clock, then 4 random digits."""
    stamp = str(now if now is not None else now_ms())[-8:].rjust(8, "0")
    suffix = f"{(rng or random).randrange(10000):04d}"
    return f"{prefix}{stamp}{suffix}".upper()


def normalize_tracking_number(tracking_no: str | None) -> str:
    cleaned = (tracking_no or "").strip()
    if not cleaned:
        raise ValidationError("Tracking number is required")
    if not _TRACKING_RE.match(cleaned):
        raise ValidationError("Invalid tracking number")
    return cleaned


async def lookup(mode: BackendMode, tracking_no: str) -> Shipment | None:
    """Find a shipment by tracking number.

    The remote store answers with an exact match when it is reachable; when it
    fails, the local store is searched case-insensitively instead.
    """
    tn = normalize_tracking_number(tracking_no)
    if isinstance(mode, RemoteMode):
        try:
            document = await mode.store.find_by_field("trackingNo", tn)
        except BackendError as exc:
            logger.warning("tracking_remote_lookup_failed", extra={"tracking_no": tn, "error": exc.message})
            local = mode.local
        else:
            return parse_shipment(document) if document is not None else None
    else:
        local = mode.store
    document = local.find_by_field("trackingNo", tn, case_insensitive=True)
    return parse_shipment(document) if document is not None else None


def _or_placeholder(value: str | None) -> str:
    return value or PLACEHOLDER


def _contact_view(contact: Contact) -> TrackingContact:
    locality = (
        f"{_or_placeholder(contact.city)}, {_or_placeholder(contact.state)}, "
        f"{_or_placeholder(contact.country)} {_or_placeholder(contact.postal)}"
    )
    return TrackingContact(
        name=_or_placeholder(contact.name),
        email=_or_placeholder(contact.email),
        phone=_or_placeholder(contact.phone),
        street=_or_placeholder(contact.street),
        locality=locality,
    )


def build_tracking_view(shipment: Shipment) -> TrackingView:
    return TrackingView(
        tracking_no=_or_placeholder(shipment.tracking_no),
        route=f"{_or_placeholder(shipment.origin)} → {_or_placeholder(shipment.destination)}",
        status=_or_placeholder(shipment.status),
        last_updated=_or_placeholder(format_timestamp(shipment.updated_at)),
        status_date=_or_placeholder(shipment.status_date),
        status_time=_or_placeholder(shipment.status_time),
        location=_or_placeholder(shipment.location),
        notes=_or_placeholder(shipment.notes),
        cargo_type=_or_placeholder(shipment.cargo_type),
        carrier_ref=_or_placeholder(shipment.carrier_ref),
        departure_date=_or_placeholder(shipment.departure_date),
        departure_time=_or_placeholder(shipment.departure_time),
        comments=_or_placeholder(shipment.comments),
        featured_image=shipment.featured_image or None,
        sender=_contact_view(shipment.sender),
        receiver=_contact_view(shipment.receiver),
    )
