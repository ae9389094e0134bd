from __future__ import annotations

import logging
from typing import TypedDict

from shipdesk.services.clock import now_ms
from shipdesk.services.local_store import LocalShipmentStore
from shipdesk.services.mutations import generate_shipment_id

logger = logging.getLogger(__name__)

HOUR_MS = 3_600_000
DAY_MS = 24 * HOUR_MS


class SeedContact(TypedDict):
    name: str
    email: str
    phone: str
    street: str
    city: str
    state: str
    country: str
    postal: str


class SeedShipment(TypedDict):
    id: str
    trackingNo: str
    sender: SeedContact
    receiver: SeedContact
    status: str
    origin: str
    destination: str
    notes: str
    createdAt: int
    updatedAt: int


def demo_shipments(now: int) -> list[SeedShipment]:
    return [
        {
            "id": generate_shipment_id(now),
            "trackingNo": "JP123456789",
            "sender": {
                "name": "Ana Becker",
                "email": "ana@example.com",
                "phone": "+493012345",
                "street": "Alexanderstr 1",
                "city": "Berlin",
                "state": "BE",
                "country": "DE",
                "postal": "10117",
            },
            "receiver": {
                "name": "Jeff Miller",
                "email": "jeff@example.com",
                "phone": "+197212345",
                "street": "Main St 101",
                "city": "Dallas",
                "state": "TX",
                "country": "US",
                "postal": "75201",
            },
            "status": "In Transit",
            "origin": "Berlin, DE",
            "destination": "Dallas, US",
            "notes": "Left hub - Frankfurt",
            "createdAt": now - DAY_MS,
            "updatedAt": now - HOUR_MS,
        },
        {
            "id": generate_shipment_id(now),
            "trackingNo": "JP987654321",
            "sender": {
                "name": "Sophie Laurent",
                "email": "sophie@example.com",
                "phone": "+331234567",
                "street": "Rue Rivoli 5",
                "city": "Paris",
                "state": "IDF",
                "country": "FR",
                "postal": "75001",
            },
            "receiver": {
                "name": "Brittany Jones",
                "email": "britt@example.com",
                "phone": "+183212345",
                "street": "Park Rd 78",
                "city": "Houston",
                "state": "TX",
                "country": "US",
                "postal": "77001",
            },
            "status": "Pending",
            "origin": "Paris, FR",
            "destination": "Houston, US",
            "notes": "",
            "createdAt": now - 2 * DAY_MS,
            "updatedAt": now - 2 * HOUR_MS,
        },
    ]


def seed_if_empty(store: LocalShipmentStore, *, now: int | None = None) -> bool:
    """Write the demo shipments when the local store holds none; returns whether it did."""
    if store.read_all():
        return False
    store.write_all([dict(item) for item in demo_shipments(now if now is not None else now_ms())])
    logger.info("local_store_seeded", extra={"backend_mode": "local"})
    return True
