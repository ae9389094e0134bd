from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

SENDER_FIELDS = ("name", "email", "phone", "city", "state", "country")
RECEIVER_FIELDS = ("name", "email", "phone", "street", "city", "state", "country", "postal")

# Required by the current form schema, checked after the contact records.
REQUIRED_SHIPMENT_FIELDS = (
    "status",
    "cargo_type",
    "shipment_title",
    "cargo_name",
    "mode_of_shipment",
    "payment_method",
    "status_date",
    "status_time",
    "location",
    "origin",
    "destination",
)
OPTIONAL_TEXT_FIELDS = (
    "carrier_ref",
    "departure_date",
    "departure_time",
    "comments",
    "notes",
)
QUICK_EDIT_FIELDS = ("status", "status_date", "status_time", "location", "notes")

_TEXT_FIELDS = ("tracking_no",) + REQUIRED_SHIPMENT_FIELDS + OPTIONAL_TEXT_FIELDS


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


class _DocumentModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Contact(_DocumentModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True, extra="allow")

    name: str = ""
    email: str = ""
    phone: str = ""
    street: str = ""
    city: str = ""
    state: str = ""
    country: str = ""
    postal: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _as_text(value)


class Shipment(_DocumentModel):
    """One logistics consignment as stored by either backend.

    Field names are snake_case in Python and camelCase in stored documents.
    Instances are frozen; edits go through ``model_copy(update=...)``.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True, extra="allow")

    id: str
    tracking_no: str = ""
    sender: Contact = Field(default_factory=Contact)
    receiver: Contact = Field(default_factory=Contact)
    status: str = ""
    cargo_type: str = ""
    shipment_title: str = ""
    cargo_name: str = ""
    mode_of_shipment: str = ""
    payment_method: str = ""
    status_date: str = ""
    status_time: str = ""
    location: str = ""
    carrier_ref: str = ""
    departure_date: str = ""
    departure_time: str = ""
    comments: str = ""
    origin: str = ""
    destination: str = ""
    notes: str = ""
    cargo_weight_unit: str | None = None
    cargo_weight_value: float | None = None
    featured_image: str | None = None
    created_at: int = 0
    updated_at: int = 0

    @field_validator(*_TEXT_FIELDS, mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _as_text(value)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, (int, float)) else value

    @field_validator("sender", "receiver", mode="before")
    @classmethod
    def _coerce_contact(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> Any:
        return 0 if value in (None, "") else value

    @field_validator("cargo_weight_unit", "cargo_weight_value", mode="before")
    @classmethod
    def _blank_weight(cls, value: Any) -> Any:
        # Older records store an unset weight pair as empty strings.
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)

    def lookup(self, key: str) -> Any:
        """Return a field by document key (``updatedAt``) or attribute name (``updated_at``)."""
        name = _ALIASES.get(key, key)
        if name in type(self).model_fields:
            return getattr(self, name)
        return (self.model_extra or {}).get(key)


_ALIASES = {to_camel(name): name for name in Shipment.model_fields}


class ContactDraft(_DocumentModel):
    name: str = ""
    email: str = ""
    phone: str = ""
    street: str = ""
    city: str = ""
    state: str = ""
    country: str = ""
    postal: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _as_text(value)


class ShipmentDraft(_DocumentModel):
    """Unvalidated form input as forwarded by the renderer."""

    id: str = ""
    tracking_no: str = ""
    sender: ContactDraft = Field(default_factory=ContactDraft)
    receiver: ContactDraft = Field(default_factory=ContactDraft)
    status: str = ""
    cargo_type: str = ""
    shipment_title: str = ""
    cargo_name: str = ""
    mode_of_shipment: str = ""
    payment_method: str = ""
    status_date: str = ""
    status_time: str = ""
    location: str = ""
    carrier_ref: str = ""
    departure_date: str = ""
    departure_time: str = ""
    comments: str = ""
    origin: str = ""
    destination: str = ""
    notes: str = ""
    cargo_weight_unit: str = ""
    cargo_weight_value: str = ""
    featured_image: str | None = None

    @field_validator("id", "cargo_weight_unit", "cargo_weight_value", *_TEXT_FIELDS, mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _as_text(value)

    @field_validator("sender", "receiver", mode="before")
    @classmethod
    def _coerce_contact(cls, value: Any) -> Any:
        return {} if value is None else value


class QuickEditDraft(_DocumentModel):
    id: str = ""
    status: str = ""
    status_date: str = ""
    status_time: str = ""
    location: str = ""
    notes: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _as_text(value)


def parse_shipment(document: Mapping[str, Any] | Shipment) -> Shipment:
    if isinstance(document, Shipment):
        return document
    return Shipment.model_validate(dict(document))


def parse_documents(documents: Iterable[Mapping[str, Any] | Shipment]) -> tuple[Shipment, ...]:
    """Parse stored documents, skipping (and logging) the ones that are not shipments."""
    parsed: list[Shipment] = []
    for document in documents:
        try:
            parsed.append(parse_shipment(document))
        except (pydantic.ValidationError, TypeError, ValueError) as exc:
            doc_id = document.get("id") if isinstance(document, Mapping) else None
            logger.warning("shipment_document_invalid", extra={"shipment_id": doc_id, "error": str(exc)})
    return tuple(parsed)
