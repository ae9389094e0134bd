"""Create, edit, quick-edit and delete shipments on behalf of the operator.

Validation and not-found failures never leave this module as exceptions: they
come back as a failed :class:`MutationResult` and an error toast. Remote
writes run in the background; their failures only ever surface as toasts.
"""

from __future__ import annotations

import asyncio
import logging
import math
import secrets
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

import pydantic

from shipdesk.core.errors import BackendError, NotFoundError, ShipdeskError, ValidationError
from shipdesk.schemas.shipment import (
    QUICK_EDIT_FIELDS,
    RECEIVER_FIELDS,
    REQUIRED_SHIPMENT_FIELDS,
    SENDER_FIELDS,
    QuickEditDraft,
    Shipment,
    ShipmentDraft,
    parse_shipment,
)
from shipdesk.services import notifications
from shipdesk.services.backend_mode import LocalMode, RemoteMode
from shipdesk.services.dashboard import DashboardSession
from shipdesk.services.tracking import generate_tracking_number

logger = logging.getLogger(__name__)

CONTACTS_REQUIRED = "All sender and receiver fields are required."
FIELDS_REQUIRED = "Please fill all required fields."
WEIGHT_PAIR_REQUIRED = "Provide both cargo weight and unit, or leave both empty."
WEIGHT_INVALID = "Cargo weight must be a non-negative number."
QUICK_EDIT_REQUIRED = "Please fill required fields for quick edit."
NOT_FOUND = "Shipment not found."
SIGN_IN_REQUIRED = "Sign-in required."

IntentAction = Literal["edit", "quick-edit", "delete"]

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


@dataclass(frozen=True)
class MutationResult:
    ok: bool
    shipment: Shipment | None = None
    error: ShipdeskError | None = None
    is_new: bool = False
    notified: bool = False
    task: asyncio.Task[Any] | None = None


@dataclass(frozen=True)
class ActionIntent:
    action: IntentAction
    shipment_id: str


@dataclass(frozen=True)
class IntentOutcome:
    action: IntentAction
    shipment: Shipment | None
    quick_edit: QuickEditDraft | None = None
    result: MutationResult | None = None


def _base36(value: int) -> str:
    digits = ""
    while value:
        value, rem = divmod(value, 36)
        digits = _BASE36[rem] + digits
    return digits or "0"


def generate_shipment_id(now: int) -> str:
    return f"s_{_base36(secrets.randbits(52))}{_base36(now)}"


def _fail(session: DashboardSession, error: ShipdeskError) -> MutationResult:
    logger.info("mutation_rejected", extra={"error": error.message, "error_type": type(error).__name__})
    session.show_toast("error", error.message)
    return MutationResult(ok=False, error=error)


def _trimmed(model: pydantic.BaseModel) -> Any:
    updates: dict[str, Any] = {}
    for name in type(model).model_fields:
        value = getattr(model, name)
        if isinstance(value, str):
            updates[name] = value.strip()
        elif isinstance(value, pydantic.BaseModel):
            updates[name] = _trimmed(value)
    return model.model_copy(update=updates)


def parse_draft(raw: Mapping[str, Any] | ShipmentDraft) -> ShipmentDraft:
    try:
        draft = raw if isinstance(raw, ShipmentDraft) else ShipmentDraft.model_validate(dict(raw))
    except pydantic.ValidationError as exc:
        raise ValidationError(FIELDS_REQUIRED) from exc
    return _trimmed(draft)


def parse_weight(draft: ShipmentDraft) -> float | None:
    raw, unit = draft.cargo_weight_value, draft.cargo_weight_unit
    if bool(raw) != bool(unit):
        raise ValidationError(WEIGHT_PAIR_REQUIRED)
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValidationError(WEIGHT_INVALID) from exc
    if math.isnan(value) or math.isinf(value) or value < 0:
        raise ValidationError(WEIGHT_INVALID)
    return value


def validate_draft(draft: ShipmentDraft) -> float | None:
    """Check a trimmed draft, failing on the first group with a gap; returns the cargo weight."""
    for contact, fields in ((draft.sender, SENDER_FIELDS), (draft.receiver, RECEIVER_FIELDS)):
        if not all(getattr(contact, field) for field in fields):
            raise ValidationError(CONTACTS_REQUIRED)
    if not all(getattr(draft, field) for field in REQUIRED_SHIPMENT_FIELDS):
        raise ValidationError(FIELDS_REQUIRED)
    return parse_weight(draft)


def _contact_document(contact: pydantic.BaseModel, fields: tuple[str, ...]) -> dict[str, str]:
    return {field: getattr(contact, field) for field in fields}


def _current_snapshot(session: DashboardSession) -> None:
    # Local mode reads the store fresh, like a page that reloads its storage.
    if isinstance(session.mode, LocalMode):
        session.repository.reload()


def _write_allowed(session: DashboardSession) -> bool:
    return isinstance(session.mode, LocalMode) or session.can_write


async def _remote_write(
    session: DashboardSession, shipment_id: str, document: dict[str, Any], *, is_new: bool
) -> None:
    mode = session.mode
    assert isinstance(mode, RemoteMode)
    verb = "create" if is_new else "update"
    try:
        if is_new:
            await mode.store.create(document)
        else:
            await mode.store.update(shipment_id, document)
    except BackendError as exc:
        logger.error("shipment_write_failed", extra={"shipment_id": shipment_id, "operation": verb, "error": exc.message})
        session.show_toast("error", f"Failed to {verb} shipment: {exc.message or 'Unknown error'}")
        return
    logger.info("shipment_written", extra={"shipment_id": shipment_id, "operation": verb, "backend_mode": mode.name})


def _dispatch(
    session: DashboardSession, shipment_id: str, document: dict[str, Any], *, is_new: bool
) -> tuple[asyncio.Task[Any] | None, ShipdeskError | None]:
    mode = session.mode
    if isinstance(mode, RemoteMode):
        task = session.spawn(_remote_write(session, shipment_id, document, is_new=is_new), name=f"shipment-{shipment_id}")
        return task, None
    try:
        if is_new:
            mode.store.create(document)
        elif mode.store.update(shipment_id, document) is None:
            return None, NotFoundError(NOT_FOUND)
    except BackendError as exc:
        return None, exc
    session.repository.reload()
    logger.info(
        "shipment_created" if is_new else "shipment_updated",
        extra={"shipment_id": shipment_id, "backend_mode": mode.name},
    )
    return None, None


def _finish(
    session: DashboardSession,
    shipment: Shipment,
    *,
    is_new: bool,
    old_status: str | None,
    remarks: str,
    task: asyncio.Task[Any] | None,
) -> MutationResult:
    session.set_query(session.query.with_page(0))
    session.show_toast("success", "Shipment created successfully!" if is_new else "Shipment updated successfully!")
    notice = notifications.StatusNotice(
        tracking_no=shipment.tracking_no,
        status=shipment.status,
        status_date=shipment.status_date,
        status_time=shipment.status_time,
        location=shipment.location,
        remarks=remarks,
        sender_email=shipment.sender.email,
        receiver_email=shipment.receiver.email,
        is_new=is_new,
    )
    notified = notifications.evaluate(
        notice, old_status=old_status, relay=session.relay, spawn=session.spawn, settings=session.settings
    )
    return MutationResult(ok=True, shipment=shipment, is_new=is_new, notified=notified, task=task)


def submit(session: DashboardSession, raw: Mapping[str, Any] | ShipmentDraft) -> MutationResult:
    """Validate a full shipment draft and create or update the record it describes."""
    try:
        draft = parse_draft(raw)
        weight = validate_draft(draft)
    except ValidationError as exc:
        return _fail(session, exc)
    if not _write_allowed(session):
        return _fail(session, BackendError(SIGN_IN_REQUIRED))

    now = session.clock()
    existing: Shipment | None = None
    if draft.id:
        _current_snapshot(session)
        existing = session.repository.find(draft.id)
        if existing is None:
            return _fail(session, NotFoundError(NOT_FOUND))

    is_new = existing is None
    if existing is None:
        shipment_id = generate_shipment_id(now)
        tracking_no = draft.tracking_no or generate_tracking_number(session.settings.tracking_prefix, now=now)
        created_at = updated_at = now
    else:
        shipment_id = existing.id
        tracking_no = draft.tracking_no or existing.tracking_no
        created_at = existing.created_at or now
        updated_at = max(now, existing.updated_at, created_at)

    document: dict[str, Any] = {
        "id": shipment_id,
        "trackingNo": tracking_no,
        "sender": _contact_document(draft.sender, SENDER_FIELDS),
        "receiver": _contact_document(draft.receiver, RECEIVER_FIELDS),
        "status": draft.status,
        "cargoType": draft.cargo_type,
        "shipmentTitle": draft.shipment_title,
        "cargoName": draft.cargo_name,
        "modeOfShipment": draft.mode_of_shipment,
        "paymentMethod": draft.payment_method,
        "statusDate": draft.status_date,
        "statusTime": draft.status_time,
        "location": draft.location,
        "carrierRef": draft.carrier_ref,
        "departureDate": draft.departure_date,
        "departureTime": draft.departure_time,
        "comments": draft.comments,
        "origin": draft.origin,
        "destination": draft.destination,
        "notes": draft.notes,
        # An update without a weight pair clears the stored weight.
        "cargoWeightUnit": draft.cargo_weight_unit if weight is not None else None,
        "cargoWeightValue": weight,
        "featuredImage": draft.featured_image or (existing.featured_image if existing else None) or None,
        "createdAt": created_at,
        "updatedAt": updated_at,
    }

    task, error = _dispatch(session, shipment_id, document, is_new=is_new)
    if error is not None:
        verb = "create" if is_new else "update"
        session.show_toast("error", f"Failed to {verb} shipment: {error.message}")
        return MutationResult(ok=False, error=error, is_new=is_new)

    shipment = parse_shipment({**(existing.to_document() if existing else {}), **document})
    old_status = (existing.status or None) if existing else None
    return _finish(
        session,
        shipment,
        is_new=is_new,
        old_status=old_status,
        remarks=draft.comments or draft.notes,
        task=task,
    )


def quick_edit(session: DashboardSession, raw: Mapping[str, Any] | QuickEditDraft) -> MutationResult:
    """Update only the status fields of an existing shipment."""
    try:
        draft = raw if isinstance(raw, QuickEditDraft) else QuickEditDraft.model_validate(dict(raw))
    except pydantic.ValidationError:
        return _fail(session, ValidationError(QUICK_EDIT_REQUIRED))
    draft = _trimmed(draft)
    if not draft.id or not all(getattr(draft, field) for field in QUICK_EDIT_FIELDS):
        return _fail(session, ValidationError(QUICK_EDIT_REQUIRED))
    if not _write_allowed(session):
        return _fail(session, BackendError(SIGN_IN_REQUIRED))

    _current_snapshot(session)
    existing = session.repository.find(draft.id)
    if existing is None:
        return _fail(session, NotFoundError(NOT_FOUND))

    now = session.clock()
    changes = {
        "status": draft.status,
        "statusDate": draft.status_date,
        "statusTime": draft.status_time,
        "location": draft.location,
        "notes": draft.notes,
        "updatedAt": max(now, existing.updated_at, existing.created_at),
    }
    document = {**existing.to_document(), **changes}
    task, error = _dispatch(session, existing.id, document, is_new=False)
    if error is not None:
        session.show_toast("error", f"Failed to update shipment: {error.message}")
        return MutationResult(ok=False, error=error)

    return _finish(
        session,
        parse_shipment(document),
        is_new=False,
        old_status=existing.status or None,
        remarks=draft.notes,
        task=task,
    )


def quick_edit_defaults(shipment: Shipment, now: int) -> QuickEditDraft:
    """Prefill values for the quick-edit form of ``shipment``.

    Missing date and time fall back to ``now`` on the operator's local clock.
    """
    moment = datetime.fromtimestamp(now / 1000)
    return QuickEditDraft(
        id=shipment.id,
        status=shipment.status or "Pending",
        status_date=shipment.status_date or moment.strftime("%Y-%m-%d"),
        status_time=shipment.status_time or moment.strftime("%H:%M"),
        location=shipment.location,
        notes=shipment.notes,
    )


async def _remote_delete(session: DashboardSession, shipment_id: str) -> None:
    mode = session.mode
    assert isinstance(mode, RemoteMode)
    try:
        await mode.store.delete(shipment_id)
    except BackendError as exc:
        logger.error("shipment_delete_failed", extra={"shipment_id": shipment_id, "error": exc.message})
        session.show_toast("error", "Failed to delete shipment.")
        return
    logger.info("shipment_deleted", extra={"shipment_id": shipment_id, "backend_mode": mode.name})
    session.show_toast("success", "Shipment deleted successfully!")


def delete(session: DashboardSession, shipment_id: str) -> MutationResult:
    if not _write_allowed(session):
        return _fail(session, BackendError(SIGN_IN_REQUIRED))
    mode = session.mode
    if isinstance(mode, RemoteMode):
        task = session.spawn(_remote_delete(session, shipment_id), name=f"shipment-delete-{shipment_id}")
        return MutationResult(ok=True, task=task)
    try:
        mode.store.delete(shipment_id)
    except BackendError as exc:
        logger.error("shipment_delete_failed", extra={"shipment_id": shipment_id, "error": exc.message})
        session.show_toast("error", "Failed to delete shipment.")
        return MutationResult(ok=False, error=exc)
    session.repository.reload()
    logger.info("shipment_deleted", extra={"shipment_id": shipment_id, "backend_mode": mode.name})
    session.show_toast("success", "Shipment deleted successfully!")
    return MutationResult(ok=True)


def handle_intent(session: DashboardSession, intent: ActionIntent) -> IntentOutcome:
    """Route a row action from the renderer.

    ``edit`` and ``quick-edit`` only resolve the target (and quick-edit
    defaults) for the renderer to open its form; ``delete`` acts immediately.
    """
    if intent.action == "delete":
        return IntentOutcome(action=intent.action, shipment=None, result=delete(session, intent.shipment_id))
    _current_snapshot(session)
    shipment = session.repository.find(intent.shipment_id)
    if shipment is None:
        return IntentOutcome(action=intent.action, shipment=None)
    if intent.action == "quick-edit":
        defaults = quick_edit_defaults(shipment, session.clock())
        return IntentOutcome(action=intent.action, shipment=shipment, quick_edit=defaults)
    return IntentOutcome(action=intent.action, shipment=shipment)
