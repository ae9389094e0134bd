"""Whole-collection export and import in the local store's array layout."""

from __future__ import annotations

import json
import logging
from typing import Any

import pydantic

from shipdesk.core.errors import ShipdeskError
from shipdesk.schemas.shipment import parse_shipment
from shipdesk.services.backend_mode import BackendMode, RemoteMode
from shipdesk.services.clock import now_ms
from shipdesk.services.mutations import generate_shipment_id

logger = logging.getLogger(__name__)

EXPORT_FILENAME = "shipments-export.json"


def dumps(documents: list[Any]) -> str:
    return json.dumps(documents, indent=2, ensure_ascii=False)


async def export_documents(mode: BackendMode) -> list[dict[str, Any]]:
    if isinstance(mode, RemoteMode):
        return await mode.store.list_all()
    return mode.store.read_all()


async def export_json(mode: BackendMode) -> str:
    return dumps(await export_documents(mode))


def _prepare_local_documents(payload: list[Any]) -> list[dict[str, Any]] | None:
    now = now_ms()
    documents: list[dict[str, Any]] = []
    for index, item in enumerate(payload):
        if not isinstance(item, dict):
            logger.warning("import_item_invalid", extra={"index": index, "item_type": type(item).__name__})
            return None
        document = item if item.get("id") else {**item, "id": generate_shipment_id(now)}
        try:
            parse_shipment(document)
        except pydantic.ValidationError as exc:
            logger.warning(
                "import_item_invalid",
                extra={"index": index, "shipment_id": document.get("id"), "error": str(exc)},
            )
            return None
        documents.append(document)
    return documents


async def import_documents(mode: BackendMode, payload: str | bytes | list[Any]) -> bool:
    """Load an exported array.

    Local mode writes the array in one go: records without an id get a fresh
    one, and if any record still does not read back as a shipment nothing is
    written. Remote mode sends each record through ``update`` (records with
    an id) or ``create``; a record that fails is logged and skipped. Returns
    False when the payload is not an array or the local import is rejected.
    """
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except ValueError:
            logger.warning("import_payload_invalid_json")
            return False
    if not isinstance(payload, list):
        logger.warning("import_payload_not_array", extra={"payload_type": type(payload).__name__})
        return False

    if not isinstance(mode, RemoteMode):
        documents = _prepare_local_documents(payload)
        if documents is None:
            return False
        try:
            mode.store.write_all(documents)
        except ShipdeskError as exc:
            logger.error("import_local_write_failed", extra={"error": exc.message})
            return False
        logger.info("import_completed", extra={"backend_mode": mode.name, "count": len(documents)})
        return True

    imported = 0
    for item in payload:
        if not isinstance(item, dict):
            logger.warning("import_item_skipped", extra={"item_type": type(item).__name__})
            continue
        data = dict(item)
        shipment_id = data.pop("id", None)
        try:
            if shipment_id:
                await mode.store.update(str(shipment_id), {**data, "id": shipment_id})
            else:
                await mode.store.create(data)
        except ShipdeskError as exc:
            logger.warning("import_item_failed", extra={"shipment_id": shipment_id, "error": exc.message})
            continue
        imported += 1
    logger.info("import_completed", extra={"backend_mode": mode.name, "count": imported})
    return True
