from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from contextlib import suppress
from typing import Any

import pydantic
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from shipdesk.core.errors import BackendError
from shipdesk.db.base import Base
from shipdesk.models.shipment import ShipmentDocument
from shipdesk.schemas.shipment import Shipment
from shipdesk.services.change_feed import ChangeEvent, ChangeFeed, InProcessChangeFeed
from shipdesk.services.clock import Clock, now_ms

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[list[dict[str, Any]]], None]
ErrorCallback = Callable[[Exception], None]
Unsubscribe = Callable[[], None]

_INDEXED_FIELDS = {"id": ShipmentDocument.id, "trackingNo": ShipmentDocument.tracking_no}


def normalize_document(document: dict[str, Any], *, now: int) -> dict[str, Any]:
    """Fill in the full schema, keeping ``createdAt``/``updatedAt`` when supplied."""
    data = dict(document)
    data.pop("id", None)
    created_at = data.get("createdAt") or now
    updated_at = data.get("updatedAt") or now
    try:
        normalized = Shipment.model_validate({**data, "id": "-", "createdAt": created_at, "updatedAt": updated_at})
    except pydantic.ValidationError as exc:
        raise BackendError(f"Invalid shipment document: {exc.error_count()} field error(s)") from exc
    result = normalized.to_document()
    result.pop("id", None)
    return result


class RemoteShipmentStore:
    """Asynchronous shipment adapter over a document table.

    Every committed write publishes a change event. Subscribers re-read the
    whole collection on each event, so every delivery is a full replacement
    ordered by ``updatedAt`` descending.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        feed: ChangeFeed | None = None,
        engine: AsyncEngine | None = None,
        clock: Clock = now_ms,
    ) -> None:
        self._session_factory = session_factory
        self._feed = feed if feed is not None else InProcessChangeFeed()
        self._engine = engine
        self._clock = clock

    @property
    def feed(self) -> ChangeFeed:
        return self._feed

    async def create_schema(self) -> None:
        if self._engine is None:
            raise BackendError("Remote store has no engine to create the schema with")
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()

    async def _publish(self, kind: str, shipment_id: str) -> None:
        try:
            await self._feed.publish(ChangeEvent(kind=kind, shipment_id=shipment_id))
        except Exception as exc:
            # The write itself committed; subscribers catch up on the next event.
            logger.warning("change_feed_publish_failed", extra={"shipment_id": shipment_id, "error": str(exc)})

    async def create(self, document: dict[str, Any]) -> dict[str, Any]:
        shipment_id = str(document.get("id") or uuid.uuid4().hex)
        data = normalize_document(document, now=self._clock())
        try:
            async with self._session_factory() as session:
                row = ShipmentDocument(
                    id=shipment_id,
                    tracking_no=data["trackingNo"],
                    created_at=data["createdAt"],
                    updated_at=data["updatedAt"],
                    data=data,
                )
                session.add(row)
                await session.commit()
        except SQLAlchemyError as exc:
            raise BackendError(f"Could not create shipment: {exc}") from exc
        await self._publish("create", shipment_id)
        return {"id": shipment_id, **data}

    async def update(self, shipment_id: str, document: dict[str, Any]) -> dict[str, Any]:
        """Merge ``document`` into the stored one, creating it when missing."""
        partial = {key: value for key, value in document.items() if key != "id"}
        try:
            async with self._session_factory() as session:
                row = await session.get(ShipmentDocument, shipment_id)
                base = dict(row.data) if row is not None else {}
                data = normalize_document({**base, **partial}, now=self._clock())
                if "updatedAt" not in partial:
                    data["updatedAt"] = self._clock()
                if row is None:
                    row = ShipmentDocument(id=shipment_id)
                    session.add(row)
                row.tracking_no = data["trackingNo"]
                row.created_at = data["createdAt"]
                row.updated_at = data["updatedAt"]
                row.data = data
                await session.commit()
        except SQLAlchemyError as exc:
            raise BackendError(f"Could not update shipment: {exc}") from exc
        await self._publish("update", shipment_id)
        return {"id": shipment_id, **data}

    async def delete(self, shipment_id: str) -> None:
        try:
            async with self._session_factory() as session:
                row = await session.get(ShipmentDocument, shipment_id)
                if row is not None:
                    await session.delete(row)
                    await session.commit()
        except SQLAlchemyError as exc:
            raise BackendError(f"Could not delete shipment: {exc}") from exc
        await self._publish("delete", shipment_id)

    async def list_all(self) -> list[dict[str, Any]]:
        try:
            async with self._session_factory() as session:
                stmt = select(ShipmentDocument).order_by(ShipmentDocument.updated_at.desc())
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise BackendError(f"Could not load shipments: {exc}") from exc
        return [row.to_document() for row in rows]

    async def find_by_field(self, field: str, value: Any) -> dict[str, Any] | None:
        """Exact match on ``field``; the first match wins, duplicates are not an error."""
        column = _INDEXED_FIELDS.get(field)
        if column is None:
            return next((doc for doc in await self.list_all() if doc.get(field) == value), None)
        try:
            async with self._session_factory() as session:
                stmt = (
                    select(ShipmentDocument)
                    .where(column == value)
                    .order_by(ShipmentDocument.updated_at.desc())
                    .limit(1)
                )
                row = (await session.execute(stmt)).scalars().first()
        except SQLAlchemyError as exc:
            raise BackendError(f"Could not look up shipment: {exc}") from exc
        return row.to_document() if row is not None else None

    def subscribe(self, on_change: SnapshotCallback, on_error: ErrorCallback | None = None) -> Unsubscribe:
        """Deliver the full collection now and after every change until unsubscribed."""
        task = asyncio.create_task(self._pump(on_change, on_error), name="shipment-subscription")

        def unsubscribe() -> None:
            task.cancel()

        return unsubscribe

    async def _deliver_snapshot(self, on_change: SnapshotCallback, on_error: ErrorCallback | None) -> None:
        try:
            documents = await self.list_all()
        except BackendError as exc:
            logger.error("shipment_snapshot_failed", extra={"error": exc.message})
            if on_error is not None:
                on_error(exc)
            return
        on_change(documents)

    async def _pump(self, on_change: SnapshotCallback, on_error: ErrorCallback | None) -> None:
        listener = self._feed.listen()
        try:
            await listener.start()
            await self._deliver_snapshot(on_change, on_error)
            async for _event in listener:
                # Events already queued are covered by the re-read below.
                listener.drain_pending()
                await self._deliver_snapshot(on_change, on_error)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("shipment_subscription_failed")
            if on_error is not None:
                on_error(BackendError(f"Realtime subscription stopped: {exc}"))
        finally:
            with suppress(Exception):
                await listener.aclose()
