from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from shipdesk.core.errors import BackendError
from shipdesk.schemas.shipment import Shipment, parse_documents
from shipdesk.services.auth import AuthUser, is_authorized_user
from shipdesk.services.backend_mode import BackendMode, LocalMode, RemoteMode

logger = logging.getLogger(__name__)

Listener = Callable[[tuple[Shipment, ...]], None]


class ShipmentRepository:
    """Canonical in-memory shipment list for one dashboard session.

    In remote mode the list is only ever replaced wholesale by subscription
    pushes; optimistic writes are not merged in. In local mode it is re-read
    from the store after every mutation.
    """

    def __init__(self, mode: BackendMode, *, on_error: Callable[[BackendError], None] | None = None) -> None:
        self._mode = mode
        self._items: tuple[Shipment, ...] = ()
        self._listeners: list[Listener] = []
        self._on_error = on_error
        self._unsubscribe: Callable[[], None] | None = None
        self._subscriber: str | None = None
        self._generation = 0
        self._loaded = asyncio.Event()
        if isinstance(mode, LocalMode):
            self.reload()

    @property
    def mode(self) -> BackendMode:
        return self._mode

    @property
    def items(self) -> tuple[Shipment, ...]:
        return self._items

    def snapshot(self) -> tuple[Shipment, ...]:
        return self._items

    @property
    def is_subscribed(self) -> bool:
        return self._unsubscribe is not None

    @property
    def subscriber(self) -> str | None:
        return self._subscriber

    def find(self, shipment_id: str) -> Shipment | None:
        return next((item for item in self._items if item.id == shipment_id), None)

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def replace_all(self, documents: Iterable[Mapping[str, Any] | Shipment]) -> None:
        """Swap in a full collection; never merges with what was there before."""
        self._items = parse_documents(documents)
        self._loaded.set()
        for listener in list(self._listeners):
            try:
                listener(self._items)
            except Exception:
                logger.exception("repository_listener_failed")

    def reload(self) -> None:
        if isinstance(self._mode, LocalMode):
            self.replace_all(self._mode.store.read_all())

    async def wait_until_loaded(self, timeout: float | None = None) -> bool:
        try:
            await asyncio.wait_for(self._loaded.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def on_auth_changed(self, user: AuthUser | None) -> None:
        mode = self._mode
        if not isinstance(mode, RemoteMode):
            return
        if user is None or not is_authorized_user(user, mode.allowlist):
            if user is not None:
                logger.warning("repository_user_not_allowed", extra={"email": user.email})
            self._teardown()
            self.replace_all(())
            self._loaded.clear()
            return
        if self._unsubscribe is not None and self._subscriber == user.email:
            return
        self._teardown()
        self._generation += 1
        generation = self._generation
        self._subscriber = user.email

        def on_change(documents: list[dict[str, Any]]) -> None:
            # A push from a subscription that has since been replaced is ignored.
            if generation == self._generation:
                self.replace_all(documents)

        def on_error(exc: Exception) -> None:
            if generation != self._generation:
                return
            error = exc if isinstance(exc, BackendError) else BackendError(str(exc))
            if self._on_error is not None:
                self._on_error(error)

        self._unsubscribe = mode.store.subscribe(on_change, on_error)
        logger.info("repository_subscribed", extra={"backend_mode": mode.name})

    def _teardown(self) -> None:
        unsubscribe = self._unsubscribe
        self._unsubscribe = None
        self._subscriber = None
        self._generation += 1
        if unsubscribe is not None:
            unsubscribe()
            logger.info("repository_unsubscribed")

    def close(self) -> None:
        self._teardown()
        self._listeners.clear()
