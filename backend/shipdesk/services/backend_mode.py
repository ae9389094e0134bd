from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import ClassVar

from sqlalchemy.exc import SQLAlchemyError

from shipdesk.core.config import Settings, get_settings
from shipdesk.db.session import create_engine, create_session_factory
from shipdesk.services.auth import normalize_allowlist
from shipdesk.services.change_feed import build_change_feed
from shipdesk.services.clock import Clock, now_ms
from shipdesk.services.local_store import LocalShipmentStore, LocalStorage
from shipdesk.services.remote_store import RemoteShipmentStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RemoteMode:
    """Remote document store is authoritative; the local store only backs tracking lookups."""

    name: ClassVar[str] = "remote"

    store: RemoteShipmentStore
    local: LocalShipmentStore
    allowlist: tuple[str, ...] = field(default=())


@dataclass(frozen=True)
class LocalMode:
    name: ClassVar[str] = "local"

    store: LocalShipmentStore
    # Set when a remote store was configured but could not be initialised.
    fallback: bool = False


BackendMode = RemoteMode | LocalMode


def build_local_store(settings: Settings) -> LocalShipmentStore:
    storage = LocalStorage(settings.local_store_path, max_bytes=settings.local_store_max_bytes)
    return LocalShipmentStore(storage, key=settings.local_storage_key)


def select_backend_mode(settings: Settings | None = None, *, clock: Clock = now_ms) -> BackendMode:
    """Pick the session's backend once; a remote store that cannot be built falls back to local."""
    settings = settings or get_settings()
    local = build_local_store(settings)
    if not settings.remote_configured:
        logger.info("backend_mode_selected", extra={"backend_mode": LocalMode.name})
        return LocalMode(store=local)

    try:
        engine = create_engine(str(settings.remote_database_url).strip())
        feed = build_change_feed(redis_url=settings.redis_url, channel=settings.change_feed_channel)
    except (SQLAlchemyError, ImportError, ValueError) as exc:
        logger.warning(
            "remote_backend_unavailable",
            extra={"backend_mode": LocalMode.name, "error": str(exc)},
        )
        return LocalMode(store=local, fallback=True)

    store = RemoteShipmentStore(create_session_factory(engine), feed=feed, engine=engine, clock=clock)
    logger.info("backend_mode_selected", extra={"backend_mode": RemoteMode.name})
    return RemoteMode(store=store, local=local, allowlist=normalize_allowlist(settings.admin_email_allowlist))


async def dispose_backend_mode(mode: BackendMode) -> None:
    if isinstance(mode, RemoteMode):
        await mode.store.dispose()
