from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Coroutine
from contextlib import suppress
from dataclasses import dataclass
from typing import Any, Literal, Protocol

import httpx

from shipdesk.core.config import Settings, get_settings
from shipdesk.core.errors import BackendError
from shipdesk.services.auth import AuthUser, is_authorized_user
from shipdesk.services.backend_mode import BackendMode, LocalMode, dispose_backend_mode, select_backend_mode
from shipdesk.services.clock import Clock, now_ms
from shipdesk.services.email import EmailRelay, relay_from_settings
from shipdesk.services.projector import TablePage, ViewQuery, project
from shipdesk.services.repository import ShipmentRepository

logger = logging.getLogger(__name__)

ToastKind = Literal["success", "error", "info"]


@dataclass(frozen=True)
class Toast:
    kind: ToastKind
    message: str


class Renderer(Protocol):
    def render_table(self, page: TablePage) -> None: ...

    def show_toast(self, toast: Toast) -> None: ...


class NullRenderer:
    def render_table(self, page: TablePage) -> None:
        return None

    def show_toast(self, toast: Toast) -> None:
        return None


class DashboardSession:
    """Everything one operator session needs, built once and passed around by reference.

    The session owns the backend mode, the repository, the optional email
    relay, the renderer and the current view query, plus every background
    task it spawned. ``close()`` tears the subscription down and finishes or
    cancels whatever is still running.
    """

    def __init__(
        self,
        mode: BackendMode,
        *,
        settings: Settings | None = None,
        relay: EmailRelay | None = None,
        renderer: Renderer | None = None,
        clock: Clock = now_ms,
    ) -> None:
        self.settings = settings or get_settings()
        self.mode = mode
        self.relay = relay
        self.renderer: Renderer = renderer or NullRenderer()
        self.clock = clock
        self.session_id = uuid.uuid4().hex[:12]
        self.query = ViewQuery()
        self.user: AuthUser | None = None
        self.last_page: TablePage | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self.repository = ShipmentRepository(mode, on_error=self._on_backend_error)
        self._remove_listener = self.repository.add_listener(lambda _items: self.refresh())

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        *,
        renderer: Renderer | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Clock = now_ms,
    ) -> DashboardSession:
        settings = settings or get_settings()
        mode = select_backend_mode(settings, clock=clock)
        relay = relay_from_settings(settings, transport=transport)
        return cls(mode, settings=settings, relay=relay, renderer=renderer, clock=clock)

    @property
    def backend_mode(self) -> str:
        return self.mode.name

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task[Any]:
        """Run ``coro`` in the background; its failure is logged and never re-raised."""
        task = asyncio.create_task(self._guard(coro), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _guard(self, coro: Coroutine[Any, Any, Any]) -> Any:
        try:
            return await coro
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("background_task_failed", extra={"backend_mode": self.backend_mode, "error": str(exc)})
            return None

    async def drain(self) -> None:
        """Wait for every background task, including ones spawned while waiting."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def refresh(self) -> TablePage:
        page = project(self.repository.snapshot(), self.query)
        self.last_page = page
        self.renderer.render_table(page)
        return page

    def set_query(self, query: ViewQuery) -> TablePage:
        self.query = query
        return self.refresh()

    def show_toast(self, kind: ToastKind, message: str) -> Toast:
        toast = Toast(kind=kind, message=message)
        log = logger.warning if kind == "error" else logger.info
        log("dashboard_toast", extra={"kind": kind, "toast": message, "backend_mode": self.backend_mode})
        self.renderer.show_toast(toast)
        return toast

    def _on_backend_error(self, exc: BackendError) -> None:
        self.show_toast("error", exc.message)

    def on_auth_changed(self, user: AuthUser | None) -> None:
        self.user = user
        self.repository.on_auth_changed(user)

    @property
    def can_write(self) -> bool:
        if isinstance(self.mode, LocalMode):
            return True
        return is_authorized_user(self.user, self.mode.allowlist)

    def status_text(self) -> str:
        mode = self.mode
        if isinstance(mode, LocalMode):
            reason = "not connected" if mode.fallback else "no remote store configured"
            return f"Status: local mode ({reason})"
        if self.user is None:
            return "Status: connected (awaiting sign-in)"
        if not is_authorized_user(self.user, mode.allowlist):
            return "Status: connected (sign-in required)"
        return "Status: connected (realtime)"

    async def close(self) -> None:
        self._remove_listener()
        self.repository.close()
        # Pending notifications and writes get a chance to finish before anything is cancelled.
        with suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self.drain(), timeout=self.settings.email_timeout_seconds)
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await dispose_backend_mode(self.mode)
