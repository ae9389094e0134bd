import asyncio
import os
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any

import pytest

# Keep pytest output high-signal by disabling outbound Sentry capture in tests.
os.environ["SENTRY_DSN"] = ""

from shipdesk.core.config import Settings
from shipdesk.db.session import create_engine, create_session_factory
from shipdesk.services.backend_mode import LocalMode, RemoteMode, build_local_store
from shipdesk.services.dashboard import DashboardSession, Toast
from shipdesk.services.local_store import LocalShipmentStore
from shipdesk.services.projector import TablePage
from shipdesk.services.remote_store import RemoteShipmentStore

START_MS = 1_700_000_000_000


class FakeClock:
    def __init__(self, start: int = START_MS) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int = 1000) -> int:
        self.now += ms
        return self.now


class RecordingRenderer:
    def __init__(self) -> None:
        self.pages: list[TablePage] = []
        self.toasts: list[Toast] = []

    def render_table(self, page: TablePage) -> None:
        self.pages.append(page)

    def show_toast(self, toast: Toast) -> None:
        self.toasts.append(toast)

    @property
    def messages(self) -> list[tuple[str, str]]:
        return [(toast.kind, toast.message) for toast in self.toasts]


def make_shipment(shipment_id: str, **overrides: Any) -> dict[str, Any]:
    document: dict[str, Any] = {
        "id": shipment_id,
        "trackingNo": f"JP{shipment_id.upper()}",
        "sender": {"name": "Ana Becker", "email": "ana@example.com", "city": "Berlin"},
        "receiver": {"name": "Jeff Miller", "email": "jeff@example.com", "city": "Dallas"},
        "status": "Pending",
        "origin": "Berlin, DE",
        "destination": "Dallas, US",
        "location": "Berlin hub",
        "notes": "",
        "createdAt": START_MS - 10_000,
        "updatedAt": START_MS - 5_000,
    }
    document.update(overrides)
    return document


def valid_draft(**overrides: Any) -> dict[str, Any]:
    draft: dict[str, Any] = {
        "sender": {
            "name": "Ana Becker",
            "email": "ana@example.com",
            "phone": "+493012345",
            "city": "Berlin",
            "state": "BE",
            "country": "DE",
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
        "status": "Pending",
        "cargoType": "Parcel",
        "shipmentTitle": "Documents",
        "cargoName": "Contracts",
        "modeOfShipment": "Air",
        "paymentMethod": "Prepaid",
        "statusDate": "2024-05-01",
        "statusTime": "14:30",
        "location": "Berlin hub",
        "origin": "Berlin, DE",
        "destination": "Dallas, US",
    }
    draft.update(overrides)
    return draft


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


@pytest.fixture(scope="module")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def renderer() -> RecordingRenderer:
    return RecordingRenderer()


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        local_store_path=str(tmp_path / "localstore.json"),
        seed_demo_data=False,
        remote_database_url=None,
        redis_url=None,
        admin_email_allowlist=[],
        emailjs_service_id=None,
        emailjs_template_id=None,
        emailjs_public_key=None,
        emailjs_private_key=None,
        public_origin="https://track.example",
        sentry_dsn=None,
    )


@pytest.fixture
def local_store(test_settings: Settings) -> LocalShipmentStore:
    return build_local_store(test_settings)


@pytest.fixture
def local_session(
    test_settings: Settings, local_store: LocalShipmentStore, renderer: RecordingRenderer, clock: FakeClock
) -> DashboardSession:
    return DashboardSession(LocalMode(store=local_store), settings=test_settings, renderer=renderer, clock=clock)


@pytest.fixture
async def remote_store(tmp_path: Path, clock: FakeClock) -> AsyncIterator[RemoteShipmentStore]:
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'remote.db'}")
    store = RemoteShipmentStore(create_session_factory(engine), engine=engine, clock=clock)
    await store.create_schema()
    yield store
    await engine.dispose()


@pytest.fixture
def remote_mode(remote_store: RemoteShipmentStore, local_store: LocalShipmentStore) -> RemoteMode:
    return RemoteMode(store=remote_store, local=local_store, allowlist=("ops@example.com",))


@pytest.fixture
def shipment_factory() -> Callable[..., dict[str, Any]]:
    return make_shipment


@pytest.fixture
def draft_factory() -> Callable[..., dict[str, Any]]:
    return valid_draft


@pytest.fixture
def wait_for() -> Callable[..., Any]:
    return wait_until
