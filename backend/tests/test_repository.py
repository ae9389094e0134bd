import pytest

from shipdesk.core.errors import BackendError
from shipdesk.services.auth import AuthUser, is_authorized_user, normalize_allowlist
from shipdesk.services.backend_mode import LocalMode, RemoteMode
from shipdesk.services.projector import project
from shipdesk.services.repository import ShipmentRepository

OPERATOR = AuthUser(email="ops@example.com")


class _CountingStore:
    """Records subscribe/unsubscribe calls and lets the test push snapshots."""

    def __init__(self) -> None:
        self.subscriptions: list[tuple] = []
        self.unsubscribed = 0

    def subscribe(self, on_change, on_error=None):
        self.subscriptions.append((on_change, on_error))

        def unsubscribe() -> None:
            self.unsubscribed += 1

        return unsubscribe


def _remote(local_store, store=None, allowlist=("ops@example.com",)) -> RemoteMode:
    return RemoteMode(store=store or _CountingStore(), local=local_store, allowlist=allowlist)


def test_allowlist_rules() -> None:
    assert not is_authorized_user(None, ())
    assert not is_authorized_user(AuthUser(email=" "), ())
    assert is_authorized_user(AuthUser(email="anyone@example.com"), ())
    assert is_authorized_user(OPERATOR, [" ops@example.com ", ""])
    assert not is_authorized_user(AuthUser(email="intruder@example.com"), ["ops@example.com"])
    assert normalize_allowlist([" a@x ", "", "b@x"]) == ("a@x", "b@x")


def test_local_repository_loads_store_and_ignores_auth(local_store, shipment_factory) -> None:
    local_store.write_all([shipment_factory("a")])
    repository = ShipmentRepository(LocalMode(store=local_store))

    repository.on_auth_changed(None)

    assert [item.id for item in repository.items] == ["a"]
    assert not repository.is_subscribed


def test_authorized_user_subscribes_exactly_once(local_store) -> None:
    store = _CountingStore()
    repository = ShipmentRepository(_remote(local_store, store))

    repository.on_auth_changed(OPERATOR)
    repository.on_auth_changed(OPERATOR)

    assert len(store.subscriptions) == 1
    assert repository.is_subscribed
    assert repository.subscriber == "ops@example.com"


def test_switching_user_replaces_subscription(local_store) -> None:
    store = _CountingStore()
    repository = ShipmentRepository(_remote(local_store, store, allowlist=()))

    repository.on_auth_changed(OPERATOR)
    repository.on_auth_changed(AuthUser(email="second@example.com"))

    assert len(store.subscriptions) == 2
    assert store.unsubscribed == 1
    assert repository.subscriber == "second@example.com"


def test_unauthorized_user_clears_items_and_subscription(local_store, shipment_factory) -> None:
    store = _CountingStore()
    repository = ShipmentRepository(_remote(local_store, store))
    repository.on_auth_changed(OPERATOR)
    on_change, _ = store.subscriptions[0]
    on_change([shipment_factory("a")])
    assert len(repository.items) == 1

    repository.on_auth_changed(AuthUser(email="intruder@example.com"))

    assert repository.items == ()
    assert not repository.is_subscribed
    assert store.unsubscribed == 1
    assert len(store.subscriptions) == 1


def test_sign_out_clears_items(local_store, shipment_factory) -> None:
    store = _CountingStore()
    repository = ShipmentRepository(_remote(local_store, store))
    repository.on_auth_changed(OPERATOR)
    store.subscriptions[0][0]([shipment_factory("a")])

    repository.on_auth_changed(None)

    assert repository.items == ()
    assert store.unsubscribed == 1


def test_pushes_from_replaced_subscription_are_ignored(local_store, shipment_factory) -> None:
    store = _CountingStore()
    repository = ShipmentRepository(_remote(local_store, store, allowlist=()))
    repository.on_auth_changed(OPERATOR)
    stale_on_change, stale_on_error = store.subscriptions[0]
    errors: list[BackendError] = []
    repository._on_error = errors.append

    repository.on_auth_changed(AuthUser(email="second@example.com"))
    stale_on_change([shipment_factory("stale")])
    stale_on_error(BackendError("stale failure"))

    assert repository.items == ()
    assert errors == []


def test_snapshot_is_replaced_wholesale_and_listeners_notified(local_store, shipment_factory) -> None:
    store = _CountingStore()
    repository = ShipmentRepository(_remote(local_store, store))
    seen: list[int] = []
    remove = repository.add_listener(lambda items: seen.append(len(items)))
    repository.on_auth_changed(OPERATOR)
    push = store.subscriptions[0][0]

    push([shipment_factory("a"), shipment_factory("b")])
    push([shipment_factory("c")])
    remove()
    push([])

    assert [item.id for item in repository.items] == []
    assert seen == [2, 1]


def test_empty_remote_snapshot_projects_to_zero_results(local_store) -> None:
    store = _CountingStore()
    repository = ShipmentRepository(_remote(local_store, store))
    repository.on_auth_changed(OPERATOR)

    store.subscriptions[0][0]([])

    page = project(repository.snapshot())
    assert page.total == 0
    assert page.summary == "0 results"


def test_failing_listener_does_not_block_others(local_store, shipment_factory, caplog: pytest.LogCaptureFixture) -> None:
    repository = ShipmentRepository(LocalMode(store=local_store))
    seen: list[int] = []

    def broken(_items) -> None:
        raise RuntimeError("render failed")

    repository.add_listener(broken)
    repository.add_listener(lambda items: seen.append(len(items)))

    with caplog.at_level("ERROR"):
        repository.replace_all([shipment_factory("a")])

    assert seen == [1]
    assert any(record.getMessage() == "repository_listener_failed" for record in caplog.records)


def test_invalid_documents_are_skipped(local_store, shipment_factory) -> None:
    repository = ShipmentRepository(LocalMode(store=local_store))

    repository.replace_all([shipment_factory("a"), {"trackingNo": "no id"}, "garbage"])

    assert [item.id for item in repository.items] == ["a"]


def test_subscription_errors_reach_error_callback(local_store) -> None:
    store = _CountingStore()
    errors: list[BackendError] = []
    repository = ShipmentRepository(_remote(local_store, store), on_error=errors.append)
    repository.on_auth_changed(OPERATOR)

    store.subscriptions[0][1](RuntimeError("socket closed"))

    assert isinstance(errors[0], BackendError)
    assert errors[0].message == "socket closed"


@pytest.mark.anyio("asyncio")
async def test_remote_repository_loads_live_snapshot(remote_mode, shipment_factory, wait_for) -> None:
    await remote_mode.store.create(shipment_factory("a"))
    repository = ShipmentRepository(remote_mode)

    repository.on_auth_changed(OPERATOR)
    assert await repository.wait_until_loaded(2.0)
    assert [item.id for item in repository.items] == ["a"]

    await remote_mode.store.update("a", {"status": "Delivered"})
    await wait_for(lambda: repository.find("a").status == "Delivered")
    repository.close()
