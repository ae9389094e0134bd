import json
from pathlib import Path

import pytest

from shipdesk.core.errors import StorageQuotaError
from shipdesk.services.local_store import LocalShipmentStore, LocalStorage


def test_local_storage_round_trips_string_values(tmp_path: Path) -> None:
    storage = LocalStorage(tmp_path / "store.json")

    assert storage.get_item("missing") is None
    storage.set_item("k", "v")
    assert storage.get_item("k") == "v"
    storage.remove_item("k")
    assert storage.get_item("k") is None


def test_local_storage_treats_corrupt_file_as_empty(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    path = tmp_path / "store.json"
    path.write_text("{not json", encoding="utf-8")
    storage = LocalStorage(path)

    with caplog.at_level("WARNING"):
        assert storage.get_item("jp_shipments") is None

    assert any(record.getMessage() == "local_storage_corrupt" for record in caplog.records)


def test_local_storage_quota_raises_and_keeps_previous_value(tmp_path: Path) -> None:
    storage = LocalStorage(tmp_path / "store.json", max_bytes=64)
    storage.set_item("k", "small")

    with pytest.raises(StorageQuotaError):
        storage.set_item("k", "x" * 200)

    assert storage.get_item("k") == "small"


def test_store_create_prepends_newest_first(local_store: LocalShipmentStore, shipment_factory) -> None:
    local_store.create(shipment_factory("a"))
    local_store.create(shipment_factory("b"))

    assert [doc["id"] for doc in local_store.read_all()] == ["b", "a"]


def test_store_update_merges_fields(local_store: LocalShipmentStore, shipment_factory) -> None:
    local_store.create(shipment_factory("a", featuredImage="data:image/png;base64,AAA"))

    merged = local_store.update("a", {"status": "Delivered"})

    assert merged is not None
    assert merged["status"] == "Delivered"
    assert merged["featuredImage"] == "data:image/png;base64,AAA"
    assert local_store.read_all()[0]["status"] == "Delivered"


def test_store_update_of_missing_id_returns_none(local_store: LocalShipmentStore, shipment_factory) -> None:
    local_store.create(shipment_factory("a"))

    assert local_store.update("nope", {"status": "Delivered"}) is None
    assert len(local_store.read_all()) == 1


def test_store_delete_removes_only_matching_record(local_store: LocalShipmentStore, shipment_factory) -> None:
    local_store.write_all([shipment_factory("a"), shipment_factory("b")])

    local_store.delete("a")
    local_store.delete("missing")

    assert [doc["id"] for doc in local_store.read_all()] == ["b"]


def test_store_find_by_field_exact_and_case_insensitive(local_store: LocalShipmentStore, shipment_factory) -> None:
    local_store.write_all([shipment_factory("a", trackingNo="JP123456789")])

    assert local_store.find_by_field("trackingNo", "jp123456789") is None
    found = local_store.find_by_field("trackingNo", "jp123456789", case_insensitive=True)
    assert found is not None and found["id"] == "a"


def test_store_ignores_non_array_payload(tmp_path: Path) -> None:
    storage = LocalStorage(tmp_path / "store.json")
    storage.set_item("jp_shipments", json.dumps({"id": "a"}))

    assert LocalShipmentStore(storage).read_all() == []


def test_store_write_over_quota_raises(tmp_path: Path, shipment_factory) -> None:
    store = LocalShipmentStore(LocalStorage(tmp_path / "store.json", max_bytes=200))

    with pytest.raises(StorageQuotaError):
        store.create(shipment_factory("a", notes="x" * 500))

    assert store.read_all() == []
