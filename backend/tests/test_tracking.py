import random

import pytest

from shipdesk.core.errors import BackendError, ValidationError
from shipdesk.schemas.shipment import parse_shipment
from shipdesk.schemas.tracking import PLACEHOLDER
from shipdesk.services import tracking
from shipdesk.services.backend_mode import LocalMode


def test_generate_tracking_number_uses_clock_tail_and_random_suffix() -> None:
    number = tracking.generate_tracking_number(now=1_715_000_123_456, rng=random.Random(7))

    assert number.startswith("JP00123456")
    assert len(number) == 14
    assert number[2:].isdigit()


def test_generate_tracking_number_uppercases_prefix() -> None:
    assert tracking.generate_tracking_number("jx", now=1).startswith("JX00000001")


@pytest.mark.parametrize("value", ["", "   ", None, "JP 123", "J" * 65])
def test_normalize_tracking_number_rejects_invalid_input(value) -> None:
    with pytest.raises(ValidationError):
        tracking.normalize_tracking_number(value)


def test_normalize_tracking_number_strips_whitespace() -> None:
    assert tracking.normalize_tracking_number("  JP123 ") == "JP123"


@pytest.mark.anyio("asyncio")
async def test_local_lookup_is_case_insensitive(local_store, shipment_factory) -> None:
    local_store.write_all([shipment_factory("a", trackingNo="JP123456789")])

    found = await tracking.lookup(LocalMode(store=local_store), "jp123456789")

    assert found is not None and found.id == "a"
    assert await tracking.lookup(LocalMode(store=local_store), "JP000") is None


@pytest.mark.anyio("asyncio")
async def test_remote_lookup_is_exact(remote_mode, shipment_factory) -> None:
    await remote_mode.store.create(shipment_factory("a", trackingNo="JP123456789"))

    assert (await tracking.lookup(remote_mode, "JP123456789")).id == "a"
    assert await tracking.lookup(remote_mode, "jp123456789") is None


@pytest.mark.anyio("asyncio")
async def test_remote_failure_falls_back_to_local_store(
    remote_mode, local_store, shipment_factory, monkeypatch: pytest.MonkeyPatch
) -> None:
    local_store.write_all([shipment_factory("cached", trackingNo="JP555")])

    async def _unavailable(field, value):
        raise BackendError("unavailable")

    monkeypatch.setattr(remote_mode.store, "find_by_field", _unavailable)

    found = await tracking.lookup(remote_mode, "jp555")

    assert found is not None and found.id == "cached"


def test_tracking_view_fills_placeholders(shipment_factory) -> None:
    shipment = parse_shipment(
        shipment_factory(
            "a",
            trackingNo="JP1",
            origin="Berlin, DE",
            destination="",
            updatedAt=1_700_000_000_000,
            receiver={"name": "Jeff", "city": "Dallas", "country": "US"},
        )
    )

    view = tracking.build_tracking_view(shipment)

    assert view.route == f"Berlin, DE → {PLACEHOLDER}"
    assert view.last_updated == "11/14/2023, 10:13:20 PM"
    assert view.carrier_ref == PLACEHOLDER
    assert view.receiver.locality == f"Dallas, {PLACEHOLDER}, US {PLACEHOLDER}"
    assert view.receiver.email == PLACEHOLDER
    assert view.featured_image is None
