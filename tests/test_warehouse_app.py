"""Smoke test for the warehouse demo application."""

import pytest

from stockrelay.apps.warehouse.main import run_warehouse
from stockrelay.backends.inmemory import InMemoryBroker
from stockrelay.config import RelaySettings


@pytest.mark.timeout(10)
async def test_reservations_become_packages_in_transit():
    settings = RelaySettings(retry_delay=0, poll_timeout=0.05)

    summary = await run_warehouse(
        settings,
        InMemoryBroker(),
        name="Widget",
        quantity=100,
        reservations=[25, 30, 500],
        location="Hub 7",
        verbose=False,
    )

    item = summary["stock_item"]
    assert item["totalQuantity"] == 100
    assert item["reservedQuantity"] == 55

    packages = sorted(summary["packages"], key=lambda p: p["reservationId"])
    assert [p["reservationId"] for p in packages] == ["R1", "R2"]
    assert all(p["status"] == "IN_TRANSIT" for p in packages)
    assert all(p["location"] == "Hub 7" for p in packages)

    # created + 2 reserved handled by inventory/logistics, 2 registrations by the tracker
    assert summary["consumer"].processed == 5
    assert summary["consumer"].dead_lettered == 0
    # created, 2 reserved, 2 registered, 2 location updates
    assert summary["publisher"].published == 7
