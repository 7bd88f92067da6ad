#!/usr/bin/env python3
"""
Warehouse - StockRelay Demo Application

Creates a stock item, reserves stock against it and lets the logistics
capability register a package for every reservation it hears about.

Run modes:
  python -m stockrelay.apps.warehouse.main                 # In-memory broker
  python -m stockrelay.apps.warehouse.main --redis-url redis://localhost:6379
  python -m stockrelay.apps.warehouse.main --quantity 50 --reserve 10 --reserve 15
"""

import argparse
import asyncio
import logging
import sys
import time

from stockrelay.backends.base import Connector
from stockrelay.backends.inmemory import InMemoryBroker
from stockrelay.backends.redis_backend import RedisStreamsConnector
from stockrelay.bus.consumer import DurableConsumer, QueueBinding
from stockrelay.catalog import create_default_registry
from stockrelay.config import RelaySettings
from stockrelay.core.identifiers import Identifier
from stockrelay.core.logging import set_log_level
from stockrelay.inventory.repository import InMemoryStockItemRepository
from stockrelay.inventory.service import StockItemService
from stockrelay.inventory.subscribers import StockItemCreatedLogger
from stockrelay.logistics.repository import InMemoryPackageRepository
from stockrelay.logistics.service import PackageService
from stockrelay.logistics.subscribers import CreatePackageOnStockReserved, PackageDeliveryTracker


async def drain(consumer: DurableConsumer, bindings: list[QueueBinding], timeout: float) -> int:
    """Poll every queue until a full pass receives nothing."""
    handled = 0
    while True:
        received = 0
        for binding in bindings:
            if await consumer.poll(binding, timeout=timeout):
                received += 1
        if not received:
            return handled
        handled += received


async def run_warehouse(
    settings: RelaySettings,
    connector: Connector,
    name: str,
    quantity: int,
    reservations: list[int],
    location: str = "Dispatch hub",
    verbose: bool = True,
    log_level: int | str = "INFO",
) -> dict:
    """Run one create/reserve/ship round trip through the broker."""
    registry = create_default_registry()
    connection = settings.connection_manager(connector)
    publisher = settings.publisher(connection, registry)
    consumer = settings.consumer(connection, registry)

    packages = InMemoryPackageRepository()
    created_logger = StockItemCreatedLogger()
    subscribers = [
        created_logger,
        CreatePackageOnStockReserved(packages, publisher),
        PackageDeliveryTracker(packages),
    ]

    # Queues must exist before the first publish so nothing is missed
    bindings = await consumer.bind(subscribers)
    await publisher.start()

    service = StockItemService(InMemoryStockItemRepository(), publisher)
    item_id = Identifier.random()
    set_log_level(log_level)

    if verbose:
        print("=" * 60)
        print("WAREHOUSE")
        print("=" * 60)
        print(f"\nCreating '{name}' with {quantity} units...\n")

    start = time.monotonic()
    result = await service.create_stock_item(item_id, name, quantity)
    if not result.ok:
        raise SystemExit(f"Could not create stock item: {result.message}")

    for index, amount in enumerate(reservations, start=1):
        reservation_id = f"R{index}"
        result = await service.reserve_stock(item_id, amount, reservation_id)
        if verbose:
            status = "reserved" if result.ok else f"rejected ({result.error.value})"
            print(f"  {reservation_id}: {amount} units {status}")

    handled = await drain(consumer, bindings, timeout=settings.poll_timeout)

    logistics = PackageService(packages, publisher)
    for package in await packages.find_all():
        await logistics.update_location(package.id, location)
    elapsed = time.monotonic() - start

    item = await service.get_stock_item(item_id)
    registered = await packages.find_all()
    await connection.close()

    summary = {
        "stock_item": item.to_primitives() if item else None,
        "packages": [p.to_primitives() for p in registered],
        "publisher": publisher.stats,
        "consumer": consumer.stats,
    }

    if verbose:
        print("\n" + "=" * 60)
        print("RESULTS")
        print("=" * 60)
        if item is not None:
            print(f"  Total: {item.total_quantity}")
            print(f"  Reserved: {item.reserved_quantity}")
            print(f"  Available: {item.available_quantity}")
        print(f"  Events published: {publisher.stats.published}")
        print(f"  Deliveries handled: {handled}")
        print(f"  Time: {elapsed:.2f}s")
        for package in registered:
            print(
                f"  Package {package.tracking_number} for reservation "
                f"{package.reservation_id}: {package.status.value} at {package.location}"
            )
        if consumer.stats.handler_errors:
            print(f"  Handler errors: {dict(consumer.stats.handler_errors)}")
        if consumer.stats.dead_lettered or publisher.stats.dead_lettered:
            print(
                f"  Dead-lettered: {publisher.stats.dead_lettered} on publish, "
                f"{consumer.stats.dead_lettered} on consume"
            )

    return summary


def main():
    parser = argparse.ArgumentParser(description="Warehouse Demo")
    parser.add_argument("--redis-url", type=str, help="Use Redis Streams at this URL")
    parser.add_argument("--name", type=str, default="Widget", help="Stock item name")
    parser.add_argument("--quantity", type=int, default=100, help="Initial quantity")
    parser.add_argument(
        "--reserve",
        type=int,
        action="append",
        help="Reserve this many units (repeatable)",
    )
    parser.add_argument("--location", type=str, default="Dispatch hub", help="First package location")
    parser.add_argument("--quiet", "-q", action="store_true", help="Minimal output")
    args = parser.parse_args()

    settings = RelaySettings()

    if args.redis_url:
        connector: Connector = RedisStreamsConnector(
            args.redis_url,
            consumer_name="warehouse",
            claim_min_idle_ms=settings.claim_min_idle_ms,
        )
    else:
        connector = InMemoryBroker()

    try:
        asyncio.run(
            run_warehouse(
                settings,
                connector,
                args.name,
                args.quantity,
                args.reserve or [25, 30],
                location=args.location,
                verbose=not args.quiet,
                log_level=logging.WARNING if args.quiet else settings.log_level,
            )
        )
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
