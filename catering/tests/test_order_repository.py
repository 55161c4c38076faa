"""
Tests for versioned saves in the in-memory order repository.
"""

import pytest

from catering.domain import OrderStatus
from catering.repos.memory.order import MemoryOrderRepository
from catering.tests.factories import OrderFactory


@pytest.mark.asyncio
async def test_new_order_is_stored_as_version_one() -> None:
    repo = MemoryOrderRepository()
    order = OrderFactory.build()

    assert await repo.save_order(order)

    stored = await repo.get_order(order.order_id)
    assert stored.version == 1
    assert order.version == 0


@pytest.mark.asyncio
async def test_save_from_a_stale_read_is_refused() -> None:
    order = OrderFactory.build()
    repo = MemoryOrderRepository([order])
    first = await repo.get_order(order.order_id)
    second = await repo.get_order(order.order_id)

    first.allow_additional_order = True
    assert await repo.save_order(first)
    second.order_status = OrderStatus.PREPARING
    assert not await repo.save_order(second)

    stored = await repo.get_order(order.order_id)
    assert stored.allow_additional_order
    assert stored.order_status == OrderStatus.PENDING
    assert repo.save_count == 1


@pytest.mark.asyncio
async def test_replaying_a_landed_save_succeeds_without_writing() -> None:
    order = OrderFactory.build()
    repo = MemoryOrderRepository([order])
    read = await repo.get_order(order.order_id)
    read.order_status = OrderStatus.PREPARING

    assert await repo.save_order(read)
    assert await repo.save_order(read)

    assert repo.save_count == 1
    assert (await repo.get_order(order.order_id)).version == 1
