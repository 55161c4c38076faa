import asyncio
from functools import partial

import pytest

from catering.domain import OrderStatus
from catering.feed import (
    LiveOrderView,
    OrderChange,
    OrderChangeFeed,
    OrderSubscription,
    PublishingOrderRepository,
    SubscriptionClosed,
)
from catering.projections import SellerBucket, seller_view
from catering.repos.memory.order import MemoryOrderRepository
from catering.tests.factories import STORE_ID, OrderFactory


@pytest.mark.asyncio
async def test_saved_orders_are_published_to_every_subscriber() -> None:
    feed = OrderChangeFeed()
    repo = PublishingOrderRepository(MemoryOrderRepository(), feed)
    first = feed.subscribe()
    second = feed.subscribe()
    order = OrderFactory.build()

    assert await repo.save_order(order)

    stored = await repo.get_order(order.order_id)
    assert stored.version == 1
    assert (await first.next_change()).order == stored
    assert (await second.next_change()).order == stored


@pytest.mark.asyncio
async def test_stale_save_is_not_published() -> None:
    feed = OrderChangeFeed()
    repo = PublishingOrderRepository(MemoryOrderRepository(), feed)
    subscription = feed.subscribe()
    order = OrderFactory.build()
    await repo.save_order(order)
    await subscription.next_change()

    stale = order.model_copy(update={"order_status": OrderStatus.PREPARING})
    assert not await repo.save_order(stale)

    assert subscription.pending() == 0


@pytest.mark.asyncio
async def test_published_document_is_a_snapshot() -> None:
    feed = OrderChangeFeed()
    subscription = feed.subscribe()
    order = OrderFactory.build()

    feed.publish(order)
    order.order_status = OrderStatus.PREPARING

    change = await subscription.next_change()
    assert change.order.order_status == OrderStatus.PENDING


def test_closed_subscription_stops_receiving() -> None:
    feed = OrderChangeFeed()
    subscription = feed.subscribe()

    subscription.close()
    feed.publish(OrderFactory.build())

    assert subscription.pending() == 0
    assert feed.subscriber_count == 0


@pytest.mark.asyncio
async def test_live_view_follows_changes() -> None:
    feed = OrderChangeFeed()
    repo = PublishingOrderRepository(MemoryOrderRepository(), feed)
    existing = OrderFactory.build()
    view = LiveOrderView(
        partial(seller_view, store_id=STORE_ID, bucket=SellerBucket.PREPARING),
        [existing],
    )
    assert view.current.counts["pending"] == 1

    updates = []
    subscription = feed.subscribe()
    follower = asyncio.create_task(
        view.follow(subscription, on_update=updates.append, limit=2)
    )

    accepted = existing.model_copy(update={"order_status": OrderStatus.PREPARING})
    await repo.save_order(accepted)
    await repo.save_order(OrderFactory.build())
    final = await asyncio.wait_for(follower, timeout=1)

    assert view.revision == 2
    assert len(updates) == 2
    assert final.counts == {
        "all": 2,
        "pending": 1,
        "preparing": 1,
        "shipping": 0,
        "completed": 0,
        "cancelled": 0,
    }
    assert [o.order_id for o in final.orders] == [existing.order_id]


@pytest.mark.asyncio
async def test_close_ends_iteration() -> None:
    feed = OrderChangeFeed()
    subscription = feed.subscribe()
    received = []

    async def consume() -> None:
        async for change in subscription:
            received.append(change.order.order_id)

    consumer = asyncio.create_task(consume())
    order = OrderFactory.build()
    feed.publish(order)
    await asyncio.sleep(0)
    subscription.close()
    await asyncio.wait_for(consumer, timeout=1)

    assert received == [order.order_id]


@pytest.mark.asyncio
async def test_close_wakes_a_waiting_reader() -> None:
    feed = OrderChangeFeed()
    subscription = feed.subscribe()
    waiting = asyncio.create_task(subscription.next_change())
    await asyncio.sleep(0)

    subscription.close()

    with pytest.raises(SubscriptionClosed):
        await asyncio.wait_for(waiting, timeout=1)


def test_slow_subscriber_keeps_only_the_latest_changes() -> None:
    feed = OrderChangeFeed()
    subscription = OrderSubscription(feed, max_pending=2)
    orders = OrderFactory.build_batch(3)

    for order in orders:
        subscription.deliver(OrderChange(order=order))

    assert subscription.pending() == 2
    assert subscription.dropped == 1


@pytest.mark.asyncio
async def test_live_view_stops_following_when_closed() -> None:
    feed = OrderChangeFeed()
    view = LiveOrderView(partial(seller_view, store_id=STORE_ID))
    subscription = feed.subscribe()
    follower = asyncio.create_task(view.follow(subscription))
    await asyncio.sleep(0)

    subscription.close()
    final = await asyncio.wait_for(follower, timeout=1)

    assert view.revision == 0
    assert final.counts["all"] == 0
