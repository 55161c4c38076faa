"""
Push-based change notification for order documents.

Repositories wrapped in ``PublishingOrderRepository`` announce every saved
order on an ``OrderChangeFeed``. Subscribers receive the new document;
``LiveOrderView`` keeps a projection recomputed after each change.
"""

import asyncio
import logging
from datetime import datetime
from typing import (
    AsyncIterator,
    Callable,
    Dict,
    Generic,
    Iterable,
    List,
    Optional,
    Set,
    TypeVar,
)

from pydantic import BaseModel, Field

from catering.domain import Order, utc_now
from catering.repositories import OrderRepository
from catering.validation import ensure_order_repository

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_PENDING = 1000


class SubscriptionClosed(Exception):
    """The subscription was closed while waiting for a change."""


class OrderChange(BaseModel):
    order: Order
    changed_at: datetime = Field(default_factory=utc_now)


class OrderSubscription:
    """
    A queue of changes that the subscriber drains at its own pace.

    At most ``max_pending`` changes are buffered; when a slow subscriber
    falls that far behind, the oldest change is dropped. ``close()`` ends
    any ``async for`` over the subscription.
    """

    def __init__(
        self, feed: "OrderChangeFeed", max_pending: int = DEFAULT_MAX_PENDING
    ) -> None:
        self._feed = feed
        self._queue: "asyncio.Queue[Optional[OrderChange]]" = asyncio.Queue(
            maxsize=max_pending + 1
        )
        self.max_pending = max_pending
        self.dropped = 0
        self.closed = False

    def deliver(self, change: OrderChange) -> None:
        if self.closed:
            return
        if self._queue.qsize() >= self.max_pending:
            self._queue.get_nowait()
            self.dropped += 1
            logger.warning(
                "Order subscriber is behind; dropping oldest change",
                extra={"dropped": self.dropped, "max_pending": self.max_pending},
            )
        self._queue.put_nowait(change)

    async def next_change(self) -> OrderChange:
        if self.closed and self._queue.empty():
            raise SubscriptionClosed()
        change = await self._queue.get()
        if change is None:
            raise SubscriptionClosed()
        return change

    def pending(self) -> int:
        return max(self._queue.qsize() - (1 if self.closed else 0), 0)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._feed.unsubscribe(self)
        # wakes a reader blocked on the queue; the extra slot keeps room for it
        self._queue.put_nowait(None)

    def __aiter__(self) -> AsyncIterator[OrderChange]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[OrderChange]:
        while not (self.closed and self._queue.empty()):
            change = await self._queue.get()
            if change is None:
                return
            yield change


class OrderChangeFeed:
    def __init__(self) -> None:
        self._subscribers: Set[OrderSubscription] = set()

    def subscribe(self) -> OrderSubscription:
        subscription = OrderSubscription(self)
        self._subscribers.add(subscription)
        return subscription

    def unsubscribe(self, subscription: OrderSubscription) -> None:
        self._subscribers.discard(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, order: Order) -> None:
        change = OrderChange(order=order.model_copy(deep=True))
        for subscription in list(self._subscribers):
            subscription.deliver(change)
        logger.debug(
            "Order change published",
            extra={
                "order_id": order.order_id,
                "order_status": order.order_status.value,
                "subscriber_count": len(self._subscribers),
            },
        )


class PublishingOrderRepository:
    """Wraps an OrderRepository and publishes each saved order."""

    def __init__(self, inner: OrderRepository, feed: OrderChangeFeed) -> None:
        self.inner = ensure_order_repository(inner)
        self.feed = feed

    async def generate_order_id(self) -> str:
        return await self.inner.generate_order_id()

    async def get_order(self, order_id: str) -> Optional[Order]:
        return await self.inner.get_order(order_id)

    async def save_order(self, order: Order) -> bool:
        saved = await self.inner.save_order(order)
        if saved:
            self.feed.publish(order.model_copy(update={"version": order.version + 1}))
        return saved

    async def list_orders(self) -> List[Order]:
        return await self.inner.list_orders()


class LiveOrderView(Generic[T]):
    """
    A projection kept current by applying order changes as they arrive.

    Args:
        project: Function from the full order collection to the view
        orders: Initial snapshot of the collection
    """

    def __init__(
        self,
        project: Callable[[List[Order]], T],
        orders: Iterable[Order] = (),
    ) -> None:
        self._project = project
        self._orders: Dict[str, Order] = {o.order_id: o for o in orders}
        self.current: T = project(list(self._orders.values()))
        self.revision = 0

    def apply(self, order: Order) -> T:
        self._orders[order.order_id] = order
        self.current = self._project(list(self._orders.values()))
        self.revision += 1
        return self.current

    async def follow(
        self,
        subscription: OrderSubscription,
        on_update: Optional[Callable[[T], None]] = None,
        limit: Optional[int] = None,
    ) -> T:
        """
        Apply changes from ``subscription`` until ``limit`` have been seen
        or the subscription is closed.
        """
        seen = 0
        while limit is None or seen < limit:
            try:
                change = await subscription.next_change()
            except SubscriptionClosed:
                break
            view = self.apply(change.order)
            seen += 1
            if on_update is not None:
                on_update(view)
        return self.current
