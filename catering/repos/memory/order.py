"""
In-memory implementation of OrderRepository for local runs and tests.
"""

import logging
import uuid
from typing import Dict, Iterable, List, Optional

from catering.domain import Order
from catering.repositories import OrderRepository

logger = logging.getLogger(__name__)


class MemoryOrderRepository(OrderRepository):
    """
    Keeps order documents in a dict. Documents are copied on the way in and
    on the way out, so callers never share state with the store. The
    version check and the write happen without yielding to the event loop.
    """

    def __init__(self, orders: Iterable[Order] = ()) -> None:
        self._orders: Dict[str, Order] = {
            o.order_id: o.model_copy(deep=True) for o in orders
        }
        self.save_count = 0

    async def generate_order_id(self) -> str:
        return str(uuid.uuid4())

    async def get_order(self, order_id: str) -> Optional[Order]:
        order = self._orders.get(order_id)
        return order.model_copy(deep=True) if order is not None else None

    async def save_order(self, order: Order) -> bool:
        written = order.model_copy(update={"version": order.version + 1}, deep=True)
        stored = self._orders.get(order.order_id)
        if stored == written:
            return True
        stored_version = stored.version if stored is not None else 0
        if stored_version != order.version:
            logger.info(
                "MemoryOrderRepository: Stale order version, not saved",
                extra={
                    "order_id": order.order_id,
                    "expected_version": order.version,
                    "stored_version": stored_version,
                },
            )
            return False
        self._orders[order.order_id] = written
        self.save_count += 1
        logger.debug(
            "MemoryOrderRepository: Order saved",
            extra={
                "order_id": order.order_id,
                "order_status": order.order_status.value,
                "version": written.version,
            },
        )
        return True

    async def list_orders(self) -> List[Order]:
        return [o.model_copy(deep=True) for o in self._orders.values()]
