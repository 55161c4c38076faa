"""
Test factories for order documents.

All timestamps hang off a fixed instant, noon in Seoul on 2025-03-10, so
refund tiers never depend on when the suite runs.
"""

from datetime import date, datetime, timedelta, timezone
from typing import List

from factory.base import Factory
from factory.declarations import LazyFunction
from factory.faker import Faker

from catering.domain import (
    Order,
    OrderItem,
    OrderStatus,
    PaymentGroup,
    PaymentGroupStatus,
    PaymentStatus,
    QuickDelivery,
)

TODAY = date(2025, 3, 10)
FIXED_NOW = datetime(2025, 3, 10, 3, 0, tzinfo=timezone.utc)

INITIAL_PAYMENT_ID = "imp_initial"
BUYER_ID = "buyer-1"
STORE_ID = "store-1"


def fixed_clock() -> datetime:
    return FIXED_NOW


class OrderItemFactory(Factory):
    class Meta:
        model = OrderItem

    product_id = Faker("uuid4")
    product_name = "Sandwich platter"
    quantity = 1
    price = 47000
    payment_id = INITIAL_PAYMENT_ID


class PaymentGroupFactory(Factory):
    class Meta:
        model = PaymentGroup

    payment_id = INITIAL_PAYMENT_ID
    amount = 50000
    status = PaymentGroupStatus.PAID
    carries_delivery_fee = True
    paid_at = FIXED_NOW


class OrderFactory(Factory):
    """A paid, pending quick-delivery order: 47,000 of items plus a 3,000 fee."""

    class Meta:
        model = Order

    order_id = Faker("uuid4")
    buyer_id = BUYER_ID
    store_id = STORE_ID
    store_name = "Lunchbox Co"
    items = LazyFunction(lambda: [OrderItemFactory.build()])
    order_status = OrderStatus.PENDING
    payment_status = PaymentStatus.PAID
    delivery = LazyFunction(QuickDelivery)
    delivery_date = TODAY + timedelta(days=4)
    delivery_fee = 3000
    created_at = FIXED_NOW
    payment_info = LazyFunction(lambda: [PaymentGroupFactory.build()])


def with_additional_group(
    order: Order,
    payment_id: str = "imp_additional",
    price: int = 10000,
    status: PaymentGroupStatus = PaymentGroupStatus.PAID,
) -> Order:
    """Copy of ``order`` with one more paid group holding a single item."""
    updated = order.model_copy(deep=True)
    updated.payment_info.append(
        PaymentGroupFactory.build(
            payment_id=payment_id,
            amount=price,
            status=status,
            carries_delivery_fee=False,
        )
    )
    updated.items.append(
        OrderItemFactory.build(price=price, payment_id=payment_id, is_add_item=True)
    )
    return updated


def payment_ids(groups: List[PaymentGroup]) -> List[str]:
    return [g.payment_id for g in groups]
