"""
Read-only views over the order collection for buyers, sellers and admins.

Each view narrows the collection to what the viewer may see, applies
optional filters, counts every status bucket over that filtered set (the
numbers shown on tabs) and returns the orders of the selected bucket.
"""

from datetime import date
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

from pydantic import BaseModel, Field

from catering.domain import (
    CANCELLED_ORDER_STATUSES,
    DeliveryMethod,
    Order,
    OrderStatus,
    PaymentStatus,
)
from catering.ledger import PaymentLedger


class BuyerBucket(str, Enum):
    ALL = "all"
    UNPAID = "unpaid"
    PENDING = "pending"
    PREPARING = "preparing"
    SHIPPING = "shipping"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SellerBucket(str, Enum):
    ALL = "all"
    PENDING = "pending"
    PREPARING = "preparing"
    SHIPPING = "shipping"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


_STATUS_BUCKETS = {
    OrderStatus.PENDING: "pending",
    OrderStatus.PREPARING: "preparing",
    OrderStatus.SHIPPING: "shipping",
    OrderStatus.COMPLETED: "completed",
}


class OrderFilters(BaseModel):
    delivery_method: Optional[DeliveryMethod] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    store_id: Optional[str] = None


class OrderView(BaseModel):
    bucket: str
    orders: List[Order] = Field(default_factory=list)
    counts: Dict[str, int] = Field(default_factory=dict)


class StoreSummary(BaseModel):
    store_id: str
    store_name: str = ""
    order_count: int = 0
    active_order_count: int = 0
    effective_total: int = 0


class AdminView(OrderView):
    stores: List[StoreSummary] = Field(default_factory=list)


def buyer_bucket_of(order: Order) -> BuyerBucket:
    if (
        order.order_status in CANCELLED_ORDER_STATUSES
        or order.payment_status == PaymentStatus.REFUNDED
    ):
        return BuyerBucket.CANCELLED
    if order.payment_status in (PaymentStatus.UNPAID, PaymentStatus.FAILED):
        return BuyerBucket.UNPAID
    return BuyerBucket(_STATUS_BUCKETS[order.order_status])


def seller_bucket_of(order: Order) -> SellerBucket:
    if order.order_status in CANCELLED_ORDER_STATUSES:
        return SellerBucket.CANCELLED
    return SellerBucket(_STATUS_BUCKETS[order.order_status])


def matches_filters(order: Order, filters: OrderFilters) -> bool:
    if filters.store_id and order.store_id != filters.store_id:
        return False
    if filters.delivery_method and order.delivery_method != filters.delivery_method:
        return False
    if filters.date_from and order.delivery_date < filters.date_from:
        return False
    if filters.date_to and order.delivery_date > filters.date_to:
        return False
    return True


def newest_first(orders: Iterable[Order]) -> List[Order]:
    return sorted(orders, key=lambda o: o.created_at, reverse=True)


def pending_first(orders: Iterable[Order]) -> List[Order]:
    """Newest first, with orders awaiting a decision ahead of the rest."""
    ordered = newest_first(orders)
    return [o for o in ordered if o.order_status == OrderStatus.PENDING] + [
        o for o in ordered if o.order_status != OrderStatus.PENDING
    ]


def _counts(orders: Sequence[Order], bucket_of, buckets) -> Dict[str, int]:
    counts = {b.value: 0 for b in buckets}
    counts["all"] = len(orders)
    for order in orders:
        counts[bucket_of(order).value] += 1
    return counts


def buyer_view(
    orders: Iterable[Order],
    buyer_id: str,
    bucket: BuyerBucket = BuyerBucket.ALL,
) -> OrderView:
    own = [o for o in orders if o.buyer_id == buyer_id]
    selected = [
        o for o in own if bucket == BuyerBucket.ALL or buyer_bucket_of(o) == bucket
    ]
    return OrderView(
        bucket=bucket.value,
        orders=newest_first(selected),
        counts=_counts(own, buyer_bucket_of, BuyerBucket),
    )


def seller_view(
    orders: Iterable[Order],
    store_id: str,
    bucket: SellerBucket = SellerBucket.ALL,
    filters: Optional[OrderFilters] = None,
) -> OrderView:
    filters = (filters or OrderFilters()).model_copy(update={"store_id": store_id})
    visible = [o for o in orders if matches_filters(o, filters)]
    selected = [
        o
        for o in visible
        if bucket == SellerBucket.ALL or seller_bucket_of(o) == bucket
    ]
    ordered = pending_first(selected) if bucket == SellerBucket.ALL else newest_first(selected)
    return OrderView(
        bucket=bucket.value,
        orders=ordered,
        counts=_counts(visible, seller_bucket_of, SellerBucket),
    )


def store_summaries(orders: Iterable[Order]) -> List[StoreSummary]:
    summaries: Dict[str, StoreSummary] = {}
    for order in orders:
        summary = summaries.setdefault(
            order.store_id,
            StoreSummary(store_id=order.store_id, store_name=order.store_name),
        )
        summary.order_count += 1
        if not order.is_terminal:
            summary.active_order_count += 1
        summary.effective_total += PaymentLedger(order).effective_total()
    return sorted(summaries.values(), key=lambda s: s.store_id)


def admin_view(
    orders: Iterable[Order],
    bucket: SellerBucket = SellerBucket.ALL,
    filters: Optional[OrderFilters] = None,
) -> AdminView:
    """Seller view across every store, plus per-store aggregates."""
    orders = list(orders)
    filters = filters or OrderFilters()
    visible = [o for o in orders if matches_filters(o, filters)]
    selected = [
        o
        for o in visible
        if bucket == SellerBucket.ALL or seller_bucket_of(o) == bucket
    ]
    ordered = pending_first(selected) if bucket == SellerBucket.ALL else newest_first(selected)
    without_store = filters.model_copy(update={"store_id": None})
    return AdminView(
        bucket=bucket.value,
        orders=ordered,
        counts=_counts(visible, seller_bucket_of, SellerBucket),
        stores=store_summaries(o for o in orders if matches_filters(o, without_store)),
    )
