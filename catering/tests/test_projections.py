from datetime import timedelta

from catering.domain import (
    DeliveryMethod,
    OrderStatus,
    ParcelDelivery,
    PaymentGroupStatus,
    PaymentStatus,
    PickupDelivery,
)
from catering.projections import (
    BuyerBucket,
    OrderFilters,
    SellerBucket,
    admin_view,
    buyer_bucket_of,
    buyer_view,
    seller_view,
)
from catering.tests.factories import (
    BUYER_ID,
    FIXED_NOW,
    STORE_ID,
    TODAY,
    OrderFactory,
    PaymentGroupFactory,
)


def at(hours: int, **kwargs):
    return OrderFactory.build(created_at=FIXED_NOW + timedelta(hours=hours), **kwargs)


def test_buyer_buckets() -> None:
    assert buyer_bucket_of(OrderFactory.build()) == BuyerBucket.PENDING
    assert (
        buyer_bucket_of(OrderFactory.build(payment_status=PaymentStatus.FAILED))
        == BuyerBucket.UNPAID
    )
    assert (
        buyer_bucket_of(OrderFactory.build(order_status=OrderStatus.REJECTED))
        == BuyerBucket.CANCELLED
    )
    assert (
        buyer_bucket_of(
            OrderFactory.build(
                order_status=OrderStatus.COMPLETED,
                payment_status=PaymentStatus.REFUNDED,
            )
        )
        == BuyerBucket.CANCELLED
    )


def test_buyer_view_is_newest_first_and_counts_all_buckets() -> None:
    older = at(0, order_status=OrderStatus.PREPARING)
    newer = at(5, order_status=OrderStatus.PREPARING)
    cancelled = at(2, order_status=OrderStatus.CANCELLED)
    someone_else = at(1, buyer_id="buyer-2")

    view = buyer_view([older, cancelled, newer, someone_else], BUYER_ID)

    assert [o.order_id for o in view.orders] == [
        newer.order_id,
        cancelled.order_id,
        older.order_id,
    ]
    assert view.counts == {
        "all": 3,
        "unpaid": 0,
        "pending": 0,
        "preparing": 2,
        "shipping": 0,
        "completed": 0,
        "cancelled": 1,
    }


def test_buyer_view_selects_bucket() -> None:
    orders = [at(0), at(1, order_status=OrderStatus.SHIPPING)]
    view = buyer_view(orders, BUYER_ID, BuyerBucket.SHIPPING)

    assert view.bucket == "shipping"
    assert [o.order_status for o in view.orders] == [OrderStatus.SHIPPING]
    assert view.counts["all"] == 2


def test_seller_view_puts_pending_first() -> None:
    preparing = at(10, order_status=OrderStatus.PREPARING)
    old_pending = at(0)
    new_pending = at(3)
    other_store = at(4, store_id="store-2")

    view = seller_view([preparing, old_pending, new_pending, other_store], STORE_ID)

    assert [o.order_id for o in view.orders] == [
        new_pending.order_id,
        old_pending.order_id,
        preparing.order_id,
    ]
    assert "unpaid" not in view.counts
    assert view.counts["pending"] == 2


def test_seller_filters_apply_to_counts() -> None:
    parcel_soon = at(0, delivery=ParcelDelivery(), delivery_date=TODAY)
    pickup_soon = at(1, delivery=PickupDelivery(), delivery_date=TODAY)
    parcel_later = at(2, delivery=ParcelDelivery(), delivery_date=TODAY + timedelta(days=30))

    view = seller_view(
        [parcel_soon, pickup_soon, parcel_later],
        STORE_ID,
        filters=OrderFilters(
            delivery_method=DeliveryMethod.PARCEL,
            date_from=TODAY,
            date_to=TODAY + timedelta(days=7),
        ),
    )

    assert [o.order_id for o in view.orders] == [parcel_soon.order_id]
    assert view.counts["all"] == 1


def test_seller_cannot_widen_view_with_store_filter() -> None:
    view = seller_view(
        [at(0, store_id="store-2")],
        STORE_ID,
        filters=OrderFilters(store_id="store-2"),
    )
    assert view.orders == []


def test_admin_view_spans_stores_with_summaries() -> None:
    first = at(0)
    second = at(1, store_id="store-2", store_name="Banchan House")
    partly_cancelled = at(
        2,
        store_id="store-2",
        store_name="Banchan House",
        order_status=OrderStatus.CANCELLED,
        payment_info=[PaymentGroupFactory.build(status=PaymentGroupStatus.CANCELLED)],
    )

    view = admin_view([first, second, partly_cancelled])

    assert len(view.orders) == 3
    assert [(s.store_id, s.order_count, s.active_order_count, s.effective_total)
            for s in view.stores] == [
        (STORE_ID, 1, 1, 50000),
        ("store-2", 2, 1, 50000),
    ]


def test_admin_store_filter_narrows_orders_but_not_summaries() -> None:
    orders = [at(0), at(1, store_id="store-2")]

    view = admin_view(orders, SellerBucket.ALL, OrderFilters(store_id="store-2"))

    assert [o.store_id for o in view.orders] == ["store-2"]
    assert len(view.stores) == 2
