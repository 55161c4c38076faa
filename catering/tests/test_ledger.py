import asyncio
from decimal import Decimal
from typing import Dict, Set

import pytest
from hypothesis import given, settings, strategies as st

from catering.domain import (
    Actor,
    AdditionalOrderRequest,
    CancellationScope,
    CancelOrderCommand,
    CheckoutItemRequest,
    OrderItem,
    OrderStatus,
    PaymentGroupStatus,
)
from catering.errors import PaymentGroupNotFound
from catering.ledger import PaymentLedger
from catering.repos.memory.gateway import MemoryPaymentGatewayRepository
from catering.repos.memory.order import MemoryOrderRepository
from catering.tests.factories import (
    BUYER_ID,
    FIXED_NOW,
    INITIAL_PAYMENT_ID,
    OrderFactory,
    OrderItemFactory,
    PaymentGroupFactory,
    fixed_clock,
    payment_ids,
    with_additional_group,
)
from catering.usecase import AdditionalOrderUseCase, CancelOrderUseCase


def test_single_group_order_totals() -> None:
    ledger = PaymentLedger(OrderFactory.build())

    group = ledger.require_group(INITIAL_PAYMENT_ID)
    assert ledger.items_total(group) == 47000
    assert ledger.group_charge(group) == 50000
    assert ledger.effective_total() == 50000
    assert ledger.is_consistent()


def test_delivery_fee_counted_once_across_groups() -> None:
    order = with_additional_group(OrderFactory.build())
    ledger = PaymentLedger(order)

    assert ledger.effective_total() == 60000
    assert ledger.fee_carrier().payment_id == INITIAL_PAYMENT_ID
    assert ledger.refundable_amount(CancellationScope.whole_order()) == 60000


def test_single_group_refund_excludes_delivery_fee() -> None:
    order = with_additional_group(OrderFactory.build())
    ledger = PaymentLedger(order)

    assert ledger.refundable_amount(CancellationScope.single("imp_additional")) == 10000
    assert (
        ledger.refundable_amount(CancellationScope.single(INITIAL_PAYMENT_ID))
        == 47000
    )


def test_cancelled_groups_drop_out_of_totals() -> None:
    order = with_additional_group(OrderFactory.build())
    ledger = PaymentLedger(order)

    ledger.mark_cancelled("imp_additional", FIXED_NOW)

    assert payment_ids(ledger.active_groups()) == [INITIAL_PAYMENT_ID]
    assert ledger.effective_total() == 50000
    assert ledger.refundable_amount(CancellationScope.single("imp_additional")) == 0


def test_points_reduce_group_charge() -> None:
    order = OrderFactory.build(
        payment_info=[PaymentGroupFactory.build(amount=45000, point_amount=5000)]
    )
    ledger = PaymentLedger(order)

    assert ledger.effective_total() == 45000
    assert ledger.is_consistent()


def test_plan_whole_order_keeps_group_order_and_applies_rate() -> None:
    order = with_additional_group(OrderFactory.build())
    plan = PaymentLedger(order).plan(CancellationScope.whole_order(), Decimal("0.7"))

    assert [p.payment_id for p in plan] == [INITIAL_PAYMENT_ID, "imp_additional"]
    assert [p.refund_amount for p in plan] == [35000, 7000]
    assert plan[0].includes_delivery_fee
    assert not plan[1].includes_delivery_fee


def test_plan_skips_gateway_for_failed_charges() -> None:
    order = with_additional_group(
        OrderFactory.build(), status=PaymentGroupStatus.FAILED
    )
    plan = PaymentLedger(order).plan(CancellationScope.whole_order())

    assert [p.requires_gateway for p in plan] == [True, False]


def test_plan_for_unknown_group_raises() -> None:
    ledger = PaymentLedger(OrderFactory.build())
    with pytest.raises(PaymentGroupNotFound):
        ledger.plan(CancellationScope.single("imp_missing"))


def test_append_group_records_items_and_amount() -> None:
    order = OrderFactory.build()
    ledger = PaymentLedger(order)

    group = ledger.append_group(
        "imp_extra",
        [OrderItem(product_id="cookie", quantity=2, price=4000, payment_id="")],
        point_amount=1000,
        paid_at=FIXED_NOW,
    )

    assert group.amount == 7000
    assert not group.carries_delivery_fee
    added = order.items_for("imp_extra")
    assert len(added) == 1
    assert added[0].is_add_item
    assert ledger.is_consistent()


def test_append_group_rejects_duplicate_payment_id() -> None:
    ledger = PaymentLedger(OrderFactory.build())
    with pytest.raises(ValueError, match="already exists"):
        ledger.append_group(INITIAL_PAYMENT_ID, [OrderItemFactory.build()])


def test_mark_cancelled_is_idempotent() -> None:
    ledger = PaymentLedger(OrderFactory.build())

    first = ledger.mark_cancelled(INITIAL_PAYMENT_ID, FIXED_NOW)
    again = ledger.mark_cancelled(INITIAL_PAYMENT_ID)

    assert again.status == PaymentGroupStatus.CANCELLED
    assert again.cancelled_at == first.cancelled_at == FIXED_NOW


def test_plan_floors_the_scope_total_once() -> None:
    order = with_additional_group(
        OrderFactory.build(
            items=[OrderItemFactory.build(price=47001)],
            payment_info=[PaymentGroupFactory.build(amount=50001)],
        ),
        price=10001,
    )
    plan = PaymentLedger(order).plan(CancellationScope.whole_order(), Decimal("0.7"))

    assert [p.charge for p in plan] == [50001, 10001]
    # floor(60002 * 0.7) == 42001; the won lost per group goes to the first
    assert [p.refund_amount for p in plan] == [35001, 7000]


def test_plan_remainder_never_exceeds_a_group_charge() -> None:
    order = with_additional_group(
        with_additional_group(
            OrderFactory.build(
                items=[OrderItemFactory.build(price=0)],
                delivery_fee=0,
                payment_info=[PaymentGroupFactory.build(amount=0)],
            ),
            payment_id="imp_second",
            price=3,
        ),
        payment_id="imp_third",
        price=3,
    )
    plan = PaymentLedger(order).plan(CancellationScope.whole_order(), Decimal("0.5"))

    # floor(6 * 0.5) == 3; the empty checkout group cannot take the extra won
    assert [p.refund_amount for p in plan] == [0, 2, 1]
    assert all(p.refund_amount <= p.charge for p in plan)


purchase = st.tuples(
    st.just("buy"),
    st.integers(min_value=1, max_value=200_000),
    st.integers(min_value=0, max_value=5_000),
)
partial_cancellation = st.tuples(
    st.just("cancel"), st.integers(min_value=0, max_value=9), st.just(0)
)


async def _replay(steps) -> None:
    order = OrderFactory.build(
        order_status=OrderStatus.PREPARING, allow_additional_order=True
    )
    order_repo = MemoryOrderRepository([order])
    gateway_repo = MemoryPaymentGatewayRepository()
    buyer = Actor.buyer(BUYER_ID)
    additional_orders = AdditionalOrderUseCase(order_repo=order_repo)
    cancellations = CancelOrderUseCase(
        order_repo=order_repo, gateway_repo=gateway_repo, clock=fixed_clock
    )
    charges: Dict[str, int] = {}
    cancelled: Set[str] = set()

    for position, (action, amount, points) in enumerate(steps):
        if action == "buy":
            payment_id = f"imp_{position}"
            await additional_orders.add_additional_order(
                order.order_id,
                AdditionalOrderRequest(
                    payment_id=payment_id,
                    items=[
                        CheckoutItemRequest(product_id="extra", quantity=1, price=amount)
                    ],
                    point_amount=points,
                    paid_at=FIXED_NOW,
                ),
                buyer,
            )
            charges[payment_id] = max(amount - points, 0)
        elif charges:
            payment_id = sorted(charges)[amount % len(charges)]
            await cancellations.cancel_order(
                CancelOrderCommand(
                    order_id=order.order_id,
                    actor=buyer,
                    reason="Changed my mind",
                    scope=CancellationScope.single(payment_id),
                )
            )
            cancelled.add(payment_id)

        stored = await order_repo.get_order(order.order_id)
        ledger = PaymentLedger(stored)
        assert ledger.is_consistent()
        assert ledger.effective_total() == 50000 + sum(
            charge for pid, charge in charges.items() if pid not in cancelled
        )
        assert gateway_repo.refunded_amount() == sum(
            charges[pid] for pid in cancelled
        )
        assert stored.order_status == OrderStatus.PREPARING


@settings(max_examples=50, deadline=None)
@given(steps=st.lists(st.one_of(purchase, partial_cancellation), max_size=8))
def test_ledger_invariant_through_purchases_and_partial_cancellations(steps) -> None:
    asyncio.run(_replay(steps))
