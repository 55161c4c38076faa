import pytest

from catering.domain import (
    GatewayEvent,
    PaymentGroupStatus,
    PaymentStatus,
)
from catering.errors import PaymentGroupNotFound
from catering.repos.memory.order import MemoryOrderRepository
from catering.tests.factories import (
    FIXED_NOW,
    INITIAL_PAYMENT_ID,
    OrderFactory,
    PaymentGroupFactory,
    with_additional_group,
)
from catering.usecase import PaymentEventUseCase


def event(order_id: str, status: str, transaction_id: str = INITIAL_PAYMENT_ID):
    return GatewayEvent(
        order_id=order_id,
        transaction_id=transaction_id,
        status=status,
        occurred_at=FIXED_NOW,
    )


@pytest.mark.asyncio
class TestPaymentEvents:
    async def test_paid_confirms_unpaid_order(self) -> None:
        order = OrderFactory.build(payment_status=PaymentStatus.UNPAID)
        repo = MemoryOrderRepository([order])

        updated = await PaymentEventUseCase(repo).record_gateway_event(
            event(order.order_id, "paid")
        )

        assert updated.payment_status == PaymentStatus.PAID
        assert repo.save_count == 1

    async def test_paid_after_failure_revives_group(self) -> None:
        order = OrderFactory.build(
            payment_status=PaymentStatus.FAILED,
            payment_info=[PaymentGroupFactory.build(status=PaymentGroupStatus.FAILED)],
        )
        repo = MemoryOrderRepository([order])

        updated = await PaymentEventUseCase(repo).record_gateway_event(
            event(order.order_id, "paid")
        )

        assert updated.payment_status == PaymentStatus.PAID
        assert updated.payment_info[0].status == PaymentGroupStatus.PAID

    async def test_failure_marks_unpaid_order_failed(self) -> None:
        order = OrderFactory.build(payment_status=PaymentStatus.UNPAID)
        repo = MemoryOrderRepository([order])

        updated = await PaymentEventUseCase(repo).record_gateway_event(
            event(order.order_id, "failed")
        )

        assert updated.payment_status == PaymentStatus.FAILED
        assert updated.payment_info[0].status == PaymentGroupStatus.FAILED

    async def test_late_failure_on_paid_order_is_ignored(self) -> None:
        order = OrderFactory.build()
        repo = MemoryOrderRepository([order])

        updated = await PaymentEventUseCase(repo).record_gateway_event(
            event(order.order_id, "failed")
        )

        assert updated.payment_status == PaymentStatus.PAID
        assert repo.save_count == 0

    async def test_replayed_event_saves_nothing(self) -> None:
        order = OrderFactory.build()
        repo = MemoryOrderRepository([order])

        await PaymentEventUseCase(repo).record_gateway_event(
            event(order.order_id, "paid")
        )

        assert repo.save_count == 0

    async def test_cancelling_last_active_group_refunds_order(self) -> None:
        order = with_additional_group(OrderFactory.build())
        repo = MemoryOrderRepository([order])
        use_case = PaymentEventUseCase(repo)

        partial = await use_case.record_gateway_event(
            event(order.order_id, "cancelled", "imp_additional")
        )
        assert partial.payment_status == PaymentStatus.PAID
        assert partial.payment_group("imp_additional").cancelled_at == FIXED_NOW

        final = await use_case.record_gateway_event(
            event(order.order_id, "cancelled")
        )
        assert final.payment_status == PaymentStatus.REFUNDED

    async def test_unknown_transaction(self) -> None:
        order = OrderFactory.build()
        with pytest.raises(PaymentGroupNotFound):
            await PaymentEventUseCase(
                MemoryOrderRepository([order])
            ).record_gateway_event(event(order.order_id, "paid", "imp_other"))
