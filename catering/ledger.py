"""
Payment ledger: the queries and mutations over an order's payment groups.

The ledger is a thin view over an ``Order``. Groups are kept in creation
order, so the first entry is the checkout charge and later entries are
additional orders.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel

from catering.domain import (
    CancellationScope,
    Order,
    OrderItem,
    PaymentGroup,
    PaymentGroupStatus,
    utc_now,
)
from catering.errors import PaymentGroupNotFound
from catering.refund_policy import FULL_REFUND, refund_amount

logger = logging.getLogger(__name__)


class PlannedRefund(BaseModel):
    """One gateway cancellation the orchestrator intends to make."""

    payment_id: str
    charge: int
    refund_amount: int
    includes_delivery_fee: bool = False
    requires_gateway: bool = True


class PaymentLedger:
    def __init__(self, order: Order) -> None:
        self.order = order

    @property
    def groups(self) -> List[PaymentGroup]:
        return list(self.order.payment_info)

    def group(self, payment_id: str) -> Optional[PaymentGroup]:
        return self.order.payment_group(payment_id)

    def require_group(self, payment_id: str) -> PaymentGroup:
        group = self.group(payment_id)
        if group is None:
            raise PaymentGroupNotFound(self.order.order_id, payment_id)
        return group

    def active_groups(self) -> List[PaymentGroup]:
        """Groups not yet cancelled, oldest first."""
        return [g for g in self.order.payment_info if g.is_active]

    def items_of(self, group: PaymentGroup) -> List[OrderItem]:
        return self.order.items_for(group.payment_id)

    def items_total(self, group: PaymentGroup) -> int:
        return sum(item.line_total for item in self.items_of(group))

    def fee_carrier(self) -> Optional[PaymentGroup]:
        for group in self.order.payment_info:
            if group.carries_delivery_fee:
                return group
        return None

    def group_charge(self, group: PaymentGroup) -> int:
        """What the gateway collected for ``group``: items, fee, minus points."""
        charge = self.items_total(group)
        if group.carries_delivery_fee:
            charge += self.order.delivery_fee
        return max(charge - group.point_amount, 0)

    def effective_total(self) -> int:
        """Charge still standing across every active group."""
        return sum(self.group_charge(g) for g in self.active_groups())

    def recorded_total(self) -> int:
        return sum(g.amount for g in self.active_groups())

    def is_consistent(self) -> bool:
        """Recorded group amounts agree with the item-derived charges."""
        return self.recorded_total() == self.effective_total()

    def refundable_amount(self, scope: CancellationScope) -> int:
        """
        Full-rate refund target for ``scope``.

        For the whole order this is every active group's item total plus
        the delivery fee once (on whichever active group carries it). For a
        single group it is that group's items only; a cancelled group has
        nothing left to refund.
        """
        if scope.is_whole_order:
            return self.effective_total()
        group = self.require_group(scope.payment_id or "")
        if not group.is_active:
            return 0
        return max(self.items_total(group) - group.point_amount, 0)

    def plan(
        self, scope: CancellationScope, rate: Decimal = FULL_REFUND
    ) -> List[PlannedRefund]:
        """
        Per-group refunds, in the order they must be requested.

        The refund for the whole scope is ``floor(target * rate)`` over the
        charges actually collected. Each group gets its own floored share
        and the won lost to per-group truncation goes to the first groups
        processed (the checkout charge, when it is still active), so the
        requests add up to exactly the scope refund.
        """
        if scope.is_whole_order:
            targets = self.active_groups()
        else:
            group = self.require_group(scope.payment_id or "")
            targets = [group] if group.is_active else []

        planned = []
        for group in targets:
            if scope.is_whole_order:
                charge = self.group_charge(group)
                includes_fee = group.carries_delivery_fee
            else:
                charge = self.refundable_amount(scope)
                includes_fee = False
            # a failed charge was never collected
            collected = group.status == PaymentGroupStatus.PAID
            planned.append(
                PlannedRefund(
                    payment_id=group.payment_id,
                    charge=charge,
                    refund_amount=refund_amount(charge, rate) if collected else 0,
                    includes_delivery_fee=includes_fee,
                    requires_gateway=collected,
                )
            )

        total = refund_amount(
            sum(p.charge for p in planned if p.requires_gateway), rate
        )
        remainder = total - sum(p.refund_amount for p in planned)
        for step in planned:
            if remainder <= 0:
                break
            if not step.requires_gateway:
                continue
            extra = min(remainder, step.charge - step.refund_amount)
            step.refund_amount += extra
            remainder -= extra

        logger.debug(
            "Cancellation plan computed",
            extra={
                "order_id": self.order.order_id,
                "scope": scope.kind.value,
                "rate": str(rate),
                "group_count": len(planned),
                "refund_total": total,
            },
        )
        return planned

    def append_group(
        self,
        payment_id: str,
        items: List[OrderItem],
        point_amount: int = 0,
        paid_at: Optional[datetime] = None,
    ) -> PaymentGroup:
        """
        Record an additional charge and its items on the order.

        Additional groups never carry the delivery fee.
        """
        if self.group(payment_id) is not None:
            raise ValueError(
                f"Payment group {payment_id} already exists on order "
                f"{self.order.order_id}"
            )
        items_total = sum(item.line_total for item in items)
        group = PaymentGroup(
            payment_id=payment_id,
            amount=max(items_total - point_amount, 0),
            status=PaymentGroupStatus.PAID,
            point_amount=point_amount,
            carries_delivery_fee=False,
            paid_at=paid_at or utc_now(),
        )
        self.order.payment_info.append(group)
        self.order.items.extend(
            item.model_copy(update={"payment_id": payment_id, "is_add_item": True})
            for item in items
        )
        return group

    def mark_cancelled(
        self, payment_id: str, cancelled_at: Optional[datetime] = None
    ) -> PaymentGroup:
        group = self.require_group(payment_id)
        if group.status != PaymentGroupStatus.CANCELLED:
            group.status = PaymentGroupStatus.CANCELLED
            group.cancelled_at = cancelled_at or utc_now()
        return group
