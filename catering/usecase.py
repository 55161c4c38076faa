"""
usecase logic must be clean, without direct dependencies.
dependencies are injected via repository instances.
"""

import logging
from datetime import datetime, tzinfo
from decimal import Decimal
from typing import Callable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from catering.domain import (
    CANCELLED_ORDER_STATUSES,
    Actor,
    ActorRole,
    AdditionalOrderRequest,
    CancellationResult,
    CancelOrderCommand,
    CheckoutItemRequest,
    CheckoutRequest,
    GatewayCancelOutcome,
    GatewayCancelRequest,
    GatewayEvent,
    GroupRefund,
    Order,
    OrderItem,
    OrderStatus,
    PaymentGroup,
    PaymentGroupStatus,
    PaymentStatus,
    TrackingInfo,
    utc_now,
)
from catering.errors import (
    ConcurrentOrderUpdate,
    GatewayCancellationFailed,
    InvalidTransition,
    OrderLifecycleError,
    OrderNotFound,
    PastCancellationWindow,
    PaymentGroupNotFound,
    PreconditionNotMet,
    Unauthorized,
)
from catering.ledger import PaymentLedger, PlannedRefund
from catering.locks import OrderLockRegistry
from catering.projections import (
    AdminView,
    BuyerBucket,
    OrderFilters,
    OrderView,
    SellerBucket,
    admin_view,
    buyer_view,
    seller_view,
)
from catering.refund_policy import (
    DEFAULT_ORDER_TIMEZONE,
    FULL_REFUND,
    NO_REFUND,
    refund_rate,
)
from catering.repositories import OrderRepository, PaymentGatewayRepository
from catering.state_machine import (
    advance,
    apply_payment_status,
    attach_tracking,
    check_transition,
    ensure_actor_owns,
    set_allow_additional_order,
)
from catering.validation import (
    ensure_order_repository,
    ensure_payment_gateway_repository,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
OrderMutation = Callable[[Order], Optional[Order]]

MAX_WRITE_ATTEMPTS = 5


def _to_items(
    requests: List[CheckoutItemRequest], payment_id: str, is_add_item: bool
) -> List[OrderItem]:
    return [
        OrderItem(
            product_id=item.product_id,
            product_name=item.product_name,
            quantity=item.quantity,
            price=item.price,
            item_price=item.item_price,
            options=item.options,
            discount=item.discount,
            is_add_item=is_add_item,
            payment_id=payment_id,
        )
        for item in requests
    ]


async def _load_order(order_repo: OrderRepository, order_id: str) -> Order:
    order = await order_repo.get_order(order_id)
    if order is None:
        logger.info(
            "Order not found",
            extra={"order_id": order_id, "debug_step": "order_lookup_missed"},
        )
        raise OrderNotFound(order_id)
    return order


async def _update_order(
    order_repo: OrderRepository,
    order_id: str,
    change: OrderMutation,
    attempts: int = MAX_WRITE_ATTEMPTS,
) -> Tuple[Order, bool]:
    """
    Read the order, apply ``change`` and save it unless another writer
    saved first, in which case the change is re-applied to the newer copy.

    ``change`` receives a private copy and returns the order to store, or
    None when there is nothing to write. Errors it raises propagate.

    Returns:
        The current order and whether this call wrote it
    """
    for attempt in range(1, attempts + 1):
        order = await _load_order(order_repo, order_id)
        updated = change(order.model_copy(deep=True))
        if updated is None:
            return order, False
        if await order_repo.save_order(updated):
            return updated.model_copy(update={"version": updated.version + 1}), True
        logger.info(
            "Order changed by another writer; re-reading",
            extra={
                "order_id": order_id,
                "attempt": attempt,
                "debug_step": "write_conflict",
            },
        )
    raise ConcurrentOrderUpdate(order_id)


def _cancel_group(payment_id: str, now: datetime) -> OrderMutation:
    def change(order: Order) -> Optional[Order]:
        group = order.payment_group(payment_id)
        if group is None or not group.is_active:
            return None
        PaymentLedger(order).mark_cancelled(payment_id, now)
        order.updated_at = now
        return order

    return change


class CancelOrderUseCase:
    """
    Cancels a whole order or a single payment group, refunding through the
    payment gateway.

    The use case runs unchanged in a Temporal workflow (with repository
    proxies that call activities and ``workflow.now`` as the clock) or
    directly in the API process.

    Preconditions are checked in a fixed order and nothing is written until
    all of them pass. Gateway calls are made one group at a time; each
    confirmed group is marked cancelled and saved before the next call, so a
    failure part-way leaves a consistent, partially cancelled order that a
    retry can finish.

    The lock registry only serialises callers in this process. Every write
    is a versioned read-modify-write, so additional orders and gateway
    events recorded elsewhere while refunds are running are kept, and their
    groups are refunded before the order changes status.
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        gateway_repo: PaymentGatewayRepository,
        locks: Optional[OrderLockRegistry] = None,
        clock: Clock = utc_now,
        timezone: Optional[tzinfo] = None,
    ) -> None:
        self.order_repo = ensure_order_repository(order_repo)
        self.gateway_repo = ensure_payment_gateway_repository(gateway_repo)
        self.locks = locks or OrderLockRegistry()
        self.clock = clock
        self.timezone = timezone or ZoneInfo(DEFAULT_ORDER_TIMEZONE)

    async def cancel_order(self, command: CancelOrderCommand) -> CancellationResult:
        """
        Cancel according to ``command``.

        Raises:
            OrderNotFound, PastCancellationWindow, PreconditionNotMet,
            PaymentGroupNotFound, Unauthorized, InvalidTransition: a
                precondition failed; nothing was changed
            GatewayCancellationFailed: the gateway refused a group; groups
                cancelled before it stay cancelled
        """
        logger.debug(
            "Starting order cancellation use case",
            extra={
                "order_id": command.order_id,
                "scope": command.scope.kind.value,
                "payment_id": command.scope.payment_id,
                "actor_role": command.actor.role.value,
                "debug_step": "use_case_entry",
            },
        )
        async with self.locks.hold(command.order_id):
            return await self._cancel_locked(command)

    async def try_cancel_order(
        self, command: CancelOrderCommand
    ) -> CancellationResult:
        """Like ``cancel_order`` but reports lifecycle errors in the result."""
        try:
            return await self.cancel_order(command)
        except GatewayCancellationFailed as e:
            return CancellationResult(
                order_id=command.order_id,
                scope=command.scope.kind,
                success=False,
                refund_amount=e.refunded_amount,
                cancelled_groups=[
                    GroupRefund(payment_id=pid, refund_amount=amount)
                    for pid, amount in e.cancelled.items()
                ],
                remaining_payment_ids=e.remaining,
                error=e.message,
                error_code=e.code,
            )
        except OrderLifecycleError as e:
            return CancellationResult(
                order_id=command.order_id,
                scope=command.scope.kind,
                success=False,
                error=e.message,
                error_code=e.code,
            )

    async def _cancel_locked(
        self, command: CancelOrderCommand
    ) -> CancellationResult:
        scope = command.scope
        order = await _load_order(self.order_repo, command.order_id)
        ledger = PaymentLedger(order)
        now = self.clock()

        if (
            scope.is_whole_order
            and order.order_status in CANCELLED_ORDER_STATUSES
            and not ledger.active_groups()
        ):
            logger.info(
                "Order already cancelled; nothing to refund",
                extra={
                    "order_id": order.order_id,
                    "order_status": order.order_status.value,
                    "debug_step": "already_cancelled",
                },
            )
            return self._no_op(order, command)

        rate, windowed = self._refund_terms(order, command, now)
        if windowed and rate == NO_REFUND:
            raise PastCancellationWindow(
                "The cancellation window for this order has passed",
                order_id=order.order_id,
                delivery_date=order.delivery_date.isoformat(),
            )

        reason = command.reason.strip()
        if not reason:
            raise PreconditionNotMet(
                "A cancellation reason is required", order_id=order.order_id
            )

        if not scope.is_whole_order:
            group = ledger.group(scope.payment_id or "")
            if group is None:
                raise PaymentGroupNotFound(order.order_id, scope.payment_id or "")
            if not group.is_active:
                logger.info(
                    "Payment group already cancelled",
                    extra={
                        "order_id": order.order_id,
                        "payment_id": group.payment_id,
                        "debug_step": "group_already_cancelled",
                    },
                )
                return self._no_op(order, command)
            if group.carries_delivery_fee:
                raise PreconditionNotMet(
                    "The checkout payment can only be cancelled together "
                    "with the whole order",
                    order_id=order.order_id,
                    payment_id=group.payment_id,
                )

        target = self._authorize(order, command)
        if target is not None:
            check_transition(order, target, command.actor)

        refunds: List[GroupRefund] = []
        await self._execute_plan(
            order.order_id, ledger.plan(scope, rate), command, reason, now, refunds
        )
        if target is not None:
            order = await self._finish_whole_order(
                order.order_id, target, command, reason, rate, now, refunds
            )

        result = CancellationResult(
            order_id=order.order_id,
            scope=scope.kind,
            success=True,
            refund_amount=sum(r.refund_amount for r in refunds),
            refund_rate=rate,
            order_status=order.order_status,
            cancelled_groups=refunds,
        )
        logger.info(
            "Order cancellation completed",
            extra={
                "order_id": order.order_id,
                "scope": scope.kind.value,
                "refund_amount": result.refund_amount,
                "refund_rate": str(rate),
                "order_status": order.order_status.value,
                "debug_step": "use_case_complete",
            },
        )
        return result

    def _refund_terms(
        self, order: Order, command: CancelOrderCommand, now: datetime
    ) -> Tuple[Decimal, bool]:
        """Rate to apply, and whether the cancellation window governs it.

        Only a buyer cancelling the whole order after the seller accepted it
        is subject to the time-based rate; rejections, cancellations before
        acceptance and single-group cancellations refund in full.
        """
        if (
            command.scope.is_whole_order
            and command.actor.role == ActorRole.BUYER
            and order.order_status in (OrderStatus.PREPARING, OrderStatus.SHIPPING)
        ):
            return refund_rate(order.delivery_date, now, self.timezone), True
        return FULL_REFUND, False

    def _authorize(
        self, order: Order, command: CancelOrderCommand
    ) -> Optional[OrderStatus]:
        """Check the actor may cancel, returning the status to move to."""
        actor = command.actor
        if actor.role == ActorRole.SYSTEM:
            raise Unauthorized(
                "Orders cannot be cancelled by the system",
                order_id=order.order_id,
            )
        ensure_actor_owns(order, actor)
        if order.is_terminal:
            raise InvalidTransition(
                f"Order {order.order_id} is already "
                f"{order.order_status.value}",
                order_id=order.order_id,
            )
        if not command.scope.is_whole_order:
            return None

        if actor.role == ActorRole.BUYER:
            if order.order_status == OrderStatus.PENDING:
                return OrderStatus.CANCELLED_BEFORE_ACCEPT
            if not command.acknowledge_refund_policy:
                raise PreconditionNotMet(
                    "The refund policy must be acknowledged before "
                    "cancelling an accepted order",
                    order_id=order.order_id,
                )
            return OrderStatus.CANCELLED

        if order.order_status == OrderStatus.SHIPPING:
            raise Unauthorized(
                "Orders that have shipped can only be cancelled by the buyer",
                order_id=order.order_id,
            )
        return OrderStatus.REJECTED

    async def _execute_plan(
        self,
        order_id: str,
        plan: List[PlannedRefund],
        command: CancelOrderCommand,
        reason: str,
        now: datetime,
        refunds: List[GroupRefund],
    ) -> None:
        """Request each planned refund in turn, recording confirmed groups.

        Each group is marked cancelled on a freshly read copy of the order,
        so writes made by others since the cancellation started survive.
        """
        for position, step in enumerate(plan):
            if step.requires_gateway:
                outcome = await self._request_gateway_cancel(
                    order_id, step, command, reason
                )
                if not outcome.success:
                    remaining = [p.payment_id for p in plan[position:]]
                    logger.error(
                        "Gateway refused cancellation; halting",
                        extra={
                            "order_id": order_id,
                            "payment_id": step.payment_id,
                            "remaining": remaining,
                            "gateway_error": outcome.error,
                            "debug_step": "gateway_cancel_failed",
                        },
                    )
                    raise GatewayCancellationFailed(
                        outcome.error or "Payment gateway refused the cancellation",
                        failed_payment_id=step.payment_id,
                        remaining=remaining,
                        cancelled={r.payment_id: r.refund_amount for r in refunds},
                    )

            await _update_order(
                self.order_repo, order_id, _cancel_group(step.payment_id, now)
            )
            refunds.append(
                GroupRefund(
                    payment_id=step.payment_id,
                    refund_amount=step.refund_amount,
                    gateway_called=step.requires_gateway,
                )
            )
            logger.debug(
                "Payment group cancelled",
                extra={
                    "order_id": order_id,
                    "payment_id": step.payment_id,
                    "refund_amount": step.refund_amount,
                    "includes_delivery_fee": step.includes_delivery_fee,
                    "debug_step": "group_cancelled",
                },
            )

    async def _finish_whole_order(
        self,
        order_id: str,
        target: OrderStatus,
        command: CancelOrderCommand,
        reason: str,
        rate: Decimal,
        now: datetime,
        refunds: List[GroupRefund],
    ) -> Order:
        """
        Move the order to its cancelled status once no group is active.

        Groups recorded while the refunds were running (an additional order
        placed from another process) are refunded at the same rate before
        the status changes.
        """
        conflicts = 0
        while True:
            order = await _load_order(self.order_repo, order_id)
            late = PaymentLedger(order).plan(command.scope, rate)
            if late:
                logger.warning(
                    "Payment groups recorded during cancellation",
                    extra={
                        "order_id": order_id,
                        "payment_ids": [p.payment_id for p in late],
                        "debug_step": "late_groups",
                    },
                )
                await self._execute_plan(
                    order_id, late, command, reason, now, refunds
                )
                continue

            finished = advance(order, target, command.actor, reason=reason, now=now)
            if finished.payment_status == PaymentStatus.PAID:
                finished = apply_payment_status(finished, PaymentStatus.REFUNDED)
            if await self.order_repo.save_order(finished):
                return finished.model_copy(update={"version": finished.version + 1})
            conflicts += 1
            if conflicts >= MAX_WRITE_ATTEMPTS:
                raise ConcurrentOrderUpdate(order_id)
            logger.info(
                "Order changed before final status; re-reading",
                extra={
                    "order_id": order_id,
                    "attempt": conflicts,
                    "debug_step": "write_conflict",
                },
            )

    async def _request_gateway_cancel(
        self,
        order_id: str,
        step: PlannedRefund,
        command: CancelOrderCommand,
        reason: str,
    ) -> GatewayCancelOutcome:
        request = GatewayCancelRequest(
            order_id=order_id,
            transaction_id=step.payment_id,
            reason=reason,
            refund_amount=step.refund_amount,
            checksum=step.charge,
            is_partial=not command.scope.is_whole_order,
            is_partner_cancel=command.actor.role
            in (ActorRole.SELLER, ActorRole.ADMIN),
        )
        try:
            return await self.gateway_repo.cancel_payment(request)
        except Exception as e:
            logger.error(
                "Gateway cancellation raised",
                extra={
                    "order_id": order_id,
                    "payment_id": step.payment_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "debug_step": "gateway_cancel_exception",
                },
                exc_info=True,
            )
            return GatewayCancelOutcome(
                success=False, error=str(e) or type(e).__name__
            )

    def _no_op(self, order: Order, command: CancelOrderCommand) -> CancellationResult:
        return CancellationResult(
            order_id=order.order_id,
            scope=command.scope.kind,
            success=True,
            refund_amount=0,
            refund_rate=FULL_REFUND,
            order_status=order.order_status,
            no_op=True,
        )


class AdvanceOrderUseCase:
    """Status advancement, purchase confirmation and seller-side toggles."""

    def __init__(
        self,
        order_repo: OrderRepository,
        locks: Optional[OrderLockRegistry] = None,
        clock: Clock = utc_now,
    ) -> None:
        self.order_repo = ensure_order_repository(order_repo)
        self.locks = locks or OrderLockRegistry()
        self.clock = clock

    async def advance_order(
        self,
        order_id: str,
        target: OrderStatus,
        actor: Actor,
        tracking: Optional[TrackingInfo] = None,
        reason: Optional[str] = None,
    ) -> Order:
        """
        Move an order along its fulfilment path.

        Cancellation statuses are not reachable here: they involve refunds
        and go through ``CancelOrderUseCase``.
        """
        if target in CANCELLED_ORDER_STATUSES:
            raise PreconditionNotMet(
                f"Orders reach {target.value} through cancellation, which "
                "refunds the payment",
                order_id=order_id,
            )
        async with self.locks.hold(order_id):
            now = self.clock()
            updated, _ = await _update_order(
                self.order_repo,
                order_id,
                lambda order: advance(
                    order, target, actor, tracking=tracking, reason=reason, now=now
                ),
            )
            return updated

    async def confirm_purchase(self, order_id: str, actor: Actor) -> Order:
        """Buyer confirms receipt of a shipped order."""
        if actor.role != ActorRole.BUYER:
            raise Unauthorized(
                "Only the buyer may confirm a purchase", order_id=order_id
            )
        return await self.advance_order(order_id, OrderStatus.COMPLETED, actor)

    async def auto_complete(self, order_id: str) -> Optional[Order]:
        """
        Complete a shipped order on the buyer's behalf.

        Returns None without changes when the order is not shipping (already
        completed, cancelled or not yet sent).
        """
        now = self.clock()

        def complete(order: Order) -> Optional[Order]:
            if order.order_status != OrderStatus.SHIPPING:
                return None
            return advance(order, OrderStatus.COMPLETED, Actor.system(), now=now)

        async with self.locks.hold(order_id):
            order, completed = await _update_order(
                self.order_repo, order_id, complete
            )
        if not completed:
            logger.info(
                "Skipping auto-completion",
                extra={
                    "order_id": order_id,
                    "order_status": order.order_status.value,
                    "debug_step": "auto_complete_skipped",
                },
            )
            return None
        return order

    async def set_allow_additional_order(
        self, order_id: str, allowed: bool, actor: Actor
    ) -> Order:
        async with self.locks.hold(order_id):
            now = self.clock()
            updated, _ = await _update_order(
                self.order_repo,
                order_id,
                lambda order: set_allow_additional_order(order, allowed, actor, now),
            )
            logger.info(
                "Additional-order access changed",
                extra={"order_id": order_id, "allowed": allowed},
            )
            return updated

    async def attach_tracking(
        self, order_id: str, tracking: TrackingInfo, actor: Actor
    ) -> Order:
        async with self.locks.hold(order_id):
            now = self.clock()
            updated, _ = await _update_order(
                self.order_repo,
                order_id,
                lambda order: attach_tracking(order, tracking, actor, now),
            )
            return updated


class AdditionalOrderUseCase:
    """Records a confirmed additional purchase as a new payment group."""

    def __init__(
        self,
        order_repo: OrderRepository,
        locks: Optional[OrderLockRegistry] = None,
    ) -> None:
        self.order_repo = ensure_order_repository(order_repo)
        self.locks = locks or OrderLockRegistry()

    async def add_additional_order(
        self, order_id: str, request: AdditionalOrderRequest, actor: Actor
    ) -> Order:
        """
        Append the additional charge and its items to the order.

        Recording the same gateway transaction twice returns the order
        unchanged.

        Raises:
            OrderNotFound: no such order
            Unauthorized: actor is not the order's buyer
            PreconditionNotMet: order not being prepared, or additional
                orders are not open
        """

        def record(order: Order) -> Optional[Order]:
            if actor.role != ActorRole.BUYER:
                raise Unauthorized(
                    "Only the buyer may place an additional order",
                    order_id=order_id,
                )
            ensure_actor_owns(order, actor)
            if order.payment_group(request.payment_id) is not None:
                logger.info(
                    "Additional order already recorded",
                    extra={
                        "order_id": order_id,
                        "payment_id": request.payment_id,
                        "debug_step": "duplicate_additional_order",
                    },
                )
                return None
            if order.order_status != OrderStatus.PREPARING:
                raise PreconditionNotMet(
                    "Additional orders are only accepted while the order is "
                    "being prepared",
                    order_id=order_id,
                )
            if not order.allow_additional_order:
                raise PreconditionNotMet(
                    "The seller has not opened this order for additional "
                    "orders",
                    order_id=order_id,
                )
            PaymentLedger(order).append_group(
                request.payment_id,
                _to_items(request.items, request.payment_id, is_add_item=True),
                point_amount=request.point_amount,
                paid_at=request.paid_at,
            )
            order.updated_at = utc_now()
            return order

        async with self.locks.hold(order_id):
            updated, recorded = await _update_order(
                self.order_repo, order_id, record
            )
        if recorded:
            group = updated.payment_group(request.payment_id)
            logger.info(
                "Additional order recorded",
                extra={
                    "order_id": order_id,
                    "payment_id": request.payment_id,
                    "amount": group.amount if group is not None else None,
                    "group_count": len(updated.payment_info),
                },
            )
        return updated


class PaymentEventUseCase:
    """Applies asynchronous gateway notifications to orders."""

    def __init__(
        self,
        order_repo: OrderRepository,
        locks: Optional[OrderLockRegistry] = None,
    ) -> None:
        self.order_repo = ensure_order_repository(order_repo)
        self.locks = locks or OrderLockRegistry()

    async def record_gateway_event(self, event: GatewayEvent) -> Order:
        """
        Apply a gateway notification. Replaying an event is harmless.

        - paid: a failed group becomes paid; an unpaid or failed order
          becomes paid
        - failed: only an unpaid order (and its group) becomes failed
        - cancelled: the group becomes cancelled; once every group is,
          a paid order becomes refunded
        """
        def apply(order: Order) -> Optional[Order]:
            updated = order.model_copy(deep=True)
            group = updated.payment_group(event.transaction_id)
            if group is None:
                raise PaymentGroupNotFound(event.order_id, event.transaction_id)

            if event.status == "paid":
                if group.status == PaymentGroupStatus.FAILED:
                    group.status = PaymentGroupStatus.PAID
                if updated.payment_status in (PaymentStatus.UNPAID, PaymentStatus.FAILED):
                    updated = apply_payment_status(updated, PaymentStatus.PAID)
            elif event.status == "failed":
                if updated.payment_status == PaymentStatus.UNPAID:
                    if group.status == PaymentGroupStatus.PAID:
                        group.status = PaymentGroupStatus.FAILED
                    updated = apply_payment_status(updated, PaymentStatus.FAILED)
                else:
                    logger.info(
                        "Ignoring failure notice for a settled order",
                        extra={
                            "order_id": order.order_id,
                            "payment_id": event.transaction_id,
                            "payment_status": updated.payment_status.value,
                        },
                    )
            else:
                ledger = PaymentLedger(updated)
                ledger.mark_cancelled(event.transaction_id, event.occurred_at)
                if (
                    not ledger.active_groups()
                    and updated.payment_status == PaymentStatus.PAID
                ):
                    updated = apply_payment_status(updated, PaymentStatus.REFUNDED)

            if updated == order:
                return None
            updated.updated_at = utc_now()
            return updated

        async with self.locks.hold(event.order_id):
            updated, _ = await _update_order(self.order_repo, event.order_id, apply)
        logger.info(
            "Gateway event applied",
            extra={
                "order_id": event.order_id,
                "payment_id": event.transaction_id,
                "event_status": event.status,
                "payment_status": updated.payment_status.value,
            },
        )
        return updated


class PlaceOrderUseCase:
    """Creates the order document for a completed checkout."""

    def __init__(self, order_repo: OrderRepository) -> None:
        self.order_repo = ensure_order_repository(order_repo)

    async def place_order(self, request: CheckoutRequest) -> Order:
        order_id = await self.order_repo.generate_order_id()
        items = _to_items(request.items, request.payment_id, is_add_item=False)
        items_total = sum(item.line_total for item in items)
        paid = request.payment_result == "paid"
        group = PaymentGroup(
            payment_id=request.payment_id,
            amount=max(items_total + request.delivery_fee - request.point_amount, 0),
            status=PaymentGroupStatus.PAID if paid else PaymentGroupStatus.FAILED,
            point_amount=request.point_amount,
            carries_delivery_fee=True,
        )
        order = Order(
            order_id=order_id,
            buyer_id=request.buyer_id,
            store_id=request.store_id,
            store_name=request.store_name,
            items=items,
            order_status=OrderStatus.PENDING,
            payment_status=PaymentStatus.PAID if paid else PaymentStatus.FAILED,
            delivery=request.delivery,
            delivery_date=request.delivery_date,
            delivery_time=request.delivery_time,
            delivery_fee=request.delivery_fee,
            payment_info=[group],
        )
        if not await self.order_repo.save_order(order):
            raise ConcurrentOrderUpdate(order_id)
        order = order.model_copy(update={"version": order.version + 1})
        logger.info(
            "Order placed",
            extra={
                "order_id": order_id,
                "store_id": order.store_id,
                "amount": group.amount,
                "payment_status": order.payment_status.value,
            },
        )
        return order


class GetOrderUseCase:
    def __init__(self, order_repo: OrderRepository) -> None:
        self.order_repo = ensure_order_repository(order_repo)

    async def get_order(self, order_id: str, actor: Optional[Actor] = None) -> Order:
        order = await _load_order(self.order_repo, order_id)
        if actor is not None and actor.role in (ActorRole.BUYER, ActorRole.SELLER):
            ensure_actor_owns(order, actor)
        return order


class OrderViewsUseCase:
    """Role-scoped listings over the whole order collection."""

    def __init__(self, order_repo: OrderRepository) -> None:
        self.order_repo = ensure_order_repository(order_repo)

    async def buyer_orders(
        self, buyer_id: str, bucket: BuyerBucket = BuyerBucket.ALL
    ) -> OrderView:
        return buyer_view(await self.order_repo.list_orders(), buyer_id, bucket)

    async def seller_orders(
        self,
        store_id: str,
        bucket: SellerBucket = SellerBucket.ALL,
        filters: Optional[OrderFilters] = None,
    ) -> OrderView:
        return seller_view(
            await self.order_repo.list_orders(), store_id, bucket, filters
        )

    async def admin_orders(
        self,
        bucket: SellerBucket = SellerBucket.ALL,
        filters: Optional[OrderFilters] = None,
    ) -> AdminView:
        return admin_view(await self.order_repo.list_orders(), bucket, filters)
