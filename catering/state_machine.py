"""
Order and payment status transitions.

``check_transition`` validates without touching the order. ``advance``
validates and then applies the transition together with its side effects
(completion stamps, cancellation reason, tracking details).
"""

import logging
from datetime import datetime
from typing import Dict, FrozenSet, Optional, Tuple

from catering.domain import (
    CANCELLED_ORDER_STATUSES,
    Actor,
    ActorRole,
    ConfirmationType,
    DeliveryMethod,
    Order,
    OrderStatus,
    ParcelDelivery,
    PaymentStatus,
    TrackingInfo,
    utc_now,
)
from catering.errors import (
    InvalidTransition,
    PreconditionNotMet,
    Unauthorized,
)

logger = logging.getLogger(__name__)

_SELLER_SIDE = frozenset({ActorRole.SELLER, ActorRole.ADMIN})

ORDER_TRANSITIONS: Dict[Tuple[OrderStatus, OrderStatus], FrozenSet[ActorRole]] = {
    (OrderStatus.PENDING, OrderStatus.PREPARING): _SELLER_SIDE,
    (OrderStatus.PREPARING, OrderStatus.SHIPPING): _SELLER_SIDE,
    (OrderStatus.SHIPPING, OrderStatus.COMPLETED): frozenset(
        {ActorRole.BUYER, ActorRole.SYSTEM, ActorRole.ADMIN}
    ),
    (OrderStatus.PENDING, OrderStatus.REJECTED): _SELLER_SIDE,
    (OrderStatus.PREPARING, OrderStatus.REJECTED): _SELLER_SIDE,
    (OrderStatus.PENDING, OrderStatus.CANCELLED_BEFORE_ACCEPT): frozenset(
        {ActorRole.BUYER}
    ),
    (OrderStatus.PREPARING, OrderStatus.CANCELLED): frozenset({ActorRole.BUYER}),
    (OrderStatus.SHIPPING, OrderStatus.CANCELLED): frozenset({ActorRole.BUYER}),
}

PAYMENT_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.UNPAID: frozenset({PaymentStatus.PAID, PaymentStatus.FAILED}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.PAID}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.REFUNDED: frozenset(),
}


def allowed_targets(status: OrderStatus, role: ActorRole) -> FrozenSet[OrderStatus]:
    return frozenset(
        target
        for (source, target), roles in ORDER_TRANSITIONS.items()
        if source == status and role in roles
    )


def ensure_actor_owns(order: Order, actor: Actor) -> None:
    """Buyers act on their own orders, sellers on their own store's."""
    if actor.role == ActorRole.BUYER and actor.id != order.buyer_id:
        raise Unauthorized(
            f"Buyer {actor.id} does not own order {order.order_id}",
            order_id=order.order_id,
        )
    if actor.role == ActorRole.SELLER and actor.id != order.store_id:
        raise Unauthorized(
            f"Store {actor.id} does not own order {order.order_id}",
            order_id=order.order_id,
        )


def check_transition(
    order: Order,
    target: OrderStatus,
    actor: Actor,
    tracking: Optional[TrackingInfo] = None,
) -> None:
    """
    Validate that ``actor`` may move ``order`` to ``target``.

    Raises:
        InvalidTransition: target unreachable from the current status, or
            not reachable for the actor's role
        Unauthorized: actor does not own the order
        PreconditionNotMet: acceptance of an unpaid order, or parcel
            shipping without tracking details
    """
    key = (order.order_status, target)
    if key not in ORDER_TRANSITIONS:
        raise InvalidTransition(
            f"Cannot move order {order.order_id} from "
            f"{order.order_status.value} to {target.value}",
            order_id=order.order_id,
        )
    if actor.role not in ORDER_TRANSITIONS[key]:
        raise InvalidTransition(
            f"Role {actor.role.value} cannot move order {order.order_id} "
            f"from {order.order_status.value} to {target.value}",
            order_id=order.order_id,
        )
    ensure_actor_owns(order, actor)

    if target == OrderStatus.PREPARING:
        if order.payment_status != PaymentStatus.PAID:
            raise PreconditionNotMet(
                f"Order {order.order_id} cannot be accepted before payment "
                "is confirmed",
                order_id=order.order_id,
            )
    if target == OrderStatus.SHIPPING:
        if tracking is not None and order.delivery_method != DeliveryMethod.PARCEL:
            raise PreconditionNotMet(
                "Tracking details apply to parcel delivery only",
                order_id=order.order_id,
            )
        if order.delivery_method == DeliveryMethod.PARCEL:
            has_tracking = tracking is not None or (
                isinstance(order.delivery, ParcelDelivery)
                and order.delivery.has_tracking
            )
            if not has_tracking:
                raise PreconditionNotMet(
                    "Parcel orders need a carrier and tracking number "
                    "before shipping",
                    order_id=order.order_id,
                )


def advance(
    order: Order,
    target: OrderStatus,
    actor: Actor,
    tracking: Optional[TrackingInfo] = None,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Order:
    """Validate and apply a status transition, returning the updated order."""
    check_transition(order, target, actor, tracking)
    now = now or utc_now()
    previous = order.order_status

    updated = order.model_copy(deep=True)
    updated.order_status = target
    updated.updated_at = now

    if target == OrderStatus.SHIPPING and tracking is not None:
        updated.delivery = ParcelDelivery(
            carrier=tracking.carrier,
            tracking_number=tracking.tracking_number,
        )
    if target == OrderStatus.COMPLETED:
        updated.confirmed_at = now
        updated.confirmation_type = (
            ConfirmationType.AUTO
            if actor.role == ActorRole.SYSTEM
            else ConfirmationType.MANUAL
        )
        updated.review_eligible = True
    if target != OrderStatus.PREPARING:
        # the flag only means something while the order is being prepared
        updated.allow_additional_order = False
    if target in CANCELLED_ORDER_STATUSES:
        updated.cancel_reason = reason
        updated.cancelled_at = now

    logger.info(
        "Order status advanced",
        extra={
            "order_id": order.order_id,
            "from_status": previous.value,
            "to_status": target.value,
            "actor_role": actor.role.value,
        },
    )
    return updated


def apply_payment_status(order: Order, target: PaymentStatus) -> Order:
    """
    Move the order's aggregate payment status.

    Re-applying the current status is a no-op so that duplicate gateway
    notifications are harmless.
    """
    if order.payment_status == target:
        return order
    if target not in PAYMENT_TRANSITIONS[order.payment_status]:
        raise InvalidTransition(
            f"Cannot move payment of order {order.order_id} from "
            f"{order.payment_status.value} to {target.value}",
            order_id=order.order_id,
        )
    updated = order.model_copy(deep=True)
    updated.payment_status = target
    updated.updated_at = utc_now()
    return updated


def set_allow_additional_order(
    order: Order,
    allowed: bool,
    actor: Actor,
    now: Optional[datetime] = None,
) -> Order:
    if actor.role not in _SELLER_SIDE:
        raise Unauthorized(
            "Only the seller or an admin may change additional-order access",
            order_id=order.order_id,
        )
    ensure_actor_owns(order, actor)
    if order.order_status != OrderStatus.PREPARING:
        raise PreconditionNotMet(
            "Additional orders can only be opened while the order is "
            "being prepared",
            order_id=order.order_id,
        )
    updated = order.model_copy(deep=True)
    updated.allow_additional_order = allowed
    updated.updated_at = now or utc_now()
    return updated


def attach_tracking(
    order: Order,
    tracking: TrackingInfo,
    actor: Actor,
    now: Optional[datetime] = None,
) -> Order:
    """Record (or correct) the carrier and tracking number of a parcel order."""
    if actor.role not in _SELLER_SIDE:
        raise Unauthorized(
            "Only the seller or an admin may attach tracking details",
            order_id=order.order_id,
        )
    ensure_actor_owns(order, actor)
    if order.delivery_method != DeliveryMethod.PARCEL:
        raise PreconditionNotMet(
            "Tracking details apply to parcel delivery only",
            order_id=order.order_id,
        )
    if order.order_status not in (OrderStatus.PREPARING, OrderStatus.SHIPPING):
        raise PreconditionNotMet(
            "Tracking details can only be attached to orders being "
            "prepared or shipped",
            order_id=order.order_id,
        )
    updated = order.model_copy(deep=True)
    updated.delivery = ParcelDelivery(
        carrier=tracking.carrier, tracking_number=tracking.tracking_number
    )
    updated.updated_at = now or utc_now()
    return updated
