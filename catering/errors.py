"""
Error taxonomy for the order lifecycle.

Every error carries a stable machine-readable ``code`` so that callers on
the far side of a workflow or HTTP boundary can tell them apart without
parsing messages.
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence, Type


class OrderLifecycleError(Exception):
    """Base class for every business-rule failure."""

    code = "order_lifecycle_error"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context


class InvalidTransition(OrderLifecycleError):
    """Target status is not reachable from the current status for the actor."""

    code = "invalid_transition"


class PreconditionNotMet(OrderLifecycleError):
    code = "precondition_not_met"


class PastCancellationWindow(OrderLifecycleError):
    code = "past_cancellation_window"


class Unauthorized(OrderLifecycleError):
    code = "unauthorized"


class OrderNotFound(OrderLifecycleError):
    code = "order_not_found"

    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order {order_id} not found", order_id=order_id)
        self.order_id = order_id


class PaymentGroupNotFound(OrderLifecycleError):
    code = "payment_group_not_found"

    def __init__(self, order_id: str, payment_id: str) -> None:
        super().__init__(
            f"Payment group {payment_id} not found on order {order_id}",
            order_id=order_id,
            payment_id=payment_id,
        )
        self.order_id = order_id
        self.payment_id = payment_id


class GatewayCancellationFailed(OrderLifecycleError):
    """
    The gateway refused (or could not be reached for) one cancellation.

    Groups cancelled before the failure stay cancelled; ``remaining``
    lists the groups that are still active and would be processed by a
    retry.
    """

    code = "gateway_cancellation_failed"

    def __init__(
        self,
        message: str,
        failed_payment_id: str,
        remaining: Sequence[str] = (),
        cancelled: Optional[Mapping[str, int]] = None,
    ) -> None:
        super().__init__(
            message,
            failed_payment_id=failed_payment_id,
            remaining=list(remaining),
        )
        self.failed_payment_id = failed_payment_id
        self.remaining: List[str] = list(remaining)
        # payment id -> amount refunded before the failure
        self.cancelled: Dict[str, int] = dict(cancelled or {})

    @property
    def refunded_amount(self) -> int:
        return sum(self.cancelled.values())


class ConcurrentOrderUpdate(OrderLifecycleError):
    """Other writers kept changing the order; the update was not applied."""

    code = "concurrent_update"

    def __init__(self, order_id: str) -> None:
        super().__init__(
            f"Order {order_id} was changed by another request; try again",
            order_id=order_id,
        )
        self.order_id = order_id


class CancellationInProgress(OrderLifecycleError):
    """A different cancellation of the same order is still running."""

    code = "cancellation_in_progress"


ERROR_TYPES: Dict[str, Type[OrderLifecycleError]] = {
    cls.code: cls
    for cls in (
        InvalidTransition,
        PreconditionNotMet,
        PastCancellationWindow,
        Unauthorized,
        OrderNotFound,
        PaymentGroupNotFound,
        GatewayCancellationFailed,
        ConcurrentOrderUpdate,
        CancellationInProgress,
    )
}


def error_type_for_code(
    code: Optional[str],
) -> Optional[Type[OrderLifecycleError]]:
    if code is None:
        return None
    return ERROR_TYPES.get(code)
