"""
Pydantic models for API responses.
These define the contract between the API and external clients.
"""

from typing import List, Optional

from pydantic import BaseModel

from catering.domain import (
    CancellationResult,
    Order,
    OrderStatus,
    PaymentStatus,
)


class HealthCheckResponse(BaseModel):
    status: str
    version: str


class OperationResponse(BaseModel):
    """Common envelope: ``success`` plus the raw reason when it failed."""

    success: bool
    error: Optional[str] = None
    error_code: Optional[str] = None


class StatusUpdateResponse(OperationResponse):
    order_id: str
    order_status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None

    @classmethod
    def from_order(cls, order: Order) -> "StatusUpdateResponse":
        return cls(
            success=True,
            order_id=order.order_id,
            order_status=order.order_status,
            payment_status=order.payment_status,
        )


class CancellationResponse(OperationResponse):
    order_id: str
    refund_amount: Optional[int] = None
    refund_rate: Optional[float] = None
    order_status: Optional[OrderStatus] = None
    cancelled_payment_ids: List[str] = []
    remaining_payment_ids: List[str] = []
    already_cancelled: bool = False

    @classmethod
    def from_result(cls, result: CancellationResult) -> "CancellationResponse":
        return cls(
            success=result.success,
            error=result.error,
            error_code=result.error_code,
            order_id=result.order_id,
            refund_amount=result.refund_amount,
            refund_rate=float(result.refund_rate) if result.success else None,
            order_status=result.order_status,
            cancelled_payment_ids=[g.payment_id for g in result.cancelled_groups],
            remaining_payment_ids=result.remaining_payment_ids,
            already_cancelled=result.no_op,
        )


class WebhookResponse(OperationResponse):
    ignored: bool = False
