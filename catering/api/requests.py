"""
Pydantic models for API requests.
These define the contract between the API and external clients.
"""

from typing import Optional

from pydantic import BaseModel, Field

from catering.domain import (
    CancellationScope,
    CancellationScopeKind,
    OrderStatus,
    TrackingInfo,
)


class StatusUpdateRequest(BaseModel):
    """Move an order to ``target_status``; parcel shipping needs tracking."""

    target_status: OrderStatus
    reason: Optional[str] = None
    tracking_info: Optional[TrackingInfo] = None


class CancelOrderRequest(BaseModel):
    scope: CancellationScopeKind = CancellationScopeKind.ALL
    payment_id: Optional[str] = None
    reason: str = ""
    acknowledge_refund_policy: bool = False

    def to_scope(self) -> CancellationScope:
        return CancellationScope(kind=self.scope, payment_id=self.payment_id)


class AllowAdditionalOrderRequest(BaseModel):
    allowed: bool


class PortOneWebhookRequest(BaseModel):
    """PortOne V1 webhook body; ``merchant_uid`` is ``order-{orderId}-{ts}``."""

    imp_uid: str
    merchant_uid: str
    status: str = Field(description="ready, paid, failed or cancelled")

    def order_id(self) -> Optional[str]:
        prefix, _, rest = self.merchant_uid.partition("-")
        if prefix != "order" or "-" not in rest:
            return None
        order_id, _, _timestamp = rest.rpartition("-")
        return order_id or None

