"""
Workflow-side repository proxies.

These classes are used *inside* Temporal workflows. Every call becomes an
activity execution, which keeps the cancellation workflow deterministic.
"""

from catering.repos.temporal.activity_names import (
    ORDER_ACTIVITY_BASE,
    PAYMENT_GATEWAY_ACTIVITY_BASE,
)
from catering.repos.temporal.decorators import temporal_workflow_proxy
from catering.repositories import OrderRepository, PaymentGatewayRepository


@temporal_workflow_proxy(ORDER_ACTIVITY_BASE, default_timeout_seconds=10)
class WorkflowOrderRepositoryProxy(OrderRepository):
    """OrderRepository backed by MinIO activities."""

    pass


# a refund request is never repeated behind the caller's back
@temporal_workflow_proxy(
    PAYMENT_GATEWAY_ACTIVITY_BASE,
    default_timeout_seconds=60,
    no_retry_methods=["cancel_payment"],
)
class WorkflowPaymentGatewayProxy(PaymentGatewayRepository):
    """PaymentGatewayRepository backed by PortOne activities."""

    pass
