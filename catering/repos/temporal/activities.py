"""
Concrete repositories exposed as Temporal activities.

Activity names follow ``{domain}.{repo_name}.{backend}.{method}``.
"""

from catering.repos.minio.order import MinioOrderRepository
from catering.repos.portone.gateway import PortOnePaymentGatewayRepository
from catering.repos.temporal.activity_names import (
    ORDER_ACTIVITY_BASE,
    PAYMENT_GATEWAY_ACTIVITY_BASE,
)
from catering.repos.temporal.decorators import temporal_activity_registration


@temporal_activity_registration(ORDER_ACTIVITY_BASE)
class TemporalMinioOrderRepository(MinioOrderRepository):
    """Temporal activity wrapper for MinioOrderRepository."""

    pass


@temporal_activity_registration(PAYMENT_GATEWAY_ACTIVITY_BASE)
class TemporalPortOnePaymentGatewayRepository(PortOnePaymentGatewayRepository):
    """Temporal activity wrapper for PortOnePaymentGatewayRepository."""

    pass


__all__ = [
    "TemporalMinioOrderRepository",
    "TemporalPortOnePaymentGatewayRepository",
]
