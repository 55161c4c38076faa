"""
Activity name bases shared by activities.py and proxies.py.

Kept apart so that workflow code can import the names without importing
the MinIO and HTTP backends that the activities wrap.
"""

ORDER_ACTIVITY_BASE = "catering.order_repo.minio"
PAYMENT_GATEWAY_ACTIVITY_BASE = "catering.payment_gateway_repo.portone"

__all__ = [
    "ORDER_ACTIVITY_BASE",
    "PAYMENT_GATEWAY_ACTIVITY_BASE",
]
