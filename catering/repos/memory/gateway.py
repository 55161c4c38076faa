"""
In-memory payment gateway for local runs and tests.
"""

import logging
from typing import Dict, Iterable, List, Optional

from catering.domain import GatewayCancelOutcome, GatewayCancelRequest
from catering.repositories import PaymentGatewayRepository

logger = logging.getLogger(__name__)


class MemoryPaymentGatewayRepository(PaymentGatewayRepository):
    """
    Accepts every cancellation except for transactions listed in
    ``failing``. Cancelling a transaction twice succeeds without refunding
    again.
    """

    def __init__(
        self,
        failing: Iterable[str] = (),
        error: str = "Gateway declined the cancellation",
    ) -> None:
        self.failing = set(failing)
        self.error = error
        self.requests: List[GatewayCancelRequest] = []
        self.refunded: Dict[str, int] = {}

    async def cancel_payment(
        self, request: GatewayCancelRequest
    ) -> GatewayCancelOutcome:
        self.requests.append(request)
        if request.transaction_id in self.failing:
            logger.warning(
                "MemoryPaymentGatewayRepository: Declining cancellation",
                extra={"transaction_id": request.transaction_id},
            )
            return GatewayCancelOutcome(success=False, error=self.error)
        self.refunded.setdefault(request.transaction_id, request.refund_amount)
        return GatewayCancelOutcome(success=True)

    def refunded_amount(self, transaction_id: Optional[str] = None) -> int:
        if transaction_id is not None:
            return self.refunded.get(transaction_id, 0)
        return sum(self.refunded.values())
