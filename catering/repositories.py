"""
Repository interfaces defined as Protocols.

- **Idempotency**: replaying a save leaves the same document;
  cancelling an already-cancelled gateway transaction must not refund twice.

- **Workflow Safety**: non-deterministic operations (ID generation, network
  calls, storage reads) live behind these protocols so that the
  cancellation workflow can delegate them to activities.

- **Domain Objects**: methods accept and return domain objects or
  primitives, never framework-specific types.

In Temporal workflow contexts these protocols are implemented by proxies
that call activities; in tests they are mocked; in the API they are backed
by MinIO or memory and by the PortOne client.
"""

from typing import List, Optional, Protocol, runtime_checkable

from catering.domain import (
    GatewayCancelOutcome,
    GatewayCancelRequest,
    Order,
)


@runtime_checkable
class OrderRepository(Protocol):
    """Durable store of order documents keyed by order id."""

    async def generate_order_id(self) -> str:
        """Generate a unique order identifier.

        Non-deterministic, so workflows must reach it through an activity.
        """
        ...

    async def get_order(self, order_id: str) -> Optional[Order]:
        """Retrieve an order, or None when it does not exist."""
        ...

    async def save_order(self, order: Order) -> bool:
        """Persist the whole order document if nobody saved it since it was read.

        ``order.version`` is the version the caller read (0 for a new
        order). The document is stored with ``version + 1``.

        Returns:
            True when written (or when this exact write already landed),
            False when the stored version has moved on; the caller must
            re-read and re-apply its change

        Implementation Notes:
        - The version check and the write must not interleave with other
          writers of the same order
        - Replaying a write that already landed returns True, so retried
          activities are harmless
        """
        ...

    async def list_orders(self) -> List[Order]:
        """Every stored order, in no particular order."""
        ...


@runtime_checkable
class PaymentGatewayRepository(Protocol):
    """Cancels charges at the external payment gateway.

    A cancellation either fully succeeds or reports failure; the gateway is
    never asked to retry on its own.
    """

    async def cancel_payment(
        self, request: GatewayCancelRequest
    ) -> GatewayCancelOutcome:
        """Cancel (refund) one gateway transaction.

        Args:
            request: Transaction id, reason, refund amount and scope flags

        Returns:
            GatewayCancelOutcome with success, or failure and the gateway's
            error message. Transport problems are reported as failures
            rather than raised.
        """
        ...
