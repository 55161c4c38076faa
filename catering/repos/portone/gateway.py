"""
PortOne (iamport) V1 REST implementation of PaymentGatewayRepository.

Each cancellation obtains a fresh access token from ``/users/getToken`` and
then calls ``/payments/cancel`` with the transaction id (``imp_uid``), the
reason and the amount to refund. PortOne answers HTTP 200 with a non-zero
``code`` for business failures (already cancelled, amount too large). When
the payment record at ``/payments/{imp_uid}`` shows the transaction
cancelled, the cancellation is reported as done; other refusals and
transport errors come back as failed outcomes.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from catering.domain import GatewayCancelOutcome, GatewayCancelRequest
from catering.repositories import PaymentGatewayRepository

logger = logging.getLogger(__name__)

PORTONE_BASE_URL = "https://api.iamport.kr"


class PortOneError(Exception):
    """A PortOne API call did not succeed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[Dict[str, Any]] = None,
        refused: bool = False,
    ):
        self.message = message
        self.status_code = status_code
        self.response_data = response_data or {}
        # PortOne answered and declined, as opposed to an HTTP-level failure
        self.refused = refused
        super().__init__(message)


class PortOnePaymentGatewayRepository(PaymentGatewayRepository):
    def __init__(
        self,
        api_key: str,
        api_secret: str,
        base_url: str = PORTONE_BASE_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key or not api_secret:
            raise ValueError("PortOne API key and secret are required")
        self.api_key = api_key
        self.api_secret = api_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self.transport,
        )

    async def _request(
        self,
        client: httpx.AsyncClient,
        method: str,
        endpoint: str,
        json_data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        response = await client.request(
            method, endpoint, json=json_data, headers=headers
        )
        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.is_success:
            logger.error(
                "PortOne API error",
                extra={
                    "endpoint": endpoint,
                    "status_code": response.status_code,
                    "gateway_message": data.get("message"),
                },
            )
            raise PortOneError(
                data.get("message") or f"PortOne returned HTTP {response.status_code}",
                status_code=response.status_code,
                response_data=data,
            )
        if data.get("code") != 0:
            raise PortOneError(
                data.get("message") or "PortOne request failed",
                status_code=response.status_code,
                response_data=data,
                refused=True,
            )
        return data.get("response") or {}

    async def _access_token(self, client: httpx.AsyncClient) -> str:
        response = await self._request(
            client,
            "POST",
            "/users/getToken",
            {"imp_key": self.api_key, "imp_secret": self.api_secret},
        )
        token = response.get("access_token")
        if not token:
            raise PortOneError("PortOne did not return an access token")
        return token

    @staticmethod
    def _cancel_payload(request: GatewayCancelRequest) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "imp_uid": request.transaction_id,
            "reason": request.reason,
            "amount": request.refund_amount,
        }
        if request.checksum is not None:
            payload["checksum"] = request.checksum
        return payload

    async def _is_cancelled(
        self,
        client: httpx.AsyncClient,
        request: GatewayCancelRequest,
        headers: Dict[str, str],
    ) -> bool:
        """Whether PortOne already refunded what ``request`` asks for.

        A refund confirmed earlier whose local write was lost is refused
        (already cancelled, or a checksum mismatch); the payment record
        settles it.
        """
        transaction_id = request.transaction_id
        try:
            payment = await self._request(
                client, "GET", f"/payments/{transaction_id}", headers=headers
            )
        except (PortOneError, httpx.HTTPError) as e:
            logger.warning(
                "PortOne: Payment lookup failed",
                extra={
                    "transaction_id": transaction_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            return False
        if payment.get("status") == "cancelled":
            return True
        cancelled_amount = payment.get("cancel_amount") or 0
        return 0 < request.refund_amount <= cancelled_amount

    async def cancel_payment(
        self, request: GatewayCancelRequest
    ) -> GatewayCancelOutcome:
        logger.info(
            "PortOne: Requesting payment cancellation",
            extra={
                "order_id": request.order_id,
                "transaction_id": request.transaction_id,
                "refund_amount": request.refund_amount,
                "is_partial": request.is_partial,
                "is_partner_cancel": request.is_partner_cancel,
            },
        )
        try:
            async with self._client() as client:
                token = await self._access_token(client)
                headers = {"Authorization": f"Bearer {token}"}
                try:
                    result = await self._request(
                        client,
                        "POST",
                        "/payments/cancel",
                        self._cancel_payload(request),
                        headers=headers,
                    )
                except PortOneError as e:
                    if not e.refused or not await self._is_cancelled(
                        client, request, headers
                    ):
                        raise
                    logger.info(
                        "PortOne: Transaction was already cancelled",
                        extra={
                            "transaction_id": request.transaction_id,
                            "gateway_message": e.message,
                        },
                    )
                    return GatewayCancelOutcome(success=True, already_cancelled=True)
        except PortOneError as e:
            logger.warning(
                "PortOne: Cancellation refused",
                extra={
                    "transaction_id": request.transaction_id,
                    "status_code": e.status_code,
                    "gateway_message": e.message,
                },
            )
            return GatewayCancelOutcome(success=False, error=e.message)
        except httpx.HTTPError as e:
            logger.error(
                "PortOne: Transport failure during cancellation",
                extra={
                    "transaction_id": request.transaction_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            return GatewayCancelOutcome(
                success=False,
                error=f"Payment gateway unreachable: {type(e).__name__}",
            )

        logger.info(
            "PortOne: Payment cancelled",
            extra={
                "transaction_id": request.transaction_id,
                "cancel_amount": result.get("cancel_amount"),
                "gateway_status": result.get("status"),
            },
        )
        return GatewayCancelOutcome(success=True)
