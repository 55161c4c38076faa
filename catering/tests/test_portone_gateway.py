"""
Tests for the PortOne gateway repository against a mocked HTTP transport.
"""

import json
from typing import List

import httpx
import pytest

from catering.domain import GatewayCancelRequest
from catering.repos.portone.gateway import PortOnePaymentGatewayRepository


def cancel_request(**kwargs) -> GatewayCancelRequest:
    defaults = dict(
        order_id="order-1",
        transaction_id="imp_123",
        reason="Plans changed",
        refund_amount=35000,
    )
    defaults.update(kwargs)
    return GatewayCancelRequest(**defaults)


def portone(handler) -> PortOnePaymentGatewayRepository:
    return PortOnePaymentGatewayRepository(
        api_key="key",
        api_secret="secret",
        base_url="https://portone.test",
        transport=httpx.MockTransport(handler),
    )


def token_response() -> httpx.Response:
    return httpx.Response(
        200, json={"code": 0, "message": None, "response": {"access_token": "tok"}}
    )


@pytest.mark.asyncio
async def test_cancel_payment_sends_token_then_cancel() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path == "/users/getToken":
            return token_response()
        return httpx.Response(
            200,
            json={
                "code": 0,
                "message": None,
                "response": {"status": "cancelled", "cancel_amount": 35000},
            },
        )

    outcome = await portone(handler).cancel_payment(cancel_request())

    assert outcome.success
    assert [r.url.path for r in seen] == ["/users/getToken", "/payments/cancel"]
    assert json.loads(seen[0].content) == {"imp_key": "key", "imp_secret": "secret"}
    assert seen[1].headers["Authorization"] == "Bearer tok"
    assert json.loads(seen[1].content) == {
        "imp_uid": "imp_123",
        "reason": "Plans changed",
        "amount": 35000,
    }


@pytest.mark.asyncio
async def test_business_failure_is_reported() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/users/getToken":
            return token_response()
        return httpx.Response(
            200, json={"code": 1, "message": "이미 전액취소된 주문입니다.", "response": None}
        )

    outcome = await portone(handler).cancel_payment(cancel_request())

    assert not outcome.success
    assert outcome.error == "이미 전액취소된 주문입니다."


@pytest.mark.asyncio
async def test_rejected_credentials_are_reported() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"code": -1, "message": "Unauthorized"})

    outcome = await portone(handler).cancel_payment(cancel_request())

    assert not outcome.success
    assert outcome.error == "Unauthorized"


@pytest.mark.asyncio
async def test_transport_error_is_reported() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    outcome = await portone(handler).cancel_payment(cancel_request())

    assert not outcome.success
    assert outcome.error == "Payment gateway unreachable: ConnectError"


def test_credentials_are_required() -> None:
    with pytest.raises(ValueError, match="key and secret"):
        PortOnePaymentGatewayRepository(api_key="", api_secret="secret")


@pytest.mark.asyncio
async def test_refusal_for_a_transaction_already_cancelled_counts_as_done() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path == "/users/getToken":
            return token_response()
        if request.url.path == "/payments/cancel":
            return httpx.Response(
                200,
                json={"code": 1, "message": "이미 전액취소된 주문입니다.", "response": None},
            )
        return httpx.Response(
            200,
            json={
                "code": 0,
                "message": None,
                "response": {"imp_uid": "imp_123", "status": "cancelled"},
            },
        )

    outcome = await portone(handler).cancel_payment(cancel_request())

    assert outcome.success
    assert outcome.already_cancelled
    assert [(r.method, r.url.path) for r in seen] == [
        ("POST", "/users/getToken"),
        ("POST", "/payments/cancel"),
        ("GET", "/payments/imp_123"),
    ]
    assert seen[2].headers["Authorization"] == "Bearer tok"


@pytest.mark.asyncio
async def test_checksum_mismatch_after_an_earlier_partial_refund_counts_as_done() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/users/getToken":
            return token_response()
        if request.url.path == "/payments/cancel":
            assert json.loads(request.content)["checksum"] == 50000
            return httpx.Response(
                200,
                json={"code": 1, "message": "checksum mismatch", "response": None},
            )
        return httpx.Response(
            200,
            json={
                "code": 0,
                "message": None,
                "response": {"status": "paid", "cancel_amount": 35000},
            },
        )

    outcome = await portone(handler).cancel_payment(cancel_request(checksum=50000))

    assert outcome.success
    assert outcome.already_cancelled


@pytest.mark.asyncio
async def test_refusal_stands_when_nothing_was_refunded() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/users/getToken":
            return token_response()
        if request.url.path == "/payments/cancel":
            return httpx.Response(
                200, json={"code": 1, "message": "취소 가능 금액 초과", "response": None}
            )
        return httpx.Response(
            200,
            json={
                "code": 0,
                "message": None,
                "response": {"status": "paid", "cancel_amount": 0},
            },
        )

    outcome = await portone(handler).cancel_payment(cancel_request())

    assert not outcome.success
    assert outcome.error == "취소 가능 금액 초과"
