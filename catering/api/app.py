"""
FastAPI application for the catering order lifecycle.

The acting party arrives in the ``X-Actor-Role`` / ``X-Actor-Id`` headers;
authentication happens upstream. Business-rule failures are returned as
``{success: false, error, error_code}`` with a status code per error type.
"""

import logging
from datetime import date
from typing import Dict, Optional, Type

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from catering.api.dependencies import (
    get_actor,
    get_additional_order_use_case,
    get_advance_order_use_case,
    get_cancellation_dispatcher,
    get_get_order_use_case,
    get_order_views_use_case,
    get_payment_event_use_case,
    get_place_order_use_case,
)
from catering.api.requests import (
    AllowAdditionalOrderRequest,
    CancelOrderRequest,
    PortOneWebhookRequest,
    StatusUpdateRequest,
)
from catering.api.responses import (
    CancellationResponse,
    HealthCheckResponse,
    StatusUpdateResponse,
    WebhookResponse,
)
from catering.dispatch import CancellationDispatcher
from catering.domain import (
    Actor,
    ActorRole,
    AdditionalOrderRequest,
    CancelOrderCommand,
    CheckoutRequest,
    DeliveryMethod,
    GatewayEvent,
    Order,
    TrackingInfo,
)
from catering.errors import (
    CancellationInProgress,
    ConcurrentOrderUpdate,
    GatewayCancellationFailed,
    InvalidTransition,
    OrderLifecycleError,
    OrderNotFound,
    PastCancellationWindow,
    PaymentGroupNotFound,
    PreconditionNotMet,
    Unauthorized,
    error_type_for_code,
)
from catering.logging_setup import setup_logging
from catering.projections import (
    AdminView,
    BuyerBucket,
    OrderFilters,
    OrderView,
    SellerBucket,
)
from catering.usecase import (
    AdditionalOrderUseCase,
    AdvanceOrderUseCase,
    GetOrderUseCase,
    OrderViewsUseCase,
    PaymentEventUseCase,
    PlaceOrderUseCase,
)

# Setup logging when module is imported
setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Catering Order API")

HTTP_STATUS_BY_ERROR: Dict[Type[OrderLifecycleError], int] = {
    OrderNotFound: 404,
    PaymentGroupNotFound: 404,
    Unauthorized: 403,
    InvalidTransition: 409,
    PastCancellationWindow: 409,
    PreconditionNotMet: 422,
    GatewayCancellationFailed: 502,
    ConcurrentOrderUpdate: 409,
    CancellationInProgress: 409,
}


def status_code_for(error_type: Optional[Type[OrderLifecycleError]]) -> int:
    if error_type is None:
        return 500
    return HTTP_STATUS_BY_ERROR.get(error_type, 400)


@app.exception_handler(OrderLifecycleError)
async def order_lifecycle_error_handler(
    request: Request, exc: OrderLifecycleError
) -> JSONResponse:
    status_code = status_code_for(type(exc))
    logger.info(
        "Order lifecycle error",
        extra={
            "path": request.url.path,
            "error_code": exc.code,
            "status_code": status_code,
            "context": exc.context,
        },
    )
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": exc.message, "error_code": exc.code},
    )


def _internal_error(action: str, e: Exception, **context: object) -> HTTPException:
    logger.error(
        f"Failed to {action}",
        extra={"error": str(e), "error_type": type(e).__name__, **context},
        exc_info=True,
    )
    return HTTPException(status_code=500, detail=f"Failed to {action}")


@app.get("/health", response_model=HealthCheckResponse)
async def health_check() -> HealthCheckResponse:
    """Health check endpoint"""
    logger.debug("Health check requested")
    return HealthCheckResponse(status="ok", version="1.0.0")


@app.post("/orders", response_model=Order, status_code=201)
async def place_order(
    request: CheckoutRequest,
    actor: Actor = Depends(get_actor),
    use_case: PlaceOrderUseCase = Depends(get_place_order_use_case),
) -> Order:
    """Record the order created by a completed checkout."""
    if actor.role == ActorRole.BUYER and actor.id != request.buyer_id:
        raise Unauthorized("Buyers can only place orders for themselves")
    try:
        return await use_case.place_order(request)
    except OrderLifecycleError:
        raise
    except Exception as e:
        raise _internal_error("place order", e, buyer_id=request.buyer_id)


@app.get("/orders/{order_id}", response_model=Order)
async def get_order(
    order_id: str,
    actor: Actor = Depends(get_actor),
    use_case: GetOrderUseCase = Depends(get_get_order_use_case),
) -> Order:
    try:
        return await use_case.get_order(order_id, actor)
    except OrderLifecycleError:
        raise
    except Exception as e:
        raise _internal_error("retrieve order", e, order_id=order_id)


@app.post("/orders/{order_id}/status", response_model=StatusUpdateResponse)
async def update_order_status(
    order_id: str,
    request: StatusUpdateRequest,
    actor: Actor = Depends(get_actor),
    use_case: AdvanceOrderUseCase = Depends(get_advance_order_use_case),
) -> StatusUpdateResponse:
    """Order-status update: accept, ship (with tracking) or complete."""
    logger.info(
        "Order status update requested",
        extra={
            "order_id": order_id,
            "target_status": request.target_status.value,
            "actor_role": actor.role.value,
        },
    )
    try:
        order = await use_case.advance_order(
            order_id,
            request.target_status,
            actor,
            tracking=request.tracking_info,
            reason=request.reason,
        )
    except OrderLifecycleError:
        raise
    except Exception as e:
        raise _internal_error("update order status", e, order_id=order_id)
    return StatusUpdateResponse.from_order(order)


@app.post("/orders/{order_id}/cancel", response_model=CancellationResponse)
async def cancel_order(
    order_id: str,
    request: CancelOrderRequest,
    actor: Actor = Depends(get_actor),
    dispatcher: CancellationDispatcher = Depends(get_cancellation_dispatcher),
) -> JSONResponse:
    """
    Cancel the whole order or one payment group and report the refund.
    """
    try:
        command = CancelOrderCommand(
            order_id=order_id,
            scope=request.to_scope(),
            reason=request.reason,
            actor=actor,
            acknowledge_refund_policy=request.acknowledge_refund_policy,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    logger.info(
        "Order cancellation requested via API",
        extra={
            "order_id": order_id,
            "scope": command.scope.kind.value,
            "payment_id": command.scope.payment_id,
            "actor_role": actor.role.value,
        },
    )
    try:
        result = await dispatcher.dispatch(command)
    except Exception as e:
        raise _internal_error("cancel order", e, order_id=order_id)

    response = CancellationResponse.from_result(result)
    status_code = (
        200 if result.success else status_code_for(error_type_for_code(result.error_code))
    )
    return JSONResponse(
        status_code=status_code, content=response.model_dump(mode="json")
    )


@app.post("/orders/{order_id}/additional-orders", response_model=Order)
async def add_additional_order(
    order_id: str,
    request: AdditionalOrderRequest,
    actor: Actor = Depends(get_actor),
    use_case: AdditionalOrderUseCase = Depends(get_additional_order_use_case),
) -> Order:
    try:
        return await use_case.add_additional_order(order_id, request, actor)
    except OrderLifecycleError:
        raise
    except Exception as e:
        raise _internal_error("record additional order", e, order_id=order_id)


@app.post(
    "/orders/{order_id}/allow-additional-order",
    response_model=StatusUpdateResponse,
)
async def allow_additional_order(
    order_id: str,
    request: AllowAdditionalOrderRequest,
    actor: Actor = Depends(get_actor),
    use_case: AdvanceOrderUseCase = Depends(get_advance_order_use_case),
) -> StatusUpdateResponse:
    try:
        order = await use_case.set_allow_additional_order(
            order_id, request.allowed, actor
        )
    except OrderLifecycleError:
        raise
    except Exception as e:
        raise _internal_error(
            "change additional-order access", e, order_id=order_id
        )
    return StatusUpdateResponse.from_order(order)


@app.post("/orders/{order_id}/tracking", response_model=Order)
async def attach_tracking(
    order_id: str,
    request: TrackingInfo,
    actor: Actor = Depends(get_actor),
    use_case: AdvanceOrderUseCase = Depends(get_advance_order_use_case),
) -> Order:
    try:
        return await use_case.attach_tracking(order_id, request, actor)
    except OrderLifecycleError:
        raise
    except Exception as e:
        raise _internal_error("attach tracking", e, order_id=order_id)


@app.post("/orders/{order_id}/confirm", response_model=StatusUpdateResponse)
async def confirm_purchase(
    order_id: str,
    actor: Actor = Depends(get_actor),
    use_case: AdvanceOrderUseCase = Depends(get_advance_order_use_case),
) -> StatusUpdateResponse:
    """Buyer confirms a shipped order, which enables reviews."""
    try:
        order = await use_case.confirm_purchase(order_id, actor)
    except OrderLifecycleError:
        raise
    except Exception as e:
        raise _internal_error("confirm purchase", e, order_id=order_id)
    return StatusUpdateResponse.from_order(order)


@app.post("/orders/{order_id}/auto-complete", response_model=StatusUpdateResponse)
async def auto_complete_order(
    order_id: str,
    use_case: AdvanceOrderUseCase = Depends(get_advance_order_use_case),
) -> StatusUpdateResponse:
    """Scheduler hook: complete a shipped order; other orders are left alone."""
    try:
        order = await use_case.auto_complete(order_id)
    except OrderLifecycleError:
        raise
    except Exception as e:
        raise _internal_error("auto-complete order", e, order_id=order_id)
    if order is None:
        return StatusUpdateResponse(
            success=False,
            order_id=order_id,
            error="Order is not awaiting completion",
            error_code="skipped",
        )
    return StatusUpdateResponse.from_order(order)


@app.post("/payments/webhook", response_model=WebhookResponse)
async def payment_webhook(
    request: PortOneWebhookRequest,
    use_case: PaymentEventUseCase = Depends(get_payment_event_use_case),
) -> WebhookResponse:
    """PortOne notification; statuses other than paid/failed/cancelled are ignored."""
    order_id = request.order_id()
    if order_id is None or request.status not in ("paid", "failed", "cancelled"):
        logger.info(
            "Ignoring payment webhook",
            extra={
                "merchant_uid": request.merchant_uid,
                "gateway_status": request.status,
            },
        )
        return WebhookResponse(success=True, ignored=True)

    event = GatewayEvent(
        order_id=order_id,
        transaction_id=request.imp_uid,
        status=request.status,  # type: ignore[arg-type]
    )
    try:
        await use_case.record_gateway_event(event)
    except OrderLifecycleError:
        raise
    except Exception as e:
        raise _internal_error("apply payment webhook", e, order_id=order_id)
    return WebhookResponse(success=True)


@app.get("/views/buyer", response_model=OrderView)
async def buyer_orders(
    bucket: BuyerBucket = BuyerBucket.ALL,
    actor: Actor = Depends(get_actor),
    use_case: OrderViewsUseCase = Depends(get_order_views_use_case),
) -> OrderView:
    if actor.role != ActorRole.BUYER:
        raise Unauthorized("The buyer view is only available to buyers")
    return await use_case.buyer_orders(actor.id, bucket)


@app.get("/views/seller", response_model=OrderView)
async def seller_orders(
    bucket: SellerBucket = SellerBucket.ALL,
    delivery_method: Optional[DeliveryMethod] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    actor: Actor = Depends(get_actor),
    use_case: OrderViewsUseCase = Depends(get_order_views_use_case),
) -> OrderView:
    if actor.role != ActorRole.SELLER:
        raise Unauthorized("The seller view is only available to sellers")
    filters = OrderFilters(
        delivery_method=delivery_method, date_from=date_from, date_to=date_to
    )
    return await use_case.seller_orders(actor.id, bucket, filters)


@app.get("/views/admin", response_model=AdminView)
async def admin_orders(
    bucket: SellerBucket = SellerBucket.ALL,
    store_id: Optional[str] = None,
    delivery_method: Optional[DeliveryMethod] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    actor: Actor = Depends(get_actor),
    use_case: OrderViewsUseCase = Depends(get_order_views_use_case),
) -> AdminView:
    if actor.role != ActorRole.ADMIN:
        raise Unauthorized("The admin view is only available to admins")
    filters = OrderFilters(
        store_id=store_id,
        delivery_method=delivery_method,
        date_from=date_from,
        date_to=date_to,
    )
    return await use_case.admin_orders(bucket, filters)
