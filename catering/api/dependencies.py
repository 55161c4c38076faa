"""
Dependency injection for FastAPI endpoints.

Backends are chosen from the environment:

- ``ORDER_STORE``: ``minio`` (default) or ``memory``
- ``PAYMENT_GATEWAY``: ``portone`` (default) or ``memory``
- ``CANCELLATION_DISPATCH``: ``temporal`` (default) or ``local``
"""

import logging
import os
from typing import Any, Awaitable, Callable, Dict
from zoneinfo import ZoneInfo

from fastapi import Depends, Header, HTTPException
from temporalio.client import Client
from temporalio.contrib.pydantic import pydantic_data_converter

from catering.dispatch import (
    DEFAULT_TASK_QUEUE,
    CancellationDispatcher,
    LocalCancellationDispatcher,
    TemporalCancellationDispatcher,
)
from catering.domain import Actor, ActorRole
from catering.feed import OrderChangeFeed, PublishingOrderRepository
from catering.locks import OrderLockRegistry
from catering.refund_policy import DEFAULT_ORDER_TIMEZONE
from catering.repos.memory.gateway import MemoryPaymentGatewayRepository
from catering.repos.memory.order import MemoryOrderRepository
from catering.repos.minio.order import MinioOrderRepository
from catering.repos.portone.gateway import (
    PORTONE_BASE_URL,
    PortOnePaymentGatewayRepository,
)
from catering.repositories import OrderRepository, PaymentGatewayRepository
from catering.usecase import (
    AdditionalOrderUseCase,
    AdvanceOrderUseCase,
    CancelOrderUseCase,
    GetOrderUseCase,
    OrderViewsUseCase,
    PaymentEventUseCase,
    PlaceOrderUseCase,
)
from catering.validation import (
    ensure_order_repository,
    ensure_payment_gateway_repository,
)

logger = logging.getLogger(__name__)


class DependencyContainer:
    """
    Dependency injection container with singleton lifecycle management.
    Always creates real clients; mocks are provided by test overrides.
    """

    def __init__(self) -> None:
        self._instances: Dict[str, Any] = {}
        self.locks = OrderLockRegistry()
        self.feed = OrderChangeFeed()

    async def get_or_create(
        self, key: str, factory: Callable[[], Awaitable[Any]]
    ) -> Any:
        """Get or create a singleton instance."""
        if key not in self._instances:
            self._instances[key] = await factory()
        return self._instances[key]

    async def get_temporal_client(self) -> Client:
        client = await self.get_or_create(
            "temporal_client", self._create_temporal_client
        )
        return client  # type: ignore[no-any-return]

    async def _create_temporal_client(self) -> Client:
        temporal_endpoint = os.environ.get("TEMPORAL_ENDPOINT", "temporal:7233")
        logger.debug(
            "Creating Temporal client",
            extra={"endpoint": temporal_endpoint, "namespace": "default"},
        )
        return await Client.connect(
            temporal_endpoint,
            namespace="default",
            data_converter=pydantic_data_converter,
        )

    async def get_order_repository(self) -> OrderRepository:
        repo = await self.get_or_create("order_repo", self._create_order_repository)
        return repo  # type: ignore[no-any-return]

    async def _create_order_repository(self) -> OrderRepository:
        store = os.environ.get("ORDER_STORE", "minio")
        if store == "memory":
            inner: OrderRepository = MemoryOrderRepository()
        else:
            inner = MinioOrderRepository(
                endpoint=os.environ.get("MINIO_ENDPOINT", "localhost:9000"),
                access_key=os.environ.get("MINIO_ACCESS_KEY", "minioadmin"),
                secret_key=os.environ.get("MINIO_SECRET_KEY", "minioadmin"),
            )
        logger.info("Order repository created", extra={"order_store": store})
        return PublishingOrderRepository(inner, self.feed)  # type: ignore[return-value]

    async def get_gateway_repository(self) -> PaymentGatewayRepository:
        repo = await self.get_or_create(
            "gateway_repo", self._create_gateway_repository
        )
        return repo  # type: ignore[no-any-return]

    async def _create_gateway_repository(self) -> PaymentGatewayRepository:
        if os.environ.get("PAYMENT_GATEWAY", "portone") == "memory":
            return MemoryPaymentGatewayRepository()
        return PortOnePaymentGatewayRepository(
            api_key=os.environ.get("PORTONE_API_KEY", ""),
            api_secret=os.environ.get("PORTONE_API_SECRET", ""),
            base_url=os.environ.get("PORTONE_API_URL", PORTONE_BASE_URL),
        )


# Global container instance
_container = DependencyContainer()


def order_timezone_name() -> str:
    return os.environ.get("ORDER_TIMEZONE", DEFAULT_ORDER_TIMEZONE)


async def get_temporal_client() -> Client:
    """FastAPI dependency for Temporal client."""
    return await _container.get_temporal_client()


async def get_order_repository() -> OrderRepository:
    return await _container.get_order_repository()


async def get_gateway_repository() -> PaymentGatewayRepository:
    return await _container.get_gateway_repository()


def get_order_locks() -> OrderLockRegistry:
    return _container.locks


def get_order_feed() -> OrderChangeFeed:
    return _container.feed


async def get_actor(
    x_actor_role: str = Header(...),
    x_actor_id: str = Header(...),
) -> Actor:
    """The acting party, as asserted by the upstream authentication layer."""
    try:
        role = ActorRole(x_actor_role.lower())
    except ValueError:
        raise HTTPException(
            status_code=400, detail=f"Unknown actor role: {x_actor_role}"
        )
    if role == ActorRole.SYSTEM:
        raise HTTPException(
            status_code=403, detail="System actors cannot call the API"
        )
    if not x_actor_id.strip():
        raise HTTPException(status_code=400, detail="Actor id is required")
    return Actor(role=role, id=x_actor_id)


async def get_get_order_use_case(
    order_repo: OrderRepository = Depends(get_order_repository),
) -> GetOrderUseCase:
    return GetOrderUseCase(order_repo=ensure_order_repository(order_repo))


async def get_place_order_use_case(
    order_repo: OrderRepository = Depends(get_order_repository),
) -> PlaceOrderUseCase:
    return PlaceOrderUseCase(order_repo=ensure_order_repository(order_repo))


async def get_advance_order_use_case(
    order_repo: OrderRepository = Depends(get_order_repository),
    locks: OrderLockRegistry = Depends(get_order_locks),
) -> AdvanceOrderUseCase:
    return AdvanceOrderUseCase(
        order_repo=ensure_order_repository(order_repo), locks=locks
    )


async def get_additional_order_use_case(
    order_repo: OrderRepository = Depends(get_order_repository),
    locks: OrderLockRegistry = Depends(get_order_locks),
) -> AdditionalOrderUseCase:
    return AdditionalOrderUseCase(
        order_repo=ensure_order_repository(order_repo), locks=locks
    )


async def get_payment_event_use_case(
    order_repo: OrderRepository = Depends(get_order_repository),
    locks: OrderLockRegistry = Depends(get_order_locks),
) -> PaymentEventUseCase:
    return PaymentEventUseCase(
        order_repo=ensure_order_repository(order_repo), locks=locks
    )


async def get_order_views_use_case(
    order_repo: OrderRepository = Depends(get_order_repository),
) -> OrderViewsUseCase:
    return OrderViewsUseCase(order_repo=ensure_order_repository(order_repo))


async def get_cancellation_dispatcher() -> CancellationDispatcher:
    """
    Temporal dispatch by default; ``CANCELLATION_DISPATCH=local`` runs the
    use case in the API process against the configured repositories.
    """
    timezone_name = order_timezone_name()
    if os.environ.get("CANCELLATION_DISPATCH", "temporal") == "local":
        use_case = CancelOrderUseCase(
            order_repo=ensure_order_repository(await get_order_repository()),
            gateway_repo=ensure_payment_gateway_repository(
                await get_gateway_repository()
            ),
            locks=_container.locks,
            timezone=ZoneInfo(timezone_name),
        )
        return LocalCancellationDispatcher(use_case)
    return TemporalCancellationDispatcher(
        await get_temporal_client(),
        task_queue=os.environ.get("TEMPORAL_TASK_QUEUE", DEFAULT_TASK_QUEUE),
        timezone=timezone_name,
    )
