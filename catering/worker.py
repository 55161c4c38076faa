"""
Temporal worker that runs the cancellation workflow and its activities.
"""

import asyncio
import logging
import os

from temporalio.client import Client
from temporalio.contrib.pydantic import pydantic_data_converter
from temporalio.service import RPCError
from temporalio.worker import Worker

from catering.dispatch import DEFAULT_TASK_QUEUE
from catering.logging_setup import setup_logging
from catering.repos.temporal.activities import (
    TemporalMinioOrderRepository,
    TemporalPortOnePaymentGatewayRepository,
)
from catering.repos.portone.gateway import PORTONE_BASE_URL
from catering.workflow import CancelOrderWorkflow

logger = logging.getLogger(__name__)


async def get_temporal_client_with_retries(
    endpoint: str, attempts: int = 10, delay: int = 5
) -> Client:
    """Attempt to connect to Temporal with retries."""
    for attempt in range(attempts):
        try:
            client = await Client.connect(
                endpoint,
                data_converter=pydantic_data_converter,
                namespace="default",
            )
            logger.info(
                "Successfully connected to Temporal",
                extra={"endpoint": endpoint, "attempt": attempt + 1},
            )
            return client
        except RPCError as e:
            logger.warning(
                "Failed to connect to Temporal",
                extra={
                    "endpoint": endpoint,
                    "attempt": attempt + 1,
                    "max_attempts": attempts,
                    "error": str(e),
                    "retry_in_seconds": delay,
                },
            )
            if attempt + 1 == attempts:
                logger.error(
                    "All connection attempts to Temporal failed",
                    extra={"endpoint": endpoint, "total_attempts": attempts},
                )
                raise
            await asyncio.sleep(delay)

    raise RuntimeError("Failed to connect to Temporal after all attempts")


async def run_worker() -> None:
    """Run the Temporal worker"""
    setup_logging()

    temporal_endpoint = os.environ.get("TEMPORAL_ENDPOINT", "temporal:7233")
    task_queue = os.environ.get("TEMPORAL_TASK_QUEUE", DEFAULT_TASK_QUEUE)
    logger.info(
        "Starting Temporal worker",
        extra={"temporal_endpoint": temporal_endpoint, "task_queue": task_queue},
    )

    client = await get_temporal_client_with_retries(temporal_endpoint)

    order_repo = TemporalMinioOrderRepository(
        endpoint=os.environ.get("MINIO_ENDPOINT", "minio:9000"),
        access_key=os.environ.get("MINIO_ACCESS_KEY", "minioadmin"),
        secret_key=os.environ.get("MINIO_SECRET_KEY", "minioadmin"),
    )
    gateway_repo = TemporalPortOnePaymentGatewayRepository(
        api_key=os.environ["PORTONE_API_KEY"],
        api_secret=os.environ["PORTONE_API_SECRET"],
        base_url=os.environ.get("PORTONE_API_URL", PORTONE_BASE_URL),
    )

    activities = [
        order_repo.generate_order_id,
        order_repo.get_order,
        order_repo.save_order,
        order_repo.list_orders,
        gateway_repo.cancel_payment,
    ]

    logger.info(
        "Creating Temporal worker",
        extra={
            "task_queue": task_queue,
            "activity_count": len(activities),
            "data_converter_type": type(client.data_converter).__name__,
        },
    )

    worker = Worker(
        client,
        task_queue=task_queue,
        workflows=[CancelOrderWorkflow],
        activities=activities,  # type: ignore[arg-type]
    )
    await worker.run()


if __name__ == "__main__":
    asyncio.run(run_worker())
