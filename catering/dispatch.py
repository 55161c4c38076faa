"""
Ways of running a cancellation on behalf of the API.

``TemporalCancellationDispatcher`` starts the durable ``CancelOrderWorkflow``
for the order, or joins it when the same request is already running.
``LocalCancellationDispatcher`` runs the use case in-process and is used
for local development and tests.
"""

import hashlib
import logging
from typing import Protocol, runtime_checkable

from temporalio.client import Client
from temporalio.common import WorkflowIDConflictPolicy, WorkflowIDReusePolicy

from catering.domain import CancellationResult, CancelOrderCommand
from catering.errors import CancellationInProgress
from catering.refund_policy import DEFAULT_ORDER_TIMEZONE
from catering.usecase import CancelOrderUseCase
from catering.workflow import CancelOrderJob, CancelOrderWorkflow, cancel_workflow_id

logger = logging.getLogger(__name__)

DEFAULT_TASK_QUEUE = "order-cancellation-queue"
COMMAND_DIGEST_MEMO = "command_digest"


def command_digest(command: CancelOrderCommand) -> str:
    """Stable fingerprint of everything that shapes a cancellation."""
    return hashlib.sha256(command.model_dump_json().encode("utf-8")).hexdigest()


@runtime_checkable
class CancellationDispatcher(Protocol):
    async def dispatch(self, command: CancelOrderCommand) -> CancellationResult:
        """Run the cancellation and report its outcome."""
        ...


class TemporalCancellationDispatcher:
    """
    Runs each cancellation as a workflow whose id is derived from the order
    id, so an order never has two cancellations in flight.

    A request identical to the running one (a double submit) attaches to
    that run and receives its result. A different request for the same
    order is refused with ``cancellation_in_progress`` instead of being
    answered with another request's outcome.
    """

    def __init__(
        self,
        client: Client,
        task_queue: str = DEFAULT_TASK_QUEUE,
        timezone: str = DEFAULT_ORDER_TIMEZONE,
    ) -> None:
        self.client = client
        self.task_queue = task_queue
        self.timezone = timezone

    async def dispatch(self, command: CancelOrderCommand) -> CancellationResult:
        workflow_id = cancel_workflow_id(command.order_id)
        digest = command_digest(command)
        logger.info(
            "Dispatching cancel order workflow",
            extra={
                "order_id": command.order_id,
                "workflow_id": workflow_id,
                "task_queue": self.task_queue,
                "command_digest": digest,
            },
        )
        handle = await self.client.start_workflow(
            CancelOrderWorkflow.run,
            CancelOrderJob(command=command, timezone=self.timezone),
            id=workflow_id,
            task_queue=self.task_queue,
            id_conflict_policy=WorkflowIDConflictPolicy.USE_EXISTING,
            id_reuse_policy=WorkflowIDReusePolicy.ALLOW_DUPLICATE,
            memo={COMMAND_DIGEST_MEMO: digest},
        )
        description = await handle.describe()
        running = await description.memo_value(COMMAND_DIGEST_MEMO, None)
        if running != digest:
            logger.warning(
                "Another cancellation is running for this order",
                extra={
                    "order_id": command.order_id,
                    "workflow_id": workflow_id,
                    "command_digest": digest,
                    "running_digest": running,
                },
            )
            error = CancellationInProgress(
                "Another cancellation of this order is in progress; "
                "try again when it has finished",
                order_id=command.order_id,
            )
            return CancellationResult(
                order_id=command.order_id,
                scope=command.scope.kind,
                success=False,
                error=error.message,
                error_code=error.code,
            )
        return await handle.result()


class LocalCancellationDispatcher:
    def __init__(self, use_case: CancelOrderUseCase) -> None:
        self.use_case = use_case

    async def dispatch(self, command: CancelOrderCommand) -> CancellationResult:
        return await self.use_case.try_cancel_order(command)
