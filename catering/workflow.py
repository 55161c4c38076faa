"""
The execution context is bound to way execution works.
Cancellations run as temporal.io workflows so that a crash between two
gateway refunds resumes from the last confirmed group instead of starting
over, and so that one order never has two cancellations in flight.
"""

from pydantic import BaseModel
from temporalio import workflow

with workflow.unsafe.imports_passed_through():
    from zoneinfo import ZoneInfo

    from catering.domain import CancellationResult, CancelOrderCommand
    from catering.refund_policy import DEFAULT_ORDER_TIMEZONE
    from catering.repos.temporal.proxies import (
        WorkflowOrderRepositoryProxy,
        WorkflowPaymentGatewayProxy,
    )
    from catering.usecase import CancelOrderUseCase


def cancel_workflow_id(order_id: str) -> str:
    return f"cancel-order-{order_id}"


class CancelOrderJob(BaseModel):
    command: CancelOrderCommand
    timezone: str = DEFAULT_ORDER_TIMEZONE


@workflow.defn
class CancelOrderWorkflow:
    def __init__(self) -> None:
        self.current_step = "initialized"

    @workflow.query
    def get_current_step(self) -> str:
        """Query method to get the current workflow step"""
        return str(self.current_step)

    @workflow.run
    async def run(self, job: CancelOrderJob) -> CancellationResult:
        """
        Thin wrapper around CancelOrderUseCase.

        Lifecycle errors come back inside the result rather than failing
        the workflow; anything else fails it.
        """
        command = job.command
        workflow.logger.info(
            "Starting cancel order workflow",
            extra={
                "order_id": command.order_id,
                "scope": command.scope.kind.value,
                "actor_role": command.actor.role.value,
                "workflow_id": workflow.info().workflow_id,
                "debug_step": "workflow_entry",
            },
        )

        self.current_step = "cancelling"
        use_case = CancelOrderUseCase(
            order_repo=WorkflowOrderRepositoryProxy(),  # type: ignore[abstract]
            gateway_repo=WorkflowPaymentGatewayProxy(),  # type: ignore[abstract]
            clock=workflow.now,
            timezone=ZoneInfo(job.timezone),
        )
        result = await use_case.try_cancel_order(command)

        self.current_step = "completed" if result.success else "failed"
        workflow.logger.info(
            "Cancel order workflow finished",
            extra={
                "order_id": command.order_id,
                "success": result.success,
                "refund_amount": result.refund_amount,
                "error_code": result.error_code,
                "debug_step": "workflow_complete",
            },
        )
        return result
