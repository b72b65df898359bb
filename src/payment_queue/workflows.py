"""
Temporal workflow: ChargeWorkflow.

Request/response counterpart of the queue consumer: a client starts the
workflow with a ChargeRequest and gets back a ChargeResult that either holds
the recorded transaction or the reason the card was rejected.

Key constraints inside a workflow:
  - Must be **deterministic**: no I/O, no randomness, no system clock.
    The transaction id is minted inside the activity, never here.
  - Use `workflow.logger` instead of the stdlib `logging` module.
"""

from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy
from temporalio.exceptions import ActivityError, ApplicationError

# Pydantic and our own modules use constructs the workflow sandbox would flag,
# so they are imported with the sandbox's import interception bypassed. They
# are only used for data modelling here.
with workflow.unsafe.imports_passed_through():
    from payment_queue.activities import charge_card
    from payment_queue.domain.models import ChargeRequest, ChargeResult, ChargeStatus


@workflow.defn
class ChargeWorkflow:
    """Runs one charge and maps the activity outcome to a ChargeResult.

    Execution flow:
        1. charge_card activity → PaymentService (validate + persist)
        2. success                     → CHARGED with the transaction
        3. non-retryable ApplicationError → REJECTED with the reason
        4. anything else after retries are exhausted → workflow fails
    """

    @workflow.run
    async def run(self, request: ChargeRequest) -> ChargeResult:
        # Only infrastructure failures reach the retry policy; validation
        # errors arrive as non-retryable and stop after the first attempt.
        retry_policy = RetryPolicy(
            maximum_attempts=5,
            initial_interval=timedelta(seconds=1),
            backoff_coefficient=2.0,
        )

        workflow.logger.info(
            "Charging %d.%09d %s",
            request.amount.units,
            request.amount.nanos,
            request.amount.currency_code,
        )

        try:
            outcome = await workflow.execute_activity(
                charge_card,
                request,
                start_to_close_timeout=timedelta(seconds=30),
                retry_policy=retry_policy,
            )
        except ActivityError as err:
            cause = err.cause
            if isinstance(cause, ApplicationError) and cause.non_retryable:
                workflow.logger.info("Charge rejected: %s", cause.message)
                return ChargeResult(
                    status=ChargeStatus.REJECTED,
                    reason=cause.message,
                    error_type=cause.type,
                )
            raise

        workflow.logger.info("Charge completed: transaction %s", outcome.transaction_id)
        return ChargeResult(status=ChargeStatus.CHARGED, transaction=outcome)
