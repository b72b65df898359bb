"""
Temporal activities: thin wrappers delegating to the service layer.

`charge_card` exposes the same charge operation the queue consumer uses, for
callers that want a request/response answer instead of fire-and-forget.

Key points:
  - Decorated with `@activity.defn` so Temporal can discover and invoke it.
  - Validation failures are final: retrying the same card cannot change the
    verdict. They are re-raised as non-retryable ApplicationErrors whose
    `type` is the original exception class name, so the workflow can report
    a rejection reason without burning retries.
  - Anything else (e.g. the database being down) propagates unchanged and
    Temporal retries the activity according to the workflow's RetryPolicy.
"""

import logging

from temporalio import activity
from temporalio.exceptions import ApplicationError

from payment_queue.domain.exceptions import ChargeValidationError
from payment_queue.domain.models import ChargeRequest, TransactionOutcome
from payment_queue.services.factory import ServiceFactory

logger = logging.getLogger(__name__)


@activity.defn
async def charge_card(request: ChargeRequest) -> TransactionOutcome:
    """Charge a card via PaymentService."""
    info = activity.info()
    logger.info("Activity charge_card started (workflow %s, attempt %d)", info.workflow_id, info.attempt)
    try:
        outcome = await ServiceFactory.get_payment_service().charge(request)
    except ChargeValidationError as e:
        logger.warning("Activity charge_card rejected (workflow %s): %s", info.workflow_id, e)
        raise ApplicationError(str(e), type=type(e).__name__, non_retryable=True) from e
    logger.info("Activity charge_card completed: transaction %s", outcome.transaction_id)
    return outcome
