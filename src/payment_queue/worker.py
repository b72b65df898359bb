"""
Temporal worker: polls the charge task queue.

The worker registers ChargeWorkflow and the charge_card activity. It shares
the PaymentService (and so the database engine) with everything else in the
process through ServiceFactory, and prepares the transaction schema once
before it starts polling.

Run with:
    python -m payment_queue.worker
"""

import asyncio
import logging

from temporalio.client import Client

# The same data_converter must be used on both the worker AND the client,
# otherwise the pydantic models will not round-trip.
from temporalio.contrib.pydantic import pydantic_data_converter
from temporalio.worker import Worker

from payment_queue.activities import charge_card
from payment_queue.config import LOG_FORMAT
from payment_queue.services.factory import ServiceFactory
from payment_queue.workflows import ChargeWorkflow


async def run_worker() -> None:
    settings = ServiceFactory.get_settings()
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
    logger = logging.getLogger(__name__)

    await ServiceFactory.get_payment_service().prepare(rebuild_indexes=settings.rebuild_indexes)

    client = await Client.connect(settings.temporal_address, data_converter=pydantic_data_converter)
    logger.info("Connected to Temporal, starting worker on queue %r", settings.temporal_task_queue)

    worker = Worker(
        client,
        task_queue=settings.temporal_task_queue,
        workflows=[ChargeWorkflow],
        activities=[charge_card],
    )
    try:
        # Blocks until the worker is shut down (e.g., via Ctrl+C).
        await worker.run()
    finally:
        await ServiceFactory.close()


def main() -> None:
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
