"""
CLI client: submits one charge through ChargeWorkflow and prints the result.

Usage:
    python -m payment_queue.client --card-number 4111111111111111 \\
        --exp-month 12 --exp-year 2030 --units 20 --currency USD
"""

import argparse
import asyncio
import logging
import uuid

from temporalio.client import Client

# Must match the data_converter used by the worker (see worker.py).
from temporalio.contrib.pydantic import pydantic_data_converter

from payment_queue.config import LOG_FORMAT, get_settings
from payment_queue.domain.models import CardDetails, ChargeRequest, Money
from payment_queue.workflows import ChargeWorkflow


def build_request(args: argparse.Namespace) -> ChargeRequest:
    return ChargeRequest(
        card=CardDetails(
            number=args.card_number,
            expiration_month=args.exp_month,
            expiration_year=args.exp_year,
        ),
        amount=Money(units=args.units, nanos=args.nanos, currency_code=args.currency),
    )


async def run_client(args: argparse.Namespace) -> None:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
    logger = logging.getLogger(__name__)

    client = await Client.connect(settings.temporal_address, data_converter=pydantic_data_converter)

    request = build_request(args)
    workflow_id = f"charge-{uuid.uuid4()}"
    logger.info("Starting workflow %s", workflow_id)

    result = await client.execute_workflow(
        ChargeWorkflow.run,
        request,
        id=workflow_id,
        task_queue=settings.temporal_task_queue,
    )
    print(result.model_dump_json(indent=2))


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Charge a card via Temporal")
    parser.add_argument("--card-number", required=True, help="Card number, separators allowed")
    parser.add_argument("--exp-month", required=True, type=int, help="Expiration month (1-12)")
    parser.add_argument("--exp-year", required=True, type=int, help="Expiration year, e.g. 2030")
    parser.add_argument("--units", required=True, type=int, help="Whole currency units")
    parser.add_argument("--nanos", type=int, default=0, help="Sub-unit remainder in nanos")
    parser.add_argument("--currency", default="USD", help="ISO 4217 currency code")
    return parser.parse_args(argv)


def main() -> None:
    asyncio.run(run_client(parse_args()))


if __name__ == "__main__":
    main()
