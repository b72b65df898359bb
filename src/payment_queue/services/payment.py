"""
Payment service facade.

Part of the **service layer**: it combines the stateless charge processor with
the transaction sink. Callers (the queue consumer and the Temporal activity)
talk to this class and never to the sink directly.

A charge counts as done only after its transaction is persisted. If the sink
raises, the exception propagates and the caller must not acknowledge the
request.
"""

import logging
from collections.abc import Callable, Collection
from datetime import UTC, date, datetime

from payment_queue.domain.models import CardType, ChargeRequest, TransactionOutcome
from payment_queue.services.processor import DEFAULT_ACCEPTED_NETWORKS, charge
from payment_queue.services.transactions import TransactionSink

logger = logging.getLogger(__name__)


def utc_today() -> date:
    return datetime.now(UTC).date()


class PaymentService:
    """Validates charges and records the resulting transactions."""

    def __init__(
        self,
        sink: TransactionSink,
        accepted_networks: Collection[CardType] = DEFAULT_ACCEPTED_NETWORKS,
        today: Callable[[], date] = utc_today,
    ) -> None:
        self._sink = sink
        self._accepted_networks = frozenset(accepted_networks)
        self._today = today

    async def prepare(self, *, rebuild_indexes: bool = False) -> None:
        await self._sink.prepare(rebuild_indexes=rebuild_indexes)

    async def charge(self, request: ChargeRequest) -> TransactionOutcome:
        logger.info(
            "Charging %d.%09d %s",
            request.amount.units,
            request.amount.nanos,
            request.amount.currency_code,
        )
        outcome = charge(request, accepted_networks=self._accepted_networks, today=self._today())
        await self._sink.record(outcome)
        logger.info("Charge successful, transaction %s recorded", outcome.transaction_id)
        return outcome
