"""
Charge validation and processing.

`charge()` is stateless: the same request always gets the same validation
verdict, and a fresh transaction id on success. Checks run in a fixed order
and the first failure wins:

    1. card number valid (network prefix + length + Luhn)  → InvalidCardError
    2. network on the accepted list                        → UnsupportedNetworkError
    3. card not expired (month granularity)                → CardExpiredError

Persistence is NOT done here; see PaymentService, which wraps this function
and writes the outcome to the transaction sink.
"""

import logging
from collections.abc import Collection
from datetime import UTC, date, datetime
from uuid import uuid4

from payment_queue.domain.cards import last_four_digits, validate_card
from payment_queue.domain.exceptions import (
    CardExpiredError,
    InvalidCardError,
    UnsupportedNetworkError,
)
from payment_queue.domain.models import CardType, ChargeRequest, TransactionOutcome
from payment_queue.telemetry import is_synthetic_request, tracer, transactions_counter

logger = logging.getLogger(__name__)

DEFAULT_ACCEPTED_NETWORKS: frozenset[CardType] = frozenset({CardType.VISA, CardType.MASTERCARD})


def is_expired(expiration_year: int, expiration_month: int, today: date) -> bool:
    """A card is usable through the last day of its expiration month."""
    return expiration_year * 12 + expiration_month < today.year * 12 + today.month


def charge(
    request: ChargeRequest,
    *,
    accepted_networks: Collection[CardType] = DEFAULT_ACCEPTED_NETWORKS,
    today: date | None = None,
) -> TransactionOutcome:
    """Validate a charge request and mint a transaction for it.

    Args:
        request: Card and amount to charge.
        accepted_networks: Networks this deployment is allowed to process.
        today: Date used for the expiration check; defaults to today (UTC).

    Returns:
        TransactionOutcome with a new UUID4 transaction id.

    Raises:
        InvalidCardError: Card number failed classification.
        UnsupportedNetworkError: Card network not in `accepted_networks`.
        CardExpiredError: Card expired before the current month.
    """
    today = today or datetime.now(UTC).date()
    card = request.card

    # record_exception / set_status_on_exception default to True, so each
    # rejection below is attached to the span with an ERROR status.
    with tracer.start_as_current_span("charge") as span:
        result = validate_card(card.number)
        span.set_attributes(
            {
                "app.payment.card_type": result.card_type.value,
                "app.payment.card_valid": result.is_valid,
            }
        )

        if not result.is_valid:
            raise InvalidCardError("Credit card info is invalid.")

        if result.card_type not in accepted_networks:
            accepted = " or ".join(sorted(n.value for n in accepted_networks))
            raise UnsupportedNetworkError(
                f"Sorry, we cannot process {result.card_type.value} credit cards. "
                f"Only {accepted} is accepted."
            )

        last_four = last_four_digits(card.number)
        if is_expired(card.expiration_year, card.expiration_month, today):
            raise CardExpiredError(
                f"The credit card (ending {last_four}) expired on "
                f"{card.expiration_month}/{card.expiration_year}."
            )

        span.set_attribute("app.payment.charged", not is_synthetic_request())

        outcome = TransactionOutcome(
            transaction_id=uuid4(),
            card_type=result.card_type,
            last_four_digits=last_four,
            amount=request.amount,
        )

    amount = outcome.amount
    logger.info(
        "Transaction complete: id=%s card_type=%s last_four=%s amount=%d.%09d %s",
        outcome.transaction_id,
        outcome.card_type.value,
        outcome.last_four_digits,
        amount.units,
        amount.nanos,
        amount.currency_code,
    )
    transactions_counter.add(1, {"app.payment.currency": amount.currency_code})
    return outcome
