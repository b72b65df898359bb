"""Builders for charge requests and queue bodies used across tests."""

import json

from payment_queue.domain.models import CardDetails, ChargeRequest, Money


def make_request(
    number: str = "4111111111111111",
    month: int = 12,
    year: int = 2030,
    units: int = 20,
    nanos: int = 0,
    currency: str = "USD",
) -> ChargeRequest:
    return ChargeRequest(
        card=CardDetails(number=number, expiration_month=month, expiration_year=year),
        amount=Money(units=units, nanos=nanos, currency_code=currency),
    )


def make_body(
    number: str = "4111111111111111",
    month: int = 12,
    year: int = 2030,
    units: int = 20,
    nanos: int = 0,
    currency: str = "USD",
) -> str:
    """JSON body in the shape producers put on the queue."""
    return json.dumps(
        {
            "credit_card": {
                "credit_card_number": number,
                "credit_card_expiration_year": year,
                "credit_card_expiration_month": month,
            },
            "amount": {"units": units, "nanos": nanos, "currency_code": currency},
        }
    )
