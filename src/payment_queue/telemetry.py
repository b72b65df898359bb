"""
OpenTelemetry handles shared by the charge path and the consumer.

Only the OpenTelemetry *API* is used here. Without an SDK configured by the
deployment every call is a no-op, so importing this module never requires a
collector to be running.

Synthetic traffic (load tests, synthetic monitors) is marked with the W3C baggage entry
`synthetic_request=true`. Such requests are validated and recorded like any
other, but the `app.payment.charged` span attribute is forced to False so
dashboards can tell them apart.
"""

from collections.abc import Iterator, Mapping
from contextlib import contextmanager

from opentelemetry import baggage, context, metrics, trace

SYNTHETIC_REQUEST = "synthetic_request"

tracer = trace.get_tracer("payment_queue")
meter = metrics.get_meter("payment_queue")

transactions_counter = meter.create_counter(
    "app.payment.transactions",
    description="Successfully charged transactions, by currency",
)


def is_synthetic_request(ctx: context.Context | None = None) -> bool:
    return baggage.get_baggage(SYNTHETIC_REQUEST, ctx) == "true"


@contextmanager
def message_baggage(attributes: Mapping[str, str]) -> Iterator[None]:
    """Propagate the synthetic marker from queue message attributes into baggage."""
    value = attributes.get(SYNTHETIC_REQUEST)
    if value is None:
        yield
        return
    token = context.attach(baggage.set_baggage(SYNTHETIC_REQUEST, value))
    try:
        yield
    finally:
        context.detach(token)
