"""Tests for synthetic-request baggage and the telemetry recorded by charges."""

from datetime import date

import pytest
from opentelemetry import metrics, trace
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from payment_queue.domain.exceptions import InvalidCardError, UnsupportedNetworkError
from payment_queue.services.processor import charge
from payment_queue.telemetry import is_synthetic_request, message_baggage

from factories import make_request


@pytest.fixture(scope="module")
def sdk() -> tuple[InMemorySpanExporter, InMemoryMetricReader]:
    """Install in-memory SDK providers behind the module-level tracer and meter."""
    exporter = InMemorySpanExporter()
    tracer_provider = TracerProvider()
    tracer_provider.add_span_processor(SimpleSpanProcessor(exporter))
    trace.set_tracer_provider(tracer_provider)

    reader = InMemoryMetricReader()
    metrics.set_meter_provider(MeterProvider(metric_readers=[reader]))
    return exporter, reader


@pytest.fixture
def exporter(sdk: tuple[InMemorySpanExporter, InMemoryMetricReader]) -> InMemorySpanExporter:
    exporter, _ = sdk
    exporter.clear()
    return exporter


@pytest.fixture
def reader(sdk: tuple[InMemorySpanExporter, InMemoryMetricReader]) -> InMemoryMetricReader:
    return sdk[1]


def charge_span(exporter: InMemorySpanExporter) -> ReadableSpan:
    (span,) = [s for s in exporter.get_finished_spans() if s.name == "charge"]
    return span


def transactions_for(reader: InMemoryMetricReader, currency: str) -> int:
    data = reader.get_metrics_data()
    if data is None:
        return 0
    for resource_metrics in data.resource_metrics:
        for scope_metrics in resource_metrics.scope_metrics:
            for metric in scope_metrics.metrics:
                if metric.name != "app.payment.transactions":
                    continue
                for point in metric.data.data_points:
                    if dict(point.attributes) == {"app.payment.currency": currency}:
                        return point.value
    return 0


class TestSyntheticBaggage:
    def test_plain_request_is_not_synthetic(self) -> None:
        assert is_synthetic_request() is False

    def test_message_attribute_marks_request_synthetic_inside_block(self) -> None:
        with message_baggage({"synthetic_request": "true"}):
            assert is_synthetic_request() is True

        assert is_synthetic_request() is False

    def test_other_values_are_not_synthetic(self) -> None:
        with message_baggage({"synthetic_request": "false"}):
            assert is_synthetic_request() is False

    def test_missing_attribute_leaves_context_untouched(self) -> None:
        with message_baggage({"trace": "abc"}):
            assert is_synthetic_request() is False


class TestChargeSpan:
    def test_successful_charge_is_marked_charged(self, exporter: InMemorySpanExporter, today: date) -> None:
        charge(make_request("4111111111111111"), today=today)

        span = charge_span(exporter)
        assert span.attributes["app.payment.card_type"] == "visa"
        assert span.attributes["app.payment.card_valid"] is True
        assert span.attributes["app.payment.charged"] is True
        assert span.status.status_code is not StatusCode.ERROR

    def test_synthetic_charge_is_not_marked_charged(self, exporter: InMemorySpanExporter, today: date) -> None:
        with message_baggage({"synthetic_request": "true"}):
            charge(make_request("5555555555554444"), today=today)

        span = charge_span(exporter)
        assert span.attributes["app.payment.card_type"] == "mastercard"
        assert span.attributes["app.payment.charged"] is False

    def test_invalid_card_span_records_error(self, exporter: InMemorySpanExporter, today: date) -> None:
        with pytest.raises(InvalidCardError):
            charge(make_request("4111111111111112"), today=today)

        span = charge_span(exporter)
        assert span.attributes["app.payment.card_valid"] is False
        assert "app.payment.charged" not in span.attributes
        assert span.status.status_code is StatusCode.ERROR
        assert [event.name for event in span.events] == ["exception"]

    def test_unsupported_network_span_records_error(self, exporter: InMemorySpanExporter, today: date) -> None:
        with pytest.raises(UnsupportedNetworkError):
            charge(make_request("378282246310005"), today=today)

        span = charge_span(exporter)
        assert span.attributes["app.payment.card_type"] == "amex"
        assert span.attributes["app.payment.card_valid"] is True
        assert span.status.status_code is StatusCode.ERROR


class TestTransactionsCounter:
    def test_counts_successful_charges_by_currency(self, reader: InMemoryMetricReader, today: date) -> None:
        before = transactions_for(reader, "CHF")

        charge(make_request(currency="CHF"), today=today)
        charge(make_request("5555555555554444", currency="CHF"), today=today)

        assert transactions_for(reader, "CHF") - before == 2

    def test_rejected_charges_are_not_counted(self, reader: InMemoryMetricReader, today: date) -> None:
        before = transactions_for(reader, "SEK")

        with pytest.raises(InvalidCardError):
            charge(make_request("4111111111111112", currency="SEK"), today=today)

        assert transactions_for(reader, "SEK") == before
