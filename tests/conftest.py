"""Shared pytest fixtures for the test suite."""

from datetime import date

import pytest

from payment_queue.services.factory import ServiceFactory
from payment_queue.services.payment import PaymentService
from payment_queue.services.queue import InMemoryMessageQueue
from payment_queue.services.transactions import InMemoryTransactionSink


@pytest.fixture
def today() -> date:
    """A fixed date for deterministic expiration checks."""
    return date(2026, 10, 15)


@pytest.fixture
def sink() -> InMemoryTransactionSink:
    return InMemoryTransactionSink()


@pytest.fixture
def payments(sink: InMemoryTransactionSink, today: date) -> PaymentService:
    return PaymentService(sink, today=lambda: today)


@pytest.fixture
def queue() -> InMemoryMessageQueue:
    return InMemoryMessageQueue()


@pytest.fixture
def factory_payments(monkeypatch: pytest.MonkeyPatch, payments: PaymentService) -> PaymentService:
    """Install `payments` as the process-wide PaymentService singleton."""
    monkeypatch.setattr(ServiceFactory, "_payment", payments)
    return payments
