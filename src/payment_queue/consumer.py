"""
Queue consumer: long-polls the charge queue and processes each message.

The consumer alternates between two states, forever:

  **Polling**     ask the transport for up to `batch_size` messages, blocking
                  up to `wait_time_seconds` (long poll). A failed receive is
                  logged and retried after an exponential backoff.
  **Processing**  handle the batch strictly one message at a time, in the
                  order the transport returned it.

Acknowledgement discipline (at-least-once delivery):
  - A message is deleted only after its charge succeeded AND its transaction
    was persisted.
  - On any failure the message is left on the queue; the transport's
    visibility timeout redelivers it later.
  - A message that keeps failing is moved to the dead-letter queue once its
    receive count reaches `max_receive_count`, so a poison message cannot
    loop forever.

Shutdown: `stop()` sets a flag. The batch in progress drains, no further
receive is issued, and `run()` returns.

Run with:
    python -m payment_queue.consumer
"""

import asyncio
import enum
import logging
import random
import signal
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta

from opentelemetry.trace import Status, StatusCode
from pydantic import ValidationError
from temporalio.common import RetryPolicy

from payment_queue.config import LOG_FORMAT, Settings
from payment_queue.domain.exceptions import (
    ChargeValidationError,
    MalformedMessageError,
)
from payment_queue.domain.models import ChargeMessage, ChargeRequest, QueueMessage
from payment_queue.services.factory import ServiceFactory
from payment_queue.services.payment import PaymentService
from payment_queue.services.queue import MessageQueue
from payment_queue.telemetry import message_baggage, tracer

logger = logging.getLogger(__name__)

DEFAULT_RECEIVE_RETRY = RetryPolicy(
    initial_interval=timedelta(seconds=1),
    backoff_coefficient=2.0,
    maximum_interval=timedelta(seconds=30),
)
"""Delay schedule between failed receives. Only the interval fields are read;
`maximum_attempts` is ignored and the loop retries until stopped."""


class MessageDisposition(enum.Enum):
    """What happened to a message after one processing attempt."""

    DELETED = "deleted"              # Charged and acknowledged
    RETAINED = "retained"            # Left on the queue for redelivery
    DEAD_LETTERED = "dead_lettered"  # Moved to the dead-letter queue


@dataclass
class BatchReport:
    received: int = 0
    deleted: int = 0
    retained: int = 0
    dead_lettered: int = 0

    def count(self, disposition: MessageDisposition) -> None:
        if disposition is MessageDisposition.DELETED:
            self.deleted += 1
        elif disposition is MessageDisposition.DEAD_LETTERED:
            self.dead_lettered += 1
        else:
            self.retained += 1


def parse_charge_request(body: str) -> ChargeRequest:
    try:
        return ChargeMessage.model_validate_json(body).to_request()
    except ValidationError as e:
        raise MalformedMessageError(f"Cannot parse charge request: {e.error_count()} error(s)") from e


def backoff_delay(policy: RetryPolicy, failures: int) -> float:
    """Seconds to wait after `failures` consecutive receive failures (failures >= 1)."""
    delay = policy.initial_interval.total_seconds() * policy.backoff_coefficient ** (failures - 1)
    if policy.maximum_interval is not None:
        delay = min(delay, policy.maximum_interval.total_seconds())
    return delay


class QueueConsumer:
    """Single cooperative consumer loop over one message queue."""

    def __init__(
        self,
        queue: MessageQueue,
        payments: PaymentService,
        *,
        batch_size: int = 10,
        wait_time_seconds: int = 20,
        jitter_ms: tuple[int, int] = (1, 1500),
        slow_warning_ms: int = 2700,
        slow_error_ms: int = 3600,
        max_receive_count: int | None = 5,
        receive_retry: RetryPolicy = DEFAULT_RECEIVE_RETRY,
        rebuild_indexes: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._queue = queue
        self._payments = payments
        self._batch_size = batch_size
        self._wait_time_seconds = wait_time_seconds
        self._jitter_ms = jitter_ms
        self._slow_warning_ms = slow_warning_ms
        self._slow_error_ms = slow_error_ms
        self._max_receive_count = max_receive_count or None
        self._receive_retry = receive_retry
        self._rebuild_indexes = rebuild_indexes
        self._clock = clock
        self._stopping = asyncio.Event()

    @classmethod
    def from_settings(cls, settings: Settings, queue: MessageQueue, payments: PaymentService) -> "QueueConsumer":
        """Build a consumer from settings.

        Dead-lettering needs somewhere to send the message. Without
        `dead_letter_queue_url` it is switched off and a failing message is
        left to the source queue's own redrive policy.
        """
        max_receive_count = settings.max_receive_count or None
        if max_receive_count and not settings.dead_letter_queue_url:
            logger.warning(
                "DEAD_LETTER_QUEUE_URL is not set; dead-lettering disabled, "
                "failing messages are left to the queue's redrive policy"
            )
            max_receive_count = None
        return cls(
            queue,
            payments,
            batch_size=settings.batch_size,
            wait_time_seconds=settings.wait_time_seconds,
            jitter_ms=(settings.jitter_min_ms, settings.jitter_max_ms),
            slow_warning_ms=settings.slow_warning_ms,
            slow_error_ms=settings.slow_error_ms,
            max_receive_count=max_receive_count,
            receive_retry=RetryPolicy(
                initial_interval=timedelta(seconds=settings.receive_backoff_initial_seconds),
                backoff_coefficient=2.0,
                maximum_interval=timedelta(seconds=settings.receive_backoff_max_seconds),
            ),
            rebuild_indexes=settings.rebuild_indexes,
        )

    @property
    def stopping(self) -> bool:
        return self._stopping.is_set()

    def stop(self) -> None:
        if not self._stopping.is_set():
            logger.info("Stop requested; finishing current batch")
        self._stopping.set()

    async def run(self) -> None:
        await self._payments.prepare(rebuild_indexes=self._rebuild_indexes)
        logger.info(
            "Consumer started (batch_size=%d, wait_time_seconds=%d)",
            self._batch_size,
            self._wait_time_seconds,
        )

        failures = 0
        while not self._stopping.is_set():
            try:
                report = await self.poll_once()
            except Exception:
                failures += 1
                delay = backoff_delay(self._receive_retry, failures)
                logger.exception("Receive failed (%d in a row); retrying in %.1fs", failures, delay)
                await self._wait_unless_stopped(delay)
                continue

            failures = 0
            if report.received:
                logger.info(
                    "Batch done: received=%d deleted=%d retained=%d dead_lettered=%d",
                    report.received,
                    report.deleted,
                    report.retained,
                    report.dead_lettered,
                )
            # Yield before the next poll so other tasks (signal handlers) run.
            await asyncio.sleep(0)

        logger.info("Consumer stopped")

    async def poll_once(self) -> BatchReport:
        """Receive one batch and process it.

        Raises:
            TransportError: The receive call failed. Per-message failures
                never propagate; run() backs off on any receive error.
        """
        messages = await self._queue.receive(self._batch_size, self._wait_time_seconds)
        report = BatchReport(received=len(messages))
        for message in messages:
            report.count(await self.process_message(message))
        return report

    async def process_message(self, message: QueueMessage) -> MessageDisposition:
        started = self._clock()
        with tracer.start_as_current_span("process_message") as span:
            span.set_attribute("messaging.message.id", message.message_id)
            try:
                request = parse_charge_request(message.body)
                logger.info("Charge request received: message %s", message.message_id)
                with message_baggage(message.attributes):
                    outcome = await self._payments.charge(request)
            except (ChargeValidationError, MalformedMessageError) as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                logger.error(
                    "Error processing charge for message %s (receive #%d): %s",
                    message.message_id,
                    message.receive_count,
                    e,
                )
                return await self._handle_failure(message, e)
            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                logger.exception(
                    "Unexpected error processing message %s (receive #%d)",
                    message.message_id,
                    message.receive_count,
                )
                return await self._handle_failure(message, e)

            await asyncio.sleep(random.randint(*self._jitter_ms) / 1000)
            try:
                await self._queue.delete(message)
            except Exception:
                logger.exception(
                    "Charged transaction %s but could not delete message %s; it will be redelivered",
                    outcome.transaction_id,
                    message.message_id,
                )
                return MessageDisposition.RETAINED

        self._check_duration(message, (self._clock() - started) * 1000)
        logger.info("Charge processed: transaction %s, message %s deleted", outcome.transaction_id, message.message_id)
        return MessageDisposition.DELETED

    async def _handle_failure(self, message: QueueMessage, error: Exception) -> MessageDisposition:
        if self._max_receive_count is None or message.receive_count < self._max_receive_count:
            return MessageDisposition.RETAINED

        reason = f"{type(error).__name__}: {error}"
        try:
            await self._queue.dead_letter(message, reason)
        except Exception:
            logger.exception("Could not dead-letter message %s; leaving it on the queue", message.message_id)
            return MessageDisposition.RETAINED
        logger.warning(
            "Message %s dead-lettered after %d receives: %s",
            message.message_id,
            message.receive_count,
            reason,
        )
        return MessageDisposition.DEAD_LETTERED

    def _check_duration(self, message: QueueMessage, elapsed_ms: float) -> None:
        if elapsed_ms > self._slow_error_ms:
            logger.error("Processing message %s took %.0f ms", message.message_id, elapsed_ms)
        elif elapsed_ms > self._slow_warning_ms:
            logger.warning("Processing message %s is slow: %.0f ms", message.message_id, elapsed_ms)

    async def _wait_unless_stopped(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except TimeoutError:
            pass


async def run_consumer() -> None:
    settings = ServiceFactory.get_settings()
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)

    consumer = QueueConsumer.from_settings(
        settings,
        ServiceFactory.get_message_queue(),
        ServiceFactory.get_payment_service(),
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, consumer.stop)

    try:
        await consumer.run()
    finally:
        await ServiceFactory.close()


def main() -> None:
    asyncio.run(run_consumer())


if __name__ == "__main__":
    main()
