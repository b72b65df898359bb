"""
Simple factory for process-wide service singletons.

The **Factory pattern** centralises service construction. Entrypoints and
activities call `ServiceFactory.get_*()` instead of instantiating services
themselves.

Benefits:
  - The SQS client and the database engine are long-lived handles, created
    once per process and reused by every poll and every activity.
  - Single point of change for constructor args (all taken from Settings).
  - Easy to swap implementations for testing (replace class-level cache).
"""

from sqlalchemy.ext.asyncio import create_async_engine

from payment_queue.config import Settings, get_settings
from payment_queue.services.payment import PaymentService
from payment_queue.services.queue import MessageQueue, SqsMessageQueue
from payment_queue.services.transactions import SqlTransactionSink, TransactionSink


class ServiceFactory:
    """Lazily creates and caches service instances (class-level singletons)."""

    _settings: Settings | None = None
    _sink: TransactionSink | None = None
    _queue: MessageQueue | None = None
    _payment: PaymentService | None = None

    @classmethod
    def get_settings(cls) -> Settings:
        if cls._settings is None:
            cls._settings = get_settings()
        return cls._settings

    @classmethod
    def get_transaction_sink(cls) -> TransactionSink:
        if cls._sink is None:
            engine = create_async_engine(cls.get_settings().sqlalchemy_url, pool_pre_ping=True)
            cls._sink = SqlTransactionSink(engine)
        return cls._sink

    @classmethod
    def get_message_queue(cls) -> MessageQueue:
        if cls._queue is None:
            settings = cls.get_settings()
            if not settings.queue_url:
                raise RuntimeError("QUEUE_URL is not configured")
            cls._queue = SqsMessageQueue.connect(
                settings.queue_url,
                region=settings.aws_region,
                endpoint_url=settings.sqs_endpoint_url,
                dead_letter_queue_url=settings.dead_letter_queue_url,
            )
        return cls._queue

    @classmethod
    def get_payment_service(cls) -> PaymentService:
        if cls._payment is None:
            cls._payment = PaymentService(
                cls.get_transaction_sink(),
                accepted_networks=cls.get_settings().accepted_networks,
            )
        return cls._payment

    @classmethod
    async def close(cls) -> None:
        """Release pooled connections and forget every cached instance."""
        if isinstance(cls._sink, SqlTransactionSink):
            await cls._sink.dispose()
        cls._settings = None
        cls._sink = None
        cls._queue = None
        cls._payment = None
