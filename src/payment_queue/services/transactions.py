"""
Transaction persistence.

Every successful charge is written to the `transactions` table. The write is
part of the charge: if it fails, the error propagates, the consumer does not
delete the message, and the charge is retried on redelivery.

Schema preparation (create tables; optionally drop and recreate the
`idx_transactions_currency` index) is an explicit start-up step. Each sink
instance runs it at most once, no matter how many callers ask.
"""

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Protocol

from sqlalchemy import BigInteger, DateTime, Index, Integer, String, Uuid, func
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from payment_queue.domain.models import TransactionOutcome

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class TransactionRecord(Base):
    """One row per charged transaction. Only the last four card digits are stored."""

    __tablename__ = "transactions"

    transaction_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    card_type: Mapped[str] = mapped_column(String(16), nullable=False)
    last_four_digits: Mapped[str] = mapped_column(String(4), nullable=False)
    amount_units: Mapped[int] = mapped_column(BigInteger, nullable=False)
    amount_nanos: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (Index("idx_transactions_currency", "currency_code"),)

    @classmethod
    def from_outcome(cls, outcome: TransactionOutcome) -> "TransactionRecord":
        return cls(
            transaction_id=outcome.transaction_id,
            card_type=outcome.card_type.value,
            last_four_digits=outcome.last_four_digits,
            amount_units=outcome.amount.units,
            amount_nanos=outcome.amount.nanos,
            currency_code=outcome.amount.currency_code,
        )


CURRENCY_INDEX: Index = next(iter(TransactionRecord.__table__.indexes))


class TransactionSink(Protocol):
    """Interface for recording charged transactions.

    Any class with these two coroutines satisfies the protocol (structural
    subtyping, no explicit inheritance needed).
    """

    async def prepare(self, *, rebuild_indexes: bool = False) -> None: ...

    async def record(self, outcome: TransactionOutcome) -> None: ...


class SqlTransactionSink:
    """Writes transactions through a long-lived SQLAlchemy async engine."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._sessions = async_sessionmaker(engine, expire_on_commit=False)
        self._prepared = False
        self._prepare_lock = asyncio.Lock()

    async def prepare(self, *, rebuild_indexes: bool = False) -> None:
        async with self._prepare_lock:
            if self._prepared:
                return
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
                if rebuild_indexes:
                    await conn.run_sync(_rebuild_currency_index)
            self._prepared = True
        logger.info("Transaction schema ready (rebuild_indexes=%s)", rebuild_indexes)

    async def record(self, outcome: TransactionOutcome) -> None:
        async with self._sessions() as session, session.begin():
            session.add(TransactionRecord.from_outcome(outcome))
        logger.debug("Persisted transaction %s", outcome.transaction_id)

    async def dispose(self) -> None:
        await self._engine.dispose()


def _rebuild_currency_index(conn: Connection) -> None:
    logger.info("Rebuilding index %r on %r", CURRENCY_INDEX.name, TransactionRecord.__tablename__)
    CURRENCY_INDEX.drop(conn, checkfirst=True)
    CURRENCY_INDEX.create(conn, checkfirst=True)


class InMemoryTransactionSink:
    """Keeps outcomes in a list. For tests and local dry runs."""

    def __init__(self) -> None:
        self.records: list[TransactionOutcome] = []
        self.prepare_calls = 0

    async def prepare(self, *, rebuild_indexes: bool = False) -> None:
        self.prepare_calls += 1

    async def record(self, outcome: TransactionOutcome) -> None:
        self.records.append(outcome)
