"""Tests for the SQLAlchemy transaction sink, run against in-memory SQLite."""

from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import inspect, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from payment_queue.domain.models import CardType, Money, TransactionOutcome
from payment_queue.services.transactions import SqlTransactionSink, TransactionRecord


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    yield engine
    await engine.dispose()


def _outcome() -> TransactionOutcome:
    return TransactionOutcome(
        transaction_id=uuid4(),
        card_type=CardType.VISA,
        last_four_digits="1111",
        amount=Money(units=20, nanos=250_000_000, currency_code="USD"),
    )


async def _index_names(engine: AsyncEngine) -> set[str]:
    async with engine.connect() as conn:
        indexes = await conn.run_sync(lambda c: inspect(c).get_indexes("transactions"))
    return {index["name"] for index in indexes}


class TestSqlTransactionSink:
    async def test_prepare_creates_table_and_index(self, engine: AsyncEngine) -> None:
        sink = SqlTransactionSink(engine)

        await sink.prepare()

        assert "idx_transactions_currency" in await _index_names(engine)

    async def test_prepare_with_index_rebuild_is_repeatable(self, engine: AsyncEngine) -> None:
        await SqlTransactionSink(engine).prepare(rebuild_indexes=True)
        await SqlTransactionSink(engine).prepare(rebuild_indexes=True)

        assert "idx_transactions_currency" in await _index_names(engine)

    async def test_prepare_runs_once_per_sink(self, engine: AsyncEngine) -> None:
        sink = SqlTransactionSink(engine)
        await sink.prepare()
        async with engine.begin() as conn:
            await conn.exec_driver_sql("DROP INDEX idx_transactions_currency")

        await sink.prepare(rebuild_indexes=True)

        assert "idx_transactions_currency" not in await _index_names(engine)

    async def test_record_writes_the_real_transaction(self, engine: AsyncEngine) -> None:
        sink = SqlTransactionSink(engine)
        await sink.prepare()
        outcome = _outcome()

        await sink.record(outcome)

        sessions = async_sessionmaker(engine)
        async with sessions() as session:
            rows = (await session.scalars(select(TransactionRecord))).all()
        assert len(rows) == 1
        row = rows[0]
        assert row.transaction_id == outcome.transaction_id
        assert row.card_type == "visa"
        assert row.last_four_digits == "1111"
        assert (row.amount_units, row.amount_nanos, row.currency_code) == (20, 250_000_000, "USD")
        assert row.created_at is not None

    async def test_duplicate_transaction_id_raises(self, engine: AsyncEngine) -> None:
        sink = SqlTransactionSink(engine)
        await sink.prepare()
        outcome = _outcome()
        await sink.record(outcome)

        with pytest.raises(IntegrityError):
            await sink.record(outcome)
