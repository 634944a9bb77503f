"""Repository and handler tests against an in-memory SQLite database."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.exc import IntegrityError

from taskhub.application.dto.delivery import Delivery
from taskhub.application.dto.events import UserEvent
from taskhub.domain.value_objects.enums import HandleOutcome, OutboxStatus
from taskhub.infrastructure.db import models  # noqa: F401
from taskhub.infrastructure.db.base import Base
from taskhub.infrastructure.db.repositories.outbox import STALE_ERROR
from taskhub.infrastructure.db.session import build_engine, build_session_maker
from taskhub.infrastructure.db.uow import SqlAlchemyUoW, uow_factory
from taskhub.infrastructure.resilience.circuit_breaker import CircuitBreaker
from taskhub.services import outbox_writer
from taskhub.services.existence_cache import UserExistenceCache
from taskhub.services.user_event_handler import UserEventHandler
from tests.conftest import FakeDirectory

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def session_maker():
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield build_session_maker(engine)
    await engine.dispose()


async def _append(session_maker, payload: str, key: str | None, created_at: datetime) -> int:
    async with session_maker() as session:
        uow = SqlAlchemyUoW(session)
        event = await uow.outbox.add("user.created", "user-events", payload, key, created_at)
        await uow.commit()
        return event.id


@pytest.mark.asyncio
async def test_claim_takes_only_head_of_each_key(session_maker):
    first = await _append(session_maker, "e1", "9", T0)
    second = await _append(session_maker, "e2", "9", T0 + timedelta(seconds=1))
    other = await _append(session_maker, "e3", "10", T0 + timedelta(seconds=2))

    async with session_maker() as session:
        uow = SqlAlchemyUoW(session)
        claimed = await uow.outbox.claim_pending(10, T0)
        await uow.commit()

    assert [e.id for e in claimed] == [first, other]
    assert all(e.status == OutboxStatus.PROCESSING for e in claimed)

    async with session_maker() as session:
        uow = SqlAlchemyUoW(session)
        assert (await uow.outbox.get(first)).status == OutboxStatus.PROCESSING
        assert (await uow.outbox.get(second)).status == OutboxStatus.PENDING
        assert await uow.outbox.claim_pending(10, T0) == []


@pytest.mark.asyncio
async def test_claim_respects_batch_size_and_order(session_maker):
    ids = [await _append(session_maker, str(i), str(i), T0 + timedelta(seconds=i)) for i in range(4)]

    async with session_maker() as session:
        uow = SqlAlchemyUoW(session)
        claimed = await uow.outbox.claim_pending(2, T0)

    assert [e.id for e in claimed] == ids[:2]


@pytest.mark.asyncio
async def test_reconcile_updates_are_guarded_by_processing_status(session_maker):
    event_id = await _append(session_maker, "x", "1", T0)

    async with session_maker() as session:
        uow = SqlAlchemyUoW(session)
        assert await uow.outbox.mark_published(event_id, T0) is False
        await uow.outbox.claim_pending(10, T0)
        assert await uow.outbox.record_failure(event_id, 1, "boom", OutboxStatus.PENDING) is True
        await uow.commit()

    async with session_maker() as session:
        uow = SqlAlchemyUoW(session)
        row = await uow.outbox.get(event_id)
        assert row.status == OutboxStatus.PENDING
        assert row.retry_count == 1
        assert row.error_message == "boom"


@pytest.mark.asyncio
async def test_release_stale_and_retention(session_maker):
    stuck = await _append(session_maker, "a", "1", T0)
    done = await _append(session_maker, "b", "2", T0)

    async with session_maker() as session:
        uow = SqlAlchemyUoW(session)
        await uow.outbox.claim_pending(10, T0)
        await uow.outbox.mark_published(done, T0)
        await uow.commit()

    async with session_maker() as session:
        uow = SqlAlchemyUoW(session)
        assert await uow.outbox.release_stale(T0 + timedelta(seconds=61), max_retries=3) == 1
        assert await uow.outbox.delete_published_before(T0 + timedelta(hours=25)) == 1
        await uow.commit()

    async with session_maker() as session:
        uow = SqlAlchemyUoW(session)
        row = await uow.outbox.get(stuck)
        assert row.status == OutboxStatus.PENDING
        assert row.retry_count == 1
        assert await uow.outbox.get(done) is None


@pytest.mark.asyncio
async def test_release_stale_fails_row_out_of_retries(session_maker):
    stuck = await _append(session_maker, "a", "1", T0)

    for _ in range(2):
        async with session_maker() as session:
            uow = SqlAlchemyUoW(session)
            await uow.outbox.claim_pending(10, T0)
            assert await uow.outbox.release_stale(T0 + timedelta(seconds=61), max_retries=2) == 1
            await uow.commit()

    async with session_maker() as session:
        uow = SqlAlchemyUoW(session)
        row = await uow.outbox.get(stuck)
        assert row.status == OutboxStatus.FAILED
        assert row.retry_count == 2
        assert row.error_message == STALE_ERROR
        assert await uow.outbox.claim_pending(10, T0) == []


@pytest.mark.asyncio
async def test_writer_rolls_back_with_business_transaction(session_maker):
    async with session_maker() as session:
        uow = SqlAlchemyUoW(session)
        user = await uow.users.add("ada@example.com", None, None, T0)
        event = await outbox_writer.append("user.created", "user-events", {"userId": user.id}, str(user.id), uow)
        await uow.rollback()

    async with session_maker() as session:
        uow = SqlAlchemyUoW(session)
        assert await uow.outbox.get(event.id) is None
        assert await uow.users.exists(user.id) is False


@pytest.mark.asyncio
async def test_ledger_key_is_unique(session_maker):
    async with session_maker() as session:
        uow = SqlAlchemyUoW(session)
        await uow.processed_events.add("user-events-0-7", T0)
        await uow.commit()

    async with session_maker() as session:
        uow = SqlAlchemyUoW(session)
        assert await uow.processed_events.exists("user-events-0-7") is True
        with pytest.raises(IntegrityError):
            await uow.processed_events.add("user-events-0-7", T0)


@pytest.mark.asyncio
async def test_handler_cascade_and_ledger_commit_together(session_maker):
    async with session_maker() as session:
        uow = SqlAlchemyUoW(session)
        doomed = [
            (await uow.tasks.add(5, "a", None, "TODO", T0)).id,
            (await uow.tasks.add(5, "b", None, "TODO", T0)).id,
        ]
        kept = (await uow.tasks.add(6, "c", None, "TODO", T0)).id
        await uow.commit()

    cache = UserExistenceCache(FakeDirectory(), CircuitBreaker("users"), retry_backoff_seconds=0)
    handler = UserEventHandler(uow_factory(session_maker), cache)
    delivery = Delivery(
        topic="user-events",
        partition=0,
        offset="7",
        payload=UserEvent(event_type="DELETED", user_id=5).model_dump_json(by_alias=True),
    )

    assert await handler.handle(delivery) == HandleOutcome.PROCESSED
    assert await handler.handle(delivery) == HandleOutcome.ALREADY_PROCESSED

    async with session_maker() as session:
        uow = SqlAlchemyUoW(session)
        assert [await uow.tasks.get(task_id) for task_id in doomed] == [None, None]
        assert (await uow.tasks.get(kept)).user_id == 6
        assert await uow.processed_events.exists("user-events-0-7") is True
