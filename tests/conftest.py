"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import dataclasses
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator

import pytest

from taskhub.application.ports.bus import SendResult
from taskhub.domain.entities.outbox_event import OutboxEvent
from taskhub.domain.entities.task import Task
from taskhub.domain.entities.user import User
from taskhub.domain.value_objects.enums import OutboxStatus
from taskhub.infrastructure.db.repositories.outbox import STALE_ERROR

_IN_FLIGHT = (OutboxStatus.PENDING, OutboxStatus.PROCESSING)


@dataclass
class FakeOutboxRepo:
    rows: dict[int, OutboxEvent] = field(default_factory=dict)
    _next_id: int = 1

    async def add(
        self,
        event_type: str,
        topic: str,
        payload: str,
        partition_key: str | None,
        created_at: datetime,
    ) -> OutboxEvent:
        event = OutboxEvent(
            id=self._next_id,
            event_type=event_type,
            topic=topic,
            payload=payload,
            partition_key=partition_key,
            status=OutboxStatus.PENDING,
            created_at=created_at,
            processed_at=None,
            retry_count=0,
            error_message=None,
        )
        self.rows[event.id] = event
        self._next_id += 1
        return event

    async def get(self, event_id: int) -> OutboxEvent | None:
        return self.rows.get(event_id)

    async def claim_pending(self, batch_size: int, now: datetime) -> list[OutboxEvent]:
        claimed: list[OutboxEvent] = []
        for event in sorted(self.rows.values(), key=lambda e: (e.created_at, e.id)):
            if len(claimed) >= batch_size:
                break
            if event.status != OutboxStatus.PENDING:
                continue
            if event.partition_key is not None and any(
                o.partition_key == event.partition_key and o.id < event.id and o.status in _IN_FLIGHT
                for o in self.rows.values()
            ):
                continue
            updated = dataclasses.replace(event, status=OutboxStatus.PROCESSING, processed_at=now)
            self.rows[event.id] = updated
            claimed.append(updated)
        return claimed

    async def mark_published(self, event_id: int, now: datetime) -> bool:
        event = self.rows.get(event_id)
        if event is None or event.status != OutboxStatus.PROCESSING:
            return False
        self.rows[event_id] = dataclasses.replace(event, status=OutboxStatus.PUBLISHED, processed_at=now)
        return True

    async def record_failure(
        self,
        event_id: int,
        retry_count: int,
        error_message: str,
        status: OutboxStatus,
    ) -> bool:
        event = self.rows.get(event_id)
        if event is None or event.status != OutboxStatus.PROCESSING:
            return False
        self.rows[event_id] = dataclasses.replace(
            event, status=status, retry_count=retry_count, error_message=error_message,
        )
        return True

    async def release_stale(self, older_than: datetime, max_retries: int) -> int:
        released = 0
        for event in list(self.rows.values()):
            if (
                event.status == OutboxStatus.PROCESSING
                and event.processed_at is not None
                and event.processed_at < older_than
            ):
                attempts = event.retry_count + 1
                exhausted = attempts >= max_retries
                self.rows[event.id] = dataclasses.replace(
                    event,
                    status=OutboxStatus.FAILED if exhausted else OutboxStatus.PENDING,
                    retry_count=attempts,
                    error_message=STALE_ERROR if exhausted else event.error_message,
                )
                released += 1
        return released

    async def delete_published_before(self, cutoff: datetime) -> int:
        doomed = [
            e.id for e in self.rows.values()
            if e.status == OutboxStatus.PUBLISHED and e.processed_at is not None and e.processed_at < cutoff
        ]
        for event_id in doomed:
            del self.rows[event_id]
        return len(doomed)

    def by_status(self, status: OutboxStatus) -> list[OutboxEvent]:
        return [e for e in self.rows.values() if e.status == status]


@dataclass
class FakeProcessedEventRepo:
    keys: dict[str, datetime] = field(default_factory=dict)

    async def exists(self, event_key: str) -> bool:
        return event_key in self.keys

    async def add(self, event_key: str, processed_at: datetime) -> None:
        self.keys[event_key] = processed_at


@dataclass
class FakeUserRepo:
    _store: dict[int, User] = field(default_factory=dict)
    _next_id: int = 1

    async def get(self, user_id: int) -> User | None:
        return self._store.get(user_id)

    async def exists(self, user_id: int) -> bool:
        return user_id in self._store

    async def get_by_email(self, email: str) -> User | None:
        return next((u for u in self._store.values() if u.email == email), None)

    async def add(self, email: str, first_name: str | None, last_name: str | None, now: datetime) -> User:
        user = User(
            id=self._next_id, email=email, first_name=first_name, last_name=last_name,
            created_at=now, updated_at=now,
        )
        self._store[user.id] = user
        self._next_id += 1
        return user

    async def update(self, user_id: int, first_name: str | None, last_name: str | None, now: datetime) -> User:
        user = dataclasses.replace(
            self._store[user_id], first_name=first_name, last_name=last_name, updated_at=now,
        )
        self._store[user_id] = user
        return user

    async def delete(self, user_id: int) -> None:
        self._store.pop(user_id, None)


@dataclass
class FakeTaskRepo:
    _store: dict[int, Task] = field(default_factory=dict)
    _next_id: int = 1
    cascades: list[int] = field(default_factory=list)

    async def get(self, task_id: int) -> Task | None:
        return self._store.get(task_id)

    async def add(self, user_id: int, title: str, description: str | None, status: str, now: datetime) -> Task:
        task = Task(
            id=self._next_id, user_id=user_id, title=title, description=description,
            status=status, created_at=now, updated_at=now,
        )
        self._store[task.id] = task
        self._next_id += 1
        return task

    async def update(self, task_id: int, title: str, description: str | None, status: str, now: datetime) -> Task:
        task = dataclasses.replace(
            self._store[task_id], title=title, description=description, status=status, updated_at=now,
        )
        self._store[task_id] = task
        return task

    async def delete(self, task_id: int) -> None:
        self._store.pop(task_id, None)

    async def delete_for_user(self, user_id: int) -> int:
        self.cascades.append(user_id)
        doomed = [t.id for t in self._store.values() if t.user_id == user_id]
        for task_id in doomed:
            del self._store[task_id]
        return len(doomed)


@dataclass
class FakeUoW:
    """In-memory UoW for unit tests; changes are visible immediately."""
    outbox: FakeOutboxRepo = field(default_factory=FakeOutboxRepo)
    processed_events: FakeProcessedEventRepo = field(default_factory=FakeProcessedEventRepo)
    users: FakeUserRepo = field(default_factory=FakeUserRepo)
    tasks: FakeTaskRepo = field(default_factory=FakeTaskRepo)
    commits: int = 0
    rollbacks: int = 0

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1


def fake_uow_factory(uow: FakeUoW):
    """Every ``async with factory()`` hands out the same in-memory UoW."""

    @asynccontextmanager
    async def _open() -> AsyncIterator[FakeUoW]:
        try:
            yield uow
        except BaseException:
            await uow.rollback()
            raise

    return _open


@dataclass
class FakeBroker:
    sent: list[tuple[str, str, str, dict[str, str]]] = field(default_factory=list)
    error: Exception | None = None
    attempts: int = 0
    delay: float = 0.0

    async def send(
        self,
        topic: str,
        key: str,
        payload: str,
        headers: dict[str, str] | None = None,
    ) -> SendResult:
        self.attempts += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.sent.append((topic, key, payload, dict(headers or {})))
        return SendResult(topic=topic, partition=0, offset=f"{len(self.sent)}-0")


@dataclass
class FakeDirectory:
    """Stand-in for the users service existence endpoint."""
    known: set[int] = field(default_factory=set)
    error: Exception | None = None
    calls: int = 0
    delay: float = 0.0

    async def user_exists(self, user_id: int) -> bool:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return user_id in self.known


class FakeClock:
    """Wall clock for the publisher, moved by hand."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)


class FakeMonotonic:
    """Monotonic clock for the cache and the circuit breaker."""

    def __init__(self) -> None:
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


@pytest.fixture
def uow() -> FakeUoW:
    return FakeUoW()


@pytest.fixture
def broker() -> FakeBroker:
    return FakeBroker()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()
