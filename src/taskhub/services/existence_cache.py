"""Cached, circuit-broken view of "does this user exist" in the users service."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable

from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from taskhub.application.exceptions import ServiceUnavailableError, UserNotFoundError
from taskhub.application.ports.existence import UserDirectory
from taskhub.infrastructure.resilience.circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _Entry:
    exists: bool
    written_at: float

    def is_expired(self, ttl: float, now: float) -> bool:
        return now - self.written_at > ttl


class UserExistenceCache:
    """TTL cache in front of the remote existence check.

    One instance per process, created at startup and injected where needed.
    Entries are never swept; they expire on read and are dropped by
    ``evict``/``evict_all`` when a user event arrives.

    When the remote side is unavailable (circuit open, or retries exhausted)
    an entry up to twice the TTL old is still trusted. Without one the
    answer is "exists" when ``fail_open`` is set: task creation keeps working
    during a users-service outage at the cost of possibly orphaned tasks,
    which the user.deleted cascade cleans up later.
    """

    def __init__(
        self,
        directory: UserDirectory,
        breaker: CircuitBreaker,
        *,
        ttl_seconds: float = 300.0,
        retry_attempts: int = 3,
        retry_backoff_seconds: float = 0.2,
        fail_open: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._directory = directory
        self._breaker = breaker
        self._ttl = ttl_seconds
        self._retry_attempts = retry_attempts
        self._retry_backoff = retry_backoff_seconds
        self._fail_open = fail_open
        self._clock = clock
        self._entries: dict[int, _Entry] = {}

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    def __len__(self) -> int:
        return len(self._entries)

    async def exists(self, user_id: int) -> bool:
        """Return True or raise UserNotFoundError."""
        entry = self._entries.get(user_id)
        if entry is not None and not entry.is_expired(self._ttl, self._clock()):
            logger.debug("User %d answered from cache", user_id)
            return self._answer(user_id, entry.exists)

        if not self._breaker.allow_request():
            return self._fallback(user_id, "circuit open")

        try:
            found = await self._check_remote(user_id)
        except asyncio.CancelledError:
            self._breaker.record_failure()
            raise
        except Exception as exc:
            self._breaker.record_failure()
            logger.warning("Existence check for user %d failed: %s", user_id, exc)
            return self._fallback(user_id, "remote check failed")

        self._breaker.record_success()
        self._entries[user_id] = _Entry(exists=found, written_at=self._clock())
        logger.debug("User %d validated and cached (exists=%s)", user_id, found)
        return self._answer(user_id, found)

    def evict(self, user_id: int) -> None:
        self._entries.pop(user_id, None)
        logger.debug("User %d evicted from cache", user_id)

    def evict_all(self) -> None:
        self._entries.clear()
        logger.debug("All users evicted from cache")

    async def _check_remote(self, user_id: int) -> bool:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._retry_attempts),
            wait=wait_exponential(multiplier=self._retry_backoff),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._directory.user_exists(user_id)
        raise AssertionError("unreachable")

    def _fallback(self, user_id: int, reason: str) -> bool:
        entry = self._entries.get(user_id)
        if entry is not None and not entry.is_expired(2 * self._ttl, self._clock()):
            logger.warning("Using stale cache entry for user %d (%s)", user_id, reason)
            return self._answer(user_id, entry.exists)
        if self._fail_open:
            logger.warning("No usable cache entry for user %d (%s), assuming it exists", user_id, reason)
            return True
        raise ServiceUnavailableError(f"Cannot verify user {user_id}: {reason}")

    @staticmethod
    def _answer(user_id: int, exists: bool) -> bool:
        if not exists:
            raise UserNotFoundError(user_id)
        return True
