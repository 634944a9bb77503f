"""Outbox publisher: claims pending outbox rows and sends them to the broker."""
from __future__ import annotations

import asyncio
import logging
from datetime import timedelta

import redis.asyncio as aioredis

from taskhub.application.ports.bus import MessageBroker, SendResult
from taskhub.application.ports.clock import Clock, SystemClock
from taskhub.application.uow import UoWFactory
from taskhub.config import settings
from taskhub.domain.entities.outbox_event import OutboxEvent
from taskhub.domain.value_objects.enums import OutboxStatus
from taskhub.infrastructure.bus.redis_streams import RedisStreamBroker
from taskhub.infrastructure.db.session import AsyncSessionLocal
from taskhub.infrastructure.db.uow import uow_factory
from taskhub.infrastructure.metrics import (
    outbox_published_total,
    outbox_send_failures_total,
    outbox_stale_released_total,
)
from taskhub.workers.periodic import PeriodicTask

logger = logging.getLogger(__name__)

_MAX_ERROR_LENGTH = 2000


class OutboxPublisher:
    """Moves outbox rows from PENDING to PUBLISHED (or FAILED).

    Every status change after the claim is conditional on the row still
    being PROCESSING, so a row released by the watchdog and claimed again
    elsewhere is never overwritten by a late reconcile.
    """

    def __init__(
        self,
        uow_factory: UoWFactory,
        broker: MessageBroker,
        *,
        batch_size: int = 10,
        max_retries: int = 3,
        stale_after: timedelta = timedelta(seconds=60),
        send_timeout: float = 30.0,
        retention: timedelta = timedelta(hours=24),
        clock: Clock | None = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._broker = broker
        self._batch_size = batch_size
        self._max_retries = max_retries
        self._stale_after = stale_after
        self._send_timeout = send_timeout
        self._retention = retention
        self._clock = clock or SystemClock()

    async def tick(self) -> int:
        """One claim/send/reconcile round; returns the number published."""
        now = self._clock.now()
        async with self._uow_factory() as uow:
            released = await uow.outbox.release_stale(now - self._stale_after, self._max_retries)
            batch = await uow.outbox.claim_pending(self._batch_size, now)
            await uow.commit()

        if released:
            outbox_stale_released_total.inc(released)
            logger.warning("Released %d stale PROCESSING outbox events", released)
        if not batch:
            return 0

        logger.debug("Publishing %d outbox events", len(batch))
        results = await asyncio.gather(
            *(self._send(event) for event in batch),
            return_exceptions=True,
        )

        published = 0
        for event, result in zip(batch, results):
            if isinstance(result, BaseException):
                await self._record_failure(event, result)
            elif await self._mark_published(event, result):
                published += 1
        if published:
            logger.info("Published %d outbox events", published)
        return published

    async def cleanup(self) -> int:
        cutoff = self._clock.now() - self._retention
        async with self._uow_factory() as uow:
            deleted = await uow.outbox.delete_published_before(cutoff)
            await uow.commit()
        logger.info("Cleaned up %d published outbox events older than %s", deleted, cutoff)
        return deleted

    async def _send(self, event: OutboxEvent) -> SendResult:
        return await asyncio.wait_for(
            self._broker.send(event.topic, event.routing_key, event.payload),
            self._send_timeout,
        )

    async def _mark_published(self, event: OutboxEvent, result: SendResult) -> bool:
        async with self._uow_factory() as uow:
            updated = await uow.outbox.mark_published(event.id, self._clock.now())
            await uow.commit()
        if not updated:
            logger.warning("Outbox event %d was no longer PROCESSING, publish not recorded", event.id)
            return False
        outbox_published_total.labels(topic=event.topic).inc()
        logger.debug(
            "Published outbox event %d to %s partition=%d offset=%s",
            event.id, result.topic, result.partition, result.offset,
        )
        return True

    async def _record_failure(self, event: OutboxEvent, error: BaseException) -> None:
        retry_count = event.retry_count + 1
        message = f"{type(error).__name__}: {error}"[:_MAX_ERROR_LENGTH]
        status = OutboxStatus.FAILED if retry_count >= self._max_retries else OutboxStatus.PENDING

        async with self._uow_factory() as uow:
            updated = await uow.outbox.record_failure(event.id, retry_count, message, status)
            await uow.commit()
        if not updated:
            logger.warning("Outbox event %d was no longer PROCESSING, failure not recorded", event.id)
            return

        outcome = "failed" if status is OutboxStatus.FAILED else "retry"
        outbox_send_failures_total.labels(topic=event.topic, outcome=outcome).inc()
        if status is OutboxStatus.FAILED:
            logger.error(
                "Outbox event %d (%s) permanently failed after %d attempts: %s",
                event.id, event.event_type, retry_count, message,
            )
        else:
            logger.warning(
                "Outbox event %d (%s) failed, attempt %d/%d: %s",
                event.id, event.event_type, retry_count, self._max_retries, message,
            )


def build_publisher(broker: MessageBroker, factory: UoWFactory | None = None) -> OutboxPublisher:
    return OutboxPublisher(
        factory or uow_factory(AsyncSessionLocal),
        broker,
        batch_size=settings.OUTBOX_BATCH_SIZE,
        max_retries=settings.OUTBOX_MAX_RETRIES,
        stale_after=timedelta(seconds=settings.OUTBOX_STALE_AFTER_SECONDS),
        send_timeout=settings.OUTBOX_SEND_TIMEOUT,
        retention=timedelta(hours=settings.OUTBOX_RETENTION_HOURS),
    )


def build_periodic_tasks(publisher: OutboxPublisher) -> list[PeriodicTask]:
    return [
        PeriodicTask("outbox-publisher", settings.OUTBOX_POLL_INTERVAL, publisher.tick),
        PeriodicTask(
            "outbox-retention",
            settings.OUTBOX_CLEANUP_INTERVAL,
            publisher.cleanup,
            run_immediately=False,
        ),
    ]


async def run_outbox_publisher() -> None:
    redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    broker = RedisStreamBroker(
        redis,
        partitions=settings.BROKER_PARTITIONS,
        maxlen=settings.BROKER_STREAM_MAXLEN,
    )
    tasks = build_periodic_tasks(build_publisher(broker))

    logger.info(
        "Outbox publisher started (poll=%.1fs, batch=%d, max_retries=%d)",
        settings.OUTBOX_POLL_INTERVAL,
        settings.OUTBOX_BATCH_SIZE,
        settings.OUTBOX_MAX_RETRIES,
    )
    for task in tasks:
        task.start()
    try:
        while True:
            await asyncio.sleep(3600)
    except asyncio.CancelledError:
        pass
    finally:
        for task in tasks:
            await task.stop()
        await redis.aclose()


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    asyncio.run(run_outbox_publisher())


if __name__ == "__main__":
    main()
