"""Tasks-service consumer for the user-events topic and its dead-letter topic."""
from __future__ import annotations

import asyncio
import logging

import httpx
import redis.asyncio as aioredis

from taskhub.application.uow import UoWFactory
from taskhub.config import settings
from taskhub.infrastructure.bus.redis_streams import RedisStreamBroker, RedisStreamConsumer
from taskhub.infrastructure.bus.retry import RetryingHandler, RetryPolicy, dead_letter_topic
from taskhub.infrastructure.db.session import AsyncSessionLocal
from taskhub.infrastructure.db.uow import uow_factory
from taskhub.infrastructure.http.users_client import UsersServiceClient
from taskhub.infrastructure.resilience.circuit_breaker import CircuitBreaker
from taskhub.services.dead_letter import DeadLetterHandler
from taskhub.services.existence_cache import UserExistenceCache
from taskhub.services.user_event_handler import UserEventHandler

logger = logging.getLogger(__name__)


def build_existence_cache(client: httpx.AsyncClient) -> UserExistenceCache:
    breaker = CircuitBreaker(
        "users-service",
        failure_threshold=settings.CIRCUIT_FAILURE_THRESHOLD,
        recovery_timeout=settings.CIRCUIT_RECOVERY_SECONDS,
    )
    return UserExistenceCache(
        UsersServiceClient(client),
        breaker,
        ttl_seconds=settings.USER_CACHE_TTL_SECONDS,
        retry_attempts=settings.EXISTENCE_RETRY_ATTEMPTS,
        retry_backoff_seconds=settings.EXISTENCE_RETRY_BACKOFF_SECONDS,
        fail_open=settings.EXISTENCE_FAIL_OPEN,
    )


def build_consumers(
    redis: aioredis.Redis,
    broker: RedisStreamBroker,
    cache: UserExistenceCache,
    factory: UoWFactory | None = None,
) -> list[RedisStreamConsumer]:
    handler = UserEventHandler(
        factory or uow_factory(AsyncSessionLocal),
        cache,
        legacy_fallback=settings.LEGACY_PAYLOAD_FALLBACK,
    )
    policy = RetryPolicy(
        max_attempts=settings.CONSUMER_MAX_ATTEMPTS,
        backoff_seconds=settings.CONSUMER_BACKOFF_SECONDS,
        multiplier=settings.CONSUMER_BACKOFF_MULTIPLIER,
    )
    common = dict(
        partitions=settings.BROKER_PARTITIONS,
        batch_size=settings.CONSUMER_BATCH_SIZE,
        block_ms=settings.CONSUMER_BLOCK_MS,
        claim_idle_ms=settings.CONSUMER_CLAIM_IDLE_MS,
    )
    return [
        RedisStreamConsumer(
            redis,
            settings.USER_EVENTS_TOPIC,
            settings.CONSUMER_GROUP,
            settings.CONSUMER_NAME,
            RetryingHandler(handler, broker, policy, dlt_suffix=settings.DLT_SUFFIX),
            **common,
        ),
        RedisStreamConsumer(
            redis,
            dead_letter_topic(settings.USER_EVENTS_TOPIC, settings.DLT_SUFFIX),
            settings.DLT_CONSUMER_GROUP,
            settings.CONSUMER_NAME,
            DeadLetterHandler(),
            **common,
        ),
    ]


async def run_consumer() -> None:
    redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    broker = RedisStreamBroker(
        redis,
        partitions=settings.BROKER_PARTITIONS,
        maxlen=settings.BROKER_STREAM_MAXLEN,
    )
    http = httpx.AsyncClient(
        base_url=settings.USERS_SERVICE_URL,
        timeout=settings.USERS_SERVICE_TIMEOUT,
    )
    consumers = build_consumers(redis, broker, build_existence_cache(http))
    for consumer in consumers:
        await consumer.start()
    logger.info("User events consumer started (%s)", settings.CONSUMER_NAME)

    try:
        while True:
            await asyncio.sleep(3600)
    except asyncio.CancelledError:
        pass
    finally:
        for consumer in consumers:
            await consumer.stop()
        await http.aclose()
        await redis.aclose()


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    asyncio.run(run_consumer())


if __name__ == "__main__":
    main()
