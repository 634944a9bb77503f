"""One-time script: create the consumer groups on every user-events partition."""
from __future__ import annotations

import asyncio
import logging

import redis.asyncio as aioredis

from taskhub.config import settings
from taskhub.infrastructure.bus.redis_streams import stream_name
from taskhub.infrastructure.bus.retry import dead_letter_topic

logger = logging.getLogger(__name__)


async def create_groups() -> None:
    r = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    targets = [
        (settings.USER_EVENTS_TOPIC, settings.CONSUMER_GROUP),
        (dead_letter_topic(settings.USER_EVENTS_TOPIC, settings.DLT_SUFFIX), settings.DLT_CONSUMER_GROUP),
    ]
    try:
        for topic, group in targets:
            for partition in range(settings.BROKER_PARTITIONS):
                stream = stream_name(topic, partition)
                try:
                    await r.xgroup_create(stream, group, id="0", mkstream=True)
                    logger.info("Created consumer group '%s' on stream '%s'", group, stream)
                except aioredis.ResponseError as e:
                    if "BUSYGROUP" in str(e):
                        logger.info("Consumer group '%s' already exists on '%s'", group, stream)
                    else:
                        raise
    finally:
        await r.aclose()


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(create_groups())


if __name__ == "__main__":
    main()
