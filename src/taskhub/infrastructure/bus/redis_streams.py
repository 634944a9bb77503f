"""Redis Streams as a partitioned, consumer-group based broker.

A logical topic ``T`` with ``n`` partitions is the set of streams
``T:0`` .. ``T:n-1``. The offset of a message is its stream entry id.
"""
from __future__ import annotations

import asyncio
import logging
import zlib
from typing import Any, Awaitable, Callable

import redis.asyncio as aioredis

from taskhub.application.dto.delivery import Delivery
from taskhub.application.ports.bus import SendResult

logger = logging.getLogger(__name__)

HEADER_PREFIX = "h:"

DeliveryCallback = Callable[[Delivery], Awaitable[Any]]


def partition_for(key: str, partitions: int) -> int:
    return zlib.crc32(key.encode("utf-8")) % partitions


def stream_name(topic: str, partition: int) -> str:
    return f"{topic}:{partition}"


class RedisStreamBroker:
    """Implements application.ports.bus.MessageBroker."""

    def __init__(
        self,
        redis: aioredis.Redis,
        *,
        partitions: int,
        maxlen: int | None = None,
    ) -> None:
        self._redis = redis
        self._partitions = partitions
        self._maxlen = maxlen

    async def send(
        self,
        topic: str,
        key: str,
        payload: str,
        headers: dict[str, str] | None = None,
    ) -> SendResult:
        partition = partition_for(key, self._partitions)
        fields = {"key": key, "payload": payload}
        for name, value in (headers or {}).items():
            fields[f"{HEADER_PREFIX}{name}"] = value
        msg_id = await self._redis.xadd(
            stream_name(topic, partition),
            fields,
            maxlen=self._maxlen,
            approximate=True,
        )
        return SendResult(topic=topic, partition=partition, offset=msg_id)


def to_delivery(topic: str, partition: int, msg_id: str, fields: dict[str, str]) -> Delivery:
    headers = {
        name[len(HEADER_PREFIX):]: value
        for name, value in fields.items()
        if name.startswith(HEADER_PREFIX)
    }
    return Delivery(
        topic=topic,
        partition=partition,
        offset=msg_id,
        payload=fields.get("payload", ""),
        key=fields.get("key"),
        headers=headers,
    )


class RedisStreamConsumer:
    """XREADGROUP-based consumer for every partition of one topic.

    A message is acknowledged only after the callback returned; a raising
    callback leaves it pending, to be picked up again by this consumer on
    restart or reclaimed by another one once idle for ``claim_idle_ms``.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        topic: str,
        group: str,
        consumer: str,
        callback: DeliveryCallback,
        *,
        partitions: int,
        batch_size: int = 10,
        block_ms: int = 5000,
        claim_idle_ms: int = 60_000,
    ) -> None:
        self._redis = redis
        self._topic = topic
        self._group = group
        self._consumer = consumer
        self._callback = callback
        self._partitions = partitions
        self._batch_size = batch_size
        self._block_ms = block_ms
        self._claim_idle_ms = claim_idle_ms
        self._tasks: list[asyncio.Task[None]] = []

    async def ensure_groups(self) -> None:
        for partition in range(self._partitions):
            stream = stream_name(self._topic, partition)
            try:
                await self._redis.xgroup_create(stream, self._group, id="0", mkstream=True)
                logger.info("Created consumer group %s on %s", self._group, stream)
            except aioredis.ResponseError as e:
                if "BUSYGROUP" in str(e):
                    logger.debug("Consumer group %s already exists on %s", self._group, stream)
                else:
                    raise

    async def start(self) -> None:
        await self.ensure_groups()
        self._tasks = [
            asyncio.create_task(
                self._consume(partition),
                name=f"stream-consumer-{self._topic}-{partition}",
            )
            for partition in range(self._partitions)
        ]
        logger.info(
            "Stream consumer started: topic=%s partitions=%d group=%s consumer=%s",
            self._topic, self._partitions, self._group, self._consumer,
        )

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("Stream consumer stopped: topic=%s group=%s", self._topic, self._group)

    async def _consume(self, partition: int) -> None:
        stream = stream_name(self._topic, partition)
        backlog = True
        while True:
            try:
                if backlog:
                    # Entries delivered to this consumer name before a restart.
                    backlog = await self._read(stream, partition, "0", block=None) > 0
                    continue
                await self._reclaim_idle(stream, partition)
                await self._read(stream, partition, ">", block=self._block_ms)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Stream consumer error on %s, retrying in 5s", stream)
                await asyncio.sleep(5)

    async def _read(self, stream: str, partition: int, last_id: str, *, block: int | None) -> int:
        """Dispatch one batch; returns how many entries were acknowledged."""
        entries = await self._redis.xreadgroup(
            groupname=self._group,
            consumername=self._consumer,
            streams={stream: last_id},
            count=self._batch_size,
            block=block,
        )
        acked = 0
        for _stream_name, messages in entries or []:
            for msg_id, fields in messages:
                if await self.dispatch(stream, partition, msg_id, fields):
                    acked += 1
        return acked

    async def _reclaim_idle(self, stream: str, partition: int) -> None:
        result = await self._redis.xautoclaim(
            stream,
            self._group,
            self._consumer,
            min_idle_time=self._claim_idle_ms,
            start_id="0-0",
            count=self._batch_size,
        )
        claimed = result[1] if len(result) > 1 else []
        for msg_id, fields in claimed:
            logger.warning("Reclaimed idle message %s on %s", msg_id, stream)
            await self.dispatch(stream, partition, msg_id, fields)

    async def dispatch(
        self,
        stream: str,
        partition: int,
        msg_id: str,
        fields: dict[str, str] | None,
    ) -> bool:
        """Run the callback for one entry; returns True when acknowledged."""
        if not fields:
            # Trimmed away while pending: nothing left to deliver.
            await self._redis.xack(stream, self._group, msg_id)
            return True
        delivery = to_delivery(self._topic, partition, msg_id, fields)
        try:
            await self._callback(delivery)
        except Exception:
            logger.exception(
                "Error processing stream message %s (partition=%d), left pending",
                msg_id, partition,
            )
            return False
        await self._redis.xack(stream, self._group, msg_id)
        return True
