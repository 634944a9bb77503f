"""Bounded retry around an inbound handler, then escalation to a dead-letter topic."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    stop_after_attempt,
    wait_exponential,
)

from taskhub.application.dto.delivery import Delivery
from taskhub.application.ports.bus import MessageBroker
from taskhub.infrastructure.bus.redis_streams import DeliveryCallback
from taskhub.infrastructure.metrics import messages_dead_lettered_total

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_seconds: float = 1.0
    multiplier: float = 2.0


def dead_letter_topic(topic: str, suffix: str) -> str:
    return f"{topic}{suffix}"


class RetryingHandler:
    """Wraps a delivery handler with retries and a dead-letter fallback.

    Returns normally once the delivery was either handled or moved to the
    dead-letter topic, so the consumer can acknowledge it. Only a failure to
    publish to the dead-letter topic propagates.
    """

    def __init__(
        self,
        handler: DeliveryCallback,
        broker: MessageBroker,
        policy: RetryPolicy,
        *,
        dlt_suffix: str = ".DLT",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._handler = handler
        self._broker = broker
        self._policy = policy
        self._dlt_suffix = dlt_suffix
        self._sleep = sleep

    async def __call__(self, delivery: Delivery) -> None:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._policy.max_attempts),
            wait=wait_exponential(
                multiplier=self._policy.backoff_seconds,
                exp_base=self._policy.multiplier,
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    await self._handler(delivery)
        except Exception as exc:
            await self._dead_letter(delivery, exc)

    async def _dead_letter(self, delivery: Delivery, error: Exception) -> None:
        target = dead_letter_topic(delivery.topic, self._dlt_suffix)
        headers = {
            "original_topic": delivery.topic,
            "original_partition": str(delivery.partition),
            "original_offset": delivery.offset,
            "attempts": str(self._policy.max_attempts),
            "error": f"{type(error).__name__}: {error}",
        }
        await self._broker.send(
            target,
            delivery.key or delivery.event_key,
            delivery.payload,
            headers,
        )
        messages_dead_lettered_total.labels(topic=delivery.topic).inc()
        logger.error(
            "Message %s exhausted %d attempts, moved to %s: %s",
            delivery.event_key, self._policy.max_attempts, target, error,
        )
