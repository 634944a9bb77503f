from __future__ import annotations

import logging

from taskhub.application.dto.delivery import Delivery

logger = logging.getLogger(__name__)


class DeadLetterHandler:
    """Terminal consumer of a dead-letter topic: log and let it be acknowledged.

    Never raises; there is nowhere further to escalate to.
    """

    async def __call__(self, delivery: Delivery) -> None:
        try:
            logger.error(
                "DEAD LETTER on %s partition=%d offset=%s "
                "(original %s/%s/%s, error=%s): %s",
                delivery.topic,
                delivery.partition,
                delivery.offset,
                delivery.headers.get("original_topic", "?"),
                delivery.headers.get("original_partition", "?"),
                delivery.headers.get("original_offset", "?"),
                delivery.headers.get("error", "?"),
                delivery.payload,
            )
        except Exception:  # noqa: BLE001
            logger.exception("Failed to log dead-letter message %s", delivery.offset)
