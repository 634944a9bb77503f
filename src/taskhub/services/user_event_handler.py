"""Tasks-service reaction to user lifecycle events."""
from __future__ import annotations

import logging
import re

from sqlalchemy.exc import IntegrityError

from taskhub.application.dto.delivery import Delivery
from taskhub.application.dto.events import UserEvent
from taskhub.application.exceptions import EventParseError
from taskhub.application.ports.clock import utcnow
from taskhub.application.uow import UnitOfWork, UoWFactory
from taskhub.domain.value_objects.enums import ChangeKind, HandleOutcome
from taskhub.infrastructure.bus.serializer import deserialize_envelope
from taskhub.services.existence_cache import UserExistenceCache

logger = logging.getLogger(__name__)

# Legacy producers sent free text such as "user.deleted (42)".
_LEGACY_ID = re.compile(r"\((\d+)\)[^()]*$")


class UserEventHandler:
    """Applies one user event exactly once per delivery coordinates.

    The side effect and the processed-event row are committed together, and
    the caller acknowledges only after ``handle`` returned. A crash in
    between leads to a redelivery that is recognised as already processed.
    """

    def __init__(
        self,
        uow_factory: UoWFactory,
        cache: UserExistenceCache,
        *,
        legacy_fallback: bool = True,
    ) -> None:
        self._uow_factory = uow_factory
        self._cache = cache
        self._legacy_fallback = legacy_fallback

    async def __call__(self, delivery: Delivery) -> HandleOutcome:
        return await self.handle(delivery)

    async def handle(self, delivery: Delivery) -> HandleOutcome:
        event_key = delivery.event_key
        async with self._uow_factory() as uow:
            if await uow.processed_events.exists(event_key):
                logger.warning(
                    "Event already processed: partition=%d offset=%s",
                    delivery.partition, delivery.offset,
                )
                return HandleOutcome.ALREADY_PROCESSED

            logger.info(
                "Received user event partition=%d offset=%s",
                delivery.partition, delivery.offset,
            )
            try:
                event = deserialize_envelope(delivery.payload, UserEvent)
            except EventParseError as exc:
                if not self._legacy_fallback:
                    raise
                logger.warning("Unstructured user event, falling back to text scan: %s", exc.detail)
                await self._apply_legacy(delivery.payload, uow)
            else:
                await self._apply(event, uow)

            try:
                await uow.processed_events.add(event_key, utcnow())
                await uow.commit()
            except IntegrityError:
                await uow.rollback()
                logger.warning("Event %s recorded concurrently, skipping", event_key)
                return HandleOutcome.ALREADY_PROCESSED

        logger.debug("User event processed: %s", event_key)
        return HandleOutcome.PROCESSED

    async def _apply(self, event: UserEvent, uow: UnitOfWork) -> None:
        kind = event.kind
        if kind is ChangeKind.DELETED:
            await self._cascade_delete(event.user_id, uow)
        elif kind in (ChangeKind.CREATED, ChangeKind.UPDATED):
            self._cache.evict(event.user_id)
            logger.info("User %d %s, cache evicted", event.user_id, kind.value.lower())
        else:
            logger.warning("Unknown user event type: %s", event.event_type)

    async def _apply_legacy(self, raw: str, uow: UnitOfWork) -> None:
        if "user.deleted" in raw:
            match = _LEGACY_ID.search(raw)
            if match is None:
                logger.error("Could not extract user id from message: %s", raw)
                return
            await self._cascade_delete(int(match.group(1)), uow)
        elif "user.updated" in raw or "user.created" in raw:
            self._cache.evict_all()
            logger.info("Unstructured user event received, all cache evicted")
        else:
            logger.warning("Ignoring unrecognised user event: %s", raw)

    async def _cascade_delete(self, user_id: int, uow: UnitOfWork) -> None:
        logger.warning("User %d deleted, removing orphaned tasks", user_id)
        deleted = await uow.tasks.delete_for_user(user_id)
        self._cache.evict(user_id)
        logger.info("Deleted %d tasks for deleted user %d", deleted, user_id)
