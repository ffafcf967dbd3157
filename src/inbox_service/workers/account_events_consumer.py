"""Keeps the local recipient directory in sync with the account service."""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any

import redis.asyncio as aioredis

from inbox_service.application.uow import UnitOfWorkFactory
from inbox_service.config import settings
from inbox_service.infrastructure.bus.redis_streams import RedisStreamConsumer
from inbox_service.infrastructure.db.uow import sqlalchemy_uow
from inbox_service.services import recipient_service

logger = logging.getLogger(__name__)

_ACTIVATING_EVENTS = frozenset({"user.created", "user.updated"})
_REMOVING_EVENTS = frozenset({"user.deleted"})


async def handle_event(
    event_type: str,
    fields: dict[str, Any],
    uow_factory: UnitOfWorkFactory = sqlalchemy_uow,
) -> None:
    """Apply one account event to the recipients table."""
    if event_type not in _ACTIVATING_EVENTS and event_type not in _REMOVING_EVENTS:
        logger.debug("Ignoring unknown event: %s", event_type)
        return

    try:
        user_id = int(fields["user_id"])
    except (KeyError, TypeError, ValueError):
        logger.warning("Dropping %s event without a valid user_id: %r", event_type, fields)
        return

    async with uow_factory() as uow:
        if event_type in _ACTIVATING_EVENTS:
            await recipient_service.register_recipient(user_id, uow)
        else:
            await recipient_service.remove_recipient(user_id, uow)


def build_consumer(redis: aioredis.Redis) -> RedisStreamConsumer:
    return RedisStreamConsumer(
        redis=redis,
        stream=settings.ACCOUNT_EVENTS_STREAM,
        group=settings.ACCOUNT_EVENTS_GROUP,
        consumer=f"consumer-{uuid.uuid4().hex[:8]}",
        callback=handle_event,
    )


async def run_consumer() -> None:
    redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    consumer = build_consumer(redis)
    await consumer.start()
    logger.info("Account events consumer started")

    try:
        while True:
            await asyncio.sleep(3600)
    except asyncio.CancelledError:
        pass
    finally:
        await consumer.stop()
        await redis.aclose()


def main() -> None:
    from inbox_service.logging_setup import configure_logging

    configure_logging(settings.LOG_LEVEL)
    asyncio.run(run_consumer())


if __name__ == "__main__":
    main()
