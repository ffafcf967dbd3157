"""Redis Streams consumer for account service events."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

OnStreamEventCallback = Callable[[str, dict[str, Any]], Coroutine[Any, Any, None]]


class RedisStreamConsumer:
    """XREADGROUP-based consumer for a single stream + consumer group.

    Entries are acked only after the callback returns. Entries left pending
    by a failed read are replayed before new ones are fetched.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        stream: str,
        group: str,
        consumer: str,
        callback: OnStreamEventCallback,
        *,
        batch_size: int = 10,
        block_ms: int = 5000,
        error_backoff: float = 5.0,
    ) -> None:
        self._redis = redis
        self._stream = stream
        self._group = group
        self._consumer = consumer
        self._callback = callback
        self._batch_size = batch_size
        self._block_ms = block_ms
        self._error_backoff = error_backoff
        self._task: asyncio.Task[None] | None = None

    async def ensure_group(self) -> None:
        try:
            await self._redis.xgroup_create(
                self._stream, self._group, id="0", mkstream=True
            )
            logger.info("Created consumer group %s on %s", self._group, self._stream)
        except aioredis.ResponseError as e:
            if "BUSYGROUP" in str(e):
                logger.debug("Consumer group %s already exists", self._group)
            else:
                raise

    async def start(self) -> None:
        await self.ensure_group()
        self._task = asyncio.create_task(self._consume(), name="redis-stream-consumer")
        logger.info("Stream consumer started: stream=%s group=%s", self._stream, self._group)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Stream consumer stopped")

    async def process_batch(self, last_id: str = ">") -> int:
        """Read and handle one batch. ``last_id="0"`` replays this consumer's pending entries."""
        entries = await self._redis.xreadgroup(
            groupname=self._group,
            consumername=self._consumer,
            streams={self._stream: last_id},
            count=self._batch_size,
            block=self._block_ms if last_id == ">" else None,
        )
        handled = 0
        for _stream_name, messages in entries or []:
            for msg_id, fields in messages:
                event_type = fields.get("event_type", "unknown")
                try:
                    await self._callback(event_type, fields)
                except Exception:
                    logger.exception("Error processing stream message %s (%s)", msg_id, event_type)
                    continue
                await self._redis.xack(self._stream, self._group, msg_id)
                handled += 1
        return handled

    async def _consume(self) -> None:
        replay = False
        while True:
            try:
                await self.process_batch("0" if replay else ">")
                replay = False
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Stream consumer error, retrying in %.0fs", self._error_backoff)
                replay = True
                await asyncio.sleep(self._error_backoff)
