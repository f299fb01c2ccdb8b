import asyncio
import logging
from typing import Awaitable, Callable, Optional, Union

import redis.asyncio as redis

from storefront_chat.config import settings


logger = logging.getLogger(__name__)

MessageHandler = Callable[[str], Awaitable[None]]


class IdleSubscription:

    def __init__(self) -> None:
        self._stopped = asyncio.Event()

    async def run(self) -> None:
        await self._stopped.wait()

    async def cancel(self) -> None:
        self._stopped.set()


class RedisSubscription:
    """Polls one pub/sub channel and hands each payload to ``handler`` until cancelled."""

    poll_timeout = 1.0
    retry_delay = 0.5

    def __init__(self, pubsub, channel: str, handler: MessageHandler) -> None:
        self._pubsub = pubsub
        self._channel = channel
        self._handler = handler
        self._running = True

    async def run(self) -> None:
        while self._running:
            try:
                msg = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=self.poll_timeout)
            except Exception:
                logger.warning("Reading %s failed, retrying", self._channel, exc_info=True)
                await asyncio.sleep(self.retry_delay)
                continue
            if not msg or msg.get("type") != "message":
                continue
            try:
                await self._handler(msg["data"])
            except Exception:
                logger.warning("Bus message on %s was not delivered", self._channel, exc_info=True)

    async def cancel(self) -> None:
        self._running = False
        await self._pubsub.unsubscribe(self._channel)
        await self._pubsub.aclose()


class NoopBus:

    enabled = False

    async def publish(self, channel: str, message: str) -> None:
        return

    async def subscribe(self, channel: str, handler: MessageHandler) -> IdleSubscription:
        return IdleSubscription()

    async def close(self) -> None:
        return


class RedisBus:

    enabled = True

    def __init__(self, url: str, client=None) -> None:
        self._redis = client if client is not None else redis.from_url(url, decode_responses=True)

    async def publish(self, channel: str, message: str) -> None:
        await self._redis.publish(channel, message)

    async def subscribe(self, channel: str, handler: MessageHandler) -> RedisSubscription:
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(channel)
        logger.info("Subscribed to %s", channel)
        return RedisSubscription(pubsub, channel, handler)

    async def close(self) -> None:
        await self._redis.aclose()


Bus = Union[NoopBus, RedisBus]

_bus: Optional[Bus] = None


async def get_bus() -> Bus:
    global _bus
    if _bus is None:
        if settings.REDIS_URL:
            _bus = RedisBus(settings.REDIS_URL)
            logger.info("Realtime delivery through redis")
        else:
            _bus = NoopBus()
            logger.info("Realtime delivery in-process")
    return _bus


async def reset_bus() -> None:
    global _bus
    bus, _bus = _bus, None
    if bus is not None:
        await bus.close()
