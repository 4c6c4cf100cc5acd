"""
Redis pub/sub engine.

Messages are JSON encoded. A single listener task reads the Redis pubsub
connection and dispatches to the handlers of each channel; channels are
subscribed and unsubscribed on Redis as handlers come and go.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import Any, Dict, Optional

import redis.asyncio as aioredis

from .base import MessageHandler, PubSub

logger = logging.getLogger(__name__)


class RedisPubSub(PubSub):
    """
    Pub/sub over Redis channels.

    Usage:
        pubsub = RedisPubSub("redis://redis:6379")
        await pubsub.start()

        await pubsub.subscribe("operation:planet", handle_planet_operation)
        await pubsub.publish("operation:planet", {"op": "add", ...})
    """

    def __init__(self, redis_url: Optional[str] = None, client: Optional[aioredis.Redis] = None):
        """
        Initialize pub/sub.

        Args:
            redis_url: Redis URL (used when no client is given)
            client: Existing redis.asyncio client (owned by the caller)
        """
        if redis_url is None and client is None:
            raise ValueError("RedisPubSub needs a redis_url or a client")
        self.redis_url = redis_url
        self._redis = client
        self._owns_client = client is None
        self._pubsub = None
        self._handlers: Dict[str, Dict[str, MessageHandler]] = {}
        self._channels: Dict[str, str] = {}
        self._listener_task: Optional[asyncio.Task] = None
        self._running = False

    def _client(self) -> aioredis.Redis:
        if self._redis is None:
            logger.info(f"Connecting to Redis: {self.redis_url}")
            self._redis = aioredis.from_url(self.redis_url, encoding="utf-8", decode_responses=True)
        return self._redis

    async def start(self) -> None:
        """Start listening for messages"""
        if self._running:
            logger.warning("Redis pub/sub already running")
            return

        self._pubsub = self._client().pubsub()
        if self._handlers:
            await self._pubsub.subscribe(*self._handlers)
            logger.info(f"Subscribed to Redis channels: {list(self._handlers)}")

        self._running = True
        self._listener_task = asyncio.create_task(self._listen())
        logger.info("Redis pub/sub started")

    async def stop(self) -> None:
        """Stop listening and close connections"""
        self._running = False

        if self._listener_task:
            self._listener_task.cancel()
            try:
                await self._listener_task
            except asyncio.CancelledError:
                pass
            self._listener_task = None

        if self._pubsub is not None:
            await self._pubsub.aclose()
            self._pubsub = None

        if self._redis is not None and self._owns_client:
            await self._redis.aclose()
            self._redis = None

        logger.info("Redis pub/sub stopped")

    async def publish(self, channel: str, data: Dict[str, Any]) -> int:
        try:
            payload = json.dumps(data, ensure_ascii=False)
            count = await self._client().publish(channel, payload)
            logger.debug(f"Published to {channel}: {count} subscribers received")
            return count
        except Exception as e:
            logger.error(f"Failed to publish to {channel}: {e}", exc_info=True)
            return 0

    async def subscribe(self, channel: str, handler: MessageHandler) -> str:
        subscription_id = str(uuid.uuid4())
        is_new = channel not in self._handlers
        self._handlers.setdefault(channel, {})[subscription_id] = handler
        self._channels[subscription_id] = channel
        if is_new and self._running:
            await self._pubsub.subscribe(channel)
        logger.info(f"Subscribed to channel: {channel}")
        return subscription_id

    async def unsubscribe(self, subscription_id: str) -> None:
        channel = self._channels.pop(subscription_id, None)
        if channel is None:
            return
        handlers = self._handlers.get(channel, {})
        handlers.pop(subscription_id, None)
        if not handlers:
            self._handlers.pop(channel, None)
            if self._running:
                await self._pubsub.unsubscribe(channel)
            logger.info(f"Unsubscribed from channel: {channel}")

    async def _listen(self) -> None:
        """Listen for messages and dispatch to handlers"""
        logger.info("Redis listener started")
        try:
            while self._running:
                try:
                    if not self._pubsub.subscribed:
                        await asyncio.sleep(0.1)
                        continue

                    message = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                    if message and message["type"] == "message":
                        await self._handle_message(message["channel"], message["data"])

                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(f"Redis listener error: {e}", exc_info=True)
                    await asyncio.sleep(1)

        except asyncio.CancelledError:
            logger.info("Redis listener cancelled")
            raise

    async def _handle_message(self, channel: str, raw_data: Any) -> None:
        """Handle incoming message"""
        handlers = list(self._handlers.get(channel, {}).values())
        if not handlers:
            return

        try:
            data = json.loads(raw_data) if isinstance(raw_data, (str, bytes)) else raw_data
        except json.JSONDecodeError:
            logger.warning(f"Invalid JSON in message from {channel}: {str(raw_data)[:100]}")
            return

        logger.debug(f"Received message on {channel}: {data}")

        for handler in handlers:
            try:
                result = handler(data)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"Error in handler for {channel}: {e}", exc_info=True)
