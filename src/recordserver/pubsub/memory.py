"""
In-process pub/sub.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Dict

from .base import MessageHandler, PubSub

logger = logging.getLogger(__name__)


class MemoryPubSub(PubSub):
    """Delivers messages to handlers of the same process, in subscription order."""

    def __init__(self):
        self._handlers: Dict[str, Dict[str, MessageHandler]] = {}
        self._channels: Dict[str, str] = {}

    async def publish(self, channel: str, data: Dict[str, Any]) -> int:
        handlers = list(self._handlers.get(channel, {}).values())
        for handler in handlers:
            try:
                result = handler(data)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"Error in handler for {channel}: {e}", exc_info=True)
        logger.debug(f"Published to {channel}: {len(handlers)} subscribers received")
        return len(handlers)

    async def subscribe(self, channel: str, handler: MessageHandler) -> str:
        subscription_id = str(uuid.uuid4())
        self._handlers.setdefault(channel, {})[subscription_id] = handler
        self._channels[subscription_id] = channel
        logger.debug(f"Subscribed to channel: {channel}")
        return subscription_id

    async def unsubscribe(self, subscription_id: str) -> None:
        channel = self._channels.pop(subscription_id, None)
        if channel is None:
            return
        handlers = self._handlers.get(channel, {})
        handlers.pop(subscription_id, None)
        if not handlers:
            self._handlers.pop(channel, None)
