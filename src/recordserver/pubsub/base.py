"""
Pub/sub interface used by the change feed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Union

MessageHandler = Callable[[Dict[str, Any]], Union[Awaitable[None], None]]


class PubSub(ABC):
    """
    Channel based fan-out.

    Usage:
        sub_id = await pubsub.subscribe("operation:planet", handler)
        await pubsub.publish("operation:planet", {"op": "add", ...})
        await pubsub.unsubscribe(sub_id)
    """

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass

    @abstractmethod
    async def publish(self, channel: str, data: Dict[str, Any]) -> int:
        """Publish a message. Returns the number of receivers."""

    @abstractmethod
    async def subscribe(self, channel: str, handler: MessageHandler) -> str:
        """Register a handler. Returns a subscription id."""

    @abstractmethod
    async def unsubscribe(self, subscription_id: str) -> None:
        ...
