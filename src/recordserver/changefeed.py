"""
Change feed bridge.

Republishes every operation of every completed transform to the pub/sub
channel of the operation's record type (`operation:<type>`), serialized in
the batch wire format.
"""

from __future__ import annotations

import logging

from .core.records import Transform
from .jsonapi.serializer import JSONAPISerializer
from .pubsub.base import PubSub
from .source.base import Source

logger = logging.getLogger(__name__)


def channel_for(type: str) -> str:
    return f"operation:{type}"


class ChangeFeed:
    """
    Bridge between a source's transform listeners and a pub/sub engine.

    Usage:
        await source.activate()
        feed = ChangeFeed(source, pubsub, serializer)
        feed.attach()
        ...
        feed.detach()
        await source.deactivate()
    """

    def __init__(self, source: Source, pubsub: PubSub, serializer: JSONAPISerializer):
        self.source = source
        self.pubsub = pubsub
        self.serializer = serializer
        self.attached = False

    def attach(self) -> None:
        if not self.source.activated:
            raise RuntimeError(f"Cannot attach change feed: source '{self.source.name}' is not activated")
        if self.attached:
            return
        self.source.on_transform(self._on_transform)
        self.attached = True
        logger.info(f"Change feed attached to '{self.source.name}'")

    def detach(self) -> None:
        if not self.attached:
            return
        self.source.off_transform(self._on_transform)
        self.attached = False
        logger.info(f"Change feed detached from '{self.source.name}'")

    async def _on_transform(self, transform: Transform) -> None:
        for operation in transform.operations:
            channel = channel_for(operation.record.type)
            await self.pubsub.publish(channel, self.serializer.serialize_operation(operation))
