"""
Abstract record source.

A Source owns the durable records of a schema. The network layers only talk
to it through query() and update(); completed transforms are announced to
listeners registered with on_transform().
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, Union

from ..core.records import Operation, QueryExpression, RequestOptions, Transform
from ..core.schema import Schema

logger = logging.getLogger(__name__)

TransformListener = Callable[[Transform], Awaitable[None]]


class Source(ABC):
    """
    Base class for record sources.

    Subclasses implement _query() and _update(); _update() must apply the
    whole transform or nothing.

    Usage:
        source = MemorySource(schema)
        await source.activate()

        record = await source.query(FindRecord(Identity("planet", "1")))
        await source.update(AddRecord(Record("planet", "2", {"name": "Mars"})))
    """

    def __init__(self, schema: Schema, name: Optional[str] = None):
        self.schema = schema
        self.name = name or type(self).__name__
        self.activated = False
        self._transform_listeners: list[TransformListener] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def activate(self) -> None:
        if self.activated:
            return
        await self._activate()
        self.activated = True
        logger.info(f"Source '{self.name}' activated")

    async def deactivate(self) -> None:
        if not self.activated:
            return
        await self._deactivate()
        self.activated = False
        logger.info(f"Source '{self.name}' deactivated")

    async def _activate(self) -> None:
        pass

    async def _deactivate(self) -> None:
        pass

    # ------------------------------------------------------------------
    # Transform listeners
    # ------------------------------------------------------------------

    def on_transform(self, listener: TransformListener) -> None:
        self._transform_listeners.append(listener)

    def off_transform(self, listener: TransformListener) -> None:
        if listener in self._transform_listeners:
            self._transform_listeners.remove(listener)

    async def _notify(self, transform: Transform) -> None:
        for listener in list(self._transform_listeners):
            try:
                await listener(transform)
            except Exception as e:
                logger.error(f"Transform listener failed for {transform.id}: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def query(self, expression: QueryExpression, options: Optional[RequestOptions] = None) -> Any:
        return await self._query(expression, options or RequestOptions())

    async def update(
        self,
        operations: Union[Operation, list[Operation]],
        options: Optional[RequestOptions] = None,
    ) -> Any:
        """
        Apply one operation or an ordered list of operations as one transform.

        Returns the result of a single operation, or a list of results aligned
        with the submitted operations.
        """
        single = not isinstance(operations, list)
        ops = [operations] if single else list(operations)
        options = options or RequestOptions()
        transform = Transform(operations=ops, options={"headers": dict(options.headers)})

        results = await self._update(transform, options)
        logger.debug(f"Source '{self.name}' applied transform {transform.id} ({len(ops)} operations)")

        await self._notify(transform)
        return results[0] if single else results

    async def clear_pending(self) -> None:
        """Drop queued requests after a failure. Nothing is queued by default."""

    @abstractmethod
    async def _query(self, expression: QueryExpression, options: RequestOptions) -> Any:
        ...

    @abstractmethod
    async def _update(self, transform: Transform, options: RequestOptions) -> list[Any]:
        ...
