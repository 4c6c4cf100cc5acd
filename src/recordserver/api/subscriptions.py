"""
Change feed websocket.

Clients connect to the websocket path, optionally restricting the feed with
`?types=planets,moons` (resource types). After a connection_ack, every
operation published for those types is sent as {"operations": [operation]}.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..changefeed import channel_for
from ..server import Server

logger = logging.getLogger(__name__)


def _requested_types(server: Server, value: Optional[str]) -> list[str]:
    if not value:
        return list(server.schema.models)
    types = []
    for name in value.split(","):
        name = name.strip()
        if not name:
            continue
        type = server.serializer.record_type(name)
        if server.schema.has_model(type) and type not in types:
            types.append(type)
    return types


async def _forward(websocket: WebSocket, queue: asyncio.Queue) -> None:
    while True:
        operation = await queue.get()
        await websocket.send_json({"operations": [operation]})


def create_subscription_router(server: Server, path: str = "/subscriptions") -> APIRouter:
    router = APIRouter()

    @router.websocket(path)
    async def subscriptions(websocket: WebSocket):
        connection_id = str(uuid.uuid4())
        await websocket.accept()

        types = _requested_types(server, websocket.query_params.get("types"))
        queue: asyncio.Queue = asyncio.Queue()
        subscription_ids = [await server.pubsub.subscribe(channel_for(type), queue.put) for type in types]
        sender = asyncio.create_task(_forward(websocket, queue))

        try:
            await websocket.send_json({
                "type": "connection_ack",
                "connection_id": connection_id,
                "types": [server.serializer.resource_type(type) for type in types],
            })
            # Client messages are ignored; the loop ends on disconnect.
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.info(f"Client {connection_id} disconnected")
        finally:
            sender.cancel()
            await asyncio.gather(sender, return_exceptions=True)
            for subscription_id in subscription_ids:
                await server.pubsub.unsubscribe(subscription_id)

    return router
