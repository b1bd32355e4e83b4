"""
services/events/router.py
WebSocket feed of directory events (service.created, service.deleted, review.created).
"""

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from shared.events.registry import registry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/events", tags=["Events"])


async def _forward(websocket: WebSocket, queue: asyncio.Queue) -> None:
    while True:
        message = await queue.get()
        await websocket.send_json(message)


async def _drain(websocket: WebSocket) -> None:
    # Clients never send anything meaningful; receiving is how a close is noticed
    while True:
        await websocket.receive_text()


@router.websocket("/ws")
async def event_feed(websocket: WebSocket):
    await websocket.accept()
    async with registry.subscription() as queue:
        logger.debug(f"Event subscriber connected ({len(registry)} active)")
        tasks = [
            asyncio.create_task(_forward(websocket, queue)),
            asyncio.create_task(_drain(websocket)),
        ]
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                exc = task.exception()
                if exc is not None and not isinstance(exc, WebSocketDisconnect):
                    raise exc
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
    logger.debug(f"Event subscriber disconnected ({len(registry)} active)")
