"""
WebSocket relay for real-time application events using Redis Pub/Sub.
"""
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from typing import Set
import logging

from services.pubsub import RedisPubSub

router = APIRouter()
logger = logging.getLogger(__name__)

# Track active WebSocket connections
active_connections: Set[WebSocket] = set()


@router.websocket("/ws/updates/{channel}")
async def websocket_updates(websocket: WebSocket, channel: str):
    """
    Clients connect and receive messages published to the channel.

    Example:
        ws://localhost:8000/api/v1/realtime/ws/updates/applications.updates
    """
    await websocket.accept()
    active_connections.add(websocket)

    from services.pubsub import pubsub

    async def on_message(message):
        try:
            await websocket.send_json(message)
        except (RuntimeError, WebSocketDisconnect) as e:
            logger.debug(f"Dropping message for closed socket on {channel}: {e}")

    await pubsub.subscribe(channel, on_message)

    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        await pubsub.unsubscribe(channel, on_message)
        active_connections.discard(websocket)
        logger.info(f"Client disconnected from channel: {channel}")


@router.get("/channels")
async def list_channels():
    """List available pub/sub channels."""
    return {
        "channels": [
            RedisPubSub.channel_application_updates(),
            RedisPubSub.channel_user_notifications("{address}"),
        ],
        "active_connections": len(active_connections)
    }
