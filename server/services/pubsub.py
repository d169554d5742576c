"""
Redis Pub/Sub relay for real-time application events.

Carries transient notifications (submission progress, verification results,
failures) to the owning wallet's channel and application changes to a
shared channel. WebSocket clients listen through the realtime route.

Uses sync redis.Redis for publish (called from event-bus handlers running in
the executor). Uses redis.asyncio for subscribe/listen (runs on the FastAPI
event loop, no threads).
"""
import json
import asyncio
import logging
from typing import Callable, Dict, Any, Optional, List
from services.redis_manager import redis_manager
import redis

logger = logging.getLogger(__name__)


class RedisPubSub:
    """
    Publish path: sync (redis_manager.client).
    Subscribe/listen path: async (redis.asyncio) on the event loop.
    """

    def __init__(self):
        # Async resources are created lazily (no event loop at module import time)
        self._async_client = None
        self._async_pubsub = None
        self._listener_task: Optional[asyncio.Task] = None
        self._running = False

        # channel -> list of async callback functions
        self._subscribers: Dict[str, List[Callable]] = {}

    async def _ensure_async(self):
        if self._async_client is None:
            self._async_client = redis_manager.create_async_pubsub_client()
            await self._async_client.ping()
            logger.info("Async Redis PubSub client connected")

        if self._async_pubsub is None:
            self._async_pubsub = self._async_client.pubsub()

    # ==================== Publisher (SYNC) ====================

    def publish(self, channel: str, message: Dict[str, Any]) -> int:
        """Publish a JSON message. Returns the number of receivers, 0 on failure."""
        try:
            serialized = json.dumps(message, default=str)
            return redis_manager.client.publish(channel, serialized)
        except (redis.RedisError, TypeError) as e:
            logger.error(f"Publish error on {channel}: {e}")
            return 0

    # ==================== Subscriber (ASYNC) ====================

    async def subscribe(self, channel: str, callback: Callable):
        """Subscribe ``callback`` (async, called with the decoded message) to ``channel``."""
        await self._ensure_async()

        if channel not in self._subscribers:
            self._subscribers[channel] = []
            await self._async_pubsub.subscribe(channel)
            logger.info(f"Subscribed to Redis channel: {channel}")

        self._subscribers[channel].append(callback)

        if not self._running:
            self._start_listening()

    async def unsubscribe(self, channel: str, callback=None):
        """
        Remove ``callback`` from ``channel`` (all callbacks if None). The Redis
        subscription is dropped once no callbacks remain.
        """
        if channel not in self._subscribers:
            return

        if callback is not None and callback in self._subscribers[channel]:
            self._subscribers[channel].remove(callback)

        if callback is None or not self._subscribers[channel]:
            if self._async_pubsub:
                await self._async_pubsub.unsubscribe(channel)
            del self._subscribers[channel]
            logger.info(f"Unsubscribed from Redis channel: {channel}")

    # ==================== Listener (ASYNC TASK) ====================

    def _start_listening(self):
        if self._running:
            return

        self._running = True
        self._listener_task = asyncio.create_task(self._listen())
        logger.info("PubSub async listener task started")

    async def _dispatch(self, message: Dict[str, Any]):
        channel = message['channel']
        if isinstance(channel, bytes):
            channel = channel.decode('utf-8')

        try:
            data = json.loads(message['data'])
        except (json.JSONDecodeError, TypeError):
            data = message['data']

        for callback in list(self._subscribers.get(channel, [])):
            try:
                await callback(data)
            except Exception as e:
                logger.error(f"Subscriber callback error on {channel}: {e}")

    async def _reconnect(self):
        await self._close_async_resources()
        self._async_client = redis_manager.create_async_pubsub_client()
        await self._async_client.ping()
        self._async_pubsub = self._async_client.pubsub()
        for channel in self._subscribers:
            await self._async_pubsub.subscribe(channel)

    async def _listen(self):
        """
        Poll with get_message(timeout=1.0) so the loop stays cancellable and
        checks self._running each iteration. Reconnects with exponential backoff.
        """
        reconnect_attempts = 0

        while self._running:
            try:
                message = await self._async_pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=1.0
                )
                if message is not None and message['type'] == 'message':
                    await self._dispatch(message)
                reconnect_attempts = 0

            except asyncio.CancelledError:
                logger.info("PubSub listener task cancelled")
                return

            except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError, OSError) as e:
                if not self._running:
                    return

                backoff = min(2 ** reconnect_attempts, 60)
                reconnect_attempts += 1
                logger.warning(
                    f"PubSub connection lost ({e}), reconnecting in {backoff}s... "
                    f"(attempt {reconnect_attempts})"
                )
                await asyncio.sleep(backoff)

                try:
                    await self._reconnect()
                    reconnect_attempts = 0
                    logger.info("PubSub reconnected successfully")
                except (redis.RedisError, OSError) as reconnect_err:
                    logger.error(f"PubSub reconnect failed: {reconnect_err}")

    # ==================== Shutdown ====================

    async def _close_async_resources(self):
        try:
            if self._async_pubsub:
                await self._async_pubsub.aclose()
        except (redis.RedisError, OSError) as e:
            logger.debug(f"Ignoring error while closing pubsub: {e}")
        self._async_pubsub = None

        try:
            if self._async_client:
                await self._async_client.aclose()
        except (redis.RedisError, OSError) as e:
            logger.debug(f"Ignoring error while closing redis client: {e}")
        self._async_client = None

    async def shutdown(self):
        """Stop the listener and close connections. Called on app shutdown."""
        logger.info("Shutting down PubSub...")
        self._running = False

        if self._listener_task and not self._listener_task.done():
            self._listener_task.cancel()
            try:
                await self._listener_task
            except asyncio.CancelledError:
                pass

        await self._close_async_resources()
        self._subscribers.clear()
        logger.info("PubSub shutdown complete")

    # ==================== Channels ====================

    @staticmethod
    def channel_user_notifications(identity: str) -> str:
        return f"user.{identity.lower()}.notifications"

    @staticmethod
    def channel_application_updates() -> str:
        return "applications.updates"


pubsub = RedisPubSub()
