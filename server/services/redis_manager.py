"""
Redis connection manager.

Holds the sync client used for publishing and builds async clients for the
pub/sub listener. Connections are opened lazily so that importing this module
never touches the network.
"""
import logging
from typing import Optional, Dict, Any

import redis
import redis.asyncio as aioredis

import config

logger = logging.getLogger(__name__)


class RedisManager:
    """Singleton Redis connection manager."""

    _instance: Optional['RedisManager'] = None
    _client: Optional[redis.Redis] = None

    def __new__(cls):
        """Singleton pattern to ensure single Redis connection pool."""
        if cls._instance is None:
            cls._instance = super(RedisManager, cls).__new__(cls)
        return cls._instance

    def _connection_kwargs(self) -> Dict[str, Any]:
        return {
            "host": config.REDIS_HOST,
            "port": config.REDIS_PORT,
            "password": config.REDIS_PASSWORD,
            "db": config.REDIS_DB,
            "decode_responses": True,
            "socket_connect_timeout": 5,
        }

    def _connect(self):
        self._client = redis.Redis(
            **self._connection_kwargs(),
            socket_timeout=5,
            retry_on_timeout=True,
            health_check_interval=30,
        )
        logger.info(f"Redis client configured for {config.REDIS_HOST}:{config.REDIS_PORT}")

    @property
    def client(self) -> redis.Redis:
        """Get Redis client instance."""
        if self._client is None:
            self._connect()
        return self._client

    def create_async_pubsub_client(self) -> aioredis.Redis:
        """New asyncio client for a long-lived pub/sub listener (no read timeout)."""
        return aioredis.Redis(**self._connection_kwargs())

    def health(self) -> Dict[str, Any]:
        try:
            self.client.ping()
            info = self.client.info("server")
            return {
                "status": "connected",
                "redis_version": info.get("redis_version"),
                "uptime_seconds": info.get("uptime_in_seconds"),
                "connected_clients": info.get("connected_clients"),
            }
        except redis.RedisError as e:
            return {"status": "disconnected", "error": str(e)}


# ==================== Global Instance ====================

redis_manager = RedisManager()
