"""Redis client for configuration change notifications."""

import asyncio
from collections.abc import Iterator
from typing import TYPE_CHECKING

import redis.asyncio as redis_async
from redis.asyncio.client import Redis

from dynconfig.logger.logger import get_logger
from dynconfig.logger.types import Category, param

if TYPE_CHECKING:
    from dynconfig.config.settings import RedisConfig


def backoff_delays(initial: float, maximum: float = 30.0) -> Iterator[float]:
    """Exponential backoff: initial, 2*initial, ... capped at maximum."""
    delay = initial
    while True:
        yield delay
        delay = min(delay * 2, maximum)


class RedisClient:
    """Connection to the messenger carrying change notifications."""

    def __init__(self, config: "RedisConfig") -> None:
        self.config = config
        self.redis: Redis | None = None
        self.logger = get_logger().with_category(Category.MESSENGER)

    def _create(self) -> Redis:
        return redis_async.Redis(
            host=self.config.host,
            port=self.config.port,
            db=self.config.db,
            password=self.config.password,
            decode_responses=True,
            socket_keepalive=True,
            socket_connect_timeout=5,
            retry_on_timeout=True,
        )

    async def connect(self, max_retries: int = 10, initial_delay: float = 1.0) -> None:
        """
        Connect and ping, retrying with exponential backoff.

        Args:
            max_retries: Maximum connection attempts
            initial_delay: First delay between attempts in seconds

        Raises:
            ConnectionError: If every attempt failed
        """
        last_error: Exception | None = None
        delays = backoff_delays(initial_delay)

        for attempt in range(1, max_retries + 1):
            client = self._create()
            try:
                await client.ping()  # type: ignore[misc]
            except Exception as e:
                last_error = e
                await client.aclose()
                if attempt == max_retries:
                    break
                delay = next(delays)
                self.logger.warn(
                    f"Redis connection attempt {attempt}/{max_retries} failed, retrying...",
                    param("host", self.config.host),
                    param("port", self.config.port),
                    param("delay", delay),
                    param("error", str(e)),
                )
                await asyncio.sleep(delay)
            else:
                self.redis = client
                return

        self.logger.error(
            f"Failed to connect to Redis after {max_retries} attempts",
            last_error,
            param("host", self.config.host),
            param("port", self.config.port),
        )
        raise ConnectionError(
            f"Failed to connect to Redis at {self.config.host}:{self.config.port} "
            f"after {max_retries} attempts"
        )

    async def close(self) -> None:
        if self.redis:
            await self.redis.aclose()
            self.redis = None

    def get_redis(self) -> Redis:
        """
        Get the connected Redis instance.

        Raises:
            RuntimeError: If not connected
        """
        if self.redis is None:
            raise RuntimeError("RedisClient not connected. Call connect() first.")
        return self.redis
