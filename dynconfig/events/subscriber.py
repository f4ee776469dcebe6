"""Consumer of configuration change notifications from Redis Streams."""

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any

from dynconfig.events.client import RedisClient
from dynconfig.logger.logger import get_logger
from dynconfig.logger.types import Category, param

EventHandlerFunc = Callable[[dict[str, Any]], Awaitable[None]]


class EventSubscriber:
    """
    Reads change notifications through a Redis consumer group.

    - Creates the consumer group at the stream tail: notifications sent
      before startup are irrelevant, the warm-up fetch covers them
    - Reads new messages only ('>') with XREADGROUP
    - ACKs a message once its handler succeeded; failed messages stay
      pending
    """

    def __init__(
        self,
        redis_client: RedisClient,
        consumer_group: str,
        streams: list[str],
        block_ms: int = 5000,
        batch_size: int = 10,
    ) -> None:
        """
        Initialize EventSubscriber.

        Args:
            redis_client: Redis client instance
            consumer_group: Consumer group name (e.g. "dynconfig-dev")
            streams: Stream names (e.g. ["configuration-updates"])
            block_ms: XREADGROUP block time, bounds shutdown latency
            batch_size: Maximum messages per read
        """
        self.redis_client = redis_client
        self.consumer_group = consumer_group
        self.streams = streams
        self.block_ms = block_ms
        self.batch_size = batch_size
        self.consumer_name = f"{consumer_group}-consumer-{id(self)}"
        self._stopped = False
        self.logger = get_logger().with_category(Category.MESSENGER)

    async def ensure_groups(self) -> None:
        """Create the consumer group on every stream if missing."""
        redis = self.redis_client.get_redis()
        for stream in self.streams:
            try:
                await redis.xgroup_create(
                    name=stream,
                    groupname=self.consumer_group,
                    id="$",
                    mkstream=True,
                )
                self.logger.info(
                    "Consumer group created",
                    param("group", self.consumer_group),
                    param("stream", stream),
                )
            except Exception as e:
                # BUSYGROUP: the group already exists
                if "BUSYGROUP" not in str(e):
                    self.logger.warn(
                        "Failed to create consumer group",
                        param("stream", stream),
                        param("error", str(e)),
                    )

    async def consume(self, handler: EventHandlerFunc) -> None:
        """
        Consume notifications until stopped.

        Args:
            handler: Async function called with each parsed event
        """
        await self.ensure_groups()
        redis = self.redis_client.get_redis()

        self.logger.info(
            "Starting notification consumer",
            param("group", self.consumer_group),
            param("streams", self.streams),
        )

        while not self._stopped:
            try:
                messages = await redis.xreadgroup(
                    groupname=self.consumer_group,
                    consumername=self.consumer_name,
                    streams={stream: ">" for stream in self.streams},
                    count=self.batch_size,
                    block=self.block_ms,
                )

                for stream, stream_messages in messages or []:
                    for message_id, message_data in stream_messages:
                        await self._handle_message(stream, message_id, message_data, handler)

            except asyncio.CancelledError:
                self.logger.info("Consumer cancelled, stopping...")
                break
            except Exception as e:
                self.logger.error("Error in consumer loop", e)
                await asyncio.sleep(5)

        self.logger.info("Notification consumer stopped")

    async def _handle_message(
        self,
        stream: str,
        message_id: str,
        message_data: dict[str, Any],
        handler: EventHandlerFunc,
    ) -> None:
        try:
            event = self.parse_event(message_data)

            self.logger.debug(
                "Received notification",
                param("stream", stream),
                param("event_id", event.get("event_id")),
                param("event_type", event.get("event_type")),
                param("application_name", event.get("application_name")),
            )

            await handler(event)

            redis = self.redis_client.get_redis()
            await redis.xack(stream, self.consumer_group, message_id)

        except Exception as e:
            self.logger.error(
                "Failed to handle notification",
                e,
                param("stream", stream),
                param("message_id", message_id),
            )

    @staticmethod
    def parse_event(message_data: dict[str, Any]) -> dict[str, Any]:
        """
        Parse a stream message into an event dict.

        Args:
            message_data: Raw message fields; "data" holds a JSON string

        Returns:
            Event dict with event_id, event_type, application_name,
            timestamp and data
        """
        event: dict[str, Any] = {
            "event_id": message_data.get("event_id"),
            "event_type": message_data.get("event_type"),
            "application_name": message_data.get("application_name"),
            "timestamp": message_data.get("timestamp"),
        }

        try:
            data = json.loads(message_data.get("data") or "{}")
        except (json.JSONDecodeError, TypeError):
            data = {}
        event["data"] = data if isinstance(data, dict) else {}

        return event

    async def stop(self) -> None:
        """Stop consuming after the current read returns."""
        self.logger.info("Stopping notification consumer...")
        self._stopped = True
