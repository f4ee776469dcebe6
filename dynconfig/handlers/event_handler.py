"""Handlers for configuration change notifications."""

from collections.abc import Awaitable, Callable
from typing import Any

from dynconfig.logger.logger import get_logger
from dynconfig.logger.types import Category, param
from dynconfig.reader.reader import ConfigurationReader


class ConfigEventHandler:
    """
    Routes change notifications to the reader.

    A notification only brings the next refresh forward; the periodic
    timer still bounds staleness when notifications are lost.
    """

    def __init__(self, reader: ConfigurationReader) -> None:
        self.reader = reader
        self.logger = get_logger().with_category(Category.MESSENGER).with_application(
            reader.application_name
        )

        self._handlers: dict[str, Callable[[dict[str, Any]], Awaitable[None]]] = {
            "configuration_updated": self._handle_configuration_updated,
            "configuration_deleted": self._handle_configuration_updated,
        }

    async def handle(self, event: dict[str, Any]) -> None:
        """
        Handle an incoming notification.

        Args:
            event: Event dict with event_type, application_name, data
        """
        event_type = event.get("event_type")
        handler = self._handlers.get(event_type or "")
        if handler is None:
            self.logger.warn(
                f"Unknown event type: {event_type}",
                param("event_id", event.get("event_id")),
                param("event_type", event_type),
            )
            return

        await handler(event)

    async def _handle_configuration_updated(self, event: dict[str, Any]) -> None:
        """Refresh when the notification concerns the reader's application."""
        application_name = event.get("application_name") or event.get("data", {}).get(
            "application_name"
        )
        if application_name and application_name != self.reader.application_name:
            self.logger.trace(
                "Notification for another application ignored",
                param("event_application", application_name),
            )
            return

        future = self.reader.refresh()
        self.logger.info(
            "Refresh triggered by notification",
            param("event_id", event.get("event_id")),
            param("event_type", event.get("event_type")),
            param("key", event.get("data", {}).get("name")),
            param("scheduled", future is not None),
        )
