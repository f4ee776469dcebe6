"""Settings module for the configuration reader service."""

import os

from dynconfig.database.postgres import PostgresConfig


class RedisConfig:
    """Redis configuration (change notifications)."""

    def __init__(self) -> None:
        self.host = os.getenv("MESSENGER_HOST", "messenger")
        self.port = int(os.getenv("MESSENGER_PORT", "6379"))
        self.db = int(os.getenv("MESSENGER_DB", "0"))
        self.password = self._read_password()
        self.consumer_group = f"dynconfig-{os.getenv('ENVIRONMENT', 'dev')}"

        # Streams with configuration change notifications
        self.subscribe_streams: list[str] = [
            os.getenv("CONFIG_EVENTS_STREAM", "configuration-updates"),
        ]

    def _read_password(self) -> str | None:
        """Read Redis password from Docker secret or environment."""
        secret_path = "/run/secrets/redis_password"
        try:
            with open(secret_path) as f:
                return f.read().strip()
        except FileNotFoundError:
            return os.getenv("MESSENGER_PASSWORD")

    @property
    def is_configured(self) -> bool:
        """Notifications are disabled when MESSENGER_HOST is empty."""
        return bool(self.host)


class ReaderConfig:
    """Configuration reader binding."""

    def __init__(self) -> None:
        self.application_name = os.getenv("APPLICATION_NAME", "")
        self.refresh_interval_ms = int(os.getenv("REFRESH_INTERVAL_MS", "30000"))
        self.ready_timeout = float(os.getenv("READY_TIMEOUT_SECONDS", "10"))


class Settings:
    """Application settings."""

    def __init__(self) -> None:
        # Service info
        self.environment = os.getenv("ENVIRONMENT", "dev")
        self.service_name = os.getenv("SERVICE_NAME", "dynconfig")
        self.service_version = os.getenv("SERVICE_VERSION", "0.1.0")
        self.log_level = os.getenv("LOG_LEVEL", "debug")

        # PostgreSQL (configuration store and logs)
        self.postgres = PostgresConfig()

        # Redis
        self.redis = RedisConfig()

        # Reader
        self.reader = ReaderConfig()
