"""Types and constants for structured logging."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class Level(str, Enum):
    """Log level of a record."""

    TRACE = "trace"  # Step-by-step tracing
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"  # Recoverable errors

    @property
    def rank(self) -> int:
        """Numeric severity used for level filtering."""
        return _LEVEL_RANK[self]

    @classmethod
    def parse(cls, value: str | None, default: "Level | None" = None) -> "Level":
        """Parse level name (case-insensitive), falling back to default."""
        fallback = default or cls.DEBUG
        if not value:
            return fallback
        normalized = value.strip().lower()
        if normalized == "warning":
            normalized = "warn"
        try:
            return cls(normalized)
        except ValueError:
            return fallback


_LEVEL_RANK = {
    Level.TRACE: 0,
    Level.DEBUG: 10,
    Level.INFO: 20,
    Level.WARN: 30,
    Level.ERROR: 40,
}


class Category(str, Enum):
    """Event category used to group log records."""

    CACHE = "cache"  # Snapshot swaps and cache seeding
    REFRESH = "refresh"  # Refresh cycles and scheduling
    CONVERSION = "conversion"  # Typed value conversion
    DATABASE = "database"  # Configuration store access
    MESSENGER = "messenger"  # Change notifications (Redis Streams)


@dataclass
class LogEntry:
    """Single log record, as inserted into PostgreSQL."""

    timestamp: datetime
    service_name: str
    instance_id: str
    environment: str
    level: Level
    message: str
    ingestion_time: datetime = field(default_factory=datetime.utcnow)
    node_name: str | None = None
    category: Category | None = None
    application_name: str | None = None
    function_name: str | None = None
    file_path: str | None = None
    line_number: int | None = None
    error_message: str | None = None
    stack_trace: str | None = None
    context: dict[str, Any] | None = None
    duration_ms: int | None = None


@dataclass
class Field:
    """Structured key/value attached to a log record."""

    key: str
    value: Any


def category(cat: Category) -> Field:
    """Field overriding the record category."""
    return Field(key="_category", value=cat)


def param(key: str, value: Any) -> Field:
    """Generic parameter field."""
    return Field(key=key, value=value)


def duration_ms(value: int) -> Field:
    """Duration field in milliseconds."""
    return Field(key="duration_ms", value=value)
