"""Typed, cached configuration reader."""

import asyncio
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import datetime
from types import TracebackType
from typing import Any, TypeVar, overload

from dynconfig.domain.config import ConfigurationItem
from dynconfig.domain.errors import (
    ConversionError,
    FailureKind,
    ReadFailure,
    StoreUnavailableError,
)
from dynconfig.logger.logger import get_logger
from dynconfig.logger.types import Category, category, param
from dynconfig.reader.cache import ConfigCache
from dynconfig.reader.converter import ValueConverter, zero_value
from dynconfig.reader.refresh import RefreshCoordinator, RefreshOutcome, RefreshState
from dynconfig.repository.config_repository import PostgresConfigStore
from dynconfig.repository.store import ConfigStore

T = TypeVar("T")

DEFAULT_REFRESH_INTERVAL_MS = 30_000

ErrorSink = Callable[[ReadFailure], None]


class _Missing:
    def __repr__(self) -> str:
        return "<zero value>"


_MISSING: Any = _Missing()


@dataclass(frozen=True)
class ReaderStats:
    """Point-in-time view of a reader."""

    application_name: str
    item_count: int
    generation: int
    state: RefreshState
    refresh_count: int
    failure_count: int
    last_refreshed_at: datetime | None


class ConfigurationReader:
    """
    Reads typed configuration values of one application.

    Values are served from an in-memory snapshot that a background timer
    refreshes from the store every refresh_interval_ms. Read calls never
    raise on store or conversion failures: they return the zero value of
    the requested type (or the given default) and report the failure to
    the log and to the error sink.

    Example:
        with ConfigurationReader("SERVICE-A", dsn, 30000) as reader:
            max_items = reader.get_value("MaxItemCount", int)
    """

    def __init__(
        self,
        application_name: str,
        connection_string: str,
        refresh_interval_ms: int = DEFAULT_REFRESH_INTERVAL_MS,
        *,
        store: ConfigStore | None = None,
        error_sink: ErrorSink | None = None,
        converter: ValueConverter | None = None,
    ) -> None:
        """
        Initialize ConfigurationReader and start refreshing.

        Args:
            application_name: Application scope the reader is bound to
            connection_string: PostgreSQL DSN of the configuration store
            refresh_interval_ms: Background refresh period in milliseconds
            store: Store to use instead of one built from connection_string
            error_sink: Receives every failure hidden from read callers
            converter: Converter with custom type registrations

        Raises:
            ValueError: If a required argument is blank or the interval
                is not positive
        """
        if not application_name or not application_name.strip():
            raise ValueError("application_name must not be blank")
        if not connection_string or not connection_string.strip():
            raise ValueError("connection_string must not be blank")
        if isinstance(refresh_interval_ms, bool) or refresh_interval_ms <= 0:
            raise ValueError("refresh_interval_ms must be a positive integer")

        self.application_name = application_name
        self.refresh_interval_ms = refresh_interval_ms
        self.error_sink = error_sink
        self.converter = converter or ValueConverter()
        self.logger = get_logger().with_application(application_name)

        self._owns_store = store is None
        self.store: ConfigStore = store or PostgresConfigStore.from_dsn(connection_string)
        self.cache = ConfigCache(application_name)
        self.coordinator = RefreshCoordinator(
            store=self.store,
            cache=self.cache,
            interval_ms=refresh_interval_ms,
            on_failure=lambda err: self._report(None, err),
        )
        self._closed = False

        self.coordinator.start()

    @overload
    def get_value(self, key: str) -> str: ...

    @overload
    def get_value(self, key: str, value_type: type[T]) -> T: ...

    @overload
    def get_value(self, key: str, value_type: type[T], default: T) -> T: ...

    def get_value(self, key: str, value_type: type = str, default: Any = _MISSING) -> Any:
        """
        Get a value from the cache.

        A key that is not cached yields the zero value (or default)
        without consulting the store.

        Args:
            key: Configuration key
            value_type: Requested Python type (str, int, bool, float,
                Decimal, datetime, Enum or a registered type)
            default: Value returned instead of the zero value

        Raises:
            ValueError: If key is blank
        """
        self._require_key(key)

        item = self.cache.lookup(key)
        if item is None:
            return self._fallback(value_type, default)
        return self._convert(item, value_type, default)

    async def get_value_async(
        self, key: str, value_type: type = str, default: Any = _MISSING
    ) -> Any:
        """
        Get a value, fetching it from the store on a cache miss.

        The fetched item seeds the cache unless a full refresh happened
        while it was being fetched.

        Args:
            key: Configuration key
            value_type: Requested Python type
            default: Value returned instead of the zero value

        Raises:
            ValueError: If key is blank
        """
        self._require_key(key)

        item = self.cache.lookup(key)
        if item is None:
            item = await asyncio.to_thread(self._fetch_missing, key)
            if item is None:
                return self._fallback(value_type, default)
        return self._convert(item, value_type, default)

    def contains_key(self, key: str) -> bool:
        """Check if the key is in the cache. Never touches the store."""
        if not key:
            return False
        return self.cache.contains(key)

    def keys(self) -> list[str]:
        """Keys of the current snapshot."""
        return self.cache.keys()

    def refresh(self) -> Future[RefreshOutcome] | None:
        """Trigger a refresh without waiting for it."""
        return self.coordinator.refresh_now()

    def refresh_and_wait(self, timeout: float | None = None) -> RefreshOutcome:
        """Trigger a refresh and wait for it to finish."""
        return self.coordinator.refresh_and_wait(timeout=timeout)

    def wait_until_ready(self, timeout: float | None = None) -> bool:
        """Wait for the warm-up fetch started at construction."""
        return self.coordinator.wait_warm_up(timeout)

    def stats(self) -> ReaderStats:
        return ReaderStats(
            application_name=self.application_name,
            item_count=len(self.cache),
            generation=self.cache.generation,
            state=self.coordinator.state,
            refresh_count=self.coordinator.refresh_count,
            failure_count=self.coordinator.failure_count,
            last_refreshed_at=self.coordinator.last_refreshed_at,
        )

    def close(self) -> None:
        """
        Stop refreshing and release resources.

        Safe to call more than once. Reads keep working on the last
        snapshot afterwards but it is no longer refreshed.
        """
        if self._closed:
            return
        self._closed = True

        self.coordinator.stop()
        if self._owns_store:
            try:
                self.store.close()
            except Exception as e:
                self.logger.warn("Failed to close configuration store", param("error", str(e)))

        self.logger.info("Configuration reader closed", param("items", len(self.cache)))

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "ConfigurationReader":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _fetch_missing(self, key: str) -> ConfigurationItem | None:
        """Fetch a single cache-missing key from the store."""
        generation = self.cache.generation
        try:
            item = self.store.fetch_one(key, self.application_name)
        except Exception as e:
            if not isinstance(e, StoreUnavailableError):
                e = StoreUnavailableError(str(e))
            self._report(key, e)
            return None

        if item is None or not item.belongs_to(self.application_name):
            return None

        self.cache.insert_if_absent(key, item, generation)
        return item

    def _convert(self, item: ConfigurationItem, value_type: type, default: Any) -> Any:
        result = self.converter.try_convert(item.raw_value, item.declared_type, value_type)
        if result.ok:
            return result.value
        assert result.error is not None
        self._report(item.key, result.error)
        return self._fallback(value_type, default)

    @staticmethod
    def _fallback(value_type: type, default: Any) -> Any:
        return zero_value(value_type) if default is _MISSING else default

    @staticmethod
    def _require_key(key: str) -> None:
        if not isinstance(key, str) or not key.strip():
            raise ValueError("key must not be blank")

    def _report(self, key: str | None, err: Exception) -> None:
        """Log a hidden failure and hand it to the error sink."""
        failure = ReadFailure(
            kind=FailureKind.of(err),
            application_name=self.application_name,
            key=key,
            error=err,
        )

        if isinstance(err, ConversionError):
            self.logger.error(
                "Configuration value could not be converted",
                err,
                category(Category.CONVERSION),
                param("key", key),
                param("kind", failure.kind.value),
                param("raw_value", err.raw_value),
            )
        elif key is not None:
            self.logger.error(
                "Configuration fetch failed",
                err,
                category(Category.DATABASE),
                param("key", key),
            )

        if self.error_sink is None:
            return
        try:
            self.error_sink(failure)
        except Exception as sink_err:
            self.logger.warn(
                "Error sink raised",
                param("error", str(sink_err)),
                param("failure_kind", failure.kind.value),
            )
