"""Shared fixtures: an in-memory configuration store and reader factory."""

import threading
import time
from collections.abc import Callable, Iterator
from datetime import datetime, timedelta

import pytest

from dynconfig.domain.config import ConfigurationItem, DeclaredType
from dynconfig.domain.errors import StoreUnavailableError
from dynconfig.reader.reader import ConfigurationReader

APP = "SERVICE-A"
DSN = "host=localhost dbname=dynconfig"
# Long enough that the timer never fires during a test
NO_TIMER_MS = 3_600_000

_BASE_TIME = datetime(2024, 1, 1, 12, 0, 0)


def make_item(
    key: str,
    raw_value: str,
    declared_type: DeclaredType | str = DeclaredType.STRING,
    application_name: str = APP,
    active: bool = True,
    seq: int = 0,
) -> ConfigurationItem:
    return ConfigurationItem(
        key=key,
        application_name=application_name,
        declared_type=DeclaredType.parse(declared_type),
        raw_value=raw_value,
        active=active,
        id=f"{key}-{seq}",
        created_at=_BASE_TIME,
        updated_at=_BASE_TIME + timedelta(seconds=seq),
    )


class FakeStore:
    """ConfigStore keeping items in a list, with failure and delay knobs."""

    def __init__(self, items: list[ConfigurationItem] | None = None) -> None:
        self.items: list[ConfigurationItem] = list(items or [])
        self.reachable = True
        self.fail_fetch_all = False
        self.fail_fetch_one = False
        self.fetch_delay = 0.0
        self.fetch_all_calls = 0
        self.fetch_one_calls = 0
        self.closed = False
        self.max_concurrent_fetches = 0
        self._in_flight = 0
        self._lock = threading.Lock()
        self.fetch_started = threading.Event()
        self.release_fetch: threading.Event | None = None

    def fetch_all(self, application_name: str) -> list[ConfigurationItem]:
        with self._lock:
            self.fetch_all_calls += 1
            self._in_flight += 1
            self.max_concurrent_fetches = max(self.max_concurrent_fetches, self._in_flight)
        self.fetch_started.set()
        try:
            if self.release_fetch is not None:
                self.release_fetch.wait(5)
            if self.fetch_delay:
                time.sleep(self.fetch_delay)
            if self.fail_fetch_all:
                raise StoreUnavailableError("store is down")
            # Mimics the store query: scope and active filter
            return [
                item
                for item in self.items
                if item.application_name == application_name and item.active
            ]
        finally:
            with self._lock:
                self._in_flight -= 1

    def fetch_one(self, key: str, application_name: str) -> ConfigurationItem | None:
        with self._lock:
            self.fetch_one_calls += 1
        if self.fail_fetch_one:
            raise StoreUnavailableError("store is down")
        matches = [
            item
            for item in self.items
            if item.key == key and item.application_name == application_name and item.active
        ]
        return matches[-1] if matches else None

    def probe_connectivity(self) -> bool:
        return self.reachable

    def close(self) -> None:
        self.closed = True


class RawStore(FakeStore):
    """Store that returns every item unfiltered, like a misbehaving backend."""

    def fetch_all(self, application_name: str) -> list[ConfigurationItem]:
        super().fetch_all(application_name)
        return list(self.items)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def failures() -> list:
    return []


@pytest.fixture
def make_reader(
    store: FakeStore, failures: list
) -> Iterator[Callable[..., ConfigurationReader]]:
    readers: list[ConfigurationReader] = []

    def factory(
        application_name: str = APP,
        refresh_interval_ms: int = NO_TIMER_MS,
        wait: bool = True,
        **kwargs,
    ) -> ConfigurationReader:
        kwargs.setdefault("store", store)
        kwargs.setdefault("error_sink", failures.append)
        reader = ConfigurationReader(application_name, DSN, refresh_interval_ms, **kwargs)
        readers.append(reader)
        if wait:
            assert reader.wait_until_ready(5)
        return reader

    yield factory

    for reader in readers:
        reader.close()
