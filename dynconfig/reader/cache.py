"""In-memory snapshot cache of configuration items."""

import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType

from dynconfig.domain.config import ConfigurationItem
from dynconfig.logger.logger import get_logger
from dynconfig.logger.types import Category, param


@dataclass(frozen=True)
class Snapshot:
    """Immutable key -> item table installed as a whole."""

    items: Mapping[str, ConfigurationItem]
    generation: int
    created_at: datetime = field(default_factory=datetime.utcnow)


def build_snapshot(
    items: Iterable[ConfigurationItem], application_name: str
) -> dict[str, ConfigurationItem]:
    """
    Build the table for one application from fetched items.

    Inactive items and items of other applications are dropped. When
    several items share a key, the last one in iteration order wins.
    """
    table: dict[str, ConfigurationItem] = {}
    for item in items:
        if not item.key or not item.belongs_to(application_name):
            continue
        table[item.key] = item
    return table


class ConfigCache:
    """
    Last known configuration of one application.

    Readers take the current snapshot reference without locking and so
    see either the old or the new table, never a mix. Writers build a new
    table off to the side and swap the reference under a writer lock.
    """

    def __init__(self, application_name: str) -> None:
        self.application_name = application_name
        self._snapshot = Snapshot(items=MappingProxyType({}), generation=0)
        self._write_lock = threading.Lock()
        self.logger = get_logger().with_category(Category.CACHE).with_application(
            application_name
        )

    @property
    def generation(self) -> int:
        """Number of full snapshots installed so far."""
        return self._snapshot.generation

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    def lookup(self, key: str) -> ConfigurationItem | None:
        return self._snapshot.items.get(key)

    def contains(self, key: str) -> bool:
        return key in self._snapshot.items

    def keys(self) -> list[str]:
        return list(self._snapshot.items)

    def __len__(self) -> int:
        return len(self._snapshot.items)

    def replace_all(self, items: Iterable[ConfigurationItem]) -> int:
        """
        Install a new snapshot built from items.

        Args:
            items: Items fetched from the store

        Returns:
            Number of entries in the new snapshot
        """
        table = MappingProxyType(build_snapshot(items, self.application_name))
        with self._write_lock:
            previous = self._snapshot
            self._snapshot = Snapshot(items=table, generation=previous.generation + 1)

        self.logger.debug(
            "Configuration snapshot replaced",
            param("generation", previous.generation + 1),
            param("previous_count", len(previous.items)),
            param("count", len(table)),
        )
        return len(table)

    def insert_if_absent(
        self,
        key: str,
        item: ConfigurationItem,
        generation: int | None = None,
    ) -> bool:
        """
        Seed a single entry without touching the others.

        Args:
            key: Configuration key
            item: Item fetched for the key
            generation: Snapshot generation observed before the item was
                fetched; if a full refresh happened since, the refreshed
                snapshot is authoritative and the item is dropped

        Returns:
            True if the item was inserted
        """
        if not key or not item.belongs_to(self.application_name):
            return False

        with self._write_lock:
            current = self._snapshot
            if generation is not None and current.generation != generation:
                return False
            if key in current.items:
                return False

            table = dict(current.items)
            table[key] = item
            self._snapshot = Snapshot(
                items=MappingProxyType(table),
                generation=current.generation,
                created_at=current.created_at,
            )

        self.logger.debug("Configuration item seeded", param("key", key))
        return True
