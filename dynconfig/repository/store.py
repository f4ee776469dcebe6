"""Boundary between the reader and the configuration store."""

from typing import Protocol, runtime_checkable

from dynconfig.domain.config import ConfigurationItem


@runtime_checkable
class ConfigStore(Protocol):
    """
    Source of configuration items.

    fetch_all and fetch_one raise StoreUnavailableError when the backend
    cannot be queried. probe_connectivity never raises.
    """

    def fetch_all(self, application_name: str) -> list[ConfigurationItem]:
        """Fetch all active items of an application."""
        ...

    def fetch_one(self, key: str, application_name: str) -> ConfigurationItem | None:
        """Fetch a single active item by key, or None if there is none."""
        ...

    def probe_connectivity(self) -> bool:
        """Best-effort liveness check."""
        ...

    def close(self) -> None:
        """Release backend resources."""
        ...
