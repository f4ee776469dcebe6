"""Configuration store backed by PostgreSQL."""

from collections.abc import Iterable
from typing import Any

import psycopg2
from psycopg2.extras import RealDictCursor

from dynconfig.database.postgres import PostgresClient
from dynconfig.domain.config import ConfigurationItem
from dynconfig.domain.errors import StoreUnavailableError
from dynconfig.logger.logger import get_logger
from dynconfig.logger.types import Category, param

_SELECT_COLUMNS = """
    SELECT id, name, type, value, is_active, application_name,
           created_at, updated_at
    FROM configurations
"""


class PostgresConfigStore:
    """Read-only access to the configurations table."""

    def __init__(self, postgres_client: PostgresClient) -> None:
        """
        Initialize PostgresConfigStore.

        Args:
            postgres_client: PostgreSQL client instance
        """
        self.postgres = postgres_client
        self.logger = get_logger().with_category(Category.DATABASE)

    @classmethod
    def from_dsn(cls, dsn: str) -> "PostgresConfigStore":
        """Create a store with its own connection pool."""
        return cls(PostgresClient(dsn))

    def fetch_all(self, application_name: str) -> list[ConfigurationItem]:
        """
        Fetch all active items of an application.

        Rows come ordered by update time, so a later duplicate of a key
        is the most recently updated one.

        Args:
            application_name: Application scope

        Returns:
            List of ConfigurationItem

        Raises:
            StoreUnavailableError: If the database cannot be queried
        """
        rows = self._query(
            _SELECT_COLUMNS
            + """
            WHERE application_name = %s AND is_active = TRUE
            ORDER BY updated_at, id
            """,
            (application_name,),
        )
        return self._to_items(rows)

    def fetch_one(self, key: str, application_name: str) -> ConfigurationItem | None:
        """
        Fetch a single active item by key.

        Args:
            key: Configuration key
            application_name: Application scope

        Returns:
            ConfigurationItem or None if not found

        Raises:
            StoreUnavailableError: If the database cannot be queried
        """
        rows = self._query(
            _SELECT_COLUMNS
            + """
            WHERE name = %s AND application_name = %s AND is_active = TRUE
            ORDER BY updated_at DESC, id DESC
            LIMIT 1
            """,
            (key, application_name),
        )
        items = self._to_items(rows)
        return items[0] if items else None

    def probe_connectivity(self) -> bool:
        """Check that the database answers a trivial query."""
        try:
            self._query("SELECT 1 AS ok", ())
            return True
        except StoreUnavailableError as e:
            self.logger.warn("Configuration store is not reachable", param("error", str(e)))
            return False

    def ensure_schema(self) -> bool:
        """
        Create the configurations table and its lookup index if missing.

        Returns:
            True if the table exists afterwards
        """
        try:
            conn = self.postgres.get_connection()
        except (ConnectionError, RuntimeError, psycopg2.Error) as e:
            self.logger.error("Failed to ensure configurations table", e)
            return False

        try:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    CREATE TABLE IF NOT EXISTS configurations (
                        id BIGSERIAL PRIMARY KEY,
                        name TEXT NOT NULL,
                        type TEXT NOT NULL,
                        value TEXT NOT NULL DEFAULT '',
                        is_active BOOLEAN NOT NULL DEFAULT TRUE,
                        application_name TEXT NOT NULL,
                        created_at TIMESTAMP NOT NULL DEFAULT NOW(),
                        updated_at TIMESTAMP NOT NULL DEFAULT NOW()
                    )
                    """
                )
            conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            self.logger.error("Failed to ensure configurations table", e)
            self.postgres.put_connection(conn)
            return False

        try:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    CREATE INDEX IF NOT EXISTS ix_configurations_application_name
                    ON configurations (application_name, name)
                    """
                )
            conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            self.logger.warn("Failed to create configurations index", param("error", str(e)))
        finally:
            self.postgres.put_connection(conn)

        return True

    def close(self) -> None:
        """Close the underlying connection pool."""
        self.postgres.close()

    def _query(self, sql: str, params: tuple[Any, ...]) -> list[dict[str, Any]]:
        """Run a read query and return rows as dicts."""
        try:
            conn = self.postgres.get_connection()
        except (ConnectionError, RuntimeError, psycopg2.Error) as e:
            raise StoreUnavailableError(f"Configuration store unavailable: {e}") from e

        broken = False
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(sql, params)
                rows = cur.fetchall()
            conn.rollback()
            return [dict(row) for row in rows]
        except psycopg2.Error as e:
            broken = bool(conn.closed)
            if not broken:
                conn.rollback()
            raise StoreUnavailableError(f"Configuration query failed: {e}") from e
        finally:
            self.postgres.put_connection(conn, close=broken)

    def _to_items(self, rows: Iterable[dict[str, Any]]) -> list[ConfigurationItem]:
        items: list[ConfigurationItem] = []
        for row in rows:
            try:
                items.append(ConfigurationItem.from_row(row))
            except (KeyError, ValueError) as e:
                self.logger.warn(
                    "Skipping malformed configuration row",
                    param("id", row.get("id")),
                    param("name", row.get("name")),
                    param("error", str(e)),
                )
        return items
