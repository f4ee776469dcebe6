"""PostgreSQL client for the configuration store."""

import os
import threading
from typing import Any

from psycopg2.extensions import connection as Connection
from psycopg2.pool import ThreadedConnectionPool


class PostgresConfig:
    """PostgreSQL connection configuration."""

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        database: str | None = None,
        user: str | None = None,
        password: str | None = None,
        min_conn: int = 1,
        max_conn: int = 10,
        connect_timeout: int = 5,
        dsn: str | None = None,
    ) -> None:
        self.host = host or os.getenv("DB_HOST", "localhost")
        self.port = port or int(os.getenv("DB_PORT", "5432"))
        self.database = database or os.getenv("DB_NAME", "dynconfig")
        self.user = user or os.getenv("DB_USER", "dynconfig")
        self.password = password or self._read_password()
        self.min_conn = min_conn
        self.max_conn = max_conn
        self.connect_timeout = connect_timeout
        self._dsn = dsn

    @classmethod
    def from_dsn(cls, dsn: str, **kwargs: Any) -> "PostgresConfig":
        """Build a config around an explicit DSN or URI."""
        return cls(dsn=dsn, **kwargs)

    @staticmethod
    def _read_password() -> str:
        """Read password from Docker secret or env."""
        secret_file = "/run/secrets/db_password"
        if os.path.exists(secret_file):
            with open(secret_file) as f:
                return f.read().strip()
        return os.getenv("DB_PASSWORD", "dynconfig")

    @property
    def dsn(self) -> str:
        """Get PostgreSQL DSN."""
        if self._dsn:
            return self._dsn
        return (
            f"host={self.host} "
            f"port={self.port} "
            f"dbname={self.database} "
            f"user={self.user} "
            f"password={self.password}"
        )


class PostgresClient:
    """
    PostgreSQL client with connection pooling.

    The pool is created on first use, so an unreachable database does not
    fail construction.
    """

    def __init__(self, config: PostgresConfig | dict[str, Any] | str | None) -> None:
        """
        Initialize PostgreSQL client.

        Args:
            config: PostgresConfig, config dict or DSN string
        """
        if isinstance(config, dict):
            self.config = PostgresConfig(**config)
        elif isinstance(config, str):
            self.config = PostgresConfig.from_dsn(config)
        elif config is None:
            self.config = PostgresConfig()
        else:
            self.config = config

        self.pool: ThreadedConnectionPool | None = None
        self._lock = threading.Lock()
        self._closed = False

    def connect(self) -> None:
        """Create the connection pool if it does not exist yet."""
        with self._lock:
            if self._closed:
                raise RuntimeError("PostgresClient is closed")
            if self.pool is not None:
                return
            try:
                self.pool = ThreadedConnectionPool(
                    minconn=self.config.min_conn,
                    maxconn=self.config.max_conn,
                    dsn=self.config.dsn,
                    connect_timeout=self.config.connect_timeout,
                )
            except Exception as e:
                raise ConnectionError(f"Failed to create connection pool: {e}") from e

    def close(self) -> None:
        """Close the connection pool."""
        with self._lock:
            self._closed = True
            if self.pool:
                self.pool.closeall()
                self.pool = None

    @property
    def closed(self) -> bool:
        return self._closed

    def get_connection(self) -> Connection:
        """Get connection from pool, creating the pool if needed."""
        self.connect()
        with self._lock:
            pool = self.pool
        if pool is None:
            raise RuntimeError("PostgresClient is closed")
        return pool.getconn()  # type: ignore[no-any-return]

    def put_connection(self, conn: Connection, close: bool = False) -> None:
        """Return connection to pool (discarding it when close is set)."""
        if self.pool:
            self.pool.putconn(conn, close=close)
