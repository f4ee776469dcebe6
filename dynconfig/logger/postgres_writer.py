"""PostgreSQL writer for log records with batching."""

import asyncio
import contextlib
import json
import sys
from typing import Any

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as Connection

from dynconfig.logger.types import LogEntry


class PostgresWriter:
    """PostgresWriter stores log records in PostgreSQL in batches."""

    def __init__(
        self,
        dsn: str,
        batch_size: int = 100,
        flush_interval: float = 5.0,
    ) -> None:
        """
        Initialize PostgresWriter.

        Args:
            dsn: PostgreSQL connection string
            batch_size: Buffer size that triggers a flush
            flush_interval: Interval of the background flush in seconds
        """
        self.dsn = dsn
        self.batch_size = batch_size
        self.flush_interval = flush_interval
        self.buffer: list[LogEntry] = []
        self.loop: asyncio.AbstractEventLoop | None = None
        self._lock = asyncio.Lock()
        self._conn: Connection | None = None
        self._flush_task: asyncio.Task[None] | None = None
        self._closed = False

    async def connect(self) -> None:
        """Connect to PostgreSQL and start the background flush."""
        try:
            self._conn = psycopg2.connect(self.dsn)
            self._conn.set_session(autocommit=False)

            self.loop = asyncio.get_running_loop()
            self._flush_task = asyncio.create_task(self._background_flush())
        except Exception as e:
            print(
                f"[LOGGER ERROR] Failed to connect to PostgreSQL: {e}",
                file=sys.stderr,
            )
            raise

    async def write(self, entry: LogEntry) -> None:
        """Append a record to the buffer."""
        if self._closed:
            return

        async with self._lock:
            self.buffer.append(entry)

            if len(self.buffer) >= self.batch_size:
                await self._flush_locked()

    async def flush(self) -> None:
        """Write the buffer to the database."""
        async with self._lock:
            await self._flush_locked()

    async def _flush_locked(self) -> None:
        """Write the buffer (caller holds the lock)."""
        if not self.buffer:
            return
        if not self._conn:
            self._fallback_to_stderr()
            self.buffer.clear()
            return

        try:
            query = """
                INSERT INTO logs (
                    timestamp, service_name, instance_id, node_name, environment,
                    level, category, application_name,
                    function_name, file_path, line_number,
                    message, error_message, stack_trace, context,
                    duration_ms, ingestion_time
                ) VALUES %s
            """

            values = [
                (
                    entry.timestamp,
                    entry.service_name,
                    entry.instance_id,
                    entry.node_name,
                    entry.environment,
                    entry.level.value,
                    entry.category.value if entry.category else None,
                    entry.application_name,
                    entry.function_name,
                    entry.file_path,
                    entry.line_number,
                    entry.message,
                    entry.error_message,
                    entry.stack_trace,
                    json.dumps(entry.context, default=str)
                    if entry.context is not None
                    else None,
                    entry.duration_ms,
                    entry.ingestion_time,
                )
                for entry in self.buffer
            ]

            with self._conn.cursor() as cursor:
                psycopg2.extras.execute_values(
                    cursor,
                    query,
                    values,
                    page_size=self.batch_size,
                )
                self._conn.commit()

        except Exception as e:
            print(
                f"[LOGGER ERROR] Failed to insert logs into PostgreSQL: {e}",
                file=sys.stderr,
            )
            if self._conn:
                self._conn.rollback()
            self._fallback_to_stderr()
        finally:
            self.buffer.clear()

    def _fallback_to_stderr(self) -> None:
        """Dump buffered records to stderr when PostgreSQL is unavailable."""
        for entry in self.buffer:
            try:
                data: dict[str, Any] = {
                    "timestamp": entry.timestamp.isoformat(),
                    "level": entry.level.value,
                    "category": entry.category.value if entry.category else None,
                    "application_name": entry.application_name,
                    "message": entry.message,
                    "service_name": entry.service_name,
                    "environment": entry.environment,
                }
                if entry.error_message:
                    data["error"] = entry.error_message
                if entry.context:
                    data["context"] = entry.context

                print(json.dumps(data, default=str), file=sys.stderr)
            except Exception:
                print(
                    f"[{entry.level.value}] {entry.category}: {entry.message}",
                    file=sys.stderr,
                )

    async def _background_flush(self) -> None:
        """Flush the buffer periodically."""
        while not self._closed:
            try:
                await asyncio.sleep(self.flush_interval)
                await self.flush()
            except asyncio.CancelledError:
                break
            except Exception as e:
                print(
                    f"[LOGGER ERROR] Background flush failed: {e}",
                    file=sys.stderr,
                )

    async def close(self) -> None:
        """Stop the writer and flush what is left."""
        self._closed = True

        if self._flush_task:
            self._flush_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._flush_task

        await self.flush()

        if self._conn:
            self._conn.close()
            self._conn = None
        self.loop = None
