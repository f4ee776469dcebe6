"""Structured logger for the configuration reader."""

import asyncio
import inspect
import os
import sys
import threading
import traceback
import uuid
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from dynconfig.logger.types import Category, Field, Level, LogEntry

if TYPE_CHECKING:
    from dynconfig.logger.postgres_writer import PostgresWriter


class Logger:
    """Structured logger writing records to PostgreSQL or stdout."""

    def __init__(
        self,
        service_name: str,
        environment: str,
        writer: "PostgresWriter | None" = None,
        level: Level = Level.DEBUG,
    ) -> None:
        """
        Initialize Logger.

        Args:
            service_name: Service name
            environment: Environment (dev, stage, prod)
            writer: PostgresWriter used to persist records
            level: Minimum level that gets emitted
        """
        self.service_name = service_name
        self.environment = environment
        self.writer = writer
        self.level = level
        self.instance_id = self._get_instance_id()
        self.node_name = self._get_node_name()

        # Context fields
        self._fields: dict[str, Any] = {}
        self._category: Category | None = None
        self._application_name: str | None = None

    def trace(self, msg: str, *fields: Field) -> None:
        """Log trace level message."""
        self._log(Level.TRACE, msg, None, *fields)

    def debug(self, msg: str, *fields: Field) -> None:
        """Log debug level message."""
        self._log(Level.DEBUG, msg, None, *fields)

    def info(self, msg: str, *fields: Field) -> None:
        """Log info level message."""
        self._log(Level.INFO, msg, None, *fields)

    def warn(self, msg: str, *fields: Field) -> None:
        """Log warn level message."""
        self._log(Level.WARN, msg, None, *fields)

    def error(self, msg: str, err: Exception | None = None, *fields: Field) -> None:
        """Log error level message."""
        self._log(Level.ERROR, msg, err, *fields)

    def is_enabled(self, level: Level) -> bool:
        """Check whether records of the given level are emitted."""
        return level.rank >= self.level.rank

    def _log(
        self,
        level: Level,
        msg: str,
        err: Exception | None,
        *fields: Field,
    ) -> None:
        if not self.is_enabled(level):
            return

        frame = inspect.currentframe()
        caller_frame = frame.f_back.f_back if frame and frame.f_back else None

        function_name = None
        file_path = None
        line_number = None

        if caller_frame:
            function_name = caller_frame.f_code.co_name
            file_path = self._clean_file_path(caller_frame.f_code.co_filename)
            line_number = caller_frame.f_lineno

        context: dict[str, Any] = dict(self._fields)
        category = self._category

        for field in fields:
            if field.key == "_category":
                if isinstance(field.value, Category):
                    category = field.value
                continue
            context[field.key] = field.value

        duration_ms = context.pop("duration_ms", None)
        if duration_ms is not None:
            duration_ms = int(duration_ms)

        entry = LogEntry(
            timestamp=datetime.utcnow(),
            service_name=self.service_name,
            instance_id=self.instance_id,
            node_name=self.node_name,
            environment=self.environment,
            level=level,
            category=category,
            application_name=self._application_name,
            function_name=function_name,
            file_path=file_path,
            line_number=line_number,
            message=msg,
            context=context if context else None,
            duration_ms=duration_ms,
        )

        if err:
            entry.error_message = str(err)
            if level is Level.ERROR:
                entry.stack_trace = "".join(
                    traceback.format_exception(type(err), err, err.__traceback__)
                )

        self._emit(entry)

    def _emit(self, entry: LogEntry) -> None:
        """Hand the record to the writer, or print it when there is none."""
        writer = self.writer
        if writer is None or writer.loop is None or writer.loop.is_closed():
            print(self._format_line(entry))
            return

        try:
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None

            if running is writer.loop:
                running.create_task(writer.write(entry))
            else:
                # Reader threads have no loop of their own
                asyncio.run_coroutine_threadsafe(writer.write(entry), writer.loop)
        except Exception as write_err:
            print(f"[LOGGER ERROR] Failed to write log: {write_err}", file=sys.stderr)
            print(self._format_line(entry))

    @staticmethod
    def _format_line(entry: LogEntry) -> str:
        category = entry.category.value if entry.category else "-"
        line = f"[{entry.level.value}] {category}: {entry.message}"
        if entry.context:
            pairs = " ".join(f"{k}={v}" for k, v in entry.context.items())
            line = f"{line} {pairs}"
        if entry.error_message:
            line = f"{line} error={entry.error_message}"
        return line

    def with_category(self, category: Category) -> "Logger":
        """Return a new logger bound to the given category."""
        new_logger = self._copy()
        new_logger._category = category
        return new_logger

    def with_application(self, application_name: str) -> "Logger":
        """Return a new logger bound to an application scope."""
        new_logger = self._copy()
        new_logger._application_name = application_name
        return new_logger

    def with_fields(self, *fields: Field) -> "Logger":
        """Return a new logger carrying additional context fields."""
        new_logger = self._copy()
        for field in fields:
            new_logger._fields[field.key] = field.value
        return new_logger

    def _copy(self) -> "Logger":
        new_logger = Logger(self.service_name, self.environment, self.writer, self.level)
        new_logger.instance_id = self.instance_id
        new_logger.node_name = self.node_name
        new_logger._fields = dict(self._fields)
        new_logger._category = self._category
        new_logger._application_name = self._application_name
        return new_logger

    @staticmethod
    def _get_instance_id() -> str:
        """Get instance ID from env or generate one."""
        # Kubernetes pod name
        if hostname := os.getenv("HOSTNAME"):
            return hostname
        # Docker container ID
        if container_id := os.getenv("CONTAINER_ID"):
            return container_id
        return str(uuid.uuid4())

    @staticmethod
    def _get_node_name() -> str | None:
        """Get node name from env (K8s/Swarm)."""
        return os.getenv("NODE_NAME")

    @staticmethod
    def _clean_file_path(file_path: str) -> str:
        """Strip the absolute prefix from a source file path."""
        path = Path(file_path)

        parts = path.parts
        if "dynconfig" in parts:
            idx = parts.index("dynconfig")
            return str(Path(*parts[idx:]))

        return path.name


# Global logger instance
_global_logger: Logger | None = None
_global_lock = threading.Lock()


def get_logger() -> Logger:
    """
    Return the global logger instance.

    Creates a stdout-only logger when init_logger() has not been called,
    so the reader can be used as a library.
    """
    global _global_logger
    if _global_logger is None:
        with _global_lock:
            if _global_logger is None:
                _global_logger = Logger(
                    service_name=os.getenv("SERVICE_NAME", "dynconfig"),
                    environment=os.getenv("ENVIRONMENT", "dev"),
                    level=Level.parse(os.getenv("LOG_LEVEL"), Level.INFO),
                )
    return _global_logger


def init_logger(
    service_name: str,
    environment: str,
    writer: "PostgresWriter | None" = None,
    level: Level | str = Level.DEBUG,
) -> Logger:
    """
    Initialize the global logger.

    Args:
        service_name: Service name
        environment: Environment (dev, stage, prod)
        writer: PostgresWriter used to persist records
        level: Minimum level that gets emitted

    Returns:
        Logger instance
    """
    global _global_logger
    if isinstance(level, str):
        level = Level.parse(level)
    with _global_lock:
        _global_logger = Logger(service_name, environment, writer, level)
    return _global_logger
