"""Logger module for the dynamic configuration reader."""

from dynconfig.logger.logger import Logger, get_logger, init_logger
from dynconfig.logger.postgres_writer import PostgresWriter
from dynconfig.logger.types import Category, Field, Level, LogEntry

__all__ = [
    "Logger",
    "get_logger",
    "init_logger",
    "PostgresWriter",
    "Category",
    "Level",
    "LogEntry",
    "Field",
]
