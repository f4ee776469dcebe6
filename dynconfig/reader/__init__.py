"""Typed, cached configuration reader."""

from dynconfig.domain.config import ConfigurationItem, DeclaredType
from dynconfig.domain.errors import (
    ConfigurationReaderError,
    ConversionError,
    FailureKind,
    ReadFailure,
    StoreUnavailableError,
    UnsupportedTypeError,
)
from dynconfig.reader.cache import ConfigCache
from dynconfig.reader.converter import ValueConverter, zero_value
from dynconfig.reader.reader import ConfigurationReader, ReaderStats
from dynconfig.reader.refresh import RefreshCoordinator, RefreshOutcome, RefreshState

__all__ = [
    "ConfigurationReader",
    "ReaderStats",
    "ConfigurationItem",
    "DeclaredType",
    "ConfigCache",
    "RefreshCoordinator",
    "RefreshOutcome",
    "RefreshState",
    "ValueConverter",
    "zero_value",
    "ConfigurationReaderError",
    "ConversionError",
    "UnsupportedTypeError",
    "StoreUnavailableError",
    "FailureKind",
    "ReadFailure",
]
