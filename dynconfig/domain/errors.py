"""Errors and failure reports of the configuration reader."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ConfigurationReaderError(Exception):
    """Base class for reader errors."""


class StoreUnavailableError(ConfigurationReaderError):
    """The configuration store could not be reached or queried."""


class ConversionError(ConfigurationReaderError):
    """A stored value could not be converted to the requested type."""

    def __init__(self, message: str, raw_value: str | None = None) -> None:
        super().__init__(message)
        self.raw_value = raw_value


class UnsupportedTypeError(ConversionError):
    """The requested type cannot be produced from the stored item."""


class FailureKind(str, Enum):
    """Kind of failure reported to the error sink."""

    STORE_UNAVAILABLE = "store_unavailable"
    CONVERSION_FAILED = "conversion_failed"
    UNSUPPORTED_TYPE = "unsupported_type"

    @classmethod
    def of(cls, err: Exception) -> "FailureKind":
        if isinstance(err, UnsupportedTypeError):
            return cls.UNSUPPORTED_TYPE
        if isinstance(err, ConversionError):
            return cls.CONVERSION_FAILED
        return cls.STORE_UNAVAILABLE


@dataclass(frozen=True)
class ReadFailure:
    """
    Failure observed by the reader and never raised to its callers.

    key is None for failures of a whole refresh cycle.
    """

    kind: FailureKind
    application_name: str
    key: str | None
    error: Exception
    occurred_at: datetime = field(default_factory=datetime.utcnow)
