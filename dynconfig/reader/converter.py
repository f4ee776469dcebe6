"""Conversion of stored text values into typed values."""

import re
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Generic, TypeVar

from dynconfig.domain.config import DeclaredType
from dynconfig.domain.errors import ConversionError, UnsupportedTypeError

T = TypeVar("T")

_INTEGER_RE = re.compile(r"^[+-]?[0-9]+$")
_TRUE_VALUES = frozenset({"1", "true"})
_FALSE_VALUES = frozenset({"0", "false"})


def parse_string(raw: str) -> str:
    return raw


def parse_integer(raw: str) -> int:
    text = raw.strip()
    if not _INTEGER_RE.match(text):
        raise ConversionError(f"Invalid integer: {raw!r}", raw)
    try:
        return int(text, 10)
    except ValueError:
        # Digit strings past the interpreter limit
        raise ConversionError(f"Invalid integer: {raw!r}", raw) from None


def parse_boolean(raw: str) -> bool:
    text = raw.strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConversionError(f"Invalid boolean: {raw!r}", raw)


def parse_float(raw: str) -> float:
    text = raw.strip()
    if not text or "_" in text:
        raise ConversionError(f"Invalid number: {raw!r}", raw)
    try:
        return float(text)
    except ValueError:
        raise ConversionError(f"Invalid number: {raw!r}", raw) from None


def parse_decimal(raw: str) -> Decimal:
    text = raw.strip()
    if not text or "_" in text:
        raise ConversionError(f"Invalid decimal: {raw!r}", raw)
    try:
        return Decimal(text)
    except InvalidOperation:
        raise ConversionError(f"Invalid decimal: {raw!r}", raw) from None


def parse_timestamp(raw: str) -> datetime:
    text = raw.strip()
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        raise ConversionError(f"Invalid timestamp: {raw!r}", raw) from None


# Parser per requested Python type
PARSERS: dict[type, Callable[[str], Any]] = {
    str: parse_string,
    int: parse_integer,
    bool: parse_boolean,
    float: parse_float,
    Decimal: parse_decimal,
    datetime: parse_timestamp,
}

_NUMERIC = frozenset({DeclaredType.INTEGER, DeclaredType.FLOAT, DeclaredType.DECIMAL})

# Declared kinds each requested type may be read from
COMPATIBLE: dict[type, frozenset[DeclaredType]] = {
    str: frozenset(DeclaredType),
    int: frozenset({DeclaredType.INTEGER}),
    bool: frozenset({DeclaredType.BOOLEAN}),
    float: _NUMERIC,
    Decimal: _NUMERIC,
    datetime: frozenset({DeclaredType.TIMESTAMP}),
}

_ZERO_VALUES: dict[type, Any] = {
    str: "",
    int: 0,
    bool: False,
    float: 0.0,
    Decimal: Decimal("0"),
}


def zero_value(value_type: type) -> Any:
    """
    Zero value returned for a requested type on miss or failure.

    None for datetime and for every type without a natural zero.
    """
    return _ZERO_VALUES.get(value_type)


@dataclass(frozen=True)
class Conversion(Generic[T]):
    """Outcome of a conversion: a value or the error that prevented it."""

    value: T | None = None
    error: ConversionError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ValueConverter:
    """
    Turns (raw value, declared kind, requested type) into a typed value.

    Custom converters registered for a type are used first, then Enum
    types, then the fixed parsers of the six declared kinds.
    """

    def __init__(self) -> None:
        self._converters: dict[type, Callable[[str], Any]] = {}
        self._lock = threading.Lock()

    def register(self, value_type: type[T], func: Callable[[str], T]) -> None:
        """
        Register a converter for an arbitrary type.

        Args:
            value_type: Requested type the converter produces
            func: Callable taking the raw text; any exception raised
                by it is reported as a conversion failure
        """
        with self._lock:
            converters = dict(self._converters)
            converters[value_type] = func
            self._converters = converters

    def convert(self, raw_value: str, declared_type: DeclaredType, value_type: type[T]) -> T:
        """
        Convert a stored value.

        Raises:
            UnsupportedTypeError: If value_type cannot be produced from
                an item of declared_type
            ConversionError: If raw_value is malformed
        """
        custom = self._converters.get(value_type)
        if custom is not None:
            try:
                return custom(raw_value)  # type: ignore[no-any-return]
            except ConversionError:
                raise
            except Exception as e:
                raise ConversionError(
                    f"Converter for {value_type.__name__} rejected {raw_value!r}: {e}",
                    raw_value,
                ) from e

        if isinstance(value_type, type) and issubclass(value_type, Enum):
            return self._convert_enum(raw_value, value_type)  # type: ignore[return-value]

        parser = PARSERS.get(value_type)
        if parser is None:
            name = getattr(value_type, "__name__", repr(value_type))
            raise UnsupportedTypeError(f"Type not supported: {name}", raw_value)

        if declared_type not in COMPATIBLE[value_type]:
            raise UnsupportedTypeError(
                f"Cannot read {value_type.__name__} from a "
                f"{declared_type.value!r} item",
                raw_value,
            )

        return parser(raw_value)  # type: ignore[no-any-return]

    def try_convert(
        self, raw_value: str, declared_type: DeclaredType, value_type: type[T]
    ) -> Conversion[T]:
        """Convert without raising; the error is carried in the result."""
        try:
            return Conversion(value=self.convert(raw_value, declared_type, value_type))
        except ConversionError as e:
            return Conversion(error=e)

    @staticmethod
    def _convert_enum(raw_value: str, enum_type: type[Enum]) -> Enum:
        text = raw_value.strip()
        try:
            return enum_type(text)
        except Exception:
            # _missing_ hooks may raise anything; fall back to the member name
            pass
        try:
            return enum_type[text]
        except KeyError:
            raise ConversionError(
                f"{raw_value!r} is not a valid {enum_type.__name__}", raw_value
            ) from None
