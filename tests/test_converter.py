from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from uuid import UUID

import pytest

from dynconfig.domain.config import DeclaredType
from dynconfig.domain.errors import ConversionError, UnsupportedTypeError
from dynconfig.reader.converter import ValueConverter, zero_value


class Mode(Enum):
    FAST = "fast"
    SAFE = "safe"


@pytest.fixture
def converter() -> ValueConverter:
    return ValueConverter()


@pytest.mark.parametrize(
    "raw, declared, value_type, expected",
    [
        ("soty.io", DeclaredType.STRING, str, "soty.io"),
        ("50", DeclaredType.INTEGER, int, 50),
        (" -7 ", DeclaredType.INTEGER, int, -7),
        ("1", DeclaredType.BOOLEAN, bool, True),
        ("TRUE", DeclaredType.BOOLEAN, bool, True),
        ("false", DeclaredType.BOOLEAN, bool, False),
        ("0", DeclaredType.BOOLEAN, bool, False),
        ("99.99", DeclaredType.FLOAT, float, 99.99),
        ("1e3", DeclaredType.FLOAT, float, 1000.0),
        ("12.50", DeclaredType.DECIMAL, Decimal, Decimal("12.50")),
        ("30", DeclaredType.INTEGER, float, 30.0),
        ("30", DeclaredType.INTEGER, Decimal, Decimal("30")),
        ("2024-05-01", DeclaredType.TIMESTAMP, datetime, datetime(2024, 5, 1)),
        ("2024-05-01T10:30:00", DeclaredType.TIMESTAMP, datetime, datetime(2024, 5, 1, 10, 30)),
        ("50", DeclaredType.INTEGER, str, "50"),
    ],
)
def test_convert_declared_kinds(converter, raw, declared, value_type, expected):
    value = converter.convert(raw, declared, value_type)

    assert value == expected
    assert type(value) is value_type


def test_timestamp_with_utc_suffix(converter):
    value = converter.convert("2024-05-01T10:30:00Z", DeclaredType.TIMESTAMP, datetime)

    assert value == datetime(2024, 5, 1, 10, 30, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "raw, declared, value_type",
    [
        ("not_a_number", DeclaredType.INTEGER, int),
        ("1.5", DeclaredType.INTEGER, int),
        ("1_000", DeclaredType.INTEGER, int),
        ("", DeclaredType.INTEGER, int),
        ("yes", DeclaredType.BOOLEAN, bool),
        ("abc", DeclaredType.FLOAT, float),
        ("1_0.5", DeclaredType.FLOAT, float),
        ("12,5", DeclaredType.DECIMAL, Decimal),
        ("tomorrow", DeclaredType.TIMESTAMP, datetime),
    ],
)
def test_malformed_values_fail(converter, raw, declared, value_type):
    with pytest.raises(ConversionError) as exc_info:
        converter.convert(raw, declared, value_type)

    assert not isinstance(exc_info.value, UnsupportedTypeError)
    assert exc_info.value.raw_value == raw


def test_unsupported_type(converter):
    with pytest.raises(UnsupportedTypeError):
        converter.convert("[1, 2]", DeclaredType.STRING, list)


@pytest.mark.parametrize(
    "declared, value_type",
    [
        (DeclaredType.STRING, int),
        (DeclaredType.BOOLEAN, int),
        (DeclaredType.INTEGER, bool),
        (DeclaredType.STRING, datetime),
        (DeclaredType.TIMESTAMP, float),
    ],
)
def test_incompatible_declared_type(converter, declared, value_type):
    with pytest.raises(UnsupportedTypeError):
        converter.convert("1", declared, value_type)


def test_registered_converter_takes_precedence(converter):
    converter.register(UUID, UUID)

    value = converter.convert(
        "12345678-1234-5678-1234-567812345678", DeclaredType.STRING, UUID
    )

    assert value == UUID("12345678-1234-5678-1234-567812345678")


def test_registered_converter_errors_become_conversion_errors(converter):
    converter.register(UUID, UUID)

    with pytest.raises(ConversionError):
        converter.convert("not-a-uuid", DeclaredType.STRING, UUID)

    converter.register(complex, lambda raw: {"a": 1j}[raw])

    with pytest.raises(ConversionError):
        converter.convert("x", DeclaredType.STRING, complex)


def test_registered_converter_can_override_builtin(converter):
    converter.register(bool, lambda raw: raw.strip().lower() in {"y", "yes"})

    assert converter.convert("yes", DeclaredType.STRING, bool) is True


def test_oversized_integer_is_a_conversion_error(converter):
    with pytest.raises(ConversionError):
        converter.convert("9" * 5000, DeclaredType.INTEGER, int)


def test_enum_lookup_errors_become_conversion_errors(converter):
    class Strict(Enum):
        ON = "on"

        @classmethod
        def _missing_(cls, value):
            raise LookupError(value)

    assert converter.convert("ON", DeclaredType.STRING, Strict) is Strict.ON
    with pytest.raises(ConversionError):
        converter.convert("off", DeclaredType.STRING, Strict)


def test_enum_by_value_and_name(converter):
    assert converter.convert("fast", DeclaredType.STRING, Mode) is Mode.FAST
    assert converter.convert("SAFE", DeclaredType.STRING, Mode) is Mode.SAFE

    with pytest.raises(ConversionError):
        converter.convert("turbo", DeclaredType.STRING, Mode)


def test_try_convert_carries_error(converter):
    ok = converter.try_convert("50", DeclaredType.INTEGER, int)
    bad = converter.try_convert("x", DeclaredType.INTEGER, int)

    assert ok.ok and ok.value == 50
    assert not bad.ok
    assert bad.value is None
    assert isinstance(bad.error, ConversionError)


def test_zero_values():
    assert zero_value(str) == ""
    assert zero_value(int) == 0
    assert zero_value(bool) is False
    assert zero_value(float) == 0.0
    assert zero_value(Decimal) == Decimal("0")
    assert zero_value(datetime) is None
    assert zero_value(UUID) is None
