"""Configuration domain models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class DeclaredType(str, Enum):
    """Scalar kind a configuration value is stored as."""

    STRING = "string"
    INTEGER = "int"
    BOOLEAN = "bool"
    FLOAT = "double"
    DECIMAL = "decimal"
    TIMESTAMP = "datetime"

    @classmethod
    def parse(cls, tag: str) -> "DeclaredType":
        """
        Parse a stored type tag.

        Args:
            tag: Type tag as stored (e.g. "int", "Boolean", "double")

        Returns:
            DeclaredType

        Raises:
            ValueError: If the tag is unknown
        """
        if isinstance(tag, DeclaredType):
            return tag
        normalized = (tag or "").strip().lower()
        try:
            return _TYPE_ALIASES[normalized]
        except KeyError:
            raise ValueError(f"Unknown configuration type: {tag!r}") from None


_TYPE_ALIASES: dict[str, DeclaredType] = {
    "string": DeclaredType.STRING,
    "str": DeclaredType.STRING,
    "int": DeclaredType.INTEGER,
    "integer": DeclaredType.INTEGER,
    "int32": DeclaredType.INTEGER,
    "int64": DeclaredType.INTEGER,
    "long": DeclaredType.INTEGER,
    "bool": DeclaredType.BOOLEAN,
    "boolean": DeclaredType.BOOLEAN,
    "double": DeclaredType.FLOAT,
    "float": DeclaredType.FLOAT,
    "decimal": DeclaredType.DECIMAL,
    "datetime": DeclaredType.TIMESTAMP,
    "timestamp": DeclaredType.TIMESTAMP,
    "date": DeclaredType.TIMESTAMP,
}


@dataclass(frozen=True)
class ConfigurationItem:
    """
    Single configuration entry of an application.

    Items are authored elsewhere; the reader only consumes them.
    """

    key: str
    application_name: str
    declared_type: DeclaredType
    raw_value: str
    active: bool = True
    id: str | None = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def belongs_to(self, application_name: str) -> bool:
        """Check if the item is an active item of the given application."""
        return self.active and self.application_name == application_name

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ConfigurationItem":
        """
        Create ConfigurationItem from a store row.

        Args:
            row: Row dict with name, type, value, is_active, application_name

        Returns:
            ConfigurationItem instance

        Raises:
            ValueError: If the row carries an unknown type tag
        """
        now = datetime.utcnow()
        return cls(
            key=row["name"],
            application_name=row["application_name"],
            declared_type=DeclaredType.parse(row["type"]),
            raw_value=row["value"] if row["value"] is not None else "",
            active=bool(row.get("is_active", True)),
            id=str(row["id"]) if row.get("id") is not None else None,
            created_at=row.get("created_at") or now,
            updated_at=row.get("updated_at") or now,
        )
