"""Schema models for table columns and column mappings."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from enum import Enum


class ColumnType(str, Enum):
    """Column format types reported by the table API."""
    TEXT = "text"
    LINK = "link"
    NUMBER = "number"
    CURRENCY = "currency"
    PERCENT = "percent"
    DATE = "date"
    DATETIME = "dateTime"
    TIME = "time"
    DURATION = "duration"
    CHECKBOX = "checkbox"
    SELECT = "select"
    LOOKUP = "lookup"
    PERSON = "person"
    ATTACHMENTS = "attachments"
    IMAGE = "image"
    EMAIL = "email"
    CANVAS = "canvas"
    OTHER = "other"


class TransformKind(str, Enum):
    """Kinds of per-column transform directives."""
    IDENTITY = "identity"
    TYPE_COERCE = "type_coerce"
    NAMED = "named"


@dataclass
class ColumnDefinition:
    """A column of a source or destination table."""
    id: str
    name: str
    format_type: str = ColumnType.TEXT.value
    calculated: bool = False
    display: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "formatType": self.format_type,
            "calculated": self.calculated,
            "display": self.display,
        }

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "ColumnDefinition":
        """Create from a column item returned by the table API."""
        column_format = data.get("format") or {}
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            format_type=column_format.get("type", ColumnType.TEXT.value),
            calculated=bool(data.get("calculated", False)),
            display=bool(data.get("display", False)),
        )


@dataclass(frozen=True)
class TransformDirective:
    """
    Data-only description of how a value is transformed for a column.

    Directives carry no behaviour; the TransformRegistry resolves them into
    callables.
    """
    kind: TransformKind = TransformKind.IDENTITY
    target_type: Optional[str] = None
    name: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict, hash=False, compare=True)

    @classmethod
    def identity(cls) -> "TransformDirective":
        return cls(kind=TransformKind.IDENTITY)

    @classmethod
    def type_coerce(cls, target_type: str) -> "TransformDirective":
        return cls(kind=TransformKind.TYPE_COERCE, target_type=target_type)

    @classmethod
    def named(cls, name: str, options: Optional[Dict[str, Any]] = None) -> "TransformDirective":
        return cls(kind=TransformKind.NAMED, name=name, options=dict(options or {}))

    def describe(self) -> str:
        """Short human-readable form used in mapping plans."""
        if self.kind == TransformKind.TYPE_COERCE:
            return f"coerce to {self.target_type}"
        if self.kind == TransformKind.NAMED:
            return f"{self.name} {self.options}" if self.options else str(self.name)
        return "identity"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        result: Dict[str, Any] = {"kind": self.kind.value}
        if self.target_type:
            result["targetType"] = self.target_type
        if self.name:
            result["name"] = self.name
        if self.options:
            result["options"] = self.options
        return result


@dataclass
class ColumnMapping:
    """Mapping between a source column and a destination column."""
    source: ColumnDefinition
    destination: ColumnDefinition
    directive: TransformDirective = field(default_factory=TransformDirective.identity)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "source": self.source.to_dict(),
            "destination": self.destination.to_dict(),
            "directive": self.directive.to_dict(),
        }
