"""Row, cell value and result models for migration data."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


# Cell values are parsed once from the API's rich value format into one of the
# tagged types below. Downstream code dispatches on the type, never on dict keys.


@dataclass(frozen=True)
class Absent:
    """An empty cell."""


ABSENT = Absent()


@dataclass(frozen=True)
class Scalar:
    """A plain boolean, number or string cell."""
    value: Union[bool, int, float, str]


@dataclass(frozen=True)
class MonetaryAmount:
    """A schema.org MonetaryAmount cell."""
    amount: Any
    currency: Optional[str] = None


@dataclass(frozen=True)
class StructuredReference:
    """A reference to a row in another table (schema.org StructuredValue)."""
    name: Optional[str] = None
    url: Optional[str] = None
    table_id: Optional[str] = None
    row_id: Optional[str] = None
    display_text: Optional[str] = None


@dataclass(frozen=True)
class PersonReference:
    """A reference to a user (schema.org Person)."""
    name: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class Attachment:
    """A file attached to a row."""
    url: str
    name: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {"url": self.url, "name": self.name}


@dataclass(frozen=True)
class AttachmentList:
    """A file-attachment cell holding one or more attachments."""
    attachments: List[Attachment] = field(default_factory=list)


@dataclass(frozen=True)
class ListValue:
    """A multi-value cell (e.g. a multi-select or a list of references)."""
    items: List["CellValue"] = field(default_factory=list)


@dataclass(frozen=True)
class UnrecognizedValue:
    """A structured value of a shape the tool does not know about."""
    raw: Any


CellValue = Union[
    Absent,
    Scalar,
    MonetaryAmount,
    StructuredReference,
    PersonReference,
    AttachmentList,
    ListValue,
    UnrecognizedValue,
]


def _is_attachment(item: Any) -> bool:
    return isinstance(item, dict) and bool(item.get("url")) and bool(item.get("name"))


def parse_cell_value(raw: Any) -> CellValue:
    """
    Parse a raw API cell value into its tagged representation.

    Args:
        raw: Value as returned by the table API with ``valueFormat=rich``

    Returns:
        The matching CellValue variant
    """
    if raw is None:
        return ABSENT

    if isinstance(raw, (bool, int, float, str)):
        return Scalar(raw)

    if isinstance(raw, list):
        if raw and all(_is_attachment(item) for item in raw):
            return AttachmentList([Attachment(url=item["url"], name=item["name"]) for item in raw])
        return ListValue([parse_cell_value(item) for item in raw])

    if isinstance(raw, dict):
        value_type = raw.get("@type")

        if value_type == "MonetaryAmount":
            return MonetaryAmount(amount=raw.get("amount"), currency=raw.get("currency"))

        if value_type == "Person":
            return PersonReference(name=raw.get("name"), email=raw.get("email"))

        if value_type == "StructuredValue":
            return StructuredReference(
                name=raw.get("name"),
                url=raw.get("url"),
                table_id=raw.get("tableId"),
                row_id=raw.get("rowId"),
                display_text=raw.get("displayText"),
            )

        if value_type == "ImageObject" and _is_attachment(raw):
            return AttachmentList([Attachment(url=raw["url"], name=raw["name"])])

    return UnrecognizedValue(raw)


@dataclass
class Row:
    """A row read from the source table."""
    id: str
    name: str = ""
    values: Dict[str, CellValue] = field(default_factory=dict)
    index: Optional[int] = None
    browser_link: Optional[str] = None

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> "Row":
        """Create from a row item returned by the table API."""
        raw_values = item.get("values") or {}
        return cls(
            id=item["id"],
            name=item.get("name") or "",
            values={column_id: parse_cell_value(raw) for column_id, raw in raw_values.items()},
            index=item.get("index"),
            browser_link=item.get("browserLink"),
        )

    def get(self, column_id: str) -> CellValue:
        """Get a cell value, returning ABSENT for missing columns."""
        return self.values.get(column_id, ABSENT)

    def attachments(self, column_id: str) -> List[Attachment]:
        """Get the attachments held in a column (empty if it holds none)."""
        value = self.get(column_id)
        if isinstance(value, AttachmentList):
            return list(value.attachments)
        if isinstance(value, ListValue):
            # Mixed lists: keep only the items that are attachment cells
            found: List[Attachment] = []
            for item in value.items:
                if isinstance(item, AttachmentList):
                    found.extend(item.attachments)
            return found
        return []


@dataclass
class ProcessedFile:
    """A combined document produced from a row's attachments."""
    original_name: str
    pdf_path: str
    uploaded_url: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "originalName": self.original_name,
            "pdfPath": self.pdf_path,
            "uploadedUrl": self.uploaded_url,
        }


@dataclass
class PreparedRow:
    """A source row ready for insertion into the destination table."""
    source_row_id: str
    destination_data: Dict[str, Any] = field(default_factory=dict)
    processed_files: List[ProcessedFile] = field(default_factory=list)


@dataclass
class MigrationResult:
    """Result of migrating one source row."""
    success: bool
    source_row_id: str
    destination_row_id: Optional[str] = None
    processed_files: List[ProcessedFile] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def succeeded(cls, row: PreparedRow, destination_row_id: str) -> "MigrationResult":
        return cls(
            success=True,
            source_row_id=row.source_row_id,
            destination_row_id=destination_row_id,
            processed_files=list(row.processed_files),
        )

    @classmethod
    def failed(
        cls,
        source_row_id: str,
        error: str,
        processed_files: Optional[List[ProcessedFile]] = None,
    ) -> "MigrationResult":
        return cls(
            success=False,
            source_row_id=source_row_id,
            processed_files=list(processed_files or []),
            error=error,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        result: Dict[str, Any] = {
            "success": self.success,
            "sourceRowId": self.source_row_id,
            "processedFiles": [f.to_dict() for f in self.processed_files],
        }
        if self.destination_row_id is not None:
            result["destinationRowId"] = self.destination_row_id
        if self.error is not None:
            result["error"] = self.error
        return result
