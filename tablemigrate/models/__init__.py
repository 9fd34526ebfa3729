"""Data models for the migration tool."""

from .schema import (
    ColumnType,
    ColumnDefinition,
    ColumnMapping,
    TransformDirective,
    TransformKind,
)
from .migration import (
    AttachmentColumnConfig,
    FailedRow,
    FailureLedger,
    FileProcessingConfig,
    MigrationConfig,
    MigrationRun,
    MigrationStatus,
    RunKind,
    StorageConfig,
    TableRef,
)
from .record import (
    ABSENT,
    Absent,
    Attachment,
    AttachmentList,
    CellValue,
    ListValue,
    MigrationResult,
    MonetaryAmount,
    PersonReference,
    PreparedRow,
    ProcessedFile,
    Row,
    Scalar,
    StructuredReference,
    UnrecognizedValue,
    parse_cell_value,
)

__all__ = [
    "ColumnType",
    "ColumnDefinition",
    "ColumnMapping",
    "TransformDirective",
    "TransformKind",
    "AttachmentColumnConfig",
    "FailedRow",
    "FailureLedger",
    "FileProcessingConfig",
    "MigrationConfig",
    "MigrationRun",
    "MigrationStatus",
    "RunKind",
    "StorageConfig",
    "TableRef",
    "ABSENT",
    "Absent",
    "Attachment",
    "AttachmentList",
    "CellValue",
    "ListValue",
    "MigrationResult",
    "MonetaryAmount",
    "PersonReference",
    "PreparedRow",
    "ProcessedFile",
    "Row",
    "Scalar",
    "StructuredReference",
    "UnrecognizedValue",
    "parse_cell_value",
]
