"""Migration execution and configuration models."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum
from datetime import datetime, timezone
import uuid

from dateutil import parser as date_parser

from .record import MigrationResult


DEFAULT_API_BASE_URL = "https://coda.io/apis/v1"
DEFAULT_IMAGE_TYPES = [".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MigrationStatus(str, Enum):
    """Status of a migration run."""
    INIT = "init"
    TESTING_CONNECTIONS = "testing_connections"
    MAPPING = "mapping"
    PREPARE = "prepare"
    INSERT = "insert"
    DONE = "done"
    FAILED = "failed"


class RunKind(str, Enum):
    """Whether a run migrates a whole table or recovers ledgered rows."""
    MIGRATION = "migration"
    RECOVERY = "recovery"


@dataclass
class TableRef:
    """A table inside a document."""
    doc_id: str
    table_id: str

    def __str__(self) -> str:
        return f"{self.doc_id}/{self.table_id}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {"docId": self.doc_id, "tableId": self.table_id}


@dataclass
class StorageConfig:
    """Credentials and location for S3-compatible object storage."""
    bucket: str
    endpoint: str
    access_key: str
    secret_key: str
    region: str = "nyc3"

    @property
    def endpoint_host(self) -> str:
        """Endpoint without scheme or trailing slash."""
        host = self.endpoint
        for scheme in ("https://", "http://"):
            if host.startswith(scheme):
                host = host[len(scheme):]
        return host.rstrip("/")

    @property
    def endpoint_url(self) -> str:
        return f"https://{self.endpoint_host}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation (secrets omitted)."""
        return {
            "bucket": self.bucket,
            "endpoint": self.endpoint,
            "region": self.region,
        }


@dataclass
class FileProcessingConfig:
    """Settings for attachment conversion."""
    supported_image_types: List[str] = field(default_factory=lambda: list(DEFAULT_IMAGE_TYPES))
    default_quality: int = 90
    create_placeholder_for_unsupported: bool = True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "supportedImageTypes": self.supported_image_types,
            "defaultQuality": self.default_quality,
            "createPlaceholderForUnsupported": self.create_placeholder_for_unsupported,
        }


@dataclass
class AttachmentColumnConfig:
    """Source attachment column and the destination column receiving its URL."""
    source: str
    destination: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {"source": self.source, "destination": self.destination}


@dataclass
class MigrationConfig:
    """Runtime configuration for a migration or recovery run."""
    api_token: str
    source: TableRef
    destination: TableRef
    storage: StorageConfig
    migration_folder: str

    # Row fetch page size and insertion chunk size
    batch_size: int = 100
    insert_batch_size: int = 20

    # Mapping
    column_mappings: Dict[str, str] = field(default_factory=dict)
    skip_columns: List[str] = field(default_factory=list)
    transformations: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    attachment_column: Optional[AttachmentColumnConfig] = None

    file_processing: FileProcessingConfig = field(default_factory=FileProcessingConfig)

    # Courtesy delays (seconds)
    page_delay: float = 1.0
    fetch_chunk_size: int = 20
    fetch_delay: float = 0.5
    insert_delay: float = 2.0

    api_base_url: str = DEFAULT_API_BASE_URL

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation (secrets omitted)."""
        return {
            "source": self.source.to_dict(),
            "destination": self.destination.to_dict(),
            "storage": self.storage.to_dict(),
            "migrationFolder": self.migration_folder,
            "batchSize": self.batch_size,
            "insertBatchSize": self.insert_batch_size,
            "columnMappings": self.column_mappings,
            "skipColumns": self.skip_columns,
            "transformations": self.transformations,
            "attachmentColumn": self.attachment_column.to_dict() if self.attachment_column else None,
            "fileProcessing": self.file_processing.to_dict(),
            "apiBaseUrl": self.api_base_url,
        }


@dataclass
class MigrationRun:
    """A complete migration or recovery run."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    kind: RunKind = RunKind.MIGRATION
    status: MigrationStatus = MigrationStatus.INIT

    # Timing
    created_at: datetime = field(default_factory=_utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    results: List[MigrationResult] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def total_rows(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> List[MigrationResult]:
        return [r for r in self.results if r.success]

    @property
    def failed(self) -> List[MigrationResult]:
        return [r for r in self.results if not r.success]

    @property
    def files_processed(self) -> int:
        return sum(len(r.processed_files) for r in self.results)

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "total_rows": self.total_rows,
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "files_processed": self.files_processed,
            "errors": self.errors,
        }


@dataclass
class FailedRow:
    """One entry of a failure ledger."""
    row_id: str
    error: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {"rowId": self.row_id, "error": self.error}


@dataclass
class FailureLedger:
    """
    Durable record of the rows that failed in a run.

    Migration ledgers carry ``totalFailed``; ledgers written by a recovery run
    additionally carry the original failure count and how many were recovered.
    """
    failed_rows: List[FailedRow] = field(default_factory=list)
    timestamp: datetime = field(default_factory=_utcnow)
    original_failure_count: Optional[int] = None
    recovered_count: Optional[int] = None

    @property
    def failed_row_ids(self) -> List[str]:
        return [row.row_id for row in self.failed_rows]

    @classmethod
    def from_results(cls, results: List[MigrationResult]) -> "FailureLedger":
        """Build a ledger from the failed results of a run, in result order."""
        return cls(
            failed_rows=[
                FailedRow(row_id=r.source_row_id, error=r.error or "Unknown error")
                for r in results
                if not r.success
            ]
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        result: Dict[str, Any] = {"timestamp": self.timestamp.isoformat()}
        if self.original_failure_count is not None:
            result["originalFailureCount"] = self.original_failure_count
            result["recoveredCount"] = self.recovered_count or 0
            result["totalStillFailed"] = len(self.failed_rows)
        else:
            result["totalFailed"] = len(self.failed_rows)
        result["failedRowIds"] = self.failed_row_ids
        result["failedRows"] = [row.to_dict() for row in self.failed_rows]
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FailureLedger":
        """Create from dictionary representation.

        ``failedRowIds`` is authoritative for which rows are retried; errors
        are taken from ``failedRows`` where present.
        """
        failed_rows = data.get("failedRows") or []
        if not isinstance(failed_rows, list):
            raise TypeError("failedRows must be a list")

        errors = {}
        for entry in failed_rows:
            if isinstance(entry, dict) and isinstance(entry.get("rowId"), str) and entry["rowId"]:
                errors[entry["rowId"]] = entry.get("error") or ""

        row_ids = data.get("failedRowIds")
        if row_ids is None:
            row_ids = list(errors.keys())
        elif not isinstance(row_ids, list):
            raise TypeError("failedRowIds must be a list of row ids")
        elif not all(isinstance(rid, str) and rid for rid in row_ids):
            raise ValueError("failedRowIds must contain only non-empty strings")

        timestamp = _utcnow()
        if data.get("timestamp"):
            timestamp = date_parser.isoparse(data["timestamp"])

        return cls(
            failed_rows=[FailedRow(row_id=rid, error=errors.get(rid, "")) for rid in row_ids],
            timestamp=timestamp,
            original_failure_count=data.get("originalFailureCount"),
            recovered_count=data.get("recoveredCount"),
        )
