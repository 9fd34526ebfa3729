"""Service layer for the migration tool."""

from .attachment_pipeline import AttachmentPipeline, StagingArea
from .events import EventEmitter, EventType, MigrationEvent, log_progress
from .ledger import JsonFileLedgerStore, LedgerStore, MemoryLedgerStore
from .sanitizer import sanitize_value
from .schema_mapper import SchemaMapper
from .transformer import TransformRegistry

__all__ = [
    "AttachmentPipeline",
    "StagingArea",
    "EventEmitter",
    "EventType",
    "MigrationEvent",
    "log_progress",
    "JsonFileLedgerStore",
    "LedgerStore",
    "MemoryLedgerStore",
    "sanitize_value",
    "SchemaMapper",
    "TransformRegistry",
]
