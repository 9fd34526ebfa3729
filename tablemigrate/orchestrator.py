"""Migration orchestrator - coordinates the complete migration process."""

import re
import time
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from .errors import ConnectivityError, MigrationError
from .extractors.row_source import RowSource
from .extractors.table_api import TableAPIClient
from .loaders.batch_inserter import BatchInserter
from .loaders.object_uploader import ObjectUploader
from .models.migration import (
    FailureLedger,
    MigrationConfig,
    MigrationRun,
    MigrationStatus,
    RunKind,
)
from .models.record import (
    Absent,
    Attachment,
    MigrationResult,
    PreparedRow,
    ProcessedFile,
    Row,
)
from .models.schema import ColumnMapping
from .services.attachment_pipeline import AttachmentPipeline, StagingArea
from .services.events import EventEmitter, EventType
from .services.ledger import (
    FAILED_ROWS_KEY,
    MIGRATION_RESULTS_KEY,
    JsonFileLedgerStore,
    LedgerStore,
)
from .services.sanitizer import sanitize_value
from .services.schema_mapper import SchemaMapper
from .services.transformer import Transform, TransformRegistry

logger = logging.getLogger(__name__)

UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class MigrationOrchestrator:
    """
    Orchestrates a full-table migration.

    Runs the phases INIT -> TESTING_CONNECTIONS -> MAPPING -> PREPARE ->
    INSERT -> DONE. Failures before PREPARE are fatal. In PREPARE every row is
    isolated: a failing row becomes a failed result and the run goes on. In
    INSERT every chunk is isolated the same way. Staged documents are released
    after their chunk is submitted, and the staging area is removed on every
    exit path.
    """

    KIND = RunKind.MIGRATION
    RESULTS_KEY = MIGRATION_RESULTS_KEY
    LEDGER_KEY = FAILED_ROWS_KEY

    def __init__(
        self,
        config: MigrationConfig,
        client: TableAPIClient,
        uploader: ObjectUploader,
        ledger_store: LedgerStore,
        staging: Optional[StagingArea] = None,
        pipeline: Optional[AttachmentPipeline] = None,
        registry: Optional[TransformRegistry] = None,
        events: Optional[EventEmitter] = None,
        download_session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Runtime configuration
            client: Table API client shared by source and destination
            uploader: Object storage uploader
            ledger_store: Store for results and failure ledgers
            staging: Staging area (a temporary one is created if omitted)
            pipeline: Attachment pipeline (built on the staging area if omitted)
            registry: Transform registry
            events: Event emitter for progress subscribers
            download_session: Session used for attachment downloads
            sleep: Delay function, replaceable in tests
        """
        self.config = config
        self.client = client
        self.uploader = uploader
        self.ledger_store = ledger_store
        self.staging = staging or StagingArea()
        self.pipeline = pipeline or AttachmentPipeline(
            self.staging,
            config.file_processing,
            session=download_session,
        )
        self.registry = registry or TransformRegistry()
        self.events = events or EventEmitter()
        self._sleep = sleep

        self.row_source = RowSource(
            client,
            config.source,
            page_size=config.batch_size,
            page_delay=config.page_delay,
            id_chunk_size=config.fetch_chunk_size,
            id_chunk_delay=config.fetch_delay,
            sleep=sleep,
        )
        self.inserter = BatchInserter(client, config.destination)

        # Runtime state
        self.run: Optional[MigrationRun] = None

    @classmethod
    def from_config(
        cls,
        config: MigrationConfig,
        ledger_store: Optional[LedgerStore] = None,
        work_dir: Optional[str] = None,
        **kwargs: Any,
    ) -> "MigrationOrchestrator":
        """Build an orchestrator with real clients for the given configuration."""
        client = TableAPIClient(config.api_token, base_url=config.api_base_url)
        uploader = ObjectUploader(config.storage, config.migration_folder)
        return cls(
            config,
            client,
            uploader,
            ledger_store or JsonFileLedgerStore("."),
            staging=StagingArea(work_dir),
            **kwargs,
        )

    # Run

    def run_migration(self) -> MigrationRun:
        """
        Run the migration.

        Returns:
            MigrationRun with one result per source row touched

        Raises:
            ConfigurationError: If no column can be mapped
            ConnectivityError: If the startup checks or the row sweep fail
            LedgerError: If results or the failure ledger cannot be written
        """
        self.run = MigrationRun(kind=self.KIND)
        self.run.started_at = _now()
        logger.info(f"Starting {self.KIND.value}: {self.config.source} -> {self.config.destination}")

        try:
            self._set_status(MigrationStatus.TESTING_CONNECTIONS)
            self.test_connections()

            self._set_status(MigrationStatus.MAPPING)
            mappings = self.build_mappings()
            transforms = self._resolve_transforms(mappings)
            attachment_mapping = self._find_attachment_mapping(mappings)

            rows = self._load_rows()

            self._set_status(MigrationStatus.PREPARE)
            prepared = self._prepare_rows(rows, transforms, attachment_mapping)

            self._set_status(MigrationStatus.INSERT)
            self._insert_rows(prepared)

            self._persist()
            self._set_status(MigrationStatus.DONE)
            self._log_summary()

        except Exception as e:
            logger.error(f"{self.KIND.value.capitalize()} failed during {self.run.status.value}: {e}")
            self.run.errors.append({
                "phase": self.run.status.value,
                "error": str(e),
                "details": e.details if isinstance(e, MigrationError) else {},
                "timestamp": _now().isoformat(),
            })
            self._set_status(MigrationStatus.FAILED)
            raise

        finally:
            self.run.completed_at = _now()
            self.staging.cleanup()

        return self.run

    def plan(self) -> List[ColumnMapping]:
        """Resolve the column mapping without touching any row."""
        try:
            return self.build_mappings()
        finally:
            self.staging.cleanup()

    def _set_status(self, status: MigrationStatus) -> None:
        self.run.status = status
        logger.info(f"=== {status.value.upper()} ===")
        self.events.emit(EventType.PHASE_CHANGED, phase=status.value)

    # Phases

    def test_connections(self) -> None:
        """
        Verify read access to both tables and write access to storage.

        Raises:
            ConnectivityError: If any check fails
        """
        try:
            self.client.get_table(self.config.source)
            self.client.get_table(self.config.destination)
        except ConnectivityError as e:
            raise ConnectivityError(
                f"Table API access failed: {e.message}",
                e.details,
                status_code=e.status_code,
            ) from e
        logger.info("Table API access verified")

        self.uploader.test_connection()

    def build_mappings(self) -> List[ColumnMapping]:
        """
        Fetch both schemas and resolve the configured column mapping.

        Raises:
            ConfigurationError: If nothing can be mapped
        """
        source_columns = self.client.get_columns(self.config.source)
        destination_columns = self.client.get_columns(self.config.destination)

        column_mappings = dict(self.config.column_mappings)
        attachment = self.config.attachment_column
        if attachment:
            column_mappings.setdefault(attachment.source, attachment.destination)

        mapper = SchemaMapper(
            column_mappings,
            skip_columns=self.config.skip_columns,
            transformations=self.config.transformations,
            registry=self.registry,
        )
        return mapper.build(source_columns, destination_columns)

    def _resolve_transforms(self, mappings: List[ColumnMapping]) -> List[Tuple[ColumnMapping, Transform]]:
        return [(mapping, self.registry.resolve(mapping.directive)) for mapping in mappings]

    def _find_attachment_mapping(self, mappings: List[ColumnMapping]) -> Optional[ColumnMapping]:
        attachment = self.config.attachment_column
        if not attachment:
            return None
        for mapping in mappings:
            if mapping.source.name == attachment.source and mapping.destination.name == attachment.destination:
                return mapping
        logger.warning(
            f"Attachment column '{attachment.source}' -> '{attachment.destination}' is not mapped; "
            f"attachments will not be processed"
        )
        return None

    def _load_rows(self) -> List[Row]:
        """Rows to migrate: the whole source table."""
        return self.row_source.sweep()

    def _prepare_rows(
        self,
        rows: List[Row],
        transforms: List[Tuple[ColumnMapping, Transform]],
        attachment_mapping: Optional[ColumnMapping],
    ) -> List[PreparedRow]:
        prepared: List[PreparedRow] = []
        total = len(rows)

        for position, row in enumerate(rows, start=1):
            self.events.emit(EventType.ROW_STARTED, row_id=row.id, position=position, total=total)
            processed_files: List[ProcessedFile] = []
            try:
                prepared_row = self.prepare_row(row, transforms, attachment_mapping, processed_files)
            except Exception as e:
                logger.error(f"Failed to prepare row {row.id}: {e}")
                for processed_file in processed_files:
                    self.staging.release(processed_file)
                self.run.results.append(MigrationResult.failed(row.id, str(e), processed_files))
                self.events.emit(EventType.ROW_FINISHED, row_id=row.id, success=False, error=str(e))
                continue

            prepared.append(prepared_row)
            self.events.emit(EventType.ROW_FINISHED, row_id=row.id, success=True, error=None)

        logger.info(f"Prepared {len(prepared)}/{total} rows")
        return prepared

    def prepare_row(
        self,
        row: Row,
        transforms: List[Tuple[ColumnMapping, Transform]],
        attachment_mapping: Optional[ColumnMapping] = None,
        processed_files: Optional[List[ProcessedFile]] = None,
    ) -> PreparedRow:
        """
        Build the destination payload for one row.

        Args:
            row: Source row
            transforms: Column mappings with their resolved transforms
            attachment_mapping: Mapping whose destination receives the uploaded document URL
            processed_files: List that receives staged documents as soon as
                they exist, so the caller can release them on failure

        Returns:
            PreparedRow whose payload holds only API-acceptable values
        """
        if processed_files is None:
            processed_files = []

        uploaded_url: Optional[str] = None
        if attachment_mapping is not None:
            attachments = row.attachments(attachment_mapping.source.id)
            if attachments:
                uploaded_url = self._process_attachments(row, attachments, processed_files)

        destination_data: Dict[str, Any] = {}
        for mapping, transform in transforms:
            if mapping is attachment_mapping:
                if uploaded_url:
                    destination_data[mapping.destination.id] = uploaded_url
                continue

            value = row.get(mapping.source.id)
            if not isinstance(value, Absent):
                value = transform(value)

            sanitized = sanitize_value(value)
            if sanitized is not None:
                destination_data[mapping.destination.id] = sanitized

        return PreparedRow(
            source_row_id=row.id,
            destination_data=destination_data,
            processed_files=list(processed_files),
        )

    def _process_attachments(
        self,
        row: Row,
        attachments: List[Attachment],
        processed_files: List[ProcessedFile],
    ) -> Optional[str]:
        base_name = self.base_file_name(row, attachments)
        processed_file = self.pipeline.process(attachments, base_name)
        if processed_file is None:
            return None

        processed_files.append(processed_file)
        processed_file.uploaded_url = self.uploader.upload(
            processed_file.pdf_path,
            f"{processed_file.original_name}.pdf",
        )
        return processed_file.uploaded_url

    @staticmethod
    def base_file_name(row: Row, attachments: List[Attachment]) -> str:
        """
        Name for a row's combined document.

        The first attachment's stem, else the row name, else ``row_<id>``;
        always suffixed with the row id so two rows never share a name.
        """
        safe_id = UNSAFE_NAME_CHARS.sub("_", row.id)

        stem = ""
        if attachments and attachments[0].name:
            name = attachments[0].name
            stem = name[:name.rfind(".")] if "." in name[1:] else name
        if not stem and row.name:
            stem = str(row.name)
        if not stem:
            stem = f"row_{row.id}"

        return f"{UNSAFE_NAME_CHARS.sub('_', stem)}-{safe_id}"

    def _insert_rows(self, prepared: List[PreparedRow]) -> None:
        size = self.config.insert_batch_size
        chunks = [prepared[i:i + size] for i in range(0, len(prepared), size)]

        for index, chunk in enumerate(chunks, start=1):
            self.events.emit(EventType.CHUNK_STARTED, chunk=index, chunks=len(chunks), size=len(chunk))
            try:
                results = self.inserter.insert(chunk)
            except Exception as e:
                logger.exception(f"Chunk {index}/{len(chunks)} failed")
                results = [
                    MigrationResult.failed(row.source_row_id, str(e), row.processed_files)
                    for row in chunk
                ]
            finally:
                for row in chunk:
                    for processed_file in row.processed_files:
                        self.staging.release(processed_file)

            self.run.results.extend(results)
            succeeded = sum(1 for r in results if r.success)
            self.events.emit(
                EventType.CHUNK_FINISHED,
                chunk=index,
                chunks=len(chunks),
                succeeded=succeeded,
                failed=len(results) - succeeded,
            )

            if index < len(chunks):
                self._sleep(self.config.insert_delay)

    def _build_ledger(self) -> FailureLedger:
        return FailureLedger.from_results(self.run.results)

    def _persist(self) -> None:
        """Write the result list and, if anything failed, the failure ledger."""
        self.ledger_store.write_results(self.RESULTS_KEY, self.run.results)
        if self.run.failed:
            ledger = self._build_ledger()
            self.ledger_store.write_ledger(self.LEDGER_KEY, ledger)
            logger.warning(f"{len(ledger.failed_rows)} failed rows saved to ledger '{self.LEDGER_KEY}'")

    def _log_summary(self) -> None:
        run = self.run
        logger.info(
            f"{self.KIND.value.capitalize()} complete: {len(run.succeeded)} succeeded, "
            f"{len(run.failed)} failed, {run.files_processed} files processed"
        )
        for result in run.failed:
            logger.info(f"  Failed row {result.source_row_id}: {result.error}")
