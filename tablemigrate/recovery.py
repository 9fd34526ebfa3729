"""Recovery of rows recorded in a failure ledger."""

import logging
from typing import Any, List, Optional

from .models.migration import FailedRow, FailureLedger, MigrationRun, MigrationStatus, RunKind
from .models.record import MigrationResult, Row
from .orchestrator import MigrationOrchestrator, _now
from .services.ledger import FAILED_ROWS_KEY, RECOVERY_RESULTS_KEY, STILL_FAILED_ROWS_KEY

logger = logging.getLogger(__name__)

ROW_NOT_RETURNED = "row not returned by source table"


class RecoveryOrchestrator(MigrationOrchestrator):
    """
    Re-runs the prepare and insert phases for the rows in a failure ledger.

    Only the ledger's row ids are fetched from the source table; the column
    mapping is rebuilt from the current schemas. Ledger ids the source table
    does not return are reported as failed so they carry into the next ledger.
    """

    KIND = RunKind.RECOVERY
    RESULTS_KEY = RECOVERY_RESULTS_KEY
    LEDGER_KEY = STILL_FAILED_ROWS_KEY

    def __init__(self, *args: Any, ledger_key: str = FAILED_ROWS_KEY, **kwargs: Any):
        """
        Initialize the recovery orchestrator.

        Args:
            ledger_key: Ledger to recover from (``failed-rows`` or a previous
                ``still-failed-rows``)

        Other arguments are those of MigrationOrchestrator.
        """
        super().__init__(*args, **kwargs)
        self.ledger_key = ledger_key
        self.ledger: Optional[FailureLedger] = None

    def run_migration(self) -> MigrationRun:
        """
        Recover the ledgered rows.

        Returns:
            MigrationRun with one result per ledgered row id

        Raises:
            LedgerError: If the ledger is missing or unreadable
        """
        try:
            self.ledger = self.ledger_store.read_ledger(self.ledger_key)
        except Exception:
            self.staging.cleanup()
            raise

        if not self.ledger.failed_row_ids:
            logger.info(f"Ledger '{self.ledger_key}' lists no failed rows; nothing to recover")
            self.staging.cleanup()
            now = _now()
            return MigrationRun(
                kind=self.KIND,
                status=MigrationStatus.DONE,
                started_at=now,
                completed_at=now,
            )

        logger.info(f"Recovering {len(self.ledger.failed_row_ids)} rows from ledger '{self.ledger_key}'")
        return super().run_migration()

    def _load_rows(self) -> List[Row]:
        """Rows to migrate: only the ledgered ids, fetched by id."""
        requested = list(dict.fromkeys(self.ledger.failed_row_ids))
        rows = self.row_source.fetch_by_ids(requested)

        returned = {row.id for row in rows}
        for row_id in requested:
            if row_id not in returned:
                logger.warning(f"Row {row_id} was not returned by the source table")
                self.run.results.append(MigrationResult.failed(row_id, ROW_NOT_RETURNED))

        return rows

    def _build_ledger(self) -> FailureLedger:
        failed = [
            FailedRow(row_id=r.source_row_id, error=r.error or "Unknown error")
            for r in self.run.results
            if not r.success
        ]
        return FailureLedger(
            failed_rows=failed,
            original_failure_count=len(self.ledger.failed_rows),
            recovered_count=len(self.run.succeeded),
        )
