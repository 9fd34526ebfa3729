"""Chunked row insertion with positional id correlation."""

import logging
from typing import Any, Dict, List

from ..errors import BatchInsertError, ConnectivityError
from ..extractors.table_api import TableAPIClient
from ..models.migration import TableRef
from ..models.record import MigrationResult, PreparedRow

logger = logging.getLogger(__name__)


class BatchInserter:
    """
    Inserts a chunk of prepared rows with one API call.

    The API returns new row ids in request order; that order is taken on
    trust, but the response must contain exactly one distinct id per
    submitted row. Anything else fails the whole chunk with one error.
    """

    def __init__(self, client: TableAPIClient, table: TableRef):
        self.client = client
        self.table = table

    def insert(self, rows: List[PreparedRow]) -> List[MigrationResult]:
        """
        Insert a chunk of rows.

        Args:
            rows: Prepared rows, in submission order

        Returns:
            One result per row: all successes with distinct ids, or all
            failures sharing one error string
        """
        if not rows:
            return []

        logger.info(f"Inserting batch of {len(rows)} rows into {self.table}")

        try:
            response = self.client.insert_rows(self.table, [row.destination_data for row in rows])
            row_ids = self._correlate(response, len(rows))
        except (ConnectivityError, BatchInsertError) as e:
            logger.error(f"Batch insert failed: {e.message}")
            return [
                MigrationResult.failed(row.source_row_id, e.message, row.processed_files)
                for row in rows
            ]

        return [MigrationResult.succeeded(row, row_id) for row, row_id in zip(rows, row_ids)]

    def _correlate(self, response: Dict[str, Any], expected: int) -> List[str]:
        """Validate the returned ids against the number of submitted rows."""
        row_ids = response.get("addedRowIds") if isinstance(response, dict) else None

        if not row_ids:
            raise BatchInsertError("No row IDs returned from insert operation", {"response": response})

        if not isinstance(row_ids, list) or not all(isinstance(i, str) and i for i in row_ids):
            raise BatchInsertError("Malformed row IDs returned from insert operation", {"response": response})

        if len(row_ids) != expected or len(set(row_ids)) != expected:
            # Positional correlation is only safe for a one-to-one response
            raise BatchInsertError(
                f"Insert returned {len(row_ids)} row IDs ({len(set(row_ids))} distinct) "
                f"for {expected} rows; results cannot be correlated",
                {"expected": expected, "returned": len(row_ids)},
            )

        return row_ids
