"""Row retrieval by full paginated sweep or by explicit row ids."""

import time
import logging
from typing import Callable, Iterator, List, Optional

from ..errors import ConnectivityError
from ..models.migration import TableRef
from ..models.record import Row
from .table_api import TableAPIClient

logger = logging.getLogger(__name__)


class RowSource:
    """
    Reads rows from one table.

    Sweep mode follows the cursor until the table is exhausted. Targeted mode
    requests ids in chunks, keeps only the requested ids, and skips chunks
    that fail; the result may therefore be a subset of the requested ids.
    """

    def __init__(
        self,
        client: TableAPIClient,
        table: TableRef,
        page_size: int = 100,
        page_delay: float = 1.0,
        id_chunk_size: int = 20,
        id_chunk_delay: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.table = table
        self.page_size = page_size
        self.page_delay = page_delay
        self.id_chunk_size = id_chunk_size
        self.id_chunk_delay = id_chunk_delay
        self._sleep = sleep

    def stream(self) -> Iterator[List[Row]]:
        """Yield rows one page at a time."""
        page_token: Optional[str] = None
        page_number = 1

        while True:
            data = self.client.get_rows(self.table, limit=self.page_size, page_token=page_token)
            rows = [Row.from_api(item) for item in data.get("items") or []]
            logger.debug(f"Page {page_number}: {len(rows)} rows")
            yield rows

            page_token = data.get("nextPageToken")
            if not page_token:
                break

            page_number += 1
            self._sleep(self.page_delay)

    def sweep(self) -> List[Row]:
        """
        Fetch every row of the table.

        Raises:
            ConnectivityError: If any page request fails
        """
        all_rows: List[Row] = []
        for batch in self.stream():
            all_rows.extend(batch)
        logger.info(f"Retrieved {len(all_rows)} rows from {self.table}")
        return all_rows

    def fetch_by_ids(self, row_ids: List[str]) -> List[Row]:
        """
        Fetch only the given rows.

        Args:
            row_ids: Ids to fetch; duplicates are requested once

        Returns:
            Rows that were returned, in chunk order
        """
        unique_ids = list(dict.fromkeys(row_ids))
        if not unique_ids:
            return []

        chunks = [unique_ids[i:i + self.id_chunk_size] for i in range(0, len(unique_ids), self.id_chunk_size)]
        rows: List[Row] = []

        for index, chunk in enumerate(chunks, start=1):
            logger.info(f"Fetching rows chunk {index}/{len(chunks)} ({len(chunk)} ids)")
            try:
                # No limit: a service that ignores rowIds must not cut the requested rows off
                data = self.client.get_rows(self.table, limit=None, row_ids=chunk)
            except ConnectivityError as e:
                logger.warning(f"Failed to fetch rows chunk {index}/{len(chunks)}: {e}")
            else:
                items = (data.get("items") or []) if isinstance(data, dict) else None
                if not isinstance(items, list):
                    logger.warning(f"Failed to fetch rows chunk {index}/{len(chunks)}: unexpected response body")
                    items = []

                requested = set(chunk)
                matched = []
                for item in items:
                    if isinstance(item, dict) and item.get("id") in requested:
                        requested.discard(item["id"])
                        matched.append(Row.from_api(item))
                if len(matched) != len(items):
                    logger.debug(f"Filtered to {len(matched)} matching rows (API returned {len(items)})")
                rows.extend(matched)

            if index < len(chunks):
                self._sleep(self.id_chunk_delay)

        logger.info(f"Fetched {len(rows)}/{len(unique_ids)} requested rows")
        return rows
