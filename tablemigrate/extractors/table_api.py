"""HTTP client for the hosted table API (docs, tables, columns, rows)."""

import logging
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..errors import ConnectivityError
from ..models.migration import DEFAULT_API_BASE_URL, TableRef
from ..models.schema import ColumnDefinition

logger = logging.getLogger(__name__)


def create_retry_session(max_retries: int = 3, backoff_factor: float = 2.0) -> requests.Session:
    """Create a requests session with retry logic for idempotent calls."""
    session = requests.Session()

    retries = Retry(
        total=max_retries,
        backoff_factor=backoff_factor,
        status_forcelist=[429, 500, 502, 503, 504],
    )

    adapter = HTTPAdapter(max_retries=retries)
    session.mount("https://", adapter)
    session.mount("http://", adapter)

    return session


class TableAPIClient:
    """
    Client for the table API.

    Supports:
    - Table and column metadata
    - Cursor-paginated and id-filtered row listing (rich value format)
    - Bulk row insertion
    """

    def __init__(
        self,
        api_token: str,
        base_url: str = DEFAULT_API_BASE_URL,
        session: Optional[requests.Session] = None,
        timeout: float = 60.0,
    ):
        """
        Initialize the client.

        Args:
            api_token: Bearer token
            base_url: API root, e.g. ``https://coda.io/apis/v1``
            session: Custom requests session
            timeout: Per-request timeout in seconds
        """
        self.api_token = api_token
        self.base_url = base_url.rstrip("/")
        self._session = session or create_retry_session()
        self.timeout = timeout

    def _get_auth_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }

    def _table_path(self, table: TableRef) -> str:
        return f"/docs/{table.doc_id}/tables/{table.table_id}"

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Send a request and decode the JSON body, raising ConnectivityError on failure."""
        url = f"{self.base_url}{path}"
        try:
            response = self._session.request(
                method,
                url,
                headers=self._get_auth_headers(),
                params=params,
                json=payload,
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            body = e.response.text[:500] if e.response is not None else ""
            raise ConnectivityError(
                f"HTTP {status} from {method} {path}: {body}",
                {"url": url},
                status_code=status,
            ) from e
        except requests.exceptions.RequestException as e:
            raise ConnectivityError(f"Request failed: {method} {path}: {e}", {"url": url}) from e
        except ValueError as e:
            raise ConnectivityError(f"Invalid JSON from {method} {path}: {e}", {"url": url}) from e

    def get_table(self, table: TableRef) -> Dict[str, Any]:
        """Fetch table metadata."""
        data = self._request("GET", self._table_path(table))
        logger.info(f"Retrieved table: {data.get('name', table.table_id)} ({data.get('rowCount', '?')} rows)")
        return data

    def get_columns(self, table: TableRef) -> List[ColumnDefinition]:
        """
        Fetch the columns of a table.

        Returns:
            Columns with the display column first, then sorted by name
        """
        items: List[Dict[str, Any]] = []
        params: Dict[str, Any] = {}
        while True:
            data = self._request("GET", f"{self._table_path(table)}/columns", params=params)
            items.extend(data.get("items") or [])
            next_token = data.get("nextPageToken")
            if not next_token:
                break
            params = {"pageToken": next_token}

        columns = [ColumnDefinition.from_api(item) for item in items]
        columns.sort(key=lambda c: (not c.display, c.name))
        logger.info(f"Retrieved {len(columns)} columns from {table}")
        return columns

    def get_rows(
        self,
        table: TableRef,
        limit: Optional[int] = 100,
        page_token: Optional[str] = None,
        row_ids: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """
        Fetch one page of rows.

        Args:
            table: Table to read
            limit: Page size; None leaves it to the service
            page_token: Cursor from a previous page (implies the other parameters)
            row_ids: Restrict the listing to these ids

        Returns:
            Raw response with ``items`` and an optional ``nextPageToken``
        """
        if page_token:
            params: Dict[str, Any] = {"pageToken": page_token}
        else:
            params = {"valueFormat": "rich"}
            if limit is not None:
                params["limit"] = limit
            if row_ids:
                params["rowIds"] = ",".join(row_ids)
        return self._request("GET", f"{self._table_path(table)}/rows", params=params)

    def insert_rows(self, table: TableRef, rows: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Insert rows.

        Args:
            table: Destination table
            rows: Payloads mapping column id to value

        Returns:
            Raw response, expected to carry ``addedRowIds`` in request order
        """
        payload = {
            "rows": [
                {"cells": [{"column": column_id, "value": value} for column_id, value in row.items()]}
                for row in rows
            ]
        }
        return self._request("POST", f"{self._table_path(table)}/rows", payload=payload)
