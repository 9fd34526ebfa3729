"""Shared pytest fixtures: fake table API, fake downloads and storage clients."""

import io
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest
import requests
from PIL import Image

from tablemigrate.loaders.object_uploader import ObjectUploader
from tablemigrate.models.schema import ColumnDefinition
from tablemigrate.models.migration import (
    AttachmentColumnConfig,
    MigrationConfig,
    StorageConfig,
    TableRef,
)
from tablemigrate.services.ledger import MemoryLedgerStore

SOURCE = TableRef("doc-1", "grid-src")
DESTINATION = TableRef("doc-1", "grid-dst")


def make_png(color=(200, 30, 30), size=(40, 30), mode="RGB") -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def make_pdf(pages: int = 1) -> bytes:
    images = [Image.new("RGB", (100, 120), "white") for _ in range(pages)]
    buffer = io.BytesIO()
    images[0].save(buffer, format="PDF", save_all=True, append_images=images[1:])
    return buffer.getvalue()


def column(column_id: str, name: str, format_type: str = "text", calculated: bool = False, display: bool = False):
    return {
        "id": column_id,
        "name": name,
        "format": {"type": format_type},
        "calculated": calculated,
        "display": display,
    }


def api_row(row_id: str, name: str, amount: Optional[float] = None, files: Optional[List[str]] = None):
    """A row item as returned by the table API with rich values."""
    values: Dict[str, Any] = {"c-name": name}
    if amount is not None:
        values["c-amount"] = {"@type": "MonetaryAmount", "currency": "USD", "amount": amount}
    if files:
        values["c-file"] = [{"url": f"https://files.example.com/{f}", "name": f} for f in files]
    return {"id": row_id, "name": name, "index": int(row_id.split("-")[-1]), "values": values}


class FakeTableClient:
    """In-memory stand-in for TableAPIClient that records every call."""

    def __init__(self, columns: Dict[str, List[Dict[str, Any]]], rows: List[Dict[str, Any]]):
        self.columns = columns
        self.rows = rows
        self.calls: List[tuple] = []
        self.inserted: List[List[Dict[str, Any]]] = []
        self.insert_responses: List[Any] = []
        self.table_error: Optional[Exception] = None
        self._next_id = 1

    def get_table(self, table: TableRef) -> Dict[str, Any]:
        self.calls.append(("get_table", table.table_id))
        if self.table_error:
            raise self.table_error
        return {"id": table.table_id, "name": table.table_id, "rowCount": len(self.rows)}

    def get_columns(self, table: TableRef):
        self.calls.append(("get_columns", table.table_id))
        return [ColumnDefinition.from_api(item) for item in self.columns[table.table_id]]

    def get_rows(self, table: TableRef, limit: int = 100, page_token: Optional[str] = None, row_ids=None):
        self.calls.append(("get_rows", table.table_id, page_token, tuple(row_ids) if row_ids else None))
        if row_ids:
            return {"items": [row for row in self.rows if row["id"] in row_ids]}

        offset = int(page_token or 0)
        data: Dict[str, Any] = {"items": self.rows[offset:offset + limit]}
        if offset + limit < len(self.rows):
            data["nextPageToken"] = str(offset + limit)
        return data

    def insert_rows(self, table: TableRef, rows: List[Dict[str, Any]]) -> Dict[str, Any]:
        self.calls.append(("insert_rows", table.table_id, len(rows)))
        self.inserted.append(list(rows))
        if self.insert_responses:
            response = self.insert_responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response

        ids = [f"i-{self._next_id + n}" for n in range(len(rows))]
        self._next_id += len(rows)
        return {"addedRowIds": ids}

    def calls_named(self, name: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == name]


class FakeResponse:
    def __init__(self, content: bytes, status_code: int = 200):
        self.content = content
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Client Error", response=self)

    def iter_content(self, chunk_size: int = 1):
        for start in range(0, len(self.content), chunk_size):
            yield self.content[start:start + chunk_size]


class FakeDownloadSession:
    """Serves attachment bytes by URL; unknown URLs answer 404."""

    def __init__(self, files: Optional[Dict[str, bytes]] = None):
        self.files = dict(files or {})
        self.requested: List[str] = []

    def add(self, name: str, content: bytes) -> str:
        url = f"https://files.example.com/{name}"
        self.files[url] = content
        return url

    def get(self, url: str, stream: bool = False, timeout: Optional[float] = None) -> FakeResponse:
        self.requested.append(url)
        if url not in self.files:
            return FakeResponse(b"", status_code=404)
        return FakeResponse(self.files[url])


@pytest.fixture()
def storage() -> StorageConfig:
    return StorageConfig(
        bucket="bucket",
        endpoint="nyc3.digitaloceanspaces.com",
        access_key="key",
        secret_key="secret",
    )


@pytest.fixture()
def make_config(storage):
    def _make(**overrides) -> MigrationConfig:
        values: Dict[str, Any] = dict(
            api_token="token",
            source=SOURCE,
            destination=DESTINATION,
            storage=storage,
            migration_folder="Migration",
            batch_size=100,
            insert_batch_size=20,
            column_mappings={"Name": "Name", "Amount": "Amount"},
            attachment_column=AttachmentColumnConfig(source="Record file", destination="Receipt"),
            page_delay=0,
            fetch_delay=0,
            insert_delay=0,
        )
        values.update(overrides)
        return MigrationConfig(**values)

    return _make


@pytest.fixture()
def table_columns() -> Dict[str, List[Dict[str, Any]]]:
    return {
        SOURCE.table_id: [
            column("c-name", "Name", "text", display=True),
            column("c-amount", "Amount", "currency"),
            column("c-file", "Record file", "attachments"),
            column("c-total", "Total", "number", calculated=True),
        ],
        DESTINATION.table_id: [
            column("d-name", "Name", "text", display=True),
            column("d-amount", "Amount", "number"),
            column("d-receipt", "Receipt", "link"),
            column("d-total", "Total", "number", calculated=True),
        ],
    }


@pytest.fixture()
def make_client(table_columns):
    def _make(rows: List[Dict[str, Any]]) -> FakeTableClient:
        return FakeTableClient(table_columns, rows)

    return _make


@pytest.fixture()
def s3_client() -> MagicMock:
    client = MagicMock()
    client.put_object.return_value = {"ETag": '"abc"'}
    return client


@pytest.fixture()
def uploader(storage, s3_client) -> ObjectUploader:
    return ObjectUploader(storage, "Migration", client=s3_client)


@pytest.fixture()
def download_session() -> FakeDownloadSession:
    return FakeDownloadSession()


@pytest.fixture()
def ledger_store() -> MemoryLedgerStore:
    return MemoryLedgerStore()
