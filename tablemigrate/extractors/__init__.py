"""Reading from the table API."""

from .table_api import TableAPIClient, create_retry_session
from .row_source import RowSource

__all__ = [
    "TableAPIClient",
    "create_retry_session",
    "RowSource",
]
