"""Exception types raised by the migration tool.

Fatal errors (configuration, startup connectivity, ledger access) propagate to
the caller. Row and chunk errors are caught by the orchestrator and recorded
as failed results.
"""

from typing import Any, Dict, Optional


class MigrationError(Exception):
    """Base class for all migration errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(MigrationError):
    """Invalid configuration or a column mapping that resolves to nothing."""


class ConnectivityError(MigrationError):
    """The table API or object storage could not be reached or rejected a call."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, details)
        self.status_code = status_code


class RowPreparationError(MigrationError):
    """A single row could not be prepared (download, conversion or merge failed)."""


class BatchInsertError(MigrationError):
    """An insertion chunk failed as a whole."""


class LedgerError(MigrationError):
    """The failure ledger is missing or unreadable."""
