"""Durable key-value storage for failure ledgers and run results."""

import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, List

from ..errors import LedgerError
from ..models.migration import FailureLedger
from ..models.record import MigrationResult

logger = logging.getLogger(__name__)

FAILED_ROWS_KEY = "failed-rows"
STILL_FAILED_ROWS_KEY = "still-failed-rows"
MIGRATION_RESULTS_KEY = "migration-results"
RECOVERY_RESULTS_KEY = "recovery-results"


class LedgerStore(ABC):
    """
    Abstract durable key-value store for JSON documents.

    The orchestrators only ever read and write whole documents by key.
    """

    @abstractmethod
    def read(self, key: str) -> Any:
        """
        Read a document.

        Raises:
            LedgerError: If the key does not exist or cannot be decoded
        """
        pass

    @abstractmethod
    def write(self, key: str, document: Any) -> None:
        """
        Write (replace) a document.

        Raises:
            LedgerError: If the document cannot be persisted
        """
        pass

    @abstractmethod
    def exists(self, key: str) -> bool:
        pass

    def read_ledger(self, key: str = FAILED_ROWS_KEY) -> FailureLedger:
        """Read and decode a failure ledger."""
        document = self.read(key)
        if not isinstance(document, dict):
            raise LedgerError(f"Ledger '{key}' is not a JSON object", {"key": key})
        try:
            return FailureLedger.from_dict(document)
        except (TypeError, ValueError, KeyError) as e:
            raise LedgerError(f"Ledger '{key}' is malformed: {e}", {"key": key}) from e

    def write_ledger(self, key: str, ledger: FailureLedger) -> None:
        self.write(key, ledger.to_dict())

    def write_results(self, key: str, results: List[MigrationResult]) -> None:
        self.write(key, [result.to_dict() for result in results])


class JsonFileLedgerStore(LedgerStore):
    """Stores each key as ``<directory>/<key>.json``."""

    def __init__(self, directory: str = "."):
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def exists(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def read(self, key: str) -> Any:
        path = self.path_for(key)
        if not path.is_file():
            raise LedgerError(f"Ledger file not found: {path}", {"key": key, "path": str(path)})
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise LedgerError(f"Failed to read ledger file {path}: {e}", {"key": key, "path": str(path)}) from e

    def write(self, key: str, document: Any) -> None:
        path = self.path_for(key)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, path)
        except OSError as e:
            raise LedgerError(f"Failed to write ledger file {path}: {e}", {"key": key, "path": str(path)}) from e
        logger.info(f"Saved {key} to {path}")


class MemoryLedgerStore(LedgerStore):
    """In-process store, used when nothing needs to outlive the run."""

    def __init__(self):
        self.documents = {}

    def exists(self, key: str) -> bool:
        return key in self.documents

    def read(self, key: str) -> Any:
        if key not in self.documents:
            raise LedgerError(f"Ledger not found: {key}", {"key": key})
        return json.loads(json.dumps(self.documents[key]))

    def write(self, key: str, document: Any) -> None:
        # Round-trip through JSON so stored documents match what a file would hold
        self.documents[key] = json.loads(json.dumps(document))
