"""Attachment processing: download, convert to PDF, merge, and stage."""

import logging
import os
import re
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional

import requests

from ..errors import RowPreparationError
from ..extractors.table_api import create_retry_session
from ..models.migration import FileProcessingConfig
from ..models.record import Attachment, ProcessedFile
from .documents import create_placeholder_pdf, image_to_pdf, merge_pdfs

logger = logging.getLogger(__name__)

PDF_EXTENSION = ".pdf"


def safe_file_name(name: str, fallback: str) -> str:
    """Reduce a file name to characters that are safe on any filesystem."""
    base = os.path.basename(name or "")
    cleaned = re.sub(r"[^A-Za-z0-9._-]", "_", base).strip("._")
    return cleaned or fallback


class StagingArea:
    """
    Owns the two working directories of a run.

    ``scratch`` holds downloads and intermediate conversions; every row gets
    its own sub-directory that is removed when the row is done. ``staged``
    holds finished documents until they are uploaded or released.
    """

    def __init__(self, root: Optional[str] = None):
        """
        Initialize the staging area.

        Args:
            root: Work directory; a fresh temporary directory is used if omitted
        """
        if root:
            self.root = Path(root)
            self.root.mkdir(parents=True, exist_ok=True)
            self._owns_root = False
        else:
            self.root = Path(tempfile.mkdtemp(prefix="tablemigrate-"))
            self._owns_root = True

        self.scratch_dir = self.root / "temp"
        self.staged_dir = self.root / "upload"
        self.scratch_dir.mkdir(parents=True, exist_ok=True)
        self.staged_dir.mkdir(parents=True, exist_ok=True)

    def new_scratch_dir(self) -> Path:
        """Create a private scratch directory for one row."""
        return Path(tempfile.mkdtemp(prefix="row-", dir=self.scratch_dir))

    def staged_path(self, base_name: str) -> Path:
        return self.staged_dir / f"{base_name}{PDF_EXTENSION}"

    def staged_files(self) -> List[Path]:
        """List documents currently held in the staged directory."""
        if not self.staged_dir.exists():
            return []
        return sorted(p for p in self.staged_dir.iterdir() if p.is_file())

    def release(self, processed_file: ProcessedFile) -> None:
        """Delete a staged document. Releasing twice is a no-op."""
        path = Path(processed_file.pdf_path)
        try:
            path.unlink()
            logger.debug(f"Released staged file: {path.name}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not delete staged file {path}: {e}")

    def cleanup(self) -> None:
        """Remove the scratch and staged directories (and the root if it was created here)."""
        for directory in (self.scratch_dir, self.staged_dir):
            shutil.rmtree(directory, ignore_errors=True)
        if self._owns_root:
            shutil.rmtree(self.root, ignore_errors=True)
        logger.debug(f"Cleaned up staging area: {self.root}")


class AttachmentPipeline:
    """
    Turns a row's attachments into one staged PDF.

    Steps: download every attachment, convert each to PDF (images are
    re-encoded, PDFs pass through, other types become a placeholder page),
    merge in attachment order, then copy the result into the staged directory.
    Any failure removes everything created for the row and raises
    RowPreparationError.
    """

    def __init__(
        self,
        staging: StagingArea,
        file_processing: Optional[FileProcessingConfig] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 60.0,
    ):
        self.staging = staging
        self.file_processing = file_processing or FileProcessingConfig()
        self._session = session or create_retry_session()
        self.timeout = timeout
        self._image_types = {ext.lower() for ext in self.file_processing.supported_image_types}

    def process(self, attachments: List[Attachment], base_name: str) -> Optional[ProcessedFile]:
        """
        Process the attachments of one row.

        Args:
            attachments: Attachments in cell order
            base_name: Name of the staged document, without extension

        Returns:
            ProcessedFile pointing at the staged document, or None if there
            were no attachments

        Raises:
            RowPreparationError: If any step fails
        """
        if not attachments:
            return None

        logger.info(f"Processing {len(attachments)} attachment(s) for {base_name}")

        scratch = self.staging.new_scratch_dir()
        staged_path = self.staging.staged_path(base_name)
        try:
            downloaded = [
                self._download(attachment, scratch, index)
                for index, attachment in enumerate(attachments)
            ]
            pdfs = [
                self._convert(path, attachment, scratch, index)
                for index, (path, attachment) in enumerate(zip(downloaded, attachments))
            ]

            combined = scratch / f"combined{PDF_EXTENSION}"
            merge_pdfs([str(p) for p in pdfs], str(combined))

            # Stage before anything leaves the machine
            shutil.copyfile(combined, staged_path)
            logger.debug(f"Staged {staged_path}")

            return ProcessedFile(original_name=base_name, pdf_path=str(staged_path))

        except RowPreparationError:
            self._discard(staged_path)
            raise
        except Exception as e:
            self._discard(staged_path)
            raise RowPreparationError(
                f"Failed to process attachments: {e}",
                {"base_name": base_name},
            ) from e
        finally:
            shutil.rmtree(scratch, ignore_errors=True)

    def _download(self, attachment: Attachment, scratch: Path, index: int) -> Path:
        """Download one attachment into the row's scratch directory."""
        file_name = safe_file_name(attachment.name, f"attachment_{index + 1}")
        target = scratch / f"{index:03d}_{file_name}"

        logger.debug(f"Downloading {attachment.name}")
        try:
            response = self._session.get(attachment.url, stream=True, timeout=self.timeout)
            response.raise_for_status()
            with open(target, "wb") as f:
                for chunk in response.iter_content(chunk_size=64 * 1024):
                    if chunk:
                        f.write(chunk)
        except requests.exceptions.RequestException as e:
            raise RowPreparationError(
                f"Failed to download {attachment.name}: {e}",
                {"url": attachment.url},
            ) from e

        return target

    def _convert(self, path: Path, attachment: Attachment, scratch: Path, index: int) -> Path:
        """Convert one downloaded file to PDF."""
        extension = os.path.splitext(attachment.name or path.name)[1].lower()

        if extension == PDF_EXTENSION:
            return path

        output = scratch / f"{index:03d}_converted{PDF_EXTENSION}"

        if extension in self._image_types:
            image_to_pdf(str(path), str(output), quality=self.file_processing.default_quality)
            return output

        if not self.file_processing.create_placeholder_for_unsupported:
            raise RowPreparationError(
                f"Unsupported attachment type: {extension or 'unknown'}",
                {"name": attachment.name},
            )

        logger.warning(f"Creating placeholder page for unsupported file: {attachment.name}")
        create_placeholder_pdf(attachment.name or path.name, str(output))
        return output

    def _discard(self, staged_path: Path) -> None:
        try:
            staged_path.unlink()
        except FileNotFoundError:
            pass
