"""Loading and validation of ``migration-config.yaml`` plus environment credentials."""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigurationError
from .models.migration import (
    DEFAULT_API_BASE_URL,
    DEFAULT_IMAGE_TYPES,
    AttachmentColumnConfig,
    FileProcessingConfig,
    MigrationConfig,
    StorageConfig,
    TableRef,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "migration-config.yaml"

REQUIRED_STORAGE_ENV = ["DO_SPACES_BUCKET", "DO_SPACES_ENDPOINT", "DO_SPACES_KEY", "DO_SPACES_SECRET"]


class _Section(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TableSection(_Section):
    doc_id: str = Field(alias="docId", min_length=1)
    table_id: str = Field(alias="tableId", min_length=1)


class AttachmentColumnSection(_Section):
    source: str = Field(min_length=1)
    destination: str = Field(min_length=1)


class SettingsSection(_Section):
    batch_size: int = Field(alias="batchSize", ge=1, le=100)
    insert_batch_size: int = Field(alias="insertBatchSize", ge=1, le=50)
    migration_folder: str = Field(alias="migrationFolder", min_length=1)
    attachment_column: Optional[AttachmentColumnSection] = Field(default=None, alias="attachmentColumn")
    page_delay: float = Field(default=1.0, alias="pageDelay", ge=0)
    fetch_chunk_size: int = Field(default=20, alias="fetchChunkSize", ge=1, le=100)
    fetch_delay: float = Field(default=0.5, alias="fetchDelay", ge=0)
    insert_delay: float = Field(default=2.0, alias="insertDelay", ge=0)
    api_base_url: str = Field(default=DEFAULT_API_BASE_URL, alias="apiBaseUrl")


class FileProcessingSection(_Section):
    supported_image_types: List[str] = Field(default_factory=lambda: list(DEFAULT_IMAGE_TYPES), alias="supportedImageTypes")
    default_quality: int = Field(default=90, alias="defaultQuality", ge=1, le=100)
    create_placeholder_for_unsupported: bool = Field(default=True, alias="createPlaceholderForUnsupported")


class MigrationSection(_Section):
    source: TableSection
    destination: TableSection
    settings: SettingsSection
    column_mappings: Dict[str, str] = Field(alias="columnMappings")
    skip_columns: Optional[List[str]] = Field(default=None, alias="skipColumns")
    transformations: Optional[Dict[str, Dict[str, Any]]] = None
    file_processing: Optional[FileProcessingSection] = Field(default=None, alias="fileProcessing")


class ConfigFile(_Section):
    migration: MigrationSection


def _format_validation_error(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        problems.append(f"{location}: {item.get('msg')}")
    return "; ".join(problems)


def load_environment(env_file: Optional[str] = None) -> None:
    """Load variables from a ``.env`` file without overriding the environment."""
    path = Path(env_file) if env_file else Path(".env")
    if path.exists():
        load_dotenv(dotenv_path=path, override=False)
        logger.debug(f"Loaded environment from {path}")


def read_config_file(path: str) -> ConfigFile:
    """
    Parse and validate the YAML configuration file.

    Raises:
        ConfigurationError: If the file is missing, not YAML, or invalid
    """
    config_path = Path(path)
    if not config_path.is_file():
        raise ConfigurationError(f"Configuration file not found: {config_path.resolve()}")

    logger.info(f"Loading configuration from: {config_path.resolve()}")
    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict) or "migration" not in data:
        raise ConfigurationError('Configuration must have a "migration" section')

    try:
        return ConfigFile.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {_format_validation_error(e)}") from e


def build_config(parsed: ConfigFile, environ: Optional[Mapping[str, str]] = None) -> MigrationConfig:
    """
    Combine the parsed file with credentials from the environment.

    Raises:
        ConfigurationError: If a required environment variable is missing
    """
    env = os.environ if environ is None else environ

    api_token = env.get("CODA_API_TOKEN")
    if not api_token:
        raise ConfigurationError("CODA_API_TOKEN environment variable is not set")

    missing = [name for name in REQUIRED_STORAGE_ENV if not env.get(name)]
    if missing:
        raise ConfigurationError(
            f"Object storage environment variables are not set: {', '.join(missing)}",
            {"missing": missing},
        )

    migration = parsed.migration
    settings = migration.settings
    file_processing = migration.file_processing or FileProcessingSection()

    attachment_column = None
    if settings.attachment_column:
        attachment_column = AttachmentColumnConfig(
            source=settings.attachment_column.source,
            destination=settings.attachment_column.destination,
        )

    return MigrationConfig(
        api_token=api_token,
        source=TableRef(migration.source.doc_id, migration.source.table_id),
        destination=TableRef(migration.destination.doc_id, migration.destination.table_id),
        storage=StorageConfig(
            bucket=env["DO_SPACES_BUCKET"],
            endpoint=env["DO_SPACES_ENDPOINT"],
            access_key=env["DO_SPACES_KEY"],
            secret_key=env["DO_SPACES_SECRET"],
            region=env.get("DO_SPACES_REGION") or "nyc3",
        ),
        migration_folder=settings.migration_folder,
        batch_size=settings.batch_size,
        insert_batch_size=settings.insert_batch_size,
        column_mappings=dict(migration.column_mappings),
        skip_columns=list(migration.skip_columns or []),
        transformations=dict(migration.transformations or {}),
        attachment_column=attachment_column,
        file_processing=FileProcessingConfig(
            supported_image_types=[ext.lower() for ext in file_processing.supported_image_types],
            default_quality=file_processing.default_quality,
            create_placeholder_for_unsupported=file_processing.create_placeholder_for_unsupported,
        ),
        page_delay=settings.page_delay,
        fetch_chunk_size=settings.fetch_chunk_size,
        fetch_delay=settings.fetch_delay,
        insert_delay=settings.insert_delay,
        api_base_url=settings.api_base_url,
    )


def load_config(path: str = DEFAULT_CONFIG_PATH, environ: Optional[Mapping[str, str]] = None) -> MigrationConfig:
    """
    Load the runtime configuration.

    Args:
        path: YAML configuration file
        environ: Environment mapping (defaults to ``os.environ``)

    Returns:
        MigrationConfig ready for an orchestrator

    Raises:
        ConfigurationError: On any problem with the file or the environment
    """
    config = build_config(read_config_file(path), environ)
    logger.info(
        f"Configuration: {config.source} -> {config.destination}, "
        f"fetch batch {config.batch_size}, insert batch {config.insert_batch_size}, "
        f"storage {config.storage.bucket}/{config.migration_folder}, "
        f"{len(config.column_mappings)} column mappings, {len(config.skip_columns)} skipped"
    )
    return config
