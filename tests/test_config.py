import os

import pytest

from tablemigrate.config import load_config, load_environment
from tablemigrate.errors import ConfigurationError

CONFIG_YAML = """
migration:
  source:
    docId: "doc-src"
    tableId: "grid-src"
  destination:
    docId: "doc-dst"
    tableId: "grid-dst"
  settings:
    batchSize: 50
    insertBatchSize: 10
    migrationFolder: "Migration"
    attachmentColumn:
      source: "Record file"
      destination: "Receipt"
  columnMappings:
    "Amount": "Amount"
    "Category (new)": "Category"
  skipColumns:
    - "Ref #"
  transformations:
    "Payment method":
      from: "select"
      to: "lookup"
  fileProcessing:
    supportedImageTypes: [".PNG", ".jpg"]
    supportedDocTypes: [".pdf", ".doc"]
    defaultQuality: 80
    createPlaceholderForUnsupported: false
"""

ENV = {
    "CODA_API_TOKEN": "token",
    "DO_SPACES_BUCKET": "bucket",
    "DO_SPACES_ENDPOINT": "nyc3.digitaloceanspaces.com",
    "DO_SPACES_KEY": "key",
    "DO_SPACES_SECRET": "secret",
}


@pytest.fixture()
def config_path(tmp_path):
    path = tmp_path / "migration-config.yaml"
    path.write_text(CONFIG_YAML, encoding="utf-8")
    return path


def test_load_config(config_path):
    config = load_config(str(config_path), environ=ENV)

    assert config.api_token == "token"
    assert str(config.source) == "doc-src/grid-src"
    assert str(config.destination) == "doc-dst/grid-dst"
    assert config.batch_size == 50
    assert config.insert_batch_size == 10
    assert config.column_mappings == {"Amount": "Amount", "Category (new)": "Category"}
    assert config.skip_columns == ["Ref #"]
    assert config.transformations == {"Payment method": {"from": "select", "to": "lookup"}}
    assert config.attachment_column.source == "Record file"
    assert config.attachment_column.destination == "Receipt"
    assert config.storage.bucket == "bucket"
    assert config.storage.region == "nyc3"
    assert config.file_processing.supported_image_types == [".png", ".jpg"]
    assert config.file_processing.default_quality == 80
    assert config.file_processing.create_placeholder_for_unsupported is False
    assert "supportedDocTypes" not in config.file_processing.to_dict()
    assert config.insert_delay == 2.0


def test_region_from_environment(config_path):
    config = load_config(str(config_path), environ=dict(ENV, DO_SPACES_REGION="fra1"))
    assert config.storage.region == "fra1"


def test_missing_token(config_path):
    env = {k: v for k, v in ENV.items() if k != "CODA_API_TOKEN"}
    with pytest.raises(ConfigurationError, match="CODA_API_TOKEN"):
        load_config(str(config_path), environ=env)


def test_missing_storage_variables(config_path):
    env = {k: v for k, v in ENV.items() if k not in ("DO_SPACES_KEY", "DO_SPACES_SECRET")}
    with pytest.raises(ConfigurationError) as exc_info:
        load_config(str(config_path), environ=env)
    assert exc_info.value.details["missing"] == ["DO_SPACES_KEY", "DO_SPACES_SECRET"]


def test_missing_file(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        load_config(str(tmp_path / "nope.yaml"), environ=ENV)


def test_invalid_yaml(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("migration: [unclosed", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="Invalid YAML"):
        load_config(str(path), environ=ENV)


def test_missing_migration_section(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("other: 1\n", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="migration"):
        load_config(str(path), environ=ENV)


def test_batch_size_out_of_range(tmp_path):
    path = tmp_path / "big.yaml"
    path.write_text(CONFIG_YAML.replace("batchSize: 50", "batchSize: 500"), encoding="utf-8")
    with pytest.raises(ConfigurationError, match="batchSize"):
        load_config(str(path), environ=ENV)


def test_missing_required_section(tmp_path):
    path = tmp_path / "nomap.yaml"
    path.write_text(CONFIG_YAML.split("  columnMappings:")[0], encoding="utf-8")
    with pytest.raises(ConfigurationError, match="columnMappings"):
        load_config(str(path), environ=ENV)


def test_load_environment_does_not_override(tmp_path, monkeypatch):
    monkeypatch.delenv("TABLEMIGRATE_TEST_NEW", raising=False)
    monkeypatch.setenv("TABLEMIGRATE_TEST_SET", "from-shell")
    env_file = tmp_path / ".env"
    env_file.write_text("TABLEMIGRATE_TEST_NEW=from-file\nTABLEMIGRATE_TEST_SET=from-file\n", encoding="utf-8")

    load_environment(str(env_file))

    assert os.environ["TABLEMIGRATE_TEST_NEW"] == "from-file"
    assert os.environ["TABLEMIGRATE_TEST_SET"] == "from-shell"
