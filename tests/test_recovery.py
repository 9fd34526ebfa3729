import pytest

from conftest import api_row

from tablemigrate.errors import LedgerError
from tablemigrate.models.migration import MigrationStatus, RunKind
from tablemigrate.recovery import ROW_NOT_RETURNED, RecoveryOrchestrator
from tablemigrate.services.attachment_pipeline import StagingArea
from tablemigrate.services.ledger import (
    FAILED_ROWS_KEY,
    RECOVERY_RESULTS_KEY,
    STILL_FAILED_ROWS_KEY,
)


@pytest.fixture()
def work_dir(tmp_path):
    return tmp_path / "work"


@pytest.fixture()
def build(make_config, uploader, ledger_store, download_session, work_dir):
    def _build(client, ledger_key=FAILED_ROWS_KEY, **config_overrides):
        return RecoveryOrchestrator(
            make_config(**config_overrides),
            client,
            uploader,
            ledger_store,
            staging=StagingArea(str(work_dir)),
            download_session=download_session,
            sleep=lambda seconds: None,
            ledger_key=ledger_key,
        )

    return _build


def write_ledger(store, row_ids, key=FAILED_ROWS_KEY):
    store.write(key, {
        "timestamp": "2024-05-01T12:00:00.000Z",
        "totalFailed": len(row_ids),
        "failedRowIds": row_ids,
        "failedRows": [{"rowId": row_id, "error": "HTTP 500"} for row_id in row_ids],
    })


def test_recovers_only_ledgered_rows(build, make_client, ledger_store):
    client = make_client([api_row(f"r-{i}", f"Row {i}") for i in range(1, 6)])
    write_ledger(ledger_store, ["r-2", "r-4"])

    run = build(client).run_migration()

    assert run.kind == RunKind.RECOVERY
    assert run.status == MigrationStatus.DONE
    assert sorted(r.source_row_id for r in run.results) == ["r-2", "r-4"]
    assert all(r.success for r in run.results)

    # No full-table sweep: every row request names the ledgered ids
    row_calls = client.calls_named("get_rows")
    assert [call[3] for call in row_calls] == [("r-2", "r-4")]
    assert [row for chunk in client.inserted for row in chunk] == [{"d-name": "Row 2"}, {"d-name": "Row 4"}]

    assert len(ledger_store.documents[RECOVERY_RESULTS_KEY]) == 2
    assert STILL_FAILED_ROWS_KEY not in ledger_store.documents


def test_rows_missing_from_source_stay_failed(build, make_client, ledger_store):
    client = make_client([api_row("r-1", "One"), api_row("r-2", "Two")])
    write_ledger(ledger_store, ["r-2", "r-9"])

    run = build(client).run_migration()

    by_row = {r.source_row_id: r for r in run.results}
    assert by_row["r-2"].success
    assert not by_row["r-9"].success
    assert by_row["r-9"].error == ROW_NOT_RETURNED

    still_failed = ledger_store.documents[STILL_FAILED_ROWS_KEY]
    assert still_failed["originalFailureCount"] == 2
    assert still_failed["recoveredCount"] == 1
    assert still_failed["totalStillFailed"] == 1
    assert still_failed["failedRowIds"] == ["r-9"]
    assert still_failed["failedRows"] == [{"rowId": "r-9", "error": ROW_NOT_RETURNED}]


def test_insert_failure_is_carried_to_still_failed_ledger(build, make_client, ledger_store):
    client = make_client([api_row("r-1", "One"), api_row("r-2", "Two")])
    client.insert_responses = [{"addedRowIds": ["i-1"]}]
    write_ledger(ledger_store, ["r-1", "r-2"])

    run = build(client).run_migration()

    assert len(run.failed) == 2
    still_failed = ledger_store.documents[STILL_FAILED_ROWS_KEY]
    assert still_failed["recoveredCount"] == 0
    assert still_failed["failedRowIds"] == ["r-1", "r-2"]
    # The original ledger is left untouched
    assert ledger_store.documents[FAILED_ROWS_KEY]["failedRowIds"] == ["r-1", "r-2"]


def test_recovers_from_a_previous_recovery_ledger(build, make_client, ledger_store):
    client = make_client([api_row("r-3", "Three")])
    write_ledger(ledger_store, ["r-3"], key=STILL_FAILED_ROWS_KEY)

    run = build(client, ledger_key=STILL_FAILED_ROWS_KEY).run_migration()

    assert [r.source_row_id for r in run.succeeded] == ["r-3"]


def test_empty_ledger_makes_no_calls(build, make_client, ledger_store, s3_client, work_dir):
    client = make_client([api_row("r-1", "One")])
    write_ledger(ledger_store, [])

    run = build(client).run_migration()

    assert run.status == MigrationStatus.DONE
    assert run.results == []
    assert client.calls == []
    s3_client.put_object.assert_not_called()
    assert set(ledger_store.documents) == {FAILED_ROWS_KEY}
    assert not (work_dir / "upload").exists()


def test_missing_ledger_is_fatal(build, make_client, work_dir):
    client = make_client([api_row("r-1", "One")])

    with pytest.raises(LedgerError):
        build(client).run_migration()

    assert client.calls == []
    assert not (work_dir / "temp").exists()
