import sqlite3

import pytest
from sqlalchemy import event
from sqlalchemy.exc import IntegrityError, OperationalError

from league_app.importer.errors import BatchInputError
from league_app.importer.pipeline import ImportBatchRunner, execute_import
from league_app.importer.pipeline.reconcile import PlayerReconciler
from league_app.models import Household, ImportRun, ImportRunStatus, Player

FAMILIES = ["Adams", "Baker", "Clark", "Davis", "Evans", "Frank"]


def test_chunks_pause_between_commits(season, family_row):
    pauses = []
    runner = ImportBatchRunner("players", chunk_size=2, chunk_delay=0.25, sleep=pauses.append)

    result = runner.run([family_row("Kid", family) for family in FAMILIES[:5]], season.id)

    assert pauses == [0.25, 0.25]
    assert result.created_count == 5
    assert result.chunk_failures == 0


def test_store_failure_abandons_only_its_chunk(season, family_row, monkeypatch):
    original = PlayerReconciler._reconcile

    def flaky(self, index, raw):
        if index == 2:
            raise OperationalError("INSERT INTO people", {}, sqlite3.OperationalError("database is locked"))
        return original(self, index, raw)

    monkeypatch.setattr(PlayerReconciler, "_reconcile", flaky)

    result = execute_import(
        "players",
        [family_row("Kid", family) for family in FAMILIES],
        season.id,
        chunk_size=2,
    )

    assert result.errors == ["Batch 2: database is locked"]
    assert result.chunk_failures == 1
    assert result.created_count == 4
    assert result.status == "partially_failed"
    assert sorted(player.last_name for player in Player.query.all()) == ["Adams", "Baker", "Evans", "Frank"]

    run = ImportRun.query.one()
    assert run.status is ImportRunStatus.PARTIALLY_FAILED
    assert run.error_summary == "Batch 2: database is locked"


def test_import_run_records_outcome(season, family_row):
    result = execute_import("players", [family_row("Ava", "Jones")], season.id, {"only_active": True}, triggered_by="api")

    run = ImportRun.query.one()
    assert result.run_id == run.id
    assert run.status is ImportRunStatus.SUCCEEDED
    assert run.triggered_by == "api"
    assert run.row_count == 1
    assert run.counts_json["persons_created"] == 1
    assert run.counts_json["households_created"] == 1
    assert run.warnings_json == []
    assert run.options_json["only_active"] is True
    assert run.finished_at is not None
    assert run.to_dict()["kind"] == "players"


def test_empty_batch_has_no_valid_rows(season):
    result = execute_import("players", [], season.id)

    assert result.status == "no_valid_rows"
    assert ImportRun.query.one().status is ImportRunStatus.FAILED


@pytest.mark.parametrize(
    "rows, season_id, options, message",
    [
        ("not rows", None, None, "rows must be a list of objects."),
        ([1], None, None, "Row 1 must be an object."),
        ([], 9999, None, "Season 9999 not found."),
        ([], "abc", None, "season_id must be an integer."),
        ([], 10**30, None, "season_id is out of range."),
        ([], None, "yes", "options must be an object."),
    ],
)
def test_malformed_batches_are_rejected_before_any_run(season, rows, season_id, options, message):
    with pytest.raises(BatchInputError) as excinfo:
        execute_import("players", rows, season.id if season_id is None else season_id, options)

    assert str(excinfo.value) == message
    assert ImportRun.query.count() == 0


def test_only_active_rejects_inactive_season(inactive_season):
    with pytest.raises(BatchInputError, match="is not active"):
        execute_import("players", [], inactive_season.id, {"onlyActive": "true"})
    assert ImportRun.query.count() == 0


def test_row_limit_is_enforced(app, season, family_row):
    app.config["IMPORTER_MAX_ROWS"] = 2
    try:
        with pytest.raises(BatchInputError, match="Too many rows: 3 exceeds the limit of 2"):
            execute_import("players", [family_row("Kid", family) for family in FAMILIES[:3]], season.id)
    finally:
        app.config["IMPORTER_MAX_ROWS"] = 10000


def test_unknown_kind_is_rejected(season):
    with pytest.raises(BatchInputError, match="Unsupported import kind: coaches"):
        execute_import("coaches", [], season.id)


def test_unexpected_row_error_fails_only_that_row(season, family_row, monkeypatch):
    original = PlayerReconciler._create_default_volunteers

    def broken(self, household, row):
        if row.last_name == "Baker":
            raise ValueError("unexpected data in guardian name")
        return original(self, household, row)

    monkeypatch.setattr(PlayerReconciler, "_create_default_volunteers", broken)

    result = execute_import("players", [family_row("Kid", family) for family in FAMILIES[:3]], season.id)

    assert result.errors == ["Row 2: unexpected data in guardian name"]
    assert result.created_count == 2
    assert result.status == "partially_failed"
    assert sorted(player.last_name for player in Player.query.all()) == ["Adams", "Clark"]
    assert Household.query.filter_by(primary_contact_email="baker@example.com").count() == 0
    assert ImportRun.query.one().status is ImportRunStatus.PARTIALLY_FAILED


def test_unexpected_chunk_error_is_recorded_and_next_chunk_runs(season, family_row, monkeypatch):
    original = PlayerReconciler.reconcile

    def broken(self, index, raw):
        if index == 2:
            raise RuntimeError("reconciler state lost")
        return original(self, index, raw)

    monkeypatch.setattr(PlayerReconciler, "reconcile", broken)

    result = execute_import(
        "players",
        [family_row("Kid", family) for family in FAMILIES],
        season.id,
        chunk_size=2,
    )

    assert result.errors == ["Batch 2: reconciler state lost"]
    assert result.chunk_failures == 1
    assert result.created_count == 4
    assert sorted(player.last_name for player in Player.query.all()) == ["Adams", "Baker", "Evans", "Frank"]


@pytest.fixture
def failing_player_insert():
    def reject(mapper, connection, target):
        if target.last_name == "Baker":
            raise IntegrityError(
                "INSERT INTO players",
                {},
                sqlite3.IntegrityError("UNIQUE constraint failed: players.registration_no"),
            )

    event.listen(Player, "before_insert", reject)
    yield
    event.remove(Player, "before_insert", reject)


def test_store_write_error_leaves_no_half_written_row(season, family_row, failing_player_insert):
    result = execute_import("players", [family_row("Kid", family) for family in FAMILIES[:3]], season.id)

    assert result.errors == ["Row 2: UNIQUE constraint failed: players.registration_no"]
    assert result.created_count == 2
    assert result.chunk_failures == 0
    assert Household.query.filter_by(primary_contact_email="baker@example.com").count() == 0
    assert Household.query.count() == 2
    assert sorted(player.last_name for player in Player.query.all()) == ["Adams", "Clark"]
