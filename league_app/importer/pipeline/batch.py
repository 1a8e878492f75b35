"""
Chunked batch execution for import rows.

Rows are processed strictly in order. Each chunk commits once; a chunk that
loses the store is rolled back, reported once as ``Batch N: ...`` and the next
chunk still runs. ``execute_import`` wraps a batch in an ``ImportRun`` record.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Sequence

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config.monitoring import ImporterMonitoring
from league_app.importer.errors import BatchInputError
from league_app.models import Household, ImportKind, ImportRun, ImportRunStatus, Season, db

from .context import BatchContext, ImportOptions
from .reconcile import ImportRow, RowOutcome, RowReconciler, reconciler_for

DEFAULT_CHUNK_SIZE = 100
DEFAULT_CHUNK_DELAY_SECONDS = 0.1
DEFAULT_MAX_ROWS = 10000
# Signed 64-bit, the widest integer key SQLite and PostgreSQL store.
MAX_RECORD_ID = 2**63 - 1

STATUS_SUCCEEDED = "succeeded"
STATUS_PARTIALLY_FAILED = "partially_failed"
STATUS_NO_VALID_ROWS = "no_valid_rows"

_RUN_STATUS = {
    STATUS_SUCCEEDED: ImportRunStatus.SUCCEEDED,
    STATUS_PARTIALLY_FAILED: ImportRunStatus.PARTIALLY_FAILED,
    STATUS_NO_VALID_ROWS: ImportRunStatus.FAILED,
}


@dataclass
class ImportBatchResult:
    """Aggregate outcome of one batch. Errors are additive and never stop the batch."""

    kind: str
    rows_processed: int = 0
    households_created: int = 0
    households_updated: int = 0
    persons_created: int = 0
    persons_updated: int = 0
    persons_matched: int = 0
    volunteers_created: int = 0
    unmatched_queued: int = 0
    skipped: int = 0
    row_errors: int = 0
    ambiguous_matches: int = 0
    chunk_failures: int = 0
    errors: list[str] = field(default_factory=list)
    created_household_ids: list[int] = field(default_factory=list)
    run_id: int | None = None

    def record(self, row: ImportRow) -> None:
        self.rows_processed += 1
        self.ambiguous_matches += row.ambiguous_matches
        self.volunteers_created += row.volunteers_created
        if row.household_created:
            self.households_created += 1
            if row.household_id is not None:
                self.created_household_ids.append(row.household_id)
        elif row.household_updated:
            self.households_updated += 1

        if row.outcome is RowOutcome.CREATED:
            self.persons_created += 1
        elif row.outcome is RowOutcome.UPDATED:
            self.persons_updated += 1
        elif row.outcome is RowOutcome.MATCHED:
            self.persons_matched += 1
        elif row.outcome is RowOutcome.SKIPPED:
            if row.queued:
                self.unmatched_queued += 1
            else:
                self.skipped += 1
        elif row.outcome is RowOutcome.ERROR:
            self.row_errors += 1
            self.errors.append(row.error or f"Row {row.row_number}: unknown error")

    def merge(self, other: "ImportBatchResult") -> None:
        for name in (
            "rows_processed",
            "households_created",
            "households_updated",
            "persons_created",
            "persons_updated",
            "persons_matched",
            "volunteers_created",
            "unmatched_queued",
            "skipped",
            "row_errors",
            "ambiguous_matches",
            "chunk_failures",
        ):
            setattr(self, name, getattr(self, name) + getattr(other, name))
        self.errors.extend(other.errors)
        self.created_household_ids.extend(other.created_household_ids)

    @property
    def created_count(self) -> int:
        return self.persons_created

    @property
    def updated_count(self) -> int:
        # Re-imported rows with nothing new still count as reconciled.
        return self.persons_updated + self.persons_matched

    @property
    def household_count(self) -> int:
        return self.households_created

    @property
    def status(self) -> str:
        succeeded = self.created_count + self.updated_count + self.unmatched_queued
        if not self.errors:
            return STATUS_SUCCEEDED if self.rows_processed else STATUS_NO_VALID_ROWS
        return STATUS_PARTIALLY_FAILED if succeeded else STATUS_NO_VALID_ROWS

    @property
    def run_status(self) -> ImportRunStatus:
        return _RUN_STATUS[self.status]

    def counts(self) -> dict[str, int]:
        data = asdict(self)
        for name in ("kind", "errors", "created_household_ids", "run_id"):
            data.pop(name)
        return data

    def to_summary(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "created_count": self.created_count,
            "updated_count": self.updated_count,
            "household_count": self.household_count,
            "warnings": list(self.errors),
            "status": self.status,
            "run_id": self.run_id,
            "counts": self.counts(),
        }


def _coerce_rows(rows: Any, max_rows: int) -> list[Mapping[str, Any]]:
    if not isinstance(rows, Sequence) or isinstance(rows, (str, bytes)):
        raise BatchInputError("rows must be a list of objects.")
    if len(rows) > max_rows:
        raise BatchInputError(f"Too many rows: {len(rows)} exceeds the limit of {max_rows}.")
    for position, row in enumerate(rows, start=1):
        if not isinstance(row, Mapping):
            raise BatchInputError(f"Row {position} must be an object.")
    return list(rows)


def _coerce_kind(kind: str | ImportKind) -> ImportKind:
    try:
        return kind if isinstance(kind, ImportKind) else ImportKind(str(kind).strip().lower())
    except ValueError as exc:
        raise BatchInputError(f"Unsupported import kind: {kind}") from exc


def coerce_record_id(value: Any, name: str = "season_id") -> int:
    """Integer primary key from request input; rejects values the store cannot hold."""
    if isinstance(value, bool):
        raise BatchInputError(f"{name} must be an integer.")
    try:
        record_id = int(value)
    except (TypeError, ValueError, OverflowError) as exc:
        raise BatchInputError(f"{name} must be an integer.") from exc
    if not -MAX_RECORD_ID <= record_id <= MAX_RECORD_ID:
        raise BatchInputError(f"{name} is out of range.")
    return record_id


class ImportBatchRunner:
    """Runs one import kind over a list of raw rows."""

    def __init__(
        self,
        kind: str | ImportKind,
        *,
        session: Session | None = None,
        config: Mapping[str, Any] | None = None,
        chunk_size: int | None = None,
        chunk_delay: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.kind = _coerce_kind(kind)
        self.session = session or db.session
        self.config = config if config is not None else current_app.config
        self.chunk_size = max(1, int(chunk_size or self.config.get("IMPORTER_CHUNK_SIZE") or DEFAULT_CHUNK_SIZE))
        delay = self.config.get("IMPORTER_CHUNK_DELAY_SECONDS", DEFAULT_CHUNK_DELAY_SECONDS)
        self.chunk_delay = max(0.0, float(delay if chunk_delay is None else chunk_delay))
        self.max_rows = int(self.config.get("IMPORTER_MAX_ROWS") or DEFAULT_MAX_ROWS)
        self._sleep = sleep

    def prepare(
        self,
        rows: Any,
        season_id: Any,
        options: ImportOptions | Mapping[str, Any] | None = None,
    ) -> tuple[list[Mapping[str, Any]], Season, ImportOptions]:
        """Top-level validation; raises ``BatchInputError`` before any row is touched."""
        rows = _coerce_rows(rows, self.max_rows)
        if not isinstance(options, ImportOptions):
            options = ImportOptions.from_mapping(options)
        season = self.session.get(Season, coerce_record_id(season_id))
        if season is None:
            raise BatchInputError(f"Season {season_id} not found.")
        if options.only_active and not season.is_active:
            raise BatchInputError(f"Season {season.name} is not active.")
        return rows, season, options

    def run(
        self,
        rows: Any,
        season_id: Any,
        options: ImportOptions | Mapping[str, Any] | None = None,
        *,
        import_run_id: int | None = None,
    ) -> ImportBatchResult:
        rows, season, options = self.prepare(rows, season_id, options)
        context = BatchContext(
            session=self.session,
            season=season,
            options=options,
            config=self.config,
            import_run_id=import_run_id,
        )
        reconciler = reconciler_for(self.kind, context)
        result = ImportBatchResult(kind=self.kind.value, run_id=import_run_id)

        try:
            for number, start in enumerate(range(0, len(rows), self.chunk_size), start=1):
                if number > 1 and self.chunk_delay:
                    self._sleep(self.chunk_delay)
                chunk = rows[start : start + self.chunk_size]
                result.merge(self._run_chunk(reconciler, context, chunk, start, number))
            if self.kind is ImportKind.PLAYERS and result.created_household_ids:
                self._update_shift_requirements(result, season.id)
        finally:
            context.close()
        return result

    def _run_chunk(
        self,
        reconciler: RowReconciler,
        context: BatchContext,
        chunk: Sequence[Mapping[str, Any]],
        start: int,
        number: int,
    ) -> ImportBatchResult:
        chunk_result = ImportBatchResult(kind=self.kind.value)
        try:
            for offset, raw in enumerate(chunk):
                chunk_result.record(reconciler.reconcile(start + offset, raw))
            self.session.commit()
        except Exception as exc:
            self.session.rollback()
            context.household_written()
            ImporterMonitoring.record_chunk_failure(kind=self.kind.value)
            current_app.logger.error(
                "Importer %s chunk %s failed: %s",
                self.kind.value,
                number,
                exc,
                extra={
                    "importer_kind": self.kind.value,
                    "importer_chunk": number,
                    "importer_run_id": context.import_run_id,
                },
            )
            return ImportBatchResult(kind=self.kind.value, chunk_failures=1, errors=[f"Batch {number}: {exc}"])
        return chunk_result

    def _update_shift_requirements(self, result: ImportBatchResult, season_id: int) -> None:
        from league_app.services.workbond_exemptions import update_shift_requirements

        for household_id in result.created_household_ids:
            household = self.session.get(Household, household_id)
            if household is None:
                continue
            code = household.household_code
            try:
                update_shift_requirements(household_id, season_id, session=self.session)
                self.session.commit()
            except SQLAlchemyError as exc:
                self.session.rollback()
                result.errors.append(f"Household {code}: {exc}")


def execute_import(
    kind: str | ImportKind,
    rows: Any,
    season_id: Any,
    options: ImportOptions | Mapping[str, Any] | None = None,
    *,
    triggered_by: str | None = None,
    chunk_size: int | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ImportBatchResult:
    """
    Run a batch and record it as an ``ImportRun``.

    Top-level input problems raise ``BatchInputError`` and leave no run
    behind. Everything else is reported in the returned result.
    """

    runner = ImportBatchRunner(kind, chunk_size=chunk_size, sleep=sleep)
    prepared_rows, season, prepared_options = runner.prepare(rows, season_id, options)

    session = runner.session
    run = ImportRun(
        kind=runner.kind,
        season_id=season.id,
        status=ImportRunStatus.RUNNING,
        started_at=datetime.now(timezone.utc),
        row_count=len(prepared_rows),
        options_json=prepared_options.to_dict(),
        triggered_by=triggered_by,
    )
    session.add(run)
    session.commit()
    run_id = run.id

    started = time.monotonic()
    try:
        result = runner.run(prepared_rows, season.id, prepared_options, import_run_id=run_id)
    except Exception as exc:
        session.rollback()
        failed_run = session.get(ImportRun, run_id)
        if failed_run is not None:
            failed_run.status = ImportRunStatus.FAILED
            failed_run.error_summary = str(exc)
            failed_run.finished_at = datetime.now(timezone.utc)
            session.commit()
        current_app.logger.exception(
            "Importer run failed",
            extra={"importer_run_id": run_id, "importer_kind": runner.kind.value, "importer_error": str(exc)},
        )
        raise

    duration = time.monotonic() - started
    run = session.get(ImportRun, run_id)
    run.status = result.run_status
    run.finished_at = datetime.now(timezone.utc)
    run.counts_json = result.counts()
    run.warnings_json = list(result.errors)
    run.error_summary = result.errors[0] if result.errors else None
    session.commit()

    ImporterMonitoring.record_batch(
        kind=runner.kind.value,
        status=result.status,
        duration_seconds=duration,
        row_count=result.rows_processed,
    )
    current_app.logger.info(
        "Importer run completed",
        extra={
            "importer_run_id": run_id,
            "importer_kind": runner.kind.value,
            "importer_status": result.status,
            "importer_rows_processed": result.rows_processed,
            "importer_rows_created": result.created_count,
            "importer_rows_updated": result.updated_count,
            "importer_households_created": result.households_created,
            "importer_unmatched_queued": result.unmatched_queued,
            "importer_ambiguous_matches": result.ambiguous_matches,
            "importer_chunk_failures": result.chunk_failures,
            "importer_warnings": len(result.errors),
        },
    )
    return result


__all__ = [
    "DEFAULT_CHUNK_DELAY_SECONDS",
    "DEFAULT_CHUNK_SIZE",
    "ImportBatchResult",
    "ImportBatchRunner",
    "STATUS_NO_VALID_ROWS",
    "STATUS_PARTIALLY_FAILED",
    "STATUS_SUCCEEDED",
    "execute_import",
]
