"""
Importer CLI commands (``flask importer ...``).
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import click
from celery import Celery
from celery.exceptions import TimeoutError as CeleryTimeoutError
from flask.cli import ScriptInfo

from league_app.importer.adapters import CSVAdapterError, read_csv_rows
from league_app.importer.celery_app import DEFAULT_QUEUE_NAME, get_celery_app
from league_app.importer.errors import BatchInputError
from league_app.importer.pipeline import MAX_RECORD_ID, ImportBatchResult, auto_link_unmatched, execute_import
from league_app.models import Season, db
from league_app.models.importer.schema import ImportKind
from league_app.services.workbond_exemptions import apply_season_exemptions
from league_app.utils.importer import get_import_kinds, is_import_kind_enabled, is_importer_enabled

KIND_CHOICES = [kind.value for kind in ImportKind]
SEASON_ID = click.IntRange(min=1, max=MAX_RECORD_ID)


@click.group(name="importer", invoke_without_command=True)
@click.pass_context
def importer_cli(ctx):
    """
    Import reconciliation commands.

    Lists the enabled import kinds when invoked without a subcommand.
    """
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    if not is_importer_enabled(app):
        raise click.ClickException(
            "Importer is disabled via IMPORTER_ENABLED=false. Enable it to run importer CLI commands."
        )
    if ctx.invoked_subcommand is None:
        kinds = get_import_kinds(app)
        if not kinds:
            click.echo("No import kinds enabled.")
        else:
            click.echo("Enabled import kinds:")
            for kind in kinds:
                click.echo(f"  - {kind}")


def get_disabled_importer_group() -> click.Group:
    """Minimal command group telling the operator the importer is disabled."""

    @click.group(name="importer", invoke_without_command=True)
    def disabled_group():
        raise click.ClickException("Importer commands are unavailable because IMPORTER_ENABLED=false.")

    return disabled_group


def _resolve_celery(app) -> Optional[Celery]:
    """Retrieve the registered Celery instance, raising a helpful error if missing."""
    celery_app = get_celery_app(app)
    if celery_app is None:
        raise click.ClickException(
            "Importer Celery app is unavailable. Ensure IMPORTER_ENABLED=true and the "
            "importer package initialises before running worker commands."
        )
    return celery_app


def _read_rows(kind: str, file_path: Path) -> list[dict]:
    try:
        with file_path.open("r", encoding="utf-8-sig", newline="") as handle:
            return read_csv_rows(handle, kind)
    except CSVAdapterError as exc:
        raise click.ClickException(str(exc)) from exc
    except UnicodeDecodeError as exc:
        raise click.ClickException(f"{file_path} is not UTF-8 encoded: {exc}") from exc


def _format_summary(result: ImportBatchResult) -> str:
    lines = [
        f"Run {result.run_id} ({result.kind}) completed with status {result.status}.",
        f"  rows_processed     : {result.rows_processed}",
        f"  created            : {result.created_count}",
        f"  updated            : {result.updated_count}",
        f"  households_created : {result.households_created}",
        f"  households_updated : {result.households_updated}",
        f"  volunteers_created : {result.volunteers_created}",
        f"  unmatched_queued   : {result.unmatched_queued}",
        f"  skipped            : {result.skipped}",
        f"  ambiguous_matches  : {result.ambiguous_matches}",
        f"  warnings           : {len(result.errors)}",
    ]
    lines.extend(f"    - {warning}" for warning in result.errors)
    return "\n".join(lines)


@importer_cli.group(name="worker")
@click.pass_context
def worker_group(ctx):
    """Manage the importer background worker."""
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    state = app.extensions.get("importer", {})
    if not state.get("worker_enabled") and not app.config.get("IMPORTER_WORKER_ENABLED"):
        click.echo(
            "Warning: IMPORTER_WORKER_ENABLED is false. Commands will still run, "
            "but enable the flag to surface accurate health status.",
            err=True,
        )


@worker_group.command("run")
@click.option("--loglevel", default="info", show_default=True)
@click.option("--concurrency", type=int, help="Number of worker processes/threads.")
@click.option("--pool", type=str, help="Celery pool implementation (e.g., 'prefork', 'solo', 'threads').")
@click.option("--queues", default=DEFAULT_QUEUE_NAME, show_default=True, help="Comma-separated queue list to consume.")
@click.option("--beat/--no-beat", default=False, help="Embed the beat scheduler for the auto-link sweep.")
@click.pass_context
def worker_run(ctx, loglevel: str, concurrency: Optional[int], pool: Optional[str], queues: str, beat: bool):
    """Start the Celery worker in the current process."""
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    celery_app = _resolve_celery(app)

    state = app.extensions.get("importer", {})
    if state is not None:
        state["worker_enabled"] = True

    argv = ["worker", "--loglevel", loglevel, "-Q", queues]
    if concurrency:
        argv.extend(["--concurrency", str(concurrency)])
    if pool:
        argv.extend(["--pool", pool])
    if beat:
        argv.append("--beat")

    pool_msg = f", pool: {pool}" if pool else ""
    click.echo(f"Starting importer worker (queues: {queues}, loglevel: {loglevel}{pool_msg})")
    try:
        celery_app.worker_main(argv=argv)
    except KeyboardInterrupt:
        click.echo("Worker shutdown requested. Exiting...")


@worker_group.command("ping")
@click.option("--timeout", default=10.0, show_default=True, help="Seconds to wait for a response.")
@click.pass_context
def worker_ping(ctx, timeout: float):
    """Validate worker connectivity by executing the heartbeat task."""
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    celery_app = _resolve_celery(app)
    task = celery_app.tasks.get("importer.healthcheck")
    if task is None:
        raise click.ClickException("Heartbeat task 'importer.healthcheck' is not registered.")

    result = task.apply_async()
    try:
        payload = result.get(timeout=timeout)
    except CeleryTimeoutError as exc:
        raise click.ClickException(f"Worker did not respond within {timeout}s") from exc
    except Exception as exc:  # pragma: no cover - surfacing unexpected errors
        raise click.ClickException(f"Worker ping failed: {exc}") from exc

    click.echo(json.dumps(payload, indent=2))


@importer_cli.command("run")
@click.option("--kind", required=True, type=click.Choice(KIND_CHOICES, case_sensitive=False))
@click.option("--season", "season_id", required=True, type=SEASON_ID, help="Season id the rows belong to.")
@click.option(
    "--file",
    "file_path",
    required=True,
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    help="CSV export to import.",
)
@click.option("--chunk-size", type=click.IntRange(min=1), help="Rows per committed chunk.")
@click.option("--only-active", is_flag=True, help="Reject the import unless the season is active.")
@click.option(
    "--keep-empty-workbond",
    is_flag=True,
    help="Do not clear a stored workbond status when the row's status is empty.",
)
@click.option(
    "--inline/--no-inline",
    default=True,
    help="Run inline within the CLI process instead of queueing via Celery.",
)
@click.option("--summary-json", is_flag=True, help="Emit the machine-readable summary after completion.")
@click.pass_context
def importer_run(
    ctx,
    kind: str,
    season_id: int,
    file_path: Path,
    chunk_size: Optional[int],
    only_active: bool,
    keep_empty_workbond: bool,
    inline: bool,
    summary_json: bool,
):
    """Import a CSV export of players, volunteers or shifts."""
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    kind = kind.lower()
    if not is_import_kind_enabled(kind, app):
        raise click.ClickException(f"Import kind '{kind}' is disabled; add it to IMPORTER_KINDS.")
    if summary_json and not inline:
        raise click.ClickException("--summary-json is only available for --inline runs.")

    rows = _read_rows(kind, file_path.resolve())
    options = {"only_active": only_active, "clear_workbond_if_empty": not keep_empty_workbond}

    if not inline:
        celery_app = _resolve_celery(app)
        try:
            async_result = celery_app.send_task(
                "importer.pipeline.ingest_rows",
                kwargs={
                    "kind": kind,
                    "rows": rows,
                    "season_id": season_id,
                    "options": options,
                    "triggered_by": "cli",
                },
            )
        except Exception as exc:  # pragma: no cover - broker failures
            raise click.ClickException(f"Failed to enqueue {kind} import: {exc}") from exc

        app.logger.info(
            "Importer run queued via CLI",
            extra={"importer_task_id": async_result.id, "importer_kind": kind, "importer_rows": len(rows)},
        )
        click.echo(json.dumps({"task_id": async_result.id, "status": "queued", "kind": kind, "rows": len(rows)}))
        return

    try:
        result = execute_import(kind, rows, season_id, options, triggered_by="cli", chunk_size=chunk_size)
    except BatchInputError as exc:
        raise click.ClickException(str(exc)) from exc

    click.echo(_format_summary(result))
    if summary_json:
        click.echo(json.dumps(result.to_summary(), indent=2, sort_keys=True))


@importer_cli.command("auto-link")
@click.option("--season", "season_id", type=SEASON_ID, help="Restrict the sweep to one season.")
@click.pass_context
def importer_auto_link(ctx, season_id: Optional[int]):
    """Retry matching every queued shift record."""
    info = ctx.ensure_object(ScriptInfo)
    info.load_app()
    summary = auto_link_unmatched(season_id)
    click.echo(
        f"Processed {summary.processed} unmatched records: {summary.linked} linked, "
        f"{summary.still_unmatched} still unmatched, {summary.errors} errors."
    )


@importer_cli.command("exemptions")
@click.option("--season", "season_id", required=True, type=SEASON_ID)
@click.pass_context
def importer_exemptions(ctx, season_id: int):
    """Mark workbond-exempt households for a season."""
    info = ctx.ensure_object(ScriptInfo)
    info.load_app()
    if db.session.get(Season, season_id) is None:
        raise click.ClickException(f"Season {season_id} not found.")
    summary = apply_season_exemptions(season_id)
    click.echo(
        f"Season {season_id}: {summary.exempt_count} exempt, {summary.reset_count} reset "
        f"of {summary.total_households} households."
    )
