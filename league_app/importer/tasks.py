"""
Importer Celery tasks.

Each task runs inside a Flask application context (see ``FlaskContextTask``)
and delegates to the same pipeline functions the HTTP and CLI surfaces use.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

from celery import shared_task
from flask import current_app

from league_app.importer.pipeline import auto_link_unmatched, execute_import

from .celery_app import AUTO_LINK_TASK_NAME


@shared_task(name="importer.healthcheck", bind=True)
def importer_healthcheck(self) -> dict[str, Any]:
    """Heartbeat used by ``flask importer worker ping``."""
    now = datetime.now(timezone.utc)
    return {
        "status": "ok",
        "timestamp": now.isoformat(),
        "worker_hostname": self.request.hostname,
        "app_version": getattr(self.app, "user_options", {}).get("version"),
    }


@shared_task(name="importer.pipeline.ingest_rows", bind=True)
def ingest_rows(
    self,
    *,
    kind: str,
    rows: Sequence[Mapping[str, Any]],
    season_id: int,
    options: Mapping[str, Any] | None = None,
    triggered_by: str | None = "worker",
) -> dict[str, Any]:
    """Run one import batch on the worker and return its summary."""
    current_app.logger.info(
        "Importer task received %s rows",
        len(rows),
        extra={
            "importer_kind": kind,
            "importer_task_id": self.request.id,
            "importer_season_id": season_id,
        },
    )
    result = execute_import(kind, list(rows), season_id, options, triggered_by=triggered_by)
    return result.to_summary()


@shared_task(name=AUTO_LINK_TASK_NAME, bind=True)
def auto_link_task(self, *, season_id: int | None = None) -> dict[str, int]:
    """Sweep the unmatched queue; scheduled by beat when an interval is configured."""
    summary = auto_link_unmatched(season_id)
    return summary.to_dict()
