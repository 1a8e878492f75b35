"""
Importer blueprint: JSON endpoints for batch imports, the unmatched shift
queue, workbond exemptions and run lookups.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Any

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from league_app.importer.errors import (
    BatchInputError,
    HouseholdNotFound,
    UnmatchedRecordAlreadyLinked,
    UnmatchedRecordNotFound,
)
from league_app.importer.pipeline import (
    MAX_RECORD_ID,
    UnmatchedQueueService,
    auto_link_unmatched,
    coerce_record_id,
    execute_import,
    list_unmatched,
)
from league_app.models import ImportRun, Season, db
from league_app.services.workbond_exemptions import apply_season_exemptions
from league_app.utils.importer import get_import_kinds, is_import_kind_enabled, is_importer_enabled

importer_blueprint = Blueprint("importer", __name__, url_prefix="/importer")


def _json_error(message: str, status: HTTPStatus):
    return jsonify({"error": message}), status


def _ensure_importer_enabled_api():
    if not is_importer_enabled(current_app):
        return _json_error("Importer is disabled.", HTTPStatus.NOT_FOUND)
    return None


def _json_body() -> dict[str, Any]:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise BatchInputError("Request body must be a JSON object.")
    return payload


def _optional_int(value: Any, name: str) -> int | None:
    if value in (None, ""):
        return None
    return coerce_record_id(value, name)


@importer_blueprint.get("/health")
def importer_healthcheck():
    """Lightweight health endpoint proving the importer blueprint mounted correctly."""
    importer_state = current_app.extensions.get("importer", {})
    return (
        jsonify(
            {
                "status": "ok",
                "enabled": importer_state.get("enabled", False),
                "kinds": list(get_import_kinds(current_app)),
                "worker_enabled": importer_state.get("worker_enabled", False),
            }
        ),
        HTTPStatus.OK,
    )


@importer_blueprint.post("/<any(players, volunteers, shifts):kind>")
def importer_import_rows(kind: str):
    """
    Reconcile a batch of rows for one import kind.

    Always answers 200 with the batch summary once the request is well
    formed, even when every row failed; row problems are in ``warnings``.
    """
    if not is_import_kind_enabled(kind, current_app):
        return _json_error(f"Import kind '{kind}' is disabled.", HTTPStatus.NOT_FOUND)

    try:
        payload = _json_body()
        season_id = payload.get("season_id", payload.get("seasonId"))
        if season_id is None:
            raise BatchInputError("season_id is required.")
        result = execute_import(
            kind,
            payload.get("rows"),
            season_id,
            payload.get("options"),
            triggered_by="api",
        )
    except BatchInputError as exc:
        current_app.logger.info(
            "Rejected %s import request: %s",
            kind,
            exc,
            extra={"importer_kind": kind},
        )
        return _json_error(str(exc), HTTPStatus.BAD_REQUEST)

    return jsonify(result.to_summary()), HTTPStatus.OK


@importer_blueprint.get("/unmatched")
def importer_unmatched_list():
    enabled_response = _ensure_importer_enabled_api()
    if enabled_response:
        return enabled_response

    try:
        season_id = _optional_int(request.args.get("season_id"), "season_id")
    except BatchInputError as exc:
        return _json_error(str(exc), HTTPStatus.BAD_REQUEST)
    include_matched = request.args.get("include_matched", "").lower() in {"1", "true", "yes"}
    records = list_unmatched(season_id, include_matched=include_matched)
    return jsonify({"records": [record.to_dict() for record in records], "total": len(records)}), HTTPStatus.OK


@importer_blueprint.post("/unmatched/<int:record_id>/link")
def importer_unmatched_link(record_id: int):
    enabled_response = _ensure_importer_enabled_api()
    if enabled_response:
        return enabled_response

    try:
        payload = _json_body()
        household_id = _optional_int(payload.get("household_id"), "household_id")
        volunteer_id = _optional_int(payload.get("volunteer_id"), "volunteer_id")
        if household_id is None:
            raise BatchInputError("household_id is required.")
    except BatchInputError as exc:
        return _json_error(str(exc), HTTPStatus.BAD_REQUEST)
    if record_id > MAX_RECORD_ID:
        return _json_error(f"Unmatched record {record_id} not found.", HTTPStatus.NOT_FOUND)

    service = UnmatchedQueueService()
    try:
        shift = service.link(record_id, household_id, volunteer_id)
        db.session.commit()
    except (UnmatchedRecordNotFound, HouseholdNotFound) as exc:
        db.session.rollback()
        return _json_error(str(exc), HTTPStatus.NOT_FOUND)
    except UnmatchedRecordAlreadyLinked as exc:
        db.session.rollback()
        return _json_error(str(exc), HTTPStatus.CONFLICT)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception(
            "Linking unmatched record failed",
            extra={"importer_unmatched_id": record_id, "importer_household_id": household_id},
        )
        return _json_error("Failed to link unmatched record.", HTTPStatus.INTERNAL_SERVER_ERROR)

    return (
        jsonify(
            {
                "record_id": record_id,
                "household_id": shift.household_id,
                "volunteer_id": shift.volunteer_id,
                "shift_id": shift.id,
            }
        ),
        HTTPStatus.OK,
    )


@importer_blueprint.post("/unmatched/auto-link")
def importer_unmatched_auto_link():
    enabled_response = _ensure_importer_enabled_api()
    if enabled_response:
        return enabled_response

    try:
        season_id = _optional_int(_json_body().get("season_id"), "season_id")
    except BatchInputError as exc:
        return _json_error(str(exc), HTTPStatus.BAD_REQUEST)
    summary = auto_link_unmatched(season_id)
    return jsonify(summary.to_dict()), HTTPStatus.OK


@importer_blueprint.post("/exemptions")
def importer_apply_exemptions():
    enabled_response = _ensure_importer_enabled_api()
    if enabled_response:
        return enabled_response

    try:
        season_id = _optional_int(_json_body().get("season_id"), "season_id")
        if season_id is None:
            raise BatchInputError("season_id is required.")
    except BatchInputError as exc:
        return _json_error(str(exc), HTTPStatus.BAD_REQUEST)
    if db.session.get(Season, season_id) is None:
        return _json_error(f"Season {season_id} not found.", HTTPStatus.NOT_FOUND)

    summary = apply_season_exemptions(season_id)
    return jsonify(summary.to_dict()), HTTPStatus.OK


@importer_blueprint.get("/runs/<int:run_id>")
def importer_run_detail(run_id: int):
    enabled_response = _ensure_importer_enabled_api()
    if enabled_response:
        return enabled_response

    run = db.session.get(ImportRun, run_id) if run_id <= MAX_RECORD_ID else None
    if run is None:
        return _json_error(f"Import run {run_id} not found.", HTTPStatus.NOT_FOUND)
    return jsonify(run.to_dict()), HTTPStatus.OK
