"""
Import reconciliation feature package.

Mounts the importer blueprint and CLI group according to ``IMPORTER_ENABLED``
and keeps the Celery app on the ``importer`` extension state.
"""

from __future__ import annotations

from flask import Flask

from league_app.utils.importer import get_import_kinds, is_importer_enabled

from .celery_app import ensure_celery_app, get_celery_app
from .cli import get_disabled_importer_group, importer_cli
from .views import importer_blueprint

IMPORTER_EXTENSION_KEY = "importer"

__all__ = [
    "IMPORTER_EXTENSION_KEY",
    "get_celery_app",
    "init_importer",
]


def _ensure_extension_state(app: Flask) -> dict:
    return app.extensions.setdefault(
        IMPORTER_EXTENSION_KEY,
        {
            "enabled": False,
            "kinds": (),
            "worker_enabled": False,
            "celery_app": None,
        },
    )


def _set_cli(app: Flask, enabled: bool) -> None:
    """Register the appropriate CLI group based on flag state."""
    command_name = importer_cli.name
    if command_name in app.cli.commands:
        app.cli.commands.pop(command_name)

    if enabled:
        app.cli.add_command(importer_cli)
    else:
        app.cli.add_command(get_disabled_importer_group())


def init_importer(app: Flask) -> None:
    """
    Conditionally mount the importer blueprint and CLI based on configuration.

    State lives in ``app.extensions['importer']`` for the CLI and views.
    """
    enabled = is_importer_enabled(app)
    kinds = get_import_kinds(app)
    state = _ensure_extension_state(app)
    state.update(
        {
            "enabled": enabled,
            "kinds": kinds,
            "worker_enabled": bool(app.config.get("IMPORTER_WORKER_ENABLED", False)),
        }
    )

    if not enabled:
        _set_cli(app, enabled=False)
        app.logger.info("Importer disabled via IMPORTER_ENABLED flag; skipping registration.")
        return

    ensure_celery_app(app, state)

    if importer_blueprint.name not in app.blueprints and not getattr(app, "_got_first_request", False):
        app.register_blueprint(importer_blueprint)
    elif importer_blueprint.name not in app.blueprints:
        app.logger.warning(
            "Importer blueprint registration skipped because the app has already handled its first request."
        )
    _set_cli(app, enabled=True)

    app.logger.info("Importer enabled for kinds: %s", ", ".join(kinds) or "none")
