"""
Utility helpers for importer feature flag checks.
"""

from __future__ import annotations

from typing import Iterable, Tuple

from flask import current_app

from league_app.models import ImportKind


def _get_config(app=None):
    if app is not None:
        return app.config
    return current_app.config


def is_importer_enabled(app=None) -> bool:
    """Return True when the importer feature flag is enabled."""
    config = _get_config(app)
    return bool(config.get("IMPORTER_ENABLED", False))


def get_import_kinds(app=None) -> Tuple[str, ...]:
    """Return the import kinds enabled in configuration."""
    config = _get_config(app)
    kinds: Iterable[str] = config.get("IMPORTER_KINDS", ())
    return tuple(str(kind).lower() for kind in kinds)


def is_import_kind_enabled(kind: str | ImportKind, app=None) -> bool:
    """Return True when the importer is on and ``kind`` is one of its enabled kinds."""
    if not is_importer_enabled(app):
        return False
    token = kind.value if isinstance(kind, ImportKind) else str(kind).lower()
    return token in get_import_kinds(app)
