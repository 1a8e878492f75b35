# league_app/utils/logging_config.py
"""
Logging setup for the Flask app.

Handlers and format come from the monitoring config (``LOG_LEVEL``,
``LOG_FORMAT``, ``LOG_DIR``...). JSON lines carry every ``importer_*`` field
passed through ``extra=`` so import runs can be traced in aggregated logs.
"""

import json
import logging
import os
from logging.handlers import RotatingFileHandler

EXTRA_PREFIX = "importer_"
TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class JSONFormatter(logging.Formatter):
    """Emit each log record as a single JSON line."""

    def __init__(self, app_name=None, app_version=None):
        super().__init__()
        self.app_name = app_name
        self.app_version = app_version

    def format(self, record):
        entry = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if self.app_name:
            entry["app"] = self.app_name
        if self.app_version:
            entry["version"] = self.app_version
        for key, value in record.__dict__.items():
            if key.startswith(EXTRA_PREFIX):
                entry[key] = value
        if record.exc_info and record.exc_info[1]:
            entry["error"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
            }
        return json.dumps(entry, ensure_ascii=False, default=str)


def _build_formatter(config):
    if str(config.get("LOG_FORMAT", "json")).lower() == "json":
        return JSONFormatter(config.get("APP_NAME"), config.get("APP_VERSION"))
    return logging.Formatter(TEXT_FORMAT)


def setup_logging(app):
    """Attach console and rotating file handlers to ``app.logger``."""
    config = app.config
    level = logging.getLevelName(str(config.get("LOG_LEVEL", "INFO")).upper())
    if not isinstance(level, int):
        level = logging.INFO

    formatter = _build_formatter(config)
    app.logger.setLevel(level)

    # Re-running setup (tests, reloader) must not stack handlers.
    for handler in list(app.logger.handlers):
        if getattr(handler, "_league_handler", False):
            app.logger.removeHandler(handler)
            handler.close()

    handlers = []
    if config.get("ENABLE_CONSOLE_LOGGING", True):
        handlers.append(logging.StreamHandler())
    if config.get("ENABLE_FILE_LOGGING", False):
        log_dir = config.get("LOG_DIR", "logs")
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                os.path.join(log_dir, "league_admin.log"),
                maxBytes=int(config.get("LOG_FILE_MAX_BYTES", 10485760)),
                backupCount=int(config.get("LOG_FILE_BACKUP_COUNT", 10)),
                encoding="utf-8",
            )
        )

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler._league_handler = True
        app.logger.addHandler(handler)

    logging.getLogger("sqlalchemy.engine").setLevel(logging.DEBUG if config.get("SQLALCHEMY_ECHO") else logging.WARNING)
    return app.logger
