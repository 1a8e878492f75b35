import json
import logging

from flask import Flask
from prometheus_client import REGISTRY

from config.monitoring import ImporterMonitoring
from league_app.utils.logging_config import JSONFormatter, setup_logging


def _sample(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


def test_json_formatter_keeps_importer_fields():
    formatter = JSONFormatter("League Admin", "0.1.0")
    record = logging.LogRecord("league", logging.INFO, __file__, 1, "Import batch finished", None, None)
    record.importer_run_id = 7
    record.unrelated = "dropped"

    entry = json.loads(formatter.format(record))

    assert entry["msg"] == "Import batch finished"
    assert entry["level"] == "INFO"
    assert entry["app"] == "League Admin"
    assert entry["importer_run_id"] == 7
    assert "unrelated" not in entry


def test_setup_logging_does_not_stack_handlers(tmp_path):
    probe = Flask("logging_probe")
    probe.config.update(
        LOG_LEVEL="debug",
        LOG_FORMAT="json",
        LOG_DIR=str(tmp_path / "logs"),
        ENABLE_CONSOLE_LOGGING=True,
        ENABLE_FILE_LOGGING=True,
    )

    setup_logging(probe)
    logger = setup_logging(probe)

    league_handlers = [handler for handler in logger.handlers if getattr(handler, "_league_handler", False)]
    assert len(league_handlers) == 2
    assert logger.level == logging.DEBUG
    assert (tmp_path / "logs" / "league_admin.log").exists()
    assert all(isinstance(handler.formatter, JSONFormatter) for handler in league_handlers)

    for handler in league_handlers:
        logger.removeHandler(handler)
        handler.close()


def test_unknown_log_level_falls_back_to_info():
    probe = Flask("logging_probe_level")
    probe.config.update(LOG_LEVEL="chatty", ENABLE_CONSOLE_LOGGING=False, ENABLE_FILE_LOGGING=False)

    assert setup_logging(probe).level == logging.INFO


def test_importer_monitoring_counters():
    rows_before = _sample("importer_row_outcomes_total", kind="players", outcome="created")
    ambiguous_before = _sample("importer_match_ambiguous_total", entity="household", strategy="email")
    sweep_before = _sample("importer_auto_link_outcomes_total", outcome="linked")

    ImporterMonitoring.record_row(kind="players", outcome="created")
    ImporterMonitoring.record_match(entity="household", strategy="email", ambiguous=True)
    ImporterMonitoring.record_auto_link(outcome="linked", count=3)
    ImporterMonitoring.record_auto_link(outcome="linked", count=0)

    assert _sample("importer_row_outcomes_total", kind="players", outcome="created") == rows_before + 1
    assert _sample("importer_match_ambiguous_total", entity="household", strategy="email") == ambiguous_before + 1
    assert _sample("importer_auto_link_outcomes_total", outcome="linked") == sweep_before + 3
