# conftest.py

import os

import pytest

# Set testing environment BEFORE importing app so app.py picks TestingConfig
os.environ["FLASK_ENV"] = "testing"

from app import app as flask_app  # noqa: E402
from league_app.models import BoardMember, Division, Household, Season, db  # noqa: E402


@pytest.fixture(scope="function")
def app():
    """Create and configure a test Flask application with fresh tables"""
    flask_app.config.update(
        {
            "TESTING": True,
            "SQLALCHEMY_ECHO": False,
            "IMPORTER_ENABLED": True,
            "IMPORTER_KINDS": ("players", "volunteers", "shifts"),
            "IMPORTER_WORKER_ENABLED": False,
            "IMPORTER_CHUNK_SIZE": 100,
            "IMPORTER_CHUNK_DELAY_SECONDS": 0.0,
            "IMPORTER_MERGE_PROFILE_PATH": None,
            "ENABLE_FILE_LOGGING": False,
            "ENABLE_CONSOLE_LOGGING": False,
            "LOG_LEVEL": "WARNING",
        }
    )

    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture(autouse=True)
def app_context(app):
    """Automatically provide app context for all tests"""
    with app.app_context():
        yield


@pytest.fixture
def client(app):
    """Create a test client for the Flask application"""
    return app.test_client()


@pytest.fixture
def runner(app):
    """Create a test CLI runner for the Flask application"""
    return app.test_cli_runner()


@pytest.fixture
def season(app):
    """Active season the imports run against"""
    season = Season(name="Spring 2026", is_active=True)
    db.session.add(season)
    db.session.commit()
    return season


@pytest.fixture
def inactive_season(app):
    season = Season(name="Fall 2025", is_active=False)
    db.session.add(season)
    db.session.commit()
    return season


@pytest.fixture
def division_factory(season):
    """Create divisions in the test season"""

    def _factory(name, shifts_required=None, *, season_id=None):
        division = Division(
            season_id=season_id or season.id,
            name=name,
            shifts_required=shifts_required,
        )
        db.session.add(division)
        db.session.commit()
        return division

    return _factory


@pytest.fixture
def household_factory(app):
    """Create households directly, bypassing the importer"""
    counter = {"value": 0}

    def _factory(**values):
        counter["value"] += 1
        values.setdefault("household_code", f"FAM{counter['value']:03d}")
        household = Household(**values)
        db.session.add(household)
        db.session.commit()
        return household

    return _factory


@pytest.fixture
def board_member_factory(app):
    def _factory(**values):
        values.setdefault("name", "Board Member")
        member = BoardMember(**values)
        db.session.add(member)
        db.session.commit()
        return member

    return _factory
