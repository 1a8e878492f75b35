from __future__ import annotations

import pytest

from league_app.importer.pipeline import execute_import


def _player_row(first_name: str, last_name: str, **values) -> dict:
    row = {
        "Player First Name": first_name,
        "Player Last Name": last_name,
    }
    row.update(values)
    return row


def _family_row(first_name: str, family: str, *, email: str | None = None, phone: str = "", **values) -> dict:
    row = _player_row(
        first_name,
        family,
        **{
            "Parent1 FirstName": "Pat",
            "Parent1 LastName": family,
            "Parent1 Email": email if email is not None else f"{family.lower()}@example.com",
            "Parent1 Phone1": phone,
        },
    )
    row.update(values)
    return row


@pytest.fixture
def player_row():
    """Registration export row using the export's column names."""
    return _player_row


@pytest.fixture
def family_row():
    """Registration row with a primary guardian named after the family."""
    return _family_row


@pytest.fixture
def run_import(season):
    """Run an import batch against the test season."""

    def _run(kind, rows, options=None, **kwargs):
        season_id = kwargs.pop("season_id", season.id)
        return execute_import(kind, rows, season_id, options, **kwargs)

    return _run
