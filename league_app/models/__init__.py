# league_app/models/__init__.py
"""
Database models package
"""

from .base import BaseModel, db
from .board_member import BoardMember
from .household import EXEMPT_STATUS_PREFIX, Household, HouseholdSeasonWorkbond
from .importer import ImportKind, ImportRun, ImportRunStatus
from .person import Person, PersonType, Player, Volunteer, VolunteerRole
from .season import DEFAULT_DIVISION_SHIFTS, Division, Season
from .workbond import UnmatchedRecord, WorkbondShift

__all__ = [
    "db",
    "BaseModel",
    "Season",
    "Division",
    "DEFAULT_DIVISION_SHIFTS",
    "Household",
    "HouseholdSeasonWorkbond",
    "EXEMPT_STATUS_PREFIX",
    "BoardMember",
    # Person models
    "Person",
    "Player",
    "Volunteer",
    "PersonType",
    "VolunteerRole",
    # Workbond
    "WorkbondShift",
    "UnmatchedRecord",
    # Importer
    "ImportRun",
    "ImportRunStatus",
    "ImportKind",
]
