# league_app/models/person/__init__.py
"""
Person models package
"""

from .base import Person
from .enums import PersonType, VolunteerRole
from .player import Player
from .volunteer import Volunteer

__all__ = ["Person", "PersonType", "Player", "Volunteer", "VolunteerRole"]
