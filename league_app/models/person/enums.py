# league_app/models/person/enums.py
"""
Enums for person models.
"""

from enum import Enum as PyEnum


class PersonType(PyEnum):
    """Person type discriminator for inheritance"""

    PERSON = "person"
    PLAYER = "player"
    VOLUNTEER = "volunteer"


class VolunteerRole(PyEnum):
    """
    Assigned volunteer roles.

    The set is closed. Imports keep free-text interests in
    ``interested_roles``; the only role they assign is ``PARENT`` on
    volunteers they create for a household.
    """

    PARENT = "Parent"
    MANAGER = "Manager"
    ASSISTANT_COACH = "Assistant Coach"
    TEAM_PARENT = "Team Parent"
    COACH = "Coach"
    UMPIRE = "Umpire"
    BOARD_MEMBER = "Board Member"
    OTHER = "Other"

    @property
    def is_workbond_exempt(self) -> bool:
        """Roles that waive the household's workbond shift requirement."""
        return self in _WORKBOND_EXEMPT_ROLES


_WORKBOND_EXEMPT_ROLES = frozenset(
    {VolunteerRole.MANAGER, VolunteerRole.ASSISTANT_COACH, VolunteerRole.TEAM_PARENT}
)
