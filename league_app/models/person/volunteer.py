# league_app/models/person/volunteer.py
"""
Volunteer model.
"""

from sqlalchemy import Enum

from ..base import db
from .base import Person
from .enums import PersonType, VolunteerRole


class Volunteer(Person):
    """Season volunteer, usually a guardian of a registered player"""

    __tablename__ = "volunteers"
    __mapper_args__ = {
        "polymorphic_identity": PersonType.VOLUNTEER,
    }

    id = db.Column(db.Integer, db.ForeignKey("people.id"), primary_key=True)
    # Assigned by league staff; imports only record interest.
    role = db.Column(Enum(VolunteerRole, name="volunteer_role_enum"), nullable=True, index=True)
    interested_roles = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True, index=True)
    phone = db.Column(db.String(40), nullable=True)
    can_pickup = db.Column(db.Boolean, nullable=False, default=False)
    shifts_required = db.Column(db.Integer, nullable=True)

    shifts = db.relationship("WorkbondShift", back_populates="volunteer")

    @property
    def is_workbond_exempt(self) -> bool:
        return self.role is not None and self.role.is_workbond_exempt
