# league_app/models/person/base.py
"""
Base Person model shared by players and volunteers.
Supports inheritance for sub-classes via person_type discriminator.
"""

from sqlalchemy import Enum, Index

from ..base import BaseModel, db
from .enums import PersonType


class Person(BaseModel):
    """
    A season-scoped person tied, usually, to a household.

    ``household_id`` is the household link. ``household_link_method`` records
    the evidence that produced it so later imports can tell whether new
    evidence is strong enough to replace it.
    """

    __tablename__ = "people"
    __mapper_args__ = {
        "polymorphic_identity": PersonType.PERSON,
        "polymorphic_on": "person_type",
    }

    id = db.Column(db.Integer, primary_key=True)
    person_type = db.Column(
        Enum(PersonType, name="person_type_enum"),
        nullable=False,
        default=PersonType.PERSON,
        index=True,
    )
    season_id = db.Column(db.Integer, db.ForeignKey("seasons.id"), nullable=False, index=True)
    first_name = db.Column(db.String(100), nullable=False, default="")
    last_name = db.Column(db.String(100), nullable=False, default="")
    birth_date = db.Column(db.String(10), nullable=True)  # YYYY-MM-DD

    household_id = db.Column(db.Integer, db.ForeignKey("households.id"), nullable=True, index=True)
    household_link_method = db.Column(db.String(32), nullable=True)

    household = db.relationship("Household", back_populates="members")
    season = db.relationship("Season")

    __table_args__ = (
        Index("idx_people_season_name", "season_id", "last_name", "first_name"),
    )

    @property
    def full_name(self):
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def __repr__(self):
        return f"<{type(self).__name__} {self.full_name!r} season={self.season_id}>"
