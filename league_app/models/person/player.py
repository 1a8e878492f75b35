# league_app/models/person/player.py
"""
Player model.
"""

from ..base import db
from .base import Person
from .enums import PersonType


class Player(Person):
    """Registered player for one season"""

    __tablename__ = "players"
    __mapper_args__ = {
        "polymorphic_identity": PersonType.PLAYER,
    }

    id = db.Column(db.Integer, db.ForeignKey("people.id"), primary_key=True)
    registration_no = db.Column(db.String(50), nullable=True, index=True)
    division_id = db.Column(db.Integer, db.ForeignKey("divisions.id"), nullable=True, index=True)
    program_title = db.Column(db.String(200), nullable=True)
    gender = db.Column(db.String(20), nullable=True)
    medical_conditions = db.Column(db.Text, nullable=True)

    is_new_player = db.Column(db.Boolean, nullable=False, default=False)
    is_returning = db.Column(db.Boolean, nullable=False, default=False)
    is_travel_player = db.Column(db.Boolean, nullable=False, default=False)
    uniform_shirt_size = db.Column(db.String(20), nullable=True)
    uniform_pants_size = db.Column(db.String(20), nullable=True)
    payment_received = db.Column(db.Boolean, nullable=False, default=False)

    division = db.relationship("Division")

    @property
    def is_challenger(self) -> bool:
        """True when the player's program or division is the Challenger division."""
        if "challenger" in (self.program_title or "").lower():
            return True
        return bool(self.division is not None and self.division.is_challenger)
