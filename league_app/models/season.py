# league_app/models/season.py
"""
Season and Division models.
"""

from .base import BaseModel, db

DEFAULT_DIVISION_SHIFTS = 2


class Season(BaseModel):
    __tablename__ = "seasons"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=False, index=True)

    divisions = db.relationship("Division", back_populates="season", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Season {self.name}>"


class Division(BaseModel):
    __tablename__ = "divisions"
    __table_args__ = (db.UniqueConstraint("season_id", "name", name="uq_divisions_season_name"),)

    id = db.Column(db.Integer, primary_key=True)
    season_id = db.Column(db.Integer, db.ForeignKey("seasons.id"), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    shifts_required = db.Column(db.Integer, nullable=True)

    season = db.relationship("Season", back_populates="divisions")

    @property
    def required_shifts(self) -> int:
        """Shift requirement, falling back to the league default when unset."""
        if self.shifts_required is None:
            return DEFAULT_DIVISION_SHIFTS
        return self.shifts_required

    @property
    def is_challenger(self) -> bool:
        return "challenger" in (self.name or "").lower()

    def __repr__(self):
        return f"<Division {self.name} season={self.season_id}>"
