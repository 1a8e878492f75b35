# league_app/models/household.py
"""
Household ("family") model and its per-season workbond record.

A household's guardian email and phone columns are the keys the import
matcher resolves against, so they are indexed and stored in the form the
importer wrote them (emails lower-cased, phones as provided).
"""

from .base import BaseModel, db

EXEMPT_STATUS_PREFIX = "Exempt - "


class Household(BaseModel):
    __tablename__ = "households"

    id = db.Column(db.Integer, primary_key=True)
    household_code = db.Column(db.String(80), nullable=False, unique=True)

    # Primary guardian
    primary_contact_name = db.Column(db.String(200), nullable=True)
    primary_contact_email = db.Column(db.String(255), nullable=True, index=True)
    primary_contact_phone = db.Column(db.String(40), nullable=True)

    # Second guardian
    parent2_first_name = db.Column(db.String(100), nullable=True)
    parent2_last_name = db.Column(db.String(100), nullable=True)
    parent2_email = db.Column(db.String(255), nullable=True, index=True)
    parent2_phone = db.Column(db.String(40), nullable=True)

    # Postal address
    address_line_1 = db.Column(db.String(255), nullable=True)
    address_line_2 = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(100), nullable=True)
    state = db.Column(db.String(50), nullable=True)
    zip_code = db.Column(db.String(20), nullable=True)

    # Workbond compliance, owned by the import feed
    workbond_status = db.Column(db.String(255), nullable=True)
    workbond_received = db.Column(db.Boolean, nullable=False, default=False)

    members = db.relationship("Person", back_populates="household", order_by="Person.id")
    season_workbonds = db.relationship(
        "HouseholdSeasonWorkbond",
        back_populates="household",
        cascade="all, delete-orphan",
    )

    @property
    def guardian_emails(self) -> tuple[str, ...]:
        return tuple(value.strip().lower() for value in (self.primary_contact_email, self.parent2_email) if value)

    @property
    def guardian_phones(self) -> tuple[str, ...]:
        return tuple(value for value in (self.primary_contact_phone, self.parent2_phone) if value)

    @property
    def is_marked_exempt(self) -> bool:
        return (self.workbond_status or "").startswith(EXEMPT_STATUS_PREFIX)

    def players_for_season(self, season_id):
        from .person import Player

        return [member for member in self.members if isinstance(member, Player) and member.season_id == season_id]

    def volunteers_for_season(self, season_id):
        from .person import Volunteer

        return [
            member for member in self.members if isinstance(member, Volunteer) and member.season_id == season_id
        ]

    def __repr__(self):
        return f"<Household {self.household_code}>"


class HouseholdSeasonWorkbond(BaseModel):
    """Workbond compliance for one household in one season."""

    __tablename__ = "household_season_workbonds"
    __table_args__ = (
        db.UniqueConstraint("household_id", "season_id", name="uq_household_season_workbond"),
    )

    id = db.Column(db.Integer, primary_key=True)
    household_id = db.Column(db.Integer, db.ForeignKey("households.id"), nullable=False, index=True)
    season_id = db.Column(db.Integer, db.ForeignKey("seasons.id"), nullable=False, index=True)
    received = db.Column(db.Boolean, nullable=False, default=False)
    notes = db.Column(db.String(255), nullable=False, default="")

    household = db.relationship("Household", back_populates="season_workbonds")

    @classmethod
    def upsert(cls, *, household_id: int, season_id: int, received: bool, notes: str | None):
        record = cls.query.filter_by(household_id=household_id, season_id=season_id).one_or_none()
        if record is None:
            record = cls(household_id=household_id, season_id=season_id)
            db.session.add(record)
        record.received = bool(received)
        record.notes = (notes or "").strip()
        return record
