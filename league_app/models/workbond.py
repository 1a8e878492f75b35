# league_app/models/workbond.py
"""
Workbond shift credit and the queue of shift records awaiting a household.
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import BaseModel, db


class WorkbondShift(BaseModel):
    """A worked shift credited to a household."""

    __tablename__ = "workbond_shifts"

    id: Mapped[int] = mapped_column(primary_key=True)
    household_id: Mapped[int] = mapped_column(ForeignKey("households.id"), nullable=False, index=True)
    volunteer_id: Mapped[int | None] = mapped_column(ForeignKey("volunteers.id"), nullable=True, index=True)
    season_id: Mapped[int] = mapped_column(ForeignKey("seasons.id"), nullable=False, index=True)
    shift_date: Mapped[date] = mapped_column(db.Date, nullable=False)
    shift_type: Mapped[str] = mapped_column(db.String(100), nullable=False)
    hours: Mapped[float] = mapped_column(db.Float, nullable=False, default=2.5)
    description: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    # One credited shift per queued record, so re-running the link sweep cannot double count.
    unmatched_record_id: Mapped[int | None] = mapped_column(
        ForeignKey("workbond_imports.id"),
        nullable=True,
        unique=True,
    )

    household = relationship("Household")
    volunteer = relationship("Volunteer", back_populates="shifts")
    unmatched_record = relationship("UnmatchedRecord", back_populates="shift")


class UnmatchedRecord(BaseModel):
    """Imported shift row that could not be resolved to a household."""

    __tablename__ = "workbond_imports"

    id: Mapped[int] = mapped_column(primary_key=True)
    season_id: Mapped[int] = mapped_column(ForeignKey("seasons.id"), nullable=False, index=True)
    import_run_id: Mapped[int | None] = mapped_column(ForeignKey("import_runs.id"), nullable=True, index=True)
    volunteer_name: Mapped[str | None] = mapped_column(db.String(200), nullable=True)
    email: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(db.String(40), nullable=True)
    player_name: Mapped[str | None] = mapped_column(db.String(200), nullable=True)
    shift_date: Mapped[date] = mapped_column(db.Date, nullable=False)
    shift_type: Mapped[str] = mapped_column(db.String(100), nullable=False)
    hours: Mapped[float] = mapped_column(db.Float, nullable=False, default=2.5)
    description: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    raw_json: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)

    is_matched: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False, index=True)
    matched_household_id: Mapped[int | None] = mapped_column(ForeignKey("households.id"), nullable=True)
    matched_volunteer_id: Mapped[int | None] = mapped_column(ForeignKey("volunteers.id"), nullable=True)
    match_method: Mapped[str | None] = mapped_column(db.String(32), nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True), nullable=True)

    matched_household = relationship("Household", foreign_keys=[matched_household_id])
    shift = relationship("WorkbondShift", back_populates="unmatched_record", uselist=False)

    __table_args__ = (Index("idx_workbond_imports_season_matched", "season_id", "is_matched"),)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "season_id": self.season_id,
            "volunteer_name": self.volunteer_name,
            "email": self.email,
            "phone": self.phone,
            "player_name": self.player_name,
            "shift_date": self.shift_date.isoformat() if self.shift_date else None,
            "shift_type": self.shift_type,
            "hours": self.hours,
            "description": self.description,
            "is_matched": self.is_matched,
            "matched_household_id": self.matched_household_id,
            "matched_volunteer_id": self.matched_volunteer_id,
            "match_method": self.match_method,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
        }
