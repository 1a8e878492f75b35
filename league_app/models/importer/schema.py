"""
SQLAlchemy model recording each import batch.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Enum, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from ..base import BaseModel, db


class ImportRunStatus(str, enum.Enum):
    """Lifecycle states for an import run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    PARTIALLY_FAILED = "partially_failed"
    FAILED = "failed"


class ImportKind(str, enum.Enum):
    PLAYERS = "players"
    VOLUNTEERS = "volunteers"
    SHIFTS = "shifts"


class ImportRun(BaseModel):
    """Metadata describing a single import batch."""

    __tablename__ = "import_runs"

    id: Mapped[int] = mapped_column(primary_key=True)
    kind: Mapped[ImportKind] = mapped_column(
        Enum(ImportKind, name="import_kind_enum"),
        nullable=False,
        index=True,
    )
    season_id: Mapped[int | None] = mapped_column(ForeignKey("seasons.id"), nullable=True, index=True)
    status: Mapped[ImportRunStatus] = mapped_column(
        Enum(ImportRunStatus, name="import_run_status_enum"),
        nullable=False,
        default=ImportRunStatus.PENDING,
        index=True,
    )
    started_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True))
    finished_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True))
    row_count: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    counts_json: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
    warnings_json: Mapped[list | None] = mapped_column(db.JSON, nullable=True)
    options_json: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
    error_summary: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    triggered_by: Mapped[str | None] = mapped_column(db.String(50), nullable=True)
    notes: Mapped[str | None] = mapped_column(db.Text, nullable=True)

    __table_args__ = (Index("idx_import_runs_kind_status", "kind", "status"),)

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return max((self.finished_at - self.started_at).total_seconds(), 0.0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "run_id": self.id,
            "kind": self.kind.value,
            "season_id": self.season_id,
            "status": self.status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration_seconds,
            "row_count": self.row_count,
            "counts_json": self.counts_json or {},
            "warnings": list(self.warnings_json or ()),
            "options": self.options_json or {},
            "error_summary": self.error_summary,
            "triggered_by": self.triggered_by,
            "notes": self.notes,
        }
