"""
Queue of shift records that could not be resolved to a household.

Records are never deleted. Linking, manually or through the auto-link sweep,
credits exactly one ``WorkbondShift`` per record (``unmatched_record_id`` is
unique on shifts) and marks the record matched.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from typing import Any, Mapping

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config.monitoring import ImporterMonitoring
from league_app.importer.errors import (
    HouseholdNotFound,
    UnmatchedRecordAlreadyLinked,
    UnmatchedRecordNotFound,
)
from league_app.models import Household, UnmatchedRecord, Volunteer, VolunteerRole, WorkbondShift, db

from .matching import HouseholdMatcher, HouseholdStrategy, LinkMethod, MatchPolicy
from .normalize import ContactQuery, ShiftRow, split_full_name

AUTO_LINK_STRATEGIES = (HouseholdStrategy.EMAIL, HouseholdStrategy.PHONE)


def _jsonable(raw: Mapping[str, Any]) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for key, value in raw.items():
        if value is None or isinstance(value, (str, int, float, bool)):
            payload[str(key)] = value
        elif isinstance(value, (date, datetime)):
            payload[str(key)] = value.isoformat()
        else:
            payload[str(key)] = str(value)
    return payload


def find_or_create_shift_volunteer(
    session: Session,
    household: Household,
    season_id: int,
    *,
    name: str | None,
    email: str | None = None,
    phone: str | None = None,
    link_method: str | None = None,
) -> tuple[Volunteer, bool]:
    """Volunteer of ``household`` who worked a shift; created as a Parent when unknown."""
    first, last = split_full_name(name)
    query = session.query(Volunteer).filter(
        Volunteer.season_id == season_id,
        Volunteer.household_id == household.id,
    )
    if email:
        volunteer = query.filter(func.lower(Volunteer.email) == email.lower()).order_by(Volunteer.id).first()
        if volunteer is not None:
            return volunteer, False
    if first:
        volunteer = (
            query.filter(func.lower(Volunteer.first_name) == first.lower())
            .filter(func.lower(Volunteer.last_name) == last.lower())
            .order_by(Volunteer.id)
            .first()
        )
        if volunteer is not None:
            return volunteer, False

    volunteer = Volunteer(
        season_id=season_id,
        first_name=first,
        last_name=last,
        email=email or None,
        phone=phone or None,
        role=VolunteerRole.PARENT,
        household=household,
        household_link_method=link_method,
    )
    session.add(volunteer)
    session.flush()
    return volunteer, True


@dataclass
class AutoLinkSummary:
    processed: int = 0
    linked: int = 0
    still_unmatched: int = 0
    errors: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class UnmatchedQueueService:
    """Operations on the unmatched shift queue."""

    def __init__(self, session: Session | None = None):
        self.session = session or db.session

    def queue(
        self,
        row: ShiftRow,
        season_id: int,
        *,
        import_run_id: int | None = None,
    ) -> tuple[UnmatchedRecord, bool]:
        """
        Persist ``row`` for review.

        A record with the same season, volunteer name, date and shift type is
        reused, so re-importing a sheet does not grow the queue.
        """
        existing = (
            self.session.query(UnmatchedRecord)
            .filter(
                UnmatchedRecord.season_id == season_id,
                func.lower(UnmatchedRecord.volunteer_name) == row.volunteer_name.lower(),
                UnmatchedRecord.shift_date == row.shift_date,
                UnmatchedRecord.shift_type == row.shift_type,
            )
            .order_by(UnmatchedRecord.id)
            .first()
        )
        if existing is not None:
            return existing, False

        record = UnmatchedRecord(
            season_id=season_id,
            import_run_id=import_run_id,
            volunteer_name=row.volunteer_name,
            email=row.email or None,
            phone=row.phone or None,
            player_name=row.player_name or None,
            shift_date=row.shift_date,
            shift_type=row.shift_type,
            hours=row.hours,
            description=row.description or None,
            raw_json=_jsonable(row.raw),
            is_matched=False,
        )
        self.session.add(record)
        self.session.flush()
        return record, True

    def records(self, season_id: int | None = None, *, include_matched: bool = False) -> list[UnmatchedRecord]:
        query = self.session.query(UnmatchedRecord)
        if season_id is not None:
            query = query.filter(UnmatchedRecord.season_id == season_id)
        if not include_matched:
            query = query.filter(UnmatchedRecord.is_matched.is_(False))
        return query.order_by(UnmatchedRecord.id).all()

    def link(
        self,
        record_id: int,
        household_id: int,
        volunteer_id: int | None = None,
        *,
        method: str = LinkMethod.MANUAL.value,
    ) -> WorkbondShift:
        """
        Credit the queued shift to ``household_id`` and mark the record matched.

        Both writes happen in one savepoint. The caller owns the commit.

        Raises:
            UnmatchedRecordNotFound: If the record does not exist
            UnmatchedRecordAlreadyLinked: If the record was linked before
            HouseholdNotFound: If the household does not exist
        """
        record = self.session.get(UnmatchedRecord, record_id)
        if record is None:
            raise UnmatchedRecordNotFound(record_id)
        if record.is_matched:
            raise UnmatchedRecordAlreadyLinked(record.id, record.matched_household_id)
        household = self.session.get(Household, household_id)
        if household is None:
            raise HouseholdNotFound(household_id)

        with self.session.begin_nested():
            volunteer = self.session.get(Volunteer, volunteer_id) if volunteer_id is not None else None
            if volunteer is None:
                volunteer, _ = find_or_create_shift_volunteer(
                    self.session,
                    household,
                    record.season_id,
                    name=record.volunteer_name,
                    email=record.email,
                    phone=record.phone,
                    link_method=method,
                )
            shift = WorkbondShift(
                household_id=household.id,
                volunteer_id=volunteer.id,
                season_id=record.season_id,
                shift_date=record.shift_date,
                shift_type=record.shift_type,
                hours=record.hours,
                description=record.description,
                unmatched_record_id=record.id,
            )
            self.session.add(shift)
            record.is_matched = True
            record.matched_household_id = household.id
            record.matched_volunteer_id = volunteer.id
            record.match_method = method
            record.processed_at = datetime.now(timezone.utc)
            self.session.flush()

        current_app.logger.info(
            "Linked unmatched record %s to household %s (%s)",
            record.id,
            household.id,
            method,
            extra={"importer_unmatched_id": record.id, "importer_household_id": household.id},
        )
        return shift

    def auto_link(self, season_id: int | None = None) -> AutoLinkSummary:
        """
        Re-run every queued record through the matcher (email, then phone).

        Each successful link is committed on its own; failures stay queued.
        Already matched records are not revisited, so the sweep is idempotent.
        """
        summary = AutoLinkSummary()
        min_digits = int(current_app.config.get("IMPORTER_MIN_PHONE_DIGITS", 7))
        policy = MatchPolicy(household_strategies=AUTO_LINK_STRATEGIES, min_phone_digits=min_digits)
        matcher = HouseholdMatcher(self.session, policy)

        for record in self.records(season_id):
            summary.processed += 1
            contact = ContactQuery.build(email=record.email, phone=record.phone)
            household = matcher.find_household(contact) if not contact.is_empty else None
            if household is None:
                summary.still_unmatched += 1
                ImporterMonitoring.record_auto_link(outcome="unmatched")
                continue
            try:
                self.link(record.id, household.id, method=LinkMethod.AUTO.value)
                self.session.commit()
            except SQLAlchemyError as exc:
                self.session.rollback()
                summary.errors += 1
                ImporterMonitoring.record_auto_link(outcome="error")
                current_app.logger.warning(
                    "Failed to auto-link unmatched record %s: %s",
                    record.id,
                    exc,
                    exc_info=True,
                )
                continue
            summary.linked += 1
            ImporterMonitoring.record_auto_link(outcome="linked")

        current_app.logger.info(
            "Auto-link sweep processed %s records: %s linked, %s still unmatched, %s errors",
            summary.processed,
            summary.linked,
            summary.still_unmatched,
            summary.errors,
            extra={"importer_auto_link": summary.to_dict(), "importer_season_id": season_id},
        )
        return summary


def queue_unmatched(
    row: ShiftRow,
    season_id: int,
    *,
    import_run_id: int | None = None,
    session: Session | None = None,
) -> tuple[UnmatchedRecord, bool]:
    return UnmatchedQueueService(session).queue(row, season_id, import_run_id=import_run_id)


def list_unmatched(season_id: int | None = None, *, include_matched: bool = False) -> list[UnmatchedRecord]:
    return UnmatchedQueueService().records(season_id, include_matched=include_matched)


def link_unmatched_record(record_id: int, household_id: int, volunteer_id: int | None = None) -> WorkbondShift:
    return UnmatchedQueueService().link(record_id, household_id, volunteer_id)


def auto_link_unmatched(season_id: int | None = None) -> AutoLinkSummary:
    return UnmatchedQueueService().auto_link(season_id)


__all__ = [
    "AutoLinkSummary",
    "UnmatchedQueueService",
    "auto_link_unmatched",
    "find_or_create_shift_volunteer",
    "link_unmatched_record",
    "list_unmatched",
    "queue_unmatched",
]
