"""
Per-row reconciliation for the player, volunteer and shift import kinds.

Each row runs inside its own savepoint. A row either writes all of its person
and household changes or none of them; a failure is turned into a ``Row N:``
message and the next row continues. Store unavailability is escalated as
``ChunkFatalError`` so the batch runner can abandon the chunk.
"""

from __future__ import annotations

import enum
import random
import re
import string
import time
from dataclasses import dataclass, field
from typing import Any, Mapping

from flask import current_app
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError

from config.merge_policy import load_profile
from config.monitoring import ImporterMonitoring
from league_app.importer.errors import ChunkFatalError, RowValidationError, StoreWriteError
from league_app.models import (
    Household,
    HouseholdSeasonWorkbond,
    ImportKind,
    Player,
    Volunteer,
    VolunteerRole,
    WorkbondShift,
)

from .context import BatchContext
from .matching import (
    HouseholdMatcher,
    LinkMethod,
    MatchPolicy,
    MatchResult,
    PersonMatcher,
    link_confidence,
    volunteer_matcher,
)
from .merge import WORKBOND_FIELDS, apply_changes, merge_contact_link, merge_household, merge_person
from .normalize import (
    DEFAULT_SHIFT_HOURS,
    PlayerRow,
    ShiftRow,
    VolunteerRow,
    split_full_name,
)
from .unmatched import find_or_create_shift_volunteer, queue_unmatched

_CODE_BASE_RE = re.compile(r"[^A-Z0-9]+")
_CODE_ALPHABET = string.ascii_lowercase + string.digits


class RowOutcome(str, enum.Enum):
    MATCHED = "matched"
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass
class ImportRow:
    """Result of reconciling one input row."""

    index: int
    outcome: RowOutcome
    message: str | None = None
    person_id: int | None = None
    household_id: int | None = None
    household_created: bool = False
    household_updated: bool = False
    volunteers_created: int = 0
    queued: bool = False
    ambiguous_matches: int = 0
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False)

    @property
    def row_number(self) -> int:
        return self.index + 1

    @property
    def error(self) -> str | None:
        if self.outcome is not RowOutcome.ERROR:
            return None
        return f"Row {self.row_number}: {self.message}"


def _base36(value: int) -> str:
    digits = string.digits + string.ascii_lowercase
    if value == 0:
        return "0"
    encoded = []
    while value:
        value, remainder = divmod(value, 36)
        encoded.append(digits[remainder])
    return "".join(reversed(encoded))


def generate_household_code(family_name: str | None) -> str:
    """Human readable unique code: ``LASTNAME_<base36 millis>_<5 random>``."""
    base = _CODE_BASE_RE.sub("", (family_name or "").upper()) or "FAM"
    stamp = _base36(int(time.time() * 1000))
    suffix = "".join(random.choices(_CODE_ALPHABET, k=5))
    return f"{base}_{stamp}_{suffix}"


class RowReconciler:
    """Shared savepoint and error handling; subclasses implement ``_reconcile``."""

    kind: ImportKind

    def __init__(self, context: BatchContext) -> None:
        self.context = context
        self.session = context.session
        min_digits = int(context.setting("IMPORTER_MIN_PHONE_DIGITS", 7))
        self.policy = self.build_policy(min_digits)
        self.households = HouseholdMatcher(
            self.session,
            self.policy,
            cache=context.cache,
            season_id=context.season_id,
        )

    def build_policy(self, min_phone_digits: int) -> MatchPolicy:
        return MatchPolicy.for_players(min_phone_digits=min_phone_digits)

    def reconcile(self, index: int, raw: Mapping[str, Any]) -> ImportRow:
        try:
            result = self._reconcile_in_savepoint(index, raw)
        except RowValidationError as exc:
            result = ImportRow(index=index, outcome=RowOutcome.ERROR, message=str(exc), raw=raw)
        except (OperationalError, InterfaceError) as exc:
            self.context.household_written()
            raise ChunkFatalError(str(getattr(exc, "orig", None) or exc)) from exc
        except SQLAlchemyError as exc:
            self.context.household_written()
            error = StoreWriteError(str(getattr(exc, "orig", None) or exc))
            result = ImportRow(index=index, outcome=RowOutcome.ERROR, message=str(error), raw=raw)
        except Exception as exc:
            self.context.household_written()
            current_app.logger.exception(
                "Importer %s row %s raised unexpectedly",
                self.kind.value,
                index + 1,
                extra={"importer_kind": self.kind.value, "importer_run_id": self.context.import_run_id},
            )
            result = ImportRow(index=index, outcome=RowOutcome.ERROR, message=str(exc) or type(exc).__name__, raw=raw)

        if result.outcome is RowOutcome.ERROR:
            current_app.logger.warning(
                "Importer %s row failed: %s",
                self.kind.value,
                result.error,
                extra={
                    "importer_kind": self.kind.value,
                    "importer_row": result.row_number,
                    "importer_run_id": self.context.import_run_id,
                },
            )
        ImporterMonitoring.record_row(kind=self.kind.value, outcome=result.outcome.value)
        return result

    def _reconcile_in_savepoint(self, index: int, raw: Mapping[str, Any]) -> ImportRow:
        with self.session.begin_nested():
            result = self._reconcile(index, raw)
            self.session.flush()
        if result.household_created or result.household_updated:
            self.context.household_written()
        return result

    def _reconcile(self, index: int, raw: Mapping[str, Any]) -> ImportRow:  # pragma: no cover - abstract
        raise NotImplementedError

    # -- shared helpers -----------------------------------------------------

    def _match_household(self, contact, row: ImportRow) -> MatchResult:
        match = self.households.candidates(
            contact,
            log_context={"importer_row": row.row_number, "importer_kind": self.kind.value},
        )
        if match.is_ambiguous:
            row.ambiguous_matches += 1
        return match

    def _record_season_workbond(self, household: Household, changes: Mapping[str, Any]) -> None:
        if not any(name in changes for name in WORKBOND_FIELDS):
            return
        HouseholdSeasonWorkbond.upsert(
            household_id=household.id,
            season_id=self.context.season_id,
            received=household.workbond_received,
            notes=household.workbond_status,
        )


class PlayerReconciler(RowReconciler):
    """Registration rows: players plus their guardians' household."""

    kind = ImportKind.PLAYERS

    def __init__(self, context: BatchContext) -> None:
        super().__init__(context)
        self.people = PersonMatcher(self.session, self.policy, Player)
        self.volunteers = volunteer_matcher(
            self.session,
            MatchPolicy.for_volunteers(min_phone_digits=self.policy.min_phone_digits),
        )
        self.player_profile = load_profile("player", context.config)
        self.household_profile = load_profile("household", context.config)

    def _reconcile(self, index: int, raw: Mapping[str, Any]) -> ImportRow:
        row = PlayerRow.from_raw(index, raw)
        row.validate()
        result = ImportRow(index=index, outcome=RowOutcome.MATCHED, raw=raw)
        options = self.context.options
        division_id = self.context.divisions.resolve(row.program_title)
        household_fields = row.household_fields(clear_workbond_if_empty=options.clear_workbond_if_empty)

        player = self.people.find_person(
            self.context.season_id,
            {
                "first_name": row.first_name,
                "last_name": row.last_name,
                "registration_no": row.registration_no,
                "birth_date": row.birth_date,
            },
        )

        if player is not None:
            changes = merge_person(player, row.person_fields(division_id=division_id), self.player_profile)
            apply_changes(player, changes)
            link_changed, conflicting = self._relink(player, row, result)
            household = player.household
            if household is None:
                household = self._create_household(row, household_fields, result)
                player.household = household
                player.household_link_method = LinkMethod.CREATED.value
                link_changed = True
            elif not conflicting:
                # Guardian data describes the household the row matched, not the kept one.
                self._merge_into(household, household_fields, result)
            if changes or link_changed or result.household_updated or result.household_created:
                result.outcome = RowOutcome.UPDATED
        else:
            match = self._match_household(row.contact_query(), result)
            household = match.best
            if household is None:
                household = self._create_household(row, household_fields, result)
                method = LinkMethod.CREATED.value
            else:
                method = match.strategy
                self._merge_into(household, household_fields, result)
            fields = row.person_fields(division_id=division_id)
            fields["birth_date"] = row.birth_date
            player = Player(
                season_id=self.context.season_id,
                first_name=row.first_name,
                last_name=row.last_name,
                household=household,
                household_link_method=method,
                **fields,
            )
            self.session.add(player)
            result.outcome = RowOutcome.CREATED

        if result.household_created:
            result.volunteers_created = self._create_default_volunteers(household, row)

        self.session.flush()
        result.person_id = player.id
        result.household_id = household.id
        return result

    def _relink(self, player: Player, row: PlayerRow, result: ImportRow) -> tuple[bool, bool]:
        """
        Apply the row's household evidence to an existing player's link.

        Returns ``(link_changed, conflicting)``; ``conflicting`` is set when
        the row matched a different household than the link that was kept.
        """
        contact = row.contact_query()
        if contact.is_empty:
            return False, False
        match = self._match_household(contact, result)
        if match.best is None:
            return False, False
        final = merge_contact_link(
            player.household_id,
            match.best.id,
            existing_method=player.household_link_method,
            incoming_method=match.strategy,
            allow_override=self.context.options.allow_link_override,
        )
        if final != match.best.id:
            return False, True
        if final != player.household_id:
            player.household = match.best
            player.household_link_method = match.strategy
            return True, False
        if link_confidence(match.strategy) > link_confidence(player.household_link_method):
            player.household_link_method = match.strategy
            return True, False
        return False, False

    def _merge_into(self, household: Household, household_fields: Mapping[str, Any], result: ImportRow) -> None:
        changes = merge_household(
            household,
            household_fields,
            self.context.options,
            profile=self.household_profile,
        )
        if not changes:
            return
        apply_changes(household, changes)
        self._record_season_workbond(household, changes)
        result.household_updated = True

    def _create_household(self, row: PlayerRow, household_fields: Mapping[str, Any], result: ImportRow) -> Household:
        values = {key: value for key, value in household_fields.items() if value not in ("", None)}
        values["primary_contact_name"] = row.primary_contact_name
        household = Household(
            household_code=row.household_code.upper() or generate_household_code(row.family_name),
            **values,
        )
        self.session.add(household)
        self.session.flush()
        if household.workbond_status:
            self._record_season_workbond(household, values)
        result.household_created = True
        current_app.logger.info(
            "Created household %s for row %s",
            household.household_code,
            result.row_number,
            extra={"importer_kind": self.kind.value, "importer_household_id": household.id},
        )
        return household

    def _create_default_volunteers(self, household: Household, row: PlayerRow) -> int:
        """Guardian volunteers for a household created by this row."""
        guardians = []
        if household.primary_contact_name and household.primary_contact_name != row.placeholder_guardian_name:
            first, last = split_full_name(household.primary_contact_name)
            guardians.append((first, last, household.primary_contact_email, household.primary_contact_phone))
        if household.parent2_first_name:
            guardians.append(
                (
                    household.parent2_first_name,
                    household.parent2_last_name or "",
                    household.parent2_email,
                    household.parent2_phone,
                )
            )

        created = 0
        for first, last, email, phone in guardians:
            existing = self.volunteers.find_person(
                self.context.season_id,
                {"first_name": first, "last_name": last, "email": email, "phone": phone},
            )
            if existing is not None:
                if existing.household_id is None:
                    existing.household = household
                    existing.household_link_method = LinkMethod.CREATED.value
                continue
            self.session.add(
                Volunteer(
                    season_id=self.context.season_id,
                    first_name=first,
                    last_name=last,
                    email=email or None,
                    phone=phone or None,
                    role=VolunteerRole.PARENT,
                    can_pickup=True,
                    household=household,
                    household_link_method=LinkMethod.CREATED.value,
                )
            )
            created += 1
        return created


class VolunteerReconciler(RowReconciler):
    """Volunteer sign-up rows. Never creates households and never touches the assigned role."""

    kind = ImportKind.VOLUNTEERS

    def __init__(self, context: BatchContext) -> None:
        super().__init__(context)
        self.people = volunteer_matcher(self.session, self.policy)
        self.profile = load_profile("volunteer", context.config)

    def build_policy(self, min_phone_digits: int) -> MatchPolicy:
        return MatchPolicy.for_volunteers(min_phone_digits=min_phone_digits)

    def _reconcile(self, index: int, raw: Mapping[str, Any]) -> ImportRow:
        row = VolunteerRow.from_raw(index, raw)
        row.validate()
        result = ImportRow(index=index, outcome=RowOutcome.MATCHED, raw=raw)
        volunteer = self.people.find_person(self.context.season_id, row.person_fields())
        match = self._match_household(row.contact_query(), result)

        if volunteer is not None:
            changes = merge_person(volunteer, row.person_fields(), self.profile)
            apply_changes(volunteer, changes)
            link_changed = False
            if match.best is not None:
                final = merge_contact_link(
                    volunteer.household_id,
                    match.best.id,
                    existing_method=volunteer.household_link_method,
                    incoming_method=match.strategy,
                    allow_override=self.context.options.allow_link_override,
                )
                if final != volunteer.household_id:
                    volunteer.household = match.best
                    volunteer.household_link_method = match.strategy
                    link_changed = True
            if changes or link_changed:
                result.outcome = RowOutcome.UPDATED
        else:
            volunteer = Volunteer(
                season_id=self.context.season_id,
                first_name=row.first_name,
                last_name=row.last_name,
                email=row.email or None,
                phone=row.phone or None,
                interested_roles=row.interested_roles or None,
                household=match.best,
                household_link_method=match.strategy if match.best is not None else None,
            )
            self.session.add(volunteer)
            result.outcome = RowOutcome.CREATED

        self.session.flush()
        result.person_id = volunteer.id
        result.household_id = volunteer.household_id
        return result


class ShiftReconciler(RowReconciler):
    """Worked-shift rows: credit the matched household or queue the row."""

    kind = ImportKind.SHIFTS

    def __init__(self, context: BatchContext) -> None:
        super().__init__(context)
        self.default_shift_type = str(context.setting("IMPORTER_DEFAULT_SHIFT_TYPE", "Concession Stand"))
        self.default_hours = float(context.setting("IMPORTER_DEFAULT_SHIFT_HOURS", DEFAULT_SHIFT_HOURS))

    def build_policy(self, min_phone_digits: int) -> MatchPolicy:
        return MatchPolicy.for_shifts(min_phone_digits=min_phone_digits)

    def _reconcile(self, index: int, raw: Mapping[str, Any]) -> ImportRow:
        row = ShiftRow.from_raw(
            index,
            raw,
            default_shift_type=self.default_shift_type,
            default_hours=self.default_hours,
        )
        result = ImportRow(index=index, outcome=RowOutcome.SKIPPED, raw=raw)
        if row.is_blank:
            result.message = "Missing volunteer name or shift date"
            return result
        row.validate()

        match = self._match_household(row.contact_query(), result)
        household = match.best
        if household is None:
            record, created = queue_unmatched(
                row,
                self.context.season_id,
                import_run_id=self.context.import_run_id,
                session=self.session,
            )
            result.queued = created
            result.message = "No household matched; queued for review" if created else "Already queued for review"
            return result

        volunteer, created = find_or_create_shift_volunteer(
            self.session,
            household,
            self.context.season_id,
            name=row.volunteer_name,
            email=row.email,
            phone=row.phone,
            link_method=match.strategy,
        )
        result.volunteers_created = int(created)
        result.household_id = household.id

        duplicate = (
            self.session.query(WorkbondShift.id)
            .filter(
                WorkbondShift.household_id == household.id,
                WorkbondShift.season_id == self.context.season_id,
                WorkbondShift.volunteer_id == volunteer.id,
                WorkbondShift.shift_date == row.shift_date,
                WorkbondShift.shift_type == row.shift_type,
            )
            .first()
        )
        if duplicate is not None:
            result.outcome = RowOutcome.MATCHED
            result.message = "Shift already credited"
            result.person_id = volunteer.id
            return result

        self.session.add(
            WorkbondShift(
                household_id=household.id,
                volunteer_id=volunteer.id,
                season_id=self.context.season_id,
                shift_date=row.shift_date,
                shift_type=row.shift_type,
                hours=row.hours,
                description=row.description or None,
            )
        )
        self.session.flush()
        result.outcome = RowOutcome.CREATED
        result.person_id = volunteer.id
        return result


RECONCILERS: Mapping[str, type[RowReconciler]] = {
    ImportKind.PLAYERS.value: PlayerReconciler,
    ImportKind.VOLUNTEERS.value: VolunteerReconciler,
    ImportKind.SHIFTS.value: ShiftReconciler,
}


def reconciler_for(kind: str | ImportKind, context: BatchContext) -> RowReconciler:
    key = kind.value if isinstance(kind, ImportKind) else str(kind)
    try:
        reconciler_cls = RECONCILERS[key]
    except KeyError as exc:
        raise ValueError(f"Unsupported import kind: {kind}") from exc
    return reconciler_cls(context)


__all__ = [
    "ImportRow",
    "PlayerReconciler",
    "RECONCILERS",
    "RowOutcome",
    "RowReconciler",
    "ShiftReconciler",
    "VolunteerReconciler",
    "find_or_create_shift_volunteer",
    "generate_household_code",
    "reconciler_for",
]
