from datetime import date

import pytest

from league_app.importer.errors import (
    HouseholdNotFound,
    UnmatchedRecordAlreadyLinked,
    UnmatchedRecordNotFound,
)
from league_app.importer.pipeline import (
    UnmatchedQueueService,
    auto_link_unmatched,
    link_unmatched_record,
    list_unmatched,
)
from league_app.importer.pipeline.matching import LinkMethod
from league_app.models import Player, UnmatchedRecord, Volunteer, VolunteerRole, WorkbondShift, db


def _shift(name="Pat Jones", when="4/11/2026", **values):
    row = {"Who": name, "Date": when}
    row.update(values)
    return row


def test_shift_credited_to_household_matched_by_email(season, run_import, household_factory):
    household = household_factory(primary_contact_email="pat@example.com")

    result = run_import("shifts", [_shift(Email="PAT@example.com", Task="Gate", Hours="3", Desc="Opening day")])

    assert result.created_count == 1
    assert result.volunteers_created == 1
    shift = WorkbondShift.query.one()
    assert shift.household_id == household.id
    assert shift.season_id == season.id
    assert shift.shift_date == date(2026, 4, 11)
    assert shift.shift_type == "Gate"
    assert shift.hours == 3.0
    assert shift.description == "Opening day"

    volunteer = db.session.get(Volunteer, shift.volunteer_id)
    assert (volunteer.first_name, volunteer.last_name) == ("Pat", "Jones")
    assert volunteer.role is VolunteerRole.PARENT
    assert volunteer.household_id == household.id


def test_repeated_shift_row_is_not_credited_twice(run_import, household_factory):
    household_factory(primary_contact_email="pat@example.com")
    rows = [_shift(Email="pat@example.com")]
    run_import("shifts", rows)

    again = run_import("shifts", rows)

    assert again.created_count == 0
    assert again.persons_matched == 1
    assert WorkbondShift.query.count() == 1
    assert Volunteer.query.count() == 1
    assert WorkbondShift.query.one().shift_type == "Concession Stand"
    assert WorkbondShift.query.one().hours == 2.5


def test_shift_matched_through_player_name(season, run_import, household_factory):
    household = household_factory()
    db.session.add(Player(season_id=season.id, first_name="Ava", last_name="Jones", household=household))
    db.session.commit()

    run_import("shifts", [_shift("Grandma Jones", **{"Players First and Last Name": "Ava Jones"})])

    assert WorkbondShift.query.one().household_id == household.id


def test_unmatched_shift_is_queued_once(season, run_import):
    rows = [_shift("Lee Ray", Email="lee@example.com")]

    first = run_import("shifts", rows)
    second = run_import("shifts", rows)

    assert first.unmatched_queued == 1
    assert first.status == "succeeded"
    assert second.unmatched_queued == 0
    assert second.skipped == 1

    record = UnmatchedRecord.query.one()
    assert record.volunteer_name == "Lee Ray"
    assert record.email == "lee@example.com"
    assert record.import_run_id == first.run_id
    assert record.is_matched is False
    assert record.raw_json["volunteer_name"] == "Lee Ray"
    assert WorkbondShift.query.count() == 0


def test_blank_and_invalid_shift_rows(run_import):
    result = run_import("shifts", [_shift("", ""), _shift("Lee Ray", "someday"), _shift("Pat Jones", "")])

    assert result.skipped == 2
    assert result.errors == ["Row 2: Invalid shift date 'someday'"]
    assert result.status == "no_valid_rows"
    assert UnmatchedRecord.query.count() == 0


def _queued_record(season, **values):
    defaults = {
        "season_id": season.id,
        "volunteer_name": "Lee Ray",
        "shift_date": date(2026, 4, 11),
        "shift_type": "Concession Stand",
        "hours": 2.5,
    }
    defaults.update(values)
    record = UnmatchedRecord(**defaults)
    db.session.add(record)
    db.session.commit()
    return record


def test_manual_link_credits_shift_and_marks_record(season, household_factory):
    household = household_factory()
    record = _queued_record(season, email="lee@example.com")

    shift = link_unmatched_record(record.id, household.id)
    db.session.commit()

    assert shift.unmatched_record_id == record.id
    assert shift.household_id == household.id
    assert record.is_matched is True
    assert record.matched_household_id == household.id
    assert record.matched_volunteer_id == shift.volunteer_id
    assert record.match_method == LinkMethod.MANUAL.value
    assert record.processed_at is not None
    assert db.session.get(Volunteer, shift.volunteer_id).email == "lee@example.com"


def test_manual_link_uses_given_volunteer(season, household_factory):
    household = household_factory()
    volunteer = Volunteer(season_id=season.id, first_name="Lee", last_name="Ray", household=household)
    db.session.add(volunteer)
    db.session.commit()
    record = _queued_record(season)

    shift = UnmatchedQueueService().link(record.id, household.id, volunteer.id)

    assert shift.volunteer_id == volunteer.id
    assert Volunteer.query.count() == 1


def test_manual_link_errors(season, household_factory):
    household = household_factory()
    record = _queued_record(season)
    service = UnmatchedQueueService()

    with pytest.raises(UnmatchedRecordNotFound):
        service.link(9999, household.id)
    with pytest.raises(HouseholdNotFound):
        service.link(record.id, 9999)

    service.link(record.id, household.id)
    db.session.commit()
    with pytest.raises(UnmatchedRecordAlreadyLinked):
        service.link(record.id, household.id)
    assert WorkbondShift.query.count() == 1


def test_auto_link_sweep_is_idempotent(season, household_factory):
    household = household_factory(parent2_phone="(913) 555-0199")
    linked = _queued_record(season, phone="913-555-0199")
    waiting = _queued_record(season, volunteer_name="Unknown", email="nobody@example.com")

    summary = auto_link_unmatched(season.id)

    assert summary.to_dict() == {"processed": 2, "linked": 1, "still_unmatched": 1, "errors": 0}
    assert db.session.get(UnmatchedRecord, linked.id).match_method == LinkMethod.AUTO.value
    assert WorkbondShift.query.one().household_id == household.id
    assert [record.id for record in list_unmatched(season.id)] == [waiting.id]
    assert len(list_unmatched(season.id, include_matched=True)) == 2

    again = auto_link_unmatched(season.id)
    assert again.to_dict() == {"processed": 1, "linked": 0, "still_unmatched": 1, "errors": 0}
    assert WorkbondShift.query.count() == 1


def test_auto_link_ignores_player_name_evidence(season, household_factory):
    household = household_factory()
    db.session.add(Player(season_id=season.id, first_name="Ava", last_name="Jones", household=household))
    db.session.commit()
    _queued_record(season, player_name="Ava Jones")

    summary = auto_link_unmatched()

    assert summary.linked == 0
    assert summary.still_unmatched == 1
