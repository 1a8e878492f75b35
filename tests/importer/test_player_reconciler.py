import re

from league_app.importer.pipeline.matching import HouseholdStrategy, LinkMethod
from league_app.models import Household, HouseholdSeasonWorkbond, Player, Volunteer, VolunteerRole, db


def _player(first_name, last_name="Jones"):
    return Player.query.filter_by(first_name=first_name, last_name=last_name).one()


def test_siblings_share_one_household(run_import, family_row):
    result = run_import("players", [family_row("Ava", "Jones"), family_row("Eli", "Jones")])

    summary = result.to_summary()
    assert summary["created_count"] == 2
    assert summary["updated_count"] == 0
    assert summary["household_count"] == 1
    assert summary["status"] == "succeeded"
    assert summary["warnings"] == []

    household = Household.query.one()
    assert household.primary_contact_name == "Pat Jones"
    assert household.primary_contact_email == "jones@example.com"
    assert {player.household_id for player in Player.query.all()} == {household.id}
    assert _player("Ava").household_link_method == LinkMethod.CREATED.value
    assert _player("Eli").household_link_method == HouseholdStrategy.EMAIL.value


def test_new_household_gets_guardian_volunteers(run_import, family_row):
    row = family_row(
        "Ava",
        "Jones",
        **{"Parent2 FirstName": "Sam", "Parent2 LastName": "Jones", "Parent2 Email": "sam@example.com"},
    )

    result = run_import("players", [row, family_row("Eli", "Jones")])

    assert result.volunteers_created == 2
    volunteers = Volunteer.query.order_by(Volunteer.id).all()
    assert [(v.first_name, v.email) for v in volunteers] == [("Pat", "jones@example.com"), ("Sam", "sam@example.com")]
    assert all(v.role is VolunteerRole.PARENT and v.can_pickup for v in volunteers)
    # No division, so the league default applies.
    assert all(v.shifts_required == 2 for v in volunteers)


def test_reimport_is_idempotent(run_import, family_row):
    rows = [family_row("Ava", "Jones"), family_row("Eli", "Jones"), family_row("Mia", "Smith")]
    run_import("players", rows)

    second = run_import("players", rows)

    assert second.created_count == 0
    assert second.updated_count == 3
    assert second.household_count == 0
    assert second.volunteers_created == 0
    assert Household.query.count() == 2
    assert Player.query.count() == 3
    assert Volunteer.query.count() == 2


def test_reimporting_full_row_changes_nothing(run_import, family_row):
    row = family_row(
        "Ava",
        "Jones",
        phone="(816) 555-0100",
        **{
            "Date of Birth": "05/01/2015",
            "Registration Number": "R-100",
            "Gender": "F",
            "Program": "10U",
            "Uniform Shirt Size": "YM",
            "Payment Status": "Paid",
            "Travel Player": "No",
            "New or Returning": "Returning",
            "Workbond Check Status": "Received",
            "Parent2 FirstName": "Sam",
            "Parent2 LastName": "Jones",
            "Parent2 Email": "sam@example.com",
            "Parent2 Phone1": "816-555-0199",
            "Address": "12 Elm St",
            "City": "Olathe",
            "State": "KS",
            "Zip": "66061",
        },
    )
    first = run_import("players", [row])
    assert first.created_count == 1

    second = run_import("players", [row])

    assert second.persons_updated == 0
    assert second.persons_matched == 1
    assert second.households_updated == 0
    assert second.volunteers_created == 0
    assert second.errors == []
    assert HouseholdSeasonWorkbond.query.count() == 1


def test_stronger_stored_link_is_kept_without_cross_merge(season, run_import, family_row, household_factory):
    kept = household_factory(primary_contact_email="other@example.com")
    matched = household_factory(primary_contact_email="jones@example.com")
    db.session.add(
        Player(
            season_id=season.id,
            first_name="Ava",
            last_name="Jones",
            household=kept,
            household_link_method=LinkMethod.MANUAL.value,
        )
    )
    db.session.commit()

    result = run_import("players", [family_row("Ava", "Jones", City="Lawrence")])

    player = _player("Ava")
    assert player.household_id == kept.id
    assert player.household_link_method == LinkMethod.MANUAL.value
    assert db.session.get(Household, kept.id).city is None
    assert db.session.get(Household, matched.id).city is None
    assert result.updated_count == 1


def test_stronger_evidence_relinks_and_merges(season, run_import, family_row, household_factory):
    weak = household_factory(primary_contact_phone="816-555-0100")
    matched = household_factory(primary_contact_email="jones@example.com")
    db.session.add(
        Player(
            season_id=season.id,
            first_name="Ava",
            last_name="Jones",
            household=weak,
            household_link_method=HouseholdStrategy.PHONE.value,
        )
    )
    db.session.commit()

    result = run_import("players", [family_row("Ava", "Jones", City="Lawrence")])

    player = _player("Ava")
    assert player.household_id == matched.id
    assert player.household_link_method == HouseholdStrategy.EMAIL.value
    assert db.session.get(Household, matched.id).city == "Lawrence"
    assert result.persons_updated == 1


def test_link_override_option_replaces_manual_link(season, run_import, family_row, household_factory):
    kept = household_factory(primary_contact_email="other@example.com")
    matched = household_factory(primary_contact_email="jones@example.com")
    db.session.add(
        Player(
            season_id=season.id,
            first_name="Ava",
            last_name="Jones",
            household=kept,
            household_link_method=LinkMethod.MANUAL.value,
        )
    )
    db.session.commit()

    run_import("players", [family_row("Ava", "Jones")], {"allowLinkOverride": True})

    assert _player("Ava").household_id == matched.id


def test_existing_player_without_household_gets_one(season, run_import, family_row):
    db.session.add(Player(season_id=season.id, first_name="Ava", last_name="Jones"))
    db.session.commit()

    result = run_import("players", [family_row("Ava", "Jones")])

    player = _player("Ava")
    assert player.household is not None
    assert player.household_link_method == LinkMethod.CREATED.value
    assert result.persons_updated == 1
    assert result.household_count == 1


def test_workbond_status_is_overwritten_by_latest_import(season, run_import, family_row):
    run_import("players", [family_row("Ava", "Jones", **{"Workbond Check Status": "Received"})])
    household = Household.query.one()
    assert household.workbond_status == "Received"
    assert household.workbond_received is True

    run_import("players", [family_row("Ava", "Jones", **{"Workbond Check Status": ""})])

    household = Household.query.one()
    assert household.workbond_status == ""
    assert household.workbond_received is False
    record = HouseholdSeasonWorkbond.query.filter_by(household_id=household.id, season_id=season.id).one()
    assert record.received is False


def test_empty_workbond_kept_when_clearing_disabled(run_import, family_row):
    run_import("players", [family_row("Ava", "Jones", **{"Workbond Check Status": "Received"})])

    run_import(
        "players",
        [family_row("Ava", "Jones", **{"Workbond Check Status": ""})],
        {"clear_workbond_if_empty": False},
    )

    household = Household.query.one()
    assert household.workbond_status == "Received"
    assert household.workbond_received is True


def test_failing_row_is_reported_and_others_commit(run_import, family_row):
    families = ["Adams", "Baker", "Clark", "Davis", "Evans", "Frank", "Green", "Hill", "Irwin", "Jones"]
    rows = [family_row("Kid", family) for family in families]
    rows[4]["Player First Name"] = ""

    result = run_import("players", rows)

    assert result.errors == ["Row 5: Missing required fields: first name"]
    assert result.created_count + result.updated_count == 9
    assert result.status == "partially_failed"
    assert Player.query.count() == 9
    assert Household.query.filter_by(primary_contact_email="evans@example.com").count() == 0


def test_all_rows_failing_reports_no_valid_rows(run_import, player_row):
    result = run_import("players", [player_row("Ava", ""), player_row("", "")])

    assert result.status == "no_valid_rows"
    assert result.errors == [
        "Row 1: Missing required fields: last name",
        "Row 2: Missing required fields: first name, last name",
    ]


def test_placeholder_guardian_and_generated_code(run_import, player_row):
    result = run_import("players", [player_row("Ava", "O'Neil")])

    household = Household.query.one()
    assert household.primary_contact_name == "Ava O'Neil's Parent"
    assert re.fullmatch(r"ONEIL_[0-9a-z]+_[0-9a-z]{5}", household.household_code)
    assert result.volunteers_created == 0


def test_explicit_household_code_is_used_and_matched(run_import, family_row):
    run_import("players", [family_row("Ava", "Smith", **{"Family ID": "smith01"})])
    assert Household.query.one().household_code == "SMITH01"

    result = run_import("players", [family_row("Eli", "Smith", email="new@example.com", **{"Family ID": "SMITH01"})])

    assert result.household_count == 0
    assert result.households_updated == 1
    assert _player("Eli", "Smith").household_link_method == HouseholdStrategy.HOUSEHOLD_CODE.value
    assert Household.query.one().primary_contact_email == "new@example.com"


def test_division_resolution_sets_shift_requirement(run_import, family_row, division_factory):
    division = division_factory("10U Baseball", 3)

    run_import("players", [family_row("Ava", "Jones", Program="10U")])

    player = _player("Ava")
    assert player.division_id == division.id
    assert player.program_title == "10U"
    assert Volunteer.query.one().shifts_required == 3


def test_program_flags_follow_columns_present(run_import, family_row):
    run_import(
        "players",
        [
            family_row(
                "Ava",
                "Jones",
                **{"Payment Status": "Paid", "Travel Player": "Yes", "New or Returning": "Returning"},
            )
        ],
    )
    player = _player("Ava")
    assert player.payment_received is True
    assert player.is_travel_player is True
    assert player.is_returning is True
    assert player.is_new_player is False

    run_import("players", [family_row("Ava", "Jones")])

    player = _player("Ava")
    assert player.payment_received is True
    assert player.is_travel_player is True


def test_players_are_scoped_to_the_import_season(run_import, family_row, inactive_season):
    run_import("players", [family_row("Ava", "Jones")], season_id=inactive_season.id)
    result = run_import("players", [family_row("Ava", "Jones")])

    assert result.created_count == 1
    assert result.household_count == 0
    assert Player.query.count() == 2
    assert Household.query.count() == 1
