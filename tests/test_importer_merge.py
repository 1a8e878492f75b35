from types import SimpleNamespace

from config.merge_policy import DEFAULT_HOUSEHOLD_PROFILE, DEFAULT_VOLUNTEER_PROFILE
from league_app.importer.pipeline.context import ImportOptions
from league_app.importer.pipeline.matching import HouseholdStrategy, LinkMethod
from league_app.importer.pipeline.merge import (
    apply_changes,
    merge_contact_link,
    merge_fields,
    merge_household,
    merge_person,
)


def _household(**values):
    defaults = {
        "primary_contact_name": "Ann Jones",
        "primary_contact_email": "ann@example.com",
        "primary_contact_phone": "816-555-0100",
        "parent2_email": None,
        "address_line_1": "12 Oak Street",
        "workbond_status": "Received",
        "workbond_received": True,
    }
    defaults.update(values)
    return SimpleNamespace(**defaults)


def test_cumulative_fields_ignore_empty_incoming_values():
    changes = merge_household(_household(), {"primary_contact_phone": "", "address_line_1": "   "})
    assert changes == {}


def test_cumulative_fields_write_new_non_empty_values():
    changes = merge_household(_household(), {"parent2_email": "dad@example.com", "primary_contact_name": "Ann Jones"})
    assert changes == {"parent2_email": "dad@example.com"}


def test_workbond_is_authoritative_when_present():
    changes = merge_household(_household(), {"workbond_status": "", "workbond_received": False})
    assert changes == {"workbond_status": "", "workbond_received": False}


def test_workbond_absent_from_payload_is_untouched():
    changes = merge_household(_household(), {"primary_contact_email": "ann@example.com"})
    assert changes == {}


def test_empty_workbond_kept_when_clearing_disabled():
    options = ImportOptions(clear_workbond_if_empty=False)
    changes = merge_household(_household(), {"workbond_status": "", "workbond_received": False}, options)
    assert changes == {}

    changes = merge_household(_household(), {"workbond_status": "Not received", "workbond_received": False}, options)
    assert changes == {"workbond_status": "Not received", "workbond_received": False}


def test_fill_blank_only_writes_into_empty_fields():
    volunteer = SimpleNamespace(first_name="Pat", last_name="Smith", email=None, phone="816-555-0100")
    result = merge_fields(
        volunteer,
        {"first_name": "Patricia", "email": "pat@example.com", "phone": "913-555-0199"},
        DEFAULT_VOLUNTEER_PROFILE,
    )
    assert result.changes == {"email": "pat@example.com"}
    assert result.stats["kept_existing"] == 2


def test_merge_fields_accepts_snapshot_mapping_and_reports_stats():
    result = merge_fields(
        {"primary_contact_name": "Ann Jones", "city": None},
        {"primary_contact_name": " Ann Jones ", "city": "Kansas City"},
        DEFAULT_HOUSEHOLD_PROFILE,
    )
    assert result.changed
    assert result.changes == {"city": "Kansas City"}
    assert result.stats["unchanged"] == 1
    assert [decision.field_name for decision in result.decisions] == ["city"]


def test_person_flags_are_replaced_but_sizes_accumulate():
    player = SimpleNamespace(is_travel_player=True, uniform_shirt_size="YM", payment_received=False)
    changes = merge_person(
        player,
        {"is_travel_player": False, "uniform_shirt_size": "", "payment_received": True},
    )
    assert changes == {"is_travel_player": False, "payment_received": True}


def test_apply_changes_sets_attributes():
    household = apply_changes(_household(), {"city": "Kansas City"})
    assert household.city == "Kansas City"


def test_contact_link_empty_incoming_never_clears():
    assert merge_contact_link(5, None) == 5
    assert merge_contact_link(None, None) is None


def test_contact_link_first_link_is_taken():
    assert merge_contact_link(None, 7, incoming_method=HouseholdStrategy.PHONE.value) == 7


def test_contact_link_requires_equal_or_stronger_evidence():
    assert (
        merge_contact_link(
            5,
            7,
            existing_method=LinkMethod.MANUAL.value,
            incoming_method=HouseholdStrategy.EMAIL.value,
        )
        == 5
    )
    assert (
        merge_contact_link(
            5,
            7,
            existing_method=HouseholdStrategy.PHONE.value,
            incoming_method=HouseholdStrategy.EMAIL.value,
        )
        == 7
    )
    assert (
        merge_contact_link(
            5,
            7,
            existing_method=HouseholdStrategy.EMAIL.value,
            incoming_method=HouseholdStrategy.EMAIL.value,
        )
        == 7
    )


def test_contact_link_unknown_provenance_trusted_like_email():
    assert merge_contact_link(5, 7, incoming_method=HouseholdStrategy.PHONE.value) == 5
    assert merge_contact_link(5, 7, incoming_method=HouseholdStrategy.HOUSEHOLD_CODE.value) == 7


def test_contact_link_override_flag_forces_incoming():
    assert (
        merge_contact_link(
            5,
            7,
            existing_method=LinkMethod.MANUAL.value,
            incoming_method=HouseholdStrategy.FUZZY_NAME_ADDRESS.value,
            allow_override=True,
        )
        == 7
    )
