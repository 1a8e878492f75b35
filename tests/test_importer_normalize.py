from datetime import date

import pytest

from league_app.importer.errors import RowValidationError
from league_app.importer.pipeline.normalize import (
    ContactQuery,
    PlayerRow,
    ShiftRow,
    VolunteerRow,
    address_key,
    canonicalize_row,
    normalize_date,
    normalize_email,
    normalize_header,
    normalize_phone,
    parse_boolean,
    parse_hours,
    parse_payment_status,
    parse_workbond_status,
    split_full_name,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("(816) 555-0100", "8165550100"),
        ("816.555.0100 x12", "8165550100"),
        ("816-555-0100 ext. 9", "8165550100"),
        ("", ""),
        (None, ""),
    ],
)
def test_normalize_phone_keeps_digits_and_drops_extension(raw, expected):
    assert normalize_phone(raw) == expected


def test_normalize_email_trims_and_lowercases():
    assert normalize_email("  Ann.Jones@Example.COM ") == "ann.jones@example.com"
    assert normalize_email(None) == ""


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2016-04-05", "2016-04-05"),
        ("2016-04-05T10:30:00", "2016-04-05"),
        ("4/5/2016", "2016-04-05"),
        ("04-05-2016", "2016-04-05"),
        (date(2016, 4, 5), "2016-04-05"),
        ("2016-02-30", None),
        ("next tuesday", None),
        ("", None),
    ],
)
def test_normalize_date_formats(raw, expected):
    assert normalize_date(raw) == expected


def test_parse_boolean_tokens():
    assert parse_boolean("Yes") is True
    assert parse_boolean("y") is True
    assert parse_boolean(1) is True
    assert parse_boolean("N/A") is False
    assert parse_boolean("maybe") is False
    assert parse_boolean(None) is False


def test_payment_status_negative_term_wins():
    assert parse_payment_status("Completed") is True
    assert parse_payment_status("Paid by Credit Card") is True
    assert parse_payment_status("Pending payment") is False
    assert parse_payment_status("Not paid") is False
    assert parse_payment_status("") is False
    assert parse_payment_status("something else") is False
    assert parse_payment_status("Prepaid") is True
    assert parse_payment_status("Checks cleared") is True
    assert parse_payment_status("PAID-IN-FULL") is True
    assert parse_payment_status("Unpaid") is False
    assert parse_payment_status("Check processing") is False


def test_workbond_status_classification():
    assert parse_workbond_status("Received") is True
    assert parse_workbond_status("Check received 3/1") is True
    assert parse_workbond_status("Not Received") is False
    assert parse_workbond_status("Pending") is False
    assert parse_workbond_status(None) is False
    assert parse_workbond_status("Received Nov 2") is True
    assert parse_workbond_status("No check") is False


def test_parse_hours_defaults_for_bad_values():
    assert parse_hours("3") == 3.0
    assert parse_hours("") == 2.5
    assert parse_hours("two") == 2.5
    assert parse_hours("-1", default=1.0) == 1.0


def test_split_full_name_and_address_key():
    assert split_full_name("  Mary Ann   Smith ") == ("Mary", "Ann Smith")
    assert split_full_name("") == ("", "")
    assert address_key("123 Main St.") == "123 main st"


def test_headers_are_canonicalized_with_aliases():
    assert normalize_header("\ufeffPlayer First Name") == "player_first_name"
    row = canonicalize_row({"Player First Name": "Ava", "First Name": "Other"}, {"player_first_name": "first_name"})
    assert row["first_name"] == "Ava"


def test_player_row_reads_registration_export_headers():
    row = PlayerRow.from_raw(
        0,
        {
            "Player First Name": "Ava",
            "Player Last Name": "Jones",
            "DOB": "4/5/2016",
            "Parent1 FirstName": "Ann",
            "Parent1 LastName": "Jones",
            "Parent1 Email": " ANN@Example.com ",
            "Parent1 Phone1": "816-555-0100",
            "Parent2 Email": "dad@example.com",
            "Street": "12 Oak Street",
        },
    )

    assert row.first_name == "Ava"
    assert row.birth_date == "2016-04-05"
    assert row.parent1_email == "ann@example.com"
    assert row.primary_contact_name == "Ann Jones"
    assert row.workbond_status is None

    contact = row.contact_query()
    assert contact.emails == ("ann@example.com", "dad@example.com")
    assert contact.phones == ("8165550100",)
    assert contact.family_name == "Jones"
    assert contact.address == "12 Oak Street"


def test_player_row_omits_absent_program_columns():
    row = PlayerRow.from_raw(0, {"first_name": "Ava", "last_name": "Jones"})
    fields = row.person_fields()
    assert "payment_received" not in fields
    assert "is_travel_player" not in fields
    assert "workbond_status" not in row.household_fields()


def test_player_row_placeholder_guardian_name():
    row = PlayerRow.from_raw(0, {"first_name": "Ava", "last_name": "Jones"})
    assert row.primary_contact_name == "Ava Jones's Parent"
    assert row.family_name == "Jones"


def test_player_row_workbond_empty_respects_clear_option():
    row = PlayerRow.from_raw(0, {"first_name": "Ava", "last_name": "Jones", "Workbond Check Status": ""})
    assert row.household_fields()["workbond_status"] == ""
    assert row.household_fields()["workbond_received"] is False
    assert "workbond_status" not in row.household_fields(clear_workbond_if_empty=False)


def test_player_row_validation_names_missing_fields():
    row = PlayerRow.from_raw(4, {"first_name": "", "last_name": "Jones"})
    with pytest.raises(RowValidationError) as excinfo:
        row.validate()
    assert str(excinfo.value) == "Missing required fields: first name"
    assert excinfo.value.missing_fields == ("first_name",)


def test_volunteer_row_splits_full_name_and_requires_contact():
    row = VolunteerRow.from_raw(0, {"Name": "Pat Smith", "Email Address": "PAT@example.com"})
    assert (row.first_name, row.last_name) == ("Pat", "Smith")
    assert row.email == "pat@example.com"
    row.validate()

    with pytest.raises(RowValidationError, match="Email or phone required"):
        VolunteerRow.from_raw(0, {"Name": "Pat Smith"}).validate()


def test_shift_row_defaults_and_blank_detection():
    row = ShiftRow.from_raw(0, {"Who": "Pat Smith", "Date": "4/11/2026", "Task": "", "Hours": "3"})
    assert row.shift_date == date(2026, 4, 11)
    assert row.shift_type == "Concession Stand"
    assert row.hours == 3.0
    assert not row.is_blank

    assert ShiftRow.from_raw(1, {"Who": "", "Date": ""}).is_blank


def test_shift_row_invalid_date_fails_validation():
    row = ShiftRow.from_raw(0, {"Who": "Pat Smith", "Date": "someday"})
    with pytest.raises(RowValidationError, match="Invalid shift date"):
        row.validate()


def test_contact_query_dedupes_and_reports_empty():
    contact = ContactQuery.build(email="A@x.com", extra_emails=("a@x.com", ""), phone="", extra_phones=(None,))
    assert contact.emails == ("a@x.com",)
    assert contact.phones == ()
    assert ContactQuery.build().is_empty
