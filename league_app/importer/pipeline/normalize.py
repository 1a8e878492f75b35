"""
Field normalization for import rows.

Every helper here is deterministic and total: malformed input degrades to an
empty/``None``/``False`` value instead of raising. Row validation is a
separate, explicit step (``validate()`` on the row objects).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Mapping

from rapidfuzz import utils

from league_app.importer.errors import RowValidationError

_EXTENSION_RE = re.compile(r"\s*(x|ext\.?|extension|#)\s*\d+\s*$", re.IGNORECASE)
_NON_DIGIT_RE = re.compile(r"\D+")
_HEADER_RE = re.compile(r"[^0-9a-z]+")

_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[T ].*)?$")
_SLASH_DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_DASH_DATE_RE = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$")

TRUE_TOKENS = frozenset({"true", "yes", "y", "1"})
FALSE_TOKENS = frozenset({"false", "no", "n", "0", "n/a", "na"})

DEFAULT_SHIFT_HOURS = 2.5


# ---------------------------------------------------------------------------
# Scalar helpers
# ---------------------------------------------------------------------------


def clean_text(value: object | None) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value != value:  # NaN from spreadsheet exports
        return ""
    return " ".join(str(value).split())


def normalize_email(value: object | None) -> str:
    """Trim and lower-case an email address. Returns ``""`` for blanks."""
    return clean_text(value).replace(" ", "").lower()


def normalize_phone(value: object | None) -> str:
    """
    Reduce a phone number to its digits.

    A trailing extension (``x12``, ``ext 12``, ``#12``) is dropped first so it
    does not leak into the matching key.
    """
    token = clean_text(value)
    if not token:
        return ""
    token = _EXTENSION_RE.sub("", token)
    return _NON_DIGIT_RE.sub("", token)


def normalize_date(value: object | None) -> str | None:
    """
    Coerce a date-like value to ``YYYY-MM-DD``.

    Accepts ``date``/``datetime`` objects, ``YYYY-MM-DD`` (optionally followed
    by a time), ``M/D/YYYY`` and ``M-D-YYYY``. Anything else, including
    impossible calendar dates, returns ``None``.
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    token = clean_text(value)
    if not token:
        return None

    match = _ISO_DATE_RE.match(token)
    if match:
        year, month, day = match.groups()
    else:
        match = _SLASH_DATE_RE.match(token) or _DASH_DATE_RE.match(token)
        if not match:
            return None
        month, day, year = match.groups()
    try:
        return date(int(year), int(month), int(day)).isoformat()
    except ValueError:
        return None


def parse_date(value: object | None) -> date | None:
    normalized = normalize_date(value)
    return date.fromisoformat(normalized) if normalized else None


def parse_boolean(value: object | None) -> bool:
    """
    Parse a yes/no style value.

    ``true/yes/y/1`` are true; ``false/no/n/0/n/a/na``, blanks and anything
    unrecognized are false.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value == 1
    token = clean_text(value).lower()
    if not token or token in FALSE_TOKENS:
        return False
    return token in TRUE_TOKENS


def parse_hours(value: object | None, default: float = DEFAULT_SHIFT_HOURS) -> float:
    token = clean_text(value)
    if not token:
        return default
    try:
        hours = float(token)
    except ValueError:
        return default
    if hours != hours or hours < 0:
        return default
    return hours


def split_full_name(value: object | None) -> tuple[str, str]:
    parts = clean_text(value).split(" ")
    if not parts or not parts[0]:
        return "", ""
    return parts[0], " ".join(parts[1:])


def address_key(value: object | None) -> str:
    """Canonical address form for containment checks (case/punctuation folded)."""
    token = clean_text(value)
    if not token:
        return ""
    return utils.default_process(token)


@dataclass(frozen=True)
class StatusVocabulary:
    """
    Classifies free-text status strings by term containment.

    Positive terms match anywhere in the value ("prepaid", "checks cleared").
    Negative terms match as whole words only, so "Nov" never reads as "no".
    A negative term wins over any positive term, and a value with no
    recognized term is negative: the not-yet-satisfied state is the default.
    """

    positives: tuple[str, ...]
    negatives: tuple[str, ...]

    def _has_word(self, token: str, term: str) -> bool:
        return re.search(rf"(?<![0-9a-z]){re.escape(term)}(?![0-9a-z])", token) is not None

    def classify(self, value: object | None) -> bool:
        token = clean_text(value).lower()
        if not token:
            return False
        if any(self._has_word(token, term) for term in self.negatives):
            return False
        return any(term in token for term in self.positives)


PAYMENT_STATUS = StatusVocabulary(
    positives=("completed", "complete", "paid", "credit card", "check", "payment received"),
    negatives=("pending", "unpaid", "waiting", "processing", "not", "n/a", "na"),
)

WORKBOND_STATUS = StatusVocabulary(
    positives=("received", "yes", "true", "1"),
    negatives=("pending", "no", "false", "0", "not", "n/a", "na"),
)


def parse_payment_status(value: object | None) -> bool:
    return PAYMENT_STATUS.classify(value)


def parse_workbond_status(value: object | None) -> bool:
    return WORKBOND_STATUS.classify(value)


# ---------------------------------------------------------------------------
# Header canonicalization
# ---------------------------------------------------------------------------


PLAYER_HEADER_ALIASES: Mapping[str, str] = {
    "player_first_name": "first_name",
    "player_last_name": "last_name",
    "dob": "birth_date",
    "date_of_birth": "birth_date",
    "birthdate": "birth_date",
    "registration_number": "registration_no",
    "program": "program_title",
    "division": "program_title",
    "parent1_first_name": "parent1_firstname",
    "parent1_last_name": "parent1_lastname",
    "parent1_phone": "parent1_phone1",
    "parent2_first_name": "parent2_firstname",
    "parent2_last_name": "parent2_lastname",
    "parent2_phone": "parent2_phone1",
    "player_street": "address_line_1",
    "street": "address_line_1",
    "address": "address_line_1",
    "address_1": "address_line_1",
    "address_2": "address_line_2",
    "player_city": "city",
    "player_state": "state",
    "player_postal_code": "zip_code",
    "postal_code": "zip_code",
    "zip": "zip_code",
    "family_id": "household_code",
    "family_code": "household_code",
    "workbond_status": "workbond_check_status",
    "work_bond_check_status": "workbond_check_status",
}

VOLUNTEER_HEADER_ALIASES: Mapping[str, str] = {
    "volunteer_name": "name",
    "full_name": "name",
    "guardian_email": "email",
    "email_address": "email",
    "guardian_phone": "phone",
    "cell_phone": "phone",
    "phone_number": "phone",
    "roles": "interested_roles",
    "volunteer_roles": "interested_roles",
    "family_id": "household_code",
    "family_code": "household_code",
}

SHIFT_HEADER_ALIASES: Mapping[str, str] = {
    "who": "volunteer_name",
    "name": "volunteer_name",
    "volunteer": "volunteer_name",
    "players_first_and_last_name": "player_name",
    "player": "player_name",
    "date": "shift_date",
    "task": "shift_type",
    "hours_tracking": "hours",
    "desc": "description",
}


def normalize_header(header: object | None) -> str:
    token = clean_text(header).lstrip("\ufeff").lower()
    return _HEADER_RE.sub("_", token).strip("_")


def canonicalize_row(raw: Mapping[str, Any], aliases: Mapping[str, str] | None = None) -> dict[str, Any]:
    """
    Return ``raw`` with canonical keys.

    Keys are lower-cased, punctuation/space runs become ``_`` and aliases are
    applied. When two source columns collapse onto the same key, the first
    non-blank value wins.
    """
    alias_map = aliases or {}
    canonical: dict[str, Any] = {}
    for key, value in raw.items():
        name = normalize_header(key)
        if not name:
            continue
        name = alias_map.get(name, name)
        if name in canonical and clean_text(canonical[name]):
            continue
        canonical[name] = value
    return canonical


# ---------------------------------------------------------------------------
# Row objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ContactQuery:
    """Normalized contact evidence used to resolve a household."""

    emails: tuple[str, ...] = ()
    phones: tuple[str, ...] = ()
    family_name: str = ""
    address: str = ""
    household_code: str = ""
    player_name: str = ""

    @classmethod
    def build(
        cls,
        *,
        email: object | None = None,
        phone: object | None = None,
        name: object | None = None,
        address: object | None = None,
        household_code: object | None = None,
        player_name: object | None = None,
        extra_emails: tuple[object, ...] = (),
        extra_phones: tuple[object, ...] = (),
    ) -> "ContactQuery":
        emails = _unique(normalize_email(value) for value in (email, *extra_emails))
        phones = _unique(normalize_phone(value) for value in (phone, *extra_phones))
        return cls(
            emails=emails,
            phones=phones,
            family_name=clean_text(name),
            address=clean_text(address),
            household_code=clean_text(household_code),
            player_name=clean_text(player_name),
        )

    @property
    def is_empty(self) -> bool:
        return not (self.emails or self.phones or self.household_code or self.player_name or self.family_name)


def _unique(values) -> tuple[str, ...]:
    seen: list[str] = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return tuple(seen)


def _text(raw: Mapping[str, Any], key: str) -> str:
    return clean_text(raw.get(key))


@dataclass(frozen=True)
class PlayerRow:
    """A registration export row: one player plus guardian/household data."""

    index: int
    raw: Mapping[str, Any] = field(repr=False)
    first_name: str = ""
    last_name: str = ""
    birth_date: str | None = None
    registration_no: str = ""
    program_title: str = ""
    gender: str = ""
    medical_conditions: str = ""
    uniform_shirt_size: str = ""
    uniform_pants_size: str = ""
    new_or_returning: str | None = None
    travel_player: str | None = None
    payment_status: str | None = None
    workbond_status: str | None = None
    parent1_first_name: str = ""
    parent1_last_name: str = ""
    parent1_email: str = ""
    parent1_phone: str = ""
    parent2_first_name: str = ""
    parent2_last_name: str = ""
    parent2_email: str = ""
    parent2_phone: str = ""
    address_line_1: str = ""
    address_line_2: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    household_code: str = ""

    @classmethod
    def from_raw(cls, index: int, raw: Mapping[str, Any]) -> "PlayerRow":
        data = canonicalize_row(raw, PLAYER_HEADER_ALIASES)

        def present(key: str) -> str | None:
            return clean_text(data[key]) if key in data else None

        return cls(
            index=index,
            raw=data,
            first_name=_text(data, "first_name"),
            last_name=_text(data, "last_name"),
            birth_date=normalize_date(data.get("birth_date")),
            registration_no=_text(data, "registration_no"),
            program_title=_text(data, "program_title"),
            gender=_text(data, "gender"),
            medical_conditions=_text(data, "medical_conditions"),
            uniform_shirt_size=_text(data, "uniform_shirt_size"),
            uniform_pants_size=_text(data, "uniform_pants_size"),
            new_or_returning=present("new_or_returning"),
            travel_player=present("travel_player"),
            payment_status=present("payment_status"),
            workbond_status=present("workbond_check_status"),
            parent1_first_name=_text(data, "parent1_firstname"),
            parent1_last_name=_text(data, "parent1_lastname"),
            parent1_email=normalize_email(data.get("parent1_email")),
            parent1_phone=_text(data, "parent1_phone1"),
            parent2_first_name=_text(data, "parent2_firstname"),
            parent2_last_name=_text(data, "parent2_lastname"),
            parent2_email=normalize_email(data.get("parent2_email")),
            parent2_phone=_text(data, "parent2_phone1"),
            address_line_1=_text(data, "address_line_1"),
            address_line_2=_text(data, "address_line_2"),
            city=_text(data, "city"),
            state=_text(data, "state"),
            zip_code=_text(data, "zip_code"),
            household_code=_text(data, "household_code"),
        )

    def validate(self) -> None:
        missing = [name for name in ("first_name", "last_name") if not getattr(self, name)]
        if missing:
            raise RowValidationError.missing(*missing)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def placeholder_guardian_name(self) -> str:
        return f"{self.full_name}'s Parent"

    @property
    def primary_contact_name(self) -> str:
        name = f"{self.parent1_first_name} {self.parent1_last_name}".strip()
        return name or self.placeholder_guardian_name

    @property
    def family_name(self) -> str:
        return self.parent1_last_name or self.last_name

    def contact_query(self) -> ContactQuery:
        return ContactQuery.build(
            email=self.parent1_email,
            phone=self.parent1_phone,
            name=self.parent1_last_name,
            address=self.address_line_1,
            household_code=self.household_code,
            extra_emails=(self.parent2_email,),
            extra_phones=(self.parent2_phone,),
        )

    def person_fields(self, *, division_id: int | None = None) -> dict[str, Any]:
        """
        Incoming player values for the merger.

        Program flags and payment are only included when their column is
        present in the import, so a file without them leaves stored values
        alone.
        """
        fields: dict[str, Any] = {
            "registration_no": self.registration_no,
            "birth_date": self.birth_date or "",
            "gender": self.gender,
            "program_title": self.program_title,
            "medical_conditions": self.medical_conditions,
            "uniform_shirt_size": self.uniform_shirt_size,
            "uniform_pants_size": self.uniform_pants_size,
        }
        if division_id is not None:
            fields["division_id"] = division_id
        if self.new_or_returning is not None:
            status = self.new_or_returning.lower()
            fields["is_new_player"] = status == "new"
            fields["is_returning"] = status == "returning"
        if self.travel_player is not None:
            fields["is_travel_player"] = parse_boolean(self.travel_player)
        if self.payment_status is not None:
            fields["payment_received"] = parse_payment_status(self.payment_status)
        return fields

    def household_fields(self, *, clear_workbond_if_empty: bool = True) -> dict[str, Any]:
        """Incoming household values for the merger."""
        fields: dict[str, Any] = {
            "primary_contact_name": f"{self.parent1_first_name} {self.parent1_last_name}".strip(),
            "primary_contact_email": self.parent1_email,
            "primary_contact_phone": self.parent1_phone,
            "parent2_first_name": self.parent2_first_name,
            "parent2_last_name": self.parent2_last_name,
            "parent2_email": self.parent2_email,
            "parent2_phone": self.parent2_phone,
            "address_line_1": self.address_line_1,
            "address_line_2": self.address_line_2,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
        }
        if self.workbond_status is not None and (self.workbond_status or clear_workbond_if_empty):
            fields["workbond_status"] = self.workbond_status
            fields["workbond_received"] = parse_workbond_status(self.workbond_status)
        return fields


@dataclass(frozen=True)
class VolunteerRow:
    """A volunteer sign-up row."""

    index: int
    raw: Mapping[str, Any] = field(repr=False)
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    interested_roles: str = ""
    household_code: str = ""

    @classmethod
    def from_raw(cls, index: int, raw: Mapping[str, Any]) -> "VolunteerRow":
        data = canonicalize_row(raw, VOLUNTEER_HEADER_ALIASES)
        first_name = _text(data, "first_name")
        last_name = _text(data, "last_name")
        if not first_name and not last_name:
            first_name, last_name = split_full_name(data.get("name"))
        return cls(
            index=index,
            raw=data,
            first_name=first_name,
            last_name=last_name,
            email=normalize_email(data.get("email")),
            phone=_text(data, "phone"),
            interested_roles=_text(data, "interested_roles"),
            household_code=_text(data, "household_code"),
        )

    def validate(self) -> None:
        if not self.email and not self.phone:
            raise RowValidationError("Email or phone required", missing_fields=("email", "phone"))

    def contact_query(self) -> ContactQuery:
        return ContactQuery.build(email=self.email, phone=self.phone, household_code=self.household_code)

    def person_fields(self) -> dict[str, Any]:
        return {
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "interested_roles": self.interested_roles,
        }


@dataclass(frozen=True)
class ShiftRow:
    """A worked workbond shift row from the shift tracking sheet."""

    index: int
    raw: Mapping[str, Any] = field(repr=False)
    volunteer_name: str = ""
    email: str = ""
    phone: str = ""
    player_name: str = ""
    raw_date: str = ""
    shift_date: date | None = None
    shift_type: str = ""
    hours: float = DEFAULT_SHIFT_HOURS
    description: str = ""

    @classmethod
    def from_raw(
        cls,
        index: int,
        raw: Mapping[str, Any],
        *,
        default_shift_type: str = "Concession Stand",
        default_hours: float = DEFAULT_SHIFT_HOURS,
    ) -> "ShiftRow":
        data = canonicalize_row(raw, SHIFT_HEADER_ALIASES)
        return cls(
            index=index,
            raw=data,
            volunteer_name=_text(data, "volunteer_name"),
            email=normalize_email(data.get("email")),
            phone=_text(data, "phone"),
            player_name=_text(data, "player_name"),
            raw_date=_text(data, "shift_date"),
            shift_date=parse_date(data.get("shift_date")),
            shift_type=_text(data, "shift_type") or default_shift_type,
            hours=parse_hours(data.get("hours"), default=default_hours),
            description=_text(data, "description"),
        )

    @property
    def is_blank(self) -> bool:
        """Rows with no volunteer name or no date are spreadsheet filler."""
        return not self.volunteer_name or not self.raw_date

    def validate(self) -> None:
        if self.shift_date is None:
            raise RowValidationError(f"Invalid shift date {self.raw_date!r}", missing_fields=("shift_date",))

    def contact_query(self) -> ContactQuery:
        return ContactQuery.build(email=self.email, phone=self.phone, player_name=self.player_name)


__all__ = [
    "ContactQuery",
    "PAYMENT_STATUS",
    "PlayerRow",
    "ShiftRow",
    "StatusVocabulary",
    "VolunteerRow",
    "WORKBOND_STATUS",
    "address_key",
    "canonicalize_row",
    "clean_text",
    "normalize_date",
    "normalize_email",
    "normalize_header",
    "normalize_phone",
    "parse_boolean",
    "parse_date",
    "parse_hours",
    "parse_payment_status",
    "parse_workbond_status",
    "split_full_name",
]
