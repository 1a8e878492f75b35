"""
Merge policy configuration for import reconciliation.

The reconciler consults this module to decide, field by field, how an incoming
import value is folded into an existing household or person record:

``cumulative``
    Contact knowledge accumulates. The incoming value is written only when it
    is non-empty and differs from the stored value.
``authoritative``
    The import feed owns the field. When the column is present in the row the
    latest value replaces the stored one, even when empty.
``fill_blank``
    The incoming value is written only when the stored value is empty.

Operators can override the built-in profiles by pointing
``IMPORTER_MERGE_PROFILE_PATH`` at a JSON or YAML file with ``household``,
``player`` and/or ``volunteer`` sections.
"""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping, MutableMapping, Sequence

import yaml


class MergePolicy(str, enum.Enum):
    CUMULATIVE = "cumulative"
    AUTHORITATIVE = "authoritative"
    FILL_BLANK = "fill_blank"


@dataclass(frozen=True)
class FieldRule:
    """
    Merge behavior for a single model attribute.

    Attributes:
        field_name: Target attribute on the Household/Player/Volunteer model.
        policy: How incoming values are folded into the stored value.
    """

    field_name: str
    policy: MergePolicy = MergePolicy.CUMULATIVE


@dataclass(frozen=True)
class FieldGroup:
    """Group of related fields, used for summaries and override files."""

    name: str
    display_name: str
    fields: Sequence[FieldRule]


@dataclass(frozen=True)
class MergeProfile:
    key: str
    label: str
    field_groups: Sequence[FieldGroup]

    def find_rule(self, field_name: str) -> FieldRule | None:
        for group in self.field_groups:
            for rule in group.fields:
                if rule.field_name == field_name:
                    return rule
        return None

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(rule.field_name for group in self.field_groups for rule in group.fields)


# ---------------------------------------------------------------------------
# Default profiles
# ---------------------------------------------------------------------------

_C = MergePolicy.CUMULATIVE
_A = MergePolicy.AUTHORITATIVE
_F = MergePolicy.FILL_BLANK

DEFAULT_HOUSEHOLD_PROFILE = MergeProfile(
    key="household",
    label="Household",
    field_groups=(
        FieldGroup(
            "primary_guardian",
            "Primary guardian",
            (
                FieldRule("primary_contact_name", _C),
                FieldRule("primary_contact_email", _C),
                FieldRule("primary_contact_phone", _C),
            ),
        ),
        FieldGroup(
            "second_guardian",
            "Second guardian",
            (
                FieldRule("parent2_first_name", _C),
                FieldRule("parent2_last_name", _C),
                FieldRule("parent2_email", _C),
                FieldRule("parent2_phone", _C),
            ),
        ),
        FieldGroup(
            "address",
            "Address",
            (
                FieldRule("address_line_1", _C),
                FieldRule("address_line_2", _C),
                FieldRule("city", _C),
                FieldRule("state", _C),
                FieldRule("zip_code", _C),
            ),
        ),
        FieldGroup(
            "workbond",
            "Workbond",
            (
                FieldRule("workbond_status", _A),
                FieldRule("workbond_received", _A),
            ),
        ),
    ),
)

DEFAULT_PLAYER_PROFILE = MergeProfile(
    key="player",
    label="Player",
    field_groups=(
        FieldGroup(
            "identity",
            "Identity",
            (
                FieldRule("registration_no", _C),
                FieldRule("birth_date", _C),
                FieldRule("gender", _C),
            ),
        ),
        FieldGroup(
            "program",
            "Program",
            (
                FieldRule("program_title", _C),
                FieldRule("division_id", _C),
                FieldRule("is_new_player", _A),
                FieldRule("is_returning", _A),
                FieldRule("is_travel_player", _A),
            ),
        ),
        FieldGroup(
            "details",
            "Details",
            (
                FieldRule("medical_conditions", _C),
                FieldRule("uniform_shirt_size", _C),
                FieldRule("uniform_pants_size", _C),
                FieldRule("payment_received", _A),
            ),
        ),
    ),
)

DEFAULT_VOLUNTEER_PROFILE = MergeProfile(
    key="volunteer",
    label="Volunteer",
    field_groups=(
        FieldGroup(
            "contact",
            "Contact",
            (
                FieldRule("first_name", _F),
                FieldRule("last_name", _F),
                FieldRule("email", _F),
                FieldRule("phone", _F),
            ),
        ),
        FieldGroup(
            "roles",
            "Roles",
            (FieldRule("interested_roles", _C),),
        ),
    ),
)

DEFAULT_PROFILES: Mapping[str, MergeProfile] = {
    profile.key: profile
    for profile in (DEFAULT_HOUSEHOLD_PROFILE, DEFAULT_PLAYER_PROFILE, DEFAULT_VOLUNTEER_PROFILE)
}


# ---------------------------------------------------------------------------
# Loading helpers
# ---------------------------------------------------------------------------


class MergePolicyConfigError(RuntimeError):
    """Raised when a merge profile override cannot be parsed."""


def _load_override(path: Path) -> MutableMapping[str, object]:
    if not path.exists():
        raise MergePolicyConfigError(f"Merge profile override file {path} does not exist.")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:  # pragma: no cover - filesystem failure
        raise MergePolicyConfigError(f"Unable to read merge profile override file {path}: {exc}") from exc

    if path.suffix.lower() in {".yaml", ".yml"}:
        data = yaml.safe_load(text)
    else:
        data = json.loads(text)

    if not isinstance(data, Mapping):
        raise MergePolicyConfigError("Merge profile override must be a JSON/YAML object.")
    return dict(data)


def _coerce_policy(value: object, *, field_name: str) -> MergePolicy:
    token = str(value or MergePolicy.CUMULATIVE.value).strip().lower()
    try:
        return MergePolicy(token)
    except ValueError as exc:
        allowed = ", ".join(policy.value for policy in MergePolicy)
        raise MergePolicyConfigError(f"Unknown merge policy {token!r} for {field_name}; expected one of {allowed}.") from exc


def _coerce_field_rule(raw: Mapping[str, object]) -> FieldRule:
    name = str(raw.get("field_name") or "").strip()
    if not name:
        raise MergePolicyConfigError("Each field rule requires a non-empty field_name.")
    return FieldRule(field_name=name, policy=_coerce_policy(raw.get("policy"), field_name=name))


def _coerce_field_group(raw: Mapping[str, object]) -> FieldGroup:
    name = str(raw.get("name") or "").strip()
    if not name:
        raise MergePolicyConfigError("Each field group requires a non-empty name.")
    display_name = str(raw.get("display_name") or name).strip()
    fields_raw = raw.get("fields") or ()
    if not isinstance(fields_raw, Iterable) or isinstance(fields_raw, (str, bytes)):
        raise MergePolicyConfigError(f"Group {name} fields must be a sequence.")
    rules = tuple(_coerce_field_rule(rule) for rule in fields_raw)  # type: ignore[arg-type]
    return FieldGroup(name=name, display_name=display_name or name.title(), fields=rules)


def _coerce_profile(raw: Mapping[str, object], default: MergeProfile) -> MergeProfile:
    label = str(raw.get("label") or default.label).strip() or default.label
    raw_groups = raw.get("field_groups") or ()
    if not isinstance(raw_groups, Iterable) or isinstance(raw_groups, (str, bytes)):
        raise MergePolicyConfigError(f"{default.key}.field_groups must be a sequence.")
    groups = tuple(_coerce_field_group(group) for group in raw_groups)  # type: ignore[arg-type]
    if not groups:
        groups = tuple(default.field_groups)
    return MergeProfile(key=default.key, label=label, field_groups=groups)


def load_profile(entity: str, env: Mapping[str, object] | None = None) -> MergeProfile:
    """
    Load the active merge profile for ``entity`` (household, player, volunteer).

    If ``IMPORTER_MERGE_PROFILE_PATH`` is set in ``env`` and the override file
    has a section for the entity, that section replaces the built-in default.
    """

    try:
        default = DEFAULT_PROFILES[entity]
    except KeyError as exc:
        raise MergePolicyConfigError(f"Unknown merge profile entity {entity!r}.") from exc

    env_map = env or {}
    override_path = env_map.get("IMPORTER_MERGE_PROFILE_PATH")
    if not override_path:
        return default
    raw = _load_override(Path(str(override_path)))
    section = raw.get(entity)
    if section is None:
        return default
    if not isinstance(section, Mapping):
        raise MergePolicyConfigError(f"Merge profile section {entity!r} must be an object.")
    return _coerce_profile(section, default)


__all__ = [
    "DEFAULT_HOUSEHOLD_PROFILE",
    "DEFAULT_PLAYER_PROFILE",
    "DEFAULT_PROFILES",
    "DEFAULT_VOLUNTEER_PROFILE",
    "FieldGroup",
    "FieldRule",
    "MergePolicy",
    "MergePolicyConfigError",
    "MergeProfile",
    "load_profile",
]
