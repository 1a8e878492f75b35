"""
Field-level merge of incoming import values into existing records.

The merger never writes. It compares an incoming payload with a snapshot of
the stored record under a ``MergeProfile`` and returns the minimal set of
changes; callers apply only those keys. Keys absent from the incoming payload
are never touched, which is how "column not present in this import" is
expressed.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Any, Mapping, MutableMapping, Sequence

from config.merge_policy import (
    DEFAULT_HOUSEHOLD_PROFILE,
    DEFAULT_PLAYER_PROFILE,
    MergePolicy,
    MergeProfile,
)

from .context import ImportOptions
from .matching import HouseholdStrategy, link_confidence

WORKBOND_FIELDS = ("workbond_status", "workbond_received")

# A stored link whose provenance was never recorded is trusted like an email
# match.
UNKNOWN_LINK_CONFIDENCE = link_confidence(HouseholdStrategy.EMAIL)


def _normalize_value(value: Any) -> Any:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


def _is_effectively_null(value: Any) -> bool:
    return _normalize_value(value) is None


@dataclass(frozen=True)
class FieldChange:
    field_name: str
    policy: MergePolicy
    previous: Any
    value: Any


@dataclass(frozen=True)
class MergeResult:
    changes: Mapping[str, Any]
    decisions: Sequence[FieldChange]
    stats: Mapping[str, int]

    @property
    def changed(self) -> bool:
        return bool(self.changes)


def snapshot(model: Any, field_names: Sequence[str]) -> dict[str, Any]:
    return {name: getattr(model, name, None) for name in field_names}


def _policy_for(profile: MergeProfile, field_name: str) -> MergePolicy:
    rule = profile.find_rule(field_name)
    return rule.policy if rule is not None else MergePolicy.CUMULATIVE


def merge_fields(
    existing: Mapping[str, Any] | Any,
    incoming: Mapping[str, Any],
    profile: MergeProfile,
) -> MergeResult:
    """
    Compute the minimal diff of ``incoming`` against ``existing``.

    ``existing`` may be a mapping snapshot or a model instance.
    """

    current = existing if isinstance(existing, Mapping) else snapshot(existing, list(incoming))
    changes: MutableMapping[str, Any] = {}
    decisions: list[FieldChange] = []
    stats: Counter[str] = Counter()

    for field_name, raw_value in incoming.items():
        policy = _policy_for(profile, field_name)
        previous = current.get(field_name)
        value = raw_value.strip() if isinstance(raw_value, str) else raw_value

        if policy is MergePolicy.AUTHORITATIVE:
            if isinstance(previous, str) or isinstance(value, str):
                value = "" if value is None else value
        elif _is_effectively_null(value):
            stats["skipped_empty"] += 1
            continue
        elif policy is MergePolicy.FILL_BLANK and not _is_effectively_null(previous):
            stats["kept_existing"] += 1
            continue

        if _normalize_value(value) == _normalize_value(previous):
            stats["unchanged"] += 1
            continue

        changes[field_name] = value
        decisions.append(FieldChange(field_name, policy, previous, value))
        stats[f"{policy.value}_writes"] += 1

    return MergeResult(changes=dict(changes), decisions=tuple(decisions), stats=dict(stats))


def merge_household(
    existing: Any,
    incoming: Mapping[str, Any],
    options: ImportOptions | None = None,
    *,
    profile: MergeProfile | None = None,
) -> dict[str, Any]:
    """
    Household contact and workbond changes.

    With ``clear_workbond_if_empty`` off, an empty incoming workbond status is
    treated cumulatively: it leaves the stored status and flag alone.
    """

    options = options or ImportOptions()
    payload = dict(incoming)
    if not options.clear_workbond_if_empty and _is_effectively_null(payload.get("workbond_status")):
        for name in WORKBOND_FIELDS:
            payload.pop(name, None)
    return dict(merge_fields(existing, payload, profile or DEFAULT_HOUSEHOLD_PROFILE).changes)


def merge_person(
    existing: Any,
    incoming: Mapping[str, Any],
    profile: MergeProfile | None = None,
) -> dict[str, Any]:
    return dict(merge_fields(existing, incoming, profile or DEFAULT_PLAYER_PROFILE).changes)


def merge_contact_link(
    existing_link: int | None,
    incoming_link: int | None,
    *,
    existing_method: str | None = None,
    incoming_method: str | None = None,
    allow_override: bool = False,
) -> int | None:
    """
    Decide the household link after an import row.

    An empty incoming link never clears a stored one. A stored link is only
    replaced by evidence at least as strong as the evidence that created it,
    unless ``allow_override`` is set.
    """

    if incoming_link is None:
        return existing_link
    if existing_link is None or existing_link == incoming_link or allow_override:
        return incoming_link
    stored = link_confidence(existing_method) if existing_method else UNKNOWN_LINK_CONFIDENCE
    if link_confidence(incoming_method) >= stored:
        return incoming_link
    return existing_link


def apply_changes(model: Any, changes: Mapping[str, Any]) -> Any:
    for field_name, value in changes.items():
        setattr(model, field_name, value)
    return model


__all__ = [
    "FieldChange",
    "MergeResult",
    "UNKNOWN_LINK_CONFIDENCE",
    "WORKBOND_FIELDS",
    "apply_changes",
    "merge_contact_link",
    "merge_fields",
    "merge_household",
    "merge_person",
    "snapshot",
]
