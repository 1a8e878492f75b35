"""
Per-batch state shared by the matcher and reconcilers.

A ``BatchContext`` is created at the start of one batch and discarded at the
end. Nothing here is module-global, so concurrent batches never observe each
other's cached lookups.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Hashable, Mapping, Sequence

from sqlalchemy.orm import Session

from league_app.importer.errors import BatchInputError
from league_app.importer.pipeline.normalize import clean_text, parse_boolean
from league_app.models import Division, Household, Season

LookupKey = tuple[Hashable, ...]


@dataclass(frozen=True)
class ImportOptions:
    """Caller-supplied switches for one batch."""

    only_active: bool = False
    clear_workbond_if_empty: bool = True
    allow_link_override: bool = False

    _ALIASES = {
        "onlyactive": "only_active",
        "clearworkbondifempty": "clear_workbond_if_empty",
        "allowlinkoverride": "allow_link_override",
    }

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> "ImportOptions":
        if raw is None:
            return cls()
        if not isinstance(raw, Mapping):
            raise BatchInputError("options must be an object.")
        values: dict[str, bool] = {}
        for key, value in raw.items():
            target = cls._ALIASES.get(str(key).replace("_", "").replace("-", "").lower())
            if target is None:
                continue
            values[target] = value if isinstance(value, bool) else parse_boolean(value)
        return cls(**values)

    def to_dict(self) -> dict[str, bool]:
        return {
            "only_active": self.only_active,
            "clear_workbond_if_empty": self.clear_workbond_if_empty,
            "allow_link_override": self.allow_link_override,
        }


class HouseholdLookupCache:
    """
    Memo of household-by-contact query results for one batch.

    Entries hold household ids in store order. Any household write made by the
    batch, and any rolled-back row, invalidates the whole cache: a later row
    must see households created or re-keyed by earlier rows.
    """

    def __init__(self, session: Session) -> None:
        self._session = session
        self._entries: dict[LookupKey, tuple[int, ...]] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: LookupKey) -> bool:
        return key in self._entries

    def lookup(self, key: LookupKey) -> Household | None:
        households = self.candidates(key)
        if not households:
            return None
        return households[0]

    def candidates(self, key: LookupKey) -> list[Household] | None:
        """Cached households for ``key``; ``None`` when the key is not cached."""
        ids = self._entries.get(key)
        if ids is None:
            self.misses += 1
            return None
        households = [self._session.get(Household, household_id) for household_id in ids]
        if any(household is None for household in households):
            self.invalidate()
            self.misses += 1
            return None
        self.hits += 1
        return households  # type: ignore[return-value]

    def store(self, key: LookupKey, households: Sequence[Household]) -> None:
        ids = tuple(household.id for household in households if household.id is not None)
        if len(ids) == len(households):
            self._entries[key] = ids

    def invalidate(self) -> None:
        self._entries.clear()


class DivisionResolver:
    """Resolves a registration program title to a division of the season."""

    def __init__(self, divisions: Sequence[Division]) -> None:
        self._divisions = sorted(divisions, key=lambda division: division.id)

    @classmethod
    def for_season(cls, session: Session, season_id: int) -> "DivisionResolver":
        divisions = session.query(Division).filter(Division.season_id == season_id).all()
        return cls(divisions)

    def resolve(self, program_title: object | None) -> int | None:
        title = clean_text(program_title).lower()
        if not title:
            return None
        for division in self._divisions:
            if division.name.lower() == title:
                return division.id
        for division in self._divisions:
            if title in division.name.lower():
                return division.id
        for division in self._divisions:
            if division.name.lower() in title:
                return division.id
        return None


@dataclass
class BatchContext:
    """Everything one batch needs besides the rows themselves."""

    session: Session
    season: Season
    options: ImportOptions = field(default_factory=ImportOptions)
    config: Mapping[str, Any] = field(default_factory=dict)
    import_run_id: int | None = None
    cache: HouseholdLookupCache = field(init=False)
    divisions: DivisionResolver = field(init=False)

    def __post_init__(self) -> None:
        self.cache = HouseholdLookupCache(self.session)
        self.divisions = DivisionResolver.for_season(self.session, self.season.id)

    @property
    def season_id(self) -> int:
        return self.season.id

    def setting(self, name: str, default: Any = None) -> Any:
        value = self.config.get(name)
        return default if value is None else value

    def household_written(self) -> None:
        self.cache.invalidate()

    def close(self) -> None:
        self.cache.invalidate()


__all__ = [
    "BatchContext",
    "DivisionResolver",
    "HouseholdLookupCache",
    "ImportOptions",
]
