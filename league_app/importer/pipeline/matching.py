"""
Household and person resolution for import rows.

Strategies run in the order held by a ``MatchPolicy``. The first strategy
that yields at least one candidate decides the result; later strategies are
not consulted. Candidates come back de-duplicated in store order (ascending
id) and the first one is used. When a strategy yields more than one
candidate the result is flagged ambiguous, logged and counted, but never
treated as a failure.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Generic, Iterable, Mapping, Sequence, TypeVar

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from config.monitoring import ImporterMonitoring
from league_app.importer.errors import MatchAmbiguityWarning
from league_app.importer.pipeline.context import HouseholdLookupCache
from league_app.importer.pipeline.normalize import (
    ContactQuery,
    address_key,
    clean_text,
    normalize_date,
    normalize_email,
    normalize_phone,
)
from league_app.models import Household, Person, Player, Volunteer

T = TypeVar("T")

DEFAULT_MIN_PHONE_DIGITS = 7


class HouseholdStrategy(str, enum.Enum):
    HOUSEHOLD_CODE = "household_code"
    EMAIL = "email"
    PHONE = "phone"
    PLAYER_NAME = "player_name"
    FUZZY_NAME_ADDRESS = "fuzzy_name_address"


class PersonStrategy(str, enum.Enum):
    NAME = "name"
    REGISTRATION_NO = "registration_no"
    NAME_BIRTH_DATE = "name_birth_date"
    EMAIL = "email"
    PHONE = "phone"


class LinkMethod(str, enum.Enum):
    """How a person's household link was established, beyond matcher strategies."""

    CREATED = "created"
    MANUAL = "manual_link"
    AUTO = "auto_link"


# Strength of the evidence behind a household link. A stored link is only
# replaced by evidence of equal or higher confidence.
LINK_CONFIDENCE: Mapping[str, int] = {
    LinkMethod.MANUAL.value: 100,
    HouseholdStrategy.HOUSEHOLD_CODE.value: 100,
    HouseholdStrategy.EMAIL.value: 80,
    LinkMethod.CREATED.value: 80,
    LinkMethod.AUTO.value: 70,
    HouseholdStrategy.PHONE.value: 60,
    HouseholdStrategy.PLAYER_NAME.value: 40,
    HouseholdStrategy.FUZZY_NAME_ADDRESS.value: 20,
}


def link_confidence(method: str | enum.Enum | None) -> int:
    if method is None:
        return 0
    key = method.value if isinstance(method, enum.Enum) else str(method)
    return LINK_CONFIDENCE.get(key, 0)


PLAYER_HOUSEHOLD_ORDER = (
    HouseholdStrategy.HOUSEHOLD_CODE,
    HouseholdStrategy.EMAIL,
    HouseholdStrategy.PHONE,
    HouseholdStrategy.FUZZY_NAME_ADDRESS,
)
VOLUNTEER_HOUSEHOLD_ORDER = (
    HouseholdStrategy.HOUSEHOLD_CODE,
    HouseholdStrategy.EMAIL,
    HouseholdStrategy.PHONE,
)
SHIFT_HOUSEHOLD_ORDER = (
    HouseholdStrategy.EMAIL,
    HouseholdStrategy.PHONE,
    HouseholdStrategy.PLAYER_NAME,
)
PLAYER_PERSON_ORDER = (
    PersonStrategy.NAME,
    PersonStrategy.REGISTRATION_NO,
    PersonStrategy.NAME_BIRTH_DATE,
)
VOLUNTEER_PERSON_ORDER = (
    PersonStrategy.EMAIL,
    PersonStrategy.PHONE,
    PersonStrategy.NAME,
)


@dataclass(frozen=True)
class MatchPolicy:
    """Ordered strategies plus the knobs they need."""

    household_strategies: tuple[HouseholdStrategy, ...] = PLAYER_HOUSEHOLD_ORDER
    person_strategies: tuple[PersonStrategy, ...] = PLAYER_PERSON_ORDER
    min_phone_digits: int = DEFAULT_MIN_PHONE_DIGITS

    @classmethod
    def for_players(cls, *, min_phone_digits: int = DEFAULT_MIN_PHONE_DIGITS) -> "MatchPolicy":
        return cls(PLAYER_HOUSEHOLD_ORDER, PLAYER_PERSON_ORDER, min_phone_digits)

    @classmethod
    def for_volunteers(cls, *, min_phone_digits: int = DEFAULT_MIN_PHONE_DIGITS) -> "MatchPolicy":
        return cls(VOLUNTEER_HOUSEHOLD_ORDER, VOLUNTEER_PERSON_ORDER, min_phone_digits)

    @classmethod
    def for_shifts(cls, *, min_phone_digits: int = DEFAULT_MIN_PHONE_DIGITS) -> "MatchPolicy":
        return cls(SHIFT_HOUSEHOLD_ORDER, VOLUNTEER_PERSON_ORDER, min_phone_digits)


@dataclass(frozen=True)
class MatchResult(Generic[T]):
    """Outcome of one resolution call."""

    candidates: tuple[T, ...] = ()
    strategy: str | None = None
    entity: str = "household"

    @property
    def best(self) -> T | None:
        return self.candidates[0] if self.candidates else None

    @property
    def is_match(self) -> bool:
        return bool(self.candidates)

    @property
    def is_ambiguous(self) -> bool:
        return len(self.candidates) > 1

    @property
    def confidence(self) -> int:
        return link_confidence(self.strategy) if self.candidates else 0

    @property
    def warning(self) -> MatchAmbiguityWarning | None:
        if not self.is_ambiguous:
            return None
        ids = ", ".join(str(getattr(candidate, "id", "?")) for candidate in self.candidates)
        return MatchAmbiguityWarning(
            f"{len(self.candidates)} {self.entity} candidates matched by {self.strategy} (ids {ids}); "
            f"using {getattr(self.best, 'id', '?')}"
        )


def _like_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _dedupe(items: Iterable[T]) -> list[T]:
    seen: set[int] = set()
    unique: list[T] = []
    for item in items:
        key = id(item) if getattr(item, "id", None) is None else item.id  # type: ignore[attr-defined]
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique


def _report(result: MatchResult, *, context: Mapping[str, Any] | None = None) -> None:
    if not result.is_match:
        return
    ImporterMonitoring.record_match(
        entity=result.entity,
        strategy=str(result.strategy),
        ambiguous=result.is_ambiguous,
    )
    warning = result.warning
    if warning is not None:
        current_app.logger.warning(
            "%s: %s",
            type(warning).__name__,
            warning,
            extra={
                "importer_match_entity": result.entity,
                "importer_match_strategy": result.strategy,
                "importer_match_candidate_ids": [getattr(c, "id", None) for c in result.candidates],
                **dict(context or {}),
            },
        )


@dataclass
class HouseholdMatcher:
    """Resolve a household from guardian contact evidence."""

    session: Session
    policy: MatchPolicy = field(default_factory=MatchPolicy)
    cache: HouseholdLookupCache | None = None
    season_id: int | None = None

    def find_household(self, contact: ContactQuery) -> Household | None:
        return self.candidates(contact).best

    def candidates(self, contact: ContactQuery, *, log_context: Mapping[str, Any] | None = None) -> MatchResult:
        for strategy in self.policy.household_strategies:
            households = self._run(strategy, contact)
            if households:
                result = MatchResult(tuple(households), strategy.value, "household")
                _report(result, context=log_context)
                return result
        return MatchResult((), None, "household")

    # -- strategies ---------------------------------------------------------

    def _run(self, strategy: HouseholdStrategy, contact: ContactQuery) -> list[Household]:
        if strategy is HouseholdStrategy.HOUSEHOLD_CODE:
            values: tuple = (contact.household_code.upper(),) if contact.household_code else ()
            return self._cached(strategy, values, self._by_household_code)
        if strategy is HouseholdStrategy.EMAIL:
            return self._cached(strategy, contact.emails, self._by_email)
        if strategy is HouseholdStrategy.PHONE:
            usable = tuple(phone for phone in contact.phones if len(phone) >= self.policy.min_phone_digits)
            return self._cached(strategy, usable, self._by_phone)
        if strategy is HouseholdStrategy.PLAYER_NAME:
            return self._by_player_name(contact.player_name)
        if strategy is HouseholdStrategy.FUZZY_NAME_ADDRESS:
            return self._by_name_and_address(contact.family_name, contact.address)
        raise ValueError(f"Unsupported household strategy: {strategy}")

    def _cached(self, strategy: HouseholdStrategy, values: tuple, loader) -> list[Household]:
        if not values:
            return []
        key = (strategy.value, *values)
        if self.cache is not None:
            cached = self.cache.candidates(key)
            if cached is not None:
                return cached
        households = _dedupe(loader(values))
        if self.cache is not None:
            self.cache.store(key, households)
        return households

    def _by_household_code(self, codes: Sequence[str]) -> list[Household]:
        return (
            self.session.query(Household)
            .filter(func.upper(Household.household_code).in_(list(codes)))
            .order_by(Household.id)
            .all()
        )

    def _by_email(self, emails: Sequence[str]) -> list[Household]:
        return (
            self.session.query(Household)
            .filter(
                or_(
                    func.lower(Household.primary_contact_email).in_(list(emails)),
                    func.lower(Household.parent2_email).in_(list(emails)),
                )
            )
            .order_by(Household.id)
            .all()
        )

    def _by_phone(self, phones: Sequence[str]) -> list[Household]:
        # Last-four pre-filter in SQL, exact digit equality in Python.
        conditions = []
        for suffix in sorted({phone[-4:] for phone in phones}):
            pattern = f"%{_like_escape(suffix)}%"
            conditions.append(Household.primary_contact_phone.like(pattern, escape="\\"))
            conditions.append(Household.parent2_phone.like(pattern, escape="\\"))
        rows = self.session.query(Household).filter(or_(*conditions)).order_by(Household.id).all()
        wanted = set(phones)
        return [
            household
            for household in rows
            if any(normalize_phone(stored) in wanted for stored in household.guardian_phones)
        ]

    def _by_player_name(self, player_name: str) -> list[Household]:
        name = clean_text(player_name).lower()
        if not name or self.season_id is None:
            return []
        full_name = func.lower(Player.first_name + " " + Player.last_name)
        players = (
            self.session.query(Player)
            .filter(Player.season_id == self.season_id)
            .filter(Player.household_id.isnot(None))
            .filter(full_name == name)
            .order_by(Player.id)
            .all()
        )
        return _dedupe(player.household for player in players if player.household is not None)

    def _by_name_and_address(self, family_name: str, address: str) -> list[Household]:
        wanted_address = address_key(address)
        if not family_name or not wanted_address:
            return []
        pattern = f"%{_like_escape(family_name)}%"
        rows = (
            self.session.query(Household)
            .filter(
                or_(
                    Household.primary_contact_name.ilike(pattern, escape="\\"),
                    Household.parent2_last_name.ilike(pattern, escape="\\"),
                )
            )
            .order_by(Household.id)
            .all()
        )
        return [household for household in rows if wanted_address in address_key(household.address_line_1)]


@dataclass
class PersonMatcher:
    """Resolve an existing season person (player or volunteer) for re-import."""

    session: Session
    policy: MatchPolicy = field(default_factory=MatchPolicy)
    model: type[Person] = Player

    def find_person(self, season_id: int, attrs: Mapping[str, Any]) -> Person | None:
        return self.candidates(season_id, attrs).best

    def candidates(
        self,
        season_id: int,
        attrs: Mapping[str, Any],
        *,
        log_context: Mapping[str, Any] | None = None,
    ) -> MatchResult:
        entity = self.model.__name__.lower()
        for strategy in self.policy.person_strategies:
            people = _dedupe(self._run(strategy, season_id, attrs))
            if people:
                result = MatchResult(tuple(people), strategy.value, entity)
                _report(result, context=log_context)
                return result
        return MatchResult((), None, entity)

    def _base_query(self, season_id: int):
        return self.session.query(self.model).filter(self.model.season_id == season_id)

    def _name_filter(self, query, attrs: Mapping[str, Any]):
        first = clean_text(attrs.get("first_name")).lower()
        last = clean_text(attrs.get("last_name")).lower()
        if not first or not last:
            return None
        return query.filter(func.lower(self.model.first_name) == first).filter(
            func.lower(self.model.last_name) == last
        )

    def _run(self, strategy: PersonStrategy, season_id: int, attrs: Mapping[str, Any]) -> list[Person]:
        query = self._base_query(season_id)
        if strategy is PersonStrategy.NAME:
            query = self._name_filter(query, attrs)
        elif strategy is PersonStrategy.REGISTRATION_NO:
            registration_no = clean_text(attrs.get("registration_no"))
            if not registration_no or not hasattr(self.model, "registration_no"):
                return []
            query = query.filter(self.model.registration_no == registration_no)
        elif strategy is PersonStrategy.NAME_BIRTH_DATE:
            birth_date = normalize_date(attrs.get("birth_date"))
            query = self._name_filter(query, attrs)
            if query is None or birth_date is None:
                return []
            query = query.filter(self.model.birth_date == birth_date)
        elif strategy is PersonStrategy.EMAIL:
            email = normalize_email(attrs.get("email"))
            if not email or not hasattr(self.model, "email"):
                return []
            query = query.filter(func.lower(self.model.email) == email)
        elif strategy is PersonStrategy.PHONE:
            return self._by_phone(query, attrs)
        else:
            raise ValueError(f"Unsupported person strategy: {strategy}")
        if query is None:
            return []
        return query.order_by(self.model.id).all()

    def _by_phone(self, query, attrs: Mapping[str, Any]) -> list[Person]:
        phone = normalize_phone(attrs.get("phone"))
        if len(phone) < self.policy.min_phone_digits or not hasattr(self.model, "phone"):
            return []
        pattern = f"%{_like_escape(phone[-4:])}%"
        rows = query.filter(self.model.phone.like(pattern, escape="\\")).order_by(self.model.id).all()
        return [person for person in rows if normalize_phone(person.phone) == phone]


def volunteer_matcher(session: Session, policy: MatchPolicy | None = None) -> PersonMatcher:
    return PersonMatcher(session, policy or MatchPolicy.for_volunteers(), Volunteer)


__all__ = [
    "HouseholdMatcher",
    "HouseholdStrategy",
    "LINK_CONFIDENCE",
    "LinkMethod",
    "MatchPolicy",
    "MatchResult",
    "PersonMatcher",
    "PersonStrategy",
    "link_confidence",
    "volunteer_matcher",
]
