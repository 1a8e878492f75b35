# league_app/services/workbond_exemptions.py
"""
Workbond Exemptions Service - shift requirements and season exemption sweep
"""

from dataclasses import asdict, dataclass
from typing import Dict, List, Optional, Tuple

from flask import current_app
from sqlalchemy.orm import Session, joinedload

from league_app.models import (
    DEFAULT_DIVISION_SHIFTS,
    EXEMPT_STATUS_PREFIX,
    BoardMember,
    Household,
    HouseholdSeasonWorkbond,
    Player,
    Volunteer,
    db,
)


@dataclass(frozen=True)
class ExemptionResult:
    """Outcome of an exemption check for one household"""

    exempt: bool
    reason: str = ""

    @property
    def status_note(self) -> str:
        return f"{EXEMPT_STATUS_PREFIX}{self.reason}" if self.exempt else ""


NOT_EXEMPT = ExemptionResult(exempt=False)


@dataclass
class ExemptionSweepSummary:
    season_id: int
    total_households: int = 0
    exempt_count: int = 0
    reset_count: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class BoardMemberDirectory:
    """
    Read-only lookup of active board members by household id and email.

    Built once per sweep; board membership is never written here.
    """

    def __init__(self, members: List[BoardMember]):
        self._by_household: Dict[int, List[BoardMember]] = {}
        self._by_email: Dict[str, List[BoardMember]] = {}
        self._count = len(members)
        for member in sorted(members, key=lambda item: item.id):
            if member.household_id is not None:
                self._by_household.setdefault(member.household_id, []).append(member)
            for email in (member.email, member.spouse_email):
                token = (email or "").strip().lower()
                if token:
                    self._by_email.setdefault(token, []).append(member)

    @classmethod
    def load(cls, session: Optional[Session] = None) -> "BoardMemberDirectory":
        session = session or db.session
        members = session.query(BoardMember).filter(BoardMember.is_active.is_(True)).all()
        return cls(members)

    def __len__(self) -> int:
        return self._count

    def find_for_household(self, household: Household) -> Optional[BoardMember]:
        members = self._by_household.get(household.id)
        if members:
            return members[0]
        for email in household.guardian_emails:
            members = self._by_email.get(email)
            if members:
                return members[0]
        return None


def evaluate_exemption(
    household: Household,
    season_id: int,
    directory: BoardMemberDirectory,
    players: Optional[List[Player]] = None,
) -> ExemptionResult:
    """
    Decide whether ``household`` is exempt from the workbond this season.

    Households with no players in the season are never exempt. When every
    player is in the Challenger division the household is exempt; otherwise a
    board member tied to the household (by id or guardian email) exempts it.
    """
    players = players if players is not None else household.players_for_season(season_id)
    if not players:
        return NOT_EXEMPT

    if all(player.is_challenger for player in players):
        if len(players) == 1:
            return ExemptionResult(True, "Challenger division player")
        return ExemptionResult(True, f"All {len(players)} players in Challenger division")

    member = directory.find_for_household(household)
    if member is not None:
        return ExemptionResult(True, f"Board Member: {member.name} ({member.role or 'Member'})")
    return NOT_EXEMPT


def calculate_required_shifts(household_id: int, season_id: int, *, session: Optional[Session] = None) -> int:
    """
    Shifts owed by a household: 0 when a volunteer holds an exempt role,
    otherwise the highest requirement across its players' divisions.
    """
    session = session or db.session
    volunteers = (
        session.query(Volunteer)
        .filter(Volunteer.household_id == household_id, Volunteer.season_id == season_id)
        .all()
    )
    if any(volunteer.is_workbond_exempt for volunteer in volunteers):
        return 0

    players = (
        session.query(Player)
        .options(joinedload(Player.division))
        .filter(Player.household_id == household_id, Player.season_id == season_id)
        .all()
    )
    required = 0
    for player in players:
        requirement = player.division.required_shifts if player.division is not None else DEFAULT_DIVISION_SHIFTS
        required = max(required, requirement)
    return required


def update_shift_requirements(household_id: int, season_id: int, *, session: Optional[Session] = None) -> int:
    """Store the household's requirement on each of its season volunteers. Caller commits."""
    session = session or db.session
    required = calculate_required_shifts(household_id, season_id, session=session)
    volunteers = (
        session.query(Volunteer)
        .filter(Volunteer.household_id == household_id, Volunteer.season_id == season_id)
        .all()
    )
    for volunteer in volunteers:
        volunteer.shifts_required = required
    return required


def _season_households(session: Session, season_id: int) -> List[Tuple[Household, List[Player]]]:
    players = (
        session.query(Player)
        .options(joinedload(Player.division), joinedload(Player.household))
        .filter(Player.season_id == season_id, Player.household_id.isnot(None))
        .order_by(Player.household_id, Player.id)
        .all()
    )
    grouped: Dict[int, Tuple[Household, List[Player]]] = {}
    for player in players:
        entry = grouped.setdefault(player.household_id, (player.household, []))
        entry[1].append(player)
    return list(grouped.values())


def apply_season_exemptions(season_id: int, *, session: Optional[Session] = None) -> ExemptionSweepSummary:
    """
    Mark exempt households for the season and clear stale exemptions.

    Exempt households get ``Exempt - <reason>`` as their workbond status with
    received False, mirrored on the season workbond record. Households still
    marked exempt that no longer qualify are reset to an empty status.
    """
    session = session or db.session
    directory = BoardMemberDirectory.load(session)
    summary = ExemptionSweepSummary(season_id=season_id)

    for household, players in _season_households(session, season_id):
        summary.total_households += 1
        result = evaluate_exemption(household, season_id, directory, players)
        if result.exempt:
            summary.exempt_count += 1
        elif household.is_marked_exempt:
            summary.reset_count += 1
        else:
            continue
        household.workbond_status = result.status_note
        household.workbond_received = False
        HouseholdSeasonWorkbond.upsert(
            household_id=household.id,
            season_id=season_id,
            received=False,
            notes=result.status_note,
        )

    session.commit()
    current_app.logger.info(
        "Workbond exemption sweep for season %s: %s exempt, %s reset of %s households",
        season_id,
        summary.exempt_count,
        summary.reset_count,
        summary.total_households,
        extra={"importer_exemptions": summary.to_dict()},
    )
    return summary
