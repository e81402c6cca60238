"""
Standings service: points and medal tallies

compute_standings() is a pure function over the whole dataset. It is
recomputed on every call (nothing is maintained incrementally), so it is
idempotent and safe for any number of concurrent readers.

Crediting rules per ranked round entry:
- individual event: the participant AND the participant's department each get
  the rank's points and medal
- group event: the team's department gets the points/medal once, and EVERY
  team member gets the full points/medal as well (blanket credit, not split)

Qualification-only entries never score.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple
import logging

from sqlalchemy.orm import Session

from models import (
    Department,
    Discipline,
    Event,
    EventEntry,
    EventStatus,
    Participant,
    Team,
    TeamMember,
)
from core.exceptions import ParticipantNotFound
from services.naming_service import normalize_registration_code

logger = logging.getLogger(__name__)

INDIVIDUAL_DEFAULT_POINTS = (5, 3, 1)
GROUP_DEFAULT_POINTS = (10, 6, 4)
MEDALS = {1: "gold", 2: "silver", 3: "bronze"}
LEADERBOARD_SIZE = 10


def default_points(discipline) -> Tuple[int, int, int]:
    if Discipline(discipline) == Discipline.GROUP:
        return GROUP_DEFAULT_POINTS
    return INDIVIDUAL_DEFAULT_POINTS


def points_for_rank(event: Event, rank: int) -> int:
    """
    Points an event awards for a rank

    An unset (None) slot falls back to the discipline default:
    5/3/1 for individual events, 10/6/4 for group events.
    An explicit 0 is kept.
    """
    schedule = (event.points_first, event.points_second, event.points_third)
    configured = schedule[rank - 1]
    if configured is None:
        return default_points(event.discipline)[rank - 1]
    return configured


@dataclass
class ParticipantStats:
    id: str
    name: str
    department_id: Optional[str]
    chest_number: Optional[int]
    gender: Optional[str]
    points: int = 0
    gold: int = 0
    silver: int = 0
    bronze: int = 0


@dataclass
class DepartmentStats:
    id: str
    name: str
    code: str
    points: int = 0
    gold: int = 0
    silver: int = 0
    bronze: int = 0


def _credit(stats, points: int, rank: int) -> None:
    stats.points += points
    medal = MEDALS[rank]
    setattr(stats, medal, getattr(stats, medal) + 1)


def _medal_key(stats) -> tuple:
    return (-stats.points, -stats.gold, -stats.silver, -stats.bronze)


@dataclass
class Standings:
    participant_stats: List[ParticipantStats] = field(default_factory=list)
    department_stats: List[DepartmentStats] = field(default_factory=list)

    def department_leaderboard(self) -> List[DepartmentStats]:
        return list(self.department_stats)

    def gender_leaderboard(
        self, gender: str, limit: Optional[int] = LEADERBOARD_SIZE
    ) -> List[ParticipantStats]:
        """Top of one gender in standings order; scoreless participants fill empty slots"""
        board = [s for s in self.participant_stats if s.gender == gender]
        return board if limit is None else board[:limit]

    def for_participant(self, participant_id: str) -> Optional[ParticipantStats]:
        for stats in self.participant_stats:
            if stats.id == participant_id:
                return stats
        return None

    def for_department(self, department_id: str) -> Optional[DepartmentStats]:
        for stats in self.department_stats:
            if stats.id == department_id:
                return stats
        return None


def _gender_value(gender) -> Optional[str]:
    return getattr(gender, "value", gender)


def compute_standings(
    events: Iterable[Event],
    participants: Iterable[Participant],
    teams: Iterable[Team],
    departments: Iterable[Department],
) -> Standings:
    """
    Recompute every participant's and department's points and medals

    Flow:
    1. Zero-initialize a record per participant and per department
    2. For every ranked entry of every round of every event, resolve the
       rank's points from the event's schedule
    3. Credit according to the event's discipline (see module docstring)
    4. Sort both lists by points, then gold, silver, bronze; ties broken by
       chest number / department code so the output is deterministic

    Args:
        events: events with their rounds and round entries loaded
        participants, teams, departments: the full dataset

    Returns:
        Standings
    """
    # 1. Zero-initialize
    participant_map: Dict[str, ParticipantStats] = {
        p.id: ParticipantStats(
            id=p.id,
            name=p.name,
            department_id=p.department_id,
            chest_number=p.chest_number,
            gender=_gender_value(p.gender),
        )
        for p in participants
    }
    department_map: Dict[str, DepartmentStats] = {
        d.id: DepartmentStats(id=d.id, name=d.name, code=d.code)
        for d in departments
    }
    team_map: Dict[str, Team] = {t.id: t for t in teams}

    # 2-3. Credit ranked entries
    for event in events:
        is_group = Discipline(event.discipline) == Discipline.GROUP
        for round_obj in event.rounds:
            for entry in round_obj.participants:
                if entry.rank not in MEDALS:
                    continue
                points = points_for_rank(event, entry.rank)

                if is_group:
                    team = team_map.get(entry.entry_id)
                    if team is None:
                        logger.warning(
                            f"Ranked team {entry.entry_id} of event {event.id} not found"
                        )
                        continue
                    department = department_map.get(team.department_id)
                    if department is not None:
                        _credit(department, points, entry.rank)
                    for member_id in team.member_ids:
                        member = participant_map.get(member_id)
                        if member is not None:
                            _credit(member, points, entry.rank)
                else:
                    stats = participant_map.get(entry.entry_id)
                    if stats is None:
                        logger.warning(
                            f"Ranked participant {entry.entry_id} of event {event.id} not found"
                        )
                        continue
                    _credit(stats, points, entry.rank)
                    department = department_map.get(stats.department_id)
                    if department is not None:
                        _credit(department, points, entry.rank)

    # 4. Sort
    participant_stats = sorted(
        participant_map.values(),
        key=lambda s: _medal_key(s) + (s.chest_number or 0, s.id)
    )
    department_stats = sorted(
        department_map.values(),
        key=lambda s: _medal_key(s) + (s.code, s.id)
    )
    return Standings(participant_stats=participant_stats, department_stats=department_stats)


def load_standings(db: Session) -> Standings:
    """Read the full dataset and compute standings (read-only)"""
    return compute_standings(
        events=db.query(Event).all(),
        participants=db.query(Participant).all(),
        teams=db.query(Team).all(),
        departments=db.query(Department).all(),
    )


# ============ Podium ============

@dataclass
class PodiumEntry:
    rank: int
    entry_id: str
    name: str
    chest_numbers: List[int]
    department_code: Optional[str]


def event_podium(
    event: Event,
    participants: Iterable[Participant],
    teams: Iterable[Team],
    departments: Iterable[Department],
) -> List[PodiumEntry]:
    """
    Ranked entries of an event's Final round, best first

    Teams are shown with their department code and every member's chest
    number; individuals with their own.
    """
    final_round = next((r for r in event.rounds if r.is_final), None)
    if final_round is None:
        return []

    participant_map = {p.id: p for p in participants}
    team_map = {t.id: t for t in teams}
    department_codes = {d.id: d.code for d in departments}
    is_group = Discipline(event.discipline) == Discipline.GROUP

    podium = []
    ranked = sorted(
        (e for e in final_round.participants if e.rank in MEDALS),
        key=lambda e: e.rank
    )
    for entry in ranked:
        if is_group:
            team = team_map.get(entry.entry_id)
            members = [participant_map.get(mid) for mid in (team.member_ids if team else [])]
            podium.append(PodiumEntry(
                rank=entry.rank,
                entry_id=entry.entry_id,
                name=team.name if team else "Unknown Team",
                chest_numbers=[m.chest_number for m in members if m is not None],
                department_code=department_codes.get(team.department_id) if team else None,
            ))
        else:
            participant = participant_map.get(entry.entry_id)
            podium.append(PodiumEntry(
                rank=entry.rank,
                entry_id=entry.entry_id,
                name=participant.name if participant else "Unknown",
                chest_numbers=[participant.chest_number] if participant else [],
                department_code=(
                    department_codes.get(participant.department_id) if participant else None
                ),
            ))
    return podium


# ============ Participant record ============

@dataclass
class EventRecord:
    event_id: str
    event_name: str
    discipline: str
    status: str
    team_id: Optional[str]
    rank: Optional[int]


@dataclass
class ParticipantRecord:
    participant: Participant
    department: Optional[Department]
    events: List[EventRecord]


def settled_rank(event: Event, entry_id: str) -> Optional[int]:
    """
    Podium rank an entry finished an event with, or None

    Only completed events have a settled rank. The Final round (the last
    round when none is flagged) is consulted first, then every round in
    order for the first podium rank held.
    """
    if event.status != EventStatus.COMPLETED or not event.rounds:
        return None

    final_round = next((r for r in event.rounds if r.is_final), event.rounds[-1])
    for round_obj in [final_round] + list(event.rounds):
        for entry in round_obj.participants:
            if entry.entry_id == entry_id and entry.rank in MEDALS:
                return entry.rank
    return None


def participant_record(db: Session, registration_code: str) -> ParticipantRecord:
    """
    Events a participant is entered in and how they finished

    Individual events count when the participant is on the admission
    roster; group events when one of their teams is. Medals come first
    (gold, silver, bronze), then the rest in event name order.

    Raises:
        ParticipantNotFound: no participant holds the registration code
    """
    code = normalize_registration_code(registration_code)
    participant = db.query(Participant).filter(
        Participant.registration_code == code
    ).first()
    if not participant:
        raise ParticipantNotFound(code)

    team_ids = {
        team_id for (team_id,) in db.query(TeamMember.team_id).filter(
            TeamMember.participant_id == participant.id
        )
    }
    entry_ids = team_ids | {participant.id}

    entered = db.query(EventEntry).filter(EventEntry.entry_id.in_(list(entry_ids))).all()
    events = []
    for entry in entered:
        event = entry.event
        team_id = entry.entry_id if entry.entry_id in team_ids else None
        events.append(EventRecord(
            event_id=event.id,
            event_name=event.name,
            discipline=Discipline(event.discipline).value,
            status=EventStatus(event.status).value,
            team_id=team_id,
            rank=settled_rank(event, entry.entry_id),
        ))

    events.sort(key=lambda r: r.event_name)
    events.sort(key=lambda r: r.rank if r.rank in MEDALS else len(MEDALS) + 1)
    return ParticipantRecord(
        participant=participant,
        department=db.get(Department, participant.department_id),
        events=events,
    )
