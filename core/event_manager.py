"""
Event Manager: event creation and the admission roster

Responsibilities:
1. Create events (with their first round) and edit event metadata
2. Maintain round 0's admission roster (individuals or teams)
3. Register / withdraw teams for group events

Round progression lives in RoundManager; both go through the event row lock.
"""
from typing import Any, Dict, List, Optional, Sequence
import logging

from sqlalchemy.orm import Session

from models import (
    ActivityLog,
    Department,
    Discipline,
    EntryKind,
    Event,
    EventEntry,
    EventStatus,
    GenderCategory,
    Round,
    RoundParticipant,
    Team,
    TeamMember,
)
from core.locks import with_event_lock
from core.exceptions import (
    DepartmentNotFound,
    EventNotFound,
    InvalidState,
    TeamNotFound,
    ValidationError,
)
from services.naming_service import default_round_name
from services.standings_service import default_points
from services.team_service import tag_entry, validate_team_members
from database import transactional

logger = logging.getLogger(__name__)

DEFAULT_TEAM_SIZE = 4
EDITABLE_EVENT_FIELDS = {"name", "points_first", "points_second", "points_third"}


def lock_event(db: Session, event_id: str) -> Event:
    """Fetch an event under the row lock or raise EventNotFound"""
    event = with_event_lock(event_id, db).first()
    if not event:
        raise EventNotFound(event_id)
    return event


def _check_points(points: Optional[int], label: str) -> None:
    if points is not None and points < 0:
        raise ValidationError(f"{label} points cannot be negative, got {points}")


class EventManager:
    """Event lifecycle and admission roster"""

    @staticmethod
    @transactional
    def create_event(
        db: Session,
        name: str,
        discipline: Any,
        gender_category: Any,
        team_size: Optional[int] = None,
        points_first: Optional[int] = None,
        points_second: Optional[int] = None,
        points_third: Optional[int] = None,
    ) -> Event:
        """
        Create an event together with its first round

        Missing point values take the discipline defaults (5/3/1 individual,
        10/6/4 group). Group events get DEFAULT_TEAM_SIZE members unless told
        otherwise.

        Raises:
            ValidationError: blank/duplicate name, bad enum, bad sizes or points
        """
        if not name or not name.strip():
            raise ValidationError("Event name is required")
        name = name.strip()

        try:
            discipline = Discipline(discipline)
            gender_category = GenderCategory(gender_category)
        except ValueError as e:
            raise ValidationError(str(e))

        if db.query(Event).filter(Event.name == name).first():
            raise ValidationError(f"Event {name} already exists")

        if discipline == Discipline.GROUP:
            team_size = DEFAULT_TEAM_SIZE if team_size is None else team_size
            if team_size < 1:
                raise ValidationError(f"Team size must be at least 1, got {team_size}")
        else:
            team_size = None

        defaults = default_points(discipline)
        points = [
            defaults[0] if points_first is None else points_first,
            defaults[1] if points_second is None else points_second,
            defaults[2] if points_third is None else points_third,
        ]
        for label, value in zip(("1st", "2nd", "3rd"), points):
            _check_points(value, label)

        event = Event(
            name=name,
            discipline=discipline,
            gender_category=gender_category,
            status=EventStatus.UPCOMING,
            current_round_index=0,
            team_size=team_size,
            points_first=points[0],
            points_second=points[1],
            points_third=points[2],
        )
        event.rounds.append(Round(name=default_round_name(1), sequence=1))
        db.add(event)
        db.flush()

        db.add(ActivityLog(
            event_id=event.id,
            activity_type="EVENT_CREATED",
            data={"name": name, "discipline": discipline.value}
        ))

        logger.info(f"Created event {event.id} ({name}, {discipline.value})")
        return event

    @staticmethod
    @transactional
    def update_event(db: Session, event_id: str, changes: Dict[str, Any]) -> Event:
        """
        Edit event metadata (name, point schedule)

        Standings are recomputed from scratch, so changing the point schedule
        re-scores already finished events too.
        """
        unknown = set(changes) - EDITABLE_EVENT_FIELDS
        if unknown:
            raise ValidationError(f"Unknown event fields: {sorted(unknown)}")

        event = lock_event(db, event_id)

        if "name" in changes:
            name = (changes["name"] or "").strip()
            if not name:
                raise ValidationError("Event name is required")
            clash = db.query(Event).filter(Event.name == name, Event.id != event_id).first()
            if clash:
                raise ValidationError(f"Event {name} already exists")
            event.name = name

        for field in ("points_first", "points_second", "points_third"):
            if field in changes:
                _check_points(changes[field], field)
                setattr(event, field, changes[field])

        return event

    @staticmethod
    def get_event(db: Session, event_id: str) -> Event:
        event = db.get(Event, event_id)
        if not event:
            raise EventNotFound(event_id)
        return event

    @staticmethod
    def list_events(db: Session, status: Optional[str] = None) -> List[Event]:
        query = db.query(Event)
        if status:
            try:
                query = query.filter(Event.status == EventStatus(status))
            except ValueError as e:
                raise ValidationError(str(e))
        return query.order_by(Event.name).all()

    # ============ Admission roster ============

    @staticmethod
    @transactional
    def admit_roster(db: Session, event_id: str, entry_ids: Sequence[str]) -> Event:
        """
        Set round 0's roster

        Preconditions:
        - event not completed and still on its first round
        - ids unique, each a participant (individual event, gender checked)
          or a team of this event (group event)
        - ids already racing in a round-0 heat stay on the roster

        Raises:
            InvalidState: roster is closed, or a placed id would be dropped
            InvalidParticipant: unknown / ineligible id
            ValidationError: duplicated id
        """
        event = lock_event(db, event_id)
        EventManager._require_roster_open(event)

        if len(set(entry_ids)) != len(entry_ids):
            raise ValidationError("Roster contains duplicate ids")

        tagged = [(entry_id, tag_entry(db, event, entry_id)) for entry_id in entry_ids]

        placed = {rp.entry_id for rp in event.rounds[0].participants}
        dropped = placed - set(entry_ids)
        if dropped:
            raise InvalidState(
                f"Cannot drop ids already placed in a heat: {sorted(dropped)}"
            )

        EventManager._replace_entries(db, event, tagged)
        logger.info(f"Admitted {len(tagged)} entries to event {event_id}")
        return event

    @staticmethod
    @transactional
    def add_to_roster(db: Session, event_id: str, entry_id: str) -> Event:
        event = lock_event(db, event_id)
        EventManager.admit_entry(db, event, entry_id)
        return event

    @staticmethod
    def admit_entry(db: Session, event: Event, entry_id: str) -> EventEntry:
        """
        Append one id to an already locked event's admission roster

        Shared by add_to_roster and request approval; the caller owns the
        transaction.

        Raises:
            InvalidState: roster is closed
            ValidationError: id already on the roster
            InvalidParticipant: unknown / ineligible id
        """
        EventManager._require_roster_open(event)

        if entry_id in event.admission_ids:
            raise ValidationError(f"{entry_id} is already on the roster")

        kind = tag_entry(db, event, entry_id)
        entry = EventEntry(position=len(event.entries), kind=kind, entry_id=entry_id)
        event.entries.append(entry)
        logger.info(f"Admitted {entry_id} to event {event.id}")
        return entry

    @staticmethod
    @transactional
    def remove_from_roster(db: Session, event_id: str, entry_id: str) -> Event:
        event = lock_event(db, event_id)
        EventManager._require_roster_open(event)
        EventManager._detach_entry(db, event, entry_id)
        return event

    # ============ Teams ============

    @staticmethod
    @transactional
    def create_team(
        db: Session,
        event_id: str,
        member_ids: Sequence[str],
        department_id: Optional[str] = None,
        name: Optional[str] = None,
    ) -> Team:
        """
        Register a team into a group event and admit it to round 0

        The team's name defaults to its department's name (how teams are
        labelled on the scoreboard).

        Raises:
            ValidationError / InvalidParticipant: member rules, see
                services.team_service.validate_team_members
            InvalidState: roster is closed
            DepartmentNotFound: unknown department
        """
        event = lock_event(db, event_id)
        EventManager._require_roster_open(event)
        validate_team_members(db, event, member_ids)

        department = None
        if department_id is not None:
            department = db.get(Department, department_id)
            if not department:
                raise DepartmentNotFound(department_id)

        team_name = (name or "").strip() or (department.name if department else "")
        if not team_name:
            raise ValidationError("Team needs a name or a department")

        team = Team(name=team_name, event_id=event.id, department_id=department_id)
        for slot, member_id in enumerate(member_ids, start=1):
            team.members.append(TeamMember(slot=slot, participant_id=member_id))
        db.add(team)
        db.flush()

        event.entries.append(EventEntry(
            position=len(event.entries),
            kind=EntryKind.TEAM,
            entry_id=team.id
        ))

        logger.info(f"Registered team {team.id} ({team_name}) into event {event_id}")
        return team

    @staticmethod
    @transactional
    def delete_team(db: Session, event_id: str, team_id: str) -> None:
        """
        Withdraw a team (membership edits are delete + recreate)

        Raises:
            TeamNotFound: no such team in this event
            InvalidState: the team already raced in some round
        """
        event = lock_event(db, event_id)

        team = db.get(Team, team_id)
        if not team or team.event_id != event.id:
            raise TeamNotFound(team_id)

        raced = db.query(RoundParticipant).join(Round).filter(
            Round.event_id == event.id,
            RoundParticipant.entry_id == team_id
        ).first()
        if raced:
            raise InvalidState(f"Team {team_id} already has round results")

        if team_id in event.admission_ids:
            EventManager._detach_entry(db, event, team_id)
        db.delete(team)
        logger.info(f"Deleted team {team_id} from event {event_id}")

    # ============ helpers ============

    @staticmethod
    def _require_roster_open(event: Event) -> None:
        if event.status == EventStatus.COMPLETED:
            raise InvalidState(f"Event {event.name} is completed")
        if event.current_round_index != 0:
            raise InvalidState(
                f"Roster of {event.name} is closed once round 1 has been completed"
            )

    @staticmethod
    def _detach_entry(db: Session, event: Event, entry_id: str) -> None:
        if entry_id not in event.admission_ids:
            raise ValidationError(f"{entry_id} is not on the roster")
        if any(rp.entry_id == entry_id for rp in event.rounds[0].participants):
            raise InvalidState(f"{entry_id} is already placed in a heat")

        remaining = [(e.entry_id, e.kind) for e in event.entries if e.entry_id != entry_id]
        EventManager._replace_entries(db, event, remaining)

    @staticmethod
    def _replace_entries(db: Session, event: Event, tagged) -> None:
        event.entries.clear()
        # Deletes must reach the database before re-inserting the same ids
        db.flush()
        for position, (entry_id, kind) in enumerate(tagged):
            event.entries.append(EventEntry(position=position, kind=kind, entry_id=entry_id))
