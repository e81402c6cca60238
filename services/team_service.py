"""
Team resolver: bridges roster entries to individual participants

A roster entry is a tagged variant:
- EntryKind.INDIVIDUAL -> one Participant
- EntryKind.TEAM       -> one Team and its ordered member Participants

The tag is decided once, at admission (tag_entry), and stored with the entry.
Later reads use resolve() and never look in both collections again.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from models import (
    EntryKind,
    Event,
    EventEntry,
    EventStatus,
    GenderCategory,
    Participant,
    Round,
    RoundParticipant,
    Team,
    TeamMember,
)
from core.exceptions import InvalidParticipant, ValidationError


@dataclass
class ResolvedEntry:
    kind: EntryKind
    entry_id: str
    participant: Optional[Participant] = None
    team: Optional[Team] = None
    members: List[Participant] = field(default_factory=list)

    @property
    def participant_ids(self) -> List[str]:
        """Ids that receive individual credit for this entry"""
        if self.kind == EntryKind.TEAM:
            return [member.id for member in self.members]
        return [self.entry_id]


def gender_allowed(event: Event, participant: Participant) -> bool:
    """Mixed events accept everyone; others require a matching gender"""
    if event.gender_category == GenderCategory.MIXED:
        return True
    return participant.gender.value == event.gender_category.value


def tag_entry(db: Session, event: Event, entry_id: str) -> EntryKind:
    """
    Decide the kind of a roster id for this event

    Individual events take participants (gender checked); group events take
    teams registered into this same event.

    Raises:
        InvalidParticipant: unknown id, wrong kind or gender mismatch
    """
    if event.is_group:
        team = db.get(Team, entry_id)
        if not team or team.event_id != event.id:
            raise InvalidParticipant(
                f"{entry_id} is not a team registered for event {event.name}"
            )
        return EntryKind.TEAM

    participant = db.get(Participant, entry_id)
    if not participant:
        raise InvalidParticipant(f"{entry_id} is not a registered participant")
    if not gender_allowed(event, participant):
        raise InvalidParticipant(
            f"Participant {participant.chest_number} ({participant.gender.value}) "
            f"cannot enter {event.gender_category.value} event {event.name}"
        )
    return EntryKind.INDIVIDUAL


def resolve(db: Session, kind: EntryKind, entry_id: str) -> ResolvedEntry:
    """
    Resolve a tagged roster entry to its participants

    Raises:
        InvalidParticipant: the referenced record no longer exists
    """
    if kind == EntryKind.TEAM:
        team = db.get(Team, entry_id)
        if not team:
            raise InvalidParticipant(f"Team {entry_id} no longer exists")
        members = [db.get(Participant, member_id) for member_id in team.member_ids]
        return ResolvedEntry(
            kind=kind,
            entry_id=entry_id,
            team=team,
            members=[member for member in members if member is not None],
        )

    participant = db.get(Participant, entry_id)
    if not participant:
        raise InvalidParticipant(f"Participant {entry_id} no longer exists")
    return ResolvedEntry(kind=kind, entry_id=entry_id, participant=participant)


def validate_team_members(db: Session, event: Event, member_ids: Sequence[str]) -> List[Participant]:
    """
    Check a team submission against the event rules

    Rules:
    1. the event must be a group event
    2. exactly team_size member slots
    3. no participant in two slots
    4. every slot resolves to an existing participant
    5. gender matches the event unless it is mixed

    Returns:
        member Participants in slot order

    Raises:
        ValidationError: rules 1-3
        InvalidParticipant: rules 4-5
    """
    if not event.is_group:
        raise ValidationError(f"Event {event.name} is not a group event")

    if len(member_ids) != event.team_size:
        raise ValidationError(
            f"Event {event.name} needs exactly {event.team_size} members, "
            f"got {len(member_ids)}"
        )

    if len(set(member_ids)) != len(member_ids):
        raise ValidationError("Duplicate members detected")

    members = []
    for slot, member_id in enumerate(member_ids, start=1):
        participant = db.get(Participant, member_id)
        if not participant:
            raise InvalidParticipant(f"Slot {slot}: participant {member_id} not found")
        if not gender_allowed(event, participant):
            raise InvalidParticipant(
                f"Slot {slot}: participant {participant.chest_number} "
                f"({participant.gender.value}) cannot join a "
                f"{event.gender_category.value} team"
            )
        members.append(participant)

    return members


def gender_locked_events(db: Session, participant_id: str) -> List[Event]:
    """
    Open, gender-restricted events a participant is already part of

    Counts the admission roster, team membership and round entries of every
    event that is neither completed nor mixed. A gender edit while any of
    these exist would make the participant ineligible where they stand.
    """
    event_ids = set()
    event_ids.update(
        row.event_id for row in
        db.query(EventEntry.event_id).filter(EventEntry.entry_id == participant_id)
    )
    event_ids.update(
        row.event_id for row in
        db.query(Team.event_id).join(TeamMember).filter(
            TeamMember.participant_id == participant_id
        )
    )
    event_ids.update(
        row.event_id for row in
        db.query(Round.event_id).join(RoundParticipant).filter(
            RoundParticipant.entry_id == participant_id
        )
    )
    if not event_ids:
        return []

    return db.query(Event).filter(
        Event.id.in_(sorted(event_ids)),
        Event.status != EventStatus.COMPLETED,
        Event.gender_category != GenderCategory.MIXED,
    ).order_by(Event.name).all()
