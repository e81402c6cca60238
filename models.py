"""
SQLAlchemy models

Event is the aggregate root: its rounds, round entries and admission roster
are owned rows that only core.round_manager / core.event_manager mutate.
"""
import enum
import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    JSON,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Gender(str, enum.Enum):
    MALE = "male"
    FEMALE = "female"


class GenderCategory(str, enum.Enum):
    MALE = "male"
    FEMALE = "female"
    MIXED = "mixed"


class Discipline(str, enum.Enum):
    INDIVIDUAL = "individual"
    GROUP = "group"


class EventStatus(str, enum.Enum):
    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    COMPLETED = "completed"


class RoundStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"


class EntryKind(str, enum.Enum):
    INDIVIDUAL = "individual"
    TEAM = "team"


class RequestStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Department(Base):
    __tablename__ = "departments"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(150), nullable=False)
    code = Column(String(20), unique=True, nullable=False)

    cohorts = relationship("Cohort", back_populates="department")


class Cohort(Base):
    __tablename__ = "cohorts"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(50), nullable=False)  # 2022-2026
    department_id = Column(String(36), ForeignKey("departments.id"), nullable=False)

    department = relationship("Department", back_populates="cohorts")


class Participant(Base):
    __tablename__ = "participants"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    registration_code = Column(String(30), unique=True, index=True, nullable=False)
    department_id = Column(String(36), ForeignKey("departments.id"), nullable=False)
    cohort_id = Column(String(36), ForeignKey("cohorts.id"), nullable=True)
    semester = Column(Integer, nullable=True)
    gender = Column(SQLEnum(Gender), nullable=False)
    chest_number = Column(Integer, unique=True, index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    department = relationship("Department")
    cohort = relationship("Cohort")


class ChestCounter(Base):
    """Single durable counter backing chest number allocation"""
    __tablename__ = "chest_counters"

    key = Column(String(30), primary_key=True)
    value = Column(Integer, nullable=False)


class Team(Base):
    __tablename__ = "teams"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(150), nullable=False)
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False)
    department_id = Column(String(36), ForeignKey("departments.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    members = relationship(
        "TeamMember",
        order_by="TeamMember.slot",
        cascade="all, delete-orphan",
        back_populates="team",
    )

    @property
    def member_ids(self) -> list[str]:
        return [member.participant_id for member in self.members]


class TeamMember(Base):
    __tablename__ = "team_members"
    __table_args__ = (UniqueConstraint("team_id", "participant_id"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(String(36), ForeignKey("teams.id"), nullable=False)
    slot = Column(Integer, nullable=False)
    participant_id = Column(String(36), ForeignKey("participants.id"), nullable=False)

    team = relationship("Team", back_populates="members")


class Event(Base):
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(150), unique=True, nullable=False)
    discipline = Column(SQLEnum(Discipline), nullable=False)
    gender_category = Column(SQLEnum(GenderCategory), nullable=False)
    status = Column(SQLEnum(EventStatus), default=EventStatus.UPCOMING, nullable=False)
    current_round_index = Column(Integer, default=0, nullable=False)
    points_first = Column(Integer, nullable=True)
    points_second = Column(Integer, nullable=True)
    points_third = Column(Integer, nullable=True)
    team_size = Column(Integer, nullable=True)
    winner_ids = Column(JSON, nullable=True)  # [1st, 2nd, 3rd] entry ids
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    rounds = relationship(
        "Round",
        order_by="Round.sequence",
        cascade="all, delete-orphan",
        back_populates="event",
    )
    entries = relationship(
        "EventEntry",
        order_by="EventEntry.position",
        cascade="all, delete-orphan",
        back_populates="event",
    )

    @property
    def admission_ids(self) -> list[str]:
        return [entry.entry_id for entry in self.entries]

    @property
    def current_round(self) -> "Round":
        return self.rounds[self.current_round_index]

    @property
    def is_group(self) -> bool:
        return self.discipline == Discipline.GROUP


class EventEntry(Base):
    """Admission roster row (eligible for round 0)"""
    __tablename__ = "event_entries"
    __table_args__ = (UniqueConstraint("event_id", "entry_id"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False)
    position = Column(Integer, nullable=False)
    kind = Column(SQLEnum(EntryKind), nullable=False)
    entry_id = Column(String(36), nullable=False)

    event = relationship("Event", back_populates="entries")


class Round(Base):
    __tablename__ = "rounds"
    __table_args__ = (UniqueConstraint("event_id", "sequence"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False)
    name = Column(String(100), nullable=False)
    sequence = Column(Integer, nullable=False)
    is_final = Column(Boolean, default=False, nullable=False)
    status = Column(SQLEnum(RoundStatus), default=RoundStatus.PENDING, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    event = relationship("Event", back_populates="rounds")
    participants = relationship(
        "RoundParticipant",
        order_by="RoundParticipant.id",
        cascade="all, delete-orphan",
        back_populates="round",
    )


class RoundParticipant(Base):
    __tablename__ = "round_participants"
    # One heat per entry per round
    __table_args__ = (UniqueConstraint("round_id", "entry_id"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    round_id = Column(String(36), ForeignKey("rounds.id"), nullable=False)
    kind = Column(SQLEnum(EntryKind), nullable=False)
    entry_id = Column(String(36), nullable=False)
    heat_number = Column(Integer, nullable=False)
    qualified = Column(Boolean, default=False, nullable=False)
    rank = Column(Integer, nullable=True)
    score = Column(String(50), nullable=True)  # time, distance or points as entered

    round = relationship("Round", back_populates="participants")


class ActivityLog(Base):
    """Append-only record of lifecycle transitions"""
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(String(36), ForeignKey("events.id"), nullable=True)
    activity_type = Column(String(50), nullable=False)
    data = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ParticipationRequest(Base):
    """A participant asking to join an individual event's roster"""
    __tablename__ = "participation_requests"

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False)
    participant_id = Column(String(36), ForeignKey("participants.id"), nullable=False)
    status = Column(SQLEnum(RequestStatus), default=RequestStatus.PENDING, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    event = relationship("Event")
    participant = relationship("Participant")
