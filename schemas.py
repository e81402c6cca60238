"""
Pydantic request / response models for the HTTP layer
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models import (
    Discipline,
    EntryKind,
    EventStatus,
    Gender,
    GenderCategory,
    RequestStatus,
    RoundStatus,
)


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ============ Directory ============

class DepartmentCreate(BaseModel):
    name: str
    code: str


class DepartmentResponse(ORMModel):
    id: str
    name: str
    code: str


class CohortCreate(BaseModel):
    department_id: str
    name: str


class CohortResponse(ORMModel):
    id: str
    name: str
    department_id: str


# ============ Participants ============

class ParticipantCreate(BaseModel):
    name: str
    registration_code: str
    department_id: str
    gender: Gender
    cohort_id: Optional[str] = None
    semester: Optional[int] = None


class ParticipantUpdate(BaseModel):
    name: Optional[str] = None
    registration_code: Optional[str] = None
    department_id: Optional[str] = None
    cohort_id: Optional[str] = None
    semester: Optional[int] = None
    gender: Optional[Gender] = None


class ParticipantResponse(ORMModel):
    id: str
    name: str
    registration_code: str
    department_id: str
    cohort_id: Optional[str] = None
    semester: Optional[int] = None
    gender: Gender
    chest_number: int


# ============ Events ============

class EventCreate(BaseModel):
    name: str
    discipline: Discipline
    gender_category: GenderCategory
    team_size: Optional[int] = None
    points_first: Optional[int] = None
    points_second: Optional[int] = None
    points_third: Optional[int] = None


class EventUpdate(BaseModel):
    name: Optional[str] = None
    points_first: Optional[int] = None
    points_second: Optional[int] = None
    points_third: Optional[int] = None


class RoundParticipantResponse(ORMModel):
    kind: EntryKind
    entry_id: str
    heat_number: int
    qualified: bool
    rank: Optional[int] = None
    score: Optional[str] = None


class RoundResponse(ORMModel):
    id: str
    name: str
    sequence: int
    is_final: bool
    status: RoundStatus
    participants: List[RoundParticipantResponse] = []


class EventSummaryResponse(ORMModel):
    id: str
    name: str
    discipline: Discipline
    gender_category: GenderCategory
    status: EventStatus
    current_round_index: int
    team_size: Optional[int] = None
    points_first: Optional[int] = None
    points_second: Optional[int] = None
    points_third: Optional[int] = None


class EventResponse(EventSummaryResponse):
    admission_ids: List[str] = []
    winner_ids: Optional[List[str]] = None
    rounds: List[RoundResponse] = []


class RosterUpdate(BaseModel):
    entry_ids: List[str]


class TeamCreate(BaseModel):
    member_ids: List[str]
    department_id: Optional[str] = None
    name: Optional[str] = None


class TeamResponse(ORMModel):
    id: str
    name: str
    event_id: str
    department_id: Optional[str] = None
    member_ids: List[str]


# ============ Rounds ============

class RosterItemResponse(ORMModel):
    entry_id: str
    kind: EntryKind
    status: str
    heat_number: Optional[int] = None
    qualified: bool = False
    rank: Optional[int] = None
    score: Optional[str] = None


class HeatOpen(BaseModel):
    heat_number: int = Field(ge=1)
    entry_ids: List[str]


class HeatEntryPayload(BaseModel):
    entry_id: str
    qualified: bool = False
    rank: Optional[int] = None
    score: Optional[str] = None

    @field_validator("score", mode="before")
    @classmethod
    def score_as_text(cls, v):
        # Clients send times as numbers (10.52) or text ("5.81m")
        return None if v is None else str(v)


class HeatSave(BaseModel):
    entries: List[HeatEntryPayload]


class EntryRef(BaseModel):
    entry_id: str


class RankSubmit(BaseModel):
    entry_id: str
    rank: int


class ScoreSubmit(BaseModel):
    entry_id: str
    score: Optional[str] = None

    @field_validator("score", mode="before")
    @classmethod
    def score_as_text(cls, v):
        return None if v is None else str(v)


class RoundAdvance(BaseModel):
    next_name: Optional[str] = None
    is_final: bool = False


class CurrentRoundUpdate(BaseModel):
    name: Optional[str] = None
    is_final: Optional[bool] = None


class EventClose(BaseModel):
    # Heat left open by the operator, saved before the event closes
    pending_heat_number: Optional[int] = Field(default=None, ge=1)
    pending_entries: List[HeatEntryPayload] = []


# ============ Standings ============

class ParticipantStatsResponse(ORMModel):
    id: str
    name: str
    department_id: Optional[str] = None
    chest_number: Optional[int] = None
    gender: Optional[str] = None
    points: int
    gold: int
    silver: int
    bronze: int


class DepartmentStatsResponse(ORMModel):
    id: str
    name: str
    code: str
    points: int
    gold: int
    silver: int
    bronze: int


class StandingsResponse(BaseModel):
    departments: List[DepartmentStatsResponse]
    top_male: List[ParticipantStatsResponse]
    top_female: List[ParticipantStatsResponse]
    participants: List[ParticipantStatsResponse]


class PodiumEntryResponse(ORMModel):
    rank: int
    entry_id: str
    name: str
    chest_numbers: List[int]
    department_code: Optional[str] = None


class StatusResponse(BaseModel):
    status: str


# ============ Participation requests ============

class ParticipationRequestCreate(BaseModel):
    event_id: str
    participant_id: str


class ParticipationRequestResponse(ORMModel):
    id: str
    event_id: str
    participant_id: str
    status: RequestStatus
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None


# ============ Participant record ============

class EventRecordResponse(ORMModel):
    event_id: str
    event_name: str
    discipline: Discipline
    status: EventStatus
    team_id: Optional[str] = None
    rank: Optional[int] = None


class ParticipantRecordResponse(ORMModel):
    participant: ParticipantResponse
    department: DepartmentResponse
    events: List[EventRecordResponse]
