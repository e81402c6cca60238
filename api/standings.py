"""
Standings API Endpoints

Read-only: every call recomputes standings from the full dataset.
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
import logging

from database import get_db
from models import Department, Participant, Team
from schemas import (
    DepartmentStatsResponse,
    ParticipantStatsResponse,
    PodiumEntryResponse,
    StandingsResponse,
)
from core.event_manager import EventManager
from core.exceptions import EventNotFound
from services.standings_service import LEADERBOARD_SIZE, event_podium, load_standings

router = APIRouter(prefix="/api", tags=["standings"])
logger = logging.getLogger(__name__)


def _participant_rows(stats) -> List[ParticipantStatsResponse]:
    return [ParticipantStatsResponse.model_validate(s) for s in stats]


@router.get("/standings", response_model=StandingsResponse)
def get_standings(top: int = Query(LEADERBOARD_SIZE, ge=1), db: Session = Depends(get_db)):
    """
    Department leaderboard plus the top male / female individuals (top 10 by default)

    Sorted by points, then gold, silver, bronze.
    """
    try:
        standings = load_standings(db)
        return StandingsResponse(
            departments=[
                DepartmentStatsResponse.model_validate(s)
                for s in standings.department_leaderboard()
            ],
            top_male=_participant_rows(standings.gender_leaderboard("male", limit=top)),
            top_female=_participant_rows(standings.gender_leaderboard("female", limit=top)),
            participants=_participant_rows(standings.participant_stats),
        )
    except Exception as e:
        logger.error(f"Failed to compute standings: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/events/{event_id}/podium", response_model=List[PodiumEntryResponse])
def get_podium(event_id: str, db: Session = Depends(get_db)):
    try:
        event = EventManager.get_event(db, event_id)
        return event_podium(
            event,
            participants=db.query(Participant).all(),
            teams=db.query(Team).filter(Team.event_id == event_id).all(),
            departments=db.query(Department).all(),
        )
    except EventNotFound:
        raise HTTPException(status_code=404, detail="Event not found")
