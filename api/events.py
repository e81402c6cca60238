"""
Event API Endpoints

Responsibilities:
1. Create / edit / read events
2. Admission roster (round 0)
3. Team registration for group events
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
import logging

from database import get_db
from schemas import (
    EventCreate,
    EventResponse,
    EventSummaryResponse,
    EventUpdate,
    RosterUpdate,
    StatusResponse,
    TeamCreate,
    TeamResponse,
)
from core.event_manager import EventManager
from core.exceptions import (
    DepartmentNotFound,
    EventNotFound,
    InvalidParticipant,
    InvalidState,
    TeamNotFound,
    ValidationError,
)

router = APIRouter(prefix="/api/events", tags=["events"])
logger = logging.getLogger(__name__)


@router.post("", response_model=EventResponse, status_code=201)
def create_event(data: EventCreate, db: Session = Depends(get_db)):
    """
    Create an event with its first round

    Point schedule defaults: 5/3/1 individual, 10/6/4 group
    """
    try:
        return EventManager.create_event(
            db,
            name=data.name,
            discipline=data.discipline,
            gender_category=data.gender_category,
            team_size=data.team_size,
            points_first=data.points_first,
            points_second=data.points_second,
            points_third=data.points_third,
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to create event: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("", response_model=List[EventSummaryResponse])
def list_events(status: Optional[str] = Query(None), db: Session = Depends(get_db)):
    try:
        return EventManager.list_events(db, status)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/{event_id}", response_model=EventResponse)
def get_event(event_id: str, db: Session = Depends(get_db)):
    try:
        return EventManager.get_event(db, event_id)
    except EventNotFound:
        raise HTTPException(status_code=404, detail="Event not found")


@router.patch("/{event_id}", response_model=EventResponse)
def update_event(event_id: str, data: EventUpdate, db: Session = Depends(get_db)):
    try:
        return EventManager.update_event(db, event_id, data.model_dump(exclude_unset=True))
    except EventNotFound:
        raise HTTPException(status_code=404, detail="Event not found")
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to update event: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.put("/{event_id}/roster", response_model=EventResponse)
def admit_roster(event_id: str, data: RosterUpdate, db: Session = Depends(get_db)):
    """
    Replace round 0's admission roster

    Only while the event is still on its first round
    """
    try:
        return EventManager.admit_roster(db, event_id, data.entry_ids)
    except EventNotFound:
        raise HTTPException(status_code=404, detail="Event not found")
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InvalidParticipant as e:
        raise HTTPException(status_code=422, detail=str(e))
    except InvalidState as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to admit roster: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{event_id}/roster/{entry_id}", response_model=EventResponse)
def add_to_roster(event_id: str, entry_id: str, db: Session = Depends(get_db)):
    try:
        return EventManager.add_to_roster(db, event_id, entry_id)
    except EventNotFound:
        raise HTTPException(status_code=404, detail="Event not found")
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InvalidParticipant as e:
        raise HTTPException(status_code=422, detail=str(e))
    except InvalidState as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to add {entry_id} to roster: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.delete("/{event_id}/roster/{entry_id}", response_model=EventResponse)
def remove_from_roster(event_id: str, entry_id: str, db: Session = Depends(get_db)):
    """Withdraw an entry that has not been placed in a heat yet"""
    try:
        return EventManager.remove_from_roster(db, event_id, entry_id)
    except EventNotFound:
        raise HTTPException(status_code=404, detail="Event not found")
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InvalidState as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to remove {entry_id} from roster: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{event_id}/teams", response_model=TeamResponse, status_code=201)
def create_team(event_id: str, data: TeamCreate, db: Session = Depends(get_db)):
    """
    Register a team (group events) and admit it to round 0

    Rules: exact team size, no duplicate members, gender matches unless mixed
    """
    try:
        return EventManager.create_team(
            db,
            event_id,
            member_ids=data.member_ids,
            department_id=data.department_id,
            name=data.name,
        )
    except (EventNotFound, DepartmentNotFound) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InvalidParticipant as e:
        raise HTTPException(status_code=422, detail=str(e))
    except InvalidState as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to create team: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.delete("/{event_id}/teams/{team_id}", response_model=StatusResponse)
def delete_team(event_id: str, team_id: str, db: Session = Depends(get_db)):
    try:
        EventManager.delete_team(db, event_id, team_id)
        return StatusResponse(status="ok")
    except (EventNotFound, TeamNotFound) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (ValidationError, InvalidState) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to delete team: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
