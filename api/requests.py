"""
Participation Request API Endpoints

Participants ask to join an individual event; staff approve (admits them
to the event's roster) or reject.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
import logging

from database import get_db
from schemas import ParticipationRequestCreate, ParticipationRequestResponse
from core.request_manager import RequestManager
from core.exceptions import (
    EventNotFound,
    InvalidParticipant,
    InvalidState,
    ParticipantNotFound,
    RequestNotFound,
    ValidationError,
)

router = APIRouter(prefix="/api/requests", tags=["requests"])
logger = logging.getLogger(__name__)


@router.post("", response_model=ParticipationRequestResponse, status_code=201)
def submit_request(data: ParticipationRequestCreate, db: Session = Depends(get_db)):
    try:
        return RequestManager.submit_request(db, data.event_id, data.participant_id)
    except EventNotFound:
        raise HTTPException(status_code=404, detail="Event not found")
    except ParticipantNotFound:
        raise HTTPException(status_code=404, detail="Participant not found")
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InvalidParticipant as e:
        raise HTTPException(status_code=422, detail=str(e))
    except InvalidState as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to submit request: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("", response_model=List[ParticipationRequestResponse])
def list_requests(
    status: Optional[str] = Query(None),
    event_id: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    try:
        return RequestManager.list_requests(db, status, event_id)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{request_id}/approve", response_model=ParticipationRequestResponse)
def approve_request(request_id: str, db: Session = Depends(get_db)):
    """
    Approve a pending request

    The participant joins the roster in the same commit; a 409/422 leaves
    the request pending.
    """
    try:
        return RequestManager.approve_request(db, request_id)
    except RequestNotFound:
        raise HTTPException(status_code=404, detail="Request not found")
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InvalidParticipant as e:
        raise HTTPException(status_code=422, detail=str(e))
    except InvalidState as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to approve request: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{request_id}/reject", response_model=ParticipationRequestResponse)
def reject_request(request_id: str, db: Session = Depends(get_db)):
    try:
        return RequestManager.reject_request(db, request_id)
    except RequestNotFound:
        raise HTTPException(status_code=404, detail="Request not found")
    except InvalidState as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to reject request: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
