"""
Participant API Endpoints

Responsibilities:
1. Department / cohort directory
2. Participant registration (chest number allocation)
3. Participant lookups and edits
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
import logging

from database import get_db
from schemas import (
    CohortCreate,
    CohortResponse,
    DepartmentCreate,
    DepartmentResponse,
    ParticipantCreate,
    ParticipantRecordResponse,
    ParticipantResponse,
    ParticipantUpdate,
)
from core.registration_manager import RegistrationManager
from core.exceptions import (
    DepartmentNotFound,
    DuplicateRegistration,
    InvalidState,
    ParticipantNotFound,
    PersistenceError,
    ResourceContention,
    ValidationError,
)
from services.standings_service import participant_record

router = APIRouter(prefix="/api", tags=["participants"])
logger = logging.getLogger(__name__)


@router.post("/departments", response_model=DepartmentResponse, status_code=201)
def create_department(data: DepartmentCreate, db: Session = Depends(get_db)):
    try:
        return RegistrationManager.create_department(db, data.name, data.code)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to create department: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/departments", response_model=List[DepartmentResponse])
def list_departments(db: Session = Depends(get_db)):
    return RegistrationManager.list_departments(db)


@router.post("/cohorts", response_model=CohortResponse, status_code=201)
def create_cohort(data: CohortCreate, db: Session = Depends(get_db)):
    try:
        return RegistrationManager.create_cohort(db, data.department_id, data.name)
    except DepartmentNotFound:
        raise HTTPException(status_code=404, detail="Department not found")
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to create cohort: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/participants", response_model=ParticipantResponse, status_code=201)
def register_participant(data: ParticipantCreate, db: Session = Depends(get_db)):
    """
    Register a participant

    Flow:
    1. Validate fields and department / cohort references
    2. Reject an already registered registration code (409, with the
       existing participant's id and chest number)
    3. Allocate the next chest number and insert
    """
    try:
        participant = RegistrationManager.register_participant(
            db,
            name=data.name,
            registration_code=data.registration_code,
            department_id=data.department_id,
            gender=data.gender,
            cohort_id=data.cohort_id,
            semester=data.semester,
        )
        return participant

    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DuplicateRegistration as e:
        raise HTTPException(status_code=409, detail={
            "message": str(e),
            "participant_id": e.participant_id,
            "chest_number": e.chest_number,
        })
    except ResourceContention as e:
        logger.warning(f"Registration contention: {e}")
        raise HTTPException(status_code=503, detail=str(e))
    except PersistenceError as e:
        logger.error(f"Failed to register participant: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/participants", response_model=List[ParticipantResponse])
def list_participants(
    department_id: Optional[str] = Query(None),
    gender: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    try:
        return RegistrationManager.list_participants(db, department_id, gender)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/participants/chest/{chest_number}", response_model=ParticipantResponse)
def get_participant_by_chest_number(chest_number: int, db: Session = Depends(get_db)):
    try:
        return RegistrationManager.get_participant_by_chest_number(db, chest_number)
    except ParticipantNotFound:
        raise HTTPException(status_code=404, detail="Participant not found")


@router.get(
    "/participants/{registration_code}/record",
    response_model=ParticipantRecordResponse
)
def get_participant_record(registration_code: str, db: Session = Depends(get_db)):
    """
    Public results lookup by registration code

    Lists every event the participant is entered in (directly or through a
    team) with the podium rank they finished with, medals first.
    """
    try:
        record = participant_record(db, registration_code)
        return ParticipantRecordResponse.model_validate(record)
    except ParticipantNotFound:
        raise HTTPException(status_code=404, detail="Participant not found")


@router.patch("/participants/{participant_id}", response_model=ParticipantResponse)
def update_participant(
    participant_id: str,
    data: ParticipantUpdate,
    db: Session = Depends(get_db)
):
    try:
        changes = data.model_dump(exclude_unset=True)
        return RegistrationManager.update_participant(db, participant_id, changes)

    except ParticipantNotFound:
        raise HTTPException(status_code=404, detail="Participant not found")
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InvalidState as e:
        raise HTTPException(status_code=409, detail=str(e))
    except DuplicateRegistration as e:
        raise HTTPException(status_code=409, detail={
            "message": str(e),
            "participant_id": e.participant_id,
            "chest_number": e.chest_number,
        })
    except Exception as e:
        logger.error(f"Failed to update participant: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
