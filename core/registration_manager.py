"""
Registration Manager: departments, cohorts and participant registration

Responsibilities:
1. Maintain the department / cohort directory
2. Register participants (validation + chest number allocation)
3. Edit biographical fields (the chest number never changes)
4. Participant lookups
"""
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from models import Cohort, Department, Gender, Participant
from core.chest_allocator import ChestNumberAllocator
from core.exceptions import (
    AthleticsMeetException,
    DepartmentNotFound,
    DuplicateRegistration,
    InvalidState,
    ParticipantNotFound,
    PersistenceError,
    ValidationError,
)
from services.naming_service import normalize_department_code, normalize_registration_code
from services.team_service import gender_locked_events
from database import transactional

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = {"name", "registration_code", "department_id", "cohort_id", "semester", "gender"}
SEMESTER_RANGE = range(1, 9)


def _parse_gender(value: Any) -> Gender:
    try:
        return Gender(value)
    except ValueError:
        raise ValidationError(f"Unknown gender: {value!r}")


class RegistrationManager:
    """Participant registration and directory maintenance"""

    # ============ Directory ============

    @staticmethod
    @transactional
    def create_department(db: Session, name: str, code: str) -> Department:
        code = normalize_department_code(code)
        if not name or not name.strip() or not code:
            raise ValidationError("Department name and code are required")

        if db.query(Department).filter(Department.code == code).first():
            raise ValidationError(f"Department code {code} already exists")

        department = Department(name=name.strip(), code=code)
        db.add(department)
        db.flush()

        logger.info(f"Created department {department.id} ({code})")
        return department

    @staticmethod
    @transactional
    def create_cohort(db: Session, department_id: str, name: str) -> Cohort:
        if not name or not name.strip():
            raise ValidationError("Cohort name is required")
        if not db.get(Department, department_id):
            raise DepartmentNotFound(department_id)

        cohort = Cohort(name=name.strip(), department_id=department_id)
        db.add(cohort)
        db.flush()
        return cohort

    @staticmethod
    def list_departments(db: Session) -> List[Department]:
        return db.query(Department).order_by(Department.code).all()

    # ============ Participants ============

    @staticmethod
    def register_participant(
        db: Session,
        name: str,
        registration_code: str,
        department_id: str,
        gender: Any,
        cohort_id: Optional[str] = None,
        semester: Optional[int] = None,
        allocator: Optional[ChestNumberAllocator] = None,
    ) -> Participant:
        """
        Register a new participant

        Flow:
        1. Validate required fields and references
        2. Reject a registration code that already exists
        3. Allocate a chest number
        4. Insert the participant (counter advance and insert commit together)

        Returns:
            the committed Participant

        Raises:
            ValidationError: missing/malformed fields or dangling references
            DuplicateRegistration: registration code already registered
            ResourceContention: chest number allocation kept conflicting
            PersistenceError: any other storage failure

        Not @transactional: the allocator may roll the session back between
        its own attempts, so this method owns commit/rollback itself.
        """
        code = normalize_registration_code(registration_code)

        # 1. Validate
        if not name or not name.strip() or not code or not department_id:
            raise ValidationError(
                "Missing required fields: name, registration code or department"
            )
        parsed_gender = _parse_gender(gender)
        if semester is not None and semester not in SEMESTER_RANGE:
            raise ValidationError(f"Semester must be between 1 and 8, got {semester}")

        try:
            RegistrationManager._check_references(db, department_id, cohort_id)

            # 2. Duplicate registration code
            existing = db.query(Participant).filter(
                Participant.registration_code == code
            ).first()
            if existing:
                raise DuplicateRegistration(code, existing.id, existing.chest_number)

            # 3. Chest number
            chest_number = (allocator or ChestNumberAllocator()).allocate(db)

            # 4. Insert
            participant = Participant(
                name=name.strip(),
                registration_code=code,
                department_id=department_id,
                cohort_id=cohort_id,
                semester=semester,
                gender=parsed_gender,
                chest_number=chest_number,
            )
            db.add(participant)
            db.commit()
            db.refresh(participant)

        except AthleticsMeetException:
            db.rollback()
            raise
        except IntegrityError as e:
            db.rollback()
            # A concurrent registration may have taken the code after our check
            conflict = db.query(Participant).filter(
                Participant.registration_code == code
            ).first()
            if conflict:
                raise DuplicateRegistration(code, conflict.id, conflict.chest_number) from e
            logger.error(f"Failed to register participant {code}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to register participant {code}") from e
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to register participant {code}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to register participant {code}") from e

        logger.info(
            f"Registered participant {participant.id} ({code}) "
            f"with chest number {participant.chest_number}"
        )
        return participant

    @staticmethod
    @transactional
    def update_participant(db: Session, participant_id: str, changes: Dict[str, Any]) -> Participant:
        """
        Edit biographical fields of a participant

        The chest number is immutable once assigned; passing it is an error.
        """
        if "chest_number" in changes:
            raise ValidationError("Chest number cannot be changed once assigned")
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown participant fields: {sorted(unknown)}")

        participant = db.get(Participant, participant_id)
        if not participant:
            raise ParticipantNotFound(participant_id)

        if "name" in changes:
            if not changes["name"] or not changes["name"].strip():
                raise ValidationError("Name cannot be blank")
            participant.name = changes["name"].strip()

        if "registration_code" in changes:
            code = normalize_registration_code(changes["registration_code"])
            if not code:
                raise ValidationError("Registration code cannot be blank")
            conflict = db.query(Participant).filter(
                Participant.registration_code == code,
                Participant.id != participant_id
            ).first()
            if conflict:
                raise DuplicateRegistration(code, conflict.id, conflict.chest_number)
            participant.registration_code = code

        if "gender" in changes:
            gender = _parse_gender(changes["gender"])
            if gender != participant.gender:
                locked = gender_locked_events(db, participant_id)
                if locked:
                    raise InvalidState(
                        f"Participant {participant.chest_number} is entered in "
                        f"{[e.name for e in locked]}; withdraw them before changing gender"
                    )
            participant.gender = gender

        if "semester" in changes:
            semester = changes["semester"]
            if semester is not None and semester not in SEMESTER_RANGE:
                raise ValidationError(f"Semester must be between 1 and 8, got {semester}")
            participant.semester = semester

        department_id = changes.get("department_id", participant.department_id)
        cohort_id = changes.get("cohort_id", participant.cohort_id)
        if "department_id" in changes or "cohort_id" in changes:
            RegistrationManager._check_references(db, department_id, cohort_id)
            participant.department_id = department_id
            participant.cohort_id = cohort_id

        logger.info(f"Updated participant {participant_id}: {sorted(changes)}")
        return participant

    @staticmethod
    def get_participant(db: Session, participant_id: str) -> Participant:
        participant = db.get(Participant, participant_id)
        if not participant:
            raise ParticipantNotFound(participant_id)
        return participant

    @staticmethod
    def get_participant_by_chest_number(db: Session, chest_number: int) -> Participant:
        participant = db.query(Participant).filter(
            Participant.chest_number == chest_number
        ).first()
        if not participant:
            raise ParticipantNotFound(f"with chest number {chest_number}")
        return participant

    @staticmethod
    def list_participants(
        db: Session,
        department_id: Optional[str] = None,
        gender: Optional[str] = None
    ) -> List[Participant]:
        query = db.query(Participant)
        if department_id:
            query = query.filter(Participant.department_id == department_id)
        if gender:
            query = query.filter(Participant.gender == _parse_gender(gender))
        return query.order_by(Participant.chest_number).all()

    @staticmethod
    def _check_references(db: Session, department_id: str, cohort_id: Optional[str]) -> None:
        if not db.get(Department, department_id):
            raise ValidationError(f"Department {department_id} does not exist")

        if cohort_id is not None:
            cohort = db.get(Cohort, cohort_id)
            if not cohort:
                raise ValidationError(f"Cohort {cohort_id} does not exist")
            if cohort.department_id != department_id:
                raise ValidationError(
                    f"Cohort {cohort_id} does not belong to department {department_id}"
                )
