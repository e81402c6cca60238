"""
Request Manager: participants asking to join an event

Flow:
1. A participant submits a request for an individual event (PENDING)
2. Staff approve it, which admits the participant to round 0's roster,
   or reject it
3. Resolved requests are kept as a record and never reopened
"""
from datetime import datetime, timezone
from typing import List, Optional
import logging

from sqlalchemy.orm import Session

from models import ActivityLog, Participant, ParticipationRequest, RequestStatus
from core.event_manager import EventManager, lock_event
from core.exceptions import (
    InvalidState,
    ParticipantNotFound,
    RequestNotFound,
    ValidationError,
)
from services.team_service import tag_entry
from database import transactional

logger = logging.getLogger(__name__)


class RequestManager:
    """Join requests for individual events"""

    @staticmethod
    @transactional
    def submit_request(db: Session, event_id: str, participant_id: str) -> ParticipationRequest:
        """
        File a pending join request

        Checked up front so staff only see requests they could approve.
        Approval re-runs the roster checks, since the event may have moved on.

        Raises:
            EventNotFound / ParticipantNotFound: unknown ids
            ValidationError: group event, already admitted, duplicate request
            InvalidState: roster is closed
            InvalidParticipant: wrong gender for the event
        """
        event = lock_event(db, event_id)
        if event.is_group:
            raise ValidationError(f"{event.name} is a group event; register a team instead")
        EventManager._require_roster_open(event)

        if not db.get(Participant, participant_id):
            raise ParticipantNotFound(participant_id)
        if participant_id in event.admission_ids:
            raise ValidationError(f"{participant_id} is already on the roster of {event.name}")
        tag_entry(db, event, participant_id)

        pending = db.query(ParticipationRequest).filter(
            ParticipationRequest.event_id == event_id,
            ParticipationRequest.participant_id == participant_id,
            ParticipationRequest.status == RequestStatus.PENDING
        ).first()
        if pending:
            raise ValidationError(f"A request for {event.name} is already pending")

        request = ParticipationRequest(
            event_id=event_id,
            participant_id=participant_id,
            status=RequestStatus.PENDING
        )
        db.add(request)
        db.flush()

        logger.info(f"Participant {participant_id} requested to join event {event_id}")
        return request

    @staticmethod
    @transactional
    def approve_request(db: Session, request_id: str) -> ParticipationRequest:
        """
        Approve a pending request and admit the participant

        Admission and the status change commit together; if the participant
        can no longer be admitted the request stays pending.

        Raises:
            RequestNotFound: unknown request
            InvalidState: request already resolved, or roster closed
            InvalidParticipant: participant no longer eligible
        """
        request = RequestManager._get(db, request_id)
        event = lock_event(db, request.event_id)
        RequestManager._require_pending(db, request)
        EventManager.admit_entry(db, event, request.participant_id)

        RequestManager._resolve(db, request, RequestStatus.APPROVED)
        return request

    @staticmethod
    @transactional
    def reject_request(db: Session, request_id: str) -> ParticipationRequest:
        request = RequestManager._get(db, request_id)
        lock_event(db, request.event_id)
        RequestManager._require_pending(db, request)
        RequestManager._resolve(db, request, RequestStatus.REJECTED)
        return request

    @staticmethod
    def list_requests(
        db: Session,
        status: Optional[str] = None,
        event_id: Optional[str] = None
    ) -> List[ParticipationRequest]:
        query = db.query(ParticipationRequest)
        if status:
            try:
                query = query.filter(ParticipationRequest.status == RequestStatus(status))
            except ValueError as e:
                raise ValidationError(str(e))
        if event_id:
            query = query.filter(ParticipationRequest.event_id == event_id)
        return query.order_by(ParticipationRequest.created_at, ParticipationRequest.id).all()

    # ============ helpers ============

    @staticmethod
    def _get(db: Session, request_id: str) -> ParticipationRequest:
        request = db.get(ParticipationRequest, request_id)
        if not request:
            raise RequestNotFound(request_id)
        return request

    @staticmethod
    def _require_pending(db: Session, request: ParticipationRequest) -> None:
        # Re-read under the event lock; a concurrent decision may have landed
        db.refresh(request)
        if request.status != RequestStatus.PENDING:
            raise InvalidState(f"Request {request.id} is already {request.status.value}")

    @staticmethod
    def _resolve(db: Session, request: ParticipationRequest, status: RequestStatus) -> None:
        request.status = status
        request.resolved_at = datetime.now(timezone.utc)
        db.add(ActivityLog(
            event_id=request.event_id,
            activity_type=f"REQUEST_{status.name}",
            data={"request_id": request.id, "participant_id": request.participant_id}
        ))
        logger.info(f"Request {request.id} {status.value}")
