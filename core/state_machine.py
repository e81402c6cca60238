"""
State machines: every Event / Round status change goes through here

Event: UPCOMING -> ONGOING -> COMPLETED (UPCOMING -> COMPLETED when an event
       is closed before any heat ran)
Round: PENDING -> ACTIVE -> COMPLETED (PENDING -> COMPLETED likewise)

Each transition is validated against the table and recorded in ActivityLog.
"""
from sqlalchemy.orm import Session
import logging

from models import ActivityLog, Event, EventStatus, Round, RoundStatus
from core.exceptions import InvalidState

logger = logging.getLogger(__name__)


class EventStateMachine:
    """Event lifecycle transitions"""

    TRANSITIONS = {
        EventStatus.UPCOMING: {EventStatus.ONGOING, EventStatus.COMPLETED},
        EventStatus.ONGOING: {EventStatus.COMPLETED},
        EventStatus.COMPLETED: set(),
    }

    @classmethod
    def can_transition(cls, current: EventStatus, target: EventStatus) -> bool:
        return target in cls.TRANSITIONS[current]

    @classmethod
    def transition(cls, event: Event, target: EventStatus, db: Session) -> Event:
        """
        Move an event to the target status

        Args:
            event: Event, already locked by the caller
            target: new status
            db: SQLAlchemy Session

        Raises:
            InvalidState: transition not in the table
        """
        current = event.status
        if not cls.can_transition(current, target):
            raise InvalidState(
                f"Event {event.id} cannot move from {current.value} to {target.value}"
            )

        event.status = target
        db.add(ActivityLog(
            event_id=event.id,
            activity_type="EVENT_STATE_CHANGED",
            data={"from": current.value, "to": target.value}
        ))
        logger.info(f"Event {event.id} status {current.value} -> {target.value}")
        return event


class RoundStateMachine:
    """Round lifecycle transitions"""

    TRANSITIONS = {
        RoundStatus.PENDING: {RoundStatus.ACTIVE, RoundStatus.COMPLETED},
        RoundStatus.ACTIVE: {RoundStatus.COMPLETED},
        RoundStatus.COMPLETED: set(),
    }

    @classmethod
    def can_transition(cls, current: RoundStatus, target: RoundStatus) -> bool:
        return target in cls.TRANSITIONS[current]

    @classmethod
    def transition(cls, round_obj: Round, target: RoundStatus, db: Session) -> Round:
        current = round_obj.status
        if not cls.can_transition(current, target):
            raise InvalidState(
                f"Round {round_obj.sequence} ({round_obj.name}) cannot move "
                f"from {current.value} to {target.value}"
            )

        round_obj.status = target
        db.add(ActivityLog(
            event_id=round_obj.event_id,
            activity_type="ROUND_STATE_CHANGED",
            data={
                "round_sequence": round_obj.sequence,
                "from": current.value,
                "to": target.value
            }
        ))
        logger.info(
            f"Round {round_obj.sequence} of event {round_obj.event_id} "
            f"status {current.value} -> {target.value}"
        )
        return round_obj
