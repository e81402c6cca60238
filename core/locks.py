"""
Concurrency control helpers

Database-level locking to guard read-modify-write cycles against concurrent
sessions.

Relies on SELECT ... FOR UPDATE (pessimistic row locks) where the backend
supports it; SQLite ignores FOR UPDATE and serializes writers on its own file
lock instead.
"""
from sqlalchemy.orm import Session, Query

from models import ChestCounter, Event


def with_event_lock(event_id: str, db: Session) -> Query:
    """
    Lock one Event row (the aggregate root of its rounds and roster)

    Use when:
    - mutating rounds, heats or the admission roster of an event
    - the event must not change under us for the whole transaction

    Example:
        event = with_event_lock(event_id, db).first()
        if not event:
            raise EventNotFound(event_id)
        event.current_round_index += 1
        db.commit()

    Args:
        event_id: Event id
        db: SQLAlchemy Session

    Returns:
        Query object (call .first() or .one())

    Notes:
        - nowait=False waits for the lock; the wait is bounded by the
          connection/statement timeout from settings
        - must run inside a transaction (commit or rollback releases it)
    """
    return db.query(Event).filter(
        Event.id == event_id
    ).with_for_update(nowait=False)


def with_counter_lock(key: str, db: Session) -> Query:
    """
    Lock the chest number counter row

    Use when:
    - reading the counter with the intent to advance it

    populate_existing() refreshes an already-loaded counter object, since the
    allocator advances the row with a bulk UPDATE.

    Args:
        key: counter key
        db: SQLAlchemy Session

    Returns:
        Query object (call .first())
    """
    return db.query(ChestCounter).filter(
        ChestCounter.key == key
    ).with_for_update(nowait=False).populate_existing()
