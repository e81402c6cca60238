"""
Chest number allocator

Issues unique, strictly increasing chest numbers to new participants.

Algorithm:
1. Lock-read the durable counter row (bootstrap it if missing)
2. candidate = value + 1
3. Compare-and-advance: UPDATE ... SET value = candidate WHERE value = old
4. Zero rows updated (or a storage lock error) means another allocator won
   the race: roll back and retry, up to max_attempts

The advance is not committed here. The caller commits it together with the
participant insert, so a failed registration never burns a number.
"""
from typing import Optional
import logging

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from models import ChestCounter, Participant
from core.locks import with_counter_lock
from core.exceptions import ResourceContention
from database import get_settings

logger = logging.getLogger(__name__)

COUNTER_KEY = "chest_number"


class CounterConflict(Exception):
    """Compare-and-advance lost against a concurrent allocator"""
    pass


class ChestNumberAllocator:
    """Durable-counter chest number allocator"""

    def __init__(self, seed: Optional[int] = None, max_attempts: Optional[int] = None):
        settings = get_settings()
        self.seed = settings.chest_number_seed if seed is None else seed
        self.max_attempts = (
            settings.chest_allocator_max_attempts if max_attempts is None else max_attempts
        )

    def allocate(self, db: Session) -> int:
        """
        Allocate the next chest number

        Must be called before the caller adds anything else to the session:
        a conflict rolls the session back before retrying.

        Args:
            db: SQLAlchemy Session (transaction left open for the caller)

        Returns:
            the allocated chest number

        Raises:
            ResourceContention: every attempt conflicted
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                current = self._read_counter(db)
                candidate = current + 1
                self._advance(db, current, candidate)
                logger.info(f"Allocated chest number {candidate} (attempt {attempt})")
                return candidate
            except (CounterConflict, IntegrityError, OperationalError) as e:
                db.rollback()
                logger.warning(
                    f"Chest number allocation conflict on attempt "
                    f"{attempt}/{self.max_attempts}: {e}"
                )

        raise ResourceContention(
            f"Could not allocate a chest number after {self.max_attempts} attempts"
        )

    def _read_counter(self, db: Session) -> int:
        counter = with_counter_lock(COUNTER_KEY, db).first()
        if counter is None:
            return self._bootstrap(db)
        return counter.value

    def _bootstrap(self, db: Session) -> int:
        """
        Create the counter row from the highest chest number on record

        Two first-run allocators may both get here. Only one insert survives
        the primary key; the loser raises IntegrityError and retries against
        the winner's row. Either way the value is never below the true max.
        """
        existing_max = db.query(func.max(Participant.chest_number)).scalar()
        start = max(self.seed, existing_max or 0)

        db.add(ChestCounter(key=COUNTER_KEY, value=start))
        db.flush()

        logger.info(f"Bootstrapped chest number counter at {start}")
        return start

    def _advance(self, db: Session, expected: int, candidate: int) -> None:
        result = db.execute(
            update(ChestCounter)
            .where(ChestCounter.key == COUNTER_KEY, ChestCounter.value == expected)
            .values(value=candidate)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise CounterConflict(
                f"Counter moved away from {expected} before it could advance"
            )
