"""
Round Manager: drives an event through its rounds and heats

Responsibilities:
1. Open heats from the round's eligible roster
2. Record qualification (non-Final rounds) and ranks (Final round)
3. Save whole heats (replacing earlier saves of the same heat)
4. Advance to the next round / close the event

Rules enforced here:
- only the current, non-completed round of a non-completed event is writable
- round N's eligible roster = entries qualified in round N-1
  (round 0: the event's admission roster)
- an entry races in at most one heat per round
- ranks 1-3 exist only in the Final round, one holder per rank
- every mutation runs under the event row lock in one transaction
"""
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence
import logging

from sqlalchemy.orm import Session

from models import (
    ActivityLog,
    EntryKind,
    Event,
    EventStatus,
    Round,
    RoundParticipant,
    RoundStatus,
)
from core.event_manager import EventManager, lock_event
from core.state_machine import EventStateMachine, RoundStateMachine
from core.exceptions import InvalidParticipant, InvalidState, ValidationError
from services.heat_draft import HeatDraft, HeatEntry, check_rank, normalize_score
from services.naming_service import FINAL_ROUND_NAME, default_round_name, next_round_name
from database import transactional

logger = logging.getLogger(__name__)


@dataclass
class RosterItem:
    entry_id: str
    kind: EntryKind
    status: str  # waiting / qualified / ranked / eliminated
    heat_number: Optional[int] = None
    qualified: bool = False
    rank: Optional[int] = None
    score: Optional[str] = None


def eligible_entries(event: Event, round_index: int) -> Dict[str, EntryKind]:
    """
    Ids allowed to race in a round, with their roster kind

    Round 0 takes the admission roster; every later round takes the entries
    that qualified in the round before it.
    """
    if round_index == 0:
        return {entry.entry_id: entry.kind for entry in event.entries}

    previous = event.rounds[round_index - 1]
    return {rp.entry_id: rp.kind for rp in previous.participants if rp.qualified}


def _writable_round(event: Event, round_index: int) -> Round:
    if event.status == EventStatus.COMPLETED:
        raise InvalidState(f"Event {event.name} is completed")
    if round_index != event.current_round_index:
        raise InvalidState(
            f"Round index {round_index} is not the current round "
            f"({event.current_round_index}) of {event.name}"
        )
    round_obj = event.rounds[round_index]
    if round_obj.status == RoundStatus.COMPLETED:
        raise InvalidState(f"Round {round_obj.name} of {event.name} is completed")
    return round_obj


def _find_entry(round_obj: Round, entry_id: str, heat_number: int) -> RoundParticipant:
    for rp in round_obj.participants:
        if rp.entry_id == entry_id and rp.heat_number == heat_number:
            return rp
    raise InvalidParticipant(
        f"{entry_id} is not racing in heat {heat_number} of {round_obj.name}"
    )


def _start_racing(db: Session, event: Event, round_obj: Round) -> None:
    """First heat of a round activates it (and the event, on its first heat ever)"""
    if round_obj.status == RoundStatus.PENDING:
        RoundStateMachine.transition(round_obj, RoundStatus.ACTIVE, db)
    if event.status == EventStatus.UPCOMING:
        EventStateMachine.transition(event, EventStatus.ONGOING, db)


def _clear_rank_holders(round_obj: Round, rank: int, keep: Optional[str]) -> None:
    for rp in round_obj.participants:
        if rp.rank == rank and rp.entry_id != keep:
            logger.info(
                f"Rank {rank} in {round_obj.name} moves away from {rp.entry_id}"
            )
            rp.rank = None
            rp.qualified = False


class RoundManager:
    """Round and heat state machine"""

    @staticmethod
    @transactional
    def open_heat(
        db: Session,
        event_id: str,
        round_index: int,
        entry_ids: Sequence[str],
        heat_number: int
    ) -> List[RoundParticipant]:
        """
        Put entries on the start line of a heat

        Preconditions:
        1. round_index is the current round and it is not completed
        2. every id is eligible for the round
        3. no id already races in a different heat of this round

        Entries already in this same heat are left as they are.

        Returns:
            the heat's RoundParticipant rows

        Raises:
            InvalidState: precondition 1
            InvalidParticipant: preconditions 2-3
            ValidationError: empty / duplicated ids, heat number < 1
        """
        if heat_number < 1:
            raise ValidationError(f"Heat number must be at least 1, got {heat_number}")
        if not entry_ids:
            raise ValidationError("A heat needs at least one entry")
        if len(set(entry_ids)) != len(entry_ids):
            raise ValidationError("Heat contains duplicate ids")

        event = lock_event(db, event_id)
        round_obj = _writable_round(event, round_index)
        eligible = eligible_entries(event, round_index)
        placed = {rp.entry_id: rp.heat_number for rp in round_obj.participants}

        for entry_id in entry_ids:
            if entry_id not in eligible:
                raise InvalidParticipant(
                    f"{entry_id} is not eligible for {round_obj.name} of {event.name}"
                )
            if entry_id in placed and placed[entry_id] != heat_number:
                raise InvalidParticipant(
                    f"{entry_id} already races in heat {placed[entry_id]} of {round_obj.name}"
                )

        for entry_id in entry_ids:
            if entry_id not in placed:
                round_obj.participants.append(RoundParticipant(
                    kind=eligible[entry_id],
                    entry_id=entry_id,
                    heat_number=heat_number,
                    qualified=False,
                    rank=None
                ))

        _start_racing(db, event, round_obj)
        db.flush()

        logger.info(
            f"Opened heat {heat_number} of {round_obj.name} ({event.name}) "
            f"with {len(entry_ids)} entries"
        )
        return [rp for rp in round_obj.participants if rp.heat_number == heat_number]

    @staticmethod
    @transactional
    def record_qualification(
        db: Session,
        event_id: str,
        round_index: int,
        entry_id: str,
        heat_number: int
    ) -> RoundParticipant:
        """
        Toggle an entry's qualified flag (non-Final rounds only)

        Raises:
            InvalidState: Final round, or round not writable
            InvalidParticipant: entry not in that heat
        """
        event = lock_event(db, event_id)
        round_obj = _writable_round(event, round_index)
        if round_obj.is_final:
            raise InvalidState("Qualification is not recorded in the Final round")

        rp = _find_entry(round_obj, entry_id, heat_number)
        rp.qualified = not rp.qualified
        rp.rank = None

        logger.info(
            f"{entry_id} {'qualified' if rp.qualified else 'unqualified'} "
            f"in heat {heat_number} of {round_obj.name} ({event.name})"
        )
        return rp

    @staticmethod
    @transactional
    def record_rank(
        db: Session,
        event_id: str,
        round_index: int,
        entry_id: str,
        heat_number: int,
        rank: int
    ) -> RoundParticipant:
        """
        Assign (or toggle off) a rank in the Final round

        Behavior:
        - assigning rank R also marks the entry qualified
        - assigning the rank the entry already holds clears rank and qualified
        - whoever else held R in this round loses it in the same transaction

        Raises:
            InvalidState: not the Final round, or round not writable
            InvalidParticipant: entry not in that heat
            ValidationError: rank outside 1-3
        """
        check_rank(rank)
        event = lock_event(db, event_id)
        round_obj = _writable_round(event, round_index)
        if not round_obj.is_final:
            raise InvalidState(f"Ranks are only recorded in the Final round, not {round_obj.name}")

        rp = _find_entry(round_obj, entry_id, heat_number)
        if rp.rank == rank:
            rp.rank = None
            rp.qualified = False
            logger.info(f"Cleared rank {rank} of {entry_id} in {event.name}")
            return rp

        _clear_rank_holders(round_obj, rank, keep=entry_id)
        rp.rank = rank
        rp.qualified = True

        logger.info(f"{entry_id} ranked {rank} in {round_obj.name} ({event.name})")
        return rp

    @staticmethod
    @transactional
    def record_score(
        db: Session,
        event_id: str,
        round_index: int,
        entry_id: str,
        heat_number: int,
        score: Optional[str]
    ) -> RoundParticipant:
        """
        Record an entry's time, distance or points (any round)

        The score is informational: it never decides qualification or rank.
        """
        event = lock_event(db, event_id)
        round_obj = _writable_round(event, round_index)
        rp = _find_entry(round_obj, entry_id, heat_number)
        rp.score = normalize_score(score)

        logger.info(f"{entry_id} scored {rp.score} in {round_obj.name} ({event.name})")
        return rp

    @staticmethod
    @transactional
    def close_heat(
        db: Session,
        event_id: str,
        round_index: int,
        heat_number: int,
        entries: Sequence[HeatEntry]
    ) -> List[RoundParticipant]:
        """
        Save a heat's results, replacing whatever was saved for that heat before

        Accepts a HeatDraft's entries(). Ranks are validated the same way as
        record_rank, and other heats' holders of an assigned rank lose it.

        Raises:
            InvalidState: round not writable, or ranks outside the Final round
            InvalidParticipant: ineligible id, or id racing in another heat
            ValidationError: empty heat, duplicated ids or ranks
        """
        event = lock_event(db, event_id)
        round_obj = _writable_round(event, round_index)
        saved = RoundManager._write_heat(db, event, round_obj, heat_number, entries)

        logger.info(
            f"Saved heat {heat_number} of {round_obj.name} ({event.name}) "
            f"with {len(saved)} entries"
        )
        return saved

    @staticmethod
    @transactional
    def advance_round(
        db: Session,
        event_id: str,
        next_name: Optional[str] = None,
        is_final: bool = False
    ) -> Round:
        """
        Complete the current round and open the next one

        Preconditions:
        - event not completed
        - current round is not the Final round
        - at least one entry qualified in the current round

        Effects:
        - current round -> COMPLETED
        - new round appended: sequence = current index + 2, PENDING,
          named next_name (or "Final" / "Round N")
        - current_round_index += 1

        Raises:
            InvalidState: any precondition fails
        """
        event = lock_event(db, event_id)
        current = _writable_round(event, event.current_round_index)

        if current.is_final:
            raise InvalidState(f"{current.name} is the Final round; close the event instead")

        qualified = sum(1 for rp in current.participants if rp.qualified)
        if qualified == 0:
            raise InvalidState(f"No entry has qualified from {current.name} yet")

        RoundStateMachine.transition(current, RoundStatus.COMPLETED, db)

        sequence = event.current_round_index + 2
        new_round = Round(
            name=next_round_name(sequence, next_name, is_final),
            sequence=sequence,
            is_final=is_final,
            status=RoundStatus.PENDING,
        )
        event.rounds.append(new_round)
        event.current_round_index += 1
        db.flush()

        db.add(ActivityLog(
            event_id=event.id,
            activity_type="ROUND_ADVANCED",
            data={
                "from_sequence": current.sequence,
                "to_sequence": sequence,
                "qualified": qualified,
                "is_final": is_final
            }
        ))

        logger.info(
            f"Event {event.name} advanced to {new_round.name} "
            f"(sequence {sequence}) with {qualified} qualified"
        )
        return new_round

    @staticmethod
    @transactional
    def rename_current_round(db: Session, event_id: str, name: str) -> Round:
        """Rename the current round (metadata only)"""
        if not name or not name.strip():
            raise ValidationError("Round name cannot be blank")

        event = lock_event(db, event_id)
        round_obj = _writable_round(event, event.current_round_index)
        round_obj.name = name.strip()
        return round_obj

    @staticmethod
    @transactional
    def mark_current_round_final(db: Session, event_id: str) -> Round:
        """
        Flag the current round as the Final (metadata only)

        A round still carrying its default "Round N" name is renamed "Final".
        Qualification flags already recorded are kept as they are.
        """
        event = lock_event(db, event_id)
        round_obj = _writable_round(event, event.current_round_index)
        round_obj.is_final = True
        if round_obj.name == default_round_name(round_obj.sequence):
            round_obj.name = FINAL_ROUND_NAME

        logger.info(f"{round_obj.name} of {event.name} marked as Final")
        return round_obj

    @staticmethod
    @transactional
    def close_event(db: Session, event_id: str, pending_heat: Optional[HeatDraft] = None) -> Event:
        """
        Finish an event (terminal)

        Flow:
        1. Save the pending heat draft, if the operator left one open
        2. Complete the current round
        3. Settle winner_ids from the Final round's ranks (1st, 2nd, 3rd)
        4. Event -> COMPLETED

        Raises:
            InvalidState: event already completed
        """
        event = lock_event(db, event_id)
        current = _writable_round(event, event.current_round_index)

        # 1. Pending heat
        if pending_heat is not None and pending_heat.entries():
            RoundManager._write_heat(
                db, event, current, pending_heat.heat_number, pending_heat.entries()
            )

        # 2. Current round
        RoundStateMachine.transition(current, RoundStatus.COMPLETED, db)

        # 3. Winners
        event.winner_ids = RoundManager._settle_winners(event)

        # 4. Event
        EventStateMachine.transition(event, EventStatus.COMPLETED, db)

        logger.info(f"Event {event.name} closed, winners: {event.winner_ids}")
        return event

    # ============ Read side ============

    @staticmethod
    def get_roster(db: Session, event_id: str, round_index: int) -> List[RosterItem]:
        """
        Snapshot of a round's eligible roster with each entry's status

        Status:
        - waiting: eligible, not yet placed in a heat
        - ranked: holds a rank (Final round)
        - qualified: advanced from its heat
        - eliminated: raced, neither qualified nor ranked
        """
        event = EventManager.get_event(db, event_id)
        if round_index < 0 or round_index >= len(event.rounds):
            raise InvalidState(f"Event {event.name} has no round index {round_index}")

        round_obj = event.rounds[round_index]
        placed = {rp.entry_id: rp for rp in round_obj.participants}

        roster = []
        for entry_id, kind in eligible_entries(event, round_index).items():
            rp = placed.get(entry_id)
            if rp is None:
                roster.append(RosterItem(entry_id=entry_id, kind=kind, status="waiting"))
                continue
            if rp.rank is not None:
                status = "ranked"
            elif rp.qualified:
                status = "qualified"
            else:
                status = "eliminated"
            roster.append(RosterItem(
                entry_id=entry_id,
                kind=kind,
                status=status,
                heat_number=rp.heat_number,
                qualified=rp.qualified,
                rank=rp.rank,
                score=rp.score
            ))
        return roster

    # ============ helpers ============

    @staticmethod
    def _write_heat(
        db: Session,
        event: Event,
        round_obj: Round,
        heat_number: int,
        entries: Sequence[HeatEntry]
    ) -> List[RoundParticipant]:
        if heat_number < 1:
            raise ValidationError(f"Heat number must be at least 1, got {heat_number}")
        if not entries:
            raise ValidationError("A heat needs at least one entry")

        entry_ids = [e.entry_id for e in entries]
        if len(set(entry_ids)) != len(entry_ids):
            raise ValidationError("Heat contains duplicate ids")

        ranks = [e.rank for e in entries if e.rank is not None]
        if ranks and not round_obj.is_final:
            raise InvalidState(f"Ranks are only recorded in the Final round, not {round_obj.name}")
        for rank in ranks:
            check_rank(rank)
        if len(set(ranks)) != len(ranks):
            raise ValidationError("Two entries of the heat share a rank")

        eligible = eligible_entries(event, round_obj.sequence - 1)
        other_heats = {
            rp.entry_id: rp.heat_number
            for rp in round_obj.participants
            if rp.heat_number != heat_number
        }
        for entry_id in entry_ids:
            if entry_id not in eligible:
                raise InvalidParticipant(
                    f"{entry_id} is not eligible for {round_obj.name} of {event.name}"
                )
            if entry_id in other_heats:
                raise InvalidParticipant(
                    f"{entry_id} already races in heat {other_heats[entry_id]} of {round_obj.name}"
                )

        # Replace, never append: drop the heat's previous save first
        for rp in [rp for rp in round_obj.participants if rp.heat_number == heat_number]:
            round_obj.participants.remove(rp)
        db.flush()

        for rank in ranks:
            _clear_rank_holders(round_obj, rank, keep=None)

        saved = []
        for entry in entries:
            rp = RoundParticipant(
                kind=eligible[entry.entry_id],
                entry_id=entry.entry_id,
                heat_number=heat_number,
                # In the Final a rank is what qualifies an entry
                qualified=entry.rank is not None if round_obj.is_final else entry.qualified,
                rank=entry.rank,
                score=normalize_score(entry.score)
            )
            round_obj.participants.append(rp)
            saved.append(rp)

        _start_racing(db, event, round_obj)
        db.flush()
        return saved

    @staticmethod
    def _settle_winners(event: Event) -> List[str]:
        final_round = next((r for r in event.rounds if r.is_final), None)
        if final_round is None:
            return []
        ranked = sorted(
            (rp for rp in final_round.participants if rp.rank is not None),
            key=lambda rp: rp.rank
        )
        return [rp.entry_id for rp in ranked]
