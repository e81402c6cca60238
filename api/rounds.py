"""
Round API Endpoints

Highlights:
1. All round / heat rules live in RoundManager; this layer only maps errors
2. Heats are saved whole (PUT replaces a heat's earlier save)
3. Clients never edit rounds directly, only through these commands
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

import logging

from database import get_db
from schemas import (
    CurrentRoundUpdate,
    EntryRef,
    EventClose,
    EventResponse,
    HeatOpen,
    HeatSave,
    RankSubmit,
    RosterItemResponse,
    RoundAdvance,
    RoundParticipantResponse,
    RoundResponse,
    ScoreSubmit,
)
from core.event_manager import EventManager
from core.round_manager import RoundManager
from core.exceptions import (
    EventNotFound,
    InvalidParticipant,
    InvalidState,
    ValidationError,
)
from services.heat_draft import HeatDraft, HeatEntry, SetRank, SetScore, ToggleQualified

router = APIRouter(prefix="/api/events", tags=["rounds"])
logger = logging.getLogger(__name__)


@router.get("/{event_id}/rounds/{round_index}/roster", response_model=List[RosterItemResponse])
def get_roster(event_id: str, round_index: int, db: Session = Depends(get_db)):
    """
    Eligible roster of a round with each entry's status

    Status: waiting / qualified / ranked / eliminated
    """
    try:
        return RoundManager.get_roster(db, event_id, round_index)
    except EventNotFound:
        raise HTTPException(status_code=404, detail="Event not found")
    except InvalidState as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post(
    "/{event_id}/rounds/{round_index}/heats",
    response_model=List[RoundParticipantResponse],
    status_code=201
)
def open_heat(event_id: str, round_index: int, data: HeatOpen, db: Session = Depends(get_db)):
    try:
        return RoundManager.open_heat(
            db, event_id, round_index, data.entry_ids, data.heat_number
        )
    except EventNotFound:
        raise HTTPException(status_code=404, detail="Event not found")
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InvalidParticipant as e:
        raise HTTPException(status_code=422, detail=str(e))
    except InvalidState as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to open heat: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.put(
    "/{event_id}/rounds/{round_index}/heats/{heat_number}",
    response_model=List[RoundParticipantResponse]
)
def close_heat(
    event_id: str,
    round_index: int,
    heat_number: int,
    data: HeatSave,
    db: Session = Depends(get_db)
):
    """
    Save a heat's results in one go

    Replaces (does not append to) what was saved for this heat before.
    """
    entries = [
        HeatEntry(entry_id=e.entry_id, qualified=e.qualified, rank=e.rank, score=e.score)
        for e in data.entries
    ]
    try:
        return RoundManager.close_heat(db, event_id, round_index, heat_number, entries)
    except EventNotFound:
        raise HTTPException(status_code=404, detail="Event not found")
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InvalidParticipant as e:
        raise HTTPException(status_code=422, detail=str(e))
    except InvalidState as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to save heat: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post(
    "/{event_id}/rounds/{round_index}/heats/{heat_number}/qualify",
    response_model=RoundParticipantResponse
)
def record_qualification(
    event_id: str,
    round_index: int,
    heat_number: int,
    data: EntryRef,
    db: Session = Depends(get_db)
):
    try:
        return RoundManager.record_qualification(
            db, event_id, round_index, data.entry_id, heat_number
        )
    except EventNotFound:
        raise HTTPException(status_code=404, detail="Event not found")
    except InvalidParticipant as e:
        raise HTTPException(status_code=422, detail=str(e))
    except InvalidState as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to record qualification: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post(
    "/{event_id}/rounds/{round_index}/heats/{heat_number}/rank",
    response_model=RoundParticipantResponse
)
def record_rank(
    event_id: str,
    round_index: int,
    heat_number: int,
    data: RankSubmit,
    db: Session = Depends(get_db)
):
    """
    Assign a Final round rank

    Sending the rank an entry already holds clears it.
    """
    try:
        return RoundManager.record_rank(
            db, event_id, round_index, data.entry_id, heat_number, data.rank
        )
    except EventNotFound:
        raise HTTPException(status_code=404, detail="Event not found")
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InvalidParticipant as e:
        raise HTTPException(status_code=422, detail=str(e))
    except InvalidState as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to record rank: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post(
    "/{event_id}/rounds/{round_index}/heats/{heat_number}/score",
    response_model=RoundParticipantResponse
)
def record_score(
    event_id: str,
    round_index: int,
    heat_number: int,
    data: ScoreSubmit,
    db: Session = Depends(get_db)
):
    """Record a time / distance / points value; null clears it"""
    try:
        return RoundManager.record_score(
            db, event_id, round_index, data.entry_id, heat_number, data.score
        )
    except EventNotFound:
        raise HTTPException(status_code=404, detail="Event not found")
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InvalidParticipant as e:
        raise HTTPException(status_code=422, detail=str(e))
    except InvalidState as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to record score: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{event_id}/advance", response_model=RoundResponse)
def advance_round(event_id: str, data: RoundAdvance, db: Session = Depends(get_db)):
    """
    Complete the current round and open the next one

    Requires at least one qualified entry in the current round.
    """
    try:
        return RoundManager.advance_round(db, event_id, data.next_name, data.is_final)
    except EventNotFound:
        raise HTTPException(status_code=404, detail="Event not found")
    except InvalidState as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to advance round: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.patch("/{event_id}/rounds/current", response_model=RoundResponse)
def update_current_round(
    event_id: str,
    data: CurrentRoundUpdate,
    db: Session = Depends(get_db)
):
    """Rename the current round and/or flag it as the Final"""
    try:
        round_obj = None
        if data.name is not None:
            round_obj = RoundManager.rename_current_round(db, event_id, data.name)
        if data.is_final:
            round_obj = RoundManager.mark_current_round_final(db, event_id)
        if round_obj is None:
            raise ValidationError("Nothing to update")
        return round_obj

    except EventNotFound:
        raise HTTPException(status_code=404, detail="Event not found")
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InvalidState as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to update round: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{event_id}/close", response_model=EventResponse)
def close_event(event_id: str, data: EventClose, db: Session = Depends(get_db)):
    """
    Close the event (terminal)

    A heat the operator left unsaved can be sent along; it is replayed as
    heat commands and saved before the event closes.
    """
    try:
        pending = None
        if data.pending_heat_number is not None and data.pending_entries:
            event = EventManager.get_event(db, event_id)
            is_final = event.current_round.is_final
            pending = HeatDraft(
                data.pending_heat_number,
                [e.entry_id for e in data.pending_entries],
                is_final=is_final
            )
            for e in data.pending_entries:
                if e.rank is not None:
                    pending.apply(SetRank(e.entry_id, e.rank))
                # In the Final only a rank qualifies; a stray flag is ignored
                elif e.qualified and not is_final:
                    pending.apply(ToggleQualified(e.entry_id))
                if e.score is not None:
                    pending.apply(SetScore(e.entry_id, e.score))

        return RoundManager.close_event(db, event_id, pending)

    except EventNotFound:
        raise HTTPException(status_code=404, detail="Event not found")
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InvalidParticipant as e:
        raise HTTPException(status_code=422, detail=str(e))
    except InvalidState as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to close event: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
