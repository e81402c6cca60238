"""
Heat draft: in-memory results of a heat before it is saved

Operators click through results (rank buttons, qualify toggles) many times
before a single save. Each click is an explicit command applied here; the
finished draft is committed in one go by RoundManager.close_heat.

Commands:
- SetRank(entry_id, rank): entry takes the rank (and qualifies); whoever held
  that rank in the draft loses it. Applying it twice changes nothing.
- ClearRank(entry_id): entry loses its rank and qualification. Idempotent.
- ToggleQualified(entry_id): flips the qualification flag (non-Final only).
- SetScore(entry_id, score): records the time, distance or points as
  entered; None clears it. Allowed in every round.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Union

from core.exceptions import InvalidParticipant, InvalidState, ValidationError

VALID_RANKS = (1, 2, 3)
MAX_SCORE_LENGTH = 50


@dataclass
class HeatEntry:
    entry_id: str
    qualified: bool = False
    rank: Optional[int] = None
    score: Optional[str] = None


@dataclass(frozen=True)
class SetRank:
    entry_id: str
    rank: int


@dataclass(frozen=True)
class ClearRank:
    entry_id: str


@dataclass(frozen=True)
class ToggleQualified:
    entry_id: str


@dataclass(frozen=True)
class SetScore:
    entry_id: str
    score: Optional[str]


HeatCommand = Union[SetRank, ClearRank, ToggleQualified, SetScore]


def check_rank(rank: int) -> None:
    if rank not in VALID_RANKS:
        raise ValidationError(f"Rank must be one of {VALID_RANKS}, got {rank}")


def normalize_score(score) -> Optional[str]:
    """
    Scores are kept as entered ("10.52", "5.81m", 42); blank means no score
    """
    if score is None:
        return None
    text = str(score).strip()
    if len(text) > MAX_SCORE_LENGTH:
        raise ValidationError(f"Score is longer than {MAX_SCORE_LENGTH} characters")
    return text or None


class HeatDraft:
    """Unsaved results of one heat"""

    def __init__(self, heat_number: int, entry_ids: Iterable[str], is_final: bool):
        self.heat_number = heat_number
        self.is_final = is_final
        self._entries: Dict[str, HeatEntry] = {}
        for entry_id in entry_ids:
            if entry_id in self._entries:
                raise ValidationError(f"{entry_id} appears twice in heat {heat_number}")
            self._entries[entry_id] = HeatEntry(entry_id=entry_id)

    def apply(self, command: HeatCommand) -> "HeatDraft":
        entry = self._entries.get(command.entry_id)
        if entry is None:
            raise InvalidParticipant(
                f"{command.entry_id} is not racing in heat {self.heat_number}"
            )

        if isinstance(command, SetRank):
            self._require_final("rank")
            check_rank(command.rank)
            for other in self._entries.values():
                if other is not entry and other.rank == command.rank:
                    other.rank = None
                    other.qualified = False
            entry.rank = command.rank
            entry.qualified = True
        elif isinstance(command, ClearRank):
            self._require_final("rank")
            entry.rank = None
            entry.qualified = False
        elif isinstance(command, ToggleQualified):
            if self.is_final:
                raise InvalidState("Qualification is not recorded in the Final round")
            entry.qualified = not entry.qualified
        elif isinstance(command, SetScore):
            entry.score = normalize_score(command.score)
        else:
            raise TypeError(f"Unknown heat command: {command!r}")

        return self

    def apply_all(self, commands: Iterable[HeatCommand]) -> "HeatDraft":
        for command in commands:
            self.apply(command)
        return self

    def entries(self) -> List[HeatEntry]:
        return [
            HeatEntry(entry_id=e.entry_id, qualified=e.qualified, rank=e.rank, score=e.score)
            for e in self._entries.values()
        ]

    def _require_final(self, what: str) -> None:
        if not self.is_final:
            raise InvalidState(f"Cannot record a {what} outside the Final round")
