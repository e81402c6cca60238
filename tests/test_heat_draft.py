import pytest

from core.exceptions import InvalidParticipant, InvalidState, ValidationError
from services.heat_draft import ClearRank, HeatDraft, SetRank, SetScore, ToggleQualified


def _by_id(draft):
    return {e.entry_id: e for e in draft.entries()}


def test_set_rank_moves_rank_between_entries():
    draft = HeatDraft(1, ["a", "b", "c"], is_final=True)
    draft.apply_all([SetRank("a", 1), SetRank("b", 1)])

    entries = _by_id(draft)
    assert entries["a"].rank is None and entries["a"].qualified is False
    assert entries["b"].rank == 1 and entries["b"].qualified is True


def test_set_rank_is_idempotent():
    draft = HeatDraft(1, ["a", "b"], is_final=True)
    draft.apply_all([SetRank("a", 2), SetRank("a", 2)])

    assert _by_id(draft)["a"].rank == 2


def test_clear_rank_is_idempotent():
    draft = HeatDraft(1, ["a"], is_final=True)
    draft.apply_all([SetRank("a", 3), ClearRank("a"), ClearRank("a")])

    assert _by_id(draft)["a"].rank is None


def test_toggle_qualified_flips():
    draft = HeatDraft(2, ["a", "b"], is_final=False)
    draft.apply_all([ToggleQualified("a"), ToggleQualified("b"), ToggleQualified("b")])

    entries = _by_id(draft)
    assert entries["a"].qualified is True
    assert entries["b"].qualified is False


def test_rank_commands_need_a_final():
    draft = HeatDraft(1, ["a"], is_final=False)

    with pytest.raises(InvalidState):
        draft.apply(SetRank("a", 1))
    with pytest.raises(InvalidState):
        draft.apply(ClearRank("a"))


def test_toggle_rejected_in_final():
    with pytest.raises(InvalidState):
        HeatDraft(1, ["a"], is_final=True).apply(ToggleQualified("a"))


def test_unknown_entry_and_bad_rank():
    draft = HeatDraft(1, ["a"], is_final=True)

    with pytest.raises(InvalidParticipant):
        draft.apply(SetRank("z", 1))
    with pytest.raises(ValidationError):
        draft.apply(SetRank("a", 0))


def test_duplicate_ids_rejected():
    with pytest.raises(ValidationError):
        HeatDraft(1, ["a", "a"], is_final=False)


def test_entries_are_snapshots():
    draft = HeatDraft(1, ["a"], is_final=True)
    snapshot = draft.entries()
    draft.apply(SetRank("a", 1))

    assert snapshot[0].rank is None


def test_scores_are_kept_as_text():
    draft = HeatDraft(1, ["a", "b", "c"], is_final=False)
    draft.apply_all([SetScore("a", " 10.52 "), SetScore("b", 5.81), SetScore("c", "5.81m")])
    draft.apply(SetScore("b", "   "))

    entries = _by_id(draft)
    assert entries["a"].score == "10.52"
    assert entries["b"].score is None
    assert entries["c"].score == "5.81m"
    # A score never qualifies anyone
    assert not any(e.qualified for e in entries.values())


def test_score_rules():
    draft = HeatDraft(1, ["a"], is_final=True)

    with pytest.raises(ValidationError):
        draft.apply(SetScore("a", "9" * 51))
    with pytest.raises(InvalidParticipant):
        draft.apply(SetScore("z", "10.1"))
