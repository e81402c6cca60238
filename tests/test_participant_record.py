import pytest

from core.event_manager import EventManager
from core.exceptions import ParticipantNotFound
from core.round_manager import RoundManager
from services.heat_draft import HeatDraft, SetRank
from services.standings_service import participant_record


def _finish(db, event_id, placings):
    """Flag round 1 as the Final and close it with placings {entry_id: rank}"""
    RoundManager.mark_current_round_final(db, event_id)
    draft = HeatDraft(1, list(placings), is_final=True)
    for entry_id, rank in placings.items():
        if rank is not None:
            draft.apply(SetRank(entry_id, rank))
    return RoundManager.close_event(db, event_id, draft)


@pytest.fixture
def runner(register):
    return register(gender="female", name="Asha")


def test_record_lists_medals_first(db, make_event, register, runner, department):
    rivals = [register(gender="female") for _ in range(3)]

    sprint = make_event(gender_category="female", name="100m Women")
    EventManager.admit_roster(db, sprint.id, [runner.id, rivals[0].id])
    _finish(db, sprint.id, {rivals[0].id: 1, runner.id: 2})

    relay = make_event(discipline="group", gender_category="female", name="4x100m Relay")
    team = EventManager.create_team(
        db, relay.id, [rivals[1].id, runner.id, rivals[2].id, rivals[0].id], department.id
    )
    _finish(db, relay.id, {team.id: 1})

    high_jump = make_event(gender_category="female", name="High Jump Women")
    EventManager.add_to_roster(db, high_jump.id, runner.id)
    _finish(db, high_jump.id, {runner.id: None})

    ongoing = make_event(gender_category="female", name="200m Women")
    EventManager.add_to_roster(db, ongoing.id, runner.id)

    record = participant_record(db, " 21cs001 ")

    assert record.participant.id == runner.id
    assert record.department.code == "CSE"
    assert [(r.event_name, r.rank) for r in record.events] == [
        ("4x100m Relay", 1),
        ("100m Women", 2),
        ("200m Women", None),
        ("High Jump Women", None),
    ]
    assert record.events[0].team_id == team.id
    assert record.events[1].team_id is None
    assert record.events[2].status == "upcoming"
    assert record.events[3].status == "completed"


def test_rank_only_counts_once_the_event_is_completed(db, make_event, runner):
    sprint = make_event(gender_category="female", name="100m Women")
    EventManager.add_to_roster(db, sprint.id, runner.id)
    RoundManager.mark_current_round_final(db, sprint.id)
    RoundManager.open_heat(db, sprint.id, 0, [runner.id], 1)
    RoundManager.record_rank(db, sprint.id, 0, runner.id, 1, 1)

    assert participant_record(db, "21CS001").events[0].rank is None

    RoundManager.close_event(db, sprint.id)
    assert participant_record(db, "21CS001").events[0].rank == 1


def test_events_not_entered_are_left_out(db, make_event, runner, register):
    other = register(gender="female")
    sprint = make_event(gender_category="female", name="100m Women")
    EventManager.add_to_roster(db, sprint.id, other.id)

    assert participant_record(db, runner.registration_code).events == []


def test_unknown_registration_code(db):
    with pytest.raises(ParticipantNotFound):
        participant_record(db, "99XX999")
