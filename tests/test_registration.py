import pytest
from sqlalchemy.exc import OperationalError

from models import Department, Gender
from core.event_manager import EventManager
from core.exceptions import (
    DuplicateRegistration,
    InvalidState,
    ParticipantNotFound,
    PersistenceError,
    ValidationError,
)
from core.registration_manager import RegistrationManager
from core.round_manager import RoundManager


def test_register_assigns_sequential_chest_numbers(register):
    first = register()
    second = register(gender="female")

    assert first.chest_number == 101
    assert second.chest_number == 102
    assert second.gender == Gender.FEMALE


def test_registration_code_is_normalized(db, department):
    participant = RegistrationManager.register_participant(
        db, "Asha", " 21cs045 ", department.id, "female"
    )

    assert participant.registration_code == "21CS045"


def test_duplicate_registration_reports_existing_identity(db, department):
    original = RegistrationManager.register_participant(
        db, "Asha", "21CS045", department.id, "female"
    )

    with pytest.raises(DuplicateRegistration) as exc_info:
        RegistrationManager.register_participant(
            db, "Asha again", "21cs045", department.id, "female"
        )

    assert exc_info.value.participant_id == original.id
    assert exc_info.value.chest_number == original.chest_number
    # The rejected attempt must not consume a chest number
    nxt = RegistrationManager.register_participant(db, "Ravi", "21CS046", department.id, "male")
    assert nxt.chest_number == original.chest_number + 1


@pytest.mark.parametrize("name,code,gender", [
    ("", "21CS001", "male"),
    ("Asha", "  ", "female"),
    ("Asha", "21CS001", "unknown"),
])
def test_register_rejects_invalid_fields(db, department, name, code, gender):
    with pytest.raises(ValidationError):
        RegistrationManager.register_participant(db, name, code, department.id, gender)


def test_register_rejects_unknown_department(db):
    with pytest.raises(ValidationError):
        RegistrationManager.register_participant(db, "Asha", "21CS001", "missing", "female")


def test_register_rejects_out_of_range_semester(db, department):
    with pytest.raises(ValidationError):
        RegistrationManager.register_participant(
            db, "Asha", "21CS001", department.id, "female", semester=9
        )


def test_cohort_must_belong_to_department(db, department, other_department):
    cohort = RegistrationManager.create_cohort(db, other_department.id, "2022-2026")

    with pytest.raises(ValidationError):
        RegistrationManager.register_participant(
            db, "Asha", "21CS001", department.id, "female", cohort_id=cohort.id
        )


def test_chest_number_is_immutable(register, db):
    participant = register()

    with pytest.raises(ValidationError):
        RegistrationManager.update_participant(db, participant.id, {"chest_number": 7})

    assert RegistrationManager.get_participant(db, participant.id).chest_number == 101


def test_update_participant_edits_biographical_fields(register, db):
    participant = register()

    updated = RegistrationManager.update_participant(
        db, participant.id, {"name": " Ravi Kumar ", "semester": 5}
    )

    assert updated.name == "Ravi Kumar"
    assert updated.semester == 5
    assert updated.chest_number == 101


def test_lookup_by_chest_number(register, db):
    register()
    second = register()

    assert RegistrationManager.get_participant_by_chest_number(db, 102).id == second.id
    with pytest.raises(ParticipantNotFound):
        RegistrationManager.get_participant_by_chest_number(db, 999)


def test_department_codes_are_unique(db, department):
    with pytest.raises(ValidationError):
        RegistrationManager.create_department(db, "Another", "cse")


def test_storage_failure_becomes_persistence_error(db, monkeypatch):
    def failing_flush(*args, **kwargs):
        raise OperationalError("INSERT INTO departments", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db, "flush", failing_flush)
    with pytest.raises(PersistenceError):
        RegistrationManager.create_department(db, "Mechanical", "MECH")
    monkeypatch.undo()

    # Rolled back: nothing half-written, and the session is usable again
    assert db.query(Department).count() == 0
    assert RegistrationManager.create_department(db, "Mechanical", "MECH").code == "MECH"


# ============ Gender changes ============

def test_gender_change_refused_while_on_a_single_gender_roster(register, make_event, db):
    runner = register(gender="female")
    event = make_event(gender_category="female", name="100m Women")
    EventManager.add_to_roster(db, event.id, runner.id)

    with pytest.raises(InvalidState):
        RegistrationManager.update_participant(db, runner.id, {"gender": "male"})

    assert RegistrationManager.get_participant(db, runner.id).gender == Gender.FEMALE
    # The roster stays raceable
    assert RoundManager.open_heat(db, event.id, 0, [runner.id], 1)


def test_gender_change_refused_for_team_members(register, make_event, db, department):
    runners = [register(gender="female") for _ in range(4)]
    relay = make_event(discipline="group", gender_category="female", name="4x100m Relay")
    EventManager.create_team(db, relay.id, [p.id for p in runners], department.id)

    with pytest.raises(InvalidState):
        RegistrationManager.update_participant(db, runners[2].id, {"gender": "male"})


def test_gender_change_allowed_for_mixed_and_finished_events(register, make_event, db):
    runner = register(gender="female")
    mixed = make_event(gender_category="mixed", name="Mixed 400m")
    finished = make_event(gender_category="female", name="200m Women")
    EventManager.add_to_roster(db, mixed.id, runner.id)
    EventManager.add_to_roster(db, finished.id, runner.id)
    RoundManager.close_event(db, finished.id)

    updated = RegistrationManager.update_participant(db, runner.id, {"gender": "male"})

    assert updated.gender == Gender.MALE


def test_withdrawn_participant_can_change_gender(register, make_event, db):
    runner = register(gender="female")
    event = make_event(gender_category="female", name="100m Women")
    EventManager.add_to_roster(db, event.id, runner.id)
    EventManager.remove_from_roster(db, event.id, runner.id)

    assert RegistrationManager.update_participant(
        db, runner.id, {"gender": "male"}
    ).gender == Gender.MALE
