import pytest

from models import ActivityLog, RequestStatus
from core.event_manager import EventManager
from core.exceptions import (
    InvalidParticipant,
    InvalidState,
    ParticipantNotFound,
    RequestNotFound,
    ValidationError,
)
from core.registration_manager import RegistrationManager
from core.request_manager import RequestManager
from core.round_manager import RoundManager


@pytest.fixture
def long_jump(make_event):
    return make_event(gender_category="female", name="Long Jump Women")


@pytest.fixture
def jumper(register):
    return register(gender="female")


def test_approval_admits_to_the_roster(db, long_jump, jumper):
    request = RequestManager.submit_request(db, long_jump.id, jumper.id)
    assert request.status == RequestStatus.PENDING
    assert jumper.id not in EventManager.get_event(db, long_jump.id).admission_ids

    approved = RequestManager.approve_request(db, request.id)

    assert approved.status == RequestStatus.APPROVED
    assert approved.resolved_at is not None
    assert EventManager.get_event(db, long_jump.id).admission_ids == [jumper.id]
    logged = db.query(ActivityLog).filter(ActivityLog.activity_type == "REQUEST_APPROVED").all()
    assert len(logged) == 1


def test_rejection_leaves_the_roster_alone(db, long_jump, jumper):
    request = RequestManager.submit_request(db, long_jump.id, jumper.id)

    rejected = RequestManager.reject_request(db, request.id)

    assert rejected.status == RequestStatus.REJECTED
    assert EventManager.get_event(db, long_jump.id).admission_ids == []
    # A fresh request is allowed after a rejection
    assert RequestManager.submit_request(db, long_jump.id, jumper.id).status == RequestStatus.PENDING


def test_resolved_requests_are_final(db, long_jump, jumper):
    request = RequestManager.submit_request(db, long_jump.id, jumper.id)
    RequestManager.reject_request(db, request.id)

    with pytest.raises(InvalidState):
        RequestManager.approve_request(db, request.id)
    with pytest.raises(InvalidState):
        RequestManager.reject_request(db, request.id)
    with pytest.raises(RequestNotFound):
        RequestManager.approve_request(db, "missing")


def test_duplicate_and_redundant_requests(db, long_jump, jumper):
    RequestManager.submit_request(db, long_jump.id, jumper.id)

    with pytest.raises(ValidationError):
        RequestManager.submit_request(db, long_jump.id, jumper.id)

    pending = RequestManager.list_requests(db, status="pending")[0]
    RequestManager.approve_request(db, pending.id)
    with pytest.raises(ValidationError):
        RequestManager.submit_request(db, long_jump.id, jumper.id)


def test_submit_checks_event_and_participant(db, long_jump, make_event, register):
    man = register(gender="male")
    relay = make_event(discipline="group", gender_category="female", name="4x100m Relay")

    with pytest.raises(InvalidParticipant):
        RequestManager.submit_request(db, long_jump.id, man.id)
    with pytest.raises(ParticipantNotFound):
        RequestManager.submit_request(db, long_jump.id, "missing")
    with pytest.raises(ValidationError):
        RequestManager.submit_request(db, relay.id, man.id)
    assert RequestManager.list_requests(db) == []


def test_closed_roster_takes_no_requests(db, long_jump, jumper, register):
    late = register(gender="female")
    EventManager.add_to_roster(db, long_jump.id, jumper.id)
    pending = RequestManager.submit_request(db, long_jump.id, late.id)
    RoundManager.open_heat(db, long_jump.id, 0, [jumper.id], 1)
    RoundManager.record_qualification(db, long_jump.id, 0, jumper.id, 1)
    RoundManager.advance_round(db, long_jump.id, None, True)

    with pytest.raises(InvalidState):
        RequestManager.submit_request(db, long_jump.id, register(gender="female").id)
    with pytest.raises(InvalidState):
        RequestManager.approve_request(db, pending.id)

    # Still pending; staff can reject it
    assert RequestManager.reject_request(db, pending.id).status == RequestStatus.REJECTED


def test_failed_approval_keeps_request_pending(db, long_jump, jumper):
    request = RequestManager.submit_request(db, long_jump.id, jumper.id)
    RegistrationManager.update_participant(db, jumper.id, {"gender": "male"})

    with pytest.raises(InvalidParticipant):
        RequestManager.approve_request(db, request.id)

    assert RequestManager.list_requests(db, status="pending")[0].id == request.id
    assert EventManager.get_event(db, long_jump.id).admission_ids == []


def test_list_requests_filters(db, long_jump, make_event, jumper, register):
    hurdles = make_event(gender_category="female", name="100m Hurdles")
    first = RequestManager.submit_request(db, long_jump.id, jumper.id)
    second = RequestManager.submit_request(db, hurdles.id, register(gender="female").id)
    RequestManager.reject_request(db, second.id)

    assert [r.id for r in RequestManager.list_requests(db, status="pending")] == [first.id]
    assert [r.id for r in RequestManager.list_requests(db, event_id=hurdles.id)] == [second.id]
    assert len(RequestManager.list_requests(db)) == 2
    with pytest.raises(ValidationError):
        RequestManager.list_requests(db, status="maybe")
