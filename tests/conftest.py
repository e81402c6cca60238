import itertools

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base
from core.event_manager import EventManager
from core.registration_manager import RegistrationManager


@pytest.fixture
def engine():
    """In-memory SQLite shared by every session of one test"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def file_engine(tmp_path):
    """File-backed SQLite: separate connections, real cross-session races"""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'meet.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def department(db):
    return RegistrationManager.create_department(db, "Computer Science and Engineering", "CSE")


@pytest.fixture
def other_department(db):
    return RegistrationManager.create_department(db, "Electronics and Communication", "ECE")


@pytest.fixture
def register(db, department):
    """Register participants with unique registration codes"""
    counter = itertools.count(1)

    def _register(gender="male", department_id=None, name=None):
        n = next(counter)
        return RegistrationManager.register_participant(
            db,
            name=name or f"Athlete {n}",
            registration_code=f"21cs{n:03d}",
            department_id=department_id or department.id,
            gender=gender,
        )

    return _register


@pytest.fixture
def make_event(db):
    counter = itertools.count(1)

    def _make_event(discipline="individual", gender_category="male", **kwargs):
        kwargs.setdefault("name", f"Event {next(counter)}")
        return EventManager.create_event(
            db,
            discipline=discipline,
            gender_category=gender_category,
            **kwargs
        )

    return _make_event
