from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker, Session
from pydantic_settings import BaseSettings
from functools import lru_cache, wraps
import logging

from core.exceptions import AthleticsMeetException, PersistenceError

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    database_url: str = "sqlite:///./athletics_meet.db"
    # First issued chest number is seed + 1
    chest_number_seed: int = 100
    chest_allocator_max_attempts: int = 3
    db_timeout_seconds: float = 10.0
    log_level: str = "INFO"

    class Config:
        env_file = ".env"


@lru_cache()
def get_settings():
    return Settings()


settings = get_settings()


def build_connect_args(database_url: str) -> dict:
    """
    Build driver connect_args for the configured database

    SQLite:
        - check_same_thread=False: FastAPI serves requests from a thread pool
        - timeout: upper bound on waiting for the write lock
    Others:
        - connect_timeout: upper bound on establishing a connection
    """
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False, "timeout": settings.db_timeout_seconds}
    return {"connect_timeout": int(settings.db_timeout_seconds)}


engine = create_engine(
    settings.database_url,
    connect_args=build_connect_args(settings.database_url),
    pool_pre_ping=True
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """
    FastAPI dependency: yields a database session

    The session is always closed once the request finishes.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def transactional(func):
    """
    Transaction decorator: runs the wrapped business operation atomically

    Usage:
        @transactional
        def some_operation(db: Session, ...):
            event = Event(...)
            db.add(event)
            # no manual commit, the decorator commits

    On failure:
        - the session is rolled back
        - domain exceptions (AthleticsMeetException) are re-raised unchanged
        - storage failures (SQLAlchemyError) are re-raised as PersistenceError

    Notes:
        - the first argument must be db: Session (or passed as db=...)
        - never commit manually inside the wrapped function
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        db = None
        if args and isinstance(args[0], Session):
            db = args[0]
        elif 'db' in kwargs:
            db = kwargs['db']

        if db is None:
            raise ValueError(
                f"@transactional requires 'db: Session' as first argument, "
                f"but got args={args}, kwargs={kwargs}"
            )

        try:
            result = func(*args, **kwargs)
            db.commit()
            return result
        except AthleticsMeetException as e:
            logger.warning(f"Transaction rejected in {func.__name__}: {e}")
            db.rollback()
            raise
        except SQLAlchemyError as e:
            logger.error(f"Transaction failed in {func.__name__}: {e}", exc_info=True)
            db.rollback()
            raise PersistenceError(f"Storage failure in {func.__name__}: {e}") from e
        except Exception as e:
            logger.error(f"Transaction failed in {func.__name__}: {e}", exc_info=True)
            db.rollback()
            raise

    return wrapper
