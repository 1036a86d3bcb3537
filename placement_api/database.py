"""
Database connection, session management and schema bootstrap
"""
import logging

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from placement_api.config import settings

logger = logging.getLogger(__name__)

DATABASE_URL = settings.DATABASE_URL

if DATABASE_URL.startswith("sqlite"):
    # In-memory SQLite must share a single connection across threads
    _engine_kwargs = {"connect_args": {"check_same_thread": False}}
    if DATABASE_URL in ("sqlite://", "sqlite:///:memory:"):
        _engine_kwargs["poolclass"] = StaticPool
else:
    _engine_kwargs = {"pool_pre_ping": True, "pool_size": 5, "max_overflow": 10}

engine = create_engine(DATABASE_URL, **_engine_kwargs)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

ANSWER_UNIQUE_INDEX = "uq_answer_records_attempt_question"


def get_db():
    """
    Database session dependency for FastAPI
    Yields a database session and ensures it's closed after use
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create tables and make sure answer uniqueness is enforced before serving traffic"""
    # Import models so they register with Base.metadata
    import placement_api.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    ensure_schema()


def ensure_schema() -> None:
    """
    Retrofit the (attempt_id, question_id) uniqueness on databases created
    before it existed. Duplicate rows are collapsed to the oldest one first.
    """
    inspector = inspect(engine)
    if "answer_records" not in inspector.get_table_names():
        return

    target = {"attempt_id", "question_id"}
    for constraint in inspector.get_unique_constraints("answer_records"):
        if set(constraint["column_names"]) == target:
            return
    for index in inspector.get_indexes("answer_records"):
        if index.get("unique") and set(index["column_names"]) == target:
            return

    logger.warning("answer_records is missing its unique constraint, repairing")
    with engine.begin() as conn:
        result = conn.execute(text(
            "DELETE FROM answer_records WHERE id NOT IN ("
            "SELECT MIN(id) FROM answer_records GROUP BY attempt_id, question_id)"
        ))
        if result.rowcount:
            logger.warning(f"Removed {result.rowcount} duplicate answer records")
        conn.execute(text(
            f"CREATE UNIQUE INDEX IF NOT EXISTS {ANSWER_UNIQUE_INDEX} "
            "ON answer_records (attempt_id, question_id)"
        ))
