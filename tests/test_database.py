"""
Tests for the schema bootstrap that retrofits answer uniqueness.
"""
import pytest
from sqlalchemy import inspect, text
from sqlalchemy.exc import IntegrityError

from placement_api.database import ANSWER_UNIQUE_INDEX, Base, engine, ensure_schema, init_db


@pytest.fixture
def legacy_answers_table():
    """answer_records as created before the unique key existed"""
    with engine.begin() as conn:
        conn.execute(text(
            "CREATE TABLE answer_records ("
            "id INTEGER PRIMARY KEY, attempt_id INTEGER, question_id INTEGER, user_response TEXT)"
        ))
        conn.execute(text(
            "INSERT INTO answer_records (id, attempt_id, question_id, user_response) VALUES "
            "(1, 10, 1, 'A'), (2, 10, 1, 'B'), (3, 10, 2, 'C'), (4, 11, 1, 'D'), (5, 10, 2, 'E')"
        ))
    yield
    with engine.begin() as conn:
        conn.execute(text("DROP TABLE IF EXISTS answer_records"))


def test_duplicates_collapse_to_oldest(legacy_answers_table):
    ensure_schema()

    with engine.connect() as conn:
        rows = conn.execute(text("SELECT id, user_response FROM answer_records ORDER BY id")).all()
    assert [tuple(row) for row in rows] == [(1, "A"), (3, "C"), (4, "D")]

    indexes = inspect(engine).get_indexes("answer_records")
    assert any(index["name"] == ANSWER_UNIQUE_INDEX and index["unique"] for index in indexes)


def test_unique_index_rejects_new_duplicates(legacy_answers_table):
    ensure_schema()

    with pytest.raises(IntegrityError):
        with engine.begin() as conn:
            conn.execute(text(
                "INSERT INTO answer_records (id, attempt_id, question_id, user_response) VALUES (9, 10, 1, 'Z')"
            ))


def test_repair_is_idempotent(legacy_answers_table):
    ensure_schema()
    ensure_schema()

    indexes = inspect(engine).get_indexes("answer_records")
    assert [index["name"] for index in indexes].count(ANSWER_UNIQUE_INDEX) == 1


def test_fresh_schema_has_constraint():
    try:
        init_db()
        constraints = inspect(engine).get_unique_constraints("answer_records")
        assert any(set(c["column_names"]) == {"attempt_id", "question_id"} for c in constraints)
    finally:
        Base.metadata.drop_all(bind=engine)
