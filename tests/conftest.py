"""
Shared fixtures: in-memory SQLite, fake generation clients and an API client
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["GEMINI_API_KEY"] = "test-key"
os.environ["REDIS_URL"] = ""
os.environ.pop("PLAN_ARTIFACT_DIR", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

import placement_api.models  # noqa: E402,F401
from placement_api.database import Base, SessionLocal, engine, get_db  # noqa: E402
from placement_api.main import app  # noqa: E402
from placement_api.services.answer_evaluator import AnswerEvaluator  # noqa: E402
from placement_api.services.attempt_service import AttemptService, attempt_service  # noqa: E402
from placement_api.services.moderation_service import moderation_service  # noqa: E402
from placement_api.services.placement_test_service import placement_test_generator  # noqa: E402
from placement_api.utils.rate_limiter import rate_limiter  # noqa: E402
from tests.fakes import FakeGenerationClient, MemoryCache, RecordingSynthesizer  # noqa: E402


@pytest.fixture
def db_session():
    """Fresh schema per test"""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def judge_client():
    return FakeGenerationClient()


@pytest.fixture
def synthesizer():
    return RecordingSynthesizer()


@pytest.fixture
def plan_store():
    return MemoryCache()


@pytest.fixture
def service(judge_client, synthesizer, plan_store):
    return AttemptService(
        evaluator=AnswerEvaluator(judge_client),
        synthesizer=synthesizer,
        cache=plan_store,
    )


@pytest.fixture
def generator_client():
    return FakeGenerationClient()


@pytest.fixture
def client(db_session, monkeypatch, generator_client, judge_client, synthesizer, plan_store):
    """API client wired to the test session and fake collaborators"""

    def override_get_db():
        yield db_session

    monkeypatch.setattr(placement_test_generator, "client", generator_client)
    monkeypatch.setattr(moderation_service, "client", generator_client)
    monkeypatch.setattr(attempt_service, "evaluator", AnswerEvaluator(judge_client))
    monkeypatch.setattr(attempt_service, "synthesizer", synthesizer)
    monkeypatch.setattr(attempt_service, "cache", plan_store)
    rate_limiter.reset()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        rate_limiter.reset()


@pytest.fixture
def headers():
    return {"X-User-Id": "learner-1"}
