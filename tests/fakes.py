"""
Test doubles for the generation client, synthesizer and plan cache
"""
import asyncio
import json
from typing import Any, Dict, List, Optional

from placement_api.errors import GenerationClientError
from placement_api.models import PlacementQuestion, PlacementTest
from placement_api.services.generation_client import GenerationResult, GenerationUsage
from placement_api.services.plan_synthesizer import PlanResult, diagnostic_score, level_for_score


class FakeGenerationClient:
    """
    Replays queued outcomes: strings become response text, exceptions are raised
    """

    def __init__(self, *outcomes, model: str = "gemini-2.5-flash"):
        self.model = model
        self.outcomes = list(outcomes)
        self.requests = []

    def queue(self, *outcomes) -> None:
        self.outcomes.extend(outcomes)

    async def generate(self, request, *, deadline=None) -> GenerationResult:
        self.requests.append(request)
        # Yield like a real network call would
        await asyncio.sleep(0)
        if not self.outcomes:
            raise GenerationClientError("no canned response left")

        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return GenerationResult(
            text=outcome,
            model=self.model,
            usage=GenerationUsage(tokens_input=1000, tokens_output=500, cached=False),
            request_id=f"req-{len(self.requests)}",
            latency_ms=10,
        )


class RecordingSynthesizer:
    """Stands in for PlanSynthesizer and remembers every call"""

    def __init__(self):
        self.calls: List[Dict[str, Any]] = []

    async def synthesize(self, db, **kwargs) -> PlanResult:
        self.calls.append(kwargs)
        score = diagnostic_score(kwargs["responses"])
        return PlanResult(
            document="## Personalized Mastery Plan",
            framework_completed=True,
            structure_completed=True,
            content_completed=True,
            content_skipped=False,
            rendered=False,
            score=score,
            level=level_for_score(score),
            summary="summary",
        )


class MemoryCache:
    """Dict-backed plan cache"""

    def __init__(self):
        self.store: Dict[str, Any] = {}

    def get(self, key: str) -> Optional[Any]:
        return self.store.get(key)

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        # Round-trip through JSON like Redis would
        self.store[key] = json.loads(json.dumps(value))
        return True


def placement_json(questions: List[Dict[str, Any]], topic: str = "Algebra") -> str:
    return json.dumps({"topic": topic, "prerequisites": ["arithmetic"], "questions": questions})


def mc_question(text: str, answer: str = "B", concept: Optional[str] = None) -> Dict[str, Any]:
    return {
        "question": text,
        "type": "multiple_choice",
        "options": ["A. one", "B. two", "C. three", "D. four"],
        "correct_answer": answer,
        "explanation": "Because.",
        "assesses": concept or text,
    }


def create_test(
    db,
    questions: List[Dict[str, Any]],
    user_id: str = "creator",
    goal: str = "GCSE Maths",
    experience: str = "Year 9"
) -> PlacementTest:
    """Insert a test and its questions directly, bypassing generation"""
    test = PlacementTest(
        user_id=user_id,
        topic="Algebra",
        goal=goal,
        experience_level=experience,
        model_used="gemini-2.5-flash",
        prerequisites=[],
        total_questions=len(questions),
    )
    db.add(test)
    db.flush()
    for item in questions:
        db.add(PlacementQuestion(
            test_id=test.id,
            concept_tag=item.get("concept"),
            question_text=item["question"],
            type=item.get("type", "multiple_choice"),
            options=item.get("options", ["A. one", "B. two", "C. three", "D. four"]),
            correct_answer=item.get("correct_answer"),
            explanation=item.get("explanation"),
        ))
        db.flush()
    db.commit()
    db.refresh(test)
    return test
